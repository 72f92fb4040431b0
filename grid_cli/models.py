"""
Grid response normalization.

Grid has returned the same concept under several field names across API
versions. Everything that varies is mapped here onto one internal shape, so
the flows never have to look at raw responses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional

DEFAULT_TOKEN_DECIMALS = 6


class GridError(Exception):
    def __init__(self, message: str, code: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status

    @property
    def is_not_found(self) -> bool:
        return "not found" in self.message.lower()

    @property
    def is_already_exists(self) -> bool:
        return "already exists" in self.message.lower()


def _error_fields(body: Any) -> tuple:
    """(message, code) from any of the error shapes Grid uses."""
    if not isinstance(body, dict):
        return None, None
    err = body.get("error")
    if isinstance(err, dict):
        return err.get("message") or err.get("details"), err.get("code")
    if err:
        return str(err), body.get("code")
    if body.get("success") is False:
        return body.get("message") or "request failed", body.get("code")
    return None, None


@dataclass
class ApiResult:
    """One Grid HTTP exchange, success or failure."""

    status: int
    data: Any = None
    error: Optional[str] = None
    code: Optional[str] = None
    body: Any = field(default=None, repr=False)

    @property
    def success(self) -> bool:
        return self.error is None and 200 <= self.status < 300

    @classmethod
    def from_http(cls, status: int, text: str, body: Any) -> "ApiResult":
        message, code = _error_fields(body)
        if message is None and not 200 <= status < 300:
            if isinstance(body, dict) and body.get("message"):
                message = str(body["message"])
            elif status == 0:
                message = text or "connection failed"
            else:
                message = f"HTTP {status}: {text[:200]}" if text else f"HTTP {status}"
        data = body.get("data", body) if isinstance(body, dict) else body
        return cls(status=status, data=data, error=message, code=code, body=body)

    def unwrap(self) -> Any:
        """Data of a successful result, ``GridError`` otherwise."""
        if not self.success:
            raise GridError(self.error or "request failed", code=self.code, status=self.status)
        return self.data


# ------------------------
# Session
# ------------------------
@dataclass
class Session:
    address: Optional[str]
    grid_user_id: Optional[str] = None
    signing_context: Any = None
    authentication: Any = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_response(cls, data: Any) -> "Session":
        d = data if isinstance(data, dict) else {}
        return cls(
            address=d.get("smart_account_address") or d.get("address"),
            grid_user_id=d.get("grid_user_id"),
            signing_context=d.get("session") or d.get("authentication"),
            authentication=d.get("authentication"),
            raw=d,
        )


# ------------------------
# Balances
# ------------------------
@dataclass
class TokenBalance:
    symbol: str
    name: str
    balance: Decimal

    @classmethod
    def from_response(cls, t: Dict[str, Any]) -> "TokenBalance":
        if t.get("amount_decimal") not in (None, ""):
            bal = Decimal(str(t["amount_decimal"]))
        else:
            decimals = t.get("decimals") or DEFAULT_TOKEN_DECIMALS
            bal = Decimal(str(t.get("amount") or 0)) / (Decimal(10) ** int(decimals))
        return cls(symbol=t.get("symbol") or "Unknown", name=t.get("name") or "Unknown token", balance=bal)


@dataclass
class Balances:
    tokens: Optional[List[TokenBalance]] = None
    sol: Any = None

    @property
    def usdc(self) -> Optional[TokenBalance]:
        for t in self.tokens or []:
            if t.symbol == "USDC":
                return t
        return None

    @classmethod
    def from_response(cls, data: Any) -> "Balances":
        d = data if isinstance(data, dict) else {}
        tokens = d.get("tokens")
        return cls(
            tokens=[TokenBalance.from_response(t) for t in tokens] if tokens else None,
            sol=d.get("sol"),
        )


# ------------------------
# Transaction responses
# ------------------------
def extract_signature(resp: Any) -> Optional[str]:
    """Transaction signature from any known submission response shape."""
    if not isinstance(resp, dict):
        return None
    nested = resp.get("data") if isinstance(resp.get("data"), dict) else {}
    return resp.get("transaction_signature") or resp.get("signature") or nested.get("signature")


def payment_intent_payload(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    return data.get("transactionPayload") or data.get("transaction_payload")
