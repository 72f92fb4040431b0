"""
Asynchronous Grid API client.

Thin aiohttp wrapper around the Grid REST endpoints plus the local session
operations (secret generation, signing) the flows need. Every response is
normalized through :mod:`grid_cli.models` before it leaves this module.
"""

from __future__ import annotations

import asyncio
import json
import ssl
from typing import Any, Dict, Optional

import aiohttp

from .config import Settings
from .logs import get_logger
from .models import ApiResult, GridError, Session
from .session import SessionSecrets, generate_session_secrets, sign_payload

log = get_logger(__name__)

DEFAULT_TIMEOUT = 30


class GridClient:
    def __init__(self, api_url: str, api_key: str, environment: str, timeout: int = DEFAULT_TIMEOUT):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.environment = environment
        self.timeout = timeout
        self._session: Optional[aiohttp.ClientSession] = None
        self._ssl = ssl.create_default_context()

    @classmethod
    def from_settings(cls, settings: Settings) -> "GridClient":
        return cls(settings.api_url, settings.api_key, settings.environment)

    # ------------------------
    # transport
    # ------------------------
    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session
        connector = aiohttp.TCPConnector(ssl=self._ssl)
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "x-grid-environment": self.environment,
            "Content-Type": "application/json",
        }
        self._session = aiohttp.ClientSession(
            connector=connector,
            headers=headers,
            timeout=aiohttp.ClientTimeout(total=self.timeout),
            json_serialize=json.dumps,
        )
        return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()

    async def req(self, method: str, path: str, data: Any = None) -> ApiResult:
        """Generic request; transport failures come back as status 0."""
        session = await self._ensure_session()
        url = f"{self.api_url}{path}"
        log.debug("grid request", method=method, url=url)
        try:
            kwargs = {}
            if data is not None:
                kwargs["json"] = data
            async with session.request(method.upper(), url, **kwargs) as resp:
                text = await resp.text()
                try:
                    j = json.loads(text) if text.strip() else None
                except ValueError:
                    j = None
                result = ApiResult.from_http(resp.status, text, j)
        except asyncio.TimeoutError:
            result = ApiResult.from_http(0, "timeout", None)
        except aiohttp.ClientError as e:
            result = ApiResult.from_http(0, str(e), None)
        log.debug("grid response", url=url, status=result.status, error=result.error)
        return result

    # ------------------------
    # authentication
    # ------------------------
    async def init_auth(self, email: str) -> Any:
        return (await self.req("POST", "/auth", {"email": email})).unwrap()

    async def create_account(self, email: str) -> Any:
        return (await self.req("POST", "/accounts", {"type": "email", "email": email})).unwrap()

    def generate_session_secrets(self) -> SessionSecrets:
        return generate_session_secrets()

    def _verify_body(self, otp_code: str, secrets: SessionSecrets, user: Dict[str, Any]) -> Dict[str, Any]:
        body = {
            "email": user.get("email"),
            "otp_code": otp_code,
            "signers": user.get("signers") or [],
        }
        body.update(secrets.public_config())
        return body

    async def complete_auth(self, otp_code: str, secrets: SessionSecrets, user: Dict[str, Any]) -> Session:
        data = (await self.req("POST", "/auth/verify", self._verify_body(otp_code, secrets, user))).unwrap()
        if not data:
            raise GridError("Authentication completed, but no session data was returned.")
        return Session.from_response(data)

    async def complete_auth_and_create_account(
        self, otp_code: str, secrets: SessionSecrets, user: Dict[str, Any]
    ) -> Session:
        data = (await self.req("POST", "/accounts/verify", self._verify_body(otp_code, secrets, user))).unwrap()
        if not data:
            raise GridError("Account verified, but no session data was returned.")
        return Session.from_response(data)

    # ------------------------
    # accounts
    # ------------------------
    async def get_account_balances(self, address: str) -> ApiResult:
        return await self.req("GET", f"/accounts/{address}/balances")

    async def create_payment_intent(self, address: str, request: Dict[str, Any]) -> ApiResult:
        return await self.req("POST", f"/accounts/{address}/payment-intents", request)

    async def prepare_arbitrary_transaction(self, address: str, payload: Dict[str, Any]) -> ApiResult:
        return await self.req("POST", f"/accounts/{address}/transactions", payload)

    # ------------------------
    # signing / submission
    # ------------------------
    def sign(self, secrets: SessionSecrets, session: Any, transaction_payload: Dict[str, Any]) -> Dict[str, Any]:
        return sign_payload(secrets, session, transaction_payload)

    async def send(self, signed_payload: Dict[str, Any], address: str) -> Any:
        """Submit a signed payload; returns the raw response body."""
        result = await self.req("POST", f"/accounts/{address}/submit", signed_payload)
        result.unwrap()
        return result.body

    async def sign_and_send(
        self, secrets: SessionSecrets, session: Any, transaction_payload: Dict[str, Any], address: str
    ) -> Any:
        signed = self.sign(secrets, session, transaction_payload)
        return await self.send(signed, address)
