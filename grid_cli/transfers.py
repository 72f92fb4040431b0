"""
Transfer helpers: input validation, base-unit conversion and local
construction of the native SOL transfer handed to Grid for preparation.
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal, InvalidOperation, localcontext
from typing import Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Finalized
from solders.hash import Hash
from solders.instruction import Instruction
from solders.message import Message
from solders.pubkey import Pubkey
from solders.system_program import TransferParams, transfer
from solders.transaction import Transaction

# ------------------------
# Config / Constants
# ------------------------
USDC = "USDC"
SOL = "SOL"

DECIMALS = {USDC: 6, SOL: 9}
MAX_AMOUNT = {USDC: Decimal("1000000"), SOL: Decimal("10000")}
LAMPORTS_PER_SOL = 10 ** DECIMALS[SOL]

EXPLORER_TX_URL = "https://explorer.solana.com/tx/{signature}?cluster={cluster}"

# plain ASCII decimal, optional sign and a short exponent
AMOUNT_RE = re.compile(r"^[-+]?([0-9]+\.?[0-9]*|\.[0-9]+)([eE][-+]?[0-9]{1,3})?$")


# ------------------------
# Validation
# ------------------------
def is_valid_address(address: str) -> bool:
    try:
        Pubkey.from_string(address.strip())
        return True
    except ValueError:
        return False


def parse_amount(amount: str) -> Optional[Decimal]:
    if not isinstance(amount, str) or not AMOUNT_RE.match(amount.strip()):
        return None
    try:
        return Decimal(amount.strip())
    except InvalidOperation:
        return None


def _floor_scaled(num: Decimal, decimals: int) -> int:
    # enough precision that scaleb never rounds
    with localcontext() as ctx:
        ctx.prec = len(num.as_tuple().digits) + decimals
        return int(num.scaleb(decimals).to_integral_value(rounding=ROUND_FLOOR))


def validate_amount(amount: str, token: str) -> Tuple[bool, Optional[str]]:
    """Returns (ok, error message)."""
    num = parse_amount(amount)
    if num is None:
        return False, "Please enter a valid number"
    if num <= 0:
        return False, "Amount must be greater than 0"
    if num > MAX_AMOUNT[token]:
        return False, f"{token} amount too large (max: {MAX_AMOUNT[token]:,})"
    if _floor_scaled(num, DECIMALS[token]) == 0:
        return False, f"Amount is below the smallest unit of {token} (1e-{DECIMALS[token]})"
    return True, None


def to_base_units(amount: str, token: str) -> int:
    """floor(amount * 10**decimals), exact for any number of digits."""
    num = parse_amount(amount)
    if num is None:
        raise ValueError(f"invalid amount: {amount!r}")
    return _floor_scaled(num, DECIMALS[token])


def explorer_url(signature: str, cluster: str) -> str:
    return EXPLORER_TX_URL.format(signature=signature, cluster=cluster)


# ------------------------
# Native SOL transfer
# ------------------------
@dataclass
class UnsignedTransfer:
    instruction: Instruction
    transaction: Transaction
    blockhash: Hash

    @property
    def fee_payer(self) -> Pubkey:
        return self.transaction.message.account_keys[0]

    def to_base64(self) -> str:
        """Wire form with empty signature slots; nothing is signed locally."""
        return base64.b64encode(bytes(self.transaction)).decode()


def build_sol_transfer(from_address: str, to_address: str, lamports: int, blockhash: Hash) -> UnsignedTransfer:
    """System Program transfer paid for by the sending account itself."""
    from_pubkey = Pubkey.from_string(from_address)
    to_pubkey = Pubkey.from_string(to_address)
    ix = transfer(TransferParams(from_pubkey=from_pubkey, to_pubkey=to_pubkey, lamports=lamports))
    msg = Message.new_with_blockhash([ix], from_pubkey, blockhash)
    return UnsignedTransfer(instruction=ix, transaction=Transaction.new_unsigned(msg), blockhash=blockhash)


async def latest_blockhash(rpc: AsyncClient) -> Hash:
    resp = await rpc.get_latest_blockhash(Finalized)
    return resp.value.blockhash


# ------------------------
# USDC payment intent
# ------------------------
SMART_ACCOUNT_RAIL = "smart_account"


def payment_intent_request(source: str, recipient: str, base_units: int, grid_user_id: Optional[str] = None) -> dict:
    """USDC intent settled smart account to smart account."""
    return {
        "amount": str(base_units),
        "grid_user_id": grid_user_id,
        "source": {"account": source, "currency": "usdc", "payment_rail": SMART_ACCOUNT_RAIL},
        "destination": {"address": recipient, "currency": "usdc", "payment_rail": SMART_ACCOUNT_RAIL},
    }
