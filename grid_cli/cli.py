#!/usr/bin/env python3
"""
Grid CLI v0.1.0

Interactive terminal client for Grid smart accounts: log in or register by
email + OTP, check balances, send USDC through a payment intent and send SOL
through Grid's arbitrary-transaction endpoint.

Usage: grid-cli [--debug]   (or: python -m grid_cli)
API keys are read from the environment or a .env file, see .env.example.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed

from . import __version__
from .config import ConfigError, Settings, load_settings
from .grid import GridClient
from .logs import get_logger, setup_logging
from .models import Balances, GridError, Session, extract_signature, payment_intent_payload
from .session import SessionContext
from .transfers import (
    SOL,
    USDC,
    UnsignedTransfer,
    build_sol_transfer,
    explorer_url,
    is_valid_address,
    latest_blockhash,
    payment_intent_request,
    to_base_units,
    validate_amount,
)

log = get_logger(__name__)

# Terminal colors (minimal)
C = {
    "r": "\033[0m",
    "c": "\033[36m",
    "g": "\033[32m",
    "y": "\033[33m",
    "R": "\033[31m",
    "B": "\033[1m",
    "w": "\033[37m",
}

MENU: List[Tuple[str, str]] = [
    ("Login or Register", "login"),
    ("Check Balance", "balance"),
    ("Transfer USDC", "transfer"),
    ("Transfer SOL (Arbitrary Transaction)", "arbitrarySOL"),
    ("Exit", "exit"),
]


# ------------------------
# Terminal input
# ------------------------
Validator = Callable[[str], Optional[str]]


def ainput(prompt: str) -> "asyncio.Future[str]":
    """input() on a daemon thread, so a pending prompt never blocks interpreter exit."""
    loop = asyncio.get_running_loop()
    fut = loop.create_future()

    def _settle(line: Optional[str], exc: Optional[BaseException]) -> None:
        if fut.done():
            return
        if exc is not None:
            fut.set_exception(exc)
        else:
            fut.set_result(line)

    def _worker() -> None:
        try:
            line = input(prompt)
        except Exception as e:
            loop.call_soon_threadsafe(_settle, None, e)
        else:
            loop.call_soon_threadsafe(_settle, line, None)

    threading.Thread(target=_worker, name="grid-cli-input", daemon=True).start()
    return fut


class Prompter:
    """Line-oriented prompts. A validator returns an error message or None."""

    async def _read(self, message: str) -> str:
        return await ainput(f"{C['y']}? {message}{C['r']} ")

    async def ask(self, message: str, validate: Optional[Validator] = None) -> str:
        while True:
            answer = (await self._read(message)).strip()
            error = validate(answer) if validate else None
            if error is None:
                return answer
            print(f"{C['R']}>> {error}{C['r']}")

    async def confirm(self, message: str) -> bool:
        answer = await self.ask(f"{message} [y/n]:")
        return answer.lower() in ("y", "yes")

    async def choose(self, message: str, choices: List[Tuple[str, str]]) -> str:
        for i, (name, _) in enumerate(choices, 1):
            print(f"  {C['c']}[{i}]{C['r']} {name}")

        def _valid(answer: str) -> Optional[str]:
            if answer.isdigit() and 1 <= int(answer) <= len(choices):
                return None
            return f"Please choose a number between 1 and {len(choices)}"

        return choices[int(await self.ask(message, _valid)) - 1][1]


def _email_error(text: str) -> Optional[str]:
    if not text or "@" not in text:
        return "Please enter a valid email address"
    return None


def _otp_error(text: str) -> Optional[str]:
    return None if text else "Please enter the code from your email"


def _recipient_error(text: str) -> Optional[str]:
    if not text:
        return "Please enter a recipient address"
    if not is_valid_address(text):
        return "Please enter a valid Solana address"
    return None


def _amount_validator(token: str) -> Validator:
    def _check(text: str) -> Optional[str]:
        if not text:
            return "Please enter an amount"
        _, error = validate_amount(text, token)
        return error

    return _check


# ------------------------
# Application state
# ------------------------
@dataclass
class App:
    settings: Settings
    grid: GridClient
    rpc: AsyncClient
    prompter: Prompter
    ctx: SessionContext = field(default_factory=SessionContext)


@dataclass
class TransferOutcome:
    signature: Optional[str]
    explorer_url: Optional[str] = None
    response: Any = None


def _report(what: str, err: GridError) -> None:
    log.error(f"❌ {what} failed: {err.message}", code=err.code or "N/A", status=err.status)


def _require_login(app: App) -> Optional[Session]:
    if not app.ctx.is_authenticated:
        print(f"{C['y']}Please log in first.{C['r']}")
        return None
    return app.ctx.session


def _account_address(session: Session) -> Optional[str]:
    """The session's smart-account address, or None unless it is a valid Solana address."""
    address = session.address
    if not address or address != address.strip() or not is_valid_address(address):
        return None
    return address


# ------------------------
# Authentication
# ------------------------
async def login_or_register(app: App) -> bool:
    email = await app.prompter.ask("Enter your email address:", _email_error)
    try:
        log.info("📧 Checking for existing user...", email=email)
        await app.grid.init_auth(email)
    except GridError as e:
        _report("Authentication", e)
        if e.is_not_found:
            return await _register(app, email)
        log.warning(
            "🔄 This might be an existing account. If an OTP reached your inbox you can still use it.",
            environment=app.settings.environment,
        )
        if not await app.prompter.confirm("Login state is uncertain. Enter a code anyway?"):
            return False
        return await verify_otp(app, email, new_user=False)
    log.info("📬 OTP sent to your email. Please check your inbox.")
    return await verify_otp(app, email, new_user=False)


async def _register(app: App, email: str) -> bool:
    log.info("👤 User not found. Attempting to register...")
    try:
        await app.grid.create_account(email)
    except GridError as e:
        _report("Registration", e)
        if not e.is_already_exists:
            return False
        log.info("👤 Account already exists. Retrying login...")
        try:
            await app.grid.init_auth(email)
        except GridError as retry_err:
            _report("Login retry", retry_err)
            return False
        log.info("📬 OTP sent to your email. Please check your inbox.")
        return await verify_otp(app, email, new_user=False)
    log.info("📬 Account creation initiated. OTP sent to your email.")
    return await verify_otp(app, email, new_user=True)


async def verify_otp(app: App, email: str, new_user: bool) -> bool:
    otp = await app.prompter.ask("Enter the OTP from your email:", _otp_error)
    user = {"email": email, "signers": []}
    try:
        secrets = app.grid.generate_session_secrets()
        if new_user:
            session = await app.grid.complete_auth_and_create_account(otp, secrets, user)
        else:
            session = await app.grid.complete_auth(otp, secrets, user)
    except GridError as e:
        app.ctx.clear()
        _report("OTP verification", e)
        return False

    app.ctx.bind(session, secrets)
    log.info(
        "✅ Registration successful!" if new_user else "✅ Login successful!",
        session_keys=sorted(session.raw),
        signer=secrets.signer_address,
    )
    if session.address:
        print(f"{C['g']}🏦 Account: {session.address}{C['r']}")
    return True


# ------------------------
# Balances
# ------------------------
async def check_balance(app: App) -> Optional[Balances]:
    session = _require_login(app)
    if session is None:
        return None
    address = _account_address(session)
    if address is None:
        log.error("No valid account address found in session", address=session.address)
        return None

    log.info(f"Fetching balance for account: {address}")
    result = await app.grid.get_account_balances(address)
    if not result.success:
        log.error(f"❌ Failed to fetch balance: {result.error}", status=result.status, code=result.code)
        return None

    balances = Balances.from_response(result.data)
    if balances.tokens:
        print(f"Found {len(balances.tokens)} token(s):")
        for t in balances.tokens:
            print(f"  {C['c']}{t.symbol}{C['r']}: {t.balance} ({t.name})")
        usdc = balances.usdc
        if usdc:
            print(f"\n{C['g']}💰 Your USDC balance is: {usdc.balance} USDC{C['r']}")
        else:
            print(f"\n{C['y']}⚠️ No USDC balance found for this account.{C['r']}")
    else:
        print("No token balances found for this account.")
    if balances.sol is not None:
        print(f"SOL balance: {balances.sol} SOL")
    return balances


# ------------------------
# Transfers
# ------------------------
async def _ask_transfer(app: App, token: str) -> Tuple[str, str]:
    recipient = await app.prompter.ask("Enter the recipient's Solana address:", _recipient_error)
    amount = await app.prompter.ask(f"Enter the amount of {token} to send:", _amount_validator(token))
    return recipient, amount


def _finish_transfer(app: App, response: Any, amount: str, token: str, recipient: str) -> TransferOutcome:
    signature = extract_signature(response)
    if not signature:
        log.warning("✅ Transaction submitted successfully, but signature format is unexpected.", response=response)
        return TransferOutcome(signature=None, response=response)
    url = explorer_url(signature, app.settings.cluster)
    log.info(f"✅ {token} transfer successful!", signature=signature)
    print(f"{C['g']}💰 Sent {amount} {token} to {recipient}{C['r']}")
    print(f"🔗 View transaction: {url}")
    if isinstance(response, dict) and response.get("confirmed_at"):
        log.debug("confirmed", confirmed_at=response["confirmed_at"])
    return TransferOutcome(signature=signature, explorer_url=url, response=response)


async def transfer_usdc(app: App) -> Optional[TransferOutcome]:
    session = _require_login(app)
    if session is None:
        return None
    address = _account_address(session)
    if address is None:
        raise GridError("No valid account address found in session")

    recipient, amount = await _ask_transfer(app, USDC)
    base_units = to_base_units(amount, USDC)
    request = payment_intent_request(address, recipient, base_units, session.grid_user_id)

    log.info("💸 Creating USDC payment intent...", account=address, amount=request["amount"])
    result = await app.grid.create_payment_intent(address, request)
    payload = payment_intent_payload(result.data) if result.success else None
    if not payload:
        raise GridError(
            f"Failed to create payment intent: {result.error or 'Response did not contain transaction payload'}",
            code=result.code,
            status=result.status,
        )

    log.info("✍️ Signing USDC transaction...")
    signed = app.grid.sign(app.ctx.secrets, session.signing_context, payload)

    log.info("📤 Sending USDC transaction...")
    response = await app.grid.send(signed, address)
    return _finish_transfer(app, response, amount, USDC, recipient)


def _log_transaction_structure(unsigned: UnsignedTransfer) -> None:
    ix = unsigned.instruction
    log.debug(
        "transaction structure",
        instructions=len(unsigned.transaction.message.instructions),
        fee_payer=str(unsigned.fee_payer),
        blockhash=str(unsigned.blockhash),
        program_id=str(ix.program_id),
        accounts=[
            f"{m.pubkey} ({'signer' if m.is_signer else 'non-signer'}, {'writable' if m.is_writable else 'readonly'})"
            for m in ix.accounts
        ],
    )


async def transfer_sol(app: App) -> Optional[TransferOutcome]:
    session = _require_login(app)
    if session is None:
        return None
    log.debug(
        "session info",
        session_keys=sorted(session.raw),
        grid_user_id=session.grid_user_id,
        smart_account=session.raw.get("smart_account_address"),
        address=session.raw.get("address"),
    )
    address = _account_address(session)
    if address is None:
        raise GridError("No valid account address found in session")

    recipient, amount = await _ask_transfer(app, SOL)
    lamports = to_base_units(amount, SOL)
    log.info("🔧 Creating SOL transfer transaction...", source=address, to=recipient, lamports=lamports)

    log.info("🔗 Preparing transaction...", cluster=app.settings.cluster)
    blockhash = await latest_blockhash(app.rpc)
    unsigned = build_sol_transfer(address, recipient, lamports, blockhash)
    _log_transaction_structure(unsigned)

    raw_payload = {"transaction": unsigned.to_base64()}
    log.info("🔄 Preparing transaction with Grid...", account=address, length=len(raw_payload["transaction"]))
    result = await app.grid.prepare_arbitrary_transaction(address, raw_payload)
    if not result.success or not result.data:
        raise GridError(
            f"Failed to prepare transaction: {result.error or 'No data in response'}",
            code=result.code,
            status=result.status,
        )

    log.info("📤 Executing SOL transaction...", prepared_keys=sorted(result.data) if isinstance(result.data, dict) else None)
    response = await app.grid.sign_and_send(app.ctx.secrets, session.authentication, result.data, address)
    return _finish_transfer(app, response, amount, SOL, recipient)


# ------------------------
# Menu
# ------------------------
FLOWS: Dict[str, Tuple[str, Callable[[App], Awaitable[Any]]]] = {
    "login": ("Login", login_or_register),
    "balance": ("Balance check", check_balance),
    "transfer": ("USDC transfer", transfer_usdc),
    "arbitrarySOL": ("SOL transfer", transfer_sol),
}


async def run_flow(app: App, label: str, flow: Callable[[App], Awaitable[Any]]) -> Any:
    """Run one flow; any failure is reported and control returns to the menu."""
    try:
        return await flow(app)
    except GridError as e:
        log.error(f"❌ {label} failed: {e.message}", code=e.code or "N/A", status=e.status, exc_info=app.settings.debug)
    except EOFError:
        print(f"\n{C['y']}{label} cancelled.{C['r']}")
    except Exception as e:
        log.error(f"❌ {label} failed: {e}", exc_info=app.settings.debug)
    return None


async def main_menu(app: App) -> None:
    while True:
        print(f"\n{C['c']}{'-' * 18}{C['r']}")
        try:
            action = await app.prompter.choose("What would you like to do?", MENU)
        except EOFError:
            action = "exit"
        if action == "exit":
            print("Goodbye!")
            app.ctx.clear()
            return
        label, flow = FLOWS[action]
        await run_flow(app, label, flow)


# ------------------------
# Entrypoint
# ------------------------
def print_banner(settings: Settings) -> None:
    if settings.debug:
        print(f"{C['B']}🔧 Grid CLI v{__version__} configuration:{C['r']}")
        print(f"  Environment: {settings.environment}")
        print(f"  API Key: {settings.masked_api_key}")
        print(f"  Base URL: {settings.base_url}")
        print(f"  Full API URL: {settings.api_url}")
        print(f"  Solana Network: {settings.cluster}")
        print(f"  Solana RPC: {settings.solana_rpc_url}")
        print(f"  Debug Mode: {'ON' if settings.debug else 'OFF'}")
    else:
        print(f"{C['B']}🚀 Grid CLI - {settings.environment.upper()} Environment{C['r']}")


async def run(settings: Settings) -> None:
    print_banner(settings)
    app = App(
        settings=settings,
        grid=GridClient.from_settings(settings),
        rpc=AsyncClient(settings.solana_rpc_url, commitment=Confirmed),
        prompter=Prompter(),
    )
    print("Welcome to the Grid CLI!")
    try:
        await main_menu(app)
    finally:
        app.ctx.clear()
        await app.grid.close()
        await app.rpc.close()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="grid-cli", description="Interactive Grid smart-account client")
    parser.add_argument("-d", "--debug", action="store_true", help="verbose output (same as DEBUG=true)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(debug=args.debug)
    except ConfigError as e:
        print(f"{C['R']}❌ ERROR: {e}{C['r']}", file=sys.stderr)
        for hint in e.hints:
            print(hint, file=sys.stderr)
        return 1
    setup_logging(settings.debug)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        print(C["r"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
