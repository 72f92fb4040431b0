"""
Shared fixtures: in-memory stand-ins for the Grid API, the Solana RPC and the
terminal, so flows run end to end without network or a TTY.
"""

from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
from solders.hash import Hash
from solders.pubkey import Pubkey

from grid_cli.cli import App, Prompter
from grid_cli.config import Settings
from grid_cli.models import ApiResult, Session
from grid_cli.session import SessionContext, generate_session_secrets

ZERO_BLOCKHASH = "11111111111111111111111111111111"


class ScriptedPrompter(Prompter):
    """Answers prompts from a list; running out behaves like Ctrl-D."""

    def __init__(self, answers=None):
        self.answers: List[str] = list(answers or [])
        self.asked: List[str] = []

    async def _read(self, message: str) -> str:
        self.asked.append(message)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


class FakeGrid:
    """Records every call; queued results are returned (or raised) in order."""

    def __init__(self, session_data=None):
        self.calls: List[tuple] = []
        self.results: Dict[str, List[Any]] = {}
        self.session_data = session_data or {}

    def queue(self, name: str, *results: Any) -> None:
        self.results.setdefault(name, []).extend(results)

    def names(self) -> List[str]:
        return [c[0] for c in self.calls]

    def args(self, name: str) -> tuple:
        return [c[1] for c in self.calls if c[0] == name][-1]

    def _next(self, name: str, args: tuple, default: Any = None) -> Any:
        self.calls.append((name, args))
        pending = self.results.get(name)
        result = pending.pop(0) if pending else default
        if isinstance(result, Exception):
            raise result
        return result

    async def init_auth(self, email):
        return self._next("init_auth", (email,), {"email": email})

    async def create_account(self, email):
        return self._next("create_account", (email,), {"email": email})

    def generate_session_secrets(self):
        self.calls.append(("generate_session_secrets", ()))
        return generate_session_secrets()

    async def complete_auth(self, otp_code, secrets, user):
        return self._next("complete_auth", (otp_code, secrets, user), Session.from_response(self.session_data))

    async def complete_auth_and_create_account(self, otp_code, secrets, user):
        return self._next(
            "complete_auth_and_create_account", (otp_code, secrets, user), Session.from_response(self.session_data)
        )

    async def get_account_balances(self, address):
        return self._next("get_account_balances", (address,), ApiResult(status=200, data={}))

    async def create_payment_intent(self, address, request):
        return self._next("create_payment_intent", (address, request), ApiResult(status=200, data={}))

    async def prepare_arbitrary_transaction(self, address, payload):
        return self._next("prepare_arbitrary_transaction", (address, payload), ApiResult(status=200, data={}))

    def sign(self, secrets, session, transaction_payload):
        return self._next("sign", (secrets, session, transaction_payload), {"signed": transaction_payload})

    async def send(self, signed_payload, address):
        return self._next("send", (signed_payload, address), {})

    async def sign_and_send(self, secrets, session, transaction_payload, address):
        return self._next("sign_and_send", (secrets, session, transaction_payload, address), {})


class FakeRpc:
    def __init__(self):
        self.calls: List[Any] = []

    async def get_latest_blockhash(self, commitment=None):
        self.calls.append(commitment)
        return SimpleNamespace(value=SimpleNamespace(blockhash=Hash.from_string(ZERO_BLOCKHASH)))


@pytest.fixture
def addr1():
    return str(Pubkey.new_unique())


@pytest.fixture
def addr2():
    return str(Pubkey.new_unique())


@pytest.fixture
def settings():
    return Settings(environment="sandbox", api_key="sandbox-test-key-0123456789")


@pytest.fixture
def grid(addr1):
    return FakeGrid(
        session_data={
            "smart_account_address": addr1,
            "grid_user_id": "user-1",
            "authentication": {"provider": "privy", "session": "auth-token"},
        }
    )


@pytest.fixture
def rpc():
    return FakeRpc()


@pytest.fixture
def make_app(settings, grid, rpc):
    def _make(answers=None, logged_in=False, session=None, app_settings=None):
        ctx = SessionContext()
        if logged_in:
            ctx.bind(session or Session.from_response(grid.session_data), generate_session_secrets())
        return App(
            settings=app_settings or settings,
            grid=grid,
            rpc=rpc,
            prompter=ScriptedPrompter(answers),
            ctx=ctx,
        )

    return _make
