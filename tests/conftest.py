"""
Shared fixtures for the PayAssist test suite.

- a fresh in-memory ledger seeded with the demo data per test
- domain services, transfer engine and session store over that ledger
- a scripted reasoning client standing in for Gemini
"""

from decimal import Decimal
from typing import Callable, Dict, List, Union

import pytest
import pytest_asyncio

from payassist.clients.base import ReasoningRequest, ReasoningResponse
from payassist.context.session_manager import SessionManager
from payassist.runtime import build_orchestrator
from payassist.schemas.messages import ToolCall
from payassist.services import BankServices
from payassist.services.repository import InMemoryLedger
from payassist.services.seed import demo_dataset
from payassist.workflows.transfer_engine import TransferDecisionEngine

USER_ID = "user_001"
TOKEN = "mock_jwt_token_001"

Scripted = Union[ReasoningResponse, Exception, Callable[[ReasoningRequest], ReasoningResponse]]


class ScriptedReasoningClient:
    """Plays back responses in order and records every request it saw."""

    def __init__(self, responses: List[Scripted]):
        self.responses = list(responses)
        self.requests: List[ReasoningRequest] = []

    def add(self, *responses: Scripted) -> None:
        self.responses.extend(responses)

    async def complete(self, request: ReasoningRequest) -> ReasoningResponse:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError("ScriptedReasoningClient ran out of responses")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item):
            return item(request)
        return item


class BillerStampFailingLedger(InMemoryLedger):
    """Money moves, but stamping last_paid_at on the saved biller fails."""

    async def save_biller(self, biller):
        raise RuntimeError("biller table locked")


class DisconnectedLedger(InMemoryLedger):
    async def apply_transfer(self, *args, **kwargs):
        raise RuntimeError("connection reset")


def say(text: str) -> ReasoningResponse:
    return ReasoningResponse(text=text)


def call(name: str, **arguments) -> ReasoningResponse:
    return ReasoningResponse(tool_calls=[ToolCall(name=name, arguments=arguments)])


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger.from_seed(demo_dataset())


@pytest.fixture
def services(ledger) -> BankServices:
    return BankServices(ledger, "AUD")


@pytest.fixture
def engine(services) -> TransferDecisionEngine:
    return TransferDecisionEngine(services, currency="AUD")


@pytest.fixture
def session_manager() -> SessionManager:
    return SessionManager(session_timeout_minutes=30)


@pytest.fixture
def balances(ledger):
    async def _balances(user_id: str = USER_ID) -> Dict[str, Decimal]:
        return {a.account_id: a.balance for a in await ledger.list_accounts(user_id)}

    return _balances


@pytest.fixture
def script():
    """Helpers for building scripted reasoning responses."""

    class Script:
        say = staticmethod(say)
        call = staticmethod(call)
        Client = ScriptedReasoningClient

    return Script


@pytest_asyncio.fixture
async def make_orchestrator(ledger, session_manager):
    async def factory(responses: List[Scripted], max_iterations: int = 10):
        client = ScriptedReasoningClient(responses)
        orchestrator = await build_orchestrator(
            llm_client=client,
            ledger=ledger,
            session_manager=session_manager,
            currency="AUD",
            max_iterations=max_iterations,
        )
        return orchestrator, client

    return factory
