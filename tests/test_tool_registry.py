"""
Tool registry boundary and the banking tools behind it.
"""

from decimal import Decimal

import pytest
from pydantic import BaseModel

from payassist.services.errors import ErrorCode, PaymentsError
from payassist.tools.banking_tools import build_banking_registry
from payassist.tools.registry import Tool, ToolContext, ToolOutcome, ToolRegistry

from tests.conftest import TOKEN, USER_ID

TOOL_NAMES = [
    "get_user",
    "get_accounts",
    "get_contacts",
    "get_saved_biller_accounts",
    "validate_biller_account",
    "create_biller_account",
    "remove_saved_biller",
    "get_payment_status",
    "start_transfer",
    "select_transfer_option",
    "provide_transfer_details",
    "execute_confirmed_transfer",
    "cancel_transfer",
]


@pytest.fixture
def registry():
    return build_banking_registry()


@pytest.fixture
async def context(services, engine, session_manager):
    thread_id = session_manager.create_session()
    user = (await services.get_user(TOKEN)).data
    contacts = (await services.get_contacts(USER_ID)).data
    session_manager.set_identity(thread_id, TOKEN, user, contacts)

    def make(turn: int = 1) -> ToolContext:
        return ToolContext(
            thread_id=thread_id,
            user_id=USER_ID,
            token=TOKEN,
            turn=turn,
            services=services,
            engine=engine,
            session_manager=session_manager,
        )

    return make


class EchoArgs(BaseModel):
    text: str
    times: int = 1


class TestRegistryBoundary:
    """Whatever a tool does, the caller gets a ToolOutcome back."""

    async def test_unknown_tool(self, registry, context):
        outcome = await registry.execute("wire_money", {}, context())
        assert not outcome.success
        assert outcome.error["code"] == ErrorCode.UNKNOWN_TOOL.value

    async def test_invalid_arguments(self, registry, context):
        outcome = await registry.execute("select_transfer_option", {"choice": "first"}, context())
        assert outcome.error["code"] == ErrorCode.VALIDATION_ERROR.value
        assert "choice" in outcome.error["message"]

    async def test_missing_required_argument(self, registry, context):
        outcome = await registry.execute("start_transfer", {"amount": 10}, context())
        assert outcome.error["code"] == ErrorCode.VALIDATION_ERROR.value
        assert "destination" in outcome.error["message"]

    async def test_payments_error_becomes_failure(self, context):
        async def refuse(ctx, args):
            raise PaymentsError(ErrorCode.CONFIRMATION_REQUIRED, "Ask first.")

        registry = ToolRegistry([Tool("refuse", "Always refuses.", EchoArgs, refuse)])
        outcome = await registry.execute("refuse", {"text": "hi"}, context())
        assert outcome.error == {"code": "CONFIRMATION_REQUIRED", "message": "Ask first."}

    async def test_unexpected_exception_is_generic(self, context):
        async def explode(ctx, args):
            raise KeyError("internal detail")

        registry = ToolRegistry([Tool("explode", "Breaks.", EchoArgs, explode)])
        outcome = await registry.execute("explode", {"text": "hi"}, context())
        assert outcome.error["code"] == ErrorCode.TOOL_EXECUTION_FAILED.value
        assert "internal detail" not in outcome.error["message"]

    def test_duplicate_registration(self):
        async def noop(ctx, args):
            return ToolOutcome.ok()

        registry = ToolRegistry([Tool("echo", "Echo.", EchoArgs, noop)])
        with pytest.raises(ValueError):
            registry.register(Tool("echo", "Echo again.", EchoArgs, noop))

    def test_signature_shape(self):
        async def noop(ctx, args):
            return ToolOutcome.ok()

        signature = Tool("echo", "Echo.", EchoArgs, noop).signature()
        assert signature == {
            "description": "Echo.",
            "params": {
                "text": {"type": "string", "required": True},
                "times": {"type": "integer", "required": False},
            },
        }

    def test_banking_signatures(self, registry):
        signatures = registry.signatures()
        assert list(signatures) == TOOL_NAMES
        start = signatures["start_transfer"]["params"]
        assert start["destination"]["required"] is True
        assert start["amount"] == {
            "type": "number",
            "required": False,
            "description": "Amount in dollars, if the user gave one.",
        }
        assert signatures["get_saved_biller_accounts"]["params"]["category"]["enum"][0] == "utilities"
        for signature in signatures.values():
            assert "user_id" not in signature["params"]


class TestReadTools:
    async def test_get_accounts(self, registry, context):
        outcome = await registry.execute("get_accounts", None, context())
        assert outcome.success
        assert [a["account_id"] for a in outcome.data] == ["acc1", "acc2"]

    async def test_contacts_are_masked(self, registry, context):
        outcome = await registry.execute("get_contacts", {}, context())
        bean = outcome.data[0]["payment_instruments"][0]
        assert bean == {"instrument_id": "pi1", "type": "bank_account", "name": "Bean Supplier", "account": "***4321"}

    async def test_saved_billers_filtered(self, registry, context):
        outcome = await registry.execute("get_saved_biller_accounts", {"category": "utilities"}, context())
        assert [b["biller_name"] for b in outcome.data] == ["Sydney Water", "AGL Energy", "Origin Gas"]

    async def test_validate_and_create_biller(self, registry, context):
        args = {"biller_code": "11111", "account_number": "55566677", "customer_reference": "98765"}
        validation = await registry.execute("validate_biller_account", args, context())
        assert validation.data == {"is_valid": True, "biller_name": "Optus", "account_status": "active"}

        created = await registry.execute(
            "create_biller_account", {**args, "biller_name": "Optus", "category": "telecom"}, context()
        )
        assert created.success
        assert created.data["account"] == "***6677"

    async def test_remove_unknown_biller(self, registry, context):
        outcome = await registry.execute("remove_saved_biller", {"biller_id": "biller_999"}, context())
        assert outcome.error["code"] == ErrorCode.BILLER_NOT_FOUND.value


class TestTransferTools:
    """The workflow tools persist the workflow in the session."""

    async def test_start_then_execute_requires_confirmation(self, registry, context, session_manager, balances):
        ctx = context(turn=1)
        started = await registry.execute("start_transfer", {"destination": "sarah", "amount": "25"}, ctx)
        assert started.data["state"] == "AWAITING_CONFIRMATION"

        refused = await registry.execute("execute_confirmed_transfer", {}, ctx)
        assert refused.error["code"] == ErrorCode.CONFIRMATION_REQUIRED.value
        assert (await balances())["acc1"] == Decimal("500.00")
        assert session_manager.get_workflow(ctx.thread_id).pending is not None

    async def test_confirmed_execution_is_single_use(self, registry, context, session_manager, engine, balances):
        ctx = context(turn=1)
        await registry.execute("start_transfer", {"destination": "sarah", "amount": 25}, ctx)

        workflow = session_manager.get_workflow(ctx.thread_id)
        await engine.register_reply(workflow, "yes", 2)
        session_manager.save_workflow(ctx.thread_id, workflow)

        first = await registry.execute("execute_confirmed_transfer", {}, context(turn=2))
        assert first.data["state"] == "SETTLED"
        second = await registry.execute("execute_confirmed_transfer", {}, context(turn=2))
        assert second.error["code"] == ErrorCode.WORKFLOW_CLOSED.value
        assert (await balances())["acc1"] == Decimal("475.00")

    async def test_select_and_details_flow(self, registry, context, session_manager):
        ctx = context(turn=1)
        started = await registry.execute("start_transfer", {"destination": "coffee"}, ctx)
        assert started.data["awaiting"] == "destination_selection"
        assert len(started.data["options"]) == 2

        picked = await registry.execute("select_transfer_option", {"choice": 1}, ctx)
        assert picked.data["state"] == "AWAITING_AMOUNT"

        detailed = await registry.execute("provide_transfer_details", {"amount": 12.5}, ctx)
        assert detailed.data["state"] == "AWAITING_CONFIRMATION"
        assert session_manager.get_workflow(ctx.thread_id).amount == Decimal("12.50")

    async def test_bad_selection_keeps_workflow(self, registry, context, session_manager):
        ctx = context(turn=1)
        await registry.execute("start_transfer", {"destination": "coffee", "amount": 5}, ctx)
        outcome = await registry.execute("select_transfer_option", {"choice": 7}, ctx)
        assert outcome.error == {"code": "INVALID_SELECTION", "message": "Please choose a number between 1 and 2."}
        assert session_manager.get_workflow(ctx.thread_id).state.value == "AWAITING_SELECTION"

    async def test_cancel_without_workflow(self, registry, context):
        outcome = await registry.execute("cancel_transfer", {}, context())
        assert outcome.error["code"] == ErrorCode.NO_ACTIVE_TRANSFER.value
