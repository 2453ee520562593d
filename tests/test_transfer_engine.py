"""
TransferDecisionEngine workflows.

Turn numbers are passed explicitly: a proposal made on turn N can only be
confirmed by a reply on a later turn.
"""

from decimal import Decimal

import pytest

from payassist.services import BankServices
from payassist.services.errors import ErrorCode, PaymentsError
from payassist.services.results import ServiceResult
from payassist.services.seed import demo_dataset
from payassist.workflows.state import TransferPath, WorkflowState
from payassist.workflows.transfer_engine import SAVINGS_SOURCE_MESSAGE, TransferDecisionEngine

from tests.conftest import USER_ID, BillerStampFailingLedger

START_BALANCES = {"acc1": Decimal("500.00"), "acc2": Decimal("15000.00")}


async def confirm_and_execute(engine, wf, turn):
    notice = await engine.register_reply(wf, "yes", turn)
    assert notice is not None
    return await engine.execute(wf, turn=turn)


class TestSingleStepTransfers:
    """Destination found, funds available, one confirmation."""

    async def test_internal_transfer(self, engine, balances):
        wf, outcome = await engine.start(USER_ID, "my savings", amount=100, turn=1)

        assert outcome.state == WorkflowState.AWAITING_CONFIRMATION
        assert outcome.pending_confirmation == (
            "Please confirm: Transfer $100.00 AUD from Daily Expense Account to Savings Account? "
            "Type 'yes' to confirm or 'no' to cancel."
        )
        assert await balances() == START_BALANCES

        result = await confirm_and_execute(engine, wf, 2)
        assert result.state == WorkflowState.SETTLED
        assert result.message.startswith("Transferred $100.00 AUD from Daily Expense Account to Savings Account.")
        assert result.reference and result.reference in result.message
        assert await balances() == {"acc1": Decimal("400.00"), "acc2": Decimal("15100.00")}

    async def test_external_transfer_to_contact(self, engine, balances):
        wf, outcome = await engine.start(USER_ID, "sarah", amount="50", turn=1)

        assert outcome.state == WorkflowState.AWAITING_CONFIRMATION
        assert outcome.pending_confirmation.startswith(
            "Please confirm: Pay $50.00 AUD to Sarah Johnson - Paper Cup Supplier (Account: ***2345) "
            "from Daily Expense Account?"
        )
        assert wf.pending.path == TransferPath.EXTERNAL

        result = await confirm_and_execute(engine, wf, 2)
        assert result.state == WorkflowState.SETTLED
        assert (await balances())["acc1"] == Decimal("450.00")

    async def test_saved_biller_payment(self, engine, services, balances):
        wf, outcome = await engine.start(USER_ID, "water bill", amount=80, turn=1)
        assert outcome.state == WorkflowState.AWAITING_CONFIRMATION
        assert "Sydney Water (Home Water) (Account: ***6789)" in outcome.message

        result = await confirm_and_execute(engine, wf, 2)
        assert result.state == WorkflowState.SETTLED
        assert result.message.startswith("Payment of $80.00 AUD processed successfully.")
        assert (await balances())["acc1"] == Decimal("420.00")

        water = await services.billers.get_saved_billers(USER_ID, "sydney")
        assert water.data[0].last_paid_at.year > 2024


    async def test_payment_settles_when_biller_stamp_fails(self):
        ledger = BillerStampFailingLedger.from_seed(demo_dataset())
        engine = TransferDecisionEngine(BankServices(ledger, "AUD"), currency="AUD")
        wf, _ = await engine.start(USER_ID, "water", amount=100, turn=1)

        result = await confirm_and_execute(engine, wf, 2)

        assert result.state == WorkflowState.SETTLED
        assert result.message.startswith("Payment of $100.00 AUD processed successfully.")
        accounts = {a.account_id: a.balance for a in await ledger.list_accounts(USER_ID)}
        assert accounts["acc1"] == Decimal("400.00")


class TestSelectionAndDetails:
    """Ambiguous destinations, missing amounts, named sources."""

    async def test_pick_from_multiple_matches_then_give_amount(self, engine, balances):
        wf, outcome = await engine.start(USER_ID, "coffee", turn=1)
        assert outcome.state == WorkflowState.AWAITING_SELECTION
        assert outcome.awaiting == "destination_selection"
        assert outcome.options == [
            "1. Coffee Supplier - Bean Supplier (Account: ***4321)",
            "2. Coffee Supplier - Milk Supplier (BPAY) (Account: ***7890)",
        ]
        assert outcome.message.endswith("Please select one by number.")

        outcome = await engine.select(wf, 2, turn=2)
        assert outcome.state == WorkflowState.AWAITING_AMOUNT
        assert outcome.message == "How much would you like to pay to Coffee Supplier - Milk Supplier (BPAY)?"

        outcome = await engine.provide_details(wf, amount=30, turn=3)
        assert outcome.state == WorkflowState.AWAITING_CONFIRMATION

        result = await confirm_and_execute(engine, wf, 4)
        assert result.state == WorkflowState.SETTLED
        assert "Milk Supplier" in result.message
        assert (await balances())["acc1"] == Decimal("470.00")

    async def test_select_by_label_text(self, engine):
        wf, _ = await engine.start(USER_ID, "coffee", amount=5, turn=1)
        outcome = await engine.select(wf, "Milk", turn=2)
        assert outcome.state == WorkflowState.AWAITING_CONFIRMATION
        assert wf.destination.instrument_id == "pi2"

    @pytest.mark.parametrize("choice", [0, 3, "nothing like that"])
    async def test_invalid_selection(self, engine, choice):
        wf, _ = await engine.start(USER_ID, "coffee", amount=5, turn=1)
        with pytest.raises(PaymentsError) as exc_info:
            await engine.select(wf, choice, turn=2)
        assert exc_info.value.code == ErrorCode.INVALID_SELECTION
        assert wf.state == WorkflowState.AWAITING_SELECTION

    async def test_ambiguous_own_account_then_internal_source(self, engine):
        wf, outcome = await engine.start(USER_ID, "account", amount=50, turn=1)
        assert len(outcome.options) == 2

        outcome = await engine.select(wf, 2, turn=2)
        assert outcome.state == WorkflowState.AWAITING_CONFIRMATION
        assert wf.source_account_id == "acc1"
        assert wf.destination.account_id == "acc2"

    async def test_zero_amount_asks_again(self, engine):
        wf, outcome = await engine.start(USER_ID, "sarah", amount=0, turn=1)
        assert outcome.state == WorkflowState.AWAITING_AMOUNT
        assert outcome.message.startswith("The amount must be greater than zero.")
        assert wf.amount is None

    async def test_provide_details_when_not_waiting(self, engine):
        wf, _ = await engine.start(USER_ID, "sarah", amount=10, turn=1)
        with pytest.raises(PaymentsError) as exc_info:
            await engine.provide_details(wf, amount=20, turn=2)
        assert exc_info.value.code == ErrorCode.VALIDATION_ERROR

    async def test_unknown_destination_closes_workflow(self, engine):
        wf, outcome = await engine.start(USER_ID, "landlord", amount=10, turn=1)
        assert outcome.state == WorkflowState.AWAITING_CLARIFICATION
        assert "landlord" in outcome.message
        assert wf.is_closed


class TestRejections:
    """Rules that stop a transfer before anything is proposed."""

    async def test_savings_source_rejected_for_contact(self, engine, balances):
        wf, outcome = await engine.start(USER_ID, "sarah", amount=50, source="savings", turn=1)
        assert outcome.state == WorkflowState.REJECTED
        assert outcome.message == SAVINGS_SOURCE_MESSAGE
        assert wf.pending is None
        assert await balances() == START_BALANCES

    async def test_savings_source_rejected_before_balance(self, engine):
        wf, outcome = await engine.start(USER_ID, "water", amount=1_000_000, source="savings", turn=1)
        assert outcome.message == SAVINGS_SOURCE_MESSAGE
        assert "BALANCE_CHECK" not in wf.transitions

    async def test_savings_source_named_with_amount_later(self, engine):
        wf, outcome = await engine.start(USER_ID, "sarah", turn=1)
        assert outcome.state == WorkflowState.AWAITING_AMOUNT
        outcome = await engine.provide_details(wf, amount=10, source="savings account", turn=2)
        assert outcome.state == WorkflowState.REJECTED
        assert outcome.message == SAVINGS_SOURCE_MESSAGE

    async def test_internal_insufficient_funds(self, engine):
        _, outcome = await engine.start(USER_ID, "savings", amount=600, turn=1)
        assert outcome.state == WorkflowState.REJECTED
        assert outcome.message == "Insufficient funds in Daily Expense Account. Available balance: $500.00 AUD."

    async def test_internal_same_account(self, engine):
        _, outcome = await engine.start(USER_ID, "savings", amount=10, source="savings", turn=1)
        assert outcome.state == WorkflowState.REJECTED
        assert outcome.message == "The source and destination accounts must be different."

    async def test_not_enough_anywhere(self, engine):
        _, outcome = await engine.start(USER_ID, "sarah", amount=20000, turn=1)
        assert outcome.state == WorkflowState.REJECTED
        assert outcome.message == (
            "Insufficient funds: Daily Expense Account has $500.00 AUD and Savings Account has "
            "$15,000.00 AUD, which together isn't enough to cover $20,000.00 AUD."
        )

    async def test_user_without_transactional_account(self, engine, ledger):
        ledger._accounts["acc1"].account_type = ledger._accounts["acc2"].account_type
        _, outcome = await engine.start(USER_ID, "sarah", amount=10, turn=1)
        assert outcome.state == WorkflowState.REJECTED
        assert "transactional account" in outcome.message


class TestConfirmationGate:
    """One explicit confirmation, given on a later turn, authorizes one operation."""

    async def test_execute_without_confirmation(self, engine, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=50, turn=1)
        with pytest.raises(PaymentsError) as exc_info:
            await engine.execute(wf, turn=1)
        assert exc_info.value.code == ErrorCode.CONFIRMATION_REQUIRED
        assert await balances() == START_BALANCES

    async def test_reply_on_proposal_turn_ignored(self, engine, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=50, turn=3)
        assert await engine.register_reply(wf, "yes", 3) is None
        with pytest.raises(PaymentsError):
            await engine.execute(wf, turn=3)
        assert await balances() == START_BALANCES

    async def test_other_reply_withdraws_confirmation(self, engine):
        wf, _ = await engine.start(USER_ID, "sarah", amount=50, turn=1)
        await engine.register_reply(wf, "yes", 2)
        assert wf.pending.is_confirmed
        assert await engine.register_reply(wf, "actually make it 60", 3) is None
        assert not wf.pending.is_confirmed
        with pytest.raises(PaymentsError) as exc_info:
            await engine.execute(wf, turn=3)
        assert exc_info.value.code == ErrorCode.CONFIRMATION_REQUIRED

    async def test_decline_cancels(self, engine, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=50, turn=1)
        outcome = await engine.register_reply(wf, "no", 2)
        assert outcome.state == WorkflowState.CANCELLED
        assert outcome.message == (
            "Cancelled. No money was moved. Current balances: Daily Expense Account $500.00 AUD, "
            "Savings Account $15,000.00 AUD."
        )
        assert await balances() == START_BALANCES

    async def test_confirmation_spent_after_execute(self, engine, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=50, turn=1)
        await confirm_and_execute(engine, wf, 2)
        with pytest.raises(PaymentsError) as exc_info:
            await engine.execute(wf, turn=2)
        assert exc_info.value.code == ErrorCode.WORKFLOW_CLOSED
        assert (await balances())["acc1"] == Decimal("450.00")

    async def test_execute_with_no_workflow(self, engine):
        with pytest.raises(PaymentsError) as exc_info:
            await engine.execute(None)
        assert exc_info.value.code == ErrorCode.NO_ACTIVE_TRANSFER

    async def test_balance_drop_between_proposal_and_execution(self, engine, services, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=400, turn=1)
        await services.transfer_between_own_accounts(USER_ID, "acc1", "acc2", 200)

        result = await confirm_and_execute(engine, wf, 2)
        assert result.state == WorkflowState.FAILED
        assert result.message == "Insufficient funds. Available: $300.00"
        assert (await balances())["acc1"] == Decimal("300.00")

    async def test_cancel_explicitly(self, engine):
        wf, _ = await engine.start(USER_ID, "coffee", turn=1)
        outcome = await engine.cancel(wf)
        assert outcome.state == WorkflowState.CANCELLED
        with pytest.raises(PaymentsError) as exc_info:
            await engine.cancel(wf)
        assert exc_info.value.code == ErrorCode.NO_ACTIVE_TRANSFER


class TestRemediation:
    """Shortfall covered from savings in two separately confirmed steps."""

    async def test_two_phase_payment(self, engine, balances):
        wf, outcome = await engine.start(USER_ID, "sarah", amount=600, turn=1)

        assert outcome.state == WorkflowState.REMEDIATION_PLAN
        assert outcome.phase == 1
        assert "1. Move $100.00 AUD from Savings Account to Daily Expense Account." in outcome.message
        assert "2. Pay $600.00 AUD to Sarah Johnson - Paper Cup Supplier from Daily Expense Account." in outcome.message
        assert outcome.pending_confirmation == (
            "Please confirm: Transfer $100.00 AUD from Savings Account to Daily Expense Account? "
            "Type 'yes' to confirm or 'no' to cancel."
        )
        assert await balances() == START_BALANCES

        step1 = await confirm_and_execute(engine, wf, 2)
        assert step1.state == WorkflowState.AWAITING_CONFIRMATION
        assert step1.phase == 2
        assert step1.message.startswith("Step 1 complete: moved $100.00 AUD from Savings Account to Daily Expense Account")
        assert await balances() == {"acc1": Decimal("600.00"), "acc2": Decimal("14900.00")}

        # the step-1 confirmation does not carry over to step 2
        with pytest.raises(PaymentsError):
            await engine.execute(wf, turn=2)
        assert await engine.register_reply(wf, "yes", 2) is None

        step2 = await confirm_and_execute(engine, wf, 3)
        assert step2.state == WorkflowState.SETTLED
        assert await balances() == {"acc1": Decimal("0.00"), "acc2": Decimal("14900.00")}

    async def test_decline_after_top_up_keeps_top_up(self, engine, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=600, turn=1)
        await confirm_and_execute(engine, wf, 2)

        outcome = await engine.register_reply(wf, "no", 3)
        assert outcome.state == WorkflowState.CANCELLED
        assert "had already completed and stays in place" in outcome.message
        assert await balances() == {"acc1": Decimal("600.00"), "acc2": Decimal("14900.00")}

    async def test_decline_before_top_up(self, engine, balances):
        wf, _ = await engine.start(USER_ID, "water", amount=550, turn=1)
        assert wf.state == WorkflowState.REMEDIATION_PLAN

        outcome = await engine.register_reply(wf, "cancel", 2)
        assert outcome.message.startswith("Cancelled. No money was moved.")
        assert await balances() == START_BALANCES

    async def test_phase_two_failure_reports_top_up(self, engine, services, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=600, turn=1)
        await confirm_and_execute(engine, wf, 2)
        await services.transfer_between_own_accounts(USER_ID, "acc1", "acc2", 50)

        result = await confirm_and_execute(engine, wf, 3)
        assert result.state == WorkflowState.FAILED
        assert "has not been reversed" in result.message
        assert (await balances())["acc1"] == Decimal("550.00")

    async def test_phase_two_refused_until_top_up_settles(self, engine, balances):
        wf, _ = await engine.start(USER_ID, "sarah", amount=600, turn=1)
        wf.pending = wf.pending.model_copy(
            update={
                "phase": 2,
                "path": wf.destination.path,
                "destination": wf.destination,
                "source_account_id": "acc1",
                "amount": Decimal("600.00"),
                "confirmed_at": 2,
            }
        )
        assert not wf.remediation.phase1_settled

        with pytest.raises(PaymentsError) as exc_info:
            await engine.execute(wf, turn=2)

        assert exc_info.value.code == ErrorCode.CONFIRMATION_REQUIRED
        assert wf.pending is not None
        assert await balances() == START_BALANCES

    async def test_top_up_proposes_step_two_when_balances_unavailable(self, engine, services, balances, monkeypatch):
        wf, _ = await engine.start(USER_ID, "sarah", amount=600, turn=1)
        await engine.register_reply(wf, "yes", 2)

        async def accounts_down(user_id):
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)

        monkeypatch.setattr(services, "get_accounts", accounts_down)
        step1 = await engine.execute(wf, turn=2)

        assert step1.state == WorkflowState.AWAITING_CONFIRMATION
        assert step1.phase == 2
        assert step1.reference and f"(reference {step1.reference})" in step1.message
        assert wf.pending.phase == 2
        assert wf.pending.source_account_id == "acc1"
        assert await balances() == {"acc1": Decimal("600.00"), "acc2": Decimal("14900.00")}

        step2 = await confirm_and_execute(engine, wf, 3)
        assert step2.state == WorkflowState.SETTLED
        assert (await balances())["acc1"] == Decimal("0.00")
