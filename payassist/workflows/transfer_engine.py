"""
workflows/transfer_engine.py

TransferDecisionEngine
----------------------

Business rules around money movement, independent of the reasoning model:

- destination resolution (own accounts -> contacts -> saved billers)
- source eligibility (external/BPAY payments only from a transactional account)
- amount resolution
- balance validation and two-phase shortfall remediation
- confirmation gate (one confirmation authorizes exactly one operation)
- execution through the domain services

The engine never keeps state of its own. Every call takes the caller's
TransferWorkflow, mutates it and returns an EngineOutcome; the caller is
responsible for persisting the workflow between turns.
"""

import logging
import re
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple, Union

from payassist.nlu.destination_resolver import DestinationResolver, account_destination
from payassist.nlu.reply_classifier import Reply, classify_reply
from payassist.services.errors import ErrorCode, PaymentsError
from payassist.services.models import (
    Account,
    AccountType,
    BillerAccount,
    Contact,
    ExternalKind,
    format_money,
    to_money,
)
from payassist.services.results import ServiceResult
from payassist.workflows.state import (
    CONFIRMABLE_STATES,
    EngineOutcome,
    PendingOperation,
    RemediationPlan,
    TransferPath,
    TransferWorkflow,
    WorkflowState,
)

logger = logging.getLogger("payassist.engine")

SAVINGS_SOURCE_MESSAGE = (
    "Transfers to other people and BPAY payments can only be made from a transactional "
    "(everyday) account, not from a savings account. Please choose your transactional account instead."
)
NO_TRANSACTIONAL_MESSAGE = (
    "You don't have a transactional account to pay from, so I can't make this payment."
)


class TransferDecisionEngine:
    def __init__(self, services, resolver: Optional[DestinationResolver] = None, currency: str = "AUD") -> None:
        self.services = services
        self.resolver = resolver or DestinationResolver()
        self.currency = currency

    # ------------------------------------------------------------------
    # Data access (always fresh for balances)
    # ------------------------------------------------------------------
    @staticmethod
    def _unwrap(result: ServiceResult, what: str):
        if not result.success:
            logger.warning("Engine could not load %s: %s", what, result.error)
            raise PaymentsError(ErrorCode.SERVICE_UNAVAILABLE, result.error.message if result.error else None)
        return result.data

    async def _accounts(self, user_id: str) -> List[Account]:
        return self._unwrap(await self.services.get_accounts(user_id), "accounts")

    async def _contacts(self, user_id: str) -> List[Contact]:
        return self._unwrap(await self.services.get_contacts(user_id), "contacts")

    async def _billers(self, user_id: str) -> List[BillerAccount]:
        return self._unwrap(await self.services.billers.get_saved_billers(user_id), "billers")

    def _money(self, value) -> str:
        return format_money(value, self.currency)

    def _balances(self, accounts: Sequence[Account]) -> Dict[str, str]:
        return {a.name: self._money(a.balance) for a in accounts}

    async def _fresh_balances(self, user_id: str) -> Dict[str, str]:
        try:
            return self._balances(await self._accounts(user_id))
        except PaymentsError:
            return {}

    @staticmethod
    def _find(accounts: Sequence[Account], account_id: Optional[str]) -> Optional[Account]:
        for account in accounts:
            if account.account_id == account_id:
                return account
        return None

    def _outcome(self, wf: TransferWorkflow, message: str, **extra) -> EngineOutcome:
        logger.info("Workflow %s -> %s: %s", wf.workflow_id, wf.state.value, message.replace("\n", " | "))
        return EngineOutcome(workflow_id=wf.workflow_id, state=wf.state, message=message, **extra)

    def _summary(self, path: TransferPath, amount: Decimal, source_name: str, destination) -> str:
        if path == TransferPath.INTERNAL:
            action = f"Transfer {self._money(amount)} from {source_name} to {destination.label}"
        else:
            action = f"Pay {self._money(amount)} to {destination.describe()} from {source_name}"
        return f"Please confirm: {action}? Type 'yes' to confirm or 'no' to cancel."

    # ------------------------------------------------------------------
    # Step 1: destination resolution
    # ------------------------------------------------------------------
    async def start(
        self,
        user_id: str,
        destination: str,
        amount=None,
        source: Optional[str] = None,
        turn: int = 0,
        contacts: Optional[Sequence[Contact]] = None,
    ) -> Tuple[TransferWorkflow, EngineOutcome]:
        """
        Begin a fresh workflow for "move ``amount`` to ``destination``".
        ``contacts`` may be the session's cached list; accounts and billers
        are always fetched.
        """
        wf = TransferWorkflow(
            user_id=user_id,
            destination_query=destination,
            source_query=source or None,
            created_turn=turn,
            amount=to_money(amount) if amount is not None else None,
        )
        wf.transition(WorkflowState.RESOLVING_DESTINATION)

        accounts = await self._accounts(user_id)
        if contacts is None:
            contacts = await self._contacts(user_id)
        billers = await self._billers(user_id)

        candidates = self.resolver.resolve(destination, accounts, contacts, billers)
        logger.info(
            "Workflow %s: resolved %r -> %d candidate(s) %s",
            wf.workflow_id, destination, len(candidates), [c.label for c in candidates],
        )

        if not candidates:
            wf.transition(WorkflowState.AWAITING_CLARIFICATION)
            return wf, self._outcome(
                wf,
                f"I couldn't find an account, contact or saved biller matching '{destination}'. "
                "Please try a different name, or add a new biller if this is a new bill.",
                awaiting="clarification",
            )
        if len(candidates) > 1:
            wf.candidates = candidates
            wf.selection_target = "destination"
            wf.transition(WorkflowState.AWAITING_SELECTION)
            return wf, self._selection_outcome(wf, f"I found multiple matches for '{destination}':")

        wf.destination = candidates[0]
        return wf, await self._check_source(wf, accounts, turn)

    def _selection_outcome(self, wf: TransferWorkflow, header: str) -> EngineOutcome:
        options = [f"{i}. {c.describe()}" for i, c in enumerate(wf.candidates, start=1)]
        message = "\n".join([header, *options, "Please select one by number."])
        return self._outcome(wf, message, options=options, awaiting=f"{wf.selection_target}_selection")

    @staticmethod
    def _parse_choice(choice: Union[int, str], wf: TransferWorkflow) -> int:
        count = len(wf.candidates)
        if isinstance(choice, int):
            index = choice
        else:
            text = str(choice).strip()
            digits = re.search(r"\d+", text)
            if digits:
                index = int(digits.group(0))
            else:
                lowered = text.lower()
                hits = [i for i, c in enumerate(wf.candidates, start=1) if lowered and lowered in c.label.lower()]
                index = hits[0] if len(hits) == 1 else 0
        if not 1 <= index <= count:
            raise PaymentsError(
                ErrorCode.INVALID_SELECTION,
                f"Please choose a number between 1 and {count}.",
            )
        return index - 1

    async def select(self, wf: Optional[TransferWorkflow], choice: Union[int, str], turn: int = 0) -> EngineOutcome:
        """Resume a workflow paused at AWAITING_SELECTION with the user's pick."""
        self._ensure_open(wf)
        if wf.state != WorkflowState.AWAITING_SELECTION:
            raise PaymentsError(ErrorCode.INVALID_SELECTION, "There's no list to choose from right now.")

        chosen = wf.candidates[self._parse_choice(choice, wf)]
        target = wf.selection_target
        wf.candidates = []
        wf.selection_target = None
        logger.info("Workflow %s: %s selected -> %s", wf.workflow_id, target, chosen.label)

        accounts = await self._accounts(wf.user_id)
        if target == "source":
            wf.source_account_id = chosen.account_id
            wf.source_named = True
        else:
            wf.destination = chosen
        return await self._check_source(wf, accounts, turn)

    # ------------------------------------------------------------------
    # Step 2: source eligibility
    # ------------------------------------------------------------------
    async def _check_source(self, wf: TransferWorkflow, accounts: List[Account], turn: int) -> EngineOutcome:
        wf.transition(WorkflowState.SOURCE_CHECK)
        dest = wf.destination
        internal = dest.path == TransferPath.INTERNAL
        source: Optional[Account] = None

        if wf.source_account_id:
            source = self._find(accounts, wf.source_account_id)
            if source is None:
                wf.transition(WorkflowState.REJECTED)
                return self._outcome(wf, "I couldn't find that source account.")
        elif wf.source_query:
            wf.source_named = True
            matches = self.resolver.match_accounts(wf.source_query, accounts)
            if len(matches) == 1:
                source = matches[0]
            else:
                pool = matches or [a for a in accounts if not internal or a.account_id != dest.account_id]
                return self._ask_source(wf, pool, "Which account would you like to pay from?")
        elif internal:
            others = [a for a in accounts if a.account_id != dest.account_id]
            if not others:
                wf.transition(WorkflowState.REJECTED)
                return self._outcome(wf, f"You don't have another account to transfer to {dest.label} from.")
            if len(others) > 1:
                return self._ask_source(wf, others, f"Which account should I transfer to {dest.label} from?")
            source = others[0]
        else:
            source = next((a for a in accounts if a.account_type == AccountType.TRANSACTIONAL), None)
            if source is None:
                wf.transition(WorkflowState.REJECTED)
                return self._outcome(wf, NO_TRANSACTIONAL_MESSAGE)

        wf.source_account_id = source.account_id
        if not internal and source.account_type != AccountType.TRANSACTIONAL:
            wf.transition(WorkflowState.REJECTED)
            logger.info("Workflow %s: rejected %s source %s for %s", wf.workflow_id,
                        source.account_type.value, source.account_id, dest.path.value)
            return self._outcome(wf, SAVINGS_SOURCE_MESSAGE)
        if internal and source.account_id == dest.account_id:
            wf.transition(WorkflowState.REJECTED)
            return self._outcome(wf, "The source and destination accounts must be different.")

        return await self._check_amount(wf, accounts, turn)

    def _ask_source(self, wf: TransferWorkflow, pool: List[Account], header: str) -> EngineOutcome:
        wf.candidates = [account_destination(a) for a in pool]
        wf.selection_target = "source"
        wf.source_account_id = None
        wf.transition(WorkflowState.AWAITING_SELECTION)
        return self._selection_outcome(wf, header)

    # ------------------------------------------------------------------
    # Step 3: amount
    # ------------------------------------------------------------------
    async def _check_amount(self, wf: TransferWorkflow, accounts: List[Account], turn: int) -> EngineOutcome:
        verb = "transfer" if wf.destination.path == TransferPath.INTERNAL else "pay"
        question = f"How much would you like to {verb} to {wf.destination.label}?"
        if wf.amount is None:
            wf.transition(WorkflowState.AWAITING_AMOUNT)
            return self._outcome(wf, question, awaiting="amount")
        if wf.amount <= 0:
            wf.amount = None
            wf.transition(WorkflowState.AWAITING_AMOUNT)
            return self._outcome(wf, f"The amount must be greater than zero. {question}", awaiting="amount")
        return await self._check_balance(wf, accounts, turn)

    async def provide_details(
        self,
        wf: Optional[TransferWorkflow],
        amount=None,
        source: Optional[str] = None,
        turn: int = 0,
    ) -> EngineOutcome:
        """Supply a missing amount, or name the source account when asked."""
        self._ensure_open(wf)
        if amount is not None:
            amount = to_money(amount)

        if wf.state == WorkflowState.AWAITING_AMOUNT:
            if amount is None:
                raise PaymentsError(ErrorCode.VALIDATION_ERROR, "Please provide the amount to pay.")
            wf.amount = amount
            accounts = await self._accounts(wf.user_id)
            if source:
                wf.source_query = source
                wf.source_account_id = None
                return await self._check_source(wf, accounts, turn)
            return await self._check_amount(wf, accounts, turn)

        if wf.state == WorkflowState.AWAITING_SELECTION and wf.selection_target == "source" and source:
            wf.candidates = []
            wf.selection_target = None
            wf.source_query = source
            if amount is not None:
                wf.amount = amount
            accounts = await self._accounts(wf.user_id)
            return await self._check_source(wf, accounts, turn)

        raise PaymentsError(ErrorCode.VALIDATION_ERROR, "This transfer isn't waiting for more details right now.")

    # ------------------------------------------------------------------
    # Step 4: balances and remediation
    # ------------------------------------------------------------------
    async def _check_balance(self, wf: TransferWorkflow, accounts: List[Account], turn: int) -> EngineOutcome:
        wf.transition(WorkflowState.BALANCE_CHECK)
        dest = wf.destination
        amount = wf.amount
        source = self._find(accounts, wf.source_account_id)
        if source is None:
            wf.transition(WorkflowState.REJECTED)
            return self._outcome(wf, "I couldn't find that source account.")

        if dest.path == TransferPath.INTERNAL:
            if source.balance < amount:
                wf.transition(WorkflowState.REJECTED)
                return self._outcome(
                    wf,
                    f"Insufficient funds in {source.name}. Available balance: {self._money(source.balance)}.",
                    balances=self._balances(accounts),
                )
            return self._propose(wf, source, dest, amount, phase=None, turn=turn)

        if source.balance >= amount:
            return self._propose(wf, source, dest, amount, phase=None, turn=turn)

        shortfall = to_money(amount - source.balance)
        savings = [a for a in accounts if a.account_type == AccountType.SAVINGS]
        donor = next((a for a in savings if a.balance >= shortfall), None)
        if donor is None:
            wf.transition(WorkflowState.REJECTED)
            parts = [f"{source.name} has {self._money(source.balance)}"]
            parts.extend(f"{a.name} has {self._money(a.balance)}" for a in savings)
            return self._outcome(
                wf,
                f"Insufficient funds: {' and '.join(parts)}, which together isn't enough to cover "
                f"{self._money(amount)}.",
                balances=self._balances(accounts),
            )

        wf.remediation = RemediationPlan(
            savings_account_id=donor.account_id,
            savings_name=donor.name,
            transactional_account_id=source.account_id,
            transactional_name=source.name,
            shortfall=shortfall,
        )
        wf.transition(WorkflowState.REMEDIATION_PLAN)
        op = self._pending(donor.account_id, donor.name, account_destination(source), shortfall, phase=1, turn=turn)
        wf.pending = op
        message = (
            f"{source.name} has {self._money(source.balance)}, which is {self._money(shortfall)} short of the "
            f"{self._money(amount)} payment to {dest.describe()}. I can do this in two steps, each confirmed "
            f"separately:\n"
            f"1. Move {self._money(shortfall)} from {donor.name} to {source.name}.\n"
            f"2. Pay {self._money(amount)} to {dest.label} from {source.name}.\n"
            f"Step 1 - {op.summary}"
        )
        return self._outcome(
            wf,
            message,
            awaiting="confirmation",
            pending_confirmation=op.summary,
            phase=1,
            balances=self._balances(accounts),
        )

    def _pending(self, source_id: str, source_name: str, destination, amount: Decimal, phase: Optional[int], turn: int) -> PendingOperation:
        return PendingOperation(
            phase=phase,
            path=destination.path,
            source_account_id=source_id,
            source_name=source_name,
            destination=destination,
            amount=amount,
            summary=self._summary(destination.path, amount, source_name, destination),
            proposed_at=turn,
        )

    def _propose(self, wf, source: Account, destination, amount: Decimal, phase: Optional[int], turn: int) -> EngineOutcome:
        op = self._pending(source.account_id, source.name, destination, amount, phase, turn)
        wf.pending = op
        wf.transition(WorkflowState.AWAITING_CONFIRMATION)
        return self._outcome(wf, op.summary, awaiting="confirmation", pending_confirmation=op.summary, phase=phase)

    # ------------------------------------------------------------------
    # Step 5: confirmation gate
    # ------------------------------------------------------------------
    async def register_reply(self, wf: Optional[TransferWorkflow], text: str, turn: int) -> Optional[EngineOutcome]:
        """
        Called with every user message before the reasoning model sees it.

        A reply only counts for an operation proposed on an earlier turn.
        Affirm records a single-use confirmation, decline cancels the
        workflow, anything else withdraws an unused confirmation.
        """
        if wf is None or wf.is_closed or wf.pending is None or wf.state not in CONFIRMABLE_STATES:
            return None
        pending = wf.pending
        if turn <= pending.proposed_at:
            return None

        reply = classify_reply(text)
        logger.info("Workflow %s: reply on turn %d classified %s (pending op %s phase=%s)",
                    wf.workflow_id, turn, reply.value, pending.operation_id, pending.phase)

        if reply == Reply.AFFIRM:
            pending.confirmed_at = turn
            return self._outcome(
                wf,
                f"The user confirmed: {pending.summary.replace('Please confirm: ', '').split('?')[0]}. "
                "It can now be executed once with execute_confirmed_transfer.",
                phase=pending.phase,
            )
        if reply == Reply.DECLINE:
            return await self._cancel(wf)
        if pending.confirmed_at is not None:
            logger.info("Workflow %s: withdrawing unused confirmation for op %s", wf.workflow_id, pending.operation_id)
            pending.confirmed_at = None
        return None

    # ------------------------------------------------------------------
    # Step 6: execution
    # ------------------------------------------------------------------
    async def execute(self, wf: Optional[TransferWorkflow], turn: int = 0) -> EngineOutcome:
        if wf is None:
            raise PaymentsError(ErrorCode.NO_ACTIVE_TRANSFER)
        if wf.is_closed:
            raise PaymentsError(ErrorCode.WORKFLOW_CLOSED)
        pending = wf.pending
        if pending is None or wf.state not in CONFIRMABLE_STATES:
            raise PaymentsError(ErrorCode.CONFIRMATION_REQUIRED, "Nothing is waiting for confirmation yet.")
        if not pending.is_confirmed:
            raise PaymentsError(
                ErrorCode.CONFIRMATION_REQUIRED,
                f"The user has not confirmed this step yet. Ask them: {pending.summary}",
            )
        if pending.phase == 2 and not (wf.remediation and wf.remediation.phase1_settled):
            raise PaymentsError(
                ErrorCode.CONFIRMATION_REQUIRED,
                "The top-up step has not completed, so the payment can't be made.",
            )

        # the confirmation is spent before any money moves
        wf.pending = None
        wf.transition(WorkflowState.EXECUTING)
        logger.info("Workflow %s: executing op %s phase=%s %s %s from %s",
                    wf.workflow_id, pending.operation_id, pending.phase, pending.path.value,
                    pending.amount, pending.source_account_id)

        result = await self._run(wf.user_id, pending)
        balances = await self._fresh_balances(wf.user_id)

        if not result.success:
            wf.transition(WorkflowState.FAILED)
            message = result.error.message if result.error else "The payment could not be processed."
            if pending.phase == 2:
                plan = wf.remediation
                message += (
                    f" The earlier top-up of {self._money(plan.shortfall)} from {plan.savings_name} to "
                    f"{plan.transactional_name} was completed and has not been reversed."
                )
            return self._outcome(wf, message, balances=balances)

        reference = getattr(result.data, "reference", None)
        if pending.phase == 1:
            plan = wf.remediation
            plan.phase1_settled = True
            plan.phase1_reference = reference
            # phase 2 pays from the transactional account named in the plan
            op = self._pending(
                plan.transactional_account_id, plan.transactional_name, wf.destination, wf.amount, phase=2, turn=turn
            )
            wf.pending = op
            wf.transition(WorkflowState.AWAITING_CONFIRMATION)
            message = (
                f"Step 1 complete: moved {self._money(plan.shortfall)} from {plan.savings_name} to "
                f"{plan.transactional_name} (reference {reference}).\n"
                f"Step 2 - {op.summary}"
            )
            return self._outcome(
                wf,
                message,
                awaiting="confirmation",
                pending_confirmation=op.summary,
                phase=2,
                reference=reference,
                balances=balances,
            )

        wf.transition(WorkflowState.SETTLED)
        return self._outcome(
            wf,
            f"{result.data.message} Reference: {reference}.",
            reference=reference,
            balances=balances,
        )

    async def _run(self, user_id: str, op: PendingOperation) -> ServiceResult:
        dest = op.destination
        if dest.path == TransferPath.INTERNAL:
            return await self.services.transfer_between_own_accounts(
                user_id, op.source_account_id, dest.account_id, op.amount
            )
        if dest.path == TransferPath.EXTERNAL:
            return await self.services.transfer_to_external(
                user_id, op.source_account_id, dest.instrument_id, op.amount, ExternalKind.EXTERNAL
            )
        if dest.path == TransferPath.BPAY:
            if dest.instrument_id:
                return await self.services.transfer_to_external(
                    user_id, op.source_account_id, dest.instrument_id, op.amount, ExternalKind.BPAY
                )
            return await self.services.pay_bill(
                user_id,
                dest.biller_code,
                dest.biller_account_number,
                dest.customer_reference,
                op.amount,
                from_account_id=op.source_account_id,
            )
        raise TypeError(f"Unknown transfer path: {dest.path}")

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------
    async def cancel(self, wf: Optional[TransferWorkflow]) -> EngineOutcome:
        if wf is None or wf.is_closed:
            raise PaymentsError(ErrorCode.NO_ACTIVE_TRANSFER, "There is no transfer in progress to cancel.")
        return await self._cancel(wf)

    async def _cancel(self, wf: TransferWorkflow) -> EngineOutcome:
        wf.pending = None
        wf.candidates = []
        wf.selection_target = None
        wf.transition(WorkflowState.CANCELLED)
        balances = await self._fresh_balances(wf.user_id)

        plan = wf.remediation
        if plan is not None and plan.phase1_settled:
            message = (
                f"Cancelled. The payment of {self._money(wf.amount)} to {wf.destination.label} was not made. "
                f"The top-up of {self._money(plan.shortfall)} from {plan.savings_name} to "
                f"{plan.transactional_name} had already completed and stays in place."
            )
        else:
            message = "Cancelled. No money was moved."
        if balances:
            message += " Current balances: " + ", ".join(f"{name} {value}" for name, value in balances.items()) + "."
        return self._outcome(wf, message, balances=balances)

    @staticmethod
    def _ensure_open(wf: Optional[TransferWorkflow]) -> None:
        if wf is None:
            raise PaymentsError(ErrorCode.NO_ACTIVE_TRANSFER)
        if wf.is_closed:
            raise PaymentsError(ErrorCode.WORKFLOW_CLOSED)
