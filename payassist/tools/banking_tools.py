"""
Banking tools exposed to the reasoning model.

Read-only tools call the domain services directly. Everything that can
move money goes through the TransferDecisionEngine: start_transfer,
select_transfer_option and provide_transfer_details only ever propose,
and execute_confirmed_transfer is the single path to a ledger mutation.

user_id and thread_id come from the ToolContext, never from arguments.
"""

import logging
from decimal import Decimal
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from payassist.nlu.destination_resolver import last_digits
from payassist.services.models import BankAccountDetails, Contact
from payassist.tools.registry import Tool, ToolContext, ToolOutcome, ToolRegistry
from payassist.workflows.state import EngineOutcome

logger = logging.getLogger("payassist.tools")

BillerCategoryName = Literal["utilities", "telecom", "insurance", "council", "government", "other"]


# ----------------------------------------------------------------------
# Argument models
# ----------------------------------------------------------------------
class NoArgs(BaseModel):
    pass


class SavedBillerArgs(BaseModel):
    name_filter: Optional[str] = Field(None, description="Part of the biller name, nickname or category, e.g. 'water'.")
    category: Optional[BillerCategoryName] = Field(None, description="Only billers in this category.")


class ValidateBillerArgs(BaseModel):
    biller_code: str = Field(..., description="BPAY biller code.")
    account_number: str = Field(..., description="Account number with the biller.")
    customer_reference: str = Field(..., description="Customer reference number (CRN).")


class CreateBillerArgs(BaseModel):
    biller_code: str = Field(..., description="BPAY biller code.")
    biller_name: str = Field(..., description="Name of the biller.")
    account_number: str = Field(..., description="Account number with the biller.")
    customer_reference: str = Field(..., description="Customer reference number (CRN).")
    category: BillerCategoryName = Field("other", description="Biller category.")
    nickname: Optional[str] = Field(None, description="Optional friendly name, e.g. 'Home Water'.")


class RemoveBillerArgs(BaseModel):
    biller_id: str = Field(..., description="Id of the saved biller to remove.")


class PaymentStatusArgs(BaseModel):
    payment_id: str = Field(..., description="Payment or transfer id returned when it was made.")


class StartTransferArgs(BaseModel):
    destination: str = Field(..., min_length=1, description="Who or what to pay, in the user's words, e.g. 'sarah' or 'water bill'.")
    amount: Optional[Decimal] = Field(None, description="Amount in dollars, if the user gave one.")
    source_account: Optional[str] = Field(None, description="Account to pay from, only if the user named one.")


class SelectOptionArgs(BaseModel):
    choice: int = Field(..., description="1-based number of the option the user picked.")


class TransferDetailsArgs(BaseModel):
    amount: Optional[Decimal] = Field(None, description="Amount in dollars.")
    source_account: Optional[str] = Field(None, description="Account to pay from, in the user's words.")


# ----------------------------------------------------------------------
# Rendering helpers
# ----------------------------------------------------------------------
def _contact_view(contact: Contact) -> Dict[str, Any]:
    instruments = []
    for instrument in contact.payment_instruments:
        details = instrument.details
        view: Dict[str, Any] = {"instrument_id": instrument.instrument_id, "type": details.kind, "name": instrument.display_name}
        if isinstance(details, BankAccountDetails):
            view["account"] = last_digits(details.account_number)
        else:
            view["biller_code"] = details.biller_code
            view["reference"] = last_digits(details.customer_reference)
        instruments.append(view)
    return {
        "contact_id": contact.contact_id,
        "name": contact.name,
        "contact_type": contact.contact_type.value,
        "payment_instruments": instruments,
    }


def _service_outcome(result, render=None) -> ToolOutcome:
    if not result.success:
        return ToolOutcome.failure(result.error.code, result.error.message)
    data = render(result.data) if render else result.data
    return ToolOutcome.ok(data)


def _engine_outcome(outcome: EngineOutcome) -> ToolOutcome:
    return ToolOutcome.ok(outcome.model_dump(mode="json", exclude_none=True))


def _dump(model) -> Dict[str, Any]:
    return model.model_dump(mode="json")


# ----------------------------------------------------------------------
# Read-only tools
# ----------------------------------------------------------------------
async def get_user(ctx: ToolContext, args: NoArgs) -> ToolOutcome:
    return _service_outcome(await ctx.services.get_user(ctx.token or ""), _dump)


async def get_accounts(ctx: ToolContext, args: NoArgs) -> ToolOutcome:
    return _service_outcome(
        await ctx.services.get_accounts(ctx.user_id),
        lambda accounts: [_dump(a) for a in accounts],
    )


async def get_contacts(ctx: ToolContext, args: NoArgs) -> ToolOutcome:
    return _service_outcome(
        await ctx.services.get_contacts(ctx.user_id),
        lambda contacts: [_contact_view(c) for c in contacts],
    )


async def get_saved_biller_accounts(ctx: ToolContext, args: SavedBillerArgs) -> ToolOutcome:
    result = await ctx.services.billers.get_saved_billers(ctx.user_id, args.name_filter, args.category)

    def render(billers):
        return [
            {
                "biller_id": b.biller_id,
                "biller_name": b.biller_name,
                "nickname": b.nickname,
                "category": b.category.value,
                "biller_code": b.biller_code,
                "account": last_digits(b.account_number),
                "last_paid_at": b.last_paid_at.isoformat() if b.last_paid_at else None,
            }
            for b in billers
        ]

    return _service_outcome(result, render)


async def validate_biller_account(ctx: ToolContext, args: ValidateBillerArgs) -> ToolOutcome:
    validation = ctx.services.billers.validate_biller(args.biller_code, args.account_number, args.customer_reference)
    return ToolOutcome.ok(validation.model_dump(exclude_none=True))


async def create_biller_account(ctx: ToolContext, args: CreateBillerArgs) -> ToolOutcome:
    result = await ctx.services.billers.create_biller(
        ctx.user_id,
        args.biller_code,
        args.biller_name,
        args.account_number,
        args.customer_reference,
        category=args.category,
        nickname=args.nickname,
    )
    return _service_outcome(
        result,
        lambda b: {"biller_id": b.biller_id, "biller_name": b.biller_name, "nickname": b.nickname,
                   "account": last_digits(b.account_number), "message": f"Saved {b.biller_name} as a biller."},
    )


async def remove_saved_biller(ctx: ToolContext, args: RemoveBillerArgs) -> ToolOutcome:
    return _service_outcome(
        await ctx.services.billers.deactivate_biller(ctx.user_id, args.biller_id),
        lambda b: {"biller_id": b.biller_id, "message": f"Removed {b.biller_name} from your saved billers."},
    )


async def get_payment_status(ctx: ToolContext, args: PaymentStatusArgs) -> ToolOutcome:
    return _service_outcome(await ctx.services.payments.get_payment_status(ctx.user_id, args.payment_id))


# ----------------------------------------------------------------------
# Transfer workflow tools
# ----------------------------------------------------------------------
async def start_transfer(ctx: ToolContext, args: StartTransferArgs) -> ToolOutcome:
    current = ctx.session_manager.get_workflow(ctx.thread_id)
    if current is not None and not current.is_closed:
        logger.info("Thread %s: replacing open workflow %s (%s)", ctx.thread_id, current.workflow_id, current.state.value)
    workflow, outcome = await ctx.engine.start(
        ctx.user_id,
        args.destination,
        amount=args.amount,
        source=args.source_account,
        turn=ctx.turn,
        contacts=ctx.session_manager.get_contacts(ctx.thread_id),
    )
    ctx.session_manager.save_workflow(ctx.thread_id, workflow)
    return _engine_outcome(outcome)


async def _with_workflow(ctx: ToolContext, step) -> ToolOutcome:
    # persist whatever the engine did, even if it raised part way through
    workflow = ctx.session_manager.get_workflow(ctx.thread_id)
    try:
        outcome = await step(workflow)
    finally:
        if workflow is not None:
            ctx.session_manager.save_workflow(ctx.thread_id, workflow)
    return _engine_outcome(outcome)


async def select_transfer_option(ctx: ToolContext, args: SelectOptionArgs) -> ToolOutcome:
    return await _with_workflow(ctx, lambda wf: ctx.engine.select(wf, args.choice, turn=ctx.turn))


async def provide_transfer_details(ctx: ToolContext, args: TransferDetailsArgs) -> ToolOutcome:
    return await _with_workflow(
        ctx,
        lambda wf: ctx.engine.provide_details(wf, amount=args.amount, source=args.source_account, turn=ctx.turn),
    )


async def execute_confirmed_transfer(ctx: ToolContext, args: NoArgs) -> ToolOutcome:
    return await _with_workflow(ctx, lambda wf: ctx.engine.execute(wf, turn=ctx.turn))


async def cancel_transfer(ctx: ToolContext, args: NoArgs) -> ToolOutcome:
    return await _with_workflow(ctx, ctx.engine.cancel)


def build_banking_registry() -> ToolRegistry:
    return ToolRegistry(
        [
            Tool("get_user", "Get the signed-in user's profile.", NoArgs, get_user),
            Tool("get_accounts", "List the user's accounts with current balances.", NoArgs, get_accounts),
            Tool("get_contacts", "List the user's saved contacts and their payment methods.", NoArgs, get_contacts),
            Tool(
                "get_saved_biller_accounts",
                "List the user's saved BPAY billers, optionally filtered by name or category.",
                SavedBillerArgs,
                get_saved_biller_accounts,
            ),
            Tool(
                "validate_biller_account",
                "Check a BPAY biller code, account number and customer reference before saving a biller.",
                ValidateBillerArgs,
                validate_biller_account,
            ),
            Tool(
                "create_biller_account",
                "Save a new BPAY biller for the user after the details were validated.",
                CreateBillerArgs,
                create_biller_account,
            ),
            Tool("remove_saved_biller", "Remove a saved biller.", RemoveBillerArgs, remove_saved_biller),
            Tool("get_payment_status", "Look up the status of an earlier payment.", PaymentStatusArgs, get_payment_status),
            Tool(
                "start_transfer",
                "Start a payment or transfer: to one of the user's own accounts, a contact or a saved biller. "
                "Never moves money; returns the next step (a list to choose from, a question, or a confirmation).",
                StartTransferArgs,
                start_transfer,
            ),
            Tool(
                "select_transfer_option",
                "Pick one option from the numbered list the current transfer is waiting on.",
                SelectOptionArgs,
                select_transfer_option,
            ),
            Tool(
                "provide_transfer_details",
                "Give the current transfer its missing amount or source account.",
                TransferDetailsArgs,
                provide_transfer_details,
            ),
            Tool(
                "execute_confirmed_transfer",
                "Carry out the transfer step the user has just confirmed with 'yes'. "
                "Refused unless the user confirmed this exact step in their latest message.",
                NoArgs,
                execute_confirmed_transfer,
            ),
            Tool("cancel_transfer", "Cancel the transfer in progress.", NoArgs, cancel_transfer),
        ]
    )
