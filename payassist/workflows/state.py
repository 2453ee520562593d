"""
Transfer workflow state.

Everything here is a pydantic model so a workflow can be dumped into the
session store between turns and loaded back unchanged.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class WorkflowState(str, Enum):
    RESOLVING_DESTINATION = "RESOLVING_DESTINATION"
    AWAITING_CLARIFICATION = "AWAITING_CLARIFICATION"
    AWAITING_SELECTION = "AWAITING_SELECTION"
    SOURCE_CHECK = "SOURCE_CHECK"
    AWAITING_AMOUNT = "AWAITING_AMOUNT"
    BALANCE_CHECK = "BALANCE_CHECK"
    REMEDIATION_PLAN = "REMEDIATION_PLAN"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    EXECUTING = "EXECUTING"
    SETTLED = "SETTLED"
    FAILED = "FAILED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# A workflow in one of these states is finished; the next request starts over.
CLOSED_STATES = {
    WorkflowState.AWAITING_CLARIFICATION,
    WorkflowState.SETTLED,
    WorkflowState.FAILED,
    WorkflowState.REJECTED,
    WorkflowState.CANCELLED,
}

CONFIRMABLE_STATES = {WorkflowState.AWAITING_CONFIRMATION, WorkflowState.REMEDIATION_PLAN}


class TransferPath(str, Enum):
    INTERNAL = "INTERNAL"
    EXTERNAL = "EXTERNAL"
    BPAY = "BPAY"


class Destination(BaseModel):
    path: TransferPath
    label: str
    # INTERNAL
    account_id: Optional[str] = None
    account_type: Optional[str] = None
    # contact instrument (EXTERNAL or BPAY)
    contact_id: Optional[str] = None
    instrument_id: Optional[str] = None
    # saved biller (BPAY)
    biller_id: Optional[str] = None
    biller_code: Optional[str] = None
    biller_account_number: Optional[str] = None
    customer_reference: Optional[str] = None
    # last digits shown to the user
    masked_number: Optional[str] = None

    def describe(self) -> str:
        if self.masked_number:
            return f"{self.label} (Account: {self.masked_number})"
        return self.label


class PendingOperation(BaseModel):
    """One money movement waiting for its own explicit confirmation."""

    operation_id: str = Field(default_factory=lambda: uuid4().hex[:12])
    phase: Optional[int] = None  # None = single transfer, 1 = top-up, 2 = original transfer
    path: TransferPath
    source_account_id: str
    source_name: str
    destination: Destination
    amount: Decimal
    summary: str
    proposed_at: int
    confirmed_at: Optional[int] = None

    @property
    def is_confirmed(self) -> bool:
        return self.confirmed_at is not None and self.confirmed_at > self.proposed_at


class RemediationPlan(BaseModel):
    savings_account_id: str
    savings_name: str
    transactional_account_id: str
    transactional_name: str
    shortfall: Decimal
    phase1_settled: bool = False
    phase1_reference: Optional[str] = None


class TransferWorkflow(BaseModel):
    workflow_id: str = Field(default_factory=lambda: f"wf_{uuid4().hex[:12]}")
    user_id: str
    destination_query: str
    source_query: Optional[str] = None
    state: WorkflowState = WorkflowState.RESOLVING_DESTINATION
    created_turn: int = 0

    candidates: List[Destination] = Field(default_factory=list)
    selection_target: Optional[Literal["destination", "source"]] = None

    destination: Optional[Destination] = None
    source_account_id: Optional[str] = None
    source_named: bool = False
    amount: Optional[Decimal] = None

    remediation: Optional[RemediationPlan] = None
    pending: Optional[PendingOperation] = None
    transitions: List[str] = Field(default_factory=list)

    @property
    def is_closed(self) -> bool:
        return self.state in CLOSED_STATES

    def transition(self, state: WorkflowState) -> None:
        self.state = state
        self.transitions.append(state.value)


class EngineOutcome(BaseModel):
    """What a workflow step reports back to the tool layer."""

    workflow_id: str
    state: WorkflowState
    message: str
    options: List[str] = Field(default_factory=list)
    awaiting: Optional[str] = None
    pending_confirmation: Optional[str] = None
    phase: Optional[int] = None
    reference: Optional[str] = None
    balances: Dict[str, str] = Field(default_factory=dict)
