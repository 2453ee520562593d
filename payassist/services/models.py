"""
Domain types shared by the ledger, services, workflows and tools.
"""

from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payassist.services.errors import ErrorCode, PaymentsError

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce a number/str into a 2dp Decimal."""
    if isinstance(value, Decimal):
        amount = value
    else:
        amount = Decimal(str(value))
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    return int((to_money(amount) * 100).to_integral_value())


def format_money(value, currency: Optional[str] = None) -> str:
    """$1,234.50, optionally followed by the currency code."""
    text = f"${to_money(value):,.2f}"
    return f"{text} {currency}" if currency else text


class AccountType(str, Enum):
    TRANSACTIONAL = "TRANSACTIONAL"
    SAVINGS = "SAVINGS"


class ContactKind(str, Enum):
    PERSON = "PERSON"
    BUSINESS = "BUSINESS"


class BillerCategory(str, Enum):
    UTILITIES = "utilities"
    TELECOM = "telecom"
    INSURANCE = "insurance"
    COUNCIL = "council"
    GOVERNMENT = "government"
    OTHER = "other"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


FINAL_PAYMENT_STATUSES = {PaymentStatus.COMPLETED, PaymentStatus.FAILED, PaymentStatus.CANCELLED}


class PaymentKind(str, Enum):
    BILL_PAYMENT = "BILL_PAYMENT"
    INTERNAL_TRANSFER = "INTERNAL_TRANSFER"
    EXTERNAL_TRANSFER = "EXTERNAL_TRANSFER"
    BPAY_TRANSFER = "BPAY_TRANSFER"


class ExternalKind(str, Enum):
    EXTERNAL = "EXTERNAL"
    BPAY = "BPAY"


class User(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    name: str
    created_at: datetime


class Account(BaseModel):
    account_id: str
    user_id: str
    name: str
    account_type: AccountType
    balance: Decimal = Decimal("0.00")
    currency: str = "AUD"

    @field_validator("balance", mode="before")
    @classmethod
    def _quantize_balance(cls, v):
        return to_money(v)

    @property
    def is_transactional(self) -> bool:
        return self.account_type == AccountType.TRANSACTIONAL


class BankAccountDetails(BaseModel):
    kind: Literal["bank_account"] = "bank_account"
    routing_number: str
    account_number: str
    account_name: str


class BpayBillerDetails(BaseModel):
    kind: Literal["bpay"] = "bpay"
    biller_name: str
    biller_code: str
    customer_reference: str


InstrumentDetails = Annotated[Union[BankAccountDetails, BpayBillerDetails], Field(discriminator="kind")]


class PaymentInstrument(BaseModel):
    model_config = ConfigDict(frozen=True)

    instrument_id: str
    details: InstrumentDetails

    @property
    def display_name(self) -> str:
        details = self.details
        if isinstance(details, BankAccountDetails):
            return details.account_name
        if isinstance(details, BpayBillerDetails):
            return details.biller_name
        raise TypeError(f"Unknown payment instrument variant: {type(details).__name__}")


class Contact(BaseModel):
    contact_id: str
    user_id: str
    name: str
    contact_type: ContactKind
    payment_instruments: List[PaymentInstrument] = Field(default_factory=list)

    def find_instrument(self, instrument_id: str) -> Optional[PaymentInstrument]:
        for instrument in self.payment_instruments:
            if instrument.instrument_id == instrument_id:
                return instrument
        return None


class BillerAccount(BaseModel):
    biller_id: str
    user_id: str
    biller_code: str
    biller_name: str
    account_number: str
    customer_reference: str
    nickname: Optional[str] = None
    category: BillerCategory = BillerCategory.OTHER
    is_active: bool = True
    created_at: datetime
    last_paid_at: Optional[datetime] = None


class PaymentRecord(BaseModel):
    payment_id: str
    user_id: str
    kind: PaymentKind
    amount_minor: int
    currency: str = "AUD"
    status: PaymentStatus = PaymentStatus.PENDING
    reference: str
    source_account_id: Optional[str] = None
    destination: Optional[str] = None
    initiated_at: datetime
    completed_at: Optional[datetime] = None
    failure_reason: Optional[str] = None

    @property
    def amount(self) -> Decimal:
        return (Decimal(self.amount_minor) / 100).quantize(CENT)

    @property
    def is_final(self) -> bool:
        return self.status in FINAL_PAYMENT_STATUSES

    def finalize(self, status: PaymentStatus, failure_reason: Optional[str] = None) -> "PaymentRecord":
        """Move the record to a final status. A record can only be finalized once."""
        if self.is_final:
            raise PaymentsError(
                ErrorCode.PAYMENT_ALREADY_FINALIZED,
                f"Payment {self.payment_id} is already {self.status.value}",
            )
        if status not in FINAL_PAYMENT_STATUSES:
            raise ValueError(f"{status} is not a final payment status")
        self.status = status
        self.completed_at = datetime.now()
        self.failure_reason = failure_reason
        return self


class PaymentOutcome(BaseModel):
    payment_id: str
    reference: str
    status: PaymentStatus
    amount: Decimal
    currency: str
    message: str
    source_balance: Optional[Decimal] = None


class TransferOutcome(BaseModel):
    transfer_id: str
    reference: str
    status: PaymentStatus
    amount: Decimal
    currency: str
    balances: dict = Field(default_factory=dict)
    message: str
