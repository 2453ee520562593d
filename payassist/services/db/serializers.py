from typing import List

from payassist.services.db.models import (
    AccountRow,
    BillerAccountRow,
    ContactRow,
    PaymentInstrumentRow,
    PaymentRow,
    UserRow,
)
from payassist.services.models import (
    Account,
    AccountType,
    BankAccountDetails,
    BillerAccount,
    BillerCategory,
    BpayBillerDetails,
    Contact,
    ContactKind,
    PaymentInstrument,
    PaymentKind,
    PaymentRecord,
    PaymentStatus,
    User,
)


def user_from_row(u: UserRow) -> User:
    return User(user_id=u.user_id, email=u.email, name=u.name, created_at=u.created_at)


def account_from_row(a: AccountRow) -> Account:
    return Account(
        account_id=a.account_id,
        user_id=a.user_id,
        name=a.name,
        account_type=AccountType(a.account_type),
        balance=a.balance if a.balance is not None else 0,
        currency=a.currency or "AUD",
    )


def instrument_from_row(p: PaymentInstrumentRow) -> PaymentInstrument:
    if p.kind == "bank_account":
        details = BankAccountDetails(
            routing_number=p.routing_number,
            account_number=p.account_number,
            account_name=p.account_name,
        )
    elif p.kind == "bpay":
        details = BpayBillerDetails(
            biller_name=p.biller_name,
            biller_code=p.biller_code,
            customer_reference=p.customer_reference,
        )
    else:
        raise ValueError(f"Unknown payment instrument kind '{p.kind}' for {p.instrument_id}")
    return PaymentInstrument(instrument_id=p.instrument_id, details=details)


def instrument_to_row(contact_id: str, position: int, instrument: PaymentInstrument) -> PaymentInstrumentRow:
    row = PaymentInstrumentRow(
        instrument_id=instrument.instrument_id,
        contact_id=contact_id,
        position=position,
        kind=instrument.details.kind,
    )
    details = instrument.details
    if isinstance(details, BankAccountDetails):
        row.routing_number = details.routing_number
        row.account_number = details.account_number
        row.account_name = details.account_name
    elif isinstance(details, BpayBillerDetails):
        row.biller_name = details.biller_name
        row.biller_code = details.biller_code
        row.customer_reference = details.customer_reference
    else:
        raise TypeError(f"Unknown payment instrument variant: {type(details).__name__}")
    return row


def contact_from_rows(c: ContactRow, instruments: List[PaymentInstrumentRow]) -> Contact:
    return Contact(
        contact_id=c.contact_id,
        user_id=c.user_id,
        name=c.name,
        contact_type=ContactKind(c.contact_type),
        payment_instruments=[instrument_from_row(p) for p in instruments],
    )


def biller_from_row(b: BillerAccountRow) -> BillerAccount:
    return BillerAccount(
        biller_id=b.biller_id,
        user_id=b.user_id,
        biller_code=b.biller_code,
        biller_name=b.biller_name,
        account_number=b.account_number,
        customer_reference=b.customer_reference,
        nickname=b.nickname,
        category=BillerCategory(b.category),
        is_active=bool(b.is_active),
        created_at=b.created_at,
        last_paid_at=b.last_paid_at,
    )


def biller_to_row(b: BillerAccount) -> BillerAccountRow:
    return BillerAccountRow(
        biller_id=b.biller_id,
        user_id=b.user_id,
        biller_code=b.biller_code,
        biller_name=b.biller_name,
        account_number=b.account_number,
        customer_reference=b.customer_reference,
        nickname=b.nickname,
        category=b.category.value,
        is_active=b.is_active,
        created_at=b.created_at,
        last_paid_at=b.last_paid_at,
    )


def payment_from_row(p: PaymentRow) -> PaymentRecord:
    return PaymentRecord(
        payment_id=p.payment_id,
        user_id=p.user_id,
        kind=PaymentKind(p.kind),
        amount_minor=p.amount_minor,
        currency=p.currency,
        status=PaymentStatus(p.status),
        reference=p.reference,
        source_account_id=p.source_account_id,
        destination=p.destination,
        initiated_at=p.initiated_at,
        completed_at=p.completed_at,
        failure_reason=p.failure_reason,
    )


def payment_to_row(p: PaymentRecord) -> PaymentRow:
    return PaymentRow(
        payment_id=p.payment_id,
        user_id=p.user_id,
        kind=p.kind.value,
        amount_minor=p.amount_minor,
        currency=p.currency,
        status=p.status.value,
        reference=p.reference,
        source_account_id=p.source_account_id,
        destination=p.destination,
        initiated_at=p.initiated_at,
        completed_at=p.completed_at,
        failure_reason=p.failure_reason,
    )
