"""
BPAY bill payments and payment-record bookkeeping.

Every money movement creates a PaymentRecord in PROCESSING before the
ledger is touched and finalizes it exactly once afterwards.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, Optional
from uuid import uuid4

from payassist.services.billers import BillerService
from payassist.services.errors import ErrorCode
from payassist.services.models import (
    Account,
    PaymentKind,
    PaymentOutcome,
    PaymentRecord,
    PaymentStatus,
    format_money,
    to_minor_units,
    to_money,
)
from payassist.services.repository import InsufficientFundsError, LedgerError, LedgerRepository
from payassist.services.results import ServiceResult

logger = logging.getLogger("payassist.services.payments")


def new_reference() -> str:
    return f"REF{uuid4().hex[:10].upper()}"


def insufficient_funds_message(available: Decimal) -> str:
    return f"Insufficient funds. Available: {format_money(available)}"


class PaymentLedger:
    """Runs a single ledger movement wrapped in its PaymentRecord."""

    def __init__(self, ledger: LedgerRepository, currency: str = "AUD") -> None:
        self.ledger = ledger
        self.currency = currency

    async def run(
        self,
        *,
        user_id: str,
        kind: PaymentKind,
        amount: Decimal,
        source_account_id: str,
        destination: str,
        credit_account_id: Optional[str] = None,
    ) -> ServiceResult[Dict]:
        now = datetime.now()
        record = PaymentRecord(
            payment_id=f"pay_{uuid4().hex[:16]}",
            user_id=user_id,
            kind=kind,
            amount_minor=to_minor_units(amount),
            currency=self.currency,
            status=PaymentStatus.PROCESSING,
            reference=new_reference(),
            source_account_id=source_account_id,
            destination=destination,
            initiated_at=now,
        )
        await self.ledger.save_payment(record)

        try:
            balances = await self.ledger.apply_transfer(user_id, source_account_id, amount, credit_account_id)
        except InsufficientFundsError as exc:
            message = insufficient_funds_message(exc.available)
            await self.ledger.save_payment(record.finalize(PaymentStatus.FAILED, message))
            logger.warning(
                "%s %s failed: insufficient funds available=%s requested=%s",
                kind.value, record.payment_id, exc.available, amount,
            )
            return ServiceResult.fail(ErrorCode.INSUFFICIENT_FUNDS, message)
        except LedgerError as exc:
            await self.ledger.save_payment(record.finalize(PaymentStatus.FAILED, str(exc)))
            logger.warning("%s %s failed: %s", kind.value, record.payment_id, exc)
            return ServiceResult.fail(exc.code)
        except Exception as exc:
            await self.ledger.save_payment(record.finalize(PaymentStatus.FAILED, "Ledger unavailable"))
            logger.exception("%s %s failed: %s", kind.value, record.payment_id, exc)
            return ServiceResult.fail(ErrorCode.PAYMENT_FAILED)

        await self.ledger.save_payment(record.finalize(PaymentStatus.COMPLETED))
        logger.info(
            "%s %s completed ref=%s amount=%s balances=%s",
            kind.value, record.payment_id, record.reference, amount, balances,
        )
        return ServiceResult.ok({"record": record, "balances": balances})


class PaymentService:
    def __init__(self, ledger: LedgerRepository, billers: BillerService, currency: str = "AUD") -> None:
        self.ledger = ledger
        self.billers = billers
        self.currency = currency
        self.recorder = PaymentLedger(ledger, currency)

    async def _default_source(self, user_id: str) -> Optional[Account]:
        for account in await self.ledger.list_accounts(user_id):
            if account.is_transactional:
                return account
        return None

    async def pay_bill(
        self,
        user_id: str,
        biller_code: str,
        account_number: str,
        customer_reference: str,
        amount,
        from_account_id: Optional[str] = None,
    ) -> ServiceResult[PaymentOutcome]:
        """
        Pay a BPAY biller from a transactional account (the user's first
        one unless ``from_account_id`` is given).
        """
        try:
            amount = to_money(amount)
            if amount <= 0:
                return ServiceResult.fail(ErrorCode.INVALID_AMOUNT)

            validation = self.billers.validate_biller(biller_code, account_number, customer_reference)
            if not validation.is_valid:
                return ServiceResult.fail(validation.error_code, validation.error_message)

            if from_account_id:
                source = await self.ledger.get_account(user_id, from_account_id)
            else:
                source = await self._default_source(user_id)
            if source is None:
                return ServiceResult.fail(ErrorCode.ACCOUNT_NOT_FOUND, "Source account not found")
            if not source.is_transactional:
                return ServiceResult.fail(
                    ErrorCode.INVALID_ACCOUNT_TYPE,
                    "BPAY payments can only be made from debit accounts",
                )

            result = await self.recorder.run(
                user_id=user_id,
                kind=PaymentKind.BILL_PAYMENT,
                amount=amount,
                source_account_id=source.account_id,
                destination=f"bpay:{biller_code}:{account_number}",
            )
            if not result.success:
                return result
        except Exception as exc:
            logger.exception("pay_bill failed for user_id=%s biller_code=%s: %s", user_id, biller_code, exc)
            return ServiceResult.fail(ErrorCode.PAYMENT_FAILED)

        # committed: a failed biller stamp must not turn this into a failure
        record: PaymentRecord = result.data["record"]
        try:
            await self.billers.mark_paid(user_id, biller_code, account_number, record.completed_at)
        except Exception as exc:
            logger.exception("Could not stamp last_paid_at for payment_id=%s: %s", record.payment_id, exc)
        return ServiceResult.ok(
            PaymentOutcome(
                payment_id=record.payment_id,
                reference=record.reference,
                status=record.status,
                amount=amount,
                currency=self.currency,
                source_balance=result.data["balances"].get(source.account_id),
                message=f"Payment of {format_money(amount, self.currency)} processed successfully.",
            )
        )

    async def get_payment_status(self, user_id: str, payment_id: str) -> ServiceResult[Dict]:
        try:
            record = await self.ledger.get_payment(user_id, payment_id)
        except Exception as exc:
            logger.exception("get_payment_status failed for payment_id=%s: %s", payment_id, exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)
        if record is None:
            return ServiceResult.fail(ErrorCode.PAYMENT_NOT_FOUND)
        status = record.status.value.lower()
        return ServiceResult.ok(
            {
                "payment_id": record.payment_id,
                "status": record.status.value,
                "reference": record.reference,
                "amount": str(record.amount),
                "currency": record.currency,
                "message": f"Payment {record.reference} is {status}.",
            }
        )
