import logging
from typing import Optional, Tuple

from payassist.services.errors import ErrorCode
from payassist.services.models import (
    BankAccountDetails,
    BpayBillerDetails,
    ExternalKind,
    PaymentInstrument,
    PaymentKind,
    PaymentRecord,
    TransferOutcome,
    format_money,
    to_money,
)
from payassist.services.payments import PaymentLedger
from payassist.services.repository import LedgerRepository
from payassist.services.results import ServiceResult

logger = logging.getLogger("payassist.services.transfers")

SOURCE_TYPE_MESSAGES = {
    ExternalKind.EXTERNAL: "External transfers can only be made from debit accounts",
    ExternalKind.BPAY: "BPAY payments can only be made from debit accounts",
}


def instrument_supports(instrument: PaymentInstrument, kind: ExternalKind) -> bool:
    details = instrument.details
    if isinstance(details, BankAccountDetails):
        return kind == ExternalKind.EXTERNAL
    if isinstance(details, BpayBillerDetails):
        return kind == ExternalKind.BPAY
    raise TypeError(f"Unknown payment instrument variant: {type(details).__name__}")


class TransferService:
    def __init__(self, ledger: LedgerRepository, currency: str = "AUD") -> None:
        self.ledger = ledger
        self.currency = currency
        self.recorder = PaymentLedger(ledger, currency)

    def _outcome(self, record: PaymentRecord, balances: dict, message: str) -> TransferOutcome:
        return TransferOutcome(
            transfer_id=record.payment_id,
            reference=record.reference,
            status=record.status,
            amount=record.amount,
            currency=record.currency,
            balances={k: str(v) for k, v in balances.items()},
            message=message,
        )

    async def transfer_between_own_accounts(
        self,
        user_id: str,
        from_account_id: str,
        to_account_id: str,
        amount,
    ) -> ServiceResult[TransferOutcome]:
        try:
            amount = to_money(amount)
            if amount <= 0:
                return ServiceResult.fail(ErrorCode.INVALID_AMOUNT)
            if from_account_id == to_account_id:
                return ServiceResult.fail(ErrorCode.SAME_ACCOUNT)

            source = await self.ledger.get_account(user_id, from_account_id)
            if source is None:
                return ServiceResult.fail(ErrorCode.ACCOUNT_NOT_FOUND, "Source account not found")
            target = await self.ledger.get_account(user_id, to_account_id)
            if target is None:
                return ServiceResult.fail(ErrorCode.ACCOUNT_NOT_FOUND, "Destination account not found")

            result = await self.recorder.run(
                user_id=user_id,
                kind=PaymentKind.INTERNAL_TRANSFER,
                amount=amount,
                source_account_id=source.account_id,
                destination=target.account_id,
                credit_account_id=target.account_id,
            )
            if not result.success:
                return result
            message = (
                f"Transferred {format_money(amount, self.currency)} from {source.name} to {target.name}."
            )
            return ServiceResult.ok(self._outcome(result.data["record"], result.data["balances"], message))
        except Exception as exc:
            logger.exception("Internal transfer failed user_id=%s from=%s to=%s: %s",
                             user_id, from_account_id, to_account_id, exc)
            return ServiceResult.fail(ErrorCode.PAYMENT_FAILED)

    async def _find_instrument(self, user_id: str, instrument_id: str) -> Tuple[Optional[str], Optional[PaymentInstrument]]:
        for contact in await self.ledger.list_contacts(user_id):
            instrument = contact.find_instrument(instrument_id)
            if instrument is not None:
                return contact.name, instrument
        return None, None

    async def transfer_to_external(
        self,
        user_id: str,
        from_account_id: str,
        instrument_id: str,
        amount,
        kind: ExternalKind,
    ) -> ServiceResult[TransferOutcome]:
        """
        Pay a contact's instrument. The source must be a transactional
        account and the instrument variant must match ``kind``.
        """
        try:
            kind = ExternalKind(kind)
        except ValueError:
            return ServiceResult.fail(ErrorCode.VALIDATION_ERROR, f"Unsupported transfer kind '{kind}'.")
        try:
            amount = to_money(amount)
            if amount <= 0:
                return ServiceResult.fail(ErrorCode.INVALID_AMOUNT)

            source = await self.ledger.get_account(user_id, from_account_id)
            if source is None:
                return ServiceResult.fail(ErrorCode.ACCOUNT_NOT_FOUND, "Source account not found")
            if not source.is_transactional:
                return ServiceResult.fail(ErrorCode.INVALID_ACCOUNT_TYPE, SOURCE_TYPE_MESSAGES[kind])

            contact_name, instrument = await self._find_instrument(user_id, instrument_id)
            if instrument is None:
                return ServiceResult.fail(ErrorCode.INSTRUMENT_NOT_FOUND)
            if not instrument_supports(instrument, kind):
                return ServiceResult.fail(ErrorCode.INSTRUMENT_MISMATCH)

            payment_kind = PaymentKind.BPAY_TRANSFER if kind == ExternalKind.BPAY else PaymentKind.EXTERNAL_TRANSFER
            result = await self.recorder.run(
                user_id=user_id,
                kind=payment_kind,
                amount=amount,
                source_account_id=source.account_id,
                destination=instrument.instrument_id,
            )
            if not result.success:
                return result
            message = (
                f"Sent {format_money(amount, self.currency)} to {contact_name} "
                f"({instrument.display_name}) from {source.name}."
            )
            return ServiceResult.ok(self._outcome(result.data["record"], result.data["balances"], message))
        except Exception as exc:
            logger.exception("External transfer failed user_id=%s from=%s instrument=%s: %s",
                             user_id, from_account_id, instrument_id, exc)
            return ServiceResult.fail(ErrorCode.PAYMENT_FAILED)
