"""
Saved BPAY billers: search, validation, creation and soft removal.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel

from payassist.services.errors import ErrorCode
from payassist.services.models import BillerAccount, BillerCategory
from payassist.services.repository import LedgerRepository
from payassist.services.results import ServiceResult
from payassist.services.seed import BILLER_DIRECTORY

logger = logging.getLogger("payassist.services.billers")

MIN_ACCOUNT_NUMBER_LENGTH = 6
MIN_CRN_LENGTH = 4


class BillerValidation(BaseModel):
    is_valid: bool
    biller_name: Optional[str] = None
    account_status: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


def matches_biller(biller: BillerAccount, search_term: str) -> bool:
    term = search_term.lower()
    return (
        term in biller.biller_name.lower()
        or (biller.nickname is not None and term in biller.nickname.lower())
        or term in biller.category.value.lower()
    )


class BillerService:
    def __init__(self, ledger: LedgerRepository, directory: Optional[Dict[str, str]] = None) -> None:
        self.ledger = ledger
        self.directory = directory if directory is not None else BILLER_DIRECTORY

    async def get_saved_billers(
        self,
        user_id: str,
        name_filter: Optional[str] = None,
        category: Optional[str] = None,
    ) -> ServiceResult[List[BillerAccount]]:
        """
        Active billers for the user. ``name_filter`` is a case-insensitive
        substring match over biller name, nickname and category.
        """
        try:
            billers = await self.ledger.list_billers(user_id)
        except Exception as exc:
            logger.exception("get_saved_billers failed for user_id=%s: %s", user_id, exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)

        if name_filter and name_filter.strip():
            billers = [b for b in billers if matches_biller(b, name_filter.strip())]
        if category:
            billers = [b for b in billers if b.category.value == category.lower()]

        logger.info(
            "Saved billers user_id=%s filter=%r category=%r -> %d",
            user_id, name_filter, category, len(billers),
        )
        return ServiceResult.ok(billers)

    def validate_biller(self, biller_code: str, account_number: str, customer_reference: str) -> BillerValidation:
        if biller_code not in self.directory:
            return BillerValidation(
                is_valid=False,
                error_code=ErrorCode.INVALID_BILLER_CODE.value,
                error_message="Invalid biller code. Please check and try again.",
            )
        if len(account_number or "") < MIN_ACCOUNT_NUMBER_LENGTH:
            return BillerValidation(
                is_valid=False,
                error_code=ErrorCode.INVALID_ACCOUNT_NUMBER.value,
                error_message="Account number must be at least 6 digits.",
            )
        if len(customer_reference or "") < MIN_CRN_LENGTH:
            return BillerValidation(
                is_valid=False,
                error_code=ErrorCode.INVALID_CRN.value,
                error_message="Customer reference number must be at least 4 digits.",
            )
        return BillerValidation(
            is_valid=True,
            biller_name=self.directory.get(biller_code, "Unknown Biller"),
            account_status="active",
        )

    async def create_biller(
        self,
        user_id: str,
        biller_code: str,
        biller_name: str,
        account_number: str,
        customer_reference: str,
        category: str = BillerCategory.OTHER.value,
        nickname: Optional[str] = None,
    ) -> ServiceResult[BillerAccount]:
        if biller_code not in self.directory:
            return ServiceResult.fail(ErrorCode.INVALID_BILLER_CODE)
        try:
            biller = BillerAccount(
                biller_id=f"biller_{uuid4().hex[:12]}",
                user_id=user_id,
                biller_code=biller_code,
                biller_name=biller_name,
                account_number=account_number,
                customer_reference=customer_reference,
                nickname=nickname,
                category=BillerCategory((category or "other").lower()),
                created_at=datetime.now(),
            )
            await self.ledger.save_biller(biller)
        except ValueError:
            return ServiceResult.fail(ErrorCode.VALIDATION_ERROR, f"Unknown biller category '{category}'.")
        except Exception as exc:
            logger.exception("create_biller failed for user_id=%s: %s", user_id, exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)
        logger.info("Created biller %s (%s) for user_id=%s", biller.biller_id, biller_code, user_id)
        return ServiceResult.ok(biller)

    async def deactivate_biller(self, user_id: str, biller_id: str) -> ServiceResult[BillerAccount]:
        """Soft-delete: the biller stays stored but is no longer listed."""
        try:
            biller = await self.ledger.get_biller(user_id, biller_id)
            if biller is None or not biller.is_active:
                return ServiceResult.fail(ErrorCode.BILLER_NOT_FOUND)
            biller.is_active = False
            await self.ledger.save_biller(biller)
        except Exception as exc:
            logger.exception("deactivate_biller failed for user_id=%s biller_id=%s: %s", user_id, biller_id, exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)
        logger.info("Deactivated biller %s for user_id=%s", biller_id, user_id)
        return ServiceResult.ok(biller)

    async def mark_paid(self, user_id: str, biller_code: str, account_number: str, paid_at: datetime) -> None:
        """Stamp last_paid_at on the saved biller matching a completed payment (if any)."""
        for biller in await self.ledger.list_billers(user_id):
            if biller.biller_code == biller_code and biller.account_number == account_number:
                biller.last_paid_at = paid_at
                await self.ledger.save_biller(biller)
