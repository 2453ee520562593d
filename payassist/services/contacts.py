import logging
from typing import List

from payassist.services.errors import ErrorCode
from payassist.services.models import Contact
from payassist.services.repository import LedgerRepository
from payassist.services.results import ServiceResult

logger = logging.getLogger("payassist.services.contacts")


class ContactService:
    def __init__(self, ledger: LedgerRepository) -> None:
        self.ledger = ledger

    async def get_contacts(self, user_id: str) -> ServiceResult[List[Contact]]:
        try:
            contacts = await self.ledger.list_contacts(user_id)
            logger.info("Fetched %d contacts for user_id=%s", len(contacts), user_id)
            return ServiceResult.ok(contacts)
        except Exception as exc:
            logger.exception("get_contacts failed for user_id=%s: %s", user_id, exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)
