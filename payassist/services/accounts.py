import logging
from typing import List

from payassist.services.errors import ErrorCode
from payassist.services.models import Account
from payassist.services.repository import LedgerRepository
from payassist.services.results import ServiceResult

logger = logging.getLogger("payassist.services.accounts")


class AccountService:
    def __init__(self, ledger: LedgerRepository) -> None:
        self.ledger = ledger

    async def get_accounts(self, user_id: str) -> ServiceResult[List[Account]]:
        try:
            accounts = await self.ledger.list_accounts(user_id)
            logger.info("Fetched %d accounts for user_id=%s", len(accounts), user_id)
            return ServiceResult.ok(accounts)
        except Exception as exc:
            logger.exception("get_accounts failed for user_id=%s: %s", user_id, exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)

    async def get_account(self, user_id: str, account_id: str) -> ServiceResult[Account]:
        try:
            account = await self.ledger.get_account(user_id, account_id)
        except Exception as exc:
            logger.exception("get_account failed for user_id=%s account_id=%s: %s", user_id, account_id, exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)
        if account is None:
            return ServiceResult.fail(ErrorCode.ACCOUNT_NOT_FOUND, "Account not found")
        return ServiceResult.ok(account)
