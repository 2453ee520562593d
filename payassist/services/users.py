import logging

from payassist.services.errors import ErrorCode
from payassist.services.models import User
from payassist.services.repository import LedgerRepository
from payassist.services.results import ServiceResult

logger = logging.getLogger("payassist.services.users")


class UserService:
    def __init__(self, ledger: LedgerRepository) -> None:
        self.ledger = ledger

    async def get_user(self, token: str) -> ServiceResult[User]:
        """Resolve an opaque credential to the user it belongs to."""
        if not token or not token.strip():
            return ServiceResult.fail(ErrorCode.INVALID_TOKEN)
        try:
            user_id = await self.ledger.get_user_id_for_token(token.strip())
            if not user_id:
                logger.warning("Unknown token presented (len=%d)", len(token))
                return ServiceResult.fail(ErrorCode.INVALID_TOKEN)
            user = await self.ledger.get_user(user_id)
            if user is None:
                logger.warning("Token resolved to missing user_id=%s", user_id)
                return ServiceResult.fail(ErrorCode.USER_NOT_FOUND)
            return ServiceResult.ok(user)
        except Exception as exc:
            logger.exception("get_user failed: %s", exc)
            return ServiceResult.fail(ErrorCode.SERVICE_UNAVAILABLE)
