"""
payassist/services

Domain services over an injected LedgerRepository. Every call returns a
ServiceResult; nothing raises across this boundary.
"""

import logging
from typing import Optional

from payassist import config
from payassist.services.accounts import AccountService
from payassist.services.billers import BillerService
from payassist.services.contacts import ContactService
from payassist.services.models import ExternalKind
from payassist.services.payments import PaymentService
from payassist.services.repository import InMemoryLedger, LedgerRepository
from payassist.services.seed import demo_dataset
from payassist.services.transfers import TransferService
from payassist.services.users import UserService

logger = logging.getLogger("payassist.services")


class BankServices:
    """Single entry point bundling the domain services for one ledger."""

    def __init__(self, ledger: LedgerRepository, currency: str = "AUD") -> None:
        self.ledger = ledger
        self.currency = currency
        self.users = UserService(ledger)
        self.accounts = AccountService(ledger)
        self.contacts = ContactService(ledger)
        self.billers = BillerService(ledger)
        self.payments = PaymentService(ledger, self.billers, currency)
        self.transfers = TransferService(ledger, currency)

    async def get_user(self, token: str):
        return await self.users.get_user(token)

    async def get_accounts(self, user_id: str):
        return await self.accounts.get_accounts(user_id)

    async def get_contacts(self, user_id: str):
        return await self.contacts.get_contacts(user_id)

    async def pay_bill(self, user_id, biller_code, account_number, customer_reference, amount, from_account_id=None):
        return await self.payments.pay_bill(
            user_id, biller_code, account_number, customer_reference, amount, from_account_id=from_account_id
        )

    async def transfer_between_own_accounts(self, user_id, from_account_id, to_account_id, amount):
        return await self.transfers.transfer_between_own_accounts(user_id, from_account_id, to_account_id, amount)

    async def transfer_to_external(self, user_id, from_account_id, instrument_id, amount, kind: ExternalKind):
        return await self.transfers.transfer_to_external(user_id, from_account_id, instrument_id, amount, kind)

    async def close(self) -> None:
        await self.ledger.close()


async def create_ledger(backend: Optional[str] = None, database_url: Optional[str] = None) -> LedgerRepository:
    """
    Build the configured ledger and load the demo data into it.
    """
    backend = (backend or config.LEDGER_BACKEND).lower()
    if backend == "sql":
        from payassist.services.sql_repository import SqlLedgerRepository

        ledger = SqlLedgerRepository(database_url or config.DATABASE_URL, echo=config.DATABASE_ECHO)
        await ledger.seed(demo_dataset())
        logger.info("Using SQL ledger at %s", ledger.engine.url)
        return ledger
    if backend != "memory":
        raise RuntimeError(f"Unknown LEDGER_BACKEND '{backend}'. Use 'memory' or 'sql'.")
    logger.info("Using in-memory ledger with demo data")
    return InMemoryLedger.from_seed(demo_dataset())
