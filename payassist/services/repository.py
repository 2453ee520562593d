"""
Ledger repository contract and the in-memory implementation.

Balance mutation goes through ``apply_transfer`` only. It holds the
per-account locks of every participating account (acquired in sorted id
order) for the whole read-check-write sequence, and applies the debit and
credit together or not at all.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import AsyncExitStack, asynccontextmanager
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional

from payassist.services.errors import ErrorCode
from payassist.services.models import Account, BillerAccount, Contact, PaymentRecord, User, to_money
from payassist.services.seed import SeedData

logger = logging.getLogger("payassist.services.ledger")


class LedgerError(Exception):
    code = ErrorCode.UNKNOWN_ERROR


class AccountNotFoundError(LedgerError):
    code = ErrorCode.ACCOUNT_NOT_FOUND

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class InsufficientFundsError(LedgerError):
    code = ErrorCode.INSUFFICIENT_FUNDS

    def __init__(self, account: Account, requested: Decimal):
        self.account = account
        self.available = account.balance
        self.requested = requested
        super().__init__(f"Insufficient funds in {account.account_id}: available={account.balance} requested={requested}")


class AccountLocks:
    """
    One asyncio.Lock per account id. Locks for a multi-account operation
    are always taken in sorted order so two transfers touching the same
    pair of accounts cannot deadlock.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, account_id: str) -> asyncio.Lock:
        lock = self._locks.get(account_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[account_id] = lock
        return lock

    @asynccontextmanager
    async def hold(self, *account_ids: Optional[str]) -> AsyncIterator[None]:
        ids = sorted({a for a in account_ids if a})
        async with AsyncExitStack() as stack:
            for account_id in ids:
                await stack.enter_async_context(self._lock_for(account_id))
            yield


class LedgerRepository(ABC):
    """Data-access contract consumed by the domain services."""

    @abstractmethod
    async def seed(self, data: SeedData) -> None: ...

    @abstractmethod
    async def get_user_id_for_token(self, token: str) -> Optional[str]: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    async def list_accounts(self, user_id: str) -> List[Account]: ...

    async def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        for account in await self.list_accounts(user_id):
            if account.account_id == account_id:
                return account
        return None

    @abstractmethod
    async def list_contacts(self, user_id: str) -> List[Contact]: ...

    @abstractmethod
    async def list_billers(self, user_id: str, include_inactive: bool = False) -> List[BillerAccount]: ...

    async def get_biller(self, user_id: str, biller_id: str) -> Optional[BillerAccount]:
        for biller in await self.list_billers(user_id, include_inactive=True):
            if biller.biller_id == biller_id:
                return biller
        return None

    @abstractmethod
    async def save_biller(self, biller: BillerAccount) -> BillerAccount: ...

    @abstractmethod
    async def apply_transfer(
        self,
        user_id: str,
        debit_account_id: str,
        amount: Decimal,
        credit_account_id: Optional[str] = None,
    ) -> Dict[str, Decimal]:
        """
        Debit ``debit_account_id`` (and credit ``credit_account_id`` when
        given) atomically. Returns the new balances keyed by account id.

        Raises AccountNotFoundError / InsufficientFundsError without
        touching any balance.
        """

    @abstractmethod
    async def save_payment(self, record: PaymentRecord) -> PaymentRecord: ...

    @abstractmethod
    async def get_payment(self, user_id: str, payment_id: str) -> Optional[PaymentRecord]: ...

    async def close(self) -> None:
        return None


class InMemoryLedger(LedgerRepository):
    """
    Dict-backed ledger. Reads hand out copies so callers never hold a
    reference to the stored rows.

    ``latency`` simulates a slow backing store (seconds, awaited inside the
    critical section between the balance read and the write).
    """

    def __init__(self, latency: float = 0.0) -> None:
        self.latency = latency
        self.locks = AccountLocks()
        self._users: Dict[str, User] = {}
        self._tokens: Dict[str, str] = {}
        self._accounts: Dict[str, Account] = {}
        self._contacts: Dict[str, Contact] = {}
        self._billers: Dict[str, BillerAccount] = {}
        self._payments: Dict[str, PaymentRecord] = {}

    @classmethod
    def from_seed(cls, data: SeedData, latency: float = 0.0) -> "InMemoryLedger":
        ledger = cls(latency=latency)
        ledger._load(data)
        return ledger

    def _load(self, data: SeedData) -> None:
        for user in data.users:
            self._users[user.user_id] = user
        self._tokens.update(data.tokens)
        for account in data.accounts:
            self._accounts[account.account_id] = account.model_copy(deep=True)
        for contact in data.contacts:
            self._contacts[contact.contact_id] = contact.model_copy(deep=True)
        for biller in data.billers:
            self._billers[biller.biller_id] = biller.model_copy(deep=True)
        logger.info(
            "Ledger seeded: users=%d accounts=%d contacts=%d billers=%d",
            len(data.users), len(data.accounts), len(data.contacts), len(data.billers),
        )

    async def seed(self, data: SeedData) -> None:
        self._load(data)

    async def get_user_id_for_token(self, token: str) -> Optional[str]:
        return self._tokens.get(token)

    async def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    async def list_accounts(self, user_id: str) -> List[Account]:
        return [a.model_copy() for a in self._accounts.values() if a.user_id == user_id]

    async def list_contacts(self, user_id: str) -> List[Contact]:
        return [c.model_copy(deep=True) for c in self._contacts.values() if c.user_id == user_id]

    async def list_billers(self, user_id: str, include_inactive: bool = False) -> List[BillerAccount]:
        return [
            b.model_copy()
            for b in self._billers.values()
            if b.user_id == user_id and (include_inactive or b.is_active)
        ]

    async def save_biller(self, biller: BillerAccount) -> BillerAccount:
        self._billers[biller.biller_id] = biller.model_copy()
        return biller

    def _owned_account(self, user_id: str, account_id: Optional[str]) -> Account:
        account = self._accounts.get(account_id or "")
        if account is None or account.user_id != user_id:
            raise AccountNotFoundError(account_id or "")
        return account

    async def apply_transfer(
        self,
        user_id: str,
        debit_account_id: str,
        amount: Decimal,
        credit_account_id: Optional[str] = None,
    ) -> Dict[str, Decimal]:
        amount = to_money(amount)
        async with self.locks.hold(debit_account_id, credit_account_id):
            source = self._owned_account(user_id, debit_account_id)
            target = self._owned_account(user_id, credit_account_id) if credit_account_id else None

            available = source.balance
            if self.latency:
                await asyncio.sleep(self.latency)
            if available < amount:
                raise InsufficientFundsError(source.model_copy(), amount)

            new_source = to_money(available - amount)
            new_target = to_money(target.balance + amount) if target is not None else None

            # both writes happen with no await in between
            source.balance = new_source
            balances = {source.account_id: new_source}
            if target is not None:
                target.balance = new_target
                balances[target.account_id] = new_target

        logger.info("Ledger transfer applied user=%s debit=%s credit=%s amount=%s", user_id,
                    debit_account_id, credit_account_id, amount)
        return balances

    async def save_payment(self, record: PaymentRecord) -> PaymentRecord:
        existing = self._payments.get(record.payment_id)
        if existing is not None and existing.is_final:
            raise LedgerError(f"Payment {record.payment_id} is final and cannot be modified")
        self._payments[record.payment_id] = record.model_copy()
        return record

    async def get_payment(self, user_id: str, payment_id: str) -> Optional[PaymentRecord]:
        record = self._payments.get(payment_id)
        if record is None or record.user_id != user_id:
            return None
        return record.model_copy()
