"""
SQLAlchemy (async) ledger.

Balance updates run inside one DB transaction with the participating
account rows selected FOR UPDATE, while also holding the in-process
account locks, so a stale read can never pass a sufficiency check.
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncEngine

from payassist.services.db.models import (
    AccountRow,
    AuthTokenRow,
    BillerAccountRow,
    ContactRow,
    PaymentInstrumentRow,
    PaymentRow,
    UserRow,
)
from payassist.services.db.serializers import (
    account_from_row,
    biller_from_row,
    biller_to_row,
    contact_from_rows,
    instrument_to_row,
    payment_from_row,
    payment_to_row,
    user_from_row,
)
from payassist.services.db.session import Base, create_engine, create_session_factory
from payassist.services.models import (
    Account,
    BillerAccount,
    Contact,
    FINAL_PAYMENT_STATUSES,
    PaymentRecord,
    PaymentStatus,
    User,
    to_money,
)
from payassist.services.repository import (
    AccountLocks,
    AccountNotFoundError,
    InsufficientFundsError,
    LedgerError,
    LedgerRepository,
)
from payassist.services.seed import SeedData

logger = logging.getLogger("payassist.services.sql_ledger")


class SqlLedgerRepository(LedgerRepository):
    def __init__(self, database_url: Optional[str] = None, engine: Optional[AsyncEngine] = None, echo: bool = False):
        if engine is None:
            if not database_url:
                raise RuntimeError("SqlLedgerRepository requires database_url or engine")
            engine = create_engine(database_url, echo=echo)
        self.engine = engine
        self.session_factory = create_session_factory(engine)
        self.locks = AccountLocks()

    async def init_schema(self) -> None:
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Ledger schema ready (%s)", self.engine.url)

    async def seed(self, data: SeedData) -> None:
        """Insert the seed rows if the users table is empty."""
        await self.init_schema()
        async with self.session_factory() as db:
            async with db.begin():
                count = (await db.execute(select(func.count()).select_from(UserRow))).scalar_one()
                if count:
                    logger.info("Ledger already seeded (%d users); skipping", count)
                    return
                for user in data.users:
                    db.add(UserRow(user_id=user.user_id, email=user.email, name=user.name,
                                   created_at=user.created_at))
                for token, user_id in data.tokens.items():
                    db.add(AuthTokenRow(token=token, user_id=user_id))
                for position, account in enumerate(data.accounts):
                    db.add(AccountRow(
                        account_id=account.account_id,
                        user_id=account.user_id,
                        name=account.name,
                        account_type=account.account_type.value,
                        currency=account.currency,
                        balance=account.balance,
                        position=position,
                    ))
                for position, contact in enumerate(data.contacts):
                    db.add(ContactRow(
                        contact_id=contact.contact_id,
                        user_id=contact.user_id,
                        name=contact.name,
                        contact_type=contact.contact_type.value,
                        position=position,
                    ))
                    for idx, instrument in enumerate(contact.payment_instruments):
                        db.add(instrument_to_row(contact.contact_id, idx, instrument))
                for biller in data.billers:
                    db.add(biller_to_row(biller))
        logger.info("Ledger seeded with %d users", len(data.users))

    async def get_user_id_for_token(self, token: str) -> Optional[str]:
        async with self.session_factory() as db:
            res = await db.execute(select(AuthTokenRow).where(AuthTokenRow.token == token))
            row = res.scalars().first()
            return row.user_id if row else None

    async def get_user(self, user_id: str) -> Optional[User]:
        async with self.session_factory() as db:
            res = await db.execute(select(UserRow).where(UserRow.user_id == user_id))
            row = res.scalars().first()
            return user_from_row(row) if row else None

    async def list_accounts(self, user_id: str) -> List[Account]:
        async with self.session_factory() as db:
            res = await db.execute(
                select(AccountRow).where(AccountRow.user_id == user_id).order_by(AccountRow.position, AccountRow.account_id)
            )
            return [account_from_row(a) for a in res.scalars().all()]

    async def get_account(self, user_id: str, account_id: str) -> Optional[Account]:
        async with self.session_factory() as db:
            res = await db.execute(
                select(AccountRow).where(AccountRow.user_id == user_id, AccountRow.account_id == account_id)
            )
            row = res.scalars().first()
            return account_from_row(row) if row else None

    async def list_contacts(self, user_id: str) -> List[Contact]:
        async with self.session_factory() as db:
            res = await db.execute(
                select(ContactRow).where(ContactRow.user_id == user_id).order_by(ContactRow.position, ContactRow.contact_id)
            )
            contacts = res.scalars().all()
            out: List[Contact] = []
            for c in contacts:
                inst_res = await db.execute(
                    select(PaymentInstrumentRow)
                    .where(PaymentInstrumentRow.contact_id == c.contact_id)
                    .order_by(PaymentInstrumentRow.position, PaymentInstrumentRow.instrument_id)
                )
                out.append(contact_from_rows(c, inst_res.scalars().all()))
            return out

    async def list_billers(self, user_id: str, include_inactive: bool = False) -> List[BillerAccount]:
        async with self.session_factory() as db:
            stmt = select(BillerAccountRow).where(BillerAccountRow.user_id == user_id)
            if not include_inactive:
                stmt = stmt.where(BillerAccountRow.is_active.is_(True))
            res = await db.execute(stmt.order_by(BillerAccountRow.biller_id))
            return [biller_from_row(b) for b in res.scalars().all()]

    async def save_biller(self, biller: BillerAccount) -> BillerAccount:
        async with self.session_factory() as db:
            async with db.begin():
                await db.merge(biller_to_row(biller))
        return biller

    async def apply_transfer(
        self,
        user_id: str,
        debit_account_id: str,
        amount: Decimal,
        credit_account_id: Optional[str] = None,
    ) -> Dict[str, Decimal]:
        amount = to_money(amount)
        async with self.locks.hold(debit_account_id, credit_account_id):
            async with self.session_factory() as db:
                async with db.begin():
                    res_from = await db.execute(
                        select(AccountRow)
                        .where(AccountRow.account_id == debit_account_id, AccountRow.user_id == user_id)
                        .with_for_update()
                    )
                    acct_from = res_from.scalars().first()
                    if acct_from is None:
                        raise AccountNotFoundError(debit_account_id)

                    acct_to = None
                    if credit_account_id:
                        res_to = await db.execute(
                            select(AccountRow)
                            .where(AccountRow.account_id == credit_account_id, AccountRow.user_id == user_id)
                            .with_for_update()
                        )
                        acct_to = res_to.scalars().first()
                        if acct_to is None:
                            raise AccountNotFoundError(credit_account_id)

                    available = to_money(acct_from.balance or 0)
                    if available < amount:
                        raise InsufficientFundsError(account_from_row(acct_from), amount)

                    new_balance_from = to_money(available - amount)
                    acct_from.balance = new_balance_from
                    balances = {acct_from.account_id: new_balance_from}
                    if acct_to is not None:
                        new_balance_to = to_money(to_money(acct_to.balance or 0) + amount)
                        acct_to.balance = new_balance_to
                        balances[acct_to.account_id] = new_balance_to

        logger.info("Ledger transfer committed user=%s debit=%s credit=%s amount=%s", user_id,
                    debit_account_id, credit_account_id, amount)
        return balances

    async def save_payment(self, record: PaymentRecord) -> PaymentRecord:
        async with self.session_factory() as db:
            async with db.begin():
                res = await db.execute(select(PaymentRow).where(PaymentRow.payment_id == record.payment_id))
                existing = res.scalars().first()
                if existing is not None and PaymentStatus(existing.status) in FINAL_PAYMENT_STATUSES:
                    raise LedgerError(f"Payment {record.payment_id} is final and cannot be modified")
                await db.merge(payment_to_row(record))
        return record

    async def get_payment(self, user_id: str, payment_id: str) -> Optional[PaymentRecord]:
        async with self.session_factory() as db:
            res = await db.execute(
                select(PaymentRow).where(PaymentRow.payment_id == payment_id, PaymentRow.user_id == user_id)
            )
            row = res.scalars().first()
            return payment_from_row(row) if row else None

    async def close(self) -> None:
        await self.engine.dispose()
