# payassist/services/db/models.py
from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String

from payassist.services.db.session import Base


class UserRow(Base):
    __tablename__ = "users"

    user_id = Column(String(64), primary_key=True)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False)


class AuthTokenRow(Base):
    __tablename__ = "auth_tokens"

    token = Column(String(512), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False)


class AccountRow(Base):
    __tablename__ = "accounts"

    account_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    account_type = Column(String(20), nullable=False)
    currency = Column(String(3), default="AUD")
    balance = Column(Numeric(15, 2), nullable=False)
    position = Column(Integer, default=0)


class ContactRow(Base):
    __tablename__ = "contacts"

    contact_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    contact_type = Column(String(20), nullable=False)
    position = Column(Integer, default=0)


class PaymentInstrumentRow(Base):
    __tablename__ = "payment_instruments"

    instrument_id = Column(String(64), primary_key=True)
    contact_id = Column(String(64), ForeignKey("contacts.contact_id"), nullable=False, index=True)
    kind = Column(String(20), nullable=False)
    position = Column(Integer, default=0)
    # bank_account variant
    routing_number = Column(String(20))
    account_number = Column(String(34))
    account_name = Column(String(255))
    # bpay variant
    biller_name = Column(String(255))
    biller_code = Column(String(20))
    customer_reference = Column(String(40))


class BillerAccountRow(Base):
    __tablename__ = "biller_accounts"

    biller_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    biller_code = Column(String(20), nullable=False)
    biller_name = Column(String(255), nullable=False)
    account_number = Column(String(34), nullable=False)
    customer_reference = Column(String(40), nullable=False)
    nickname = Column(String(100))
    category = Column(String(20), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, nullable=False)
    last_paid_at = Column(DateTime)


class PaymentRow(Base):
    __tablename__ = "payments"

    payment_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)
    kind = Column(String(30), nullable=False)
    amount_minor = Column(Integer, nullable=False)
    currency = Column(String(3), nullable=False)
    status = Column(String(20), nullable=False)
    reference = Column(String(50), nullable=False)
    source_account_id = Column(String(64))
    destination = Column(String(255))
    initiated_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    failure_reason = Column(String)
