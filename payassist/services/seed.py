"""
Demo data loaded into a fresh ledger, plus the BPAY biller directory used
for biller-code validation.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Dict, List

from payassist.services.models import (
    Account,
    AccountType,
    BankAccountDetails,
    BillerAccount,
    BillerCategory,
    BpayBillerDetails,
    Contact,
    ContactKind,
    PaymentInstrument,
    User,
)

# Biller code -> registered biller name
BILLER_DIRECTORY: Dict[str, str] = {
    "23796": "Sydney Water",
    "12345": "AGL Energy",
    "54321": "Telstra",
    "67890": "Origin Energy",
    "11111": "Optus",
    "99999": "Test Biller",
}


@dataclass
class SeedData:
    users: List[User] = field(default_factory=list)
    tokens: Dict[str, str] = field(default_factory=dict)
    accounts: List[Account] = field(default_factory=list)
    contacts: List[Contact] = field(default_factory=list)
    billers: List[BillerAccount] = field(default_factory=list)


def demo_dataset() -> SeedData:
    users = [
        User(user_id="user_001", email="john.smith@example.com", name="John Smith",
             created_at=datetime(2023, 1, 15)),
        User(user_id="user_002", email="jane.doe@example.com", name="Jane Doe",
             created_at=datetime(2023, 3, 20)),
    ]
    tokens = {
        "mock_jwt_token_001": "user_001",
        "mock_jwt_token_002": "user_002",
    }
    accounts = [
        Account(account_id="acc1", user_id="user_001", name="Daily Expense Account",
                account_type=AccountType.TRANSACTIONAL, balance=Decimal("500.00")),
        Account(account_id="acc2", user_id="user_001", name="Savings Account",
                account_type=AccountType.SAVINGS, balance=Decimal("15000.00")),
    ]
    contacts = [
        Contact(
            contact_id="contact1",
            user_id="user_001",
            name="Coffee Supplier",
            contact_type=ContactKind.BUSINESS,
            payment_instruments=[
                PaymentInstrument(
                    instrument_id="pi1",
                    details=BankAccountDetails(routing_number="123456", account_number="987654321",
                                               account_name="Bean Supplier"),
                ),
                PaymentInstrument(
                    instrument_id="pi2",
                    details=BpayBillerDetails(biller_name="Milk Supplier", biller_code="654321",
                                              customer_reference="1234567890"),
                ),
            ],
        ),
        Contact(
            contact_id="contact2",
            user_id="user_001",
            name="Sarah Johnson",
            contact_type=ContactKind.PERSON,
            payment_instruments=[
                PaymentInstrument(
                    instrument_id="pi3",
                    details=BankAccountDetails(routing_number="456789", account_number="789012345",
                                               account_name="Paper Cup Supplier"),
                ),
            ],
        ),
    ]
    billers = [
        BillerAccount(biller_id="biller_001", user_id="user_001", biller_code="23796", biller_name="Sydney Water",
                      account_number="123456789", customer_reference="987654321", nickname="Home Water",
                      category=BillerCategory.UTILITIES, created_at=datetime(2023, 2, 1),
                      last_paid_at=datetime(2024, 1, 15)),
        BillerAccount(biller_id="biller_002", user_id="user_001", biller_code="12345", biller_name="AGL Energy",
                      account_number="111222333", customer_reference="444555666", nickname="Electricity",
                      category=BillerCategory.UTILITIES, created_at=datetime(2023, 2, 1)),
        BillerAccount(biller_id="biller_003", user_id="user_001", biller_code="54321", biller_name="Telstra",
                      account_number="777888999", customer_reference="000111222",
                      category=BillerCategory.TELECOM, created_at=datetime(2023, 3, 1)),
        BillerAccount(biller_id="biller_004", user_id="user_001", biller_code="67890", biller_name="Origin Gas",
                      account_number="333444555", customer_reference="666777888", nickname="Gas Bill",
                      category=BillerCategory.UTILITIES, created_at=datetime(2023, 4, 1)),
    ]
    return SeedData(users=users, tokens=tokens, accounts=accounts, contacts=contacts, billers=billers)
