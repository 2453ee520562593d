"""
Destination resolution against the demo user's accounts, contacts and billers.
"""

from datetime import datetime
from decimal import Decimal

import pytest

from payassist.nlu.destination_resolver import DestinationResolver, last_digits, tokenize
from payassist.services.models import Account, AccountType
from payassist.services.seed import demo_dataset
from payassist.workflows.state import TransferPath


@pytest.fixture
def data():
    return demo_dataset()


@pytest.fixture
def resolver():
    return DestinationResolver()


def resolve(resolver, data, text, accounts=None):
    return resolver.resolve(text, accounts if accounts is not None else data.accounts, data.contacts, data.billers)


class TestTokenize:
    def test_filler_words_dropped(self):
        assert tokenize("Pay my Water bill") == ["water"]

    def test_only_filler_words_kept(self):
        assert tokenize("the bill") == ["the", "bill"]

    def test_last_digits(self):
        assert last_digits("987-654-321") == "***4321"
        assert last_digits("abc") is None


class TestTiers:
    """Own accounts win over contacts, contacts over billers."""

    def test_single_own_account(self, resolver, data):
        candidates = resolve(resolver, data, "my savings")
        assert len(candidates) == 1
        assert candidates[0].path == TransferPath.INTERNAL
        assert candidates[0].account_id == "acc2"

    def test_ambiguous_own_accounts(self, resolver, data):
        candidates = resolve(resolver, data, "account")
        assert [c.account_id for c in candidates] == ["acc1", "acc2"]

    def test_contact_with_one_instrument(self, resolver, data):
        candidates = resolve(resolver, data, "sarah")
        assert len(candidates) == 1
        dest = candidates[0]
        assert dest.path == TransferPath.EXTERNAL
        assert dest.instrument_id == "pi3"
        assert dest.describe() == "Sarah Johnson - Paper Cup Supplier (Account: ***2345)"

    def test_contact_with_several_instruments(self, resolver, data):
        candidates = resolve(resolver, data, "coffee")
        assert [(c.instrument_id, c.path) for c in candidates] == [
            ("pi1", TransferPath.EXTERNAL),
            ("pi2", TransferPath.BPAY),
        ]
        assert candidates[1].masked_number == "***7890"

    def test_instrument_name_match(self, resolver, data):
        candidates = resolve(resolver, data, "milk")
        assert [c.instrument_id for c in candidates] == ["pi2"]

    def test_contact_name_and_instrument_names_combined(self, resolver, data):
        candidates = resolve(resolver, data, "supplier")
        assert [c.instrument_id for c in candidates] == ["pi1", "pi2", "pi3"]

    def test_saved_biller_by_name(self, resolver, data):
        candidates = resolve(resolver, data, "water bill")
        assert len(candidates) == 1
        dest = candidates[0]
        assert dest.path == TransferPath.BPAY
        assert dest.biller_id == "biller_001"
        assert dest.label == "Sydney Water (Home Water)"
        assert dest.biller_code == "23796"

    def test_saved_biller_by_category(self, resolver, data):
        candidates = resolve(resolver, data, "utilities")
        assert [c.biller_id for c in candidates] == ["biller_001", "biller_002", "biller_004"]

    def test_account_tier_shadows_contacts(self, resolver, data):
        accounts = data.accounts + [
            Account(account_id="acc3", user_id="user_001", name="Sarah Gift Fund",
                    account_type=AccountType.SAVINGS, balance=Decimal("10")),
        ]
        candidates = resolve(resolver, data, "sarah", accounts=accounts)
        assert [c.account_id for c in candidates] == ["acc3"]

    def test_inactive_biller_ignored(self, resolver, data):
        data.billers[1].is_active = False
        candidates = resolve(resolver, data, "electricity")
        assert candidates == []

    def test_no_match(self, resolver, data):
        assert resolve(resolver, data, "landlord") == []

    def test_same_input_same_output(self, resolver, data):
        first = resolve(resolver, data, "coffee")
        second = resolve(resolver, data, "coffee")
        assert [c.model_dump() for c in first] == [c.model_dump() for c in second]
