"""
Destination Resolution
Matches free text like "my savings" or "sarah" against the user's own
accounts, contacts and saved billers
"""

import re
from typing import Iterable, List, Optional, Sequence

from payassist.services.models import (
    Account,
    BankAccountDetails,
    BillerAccount,
    BpayBillerDetails,
    Contact,
    PaymentInstrument,
)
from payassist.workflows.state import Destination, TransferPath

FILLER_WORDS = {"my", "the", "a", "an", "to", "for", "bill", "bills", "payment", "pay", "please"}


def tokenize(text: Optional[str]) -> List[str]:
    """Lowercase word tokens with filler words dropped (unless nothing else is left)."""
    tokens = re.findall(r"[a-z0-9]+", (text or "").lower())
    meaningful = [t for t in tokens if t not in FILLER_WORDS]
    return meaningful or tokens


def last_digits(value: Optional[str], count: int = 4) -> Optional[str]:
    digits = re.sub(r"\D", "", value or "")
    if not digits:
        return None
    return f"***{digits[-count:]}"


def _matches(query: Sequence[str], *fields: Optional[str]) -> bool:
    # every query token must be contained in some word of the candidate text
    words = []
    for field in fields:
        words.extend(re.findall(r"[a-z0-9]+", (field or "").lower()))
    if not query or not words:
        return False
    return all(any(q in w for w in words) for q in query)


def account_destination(account: Account) -> Destination:
    return Destination(
        path=TransferPath.INTERNAL,
        label=account.name,
        account_id=account.account_id,
        account_type=account.account_type.value,
    )


def instrument_destination(contact: Contact, instrument: PaymentInstrument) -> Destination:
    details = instrument.details
    if isinstance(details, BankAccountDetails):
        return Destination(
            path=TransferPath.EXTERNAL,
            label=f"{contact.name} - {details.account_name}",
            contact_id=contact.contact_id,
            instrument_id=instrument.instrument_id,
            masked_number=last_digits(details.account_number),
        )
    if isinstance(details, BpayBillerDetails):
        return Destination(
            path=TransferPath.BPAY,
            label=f"{contact.name} - {details.biller_name} (BPAY)",
            contact_id=contact.contact_id,
            instrument_id=instrument.instrument_id,
            biller_code=details.biller_code,
            customer_reference=details.customer_reference,
            masked_number=last_digits(details.customer_reference),
        )
    raise TypeError(f"Unknown payment instrument variant: {type(details).__name__}")


def biller_destination(biller: BillerAccount) -> Destination:
    label = biller.biller_name
    if biller.nickname:
        label = f"{biller.biller_name} ({biller.nickname})"
    return Destination(
        path=TransferPath.BPAY,
        label=label,
        biller_id=biller.biller_id,
        biller_code=biller.biller_code,
        biller_account_number=biller.account_number,
        customer_reference=biller.customer_reference,
        masked_number=last_digits(biller.account_number),
    )


class DestinationResolver:
    """
    Tiered lookup: own accounts, then contacts, then saved billers. The
    first tier with any match wins. Output order follows input order, so
    the same data and text always give the same candidates.
    """

    def match_accounts(self, text: str, accounts: Iterable[Account]) -> List[Account]:
        query = tokenize(text)
        return [a for a in accounts if _matches(query, a.name, a.account_type.value)]

    def match_contacts(self, text: str, contacts: Iterable[Contact]) -> List[Destination]:
        query = tokenize(text)
        out: List[Destination] = []
        for contact in contacts:
            if _matches(query, contact.name):
                out.extend(instrument_destination(contact, i) for i in contact.payment_instruments)
                continue
            for instrument in contact.payment_instruments:
                if _matches(query, instrument.display_name):
                    out.append(instrument_destination(contact, instrument))
        return out

    def match_billers(self, text: str, billers: Iterable[BillerAccount]) -> List[Destination]:
        query = tokenize(text)
        return [
            biller_destination(b)
            for b in billers
            if b.is_active and _matches(query, b.biller_name, b.nickname, b.category.value)
        ]

    def resolve(
        self,
        text: str,
        accounts: Sequence[Account],
        contacts: Sequence[Contact],
        billers: Sequence[BillerAccount] = (),
    ) -> List[Destination]:
        own = [account_destination(a) for a in self.match_accounts(text, accounts)]
        if own:
            return own
        payees = self.match_contacts(text, contacts)
        if payees:
            return payees
        return self.match_billers(text, billers)
