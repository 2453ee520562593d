"""
Reply Classification
Labels a user reply to a confirmation prompt as affirm / decline / other
"""

import re
from enum import Enum
from typing import Tuple


class Reply(str, Enum):
    AFFIRM = "AFFIRM"
    DECLINE = "DECLINE"
    OTHER = "OTHER"


AFFIRM_PHRASES: Tuple[str, ...] = (
    "go ahead",
    "do it",
    "yes",
    "y",
    "yeah",
    "yep",
    "yup",
    "confirm",
    "confirmed",
    "proceed",
    "ok",
    "okay",
    "sure",
    "approve",
    "approved",
)

DECLINE_WORDS = {"no", "n", "nope", "nah", "cancel", "stop", "abort", "don't", "dont"}

# idioms that contain a decline word but do not decline
NON_DECLINE_PHRASES: Tuple[str, ...] = ("no worries", "no problem", "no dramas", "don't mind", "dont mind")


def _tokens(text: str) -> list:
    return re.findall(r"[a-z']+|\d+", (text or "").lower())


def classify_reply(text: str) -> Reply:
    """
    Decline wins over affirm ("yes, actually no" is a decline), after idioms
    like "no worries" are taken out. An affirm
    must open the reply and carry no numbers, since "yes but make it 60"
    is a change request rather than a confirmation.
    """
    tokens = _tokens(text)
    joined = " ".join(tokens)
    for phrase in NON_DECLINE_PHRASES:
        joined = re.sub(r"\b%s\b" % re.escape(phrase), " ", joined)
    tokens = joined.split()
    if not tokens:
        return Reply.OTHER
    if any(tok in DECLINE_WORDS for tok in tokens):
        return Reply.DECLINE
    if any(tok.isdigit() for tok in tokens):
        return Reply.OTHER
    opening = " ".join(tokens[:2])
    for phrase in AFFIRM_PHRASES:
        if opening == phrase or opening.startswith(phrase + " ") or tokens[0] == phrase:
            return Reply.AFFIRM
    return Reply.OTHER
