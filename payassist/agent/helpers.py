"""
Shared utilities for the PaymentAgent and the ConversationOrchestrator.

Formatting, history rendering and prompt-assembly helpers live here so the
main classes stay focused on the turn logic.
"""

from typing import Any, Dict, List, Optional, Sequence
import json
import logging
import re

from payassist.services.models import Account, Contact, User, format_money, to_money
from payassist.workflows.state import TransferWorkflow


logger = logging.getLogger("agent")


def format_amount(value: Any, currency: str = "AUD") -> Optional[str]:
    """Return "$1,234.50 AUD" style text, or None if the value isn't a number."""
    if value is None:
        return None
    try:
        if isinstance(value, str):
            value = re.sub(r"[^\d.\-]", "", value)
        return format_money(to_money(value), currency)
    except (ArithmeticError, ValueError):
        return None


def mask_account(acct: Optional[str]) -> Optional[str]:
    """Return ***1234 for an account or reference number."""
    if not acct:
        return None
    digits = re.sub(r"\D", "", str(acct))
    if not digits:
        return str(acct)
    return f"***{digits[-4:]}"


def format_observation_for_history(tool_name: str, observation: Any) -> str:
    """
    Summarise a tool observation so it can be stored compactly in history.
    """
    if isinstance(observation, dict):
        if not observation.get("success", True):
            error = observation.get("error") or {}
            return f"{tool_name} -> error: {error.get('message', '')}"
        data = observation.get("data", observation)
        if isinstance(data, dict) and data.get("message"):
            return f"{tool_name} -> {data.get('state', 'ok')}: {data['message']}"[:300]
        if isinstance(data, list):
            return f"{tool_name} -> returned {len(data)} item(s)"
        return f"{tool_name} -> {json.dumps(data, default=str)[:200]}"
    return f"{tool_name} -> {str(observation)[:200]}"


def build_user_context_block(
    user: Optional[User],
    accounts: Sequence[Account],
    contacts: Optional[Sequence[Contact]] = None,
    workflow: Optional[TransferWorkflow] = None,
    notices: Sequence[str] = (),
    currency: str = "AUD",
) -> str:
    """
    Build a compact USER CONTEXT block. Balances come from a fetch made at
    the start of this turn.
    """
    if user is None:
        return "- (none)"

    lines: List[str] = [f"- name: {user.name}", f"- email: {user.email}"]

    if accounts:
        lines.append("- accounts (balances as of this turn):")
        for acc in accounts:
            lines.append(
                f"  - {acc.name} ({acc.account_type.value.lower()}): {format_money(acc.balance, currency)}"
            )
    else:
        lines.append("- accounts: (unavailable)")

    if contacts:
        lines.append(f"- saved_contacts: {', '.join(c.name for c in contacts)}")

    if workflow is not None and not workflow.is_closed:
        lines.append(f"- transfer_in_progress: {workflow.state.value}")
        if workflow.destination is not None:
            lines.append(f"  - destination: {workflow.destination.describe()}")
        if workflow.amount is not None:
            lines.append(f"  - amount: {format_money(workflow.amount, currency)}")
        if workflow.pending is not None:
            lines.append(f"  - waiting_for_confirmation: {workflow.pending.summary}")

    for notice in notices:
        lines.append(f"- notice: {notice}")

    return "\n".join(lines)


def build_tools_block(tool_spec: Dict[str, Any]) -> str:
    """
    Build a TOOLS block description from tool signatures.
    """
    lines: List[str] = []
    for name, meta in (tool_spec or {}).items():
        params_meta = meta.get("params", {}) or {}
        params = ", ".join(
            f"{p} (required)" if (p_meta or {}).get("required") else f"{p} (optional)"
            for p, p_meta in params_meta.items()
        ) or "none"
        desc = meta.get("description", "")
        lines.append(f"- {name}: {desc} Params: {params}")
    return "\n".join(lines)
