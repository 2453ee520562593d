"""
payassist/agent

Agent package for PayAssist:
- agent.py: PaymentAgent (reasoning request + decision parsing)
- orchestrator.py: ConversationOrchestrator (turn loop + tools + events)
- helpers.py: shared utilities used by both
"""

from .agent import Decision, PaymentAgent  # noqa: F401
from .orchestrator import ConversationOrchestrator, TurnResult  # noqa: F401
