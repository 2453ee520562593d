"""
payassist

Conversational payments orchestrator:
- services/: domain services over an injected ledger repository
- tools/: typed tool registry exposed to the reasoning model
- workflows/: transfer decision engine (resolution, checks, remediation)
- agent/: PaymentAgent (brain) + ConversationOrchestrator (turn loop)
- context/: per-thread session state
"""

__version__ = "1.0.0"
