"""
Wiring for the PayAssist runtime: ledger -> services -> tools -> engine ->
agent -> orchestrator. Shared by the HTTP app and the terminal client.
"""

import logging
from typing import Optional

from payassist import config
from payassist.agent.agent import PaymentAgent
from payassist.agent.orchestrator import ConversationOrchestrator
from payassist.clients.base import ReasoningClient
from payassist.clients.gemini_llm_client import GeminiLLMClient
from payassist.context.session_manager import SessionManager, get_session_manager
from payassist.services import BankServices, create_ledger
from payassist.services.repository import LedgerRepository
from payassist.tools.banking_tools import build_banking_registry
from payassist.workflows.transfer_engine import TransferDecisionEngine

logger = logging.getLogger("payassist.orchestrator")


async def build_orchestrator(
    llm_client: Optional[ReasoningClient] = None,
    ledger: Optional[LedgerRepository] = None,
    session_manager: Optional[SessionManager] = None,
    currency: Optional[str] = None,
    max_iterations: Optional[int] = None,
) -> ConversationOrchestrator:
    currency = currency or config.CURRENCY
    if ledger is None:
        ledger = await create_ledger()
    if llm_client is None:
        llm_client = GeminiLLMClient()

    services = BankServices(ledger, currency)
    registry = build_banking_registry()
    engine = TransferDecisionEngine(services, currency=currency)
    agent = PaymentAgent(llm_client, registry.signatures(), currency)
    orchestrator = ConversationOrchestrator(
        agent,
        registry,
        services,
        engine,
        session_manager or get_session_manager(),
        max_iterations=max_iterations or config.MAX_TOOL_ITERATIONS,
    )
    logger.info("Orchestrator ready: %d tools, currency=%s", len(registry.names()), currency)
    return orchestrator
