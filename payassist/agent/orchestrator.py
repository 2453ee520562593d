"""
agent/orchestrator.py

ConversationOrchestrator:
- Runs the ReAct-style loop by delegating to the agent for decisions.
- Executes tools between decision steps and streams events to the caller.
- Feeds every user message to the TransferDecisionEngine's confirmation
  gate before the reasoning model sees it.

Turns on the same thread run one at a time; different threads run
concurrently.
"""

import asyncio
import logging
import weakref
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Tuple

from payassist import config
from payassist.agent.agent import Decision, PaymentAgent
from payassist.agent.helpers import build_user_context_block, format_observation_for_history
from payassist.clients.base import ReasoningServiceError
from payassist.context.session_manager import SessionManager
from payassist.schemas.messages import Message, StreamEvent
from payassist.services.errors import ErrorCode, PaymentsError
from payassist.services.models import User
from payassist.tools.registry import ToolContext, ToolRegistry
from payassist.workflows.transfer_engine import TransferDecisionEngine


logger = logging.getLogger("payassist.orchestrator")

GENERIC_ERROR = "Sorry, I'm having trouble right now. Please try again in a moment."
ITERATION_LIMIT_MESSAGE = "Sorry, I couldn't complete that request. Please try again or rephrase it."
CANCELLED_MESSAGE = "Request cancelled."
NO_SESSION_MESSAGE = "Your session has expired or was not started. Please sign in again."
NOOP_FALLBACK = "Sorry, I didn't quite get that. Could you rephrase?"


@dataclass
class TurnResult:
    response_text: str
    events: List[StreamEvent] = field(default_factory=list)


def _error_code(value: Optional[str]) -> ErrorCode:
    try:
        return ErrorCode(value)
    except ValueError:
        return ErrorCode.UNKNOWN_ERROR


class ConversationOrchestrator:
    def __init__(
        self,
        agent: PaymentAgent,
        registry: ToolRegistry,
        services,
        engine: TransferDecisionEngine,
        session_manager: SessionManager,
        max_iterations: int = config.MAX_TOOL_ITERATIONS,
    ) -> None:
        self.agent = agent
        self.registry = registry
        self.services = services
        self.engine = engine
        self.session_manager = session_manager
        self.max_iterations = max_iterations
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------
    async def start_session(self, token: str, thread_id: Optional[str] = None) -> Tuple[str, User]:
        """
        Resolve the token to a user and cache identity and contacts on the
        thread. Raises PaymentsError for a bad token.
        """
        result = await self.services.get_user(token)
        if not result.success:
            logger.info("start_session rejected: %s", result.error.code)
            raise PaymentsError(_error_code(result.error.code), result.error.message)
        user: User = result.data

        contacts_result = await self.services.get_contacts(user.user_id)
        contacts = contacts_result.data if contacts_result.success else None
        if contacts is None:
            logger.warning("Could not prime contacts for user_id=%s; they will be fetched on demand", user.user_id)

        thread_id = thread_id or self.session_manager.create_session()
        self.session_manager.ensure_session(thread_id)
        self.session_manager.set_identity(thread_id, token, user, contacts)
        logger.info("Session started thread=%s user_id=%s", thread_id, user.user_id)
        return thread_id, user

    def reset_thread(self, thread_id: str) -> str:
        return self.session_manager.reset_thread(thread_id)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------
    async def stream_turn(
        self,
        thread_id: str,
        text: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        lock = self._locks.get(thread_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[thread_id] = lock
        async with lock:
            try:
                async for event in self._run_turn(thread_id, text, cancel_event):
                    yield event
            except Exception:
                logger.exception("TURN - unexpected failure on thread=%s", thread_id)
                yield StreamEvent(type="error", content=GENERIC_ERROR)

    async def handle_turn(
        self,
        thread_id: str,
        text: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> TurnResult:
        events: List[StreamEvent] = []
        response_text = ""
        async for event in self.stream_turn(thread_id, text, cancel_event):
            events.append(event)
            if event.type in ("final", "error"):
                response_text = event.content
        return TurnResult(response_text=response_text, events=events)

    async def _run_turn(
        self,
        thread_id: str,
        text: str,
        cancel_event: Optional[asyncio.Event],
    ) -> AsyncIterator[StreamEvent]:
        logger.info("=" * 80)
        logger.info("TURN - thread=%s text=%r", thread_id, text)

        session = self.session_manager.get_session(thread_id)
        if not session or not session.get("user_id"):
            logger.warning("TURN - no primed session for thread=%s", thread_id)
            yield StreamEvent(type="error", content=NO_SESSION_MESSAGE)
            return
        user_id = session["user_id"]
        token = session.get("token")

        turn = self.session_manager.next_turn(thread_id)
        notices: List[str] = []

        # confirmation gate sees the raw reply before the model does
        workflow = self.session_manager.get_workflow(thread_id)
        if workflow is not None:
            notice = await self.engine.register_reply(workflow, text, turn)
            self.session_manager.save_workflow(thread_id, workflow)
            if notice is not None:
                notices.append(notice.message)

        self.session_manager.append_message(thread_id, Message(role="user", text=text))

        accounts_result = await self.services.get_accounts(user_id)
        accounts = accounts_result.data if accounts_result.success else []
        context_block = build_user_context_block(
            self.session_manager.get_user(thread_id),
            accounts,
            contacts=self.session_manager.get_contacts(thread_id),
            workflow=workflow,
            notices=notices,
            currency=self.agent.currency,
        )

        for iteration in range(1, self.max_iterations + 1):
            if cancel_event is not None and cancel_event.is_set():
                logger.info("TURN - cancelled before iteration %d", iteration)
                yield StreamEvent(type="error", content=CANCELLED_MESSAGE)
                return

            logger.info("TURN - iteration %d/%d", iteration, self.max_iterations)
            request = self.agent.build_request(self.session_manager.get_history(thread_id), context_block)

            decision: Optional[Decision] = None
            try:
                async for item in self.agent.decide_stream(request):
                    if isinstance(item, Decision):
                        decision = item
                    else:
                        yield StreamEvent(type="token", content=item)
            except ReasoningServiceError:
                logger.exception("TURN - reasoning failed on thread=%s", thread_id)
                yield StreamEvent(type="error", content=GENERIC_ERROR)
                return

            if decision is None or decision.kind != "tool_calls":
                final_text = decision.text if decision is not None and decision.kind == "final" else NOOP_FALLBACK
                self.session_manager.append_message(thread_id, Message(role="assistant", text=final_text))
                logger.info("TURN - final after %d iteration(s)", iteration)
                logger.info("=" * 80)
                yield StreamEvent(type="final", content=final_text)
                return

            self.session_manager.append_message(
                thread_id,
                Message(role="assistant", text=decision.text, tool_calls=decision.tool_calls),
            )
            ctx = ToolContext(
                thread_id=thread_id,
                user_id=user_id,
                token=token,
                turn=turn,
                services=self.services,
                engine=self.engine,
                session_manager=self.session_manager,
            )
            for call in decision.tool_calls:
                yield StreamEvent(type="tool_start", content=f"Calling {call.name}...", tool_name=call.name)
                outcome = await self.registry.execute(call.name, call.arguments, ctx)
                observation = outcome.to_observation()
                self.session_manager.append_message(
                    thread_id,
                    Message(
                        role="tool",
                        text=format_observation_for_history(call.name, observation),
                        tool_name=call.name,
                        tool_call_id=call.id,
                        result=observation,
                    ),
                )
                yield StreamEvent(type="tool_end", content=f"{call.name} completed.", tool_name=call.name)

        logger.warning("TURN - max iterations (%d) reached on thread=%s", self.max_iterations, thread_id)
        yield StreamEvent(type="error", content=ITERATION_LIMIT_MESSAGE)
