"""
agent/agent.py

PaymentAgent
------------

The "brain" of PayAssist:
- Builds the reasoning request (system prompt, history, tool signatures).
- Turns a reasoning response into a typed Decision: noop, tool calls or a
  final answer.
- Parses JSON decisions emitted as text, for models without native
  function calling.

Tool execution and the turn loop are handled by ConversationOrchestrator
in agent/orchestrator.py.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Union
import ast
import json
import logging

from payassist.agent.helpers import build_tools_block
from payassist.clients.base import ReasoningClient, ReasoningRequest, ReasoningResponse
from payassist.prompts.system_prompt import build_system_prompt
from payassist.schemas.messages import Message, ToolCall


logger = logging.getLogger("agent")


@dataclass
class Decision:
    kind: str  # "noop" | "tool_calls" | "final"
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)

    @classmethod
    def noop(cls) -> "Decision":
        return cls(kind="noop")

    @classmethod
    def final(cls, text: str) -> "Decision":
        return cls(kind="final", text=text)

    @classmethod
    def calls(cls, tool_calls: List[ToolCall], text: str = "") -> "Decision":
        return cls(kind="tool_calls", text=text, tool_calls=tool_calls)


def strip_fences(raw: str) -> str:
    """Remove Markdown ```json fences some models wrap around JSON."""
    cleaned = raw.strip()
    if cleaned.startswith("```"):
        newline_idx = cleaned.find("\n")
        if newline_idx != -1:
            cleaned = cleaned[newline_idx + 1:]
        else:
            cleaned = cleaned.lstrip("`")
    if cleaned.endswith("```"):
        cleaned = cleaned[: cleaned.rfind("```")]
    return cleaned.strip()


def parse_decision_text(raw: str) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON decision emitted as plain text. Falls back to
    ast.literal_eval for Python-style dicts. Returns None when the text is
    not a decision object.
    """
    cleaned = strip_fences(raw)
    if not cleaned.startswith("{"):
        return None
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        try:
            logger.warning("Primary JSON parse failed; attempting literal_eval fallback")
            parsed = ast.literal_eval(cleaned)
        except (ValueError, SyntaxError):
            logger.warning("Could not parse decision text; treating as plain answer: %s", raw[:200])
            return None
    return parsed if isinstance(parsed, dict) else None


def _arguments(raw_call: Dict[str, Any]) -> Dict[str, Any]:
    arguments = raw_call.get("arguments") or raw_call.get("tool_input") or {}
    if not isinstance(arguments, dict):
        logger.warning("Ignoring non-object tool arguments: %r", arguments)
        return {}
    return arguments


def decision_from_dict(parsed: Dict[str, Any]) -> Decision:
    action = (parsed.get("action") or "").lower()
    if action == "call_tool":
        raw_calls = parsed.get("tool_calls")
        if raw_calls is None and parsed.get("tool_name"):
            raw_calls = [{"name": parsed["tool_name"], "arguments": parsed.get("tool_input") or {}}]
        calls = [
            ToolCall(name=c.get("name") or c.get("tool_name"), arguments=_arguments(c))
            for c in raw_calls or []
            if isinstance(c, dict) and (c.get("name") or c.get("tool_name"))
        ]
        if calls:
            return Decision.calls(calls)
    response = parsed.get("response")
    if response:
        return Decision.final(str(response))
    return Decision.noop()


class PaymentAgent:
    """
    Builds requests for the reasoning client and interprets its answers.
    Holds no per-thread state.
    """

    def __init__(self, llm_client: ReasoningClient, tool_spec: Dict[str, Any], currency: str = "AUD"):
        self.llm_client = llm_client
        self.currency = currency
        self.tool_spec = tool_spec
        self.tools_block = build_tools_block(tool_spec)
        logger.info("PaymentAgent ready with %d tools", len(tool_spec))

    def build_request(self, history: List[Message], user_context_block: str) -> ReasoningRequest:
        system_instruction = build_system_prompt(user_context_block, self.tools_block, self.currency)
        return ReasoningRequest(system_instruction=system_instruction, messages=list(history), tools=self.tool_spec)

    def interpret(self, response: ReasoningResponse) -> Decision:
        if response.tool_calls:
            return Decision.calls(list(response.tool_calls), text=response.text or "")
        text = (response.text or "").strip()
        if not text:
            return Decision.noop()
        parsed = parse_decision_text(text)
        if parsed is not None:
            return decision_from_dict(parsed)
        return Decision.final(text)

    async def decide(self, request: ReasoningRequest) -> Decision:
        logger.info("=" * 80)
        logger.info("DECISION - %d message(s) in history", len(request.messages))
        response = await self.llm_client.complete(request)
        decision = self.interpret(response)
        logger.info("DECISION - %s %s", decision.kind, [c.name for c in decision.tool_calls])
        return decision

    async def decide_stream(self, request: ReasoningRequest) -> AsyncIterator[Union[str, Decision]]:
        """
        Yield text deltas as they arrive, then the Decision. Text that looks
        like a JSON decision is held back rather than streamed to the user.
        """
        stream = getattr(self.llm_client, "stream", None)
        if stream is None:
            decision = await self.decide(request)
            if decision.kind == "final":
                yield decision.text
            yield decision
            return

        logger.info("=" * 80)
        logger.info("DECISION (stream) - %d message(s) in history", len(request.messages))
        buffered = False
        started = False
        response: Optional[ReasoningResponse] = None
        async for chunk in stream(request):
            if chunk.response is not None:
                response = chunk.response
                continue
            if not chunk.text:
                continue
            if not started and chunk.text.strip():
                started = True
                buffered = chunk.text.lstrip()[0] in "{`"
            if started and not buffered:
                yield chunk.text

        decision = self.interpret(response or ReasoningResponse())
        if decision.kind == "final" and buffered:
            yield decision.text
        logger.info("DECISION (stream) - %s %s", decision.kind, [c.name for c in decision.tool_calls])
        yield decision
