"""
Reasoning boundary.

The orchestrator only depends on this contract: given the system
instruction, the thread history and the tool signatures, a client returns
text and/or structured tool calls. ``stream`` is optional.
"""

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, runtime_checkable

from payassist.schemas.messages import Message, ToolCall


class ReasoningServiceError(Exception):
    """The reasoning backend could not produce a response."""


@dataclass
class ReasoningRequest:
    system_instruction: str
    messages: List[Message]
    tools: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class ReasoningResponse:
    text: str = ""
    tool_calls: List[ToolCall] = field(default_factory=list)


@dataclass
class ReasoningChunk:
    # text delta, or the assembled response on the last chunk
    text: str = ""
    response: Optional[ReasoningResponse] = None


@runtime_checkable
class ReasoningClient(Protocol):
    async def complete(self, request: ReasoningRequest) -> ReasoningResponse:
        ...


@runtime_checkable
class StreamingReasoningClient(ReasoningClient, Protocol):
    def stream(self, request: ReasoningRequest) -> AsyncIterator[ReasoningChunk]:
        ...
