"""
Conversation messages and stream events shared by the agent, the
orchestrator, the session store and the API.
"""

from typing import Any, Dict, List, Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class ToolCall(BaseModel):
    id: str = Field(default_factory=lambda: f"call_{uuid4().hex[:10]}")
    name: str
    arguments: Dict[str, Any] = Field(default_factory=dict)


class Message(BaseModel):
    role: Literal["user", "assistant", "tool"]
    text: str = ""
    # assistant messages that requested tools
    tool_calls: List[ToolCall] = Field(default_factory=list)
    # tool result messages
    tool_name: Optional[str] = None
    tool_call_id: Optional[str] = None
    result: Optional[Dict[str, Any]] = None


class StreamEvent(BaseModel):
    type: Literal["token", "tool_start", "tool_end", "final", "error"]
    content: str = ""
    tool_name: Optional[str] = None
