"""
Schemas for payassist
"""

from payassist.schemas.messages import Message, StreamEvent, ToolCall  # noqa: F401
