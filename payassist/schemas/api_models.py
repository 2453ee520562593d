from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from payassist.schemas.messages import Message, StreamEvent


class SessionRequest(BaseModel):
    token: Optional[str] = None
    thread_id: Optional[str] = None


class SessionResponse(BaseModel):
    thread_id: str
    user: Dict[str, Any]


class ChatRequest(BaseModel):
    thread_id: str
    message: str


class ChatResponse(BaseModel):
    thread_id: str
    response_text: str
    events: List[StreamEvent]


class HistoryResponse(BaseModel):
    thread_id: str
    messages: List[Message]


class ResetResponse(BaseModel):
    previous_thread_id: str
    thread_id: str
