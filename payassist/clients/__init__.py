from payassist.clients.base import (  # noqa: F401
    ReasoningChunk,
    ReasoningClient,
    ReasoningRequest,
    ReasoningResponse,
    ReasoningServiceError,
    StreamingReasoningClient,
)
