"""
Gemini reasoning client (google-genai SDK) with native function calling.

Environment:
- GEMINI_API_KEY (or GENAI_API_KEY / GEMINI_TOKEN)
- GEMINI_MODEL (defaults to "gemini-2.5-flash")
"""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional

from google import genai
from google.genai import types

from payassist import config
from payassist.clients.base import (
    ReasoningChunk,
    ReasoningRequest,
    ReasoningResponse,
    ReasoningServiceError,
)
from payassist.schemas.messages import Message, ToolCall

logger = logging.getLogger("gemini_llm_client")

_SCHEMA_TYPES = {
    "string": types.Type.STRING,
    "number": types.Type.NUMBER,
    "integer": types.Type.INTEGER,
    "boolean": types.Type.BOOLEAN,
}


def function_declarations(tools: Dict[str, Dict[str, Any]]) -> List[types.FunctionDeclaration]:
    """Turn registry signatures into Gemini function declarations."""
    declarations = []
    for name, meta in (tools or {}).items():
        params = meta.get("params") or {}
        parameters = None
        if params:
            properties = {}
            for p, p_meta in params.items():
                properties[p] = types.Schema(
                    type=_SCHEMA_TYPES.get(p_meta.get("type"), types.Type.STRING),
                    description=p_meta.get("description"),
                    enum=p_meta.get("enum"),
                )
            parameters = types.Schema(
                type=types.Type.OBJECT,
                properties=properties,
                required=[p for p, p_meta in params.items() if p_meta.get("required")],
            )
        declarations.append(
            types.FunctionDeclaration(name=name, description=meta.get("description", ""), parameters=parameters)
        )
    return declarations


def to_contents(messages: List[Message]) -> List[types.Content]:
    """
    Map thread history onto Gemini contents. Consecutive tool results are
    grouped into one user turn, as the API expects after a model turn with
    several function calls.
    """
    contents: List[types.Content] = []
    responses: List[types.Part] = []

    def flush() -> None:
        if responses:
            contents.append(types.Content(role="user", parts=list(responses)))
            responses.clear()

    for message in messages:
        if message.role == "tool":
            responses.append(
                types.Part.from_function_response(name=message.tool_name or "tool", response=message.result or {})
            )
            continue
        flush()
        if message.role == "user":
            contents.append(types.Content(role="user", parts=[types.Part.from_text(text=message.text)]))
            continue
        parts = []
        if message.text:
            parts.append(types.Part.from_text(text=message.text))
        for call in message.tool_calls:
            parts.append(types.Part(function_call=types.FunctionCall(name=call.name, args=call.arguments)))
        if parts:
            contents.append(types.Content(role="model", parts=parts))
    flush()
    return contents


def _split_parts(response) -> tuple:
    texts: List[str] = []
    calls: List[ToolCall] = []
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return texts, calls
    for part in candidates[0].content.parts or []:
        if part.function_call is not None:
            calls.append(ToolCall(name=part.function_call.name, arguments=dict(part.function_call.args or {})))
        elif part.text:
            texts.append(part.text)
    return texts, calls


class GeminiLLMClient:
    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, temperature: float = 0.0):
        self.api_key = api_key or config.GEMINI_API_KEY
        if not self.api_key:
            raise RuntimeError(
                "Gemini API key not provided. Set GEMINI_API_KEY environment variable or pass api_key to GeminiLLMClient."
            )
        self.model = model or config.GEMINI_MODEL
        self.temperature = temperature
        self.client = genai.Client(api_key=self.api_key)
        logger.info("Using google-genai SDK for Gemini LLM client (model=%s)", self.model)

    def _config(self, request: ReasoningRequest) -> types.GenerateContentConfig:
        declarations = function_declarations(request.tools)
        return types.GenerateContentConfig(
            system_instruction=request.system_instruction,
            temperature=self.temperature,
            tools=[types.Tool(function_declarations=declarations)] if declarations else None,
            automatic_function_calling=types.AutomaticFunctionCallingConfig(disable=True),
        )

    async def complete(self, request: ReasoningRequest) -> ReasoningResponse:
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=to_contents(request.messages),
                config=self._config(request),
            )
        except Exception as e:
            logger.exception("Gemini generate_content failed: %s", e)
            raise ReasoningServiceError("Gemini request failed") from e

        texts, calls = _split_parts(response)
        logger.info("Gemini response: %d text part(s), tool calls=%s", len(texts), [c.name for c in calls])
        return ReasoningResponse(text="".join(texts), tool_calls=calls)

    async def stream(self, request: ReasoningRequest) -> AsyncIterator[ReasoningChunk]:
        texts: List[str] = []
        calls: List[ToolCall] = []
        try:
            chunks = await self.client.aio.models.generate_content_stream(
                model=self.model,
                contents=to_contents(request.messages),
                config=self._config(request),
            )
            async for chunk in chunks:
                chunk_texts, chunk_calls = _split_parts(chunk)
                calls.extend(chunk_calls)
                for text in chunk_texts:
                    texts.append(text)
                    yield ReasoningChunk(text=text)
        except Exception as e:
            logger.exception("Gemini generate_content_stream failed: %s", e)
            raise ReasoningServiceError("Gemini request failed") from e

        logger.info("Gemini stream done: %d chars, tool calls=%s", sum(len(t) for t in texts), [c.name for c in calls])
        yield ReasoningChunk(response=ReasoningResponse(text="".join(texts), tool_calls=calls))
