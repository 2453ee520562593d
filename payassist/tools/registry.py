"""
Tool Registry
-------------
Typed tools the reasoning model may call.

Each tool has a name, a description, a pydantic arguments model and an
async executor. The registry validates arguments, runs the executor and
always hands back a ToolOutcome; nothing raised by a tool escapes to the
orchestrator.
"""

import logging
import types as pytypes
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, Union, get_args, get_origin

from pydantic import BaseModel, ValidationError

from payassist.services.errors import ErrorCode, PaymentsError, user_message

logger = logging.getLogger("payassist.tools")


class ToolOutcome(BaseModel):
    success: bool
    data: Optional[Any] = None
    error: Optional[Dict[str, str]] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ToolOutcome":
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, code: Union[ErrorCode, str], message: Optional[str] = None) -> "ToolOutcome":
        if isinstance(code, ErrorCode):
            return cls(success=False, error={"code": code.value, "message": message or user_message(code)})
        return cls(success=False, error={"code": str(code), "message": message or user_message(ErrorCode.UNKNOWN_ERROR)})

    def to_observation(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


@dataclass
class ToolContext:
    """Values the orchestrator injects; never supplied by the reasoning model."""

    thread_id: str
    user_id: str
    token: Optional[str]
    turn: int
    services: Any
    engine: Any
    session_manager: Any


Executor = Callable[[ToolContext, Any], Awaitable[ToolOutcome]]


def _json_type(annotation) -> tuple:
    """Map a python annotation to (json type, enum values or None)."""
    origin = get_origin(annotation)
    if origin in (Union, pytypes.UnionType):
        args = [a for a in get_args(annotation) if a is not type(None)]
        return _json_type(args[0]) if args else ("string", None)
    if origin is Literal:
        return "string", [str(v) for v in get_args(annotation)]
    if isinstance(annotation, type):
        if issubclass(annotation, Enum):
            return "string", [e.value for e in annotation]
        if issubclass(annotation, bool):
            return "boolean", None
        if issubclass(annotation, int):
            return "integer", None
        if issubclass(annotation, (float, Decimal)):
            return "number", None
    return "string", None


@dataclass
class Tool:
    name: str
    description: str
    args_model: Type[BaseModel]
    executor: Executor

    def signature(self) -> Dict[str, Any]:
        params: Dict[str, Any] = {}
        for field_name, field in self.args_model.model_fields.items():
            json_type, enum = _json_type(field.annotation)
            meta: Dict[str, Any] = {"type": json_type, "required": field.is_required()}
            if field.description:
                meta["description"] = field.description
            if enum:
                meta["enum"] = enum
            params[field_name] = meta
        return {"description": self.description, "params": params}


class ToolRegistry:
    def __init__(self, tools: Optional[List[Tool]] = None) -> None:
        self._tools: Dict[str, Tool] = {}
        for tool in tools or []:
            self.register(tool)

    def register(self, tool: Tool) -> None:
        if tool.name in self._tools:
            raise ValueError(f"Tool '{tool.name}' is already registered")
        self._tools[tool.name] = tool

    def names(self) -> List[str]:
        return list(self._tools)

    def signatures(self) -> Dict[str, Dict[str, Any]]:
        return {name: tool.signature() for name, tool in self._tools.items()}

    async def execute(self, name: str, arguments: Optional[Dict[str, Any]], ctx: ToolContext) -> ToolOutcome:
        tool = self._tools.get(name)
        if tool is None:
            logger.warning("Unknown tool requested: %s", name)
            return ToolOutcome.failure(ErrorCode.UNKNOWN_TOOL, f"Unknown tool '{name}'.")

        try:
            args = tool.args_model.model_validate(arguments or {})
        except ValidationError as exc:
            fields = sorted({".".join(str(p) for p in err["loc"]) or "arguments" for err in exc.errors()})
            logger.info("Tool %s rejected arguments %s: %s", name, arguments, fields)
            return ToolOutcome.failure(
                ErrorCode.VALIDATION_ERROR,
                f"Invalid or missing arguments for {name}: {', '.join(fields)}.",
            )

        logger.info("Executing tool %s thread=%s user=%s args=%s", name, ctx.thread_id, ctx.user_id, args.model_dump())
        try:
            outcome = await tool.executor(ctx, args)
        except PaymentsError as exc:
            logger.info("Tool %s refused: %s %s", name, exc.code.value, exc.message)
            return ToolOutcome.failure(exc.code, exc.message)
        except Exception as exc:
            logger.exception("Tool %s failed: %s", name, exc)
            return ToolOutcome.failure(ErrorCode.TOOL_EXECUTION_FAILED)

        logger.info("Tool %s -> success=%s", name, outcome.success)
        return outcome
