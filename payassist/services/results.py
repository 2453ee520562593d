"""
Uniform success/error result returned by every domain service call.
"""

from dataclasses import dataclass
from typing import Any, Dict, Generic, Optional, TypeVar, Union

from payassist.services.errors import ErrorCode, user_message

T = TypeVar("T")


@dataclass(frozen=True)
class ServiceError:
    code: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"code": self.code, "message": self.message}


@dataclass(frozen=True)
class ServiceResult(Generic[T]):
    success: bool
    data: Optional[T] = None
    error: Optional[ServiceError] = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: Union[ErrorCode, str], message: Optional[str] = None) -> "ServiceResult[Any]":
        code_value = code.value if isinstance(code, ErrorCode) else str(code)
        if message is None:
            message = user_message(code) if isinstance(code, ErrorCode) else user_message(ErrorCode.UNKNOWN_ERROR)
        return cls(success=False, error=ServiceError(code=code_value, message=message))
