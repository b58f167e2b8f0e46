"""Shared schema plumbing: camelCase wire format and the response envelope."""

from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base for every request/response schema.

    Serialized with camelCase keys; accepts camelCase or snake_case input
    and reads ORM objects directly.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorBody(CamelModel):
    code: str
    message: str
    details: Dict[str, Any] = {}


class ApiResponse(CamelModel, Generic[T]):
    """Uniform envelope: ``{success, data?, error?}``."""

    success: bool = True
    data: Optional[T] = None
    error: Optional[ErrorBody] = None


def ok(data: Any = None) -> Dict[str, Any]:
    """Success envelope; FastAPI validates it against the route's ApiResponse[...]."""
    return {"success": True, "data": data}
