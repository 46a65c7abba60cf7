from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Optional, TypeVar

from marshmallow import ValidationError

from .errors import UnwrapError

T = TypeVar("T")


@dataclass(frozen=True)
class ValidationFailure:
    """Field-level reasons a create or update payload was rejected."""

    errors: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_marshmallow(cls, exc: ValidationError) -> "ValidationFailure":
        messages = exc.messages
        if isinstance(messages, dict):
            errors = {
                str(name): list(reasons) if isinstance(reasons, (list, tuple)) else [reasons]
                for name, reasons in messages.items()
            }
        else:
            errors = {"_schema": list(messages) if isinstance(messages, (list, tuple)) else [messages]}
        return cls(errors=errors)

    def __contains__(self, field_name: str) -> bool:
        return field_name in self.errors


@dataclass(frozen=True)
class NotFound:
    model: str
    key: Any


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Outcome of a write operation.

    ``ok`` is True for success, in which case ``value`` holds the payload
    (an entity, a row count, or ``None``). On failure ``error`` holds a
    :class:`ValidationFailure` or :class:`NotFound`.
    """

    ok: bool
    value: Optional[T] = None
    error: Any = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: Any) -> "Result[T]":
        return cls(ok=False, error=error)

    def unwrap(self) -> Optional[T]:
        if not self.ok:
            raise UnwrapError(self.error)
        return self.value
