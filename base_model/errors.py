"""
Exceptions raised for programming errors.

Expected outcomes (validation failures, missing rows on delete) are returned
as :class:`base_model.results.Result` values instead. Storage errors raised by
SQLAlchemy are never wrapped and reach the caller unchanged.
"""

from __future__ import annotations

from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .results import ValidationFailure


class BaseModelError(Exception):
    """Base class for errors raised by the model layer itself."""


class SchemaError(BaseModelError):
    """The entity type cannot be described or has no usable session."""


class QueryError(BaseModelError, ValueError):
    """A where-clause or option refers to something the entity type does not have."""


class PreconditionError(BaseModelError, ValueError):
    """``first_or_create`` was given a where-clause that is not a valid create payload."""

    def __init__(self, message: str, failure: Optional["ValidationFailure"] = None) -> None:
        super().__init__(message)
        self.failure = failure


class UnwrapError(BaseModelError, RuntimeError):
    """``Result.unwrap`` was called on a failed result."""

    def __init__(self, error) -> None:
        super().__init__(f"called unwrap() on a failed result: {error!r}")
        self.error = error
