"""
CRUD convenience layer for SQLAlchemy models.

Mix :class:`BaseModel` into a mapped class to call ``Model.create(...)``,
``Model.where(...)``, ``Model.first_or_create(...)`` and friends instead of
writing query-builder calls. Belongs-to foreign keys are filled in from
related records passed as values.
"""

from .errors import BaseModelError, PreconditionError, QueryError, SchemaError, UnwrapError
from .handle import PersistenceHandle
from .model import BaseModel, handle_for, register, unregister
from .results import NotFound, Result, ValidationFailure
from .schema import BelongsTo, ModelSchema

__version__ = "0.2.0"

__all__ = [
    "BaseModel",
    "BaseModelError",
    "BelongsTo",
    "ModelSchema",
    "NotFound",
    "PersistenceHandle",
    "PreconditionError",
    "QueryError",
    "Result",
    "SchemaError",
    "UnwrapError",
    "ValidationFailure",
    "handle_for",
    "register",
    "unregister",
]
