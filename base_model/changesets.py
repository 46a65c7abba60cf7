"""
Default create/update validation.

The defaults accept the writable fields of the entity's descriptor (every
mapped column except the primary key) and silently drop anything else,
including primary-key values. Field types and ``nullable=False`` columns are
enforced by a marshmallow-sqlalchemy auto schema generated once per entity
type.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, TYPE_CHECKING

from marshmallow import EXCLUDE, fields
from sqlalchemy import Enum as SAEnum
from sqlalchemy import inspect as sa_inspect

from .extensions import ma

if TYPE_CHECKING:
    from .handle import PersistenceHandle

_SCHEMAS: Dict[type, type] = {}


class EnumMember(fields.Enum):
    """Loads an enum from its member name or from a member itself."""

    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, self.enum):
            return value
        return super()._deserialize(value, attr, data, **kwargs)


def _enum_fields(model: type) -> Dict[str, fields.Field]:
    # auto schemas map Enum columns to strings with a Length validator
    declared: Dict[str, fields.Field] = {}
    for attr in sa_inspect(model).column_attrs:
        column = attr.columns[0]
        enum_class = getattr(column.type, "enum_class", None)
        if not isinstance(column.type, SAEnum) or enum_class is None:
            continue
        nullable = bool(column.nullable)
        has_default = column.default is not None or column.server_default is not None
        declared[attr.key] = EnumMember(
            enum_class,
            required=not nullable and not has_default,
            allow_none=nullable,
        )
    return declared


def changeset_schema(model: type) -> type:
    """Return the auto schema class used by the default changesets for ``model``."""

    schema_cls = _SCHEMAS.get(model)
    if schema_cls is None:
        meta = type(
            "Meta",
            (),
            {
                "model": model,
                "load_instance": True,
                "include_fk": True,
                "include_relationships": False,
                "unknown": EXCLUDE,
            },
        )
        attrs: Dict[str, Any] = {"Meta": meta}
        attrs.update(_enum_fields(model))
        schema_cls = type(f"{model.__name__}ChangesetSchema", (ma.SQLAlchemyAutoSchema,), attrs)
        _SCHEMAS[model] = schema_cls
    return schema_cls


def _read_only(handle: "PersistenceHandle", schema_cls: type) -> List[str]:
    writable = set(handle.schema.writable_fields)
    return [name for name in schema_cls._declared_fields if name not in writable]


def create_changeset(handle: "PersistenceHandle", params: Mapping[str, Any]) -> Any:
    """Build a new, unsaved entity from ``params``; raises ``ValidationError``."""

    schema_cls = changeset_schema(handle.model)
    schema = schema_cls(exclude=_read_only(handle, schema_cls))
    return schema.load(dict(params), session=handle.session)


def update_changeset(handle: "PersistenceHandle", entity: Any, params: Mapping[str, Any]) -> Any:
    """Apply ``params`` onto ``entity``; raises ``ValidationError`` leaving it untouched."""

    schema_cls = changeset_schema(handle.model)
    schema = schema_cls(exclude=_read_only(handle, schema_cls))
    return schema.load(dict(params), instance=entity, partial=True, session=handle.session)
