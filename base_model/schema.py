"""
Explicit schema descriptors for entity types.

A :class:`ModelSchema` is read from an SQLAlchemy mapped class once, when its
persistence handle is built, and validated there. The translator takes field
names, primary key, belongs-to associations and preloadable relationships from
the descriptor, so a hand-written one restricts what callers may use. Nested
preload segments past the first follow the mapped relationships.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable
from sqlalchemy.orm import MANYTOONE, configure_mappers

from .errors import SchemaError


@dataclass(frozen=True)
class BelongsTo:
    """A many-to-one association stored in ``owner_key`` on the owning entity."""

    name: str
    owner_key: str
    related_key: str
    related_model: Optional[type] = None


@dataclass(frozen=True)
class ModelSchema:
    name: str
    table: str
    fields: Tuple[str, ...]
    primary_key: Tuple[str, ...]
    associations: Dict[str, BelongsTo] = field(default_factory=dict)
    relationships: Tuple[str, ...] = ()

    @classmethod
    def from_model(cls, model: Any) -> "ModelSchema":
        """Describe an SQLAlchemy mapped class."""

        try:
            mapper = sa_inspect(model)
        except NoInspectionAvailable as exc:
            raise SchemaError(f"{model!r} is not an SQLAlchemy mapped class") from exc

        # relationship directions are only known once mappers are configured
        configure_mappers()

        fields = tuple(attr.key for attr in mapper.column_attrs)
        primary_key = tuple(mapper.get_property_by_column(column).key for column in mapper.primary_key)

        associations: Dict[str, BelongsTo] = {}
        relationships = []
        for rel in mapper.relationships:
            relationships.append(rel.key)
            if rel.direction is not MANYTOONE or len(rel.local_remote_pairs) != 1:
                continue
            local_column, remote_column = rel.local_remote_pairs[0]
            associations[rel.key] = BelongsTo(
                name=rel.key,
                owner_key=mapper.get_property_by_column(local_column).key,
                related_key=rel.mapper.get_property_by_column(remote_column).key,
                related_model=rel.mapper.class_,
            )

        schema = cls(
            name=mapper.class_.__name__,
            table=getattr(mapper.local_table, "name", mapper.class_.__name__.lower()),
            fields=fields,
            primary_key=primary_key,
            associations=associations,
            relationships=tuple(relationships),
        )
        schema.validate()
        return schema

    def validate(self) -> None:
        if not self.fields:
            raise SchemaError(f"{self.name} declares no fields")
        if not self.primary_key:
            raise SchemaError(f"{self.name} declares no primary key")
        missing = [key for key in self.primary_key if key not in self.fields]
        if missing:
            raise SchemaError(f"{self.name} primary key {missing} not among its fields")
        for assoc in self.associations.values():
            if assoc.owner_key not in self.fields:
                raise SchemaError(
                    f"{self.name}.{assoc.name} stores its key in unknown field {assoc.owner_key!r}"
                )
            if assoc.name in self.fields:
                raise SchemaError(f"{self.name}.{assoc.name} clashes with a field of the same name")

    @property
    def writable_fields(self) -> Tuple[str, ...]:
        """Fields the default changesets accept: everything but the primary key."""

        return tuple(name for name in self.fields if name not in self.primary_key)

    def has_field(self, name: str) -> bool:
        return name in self.fields

    def association(self, name: str) -> Optional[BelongsTo]:
        return self.associations.get(name)
