from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union

from sqlalchemy.orm import Session, scoped_session

from .changesets import create_changeset, update_changeset
from .errors import SchemaError
from .schema import ModelSchema

SessionLike = Union[Session, scoped_session]

# (handle, params) -> new entity, or a ValidationFailure / raised marshmallow.ValidationError
CreateValidator = Callable[["PersistenceHandle", Mapping[str, Any]], Any]
# (handle, entity, params) -> updated entity, same failure forms
UpdateValidator = Callable[["PersistenceHandle", Any, Mapping[str, Any]], Any]


@dataclass(frozen=True)
class PersistenceHandle:
    """
    Everything an operation needs to talk to storage for one entity type.

    ``create_validator`` and ``update_validator`` default to the
    all-fields-except-primary-key changesets in :mod:`base_model.changesets`.
    ``autocommit`` selects ``commit()`` or ``flush()`` after a write.
    """

    session: SessionLike
    model: type
    schema: ModelSchema
    create_validator: Optional[CreateValidator] = None
    update_validator: Optional[UpdateValidator] = None
    autocommit: bool = True

    @classmethod
    def build(
        cls,
        model: type,
        session: Optional[SessionLike],
        *,
        schema: Optional[ModelSchema] = None,
        create_validator: Optional[CreateValidator] = None,
        update_validator: Optional[UpdateValidator] = None,
        autocommit: bool = True,
    ) -> "PersistenceHandle":
        if session is None:
            raise SchemaError(f"no session configured for {getattr(model, '__name__', model)!r}")
        if schema is None:
            schema = ModelSchema.from_model(model)
        else:
            schema.validate()
        return cls(
            session=session,
            model=model,
            schema=schema,
            create_validator=create_validator,
            update_validator=update_validator,
            autocommit=autocommit,
        )

    @property
    def model_name(self) -> str:
        return self.schema.name

    def validate_create(self, params: Mapping[str, Any]) -> Any:
        validator = self.create_validator or create_changeset
        return validator(self, params)

    def validate_update(self, entity: Any, params: Mapping[str, Any]) -> Any:
        validator = self.update_validator or update_changeset
        return validator(self, entity, params)

    def finish_write(self) -> None:
        if self.autocommit:
            self.session.commit()
        else:
            self.session.flush()
