"""
The ``BaseModel`` mixin and the handle registry.

Mix ``BaseModel`` into an SQLAlchemy model to get the standard CRUD
classmethods::

    class User(BaseModel, db.Model):
        id = db.Column(db.Integer, primary_key=True)
        name = db.Column(db.String(100), nullable=False)

    User.create(name="Chris")
    User.where({"name": "Chris"}, order_by=("desc", "id"), limit=10)

Every classmethod can be overridden on the model. ``create_changeset`` and
``update_changeset`` are the intended override points for validation; the
operations reach them through the persistence handle, so overriding one never
requires touching another.
"""

from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional

from . import changesets
from . import functions as fn
from .errors import SchemaError
from .handle import CreateValidator, PersistenceHandle, SessionLike, UpdateValidator
from .results import Result
from .schema import ModelSchema
from .utils.logging_utils import get_logger, log_context

logger = get_logger("registry")

_handles: Dict[type, PersistenceHandle] = {}


def register(
    model: type,
    session: Optional[SessionLike] = None,
    *,
    schema: Optional[ModelSchema] = None,
    create_validator: Optional[CreateValidator] = None,
    update_validator: Optional[UpdateValidator] = None,
    autocommit: bool = True,
) -> PersistenceHandle:
    """
    Build, validate and cache the persistence handle for ``model``.

    Works for any mapped class, with or without the mixin. Call it at startup
    to surface schema problems early; registering again replaces the handle.
    """

    with log_context(model=getattr(model, "__name__", str(model)), action="register"):
        handle = PersistenceHandle.build(
            model,
            session,
            schema=schema,
            create_validator=create_validator,
            update_validator=update_validator,
            autocommit=autocommit,
        )
        _handles[model] = handle
        logger.info(
            "Registered %s table=%s primary_key=%s associations=%s",
            handle.model_name,
            handle.schema.table,
            list(handle.schema.primary_key),
            sorted(handle.schema.associations),
        )
    return handle


def unregister(model: type) -> None:
    _handles.pop(model, None)


def handle_for(model: type) -> PersistenceHandle:
    """Return the cached handle for ``model``, building it for ``BaseModel`` subclasses."""

    handle = _handles.get(model)
    if handle is not None:
        return handle
    if isinstance(model, type) and issubclass(model, BaseModel):
        return register(
            model,
            _resolve_session(model),
            create_validator=_class_create_validator,
            update_validator=_class_update_validator,
            autocommit=bool(getattr(model, "__autocommit__", True)),
        )
    raise SchemaError(f"{getattr(model, '__name__', model)!r} has not been registered")


def _resolve_session(model: type) -> Optional[SessionLike]:
    session = getattr(model, "__session__", None)
    if session is None:
        # Flask-SQLAlchemy binds its extension to every model it creates
        extension = getattr(model, "__fsa__", None)
        session = getattr(extension, "session", None)
    return session


def _class_create_validator(handle: PersistenceHandle, params: Mapping[str, Any]) -> Any:
    return handle.model.create_changeset(params)


def _class_update_validator(handle: PersistenceHandle, entity: Any, params: Mapping[str, Any]) -> Any:
    return handle.model.update_changeset(entity, params)


def _merge(params: fn.Clause, fields: Dict[str, Any]) -> List[fn.Pair]:
    return fn.normalize_pairs(params) + list(fields.items())


class BaseModel:
    """
    Mixin adding CRUD classmethods to a mapped class.

    ``__session__`` selects the session; when left as ``None`` the
    Flask-SQLAlchemy session of the model's extension is used.
    ``__autocommit__`` chooses between ``commit()`` and ``flush()`` after
    writes.
    """

    __session__ = None
    __autocommit__ = True

    @classmethod
    def handle(cls) -> PersistenceHandle:
        return handle_for(cls)

    @classmethod
    def all(cls, **opts: Any) -> List[Any]:
        """
        All stored records.

        Options: ``order_by`` (``"name"``, ``("desc", "name")`` or a list of
        those) and ``preload`` (relationship name, dotted path, or list).
        """

        return fn.all(cls.handle(), **opts)

    @classmethod
    def create(cls, params: fn.Clause = None, **fields: Any) -> Result:
        """
        Create a record from a mapping, (field, value) pairs, keyword fields,
        or a mix.

        Runs ``create_changeset``. Returns ``Result.success(record)`` or
        ``Result.failure(ValidationFailure)``.
        """

        return fn.create(cls.handle(), _merge(params, fields))

    @classmethod
    def find(cls, key: Any, **opts: Any) -> Optional[Any]:
        """Record with primary key ``key`` or ``None``. Options: ``preload``."""

        return fn.find(cls.handle(), key, **opts)

    @classmethod
    def where(cls, clause: fn.Clause = None, **opts: Any) -> List[Any]:
        """
        Records matching ``clause``. Options: ``order_by``, ``limit``,
        ``preload``; anything else is ignored.
        """

        return fn.where(cls.handle(), clause, **opts)

    @classmethod
    def count(cls, clause: fn.Clause = None) -> int:
        """Number of records matching ``clause`` (all records by default)."""

        return fn.count(cls.handle(), clause)

    @classmethod
    def first(cls, clause: fn.Clause = None, **opts: Any) -> Optional[Any]:
        return fn.first(cls.handle(), clause, **opts)

    @classmethod
    def first_or_create(cls, clause: fn.Clause, **opts: Any) -> Any:
        """
        First record matching ``clause``, or a new one created from it.

        The clause doubles as the create payload, so it must only name
        writable fields with equality values.
        """

        return fn.first_or_create(cls.handle(), clause, **opts)

    @classmethod
    def update(cls, record: Any, params: fn.Clause = None, **fields: Any) -> Result:
        """
        Update ``record`` through ``update_changeset``. Returns
        ``Result.success(record)`` or ``Result.failure(ValidationFailure)``.
        """

        return fn.update(cls.handle(), record, _merge(params, fields))

    @classmethod
    def update_where(cls, clause: fn.Clause, params: fn.Clause) -> Result:
        """
        Set ``params`` on every record matching ``clause``.

        **Important**: skips ``update_changeset`` entirely. Do not use it with
        untrusted input.
        """

        return fn.update_where(cls.handle(), clause, params)

    @classmethod
    def delete(cls, key_or_record: Any) -> Result:
        """Delete by primary key or record; ``Result.failure(NotFound)`` if absent."""

        return fn.delete(cls.handle(), key_or_record)

    @classmethod
    def delete_where(cls, clause: fn.Clause) -> Result:
        return fn.delete_where(cls.handle(), clause)

    @classmethod
    def delete_all(cls) -> Result:
        """Delete every record. Returns ``Result.success(count)``."""

        return fn.delete_all(cls.handle())

    # Override these to provide custom validation / data hygiene.

    @classmethod
    def create_changeset(cls, params: Mapping[str, Any]) -> Any:
        return changesets.create_changeset(cls.handle(), params)

    @classmethod
    def update_changeset(cls, record: Any, params: Mapping[str, Any]) -> Any:
        return changesets.update_changeset(cls.handle(), record, params)
