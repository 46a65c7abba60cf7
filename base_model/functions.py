"""
Stateless query/command translator behind the model operations.

Every function takes a :class:`~base_model.handle.PersistenceHandle` and
turns keyword/mapping arguments into SQLAlchemy statements so model code can
avoid repeating ORM boilerplate. Reads return entities (or ``None``); writes
return :class:`~base_model.results.Result` values.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from marshmallow import ValidationError
from sqlalchemy import delete as sa_delete
from sqlalchemy import func, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy import update as sa_update
from sqlalchemy.orm import RelationshipProperty, selectinload

from .errors import PreconditionError, QueryError
from .handle import PersistenceHandle
from .results import NotFound, Result, ValidationFailure
from .utils import sanitize_payload, serialize_value
from .utils.logging_utils import get_logger, log_context

Pair = Tuple[str, Any]
Clause = Union[Mapping[str, Any], Iterable[Pair], None]

READ_OPTIONS = ("order_by", "limit", "preload")

_DIRECTIONS = {
    "asc": lambda column: column.asc(),
    "desc": lambda column: column.desc(),
    "asc_nulls_first": lambda column: column.asc().nulls_first(),
    "asc_nulls_last": lambda column: column.asc().nulls_last(),
    "desc_nulls_first": lambda column: column.desc().nulls_first(),
    "desc_nulls_last": lambda column: column.desc().nulls_last(),
}

logger = get_logger("model")
query_logger = get_logger("query")
validation_logger = get_logger("validation")


# ---------------------------------------------------------------------------
# Argument normalization
# ---------------------------------------------------------------------------


def normalize_pairs(clause: Clause) -> List[Pair]:
    """Turn a mapping, an iterable of pairs or ``None`` into an ordered pair list."""

    if clause is None:
        return []
    if isinstance(clause, Mapping):
        return [(str(key), value) for key, value in clause.items()]
    if isinstance(clause, (str, bytes)):
        raise QueryError(f"expected a mapping or (field, value) pairs, got {clause!r}")

    pairs: List[Pair] = []
    for item in clause:
        if not isinstance(item, (tuple, list)) or len(item) != 2:
            raise QueryError(f"expected a (field, value) pair, got {item!r}")
        pairs.append((str(item[0]), item[1]))
    return pairs


def resolve_associations(handle: PersistenceHandle, clause: Clause) -> List[Pair]:
    """
    Replace belongs-to association values with their foreign key.

    ``("user", bob)`` becomes ``("user_id", bob.id)`` when the entity type
    declares ``user`` as a belongs-to association. The related value may be
    an entity, a mapping, or ``None``. Other pairs pass through unchanged.
    """

    resolved: List[Pair] = []
    for field_name, value in normalize_pairs(clause):
        assoc = handle.schema.association(field_name)
        if assoc is None:
            resolved.append((field_name, value))
            continue
        if value is None:
            key = None
        elif isinstance(value, Mapping):
            key = value.get(assoc.related_key)
        elif _is_related(assoc, value):
            key = getattr(value, assoc.related_key)
        else:
            raise QueryError(
                f"{handle.model_name}.{field_name} expects a record, a mapping or None; "
                f"pass {assoc.owner_key!r} to filter by key, got {value!r}"
            )
        resolved.append((assoc.owner_key, key))
    return resolved


def _is_related(assoc, value: Any) -> bool:
    if assoc.related_model is not None:
        return isinstance(value, assoc.related_model)
    return hasattr(value, assoc.related_key)


def _column(handle: PersistenceHandle, field_name: str):
    if not handle.schema.has_field(field_name):
        raise QueryError(f"{handle.model_name} has no field {field_name!r}")
    return getattr(handle.model, field_name)


def build_conditions(handle: PersistenceHandle, clause: Clause) -> List[Any]:
    """Translate a where-clause into SQL expressions; ``None`` becomes ``IS NULL``."""

    conditions = []
    for field_name, value in resolve_associations(handle, clause):
        column = _column(handle, field_name)
        conditions.append(column.is_(None) if value is None else column == value)
    return conditions


def _pk_values(handle: PersistenceHandle, key: Any) -> Tuple[Any, ...]:
    primary_key = handle.schema.primary_key
    if isinstance(key, handle.model):
        identity = sa_inspect(key).identity
        if identity is not None:
            return tuple(identity)
        return tuple(getattr(key, name) for name in primary_key)
    if len(primary_key) == 1:
        return (key,)
    if not isinstance(key, (tuple, list)) or len(key) != len(primary_key):
        raise QueryError(
            f"{handle.model_name} has a composite primary key {primary_key}; got {key!r}"
        )
    return tuple(key)


def _pk_conditions(handle: PersistenceHandle, values: Sequence[Any]) -> List[Any]:
    return [getattr(handle.model, name) == value for name, value in zip(handle.schema.primary_key, values)]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


def _order_item(handle: PersistenceHandle, item: Any):
    if isinstance(item, str):
        return _column(handle, item).asc()
    if isinstance(item, (tuple, list)) and len(item) == 2:
        direction, field_name = item
        apply = _DIRECTIONS.get(str(direction).lower())
        if apply is None:
            raise QueryError(f"unknown order_by direction {direction!r}")
        return apply(_column(handle, field_name))
    raise QueryError(f"cannot order by {item!r}")


def order_clauses(handle: PersistenceHandle, order_by: Any) -> List[Any]:
    """
    ``"name"`` orders ascending, ``("desc", "name")`` is a single pair, and a
    list may mix both forms.
    """

    if isinstance(order_by, str):
        return [_order_item(handle, order_by)]
    if isinstance(order_by, tuple) and len(order_by) == 2 and str(order_by[0]).lower() in _DIRECTIONS:
        return [_order_item(handle, order_by)]
    if isinstance(order_by, (list, tuple)):
        return [_order_item(handle, item) for item in order_by]
    raise QueryError(f"cannot order by {order_by!r}")


def _check_limit(limit: Any) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 0:
        raise QueryError(f"limit must be a non-negative integer, got {limit!r}")
    return limit


def preload_options(handle: PersistenceHandle, preload: Any) -> List[Any]:
    """Eager-load relationships named directly or as dotted paths (``"problems.user"``)."""

    paths = [preload] if isinstance(preload, str) else list(preload)
    options = []
    for path in paths:
        names = str(path).split(".")
        if names[0] not in handle.schema.relationships:
            raise QueryError(f"{handle.model_name} has no relationship {names[0]!r}")
        model = handle.model
        loader = None
        for name in names:
            attribute = getattr(model, name, None)
            prop = getattr(attribute, "property", None)
            if not isinstance(prop, RelationshipProperty):
                raise QueryError(f"{model.__name__} has no relationship {name!r}")
            loader = selectinload(attribute) if loader is None else loader.selectinload(attribute)
            model = prop.mapper.class_
        options.append(loader)
    return options


def add_opts(handle: PersistenceHandle, stmt, opts: Mapping[str, Any], allowed: Sequence[str]):
    """Apply each recognized and allowed option once; everything else is dropped."""

    dropped = sorted(key for key in opts if key not in allowed)
    if dropped:
        query_logger.debug("Ignoring options %s for %s", dropped, handle.model_name)

    if "order_by" in allowed and opts.get("order_by") is not None:
        stmt = stmt.order_by(*order_clauses(handle, opts["order_by"]))
    if "limit" in allowed and opts.get("limit") is not None:
        stmt = stmt.limit(_check_limit(opts["limit"]))
    if "preload" in allowed and opts.get("preload") is not None:
        stmt = stmt.options(*preload_options(handle, opts["preload"]))
    return stmt


def _base_query(handle: PersistenceHandle, clause: Clause = None):
    return select(handle.model).where(*build_conditions(handle, clause))


def _as_params(handle: PersistenceHandle, params: Clause) -> Dict[str, Any]:
    return dict(resolve_associations(handle, params))


def _rollback(handle: PersistenceHandle) -> None:
    handle.session.rollback()


def _validation_failure(outcome: Any) -> Optional[ValidationFailure]:
    if isinstance(outcome, ValidationFailure):
        return outcome
    if isinstance(outcome, ValidationError):
        return ValidationFailure.from_marshmallow(outcome)
    return None


# ---------------------------------------------------------------------------
# Reads
# ---------------------------------------------------------------------------


def all(handle: PersistenceHandle, **opts: Any) -> List[Any]:
    """Every stored entity; honours ``order_by`` and ``preload``."""

    stmt = add_opts(handle, select(handle.model), opts, ("order_by", "preload"))
    with log_context(model=handle.model_name, action="all"):
        results = list(handle.session.execute(stmt).scalars())
        query_logger.debug("Listed %s count=%s", handle.model_name, len(results))
    return results


def find(handle: PersistenceHandle, key: Any, **opts: Any) -> Optional[Any]:
    """Entity with primary key ``key`` or ``None``; honours ``preload`` only."""

    stmt = select(handle.model).where(*_pk_conditions(handle, _pk_values(handle, key)))
    stmt = add_opts(handle, stmt, opts, ("preload",))
    with log_context(model=handle.model_name, action="find"):
        instance = handle.session.execute(stmt).scalars().first()
        query_logger.debug(
            "Fetched %s id=%s found=%s", handle.model_name, serialize_value(key), instance is not None
        )
    return instance


def where(handle: PersistenceHandle, clause: Clause = None, **opts: Any) -> List[Any]:
    """Entities matching ``clause``; honours ``order_by``, ``limit`` and ``preload``."""

    stmt = add_opts(handle, _base_query(handle, clause), opts, READ_OPTIONS)
    with log_context(model=handle.model_name, action="where"):
        results = list(handle.session.execute(stmt).scalars())
        query_logger.debug(
            "Queried %s clause=%s count=%s",
            handle.model_name,
            sanitize_payload(normalize_pairs(clause)),
            len(results),
        )
    return results


def count(handle: PersistenceHandle, clause: Clause = None) -> int:
    stmt = select(func.count()).select_from(handle.model).where(*build_conditions(handle, clause))
    with log_context(model=handle.model_name, action="count"):
        total = handle.session.execute(stmt).scalar_one()
        query_logger.debug("Counted %s count=%s", handle.model_name, total)
    return int(total)


def first(handle: PersistenceHandle, clause: Clause = None, **opts: Any) -> Optional[Any]:
    """
    First entity matching ``clause`` or ``None``.

    ``limit`` is always 1. Without an explicit ``order_by`` the lowest
    primary key wins.
    """

    opts = dict(opts, limit=1)
    if opts.get("order_by") is None:
        opts["order_by"] = list(handle.schema.primary_key)
    results = where(handle, clause, **opts)
    return results[0] if results else None


# ---------------------------------------------------------------------------
# Writes
# ---------------------------------------------------------------------------


def create(handle: PersistenceHandle, params: Clause) -> Result:
    """
    Validate ``params`` through the handle's create validator and insert.

    Belongs-to values are resolved to foreign keys before validation.
    """

    attributes = _as_params(handle, params)
    sanitized = sanitize_payload(attributes)
    with log_context(model=handle.model_name, action="create"):
        logger.info("Creating %s attributes=%s", handle.model_name, sanitized)
        try:
            outcome = handle.validate_create(attributes)
        except ValidationError as exc:
            outcome = exc

        failure = _validation_failure(outcome)
        if failure is not None:
            validation_logger.info("Rejected %s create errors=%s", handle.model_name, failure.errors)
            return Result.failure(failure)

        try:
            handle.session.add(outcome)
            handle.finish_write()
        except Exception:
            _rollback(handle)
            logger.exception("Failed to create %s attributes=%s", handle.model_name, sanitized)
            raise

        logger.info("Created %s target_id=%s", handle.model_name, _identity(handle, outcome))
        return Result.success(outcome)


def first_or_create(handle: PersistenceHandle, clause: Clause, **opts: Any) -> Any:
    """
    Return the first match for ``clause``, creating it from the clause when
    nothing matches.

    The clause is used verbatim as the create payload, so its fields must be
    acceptable creation input. A clause the create validator rejects raises
    :class:`PreconditionError`.
    """

    pairs = normalize_pairs(clause)
    found = first(handle, pairs, **opts)
    if found is not None:
        return found

    result = create(handle, pairs)
    if not result.ok:
        raise PreconditionError(
            f"where-clause for {handle.model_name}.first_or_create is not a valid create payload",
            failure=result.error,
        )
    return result.value


def update(handle: PersistenceHandle, entity: Any, params: Clause) -> Result:
    """Validate ``params`` through the handle's update validator and save ``entity``."""

    attributes = _as_params(handle, params)
    sanitized = sanitize_payload(attributes)
    target = _identity(handle, entity)
    with log_context(model=handle.model_name, action="update"):
        logger.info("Updating %s target_id=%s attributes=%s", handle.model_name, target, sanitized)
        try:
            outcome = handle.validate_update(entity, attributes)
        except ValidationError as exc:
            outcome = exc

        failure = _validation_failure(outcome)
        if failure is not None:
            validation_logger.info(
                "Rejected %s update target_id=%s errors=%s", handle.model_name, target, failure.errors
            )
            return Result.failure(failure)

        try:
            handle.session.add(outcome)
            handle.finish_write()
        except Exception:
            _rollback(handle)
            logger.exception("Failed to update %s target_id=%s attributes=%s", handle.model_name, target, sanitized)
            raise

        logger.info("Updated %s target_id=%s", handle.model_name, target)
        return Result.success(outcome)


def update_where(handle: PersistenceHandle, clause: Clause, params: Clause) -> Result:
    """
    Set ``params`` on every entity matching ``clause``.

    No validation runs here; never pass untrusted input.
    """

    values = {_column(handle, name): value for name, value in resolve_associations(handle, params)}
    stmt = sa_update(handle.model).where(*build_conditions(handle, clause)).values(values)
    return _bulk(handle, "update_where", stmt, clause)


def delete(handle: PersistenceHandle, key: Any) -> Result:
    """Delete by primary key or entity; ``Result.failure(NotFound)`` when nothing matched."""

    values = _pk_values(handle, key)
    stmt = sa_delete(handle.model).where(*_pk_conditions(handle, values))
    with log_context(model=handle.model_name, action="delete"):
        logger.info("Deleting %s target_id=%s", handle.model_name, serialize_value(values))
        try:
            deleted = handle.session.execute(stmt).rowcount
            handle.finish_write()
        except Exception:
            _rollback(handle)
            logger.exception("Failed to delete %s target_id=%s", handle.model_name, serialize_value(values))
            raise

        if not deleted:
            logger.warning("Delete skipped for %s; target not found id=%s", handle.model_name, serialize_value(values))
            return Result.failure(NotFound(handle.model_name, values[0] if len(values) == 1 else values))
        logger.info("Deleted %s target_id=%s", handle.model_name, serialize_value(values))
        return Result.success()


def delete_where(handle: PersistenceHandle, clause: Clause) -> Result:
    stmt = sa_delete(handle.model).where(*build_conditions(handle, clause))
    return _bulk(handle, "delete_where", stmt, clause)


def delete_all(handle: PersistenceHandle) -> Result:
    return _bulk(handle, "delete_all", sa_delete(handle.model), None)


def _bulk(handle: PersistenceHandle, action: str, stmt, clause: Clause) -> Result:
    description = sanitize_payload(normalize_pairs(clause))
    with log_context(model=handle.model_name, action=action):
        logger.info("Running %s on %s clause=%s", action, handle.model_name, description)
        try:
            affected = handle.session.execute(stmt).rowcount
            handle.finish_write()
        except Exception:
            _rollback(handle)
            logger.exception("Failed %s on %s clause=%s", action, handle.model_name, description)
            raise
        logger.info("Finished %s on %s count=%s", action, handle.model_name, affected)
        return Result.success(affected)


def _identity(handle: PersistenceHandle, entity: Any) -> Any:
    values = [serialize_value(getattr(entity, name, None)) for name in handle.schema.primary_key]
    return values[0] if len(values) == 1 else values
