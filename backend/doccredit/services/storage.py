"""Atomic keyed write primitives shared by the ledger, permissions and stats.

Both helpers dispatch on the session's SQL dialect so the same call issues
``INSERT ... ON CONFLICT`` on PostgreSQL and on SQLite.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Mapping, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..platform.errors import StorageError

logger = logging.getLogger("doccredit.storage")

SetClause = Union[Mapping[str, Any], Callable[[Any], Mapping[str, Any]]]


def _dialect_insert(session: Session, model: Any):
    bind = session.get_bind()
    dialect_name = getattr(getattr(bind, "dialect", None), "name", "")
    if "postgresql" in str(dialect_name):
        from sqlalchemy.dialects.postgresql import insert as _pg_insert

        return _pg_insert(model)
    if "sqlite" in str(dialect_name):
        from sqlalchemy.dialects.sqlite import insert as _sqlite_insert

        return _sqlite_insert(model)
    raise NotImplementedError(f"Upsert is not supported for dialect {dialect_name!r}")


def upsert(
    session: Session,
    model: Any,
    values: dict[str, Any],
    *,
    index_elements: list[str],
    set_: SetClause,
) -> Any:
    """Insert ``values`` or, when the key already exists, apply ``set_`` in place.

    ``set_`` maps column names to new values or SQL expressions. Expressions
    may reference the stored row through the model's columns (for example
    ``Model.counter + 1``). Pass a callable to also reach the proposed row:
    it receives ``excluded`` and returns the mapping.
    """
    stmt = _dialect_insert(session, model).values(**values)
    clause = set_(stmt.excluded) if callable(set_) else set_
    stmt = stmt.on_conflict_do_update(index_elements=index_elements, set_=dict(clause))
    return session.execute(stmt)


def insert_ignore(
    session: Session,
    model: Any,
    values: dict[str, Any],
    *,
    index_elements: list[str],
) -> bool:
    """Insert ``values`` unless the key exists. Returns True when a row was created."""
    stmt = _dialect_insert(session, model).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=index_elements)
    result = session.execute(stmt)
    return bool(result.rowcount)


@contextmanager
def write_transaction(session: Session, what: str):
    """Commit the enclosed writes as one unit, or roll all of them back.

    Driver and database failures surface as ``StorageError``; anything else
    is re-raised unchanged after the rollback.
    """
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Storage failure during %s", what)
        raise StorageError(f"Storage is unavailable ({what})") from exc
    except Exception:
        session.rollback()
        raise
