"""
Dialect-aware INSERT ... ON CONFLICT helpers.

Postgres serves production and SQLite backs the test harness; both support
ON CONFLICT, but through dialect-specific insert constructs.
"""
from typing import Any

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session


def dialect_insert(db: Session, model: Any):
    """Return an ON CONFLICT-capable insert() for the session's dialect."""
    if db.get_bind().dialect.name == "postgresql":
        return pg_insert(model)
    return sqlite_insert(model)


def insert_or_ignore(
    db: Session,
    model: Any,
    values: dict[str, Any],
    conflict_columns: list[str],
) -> bool:
    """
    INSERT ... ON CONFLICT DO NOTHING.

    Returns True when a row was written, False when the conflict target
    already existed.
    """
    stmt = (
        dialect_insert(db, model)
        .values(**values)
        .on_conflict_do_nothing(index_elements=conflict_columns)
    )
    result = db.execute(stmt)
    return result.rowcount > 0


def upsert_rows(
    db: Session,
    model: Any,
    rows: list[dict[str, Any]],
    conflict_columns: list[str],
    update_columns: list[str],
) -> None:
    """
    Multi-row INSERT ... ON CONFLICT DO UPDATE.

    Every row is resolved independently by the database, so the order of
    *rows* never affects the end state.
    """
    if not rows:
        return
    stmt = dialect_insert(db, model).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=conflict_columns,
        set_={column: getattr(stmt.excluded, column) for column in update_columns},
    )
    db.execute(stmt)
