"""
Conditional writes (INSERT ... ON CONFLICT) for PostgreSQL and SQLite.

Both dialects share the same on_conflict_* API, so callers stay dialect-free.
"""
from typing import Any, Callable, Dict, Iterable, Optional, Union

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def _insert_for(db: Session, table: Table):
    dialect = db.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"Conditional insert is not supported for dialect {dialect!r}")


def insert_ignore(
    db: Session,
    table: Table,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
) -> bool:
    """
    Insert a row unless the unique key already exists.

    Returns:
        True if this call inserted the row, False if it already existed
    """
    stmt = _insert_for(db, table).values(**values)
    stmt = stmt.on_conflict_do_nothing(index_elements=list(conflict_columns))
    result = db.execute(stmt)
    return result.rowcount == 1


def upsert(
    db: Session,
    table: Table,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
    update_values: Optional[Union[Dict[str, Any], Callable[[Any], Dict[str, Any]]]] = None,
) -> None:
    """
    Insert a row, or update the existing one on key conflict.

    update_values may be a callable taking the `excluded` namespace, so that
    increments like `col + excluded.col` stay a single atomic statement.
    """
    conflict_columns = list(conflict_columns)
    stmt = _insert_for(db, table).values(**values)
    if update_values is None:
        update_values = {
            key: getattr(stmt.excluded, key)
            for key in values
            if key not in conflict_columns
        }
    elif callable(update_values):
        update_values = update_values(stmt.excluded)
    stmt = stmt.on_conflict_do_update(index_elements=conflict_columns, set_=update_values)
    db.execute(stmt)
