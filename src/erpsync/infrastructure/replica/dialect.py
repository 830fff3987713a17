"""Dialect-native insert-or-replace statements."""

from typing import Sequence

from sqlalchemy import Table
from sqlalchemy.dialects import mysql, postgresql, sqlite


def upsert_statement(
    table: Table,
    dialect_name: str,
    key_columns: Sequence[str],
    update_columns: Sequence[str],
):
    """
    Build an INSERT that overwrites every `update_columns` value on key conflict.

    The statement carries no values; execute it with a list of row dicts.

    Raises:
        NotImplementedError: For dialects without a native upsert
    """
    if dialect_name == "mysql":
        stmt = mysql.insert(table)
        return stmt.on_duplicate_key_update({c: stmt.inserted[c] for c in update_columns})

    if dialect_name == "postgresql":
        stmt = postgresql.insert(table)
    elif dialect_name == "sqlite":
        stmt = sqlite.insert(table)
    else:
        raise NotImplementedError(f"No upsert support for dialect '{dialect_name}'")

    return stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_={c: stmt.excluded[c] for c in update_columns},
    )
