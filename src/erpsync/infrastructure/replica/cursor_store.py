"""
Durable replication progress.

Each entity owns two rows in the replica's sync_state_kv table:

    <prefix>_modified       last replicated modification time
    <prefix>_modified_name  last replicated natural key (tie-break)

Both rows are written together in one transaction, after the batch they
describe has been committed.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import Table, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from erpsync.domain.errors import CursorStoreError
from erpsync.domain.models import (
    Cursor,
    Watermark,
    format_timestamp,
    parse_timestamp,
)
from .dialect import upsert_statement

logger = logging.getLogger(__name__)


def progress_keys(entity_key: str) -> tuple[str, str]:
    """Cursor table keys holding the watermark time and name of an entity."""
    return f"{entity_key}_modified", f"{entity_key}_modified_name"


class CursorStore:
    """
    Key/value cursor store backed by the replica.

    Usage:
        store = CursorStore(engine, schema.cursor_table)
        cursor = store.get("sales_invoice")
        store.set("sales_invoice", row_modified, row_name)
    """

    def __init__(self, engine: Engine, table: Table) -> None:
        self.engine = engine
        self.table = table
        self._upsert = upsert_statement(
            table, engine.dialect.name, key_columns=["key"], update_columns=["value"]
        )

    def _read(self, keys: Iterable[str]) -> dict[str, str | None]:
        keys = list(keys)
        stmt = select(self.table.c.key, self.table.c.value).where(self.table.c.key.in_(keys))
        try:
            with self.engine.connect() as conn:
                return {key: value for key, value in conn.execute(stmt)}
        except SQLAlchemyError as e:
            raise CursorStoreError(f"Could not read cursor keys {keys}: {e}") from e

    @staticmethod
    def _to_cursor(entity_key: str, values: dict[str, str | None]) -> Cursor:
        time_key, name_key = progress_keys(entity_key)
        raw_time = values.get(time_key)
        if not raw_time:
            return Cursor(entity_key)
        try:
            time = parse_timestamp(raw_time)
        except ValueError as e:
            raise CursorStoreError(f"Corrupt watermark for '{entity_key}': {raw_time!r}") from e
        return Cursor(entity_key, Watermark(time, values.get(name_key) or ""))

    def get(self, entity_key: str) -> Cursor:
        """
        Load the cursor of an entity.

        Returns:
            The saved cursor, or one holding the sentinel watermark when
            nothing was saved yet
        """
        cursor = self._to_cursor(entity_key, self._read(progress_keys(entity_key)))
        logger.debug("Loaded cursor %s %s", entity_key, cursor.watermark)
        return cursor

    def get_many(self, entity_keys: Iterable[str]) -> dict[str, Cursor]:
        """Load several cursors in one query."""
        entity_keys = list(entity_keys)
        keys = [k for entity_key in entity_keys for k in progress_keys(entity_key)]
        values = self._read(keys)
        return {entity_key: self._to_cursor(entity_key, values) for entity_key in entity_keys}

    def set(self, entity_key: str, time, key: str) -> None:
        """
        Overwrite the watermark of an entity.

        Args:
            entity_key: Cursor prefix of the entity
            time: Modification time of the last replicated row
            key: Natural key of the last replicated row
        """
        time_key, name_key = progress_keys(entity_key)
        rows = [
            {"key": time_key, "value": format_timestamp(time)},
            {"key": name_key, "value": key},
        ]
        try:
            with self.engine.begin() as conn:
                conn.execute(self._upsert, rows)
        except SQLAlchemyError as e:
            raise CursorStoreError(f"Could not save cursor for '{entity_key}': {e}") from e
        logger.debug("Saved cursor %s (%s, %r)", entity_key, format_timestamp(time), key)
