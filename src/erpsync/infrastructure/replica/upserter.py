"""
Batch upserter - writes one batch of source rows into the replica.

Every row is inserted if its natural key is absent and fully overwritten
(all projected columns plus the raw payload) if present. The batch is one
transaction: it lands completely or not at all, and replaying the same
batch leaves the replica unchanged.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

from sqlalchemy import Table
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from erpsync.domain.entities import EntityDescriptor
from erpsync.domain.errors import BatchWriteError, MalformedRowError
from ..database import REPLICA, unavailable_error
from ..source.payload import to_payload
from .dialect import upsert_statement

logger = logging.getLogger(__name__)


class BatchUpserter:
    """
    Insert-or-replace writer for one entity's replica table.

    Usage:
        upserter = BatchUpserter(engine, descriptor, schema.table_for(descriptor))
        upserter.upsert(rows)
    """

    def __init__(self, engine: Engine, descriptor: EntityDescriptor, table: Table) -> None:
        self.engine = engine
        self.descriptor = descriptor
        self.table = table
        key = descriptor.conflict_key
        update_columns = [c for c in descriptor.column_names if c != key]
        update_columns.append(descriptor.payload_column)
        self._statement = upsert_statement(
            table, engine.dialect.name, key_columns=[key], update_columns=update_columns
        )

    def validate(self, rows: Sequence[Mapping[str, Any]]) -> None:
        """
        Reject the whole batch if any row lacks a required field.

        Raises:
            MalformedRowError: On the first row with a null required field
        """
        required = self.descriptor.required_fields
        for row in rows:
            for field in required:
                if row.get(field) is None:
                    raise MalformedRowError(
                        self.descriptor.entity_id, row.get(self.descriptor.key_field), field
                    )

    def project(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Map a source row to replica column values, payload included."""
        values = {c.name: row.get(c.field) for c in self.descriptor.columns}
        values[self.descriptor.payload_column] = to_payload(row)
        return values

    def upsert(self, rows: Sequence[Mapping[str, Any]]) -> int:
        """
        Write a non-empty ordered batch atomically.

        Returns:
            Number of rows written

        Raises:
            ValueError: If the batch is empty
            MalformedRowError: If a row lacks a required field (nothing written)
            ReplicaUnavailableError: If the replica cannot be reached
            BatchWriteError: On any other write failure (nothing written)
        """
        entity = self.descriptor.entity_id
        if not rows:
            raise ValueError(f"[{entity}] refusing to upsert an empty batch")

        self.validate(rows)
        values = [self.project(row) for row in rows]

        try:
            with self.engine.begin() as conn:
                conn.execute(self._statement, values)
        except OperationalError as e:
            logger.error("[%s] batch of %d rows rolled back: %s", entity, len(values), e)
            raise unavailable_error(REPLICA, e) from e
        except SQLAlchemyError as e:
            logger.error("[%s] batch of %d rows rolled back: %s", entity, len(values), e)
            raise BatchWriteError(entity, f"batch of {len(values)} rows rolled back: {e}") from e

        return len(values)
