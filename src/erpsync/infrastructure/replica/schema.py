"""
Replica schema definition and provisioning.

Tables are derived from the entity descriptors:
- one typed table per entity, keyed by the natural key, with a JSON(B)
  payload column holding the full source record
- sync_state_kv, the key/value cursor table

Provisioning is idempotent: tables and indexes are created when missing,
and projected columns added to a descriptor after the table was first
created are appended with ALTER TABLE ... ADD COLUMN.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from sqlalchemy import (
    JSON,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    inspect,
    text,
)
from sqlalchemy.dialects import mysql
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from erpsync.domain.entities import ColumnType, EntityDescriptor
from erpsync.domain.errors import SchemaProvisioningError

logger = logging.getLogger(__name__)

CURSOR_TABLE = "sync_state_kv"

# MySQL cannot index unbounded TEXT, and its NUMERIC/DATETIME defaults
# drop the fraction.
KEY_TYPE = Text().with_variant(String(255), "mysql")
PAYLOAD_TYPE = JSON().with_variant(JSONB(), "postgresql")

_COLUMN_TYPES = {
    ColumnType.TEXT: Text(),
    ColumnType.TIMESTAMP: DateTime().with_variant(mysql.DATETIME(fsp=6), "mysql"),
    ColumnType.DATE: Date(),
    ColumnType.INTEGER: Integer(),
    ColumnType.NUMERIC: Numeric().with_variant(mysql.DECIMAL(precision=30, scale=9), "mysql"),
}


@dataclass
class ReplicaSchema:
    """SQLAlchemy metadata for every replica table."""

    metadata: MetaData
    cursor_table: Table
    tables: dict[str, Table] = field(default_factory=dict)

    def table_for(self, descriptor: EntityDescriptor) -> Table:
        return self.tables[descriptor.entity_id]


def _entity_table(descriptor: EntityDescriptor, metadata: MetaData) -> Table:
    columns = []
    for projected in descriptor.columns:
        if projected.name == descriptor.conflict_key:
            columns.append(Column(projected.name, KEY_TYPE, primary_key=True))
        else:
            columns.append(Column(projected.name, _COLUMN_TYPES[projected.type]))
    columns.append(Column(descriptor.payload_column, PAYLOAD_TYPE))

    table = Table(descriptor.target_table, metadata, *columns)
    for projected in descriptor.columns:
        if projected.indexed:
            Index(f"idx_{descriptor.target_table}_{projected.name}", table.c[projected.name])
    return table


def build_schema(descriptors: Iterable[EntityDescriptor]) -> ReplicaSchema:
    """Build replica metadata for the given entities plus the cursor table."""
    metadata = MetaData()
    cursor_table = Table(
        CURSOR_TABLE,
        metadata,
        Column("key", KEY_TYPE, primary_key=True),
        Column("value", Text()),
    )
    schema = ReplicaSchema(metadata=metadata, cursor_table=cursor_table)
    for descriptor in descriptors:
        schema.tables[descriptor.entity_id] = _entity_table(descriptor, metadata)
    return schema


def _add_missing_columns(conn, table: Table, existing: set[str]) -> list[str]:
    preparer = conn.dialect.identifier_preparer
    added = []
    for column in table.columns:
        if column.name in existing:
            continue
        ddl = "ALTER TABLE {} ADD COLUMN {} {}".format(
            preparer.format_table(table),
            preparer.format_column(column),
            column.type.compile(dialect=conn.dialect),
        )
        conn.execute(text(ddl))
        added.append(column.name)
    return added


def provision_schema(engine: Engine, schema: ReplicaSchema) -> None:
    """
    Create replica tables, indexes and the cursor table if they don't exist.

    Safe to call multiple times.

    Raises:
        SchemaProvisioningError: On any DDL failure (e.g. missing privilege)
    """
    try:
        with engine.begin() as conn:
            existing_tables = set(inspect(conn).get_table_names())
            schema.metadata.create_all(conn, checkfirst=True)

            for table in schema.metadata.sorted_tables:
                if table.name not in existing_tables:
                    logger.info("Created replica table %s", table.name)
                    continue
                existing_columns = {c["name"] for c in inspect(conn).get_columns(table.name)}
                added = _add_missing_columns(conn, table, existing_columns)
                if added:
                    logger.info("Added columns to %s: %s", table.name, ", ".join(added))
                for index in table.indexes:
                    index.create(conn, checkfirst=True)
    except SQLAlchemyError as e:
        logger.error("Schema provisioning failed: %s", e)
        raise SchemaProvisioningError(f"Could not provision replica schema: {e}") from e

    logger.debug("Replica schema ready (%d tables)", len(schema.metadata.tables))
