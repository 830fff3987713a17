"""
Replication status - stored watermarks and replica row counts per entity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import func, inspect, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from erpsync.domain.entities import EntityDescriptor
from erpsync.domain.models import Watermark
from erpsync.infrastructure.database import REPLICA, unavailable_error
from erpsync.infrastructure.replica.cursor_store import CursorStore
from erpsync.infrastructure.replica.schema import CURSOR_TABLE, ReplicaSchema

logger = logging.getLogger(__name__)


@dataclass
class EntityStatus:
    """Progress of one entity as seen from the replica."""

    entity_id: str
    source_table: str
    target_table: str
    watermark: Watermark
    replica_rows: int | None  # None when the table was never provisioned

    @property
    def started(self) -> bool:
        return not self.watermark.is_sentinel


class StatusService:
    """Reads replication progress without touching the source."""

    def __init__(self, replica_engine: Engine, schema: ReplicaSchema, descriptors: Sequence[EntityDescriptor]):
        self.engine = replica_engine
        self.schema = schema
        self.descriptors = list(descriptors)

    def collect(self) -> list[EntityStatus]:
        """
        Collect the status of every entity.

        Raises:
            ReplicaUnavailableError: If the replica cannot be queried
        """
        try:
            existing = set(inspect(self.engine).get_table_names())
        except SQLAlchemyError as e:
            raise unavailable_error(REPLICA, e) from e

        if CURSOR_TABLE in existing:
            cursors = CursorStore(self.engine, self.schema.cursor_table).get_many(
                d.cursor_key for d in self.descriptors
            )
        else:
            cursors = {}

        statuses = []
        for descriptor in self.descriptors:
            cursor = cursors.get(descriptor.cursor_key)
            statuses.append(
                EntityStatus(
                    entity_id=descriptor.entity_id,
                    source_table=descriptor.source_table,
                    target_table=descriptor.target_table,
                    watermark=cursor.watermark if cursor else Watermark.sentinel(),
                    replica_rows=self._count(descriptor) if descriptor.target_table in existing else None,
                )
            )
        return statuses

    def _count(self, descriptor: EntityDescriptor) -> int:
        table = self.schema.table_for(descriptor)
        try:
            with self.engine.connect() as conn:
                return conn.execute(select(func.count()).select_from(table)).scalar_one()
        except SQLAlchemyError as e:
            raise unavailable_error(REPLICA, e) from e
