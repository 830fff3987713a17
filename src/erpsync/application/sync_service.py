"""
Sync orchestrator.

Provisions the replica schema once, then runs the entity sync loops one
after another in descriptor order. The first failing entity aborts the
whole run; later entities are not attempted.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from sqlalchemy.engine import Engine

from .entity_sync import EntitySyncLoop
from erpsync.domain.config import ReplicatorConfig
from erpsync.domain.entities import DEFAULT_ENTITIES, EntityDescriptor, select_entities
from erpsync.domain.errors import EntitySyncError
from erpsync.domain.models import SyncRunResult
from erpsync.infrastructure.database import REPLICA, SOURCE, verify_connection
from erpsync.infrastructure.replica.cursor_store import CursorStore
from erpsync.infrastructure.replica.schema import ReplicaSchema, build_schema, provision_schema
from erpsync.infrastructure.replica.upserter import BatchUpserter
from erpsync.infrastructure.source.fetcher import ChangeFetcher

logger = logging.getLogger(__name__)


def provision_replica(replica_engine: Engine, schema: ReplicaSchema) -> None:
    """Create replica tables, indexes and the cursor table if missing."""
    verify_connection(replica_engine, REPLICA)
    provision_schema(replica_engine, schema)


class SyncService:
    """
    Runs one replication pass across entities.

    Usage:
        service = SyncService(config, source_engine, replica_engine)
        result = service.run()
    """

    def __init__(
        self,
        config: ReplicatorConfig,
        source_engine: Engine,
        replica_engine: Engine,
        descriptors: Sequence[EntityDescriptor] = DEFAULT_ENTITIES,
        schema: Optional[ReplicaSchema] = None,
    ) -> None:
        self.config = config
        self.source_engine = source_engine
        self.replica_engine = replica_engine
        self.descriptors = list(descriptors)
        self.schema = schema or build_schema(self.descriptors)
        self.cursor_store = CursorStore(replica_engine, self.schema.cursor_table)

    @property
    def strict_key_order(self) -> bool:
        """Configured value, else strict unless the source collates like MySQL."""
        configured = self.config.sync.strict_key_order
        if configured is not None:
            return configured
        return self.source_engine.dialect.name != "mysql"

    def build_loop(self, descriptor: EntityDescriptor) -> EntitySyncLoop:
        """Wire the fetcher, upserter and cursor store of one entity."""
        sync = self.config.sync
        return EntitySyncLoop(
            descriptor=descriptor,
            fetcher=ChangeFetcher(self.source_engine, descriptor, sync.query_timeout_ms),
            upserter=BatchUpserter(self.replica_engine, descriptor, self.schema.table_for(descriptor)),
            cursors=self.cursor_store,
            batch_size=descriptor.batch_size or sync.batch_size,
            always_probe=sync.always_probe,
            strict_key_order=self.strict_key_order,
        )

    def run(self, only: Optional[Iterable[str]] = None) -> SyncRunResult:
        """
        Provision the schema, then sync every selected entity in order.

        Args:
            only: Entity allow-list; defaults to the configured one, None
                meaning all entities

        Returns:
            SyncRunResult with one entry per entity that ran

        Raises:
            ConfigurationError: If the allow-list names an unknown entity
            SchemaProvisioningError: Before any entity runs
            EntitySyncError: For the first entity whose loop failed
        """
        selected = select_entities(self.descriptors, only if only is not None else self.config.only)
        run = SyncRunResult(started_at=datetime.now(timezone.utc))
        logger.info(
            "Sync start: source %s -> replica %s, entities: %s",
            self.config.source.describe(),
            self.config.replica.describe(),
            ", ".join(d.entity_id for d in selected) or "none",
        )

        provision_replica(self.replica_engine, self.schema)
        verify_connection(self.source_engine, SOURCE)

        for descriptor in selected:
            logger.info("Sync %s start", descriptor.entity_id)
            loop = self.build_loop(descriptor)
            try:
                run.entities.append(loop.run())
            except Exception as e:
                if loop.result is not None:
                    run.entities.append(loop.result)
                run.failed_entity = descriptor.entity_id
                run.ended_at = datetime.now(timezone.utc)
                raise EntitySyncError(descriptor.entity_id, e, run_result=run) from e

        run.ended_at = datetime.now(timezone.utc)
        logger.info("Sync complete: %d rows across %d entities", run.total_rows, len(run.entities))
        return run
