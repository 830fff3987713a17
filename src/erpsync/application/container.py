"""
Dependency injection container for the application.

Creates engines and services from one ReplicatorConfig. Engines are
created on first use, so commands that only touch the replica never need
source credentials, and are disposed when the container is closed.
"""

import logging
from typing import List, Optional

from sqlalchemy.engine import Engine

from .status_service import StatusService
from .sync_service import SyncService
from erpsync.domain.config import ReplicatorConfig
from erpsync.domain.entities import DEFAULT_ENTITIES, EntityDescriptor
from erpsync.infrastructure.database import REPLICA, SOURCE, create_database_engine
from erpsync.infrastructure.identifiers import safe_identifier
from erpsync.infrastructure.replica.schema import ReplicaSchema, build_schema

logger = logging.getLogger(__name__)


def resolve_descriptors(config: ReplicatorConfig) -> List[EntityDescriptor]:
    """Built-in descriptors with configured source table overrides applied."""
    descriptors = []
    for descriptor in DEFAULT_ENTITIES:
        table = config.source_tables.get(descriptor.entity_id)
        if table and table != descriptor.source_table:
            logger.info("Entity %s reads from %r", descriptor.entity_id, table)
            descriptor = descriptor.with_source_table(safe_identifier(table))
        descriptors.append(descriptor)
    return descriptors


class Container:
    """
    Dependency injection container.

    Usage:
        with Container(config) as container:
            container.sync_service.run()
    """

    def __init__(self, config: ReplicatorConfig):
        self.config = config
        self._source_engine: Optional[Engine] = None
        self._replica_engine: Optional[Engine] = None
        self._descriptors: Optional[List[EntityDescriptor]] = None
        self._schema: Optional[ReplicaSchema] = None
        self._sync_service: Optional[SyncService] = None
        self._status_service: Optional[StatusService] = None

    def __enter__(self) -> "Container":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def source_engine(self) -> Engine:
        if self._source_engine is None:
            self._source_engine = create_database_engine(
                self.config.source, SOURCE, read_timeout_ms=self.config.sync.query_timeout_ms
            )
        return self._source_engine

    @property
    def replica_engine(self) -> Engine:
        if self._replica_engine is None:
            self._replica_engine = create_database_engine(self.config.replica, REPLICA)
        return self._replica_engine

    @property
    def descriptors(self) -> List[EntityDescriptor]:
        if self._descriptors is None:
            self._descriptors = resolve_descriptors(self.config)
        return self._descriptors

    @property
    def schema(self) -> ReplicaSchema:
        if self._schema is None:
            self._schema = build_schema(self.descriptors)
        return self._schema

    @property
    def sync_service(self) -> SyncService:
        if self._sync_service is None:
            self._sync_service = SyncService(
                self.config,
                self.source_engine,
                self.replica_engine,
                descriptors=self.descriptors,
                schema=self.schema,
            )
        return self._sync_service

    @property
    def status_service(self) -> StatusService:
        if self._status_service is None:
            self._status_service = StatusService(self.replica_engine, self.schema, self.descriptors)
        return self._status_service

    def close(self) -> None:
        """Dispose engines created by this container."""
        for engine in (self._source_engine, self._replica_engine):
            if engine is not None:
                engine.dispose()
        self._source_engine = self._replica_engine = None
        logger.debug("Database engines disposed")
