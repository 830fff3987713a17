"""
Domain layer for erpsync.

Pure value objects, descriptors, configuration models and the loop state
machine. Nothing in this package performs I/O.
"""

from .config import DatabaseSettings, ReplicatorConfig, SyncSettings
from .entities import (
    DEFAULT_ENTITIES,
    ColumnType,
    EntityDescriptor,
    ProjectedColumn,
    parse_entity_filter,
    select_entities,
)
from .models import (
    Cursor,
    EntitySyncResult,
    SyncPhase,
    SyncRunResult,
    Watermark,
)

__all__ = [
    "ColumnType",
    "Cursor",
    "DEFAULT_ENTITIES",
    "DatabaseSettings",
    "EntityDescriptor",
    "EntitySyncResult",
    "ProjectedColumn",
    "ReplicatorConfig",
    "SyncPhase",
    "SyncRunResult",
    "SyncSettings",
    "Watermark",
    "parse_entity_filter",
    "select_entities",
]
