"""
Domain models for erpsync.

This module contains the core value objects of the replication engine:
- Watermarks and per-entity cursors
- Sync loop phases
- Per-entity and per-run results

These models are pure data structures with no I/O dependencies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum


TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S.%f"

# "Beginning of time" for a cursor that has never been saved.
SENTINEL_TIME = datetime(1970, 1, 1)
SENTINEL_KEY = ""


def normalize_timestamp(value: datetime) -> datetime:
    """Drop tzinfo (converting to UTC first) so all watermarks compare."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def format_timestamp(value: datetime) -> str:
    """Render a watermark time the way it is persisted in the cursor table."""
    return normalize_timestamp(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse a persisted watermark time.

    Accepts both the persisted form ("1970-01-01 00:00:00.000000") and
    ISO-8601 with a "T" separator.

    Raises:
        ValueError: If the string is not a timestamp
    """
    return normalize_timestamp(datetime.fromisoformat(value.strip()))


def coerce_timestamp(value: object) -> datetime:
    """
    Turn a source `modified` value into a watermark time.

    Raises:
        ValueError: If the value is null or not a timestamp
    """
    if isinstance(value, datetime):
        return normalize_timestamp(value)
    if isinstance(value, date):
        return datetime.combine(value, datetime.min.time())
    if isinstance(value, str):
        return parse_timestamp(value)
    raise ValueError(f"Not a timestamp: {value!r}")


# ============================================================================
# Enumerations
# ============================================================================

class SyncPhase(str, Enum):
    """Phase of an entity sync loop."""

    LOADING_CURSOR = "loading_cursor"
    FETCHING = "fetching"
    EMPTY = "empty"
    UPSERTING = "upserting"
    ADVANCING_CURSOR = "advancing_cursor"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SyncPhase.DONE, SyncPhase.FAILED)


# ============================================================================
# Cursor Models
# ============================================================================

@dataclass(frozen=True, order=True)
class Watermark:
    """
    Position in one entity's change stream.

    Ordered lexicographically by (time, key), which is exactly the order
    in which the source rows are fetched.
    """

    time: datetime
    key: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "time", normalize_timestamp(self.time))

    @classmethod
    def sentinel(cls) -> Watermark:
        return cls(SENTINEL_TIME, SENTINEL_KEY)

    @property
    def is_sentinel(self) -> bool:
        return self.time == SENTINEL_TIME and self.key == SENTINEL_KEY

    def __str__(self) -> str:
        return f"({format_timestamp(self.time)}, {self.key!r})"


@dataclass(frozen=True)
class Cursor:
    """Replication progress of one entity."""

    entity_id: str
    watermark: Watermark = field(default_factory=Watermark.sentinel)

    @property
    def watermark_time(self) -> datetime:
        return self.watermark.time

    @property
    def watermark_key(self) -> str:
        return self.watermark.key


# ============================================================================
# Results
# ============================================================================

@dataclass
class EntitySyncResult:
    """Outcome of one entity loop."""

    entity_id: str
    start: Watermark
    end: Watermark
    phase: SyncPhase = SyncPhase.LOADING_CURSOR
    rows: int = 0
    batches: int = 0
    fetches: int = 0
    duration_seconds: float = 0.0
    error: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.phase is SyncPhase.DONE


@dataclass
class SyncRunResult:
    """Outcome of one orchestrated run across entities."""

    started_at: datetime
    entities: list[EntitySyncResult] = field(default_factory=list)
    ended_at: datetime | None = None
    failed_entity: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.failed_entity is None and all(r.succeeded for r in self.entities)

    @property
    def total_rows(self) -> int:
        return sum(r.rows for r in self.entities)
