"""
Entity sync loop - replicates one entity's change stream to exhaustion.

    LOADING_CURSOR -> FETCHING -> (EMPTY -> DONE)
                               |  (UPSERTING -> ADVANCING_CURSOR -> FETCHING)

The cursor is advanced only after the batch it describes is committed.
Any error aborts the loop in FAILED with the cursor untouched, so the
next run re-fetches and re-applies the failed batch; the upsert is
idempotent, which makes that replay safe.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Protocol, Sequence

from erpsync.domain.entities import EntityDescriptor
from erpsync.domain.errors import CursorRegressionError
from erpsync.domain.models import (
    Cursor,
    EntitySyncResult,
    SyncPhase,
    Watermark,
    coerce_timestamp,
    format_timestamp,
)
from erpsync.domain.state_machine import (
    is_forward,
    phase_after_advance,
    phase_after_fetch,
    transition,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Protocols (Interfaces)
# =============================================================================

class Fetcher(Protocol):
    def fetch(self, watermark: Watermark, limit: int) -> list[dict]: ...


class Upserter(Protocol):
    def upsert(self, rows: Sequence[dict]) -> int: ...


class Cursors(Protocol):
    def get(self, entity_key: str) -> Cursor: ...

    def set(self, entity_key: str, time, key: str) -> None: ...


# =============================================================================
# Loop
# =============================================================================

class EntitySyncLoop:
    """
    Drives fetch -> upsert -> advance cursor for one entity.

    Usage:
        loop = EntitySyncLoop(descriptor, fetcher, upserter, cursor_store, batch_size=2000)
        result = loop.run()
    """

    def __init__(
        self,
        descriptor: EntityDescriptor,
        fetcher: Fetcher,
        upserter: Upserter,
        cursors: Cursors,
        batch_size: int,
        always_probe: bool = False,
        strict_key_order: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.descriptor = descriptor
        self.fetcher = fetcher
        self.upserter = upserter
        self.cursors = cursors
        self.batch_size = batch_size
        self.always_probe = always_probe
        self.strict_key_order = strict_key_order
        self._clock = clock
        self.phase = SyncPhase.LOADING_CURSOR
        self.result: EntitySyncResult | None = None

    def _enter(self, phase: SyncPhase) -> None:
        self.phase = transition(self.phase, phase)

    def _watermark_of(self, row: dict) -> Watermark:
        return Watermark(
            coerce_timestamp(row[self.descriptor.time_field]),
            str(row[self.descriptor.key_field]),
        )

    def run(self) -> EntitySyncResult:
        """
        Replicate until the source is exhausted.

        Returns:
            EntitySyncResult in phase DONE

        Raises:
            Whatever the fetcher, upserter or cursor store raised; the loop
            is left in phase FAILED and `self.result` describes the progress
            made before the failure
        """
        entity = self.descriptor.entity_id
        started = self._clock()
        self.phase = SyncPhase.LOADING_CURSOR
        result = EntitySyncResult(entity, start=Watermark.sentinel(), end=Watermark.sentinel())
        self.result = result

        try:
            watermark = self.cursors.get(self.descriptor.cursor_key).watermark
            result.start = result.end = watermark
            logger.info("[%s] start from %s", entity, "beginning" if watermark.is_sentinel else watermark)

            self._enter(SyncPhase.FETCHING)
            while True:
                rows = self.fetcher.fetch(watermark, self.batch_size)
                result.fetches += 1

                self._enter(phase_after_fetch(len(rows)))
                if self.phase is SyncPhase.EMPTY:
                    self._enter(SyncPhase.DONE)
                    break

                self.upserter.upsert(rows)
                result.batches += 1
                result.rows += len(rows)

                self._enter(SyncPhase.ADVANCING_CURSOR)
                new_watermark = self._watermark_of(rows[-1])
                if not is_forward(watermark, new_watermark, self.strict_key_order):
                    raise CursorRegressionError(
                        f"[{entity}] watermark would not advance: {watermark} -> {new_watermark}"
                    )
                self.cursors.set(self.descriptor.cursor_key, new_watermark.time, new_watermark.key)
                watermark = result.end = new_watermark
                logger.info(
                    "[%s] batch %d: %d rows, last %s %s",
                    entity, result.batches, len(rows), format_timestamp(watermark.time), watermark.key,
                )

                self._enter(phase_after_advance(len(rows), self.batch_size, self.always_probe))
                if self.phase is SyncPhase.DONE:
                    break
        except Exception as e:
            self.phase = transition(self.phase, SyncPhase.FAILED)
            result.phase = self.phase
            result.error = str(e)
            result.duration_seconds = self._clock() - started
            logger.error("[%s] failed after %d batches, cursor stays at %s: %s", entity, result.batches, result.end, e)
            raise

        result.phase = self.phase
        result.duration_seconds = self._clock() - started
        logger.info(
            "[%s] total %d rows in %d batches (%d fetches, %.1fs)",
            entity, result.rows, result.batches, result.fetches, result.duration_seconds,
        )
        return result
