"""
Tests for watermark value objects and timestamp handling.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from erpsync.domain.models import (
    Cursor,
    EntitySyncResult,
    SyncPhase,
    SyncRunResult,
    Watermark,
    coerce_timestamp,
    format_timestamp,
    parse_timestamp,
)


class TestWatermark:
    """Ordering and sentinel behaviour."""

    def test_lexicographic_order(self):
        t = datetime(2024, 1, 1)
        marks = [
            Watermark(t + timedelta(seconds=1), "A"),
            Watermark(t, "C"),
            Watermark(t, "B"),
        ]
        assert sorted(marks) == [
            Watermark(t, "B"),
            Watermark(t, "C"),
            Watermark(t + timedelta(seconds=1), "A"),
        ]

    def test_sentinel_sorts_first(self):
        assert Watermark.sentinel() < Watermark(datetime(1999, 1, 1), "")
        assert Watermark.sentinel().is_sentinel
        assert not Watermark(datetime(2024, 1, 1), "A").is_sentinel

    def test_aware_time_is_normalized_to_utc(self):
        aware = datetime(2024, 1, 1, 2, 0, tzinfo=timezone(timedelta(hours=2)))
        assert Watermark(aware, "A").time == datetime(2024, 1, 1, 0, 0)

    def test_cursor_defaults_to_sentinel(self):
        cursor = Cursor("sales_invoice")
        assert cursor.watermark.is_sentinel
        assert cursor.watermark_key == ""


class TestTimestamps:
    """Persisted timestamp format."""

    def test_format_matches_sentinel_string(self):
        assert format_timestamp(Watermark.sentinel().time) == "1970-01-01 00:00:00.000000"

    def test_format_keeps_microseconds(self):
        value = datetime(2024, 3, 5, 10, 20, 30, 123456)
        assert parse_timestamp(format_timestamp(value)) == value

    def test_parse_accepts_iso_t_separator(self):
        assert parse_timestamp("2024-01-01T00:00:00") == datetime(2024, 1, 1)

    def test_parse_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_timestamp("yesterday")

    def test_coerce(self):
        assert coerce_timestamp(datetime(2024, 1, 1, 5)) == datetime(2024, 1, 1, 5)
        assert coerce_timestamp(date(2024, 1, 1)) == datetime(2024, 1, 1)
        assert coerce_timestamp("2024-01-01 00:00:00") == datetime(2024, 1, 1)
        with pytest.raises(ValueError):
            coerce_timestamp(None)


class TestResults:
    """Run result aggregation."""

    def test_run_succeeds_only_when_all_done(self):
        s = Watermark.sentinel()
        run = SyncRunResult(started_at=datetime.now(timezone.utc))
        run.entities.append(EntitySyncResult("item", s, s, phase=SyncPhase.DONE, rows=3))
        run.entities.append(EntitySyncResult("invoice", s, s, phase=SyncPhase.DONE, rows=2))
        assert run.succeeded
        assert run.total_rows == 5

        run.entities.append(EntitySyncResult("invoice_item", s, s, phase=SyncPhase.FAILED))
        assert not run.succeeded
