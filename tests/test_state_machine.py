"""
Unit tests for the entity sync state machine.

Tests all legal transitions, illegal ones, and the exhaustion rules.
"""

from datetime import datetime

import pytest

from erpsync.domain.models import SyncPhase, Watermark
from erpsync.domain.state_machine import (
    can_transition,
    is_forward,
    phase_after_advance,
    phase_after_fetch,
    transition,
)

T = datetime(2024, 1, 1)


class TestTransitions:
    """Legal and illegal phase changes."""

    @pytest.mark.parametrize(
        "current,target",
        [
            (SyncPhase.LOADING_CURSOR, SyncPhase.FETCHING),
            (SyncPhase.FETCHING, SyncPhase.EMPTY),
            (SyncPhase.FETCHING, SyncPhase.UPSERTING),
            (SyncPhase.EMPTY, SyncPhase.DONE),
            (SyncPhase.UPSERTING, SyncPhase.ADVANCING_CURSOR),
            (SyncPhase.ADVANCING_CURSOR, SyncPhase.FETCHING),
            (SyncPhase.ADVANCING_CURSOR, SyncPhase.DONE),
        ],
    )
    def test_legal(self, current, target):
        assert transition(current, target) is target

    @pytest.mark.parametrize(
        "current,target",
        [
            (SyncPhase.LOADING_CURSOR, SyncPhase.UPSERTING),
            (SyncPhase.FETCHING, SyncPhase.DONE),
            (SyncPhase.UPSERTING, SyncPhase.FETCHING),
            (SyncPhase.EMPTY, SyncPhase.FETCHING),
            (SyncPhase.DONE, SyncPhase.FETCHING),
        ],
    )
    def test_illegal(self, current, target):
        with pytest.raises(ValueError):
            transition(current, target)

    def test_any_active_phase_can_fail(self):
        for phase in SyncPhase:
            if phase.is_terminal:
                continue
            assert can_transition(phase, SyncPhase.FAILED)

    def test_terminal_phases_are_final(self):
        assert not can_transition(SyncPhase.DONE, SyncPhase.FAILED)
        assert not can_transition(SyncPhase.FAILED, SyncPhase.FAILED)


class TestExhaustion:
    """When the loop stops fetching."""

    def test_empty_fetch_is_exhaustion(self):
        assert phase_after_fetch(0) is SyncPhase.EMPTY
        assert phase_after_fetch(1) is SyncPhase.UPSERTING

    def test_short_batch_ends_loop(self):
        assert phase_after_advance(batch_size=1, limit=2) is SyncPhase.DONE

    def test_full_batch_fetches_again(self):
        assert phase_after_advance(batch_size=2, limit=2) is SyncPhase.FETCHING

    def test_always_probe_ignores_short_batch(self):
        assert phase_after_advance(batch_size=1, limit=2, always_probe=True) is SyncPhase.FETCHING


class TestIsForward:
    """The watermark must move on after each batch."""

    def test_later_time(self):
        assert is_forward(Watermark(T, "Z"), Watermark(datetime(2024, 1, 2), "A"))

    def test_same_time_new_key(self):
        assert is_forward(Watermark(T, "A"), Watermark(T, "B"))

    def test_same_position(self):
        assert not is_forward(Watermark(T, "B"), Watermark(T, "B"))

    def test_earlier_time(self):
        assert not is_forward(Watermark(T, "A"), Watermark(datetime(2023, 12, 31), "Z"))

    def test_same_time_smaller_key(self):
        assert not is_forward(Watermark(T, "B"), Watermark(T, "A"))

    def test_case_insensitive_source_accepts_any_new_key(self):
        # "C" sorts before "b" by code point but after it under a _ci collation
        assert is_forward(Watermark(T, "b"), Watermark(T, "C"), strict_key_order=False)
        assert is_forward(Watermark(T, "B"), Watermark(T, "A"), strict_key_order=False)
        assert not is_forward(Watermark(T, "B"), Watermark(T, "B"), strict_key_order=False)
        assert not is_forward(Watermark(T, "A"), Watermark(datetime(2023, 12, 31), "Z"), strict_key_order=False)
