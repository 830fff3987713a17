"""
State machine for the entity sync loop.

This module is the authoritative description of which phase may follow
which while one entity's change stream is replicated:

    LOADING_CURSOR -> FETCHING -> EMPTY -> DONE
                               -> UPSERTING -> ADVANCING_CURSOR -> FETCHING
                                                                -> DONE (short batch)

Any non-terminal phase may move to FAILED.

Architecture Note:
    - Pure domain logic - no I/O, no database calls
    - The loop in erpsync.application.entity_sync drives it
"""

from __future__ import annotations

from .models import SyncPhase, Watermark


_TRANSITIONS: dict[SyncPhase, frozenset[SyncPhase]] = {
    SyncPhase.LOADING_CURSOR: frozenset({SyncPhase.FETCHING}),
    SyncPhase.FETCHING: frozenset({SyncPhase.EMPTY, SyncPhase.UPSERTING}),
    SyncPhase.EMPTY: frozenset({SyncPhase.DONE}),
    SyncPhase.UPSERTING: frozenset({SyncPhase.ADVANCING_CURSOR}),
    SyncPhase.ADVANCING_CURSOR: frozenset({SyncPhase.FETCHING, SyncPhase.DONE}),
    SyncPhase.DONE: frozenset(),
    SyncPhase.FAILED: frozenset(),
}


def can_transition(current: SyncPhase, target: SyncPhase) -> bool:
    """Check whether `target` may follow `current`."""
    if target is SyncPhase.FAILED:
        return not current.is_terminal
    return target in _TRANSITIONS[current]


def transition(current: SyncPhase, target: SyncPhase) -> SyncPhase:
    """
    Validate and perform a phase transition.

    Returns:
        The new phase

    Raises:
        ValueError: If the transition is not allowed
    """
    if not can_transition(current, target):
        raise ValueError(f"Illegal sync transition {current.value} -> {target.value}")
    return target


def phase_after_fetch(batch_size: int) -> SyncPhase:
    """An empty fetch is the loop's only regular success exit."""
    return SyncPhase.EMPTY if batch_size == 0 else SyncPhase.UPSERTING


def phase_after_advance(batch_size: int, limit: int, always_probe: bool = False) -> SyncPhase:
    """
    Decide whether to fetch again after a committed batch.

    A batch shorter than the limit means the stream is exhausted, because
    the fetch predicate is exact and nothing is filtered after LIMIT. With
    `always_probe` the loop instead confirms exhaustion with an empty fetch.
    """
    if not always_probe and batch_size < limit:
        return SyncPhase.DONE
    return SyncPhase.FETCHING


def is_forward(previous: Watermark, new: Watermark, strict_key_order: bool = True) -> bool:
    """
    A committed batch must move the watermark strictly forward.

    With `strict_key_order` the whole (time, key) pair must grow. Sources
    whose key collation differs from code-point order (MySQL `_ci`
    collations) pass False, and then keys sharing a timestamp only have
    to differ.
    """
    if new.time != previous.time:
        return new.time > previous.time
    if strict_key_order:
        return new.key > previous.key
    return new.key != previous.key
