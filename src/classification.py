"""
Classification store: per-row buckets of scanned unit numbers.

Buckets are sets, not counters, so scanning the same unit twice is a no-op.
Every function returns a new state; a state is never modified in place.
"""

from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Mapping, Optional

from exceptions import UnknownBucketError

ClassificationState = Mapping[str, FrozenSet[int]]


def _freeze(buckets: Dict[str, FrozenSet[int]]) -> ClassificationState:
    return MappingProxyType(buckets)


def empty_state(buckets: Iterable[str]) -> ClassificationState:
    """State with every configured bucket present and empty."""
    return _freeze({name: frozenset() for name in buckets})


def make_state(contents: Mapping[str, Iterable[int]]) -> ClassificationState:
    """State from plain bucket -> units contents, preserving bucket order."""
    return _freeze({name: frozenset(units) for name, units in contents.items()})


def _check(bucket: str, state: ClassificationState):
    if bucket not in state:
        raise UnknownBucketError(bucket, list(state))


def size(bucket: str, state: ClassificationState) -> int:
    _check(bucket, state)
    return len(state[bucket])


def insert(bucket: str, unit: int, state: ClassificationState) -> ClassificationState:
    """Add unit to bucket. Re-inserting a unit already present returns state as is."""
    _check(bucket, state)
    if unit in state[bucket]:
        return state
    updated = dict(state)
    updated[bucket] = state[bucket] | {unit}
    return _freeze(updated)


def receiving_floor(state: ClassificationState, receiving: Optional[str] = None) -> int:
    """
    Smallest size the receiving bucket may shrink to.

    Units cannot be classified further than they were received, so the
    receiving bucket stays at least as large as every other bucket.
    """
    receiving = receiving or next(iter(state))
    return max((len(units) for name, units in state.items() if name != receiving), default=0)


def remove(bucket: str, unit: int, state: ClassificationState,
           receiving: Optional[str] = None) -> ClassificationState:
    """
    Remove unit from bucket ("unscan").

    Args:
        bucket: Bucket to remove from
        unit: Unit number
        state: Current state
        receiving: Name of the receiving bucket; defaults to the first bucket

    Returns:
        New state, or the same state if the unit is absent or removing it
        would take the receiving bucket below the receiving floor
    """
    _check(bucket, state)
    if unit not in state[bucket]:
        return state

    receiving = receiving or next(iter(state))
    if bucket == receiving and len(state[bucket]) <= receiving_floor(state, receiving):
        return state

    updated = dict(state)
    updated[bucket] = state[bucket] - {unit}
    return _freeze(updated)


def is_closed(state: ClassificationState, total: int) -> bool:
    """True iff every tracked bucket holds exactly `total` units."""
    return all(len(units) == total for units in state.values())
