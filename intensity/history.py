"""
intensity/history.py

In-memory, timestamp-keyed series of `FuelSnapshot`s.

The store is the only owner of the canonical snapshot sequence. Writes go
through `upsert`, which is idempotent per timestamp: re-applying the same
fuel map leaves the store unchanged and reports no change. Readers get
immutable snapshots or tuples of them.
"""

from __future__ import annotations

import bisect
from collections.abc import Callable, Iterable, Iterator, Mapping

from .models import FuelSnapshot

HOUR_MS = 3600 * 1000


class HistoryStore:
    """Append/upsert-only time series of fuel snapshots."""

    def __init__(self, snapshots: Iterable[FuelSnapshot] = ()):
        self._by_ts: dict[int, FuelSnapshot] = {}
        self._keys: list[int] = []  # sorted ascending
        for s in snapshots:
            self.upsert(s.timestamp_ms, s.generation_by_fuel)

    def __len__(self) -> int:
        return len(self._keys)

    def __iter__(self) -> Iterator[FuelSnapshot]:
        return (self._by_ts[k] for k in list(self._keys))

    def __contains__(self, timestamp_ms: int) -> bool:
        return timestamp_ms in self._by_ts

    @property
    def timestamps(self) -> tuple[int, ...]:
        return tuple(self._keys)

    def get(self, timestamp_ms: int) -> FuelSnapshot | None:
        return self._by_ts.get(timestamp_ms)

    def upsert(self, timestamp_ms: int, fuel_map: Mapping[str, int]) -> bool:
        """Merge `fuel_map` into the snapshot at `timestamp_ms`.

        Values win per fuel over what is already stored; fuels not mentioned
        are kept.

        Returns:
            bool: True if the stored snapshot was created or changed.
        """
        current = self._by_ts.get(timestamp_ms)
        if current is None:
            self._by_ts[timestamp_ms] = FuelSnapshot(timestamp_ms, fuel_map)
            bisect.insort(self._keys, timestamp_ms)
            return True

        if all(current.generation_by_fuel.get(f) == mw for f, mw in fuel_map.items()):
            return False
        self._by_ts[timestamp_ms] = current.merged(fuel_map)
        return True

    def latest(self, predicate: Callable[[FuelSnapshot], bool] | None = None) -> FuelSnapshot | None:
        """Newest snapshot, optionally the newest one satisfying `predicate`."""
        for k in reversed(self._keys):
            s = self._by_ts[k]
            if predicate is None or predicate(s):
                return s
        return None

    def window(
        self,
        count: int | None = None,
        since_ms: int | None = None,
        until_ms: int | None = None,
    ) -> tuple[FuelSnapshot, ...]:
        """Immutable ascending view of (part of) the history.

        Args:
            count: Keep only the newest `count` snapshots of the selection.
            since_ms: Inclusive lower timestamp bound.
            until_ms: Inclusive upper timestamp bound.
        """
        lo = 0 if since_ms is None else bisect.bisect_left(self._keys, since_ms)
        hi = len(self._keys) if until_ms is None else bisect.bisect_right(self._keys, until_ms)
        keys = self._keys[lo:hi]
        if count is not None:
            keys = keys[-count:] if count > 0 else []
        return tuple(self._by_ts[k] for k in keys)

    def trim(self, max_span_ms: int) -> int:
        """Drop snapshots older than `max_span_ms` before the newest one.

        Returns:
            int: Number of snapshots removed.
        """
        if len(self._keys) < 2:
            return 0
        oldest_allowed = self._keys[-1] - max_span_ms + 1
        cut = bisect.bisect_left(self._keys, oldest_allowed)
        for k in self._keys[:cut]:
            del self._by_ts[k]
        del self._keys[:cut]
        return cut
