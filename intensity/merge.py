"""
intensity/merge.py

Folds partial fuel maps from either feed into the HistoryStore.

Responsibilities
----------------
- Replay records oldest-publication-first so the newest publication wins
  per `(timestamp, fuel)` pair, whatever order the feed used.
- Stay idempotent: merging a record that is already stored changes nothing.
- Decide whether a stored snapshot is complete, i.e. carries every expected
  fuel code. Incomplete snapshots stay visible and are flagged downstream.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from enum import Enum

from .errors import IllegalArgumentError
from .history import HistoryStore
from .models import FuelSnapshot
from .validate import FuelReading

logger = logging.getLogger(__name__)


class Order(Enum):
    """Publication order of records handed to the merger."""

    ASCENDING = "ascending"  # oldest publication first
    DESCENDING = "descending"  # newest publication first


class RecordMerger:
    """Merge `(timestamp_ms, fuel_map)` records into a HistoryStore.

    Args:
        store: The store to write into.
        expected_fuels: Fuel codes a complete snapshot must carry.
    """

    def __init__(self, store: HistoryStore, expected_fuels: Iterable[str] = ()):
        self.store = store
        self.expected_fuels = frozenset(expected_fuels)

    def merge(
        self,
        records: Mapping[int, Mapping[str, int]] | Iterable[tuple[int, Mapping[str, int]]],
        order: Order,
    ) -> dict[str, int]:
        """Merge records given in `order` of publication.

        Args:
            records: Either a `{timestamp_ms: fuel_map}` mapping or an iterable
                of `(timestamp_ms, fuel_map)` pairs, in publication order.
            order: How `records` is ordered; must be given explicitly.

        Returns:
            dict[str, int]: ``{"merged", "created", "updated", "unchanged"}``
            counts of records by outcome.
        """
        if not isinstance(order, Order):
            raise IllegalArgumentError(f"order must be an Order, got {order!r}")

        items = list(records.items()) if isinstance(records, Mapping) else list(records)
        if order is Order.DESCENDING:
            items.reverse()

        stats = {"merged": 0, "created": 0, "updated": 0, "unchanged": 0}
        for timestamp_ms, fuel_map in items:
            existed = timestamp_ms in self.store
            changed = self.store.upsert(timestamp_ms, fuel_map)
            stats["merged"] += 1
            if not changed:
                stats["unchanged"] += 1
            elif existed:
                stats["updated"] += 1
            else:
                stats["created"] += 1

        logger.debug("merged %s into history of %d snapshots", stats, len(self.store))
        return stats

    def merge_readings(self, readings: Iterable[FuelReading], order: Order) -> dict[str, int]:
        """Merge individual readings, each as a one-fuel partial record."""
        return self.merge(
            ((r.timestamp_ms, {r.fuel_code: r.generation_mw}) for r in readings), order
        )

    def missing_fuels(self, snapshot: FuelSnapshot) -> frozenset[str]:
        return snapshot.missing(self.expected_fuels)

    def is_complete(self, snapshot: FuelSnapshot) -> bool:
        return not self.missing_fuels(snapshot)

    def latest_complete(self) -> FuelSnapshot | None:
        """Newest snapshot carrying every expected fuel."""
        return self.store.latest(self.is_complete)
