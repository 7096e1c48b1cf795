"""
intensity/models.py

Value types passed between pipeline stages.

Conventions
-----------
- Timestamps are integer milliseconds since the Unix epoch, UTC.
- Generation is in MW and may be negative (e.g. exporting interconnectors,
  pumping storage).
- Intensities are kgCO2/kWh unless a name says otherwise.
- Everything here is immutable once constructed; the HistoryStore hands out
  these objects directly as read-only views.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType


def utc_datetime(timestamp_ms: int) -> datetime:
    """Return an aware UTC datetime for an epoch-millisecond timestamp."""
    return datetime.fromtimestamp(timestamp_ms / 1000, tz=timezone.utc)


def to_epoch_ms(dt: datetime) -> int:
    """Return epoch milliseconds for an aware datetime."""
    return int(round(dt.timestamp() * 1000))


@dataclass(frozen=True)
class FuelSnapshot:
    """Generation by fuel for one settlement interval.

    Attributes:
        timestamp_ms: Start of the interval, epoch ms UTC; the HistoryStore key.
        generation_by_fuel: Fuel code to MW. May be partial while a streaming
            record is still being assembled.
    """

    timestamp_ms: int
    generation_by_fuel: Mapping[str, int] = field(default_factory=dict)

    def __post_init__(self):
        # Freeze a private copy so callers can never mutate history in place.
        object.__setattr__(
            self, "generation_by_fuel", MappingProxyType(dict(self.generation_by_fuel))
        )

    @property
    def year(self) -> int:
        return utc_datetime(self.timestamp_ms).year

    @property
    def hour_of_day(self) -> int:
        return utc_datetime(self.timestamp_ms).hour

    def merged(self, updates: Mapping[str, int]) -> FuelSnapshot:
        """Return a new snapshot with `updates` applied (last write wins)."""
        combined = dict(self.generation_by_fuel)
        combined.update(updates)
        return FuelSnapshot(self.timestamp_ms, combined)

    def missing(self, expected: Iterable[str]) -> frozenset[str]:
        """Fuel codes in `expected` that this snapshot has no reading for."""
        return frozenset(expected) - set(self.generation_by_fuel)

    def storage_draw_mw(self, storage_fuels: Iterable[str]) -> int:
        """Net MW drawn from storage; zero or negative means no discharge."""
        return sum(self.generation_by_fuel.get(f, 0) for f in storage_fuels)

    def total_positive_mw(self) -> int:
        """Sum of all positive readings, i.e. the demand met by supply."""
        return sum(mw for mw in self.generation_by_fuel.values() if mw > 0)


class TrafficLight(Enum):
    """Advisory grid status, ordered RED < YELLOW < GREEN."""

    RED = "RED"
    YELLOW = "YELLOW"
    GREEN = "GREEN"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def better_than(self, other: TrafficLight) -> bool:
        """True iff this status is strictly better (lower carbon) than `other`."""
        return self.rank > other.rank

    def capped_at(self, ceiling: TrafficLight) -> TrafficLight:
        """Return this status, but never better than `ceiling`."""
        return ceiling if self.better_than(ceiling) else self


_RANK = {TrafficLight.RED: 0, TrafficLight.YELLOW: 1, TrafficLight.GREEN: 2}


@dataclass(frozen=True)
class IntensityResult:
    """Weighted intensity of one snapshot.

    `retail_intensity` is the loss-adjusted consumer-side figure; it is None
    only when a result is built without a computer that knows the losses.
    """

    timestamp_ms: int
    weighted_intensity: float
    total_generation_mw: float
    is_stale: bool = False
    is_partial: bool = False
    retail_intensity: float | None = None

    @property
    def weighted_g_per_kwh(self) -> int:
        return int(round(1000 * self.weighted_intensity))

    @property
    def retail_g_per_kwh(self) -> int | None:
        if self.retail_intensity is None:
            return None
        return int(round(1000 * self.retail_intensity))


@dataclass(frozen=True)
class StatusReport:
    """Outcome of one StatusEngine evaluation.

    Attributes:
        status: Status to publish; never GREEN when the data is stale.
        status_uncapped: Status before the staleness cap (may come from a
            prediction when there is no live data).
        supergreen: GREEN from live data with no storage being drawn down.
        is_stale: Newest complete snapshot older than the allowed age.
        is_prediction: Status was driven from historical data, not a live reading.
        retail_intensity: kgCO2/kWh used for the decision, or None if unknown.
        lower_threshold / upper_threshold: Retail-scale thresholds in use.
        timestamp_ms: Timestamp of the snapshot the decision is based on.
    """

    status: TrafficLight
    status_uncapped: TrafficLight
    supergreen: bool
    is_stale: bool
    is_prediction: bool
    retail_intensity: float | None = None
    lower_threshold: float | None = None
    upper_threshold: float | None = None
    timestamp_ms: int | None = None

    @property
    def flags(self) -> dict[str, bool]:
        """Flag states for remote pollers; True means "flag present".

        - ``basic``: present unless live GREEN.
        - ``predicted``: present unless GREEN, allowing predictions.
        - ``supergreen``: present unless live GREEN with no storage draw-down.
        - ``red``: present when RED, even from stale data.
        """
        basic = self.status is not TrafficLight.GREEN
        return {
            "basic": basic,
            "predicted": self.status_uncapped is not TrafficLight.GREEN,
            "supergreen": not self.supergreen,
            "red": self.status_uncapped is TrafficLight.RED,
        }


@dataclass(frozen=True)
class CorrelationResult:
    """Pearson correlations over a window; NaN means "undefined", not zero."""

    per_fuel_vs_intensity: Mapping[str, float]
    per_fuel_vs_demand: Mapping[str, float]
    intensity_vs_demand: float

    @property
    def is_defined(self) -> bool:
        return not math.isnan(self.intensity_vs_demand)


@dataclass(frozen=True)
class NotificationState:
    """What the notifier was last told, and when."""

    last_status: TrafficLight | None = None
    last_notified_ms: int | None = None
