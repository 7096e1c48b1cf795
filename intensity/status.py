"""
intensity/status.py

Traffic-light status from recent intensities.

Responsibilities
----------------
- Derive GREEN/YELLOW/RED thresholds from a rolling window of intensities:
  the bottom third of recent values is GREEN, the top third RED.
- Cap the published status at YELLOW when the data is stale or predicted.
- Flag "supergreen": live GREEN with no storage being drawn down.
- Predict from the hour-of-day profile of history when there is no live data.
- Decide when to tell an external notifier about a status change.

Conventions
-----------
- Everything is compared on the retail (loss-adjusted) scale.
- The clock is passed in as `now_ms`; nothing here reads the system time.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Sequence

import pandas as pd

from .compute import IntensityComputer
from .errors import NoGenerationDataError
from .models import FuelSnapshot, IntensityResult, NotificationState, StatusReport, TrafficLight, utc_datetime
from .stats import hourly_profile

logger = logging.getLogger(__name__)

DEFAULT_MIN_SAMPLES = 4
LOWER_QUANTILE = 1 / 3
UPPER_QUANTILE = 2 / 3

Notifier = Callable[[StatusReport], None]


def thresholds(
    values: Iterable[float], min_samples: int = DEFAULT_MIN_SAMPLES
) -> tuple[float, float] | None:
    """Lower and upper tercile boundaries of `values`.

    Returns:
        tuple[float, float] | None: `(lower, upper)`, or None when fewer than
        `min_samples` usable values are available.
    """
    s = pd.Series(list(values), dtype=float).dropna()
    if len(s) < min_samples:
        return None
    return float(s.quantile(LOWER_QUANTILE)), float(s.quantile(UPPER_QUANTILE))


def classify(value: float | None, bounds: tuple[float, float] | None) -> TrafficLight:
    """Place `value` against `(lower, upper)`; unknowns are YELLOW."""
    if value is None or bounds is None or math.isnan(value):
        return TrafficLight.YELLOW
    lower, upper = bounds
    if value < lower:
        return TrafficLight.GREEN
    if value > upper:
        return TrafficLight.RED
    return TrafficLight.YELLOW


class StatusEngine:
    """Evaluates the grid status once per polling cycle.

    Args:
        computer: Turns snapshots into intensities.
        max_age_ms: Newest complete snapshot older than this is stale.
        min_interval_ms: Minimum gap between notifications.
        window_samples: Number of recent results thresholds are drawn from.
        min_samples: Fewer usable results than this gives YELLOW.
        expected_fuels: Fuel codes a snapshot needs to count as complete.
    """

    def __init__(
        self,
        computer: IntensityComputer,
        max_age_ms: int,
        min_interval_ms: int,
        window_samples: int = 288,
        min_samples: int = DEFAULT_MIN_SAMPLES,
        expected_fuels: Iterable[str] = (),
    ):
        self.computer = computer
        self.max_age_ms = max_age_ms
        self.min_interval_ms = min_interval_ms
        self.window_samples = window_samples
        self.min_samples = min_samples
        self.expected_fuels = frozenset(expected_fuels)

    @classmethod
    def from_config(cls, config, computer: IntensityComputer) -> StatusEngine:
        return cls(
            computer,
            max_age_ms=config.max_age_s * 1000,
            min_interval_ms=config.notify_min_gap_mins * 60 * 1000,
            window_samples=config.window_samples,
            expected_fuels=config.expected_fuels,
        )

    def is_complete(self, snapshot: FuelSnapshot) -> bool:
        return not snapshot.missing(self.expected_fuels)

    def is_stale(self, snapshot: FuelSnapshot | None, now_ms: int) -> bool:
        return snapshot is None or now_ms - snapshot.timestamp_ms > self.max_age_ms

    def evaluate(
        self,
        history: Sequence[FuelSnapshot],
        now_ms: int,
        force_stale: bool = False,
    ) -> StatusReport:
        """Status for `now_ms` given an ascending window of history.

        Args:
            history: Recent snapshots, oldest first.
            now_ms: Current time, epoch ms.
            force_stale: Treat the data as stale whatever its age, e.g. when
                it came from the fallback cache.

        Returns:
            StatusReport: Never GREEN when stale or predicted.
        """
        complete = [s for s in history if self.is_complete(s)]
        results = self.computer.compute_many(complete)
        recent = results[-self.window_samples:] if self.window_samples > 0 else []
        bounds = thresholds((r.retail_intensity for r in recent), self.min_samples)
        lower, upper = bounds if bounds is not None else (None, None)

        live = complete[-1] if complete else None
        stale = force_stale or self.is_stale(live, now_ms)

        current: IntensityResult | None = None
        if live is not None and not stale:
            try:
                current = self.computer.compute(live)
            except NoGenerationDataError as e:
                logger.warning("no usable generation in latest snapshot: %s", e)

        if current is not None:
            status = classify(current.retail_intensity, bounds)
            storage_draw = live.storage_draw_mw(self.computer.storage_fuels)
            return StatusReport(
                status=status,
                status_uncapped=status,
                supergreen=status is TrafficLight.GREEN and storage_draw <= 0,
                is_stale=False,
                is_prediction=False,
                retail_intensity=current.retail_intensity,
                lower_threshold=lower,
                upper_threshold=upper,
                timestamp_ms=current.timestamp_ms,
            )

        predicted = self.predict(results, now_ms)
        uncapped = classify(predicted, bounds)
        status = uncapped.capped_at(TrafficLight.YELLOW)
        logger.info(
            "no live data (stale=%s); predicted %s from history, reporting %s",
            stale, uncapped.value, status.value,
        )
        return StatusReport(
            status=status,
            status_uncapped=uncapped,
            supergreen=False,
            is_stale=stale,
            is_prediction=True,
            retail_intensity=predicted,
            lower_threshold=lower,
            upper_threshold=upper,
            timestamp_ms=live.timestamp_ms if live is not None else None,
        )

    def predict(self, results: Sequence[IntensityResult], now_ms: int) -> float | None:
        """Expected retail intensity at `now_ms` from history.

        Uses the mean for the same UTC hour of day, else the most recent
        result, else None.
        """
        profile = hourly_profile(results)
        value = profile.get(utc_datetime(now_ms).hour)
        if value is not None and not math.isnan(value):
            return float(value)
        if results:
            return results[-1].retail_intensity
        return None

    def should_notify(self, report: StatusReport, state: NotificationState, now_ms: int) -> bool:
        """True iff the status changed since the last notification and the
        minimum interval has passed since then."""
        if report.status is state.last_status:
            return False
        if state.last_notified_ms is not None and now_ms - state.last_notified_ms < self.min_interval_ms:
            return False
        return True

    def notify(
        self,
        report: StatusReport,
        state: NotificationState,
        now_ms: int,
        notifier: Notifier,
    ) -> NotificationState:
        """Call `notifier` if warranted and return the resulting state."""
        if not self.should_notify(report, state, now_ms):
            return state
        notifier(report)
        logger.info("notified status change %s -> %s",
                    state.last_status.value if state.last_status else None, report.status.value)
        return NotificationState(last_status=report.status, last_notified_ms=now_ms)
