"""
intensity/stats.py

Trend statistics over windows of history.

Responsibilities
----------------
- `pearson`: product-moment correlation of two equal-length series.
- `compute_fuel_correlations`: per-fuel output against grid intensity and
  against total demand, plus intensity against demand.
- `hourly_profile`: mean intensity by UTC hour of day, the basis of status
  predictions when no live data is available.

Conventions
-----------
- NaN means "undefined" (e.g. a series with no variation) and must never be
  read as zero correlation.
- Correlations are reported at single precision, which is all the inputs
  (integer MW, a handful of significant figures of kgCO2/kWh) justify.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Sequence

import numpy as np
import pandas as pd

from .compute import IntensityComputer
from .errors import IllegalArgumentError, NoGenerationDataError
from .models import CorrelationResult, FuelSnapshot, IntensityResult

logger = logging.getLogger(__name__)


def pearson(xs: Sequence[float], ys: Sequence[float]) -> float:
    """Pearson product-moment correlation of `xs` and `ys`.

    Returns:
        float: r in [-1, 1], or NaN if either series has zero variance
        (including a single sample).

    Raises:
        IllegalArgumentError: If the series are empty or differ in length.
    """
    x = np.asarray(xs, dtype=float)
    y = np.asarray(ys, dtype=float)
    if x.shape != y.shape:
        raise IllegalArgumentError(f"series lengths differ: {len(x)} vs {len(y)}")
    if x.size == 0:
        raise IllegalArgumentError("cannot correlate empty series")
    if np.ptp(x) == 0 or np.ptp(y) == 0:
        return math.nan

    dx = x - x.mean()
    dy = y - y.mean()
    r = float(np.dot(dx, dy) / math.sqrt(np.dot(dx, dx) * np.dot(dy, dy)))
    return max(-1.0, min(1.0, r))


def _single(r: float) -> float:
    return r if math.isnan(r) else float(np.float32(r))


def compute_fuel_correlations(
    history: Iterable[FuelSnapshot] | None,
    window_size: int,
    computer: IntensityComputer,
) -> CorrelationResult:
    """Correlate fuel output with intensity and demand over recent history.

    Demand is the sum of all positive readings in a snapshot. Snapshots with
    no usable generation are left out. A fuel's correlations only use the
    snapshots where it was generating (positive MW).

    Args:
        history: Snapshots in ascending time order (a HistoryStore will do).
        window_size: Use only the newest `window_size` snapshots.
        computer: Supplies each snapshot's weighted intensity.

    Returns:
        CorrelationResult: NaN wherever a correlation is undefined.

    Raises:
        IllegalArgumentError: If `history` is None, `window_size` is not
            positive, or the window is empty.
    """
    if history is None:
        raise IllegalArgumentError("history must not be None")
    if window_size < 1:
        raise IllegalArgumentError(f"window_size must be positive, got {window_size}")
    window = list(history)[-window_size:]
    if not window:
        raise IllegalArgumentError("no history to correlate")

    intensities: list[float] = []
    demands: list[int] = []
    per_fuel: dict[str, list[tuple[int, float, int]]] = {}
    for snapshot in window:
        try:
            intensity = computer.compute(snapshot).weighted_intensity
        except NoGenerationDataError:
            logger.debug("no usable generation at %d; skipped", snapshot.timestamp_ms)
            continue
        demand = snapshot.total_positive_mw()
        intensities.append(intensity)
        demands.append(demand)
        for fuel, mw in snapshot.generation_by_fuel.items():
            points = per_fuel.setdefault(fuel, [])
            if mw > 0:
                points.append((mw, intensity, demand))

    if not intensities:
        logger.info("no snapshot in a window of %d had usable generation", len(window))
        return CorrelationResult({}, {}, math.nan)

    vs_intensity = {}
    vs_demand = {}
    for fuel in sorted(per_fuel):
        points = per_fuel[fuel]
        if not points:
            vs_intensity[fuel] = vs_demand[fuel] = math.nan
            continue
        mws, fuel_intensities, fuel_demands = zip(*points)
        vs_intensity[fuel] = _single(pearson(mws, fuel_intensities))
        vs_demand[fuel] = _single(pearson(mws, fuel_demands))

    return CorrelationResult(
        per_fuel_vs_intensity=vs_intensity,
        per_fuel_vs_demand=vs_demand,
        intensity_vs_demand=_single(pearson(intensities, demands)),
    )


def results_frame(results: Iterable[IntensityResult]) -> pd.DataFrame:
    """Tabulate intensity results, indexed by UTC timestamp."""
    df = pd.DataFrame(
        [
            {
                "timestamp_ms": r.timestamp_ms,
                "weighted_intensity": r.weighted_intensity,
                "retail_intensity": r.retail_intensity,
                "total_generation_mw": r.total_generation_mw,
            }
            for r in results
        ],
        columns=["timestamp_ms", "weighted_intensity", "retail_intensity", "total_generation_mw"],
    )
    df.index = pd.to_datetime(df["timestamp_ms"], unit="ms", utc=True)
    return df


def hourly_profile(results: Iterable[IntensityResult], column: str = "retail_intensity") -> pd.Series:
    """Mean of `column` by UTC hour of day.

    Returns:
        pd.Series: Indexed by hour (0-23); hours with no data are absent.
    """
    results = list(results)
    if not results:
        return pd.Series(dtype=float)
    df = results_frame(results)
    values = pd.to_numeric(df[column], errors="coerce").dropna()
    if values.empty:
        return pd.Series(dtype=float)
    return values.groupby(values.index.hour).mean()
