"""Tests for Pearson correlation and fuel correlation statistics."""

from __future__ import annotations

import math

import pytest

from intensity import stats
from intensity.errors import IllegalArgumentError
from intensity.models import FuelSnapshot, IntensityResult

T0 = 1_704_888_000_000  # 2024-01-10T12:00:00Z
STEP = 5 * 60 * 1000
HOUR = 60 * 60 * 1000


def test_pearson_identities():
    """Perfectly aligned and opposed series give +1 and -1."""

    assert stats.pearson([0, 1], [0, 1]) == 1.0
    assert stats.pearson([0, 1], [1, 0]) == -1.0


def test_pearson_zero_variance_is_nan():
    """No variation means undefined, not zero."""

    assert math.isnan(stats.pearson([3, 3], [1, 2]))
    assert math.isnan(stats.pearson([1, 2], [7, 7]))
    assert math.isnan(stats.pearson([5], [9]))


def test_pearson_scale_invariant():
    """Scaling one series by a positive constant changes nothing."""

    xs = [1, 4, 2, 8, 5]
    ys = [2, 3, 1, 9, 4]

    assert stats.pearson([x * 1000 for x in xs], ys) == pytest.approx(stats.pearson(xs, ys))


@pytest.mark.parametrize("xs, ys", [([], []), ([1, 2], [1, 2, 3])])
def test_pearson_bad_input(xs, ys):
    """Empty or mismatched series are caller errors."""

    with pytest.raises(IllegalArgumentError):
        stats.pearson(xs, ys)


def test_correlations_preconditions(coal_wind_computer):
    """No history, an empty window or a non-positive size are refused."""

    with pytest.raises(IllegalArgumentError):
        stats.compute_fuel_correlations(None, 10, coal_wind_computer)
    with pytest.raises(IllegalArgumentError):
        stats.compute_fuel_correlations([], 10, coal_wind_computer)
    with pytest.raises(IllegalArgumentError):
        stats.compute_fuel_correlations([FuelSnapshot(T0, {"COAL": 1})], 0, coal_wind_computer)


def test_single_snapshot_is_undefined(coal_wind_computer):
    """One timestamp has no variation to correlate."""

    result = stats.compute_fuel_correlations(
        [FuelSnapshot(T0, {"COAL": 60, "WIND": 40})], 10, coal_wind_computer
    )

    assert math.isnan(result.intensity_vs_demand)
    assert not result.is_defined


def test_identical_snapshots_are_undefined(coal_wind_computer):
    """Repeating the same mix adds no variation."""

    mix = {"COAL": 60, "WIND": 40}
    result = stats.compute_fuel_correlations(
        [FuelSnapshot(T0, mix), FuelSnapshot(T0 + STEP, mix)], 10, coal_wind_computer
    )

    assert math.isnan(result.intensity_vs_demand)
    assert math.isnan(result.per_fuel_vs_demand["COAL"])


def test_displacement_gives_exact_negative_correlation(coal_wind_computer):
    """Zero-carbon supply displacing coal as demand rises gives exactly -1."""

    history = [
        FuelSnapshot(T0, {"COAL": 10, "WIND": 500}),  # outside the window
        FuelSnapshot(T0 + STEP, {"COAL": 60, "WIND": 40}),  # 100 MW, 0.6
        FuelSnapshot(T0 + 2 * STEP, {"COAL": 80, "WIND": 120}),  # 200 MW, 0.4
        FuelSnapshot(T0 + 3 * STEP, {"COAL": 60, "WIND": 240}),  # 300 MW, 0.2
    ]

    result = stats.compute_fuel_correlations(history, 3, coal_wind_computer)

    assert result.intensity_vs_demand == -1.0
    assert set(result.per_fuel_vs_intensity) == {"COAL", "WIND"}
    assert result.per_fuel_vs_demand["WIND"] > 0.9
    assert result.per_fuel_vs_intensity["WIND"] < -0.9


def test_fuel_only_correlated_while_generating(coal_wind_computer):
    """A fuel that never generates in the window has undefined correlations."""

    history = [
        FuelSnapshot(T0, {"COAL": 60, "WIND": 40, "PS": 0}),
        FuelSnapshot(T0 + STEP, {"COAL": 80, "WIND": 120, "PS": -10}),
    ]

    result = stats.compute_fuel_correlations(history, 10, coal_wind_computer)

    assert math.isnan(result.per_fuel_vs_intensity["PS"])
    assert result.intensity_vs_demand == -1.0


def test_window_with_no_generation(coal_wind_computer):
    """If nothing in the window can be weighed, everything is undefined."""

    result = stats.compute_fuel_correlations(
        [FuelSnapshot(T0, {"COAL": 0})], 10, coal_wind_computer
    )

    assert math.isnan(result.intensity_vs_demand)
    assert result.per_fuel_vs_intensity == {}


def _result(ts, retail):
    return IntensityResult(ts, retail, 1000.0, retail_intensity=retail)


def test_hourly_profile_means_by_utc_hour():
    """Results are averaged per UTC hour of day."""

    profile = stats.hourly_profile(
        [_result(T0 + HOUR, 0.2), _result(T0 + HOUR + 30 * 60 * 1000, 0.4), _result(T0, 0.5)]
    )

    assert profile[13] == pytest.approx(0.3)
    assert profile[12] == pytest.approx(0.5)
    assert profile.get(3) is None


def test_hourly_profile_empty():
    """No results give an empty profile."""

    assert stats.hourly_profile([]).empty
