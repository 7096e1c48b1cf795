"""Tests for the shared value types."""

from __future__ import annotations

import pytest

from intensity.errors import FetchFailure, FormatError, IllegalArgumentError, IntensityError, NoGenerationDataError
from intensity.models import FuelSnapshot, TrafficLight

T0 = 1_704_888_000_000  # 2024-01-10T12:00:00Z


def test_traffic_light_order():
    """GREEN beats YELLOW beats RED, and nothing beats itself."""

    assert TrafficLight.GREEN.better_than(TrafficLight.YELLOW)
    assert TrafficLight.YELLOW.better_than(TrafficLight.RED)
    assert not TrafficLight.RED.better_than(TrafficLight.GREEN)
    assert not TrafficLight.YELLOW.better_than(TrafficLight.YELLOW)


def test_traffic_light_cap():
    """Capping only ever lowers a status."""

    assert TrafficLight.GREEN.capped_at(TrafficLight.YELLOW) is TrafficLight.YELLOW
    assert TrafficLight.RED.capped_at(TrafficLight.YELLOW) is TrafficLight.RED
    assert TrafficLight.YELLOW.capped_at(TrafficLight.GREEN) is TrafficLight.YELLOW


def test_snapshot_is_read_only():
    """Snapshots copy their input and cannot be changed through it."""

    fuels = {"CCGT": 100}
    snapshot = FuelSnapshot(T0, fuels)
    fuels["CCGT"] = 0

    assert snapshot.generation_by_fuel["CCGT"] == 100
    with pytest.raises(TypeError):
        snapshot.generation_by_fuel["CCGT"] = 1


def test_snapshot_helpers():
    """Year, hour, storage draw and positive total come from the snapshot."""

    snapshot = FuelSnapshot(T0, {"CCGT": 100, "PS": -40, "INTFR": 60})

    assert snapshot.year == 2024
    assert snapshot.hour_of_day == 12
    assert snapshot.storage_draw_mw({"PS"}) == -40
    assert snapshot.total_positive_mw() == 160
    assert snapshot.missing({"CCGT", "WIND"}) == {"WIND"}
    assert dict(snapshot.merged({"WIND": 5}).generation_by_fuel) == {"CCGT": 100, "PS": -40, "INTFR": 60, "WIND": 5}


@pytest.mark.parametrize(
    "cls, builtin",
    [
        (FormatError, ValueError),
        (IllegalArgumentError, ValueError),
        (NoGenerationDataError, ArithmeticError),
        (FetchFailure, OSError),
    ],
)
def test_error_taxonomy(cls, builtin):
    """Every pipeline error is an IntensityError and a matching builtin."""

    assert issubclass(cls, IntensityError)
    assert issubclass(cls, builtin)
