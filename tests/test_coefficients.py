"""Tests for date-ranged fuel intensity coefficients."""

from __future__ import annotations

import pytest

from intensity import coefficients
from intensity.coefficients import IntensityCoefficient, IntensityTable
from intensity.errors import FormatError

PROPS = {
    "intensity.fuel.NUCLEAR": "0",
    "intensity.fuel.CCGT": "0.394",
    "intensity.fuel.INTIRL./2011": "0.7",
    "intensity.fuel.INTIRL.2012/2021": "0.45",
    "intensity.fuel.INTIRL.2022/2023": "0.458",
    "intensity.fuel.INTIRL.2024/": "0.288",
    "intensity.fuelname.CCGT": "Combined-Cycle Gas Turbine",
    "timescale.intensity.max": "1800",
}


@pytest.fixture
def table():
    return IntensityTable.from_properties(PROPS)


@pytest.mark.parametrize(
    "year, expected",
    [(2009, 0.7), (2011, 0.7), (2012, 0.45), (2021, 0.45), (2022, 0.458), (2024, 0.288), (2050, 0.288)],
)
def test_resolve_dated_ranges(table, year, expected):
    """Inclusive year ranges select the coefficient in force that year."""

    assert table.resolve("INTIRL", year) == expected


def test_undated_applies_to_all_years(table):
    """An unqualified key is used for any year."""

    assert table.resolve("NUCLEAR", 1990) == 0.0
    assert table.resolve("NUCLEAR", 2030) == 0.0


def test_unknown_fuel_resolves_to_none(table):
    """Fuels with no coefficient are unknown, not zero-carbon."""

    assert table.resolve("WIND", 2024) is None
    assert "WIND" not in table


def test_for_year_keys_are_bare_fuel_codes(table):
    """The per-year view never exposes date qualifiers in its keys."""

    view = table.for_year(2024)

    assert view == {"CCGT": 0.394, "INTIRL": 0.288, "NUCLEAR": 0.0}
    assert len(table) == 3


def test_dated_range_beats_undated_fallback():
    """A dated range covering the year wins over the undated value."""

    table = IntensityTable.from_properties(
        {"intensity.fuel.INTEW": "0.3", "intensity.fuel.INTEW.2021": "0.45"}
    )

    assert table.resolve("INTEW", 2021) == 0.45
    assert table.resolve("INTEW", 2022) == 0.3


def test_coefficients_ordered_by_specificity():
    """Narrower ranges come before wider ones, the undated value last."""

    table = IntensityTable.from_properties(
        {
            "intensity.fuel.INTEW": "0.3",
            "intensity.fuel.INTEW.2024/": "0.288",
            "intensity.fuel.INTEW.2021": "0.45",
            "intensity.fuel.INTEW.2022/2023": "0.458",
        }
    )

    spans = [(c.valid_from, c.valid_to) for c in table.coefficients("INTEW")]

    assert spans == [(2021, 2021), (2022, 2023), (2024, None), (None, None)]


@pytest.mark.parametrize(
    "key, value",
    [
        ("intensity.fuel.INTIRL.20x1", "0.7"),
        ("intensity.fuel.INTIRL.2015/2010", "0.7"),
        ("intensity.fuel.INTIRL./", "0.7"),
        ("intensity.fuel.INTIRL.2010/2011/2012", "0.7"),
        ("intensity.fuel.ccgt", "0.4"),
        ("intensity.fuel.CCGT", "-0.1"),
        ("intensity.fuel.CCGT", "nan"),
        ("intensity.fuel.CCGT", "heavy"),
    ],
)
def test_malformed_entries_rejected(key, value):
    """Bad ranges, fuel codes and values fail at load time."""

    with pytest.raises(FormatError):
        IntensityTable.from_properties({key: value})


def test_overlapping_ranges_rejected():
    """Two dated ranges for one fuel may not share a year."""

    with pytest.raises(FormatError, match="overlapping"):
        IntensityTable.from_properties(
            {"intensity.fuel.INTIRL.2010/2015": "0.5", "intensity.fuel.INTIRL.2015/": "0.4"}
        )


def test_duplicate_undated_rejected():
    """At most one undated fallback per fuel."""

    c = IntensityCoefficient("CCGT", None, None, 0.4, dated=False)

    with pytest.raises(FormatError, match="duplicate"):
        IntensityTable([c, c])


def test_parse_range_forms():
    """All four qualifier forms give inclusive bounds."""

    assert coefficients.parse_range("2021") == (2021, 2021)
    assert coefficients.parse_range("2012/") == (2012, None)
    assert coefficients.parse_range("/2011") == (None, 2011)
    assert coefficients.parse_range("2012/2021") == (2012, 2021)


def test_missing_forward_coefficients():
    """Fuels valid this year but not next are reported, not raised."""

    table = IntensityTable.from_properties(
        {"intensity.fuel.INTEW.2021": "0.45", "intensity.fuel.NUCLEAR": "0"}
    )

    assert table.missing_forward_coefficients(2021) == ["INTEW"]
    assert table.missing_forward_coefficients(2020) == []
