"""
intensity/coefficients.py

Date-ranged per-fuel carbon-intensity coefficients (kgCO2/kWh).

Responsibilities
----------------
- Parse flat configuration entries of the form::

      intensity.fuel.NUCLEAR=0
      intensity.fuel.INTIRL./2011=0.7
      intensity.fuel.INTIRL.2012/2021=0.45
      intensity.fuel.INTIRL.2022/2023=0.458
      intensity.fuel.INTIRL.2024/=0.288
      intensity.fuel.INTEW.2021=0.45

  into structured `IntensityCoefficient` records, once, at load time.
- Resolve the effective coefficient for a fuel in a given year.

Conventions
-----------
- Year bounds are inclusive. `/2011` means "up to and including 2011",
  `2012/` means "2012 onward", a bare `2021` means just that year.
- An unqualified key is the fuel's undated fallback, used when no dated
  range covers the year.
- A fuel with no coefficient at all is absent from the table: it is left out
  of intensity weighting, not treated as zero-carbon.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .errors import FormatError
from .validate import is_fuel_code

# Property-name prefix for fuel intensities.
INTENSITY_PREFIX = "intensity.fuel."
# Separates the fuel code from its date qualifier, and the two range bounds.
QUALIFIER_DELIM = "."
RANGE_DELIM = "/"

YEAR_RE = re.compile(r"^[0-9]{4}$")


@dataclass(frozen=True)
class IntensityCoefficient:
    """One coefficient for one fuel over an inclusive range of years.

    `valid_from`/`valid_to` of None stand for minus/plus infinity. The
    undated fallback has both None and `dated=False`.
    """

    fuel_code: str
    valid_from: int | None
    valid_to: int | None
    kg_per_kwh: float
    dated: bool = True

    def covers(self, year: int) -> bool:
        if self.valid_from is not None and year < self.valid_from:
            return False
        if self.valid_to is not None and year > self.valid_to:
            return False
        return True

    @property
    def span(self) -> float:
        """Number of years covered; infinite for open-ended ranges."""
        if self.valid_from is None or self.valid_to is None:
            return math.inf
        return self.valid_to - self.valid_from + 1

    def overlaps(self, other: IntensityCoefficient) -> bool:
        lo = max(_lo(self), _lo(other))
        hi = min(_hi(self), _hi(other))
        return lo <= hi


def _lo(c: IntensityCoefficient) -> float:
    return -math.inf if c.valid_from is None else c.valid_from


def _hi(c: IntensityCoefficient) -> float:
    return math.inf if c.valid_to is None else c.valid_to


def _parse_year(raw: str, key: str) -> int:
    if not YEAR_RE.match(raw):
        raise FormatError(f"non-numeric year {raw!r} in intensity key {key!r}")
    return int(raw)


def parse_range(qualifier: str, key: str = "") -> tuple[int | None, int | None]:
    """Parse a date qualifier into inclusive (from, to) year bounds.

    Raises:
        FormatError: If a bound is not a 4-digit year, both bounds are
            missing, or the start is after the end.
    """
    if RANGE_DELIM not in qualifier:
        year = _parse_year(qualifier, key)
        return year, year

    start_raw, _, end_raw = qualifier.partition(RANGE_DELIM)
    if RANGE_DELIM in end_raw:
        raise FormatError(f"too many range delimiters in intensity key {key!r}")
    if not start_raw and not end_raw:
        raise FormatError(f"empty date range in intensity key {key!r}")

    start = _parse_year(start_raw, key) if start_raw else None
    end = _parse_year(end_raw, key) if end_raw else None
    if start is not None and end is not None and start > end:
        raise FormatError(f"date range start after end in intensity key {key!r}")
    return start, end


def parse_coefficient(key_tail: str, value: str, key: str = "") -> IntensityCoefficient:
    """Parse one `FUEL[.qualifier]` / value pair.

    Raises:
        FormatError: On a bad fuel code, bad qualifier, or a value that is not
            a finite non-negative number.
    """
    key = key or key_tail
    fuel, sep, qualifier = key_tail.partition(QUALIFIER_DELIM)
    if not is_fuel_code(fuel):
        raise FormatError(f"invalid fuel code in intensity key {key!r}")

    try:
        kg = float(value)
    except (TypeError, ValueError) as e:
        raise FormatError(f"unable to parse kgCO2/kWh intensity {value!r} for {key!r}") from e
    if not math.isfinite(kg) or kg < 0:
        raise FormatError(f"invalid kgCO2/kWh intensity {value!r} for {key!r}")

    if not sep:
        return IntensityCoefficient(fuel, None, None, kg, dated=False)
    start, end = parse_range(qualifier, key)
    return IntensityCoefficient(fuel, start, end, kg)


class IntensityTable:
    """Per-fuel coefficients with year resolution.

    Construction validates the whole set: dated ranges for a fuel must not
    overlap and at most one undated fallback may exist per fuel.
    """

    def __init__(self, coefficients: Iterable[IntensityCoefficient]):
        self._dated: dict[str, list[IntensityCoefficient]] = {}
        self._undated: dict[str, IntensityCoefficient] = {}

        for c in coefficients:
            if not c.dated:
                if c.fuel_code in self._undated:
                    raise FormatError(f"duplicate undated intensity for {c.fuel_code}")
                self._undated[c.fuel_code] = c
                continue
            existing = self._dated.setdefault(c.fuel_code, [])
            for other in existing:
                if c.overlaps(other):
                    raise FormatError(
                        f"overlapping intensity date ranges for {c.fuel_code}: "
                        f"{_describe(other)} and {_describe(c)}"
                    )
            existing.append(c)

        # Most specific (narrowest) range first.
        for ranges in self._dated.values():
            ranges.sort(key=lambda c: (c.span, _lo(c)))

    @classmethod
    def from_properties(cls, props: Mapping[str, str], prefix: str = INTENSITY_PREFIX) -> IntensityTable:
        """Build a table from flat properties, ignoring keys without `prefix`."""
        coefficients = [
            parse_coefficient(key[len(prefix):], value, key)
            for key, value in props.items()
            if key.startswith(prefix)
        ]
        return cls(coefficients)

    @property
    def fuels(self) -> frozenset[str]:
        """Every fuel code with at least one coefficient."""
        return frozenset(self._dated) | frozenset(self._undated)

    def __contains__(self, fuel: str) -> bool:
        return fuel in self._dated or fuel in self._undated

    def __len__(self) -> int:
        return len(self.fuels)

    def coefficients(self, fuel: str) -> tuple[IntensityCoefficient, ...]:
        """All coefficients for `fuel`, dated ones first by specificity."""
        out = list(self._dated.get(fuel, ()))
        if fuel in self._undated:
            out.append(self._undated[fuel])
        return tuple(out)

    def resolve(self, fuel: str, year: int) -> float | None:
        """Effective kgCO2/kWh for `fuel` in `year`, or None if unknown."""
        for c in self._dated.get(fuel, ()):
            if c.covers(year):
                return c.kg_per_kwh
        fallback = self._undated.get(fuel)
        return None if fallback is None else fallback.kg_per_kwh

    def for_year(self, year: int) -> dict[str, float]:
        """The table as seen in `year`: fuel code -> kgCO2/kWh."""
        out = {}
        for fuel in sorted(self.fuels):
            kg = self.resolve(fuel, year)
            if kg is not None:
                out[fuel] = kg
        return out

    def missing_forward_coefficients(self, year: int) -> list[str]:
        """Fuels with a coefficient for `year` but none for `year + 1`.

        An empty list means the configuration is forward-complete.
        """
        return sorted(
            fuel
            for fuel in self.fuels
            if self.resolve(fuel, year) is not None and self.resolve(fuel, year + 1) is None
        )


def _describe(c: IntensityCoefficient) -> str:
    lo = "" if c.valid_from is None else str(c.valid_from)
    hi = "" if c.valid_to is None else str(c.valid_to)
    return f"{lo}{RANGE_DELIM}{hi}"
