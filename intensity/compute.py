"""
intensity/compute.py

Generation-weighted carbon intensity of a fuel snapshot.

Responsibilities
----------------
- `compute_weighted_intensity`: the pure weighting arithmetic.
- `IntensityComputer`: applies the year's coefficient table, the storage
  exclusion, per-fuel scale factors and grid losses to a `FuelSnapshot`.

Algorithm
---------
Over fuels present in both the snapshot and the coefficient table, minus the
`storage` category:

    weighted = sum(MW * kgCO2/kWh) / (sum(MW) + extra_unweighted_mw)

- A fuel without a coefficient is invisible: it is in neither sum.
- Storage is excluded outright, since its output is energy already counted
  when it was stored.
- Negative readings (exporting interconnectors, pumping) are not supply and
  are skipped.
- A scale factor multiplies a fuel's MW before weighting, e.g. to account
  for embedded wind the transmission-level feed cannot see.

Retail (consumer-side) intensity inflates the generation figure for delivery
losses: ``weighted / ((1 - transmission_loss) * (1 - distribution_loss))``.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .coefficients import IntensityTable
from .errors import FormatError, IllegalArgumentError, NoGenerationDataError
from .models import FuelSnapshot, IntensityResult

logger = logging.getLogger(__name__)

# Category whose fuels never take part in weighting.
STORAGE = "storage"

# Denominators at or below this many MW count as "no generation".
NEAR_ZERO_MW = 1e-9


@dataclass(frozen=True)
class ScaleFactor:
    """Multiplier applied to one fuel's MW before weighting.

    Attributes:
        fuel_code: Fuel the factor applies to.
        factor: Finite, non-negative multiplier.
        justification: Human-readable reason, required so that every fudge
            factor in the configuration explains itself.
    """

    fuel_code: str
    factor: float
    justification: str

    def __post_init__(self):
        if not math.isfinite(self.factor) or self.factor < 0:
            raise FormatError(f"invalid scale factor {self.factor!r} for {self.fuel_code}")
        if not self.justification or not self.justification.strip():
            raise FormatError(f"scale factor for {self.fuel_code} has no justification")


def compute_weighted_intensity(
    generation_by_fuel: Mapping[str, int | float],
    intensities: Mapping[str, float],
    *,
    excluded: Iterable[str] = (),
    scale_factors: Iterable[ScaleFactor] = (),
    extra_unweighted_mw: float = 0.0,
    min_fuel_types: int = 0,
) -> float:
    """Weighted intensity of a fuel mix, in the units of `intensities`.

    Args:
        generation_by_fuel: Fuel code -> MW.
        intensities: Fuel code -> CO2 per unit energy, e.g. kgCO2/kWh.
        excluded: Fuel codes to leave out entirely (the storage category).
        scale_factors: Per-fuel MW multipliers.
        extra_unweighted_mw: Additional generation added to the denominator
            only, e.g. unmetered generation assumed zero-carbon. Defaults to 0.
        min_fuel_types: Minimum number of fuels with positive output that
            must contribute, else the mix is rejected as implausible.

    Returns:
        float: The weighted intensity.

    Raises:
        NoGenerationDataError: If the denominator is zero (or near zero), or
            fewer than `min_fuel_types` fuels contribute.
        IllegalArgumentError: On a negative `min_fuel_types` or
            `extra_unweighted_mw`.
    """
    if min_fuel_types < 0:
        raise IllegalArgumentError("min_fuel_types must be non-negative")
    if extra_unweighted_mw < 0:
        raise IllegalArgumentError("extra_unweighted_mw must be non-negative")

    factors = {sf.fuel_code: sf.factor for sf in scale_factors}
    fuels = (set(generation_by_fuel) & set(intensities)) - set(excluded)

    contributing = 0
    total_mw = 0.0
    total_co2 = 0.0
    for fuel in sorted(fuels):
        mw = generation_by_fuel[fuel] * factors.get(fuel, 1.0)
        if mw <= 0:
            continue
        contributing += 1
        total_mw += mw
        total_co2 += mw * intensities[fuel]

    if contributing < min_fuel_types:
        raise NoGenerationDataError(
            f"only {contributing} fuel type(s) in mix, need {min_fuel_types}"
        )
    denominator = total_mw + extra_unweighted_mw
    if denominator <= NEAR_ZERO_MW:
        raise NoGenerationDataError("no usable generation to weight")
    return total_co2 / denominator


class IntensityComputer:
    """Computes `IntensityResult`s for snapshots.

    Args:
        table: Date-ranged coefficients; the snapshot's UTC year selects them.
        categories: Category name -> fuel codes. Only `storage` affects the
            arithmetic; the rest are for grouping.
        scale_factors: Per-fuel MW multipliers with justifications.
        transmission_loss: Fraction of energy lost in transmission, [0, 1).
        distribution_loss: Fraction lost in distribution, [0, 1).
        min_fuel_types: See `compute_weighted_intensity`.
        expected_fuels: Fuel codes a snapshot needs to be complete; results for
            snapshots missing any of them are flagged partial.
    """

    def __init__(
        self,
        table: IntensityTable,
        categories: Mapping[str, Iterable[str]] | None = None,
        scale_factors: Iterable[ScaleFactor] = (),
        transmission_loss: float = 0.0,
        distribution_loss: float = 0.0,
        min_fuel_types: int = 0,
        expected_fuels: Iterable[str] = (),
    ):
        for name, loss in (("transmission", transmission_loss), ("distribution", distribution_loss)):
            if not (0 <= loss < 1):
                raise IllegalArgumentError(f"{name} loss {loss!r} outside [0, 1)")
        self.table = table
        self.categories = {k: frozenset(v) for k, v in (categories or {}).items()}
        self.scale_factors = tuple(scale_factors)
        self.transmission_loss = transmission_loss
        self.distribution_loss = distribution_loss
        self.min_fuel_types = min_fuel_types
        self.expected_fuels = frozenset(expected_fuels)
        self._by_year: dict[int, dict[str, float]] = {}

    @classmethod
    def from_config(cls, config) -> IntensityComputer:
        """Build from an `IntensityConfig`."""
        return cls(
            config.table,
            categories=config.categories,
            scale_factors=config.scale_factors,
            transmission_loss=config.transmission_loss,
            distribution_loss=config.distribution_loss,
            min_fuel_types=config.min_fuel_types_in_mix,
            expected_fuels=config.expected_fuels,
        )

    @property
    def storage_fuels(self) -> frozenset[str]:
        return self.categories.get(STORAGE, frozenset())

    @property
    def loss_factor(self) -> float:
        """Fraction of generated energy that reaches the consumer."""
        return (1 - self.transmission_loss) * (1 - self.distribution_loss)

    def retail_intensity(self, weighted_intensity: float) -> float:
        return weighted_intensity / self.loss_factor

    def intensities_for(self, year: int) -> dict[str, float]:
        """Coefficient table for `year` (cached per year)."""
        if year not in self._by_year:
            self._by_year[year] = self.table.for_year(year)
        return self._by_year[year]

    def compute(
        self,
        snapshot: FuelSnapshot,
        *,
        is_stale: bool = False,
        is_partial: bool = False,
        extra_unweighted_mw: float = 0.0,
    ) -> IntensityResult:
        """Weighted and retail intensity of `snapshot`.

        The result is flagged partial if the caller says so or the snapshot
        lacks any expected fuel.

        Raises:
            NoGenerationDataError: If nothing usable is being generated.
        """
        weighted = compute_weighted_intensity(
            snapshot.generation_by_fuel,
            self.intensities_for(snapshot.year),
            excluded=self.storage_fuels,
            scale_factors=self.scale_factors,
            extra_unweighted_mw=extra_unweighted_mw,
            min_fuel_types=self.min_fuel_types,
        )
        return IntensityResult(
            timestamp_ms=snapshot.timestamp_ms,
            weighted_intensity=weighted,
            total_generation_mw=float(snapshot.total_positive_mw()),
            is_stale=is_stale,
            is_partial=is_partial or bool(snapshot.missing(self.expected_fuels)),
            retail_intensity=self.retail_intensity(weighted),
        )

    def compute_many(self, snapshots: Iterable[FuelSnapshot]) -> list[IntensityResult]:
        """Results for every snapshot that has usable generation, in order."""
        results = []
        for s in snapshots:
            try:
                results.append(self.compute(s))
            except NoGenerationDataError as e:
                logger.info("skipping snapshot at %d: %s", s.timestamp_ms, e)
        return results

    def generation_by_category(self, snapshot: FuelSnapshot) -> dict[str, int]:
        """Total MW per category; fuels missing from the snapshot count as 0."""
        return {
            name: sum(snapshot.generation_by_fuel.get(f, 0) for f in fuels)
            for name, fuels in sorted(self.categories.items())
        }
