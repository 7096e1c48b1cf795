"""Pytest configuration shared across the test suite."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

# Ensure the project root is on sys.path so ``import intensity`` works when
# running the test suite without installing the package.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from intensity.coefficients import IntensityCoefficient, IntensityTable  # noqa: E402
from intensity.compute import IntensityComputer  # noqa: E402


@pytest.fixture
def coal_wind_computer():
    """Computer where COAL is 1 kgCO2/kWh, WIND is zero-carbon and PS is storage."""

    table = IntensityTable(
        [
            IntensityCoefficient("COAL", None, None, 1.0, dated=False),
            IntensityCoefficient("WIND", None, None, 0.0, dated=False),
            IntensityCoefficient("PS", None, None, 0.5, dated=False),
        ]
    )
    return IntensityComputer(table, categories={"storage": ["PS"]})
