"""
intensity/errors.py

Exception taxonomy shared by every stage of the intensity pipeline.

Responsibilities
----------------
- `FormatError`: malformed feed data or configuration. Fails only the parse
  step of the current cycle.
- `NoGenerationDataError`: no usable generation to weight, so the intensity
  for that snapshot is unavailable (never reported as zero).
- `IllegalArgumentError`: a caller broke a documented precondition.
- `FetchFailure`: the remote feed could not be retrieved in time; the cycle
  falls back to the cached snapshot.
"""

from __future__ import annotations


class IntensityError(Exception):
    """Base class for all pipeline errors."""


class FormatError(IntensityError, ValueError):
    """Malformed feed payload or configuration value."""


class NoGenerationDataError(IntensityError, ArithmeticError):
    """The weighting denominator was zero (or too few fuels were present)."""


class IllegalArgumentError(IntensityError, ValueError):
    """A caller violated a precondition, e.g. empty history to the stats engine."""


class FetchFailure(IntensityError, IOError):
    """Network error, HTTP error status or timeout while fetching a feed."""
