"""
intensity/validate.py

Validation and typing layer for individual fuel-generation points.

Responsibilities
----------------
- Define a `FuelReading` model that captures:
  * `timestamp_ms`: start of the settlement interval, epoch ms UTC.
  * `fuel_code`: upper-case fuel/interconnector code such as "CCGT" or "INTFR".
  * `generation_mw`: signed integer MW.
- Provide `validate_stream_record` to turn one raw JSON object from the
  FUELINST stream into a `FuelReading`, rejecting anything malformed with a
  `FormatError`.

Conventions
-----------
- Upstream timestamps are ISO-8601, usually with a trailing "Z". Naive
  timestamps are taken to be UTC.
- The interval start (`startTime`) is used rather than `publishTime`, since a
  delayed publication can lump several intervals together.
- Extra keys (settlementDate, settlementPeriod, publishTime...) are ignored.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as dtp
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from .errors import FormatError
from .models import to_epoch_ms

# A valid fuel code: upper-case ASCII letter first, then letters or digits.
FUEL_CODE_RE = re.compile(r"^[A-Z][A-Z0-9]+$")

# Dataset name carried by every FUELINST stream record.
DATASET = "FUELINST"


def is_fuel_code(name: str) -> bool:
    """Return True if `name` looks like a fuel code rather than a metadata field."""
    return bool(FUEL_CODE_RE.match(name))


def parse_utc(s: str) -> datetime:
    """Parse an ISO-8601 string as a timezone-aware UTC datetime.

    Args:
        s: ISO-8601 string (e.g., "2024-02-12T17:45:00Z").

    Returns:
        datetime: The parsed datetime normalized to UTC.
    """
    dt = dtp.isoparse(s)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class FuelReading(BaseModel):
    """One validated `(timestamp, fuel, MW)` point from either feed."""

    model_config = ConfigDict(frozen=True)

    timestamp_ms: int
    fuel_code: str
    generation_mw: int

    @field_validator("timestamp_ms", mode="before")
    @classmethod
    def parse_timestamp(cls, v):
        """Accept ISO-8601 strings and datetimes as well as raw epoch ms."""
        if isinstance(v, str):
            return to_epoch_ms(parse_utc(v))
        if isinstance(v, datetime):
            return to_epoch_ms(v if v.tzinfo else v.replace(tzinfo=timezone.utc))
        return v

    @field_validator("timestamp_ms")
    @classmethod
    def check_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("timestamp must be after the epoch")
        return v

    @field_validator("fuel_code")
    @classmethod
    def check_fuel_code(cls, v: str) -> str:
        if not is_fuel_code(v):
            raise ValueError(f"invalid fuel code {v!r}")
        return v


def validate_stream_record(rec: dict[str, Any], clamp_non_negative: bool = False) -> FuelReading:
    """Validate and coerce one raw FUELINST stream record into a `FuelReading`.

    Sample record::

        {"dataset":"FUELINST","publishTime":"2024-02-12T17:50:00Z",
         "startTime":"2024-02-12T17:45:00Z","settlementDate":"2024-02-12",
         "settlementPeriod":36,"fuelType":"BIOMASS","generation":2249}

    Args:
        rec: Raw record dictionary decoded from the JSON array.
        clamp_non_negative: If True, negative generation is clamped to zero.

    Returns:
        FuelReading: The validated point.

    Raises:
        FormatError: If the record is not an object, is from another dataset,
            lacks `startTime`/`fuelType`/`generation`, or holds bad values.
    """
    if not isinstance(rec, dict):
        raise FormatError(f"expected a JSON object, got {type(rec).__name__}")
    if "dataset" in rec and rec["dataset"] != DATASET:
        raise FormatError(f"not a {DATASET} record: {rec['dataset']!r}")

    missing = [k for k in ("startTime", "fuelType", "generation") if k not in rec]
    if missing:
        raise FormatError(f"record missing required field(s): {', '.join(missing)}")

    try:
        reading = FuelReading(
            timestamp_ms=rec["startTime"],
            fuel_code=rec["fuelType"],
            generation_mw=rec["generation"],
        )
    except (ValidationError, ValueError, OverflowError) as e:
        # dateutil raises plain ValueError/OverflowError before pydantic wraps it.
        raise FormatError(f"invalid {DATASET} record {rec!r}: {e}") from e

    if clamp_non_negative and reading.generation_mw < 0:
        reading = reading.model_copy(update={"generation_mw": 0})
    return reading
