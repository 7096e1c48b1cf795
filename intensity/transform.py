"""
intensity/transform.py

Positional field mapping for legacy FUELINST CSV rows.

Responsibilities
----------------
- Define `DEFAULT_TEMPLATE`, naming each column position of a FUELINST row.
- Provide `extract_named_fields` for turning a positional row into a
  name -> value mapping according to a template.
- Convert between the compact CSV timestamp (`YYYYMMDDHHMMSS`, UTC) and
  epoch milliseconds.
- Provide `snapshot_to_row` for writing snapshots back out in the same
  positional form (used by the long store).
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from datetime import datetime, timezone

from .errors import FormatError
from .models import FuelSnapshot, to_epoch_ms, utc_datetime

# Column order of the FUELINST CSV as published by Elexon. Positions with an
# empty name are ignored; names that are not fuel codes are metadata.
DEFAULT_TEMPLATE = (
    "type,date,settlementperiod,timestamp,"
    "CCGT,OIL,COAL,NUCLEAR,WIND,PS,NPSHYD,OCGT,OTHER,"
    "INTFR,INTIRL,INTNED,INTEW,BIOMASS,INTNEM,INTELEC,INTIFA2,INTNSL"
)

# Record type of every FUELINST data row.
ROW_TYPE = "FUELINST"

CSV_TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
CSV_DATE_FORMAT = "%Y%m%d"


def template_names(template: str) -> list[str]:
    """Split a template into its positional names (empty names kept as "")."""
    return [name.strip() for name in template.split(",")]


def extract_named_fields(template: str, row: Sequence[str]) -> dict[str, str]:
    """Map a positional row onto the template's names.

    Only positions present in both the template and the row are used. Empty
    names and empty values are skipped rather than materialised as keys.

    Example:
        >>> extract_named_fields("type,ONE,,TWO", ["X", "1", "ignored", ""])
        {'type': 'X', 'ONE': '1'}
    """
    names = template_names(template)
    out = {}
    for name, value in zip(names, row):
        if not name or value == "":
            continue
        out[name] = value
    return out


def parse_csv_timestamp(raw: str) -> int:
    """Parse a `YYYYMMDDHHMMSS` UTC timestamp into epoch ms.

    Raises:
        FormatError: If `raw` is not exactly in that form.
    """
    if len(raw) != 14 or not raw.isdigit():
        raise FormatError(f"bad FUELINST timestamp {raw!r}")
    try:
        dt = datetime.strptime(raw, CSV_TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError as e:
        raise FormatError(f"bad FUELINST timestamp {raw!r}") from e
    return to_epoch_ms(dt)


def format_csv_timestamp(timestamp_ms: int) -> str:
    """Inverse of `parse_csv_timestamp`."""
    return utc_datetime(timestamp_ms).strftime(CSV_TIMESTAMP_FORMAT)


def settlement_period(timestamp_ms: int) -> int:
    """Half-hourly settlement period (1-based) of the UTC day.

    Settlement days officially follow UK local time; the long store only
    needs a stable, monotonic value within a UTC day.
    """
    dt = utc_datetime(timestamp_ms)
    return (dt.hour * 60 + dt.minute) // 30 + 1


def snapshot_to_row(template: str, snapshot: FuelSnapshot) -> list[str]:
    """Render a snapshot as a positional FUELINST row for `template`.

    Fuels missing from the snapshot are written as empty fields, and fuels
    the template has no slot for are dropped.
    """
    metadata: Mapping[str, str] = {
        "type": ROW_TYPE,
        "date": utc_datetime(snapshot.timestamp_ms).strftime(CSV_DATE_FORMAT),
        "settlementperiod": str(settlement_period(snapshot.timestamp_ms)),
        "timestamp": format_csv_timestamp(snapshot.timestamp_ms),
    }
    row = []
    for name in template_names(template):
        if name in metadata:
            row.append(metadata[name])
        elif name in snapshot.generation_by_fuel:
            row.append(str(snapshot.generation_by_fuel[name]))
        else:
            row.append("")
    return row
