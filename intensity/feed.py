"""
intensity/feed.py

Parsers for the two FUELINST feed formats.

Responsibilities
----------------
- `parse_bmr_csv`: the legacy bmreports-style CSV with an initial `HDR` row,
  `FUELINST` data rows, and a trailing `FTR` row declaring the row count.
- `rows_to_readings`: positional rows -> validated `FuelReading`s using a
  column template.
- `parse_stream_json`: the modern JSON array of per-fuel points, grouped into
  one (possibly partial) fuel map per interval start time.

Both entry points end in the same shape: `{timestamp_ms: {fuel: MW}}`,
which the RecordMerger folds into the HistoryStore.

Notes
-----
- Parsing never looks at the clock and never assumes feed ordering; the
  merger is told the order explicitly.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Sequence
from typing import Any

from .errors import FormatError
from .transform import ROW_TYPE, extract_named_fields, parse_csv_timestamp, template_names
from .validate import FuelReading, is_fuel_code, validate_stream_record

logger = logging.getLogger(__name__)

HEADER_TYPE = "HDR"
FOOTER_TYPE = "FTR"


def _as_text(payload: str | bytes) -> str:
    if isinstance(payload, bytes):
        try:
            return payload.decode("utf-8")
        except UnicodeDecodeError as e:
            raise FormatError(f"feed is not valid UTF-8: {e}") from e
    return payload


def parse_bmr_csv(payload: str | bytes, header_check: str | None = None) -> list[list[str]]:
    """Parse a bmreports-style CSV payload into its data rows.

    The first row must have type `HDR`; when `header_check` is given, the
    header's second field (the dataset label) must equal it. Parsing stops at
    the `FTR` row, whose second field must be the number of data rows seen.
    The HDR and FTR rows are not returned.

    Args:
        payload: Whole feed as text (or UTF-8 bytes). CRLF line ends are fine.
        header_check: Expected dataset label, or None to accept any.

    Returns:
        list[list[str]]: In-order data rows, each a list of string fields.
        Empty input yields an empty list.

    Raises:
        FormatError: Missing/mismatched header, empty row or type, or a
            missing, malformed or wrong footer row count.
    """
    text = _as_text(payload)
    if not text.strip():
        return []

    lines = text.splitlines()
    header = lines[0].split(",")
    if header[0] != HEADER_TYPE:
        raise FormatError("missing header (HDR) row")
    if header_check is not None and (len(header) < 2 or header[1] != header_check):
        raise FormatError(
            f"wrong header (HDR) label: expected {header_check!r}, "
            f"got {header[1] if len(header) > 1 else None!r}"
        )

    rows: list[list[str]] = []
    saw_footer = False
    for line in lines[1:]:
        fields = line.split(",")
        if not fields[0]:
            raise FormatError("unexpected empty row or row type")

        if fields[0] == FOOTER_TYPE:
            if len(fields) < 2:
                raise FormatError("footer (FTR) data row count missing")
            try:
                declared = int(fields[1], 10)
            except ValueError as e:
                raise FormatError("footer (FTR) data row count malformed") from e
            if declared != len(rows):
                raise FormatError(
                    f"footer (FTR) data row count wrong: declared {declared}, found {len(rows)}"
                )
            saw_footer = True
            break

        rows.append(fields)

    if not saw_footer:
        # Tolerated, but usually means a truncated download.
        logger.warning("FUELINST CSV has no footer (FTR) row; %d rows read", len(rows))
    return rows


def rows_to_readings(template: str, rows: Iterable[Sequence[str]]) -> list[FuelReading]:
    """Convert parsed FUELINST rows into readings using a column template.

    Args:
        template: Comma-separated column names, e.g. `transform.DEFAULT_TEMPLATE`.
            Names that are not fuel codes (type, date, timestamp...) and empty
            names are never emitted as fuels.
        rows: Rows as returned by `parse_bmr_csv`.

    Returns:
        list[FuelReading]: One reading per fuel column per row, in row order.

    Raises:
        FormatError: On a row whose field count differs from the template's,
            a non-FUELINST row, or bad timestamps/MW values.
    """
    slots = len(template_names(template))
    readings = []
    for row in rows:
        if len(row) != slots:
            raise FormatError(f"field count {len(row)} does not match template ({slots} fields)")

        fields = extract_named_fields(template, row)
        row_type = fields.get("type", "")
        # Some feeds carry a trailing "FTR ..." pseudo-row among the data.
        if row_type.startswith(FOOTER_TYPE):
            continue
        if row_type != ROW_TYPE:
            raise FormatError(f"expected {ROW_TYPE} data but got {row_type!r}")

        raw_timestamp = fields.get("timestamp")
        if raw_timestamp is None:
            raise FormatError(f"missing {ROW_TYPE} row timestamp")
        timestamp_ms = parse_csv_timestamp(raw_timestamp)

        for name, value in fields.items():
            if not is_fuel_code(name):
                continue
            try:
                mw = int(value, 10)
            except ValueError as e:
                raise FormatError(f"bad MW value {value!r} for {name} at {raw_timestamp}") from e
            readings.append(
                FuelReading(timestamp_ms=timestamp_ms, fuel_code=name, generation_mw=mw)
            )
    return readings


def group_readings(readings: Iterable[FuelReading]) -> dict[int, dict[str, int]]:
    """Group readings by timestamp into fuel maps, ascending by timestamp.

    A repeated `(timestamp, fuel)` pair keeps the later reading.
    """
    grouped: dict[int, dict[str, int]] = {}
    for r in readings:
        grouped.setdefault(r.timestamp_ms, {})[r.fuel_code] = r.generation_mw
    return dict(sorted(grouped.items()))


def parse_legacy_feed(
    payload: str | bytes, template: str, header_check: str | None = None
) -> dict[int, dict[str, int]]:
    """Parse a whole legacy CSV feed straight to `{timestamp_ms: {fuel: MW}}`."""
    return group_readings(rows_to_readings(template, parse_bmr_csv(payload, header_check)))


def parse_stream_json(
    payload: str | bytes | list[dict[str, Any]], clamp_non_negative: bool = False
) -> dict[int, dict[str, int]]:
    """Parse the modern FUELINST JSON stream.

    Accepts the bare array returned by the `/stream` endpoint, or the
    `{"data": [...]}` envelope of the paged endpoint.

    Args:
        payload: Raw JSON text/bytes, or an already-decoded list of records.
        clamp_non_negative: Clamp negative generation to zero.

    Returns:
        dict[int, dict[str, int]]: One fuel map per `startTime` (epoch ms),
        ascending. Maps are partial if the payload only carried some fuels.
        Empty input yields an empty dict.

    Raises:
        FormatError: If the JSON is malformed or any record is invalid.
    """
    if isinstance(payload, (str, bytes)):
        text = _as_text(payload)
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise FormatError(f"malformed FUELINST JSON: {e}") from e
    else:
        data = payload

    if isinstance(data, dict) and "data" in data:
        data = data["data"]
    if not isinstance(data, list):
        raise FormatError("FUELINST JSON must be an array of records")

    readings = [validate_stream_record(rec, clamp_non_negative) for rec in data]
    return group_readings(readings)
