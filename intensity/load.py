"""
intensity/load.py

Flat-file persistence between polling cycles.

Responsibilities
----------------
- Long store: a bmreports-style CSV (HDR row, FUELINST rows, FTR row count)
  holding the last 7 days of snapshots, reloadable with the feed parser.
- Cache: the single "last good" snapshot as gzipped JSON, used when a fetch
  fails.
- Intensity log: one `YYYYMMDD.log` per UTC day with a line per live reading
  of retail intensity in gCO2/kWh.
- Notification state: the last notified status and when, as JSON.

Notes
-----
- Whole-file writes go to a temporary file in the target directory and are
  renamed into place, so readers never see a half-written file.
- The intensity log is append-only and is only written for live (non-stale)
  data dated today (UTC), so a replayed or cached reading never lands in it.
"""

from __future__ import annotations

import gzip
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Mapping
from pathlib import Path

from .errors import FormatError
from .feed import FOOTER_TYPE, HEADER_TYPE, parse_legacy_feed
from .history import HOUR_MS
from .models import FuelSnapshot, IntensityResult, NotificationState, TrafficLight, utc_datetime
from .transform import DEFAULT_TEMPLATE, ROW_TYPE, snapshot_to_row

logger = logging.getLogger(__name__)

LONG_STORE_SPAN_MS = 7 * 24 * HOUR_MS

LONG_STORE_NAME = "fuelinst.longstore.csv"
CACHE_NAME = "fuelinst.cache.json.gz"
NOTIFY_STATE_NAME = "notify-state.json"

LOG_FILENAME_FORMAT = "%Y%m%d"
LOG_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%MZ"
LOG_TITLE = "# Retail GB grid electricity carbon intensity, adjusted for transmission and distribution losses."
LOG_COLUMNS = "# Time gCO2e/kWh"


def _atomic_write(path: Path, data: bytes):
    """Replace `path` with `data` via a temporary file and rename."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=path.name + ".", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise


def save_long_store(
    path: str | os.PathLike,
    snapshots: Iterable[FuelSnapshot],
    template: str = DEFAULT_TEMPLATE,
    label: str = ROW_TYPE,
    max_span_ms: int = LONG_STORE_SPAN_MS,
) -> int:
    """Write snapshots (ascending) as a HDR/FUELINST/FTR CSV.

    Snapshots more than `max_span_ms` older than the newest are dropped.

    Returns:
        int: Number of data rows written.
    """
    snapshots = sorted(snapshots, key=lambda s: s.timestamp_ms)
    if snapshots:
        oldest_allowed = snapshots[-1].timestamp_ms - max_span_ms + 1
        snapshots = [s for s in snapshots if s.timestamp_ms >= oldest_allowed]

    lines = [f"{HEADER_TYPE},{label}"]
    lines += [",".join(snapshot_to_row(template, s)) for s in snapshots]
    lines.append(f"{FOOTER_TYPE},{len(snapshots)}")
    _atomic_write(Path(path), ("\r\n".join(lines) + "\r\n").encode("utf-8"))
    logger.debug("wrote %d snapshots to long store %s", len(snapshots), path)
    return len(snapshots)


def load_long_store(
    path: str | os.PathLike,
    template: str = DEFAULT_TEMPLATE,
    label: str = ROW_TYPE,
) -> list[FuelSnapshot]:
    """Read a long store written by `save_long_store`; missing file -> [].

    Raises:
        FormatError: If the file is corrupt.
    """
    p = Path(path)
    if not p.exists():
        return []
    grouped = parse_legacy_feed(p.read_text(encoding="utf-8"), template, header_check=label)
    return [FuelSnapshot(ts, fuels) for ts, fuels in grouped.items()]


def save_cached_snapshot(path: str | os.PathLike, snapshot: FuelSnapshot):
    """Persist the "last good" snapshot as gzipped JSON."""
    doc = {
        "timestamp_ms": snapshot.timestamp_ms,
        "generation_by_fuel": dict(sorted(snapshot.generation_by_fuel.items())),
    }
    _atomic_write(Path(path), gzip.compress(json.dumps(doc).encode("utf-8")))


def load_cached_snapshot(path: str | os.PathLike) -> FuelSnapshot | None:
    """Read the cached snapshot; None if there is no cache yet.

    Raises:
        FormatError: If the cache exists but cannot be decoded.
    """
    p = Path(path)
    if not p.exists():
        return None
    try:
        doc = json.loads(gzip.decompress(p.read_bytes()).decode("utf-8"))
        return FuelSnapshot(
            int(doc["timestamp_ms"]),
            {str(k): int(v) for k, v in doc["generation_by_fuel"].items()},
        )
    except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
        raise FormatError(f"unreadable snapshot cache {p}: {e}") from e


def log_filename(timestamp_ms: int) -> str:
    return utc_datetime(timestamp_ms).strftime(LOG_FILENAME_FORMAT) + ".log"


def append_intensity_log(
    log_dir: str | os.PathLike,
    result: IntensityResult,
    intensities: Mapping[str, float],
    now_ms: int,
) -> Path | None:
    """Append one retail-intensity line to today's log.

    A new day's file starts with comment lines giving the per-fuel
    coefficients in use (gCO2/kWh). A reading already logged is not repeated.

    Args:
        log_dir: Directory holding the daily logs.
        result: Intensity to log; must carry a retail figure.
        intensities: Fuel code -> kgCO2/kWh for the header.
        now_ms: Current time, epoch ms.

    Returns:
        Path | None: The log file written to, or None if nothing was logged
        (stale data, no retail figure, or a reading not from today).
    """
    if result.is_stale or result.retail_g_per_kwh is None:
        return None
    if log_filename(result.timestamp_ms) != log_filename(now_ms):
        logger.debug("not logging reading at %d: not from today", result.timestamp_ms)
        return None

    path = Path(log_dir) / log_filename(result.timestamp_ms)
    stamp = utc_datetime(result.timestamp_ms).strftime(LOG_TIMESTAMP_FORMAT)
    line = f"{stamp} {result.retail_g_per_kwh}\n"

    if path.exists():
        lines = path.read_text(encoding="utf-8").splitlines()
        if lines and lines[-1].split(" ", 1)[0] == stamp:
            return path
        with open(path, "a", encoding="utf-8") as f:
            f.write(line)
        return path

    coefficients = " ".join(f"{fuel}={round(1000 * kg)}" for fuel, kg in sorted(intensities.items()))
    header = f"{LOG_TITLE}\n{LOG_COLUMNS}\n# Intensities gCO2/kWh: {coefficients}\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "a", encoding="utf-8") as f:
        f.write(header + line)
    return path


def read_intensity_log(path: str | os.PathLike) -> list[tuple[str, int]]:
    """Data lines of an intensity log as `(timestamp, gCO2/kWh)` pairs."""
    out = []
    for raw in Path(path).read_text(encoding="utf-8").splitlines():
        if not raw or raw.startswith("#"):
            continue
        stamp, _, value = raw.partition(" ")
        try:
            out.append((stamp, int(value)))
        except ValueError as e:
            raise FormatError(f"bad intensity log line {raw!r} in {path}") from e
    return out


def save_notification_state(path: str | os.PathLike, state: NotificationState):
    doc = {
        "last_status": state.last_status.value if state.last_status else None,
        "last_notified_ms": state.last_notified_ms,
    }
    _atomic_write(Path(path), json.dumps(doc).encode("utf-8"))


def load_notification_state(path: str | os.PathLike) -> NotificationState:
    """Read saved notification state; a missing file means "never notified"."""
    p = Path(path)
    if not p.exists():
        return NotificationState()
    try:
        doc = json.loads(p.read_text(encoding="utf-8"))
        status = doc.get("last_status")
        return NotificationState(
            last_status=TrafficLight(status) if status else None,
            last_notified_ms=doc.get("last_notified_ms"),
        )
    except (ValueError, AttributeError) as e:
        raise FormatError(f"unreadable notification state {p}: {e}") from e
