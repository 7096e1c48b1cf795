"""
intensity/run.py

One polling cycle of the intensity pipeline, plus its CLI.

Responsibilities
----------------
- Reload history from the long store, fetch the feed, parse it and merge it.
- On a failed fetch or unparseable feed, fall back to the cached "last good"
  snapshot and mark the cycle stale instead of aborting.
- Compute the current intensity and status, notify on status changes, append
  to today's intensity log, and persist the long store, cache and
  notification state.
- Expose a CLI for cron-style runs, optionally printing fuel correlations.

Conventions
-----------
- All timestamps are epoch ms UTC; `now_ms` is passed in so a cycle can be
  replayed deterministically.
- Steps run strictly in sequence; there is no internal concurrency.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .client import Fetcher, HttpFetcher, stream_params
from .compute import IntensityComputer
from .config import IntensityConfig, feed_url, load_config, state_dir
from .errors import FetchFailure, FormatError, NoGenerationDataError
from .feed import HEADER_TYPE, parse_legacy_feed, parse_stream_json
from .history import HistoryStore
from .load import (
    CACHE_NAME,
    LONG_STORE_NAME,
    LONG_STORE_SPAN_MS,
    NOTIFY_STATE_NAME,
    append_intensity_log,
    load_cached_snapshot,
    load_long_store,
    load_notification_state,
    save_cached_snapshot,
    save_long_store,
    save_notification_state,
)
from .merge import Order, RecordMerger
from .models import FuelSnapshot, IntensityResult, NotificationState, StatusReport, to_epoch_ms
from .stats import compute_fuel_correlations
from .status import Notifier, StatusEngine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CycleResult:
    """What one cycle produced.

    `partial` is the result for the newest snapshot when that is newer than
    the newest complete one, i.e. some fuels have not been published yet.
    """

    report: StatusReport
    result: IntensityResult | None
    history: tuple[FuelSnapshot, ...]
    stats: dict[str, int] = field(default_factory=dict)
    partial: IntensityResult | None = None


def parse_feed(text: str, config: IntensityConfig) -> dict[int, dict[str, int]]:
    """Parse either feed format, telling them apart by the legacy HDR row."""
    if text.lstrip().startswith(HEADER_TYPE):
        return parse_legacy_feed(text, config.csv_template, config.csv_label)
    return parse_stream_json(text)


def fetch_records(
    fetcher: Fetcher, url: str, config: IntensityConfig, now_ms: int
) -> dict[int, dict[str, int]]:
    """Fetch and parse the feed at `url`.

    Raises:
        FetchFailure: If the fetch failed.
        FormatError: If the payload could not be parsed.
    """
    params = None
    if url != config.csv_url:
        params = stream_params(datetime.fromtimestamp(now_ms / 1000, tz=timezone.utc))
    return parse_feed(fetcher(url, params), config)


def run_cycle(
    config: IntensityConfig,
    state: str | Path,
    now_ms: int,
    fetcher: Fetcher | None = None,
    notifier: Notifier | None = None,
    url: str | None = None,
) -> CycleResult:
    """Execute one polling cycle.

    Args:
        config: Parsed configuration.
        state: Directory for the long store, cache, logs and notification state.
        now_ms: Current time, epoch ms.
        fetcher: Callable `(url, params) -> text`; defaults to an `HttpFetcher`
            with the configured timeouts.
        notifier: Called with the report when the status should be announced.
            If None, notification state is left untouched.
        url: Feed URL; defaults to `intensity.config.feed_url`.

    Returns:
        CycleResult: The status report, the live intensity (if any), the
        history window used, and merge/persistence counts.
    """
    state = Path(state)
    fetcher = fetcher or HttpFetcher.from_config(config)
    url = url or feed_url(config)

    try:
        stored = load_long_store(state / LONG_STORE_NAME, config.csv_template, config.csv_label)
    except (FormatError, OSError, UnicodeDecodeError) as e:
        logger.error("long store unreadable, starting from empty history: %s", e)
        stored = []
    store = HistoryStore(stored)
    merger = RecordMerger(store, config.expected_fuels)
    stats = {"loaded": len(store), "created": 0, "updated": 0, "unchanged": 0}

    fetched = False
    if url is None:
        logger.warning("no feed URL configured; using cached data")
    else:
        try:
            records = fetch_records(fetcher, url, config, now_ms)
            merge_stats = merger.merge(records, Order.ASCENDING)
            for k in ("created", "updated", "unchanged"):
                stats[k] = merge_stats[k]
            fetched = True
        except (FetchFailure, FormatError) as e:
            logger.warning("feed unavailable, falling back to cache: %s", e)

    if not fetched:
        try:
            cached = load_cached_snapshot(state / CACHE_NAME)
        except FormatError as e:
            logger.error("%s", e)
            cached = None
        if cached is not None:
            store.upsert(cached.timestamp_ms, cached.generation_by_fuel)

    stats["trimmed"] = store.trim(LONG_STORE_SPAN_MS)
    if fetched:
        stats["stored"] = save_long_store(
            state / LONG_STORE_NAME, store, config.csv_template, config.csv_label
        )

    computer = IntensityComputer.from_config(config)
    engine = StatusEngine.from_config(config, computer)
    history = store.window()
    report = engine.evaluate(history, now_ms, force_stale=not fetched)

    result = None
    live = merger.latest_complete()
    if live is not None and not report.is_prediction:
        try:
            result = computer.compute(live, is_stale=report.is_stale)
        except NoGenerationDataError as e:
            logger.warning("intensity unavailable: %s", e)

    partial = None
    newest = store.latest()
    if newest is not None and (live is None or newest.timestamp_ms > live.timestamp_ms):
        try:
            partial = computer.compute(newest, is_stale=report.is_stale, is_partial=True)
        except NoGenerationDataError as e:
            logger.info("newest snapshot at %d not computable: %s", newest.timestamp_ms, e)

    if result is not None and fetched:
        save_cached_snapshot(state / CACHE_NAME, live)
        append_intensity_log(state, result, computer.intensities_for(live.year), now_ms)

    if notifier is not None:
        path = state / NOTIFY_STATE_NAME
        try:
            previous = load_notification_state(path)
        except (FormatError, OSError, UnicodeDecodeError) as e:
            logger.error("notification state unreadable, starting afresh: %s", e)
            previous = NotificationState()
        updated = engine.notify(report, previous, now_ms, notifier)
        if updated != previous:
            save_notification_state(path, updated)

    return CycleResult(report=report, result=result, history=history, stats=stats, partial=partial)


def _log_notifier(report: StatusReport):
    logger.info("grid status now %s (supergreen=%s)", report.status.value, report.supergreen)


def main(argv=None):
    """CLI entry point for running one cycle.

    Args:
        argv: Optional list of CLI arguments (useful for testing).

    Returns:
        int: Exit code (0 on success, 2 on a configuration error).
    """
    parser = argparse.ArgumentParser(description="Compute GB grid carbon intensity and status")
    parser.add_argument("--properties", help="Properties file (default: $INTENSITY_PROPERTIES)")
    parser.add_argument("--state-dir", help="State directory (default: $INTENSITY_STATE_DIR)")
    parser.add_argument("--url", help="Feed URL (default: $INTENSITY_FEED_URL or configured)")
    parser.add_argument("--stats", action="store_true", help="Also print fuel correlations")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = load_config(args.properties)
    except FormatError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    now_ms = to_epoch_ms(datetime.now(timezone.utc))
    outcome = run_cycle(
        config,
        args.state_dir or state_dir(),
        now_ms,
        notifier=_log_notifier,
        url=args.url,
    )

    report = outcome.report
    g = outcome.result.retail_g_per_kwh if outcome.result else None
    print(
        f"Done. Status: {report.status.value}"
        f"{' (predicted)' if report.is_prediction else ''}"
        f"{' (stale)' if report.is_stale else ''}"
        f", retail gCO2/kWh: {g}, supergreen: {report.supergreen}. Stats: {outcome.stats}"
    )
    if outcome.partial is not None:
        print(f"Newest reading (partial), retail gCO2/kWh: {outcome.partial.retail_g_per_kwh}")

    if args.stats and outcome.history:
        correlations = compute_fuel_correlations(
            outcome.history, config.stats_window_samples, IntensityComputer.from_config(config)
        )
        print(f"Intensity vs demand: {correlations.intensity_vs_demand:.3f}")
        for fuel, r in correlations.per_fuel_vs_intensity.items():
            print(
                f"  {config.fuel_name(fuel)}: vs intensity {r:.3f}, "
                f"vs demand {correlations.per_fuel_vs_demand[fuel]:.3f}"
            )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
