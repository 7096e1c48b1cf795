"""
intensity/client.py

HTTP fetcher for the FUELINST feeds.

Responsibilities
---------------
- Perform a single HTTP GET with bounded connect and read timeouts and a
  custom User-Agent, returning the body as text.
- Turn every transport problem (connection error, timeout, HTTP error
  status) into a `FetchFailure`.
- Build the query for the Elexon Insights FUELINST stream endpoint.

Environment Variables
---------------------
INTENSITY_FEED_URL
    Overrides the feed URL from the properties file (see `intensity.config`).

Notes
-----
- No retries here. A failed fetch makes the cycle fall back to the cached
  snapshot, and the next scheduled cycle tries again.
- Any callable taking a URL (and optional params) and returning text can
  stand in for `HttpFetcher`, e.g. in tests.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone

import requests

from .errors import FetchFailure

logger = logging.getLogger(__name__)

STREAM_URL = "https://data.elexon.co.uk/bmrs/api/v1/datasets/FUELINST/stream"

# HTTP client settings.
CONNECT_TIMEOUT = 10  # seconds
READ_TIMEOUT = 60  # seconds
USER_AGENT = "gb-grid-intensity/0.1 (+https://github.com/)"

Fetcher = Callable[..., str]


def stream_params(now: datetime, hours: int = 24) -> dict[str, str]:
    """Query parameters selecting the last `hours` of FUELINST publications.

    Args:
        now: Upper bound; naive datetimes are taken to be UTC.
        hours: Length of the window ending at `now`.

    Returns:
        dict[str, str]: `publishDateTimeFrom` / `publishDateTimeTo` in
        ISO-8601 UTC with a trailing "Z".
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    end = now.astimezone(timezone.utc).replace(second=0, microsecond=0)
    start = end - timedelta(hours=hours)
    fmt = "%Y-%m-%dT%H:%M:%SZ"
    return {"publishDateTimeFrom": start.strftime(fmt), "publishDateTimeTo": end.strftime(fmt)}


def fetch_text(
    url: str,
    params: Mapping[str, str] | None = None,
    connect_timeout: float = CONNECT_TIMEOUT,
    read_timeout: float = READ_TIMEOUT,
) -> str:
    """GET `url` and return the response body as text.

    Args:
        url: Feed URL.
        params: Optional query parameters.
        connect_timeout: Seconds allowed to establish the connection.
        read_timeout: Seconds allowed between bytes of the response.

    Returns:
        str: Decoded response body.

    Raises:
        FetchFailure: On any `requests`-level error or a non-2xx status.
    """
    headers = {"User-Agent": USER_AGENT}
    try:
        r = requests.get(
            url, params=params, headers=headers, timeout=(connect_timeout, read_timeout)
        )
        r.raise_for_status()
    except requests.RequestException as e:
        raise FetchFailure(f"fetch of {url} failed: {e}") from e
    logger.debug("fetched %d chars from %s", len(r.text), url)
    return r.text


class HttpFetcher:
    """`fetch_text` with timeouts fixed at construction."""

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT, read_timeout: float = READ_TIMEOUT):
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout

    @classmethod
    def from_config(cls, config) -> HttpFetcher:
        return cls(config.connect_timeout_s, config.read_timeout_s)

    def __call__(self, url: str, params: Mapping[str, str] | None = None) -> str:
        return fetch_text(url, params, self.connect_timeout, self.read_timeout)
