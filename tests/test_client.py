"""Unit tests for the HTTP feed fetcher."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
import requests

from intensity import client
from intensity.errors import FetchFailure


class DummyResponse:
    def __init__(self, text="[]", error=None):
        self.text = text
        self.error = error

    def raise_for_status(self):
        if self.error is not None:
            raise self.error


def test_fetch_text_success(monkeypatch):
    """`fetch_text` should send the User-Agent and a (connect, read) timeout."""

    def fake_get(url, params, headers, timeout):
        assert url == "https://example.test/feed"
        assert params == {"a": "1"}
        assert headers["User-Agent"] == client.USER_AGENT
        assert timeout == (3, 7)
        return DummyResponse("HDR\r\nFTR,0")

    monkeypatch.setattr(client.requests, "get", fake_get)

    assert client.fetch_text("https://example.test/feed", {"a": "1"}, 3, 7) == "HDR\r\nFTR,0"


@pytest.mark.parametrize(
    "exc",
    [requests.ConnectionError("down"), requests.Timeout("slow"), requests.RequestException("odd")],
)
def test_fetch_text_wraps_transport_errors(monkeypatch, exc):
    """Transport errors become FetchFailure, after a single attempt."""

    attempts = 0

    def fake_get(url, params, headers, timeout):
        nonlocal attempts
        attempts += 1
        raise exc

    monkeypatch.setattr(client.requests, "get", fake_get)

    with pytest.raises(FetchFailure):
        client.fetch_text("https://example.test/feed")
    assert attempts == 1


def test_fetch_text_http_error_status(monkeypatch):
    """A non-2xx status is a fetch failure too."""

    monkeypatch.setattr(
        client.requests,
        "get",
        lambda url, params, headers, timeout: DummyResponse(error=requests.HTTPError("503")),
    )

    with pytest.raises(FetchFailure, match="503"):
        client.fetch_text("https://example.test/feed")


def test_http_fetcher_uses_its_timeouts(monkeypatch):
    """A configured fetcher passes its timeouts on every call."""

    seen = []

    def fake_fetch_text(url, params, connect_timeout, read_timeout):
        seen.append((url, params, connect_timeout, read_timeout))
        return "[]"

    monkeypatch.setattr(client, "fetch_text", fake_fetch_text)

    assert client.HttpFetcher(2, 5)("https://example.test/feed") == "[]"
    assert seen == [("https://example.test/feed", None, 2, 5)]


def test_stream_params_window():
    """The stream query covers the preceding hours up to the current minute."""

    params = client.stream_params(datetime(2024, 2, 12, 18, 0, 30, tzinfo=timezone.utc), hours=24)

    assert params == {
        "publishDateTimeFrom": "2024-02-11T18:00:00Z",
        "publishDateTimeTo": "2024-02-12T18:00:00Z",
    }
