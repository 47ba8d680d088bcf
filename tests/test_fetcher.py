import asyncio

import httpx
import pytest

from novel_retrieval.config import DEFAULT_USER_AGENT, FetcherConfig
from novel_retrieval.errors import NetworkError, NetworkReason
from novel_retrieval.fetcher import BaseFetcher, HttpFetcher

URL = "https://novels.example.com/book/1/"


def fetch(handler, url=URL, method="fetch", **kwargs):
    async def go():
        async with HttpFetcher(FetcherConfig(), transport=httpx.MockTransport(handler)) as fetcher:
            return await getattr(fetcher, method)(url, **kwargs)

    return asyncio.run(go())


def test_successful_fetch_sends_browser_user_agent():
    seen = {}

    def handler(request):
        seen["ua"] = request.headers["user-agent"]
        return httpx.Response(200, html="<html><body>ok</body></html>")

    result = fetch(handler)

    assert result.success
    assert result.status_code == 200
    assert "ok" in result.html
    assert seen["ua"] == DEFAULT_USER_AGENT


def test_redirect_is_followed():
    def handler(request):
        if request.url.path == "/book/1/":
            return httpx.Response(301, headers={"location": "https://novels.example.com/b/1/"})
        return httpx.Response(200, text="moved")

    result = fetch(handler)

    assert result.success
    assert result.final_url == "https://novels.example.com/b/1/"


def test_http_error_status():
    result = fetch(lambda request: httpx.Response(404, text="missing"))

    assert not result.success
    error = result.to_error()
    assert error.status_code == 404
    assert error.reason == NetworkReason.HTTP_STATUS
    assert "Not found" in str(error)


def test_timeout_is_classified():
    def handler(request):
        raise httpx.ReadTimeout("read timed out", request=request)

    result = fetch(handler)

    assert not result.success
    error = result.to_error()
    assert isinstance(error, NetworkError)
    assert error.reason == NetworkReason.TIMEOUT
    assert error.retryable
    assert not error.cancelled


def test_connection_error_is_classified():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    result = fetch(handler)

    assert not result.success
    assert result.status_code == 0
    assert result.reason == NetworkReason.CONNECTION


def test_retry_after_is_parsed_on_429():
    result = fetch(lambda request: httpx.Response(429, headers={"retry-after": "7"}))

    assert result.retry_after == 7.0
    assert result.to_error().retryable


def test_retry_recovers_from_server_errors():
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, text="fine")

    result = fetch(handler, method="fetch_with_retry", max_retries=3, base_delay=0)

    assert result.success
    assert result.attempts == 3


def test_client_errors_are_not_retried():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(403)

    result = fetch(handler, method="fetch_with_retry", max_retries=3, base_delay=0)

    assert not result.success
    assert len(calls) == 1


def test_fetch_requires_context_manager():
    fetcher = HttpFetcher(FetcherConfig())
    with pytest.raises(RuntimeError):
        asyncio.run(fetcher.fetch(URL))


@pytest.mark.parametrize(
    "value, expected",
    [("120", 120.0), ("-5", 0.0), (None, None), ("soon", None)],
)
def test_parse_retry_after(value, expected):
    assert BaseFetcher._parse_retry_after(value) == expected


def test_cancellation_error():
    error = NetworkError.cancellation()
    assert error.cancelled
    assert error.reason == NetworkReason.CANCELLED
    assert not error.retryable
