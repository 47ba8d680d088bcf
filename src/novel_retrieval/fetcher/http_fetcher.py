"""HTTP fetcher for static pages."""

import logging

import httpx

from novel_retrieval.config import FetcherConfig
from novel_retrieval.errors import NetworkError
from novel_retrieval.fetcher.base import BaseFetcher, FetchResult

logger = logging.getLogger(__name__)


class HttpFetcher(BaseFetcher):
    """Single GET per call, bounded by a per-request timeout.

    Sends a browser-like User-Agent because many novel sites reject
    obvious scripted clients outright.
    """

    def __init__(
        self,
        config: FetcherConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(config)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self):
        """Initialize HTTP client."""
        self._client = httpx.AsyncClient(
            headers={"User-Agent": self.config.user_agent},
            follow_redirects=self.config.follow_redirects,
            timeout=self.config.timeout_ms / 1000,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Clean up HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str, timeout_ms: int | None = None) -> FetchResult:
        """Fetch a page via HTTP."""
        if not self._client:
            raise RuntimeError("Fetcher not initialized. Use 'async with' context manager.")

        timeout = (timeout_ms or self.config.timeout_ms) / 1000
        try:
            response = await self._client.get(url, timeout=timeout)

            retry_after: float | None = None
            if response.status_code == 429:
                retry_after = self._parse_retry_after(
                    response.headers.get("retry-after")
                )

            return FetchResult(
                url=url,
                final_url=str(response.url),
                html=response.text,
                status_code=response.status_code,
                retry_after=retry_after,
            )

        except httpx.HTTPError as e:
            error = NetworkError.from_exception(url, e)
            logger.debug("Fetch failed for %s: %s", url, error)
            return FetchResult(
                url=url,
                final_url=url,
                html="",
                status_code=0,
                error=str(error),
                reason=error.reason,
            )
