"""Page fetching."""

from novel_retrieval.fetcher.base import BaseFetcher, FetchResult
from novel_retrieval.fetcher.http_fetcher import HttpFetcher

__all__ = [
    "BaseFetcher",
    "FetchResult",
    "HttpFetcher",
]
