"""Shared fixtures: a canned-markup fetcher and a small fake novel site."""

import asyncio

import pytest

from novel_retrieval.config import AppConfig, DownloadConfig, FetcherConfig
from novel_retrieval.errors import NetworkReason
from novel_retrieval.fetcher import BaseFetcher, FetchResult
from novel_retrieval.rules import ExtractionRule
from novel_retrieval.storage import MemoryNovelStore

BASE_URL = "https://novels.example.com/book/1/"


def chapter_url(index: int) -> str:
    return f"{BASE_URL}{index}.html"


def index_html(count: int, title: str = "The Long Road", author: str = "Jane Doe") -> str:
    items = "\n".join(
        f'<dd><a href="{i}.html">Part {i + 1}</a></dd>' for i in range(count)
    )
    return f"""<html>
<head><title>{title} - Example Novels</title></head>
<body>
  <h1>{title}</h1>
  <p class="author">作者：{author}</p>
  <div class="intro">A traveller walks from one end of the empire to the other.</div>
  <div id="list"><dl>{items}</dl></div>
</body>
</html>"""


def chapter_html(index: int) -> str:
    return f"""<html><body>
<div class="nav">上一章 | 目录 | 下一章</div>
<div id="content">
  <p>Body of part {index + 1}, first paragraph.</p>
  <p>Second paragraph of part {index + 1}.</p>
</div>
</body></html>"""


def chapter_text(index: int) -> str:
    return f"Body of part {index + 1}, first paragraph.\nSecond paragraph of part {index + 1}."


class FakeFetcher(BaseFetcher):
    """Serves canned markup by URL with optional delays and failures."""

    def __init__(self, pages: dict[str, str] | None = None):
        super().__init__(FetcherConfig())
        self.pages = dict(pages or {})
        self.delays: dict[str, float] = {}
        self.errors: dict[str, str] = {}
        self.statuses: dict[str, int] = {}
        self.on_fetch = None
        self.requested: list[str] = []

    async def fetch(self, url: str, timeout_ms: int | None = None) -> FetchResult:
        self.requested.append(url)
        if self.on_fetch is not None:
            self.on_fetch(url)
        delay = self.delays.get(url, 0)
        if delay:
            await asyncio.sleep(delay)

        if url in self.errors:
            return FetchResult(
                url=url,
                final_url=url,
                html="",
                status_code=0,
                error=self.errors[url],
                reason=NetworkReason.TIMEOUT,
            )
        if url in self.statuses:
            return FetchResult(url=url, final_url=url, html="", status_code=self.statuses[url])
        if url not in self.pages:
            return FetchResult(url=url, final_url=url, html="", status_code=404)
        return FetchResult(url=url, final_url=url, html=self.pages[url], status_code=200)

    @property
    def chapter_requests(self) -> list[str]:
        return [u for u in self.requested if u != BASE_URL]


def make_site(count: int) -> FakeFetcher:
    pages = {BASE_URL: index_html(count)}
    for i in range(count):
        pages[chapter_url(i)] = chapter_html(i)
    return FakeFetcher(pages)


@pytest.fixture
def rule() -> ExtractionRule:
    return ExtractionRule(
        name="example",
        domain="novels.example.com",
        chapter_list_selector="#list dd a",
        content_selector="#content",
        remove_selectors=(".nav",),
    )


@pytest.fixture
def store() -> MemoryNovelStore:
    return MemoryNovelStore()


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        download=DownloadConfig(
            max_concurrent=2,
            stagger_delay_ms=0,
            batch_size=50,
            poll_interval=0.01,
        )
    )
