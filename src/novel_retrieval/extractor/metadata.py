"""Novel metadata extraction from an index page."""

import logging
import re
from collections.abc import Callable

from bs4 import BeautifulSoup

from novel_retrieval.extractor.text import flat_text, parse_html, safe_select_one
from novel_retrieval.models import NovelMetadata
from novel_retrieval.rules import ExtractionRule

logger = logging.getLogger(__name__)

TITLE_SELECTORS = [
    "h1",
    ".title",
    "#title",
    ".book-title",
    "#book-title",
    ".novel-title",
    "#novel-title",
    'meta[property="og:title"]',
]

AUTHOR_SELECTORS = [
    ".author",
    "#author",
    ".book-author",
    "#book-author",
    ".writer",
    "#writer",
    'meta[property="og:novel:author"]',
    'meta[property="og:author"]',
    'meta[name="author"]',
    '[itemprop="author"]',
]

DESCRIPTION_SELECTORS = [
    ".description",
    "#description",
    ".intro",
    "#intro",
    ".summary",
    "#summary",
    ".book-intro",
    "#book-intro",
    'meta[property="og:description"]',
    'meta[name="description"]',
]

_TITLE_SEPARATORS = "-_|"
_AUTHOR_PREFIX = re.compile(r"^\s*(?:(?:作\s*者|author)\s*[：:]|by\s)\s*", re.IGNORECASE)
_AUTHOR_LABEL = re.compile(r"(作者|Author)\s*[：:]\s*(\S+)", re.IGNORECASE)

Strategy = Callable[[BeautifulSoup], str]


def _first_match(soup: BeautifulSoup, selectors: list[str]) -> str:
    """Text of the first selector match with non-empty content.

    ``meta`` selectors read the ``content`` attribute instead of the text.
    """
    for selector in selectors:
        element = safe_select_one(soup, selector)
        if element is None:
            continue
        if element.name == "meta":
            value = (element.get("content") or "").strip()
        else:
            value = flat_text(element)
        if value:
            return value
    return ""


def strip_site_suffix(page_title: str) -> str:
    """Drop a trailing site-brand suffix after the last separator.

    ``"Some Novel - Read Online | SiteName"`` becomes
    ``"Some Novel - Read Online"``.
    """
    title = page_title.strip()
    cut = max(title.rfind(sep) for sep in _TITLE_SEPARATORS)
    if cut > 0:
        head = title[:cut].strip()
        if head:
            return head
    return title


def _title_from_selectors(soup: BeautifulSoup) -> str:
    return _first_match(soup, TITLE_SELECTORS)


def _title_from_page(soup: BeautifulSoup) -> str:
    tag = soup.find("title")
    if tag is None:
        return ""
    return strip_site_suffix(tag.get_text(strip=True))


def _author_from_selectors(soup: BeautifulSoup) -> str:
    value = _first_match(soup, AUTHOR_SELECTORS)
    return _AUTHOR_PREFIX.sub("", value).strip()


def _author_from_label(soup: BeautifulSoup) -> str:
    for text in soup.find_all(string=_AUTHOR_LABEL):
        match = _AUTHOR_LABEL.search(text)
        if match:
            return match.group(2).strip()
    return ""


def _description_from_selectors(soup: BeautifulSoup) -> str:
    return _first_match(soup, DESCRIPTION_SELECTORS)


class MetadataExtractor:
    """Extract title, author and description using ordered fallbacks.

    Rules carry no metadata selectors, so every field goes straight to a
    fixed list of common selectors and then to page-level fallbacks. The
    first non-empty result wins; an empty field is a valid outcome.
    """

    title_strategies: list[Strategy] = [_title_from_selectors, _title_from_page]
    author_strategies: list[Strategy] = [_author_from_selectors, _author_from_label]
    description_strategies: list[Strategy] = [_description_from_selectors]

    def extract(self, html: str, rule: ExtractionRule | None = None) -> NovelMetadata:
        if not html or not html.strip():
            return NovelMetadata()

        soup = parse_html(html)
        return NovelMetadata(
            title=self._run(self.title_strategies, soup),
            author=self._run(self.author_strategies, soup),
            description=self._run(self.description_strategies, soup),
        )

    @staticmethod
    def _run(strategies: list[Strategy], soup: BeautifulSoup) -> str:
        for strategy in strategies:
            value = strategy(soup)
            if value:
                return value
        return ""
