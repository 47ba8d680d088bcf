"""Markup helpers shared by the extractors."""

import copy
import logging

from bs4 import BeautifulSoup, NavigableString, Tag

logger = logging.getLogger(__name__)

# Elements whose end marks a paragraph boundary
_BLOCK_TAGS = ("p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li", "blockquote", "section")


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def safe_select(root: BeautifulSoup | Tag, selector: str) -> list[Tag]:
    """``select`` that treats an invalid selector as matching nothing."""
    try:
        return root.select(selector)
    except Exception:
        logger.debug("Ignoring invalid selector %r", selector, exc_info=True)
        return []


def safe_select_one(root: BeautifulSoup | Tag, selector: str) -> Tag | None:
    """``select_one`` that treats an invalid selector as matching nothing."""
    try:
        return root.select_one(selector)
    except Exception:
        logger.debug("Ignoring invalid selector %r", selector, exc_info=True)
        return None


def remove_matching(root: BeautifulSoup | Tag, selectors) -> int:
    """Decompose every element matching any selector. Returns the count removed."""
    removed = 0
    for selector in selectors:
        selector = selector.strip()
        if not selector:
            continue
        for elem in safe_select(root, selector):
            if elem.decomposed:
                continue
            elem.decompose()
            removed += 1
    return removed


def flat_text(element: Tag) -> str:
    """Element text collapsed to single spaces."""
    return element.get_text(separator=" ", strip=True)


def text_with_paragraphs(element: Tag | None) -> str:
    """Element text with one paragraph per line.

    ``<br>`` and block-element ends become newlines before the remaining
    tags are dropped; entities are decoded by the parser and non-breaking
    spaces are folded into plain spaces. Blank lines are removed.
    """
    if element is None:
        return ""

    # Work on a copy so the caller's tree keeps its structure
    element = copy.copy(element)

    for br in element.find_all("br"):
        br.replace_with(NavigableString("\n"))
    for block in element.find_all(_BLOCK_TAGS):
        block.append(NavigableString("\n"))

    text = element.get_text().replace("\xa0", " ")

    lines = []
    for line in text.split("\n"):
        stripped = line.strip()
        if stripped:
            lines.append(stripped)
    return "\n".join(lines)
