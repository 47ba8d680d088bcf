"""Chapter body extraction from chapter pages."""

import logging
from collections.abc import Callable

from bs4 import BeautifulSoup

from novel_retrieval.config import ExtractorConfig
from novel_retrieval.converter.normalizer import TextNormalizer
from novel_retrieval.extractor.text import (
    flat_text,
    parse_html,
    remove_matching,
    safe_select,
    safe_select_one,
    text_with_paragraphs,
)
from novel_retrieval.rules import ExtractionRule

logger = logging.getLogger(__name__)


class ContentExtractor:
    """Extract a chapter's body text, falling back through three strategies.

    1. the rule's content selector (any non-empty text is accepted),
    2. a ranked list of common content containers, accepting the first
       whose text is longer than ``min_content_length``,
    3. the largest text block among generic containers, skipping page
       chrome (navigation, headers, footers, sidebars, menus, comments).
    """

    def __init__(
        self,
        config: ExtractorConfig | None = None,
        normalizer: TextNormalizer | None = None,
    ):
        self.config = config or ExtractorConfig()
        self.normalizer = normalizer or TextNormalizer()
        self.strategies: list[tuple[str, Callable[[BeautifulSoup, ExtractionRule | None], str]]] = [
            ("rule_selector", self._from_rule),
            ("common_selector", self._from_common_selectors),
            ("largest_block", self._from_largest_block),
        ]

    def extract(self, html: str, rule: ExtractionRule | None = None) -> str:
        """Return the normalized chapter body, or "" when nothing was found."""
        text, method = self.extract_raw(html, rule)
        if not text:
            logger.warning("Could not locate chapter body (html length %d)", len(html or ""))
            return ""
        logger.debug("Chapter body found via %s (%d chars)", method, len(text))
        return self.normalizer.clean(text)

    def extract_raw(self, html: str, rule: ExtractionRule | None = None) -> tuple[str, str | None]:
        """Body text before normalization, and the strategy that produced it."""
        if not html or not html.strip():
            return "", None

        soup = self._pre_clean_html(html, rule)
        for method, strategy in self.strategies:
            text = strategy(soup, rule)
            if text:
                return text, method
        return "", None

    def _pre_clean_html(self, html: str, rule: ExtractionRule | None) -> BeautifulSoup:
        """Remove rule-specific, then default boilerplate elements."""
        soup = parse_html(html)
        if rule is not None:
            remove_matching(soup, rule.remove_selectors)
        remove_matching(soup, self.config.remove_selectors)
        return soup

    def _from_rule(self, soup: BeautifulSoup, rule: ExtractionRule | None) -> str:
        if rule is None or not rule.content_selector.strip():
            return ""
        return text_with_paragraphs(safe_select_one(soup, rule.content_selector))

    def _from_common_selectors(self, soup: BeautifulSoup, rule: ExtractionRule | None) -> str:
        for selector in self.config.content_selectors:
            element = safe_select_one(soup, selector)
            if element is None:
                continue
            text = text_with_paragraphs(element)
            if len(text) > self.config.min_content_length:
                logger.debug("Fallback selector %r matched (%d chars)", selector, len(text))
                return text
        return ""

    def _from_largest_block(self, soup: BeautifulSoup, rule: ExtractionRule | None) -> str:
        keywords = [k.lower() for k in self.config.chrome_keywords]
        largest = None
        max_length = 0

        for element in safe_select(soup, ", ".join(self.config.largest_block_tags)):
            classes = element.get("class") or []
            if isinstance(classes, str):
                classes = [classes]
            names = " ".join(classes).lower() + " " + (element.get("id") or "").lower()
            if any(keyword in names for keyword in keywords):
                continue

            length = len(flat_text(element))
            if length > self.config.largest_block_min_length and length > max_length:
                max_length = length
                largest = element

        return text_with_paragraphs(largest) if largest is not None else ""
