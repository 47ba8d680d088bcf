"""Chapter reference extraction from an index page."""

import logging

from bs4 import Tag

from novel_retrieval.extractor.text import flat_text, parse_html, safe_select, safe_select_one
from novel_retrieval.models import ChapterReference
from novel_retrieval.rules import ExtractionRule
from novel_retrieval.utils.url_utils import make_absolute

logger = logging.getLogger(__name__)


class ChapterListExtractor:
    """Turn the rule's chapter-list matches into ordered chapter references."""

    def extract(
        self, html: str, rule: ExtractionRule | None, base_url: str = ""
    ) -> list[ChapterReference]:
        """Extract chapter references in document order.

        An absent list selector or markup with no matches yields an empty
        list; callers decide whether that is fatal.
        """
        if not html or rule is None or not rule.chapter_list_selector.strip():
            return []

        soup = parse_html(html)
        base_tag = soup.find("base", href=True)
        if base_tag is not None:
            base_url = make_absolute(base_url, base_tag["href"])

        elements = safe_select(soup, rule.chapter_list_selector)
        chapters: list[ChapterReference] = []
        for position, element in enumerate(elements):
            # Ordinals count kept references only, so they stay contiguous
            reference = ChapterReference(
                title=self._resolve_title(element, rule),
                url=self._resolve_link(element, rule, base_url),
                index=len(chapters),
            )
            if reference.is_valid:
                chapters.append(reference)
            else:
                logger.debug("Dropping chapter candidate %d: missing title or link", position)

        logger.debug(
            "Chapter list selector %r matched %d elements, %d valid",
            rule.chapter_list_selector, len(elements), len(chapters),
        )
        return chapters

    @staticmethod
    def _resolve_title(element: Tag, rule: ExtractionRule) -> str:
        if rule.chapter_title_selector.strip():
            title_element = safe_select_one(element, rule.chapter_title_selector)
            if title_element is not None:
                title = flat_text(title_element)
                if title:
                    return title
        return flat_text(element)

    @staticmethod
    def _resolve_link(element: Tag, rule: ExtractionRule, base_url: str) -> str:
        """Link selector, then the element's own href, then a nested anchor."""
        candidates: list[Tag | None] = []
        if rule.chapter_link_selector.strip():
            candidates.append(safe_select_one(element, rule.chapter_link_selector))
        candidates.append(element)
        candidates.append(element.find("a", href=True))

        for candidate in candidates:
            if candidate is None:
                continue
            href = (candidate.get("href") or "").strip()
            if href and not href.lower().startswith(("javascript:", "#")):
                return make_absolute(base_url, href)
        return ""
