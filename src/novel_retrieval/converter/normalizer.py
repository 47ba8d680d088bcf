"""Boilerplate removal for extracted chapter text."""

import re

from novel_retrieval.config import NormalizerConfig

# Numerals used in CJK chapter headings
_CJK_NUMERALS = "零〇一二两三四五六七八九十百千万\\d"

_NAV_WORDS = [
    "上一章",
    "下一章",
    "上一页",
    "下一页",
    "目录",
    "返回目录",
    "章节目录",
    "返回书页",
    "加入书签",
    "previous chapter",
    "prev chapter",
    "previous",
    "prev",
    "next chapter",
    "next",
    "table of contents",
    "index",
]
_NAV_PUNCT = r"[ \t\[\]【】<>«»‹›|/·•←→\-_()（）]*"
_NAV_ALTERNATION = "|".join(re.escape(w) for w in sorted(_NAV_WORDS, key=len, reverse=True))

# Each pattern must match an entire line.
BOILERPLATE_LINE_PATTERNS: list[str] = [
    # Chapter title echoes
    rf"^第[{_CJK_NUMERALS}]+[章节回](?:[ \t:：、.][ \t]*\S.{{0,40}})?$",
    r"^chapter[ \t]+(?:\d+|[ivxlcdm]+)(?:[ \t]*[:：.\-–—][ \t]*.{0,80})?$",
    # "Add to favorites" prompts
    r"^.*ctrl\s*\+\s*d.*(?:收藏|书签|bookmark|favou?rite).*$",
    r"^(?:请?收藏本站|加入收藏|bookmark this (?:site|page)|add (?:us )?to (?:your )?favou?rites)[!！。.]*$",
    # Navigation-only lines
    rf"^{_NAV_PUNCT}(?:(?:{_NAV_ALTERNATION}){_NAV_PUNCT})+$",
    # Bare URLs
    r"^https?://\S+$",
    r"^www\.\S+$",
]

_CLOSING_QUOTES = re.compile(r"([”」』])\s*|(’)\s+")


class TextNormalizer:
    """Strip boilerplate lines from chapter text without touching prose.

    Every removal pattern is anchored to a whole line; a keyword that merely
    appears inside a sentence is never removed.
    """

    def __init__(self, config: NormalizerConfig | None = None):
        self.config = config or NormalizerConfig()
        sources = list(BOILERPLATE_LINE_PATTERNS)
        sources.extend(rf"^{re.escape(line.strip())}$" for line in self.config.brand_lines if line.strip())
        sources.extend(self.config.extra_line_patterns)
        self._patterns = [
            re.compile(source, re.IGNORECASE | re.MULTILINE) for source in sources
        ]

    def clean(self, text: str) -> str:
        if not text:
            return ""

        # Trim each line first so patterns see bare content
        cleaned = re.sub(r"(?m)^[ \t　]+|[ \t　]+$", "", text.replace("\r\n", "\n"))

        for pattern in self._patterns:
            cleaned = pattern.sub("", cleaned)

        cleaned = re.sub(r"\n{3,}", "\n\n", cleaned).strip()

        if self.config.resegment_flat_text and cleaned and "\n" not in cleaned:
            cleaned = self.resegment(cleaned)

        return re.sub(r"\n{3,}", "\n\n", cleaned).strip()

    @staticmethod
    def resegment(text: str) -> str:
        """Best-effort paragraph breaks after closing quotation marks."""
        return _CLOSING_QUOTES.sub(lambda m: (m.group(1) or m.group(2)) + "\n", text)
