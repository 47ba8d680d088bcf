"""Conversion of extracted text into clean chapter bodies."""

from novel_retrieval.converter.normalizer import BOILERPLATE_LINE_PATTERNS, TextNormalizer

__all__ = [
    "BOILERPLATE_LINE_PATTERNS",
    "TextNormalizer",
]
