"""Metadata, chapter list and chapter body extraction."""

from novel_retrieval.extractor.chapter_list import ChapterListExtractor
from novel_retrieval.extractor.main_content import ContentExtractor
from novel_retrieval.extractor.metadata import MetadataExtractor
from novel_retrieval.extractor.text import text_with_paragraphs

__all__ = [
    "ChapterListExtractor",
    "ContentExtractor",
    "MetadataExtractor",
    "text_with_paragraphs",
]
