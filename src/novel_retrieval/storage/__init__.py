"""Novel and chapter persistence."""

from novel_retrieval.storage.base import NovelStore
from novel_retrieval.storage.directory import DirectoryNovelStore
from novel_retrieval.storage.memory import MemoryNovelStore

__all__ = [
    "NovelStore",
    "DirectoryNovelStore",
    "MemoryNovelStore",
]
