"""Persistence boundary for novels and chapters."""

from abc import ABC, abstractmethod

from novel_retrieval.models import ChapterRecord, Novel, NovelMetadata


class NovelStore(ABC):
    """Abstract novel/chapter store.

    Implementations raise DatabaseError for their own failures. Each call
    is expected to be atomic on its own; callers never rely on transactions
    spanning several calls.
    """

    @abstractmethod
    async def create_novel(
        self, metadata: NovelMetadata, source_url: str, total_chapters: int
    ) -> Novel:
        """Insert a new novel and return it with its identifier."""

    @abstractmethod
    async def get_novel(self, novel_id: int) -> Novel | None:
        ...

    @abstractmethod
    async def find_by_source_url(self, url: str) -> int | None:
        """Identifier of the most recently created novel for ``url``."""

    @abstractmethod
    async def get_chapter_count(self, novel_id: int) -> int:
        ...

    @abstractmethod
    async def insert_chapter_batch(self, novel_id: int, records: list[ChapterRecord]) -> None:
        """Insert chapters. An ordinal that is already stored is left untouched."""

    @abstractmethod
    async def update_total_chapters(self, novel_id: int, count: int) -> None:
        ...

    @abstractmethod
    async def list_chapters(self, novel_id: int) -> list[ChapterRecord]:
        """All chapters of a novel, ordered by ordinal."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass
