"""In-memory novel store."""

import logging

from novel_retrieval.errors import DatabaseError
from novel_retrieval.models import UNKNOWN_AUTHOR, UNKNOWN_TITLE, ChapterRecord, Novel, NovelMetadata
from novel_retrieval.storage.base import NovelStore
from novel_retrieval.utils.url_utils import normalize_url

logger = logging.getLogger(__name__)


class MemoryNovelStore(NovelStore):
    """Dict-backed store. Keeps everything for the life of the process."""

    def __init__(self):
        self._novels: dict[int, Novel] = {}
        self._chapters: dict[int, dict[int, ChapterRecord]] = {}
        self._next_id = 1
        self.batches: list[list[int]] = []  # ordinals of each inserted batch

    async def create_novel(
        self, metadata: NovelMetadata, source_url: str, total_chapters: int
    ) -> Novel:
        novel = Novel(
            id=self._next_id,
            title=metadata.title or UNKNOWN_TITLE,
            author=metadata.author or UNKNOWN_AUTHOR,
            description=metadata.description,
            source_url=normalize_url(source_url),
            total_chapters=total_chapters,
        )
        self._next_id += 1
        self._novels[novel.id] = novel
        self._chapters[novel.id] = {}
        return novel.model_copy()

    async def get_novel(self, novel_id: int) -> Novel | None:
        novel = self._novels.get(novel_id)
        return novel.model_copy() if novel else None

    async def find_by_source_url(self, url: str) -> int | None:
        wanted = normalize_url(url)
        matches = [n.id for n in self._novels.values() if n.source_url == wanted]
        return max(matches) if matches else None

    async def get_chapter_count(self, novel_id: int) -> int:
        return len(self._chapters.get(novel_id, {}))

    async def insert_chapter_batch(self, novel_id: int, records: list[ChapterRecord]) -> None:
        chapters = self._require(novel_id)
        for record in records:
            if record.index in chapters:
                logger.warning("Chapter %d of novel %d already stored, keeping it", record.index, novel_id)
                continue
            chapters[record.index] = record.model_copy()
        self.batches.append([r.index for r in records])

    async def update_total_chapters(self, novel_id: int, count: int) -> None:
        self._require(novel_id)
        self._novels[novel_id] = self._novels[novel_id].model_copy(update={"total_chapters": count})

    async def list_chapters(self, novel_id: int) -> list[ChapterRecord]:
        chapters = self._chapters.get(novel_id, {})
        return [chapters[i].model_copy() for i in sorted(chapters)]

    def _require(self, novel_id: int) -> dict[int, ChapterRecord]:
        if novel_id not in self._novels:
            raise DatabaseError(f"Novel {novel_id} does not exist")
        return self._chapters[novel_id]
