"""Directory-backed novel store.

Layout::

    <root>/
        <novel id>/
            novel.json
            chapters/
                000000.json
                000001.json
"""

import logging
from pathlib import Path

import aiofiles  # type: ignore[import-untyped]
from pydantic import ValidationError as ModelValidationError

from novel_retrieval.errors import DatabaseError
from novel_retrieval.models import UNKNOWN_AUTHOR, UNKNOWN_TITLE, ChapterRecord, Novel, NovelMetadata
from novel_retrieval.storage.base import NovelStore
from novel_retrieval.utils.url_utils import normalize_url

logger = logging.getLogger(__name__)


class DirectoryNovelStore(NovelStore):
    """One directory per novel, one JSON file per chapter."""

    def __init__(self, root: Path):
        self.root = Path(root)

    async def create_novel(
        self, metadata: NovelMetadata, source_url: str, total_chapters: int
    ) -> Novel:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            novel = Novel(
                id=self._next_id(),
                title=metadata.title or UNKNOWN_TITLE,
                author=metadata.author or UNKNOWN_AUTHOR,
                description=metadata.description,
                source_url=normalize_url(source_url),
                total_chapters=total_chapters,
            )
            self._chapters_dir(novel.id).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DatabaseError(f"Could not create novel directory: {e}") from e
        await self._write_novel(novel)
        return novel

    async def get_novel(self, novel_id: int) -> Novel | None:
        path = self._novel_file(novel_id)
        if not path.exists():
            return None
        return await self._read_model(path, Novel)

    async def find_by_source_url(self, url: str) -> int | None:
        wanted = normalize_url(url)
        for novel_id in sorted(self._novel_ids(), reverse=True):
            novel = await self.get_novel(novel_id)
            if novel and novel.source_url == wanted:
                return novel_id
        return None

    async def get_chapter_count(self, novel_id: int) -> int:
        chapters_dir = self._chapters_dir(novel_id)
        if not chapters_dir.is_dir():
            return 0
        return sum(1 for _ in chapters_dir.glob("*.json"))

    async def insert_chapter_batch(self, novel_id: int, records: list[ChapterRecord]) -> None:
        chapters_dir = self._chapters_dir(novel_id)
        if not self._novel_file(novel_id).exists():
            raise DatabaseError(f"Novel {novel_id} does not exist")
        for record in records:
            path = chapters_dir / f"{record.index:06d}.json"
            if path.exists():
                logger.warning("Chapter %d of novel %d already stored, keeping it", record.index, novel_id)
                continue
            await self._write_text(path, record.model_dump_json(indent=2))
        logger.debug("Stored %d chapters for novel %d", len(records), novel_id)

    async def update_total_chapters(self, novel_id: int, count: int) -> None:
        novel = await self.get_novel(novel_id)
        if novel is None:
            raise DatabaseError(f"Novel {novel_id} does not exist")
        await self._write_novel(novel.model_copy(update={"total_chapters": count}))

    async def list_chapters(self, novel_id: int) -> list[ChapterRecord]:
        chapters_dir = self._chapters_dir(novel_id)
        if not chapters_dir.is_dir():
            return []
        records = [
            await self._read_model(path, ChapterRecord)
            for path in sorted(chapters_dir.glob("*.json"))
        ]
        return sorted(records, key=lambda r: r.index)

    def _novel_ids(self) -> list[int]:
        if not self.root.is_dir():
            return []
        return [int(p.name) for p in self.root.iterdir() if p.is_dir() and p.name.isdigit()]

    def _next_id(self) -> int:
        return max(self._novel_ids(), default=0) + 1

    def _novel_file(self, novel_id: int) -> Path:
        return self.root / str(novel_id) / "novel.json"

    def _chapters_dir(self, novel_id: int) -> Path:
        return self.root / str(novel_id) / "chapters"

    async def _write_novel(self, novel: Novel) -> None:
        await self._write_text(self._novel_file(novel.id), novel.model_dump_json(indent=2))

    async def _write_text(self, path: Path, content: str) -> None:
        try:
            async with aiofiles.open(path, "w", encoding="utf-8") as f:
                await f.write(content)
        except OSError as e:
            raise DatabaseError(f"Could not write {path}: {e}") from e

    async def _read_model(self, path: Path, model):
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                content = await f.read()
            return model.model_validate_json(content)
        except (OSError, ModelValidationError) as e:
            raise DatabaseError(f"Could not read {path}: {e}") from e
