"""Value types shared across the pipeline."""

from datetime import datetime

from pydantic import BaseModel, Field

UNKNOWN_TITLE = "Unknown Title"
UNKNOWN_AUTHOR = "Unknown Author"


class NovelMetadata(BaseModel):
    """Metadata scraped from a novel's index page. Every field is optional."""

    title: str = ""
    author: str = ""
    description: str = ""

    @property
    def is_complete(self) -> bool:
        return bool(self.title and self.author and self.description)

    @property
    def is_valid(self) -> bool:
        return bool(self.title)


class ChapterReference(BaseModel):
    """A chapter discovered on the index page, not yet fetched."""

    title: str
    url: str
    index: int  # zero-based, document order

    @property
    def is_valid(self) -> bool:
        return bool(self.title and self.url)


class ChapterRecord(BaseModel):
    """A persisted chapter, keyed by novel and ordinal."""

    novel_id: int
    title: str
    content: str
    index: int
    source_url: str = ""
    created_at: datetime = Field(default_factory=datetime.now)


class Novel(BaseModel):
    """A persisted novel as returned by the store."""

    id: int
    title: str
    author: str
    description: str = ""
    source_url: str = ""
    total_chapters: int = 0
    created_at: datetime = Field(default_factory=datetime.now)


class ParsedIndex(BaseModel):
    """Everything extracted from a novel's index page."""

    url: str
    metadata: NovelMetadata
    chapters: list[ChapterReference]


class ResumeDecision(BaseModel):
    """Prior state of a source, computed fresh on every download attempt."""

    novel_id: int | None = None
    title: str = ""
    downloaded: int = 0
    previous_total: int = 0
    new_total: int = 0

    @property
    def exists(self) -> bool:
        return self.novel_id is not None

    @property
    def already_complete(self) -> bool:
        return self.exists and self.downloaded >= self.new_total
