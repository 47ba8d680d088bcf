"""Detection of earlier, possibly partial, downloads of the same source."""

import logging
from enum import Enum

from novel_retrieval.models import ResumeDecision
from novel_retrieval.storage import NovelStore

logger = logging.getLogger(__name__)


class ResumeChoice(str, Enum):
    """What to do when the source was downloaded before."""

    RESUME = "resume"
    RESTART = "restart"
    CANCEL = "cancel"


class ResumeAdvisor:
    """Compare stored progress for a source against a fresh chapter count.

    Only chapter counts are compared. If the site reordered or renamed
    chapters since the earlier run, resuming can store a chapter under the
    wrong ordinal.
    """

    def __init__(self, store: NovelStore):
        self.store = store

    async def check(self, source_url: str, new_total: int) -> ResumeDecision:
        """Build a decision from the store and the just-discovered total."""
        novel_id = await self.store.find_by_source_url(source_url)
        if novel_id is None:
            return ResumeDecision(new_total=new_total)

        novel = await self.store.get_novel(novel_id)
        downloaded = await self.store.get_chapter_count(novel_id)
        decision = ResumeDecision(
            novel_id=novel_id,
            title=novel.title if novel else "",
            downloaded=downloaded,
            previous_total=novel.total_chapters if novel else 0,
            new_total=new_total,
        )
        logger.info(
            "Found earlier download of %s (novel %d): %d/%d chapters",
            source_url, novel_id, downloaded, new_total,
        )
        return decision
