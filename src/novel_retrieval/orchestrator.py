"""Download orchestrator: index page in, ordered chapter records out."""

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel

from novel_retrieval.config import AppConfig
from novel_retrieval.converter import TextNormalizer
from novel_retrieval.errors import DatabaseError, NetworkError, ParseError, ValidationError
from novel_retrieval.extractor import ChapterListExtractor, ContentExtractor, MetadataExtractor
from novel_retrieval.fetcher import BaseFetcher, FetchResult
from novel_retrieval.models import ChapterRecord, ChapterReference, Novel, ParsedIndex, ResumeDecision
from novel_retrieval.resume import ResumeAdvisor, ResumeChoice
from novel_retrieval.rules import ExtractionRule, validate_rule
from novel_retrieval.storage import NovelStore
from novel_retrieval.utils.rate_limiter import RateLimiter
from novel_retrieval.utils.url_utils import ensure_scheme, is_valid_url

logger = logging.getLogger(__name__)

FAILURE_MARKER = "[Download failed"
SAMPLE_LENGTH = 200

ProgressCallback = Callable[[int, int, str], None]
ExistingHandler = (
    ResumeChoice
    | Callable[[ResumeDecision], ResumeChoice]
    | Callable[[ResumeDecision], Awaitable[ResumeChoice]]
)


def failure_placeholder(reason: str) -> str:
    """Body stored in place of a chapter that could not be downloaded."""
    return f"{FAILURE_MARKER}: {reason}]"


def is_failure_placeholder(content: str) -> bool:
    return content.startswith(FAILURE_MARKER)


class DownloadState(str, Enum):
    """Orchestrator state machine."""

    IDLE = "idle"
    FETCHING_INDEX = "fetching_index"
    EXTRACTING_LIST = "extracting_list"
    DOWNLOADING = "downloading"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (DownloadState.COMPLETED, DownloadState.CANCELLED, DownloadState.FAILED)


@dataclass
class DownloadJob:
    """In-memory state of one running download. Never persisted."""

    source_url: str
    rule: ExtractionRule
    novel_id: int
    chapters: list[ChapterReference]
    resume_offset: int
    cancel_event: asyncio.Event
    completed: int = 0
    next_to_persist: int = 0
    persisted: int = 0
    # ordinal -> record, each ordinal written once by one worker
    results: dict[int, ChapterRecord] = field(default_factory=dict)
    failed: list[int] = field(default_factory=list)
    empty: list[int] = field(default_factory=list)

    def __post_init__(self):
        self.completed = self.resume_offset
        self.next_to_persist = self.resume_offset

    @property
    def total(self) -> int:
        return len(self.chapters)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


@dataclass
class DownloadResult:
    """Outcome of a completed or cancelled download."""

    state: DownloadState
    novel: Novel | None
    total: int = 0
    resume_offset: int = 0
    persisted: int = 0
    failed: list[int] = field(default_factory=list)
    empty: list[int] = field(default_factory=list)
    elapsed: float = 0.0
    error: NetworkError | None = None
    # Rate limiting, reported in the run summary
    backoffs: int = 0
    peak_delay: float = 0.0
    final_delay: float = 0.0
    throttled: bool = False

    @property
    def cancelled(self) -> bool:
        return self.state == DownloadState.CANCELLED


class RulePreview(BaseModel):
    """Result of trying a rule against a live index page."""

    ok: bool
    message: str = ""
    title: str = ""
    author: str = ""
    chapter_count: int = 0
    first_chapter_title: str = ""
    sample_content: str = ""


class DownloadOrchestrator:
    """Drives index fetch, chapter list extraction and concurrent download.

    One job at a time. Chapters are fetched by a fixed pool of worker tasks,
    collected by ordinal, and persisted in ordinal order in fixed-size
    batches as soon as a contiguous run is available.
    """

    def __init__(
        self,
        store: NovelStore,
        fetcher: BaseFetcher,
        config: AppConfig | None = None,
    ):
        self.config = config or AppConfig()
        self.store = store
        self.fetcher = fetcher
        self.metadata_extractor = MetadataExtractor()
        self.chapter_list_extractor = ChapterListExtractor()
        self.content_extractor = ContentExtractor(
            self.config.extractor, TextNormalizer(self.config.normalizer)
        )
        self.advisor = ResumeAdvisor(store)
        self.rate_limiter = RateLimiter(self.config.download.stagger_delay_ms / 1000)
        self.job: DownloadJob | None = None
        self._state = DownloadState.IDLE
        self._cancel = asyncio.Event()
        self._active = False

    @property
    def state(self) -> DownloadState:
        return self._state

    @property
    def is_downloading(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop dispatching new chapters. In-flight chapters still finish."""
        if not self._cancel.is_set():
            logger.info("Cancellation requested")
        self._cancel.set()

    async def fetch_index(self, url: str, rule: ExtractionRule) -> ParsedIndex:
        """Fetch an index page and extract metadata plus chapter list."""
        url = self._validate_url(url)
        page = await self._get_page(url)
        return self._parse_index(page, url, rule)

    async def fetch_chapter(self, reference: ChapterReference, rule: ExtractionRule) -> str:
        """Fetch and extract one chapter body. Raises NetworkError."""
        page = await self._get_page(reference.url)
        return self.content_extractor.extract(page.html, rule)

    async def test_rule(self, rule: ExtractionRule, url: str) -> RulePreview:
        """Try a rule against a live site. Problems are reported, not raised."""
        validation = validate_rule(rule)
        if not validation.ok:
            return RulePreview(ok=False, message=validation.message)
        if not is_valid_url(url):
            return RulePreview(ok=False, message=f"Invalid URL: {url!r}")

        try:
            index = await self.fetch_index(url, rule)
        except NetworkError as e:
            return RulePreview(ok=False, message=f"Network request failed: {e}")

        preview = RulePreview(
            ok=bool(index.chapters),
            message="" if index.chapters else "Chapter list selector matched nothing",
            title=index.metadata.title,
            author=index.metadata.author,
            chapter_count=len(index.chapters),
        )
        if index.chapters:
            first = index.chapters[0]
            preview.first_chapter_title = first.title
            try:
                sample = await self.fetch_chapter(first, rule)
            except NetworkError as e:
                sample = f"[Could not fetch chapter: {e}]"
            if len(sample) > SAMPLE_LENGTH:
                sample = sample[:SAMPLE_LENGTH] + "..."
            preview.sample_content = sample
        return preview

    async def download(
        self,
        url: str,
        rule: ExtractionRule,
        progress: ProgressCallback | None = None,
        on_existing: ExistingHandler = ResumeChoice.RESUME,
    ) -> DownloadResult:
        """Download a novel, resuming or restarting an earlier attempt.

        Returns a result for completed and cancelled jobs. Raises
        ValidationError before any network activity, ParseError when the
        index yields no chapters, NetworkError when the index cannot be
        fetched, and DatabaseError on any persistence failure.
        """
        if self._active:
            raise RuntimeError("A download is already in progress")

        url = self._validate_url(url)
        validate_rule(rule).raise_for_missing()
        # Private copy: the caller may edit its rules while we run
        rule = rule.model_copy(deep=True)

        started = time.monotonic()
        self._cancel = asyncio.Event()
        self._active = True
        self.job = None
        try:
            result = await self._download(url, rule, progress, on_existing)
        except BaseException:
            self._state = DownloadState.FAILED
            raise
        finally:
            self._active = False
            self.job = None

        result.elapsed = time.monotonic() - started
        result.backoffs = self.rate_limiter.backoff_count
        result.peak_delay = self.rate_limiter.peak_delay
        result.final_delay = self.rate_limiter.delay_seconds
        result.throttled = self.rate_limiter.is_throttled
        self._state = result.state
        logger.info(
            "Download of %s finished: %s (%d chapters stored this run)",
            url, result.state.value, result.persisted,
        )
        return result

    async def _download(
        self,
        url: str,
        rule: ExtractionRule,
        progress: ProgressCallback | None,
        on_existing: ExistingHandler,
    ) -> DownloadResult:
        self._state = DownloadState.FETCHING_INDEX
        page = await self._get_page(url)
        if self._cancel.is_set():
            return self._cancelled_result(None)

        self._state = DownloadState.EXTRACTING_LIST
        index = self._parse_index(page, url, rule)
        if not index.chapters:
            raise ParseError("No chapters found on the index page", url)
        logger.info("Discovered %d chapters at %s", len(index.chapters), url)

        decision = await self.advisor.check(url, len(index.chapters))
        novel_id: int | None = None
        offset = 0
        if decision.exists:
            choice = await self._choose(decision, on_existing)
            logger.info("Earlier download found, choice: %s", choice.value)
            if choice == ResumeChoice.CANCEL:
                return self._cancelled_result(await self.store.get_novel(decision.novel_id))
            if choice == ResumeChoice.RESUME:
                novel_id = decision.novel_id
                offset = decision.downloaded

        if self._cancel.is_set():
            novel = await self.store.get_novel(decision.novel_id) if decision.exists else None
            return self._cancelled_result(novel)

        if novel_id is None:
            novel = await self.store.create_novel(index.metadata, url, len(index.chapters))
            novel_id = novel.id

        job = DownloadJob(
            source_url=url,
            rule=rule,
            novel_id=novel_id,
            chapters=index.chapters,
            resume_offset=offset,
            cancel_event=self._cancel,
        )
        self.job = job

        if offset >= job.total:
            logger.info("Novel %d is already complete (%d chapters)", novel_id, offset)
            await self.store.update_total_chapters(novel_id, offset)
            return DownloadResult(
                state=DownloadState.COMPLETED,
                novel=await self._refreshed_novel(novel_id),
                total=job.total,
                resume_offset=offset,
            )

        self._state = DownloadState.DOWNLOADING
        await self._run_workers(job, progress)

        stored = job.next_to_persist
        await self.store.update_total_chapters(novel_id, stored)
        novel = await self._refreshed_novel(novel_id)

        if job.cancelled:
            result = self._cancelled_result(novel, f"Download cancelled, {stored} chapters saved")
        else:
            result = DownloadResult(state=DownloadState.COMPLETED, novel=novel)
        result.total = job.total
        result.resume_offset = offset
        result.persisted = job.persisted
        result.failed = sorted(job.failed)
        result.empty = sorted(job.empty)
        return result

    async def _run_workers(self, job: DownloadJob, progress: ProgressCallback | None) -> None:
        """Run the worker pool, persisting batches until every worker exits."""
        pending = iter(job.chapters[job.resume_offset:])
        width = min(self.config.download.max_concurrent, job.total - job.resume_offset)
        workers = [
            asyncio.create_task(self._worker(slot, pending, job, progress))
            for slot in range(width)
        ]
        logger.info(
            "Downloading %d chapters from ordinal %d with %d workers",
            job.total - job.resume_offset, job.resume_offset, width,
        )

        try:
            running = set(workers)
            cancel_logged = False
            while running:
                done, running = await asyncio.wait(
                    running, timeout=self.config.download.poll_interval
                )
                for task in done:
                    task.result()
                if job.cancelled and not cancel_logged:
                    logger.info("Cancelled: waiting for %d in-flight chapters", len(running))
                    cancel_logged = True
                await self._persist_ready(job, final=False)
            await self._persist_ready(job, final=True)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        leftover = len(job.results)
        if leftover:
            logger.warning("Discarding %d chapters stored after a gap at %d", leftover, job.next_to_persist)

    async def _worker(
        self,
        slot: int,
        pending: Iterator[ChapterReference],
        job: DownloadJob,
        progress: ProgressCallback | None,
    ) -> None:
        while not job.cancelled:
            reference = next(pending, None)
            if reference is None:
                return
            await self.rate_limiter.stagger(slot)
            if job.cancelled:
                return
            job.results[reference.index] = await self._download_chapter(job, reference)
            job.completed += 1
            if progress is not None:
                progress(job.completed, job.total, reference.title)

    async def _download_chapter(self, job: DownloadJob, reference: ChapterReference) -> ChapterRecord:
        """Fetch and extract one chapter. Failures become a placeholder body."""
        settings = self.config.download
        logger.debug("Fetching chapter %d: %s (%s)", reference.index, reference.title, reference.url)
        try:
            page = await self.fetcher.fetch_with_retry(
                reference.url,
                settings.max_retries,
                settings.retry_base_delay,
                self.config.fetcher.timeout_ms,
            )
            if not page.success:
                if page.status_code == 429:
                    self.rate_limiter.back_off()
                raise page.to_error()
            content = self.content_extractor.extract(page.html, job.rule)
            self.rate_limiter.ease_off()
            if not content:
                job.empty.append(reference.index)
        except Exception as e:
            logger.warning("Chapter %d (%s) failed: %s", reference.index, reference.title, e)
            content = failure_placeholder(str(e) or type(e).__name__)
            job.failed.append(reference.index)

        return ChapterRecord(
            novel_id=job.novel_id,
            title=reference.title,
            content=content,
            index=reference.index,
            source_url=reference.url,
        )

    async def _persist_ready(self, job: DownloadJob, final: bool) -> None:
        """Persist contiguous results from the scan position.

        Mid-run only full batches are written; the final pass flushes every
        contiguous result that is left.
        """
        batch_size = self.config.download.batch_size
        while True:
            run = 0
            while run < batch_size and (job.next_to_persist + run) in job.results:
                run += 1
            if run == 0 or (run < batch_size and not final):
                return
            batch = [job.results.pop(job.next_to_persist + i) for i in range(run)]
            await self.store.insert_chapter_batch(job.novel_id, batch)
            job.next_to_persist += run
            job.persisted += run
            logger.info(
                "Stored chapters %d-%d of novel %d",
                batch[0].index, batch[-1].index, job.novel_id,
            )

    async def _choose(self, decision: ResumeDecision, on_existing: ExistingHandler) -> ResumeChoice:
        if isinstance(on_existing, ResumeChoice):
            return on_existing
        choice = on_existing(decision)
        if inspect.isawaitable(choice):
            choice = await choice
        return ResumeChoice(choice)

    async def _get_page(self, url: str) -> FetchResult:
        page = await self.fetcher.fetch(url, self.config.fetcher.timeout_ms)
        if not page.success:
            raise page.to_error()
        return page

    def _parse_index(self, page: FetchResult, url: str, rule: ExtractionRule) -> ParsedIndex:
        base_url = page.final_url or url
        return ParsedIndex(
            url=url,
            metadata=self.metadata_extractor.extract(page.html, rule),
            chapters=self.chapter_list_extractor.extract(page.html, rule, base_url),
        )

    async def _refreshed_novel(self, novel_id: int) -> Novel:
        novel = await self.store.get_novel(novel_id)
        if novel is None:
            raise DatabaseError(f"Novel {novel_id} disappeared from the store")
        return novel

    @staticmethod
    def _validate_url(url: str) -> str:
        if not is_valid_url(url):
            raise ValidationError(f"Invalid URL: {url!r}", ["url"])
        return ensure_scheme(url)

    @staticmethod
    def _cancelled_result(novel: Novel | None, message: str = "Download cancelled") -> DownloadResult:
        return DownloadResult(
            state=DownloadState.CANCELLED,
            novel=novel,
            error=NetworkError.cancellation(message),
        )
