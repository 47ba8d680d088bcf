"""Command-line interface for novel-retrieval."""

import asyncio
import logging
import signal
from pathlib import Path
from typing import Callable, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)
from rich.table import Table

from novel_retrieval import __version__
from novel_retrieval.config import AppConfig
from novel_retrieval.errors import NovelRetrievalError, ValidationError
from novel_retrieval.fetcher import HttpFetcher
from novel_retrieval.interactive import InteractivePrompter
from novel_retrieval.orchestrator import DownloadOrchestrator, DownloadResult, is_failure_placeholder
from novel_retrieval.resume import ResumeChoice
from novel_retrieval.rules import ExtractionRule, RuleRegistry, check_rules_file, load_rules_file
from novel_retrieval.storage import DirectoryNovelStore, MemoryNovelStore

app = typer.Typer(
    name="novel-retrieval",
    help="Download web novels chapter by chapter using per-site extraction rules.",
    rich_markup_mode="rich",
    no_args_is_help=True,
)

console = Console()
logger = logging.getLogger(__name__)

EXIT_FAILURE = 1
EXIT_INVALID = 2
EXIT_CANCELLED = 130


def version_callback(value: bool):
    if value:
        console.print(f"novel-retrieval version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
):
    """Web novel download tool."""
    pass


def setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _build_config(config_file: Optional[Path] = None, **overrides) -> AppConfig:
    """Load the config file (if any) and apply command-line overrides.

    Override keys are ``section__field`` or a top-level field name; ``None``
    values are skipped.
    """
    config = AppConfig.from_toml(config_file) if config_file else AppConfig()
    data = config.model_dump()
    for key, value in overrides.items():
        if value is None:
            continue
        section, _, name = key.partition("__")
        if name:
            data[section][name] = value
        else:
            data[section] = value
    return AppConfig.model_validate(data)


def _build_registry(config: AppConfig) -> RuleRegistry:
    if not config.rules_file:
        return RuleRegistry()
    try:
        return load_rules_file(config.rules_file)
    except (OSError, ValueError) as e:
        raise ValidationError(f"Could not load rules from {config.rules_file}: {e}", ["rules_file"]) from e


def _pick_rule(registry: RuleRegistry, url: str, rule_name: Optional[str]) -> ExtractionRule:
    if rule_name:
        rule = registry.get(rule_name)
        if rule is None:
            raise ValidationError(f"Unknown rule: {rule_name}", ["rule"])
        return rule
    rule = registry.resolve(url)
    if rule is None:
        raise ValidationError(f"No rule matches {url}", ["rule"])
    return rule


def _fail(message: str, code: int, verbose: bool = False) -> typer.Exit:
    console.print(f"[red]Error: {escape(message)}[/red]")
    if verbose:
        console.print_exception()
    return typer.Exit(code)


@app.command()
def download(
    url: str = typer.Argument(..., help="URL of the novel's chapter index page"),
    rule_name: Optional[str] = typer.Option(
        None,
        "--rule",
        "-r",
        help="Rule name (default: resolve from the URL's domain)",
    ),
    rules_file: Optional[Path] = typer.Option(
        None,
        "--rules-file",
        help="TOML file with additional [[rules]] tables",
    ),
    config_file: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="TOML configuration file",
    ),
    store_dir: Optional[Path] = typer.Option(
        None,
        "--store",
        "-s",
        help="Library directory",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "--workers",
        "-w",
        help="Concurrent chapter downloads",
    ),
    batch_size: Optional[int] = typer.Option(
        None,
        "--batch-size",
        help="Chapters written per storage batch",
    ),
    timeout: Optional[int] = typer.Option(
        None,
        "--timeout",
        help="Per-request timeout in milliseconds",
    ),
    resume: bool = typer.Option(
        False,
        "--resume",
        help="Continue an earlier download of this URL (default)",
    ),
    restart: bool = typer.Option(
        False,
        "--restart",
        help="Download everything again into a new record",
    ),
    ask: bool = typer.Option(
        False,
        "--ask",
        help="Ask which rule to use and what to do with earlier downloads",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output",
    ),
):
    """
    Download every chapter of a novel into the local library.

    Chapters already stored from an earlier run are kept and the download
    continues after them, unless --restart or --ask is given.

    Examples:

        novel-retrieval download https://www.example.com/book/123/

        novel-retrieval download https://www.example.com/book/123/ --rule biquge -w 4

        novel-retrieval download https://www.example.com/book/123/ --restart
    """
    setup_logging(verbose)
    if sum((resume, restart, ask)) > 1:
        raise _fail("Use only one of --resume, --restart and --ask", EXIT_INVALID)

    try:
        config = _build_config(
            config_file,
            storage__path=store_dir,
            download__max_concurrent=workers,
            download__batch_size=batch_size,
            fetcher__timeout_ms=timeout,
            rules_file=rules_file,
            verbose=verbose,
        )
    except (OSError, ValueError) as e:
        raise _fail(f"Invalid configuration: {e}", EXIT_INVALID)

    prompter = InteractivePrompter(console)
    try:
        registry = _build_registry(config)
        if ask and not rule_name:
            rule = prompter.choose_rule(registry, url)
            if rule is None:
                console.print("[yellow]Download cancelled.[/yellow]")
                raise typer.Exit(0)
        else:
            rule = _pick_rule(registry, url, rule_name)
    except ValidationError as e:
        raise _fail(str(e), EXIT_INVALID)

    if ask:
        on_existing = prompter.ask_resume
    elif restart:
        on_existing = ResumeChoice.RESTART
    else:
        on_existing = ResumeChoice.RESUME

    console.print(f"[blue]Downloading {url} with rule '{rule.name}'...[/blue]")
    try:
        result = asyncio.run(_run_download(config, url, rule, on_existing))
    except KeyboardInterrupt:
        console.print("\n[yellow]Download interrupted.[/yellow]")
        raise typer.Exit(EXIT_CANCELLED)
    except ValidationError as e:
        raise _fail(str(e), EXIT_INVALID, verbose)
    except NovelRetrievalError as e:
        raise _fail(str(e), EXIT_FAILURE, verbose)

    _print_summary(result, config)
    if result.cancelled:
        raise typer.Exit(EXIT_CANCELLED)


async def _run_download(config: AppConfig, url: str, rule: ExtractionRule, on_existing) -> DownloadResult:
    store = DirectoryNovelStore(config.storage.path)
    async with HttpFetcher(config.fetcher) as fetcher, store:
        orchestrator = DownloadOrchestrator(store, fetcher, config)

        sigint = CancelOnInterrupt(asyncio.get_running_loop(), orchestrator.cancel)
        sigint.install()

        progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            TextColumn("•"),
            TimeRemainingColumn(),
            console=console,
        )
        progress_task = progress.add_task("Fetching index...", total=None)

        def on_progress(completed: int, total: int, title: str) -> None:
            progress.update(
                progress_task,
                completed=completed,
                total=total,
                description=title[:30] or "Downloading",
            )

        if callable(on_existing):
            on_existing = prompt_outside_display(on_existing, progress, sigint)

        try:
            with progress:
                return await orchestrator.download(url, rule, on_progress, on_existing)
        finally:
            sigint.remove()


class CancelOnInterrupt:
    """Route Ctrl-C to a cooperative cancel while installed."""

    def __init__(self, loop: asyncio.AbstractEventLoop, cancel: Callable[[], None]):
        self.loop = loop
        self.cancel = cancel
        self.installed = False

    def install(self) -> None:
        if self.installed:
            return
        try:
            self.loop.add_signal_handler(signal.SIGINT, self.cancel)
            self.installed = True
        except NotImplementedError:
            logger.debug("Signal handlers unsupported, Ctrl-C aborts the download")

    def remove(self) -> None:
        if self.installed:
            self.loop.remove_signal_handler(signal.SIGINT)
            self.installed = False


def prompt_outside_display(prompt: Callable, progress: Progress, sigint: CancelOnInterrupt) -> Callable:
    """Wrap ``prompt`` so it runs with the live display stopped.

    Ctrl-C at the prompt raises KeyboardInterrupt instead of setting the
    cancel flag.
    """

    def ask(decision):
        progress.stop()
        sigint.remove()
        try:
            return prompt(decision)
        finally:
            sigint.install()
            progress.start()

    return ask


def _print_summary(result: DownloadResult, config: AppConfig) -> None:
    console.print()
    if result.cancelled:
        console.print(f"[yellow]{result.error or 'Download cancelled'}[/yellow]")
    else:
        console.print("[bold]Download complete[/bold]")
    if result.novel is None:
        return

    novel = result.novel
    table = Table(show_header=False, box=None, pad_edge=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Title", escape(novel.title))
    table.add_row("Author", escape(novel.author))
    table.add_row("Novel id", str(novel.id))
    table.add_row("Chapters stored", f"{novel.total_chapters} / {result.total}")
    table.add_row("Resumed at", str(result.resume_offset))
    table.add_row("Stored this run", str(result.persisted))
    if result.failed:
        table.add_row("Failed", f"[red]{len(result.failed)}[/red]")
    if result.empty:
        table.add_row("No body found", f"[yellow]{len(result.empty)}[/yellow]")
    table.add_row("Elapsed", f"{result.elapsed:.1f}s")
    table.add_row("Library", str(config.storage.path))
    console.print(table)

    if result.failed:
        shown = ", ".join(str(i) for i in result.failed[:20])
        more = f" ... and {len(result.failed) - 20} more" if len(result.failed) > 20 else ""
        console.print(f"[dim]Failed ordinals: {shown}{more}[/dim]")

    if result.backoffs > 0:
        configured = config.download.stagger_delay_ms / 1000
        console.print()
        console.print("[bold]Rate limiting[/bold]")
        console.print(f"  429 backoffs:    {result.backoffs}")
        console.print(f"  Peak delay:      {result.peak_delay:.2f}s")
        style = "yellow" if result.throttled else "dim"
        console.print(
            f"  [{style}]Final delay:     {result.final_delay:.2f}s (configured {configured:.2f}s)[/{style}]"
        )


@app.command()
def parse(
    url: str = typer.Argument(..., help="URL of the novel's chapter index page"),
    rule_name: Optional[str] = typer.Option(None, "--rule", "-r", help="Rule name"),
    rules_file: Optional[Path] = typer.Option(None, "--rules-file", help="TOML rule file"),
    limit: int = typer.Option(20, "--limit", "-n", help="Chapters to list (0 = all)"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Print the metadata and chapter list of an index page."""
    setup_logging(verbose)
    config = AppConfig(rules_file=rules_file, verbose=verbose)

    async def run():
        async with HttpFetcher(config.fetcher) as fetcher:
            orchestrator = DownloadOrchestrator(MemoryNovelStore(), fetcher, config)
            return await orchestrator.fetch_index(url, rule)

    try:
        rule = _pick_rule(_build_registry(config), url, rule_name)
        index = asyncio.run(run())
    except ValidationError as e:
        raise _fail(str(e), EXIT_INVALID)
    except NovelRetrievalError as e:
        raise _fail(str(e), EXIT_FAILURE, verbose)

    meta = index.metadata
    console.print(Panel.fit(
        f"[bold]{escape(meta.title) or 'Unknown title'}[/bold]\n"
        f"Author: {escape(meta.author) or 'unknown'}\n\n"
        f"{escape(meta.description[:300])}",
        title=f"Rule: {rule.name}",
        border_style="blue",
    ))

    table = Table(title=f"{len(index.chapters)} chapters")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("URL", style="dim")
    shown = index.chapters if limit <= 0 else index.chapters[:limit]
    for chapter in shown:
        table.add_row(str(chapter.index), escape(chapter.title), chapter.url)
    console.print(table)
    if len(shown) < len(index.chapters):
        console.print(f"[dim]... and {len(index.chapters) - len(shown)} more[/dim]")


@app.command("test-rule")
def test_rule(
    url: str = typer.Argument(..., help="URL of a chapter index page"),
    rule_name: Optional[str] = typer.Option(None, "--rule", "-r", help="Rule name"),
    rules_file: Optional[Path] = typer.Option(None, "--rules-file", help="TOML rule file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose output"),
):
    """Try a rule against a live site and show what it extracts."""
    setup_logging(verbose)
    config = AppConfig(rules_file=rules_file, verbose=verbose)

    async def run():
        async with HttpFetcher(config.fetcher) as fetcher:
            orchestrator = DownloadOrchestrator(MemoryNovelStore(), fetcher, config)
            return await orchestrator.test_rule(rule, url)

    try:
        rule = _pick_rule(_build_registry(config), url, rule_name)
    except ValidationError as e:
        raise _fail(str(e), EXIT_INVALID)
    preview = asyncio.run(run())

    style = "green" if preview.ok else "red"
    lines = [f"[{style}]{'Rule works' if preview.ok else 'Rule failed'}[/{style}]"]
    if preview.message:
        lines.append(escape(preview.message))
    lines += [
        "",
        f"Title:     {escape(preview.title) or '-'}",
        f"Author:    {escape(preview.author) or '-'}",
        f"Chapters:  {preview.chapter_count}",
    ]
    if preview.first_chapter_title:
        lines.append(f"First:     {escape(preview.first_chapter_title)}")
    if preview.sample_content:
        lines += ["", escape(preview.sample_content)]
    console.print(Panel("\n".join(lines), title=f"Rule: {rule.name}", border_style=style))
    if not preview.ok:
        raise typer.Exit(EXIT_FAILURE)


@app.command("list-rules")
def list_rules(
    rules_file: Optional[Path] = typer.Option(None, "--rules-file", help="TOML rule file"),
):
    """List the available extraction rules."""
    try:
        registry = _build_registry(AppConfig(rules_file=rules_file))
    except ValidationError as e:
        raise _fail(str(e), EXIT_INVALID)

    table = Table(title="Extraction Rules")
    table.add_column("Name", style="cyan", no_wrap=True)
    table.add_column("Domain")
    table.add_column("Chapter list")
    table.add_column("Content")

    for rule in registry.list_rules():
        table.add_row(rule.name, rule.domain, rule.chapter_list_selector, rule.content_selector)

    console.print(table)


@app.command("validate-rule")
def validate_rule_file(
    path: Path = typer.Argument(..., help="TOML file with [[rules]] tables"),
):
    """Check every rule in a rule file and report all missing fields."""
    try:
        checked = check_rules_file(path)
    except (OSError, ValueError) as e:
        raise _fail(f"Could not read {path}: {e}", EXIT_FAILURE)

    if not checked:
        console.print(f"[yellow]No rule tables found in {path}[/yellow]")
        raise typer.Exit(EXIT_INVALID)

    for rule, validation in checked:
        label = rule.name or rule.domain or "(unnamed)"
        if validation.ok:
            console.print(f"[green]ok[/green]      {label}")
        else:
            console.print(f"[red]invalid[/red] {label}: {validation.message}")

    invalid = sum(1 for _, validation in checked if not validation.ok)
    console.print(f"{len(checked)} rules checked, {invalid} invalid")
    if invalid:
        raise typer.Exit(EXIT_INVALID)


@app.command()
def chapters(
    novel_id: int = typer.Argument(..., help="Novel id in the library"),
    store_dir: Path = typer.Option(Path("./library"), "--store", "-s", help="Library directory"),
):
    """List the chapters stored for a novel."""
    store = DirectoryNovelStore(store_dir)

    async def run():
        return await store.get_novel(novel_id), await store.list_chapters(novel_id)

    try:
        novel, records = asyncio.run(run())
    except NovelRetrievalError as e:
        raise _fail(str(e), EXIT_FAILURE)
    if novel is None:
        raise _fail(f"No novel {novel_id} in {store_dir}", EXIT_FAILURE)

    table = Table(title=f"{escape(novel.title)} by {escape(novel.author)}")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Length", justify="right")
    failed = 0
    for record in records:
        if is_failure_placeholder(record.content):
            failed += 1
            length = "[red]failed[/red]"
        else:
            length = str(len(record.content))
        table.add_row(str(record.index), escape(record.title), length)
    console.print(table)
    console.print(f"{len(records)} of {novel.total_chapters} chapters stored, {failed} failed")


if __name__ == "__main__":
    app()
