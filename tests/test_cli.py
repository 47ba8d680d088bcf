import asyncio

import pytest
from typer.testing import CliRunner

from novel_retrieval import __version__
from novel_retrieval.cli import _print_summary, app, prompt_outside_display
from novel_retrieval.config import AppConfig
from novel_retrieval.models import ChapterRecord, Novel, NovelMetadata
from novel_retrieval.orchestrator import DownloadResult, DownloadState, failure_placeholder
from novel_retrieval.resume import ResumeChoice
from novel_retrieval.storage import DirectoryNovelStore

runner = CliRunner()

GOOD_RULE = """
[[rules]]
name = "mysite"
domain = "novels.example.com"
chapter_list_selector = "#list a"
content_selector = "#content"
"""

BAD_RULE = """
[[rules]]
name = "broken"
domain = "broken.example.com"
chapter_list_selector = "#list a"
"""


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_list_rules_shows_builtins():
    result = runner.invoke(app, ["list-rules"])
    assert result.exit_code == 0
    for name in ("universal", "biquge", "qidian", "69shu"):
        assert name in result.output


def test_list_rules_includes_rules_file(tmp_path):
    path = tmp_path / "rules.toml"
    path.write_text(GOOD_RULE, encoding="utf-8")

    result = runner.invoke(app, ["list-rules", "--rules-file", str(path)])

    assert result.exit_code == 0
    assert "mysite" in result.output


def test_validate_rule_ok(tmp_path):
    path = tmp_path / "rules.toml"
    path.write_text(GOOD_RULE, encoding="utf-8")

    result = runner.invoke(app, ["validate-rule", str(path)])

    assert result.exit_code == 0
    assert "1 rules checked, 0 invalid" in result.output


def test_validate_rule_reports_missing_fields(tmp_path):
    path = tmp_path / "rules.toml"
    path.write_text(GOOD_RULE + BAD_RULE, encoding="utf-8")

    result = runner.invoke(app, ["validate-rule", str(path)])

    assert result.exit_code == 2
    assert "broken: Rule is incomplete, missing: content selector" in result.output
    assert "2 rules checked, 1 invalid" in result.output


def test_validate_rule_missing_file(tmp_path):
    result = runner.invoke(app, ["validate-rule", str(tmp_path / "absent.toml")])
    assert result.exit_code == 1


def test_download_rejects_invalid_url(tmp_path):
    result = runner.invoke(app, ["download", "not a url", "--store", str(tmp_path)])

    assert result.exit_code == 2
    assert "Invalid URL" in result.output


def test_download_rejects_unknown_rule(tmp_path):
    result = runner.invoke(
        app, ["download", "https://novels.example.com/book/1/", "--rule", "nope", "--store", str(tmp_path)]
    )

    assert result.exit_code == 2
    assert "Unknown rule: nope" in result.output


def test_download_rejects_conflicting_flags(tmp_path):
    result = runner.invoke(
        app, ["download", "https://novels.example.com/book/1/", "--restart", "--ask", "--store", str(tmp_path)]
    )
    assert result.exit_code == 2


def test_chapters_lists_stored_records(tmp_path):
    store = DirectoryNovelStore(tmp_path)

    async def seed():
        novel = await store.create_novel(NovelMetadata(title="Starfall", author="Ana"), "https://x.example.com/b/1", 3)
        await store.insert_chapter_batch(novel.id, [
            ChapterRecord(novel_id=novel.id, title="Opening", content="Once upon a time.", index=0),
            ChapterRecord(novel_id=novel.id, title="Storm", content=failure_placeholder("timeout"), index=1),
        ])
        return novel

    novel = asyncio.run(seed())

    result = runner.invoke(app, ["chapters", str(novel.id), "--store", str(tmp_path)])

    assert result.exit_code == 0
    assert "Opening" in result.output
    assert "Storm" in result.output
    assert "2 of 3 chapters stored, 1 failed" in result.output


def test_chapters_unknown_novel(tmp_path):
    result = runner.invoke(app, ["chapters", "42", "--store", str(tmp_path)])
    assert result.exit_code == 1


class RecordingDisplay:
    def __init__(self, events):
        self.events = events

    def stop(self):
        self.events.append("display stopped")

    def start(self):
        self.events.append("display started")


class RecordingInterrupt:
    def __init__(self, events):
        self.events = events

    def remove(self):
        self.events.append("sigint removed")

    def install(self):
        self.events.append("sigint installed")


def test_resume_prompt_runs_with_display_stopped():
    events = []

    def prompt(decision):
        events.append(f"asked {decision}")
        return ResumeChoice.RESTART

    ask = prompt_outside_display(prompt, RecordingDisplay(events), RecordingInterrupt(events))

    assert ask("decision") == ResumeChoice.RESTART
    assert events == [
        "display stopped",
        "sigint removed",
        "asked decision",
        "sigint installed",
        "display started",
    ]


def test_interrupt_at_resume_prompt_propagates():
    events = []

    def prompt(decision):
        raise KeyboardInterrupt

    ask = prompt_outside_display(prompt, RecordingDisplay(events), RecordingInterrupt(events))

    with pytest.raises(KeyboardInterrupt):
        ask("decision")
    assert events[-1] == "display started"


def test_summary_reports_rate_limiting(capsys):
    result = DownloadResult(
        state=DownloadState.COMPLETED,
        novel=Novel(id=1, title="Starfall", author="Ana", source_url="https://x.example.com/b/1", total_chapters=3),
        total=3,
        persisted=3,
        backoffs=2,
        peak_delay=0.2,
        final_delay=0.1,
        throttled=True,
    )

    _print_summary(result, AppConfig())

    output = capsys.readouterr().out
    assert "Rate limiting" in output
    assert "429 backoffs:    2" in output
    assert "Peak delay:      0.20s" in output
    assert "configured 0.05s" in output


def test_summary_omits_rate_limiting_without_backoffs(capsys):
    result = DownloadResult(state=DownloadState.COMPLETED, novel=None)

    _print_summary(result, AppConfig())

    assert "Rate limiting" not in capsys.readouterr().out
