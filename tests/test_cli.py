"""Command line tests with the service graph replaced by stubs."""

from __future__ import annotations

from contextlib import asynccontextmanager
from types import SimpleNamespace

import pytest
from typer.testing import CliRunner

from harvest import cli
from harvest.config import get_settings
from harvest.models import BatchStats, ExtractionResult, ItemReport, ItemState

runner = CliRunner()


class _StubPipeline:
    def __init__(self) -> None:
        self.runs: list[tuple[list[str], bool, int | None]] = []

    async def run(self, entries, *, translate: bool = False, limit: int | None = None) -> BatchStats:
        selected = list(entries)[:limit] if limit else list(entries)
        self.runs.append((selected, translate, limit))
        stats = BatchStats(total=len(selected))
        for entry in selected:
            stats.record(ItemReport(input=entry, state=ItemState.DONE, result="created"))
        return stats

    async def lookup(self, title: str, *, translate: bool = False) -> list[ExtractionResult]:
        return [ExtractionResult(source_url="https://anilist.co/manga/1/", title=title)]


class _StubCollector:
    def __init__(self) -> None:
        self.page_limits: list[int | None] = []

    async def collect(self, max_pages: int | None = None) -> list[str]:
        self.page_limits.append(max_pages)
        return ["https://lermangas.me/manga/a/", "https://lermangas.me/manga/b/"]


@pytest.fixture
def stubs(monkeypatch):
    monkeypatch.setenv("LISTING_URL", "https://lermangas.me/")
    get_settings.cache_clear()
    services = SimpleNamespace(pipeline=_StubPipeline(), collector=_StubCollector())

    @asynccontextmanager
    async def fake_open_services(settings, **_):
        yield services

    monkeypatch.setattr(cli, "open_services", fake_open_services)
    yield services
    get_settings.cache_clear()


def test_ingest_without_inputs_exits_with_error(stubs) -> None:
    result = runner.invoke(cli.app, ["ingest"])

    assert result.exit_code == 1
    assert stubs.pipeline.runs == []


def test_ingest_prints_summary(stubs) -> None:
    result = runner.invoke(cli.app, ["ingest", "Alpha", "https://anilist.co/manga/1/", "--translate"])

    assert result.exit_code == 0, result.output
    assert "Summary" in result.output
    assert "Created: 2" in result.output
    assert stubs.pipeline.runs == [(["Alpha", "https://anilist.co/manga/1/"], True, None)]


def test_collect_then_ingest_links_file_in_test_mode(stubs, monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("SMOKE_TEST_LIMIT", "1")
    get_settings.cache_clear()
    links_file = tmp_path / "links.md"

    collected = runner.invoke(cli.app, ["collect", "--test", "--output", str(links_file)])
    ingested = runner.invoke(cli.app, ["ingest", "--links-file", str(links_file), "--test"])

    assert collected.exit_code == 0, collected.output
    assert stubs.collector.page_limits == [cli.TEST_MODE_PAGES]
    assert ingested.exit_code == 0, ingested.output
    assert stubs.pipeline.runs == [(["https://lermangas.me/manga/a/"], False, 1)]


def test_lookup_prints_json(stubs) -> None:
    result = runner.invoke(cli.app, ["lookup", "Vagabond"])

    assert result.exit_code == 0, result.output
    assert '"title": "Vagabond"' in result.output


def test_init_db_creates_database(monkeypatch, tmp_path) -> None:
    database_path = tmp_path / "nested" / "catalog.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite+aiosqlite:///{database_path}")
    get_settings.cache_clear()
    try:
        result = runner.invoke(cli.app, ["init-db"])
    finally:
        get_settings.cache_clear()

    assert result.exit_code == 0, result.output
    assert database_path.exists()
