"""Command line batch driver for the acquisition pipeline."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import List, Optional

import typer

from .config import Settings, get_settings
from .database import Database
from .runtime import open_services
from .services.discovery import read_links_file, write_links_file
from .utils import host_of

logger = logging.getLogger(__name__)

TEST_MODE_PAGES = 3
DEFAULT_LINKS_FILE = Path("data/manga-links.md")

app = typer.Typer(help="Collect, look up and ingest manga metadata into the catalog.")


def _configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.callback()
def main() -> None:
    """Manga metadata harvester."""

    _configure_logging(get_settings())


@app.command()
def collect(
    test: bool = typer.Option(False, "--test", help=f"Only sweep {TEST_MODE_PAGES} pages."),
    max_pages: Optional[int] = typer.Option(None, "--max-pages", min=1, help="Page limit."),
    output: Path = typer.Option(DEFAULT_LINKS_FILE, "--output", help="Links file to write."),
) -> None:
    """Sweep the listing site and save every work link found."""

    settings = get_settings()
    pages = TEST_MODE_PAGES if test else max_pages

    async def _collect() -> list[str]:
        async with open_services(settings) as services:
            return await services.collector.collect(pages)

    links = asyncio.run(_collect())
    write_links_file(output, links, str(settings.listing_url))
    typer.echo(f"Collected {len(links)} links into {output}")


@app.command()
def ingest(
    inputs: Optional[List[str]] = typer.Argument(None, help="Work URLs or titles."),
    links_file: Optional[Path] = typer.Option(
        None, "--links-file", exists=True, dir_okay=False, help="Markdown links file."
    ),
    test: bool = typer.Option(False, "--test", help="Smoke test on the first few entries."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Process at most N entries."),
    translate: bool = typer.Option(
        False, "--translate/--no-translate", help="Translate text fields before storing."
    ),
) -> None:
    """Run URLs and titles through the pipeline and print a summary."""

    settings = get_settings()
    entries = list(inputs or [])
    if links_file is not None:
        entries.extend(read_links_file(links_file, host_of(str(settings.listing_url))))
    if not entries:
        typer.echo("Nothing to ingest: pass inputs or --links-file", err=True)
        raise typer.Exit(code=1)
    if test:
        limit = settings.smoke_test_limit
        typer.echo(f"Smoke test: processing {limit} entries")

    async def _ingest():
        async with open_services(settings) as services:
            return await services.pipeline.run(entries, translate=translate, limit=limit)

    stats = asyncio.run(_ingest())
    typer.echo("Summary")
    for line in stats.summary_lines():
        typer.echo(f"  {line}")


@app.command()
def lookup(
    title: str = typer.Argument(..., help="Title to search for."),
    translate: bool = typer.Option(False, "--translate/--no-translate"),
) -> None:
    """Print what the sources say about TITLE without storing anything."""

    settings = get_settings()

    async def _lookup():
        async with open_services(settings) as services:
            return await services.pipeline.lookup(title, translate=translate)

    results = asyncio.run(_lookup())
    payload = [result.model_dump(mode="json") for result in results]
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))


@app.command("init-db")
def init_db() -> None:
    """Create the catalog tables."""

    settings = get_settings()

    async def _init() -> None:
        database = Database(settings.database_url)
        try:
            await database.create_all()
        finally:
            await database.dispose()

    asyncio.run(_init())
    typer.echo(f"Database ready at {settings.database_url}")


@app.command()
def serve(
    reload: Optional[bool] = typer.Option(None, "--reload/--no-reload"),
) -> None:
    """Serve the HTTP API with uvicorn."""

    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "harvest.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development" if reload is None else reload,
    )
