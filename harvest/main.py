"""FastAPI surface over the lookup, scrape and ingest operations."""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import get_settings
from .errors import FetchError
from .models import ExtractionResult, ItemReport
from .runtime import Services, open_services

logger = logging.getLogger(__name__)


class LookupRequest(BaseModel):
    title: str = Field(min_length=1)
    translate: bool = False


class ScrapeRequest(BaseModel):
    url: str = Field(min_length=1)
    translate: bool = False


class IngestRequest(BaseModel):
    inputs: list[str] = Field(min_length=1)
    translate: bool = False
    limit: int | None = Field(default=None, ge=1)


@asynccontextmanager
async def lifespan(app: FastAPI):
    exit_stack = AsyncExitStack()
    services = await exit_stack.enter_async_context(open_services(get_settings()))
    app.state.services = services
    try:
        yield
    finally:  # pragma: no cover - teardown path exercised at runtime
        await exit_stack.aclose()


def get_services(app: FastAPI) -> Services:
    services = getattr(app.state, "services", None)
    if services is None:
        raise RuntimeError("Pipeline services not initialised")
    return services


def _report_payload(report: ItemReport) -> dict[str, Any]:
    return {
        "input": report.input,
        "result": report.result,
        "state": report.state.value,
        "url": report.url,
        "title": report.title,
        "item_id": report.item_id,
        "asset": report.asset.status.value if report.asset else None,
        "error": report.error,
    }


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level.upper(), logging.INFO))
    fastapi_app = FastAPI(
        title=settings.app_name,
        description="Manga metadata lookup and catalog ingestion",
        version="0.1.0",
        lifespan=lifespan,
    )
    register_routes(fastapi_app)
    return fastapi_app


def register_routes(fastapi_app: FastAPI) -> None:
    @fastapi_app.post("/lookup")
    async def lookup(payload: LookupRequest) -> dict[str, Any]:
        results = await get_services(fastapi_app).pipeline.lookup(
            payload.title, translate=payload.translate
        )
        return {
            "title": payload.title,
            "results": [result.model_dump(mode="json") for result in results],
        }

    @fastapi_app.post("/scrape")
    async def scrape(payload: ScrapeRequest) -> ExtractionResult:
        try:
            result = await get_services(fastapi_app).pipeline.scrape(
                payload.url, translate=payload.translate
            )
        except FetchError as exc:
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        if not result.has_title():
            raise HTTPException(status_code=422, detail=f"No manga title found at {payload.url}")
        return result

    @fastapi_app.post("/ingest")
    async def ingest(payload: IngestRequest) -> dict[str, Any]:
        stats = await get_services(fastapi_app).pipeline.run(
            payload.inputs, translate=payload.translate, limit=payload.limit
        )
        return {**stats.as_dict(), "items": [_report_payload(report) for report in stats.reports]}


app = create_app()


if __name__ == "__main__":  # pragma: no cover - manual execution
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "harvest.main:app",
        host=settings.server_host,
        port=settings.server_port,
        reload=settings.environment == "development",
    )
