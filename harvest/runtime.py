"""Wiring of HTTP clients, database and services shared by the CLI and API."""

from __future__ import annotations

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

import httpx

from .config import Settings
from .database import Database
from .services.assets import AssetAcquirer, AssetStorage
from .services.catalog_store import CatalogStore
from .services.discovery import LinkCollector
from .services.extractor import MetadataExtractor
from .services.fetcher import PageFetcher, build_http_client
from .services.openrouter import OpenRouterClient
from .services.pipeline import HarvestPipeline, Sleep
from .services.profiles import default_profiles
from .services.reconciler import CatalogReconciler
from .services.resolver import SourceResolver
from .services.translator import Translator


@dataclass(slots=True)
class Services:
    settings: Settings
    database: Database
    store: CatalogStore
    pipeline: HarvestPipeline
    collector: LinkCollector


@asynccontextmanager
async def open_services(settings: Settings, *, sleep: Sleep = asyncio.sleep) -> AsyncIterator[Services]:
    """Build every pipeline component and tear the clients down afterwards."""

    async with AsyncExitStack() as exit_stack:
        scrape_client = await exit_stack.enter_async_context(
            build_http_client(settings.fetch_timeout_seconds)
        )
        openrouter_client = await exit_stack.enter_async_context(
            httpx.AsyncClient(
                base_url=str(settings.openrouter_api_url),
                timeout=httpx.Timeout(60.0, connect=10.0),
            )
        )
        database = Database(settings.database_url)
        exit_stack.push_async_callback(database.dispose)
        await database.create_all()

        fetcher = PageFetcher(scrape_client, timeout=settings.fetch_timeout_seconds)
        openrouter = OpenRouterClient(settings, openrouter_client)
        store = CatalogStore(database.session_factory)
        extractor = MetadataExtractor(
            fetcher, default_profiles(openrouter, excerpt_chars=settings.generic_excerpt_chars)
        )
        pipeline = HarvestPipeline(
            SourceResolver(fetcher, settings),
            extractor,
            Translator(openrouter, settings.translate_language),
            CatalogReconciler(store),
            AssetAcquirer(
                fetcher,
                AssetStorage(settings.images_path),
                store,
                timeout=settings.asset_timeout_seconds,
            ),
            settings,
            sleep=sleep,
        )
        yield Services(
            settings=settings,
            database=database,
            store=store,
            pipeline=pipeline,
            collector=LinkCollector(fetcher, settings, sleep=sleep),
        )
