"""FastAPI application: garden pages, JSON API and the in-process nursery."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI
from fastapi.templating import Jinja2Templates

from tane import __version__
from tane.config import Settings
from tane.garden.gardener import Gardener
from tane.garden.nursery import Nursery
from tane.garden.repository import GardenRepository
from tane.garden.services import GardenService, describe_failure
from tane.provider import build_research_provider
from tane.provider.base import ResearchProvider, ToolDefinition
from tane.tools import WebSearchTool
from tane.web import routes
from tane.web.markdown import render_markdown

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


def create_app(
    settings: Settings | None = None,
    *,
    provider: ResearchProvider | None = None,
    tools: list[ToolDefinition] | None = None,
) -> FastAPI:
    """Build the app.

    The repository is migrated eagerly so routes work before startup
    completes. The nursery is started by the lifespan when
    ``settings.nursery.enabled`` and stopped on shutdown.
    """

    settings = settings or Settings.from_env()
    repository = GardenRepository(
        db_path=settings.db_path,
        sqlite_busy_timeout_ms=settings.sqlite_busy_timeout_ms,
    )
    repository.init_schema()
    owns_provider = provider is None
    provider = provider or build_research_provider(settings.research)

    search: WebSearchTool | None = None
    if tools is None:
        search = WebSearchTool(
            base_url=settings.search.searxng_url,
            timeout_seconds=settings.search.timeout_seconds,
            max_results=settings.search.max_results,
        )
        tools = [search.as_tool()]

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        nursery: Nursery | None = None
        if settings.nursery.enabled:
            nursery = Nursery(
                repository=repository,
                gardener=Gardener(
                    repository=repository,
                    provider=provider,
                    tools=tools,
                    default_model=settings.research.default_model,
                    fallback_model_ids=settings.research.fallback_model_ids,
                ),
                poll_interval_seconds=settings.nursery.poll_interval_seconds,
                max_concurrent_growers=settings.nursery.max_concurrent_growers,
                stale_processing_seconds=settings.nursery.stale_processing_seconds,
                shutdown_grace_seconds=settings.nursery.shutdown_grace_seconds,
            )
            nursery.start()
            logger.info("Tane nursery is open")
        else:
            logger.info("Nursery disabled; seeds stay pending until a worker picks them up")
        app.state.nursery = nursery
        try:
            yield
        finally:
            if nursery is not None:
                nursery.stop()
            if search is not None:
                search.close()
            if owns_provider:
                provider.close()
            repository.close()

    app = FastAPI(title="Tane", version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.repository = repository
    app.state.service = GardenService(repository=repository, provider=provider)
    app.state.nursery = None

    templates = Jinja2Templates(directory=str(TEMPLATES_DIR))
    templates.env.filters["markdown"] = render_markdown
    templates.env.filters["failure_message"] = describe_failure
    app.state.templates = templates

    app.include_router(routes.pages_router)
    app.include_router(routes.api_router, prefix="/api", tags=["api"])
    return app
