"""llamadeck FastAPI application entry point.

Wires together all providers, services, and routes via dependency injection.
Loads configuration from ``.env`` and the model catalog from
``config/catalog.yaml``, configures structured logging, and exposes the
event bus over a WebSocket.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI, WebSocket

from src.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from src.api.routes import APP_VERSION
from src.api.routes import router as api_router
from src.api.websocket import websocket_events
from src.config.settings import Settings
from src.pipeline.event_bus import EventBus
from src.providers.catalog.yaml_catalog_source import YamlCatalogSource
from src.providers.conversation.memory_store import InMemoryConversationStore
from src.providers.embedding.llama_embedding_provider import LlamaEmbeddingProvider
from src.providers.llm.llama_server_provider import LlamaServerLLMProvider
from src.providers.vector_store.json_dataset_store import JsonDatasetStore
from src.providers.web.web_scraper_provider import WebScraperProvider
from src.services.completion_service import CompletionService
from src.services.download_manager import DownloadManager
from src.services.ingestion.source_processors import CompositeTextExtractor
from src.services.rag_service import RagService
from src.services.server.installer import ServerInstaller
from src.services.server.supervisor import ServerSupervisor
from src.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component wiring
# ---------------------------------------------------------------------------


def _build_all(app_settings: Settings) -> dict[str, Any]:
    """Construct every provider and service instance for the application.

    Returns a flat dict of named components to be stored on ``app.state``.
    All HTTP traffic (server health probes, downloads, completions,
    embeddings, page fetches) shares one connection pool.
    """
    # -- Shared resources --
    http_client = httpx.AsyncClient(timeout=30.0, follow_redirects=True)
    event_bus = EventBus()
    catalog = YamlCatalogSource(app_settings.catalog_path)

    # -- Server lifecycle --
    supervisor = ServerSupervisor(app_settings, event_bus, http_client=http_client)
    installer = ServerInstaller(app_settings, event_bus, http_client=http_client)
    download_manager = DownloadManager(app_settings, catalog, event_bus, http_client=http_client)

    # -- RAG --
    rag_service = RagService(
        settings=app_settings,
        store=JsonDatasetStore(app_settings.rag_dir),
        embedder=LlamaEmbeddingProvider(app_settings, http_client=http_client),
        extractor=CompositeTextExtractor(),
        fetcher=WebScraperProvider(http_client=http_client),
    )

    # -- Chat --
    conversation_store = InMemoryConversationStore()
    completion_service = CompletionService(
        llm=LlamaServerLLMProvider(app_settings, http_client=http_client),
        store=conversation_store,
        event_bus=event_bus,
        settings=app_settings,
        rag=rag_service,
    )

    return {
        "settings": app_settings,
        "http_client": http_client,
        "event_bus": event_bus,
        "catalog": catalog,
        "supervisor": supervisor,
        "installer": installer,
        "download_manager": download_manager,
        "rag_service": rag_service,
        "conversation_store": conversation_store,
        "completion_service": completion_service,
    }


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Initialise all providers and services on startup, clean up on shutdown."""
    components = _build_all(settings)

    for key, value in components.items():
        setattr(application.state, key, value)

    _logger.info(
        "app_startup",
        version=APP_VERSION,
        environment=settings.app_env,
        server_url=settings.get_server_url(),
        base_dir=str(settings.base_path),
    )

    yield

    # -- Shutdown: stop the child process, park downloads, close the pool --
    await components["supervisor"].shutdown()
    await components["download_manager"].aclose()
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()
    _logger.info("app_shutdown", message="llama-server stopped, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app() -> FastAPI:
    """Build and configure the FastAPI application."""
    application = FastAPI(
        title="llamadeck API",
        version=APP_VERSION,
        description=(
            "Install and supervise a local llama-server, download models, "
            "stream chat completions and search your own documents."
        ),
        lifespan=_lifespan,
    )

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- API routes --
    application.include_router(api_router)

    # -- WebSocket --
    @application.websocket("/ws/events")
    async def ws_events(websocket: WebSocket) -> None:
        await websocket_events(websocket)

    return application


app = create_app()

# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )
