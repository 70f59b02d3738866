"""FastAPI API routes for llamadeck.

REST endpoints for the supervised inference server, the model catalog and
downloads, chat generation and the RAG datasets.  Service dependencies
are resolved from ``app.state`` via FastAPI's ``Depends`` using the
``Annotated`` pattern.

# ─── API ROUTE MAP ────────────────────────────────────────────────────
#
# Endpoint                                   Method  Description
# ─────────────────────────────────────────────────────────────────────
# /api/v1/health                             GET     App health + server liveness
# /api/v1/server/status                      GET     Install + runtime state
# /api/v1/server/install                     POST    Download and extract server (background)
# /api/v1/server/start                       POST    Spawn llama-server
# /api/v1/server/stop                        POST    Terminate llama-server
# /api/v1/server/logs                        GET     Captured stdout/stderr lines
# /api/v1/server/logs                        DELETE  Clear captured lines
# /api/v1/server/health                      GET     Probe the running server
# /api/v1/server/diagnostics                 GET     Paths and PATH head
# /api/v1/presets                            GET     Chat presets
# /api/v1/packs                              GET     Downloadable model packs
# /api/v1/packs/installed                    GET     Keys with a finished artifact
# /api/v1/downloads/{key}                    POST    Begin / resume a download
# /api/v1/downloads/{key}                    GET     Download snapshot
# /api/v1/downloads/{key}                    DELETE  Cancel a download
# /api/v1/conversations                      POST    Create a conversation
# /api/v1/conversations/{cid}/messages       GET     Conversation history
# /api/v1/conversations/{cid}/generate       POST    Stream one reply
# /api/v1/datasets                           GET     List datasets
# /api/v1/datasets                           POST    Create a dataset
# /api/v1/datasets/{did}                     PATCH   Rename
# /api/v1/datasets/{did}                     DELETE  Delete with contents
# /api/v1/datasets/{did}/chunks              GET     Stored chunk texts
# /api/v1/datasets/{did}/ingest/{source}     POST    text | file | folder | url | scrape
# /api/v1/datasets/{did}/query               POST    Top-k similarity search
#
# DEPENDENCY INJECTION PATTERN:
# Each route function declares its dependencies as type-annotated params.
# FastAPI resolves these via Depends() which calls helper functions that
# read from app.state (populated at startup in main.py's _build_all).
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, Request

from src.api.schemas import (
    BeginDownloadResponse,
    ChunksResponse,
    CreateConversationRequest,
    CreateDatasetRequest,
    ErrorResponse,
    GenerateRequest,
    GenerateResponse,
    HealthResponse,
    IngestPathRequest,
    IngestTextRequest,
    IngestUrlRequest,
    InstalledPacksResponse,
    MessagesResponse,
    QueryRequest,
    QueryResponse,
    RenameDatasetRequest,
    ScrapeUrlRequest,
    ServerHealthResponse,
    ServerLogsResponse,
    StartServerRequest,
    StartServerResponse,
)
from src.interfaces.catalog_source import ICatalogSource
from src.models.catalog import PackSource, Preset
from src.models.chat import Conversation
from src.models.download import DownloadState
from src.models.events import EventName
from src.models.rag import DatasetInfo, IngestResult
from src.models.server import ServerDiagnostics, ServerStatus
from src.providers.conversation.memory_store import InMemoryConversationStore
from src.services.completion_service import CompletionService
from src.services.download_manager import DownloadManager
from src.services.rag_service import RagService
from src.services.server.installer import ServerInstaller
from src.services.server.supervisor import ServerSupervisor
from src.utils.errors import LlamaDeckError
from src.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

APP_VERSION = "0.1.0"

# All routes in this file are prefixed with /api/v1.
router = APIRouter(prefix="/api/v1")

_NOT_FOUND = {404: {"model": ErrorResponse}}
_CONFLICT = {409: {"model": ErrorResponse}}
_BAD_GATEWAY = {502: {"model": ErrorResponse}}


# ---------------------------------------------------------------------------
# Dependency injection helpers -- resolve singletons from app.state
# ---------------------------------------------------------------------------


def _get_supervisor(request: Request) -> ServerSupervisor:
    return request.app.state.supervisor


def _get_installer(request: Request) -> ServerInstaller:
    return request.app.state.installer


def _get_catalog(request: Request) -> ICatalogSource:
    return request.app.state.catalog


def _get_downloads(request: Request) -> DownloadManager:
    return request.app.state.download_manager


def _get_conversations(request: Request) -> InMemoryConversationStore:
    return request.app.state.conversation_store


def _get_completion(request: Request) -> CompletionService:
    return request.app.state.completion_service


def _get_rag(request: Request) -> RagService:
    return request.app.state.rag_service


# Annotated dependency types (PEP 593 Annotated[T, Depends(fn)]).
SupervisorDep = Annotated[ServerSupervisor, Depends(_get_supervisor)]
InstallerDep = Annotated[ServerInstaller, Depends(_get_installer)]
CatalogDep = Annotated[ICatalogSource, Depends(_get_catalog)]
DownloadsDep = Annotated[DownloadManager, Depends(_get_downloads)]
ConversationsDep = Annotated[InMemoryConversationStore, Depends(_get_conversations)]
CompletionDep = Annotated[CompletionService, Depends(_get_completion)]
RagDep = Annotated[RagService, Depends(_get_rag)]


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(supervisor: SupervisorDep) -> HealthResponse:
    """The app itself is healthy if it answers; report the server's liveness alongside."""
    runtime = await supervisor.runtime_state()
    return HealthResponse(status="healthy", version=APP_VERSION, llama_server=runtime.running)


# ---------------------------------------------------------------------------
# Server lifecycle
# ---------------------------------------------------------------------------


async def _run_install(installer: ServerInstaller) -> None:
    """Background install; failures are already published as status ``error``."""
    try:
        await installer.install()
    except LlamaDeckError as exc:
        _logger.error("background_install_failed", error=str(exc))


@router.get("/server/status", response_model=ServerStatus, summary="Server install and runtime state")
async def server_status(supervisor: SupervisorDep) -> ServerStatus:
    return await supervisor.status()


@router.post("/server/install", status_code=202, summary="Download and install llama-server")
async def install_server(
    background_tasks: BackgroundTasks,
    installer: InstallerDep,
    request: Request,
) -> dict[str, str]:
    """Schedule the installation; progress arrives as ``llama-download-progress`` events."""
    background_tasks.add_task(_run_install, installer)
    last = request.app.state.event_bus.last(EventName.SERVER_STATUS) or {}
    return {"status": "scheduled", "previous_status": str(last.get("status", ""))}


@router.post(
    "/server/start",
    response_model=StartServerResponse,
    responses={**_NOT_FOUND, **_CONFLICT},
    summary="Start llama-server with a model",
)
async def start_server(
    body: StartServerRequest,
    supervisor: SupervisorDep,
    catalog: CatalogDep,
    downloads: DownloadsDep,
) -> StartServerResponse:
    """Resolve the model from an explicit path or a preset's pack and spawn the server."""
    context_size = body.context_size
    if body.model_path:
        model = supervisor.resolve_model_path(body.model_path)
    else:
        preset = catalog.get_preset(body.preset_id)
        model = downloads.artifact_path(catalog.get_pack(preset.id))
        context_size = context_size or preset.context_size

    pid = await supervisor.start(model, context_size)
    return StartServerResponse(pid=pid, model_path=str(model))


@router.post("/server/stop", response_model=ServerStatus, summary="Stop llama-server")
async def stop_server(supervisor: SupervisorDep) -> ServerStatus:
    await supervisor.stop()
    return await supervisor.status()


@router.get("/server/logs", response_model=ServerLogsResponse, summary="Captured server output")
async def server_logs(supervisor: SupervisorDep) -> ServerLogsResponse:
    return ServerLogsResponse(lines=supervisor.logs(), capacity=supervisor.log_buffer.capacity)


@router.delete("/server/logs", status_code=204, summary="Clear captured server output")
async def clear_server_logs(supervisor: SupervisorDep) -> None:
    supervisor.clear_logs()


@router.get("/server/health", response_model=ServerHealthResponse, summary="Probe llama-server")
async def server_health(supervisor: SupervisorDep) -> ServerHealthResponse:
    return ServerHealthResponse(healthy=await supervisor.health_check())


@router.get("/server/diagnostics", response_model=ServerDiagnostics, summary="Troubleshooting snapshot")
async def server_diagnostics(supervisor: SupervisorDep) -> ServerDiagnostics:
    return await supervisor.diagnostics()


# ---------------------------------------------------------------------------
# Catalog and downloads
# ---------------------------------------------------------------------------


@router.get("/presets", response_model=list[Preset], summary="List chat presets")
async def list_presets(catalog: CatalogDep) -> list[Preset]:
    return catalog.list_presets()


@router.get("/packs", response_model=list[PackSource], summary="List model packs")
async def list_packs(catalog: CatalogDep) -> list[PackSource]:
    return catalog.list_packs()


@router.get("/packs/installed", response_model=InstalledPacksResponse, summary="Installed packs")
async def installed_packs(downloads: DownloadsDep) -> InstalledPacksResponse:
    return InstalledPacksResponse(installed=downloads.list_installed())


@router.post(
    "/downloads/{key}",
    response_model=BeginDownloadResponse,
    responses=_NOT_FOUND,
    summary="Begin or resume a model download",
)
async def begin_download(key: str, downloads: DownloadsDep) -> BeginDownloadResponse:
    result = await downloads.begin(key)
    return BeginDownloadResponse(key=key, result=result, state=downloads.status(key))


@router.get(
    "/downloads/{key}",
    response_model=DownloadState,
    responses=_NOT_FOUND,
    summary="Download progress",
)
async def download_status(key: str, downloads: DownloadsDep) -> DownloadState:
    return downloads.status(key)


@router.delete(
    "/downloads/{key}",
    response_model=DownloadState,
    responses=_NOT_FOUND,
    summary="Cancel a download",
)
async def cancel_download(key: str, downloads: DownloadsDep) -> DownloadState:
    await downloads.cancel(key)
    return downloads.status(key)


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


@router.post(
    "/conversations",
    response_model=Conversation,
    status_code=201,
    responses=_NOT_FOUND,
    summary="Create a conversation from a preset",
)
async def create_conversation(
    body: CreateConversationRequest,
    catalog: CatalogDep,
    conversations: ConversationsDep,
) -> Conversation:
    preset = catalog.get_preset(body.preset_id)
    return conversations.create_conversation(preset, dataset_ids=body.dataset_ids)


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=MessagesResponse,
    responses=_NOT_FOUND,
    summary="Conversation history",
)
async def list_messages(conversation_id: str, conversations: ConversationsDep) -> MessagesResponse:
    messages = await conversations.list_messages(conversation_id)
    return MessagesResponse(conversation_id=conversation_id, messages=messages)


@router.post(
    "/conversations/{conversation_id}/generate",
    response_model=GenerateResponse,
    responses={**_NOT_FOUND, **_BAD_GATEWAY},
    summary="Generate a reply",
)
async def generate(
    conversation_id: str,
    body: GenerateRequest,
    completion: CompletionDep,
) -> GenerateResponse:
    """Run one turn; fragments are pushed live as ``generation-chunk`` events."""
    result = await completion.generate(conversation_id, body.message)
    return GenerateResponse(
        conversation_id=conversation_id,
        text=result.text,
        finish_cause=result.finish_cause,
        finish_reason=result.finish_reason,
        skipped_records=result.skipped_records,
    )


# ---------------------------------------------------------------------------
# RAG datasets
# ---------------------------------------------------------------------------


@router.get("/datasets", response_model=list[DatasetInfo], summary="List datasets")
async def list_datasets(rag: RagDep) -> list[DatasetInfo]:
    return await rag.list_datasets()


@router.post("/datasets", response_model=DatasetInfo, status_code=201, summary="Create a dataset")
async def create_dataset(body: CreateDatasetRequest, rag: RagDep) -> DatasetInfo:
    return await rag.create_dataset(body.name)


@router.patch(
    "/datasets/{dataset_id}",
    response_model=DatasetInfo,
    responses=_NOT_FOUND,
    summary="Rename a dataset",
)
async def rename_dataset(dataset_id: str, body: RenameDatasetRequest, rag: RagDep) -> DatasetInfo:
    return await rag.rename_dataset(dataset_id, body.name)


@router.delete(
    "/datasets/{dataset_id}",
    status_code=204,
    responses=_NOT_FOUND,
    summary="Delete a dataset and its contents",
)
async def delete_dataset(dataset_id: str, rag: RagDep) -> None:
    await rag.delete_dataset(dataset_id)


@router.get(
    "/datasets/{dataset_id}/chunks",
    response_model=ChunksResponse,
    responses=_NOT_FOUND,
    summary="Stored chunk texts",
)
async def list_chunks(dataset_id: str, rag: RagDep) -> ChunksResponse:
    return ChunksResponse(dataset_id=dataset_id, chunks=await rag.list_chunks(dataset_id))


@router.post(
    "/datasets/{dataset_id}/ingest/text",
    response_model=IngestResult,
    responses={**_NOT_FOUND, **_BAD_GATEWAY},
    summary="Ingest pasted text",
)
async def ingest_text(dataset_id: str, body: IngestTextRequest, rag: RagDep) -> IngestResult:
    return await rag.ingest_text(dataset_id, body.text)


@router.post(
    "/datasets/{dataset_id}/ingest/file",
    response_model=IngestResult,
    responses={**_NOT_FOUND, **_BAD_GATEWAY},
    summary="Ingest one server-side file",
)
async def ingest_file(dataset_id: str, body: IngestPathRequest, rag: RagDep) -> IngestResult:
    return await rag.ingest_file(dataset_id, body.path)


@router.post(
    "/datasets/{dataset_id}/ingest/folder",
    response_model=IngestResult,
    responses={**_NOT_FOUND, **_BAD_GATEWAY},
    summary="Ingest every supported file in a server-side folder",
)
async def ingest_folder(dataset_id: str, body: IngestPathRequest, rag: RagDep) -> IngestResult:
    return await rag.ingest_folder(dataset_id, body.path)


@router.post(
    "/datasets/{dataset_id}/ingest/url",
    response_model=IngestResult,
    responses={**_NOT_FOUND, **_BAD_GATEWAY},
    summary="Ingest one web page",
)
async def ingest_url(dataset_id: str, body: IngestUrlRequest, rag: RagDep) -> IngestResult:
    return await rag.ingest_url(dataset_id, body.url)


@router.post(
    "/datasets/{dataset_id}/ingest/scrape",
    response_model=IngestResult,
    responses={**_NOT_FOUND, **_BAD_GATEWAY},
    summary="Crawl a site (same host) and ingest every page",
)
async def scrape_url(dataset_id: str, body: ScrapeUrlRequest, rag: RagDep) -> IngestResult:
    return await rag.scrape_url(dataset_id, body.url, body.max_depth)


@router.post(
    "/datasets/{dataset_id}/query",
    response_model=QueryResponse,
    responses={**_NOT_FOUND, **_BAD_GATEWAY},
    summary="Top-k similarity search",
)
async def query_dataset(dataset_id: str, body: QueryRequest, rag: RagDep) -> QueryResponse:
    hits = await rag.query(dataset_id, body.query, body.k)
    return QueryResponse(dataset_id=dataset_id, hits=hits)
