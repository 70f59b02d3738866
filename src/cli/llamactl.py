# =============================================================================
# src/cli/llamactl.py -- llamadeck command line
# =============================================================================
#
# One-shot commands for operating a local llama-server without the web API:
#
#   server status            -- install + runtime state as JSON
#   server install           -- download and extract the llama-server release
#   server start             -- run llama-server in the foreground (Ctrl-C stops)
#   server stop              -- ask a running llamadeck API to stop its server
#   server health            -- probe the configured server URL
#   download begin KEY       -- fetch a model pack, resuming a partial file
#   download status KEY      -- progress of a pack on disk
#   chat PROMPT              -- stream one reply to stdout (no history)
#   rag create|list|delete|ingest-text|ingest-file|ingest-folder|ingest-url|query
#
# The supervised process belongs to the Python process that spawned it, so
# `server start` blocks until interrupted, and `server stop` goes through
# the HTTP API of the llamadeck instance that owns the server.
#
# Usage examples:
#   python -m src.cli server install
#   python -m src.cli server start --preset llama-3.2-3b-instruct
#   python -m src.cli download begin nomic-embed-text
#   python -m src.cli rag create "Team notes"
#   python -m src.cli rag ingest-folder ds_1718000000000 ./notes
#   python -m src.cli rag query ds_1718000000000 "deployment checklist" -k 3
# =============================================================================

"""Command line interface for llamadeck.

Usage::

    python -m src.cli server start --preset llama-3.2-3b-instruct
    python -m src.cli chat "Summarise RFC 9110 in two sentences"
    python -m src.cli rag query ds_1718000000000 "release steps"
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import Any

import httpx
from pydantic import BaseModel

from src.config.settings import Settings
from src.models.download import DownloadStatus
from src.models.events import EventName
from src.utils.errors import LlamaDeckError
from src.utils.logging import configure_logging

_POLL_SECONDS = 0.5


def _emit(data: Any) -> None:
    """Print a model, a list of models or plain data as indented JSON."""
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    elif isinstance(data, list):
        data = [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in data]
    print(json.dumps(data, indent=2))


def _progress(message: str) -> None:
    print(message, file=sys.stderr, flush=True)


# ---------------------------------------------------------------------------
# Component construction (each command builds only what it needs)
# ---------------------------------------------------------------------------


def _event_bus():  # noqa: ANN202
    from src.pipeline.event_bus import EventBus

    return EventBus()


def _supervisor(settings: Settings, event_bus=None):  # noqa: ANN001, ANN202
    from src.services.server.supervisor import ServerSupervisor

    return ServerSupervisor(settings, event_bus or _event_bus())


def _catalog(settings: Settings):  # noqa: ANN202
    from src.providers.catalog.yaml_catalog_source import YamlCatalogSource

    return YamlCatalogSource(settings.catalog_path)


def _rag_service(settings: Settings, http_client: httpx.AsyncClient):  # noqa: ANN202
    from src.providers.embedding.llama_embedding_provider import LlamaEmbeddingProvider
    from src.providers.vector_store.json_dataset_store import JsonDatasetStore
    from src.providers.web.web_scraper_provider import WebScraperProvider
    from src.services.ingestion.source_processors import CompositeTextExtractor
    from src.services.rag_service import RagService

    return RagService(
        settings=settings,
        store=JsonDatasetStore(settings.rag_dir),
        embedder=LlamaEmbeddingProvider(settings, http_client=http_client),
        extractor=CompositeTextExtractor(),
        fetcher=WebScraperProvider(http_client=http_client),
    )


# ---------------------------------------------------------------------------
# server
# ---------------------------------------------------------------------------


async def _server_status(settings: Settings, args: argparse.Namespace) -> int:
    supervisor = _supervisor(settings)
    try:
        _emit(await supervisor.status())
    finally:
        await supervisor.shutdown()
    return 0


async def _server_install(settings: Settings, args: argparse.Namespace) -> int:
    from src.services.server.installer import ServerInstaller

    event_bus = _event_bus()

    def _on_progress(name: str, payload: dict[str, Any]) -> None:
        if payload.get("percentage") is not None:
            _progress(f"downloading llama-server: {payload['percentage']:.1f}%")

    def _on_status(name: str, payload: dict[str, Any]) -> None:
        _progress(f"status: {payload.get('status')}")

    event_bus.register_listener(_on_progress, EventName.SERVER_DOWNLOAD_PROGRESS)
    event_bus.register_listener(_on_status, EventName.SERVER_STATUS)

    installer = ServerInstaller(settings, event_bus)
    try:
        _emit(await installer.install())
    finally:
        await installer.aclose()
    return 0


async def _server_start(settings: Settings, args: argparse.Namespace) -> int:
    """Run llama-server in the foreground, echoing its output, until interrupted."""
    event_bus = _event_bus()
    if args.follow_logs:
        event_bus.register_listener(
            lambda name, payload: _progress(payload.get("line", "")),
            EventName.LLAMA_LOG,
        )
    supervisor = _supervisor(settings, event_bus)

    context_size = args.ctx_size
    if args.model:
        model = supervisor.resolve_model_path(args.model)
    else:
        from src.services.download_manager import DownloadManager

        catalog = _catalog(settings)
        preset = catalog.get_preset(args.preset)
        model = DownloadManager(settings, catalog, event_bus).artifact_path(catalog.get_pack(preset.id))
        context_size = context_size or preset.context_size

    try:
        pid = await supervisor.start(model, context_size)
        _progress(f"llama-server running (pid {pid}) at {settings.get_server_url()}; Ctrl-C to stop")
        while (await supervisor.runtime_state()).running:
            await asyncio.sleep(_POLL_SECONDS)
        _progress("llama-server exited")
        return 1
    except asyncio.CancelledError:
        return 0
    finally:
        await supervisor.shutdown()


async def _server_stop(settings: Settings, args: argparse.Namespace) -> int:
    url = f"{args.api.rstrip('/')}/api/v1/server/stop"
    async with httpx.AsyncClient(timeout=settings.server_stop_timeout_seconds + 5) as client:
        try:
            response = await client.post(url)
        except httpx.HTTPError as exc:
            _progress(f"cannot reach llamadeck API at {args.api}: {exc}")
            return 1
    if not response.is_success:
        _progress(f"stop failed: HTTP {response.status_code} {response.text}")
        return 1
    _emit(response.json())
    return 0


async def _server_health(settings: Settings, args: argparse.Namespace) -> int:
    supervisor = _supervisor(settings)
    try:
        healthy = await supervisor.health_check()
    finally:
        await supervisor.shutdown()
    _emit({"url": settings.get_server_url(), "healthy": healthy})
    return 0 if healthy else 1


# ---------------------------------------------------------------------------
# download
# ---------------------------------------------------------------------------


async def _download_begin(settings: Settings, args: argparse.Namespace) -> int:
    from src.services.download_manager import DownloadManager

    event_bus = _event_bus()
    event_bus.register_listener(
        lambda name, payload: _progress(
            f"{payload['key']}: {payload['downloaded']} / {payload.get('total') or '?'} bytes"
        ),
        EventName.DOWNLOAD_PROGRESS,
    )
    manager = DownloadManager(settings, _catalog(settings), event_bus)
    try:
        await manager.begin(args.key)
        state = manager.status(args.key)
        while state.status is DownloadStatus.RUNNING:
            await asyncio.sleep(_POLL_SECONDS)
            state = manager.status(args.key)
    except asyncio.CancelledError:
        await manager.cancel(args.key)
        state = manager.status(args.key)
    finally:
        await manager.aclose()

    _emit(state)
    return 0 if state.status is DownloadStatus.DONE else 1


async def _download_status(settings: Settings, args: argparse.Namespace) -> int:
    from src.services.download_manager import DownloadManager

    manager = DownloadManager(settings, _catalog(settings), _event_bus())
    try:
        _emit(manager.disk_state(args.key))
    finally:
        await manager.aclose()
    return 0


# ---------------------------------------------------------------------------
# chat
# ---------------------------------------------------------------------------


async def _chat(settings: Settings, args: argparse.Namespace) -> int:
    from src.providers.conversation.memory_store import InMemoryConversationStore
    from src.providers.llm.llama_server_provider import LlamaServerLLMProvider
    from src.services.completion_service import CompletionService

    catalog = _catalog(settings)
    preset = catalog.get_preset(args.preset) if args.preset else catalog.list_presets()[0]

    event_bus = _event_bus()
    event_bus.register_listener(
        lambda name, payload: print(payload["content"], end="", flush=True),
        EventName.GENERATION_CHUNK,
    )
    llm = LlamaServerLLMProvider(settings)
    service = CompletionService(llm, InMemoryConversationStore(), event_bus, settings)
    try:
        result = await service.generate_once(args.prompt, preset)
    finally:
        await llm.aclose()
    print()
    if result.skipped_records:
        _progress(f"({result.skipped_records} malformed stream records skipped)")
    return 0


# ---------------------------------------------------------------------------
# rag
# ---------------------------------------------------------------------------


async def _rag(settings: Settings, args: argparse.Namespace) -> int:
    async with httpx.AsyncClient(timeout=settings.completion_timeout_seconds, follow_redirects=True) as client:
        rag = _rag_service(settings, client)
        command = args.rag_command

        if command == "create":
            _emit(await rag.create_dataset(args.name))
        elif command == "list":
            _emit(await rag.list_datasets())
        elif command == "delete":
            await rag.delete_dataset(args.dataset_id)
            _emit({"deleted": args.dataset_id})
        elif command == "ingest-text":
            text = args.text if args.text is not None else sys.stdin.read()
            _emit(await rag.ingest_text(args.dataset_id, text))
        elif command == "ingest-file":
            _emit(await rag.ingest_file(args.dataset_id, Path(args.path)))
        elif command == "ingest-folder":
            _emit(await rag.ingest_folder(args.dataset_id, Path(args.path)))
        elif command == "ingest-url":
            if args.scrape:
                _emit(await rag.scrape_url(args.dataset_id, args.url, args.depth))
            else:
                _emit(await rag.ingest_url(args.dataset_id, args.url))
        elif command == "query":
            _emit(await rag.query(args.dataset_id, args.query, args.k))
    return 0


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


_HANDLERS = {
    ("server", "status"): _server_status,
    ("server", "install"): _server_install,
    ("server", "start"): _server_start,
    ("server", "stop"): _server_stop,
    ("server", "health"): _server_health,
    ("download", "begin"): _download_begin,
    ("download", "status"): _download_status,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m src.cli",
        description="Manage a local llama-server, its models and your RAG datasets.",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors (stderr).",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    # -- server --
    server = commands.add_parser("server", help="Install and run llama-server.")
    server_commands = server.add_subparsers(dest="server_command", required=True)
    server_commands.add_parser("status", help="Show install and runtime state.")
    server_commands.add_parser("install", help="Download and extract the server release.")
    start = server_commands.add_parser("start", help="Run llama-server in the foreground.")
    model_source = start.add_mutually_exclusive_group(required=True)
    model_source.add_argument("--model", help="Path to a GGUF model file.")
    model_source.add_argument("--preset", help="Preset id whose model pack to load.")
    start.add_argument("--ctx-size", type=int, default=None, help="Context size in tokens.")
    start.add_argument(
        "--no-logs",
        dest="follow_logs",
        action="store_false",
        help="Do not echo server output to stderr.",
    )
    stop = server_commands.add_parser("stop", help="Stop the server owned by a running API.")
    stop.add_argument("--api", default="http://127.0.0.1:8000", help="llamadeck API base URL.")
    server_commands.add_parser("health", help="Probe the configured server URL.")

    # -- download --
    download = commands.add_parser("download", help="Fetch model packs.")
    download_commands = download.add_subparsers(dest="download_command", required=True)
    begin = download_commands.add_parser("begin", help="Download (or resume) a pack.")
    begin.add_argument("key", help="Pack id from the catalog.")
    status = download_commands.add_parser("status", help="Show a pack's files on disk.")
    status.add_argument("key", help="Pack id from the catalog.")

    # -- chat --
    chat = commands.add_parser("chat", help="Stream one reply from the running server.")
    chat.add_argument("prompt", help="The user message.")
    chat.add_argument("--preset", default=None, help="Preset id (default: first in catalog).")

    # -- rag --
    rag = commands.add_parser("rag", help="Manage and query RAG datasets.")
    rag_commands = rag.add_subparsers(dest="rag_command", required=True)
    create = rag_commands.add_parser("create", help="Create an empty dataset.")
    create.add_argument("name")
    rag_commands.add_parser("list", help="List datasets.")
    delete = rag_commands.add_parser("delete", help="Delete a dataset and its files.")
    delete.add_argument("dataset_id")
    ingest_text = rag_commands.add_parser("ingest-text", help="Ingest text (argument or stdin).")
    ingest_text.add_argument("dataset_id")
    ingest_text.add_argument("--text", default=None, help="Text to ingest; stdin when omitted.")
    ingest_file = rag_commands.add_parser("ingest-file", help="Ingest one file.")
    ingest_file.add_argument("dataset_id")
    ingest_file.add_argument("path")
    ingest_folder = rag_commands.add_parser("ingest-folder", help="Ingest a folder recursively.")
    ingest_folder.add_argument("dataset_id")
    ingest_folder.add_argument("path")
    ingest_url = rag_commands.add_parser("ingest-url", help="Ingest a web page or crawl a site.")
    ingest_url.add_argument("dataset_id")
    ingest_url.add_argument("url")
    ingest_url.add_argument("--scrape", action="store_true", help="Follow same-host links.")
    ingest_url.add_argument("--depth", type=int, default=None, help="Maximum link depth when scraping.")
    query = rag_commands.add_parser("query", help="Top-k similarity search.")
    query.add_argument("dataset_id")
    query.add_argument("query")
    query.add_argument("-k", type=int, default=None, help="Number of hits.")

    return parser


def _resolve_handler(args: argparse.Namespace):  # noqa: ANN202
    if args.command == "chat":
        return _chat
    if args.command == "rag":
        return _rag
    sub = args.server_command if args.command == "server" else args.download_command
    return _HANDLERS[(args.command, sub)]


async def _run(args: argparse.Namespace) -> int:
    settings = Settings()
    handler = _resolve_handler(args)
    try:
        return await handler(settings, args)
    except LlamaDeckError as exc:
        _progress(f"error: {exc}")
        return 1


def main(argv: list[str] | None = None) -> None:
    """Parse arguments, configure logging and run the chosen command."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(log_level="WARNING" if args.quiet else Settings().log_level)

    try:
        exit_code = asyncio.run(_run(args))
    except KeyboardInterrupt:
        exit_code = 130
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
