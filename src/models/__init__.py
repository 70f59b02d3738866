"""llamadeck domain models -- re-exports all public model classes.

The models are organized by subsystem:
    - server.py    -- inference-server install/runtime state and diagnostics
    - download.py  -- artifact transfer snapshots
    - catalog.py   -- chat presets and downloadable model packs
    - chat.py      -- conversations, completion requests, streamed deltas
    - rag.py       -- datasets, chunks, embeddings, query hits
    - events.py    -- event-bus names and server status values
"""

from __future__ import annotations

from src.models.catalog import PackSource, Preset
from src.models.chat import (
    ChatCompletionRequest,
    ChatMessage,
    ChatRole,
    CompletionResult,
    Conversation,
    FinishCause,
    StreamChoice,
    StreamChunk,
    StreamDelta,
)
from src.models.download import BeginResult, DownloadState, DownloadStatus
from src.models.events import EventName, ServerStatusEvent
from src.models.rag import Chunk, DatasetInfo, EmbeddingRecord, IngestResult, RagHit
from src.models.server import (
    ServerDiagnostics,
    ServerInstallState,
    ServerPhase,
    ServerRuntimeState,
    ServerStatus,
)

__all__ = [
    "BeginResult",
    "ChatCompletionRequest",
    "ChatMessage",
    "ChatRole",
    "Chunk",
    "CompletionResult",
    "Conversation",
    "DatasetInfo",
    "DownloadState",
    "DownloadStatus",
    "EmbeddingRecord",
    "EventName",
    "FinishCause",
    "IngestResult",
    "PackSource",
    "Preset",
    "RagHit",
    "ServerDiagnostics",
    "ServerInstallState",
    "ServerPhase",
    "ServerRuntimeState",
    "ServerStatus",
    "ServerStatusEvent",
    "StreamChoice",
    "StreamChunk",
    "StreamDelta",
]
