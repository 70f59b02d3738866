"""Pydantic request/response schemas for the llamadeck API.

Domain models (``ServerStatus``, ``DownloadState``, ``DatasetInfo``,
``RagHit``, ...) are returned as-is where they already have the right
shape; the classes below cover request bodies and the responses that
wrap or combine them.

# ─── HOW SCHEMAS WORK ─────────────────────────────────────────────────
#
# These Pydantic models define the *shape* of every HTTP request body
# and response body in the API.  FastAPI uses them for:
#
#   1. **Validation** -- Incoming JSON is automatically validated against
#      the schema.  Invalid requests get a 422 error with details.
#   2. **Serialization** -- Outgoing objects are converted to JSON
#      matching the schema (via response_model=...).
#   3. **Documentation** -- OpenAPI docs at /docs are generated from them.
#
# Convention: Request schemas end with "Request", response schemas
# end with "Response".
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from src.models.chat import ChatMessage, FinishCause
from src.models.download import BeginResult, DownloadState
from src.models.rag import RagHit


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None
    component: str | None = None


class HealthResponse(BaseModel):
    """Application health.  ``llama_server`` reflects the supervised process."""

    status: str
    version: str
    llama_server: bool = False


# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


class StartServerRequest(BaseModel):
    """Start the server with an explicit model file or a preset's pack."""

    model_path: str | None = None
    preset_id: str | None = None
    context_size: int | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _one_model_source(self) -> StartServerRequest:
        if not self.model_path and not self.preset_id:
            raise ValueError("Either model_path or preset_id is required")
        return self


class StartServerResponse(BaseModel):
    pid: int
    model_path: str


class ServerHealthResponse(BaseModel):
    healthy: bool


class ServerLogsResponse(BaseModel):
    lines: list[str]
    capacity: int


# ---------------------------------------------------------------------------
# Downloads
# ---------------------------------------------------------------------------


class BeginDownloadResponse(BaseModel):
    key: str
    result: BeginResult
    state: DownloadState


class InstalledPacksResponse(BaseModel):
    installed: list[str]


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------


class CreateConversationRequest(BaseModel):
    preset_id: str
    dataset_ids: list[str] = Field(default_factory=list)


class GenerateRequest(BaseModel):
    message: str = Field(..., min_length=1)


class GenerateResponse(BaseModel):
    conversation_id: str
    text: str
    finish_cause: FinishCause
    finish_reason: str | None = None
    skipped_records: int = 0


class MessagesResponse(BaseModel):
    conversation_id: str
    messages: list[ChatMessage]


# ---------------------------------------------------------------------------
# RAG
# ---------------------------------------------------------------------------


class CreateDatasetRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class RenameDatasetRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)


class IngestTextRequest(BaseModel):
    text: str


class IngestPathRequest(BaseModel):
    """Server-side path to a file or folder."""

    path: str = Field(..., min_length=1)


class IngestUrlRequest(BaseModel):
    url: str = Field(..., pattern=r"^https?://")


class ScrapeUrlRequest(BaseModel):
    url: str = Field(..., pattern=r"^https?://")
    max_depth: int | None = Field(default=None, ge=0)


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1)
    k: int | None = Field(default=None, ge=0)


class QueryResponse(BaseModel):
    dataset_id: str
    hits: list[RagHit]


class ChunksResponse(BaseModel):
    dataset_id: str
    chunks: list[str]
