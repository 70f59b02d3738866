"""Chat models: conversations, outgoing completion requests, streamed deltas.

The streamed shapes mirror the OpenAI-compatible ``chat.completion.chunk``
records emitted by llama-server.  Only the fields the decoder reads are
modelled; everything else in a record is ignored.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ChatRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    model_config = ConfigDict(frozen=True, use_enum_values=True)

    role: ChatRole
    content: str


class Conversation(BaseModel):
    """What the completion service needs to know about a conversation."""

    model_config = ConfigDict(frozen=True)

    id: str
    preset_id: str
    system_prompt: str = ""
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: int = 512
    repeat_penalty: float = 1.1
    dataset_ids: list[str] = Field(default_factory=list)


class ChatCompletionRequest(BaseModel):
    """JSON body posted to ``/v1/chat/completions``."""

    model_config = ConfigDict(frozen=True)

    model: str
    messages: list[ChatMessage]
    stream: bool = True
    temperature: float
    top_p: float
    max_tokens: int
    repeat_penalty: float


# ---------------------------------------------------------------------------
# Streamed response records
# ---------------------------------------------------------------------------


class StreamDelta(BaseModel):
    content: str | None = None


class StreamChoice(BaseModel):
    delta: StreamDelta = Field(default_factory=StreamDelta)
    finish_reason: str | None = None


class StreamChunk(BaseModel):
    """One ``data:`` record of the event stream."""

    choices: list[StreamChoice] = Field(default_factory=list)


class FinishCause(str, Enum):
    """Why a completion stream ended."""

    SENTINEL = "sentinel"
    FINISH_REASON = "finish_reason"
    UPSTREAM_CLOSED = "upstream_closed"


class CompletionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    conversation_id: str | None = None
    text: str
    finish_cause: FinishCause
    finish_reason: str | None = None
    fragments: int = Field(default=0, ge=0)
    skipped_records: int = Field(default=0, ge=0)
