"""Incremental decoder for OpenAI-style chat-completion event streams.

The server sends lines such as::

    data: {"choices":[{"delta":{"content":"Hel"}}]}
    data: {"choices":[{"delta":{"content":"lo"},"finish_reason":"stop"}]}
    data: [DONE]

Network reads split those lines arbitrarily, so the decoder is a small
state machine fed with whatever text arrived:

    accumulate → extract complete line → parse or skip → maybe finish

Only complete lines (ending in ``\\n``) are processed; the trailing partial
line waits in the buffer for the next :meth:`SSEDecoder.feed`.  Once
finished, further input is ignored.
"""

from __future__ import annotations

from enum import Enum

import structlog
from pydantic import ValidationError

from src.models.chat import FinishCause, StreamChunk
from src.utils.errors import DecodeError

logger = structlog.get_logger(logger_name=__name__)

_DATA_PREFIX = "data:"
_SENTINEL = "[DONE]"
_FINISH_REASONS = frozenset({"stop", "length"})
_LOG_PAYLOAD_CHARS = 120


class DecoderState(str, Enum):
    STREAMING = "streaming"
    FINISHED = "finished"


class SSEDecoder:
    """Turns raw event-stream text into content fragments.

    Usage::

        decoder = SSEDecoder()
        for text in reads:
            for fragment in decoder.feed(text):
                emit(fragment)
            if decoder.finished:
                break
        for fragment in decoder.close():
            emit(fragment)
        decoder.text  # full reply
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._state = DecoderState.STREAMING
        self._parts: list[str] = []
        self.finish_cause: FinishCause | None = None
        self.finish_reason: str | None = None
        self.skipped_records = 0

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def state(self) -> DecoderState:
        return self._state

    @property
    def finished(self) -> bool:
        return self._state is DecoderState.FINISHED

    @property
    def text(self) -> str:
        """Every fragment emitted so far, concatenated."""
        return "".join(self._parts)

    @property
    def fragment_count(self) -> int:
        return len(self._parts)

    def feed(self, data: str) -> list[str]:
        """Append *data* to the buffer and decode every complete line in it.

        Returns the content fragments found, in order.  Stops at the first
        finish signal, discarding whatever follows it.
        """
        if self.finished:
            return []

        self._buffer += data
        fragments: list[str] = []
        while self._state is DecoderState.STREAMING:
            line = self._take_line()
            if line is None:
                break
            fragments.extend(self._handle_line(line))
        return fragments

    def close(self) -> list[str]:
        """Signal end of input.

        A final line without a trailing newline is still decoded.  If no
        finish signal was seen, the stream counts as closed by the server.
        """
        fragments: list[str] = []
        if not self.finished and self._buffer:
            line, self._buffer = self._buffer, ""
            fragments = self._handle_line(line)
        if not self.finished:
            self._finish(FinishCause.UPSTREAM_CLOSED)
        return fragments

    # ------------------------------------------------------------------
    # State machine steps
    # ------------------------------------------------------------------

    def _take_line(self) -> str | None:
        """Remove and return the first complete line, or ``None`` if there is none."""
        end = self._buffer.find("\n")
        if end < 0:
            return None
        line = self._buffer[:end]
        self._buffer = self._buffer[end + 1 :]
        return line

    def _handle_line(self, line: str) -> list[str]:
        line = line.strip()
        # Blank separators, comments (":keep-alive") and "event:"/"id:" fields.
        if not line.startswith(_DATA_PREFIX):
            return []

        payload = line[len(_DATA_PREFIX) :].strip()
        if payload == _SENTINEL:
            self._finish(FinishCause.SENTINEL)
            return []

        try:
            record = _parse_record(payload)
        except DecodeError as exc:
            self.skipped_records += 1
            logger.warning(
                "sse_record_skipped",
                error=exc.message,
                payload=payload[:_LOG_PAYLOAD_CHARS],
            )
            return []

        fragments: list[str] = []
        for choice in record.choices:
            content = choice.delta.content
            if content:
                self._parts.append(content)
                fragments.append(content)
            if choice.finish_reason in _FINISH_REASONS:
                self._finish(FinishCause.FINISH_REASON, choice.finish_reason)
                break
        return fragments

    def _finish(self, cause: FinishCause, reason: str | None = None) -> None:
        self._state = DecoderState.FINISHED
        self.finish_cause = cause
        self.finish_reason = reason
        self._buffer = ""


def _parse_record(payload: str) -> StreamChunk:
    try:
        return StreamChunk.model_validate_json(payload)
    except ValidationError as exc:
        raise DecodeError(
            message=f"Malformed stream record ({exc.error_count()} error(s))",
            component="sse",
        ) from exc
