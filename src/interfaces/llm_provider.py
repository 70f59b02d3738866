"""Abstract base class for streaming chat-completion providers."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING

from src.models.chat import ChatCompletionRequest

if TYPE_CHECKING:
    from src.services.sse_decoder import SSEDecoder


# Concrete implementations:
#   LlamaServerLLMProvider -- SSE stream from /v1/chat/completions
# Located in: src/providers/llm/
class ILLMProvider(ABC):
    """Contract for chat completions delivered as an incremental stream."""

    @abstractmethod
    def stream_chat(
        self,
        request: ChatCompletionRequest,
        decoder: SSEDecoder | None = None,
    ) -> AsyncIterator[str]:
        """Yield content fragments in the order the model produced them.

        Implementations are async generators.  Iteration ends on the
        terminal sentinel, on a ``stop``/``length`` finish reason, or when
        the server closes the response.  A caller-supplied *decoder* is
        used for the stream so the caller can read its finish cause.

        Raises
        ------
        src.utils.errors.TransportError
            If the request fails before any response bytes arrive.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this provider."""
