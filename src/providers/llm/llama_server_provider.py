"""llama-server chat-completion provider.

Posts to the server's OpenAI-compatible ``/v1/chat/completions`` endpoint
with ``stream: true`` and decodes the event stream with
:class:`~src.services.sse_decoder.SSEDecoder`.

The raw httpx stream is used instead of an SDK so fragments reach the
caller exactly as the server flushes them.  Response text is decoded
incrementally by httpx, so a multi-byte UTF-8 character split across two
reads is never mangled.
"""

from __future__ import annotations

from collections.abc import AsyncIterator

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.llm_provider import ILLMProvider
from src.models.chat import ChatCompletionRequest
from src.services.sse_decoder import SSEDecoder
from src.utils.errors import TransportError

logger = structlog.get_logger(logger_name=__name__)

_NOT_RUNNING = "llama-server is not running. Please start it first."
_ERROR_BODY_CHARS = 500


class LlamaServerLLMProvider(ILLMProvider):
    """Streaming chat completions from the local llama-server."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._base_url = settings.get_server_url()
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._timeout = httpx.Timeout(settings.completion_timeout_seconds)

    # ------------------------------------------------------------------
    # ILLMProvider implementation
    # ------------------------------------------------------------------

    async def stream_chat(
        self,
        request: ChatCompletionRequest,
        decoder: SSEDecoder | None = None,
    ) -> AsyncIterator[str]:
        """Yield content fragments as the server streams them.

        Pass a *decoder* to inspect the finish cause, the full text and the
        number of skipped records once iteration ends.

        Raises
        ------
        TransportError
            Connection refused, timeout before the response, or a non-2xx
            status.  Errors after streaming began end the stream instead.
        """
        decoder = decoder or SSEDecoder()
        url = f"{self._base_url}/v1/chat/completions"
        payload = request.model_dump(mode="json")

        try:
            async with self._client.stream("POST", url, json=payload, timeout=self._timeout) as response:
                if not response.is_success:
                    body = (await response.aread()).decode("utf-8", errors="replace")
                    raise TransportError(
                        message=(
                            f"llama-server returned HTTP {response.status_code}: "
                            f"{body[:_ERROR_BODY_CHARS]}"
                        ),
                        component=self.get_provider_name(),
                    )

                try:
                    async for text in response.aiter_text():
                        for fragment in decoder.feed(text):
                            yield fragment
                        if decoder.finished:
                            break
                except httpx.HTTPError as exc:
                    # The server went away mid-response; keep what arrived.
                    logger.warning(
                        "completion_stream_interrupted",
                        error=str(exc),
                        fragments=decoder.fragment_count,
                    )
        except httpx.ConnectError as exc:
            raise TransportError(message=_NOT_RUNNING, component=self.get_provider_name()) from exc
        except httpx.TimeoutException as exc:
            raise TransportError(
                message=(
                    f"llama-server did not respond within "
                    f"{self._settings.completion_timeout_seconds:.0f}s"
                ),
                component=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                message=f"Request to {url} failed: {exc}",
                component=self.get_provider_name(),
            ) from exc

        for fragment in decoder.close():
            yield fragment

        logger.info(
            "llama_completion",
            model=request.model,
            finish_cause=decoder.finish_cause.value if decoder.finish_cause else None,
            fragments=decoder.fragment_count,
            skipped_records=decoder.skipped_records,
        )

    def get_provider_name(self) -> str:
        return "llama_server"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
