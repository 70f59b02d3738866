"""llama-server embedding provider.

Posts ``{model, input: [...]}`` to the server's OpenAI-compatible
``/v1/embeddings`` endpoint.  The server must have been started with
``--embeddings`` (the supervisor always passes it).  The model name is
informational for llama-server, which embeds with whatever model it
loaded; it defaults to ``nomic-embed-text``.
"""

from __future__ import annotations

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.utils.errors import RAGError, TransportError

logger = structlog.get_logger(logger_name=__name__)

_EMBEDDING_TIMEOUT = 300.0


class LlamaEmbeddingProvider(IEmbeddingProvider):
    """Embedding provider backed by the supervised llama-server.

    A whole ingestion batch goes out in a single request so the returned
    vectors can be checked one-for-one against the chunks.
    """

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._base_url = settings.get_server_url()
        self._model = settings.embedding_model
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    # ------------------------------------------------------------------
    # IEmbeddingProvider implementation
    # ------------------------------------------------------------------

    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts* in one request; vectors come back in input order."""
        if not texts:
            return []

        url = f"{self._base_url}/v1/embeddings"
        try:
            response = await self._client.post(
                url,
                json={"model": self._model, "input": texts},
                timeout=_EMBEDDING_TIMEOUT,
            )
        except httpx.ConnectError as exc:
            raise TransportError(
                message="llama-server is not running. Please start it first.",
                component=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                message=f"Embedding request to {url} failed: {exc}",
                component=self.get_provider_name(),
            ) from exc

        if not response.is_success:
            raise TransportError(
                message=f"Embedding request returned HTTP {response.status_code}: {response.text[:300]}",
                component=self.get_provider_name(),
            )

        vectors = self._parse_vectors(response)
        logger.info(
            "llama_embedding_batch",
            model=self._model,
            batch_size=len(texts),
            vectors=len(vectors),
        )
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        result = await self.embed([text])
        if len(result) != 1:
            raise RAGError(
                message=f"Expected 1 embedding for the query, got {len(result)}",
                component=self.get_provider_name(),
            )
        return result[0]

    def get_provider_name(self) -> str:
        return "llama_embedding"

    async def is_available(self) -> bool:
        try:
            response = await self._client.get(
                f"{self._base_url}/health", timeout=self._settings.health_timeout_seconds
            )
            return response.status_code == 200
        except httpx.HTTPError:
            return False

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _parse_vectors(self, response: httpx.Response) -> list[list[float]]:
        """Extract ``data[].embedding``, ordered by ``index`` when the server sends it."""
        try:
            data = response.json()["data"]
            items = sorted(data, key=lambda item: item["index"]) if all("index" in item for item in data) else data
            return [[float(value) for value in item["embedding"]] for item in items]
        except (ValueError, KeyError, TypeError) as exc:
            raise RAGError(
                message=f"Malformed embedding response: {exc}",
                component=self.get_provider_name(),
            ) from exc
