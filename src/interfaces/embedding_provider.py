"""Abstract base class for text-embedding providers.

Defines the contract for turning text into vectors.  The concrete
implementation posts to the inference server's OpenAI-compatible
``/v1/embeddings`` endpoint; tests substitute deterministic fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod


# Concrete implementations:
#   LlamaEmbeddingProvider -- /v1/embeddings on the supervised llama-server
# Located in: src/providers/embedding/
class IEmbeddingProvider(ABC):
    """Contract for text-embedding services used by the RAG pipeline."""

    @abstractmethod
    async def embed(self, texts: list[str]) -> list[list[float]]:
        """Generate embedding vectors for a batch of texts in one request.

        Parameters
        ----------
        texts:
            One or more text strings to embed.

        Returns
        -------
        list[list[float]]
            Vectors in the order of *texts*.  Callers must verify the count;
            a provider returns whatever the server sent.

        Raises
        ------
        src.utils.errors.TransportError
            If the server cannot be reached or answers non-2xx.
        src.utils.errors.RAGError
            If the response body is not a valid embedding payload.
        """

    @abstractmethod
    async def embed_single(self, text: str) -> list[float]:
        """Generate an embedding vector for a single text string (e.g. a query)."""

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier for this embedding provider."""

    @abstractmethod
    async def is_available(self) -> bool:
        """Return ``True`` if the embedding endpoint is reachable."""
