"""Embedding provider implementations.

Embeddings convert text into numeric vectors that capture semantic meaning.
They are stored per dataset and compared by cosine similarity at query time.

One implementation of IEmbeddingProvider:
    - LlamaEmbeddingProvider -- /v1/embeddings on the supervised llama-server
"""

from src.providers.embedding.llama_embedding_provider import LlamaEmbeddingProvider

__all__ = ["LlamaEmbeddingProvider"]
