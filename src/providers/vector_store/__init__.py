"""Dataset store implementations.

JsonDatasetStore keeps each dataset's chunks and embeddings as two JSON
files under RAG root (default: <base>/data/rag).  Similarity search runs
in memory over the loaded vectors (src/utils/similarity.py).
"""

from src.providers.vector_store.json_dataset_store import JsonDatasetStore

__all__ = ["JsonDatasetStore"]
