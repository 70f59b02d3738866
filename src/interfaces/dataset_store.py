"""Abstract base class for RAG dataset persistence.

A dataset owns an ordered list of chunks and an index-aligned list of
embedding vectors.  Both are replaced together on every ingestion.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from src.models.rag import DatasetInfo


# Concrete implementations:
#   JsonDatasetStore -- datasets.json registry + per-dataset chunks/embeddings JSON
# Located in: src/providers/vector_store/
class IDatasetStore(ABC):
    """Contract for storing datasets, chunks and embeddings."""

    @abstractmethod
    async def create_dataset(self, name: str) -> DatasetInfo:
        """Register a new, empty dataset."""

    @abstractmethod
    async def list_datasets(self) -> list[DatasetInfo]:
        """Return every registered dataset in creation order."""

    @abstractmethod
    async def get_dataset(self, dataset_id: str) -> DatasetInfo:
        """Return one registry entry.

        Raises
        ------
        src.utils.errors.NotFoundError
            If the dataset does not exist.
        """

    @abstractmethod
    async def rename_dataset(self, dataset_id: str, name: str) -> DatasetInfo:
        """Change a dataset's display name."""

    @abstractmethod
    async def delete_dataset(self, dataset_id: str) -> None:
        """Remove the registry entry and all stored chunks and embeddings."""

    @abstractmethod
    async def replace_contents(
        self,
        dataset_id: str,
        chunks: list[str],
        embeddings: list[list[float]],
    ) -> None:
        """Overwrite the dataset's chunks and embeddings.

        Raises
        ------
        src.utils.errors.EmbeddingSizeMismatchError
            If the two lists differ in length; nothing is written.
        """

    @abstractmethod
    async def load_chunks(self, dataset_id: str) -> list[str]:
        """Return chunk texts in ingestion order."""

    @abstractmethod
    async def load_embeddings(self, dataset_id: str) -> list[list[float]]:
        """Return embedding vectors aligned with :meth:`load_chunks`."""
