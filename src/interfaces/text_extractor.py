"""Abstract base class for file-format text extraction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


# Concrete implementations:
#   PlainTextProcessor, PDFProcessor, EPUBProcessor, HTMLProcessor and the
#   suffix-dispatching CompositeTextExtractor
# Located in: src/services/ingestion/source_processors/
class ITextExtractor(ABC):
    """Contract for turning a document on disk into plain text.

    Extraction is synchronous and may block on disk I/O; the ingestion
    service runs it in a worker thread.
    """

    @abstractmethod
    def supports(self, path: Path) -> bool:
        """Return ``True`` if this extractor can read *path* (by suffix)."""

    @abstractmethod
    def extract(self, path: Path) -> str:
        """Return the document's text.

        Raises
        ------
        src.utils.errors.SourceNotFoundError
            If *path* does not exist.
        src.utils.errors.RAGError
            If the file cannot be parsed.
        """
