"""Text preparation for the RAG datasets.

1. **Extract** (source_processors/) -- format-specific readers turn
   files (text, PDF, EPUB, HTML) into plain text.

2. **Chunk** (chunker.py / TextChunker) -- splits the text into
   1200-character windows overlapping by 200 characters.

Embedding and persistence are orchestrated by
:class:`src.services.rag_service.RagService`.
"""

from src.services.ingestion.chunker import TextChunker, normalize_newlines
from src.services.ingestion.source_processors import CompositeTextExtractor

__all__ = [
    "CompositeTextExtractor",
    "TextChunker",
    "normalize_newlines",
]
