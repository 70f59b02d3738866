"""Source processors for the ingestion pipeline.

Each processor turns one document format into plain text, which the
ingestion service then chunks, embeds and stores.

- **PlainTextProcessor** -- text, markdown, code and data files
- **PDFProcessor**       -- PDF text layer via PyMuPDF
- **EPUBProcessor**      -- EPUB books via ebooklib + BeautifulSoup
- **HTMLProcessor**      -- saved web pages via trafilatura (BeautifulSoup fallback)

:class:`CompositeTextExtractor` dispatches to the first processor whose
``supports()`` accepts the file suffix.
"""

from __future__ import annotations

from pathlib import Path

from src.interfaces.text_extractor import ITextExtractor
from src.services.ingestion.source_processors.epub_processor import EPUBProcessor
from src.services.ingestion.source_processors.html_processor import (
    HTMLProcessor,
    html_to_text,
)
from src.services.ingestion.source_processors.pdf_processor import PDFProcessor
from src.services.ingestion.source_processors.text_processor import (
    PlainTextProcessor,
    require_file,
)
from src.utils.errors import RAGError


class CompositeTextExtractor(ITextExtractor):
    """Routes each file to the first processor that supports it."""

    def __init__(self, processors: list[ITextExtractor] | None = None) -> None:
        self._processors = processors or [
            PlainTextProcessor(),
            PDFProcessor(),
            EPUBProcessor(),
            HTMLProcessor(),
        ]

    def supports(self, path: Path) -> bool:
        return any(p.supports(path) for p in self._processors)

    def extract(self, path: Path) -> str:
        require_file(path)
        for processor in self._processors:
            if processor.supports(path):
                return processor.extract(path)
        raise RAGError(
            message=f"Unsupported file type: {path.suffix or path.name}",
            component="ingestion",
        )


__all__ = [
    "CompositeTextExtractor",
    "EPUBProcessor",
    "HTMLProcessor",
    "PDFProcessor",
    "PlainTextProcessor",
    "html_to_text",
]
