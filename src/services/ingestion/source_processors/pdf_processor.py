"""Source processor for PDF documents.

Reads PDFs with PyMuPDF (``fitz``) page by page.  Pages with no
extractable text (scans without an OCR layer) are skipped; the remaining
page texts are joined with blank lines.
"""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF
import structlog

from src.interfaces.text_extractor import ITextExtractor
from src.services.ingestion.source_processors.text_processor import require_file
from src.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)


class PDFProcessor(ITextExtractor):
    """Extracts the text layer of ``.pdf`` files."""

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() == ".pdf"

    def extract(self, path: Path) -> str:
        require_file(path)
        pages = self._extract_pages(path)
        logger.info("pdf_processed", file_path=str(path), pages=len(pages))
        return "\n\n".join(text for _, text in pages)

    @staticmethod
    def _extract_pages(path: Path) -> list[tuple[int, str]]:
        """Return ``(page_number, page_text)`` tuples, 1-based, skipping empty pages."""
        try:
            doc = fitz.open(str(path))
        except (RuntimeError, ValueError) as exc:
            raise RAGError(message=f"Cannot open PDF {path}: {exc}", component="ingestion") from exc

        pages: list[tuple[int, str]] = []
        try:
            for page_num in range(len(doc)):
                text = doc[page_num].get_text("text").strip()
                if text:
                    pages.append((page_num + 1, text))
        finally:
            doc.close()

        if not pages:
            logger.warning("pdf_no_text_extracted", file_path=str(path))
        return pages
