"""Source processor for EPUB books.

Reads EPUB files using ebooklib, strips the XHTML of each document item
with BeautifulSoup and joins the chapters with blank lines.
"""

from __future__ import annotations

import re
import zipfile
from pathlib import Path

import ebooklib
import structlog
from bs4 import BeautifulSoup
from ebooklib import epub

from src.interfaces.text_extractor import ITextExtractor
from src.services.ingestion.source_processors.text_processor import require_file
from src.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

# Collapse excessive whitespace while preserving paragraph breaks.
_MULTI_NEWLINE = re.compile(r"\n{3,}")
_MULTI_SPACE = re.compile(r"[ \t]{2,}")


class EPUBProcessor(ITextExtractor):
    """Extracts chapter text from ``.epub`` files."""

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() == ".epub"

    def extract(self, path: Path) -> str:
        require_file(path)
        chapters = self._extract_chapters(path)
        logger.info("epub_processed", file_path=str(path), chapters=len(chapters))
        return "\n\n".join(chapters)

    @staticmethod
    def _extract_chapters(path: Path) -> list[str]:
        try:
            book = epub.read_epub(str(path), options={"ignore_ncx": True})
        except (epub.EpubException, zipfile.BadZipFile, KeyError) as exc:
            raise RAGError(message=f"Cannot open EPUB {path}: {exc}", component="ingestion") from exc

        chapters: list[str] = []
        for item in book.get_items_of_type(ebooklib.ITEM_DOCUMENT):
            html_content = item.get_content().decode("utf-8", errors="replace")
            soup = BeautifulSoup(html_content, "html.parser")
            text = soup.get_text(separator="\n")
            text = _MULTI_SPACE.sub(" ", text)
            text = _MULTI_NEWLINE.sub("\n\n", text).strip()
            if text:
                chapters.append(text)

        if not chapters:
            logger.warning("epub_no_chapters_extracted", file_path=str(path))
        return chapters
