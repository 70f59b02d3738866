"""Source processor for saved HTML pages.

trafilatura extracts the main content and drops navigation and
boilerplate.  Pages where it finds nothing (link lists, tiny pages) fall
back to BeautifulSoup's full visible text.
"""

from __future__ import annotations

import re
from pathlib import Path

import structlog
import trafilatura
from bs4 import BeautifulSoup

from src.interfaces.text_extractor import ITextExtractor
from src.services.ingestion.source_processors.text_processor import require_file
from src.utils.errors import RAGError

logger = structlog.get_logger(logger_name=__name__)

_MULTI_NEWLINE = re.compile(r"\n{3,}")


def html_to_text(html: str) -> str:
    """Return the readable text of an HTML document."""
    text = trafilatura.extract(html, include_comments=False, include_tables=True)
    if text:
        return text

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    text = soup.get_text(separator="\n")
    lines = (line.strip() for line in text.splitlines())
    return _MULTI_NEWLINE.sub("\n\n", "\n".join(lines)).strip()


class HTMLProcessor(ITextExtractor):
    """Extracts readable text from ``.html`` / ``.htm`` files."""

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() in (".html", ".htm", ".xhtml")

    def extract(self, path: Path) -> str:
        require_file(path)
        try:
            html = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise RAGError(message=f"Cannot read {path}: {exc}", component="ingestion") from exc
        text = html_to_text(html)
        if not text:
            logger.warning("html_no_text_extracted", file_path=str(path))
        return text
