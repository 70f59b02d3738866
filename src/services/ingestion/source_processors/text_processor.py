"""Source processor for plain-text documents (prose, markdown, code, data)."""

from __future__ import annotations

from pathlib import Path

import structlog

from src.interfaces.text_extractor import ITextExtractor
from src.utils.errors import RAGError, SourceNotFoundError

logger = structlog.get_logger(logger_name=__name__)

PLAIN_TEXT_SUFFIXES = frozenset(
    {
        ".txt", ".md", ".markdown", ".rst", ".csv", ".tsv", ".json", ".log",
        ".yaml", ".yml", ".toml", ".ini", ".cfg", ".xml",
        ".py", ".js", ".jsx", ".ts", ".tsx", ".rs", ".go", ".java", ".kt",
        ".c", ".h", ".cpp", ".hpp", ".cs", ".rb", ".php", ".sh", ".sql",
    }
)


def require_file(path: Path) -> None:
    """Raise :class:`SourceNotFoundError` unless *path* is an existing file."""
    if not path.is_file():
        raise SourceNotFoundError(
            message=f"Source file not found: {path}",
            component="ingestion",
        )


class PlainTextProcessor(ITextExtractor):
    """Reads text files as UTF-8, replacing undecodable bytes."""

    def supports(self, path: Path) -> bool:
        return path.suffix.lower() in PLAIN_TEXT_SUFFIXES

    def extract(self, path: Path) -> str:
        require_file(path)
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise RAGError(message=f"Cannot read {path}: {exc}", component="ingestion") from exc
        logger.debug("text_file_read", file_path=str(path), chars=len(text))
        return text
