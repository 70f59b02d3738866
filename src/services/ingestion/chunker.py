"""Fixed-size character windows with overlap.

Splits text into windows of ``chunk_size`` characters.  Each window
after the first starts ``overlap`` characters before the previous one
ended, so a sentence cut by one boundary appears whole in at least one
chunk as long as it is shorter than the overlap.

    text:   |0 ............................................... len|
    chunk1: |0 ........ 1200|
    chunk2:           |1000 ........ 2200|
    chunk3:                      |2000 ........ 3200| ...

The policy is purely positional: the same text and constants always
yield the same boundaries, and the last chunk always ends at the end of
the text.  Line endings are normalized to ``\\n`` first so the same
document pasted on Windows and Unix chunks identically.
"""

from __future__ import annotations

import structlog

logger = structlog.get_logger(logger_name=__name__)


def normalize_newlines(text: str) -> str:
    return text.replace("\r\n", "\n").replace("\r", "\n")


class TextChunker:
    """Splits text into overlapping character windows.

    Parameters
    ----------
    chunk_size:
        Maximum characters per chunk (default 1200).
    overlap:
        Characters shared by consecutive chunks (default 200).  Must be
        smaller than *chunk_size* so every step makes progress.
    """

    def __init__(self, chunk_size: int = 1200, overlap: int = 200) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= overlap < chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        self._chunk_size = chunk_size
        self._overlap = overlap

    @property
    def chunk_size(self) -> int:
        return self._chunk_size

    @property
    def overlap(self) -> int:
        return self._overlap

    def chunk(self, text: str) -> list[str]:
        """Split *text* into windows.  Empty input returns an empty list."""
        text = normalize_newlines(text)
        if not text:
            return []

        chunks: list[str] = []
        start = 0
        length = len(text)
        while True:
            end = min(start + self._chunk_size, length)
            chunks.append(text[start:end])
            if end >= length:
                break
            start = end - self._overlap

        logger.debug(
            "chunking_complete",
            num_chunks=len(chunks),
            text_length=length,
            chunk_size=self._chunk_size,
            overlap=self._overlap,
        )
        return chunks
