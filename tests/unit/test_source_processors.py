"""Unit tests for the document source processors and the composite extractor."""

from __future__ import annotations

from pathlib import Path

import fitz  # PyMuPDF
import pytest
from ebooklib import epub

from src.services.ingestion.source_processors import (
    CompositeTextExtractor,
    EPUBProcessor,
    HTMLProcessor,
    PDFProcessor,
    PlainTextProcessor,
    html_to_text,
)
from src.utils.errors import RAGError, SourceNotFoundError

# ---------------------------------------------------------------------------
# Fixture builders
# ---------------------------------------------------------------------------


def _write_pdf(path: Path, pages: list[str]) -> None:
    doc = fitz.open()
    for text in pages:
        page = doc.new_page()
        if text:
            page.insert_text((72, 72), text)
    doc.save(str(path))
    doc.close()


def _write_epub(path: Path, chapters: list[str]) -> None:
    book = epub.EpubBook()
    book.set_identifier("test-book")
    book.set_title("Test Book")
    book.set_language("en")
    items = []
    for i, body in enumerate(chapters, start=1):
        chapter = epub.EpubHtml(title=f"Chapter {i}", file_name=f"ch{i}.xhtml", lang="en")
        chapter.content = f"<html><body><h1>Chapter {i}</h1><p>{body}</p></body></html>"
        book.add_item(chapter)
        items.append(chapter)
    book.toc = items
    book.add_item(epub.EpubNcx())
    book.add_item(epub.EpubNav())
    book.spine = ["nav", *items]
    epub.write_epub(str(path), book)


# ======================================================================
# Plain text
# ======================================================================


class TestPlainTextProcessor:
    @pytest.mark.parametrize("name", ["a.txt", "b.MD", "c.py", "d.json", "e.csv"])
    def test_supported_suffixes(self, name: str) -> None:
        assert PlainTextProcessor().supports(Path(name))

    def test_unsupported_suffix(self) -> None:
        assert not PlainTextProcessor().supports(Path("photo.png"))

    def test_reads_utf8_and_replaces_bad_bytes(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_bytes("café ".encode("utf-8") + b"\xff")
        text = PlainTextProcessor().extract(path)
        assert text.startswith("café ")
        assert "�" in text

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SourceNotFoundError):
            PlainTextProcessor().extract(tmp_path / "absent.txt")


# ======================================================================
# HTML
# ======================================================================


class TestHTMLProcessor:
    def test_script_and_style_removed(self) -> None:
        html = (
            "<html><head><style>p{color:red}</style></head>"
            "<body><script>alert(1)</script><p>Visible words</p></body></html>"
        )
        text = html_to_text(html)
        assert "Visible words" in text
        assert "alert" not in text
        assert "color:red" not in text

    def test_extract_file(self, tmp_path: Path) -> None:
        path = tmp_path / "page.htm"
        path.write_text("<html><body><p>Saved page body</p></body></html>", encoding="utf-8")
        assert HTMLProcessor().supports(path)
        assert "Saved page body" in HTMLProcessor().extract(path)


# ======================================================================
# PDF
# ======================================================================


class TestPDFProcessor:
    def test_pages_joined_and_blank_pages_skipped(self, tmp_path: Path) -> None:
        path = tmp_path / "doc.pdf"
        _write_pdf(path, ["First page", "", "Third page"])

        text = PDFProcessor().extract(path)

        assert text == "First page\n\nThird page"

    def test_corrupt_pdf(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")
        with pytest.raises(RAGError, match="Cannot open PDF"):
            PDFProcessor().extract(path)


# ======================================================================
# EPUB
# ======================================================================


class TestEPUBProcessor:
    def test_chapters_extracted(self, tmp_path: Path) -> None:
        path = tmp_path / "book.epub"
        _write_epub(path, ["It was a dark night.", "The end."])

        text = EPUBProcessor().extract(path)

        assert "It was a dark night." in text
        assert "The end." in text
        assert text.index("dark night") < text.index("The end.")

    def test_not_a_zip(self, tmp_path: Path) -> None:
        path = tmp_path / "fake.epub"
        path.write_bytes(b"plain bytes")
        with pytest.raises(RAGError):
            EPUBProcessor().extract(path)


# ======================================================================
# Composite
# ======================================================================


class TestCompositeTextExtractor:
    def test_dispatches_by_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "readme.md"
        path.write_text("# Hi", encoding="utf-8")
        extractor = CompositeTextExtractor()
        assert extractor.supports(path)
        assert extractor.extract(path) == "# Hi"

    def test_unsupported_type(self, tmp_path: Path) -> None:
        path = tmp_path / "image.png"
        path.write_bytes(b"\x89PNG")
        extractor = CompositeTextExtractor()
        assert not extractor.supports(path)
        with pytest.raises(RAGError, match="Unsupported file type"):
            extractor.extract(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(SourceNotFoundError):
            CompositeTextExtractor().extract(tmp_path / "ghost.pdf")
