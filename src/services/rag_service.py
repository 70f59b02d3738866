"""Retrieval-augmented generation: datasets, ingestion and similarity search.

Every input adapter (pasted text, a single file, a folder, a URL, a
same-host crawl) reduces its source to one string and hands it to the
same path::

    text -> TextChunker -> IEmbeddingProvider.embed (one batch)
         -> count check -> IDatasetStore.replace_contents

Ingestion fully replaces a dataset's previous contents.  If the server
returns a different number of vectors than there are chunks the whole
ingestion is rejected before anything is written, so a dataset never
holds misaligned chunk/embedding pairs.

Queries embed the question through the same endpoint and rank every
stored vector by cosine similarity (src/utils/similarity.py).
"""

from __future__ import annotations

import asyncio
from collections import deque
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlparse

import structlog

from src.models.rag import DatasetInfo, IngestResult, RagHit
from src.services.ingestion.chunker import TextChunker, normalize_newlines
from src.utils.errors import (
    EmbeddingSizeMismatchError,
    LlamaDeckError,
    RAGError,
    SourceNotFoundError,
)
from src.utils.similarity import rank_top_k

if TYPE_CHECKING:
    from src.config.settings import Settings
    from src.interfaces.dataset_store import IDatasetStore
    from src.interfaces.embedding_provider import IEmbeddingProvider
    from src.interfaces.text_extractor import ITextExtractor
    from src.interfaces.web_fetcher import IWebFetcher

logger = structlog.get_logger(logger_name=__name__)

_COMPONENT = "rag"
CONTEXT_SEPARATOR = "\n\n---\n\n"


def file_marker(relative_path: str) -> str:
    return f"===== File: {relative_path} =====\n"


def url_marker(url: str) -> str:
    return f"===== URL: {url} =====\n"


class RagService:
    """Dataset management, ingestion adapters and top-k retrieval.

    Parameters
    ----------
    settings:
        Supplies chunk size/overlap, default k, context cap and crawl bounds.
    store:
        Persists the registry plus per-dataset chunks and embeddings.
    embedder:
        Calls the running server's embedding endpoint.
    extractor:
        Turns files on disk into text (usually a CompositeTextExtractor).
    fetcher:
        Optional web page fetcher; URL ingestion raises without one.
    """

    def __init__(
        self,
        settings: Settings,
        store: IDatasetStore,
        embedder: IEmbeddingProvider,
        extractor: ITextExtractor,
        fetcher: IWebFetcher | None = None,
    ) -> None:
        self._settings = settings
        self._store = store
        self._embedder = embedder
        self._extractor = extractor
        self._fetcher = fetcher
        self._chunker = TextChunker(
            chunk_size=settings.rag_chunk_size,
            overlap=settings.rag_chunk_overlap,
        )

    # ------------------------------------------------------------------
    # Datasets
    # ------------------------------------------------------------------

    async def create_dataset(self, name: str) -> DatasetInfo:
        return await self._store.create_dataset(name)

    async def list_datasets(self) -> list[DatasetInfo]:
        return await self._store.list_datasets()

    async def rename_dataset(self, dataset_id: str, name: str) -> DatasetInfo:
        return await self._store.rename_dataset(dataset_id, name)

    async def delete_dataset(self, dataset_id: str) -> None:
        await self._store.delete_dataset(dataset_id)

    async def list_chunks(self, dataset_id: str) -> list[str]:
        return await self._store.load_chunks(dataset_id)

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest_text(self, dataset_id: str, text: str) -> IngestResult:
        """Chunk, embed and store *text*, replacing the dataset's contents.

        Raises
        ------
        src.utils.errors.NotFoundError
            If the dataset does not exist.
        src.utils.errors.EmbeddingSizeMismatchError
            If the server returns a different number of vectors than chunks.
            Nothing is persisted in that case.
        """
        await self._store.get_dataset(dataset_id)
        chunks = self._chunker.chunk(normalize_newlines(text))

        embeddings: list[list[float]] = []
        if chunks:
            embeddings = await self._embedder.embed(chunks)
        if len(embeddings) != len(chunks):
            logger.error(
                "rag_embedding_count_mismatch",
                dataset_id=dataset_id,
                chunks=len(chunks),
                embeddings=len(embeddings),
            )
            raise EmbeddingSizeMismatchError(
                message=(
                    f"Embedding server returned {len(embeddings)} vectors "
                    f"for {len(chunks)} chunks"
                ),
                component=_COMPONENT,
            )

        await self._store.replace_contents(dataset_id, chunks, embeddings)
        logger.info(
            "rag_ingest_complete",
            dataset_id=dataset_id,
            chars=len(text),
            chunks=len(chunks),
        )
        return IngestResult(dataset_id=dataset_id, chunks=len(chunks))

    async def ingest_file(self, dataset_id: str, path: str | Path) -> IngestResult:
        """Extract one file's text and ingest it."""
        file_path = Path(path)
        text = await asyncio.to_thread(self._extractor.extract, file_path)
        logger.info("rag_file_extracted", dataset_id=dataset_id, file_path=str(file_path))
        return await self.ingest_text(dataset_id, text)

    async def ingest_folder(self, dataset_id: str, folder: str | Path) -> IngestResult:
        """Ingest every supported file under *folder*, recursively.

        Files are visited in sorted path order and each one's text is
        preceded by a ``===== File: <relative path> =====`` header.  A file
        that fails to parse is logged and left out.
        """
        root = Path(folder)
        if not root.is_dir():
            raise SourceNotFoundError(message=f"Folder not found: {root}", component=_COMPONENT)

        files = await asyncio.to_thread(self._supported_files, root)
        if not files:
            raise RAGError(message=f"No supported files in {root}", component=_COMPONENT)

        parts: list[str] = []
        for file_path in files:
            relative = file_path.relative_to(root).as_posix()
            try:
                text = await asyncio.to_thread(self._extractor.extract, file_path)
            except RAGError as exc:
                logger.warning("rag_file_skipped", file_path=relative, error=str(exc))
                continue
            parts.append(file_marker(relative) + text)

        logger.info(
            "rag_folder_extracted",
            dataset_id=dataset_id,
            folder=str(root),
            files=len(parts),
            skipped=len(files) - len(parts),
        )
        return await self.ingest_text(dataset_id, "\n\n".join(parts))

    async def ingest_url(self, dataset_id: str, url: str) -> IngestResult:
        """Fetch one page and ingest its readable text."""
        fetcher = self._require_fetcher()
        page = await fetcher.fetch_page(url)
        return await self.ingest_text(dataset_id, page.text)

    async def scrape_url(
        self,
        dataset_id: str,
        base_url: str,
        max_depth: int | None = None,
    ) -> IngestResult:
        """Crawl *base_url* breadth-first and ingest every visited page.

        Only links on the starting host are followed, up to *max_depth*
        hops (0 = the starting page only) and at most
        ``rag_scrape_max_pages`` pages.  Each page's text is preceded by a
        ``===== URL: <url> =====`` header.  A failure on the starting page
        propagates; failures on later pages are logged and skipped.
        """
        fetcher = self._require_fetcher()
        depth_limit = self._settings.rag_scrape_max_depth
        if max_depth is not None:
            depth_limit = max(0, min(max_depth, depth_limit))
        page_limit = self._settings.rag_scrape_max_pages
        host = urlparse(base_url).netloc.lower()

        queue: deque[tuple[str, int]] = deque([(base_url, 0)])
        seen: set[str] = {base_url}
        parts: list[str] = []

        while queue and len(parts) < page_limit:
            url, depth = queue.popleft()
            try:
                page = await fetcher.fetch_page(url)
            except LlamaDeckError as exc:
                if url == base_url:
                    raise
                logger.warning("rag_scrape_page_failed", url=url, error=str(exc))
                continue

            parts.append(url_marker(page.url) + page.text)
            if depth >= depth_limit:
                continue
            for link in page.links:
                if link in seen or urlparse(link).netloc.lower() != host:
                    continue
                seen.add(link)
                queue.append((link, depth + 1))

        logger.info(
            "rag_scrape_complete",
            dataset_id=dataset_id,
            base_url=base_url,
            pages=len(parts),
            max_depth=depth_limit,
        )
        return await self.ingest_text(dataset_id, "\n\n".join(parts))

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def query(self, dataset_id: str, text: str, k: int | None = None) -> list[RagHit]:
        """Return the *k* stored chunks most similar to *text*, best first.

        ``k <= 0`` and a dataset without embeddings both yield ``[]``.
        """
        top_k = self._settings.rag_default_top_k if k is None else k
        if top_k <= 0:
            return []
        chunks, embeddings = await self._load_aligned(dataset_id)
        if not embeddings:
            return []
        query_vector = await self._embedder.embed_single(text)
        return self._hits(chunks, embeddings, query_vector, top_k)

    async def build_context(
        self,
        dataset_ids: list[str],
        text: str,
        max_chars: int | None = None,
        k: int | None = None,
    ) -> str:
        """Return the best chunks across *dataset_ids* as one prompt block.

        Hits from all datasets are merged by score, joined with
        ``CONTEXT_SEPARATOR`` and cut off at *max_chars*.  A dataset that
        cannot be read or queried is logged and skipped.
        """
        if not dataset_ids:
            return ""
        limit = self._settings.rag_context_max_chars if max_chars is None else max_chars
        top_k = self._settings.rag_default_top_k if k is None else k
        if top_k <= 0 or limit <= 0:
            return ""

        query_vector: list[float] | None = None
        hits: list[RagHit] = []
        for dataset_id in dataset_ids:
            try:
                chunks, embeddings = await self._load_aligned(dataset_id)
                if not embeddings:
                    continue
                if query_vector is None:
                    query_vector = await self._embedder.embed_single(text)
                hits.extend(self._hits(chunks, embeddings, query_vector, top_k))
            except LlamaDeckError as exc:
                logger.warning("rag_context_dataset_failed", dataset_id=dataset_id, error=str(exc))

        hits.sort(key=lambda hit: hit.score, reverse=True)
        context = ""
        for hit in hits[:top_k]:
            candidate = hit.text if not context else context + CONTEXT_SEPARATOR + hit.text
            if len(candidate) > limit:
                if not context:
                    context = hit.text[:limit]
                break
            context = candidate
        return context

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _require_fetcher(self) -> IWebFetcher:
        if self._fetcher is None:
            raise RAGError(message="No web fetcher configured", component=_COMPONENT)
        return self._fetcher

    def _supported_files(self, root: Path) -> list[Path]:
        return sorted(
            path for path in root.rglob("*")
            if path.is_file() and self._extractor.supports(path)
        )

    async def _load_aligned(self, dataset_id: str) -> tuple[list[str], list[list[float]]]:
        chunks = await self._store.load_chunks(dataset_id)
        embeddings = await self._store.load_embeddings(dataset_id)
        if embeddings and len(chunks) != len(embeddings):
            raise RAGError(
                message=(
                    f"Dataset {dataset_id} is inconsistent: "
                    f"{len(chunks)} chunks, {len(embeddings)} embeddings"
                ),
                component=_COMPONENT,
            )
        return chunks, embeddings

    @staticmethod
    def _hits(
        chunks: list[str],
        embeddings: list[list[float]],
        query_vector: list[float],
        k: int,
    ) -> list[RagHit]:
        return [
            RagHit(index=index, text=chunks[index], score=score)
            for index, score in rank_top_k(query_vector, embeddings, k)
        ]
