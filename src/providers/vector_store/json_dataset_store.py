"""JSON-file dataset store.

Implements :class:`IDatasetStore` with plain files under one root
directory (``<base>/data/rag`` by default)::

    datasets.json              registry: [{id, name, created_at, updated_at}]
    <dataset id>/chunks.json       [{text}]
    <dataset id>/embeddings.json   [{embedding}]

Every write goes to a ``.tmp`` sibling first and is moved into place with
``os.replace``, so a reader never sees a half-written file.  Blocking
file I/O runs in worker threads.
"""

from __future__ import annotations

import asyncio
import json
import os
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import structlog
from pydantic import ValidationError

from src.interfaces.dataset_store import IDatasetStore
from src.models.rag import Chunk, DatasetInfo, EmbeddingRecord
from src.utils.errors import EmbeddingSizeMismatchError, NotFoundError, RAGError

logger = structlog.get_logger(logger_name=__name__)

_COMPONENT = "datasets"
_REGISTRY_FILE = "datasets.json"
_CHUNKS_FILE = "chunks.json"
_EMBEDDINGS_FILE = "embeddings.json"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _read_json(path: Path, default: Any) -> Any:
    if not path.exists():
        return default
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise RAGError(message=f"Cannot read {path}: {exc}", component=_COMPONENT) from exc


def _write_json(path: Path, data: Any) -> None:
    """Write *data* next to *path* and atomically move it into place."""
    tmp = path.with_name(f"{path.name}.tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False)
        os.replace(tmp, path)
    except OSError as exc:
        raise RAGError(message=f"Cannot write {path}: {exc}", component=_COMPONENT) from exc


class JsonDatasetStore(IDatasetStore):
    """Dataset registry plus per-dataset chunk and embedding files.

    The registry has one lock; each dataset has its own, so a
    read-then-write of one dataset never interleaves with another
    operation on the same dataset.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)
        self._registry_lock = asyncio.Lock()
        self._dataset_locks: dict[str, asyncio.Lock] = {}
        self._last_id_ms = 0

    @property
    def root(self) -> Path:
        return self._root

    def dataset_dir(self, dataset_id: str) -> Path:
        return self._root / dataset_id

    # ------------------------------------------------------------------
    # Registry
    # ------------------------------------------------------------------

    async def create_dataset(self, name: str) -> DatasetInfo:
        async with self._registry_lock:
            registry = await self._read_registry()
            dataset_id = self._next_id({info.id for info in registry})
            now = _utc_now()
            info = DatasetInfo(id=dataset_id, name=name, created_at=now, updated_at=now)

            directory = self.dataset_dir(dataset_id)
            await asyncio.to_thread(_write_json, directory / _CHUNKS_FILE, [])
            await asyncio.to_thread(_write_json, directory / _EMBEDDINGS_FILE, [])
            registry.append(info)
            await self._write_registry(registry)

        logger.info("dataset_created", dataset_id=dataset_id, name=name)
        return info

    async def list_datasets(self) -> list[DatasetInfo]:
        return await self._read_registry()

    async def get_dataset(self, dataset_id: str) -> DatasetInfo:
        for info in await self._read_registry():
            if info.id == dataset_id:
                return info
        raise NotFoundError(message=f"Unknown dataset: {dataset_id}", component=_COMPONENT)

    async def rename_dataset(self, dataset_id: str, name: str) -> DatasetInfo:
        async with self._registry_lock:
            registry = await self._read_registry()
            index = self._index_of(registry, dataset_id)
            updated = registry[index].model_copy(update={"name": name, "updated_at": _utc_now()})
            registry[index] = updated
            await self._write_registry(registry)
        logger.info("dataset_renamed", dataset_id=dataset_id, name=name)
        return updated

    async def delete_dataset(self, dataset_id: str) -> None:
        async with self._registry_lock:
            registry = await self._read_registry()
            index = self._index_of(registry, dataset_id)
            del registry[index]
            await self._write_registry(registry)

        async with self._lock_for(dataset_id):
            directory = self.dataset_dir(dataset_id)
            if directory.exists():
                await asyncio.to_thread(shutil.rmtree, directory)
        self._dataset_locks.pop(dataset_id, None)
        logger.info("dataset_deleted", dataset_id=dataset_id)

    # ------------------------------------------------------------------
    # Contents
    # ------------------------------------------------------------------

    async def replace_contents(
        self,
        dataset_id: str,
        chunks: list[str],
        embeddings: list[list[float]],
    ) -> None:
        if len(chunks) != len(embeddings):
            raise EmbeddingSizeMismatchError(
                message=(
                    f"Dataset {dataset_id}: {len(embeddings)} embeddings "
                    f"for {len(chunks)} chunks"
                ),
                component=_COMPONENT,
            )
        await self.get_dataset(dataset_id)

        chunk_rows = [Chunk(text=text).model_dump() for text in chunks]
        embedding_rows = [EmbeddingRecord(embedding=vector).model_dump() for vector in embeddings]
        directory = self.dataset_dir(dataset_id)

        async with self._lock_for(dataset_id):
            await asyncio.to_thread(_write_json, directory / _EMBEDDINGS_FILE, embedding_rows)
            await asyncio.to_thread(_write_json, directory / _CHUNKS_FILE, chunk_rows)

        await self._touch(dataset_id)
        logger.info("dataset_contents_replaced", dataset_id=dataset_id, chunks=len(chunks))

    async def load_chunks(self, dataset_id: str) -> list[str]:
        await self.get_dataset(dataset_id)
        async with self._lock_for(dataset_id):
            rows = await asyncio.to_thread(
                _read_json, self.dataset_dir(dataset_id) / _CHUNKS_FILE, []
            )
        try:
            return [Chunk.model_validate(row).text for row in rows]
        except ValidationError as exc:
            raise RAGError(
                message=f"Corrupt chunks file for dataset {dataset_id}: {exc}",
                component=_COMPONENT,
            ) from exc

    async def load_embeddings(self, dataset_id: str) -> list[list[float]]:
        await self.get_dataset(dataset_id)
        async with self._lock_for(dataset_id):
            rows = await asyncio.to_thread(
                _read_json, self.dataset_dir(dataset_id) / _EMBEDDINGS_FILE, []
            )
        try:
            return [EmbeddingRecord.model_validate(row).embedding for row in rows]
        except ValidationError as exc:
            raise RAGError(
                message=f"Corrupt embeddings file for dataset {dataset_id}: {exc}",
                component=_COMPONENT,
            ) from exc

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _lock_for(self, dataset_id: str) -> asyncio.Lock:
        return self._dataset_locks.setdefault(dataset_id, asyncio.Lock())

    def _next_id(self, taken: set[str]) -> str:
        """Return ``ds_<epoch ms>``, bumped past the last issued and any existing id."""
        millis = max(int(time.time() * 1000), self._last_id_ms + 1)
        while f"ds_{millis}" in taken or self.dataset_dir(f"ds_{millis}").exists():
            millis += 1
        self._last_id_ms = millis
        return f"ds_{millis}"

    @staticmethod
    def _index_of(registry: list[DatasetInfo], dataset_id: str) -> int:
        for index, info in enumerate(registry):
            if info.id == dataset_id:
                return index
        raise NotFoundError(message=f"Unknown dataset: {dataset_id}", component=_COMPONENT)

    async def _touch(self, dataset_id: str) -> None:
        async with self._registry_lock:
            registry = await self._read_registry()
            index = self._index_of(registry, dataset_id)
            registry[index] = registry[index].model_copy(update={"updated_at": _utc_now()})
            await self._write_registry(registry)

    async def _read_registry(self) -> list[DatasetInfo]:
        rows = await asyncio.to_thread(_read_json, self._root / _REGISTRY_FILE, [])
        try:
            return [DatasetInfo.model_validate(row) for row in rows]
        except ValidationError as exc:
            raise RAGError(message=f"Corrupt dataset registry: {exc}", component=_COMPONENT) from exc

    async def _write_registry(self, registry: list[DatasetInfo]) -> None:
        rows = [info.model_dump() for info in registry]
        await asyncio.to_thread(_write_json, self._root / _REGISTRY_FILE, rows)
