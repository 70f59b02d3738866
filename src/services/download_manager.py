"""Resumable, cancellable background downloads of model artifacts.

Each artifact in the catalog (a "pack") downloads to
``models/<key>/<filename>``.  Bytes stream into ``<filename>.part`` and the
file is renamed into place only after the last byte is written, so the
final path either holds a complete artifact or nothing.

# ─── HOW A TRANSFER RUNS ───────────────────────────────────────────────
#
#   begin(key) ──→ entry(status=running) ──→ asyncio task: _transfer()
#                                               │
#        .part exists? ── yes ──→ GET with "Range: bytes=<size>-", append
#                      └─ no ───→ GET, truncate
#                                               │
#        for every chunk:  cancel flag set? ──→ delete .part, status=canceled
#                          else append, written += len(chunk)
#                                               │
#        done: os.replace(.part, final), status=done, "model-installed" event
#        error: status=error, .part kept for the next resume
#
# status()/cancel() only touch the entry map under its lock; the flag is
# observed between chunks, so up to one more chunk may land after cancel().
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import os
import shutil
import threading
from dataclasses import dataclass, field
from pathlib import Path

import httpx
import structlog

from src.config.settings import Settings
from src.interfaces.catalog_source import ICatalogSource
from src.models.catalog import PackSource
from src.models.download import BeginResult, DownloadState, DownloadStatus
from src.models.events import EventName
from src.pipeline.event_bus import EventBus
from src.utils.errors import NotFoundError, SourceNotFoundError
from src.utils.logging import get_logger

_COMPONENT = "downloads"
_CHUNK_SIZE = 256 * 1024
# Progress events are published at most once per this many bytes.
_PROGRESS_STEP_BYTES = 1024 * 1024


@dataclass
class _DownloadEntry:
    """Mutable transfer state.  Internal only; callers get :class:`DownloadState`."""

    key: str
    filename: str
    total: int | None = None
    written: int = 0
    status: DownloadStatus = DownloadStatus.RUNNING
    error: str | None = None
    cancel_event: threading.Event = field(default_factory=threading.Event)
    last_published: int = 0

    def snapshot(self) -> DownloadState:
        return DownloadState(
            key=self.key,
            filename=self.filename,
            total=self.total,
            written=self.written,
            status=self.status,
            error=self.error,
        )


class DownloadManager:
    """Starts, tracks and cancels artifact downloads.

    Parameters
    ----------
    settings:
        Provides ``models_dir``.
    catalog:
        Resolves an artifact key to its :class:`PackSource`.
    event_bus:
        Receives ``download-progress`` and ``model-installed`` events.
    http_client:
        Shared client; a private one is created (and closed by
        :meth:`aclose`) when omitted.
    """

    def __init__(
        self,
        settings: Settings,
        catalog: ICatalogSource,
        event_bus: EventBus,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._catalog = catalog
        self._events = event_bus
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(30.0, read=120.0),
            follow_redirects=True,
        )
        self._entries: dict[str, _DownloadEntry] = {}
        self._lock = threading.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def artifact_path(self, pack: PackSource) -> Path:
        return self._settings.models_dir / pack.id / pack.filename

    @staticmethod
    def partial_path(final: Path) -> Path:
        return final.with_name(f"{final.name}.part")

    def list_installed(self) -> list[str]:
        """Return the keys of catalog packs whose artifact is on disk."""
        return [pack.id for pack in self._catalog.list_packs() if self.artifact_path(pack).is_file()]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def begin(self, key: str) -> BeginResult:
        """Start downloading *key* in the background.

        Raises
        ------
        NotFoundError
            *key* is not in the catalog.
        SourceNotFoundError
            The pack points at a local file and the artifact is absent.
        """
        pack = self._catalog.get_pack(key)
        final = self.artifact_path(pack)

        if final.is_file():
            size = final.stat().st_size
            with self._lock:
                self._entries[key] = _DownloadEntry(
                    key=key,
                    filename=pack.filename,
                    total=size,
                    written=size,
                    status=DownloadStatus.DONE,
                )
            self._logger.info("download_already_installed", key=key, path=str(final))
            return BeginResult.ALREADY_INSTALLED

        if pack.is_local:
            raise SourceNotFoundError(
                message=f"Local model file not found: {final}. Import it first.",
                component=_COMPONENT,
            )

        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and existing.status is DownloadStatus.RUNNING:
                return BeginResult.STARTED
            entry = _DownloadEntry(key=key, filename=pack.filename, total=pack.size_bytes)
            self._entries[key] = entry

        task = asyncio.create_task(self._transfer(entry, pack, final), name=f"download:{key}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._logger.info("download_started", key=key, url=pack.url)
        return BeginResult.STARTED

    def status(self, key: str) -> DownloadState:
        """Return a snapshot of the transfer for *key*.

        Raises
        ------
        NotFoundError
            No download was started for *key* in this process.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise NotFoundError(message=f"No download for {key}", component=_COMPONENT)
            return entry.snapshot()

    def disk_state(self, key: str) -> DownloadState:
        """Describe *key* from the files on disk, ignoring in-process transfers.

        A finished artifact reports DONE; a leftover ``.part`` file reports
        CANCELED with the bytes already written, ready to resume.

        Raises
        ------
        NotFoundError
            The pack is unknown, or neither file exists.
        """
        pack = self._catalog.get_pack(key)
        final = self.artifact_path(pack)
        if final.is_file():
            size = final.stat().st_size
            return DownloadState(
                key=key, filename=pack.filename, total=size, written=size, status=DownloadStatus.DONE
            )
        part = self.partial_path(final)
        if part.is_file():
            return DownloadState(
                key=key,
                filename=pack.filename,
                total=pack.size_bytes,
                written=part.stat().st_size,
                status=DownloadStatus.CANCELED,
                error="Partial download; begin again to resume",
            )
        raise NotFoundError(message=f"Nothing downloaded for {key}", component=_COMPONENT)

    async def cancel(self, key: str) -> None:
        """Cancel the transfer for *key* and discard its partial file.

        A running transfer notices the flag before writing its next chunk.
        For a transfer that already failed the partial file is removed here.
        A finished download is left alone.

        Raises
        ------
        NotFoundError
            No download was started for *key* in this process.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                raise NotFoundError(message=f"No download for {key}", component=_COMPONENT)
            entry.cancel_event.set()
            if entry.status in (DownloadStatus.RUNNING, DownloadStatus.DONE):
                return
            entry.status = DownloadStatus.CANCELED

        pack = self._catalog.get_pack(key)
        part = self.partial_path(self.artifact_path(pack))
        await asyncio.to_thread(part.unlink, missing_ok=True)
        self._logger.info("download_canceled", key=key, running=False)

    async def import_local(self, key: str, source_path: str | Path) -> Path:
        """Copy a model file from disk into the artifact location for *key*."""
        pack = self._catalog.get_pack(key)
        source = Path(source_path).expanduser()
        if not source.is_file():
            raise SourceNotFoundError(
                message=f"Source file not found: {source}",
                component=_COMPONENT,
            )

        final = self.artifact_path(pack)
        part = self.partial_path(final)
        final.parent.mkdir(parents=True, exist_ok=True)
        await asyncio.to_thread(shutil.copyfile, source, part)
        await asyncio.to_thread(os.replace, part, final)

        size = final.stat().st_size
        with self._lock:
            self._entries[key] = _DownloadEntry(
                key=key,
                filename=pack.filename,
                total=size,
                written=size,
                status=DownloadStatus.DONE,
            )
        self._logger.info("model_imported", key=key, source=str(source), path=str(final))
        await self._events.publish(EventName.MODEL_INSTALLED, {"key": key, "path": str(final)})
        return final

    async def aclose(self) -> None:
        """Cancel in-flight transfers (partial files stay for a later resume)."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Transfer task
    # ------------------------------------------------------------------

    async def _transfer(self, entry: _DownloadEntry, pack: PackSource, final: Path) -> None:
        part = self.partial_path(final)
        try:
            completed = await self._stream_to_part(entry, pack.url, part)
            if not completed:
                return
            await asyncio.to_thread(os.replace, part, final)
        except asyncio.CancelledError:
            self._fail(entry, "Download interrupted")
            raise
        except httpx.HTTPStatusError as exc:
            await self._abort(entry, part, f"HTTP {exc.response.status_code} for {pack.url}")
            return
        except httpx.HTTPError as exc:
            await self._abort(entry, part, f"Network error downloading {pack.url}: {exc}")
            return
        except OSError as exc:
            await self._abort(entry, part, f"Cannot write {part}: {exc}")
            return

        with self._lock:
            entry.status = DownloadStatus.DONE
            if entry.total is None:
                entry.total = entry.written

        self._logger.info("download_complete", key=entry.key, path=str(final), bytes=entry.written)
        await self._publish_progress(entry, force=True)
        await self._events.publish(EventName.MODEL_INSTALLED, {"key": entry.key, "path": str(final)})

    async def _stream_to_part(self, entry: _DownloadEntry, url: str, part: Path) -> bool:
        """Stream *url* into *part*, resuming from its current size.

        Returns ``False`` when the transfer was canceled (the partial file is
        then already deleted), ``True`` when every byte has been written.
        """
        part.parent.mkdir(parents=True, exist_ok=True)
        offset = part.stat().st_size if part.exists() else 0
        headers = {"Range": f"bytes={offset}-"} if offset else {}

        async with self._client.stream("GET", url, headers=headers) as response:
            if offset and response.status_code == 416:
                # Nothing left to fetch: the partial file is already complete.
                with self._lock:
                    entry.total = entry.written = offset
                return not await self._cancel_if_requested(entry, part)

            response.raise_for_status()
            if offset and response.status_code != 206:
                self._logger.warning("download_range_ignored", key=entry.key, offset=offset)
                offset = 0

            length = response.headers.get("content-length")
            with self._lock:
                if length is not None:
                    entry.total = offset + int(length)
                entry.written = offset
            if offset:
                self._logger.info("download_resumed", key=entry.key, offset=offset, total=entry.total)

            canceled = False
            with open(part, "ab" if offset else "wb") as fh:
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    if entry.cancel_event.is_set():
                        canceled = True
                        break
                    await asyncio.to_thread(fh.write, chunk)
                    with self._lock:
                        entry.written += len(chunk)
                    await self._publish_progress(entry)

        if canceled:
            await self._discard(entry, part)
            return False
        return not await self._cancel_if_requested(entry, part)

    async def _cancel_if_requested(self, entry: _DownloadEntry, part: Path) -> bool:
        if not entry.cancel_event.is_set():
            return False
        await self._discard(entry, part)
        return True

    async def _discard(self, entry: _DownloadEntry, part: Path) -> None:
        await asyncio.to_thread(part.unlink, missing_ok=True)
        with self._lock:
            entry.status = DownloadStatus.CANCELED
        self._logger.info("download_canceled", key=entry.key, written=entry.written)

    async def _abort(self, entry: _DownloadEntry, part: Path, message: str) -> None:
        """Record a failed transfer, unless a cancel was already requested."""
        if entry.cancel_event.is_set():
            await self._discard(entry, part)
            return
        self._fail(entry, message)

    def _fail(self, entry: _DownloadEntry, message: str) -> None:
        with self._lock:
            entry.status = DownloadStatus.ERROR
            entry.error = message
        self._logger.error("download_failed", key=entry.key, error=message)

    async def _publish_progress(self, entry: _DownloadEntry, force: bool = False) -> None:
        if not force and entry.written - entry.last_published < _PROGRESS_STEP_BYTES:
            return
        entry.last_published = entry.written
        state = entry.snapshot()
        await self._events.publish(
            EventName.DOWNLOAD_PROGRESS,
            {
                "key": state.key,
                "downloaded": state.written,
                "total": state.total,
                "percentage": state.percentage,
                "status": state.status.value,
            },
        )
