"""Unit tests for DownloadManager -- resumable, cancellable artifact transfers.

HTTP traffic goes through ``httpx.MockTransport`` so every test controls
the status code, headers and body the "server" sends back.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from pathlib import Path

import httpx
import pytest

from src.config.settings import Settings
from src.models.download import BeginResult, DownloadStatus
from src.models.events import EventName
from src.pipeline.event_bus import EventBus
from src.providers.catalog.yaml_catalog_source import YamlCatalogSource
from src.services.download_manager import DownloadManager
from src.utils.errors import NotFoundError, SourceNotFoundError

_KEY = "tiny-chat"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _make_manager(
    settings: Settings,
    catalog: YamlCatalogSource,
    event_bus: EventBus,
    handler: Callable[[httpx.Request], httpx.Response],
) -> DownloadManager:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return DownloadManager(settings, catalog, event_bus, http_client=client)


def _final(settings: Settings) -> Path:
    return settings.models_dir / _KEY / "tiny-chat.gguf"


def _part(settings: Settings) -> Path:
    return settings.models_dir / _KEY / "tiny-chat.gguf.part"


async def _wait_until_settled(manager: DownloadManager, key: str = _KEY) -> None:
    for _ in range(500):
        if manager.status(key).status is not DownloadStatus.RUNNING:
            return
        await asyncio.sleep(0.01)
    raise AssertionError("download did not settle")


# ======================================================================
# Fresh transfers
# ======================================================================


class TestFreshDownload:
    @pytest.mark.asyncio
    async def test_downloads_and_renames_into_place(
        self,
        settings: Settings,
        catalog: YamlCatalogSource,
        event_bus: EventBus,
        recorded_events: list[tuple[str, dict]],
    ) -> None:
        body = b"x" * 1000
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(200, content=body))

        assert await manager.begin(_KEY) is BeginResult.STARTED
        await _wait_until_settled(manager)

        state = manager.status(_KEY)
        assert state.status is DownloadStatus.DONE
        assert state.written == 1000
        assert state.total == 1000
        assert state.percentage == 100.0
        assert _final(settings).read_bytes() == body
        assert not _part(settings).exists()

        names = [name for name, _ in recorded_events]
        assert EventName.DOWNLOAD_PROGRESS.value in names
        assert names[-1] == EventName.MODEL_INSTALLED.value
        assert recorded_events[-1][1] == {"key": _KEY, "path": str(_final(settings))}
        await manager.aclose()

    @pytest.mark.asyncio
    async def test_http_error_marks_entry_failed(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(500))

        await manager.begin(_KEY)
        await _wait_until_settled(manager)

        state = manager.status(_KEY)
        assert state.status is DownloadStatus.ERROR
        assert "HTTP 500" in (state.error or "")
        assert not _final(settings).exists()

    @pytest.mark.asyncio
    async def test_network_error_marks_entry_failed(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        manager = _make_manager(settings, catalog, event_bus, handler)
        await manager.begin(_KEY)
        await _wait_until_settled(manager)

        state = manager.status(_KEY)
        assert state.status is DownloadStatus.ERROR
        assert "Network error" in (state.error or "")


# ======================================================================
# Resume
# ======================================================================


class TestResume:
    @pytest.mark.asyncio
    async def test_resumes_with_range_header(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        _part(settings).parent.mkdir(parents=True)
        _part(settings).write_bytes(b"a" * 400)
        seen_ranges: list[str | None] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_ranges.append(request.headers.get("range"))
            return httpx.Response(
                206,
                content=b"b" * 600,
                headers={"content-range": "bytes 400-999/1000"},
            )

        manager = _make_manager(settings, catalog, event_bus, handler)
        await manager.begin(_KEY)
        await _wait_until_settled(manager)

        assert seen_ranges == ["bytes=400-"]
        state = manager.status(_KEY)
        assert state.status is DownloadStatus.DONE
        assert state.total == 1000
        assert _final(settings).read_bytes() == b"a" * 400 + b"b" * 600

    @pytest.mark.asyncio
    async def test_range_ignored_restarts_from_zero(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        _part(settings).parent.mkdir(parents=True)
        _part(settings).write_bytes(b"stale")
        manager = _make_manager(
            settings, catalog, event_bus, lambda r: httpx.Response(200, content=b"fresh-body")
        )

        await manager.begin(_KEY)
        await _wait_until_settled(manager)

        assert _final(settings).read_bytes() == b"fresh-body"

    @pytest.mark.asyncio
    async def test_416_means_partial_already_complete(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        _part(settings).parent.mkdir(parents=True)
        _part(settings).write_bytes(b"z" * 50)
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(416))

        await manager.begin(_KEY)
        await _wait_until_settled(manager)

        assert manager.status(_KEY).status is DownloadStatus.DONE
        assert _final(settings).read_bytes() == b"z" * 50


# ======================================================================
# Cancel
# ======================================================================


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_running_transfer_deletes_partial(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        release = asyncio.Event()

        async def body():
            yield b"q" * (300 * 1024)
            await release.wait()
            yield b"q" * (300 * 1024)

        manager = _make_manager(
            settings, catalog, event_bus, lambda r: httpx.Response(200, content=body())
        )
        await manager.begin(_KEY)

        for _ in range(500):
            if manager.status(_KEY).written > 0:
                break
            await asyncio.sleep(0.01)
        assert _part(settings).exists()

        await manager.cancel(_KEY)
        release.set()
        await _wait_until_settled(manager)

        assert manager.status(_KEY).status is DownloadStatus.CANCELED
        assert not _part(settings).exists()
        assert not _final(settings).exists()

    @pytest.mark.asyncio
    async def test_cancel_then_network_error_still_deletes_partial(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        release = asyncio.Event()

        async def body():
            yield b"q" * (300 * 1024)
            await release.wait()
            raise httpx.ReadError("connection reset")

        manager = _make_manager(
            settings, catalog, event_bus, lambda r: httpx.Response(200, content=body())
        )
        await manager.begin(_KEY)

        for _ in range(500):
            if manager.status(_KEY).written > 0:
                break
            await asyncio.sleep(0.01)
        assert _part(settings).exists()

        await manager.cancel(_KEY)
        release.set()
        await _wait_until_settled(manager)

        assert manager.status(_KEY).status is DownloadStatus.CANCELED
        assert not _part(settings).exists()
        assert not _final(settings).exists()

    @pytest.mark.asyncio
    async def test_cancel_failed_transfer_deletes_partial(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        _part(settings).parent.mkdir(parents=True)
        _part(settings).write_bytes(b"half")
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(503))

        await manager.begin(_KEY)
        await _wait_until_settled(manager)
        assert manager.status(_KEY).status is DownloadStatus.ERROR
        assert _part(settings).exists()

        await manager.cancel(_KEY)
        assert manager.status(_KEY).status is DownloadStatus.CANCELED
        assert not _part(settings).exists()

    @pytest.mark.asyncio
    async def test_cancel_unknown_key(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(200))
        with pytest.raises(NotFoundError):
            await manager.cancel(_KEY)


# ======================================================================
# Lookups and local artifacts
# ======================================================================


class TestLookups:
    @pytest.mark.asyncio
    async def test_status_without_begin_is_not_found(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(200))
        with pytest.raises(NotFoundError):
            manager.status(_KEY)

    @pytest.mark.asyncio
    async def test_unknown_pack(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(200))
        with pytest.raises(NotFoundError):
            await manager.begin("no-such-model")

    @pytest.mark.asyncio
    async def test_already_installed(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        _final(settings).parent.mkdir(parents=True)
        _final(settings).write_bytes(b"model")
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(500))

        assert await manager.begin(_KEY) is BeginResult.ALREADY_INSTALLED
        state = manager.status(_KEY)
        assert state.status is DownloadStatus.DONE
        assert state.written == 5
        assert manager.list_installed() == [_KEY]

    @pytest.mark.asyncio
    async def test_missing_local_pack(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(200))
        with pytest.raises(SourceNotFoundError):
            await manager.begin("local-model")

    @pytest.mark.asyncio
    async def test_import_local(
        self,
        tmp_path: Path,
        settings: Settings,
        catalog: YamlCatalogSource,
        event_bus: EventBus,
        recorded_events: list[tuple[str, dict]],
    ) -> None:
        source = tmp_path / "downloaded.gguf"
        source.write_bytes(b"weights")
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(200))

        final = await manager.import_local("local-model", source)

        assert final == settings.models_dir / "local-model" / "local-model.gguf"
        assert final.read_bytes() == b"weights"
        assert await manager.begin("local-model") is BeginResult.ALREADY_INSTALLED
        assert recorded_events[0][0] == EventName.MODEL_INSTALLED.value

    def test_disk_state(
        self, settings: Settings, catalog: YamlCatalogSource, event_bus: EventBus
    ) -> None:
        manager = _make_manager(settings, catalog, event_bus, lambda r: httpx.Response(200))
        with pytest.raises(NotFoundError):
            manager.disk_state(_KEY)

        _part(settings).parent.mkdir(parents=True)
        _part(settings).write_bytes(b"12345")
        partial = manager.disk_state(_KEY)
        assert partial.status is DownloadStatus.CANCELED
        assert partial.written == 5

        _final(settings).write_bytes(b"1234567890")
        done = manager.disk_state(_KEY)
        assert done.status is DownloadStatus.DONE
        assert done.written == 10
