"""Unit tests for the llama-server release installer."""

from __future__ import annotations

import io
import os
import zipfile
from pathlib import Path

import httpx
import pytest

from src.config.settings import Settings
from src.models.events import EventName
from src.pipeline.event_bus import EventBus
from src.services.server.installer import ServerInstaller, extract_server, resolve_release_url
from src.utils.errors import InstallError, PlatformUnsupportedError


def _zip_bytes(entries: dict[str, bytes]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries.items():
            zf.writestr(name, data)
    return buffer.getvalue()


# ======================================================================
# Release URL resolution
# ======================================================================


class TestResolveReleaseUrl:
    @pytest.mark.parametrize(
        ("system", "machine", "asset"),
        [
            ("Windows", "AMD64", "b6940/llama-b6940-bin-win-cpu-x64.zip"),
            ("Linux", "x86_64", "b6940/llama-b6940-bin-ubuntu-x64.zip"),
            ("Darwin", "arm64", "b6940/llama-b6940-bin-macos-arm64.zip"),
            ("Darwin", "x86_64", "b6940/llama-b6940-bin-macos-x64.zip"),
        ],
    )
    def test_supported_platforms(self, system: str, machine: str, asset: str) -> None:
        url = resolve_release_url("b6940", system=system, machine=machine)
        assert url == f"https://github.com/ggml-org/llama.cpp/releases/download/{asset}"

    def test_windows_arm64_uses_pinned_build(self) -> None:
        url = resolve_release_url("b6940", system="Windows", machine="ARM64")
        assert url.endswith("/b6916/llama-b6916-bin-win-cpu-arm64.zip")

    @pytest.mark.parametrize(("system", "machine"), [("Linux", "aarch64"), ("FreeBSD", "amd64")])
    def test_unsupported_platforms(self, system: str, machine: str) -> None:
        with pytest.raises(PlatformUnsupportedError):
            resolve_release_url("b6940", system=system, machine=machine)


# ======================================================================
# Archive extraction
# ======================================================================


class TestExtractServer:
    def test_extracts_binary_and_libraries_flat(self, tmp_path: Path) -> None:
        archive = tmp_path / "release.zip"
        archive.write_bytes(
            _zip_bytes(
                {
                    "build/bin/llama-server": b"#!bin",
                    "build/bin/libllama.so": b"lib",
                    "build/bin/ggml.dll": b"dll",
                    "build/bin/llama-cli": b"other tool",
                    "LICENSE": b"text",
                }
            )
        )
        dest = tmp_path / "llama-bin"

        files = extract_server(archive, dest, binary="llama-server")

        assert sorted(p.name for p in files) == ["ggml.dll", "libllama.so", "llama-server"]
        assert (dest / "llama-server").read_bytes() == b"#!bin"
        assert not (dest / "llama-cli").exists()
        assert not (dest / "build").exists()
        if os.name == "posix":
            assert os.access(dest / "llama-server", os.X_OK)

    def test_versioned_shared_library_kept(self, tmp_path: Path) -> None:
        archive = tmp_path / "release.zip"
        archive.write_bytes(_zip_bytes({"llama-server": b"b", "libggml.so.1": b"l"}))
        extract_server(archive, tmp_path / "out", binary="llama-server")
        assert (tmp_path / "out" / "libggml.so.1").exists()

    def test_missing_binary(self, tmp_path: Path) -> None:
        archive = tmp_path / "release.zip"
        archive.write_bytes(_zip_bytes({"libllama.so": b"lib"}))
        with pytest.raises(InstallError, match="not found in archive"):
            extract_server(archive, tmp_path / "out", binary="llama-server")

    def test_corrupt_archive(self, tmp_path: Path) -> None:
        archive = tmp_path / "release.zip"
        archive.write_bytes(b"definitely not a zip")
        with pytest.raises(InstallError, match="not a valid zip"):
            extract_server(archive, tmp_path / "out", binary="llama-server")


# ======================================================================
# ServerInstaller
# ======================================================================


class TestServerInstaller:
    @pytest.mark.asyncio
    async def test_install_publishes_phases(
        self,
        settings: Settings,
        event_bus: EventBus,
        recorded_events: list[tuple[str, dict]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "src.services.server.installer.resolve_release_url",
            lambda version: "https://releases.test/llama.zip",
        )
        monkeypatch.setattr("src.services.server.installer.binary_name", lambda: "llama-server")
        payload = _zip_bytes({"bin/llama-server": b"exe"})
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, content=payload))
        )
        installer = ServerInstaller(settings, event_bus, http_client=client)

        state = await installer.install()

        assert state.installed
        assert (settings.bin_dir / "llama-server").read_bytes() == b"exe"
        assert not list(settings.downloads_dir.glob("*.zip"))
        statuses = [p["status"] for n, p in recorded_events if n == EventName.SERVER_STATUS.value]
        assert statuses == ["downloading", "extracting", "installed"]
        assert any(n == EventName.SERVER_DOWNLOAD_PROGRESS.value for n, _ in recorded_events)
        await client.aclose()

    @pytest.mark.asyncio
    async def test_download_failure_raises_install_error(
        self,
        settings: Settings,
        event_bus: EventBus,
        recorded_events: list[tuple[str, dict]],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setattr(
            "src.services.server.installer.resolve_release_url",
            lambda version: "https://releases.test/llama.zip",
        )
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        installer = ServerInstaller(settings, event_bus, http_client=client)

        with pytest.raises(InstallError):
            await installer.install()
        assert recorded_events[-1][1]["status"] == "error"
        await client.aclose()
