"""Download and unpack a prebuilt llama-server release.

Release archives come from the llama.cpp GitHub releases for one pinned
build tag.  Only the server executable and the shared libraries next to
it are extracted, flattened into ``<base>/llama-bin/``; everything else
in the archive (other tools, licences) is skipped.
"""

from __future__ import annotations

import asyncio
import os
import platform
import shutil
import stat
import zipfile
from pathlib import Path, PurePosixPath

import httpx
import structlog

from src.config.settings import Settings
from src.models.events import EventName, ServerStatusEvent
from src.models.server import ServerInstallState
from src.pipeline.event_bus import EventBus
from src.services.server.supervisor import binary_name
from src.utils.errors import InstallError, PlatformUnsupportedError

logger = structlog.get_logger(logger_name=__name__)

_COMPONENT = "installer"
_RELEASE_BASE = "https://github.com/ggml-org/llama.cpp/releases/download"
# No Windows arm64 CPU build was published for the pinned tag.
_WINDOWS_ARM64_BUILD = "b6916"
_CHUNK_SIZE = 64 * 1024

_MACHINE_ALIASES = {
    "x86_64": "x64",
    "amd64": "x64",
    "x64": "x64",
    "arm64": "arm64",
    "aarch64": "arm64",
}


def resolve_release_url(version: str, system: str | None = None, machine: str | None = None) -> str:
    """Return the release archive URL for this OS / architecture.

    Raises
    ------
    PlatformUnsupportedError
        When no prebuilt archive exists for the combination.
    """
    os_name = (system or platform.system()).lower()
    raw_arch = (machine or platform.machine()).lower()
    arch = _MACHINE_ALIASES.get(raw_arch, raw_arch)

    if os_name == "windows" and arch == "x64":
        build, asset = version, f"llama-{version}-bin-win-cpu-x64.zip"
    elif os_name == "windows" and arch == "arm64":
        build, asset = _WINDOWS_ARM64_BUILD, f"llama-{_WINDOWS_ARM64_BUILD}-bin-win-cpu-arm64.zip"
    elif os_name == "linux" and arch == "x64":
        build, asset = version, f"llama-{version}-bin-ubuntu-x64.zip"
    elif os_name == "darwin" and arch in ("arm64", "x64"):
        build, asset = version, f"llama-{version}-bin-macos-{arch}.zip"
    else:
        raise PlatformUnsupportedError(
            message=f"Unsupported platform: {os_name}/{raw_arch}",
            component=_COMPONENT,
        )
    return f"{_RELEASE_BASE}/{build}/{asset}"


def _is_shared_library(name: str) -> bool:
    lowered = name.lower()
    return lowered.endswith((".dll", ".dylib")) or ".so" in PurePosixPath(lowered).suffixes


def _is_symlink(info: zipfile.ZipInfo) -> bool:
    return stat.S_ISLNK(info.external_attr >> 16)


def extract_server(archive: Path, dest: Path, binary: str | None = None) -> list[Path]:
    """Extract the server binary and shared libraries from *archive* into *dest*.

    Entries are written under their base name only, so archive paths can
    never escape *dest*.  Library symlinks (common in Linux and macOS
    builds) are recreated as symlinks on POSIX.

    Raises
    ------
    InstallError
        If the archive is corrupt or does not contain the binary.
    """
    binary = binary or binary_name()
    dest.mkdir(parents=True, exist_ok=True)
    extracted: list[Path] = []

    try:
        with zipfile.ZipFile(archive) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                name = PurePosixPath(info.filename).name
                if name != binary and not _is_shared_library(name):
                    continue

                target = dest / name
                if target.is_symlink() or target.exists():
                    target.unlink()

                if _is_symlink(info) and os.name == "posix":
                    link_target = PurePosixPath(zf.read(info).decode("utf-8")).name
                    os.symlink(link_target, target)
                else:
                    with zf.open(info) as src, open(target, "wb") as out:
                        shutil.copyfileobj(src, out)
                extracted.append(target)
    except zipfile.BadZipFile as exc:
        raise InstallError(
            message=f"Archive {archive} is not a valid zip file: {exc}",
            component=_COMPONENT,
        ) from exc

    binary_path = dest / binary
    if not binary_path.is_file():
        raise InstallError(
            message=f"{binary} not found in archive {archive.name}",
            component=_COMPONENT,
        )
    os.chmod(binary_path, 0o755)
    return extracted


class ServerInstaller:
    """Fetches the release archive for this platform and installs the server.

    Progress is published as ``llama-download-progress`` events and the
    phases as ``llama-server-status`` events (downloading → extracting →
    installed, or error).
    """

    def __init__(
        self,
        settings: Settings,
        event_bus: EventBus,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._events = event_bus
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(follow_redirects=True)

    async def install(self) -> ServerInstallState:
        version = self._settings.llama_version
        url = resolve_release_url(version)
        archive = self._settings.downloads_dir / f"llama-{version}.zip"
        bin_dir = self._settings.bin_dir

        await self._publish_status(ServerStatusEvent.DOWNLOADING, url=url)
        try:
            await self._download(url, archive)
        except (httpx.HTTPError, OSError) as exc:
            await self._publish_status(ServerStatusEvent.ERROR, error=str(exc))
            raise InstallError(
                message=f"Failed to download {url}: {exc}",
                component=_COMPONENT,
            ) from exc

        await self._publish_status(ServerStatusEvent.EXTRACTING)
        try:
            files = await asyncio.to_thread(extract_server, archive, bin_dir)
        except InstallError as exc:
            await self._publish_status(ServerStatusEvent.ERROR, error=exc.message)
            raise
        finally:
            archive.unlink(missing_ok=True)

        binary = bin_dir / binary_name()
        logger.info("server_installed", version=version, binary=str(binary), files=len(files))
        await self._publish_status(ServerStatusEvent.INSTALLED, binary_path=str(binary))
        return ServerInstallState(installed=True, version=version, binary_path=str(binary))

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _download(self, url: str, archive: Path) -> None:
        archive.parent.mkdir(parents=True, exist_ok=True)
        async with self._client.stream("GET", url, follow_redirects=True) as response:
            response.raise_for_status()
            total = int(response.headers.get("content-length", 0)) or None
            downloaded = 0
            with open(archive, "wb") as fh:
                async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                    await asyncio.to_thread(fh.write, chunk)
                    downloaded += len(chunk)
                    await self._events.publish(
                        EventName.SERVER_DOWNLOAD_PROGRESS,
                        {
                            "downloaded": downloaded,
                            "total": total,
                            "percentage": round(downloaded * 100.0 / total, 2) if total else None,
                        },
                    )
        logger.info("server_archive_downloaded", url=url, bytes=downloaded)

    async def _publish_status(self, status: ServerStatusEvent, **extra: object) -> None:
        await self._events.publish(EventName.SERVER_STATUS, {"status": status.value, **extra})
