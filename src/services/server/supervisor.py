"""Supervision of the single llama-server subprocess.

Owns the only process handle in the application and the log buffer its
output drains into.  Lifecycle::

    NOT_INSTALLED → INSTALLED → STARTING → RUNNING → STOPPING → STOPPED
                                              └──→ CRASHED

A crash is noticed lazily: the next :meth:`status` or :meth:`start` call
finds the stored handle has an exit code.  The only active check is the
startup grace window, during which an exit is reported as
:class:`~src.utils.errors.ImmediateExitError`.

# ─── LOCKING ───────────────────────────────────────────────────────────
#
# Every mutation of ``_process`` happens under ``_lock``.  start() holds it
# from the liveness check through the spawn so two concurrent calls
# cannot both see "no process"; the grace sleep happens with the lock
# released and the result is applied after re-acquiring it.  stop() keeps
# the lock until the process has actually exited so a start() queued
# behind it never overlaps a dying server on the same port.
# ──────────────────────────────────────────────────────────────────────
"""

from __future__ import annotations

import asyncio
import contextlib
import os
import subprocess
import sys
from pathlib import Path

import httpx
import structlog

from src.config.settings import Settings
from src.models.events import EventName, ServerStatusEvent
from src.models.server import (
    ServerDiagnostics,
    ServerInstallState,
    ServerPhase,
    ServerRuntimeState,
    ServerStatus,
)
from src.pipeline.event_bus import EventBus
from src.services.server.log_buffer import LogBuffer
from src.utils.errors import (
    BinaryMissingError,
    ImmediateExitError,
    ModelMissingError,
    ServerProcessError,
)
from src.utils.logging import get_logger

_COMPONENT = "supervisor"

# Probed in order; the first 2xx or 404 means something is listening.
_HEALTH_ENDPOINTS = ("/health", "/v1/models", "/")
_PATH_HEAD_CHARS = 200
# StreamReader line limit; llama-server prints long tensor dumps at startup.
_READER_LIMIT = 1024 * 1024
_READER_DRAIN_TIMEOUT = 2.0


def binary_name() -> str:
    """Return the platform-specific file name of the server executable."""
    return "llama-server.exe" if sys.platform == "win32" else "llama-server"


class ServerSupervisor:
    """Installs-state checks, start, stop and status for llama-server.

    Parameters
    ----------
    settings:
        Application settings (port, directories, grace window).
    event_bus:
        Receives ``llama-log`` and ``llama-server-status`` events.
    log_buffer:
        Shared buffer for stdout/stderr lines; created from
        ``settings.server_log_capacity`` when omitted.
    http_client:
        Client used for health probes.  A private one is created (and
        closed by :meth:`shutdown`) when omitted.
    """

    def __init__(
        self,
        settings: Settings,
        event_bus: EventBus,
        log_buffer: LogBuffer | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._events = event_bus
        self._logs = log_buffer or LogBuffer(settings.server_log_capacity)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()
        self._lock = asyncio.Lock()
        self._process: asyncio.subprocess.Process | None = None
        self._readers: list[asyncio.Task] = []
        # None until the first start(); the phase is then derived from disk.
        self._phase: ServerPhase | None = None
        self._logger: structlog.BoundLogger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Install state
    # ------------------------------------------------------------------

    @property
    def binary_path(self) -> Path:
        return self._settings.bin_dir / binary_name()

    @property
    def log_buffer(self) -> LogBuffer:
        return self._logs

    @property
    def phase(self) -> ServerPhase:
        if self._phase is not None:
            return self._phase
        if self.binary_path.is_file():
            return ServerPhase.INSTALLED
        return ServerPhase.NOT_INSTALLED

    def check_installed(self) -> ServerInstallState:
        """Check for the server binary on disk.  No side effects."""
        path = self.binary_path
        if path.is_file():
            return ServerInstallState(
                installed=True,
                version=self._settings.llama_version,
                binary_path=str(path),
            )
        return ServerInstallState(installed=False)

    def resolve_model_path(self, model_path: str | Path) -> Path:
        """Return *model_path* as an absolute-or-base-relative path."""
        path = Path(model_path).expanduser()
        if not path.is_absolute():
            path = self._settings.base_path / path
        return path

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, model_path: str | Path, context_size: int | None = None) -> int:
        """Spawn llama-server for *model_path* and return its process id.

        If a live process is already tracked its id is returned and nothing
        is spawned.

        Raises
        ------
        BinaryMissingError
            The server binary has not been installed.
        ModelMissingError
            *model_path* does not exist.
        ServerProcessError
            The OS refused to spawn the binary, or stop() ran during startup.
        ImmediateExitError
            The process exited inside the startup grace window.
        """
        ctx_size = context_size or self._settings.default_context_size
        model = self.resolve_model_path(model_path)

        async with self._lock:
            if self._process is not None:
                if self._process.returncode is None:
                    self._logger.info("server_already_running", pid=self._process.pid)
                    return self._process.pid
                self._mark_crashed_locked()

            binary = self.binary_path
            if not binary.is_file():
                raise BinaryMissingError(
                    message=f"llama-server binary not found at {binary}. Install it first.",
                    component=_COMPONENT,
                )
            if not model.is_file():
                raise ModelMissingError(
                    message=f"Model file not found: {model}. Download it first.",
                    component=_COMPONENT,
                )

            process = await self._spawn(binary, model, ctx_size)
            self._process = process
            self._phase = ServerPhase.STARTING
            self._readers = [
                asyncio.create_task(self._drain(process.stdout, "stdout")),
                asyncio.create_task(self._drain(process.stderr, "stderr")),
            ]

        await self._publish_status(ServerStatusEvent.STARTING, pid=process.pid)

        grace = self._settings.server_startup_grace_seconds
        exited = await _wait_for_exit(process, grace)

        async with self._lock:
            if self._process is not process:
                raise ServerProcessError(
                    message="llama-server was stopped before startup completed",
                    component=_COMPONENT,
                )
            if exited:
                self._process = None
                self._phase = ServerPhase.CRASHED
                readers, self._readers = self._readers, []
            else:
                self._phase = ServerPhase.RUNNING

        if exited:
            # Collect the remaining stderr so the log explains the failure.
            await _finish_readers(readers)
            self._logger.error(
                "server_immediate_exit",
                pid=process.pid,
                returncode=process.returncode,
                grace_seconds=grace,
            )
            await self._publish_status(ServerStatusEvent.ERROR, returncode=process.returncode)
            raise ImmediateExitError(
                message=(
                    f"llama-server process exited immediately (exit code {process.returncode}). "
                    f"Please verify dependencies and DLLs in {binary.parent}."
                ),
                component=_COMPONENT,
            )

        self._logger.info("server_started", pid=process.pid, model=str(model), ctx_size=ctx_size)
        await self._publish_status(ServerStatusEvent.RUNNING, pid=process.pid)
        return process.pid

    async def stop(self) -> None:
        """Terminate the tracked process and wait for it to exit.

        Idempotent: with no tracked process this returns immediately.
        """
        async with self._lock:
            process = self._process
            if process is None:
                self._logger.debug("server_stop_noop")
                return

            self._phase = ServerPhase.STOPPING
            await self._publish_status(ServerStatusEvent.STOPPING, pid=process.pid)
            await self._terminate(process)

            self._process = None
            self._phase = ServerPhase.STOPPED
            readers, self._readers = self._readers, []

        await _finish_readers(readers)

        line = "[info] llama-server stopped"
        self._logs.append(line)
        await self._events.publish(EventName.LLAMA_LOG, {"line": line})
        self._logger.info("server_stopped", pid=process.pid, returncode=process.returncode)
        await self._publish_status(ServerStatusEvent.STOPPED)

    async def shutdown(self) -> None:
        """Stop the server and release owned resources.  Called on app teardown."""
        await self.stop()
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def runtime_state(self) -> ServerRuntimeState:
        async with self._lock:
            return self._runtime_locked()

    async def status(self) -> ServerStatus:
        install = self.check_installed()
        runtime = await self.runtime_state()
        return ServerStatus(
            installed=install.installed,
            version=install.version,
            binary_path=install.binary_path,
            running=runtime.running,
            pid=runtime.pid,
            phase=self.phase,
        )

    def logs(self) -> list[str]:
        return self._logs.snapshot()

    def clear_logs(self) -> None:
        self._logs.clear()

    async def health_check(self) -> bool:
        """Return ``True`` if any known endpoint answers 2xx or 404."""
        base = self._settings.get_server_url()
        for endpoint in _HEALTH_ENDPOINTS:
            url = f"{base}{endpoint}"
            try:
                response = await self._client.get(
                    url, timeout=self._settings.health_timeout_seconds
                )
            except httpx.HTTPError as exc:
                self._logger.debug("health_probe_failed", url=url, error=str(exc))
                continue
            if response.is_success or response.status_code == 404:
                return True
        return False

    async def diagnostics(self) -> ServerDiagnostics:
        bin_dir = self._settings.bin_dir
        return ServerDiagnostics(
            status=await self.status(),
            bin_dir=str(bin_dir),
            bin_dir_exists=bin_dir.is_dir(),
            path_head=os.environ.get("PATH", "")[:_PATH_HEAD_CHARS],
            server_url=self._settings.get_server_url(),
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _spawn(self, binary: Path, model: Path, ctx_size: int) -> asyncio.subprocess.Process:
        """Launch the binary from its own directory so co-located libraries resolve."""
        bin_dir = binary.parent
        env = os.environ.copy()
        env["PATH"] = f"{bin_dir}{os.pathsep}{env.get('PATH', '')}"

        extra: dict = {}
        if sys.platform == "win32":
            system_root = env.get("SystemRoot", r"C:\Windows")
            env.setdefault("SystemRoot", system_root)
            env.setdefault("WINDIR", system_root)
            extra["creationflags"] = subprocess.CREATE_NO_WINDOW

        args = [
            str(binary),
            "-m",
            str(model),
            "--port",
            str(self._settings.llama_server_port),
            "--ctx-size",
            str(ctx_size),
            "--embeddings",
        ]
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(bin_dir),
                env=env,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=_READER_LIMIT,
                **extra,
            )
        except OSError as exc:
            raise ServerProcessError(
                message=f"Failed to launch {binary}: {exc}",
                component=_COMPONENT,
            ) from exc

        self._logger.info(
            "server_spawned",
            pid=process.pid,
            model=str(model),
            port=self._settings.llama_server_port,
            ctx_size=ctx_size,
        )
        return process

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM, then SIGKILL once the stop timeout has passed."""
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.terminate()
        try:
            await asyncio.wait_for(
                process.wait(), timeout=self._settings.server_stop_timeout_seconds
            )
        except asyncio.TimeoutError:
            self._logger.warning("server_stop_timeout_killing", pid=process.pid)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    async def _drain(self, stream: asyncio.StreamReader | None, label: str) -> None:
        """Copy one output stream into the log buffer, line by line, until EOF."""
        if stream is None:
            return
        while True:
            try:
                raw = await stream.readline()
            except ValueError:
                # Over-long line; the reader already discarded it.
                self._logger.warning("server_log_line_too_long", stream=label)
                continue
            if not raw:
                return
            text = raw.decode("utf-8", errors="replace").rstrip("\r\n")
            line = f"[{label}] {text}"
            self._logs.append(line)
            await self._events.publish(EventName.LLAMA_LOG, {"line": line})

    def _runtime_locked(self) -> ServerRuntimeState:
        if self._process is not None and self._process.returncode is not None:
            self._mark_crashed_locked()
        if self._process is None:
            return ServerRuntimeState(running=False)
        return ServerRuntimeState(running=True, pid=self._process.pid)

    def _mark_crashed_locked(self) -> None:
        process = self._process
        if process is None:
            return
        self._logger.warning(
            "server_exited_unexpectedly",
            pid=process.pid,
            returncode=process.returncode,
        )
        self._process = None
        self._phase = ServerPhase.CRASHED

    async def _publish_status(self, status: ServerStatusEvent, **extra: object) -> None:
        await self._events.publish(EventName.SERVER_STATUS, {"status": status.value, **extra})


async def _wait_for_exit(process: asyncio.subprocess.Process, timeout: float) -> bool:
    """Return ``True`` if *process* exits within *timeout* seconds."""
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        return False
    return True


async def _finish_readers(readers: list[asyncio.Task]) -> None:
    """Let the readers flush to EOF; cancel any that outlive the drain timeout."""
    if not readers:
        return
    _, pending = await asyncio.wait(readers, timeout=_READER_DRAIN_TIMEOUT)
    for task in pending:
        task.cancel()
