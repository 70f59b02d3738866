"""Inference-server lifecycle models.

The supervisor moves through a small state machine::

    NOT_INSTALLED → INSTALLED → STARTING → RUNNING → STOPPING → STOPPED
                                              └──→ CRASHED (exit noticed lazily)

Install state is derived from the filesystem on every call and never
persisted; runtime state lives only as long as the supervised process.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class ServerPhase(str, Enum):
    """Lifecycle phase of the supervised inference server."""

    NOT_INSTALLED = "not_installed"
    INSTALLED = "installed"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"


class ServerInstallState(BaseModel):
    """Result of the filesystem check for the server binary."""

    model_config = ConfigDict(frozen=True)

    installed: bool
    version: str | None = Field(
        default=None,
        description="Release tag; only meaningful when the binary exists.",
    )
    binary_path: str | None = None


class ServerRuntimeState(BaseModel):
    """Liveness of the single supervised subprocess."""

    model_config = ConfigDict(frozen=True)

    running: bool
    pid: int | None = None


class ServerStatus(BaseModel):
    """Composite of install and runtime state."""

    model_config = ConfigDict(frozen=True)

    installed: bool
    version: str | None = None
    binary_path: str | None = None
    running: bool
    pid: int | None = None
    phase: ServerPhase


class ServerDiagnostics(BaseModel):
    """Troubleshooting snapshot for failed starts."""

    model_config = ConfigDict(frozen=True)

    status: ServerStatus
    bin_dir: str
    bin_dir_exists: bool
    path_head: str = Field(description="First 200 characters of PATH.")
    server_url: str
