"""Download-manager data models."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field


class DownloadStatus(str, Enum):
    RUNNING = "running"
    DONE = "done"
    ERROR = "error"
    CANCELED = "canceled"


class BeginResult(str, Enum):
    """Outcome of :meth:`DownloadManager.begin`."""

    STARTED = "started"
    ALREADY_INSTALLED = "already_installed"


class DownloadState(BaseModel):
    """Point-in-time snapshot of one artifact transfer.

    ``total`` counts bytes of the complete artifact, including any bytes
    already on disk from an earlier partial transfer, so ``percentage``
    stays relative to the original full size after a resume.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    filename: str
    total: int | None = Field(default=None, ge=0)
    written: int = Field(default=0, ge=0)
    status: DownloadStatus
    error: str | None = None

    @computed_field
    @property
    def percentage(self) -> float | None:
        if not self.total:
            return None
        return round(min(100.0, self.written * 100.0 / self.total), 2)
