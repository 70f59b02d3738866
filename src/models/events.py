"""Names of the events published on the :class:`~src.pipeline.event_bus.EventBus`."""

from __future__ import annotations

from enum import Enum


class EventName(str, Enum):
    LLAMA_LOG = "llama-log"
    SERVER_STATUS = "llama-server-status"
    SERVER_DOWNLOAD_PROGRESS = "llama-download-progress"
    DOWNLOAD_PROGRESS = "download-progress"
    GENERATION_CHUNK = "generation-chunk"
    GENERATION_COMPLETE = "generation-complete"
    GENERATION_ERROR = "generation-error"
    MODEL_INSTALLED = "model-installed"


class ServerStatusEvent(str, Enum):
    """Values carried by ``llama-server-status`` events."""

    DOWNLOADING = "downloading"
    EXTRACTING = "extracting"
    INSTALLED = "installed"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    ERROR = "error"
