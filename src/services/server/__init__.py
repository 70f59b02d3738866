"""llama-server lifecycle: installation, supervision and log capture."""

from src.services.server.installer import ServerInstaller, extract_server, resolve_release_url
from src.services.server.log_buffer import LogBuffer
from src.services.server.supervisor import ServerSupervisor, binary_name

__all__ = [
    "LogBuffer",
    "ServerInstaller",
    "ServerSupervisor",
    "binary_name",
    "extract_server",
    "resolve_release_url",
]
