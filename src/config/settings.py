"""Application settings loaded from environment variables via pydantic-settings.

# ─── HOW SETTINGS WORK ────────────────────────────────────────────────
#
# pydantic-settings reads configuration from two sources (in priority order):
#
#   1. **Environment variables** -- e.g., LLAMA_SERVER_PORT=8081
#   2. **.env file** -- key=value lines in the project root .env file
#
# Field `llama_server_url` maps to env var `LLAMA_SERVER_URL` (pydantic-settings
# uppercases and matches).  Defaults apply when neither source sets a field.
#
# Every on-disk location (server binary, models, downloads, RAG datasets)
# is derived from `base_dir`, so pointing BASE_DIR somewhere else relocates
# the whole installation.
# ──────────────────────────────────────────────────────────────────────
"""

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """llamadeck application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Inference server ===
    # Empty URL = derive from the port (http://localhost:{port}).
    llama_server_url: str = ""
    llama_server_port: int = 8080
    llama_version: str = "b6940"
    default_context_size: int = 2048
    # Startup grace window: an exit inside it is reported as ImmediateExit.
    # Raise it for very large models on slow disks.
    server_startup_grace_seconds: float = 1.5
    server_stop_timeout_seconds: float = 10.0
    server_log_capacity: int = 1000
    health_timeout_seconds: float = 3.0
    completion_timeout_seconds: float = 120.0

    # === Storage ===
    base_dir: str = "."
    catalog_path: str = "config/catalog.yaml"

    # === RAG ===
    embedding_model: str = "nomic-embed-text"
    rag_chunk_size: int = 1200
    rag_chunk_overlap: int = 200
    rag_default_top_k: int = 5
    rag_context_max_chars: int = 3000
    rag_scrape_max_depth: int = 3
    rag_scrape_max_pages: int = 50

    # === App Config ===
    app_host: str = "127.0.0.1"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_server_url(self) -> str:
        """Return the inference server base URL without a trailing slash."""
        if self.llama_server_url:
            return self.llama_server_url.rstrip("/")
        return f"http://localhost:{self.llama_server_port}"

    # -- Derived directories ------------------------------------------------

    @property
    def base_path(self) -> Path:
        return Path(self.base_dir)

    @property
    def bin_dir(self) -> Path:
        return self.base_path / "llama-bin"

    @property
    def models_dir(self) -> Path:
        return self.base_path / "models"

    @property
    def downloads_dir(self) -> Path:
        return self.base_path / "downloads"

    @property
    def rag_dir(self) -> Path:
        return self.base_path / "data" / "rag"
