"""Shared pytest fixtures for the llamadeck test suite."""

from __future__ import annotations

from pathlib import Path

import pytest
import yaml

from src.config.settings import Settings
from src.interfaces.embedding_provider import IEmbeddingProvider
from src.pipeline.event_bus import EventBus
from src.providers.catalog.yaml_catalog_source import YamlCatalogSource

# ---------------------------------------------------------------------------
# Paths & settings
# ---------------------------------------------------------------------------


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def catalog_file(tmp_path: Path) -> Path:
    """Write a small catalog with one remote pack and one local pack."""
    data = {
        "presets": [
            {
                "id": "tiny-chat",
                "name": "Tiny Chat",
                "context_size": 1024,
                "temperature": 0.5,
                "top_p": 0.8,
                "max_tokens": 64,
                "repeat_penalty": 1.2,
                "system_prompt": "Be brief.",
            },
        ],
        "packs": [
            {
                "id": "tiny-chat",
                "url": "https://models.example.com/tiny-chat.gguf",
                "filename": "tiny-chat.gguf",
            },
            {
                "id": "local-model",
                "url": "file:///nowhere/local-model.gguf",
                "filename": "local-model.gguf",
            },
        ],
    }
    path = tmp_path / "catalog.yaml"
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture
def settings(tmp_path: Path, catalog_file: Path) -> Settings:
    """Settings rooted in a throwaway directory; no .env file is read."""
    return Settings(
        _env_file=None,
        base_dir=str(tmp_path / "home"),
        catalog_path=str(catalog_file),
        llama_server_url="http://llama.test",
        server_startup_grace_seconds=0.5,
        server_stop_timeout_seconds=5.0,
    )


@pytest.fixture
def catalog(catalog_file: Path) -> YamlCatalogSource:
    return YamlCatalogSource(catalog_file)


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recorded_events(event_bus: EventBus) -> list[tuple[str, dict]]:
    """Collect every event published on ``event_bus`` in order."""
    events: list[tuple[str, dict]] = []
    event_bus.register_listener(lambda name, payload: events.append((name, payload)))
    return events


# ---------------------------------------------------------------------------
# Fake embedding provider
# ---------------------------------------------------------------------------


class FakeEmbeddingProvider(IEmbeddingProvider):
    """Deterministic embeddings keyed on keywords in the text.

    Each vector has one dimension per keyword counting its occurrences, so
    tests can predict which chunk ranks highest for a query.
    """

    KEYWORDS = ("alpha", "beta", "gamma")

    def __init__(self, drop_last: bool = False) -> None:
        self.drop_last = drop_last
        self.calls: list[list[str]] = []

    def vector_for(self, text: str) -> list[float]:
        lowered = text.lower()
        return [float(lowered.count(word)) for word in self.KEYWORDS]

    async def embed(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = [self.vector_for(text) for text in texts]
        if self.drop_last and vectors:
            vectors = vectors[:-1]
        return vectors

    async def embed_single(self, text: str) -> list[float]:
        return self.vector_for(text)

    def get_provider_name(self) -> str:
        return "fake"

    async def is_available(self) -> bool:
        return True


@pytest.fixture
def fake_embedder() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()
