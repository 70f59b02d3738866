"""Unit tests for the HTTP-backed providers and the YAML catalog.

Covers:
- LlamaEmbeddingProvider (/v1/embeddings request shape and parsing)
- WebScraperProvider (HTML vs plain bodies, link extraction, errors)
- YamlCatalogSource (lookups and validation)
"""

from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from src.config.settings import Settings
from src.providers.catalog.yaml_catalog_source import YamlCatalogSource
from src.providers.embedding.llama_embedding_provider import LlamaEmbeddingProvider
from src.providers.web.web_scraper_provider import WebScraperProvider, extract_links
from src.utils.errors import ConfigurationError, NotFoundError, RAGError, TransportError

# ======================================================================
# LlamaEmbeddingProvider
# ======================================================================


class TestLlamaEmbeddingProvider:
    @pytest.mark.asyncio
    async def test_posts_batch_and_orders_by_index(self, settings: Settings) -> None:
        seen: list[tuple[str, dict]] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((str(request.url), json.loads(request.content)))
            return httpx.Response(
                200,
                json={
                    "data": [
                        {"index": 1, "embedding": [0.0, 1.0]},
                        {"index": 0, "embedding": [1, 0]},
                    ]
                },
            )

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        provider = LlamaEmbeddingProvider(settings, http_client=client)

        vectors = await provider.embed(["first", "second"])

        assert vectors == [[1.0, 0.0], [0.0, 1.0]]
        url, body = seen[0]
        assert url == "http://llama.test/v1/embeddings"
        assert body == {"model": "nomic-embed-text", "input": ["first", "second"]}

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        provider = LlamaEmbeddingProvider(
            settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        assert await provider.embed([]) == []

    @pytest.mark.asyncio
    async def test_embed_single(self, settings: Settings) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, json={"data": [{"embedding": [0.5, 0.5]}]})
            )
        )
        provider = LlamaEmbeddingProvider(settings, http_client=client)
        assert await provider.embed_single("q") == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_server_not_running(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = LlamaEmbeddingProvider(
            settings, http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler))
        )
        with pytest.raises(TransportError, match="not running"):
            await provider.embed(["x"])

    @pytest.mark.asyncio
    async def test_error_status(self, settings: Settings) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(501, text="embeddings disabled"))
        )
        provider = LlamaEmbeddingProvider(settings, http_client=client)
        with pytest.raises(TransportError, match="HTTP 501"):
            await provider.embed(["x"])

    @pytest.mark.asyncio
    async def test_malformed_body(self, settings: Settings) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"nope": []}))
        )
        provider = LlamaEmbeddingProvider(settings, http_client=client)
        with pytest.raises(RAGError):
            await provider.embed(["x"])


# ======================================================================
# WebScraperProvider
# ======================================================================

_HTML = """
<html><head><title>t</title><script>var x = 1;</script></head>
<body>
  <a href="/docs#intro">Docs</a>
  <a href="https://other.test/page">Elsewhere</a>
  <a href="/docs">Docs again</a>
  <a href="mailto:someone@example.com">Mail</a>
  <p>Hello from the page.</p>
</body></html>
"""


class TestExtractLinks:
    def test_absolute_deduplicated_without_fragments(self) -> None:
        links = extract_links(_HTML, "https://site.test/index.html")
        assert links == ["https://site.test/docs", "https://other.test/page"]

    def test_no_anchors(self) -> None:
        assert extract_links("<p>plain</p>", "https://site.test/") == []


class TestWebScraperProvider:
    @pytest.mark.asyncio
    async def test_html_page(self) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, text=_HTML, headers={"content-type": "text/html"})
            )
        )
        page = await WebScraperProvider(http_client=client).fetch_page("https://site.test/")

        assert page.url == "https://site.test/"
        assert "Hello from the page." in page.text
        assert "var x" not in page.text
        assert "https://site.test/docs" in page.links

    @pytest.mark.asyncio
    async def test_plain_text_page(self) -> None:
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(
                lambda r: httpx.Response(200, text="just text", headers={"content-type": "text/plain"})
            )
        )
        page = await WebScraperProvider(http_client=client).fetch_page("https://site.test/a.txt")
        assert page.text == "just text"
        assert page.links == []

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(404)))
        with pytest.raises(TransportError, match="HTTP 404"):
            await WebScraperProvider(http_client=client).fetch_page("https://site.test/missing")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        with pytest.raises(TransportError, match="Timeout"):
            await WebScraperProvider(http_client=client).fetch_page("https://site.test/")


# ======================================================================
# YamlCatalogSource
# ======================================================================


class TestYamlCatalogSource:
    def test_lookups(self, catalog: YamlCatalogSource) -> None:
        assert [p.id for p in catalog.list_presets()] == ["tiny-chat"]
        assert catalog.get_preset("tiny-chat").system_prompt == "Be brief."
        assert catalog.get_pack("local-model").is_local
        assert not catalog.get_pack("tiny-chat").is_local

    def test_unknown_ids(self, catalog: YamlCatalogSource) -> None:
        with pytest.raises(NotFoundError):
            catalog.get_preset("nope")
        with pytest.raises(NotFoundError):
            catalog.get_pack("nope")

    def test_invalid_entry(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yaml"
        path.write_text("presets:\n  - id: x\n    context_size: -1\npacks: []\n", encoding="utf-8")
        with pytest.raises(ConfigurationError):
            YamlCatalogSource(path)

    def test_bundled_catalog_pairs_presets_with_packs(self, project_root: Path) -> None:
        bundled = YamlCatalogSource(project_root / "config" / "catalog.yaml")
        pack_ids = {pack.id for pack in bundled.list_packs()}
        assert {preset.id for preset in bundled.list_presets()} <= pack_ids
        assert "nomic-embed-text" in pack_ids
