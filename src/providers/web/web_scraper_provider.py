"""Web page fetcher using httpx, trafilatura and BeautifulSoup.

Fetches raw HTML via httpx, extracts the main content with trafilatura
(falling back to BeautifulSoup's visible text) and collects absolute
links for the same-host crawl.
"""

from __future__ import annotations

from urllib.parse import urldefrag, urljoin

import httpx
import structlog
from bs4 import BeautifulSoup

from src.interfaces.web_fetcher import IWebFetcher, WebPage
from src.services.ingestion.source_processors import html_to_text
from src.utils.errors import TransportError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 15.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; llamadeck/0.1)",
    "Accept": "text/html,application/xhtml+xml,text/plain;q=0.9,*/*;q=0.8",
}


def extract_links(html: str, base_url: str) -> list[str]:
    """Return absolute http(s) links in *html*, de-duplicated, fragments dropped."""
    soup = BeautifulSoup(html, "html.parser")
    seen: set[str] = set()
    links: list[str] = []
    for anchor in soup.find_all("a", href=True):
        target, _ = urldefrag(urljoin(base_url, anchor["href"].strip()))
        if not target.startswith(("http://", "https://")) or target in seen:
            continue
        seen.add(target)
        links.append(target)
    return links


class WebScraperProvider(IWebFetcher):
    """Page fetching backed by httpx + trafilatura."""

    def __init__(self, http_client: httpx.AsyncClient | None = None) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(_DEFAULT_TIMEOUT),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )

    async def fetch_page(self, url: str) -> WebPage:
        try:
            response = await self._client.get(url)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise TransportError(
                message=f"Timeout fetching {url}: {exc}",
                component=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise TransportError(
                message=f"HTTP {exc.response.status_code} for {url}",
                component=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise TransportError(
                message=f"HTTP error fetching {url}: {exc}",
                component=self.get_provider_name(),
            ) from exc

        final_url = str(response.url)
        content_type = response.headers.get("content-type", "")
        body = response.text
        if "html" in content_type or body.lstrip().startswith("<"):
            text = html_to_text(body)
            links = extract_links(body, final_url)
        else:
            text = body
            links = []

        logger.info("page_fetched", url=final_url, text_length=len(text), links=len(links))
        return WebPage(url=final_url, text=text, links=links)

    def get_provider_name(self) -> str:
        return "web_scraper"

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
