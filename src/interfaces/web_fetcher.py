"""Abstract base class for fetching web pages as ingestible text.

The ingestion service uses this for single-URL ingestion and for the
same-host crawl; implementations decide how HTML is reduced to text.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class WebPage:
    """A fetched page.

    Attributes
    ----------
    url:
        The final URL after redirects.
    text:
        The readable body text with markup stripped.
    links:
        Absolute ``http(s)`` link targets found on the page, fragment
        removed, in document order without duplicates.
    """

    url: str
    text: str
    links: list[str] = field(default_factory=list)


# Concrete implementations:
#   WebScraperProvider -- httpx + trafilatura, links via BeautifulSoup
# Located in: src/providers/web/
class IWebFetcher(ABC):
    """Contract for services that download a URL and return its text."""

    @abstractmethod
    async def fetch_page(self, url: str) -> WebPage:
        """Fetch *url* and extract readable text and outgoing links.

        Raises
        ------
        src.utils.errors.TransportError
            If the request fails or returns a non-success status.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a short identifier for logging."""
