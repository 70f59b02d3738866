"""Web page fetchers."""

from src.providers.web.web_scraper_provider import WebScraperProvider, extract_links

__all__ = ["WebScraperProvider", "extract_links"]
