"""
Firecrawl search and scrape providers.

SearchProvider turns a query into ranked results (URL, title, snippet,
optional page markdown). ScrapeProvider renders a single page and returns
its markdown and HTML. Both raise ProviderError on failure.
"""

import logging
from dataclasses import dataclass
from typing import Optional
import requests

from ..config import AppConfig, FirecrawlConfig, get_firecrawl_config
from .base import BaseProvider, ProviderError, domain_of

logger = logging.getLogger(__name__)


@dataclass
class SearchResult:
    """One search hit."""
    url: str
    title: str = ""
    description: str = ""
    markdown: str = ""


@dataclass
class ScrapeResult:
    """Rendered content of one page."""
    url: str
    markdown: str = ""
    html: str = ""


class _FirecrawlProvider(BaseProvider):
    """Shared auth and endpoint handling."""

    def __init__(
        self,
        firecrawl: Optional[FirecrawlConfig] = None,
        config: Optional[AppConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(config=config, session=session)
        self.firecrawl = firecrawl or get_firecrawl_config()
        self.firecrawl.require()

    def _call(
        self,
        endpoint: str,
        payload: dict,
        timeout: float,
        expected: type,
        throttle_key: Optional[str] = None,
    ):
        """POST to an endpoint and return the body's ``data`` member, checked against ``expected``."""
        url = f"{self.firecrawl.base_url}/{endpoint}"
        data = self._post(
            url,
            payload,
            timeout=timeout,
            throttle_key=throttle_key,
            headers={"Authorization": f"Bearer {self.firecrawl.api_key}"},
        )
        if not isinstance(data, dict):
            raise ProviderError(f"{self.name} returned a malformed body", url=url)
        if data.get("success") is False:
            raise ProviderError(f"{self.name} error: {data.get('error', 'unknown')}", url=url)

        body = data.get("data")
        if body is None:
            return expected()
        if not isinstance(body, expected):
            raise ProviderError(f"{self.name} returned a malformed body: data is {type(body).__name__}", url=url)
        return body


class SearchProvider(_FirecrawlProvider):
    """Web search restricted to Australian English results."""

    name = "firecrawl-search"

    def search(self, query: str, limit: int = 10) -> list[SearchResult]:
        """
        Run a search query.

        Args:
            query: Search text, may include ``site:`` operators
            limit: Maximum results requested

        Returns:
            Results in provider ranking order
        """
        payload = {
            "query": query,
            "limit": limit,
            "lang": self.firecrawl.lang,
            "country": self.firecrawl.country,
            "scrapeOptions": {"formats": ["markdown"]},
        }
        items = self._call("search", payload, timeout=self.config.search_timeout, expected=list)

        results = []
        for item in items:
            if not isinstance(item, dict):
                continue
            url = item.get("url")
            if not url or not isinstance(url, str):
                continue
            results.append(SearchResult(
                url=url,
                title=str(item.get("title") or ""),
                description=str(item.get("description") or ""),
                markdown=str(item.get("markdown") or ""),
            ))

        logger.info(f"Search '{query}' returned {len(results)} results")
        return results


class ScrapeProvider(_FirecrawlProvider):
    """Single-page renderer used for results pages and enrichment."""

    name = "firecrawl-scrape"

    def scrape(self, url: str, wait_for: Optional[int] = None) -> ScrapeResult:
        """
        Render a page.

        Args:
            url: Page to fetch
            wait_for: Milliseconds to let client-side content settle

        Raises:
            ProviderError: on failure or when the page is effectively empty
        """
        payload = {
            "url": url,
            "formats": ["markdown", "html"],
            "onlyMainContent": False,
            "waitFor": self.config.wait_for_ms if wait_for is None else wait_for,
            "timeout": self.config.fetch_timeout * 1000,
        }
        # Throttle on the target site, not the API host
        page = self._call(
            "scrape",
            payload,
            timeout=self.config.fetch_timeout + self.config.search_timeout,
            expected=dict,
            throttle_key=domain_of(url),
        )
        result = ScrapeResult(
            url=url,
            markdown=str(page.get("markdown") or ""),
            html=str(page.get("html") or ""),
        )
        if len(result.markdown) + len(result.html) < self.config.min_content_length:
            raise ProviderError(f"{self.name} returned empty content for {url}", url=url)

        logger.debug(f"Scraped {url}: {len(result.markdown)} chars markdown")
        return result
