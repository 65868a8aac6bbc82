"""
Sources package - External providers and known listing sources.

- base: HTTP provider base class and ProviderError
- firecrawl: Search and scrape providers over the Firecrawl API
- registry: Known listing sites, their URL shapes and trust tiers
"""

from .base import BaseProvider, ProviderError
from .firecrawl import ScrapeProvider, ScrapeResult, SearchProvider, SearchResult
from .registry import SOURCES, SourceProfile, profile_for_url

__all__ = [
    "BaseProvider",
    "ProviderError",
    "SearchProvider",
    "SearchResult",
    "ScrapeProvider",
    "ScrapeResult",
    "SOURCES",
    "SourceProfile",
    "profile_for_url",
]
