"""
Configuration module for Hunt Alerts.

Loads environment variables and provides configuration constants.
All sensitive values should be in .env file (never commit to git).
"""

import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


class ConfigurationError(ValueError):
    """Required configuration is missing. Fatal for a hunt run."""


@dataclass
class SupabaseConfig:
    """Supabase connection configuration."""
    url: str
    key: str  # Service role key for server-side operations

    @classmethod
    def from_env(cls) -> "SupabaseConfig":
        return cls(
            url=os.getenv("SUPABASE_URL", ""),
            key=os.getenv("SUPABASE_SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY", ""),
        )

    def require(self) -> None:
        if not self.url or not self.key:
            raise ConfigurationError(
                "SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set in environment variables"
            )


@dataclass
class FirecrawlConfig:
    """Search and scrape provider configuration (Firecrawl API)."""
    api_key: str
    base_url: str = "https://api.firecrawl.dev/v1"
    country: str = "AU"
    lang: str = "en"

    @classmethod
    def from_env(cls) -> "FirecrawlConfig":
        return cls(
            api_key=os.getenv("FIRECRAWL_API_KEY", ""),
            base_url=os.getenv("FIRECRAWL_BASE_URL", "https://api.firecrawl.dev/v1").rstrip("/"),
            country=os.getenv("FIRECRAWL_COUNTRY", "AU"),
            lang=os.getenv("FIRECRAWL_LANG", "en"),
        )

    def require(self) -> None:
        if not self.api_key:
            raise ConfigurationError("FIRECRAWL_API_KEY not configured")


@dataclass
class AppConfig:
    """Main application configuration."""
    # Provider timeouts (seconds)
    search_timeout: int = 60
    fetch_timeout: int = 10

    # Seconds between requests to the same domain (be nice to servers)
    request_delay: float = 1.5

    # Render wait hint passed to the scrape provider (milliseconds)
    wait_for_ms: int = 2000

    # Scraped pages shorter than this are treated as empty
    min_content_length: int = 100

    # Query orchestration
    max_results: int = 10
    max_queries_per_tier: int = 8
    tier2_min_yield: int = 3
    max_enrichments: int = 5

    # Scheduler
    scan_interval_hours: int = 6

    @classmethod
    def from_env(cls) -> "AppConfig":
        return cls(
            search_timeout=int(os.getenv("HUNT_SEARCH_TIMEOUT", "60")),
            fetch_timeout=int(os.getenv("HUNT_FETCH_TIMEOUT", "10")),
            request_delay=float(os.getenv("HUNT_REQUEST_DELAY", "1.5")),
            wait_for_ms=int(os.getenv("HUNT_WAIT_FOR_MS", "2000")),
            min_content_length=int(os.getenv("HUNT_MIN_CONTENT_LENGTH", "100")),
            max_results=int(os.getenv("HUNT_MAX_RESULTS", "10")),
            max_queries_per_tier=int(os.getenv("HUNT_MAX_QUERIES_PER_TIER", "8")),
            tier2_min_yield=int(os.getenv("HUNT_TIER2_MIN_YIELD", "3")),
            max_enrichments=int(os.getenv("HUNT_MAX_ENRICHMENTS", "5")),
            scan_interval_hours=int(os.getenv("HUNT_SCAN_INTERVAL_HOURS", "6")),
        )


# Global configuration instances (lazy loaded)
_supabase_config: Optional[SupabaseConfig] = None
_firecrawl_config: Optional[FirecrawlConfig] = None
_app_config: Optional[AppConfig] = None


def get_supabase_config() -> SupabaseConfig:
    """Get Supabase configuration (cached)."""
    global _supabase_config
    if _supabase_config is None:
        _supabase_config = SupabaseConfig.from_env()
    return _supabase_config


def get_firecrawl_config() -> FirecrawlConfig:
    """Get Firecrawl configuration (cached)."""
    global _firecrawl_config
    if _firecrawl_config is None:
        _firecrawl_config = FirecrawlConfig.from_env()
    return _firecrawl_config


def get_app_config() -> AppConfig:
    """Get app configuration (cached)."""
    global _app_config
    if _app_config is None:
        _app_config = AppConfig.from_env()
    return _app_config
