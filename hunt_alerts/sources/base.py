"""
Base provider class for external search and scrape APIs.

All providers inherit from BaseProvider, which supplies:
- A shared requests session
- A fixed delay between requests to the same domain
- Timeouts and uniform error reporting through ProviderError
"""

import logging
import time
from typing import Optional
from urllib.parse import urlparse
import requests

from ..config import AppConfig, get_app_config

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """A search or scrape call failed (timeout, network, HTTP status, bad JSON or a malformed body)."""

    def __init__(self, message: str, url: str = "", status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def domain_of(url: str) -> str:
    """Lower-cased host of a URL without a leading ``www.``."""
    host = (urlparse(url).hostname or "").lower()
    return host[4:] if host.startswith("www.") else host


class BaseProvider:
    """
    Base class for HTTP API providers.

    Subclasses call ``_post`` for every request; throttling is tracked
    per target domain and lives on the instance, never in module state.
    """

    name: str = "provider"

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        session: Optional[requests.Session] = None,
    ):
        self.config = config or get_app_config()
        self.session = session or requests.Session()
        self.session.headers.update({
            "User-Agent": "Mozilla/5.0 (compatible; HuntAlerts/1.0)",
            "Accept": "application/json",
        })
        self._last_request: dict[str, float] = {}

    def _rate_limit(self, domain: str) -> None:
        """Wait until ``request_delay`` has passed since the last request to ``domain``."""
        last = self._last_request.get(domain)
        if last is not None:
            elapsed = time.monotonic() - last
            if elapsed < self.config.request_delay:
                time.sleep(self.config.request_delay - elapsed)
        self._last_request[domain] = time.monotonic()

    def _post(
        self,
        url: str,
        payload: dict,
        timeout: float,
        throttle_key: Optional[str] = None,
        headers: Optional[dict] = None,
    ) -> dict:
        """
        POST a JSON payload and return the decoded JSON body.

        Args:
            url: The API endpoint
            payload: JSON body
            timeout: Seconds before the call is abandoned
            throttle_key: Domain to throttle on (defaults to the endpoint host)
            headers: Extra request headers

        Raises:
            ProviderError: on any network, status or decoding failure
        """
        self._rate_limit(throttle_key or domain_of(url))

        try:
            response = self.session.post(url, json=payload, timeout=timeout, headers=headers)
        except requests.Timeout as e:
            raise ProviderError(f"{self.name} timed out after {timeout}s", url=url) from e
        except requests.RequestException as e:
            raise ProviderError(f"{self.name} request failed: {e}", url=url) from e

        if not 200 <= response.status_code < 300:
            body = (response.text or "")[:200]
            raise ProviderError(
                f"{self.name} returned HTTP {response.status_code}: {body}",
                url=url,
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderError(f"{self.name} returned malformed JSON", url=url) from e
