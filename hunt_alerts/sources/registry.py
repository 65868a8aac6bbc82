"""
Known listing sources.

Each SourceProfile describes one site the pipeline understands: its
domains, trust tier, what kind of record its detail pages hold, the URL
shapes of individual records and of results pages, and how far a listed
year may drift from the hunt's window.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..models import ListingKind
from .base import domain_of

# Year tolerance by listing kind (auction lots often list build vs compliance year)
AUCTION_YEAR_TOLERANCE = 3
RETAIL_YEAR_TOLERANCE = 1


@dataclass(frozen=True)
class SourceProfile:
    """Static description of a listing source."""
    name: str
    domains: tuple[str, ...]
    tier: int
    listing_kind: ListingKind
    # Detail regexes see the path without its query; group 1 is the record id
    detail_patterns: tuple[re.Pattern, ...] = ()
    results_page_patterns: tuple[re.Pattern, ...] = ()
    search_url_template: Optional[str] = None
    # Scraping disallowed (search results only)
    blocked: bool = False
    # Results pages hold many cards worth scraping
    high_volume: bool = False

    @property
    def year_tolerance(self) -> int:
        if self.listing_kind == ListingKind.AUCTION_LOT:
            return AUCTION_YEAR_TOLERANCE
        return RETAIL_YEAR_TOLERANCE

    @property
    def primary_domain(self) -> str:
        return self.domains[0]

    def owns(self, url: str) -> bool:
        host = domain_of(url)
        return any(host == d or host.endswith("." + d) for d in self.domains)

    def detail_id(self, url: str) -> Optional[str]:
        """Record id if ``url`` is an individual-record page of this source."""
        path = _path_of(url).split("?", 1)[0]
        for pattern in self.detail_patterns:
            match = pattern.search(path)
            if match:
                return match.group(1)
        return None

    def is_results_page(self, url: str) -> bool:
        path = _path_of(url)
        return any(p.search(path) for p in self.results_page_patterns)

    def search_url(self, make: str, model: str) -> Optional[str]:
        """Direct results-page URL for a make/model, when the source publishes one."""
        if not self.search_url_template:
            return None
        return self.search_url_template.format(make=_slug(make), model=_slug(model))


def _path_of(url: str) -> str:
    """Path and query of a URL with trailing slashes removed."""
    rest = re.sub(r"^[a-z]+://[^/]+", "", url, flags=re.IGNORECASE)
    rest = rest.split("#", 1)[0]
    if "?" in rest:
        path, query = rest.split("?", 1)
        return path.rstrip("/") + "?" + query
    return rest.rstrip("/")


def _slug(value: str) -> str:
    return re.sub(r"\s+", "-", value.strip().lower())


def _rx(*patterns: str) -> tuple[re.Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


# =============================================================================
# SOURCE TABLE
# =============================================================================

PICKLES = SourceProfile(
    name="pickles",
    domains=("pickles.com.au",),
    tier=1,
    listing_kind=ListingKind.AUCTION_LOT,
    detail_patterns=_rx(r"/used/details/.*/(\d+)$", r"/lot/(\d+)"),
    results_page_patterns=_rx(r"^/used/search(/|$|\?)"),
    search_url_template="https://www.pickles.com.au/used/search/cars/{make}/{model}",
    high_volume=True,
)

MANHEIM = SourceProfile(
    name="manheim",
    domains=("manheim.com.au",),
    tier=1,
    listing_kind=ListingKind.AUCTION_LOT,
    detail_patterns=_rx(r"/vehicle/(\d+)"),
    results_page_patterns=_rx(r"/search(/|$|\?)"),
    high_volume=True,
)

GRAYS = SourceProfile(
    name="grays",
    domains=("grays.com",),
    tier=1,
    listing_kind=ListingKind.AUCTION_LOT,
    detail_patterns=_rx(r"/lot/(\d+)"),
    results_page_patterns=_rx(r"/search/", r"/category/"),
    high_volume=True,
)

LLOYDS = SourceProfile(
    name="lloyds",
    domains=("lloydsauctions.com.au",),
    tier=1,
    listing_kind=ListingKind.AUCTION_LOT,
    detail_patterns=_rx(r"/lot/(\d+)"),
    results_page_patterns=_rx(r"/search(/|$|\?)", r"/auctions?/"),
)

CARSALES = SourceProfile(
    name="carsales",
    domains=("carsales.com.au",),
    tier=2,
    listing_kind=ListingKind.RETAIL_LISTING,
    detail_patterns=_rx(r"/cars/details/.*?((?:SSE|OAG)-AD-\d+|\d{7,})"),
    results_page_patterns=_rx(r"^/cars(/|$|\?)"),
    blocked=True,
)

AUTOTRADER = SourceProfile(
    name="autotrader",
    domains=("autotrader.com.au",),
    tier=2,
    listing_kind=ListingKind.RETAIL_LISTING,
    detail_patterns=_rx(r"/car/(\d{6,})"),
    results_page_patterns=_rx(r"^/for-sale(/|$|\?)", r"^/cars(/|$|\?)"),
)

GUMTREE = SourceProfile(
    name="gumtree",
    domains=("gumtree.com.au",),
    tier=2,
    listing_kind=ListingKind.RETAIL_LISTING,
    detail_patterns=_rx(r"/s-ad/.*/(\d{6,})"),
    results_page_patterns=_rx(r"^/s-cars-vans-utes(/|$|\?)", r"^/s-[a-z-]+/"),
)

SOURCES: tuple[SourceProfile, ...] = (
    PICKLES, MANHEIM, GRAYS, LLOYDS, CARSALES, AUTOTRADER, GUMTREE,
)

PRIORITY_SOURCES = tuple(s for s in SOURCES if s.tier == 1)
MARKETPLACE_SOURCES = tuple(s for s in SOURCES if s.tier == 2)


def profile_for_url(url: str) -> Optional[SourceProfile]:
    """Find the known source that owns a URL."""
    for source in SOURCES:
        if source.owns(url):
            return source
    return None


def profile_by_name(name: str) -> Optional[SourceProfile]:
    for source in SOURCES:
        if source.name == name:
            return source
    return None
