"""
Page classification for Hunt Alerts.

Decides whether a discovered URL is an individual listing, a results or
search page, an article, a login page or junk. URL shape is checked first
through an ordered list of named rules; the page title is a secondary check.

Rules are evaluated top to bottom and the first match wins. Each rule
carries the reason code recorded in the run's rejection histogram.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional

from .models import ListingKind, PageType
from .sources.base import domain_of
from .sources.registry import SOURCES, SourceProfile, profile_for_url

# =============================================================================
# VOCABULARIES
# =============================================================================

# Video, social, editorial and accessory sites never hold vehicle listings
DENYLIST_DOMAINS = (
    "youtube.com", "youtu.be", "facebook.com", "instagram.com", "tiktok.com",
    "reddit.com", "twitter.com", "x.com", "pinterest.com", "pinterest.com.au",
    "wikipedia.org", "whirlpool.net.au",
    "caradvice.com.au", "carexpert.com.au", "whichcar.com.au", "motoring.com.au",
    "arb.com.au", "ironman4x4.com", "norweld.com.au",
    "autobarn.com.au", "supercheapauto.com.au", "repco.com.au",
)

LOGIN_PATH = re.compile(
    r"/(login|log-in|signin|sign-in|signup|sign-up|register|account|my-account)(/|$|\?)",
    re.IGNORECASE,
)

EDITORIAL_PATH = re.compile(
    r"/(news|blog|article|articles|review|reviews|guide|guides|price-and-specs|specs|"
    r"compare|comparison|insurance|finance|about|help|contact|privacy|terms|legal|faq|"
    r"sitemap|media|press|stories|features|insights|resources|tips|how-to|what-is|"
    r"advice|editorial|accessories|canopies|ute-canopies|ute-trays)(/|$|\?)"
    r"|/(best|top|vs)-",
    re.IGNORECASE,
)

SEARCH_PATH = re.compile(r"/(search|results|browse|category|categories)(/|$|\?)", re.IGNORECASE)

SEARCH_PARAMS = re.compile(r"[?&](make|model|page|q|query|keywords|sort|year)=", re.IGNORECASE)

# Detail-style segment followed by an id-bearing segment, for unknown dealer sites
GENERIC_DETAIL_PATH = re.compile(
    r"/(lots?|details?|cars?|vehicles?|listings?|stock|items?)/(?:[^?#]*/)?[^/?#]*\d{3,}",
    re.IGNORECASE,
)

EDITORIAL_TITLE = re.compile(
    r"(price and specs|review:|car review|best used cars|top \d+ |buying guide|comparison test|"
    r"\bvs\.?\s|should you buy|how to |what is the|everything you need to know)",
    re.IGNORECASE,
)


# =============================================================================
# RULES
# =============================================================================

@dataclass(frozen=True)
class PageContext:
    """What the rules look at."""
    url: str
    domain: str
    profile: Optional[SourceProfile]
    title: str = ""


@dataclass(frozen=True)
class PageRule:
    """A named URL-shape rule: predicate, verdict and reason code."""
    name: str
    predicate: Callable[[PageContext], bool]
    verdict: PageType
    reason: str

    def matches(self, ctx: PageContext) -> bool:
        return self.predicate(ctx)


@dataclass
class PageClassification:
    """Classifier verdict for one URL."""
    page_type: PageType
    listing_kind: ListingKind
    rule: str
    reject_reason: Optional[str] = None
    source_name: Optional[str] = None

    @property
    def is_listing(self) -> bool:
        return self.page_type == PageType.LISTING


def is_denylisted(domain: str) -> bool:
    return any(domain == d or domain.endswith("." + d) for d in DENYLIST_DOMAINS)


def _source_detail_rule(source: SourceProfile) -> PageRule:
    def predicate(ctx: PageContext) -> bool:
        return ctx.profile is source and source.detail_id(ctx.url) is not None

    name = f"{source.name.upper()}_DETAIL"
    return PageRule(name, predicate, PageType.LISTING, name)


def _without_query(url: str) -> str:
    return re.split(r"[?#]", url, maxsplit=1)[0]


def _is_search_shape(ctx: PageContext) -> bool:
    if ctx.profile is not None and ctx.profile.is_results_page(ctx.url):
        return True
    if SEARCH_PATH.search(ctx.url):
        return True
    # Filter params on a dealer detail path (/stock/AB12345?year=2022) do not make it a search
    if ctx.profile is None and GENERIC_DETAIL_PATH.search(_without_query(ctx.url)):
        return False
    return bool(SEARCH_PARAMS.search(ctx.url))


RULES: tuple[PageRule, ...] = (
    PageRule("DOMAIN_DENYLIST", lambda c: is_denylisted(c.domain), PageType.OTHER, "BLOCKED_DOMAIN"),
    *(_source_detail_rule(s) for s in SOURCES),
    PageRule("LOGIN_PAGE", lambda c: bool(LOGIN_PATH.search(c.url)), PageType.LOGIN, "LOGIN_PAGE"),
    PageRule("EDITORIAL_PATH", lambda c: bool(EDITORIAL_PATH.search(c.url)), PageType.ARTICLE, "EDITORIAL_PATH"),
    PageRule("SEARCH_SHAPE", _is_search_shape, PageType.SEARCH, "SEARCH_PAGE"),
    PageRule("KNOWN_SOURCE_NO_DETAIL", lambda c: c.profile is not None, PageType.CATEGORY, "NO_DETAIL_SHAPE"),
    PageRule("GENERIC_DETAIL", lambda c: bool(GENERIC_DETAIL_PATH.search(c.url)), PageType.LISTING, "GENERIC_DETAIL"),
    PageRule("NO_DETAIL_SHAPE", lambda c: True, PageType.OTHER, "NO_DETAIL_SHAPE"),
)


def classify_page(url: str, title: str = "", rules: tuple[PageRule, ...] = RULES) -> PageClassification:
    """
    Classify a URL (and optionally its title).

    The first matching rule decides the page type. A listing verdict is
    then overridden to ``article`` when the title reads as editorial.
    """
    profile = profile_for_url(url)
    ctx = PageContext(url=url, domain=domain_of(url), profile=profile, title=title or "")
    source_name = profile.name if profile else None

    for rule in rules:
        if not rule.matches(ctx):
            continue

        if rule.verdict != PageType.LISTING:
            return PageClassification(
                page_type=rule.verdict,
                listing_kind=ListingKind.UNKNOWN,
                rule=rule.name,
                reject_reason=rule.reason,
                source_name=source_name,
            )

        if title and EDITORIAL_TITLE.search(title):
            return PageClassification(
                page_type=PageType.ARTICLE,
                listing_kind=ListingKind.UNKNOWN,
                rule=rule.name,
                reject_reason="TITLE_EDITORIAL",
                source_name=source_name,
            )

        kind = profile.listing_kind if profile else ListingKind.DEALER_STOCK
        return PageClassification(
            page_type=PageType.LISTING,
            listing_kind=kind,
            rule=rule.name,
            source_name=source_name,
        )

    raise RuntimeError("Rule list has no fallback")  # pragma: no cover


def source_tier(url: str) -> int:
    """1 = auction house, 2 = marketplace, 3 = anything else."""
    profile = profile_for_url(url)
    return profile.tier if profile else 3


# =============================================================================
# LISTING INTENT
# =============================================================================

LISTING_SIGNALS = (
    re.compile(r"\$\s*[\d,]+"),
    re.compile(r"[\d,]+\s*km", re.IGNORECASE),
    re.compile(r"(for sale|available now|buy now|dealer|used car)", re.IGNORECASE),
    re.compile(r"\b(nsw|vic|qld|wa|sa|tas|nt|act|australia)\b", re.IGNORECASE),
    re.compile(r"\b(stock|listing|lot|auction|private seller)\b", re.IGNORECASE),
)


@dataclass
class ListingIntent:
    intent: str  # "listing", "non_listing" or "unknown"
    reason: str
    signals: int = 0


def classify_listing_intent(url: str, title: str = "", snippet: str = "") -> ListingIntent:
    """
    Classify a URL/title/snippet triple as listing, non-listing or unknown.

    URL shape decides where it can; otherwise two or more content signals
    (price, odometer, sale wording, location, lot wording) mark a listing.
    """
    page = classify_page(url, title)
    if page.reject_reason == "BLOCKED_DOMAIN":
        return ListingIntent("non_listing", "BLOCKED_DOMAIN")
    if page.reject_reason == "TITLE_EDITORIAL" or EDITORIAL_TITLE.search(snippet or ""):
        return ListingIntent("non_listing", "TITLE_CONTENT_REJECT")
    if page.page_type in (PageType.ARTICLE, PageType.LOGIN, PageType.SEARCH, PageType.CATEGORY):
        return ListingIntent("non_listing", "URL_PATH_REJECT")
    if page.is_listing:
        return ListingIntent("listing", f"URL_{page.rule}")

    text = f"{title or ''} {snippet or ''}"
    signals = sum(1 for pattern in LISTING_SIGNALS if pattern.search(text))
    if signals >= 2:
        return ListingIntent("listing", "SIGNAL_MATCH", signals)
    return ListingIntent("unknown", "INSUFFICIENT_SIGNALS", signals)
