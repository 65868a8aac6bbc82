"""
Domain extraction for Hunt Alerts.

Turns search snippets, scraped listing pages and results pages into
Candidate drafts:
- Field parsers (year, price, odometer, state, VIN, stock number)
- Make/model matching with parent/child model collision rules
- Single-listing extraction
- Results-page card extraction (line based, one card per vehicle heading)
- A detail-link sweep for cards the line parse missed

Unparseable fields become None and lower the candidate's confidence;
they are never errors.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .classification import PageClassification, classify_page, source_tier
from .models import Candidate, Confidence, Hunt, ListingKind, PageType
from .sources.base import domain_of
from .sources.registry import SourceProfile, profile_for_url

logger = logging.getLogger(__name__)

# Where the text came from. Page content counts as verified, snippets as inferred.
ORIGIN_SNIPPET = "snippet"
ORIGIN_PAGE = "page"
ORIGIN_CARD = "card"

MIN_YEAR = 1980
MIN_PRICE = 5_000
MAX_PRICE = 500_000
MIN_CARD_KM = 1_000
MAX_KM = 999_999

AU_STATES = ("NSW", "VIC", "QLD", "SA", "WA", "TAS", "NT", "ACT")

BADGES = (
    "WORKMATE", "GXL", "GX", "VX", "SAHARA", "GR SPORT", "KAKADU", "SR5", "SR",
    "WILDTRAK", "XLT", "ROGUE", "RUGGED", "LTZ", "Z71",
)

# parent model -> child models that must not cross-match
MODEL_COLLISIONS = {
    "landcruiser": ("prado",),
    "pajero": ("pajero sport",),
    "colorado": ("colorado 7",),
}


# =============================================================================
# FIELD PARSERS
# =============================================================================

YEAR_RE = re.compile(r"(?<!\d)(19[89]\d|20\d\d)(?!\d)")
PRICE_RE = re.compile(r"(?:AUD\s*)?\$\s*(\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?", re.IGNORECASE)
LABELLED_PRICE_RE = re.compile(
    r"\b(?:price|asking)\s*:?\s*(?:AUD\s*)?\$?\s*(\d{1,3}(?:,\d{3})+|\d+)", re.IGNORECASE
)
KM_RE = re.compile(
    r"(?<![\d,])(\d{1,3}(?:,\d{3})+|\d+)\s*(?:km|kms|kilometres|kilometers)\b", re.IGNORECASE
)
LABELLED_KM_RE = re.compile(r"\b(?:odometer|kms?)\s*:\s*(\d{1,3}(?:,\d{3})+|\d+)", re.IGNORECASE)
BARE_KM_LINE_RE = re.compile(r"^\s*(\d{1,3}(?:,\d{3})+|\d{4,6})\s*$")
STATE_RE = re.compile(r"\b(" + "|".join(AU_STATES) + r")\b")
LOCATION_RE = re.compile(
    r"\b([A-Z][a-z]+(?:[ -][A-Z][a-z]+){0,2}),?\s+(" + "|".join(AU_STATES) + r")\b"
)
VIN_RE = re.compile(r"\b[A-HJ-NPR-Z0-9]{17}\b", re.IGNORECASE)
STOCK_RE = re.compile(
    r"\b(?:stock\s*(?:no\.?|number|#|id|:)|stk\s*#|lot\s*(?:no\.?|number|#|:))\s*[:#]?\s*"
    r"([A-Z0-9-]*\d[A-Z0-9-]*)",
    re.IGNORECASE,
)
MARKDOWN_LINK_RE = re.compile(r"\]\((https?://[^)\s]+)\)")
BARE_URL_RE = re.compile(r"https?://[^\s\"'<>)\]]+")


def _max_year() -> int:
    return datetime.now().year + 1


def _to_int(value: str) -> int:
    return int(value.replace(",", ""))


def parse_year(text: str, prefer_before: Optional[re.Pattern] = None) -> Optional[int]:
    """
    Find a plausible model year.

    When ``prefer_before`` is given, a year directly followed (within a few
    words) by a match of that pattern wins over the first year in the text.
    """
    if not text:
        return None
    first = None
    for match in YEAR_RE.finditer(text):
        year = int(match.group(1))
        if not MIN_YEAR <= year <= _max_year():
            continue
        if prefer_before is not None and prefer_before.search(text[match.end():match.end() + 40]):
            return year
        if first is None:
            first = year
    return first


def parse_price(text: str) -> Optional[int]:
    """First currency amount inside the plausible vehicle price window."""
    if not text:
        return None
    for pattern in (PRICE_RE, LABELLED_PRICE_RE):
        for match in pattern.finditer(text):
            price = _to_int(match.group(1))
            if MIN_PRICE <= price <= MAX_PRICE:
                return price
    return None


def parse_km(text: str) -> Optional[int]:
    """Odometer reading followed by a distance unit, or labelled."""
    if not text:
        return None
    for pattern in (KM_RE, LABELLED_KM_RE):
        for match in pattern.finditer(text):
            km = _to_int(match.group(1))
            if 0 <= km <= MAX_KM:
                return km
    return None


def parse_bare_km_line(line: str) -> Optional[int]:
    """A line holding only a 4-6 digit number that is not a plausible year."""
    match = BARE_KM_LINE_RE.match(line)
    if not match:
        return None
    km = _to_int(match.group(1))
    if not MIN_CARD_KM <= km <= MAX_KM:
        return None
    if MIN_YEAR <= km <= _max_year():
        return None
    return km


def parse_location(text: str) -> tuple[Optional[str], Optional[str]]:
    """
    Parse an Australian state and, when present, the suburb before it.

    State tokens are matched upper-case only so words like "sa" or "act"
    in running text are not taken for states.

    Returns:
        (location, state) e.g. ("Penrith, NSW", "NSW")
    """
    if not text:
        return None, None
    match = LOCATION_RE.search(text)
    if match:
        return f"{match.group(1)}, {match.group(2)}", match.group(2)
    match = STATE_RE.search(text)
    if match:
        return None, match.group(1)
    return None, None


def extract_vin(text: str) -> Optional[str]:
    for match in VIN_RE.finditer(text or ""):
        vin = match.group(0).upper()
        if any(c.isdigit() for c in vin) and any(c.isalpha() for c in vin):
            return vin
    return None


def extract_stock_no(text: str) -> Optional[str]:
    match = STOCK_RE.search(text or "")
    return match.group(1).upper().strip("-") if match else None


def extract_badge(text: str) -> Optional[str]:
    upper = (text or "").upper()
    for badge in BADGES:
        if re.search(r"(?<![A-Z0-9])" + re.escape(badge) + r"(?![A-Z0-9])", upper):
            return badge
    return None


# =============================================================================
# MAKE / MODEL MATCHING
# =============================================================================

def _compact(value: str) -> str:
    return re.sub(r"[^a-z0-9]", "", (value or "").lower())


def loose_pattern(term: str) -> re.Pattern:
    """
    Regex for a name that tolerates spacing and hyphen differences.

    "LandCruiser", "Land Cruiser" and "land-cruiser" all match each other.
    """
    chars = _compact(term)
    body = r"[\s_-]?".join(re.escape(c) for c in chars)
    return re.compile(r"(?<![a-z0-9])" + body + r"(?![a-z0-9])", re.IGNORECASE)


@dataclass
class ModelMatch:
    make_found: bool
    model_found: bool
    reject_reason: Optional[str] = None


def match_make_model(text: str, make: str, model: str) -> ModelMatch:
    """
    Check the hunt's make and model against free text.

    The model must appear. A parent-model hunt is rejected when a child
    model of the same family appears (LandCruiser vs Prado); a child-model
    hunt only needs its child token.
    """
    make_found = bool(make) and bool(loose_pattern(make).search(text))
    model_key = _compact(model)

    for parent, children in MODEL_COLLISIONS.items():
        for child in children:
            child_key = _compact(child)
            if model_key == parent and loose_pattern(child).search(text):
                return ModelMatch(make_found, True, "MODEL_COLLISION")
            if model_key == child_key or model_key == parent + child_key:
                found = bool(loose_pattern(child).search(text))
                return ModelMatch(make_found, found, None if found else "MAKE_MODEL_MISMATCH")

    model_found = bool(model_key) and bool(loose_pattern(model).search(text))
    return ModelMatch(make_found, model_found, None if model_found else "MAKE_MODEL_MISMATCH")


# =============================================================================
# CANDIDATE EXTRACTION
# =============================================================================

@dataclass
class ExtractionResult:
    """A candidate draft, or the reason nothing usable was found."""
    candidate: Optional[Candidate] = None
    reject_reason: Optional[str] = None
    # Partially extracted fields, kept for rejection logging
    fields: dict = field(default_factory=dict)


def year_window(hunt: Hunt, profile: Optional[SourceProfile]) -> tuple[int, int]:
    """Accepted year range for a source: the hunt range widened by the source tolerance."""
    tolerance = profile.year_tolerance if profile else 1
    return hunt.year_floor - tolerance, hunt.year_ceiling + tolerance


def _confidence(year, price, make_found, model_found) -> Confidence:
    if year and price and make_found and model_found:
        return Confidence.HIGH
    if (year or price) and (make_found or model_found):
        return Confidence.MEDIUM
    return Confidence.LOW


def _variant(title: str, model: str) -> Optional[str]:
    match = loose_pattern(model).search(title or "")
    if not match:
        return None
    rest = re.split(r"\s[-|]\s|\||,|\$|\n", title[match.end():], maxsplit=1)[0]
    rest = rest.strip(" *#[]()")
    return rest[:60] or None


def extract_candidate(
    url: str,
    title: str,
    text: str,
    hunt: Hunt,
    origin: str = ORIGIN_SNIPPET,
    page: Optional[PageClassification] = None,
    snippet: Optional[str] = None,
) -> ExtractionResult:
    """
    Extract one candidate from a single listing's text.

    Args:
        url: Listing URL (or the results page URL for a card without a link)
        title: Page or card heading
        text: Body text to parse (snippet, page markdown or card lines)
        hunt: The hunt being served
        origin: ORIGIN_SNIPPET, ORIGIN_PAGE or ORIGIN_CARD
        page: Classifier verdict for ``url``; computed when omitted
        snippet: Short text stored on the candidate (defaults to ``text``)

    Returns:
        ExtractionResult with a candidate, or a reject reason of
        MAKE_MODEL_MISMATCH, MODEL_COLLISION or YEAR_OUT_OF_RANGE
    """
    profile = profile_for_url(url)
    page = page or classify_page(url, title)
    full_text = f"{title}\n{text}"

    models = match_make_model(full_text, hunt.make, hunt.model)
    model_rx = loose_pattern(hunt.model) if hunt.model else None
    year = parse_year(title, model_rx) or parse_year(full_text, model_rx)
    price = parse_price(full_text)
    km = parse_km(full_text)
    location, state = parse_location(full_text)

    fields = {"year": year, "asking_price": price, "km": km, "state": state}
    if models.reject_reason:
        return ExtractionResult(reject_reason=models.reject_reason, fields=fields)

    if year is not None:
        low, high = year_window(hunt, profile)
        if not low <= year <= high:
            return ExtractionResult(reject_reason=f"YEAR_OUT_OF_RANGE:{year}", fields=fields)

    verified = origin in (ORIGIN_PAGE, ORIGIN_CARD)
    verified_fields = {name: verified for name, value in fields.items() if value is not None}

    candidate = Candidate(
        hunt_id=hunt.hunt_id,
        criteria_version=hunt.criteria_version,
        source_url=url,
        domain=domain_of(url),
        source_name=profile.name if profile else domain_of(url),
        source_tier=source_tier(url),
        title=(title or "").strip(),
        snippet=(snippet if snippet is not None else text or "").strip()[:500],
        year=year,
        make=hunt.make if models.make_found else None,
        model=hunt.model if models.model_found else None,
        variant=_variant(title, hunt.model) or extract_badge(full_text),
        km=km,
        asking_price=price,
        location=location,
        state=state,
        stock_no=extract_stock_no(full_text),
        vin=extract_vin(full_text),
        confidence=_confidence(year, price, models.make_found, models.model_found),
        is_listing=page.is_listing,
        listing_kind=page.listing_kind,
        page_type=page.page_type,
        verified_fields=verified_fields,
    )
    return ExtractionResult(candidate=candidate, fields=fields)


# =============================================================================
# RESULTS-PAGE CARDS
# =============================================================================

# A vehicle heading: optional markdown heading/bold/link prefix, a year,
# then a capitalised word ("2022 Toyota ..."), so "2022 build" stays a field line
CARD_HEADING_RE = re.compile(
    r"^\s*(?:#{1,6}\s*|\*\*\s*|\[\s*|-\s+\[?)*"
    r"((?:19[89]\d|20\d\d)\s+[A-Z][\w-]*(?:\s+[\w./-]+){0,12})"
)


@dataclass
class Card:
    """Lines belonging to one vehicle heading on a results page."""
    heading: str
    lines: list[str] = field(default_factory=list)
    link: Optional[str] = None
    km: Optional[int] = None

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def _clean_heading(line: str) -> str:
    line = MARKDOWN_LINK_RE.sub("]", line)
    return re.sub(r"[#*\[\]]", "", line).strip()


def _link_in(line: str, profile: Optional[SourceProfile]) -> Optional[str]:
    for url in MARKDOWN_LINK_RE.findall(line) + BARE_URL_RE.findall(line):
        if profile is not None and not profile.owns(url):
            continue
        if classify_page(url).is_listing:
            return url
    return None


def split_cards(markdown: str, profile: Optional[SourceProfile] = None) -> list[Card]:
    """
    Split results-page markdown into cards.

    A heading line opens a card; every following line belongs to it until
    the next heading. Lines before the first heading are ignored.
    """
    cards: list[Card] = []
    current: Optional[Card] = None

    for line in (markdown or "").splitlines():
        if CARD_HEADING_RE.match(line):
            current = Card(heading=_clean_heading(line))
            current.link = _link_in(line, profile)
            cards.append(current)
            continue
        if current is None or not line.strip():
            continue
        current.lines.append(line)
        if current.link is None:
            current.link = _link_in(line, profile)
        if current.km is None:
            current.km = parse_bare_km_line(line)

    return cards


def extract_cards(
    markdown: str,
    page_url: str,
    hunt: Hunt,
) -> list[ExtractionResult]:
    """
    Extract one candidate per vehicle card on a results page.

    Fields are parsed from each card's own lines only. A card without a
    detail link keeps the results page URL and has its confidence
    lowered one level.
    """
    profile = profile_for_url(page_url)
    kind = profile.listing_kind if profile else ListingKind.UNKNOWN
    results = []

    for card in split_cards(markdown, profile):
        url = card.link or page_url
        page = PageClassification(
            page_type=PageType.LISTING,
            listing_kind=kind,
            rule="RESULTS_CARD",
            source_name=profile.name if profile else None,
        )
        result = extract_candidate(
            url, card.heading, card.text, hunt, origin=ORIGIN_CARD, page=page,
        )
        if result.candidate is not None:
            candidate = result.candidate
            if candidate.km is None and card.km is not None:
                candidate.km = card.km
                candidate.verified_fields["km"] = True
            if card.link is None:
                candidate.confidence = candidate.confidence.downgrade()
            candidate.classification["extraction"] = {
                "boundary": "heading",
                "results_page": page_url,
                "has_link": card.link is not None,
            }
        results.append(result)

    logger.debug(f"Extracted {len(results)} cards from {page_url}")
    return results


def extract_detail_urls(
    page_url: str,
    html: str = "",
    markdown: str = "",
    exclude: Optional[set[str]] = None,
) -> list[str]:
    """
    Sweep a results page for individual-listing URLs.

    Looks at HTML anchors and URLs in markdown. Only URLs on the same
    source that classify as listings are kept; ``exclude`` holds URLs
    already owned by a card.
    """
    profile = profile_for_url(page_url)
    exclude = exclude or set()
    found: list[str] = []

    candidates = []
    if html:
        soup = BeautifulSoup(html, "html.parser")
        for a in soup.find_all("a", href=True):
            candidates.append(urljoin(page_url, a["href"].strip()))
    if markdown:
        candidates.extend(MARKDOWN_LINK_RE.findall(markdown))
        candidates.extend(BARE_URL_RE.findall(markdown))

    for url in candidates:
        url = url.split("#", 1)[0].rstrip("/")
        if url in exclude or url in found:
            continue
        if profile is not None and not profile.owns(url):
            continue
        if classify_page(url).is_listing:
            found.append(url)

    return found


def slug_text(url: str) -> str:
    """Readable words from a URL path, for listings known only by their link."""
    path = re.sub(r"^[a-z]+://[^/]+", "", url, flags=re.IGNORECASE).split("?", 1)[0]
    return re.sub(r"[/_-]+", " ", path).strip()
