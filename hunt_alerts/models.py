"""
Data models for Hunt Alerts.

Defines the dataclasses shared by every pipeline stage.
These models mirror the rows stored in Supabase for hunts, candidates,
runs and alerts.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from enum import Enum


class Decision(str, Enum):
    """Action decided for a candidate."""
    BUY = "BUY"
    WATCH = "WATCH"
    IGNORE = "IGNORE"

    @property
    def is_actionable(self) -> bool:
        return self in (Decision.BUY, Decision.WATCH)


class Confidence(str, Enum):
    """Extraction / detection confidence."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    def downgrade(self) -> "Confidence":
        if self == Confidence.HIGH:
            return Confidence.MEDIUM
        return Confidence.LOW


class ListingKind(str, Enum):
    """What kind of record a listing page holds."""
    RETAIL_LISTING = "retail_listing"
    AUCTION_LOT = "auction_lot"
    DEALER_STOCK = "dealer_stock"
    UNKNOWN = "unknown"


class PageType(str, Enum):
    """Page classification verdicts."""
    LISTING = "listing"
    ARTICLE = "article"
    SEARCH = "search"
    CATEGORY = "category"
    LOGIN = "login"
    OTHER = "other"


class RunStatus(str, Enum):
    """Lifecycle states of a hunt run."""
    RUNNING = "running"
    SUCCESS = "success"
    PARTIAL = "partial"
    FAILED = "failed"


class IdSource(str, Enum):
    """Where a canonical identifier came from, strongest first."""
    URL = "url"
    STOCK = "stock"
    URL_HASH = "url_hash"
    CONTENT_HASH = "content_hash"


def _parse_ts(value) -> Optional[datetime]:
    if not value:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


@dataclass
class Hunt:
    """
    A stored vehicle search profile.

    Owned by the dashboard; the pipeline only reads it. ``criteria_version``
    increases whenever the dealer edits the criteria, which invalidates
    candidates found under an older version.
    """
    hunt_id: str
    make: str
    model: str
    year: int
    dealer_id: Optional[str] = None
    year_min: Optional[int] = None
    year_max: Optional[int] = None

    # Compatibility requirements (None = any)
    series_family: Optional[str] = None
    engine_family: Optional[str] = None
    cab_type: Optional[str] = None
    body_type: Optional[str] = None
    must_have_tokens: list[str] = field(default_factory=list)
    must_have_mode: Optional[str] = None  # "soft" or "strict"

    # Economics
    proven_exit_value: Optional[float] = None
    min_gap_abs_buy: float = 0.0
    min_gap_pct_buy: float = 0.0
    min_gap_abs_watch: float = 0.0
    min_gap_pct_watch: float = 0.0

    criteria_version: int = 1
    status: str = "active"

    @property
    def year_floor(self) -> int:
        return self.year_min if self.year_min is not None else self.year

    @property
    def year_ceiling(self) -> int:
        return self.year_max if self.year_max is not None else self.year

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    @classmethod
    def from_dict(cls, data: dict) -> "Hunt":
        """Create from a ``sale_hunts`` row."""
        tokens = data.get("must_have_tokens") or []
        return cls(
            hunt_id=str(data.get("id") or data["hunt_id"]),
            dealer_id=data.get("dealer_id"),
            make=data.get("make") or "",
            model=data.get("model") or "",
            year=int(data["year"]),
            year_min=data.get("year_min"),
            year_max=data.get("year_max"),
            series_family=data.get("series_family"),
            engine_family=data.get("engine_family"),
            cab_type=data.get("cab_type"),
            body_type=data.get("body_type"),
            must_have_tokens=[str(t).upper() for t in tokens],
            must_have_mode=data.get("must_have_mode"),
            proven_exit_value=data.get("proven_exit_value"),
            min_gap_abs_buy=float(data.get("min_gap_abs_buy") or 0),
            min_gap_pct_buy=float(data.get("min_gap_pct_buy") or 0),
            min_gap_abs_watch=float(data.get("min_gap_abs_watch") or 0),
            min_gap_pct_watch=float(data.get("min_gap_pct_watch") or 0),
            criteria_version=int(data.get("criteria_version") or 1),
            status=data.get("status") or "active",
        )


@dataclass
class Candidate:
    """
    One discovered, not-yet-verified listing.

    Uniquely identified by (hunt_id, criteria_version, canonical_id).
    """
    hunt_id: str
    criteria_version: int
    source_url: str
    domain: str
    source_name: str
    source_tier: int = 3
    title: str = ""
    snippet: str = ""

    # Extracted fields
    year: Optional[int] = None
    make: Optional[str] = None
    model: Optional[str] = None
    variant: Optional[str] = None
    km: Optional[int] = None
    asking_price: Optional[float] = None
    location: Optional[str] = None
    state: Optional[str] = None
    stock_no: Optional[str] = None
    vin: Optional[str] = None

    canonical_id: str = ""
    id_source: IdSource = IdSource.CONTENT_HASH
    confidence: Confidence = Confidence.LOW

    # Classification outputs
    is_listing: bool = False
    listing_kind: ListingKind = ListingKind.UNKNOWN
    page_type: PageType = PageType.OTHER
    classification: dict = field(default_factory=dict)

    # Scoring outputs
    match_score: float = 0.0
    decision: Decision = Decision.IGNORE
    reasons: list[str] = field(default_factory=list)
    reject_reason: Optional[str] = None
    gap_dollars: Optional[float] = None
    gap_pct: Optional[float] = None

    # field name -> True when confirmed from page content
    verified_fields: dict[str, bool] = field(default_factory=dict)

    alert_emitted: bool = False
    is_stale: bool = False

    # Set once persisted
    record_id: Optional[str] = None

    def text_blob(self) -> str:
        """All free text used for signal matching."""
        parts = [self.title, self.snippet, self.variant or "", self.source_url]
        return " ".join(p for p in parts if p)

    def is_verified(self, field_name: str) -> bool:
        return bool(self.verified_fields.get(field_name))

    def to_row(self) -> dict:
        """Convert to a ``hunt_external_candidates`` row."""
        return {
            "hunt_id": self.hunt_id,
            "criteria_version": self.criteria_version,
            "canonical_id": self.canonical_id,
            "id_source": self.id_source.value,
            "source_url": self.source_url,
            "domain": self.domain,
            "source_name": self.source_name,
            "source_tier": self.source_tier,
            "title": self.title[:200],
            "snippet": self.snippet[:500],
            "year": self.year,
            "make": self.make,
            "model": self.model,
            "variant": self.variant,
            "km": self.km,
            "asking_price": self.asking_price,
            "location": self.location,
            "state": self.state,
            "stock_no": self.stock_no,
            "vin": self.vin,
            "confidence": self.confidence.value,
            "is_listing": self.is_listing,
            "listing_kind": self.listing_kind.value,
            "page_type": self.page_type.value,
            "classification": self.classification,
            "match_score": self.match_score,
            "decision": self.decision.value,
            "reasons": self.reasons,
            "reject_reason": self.reject_reason,
            "gap_dollars": self.gap_dollars,
            "gap_pct": self.gap_pct,
            "verified_fields": self.verified_fields,
            "is_stale": self.is_stale,
        }

    @classmethod
    def from_row(cls, data: dict) -> "Candidate":
        """Create from a ``hunt_external_candidates`` row."""
        return cls(
            hunt_id=str(data["hunt_id"]),
            criteria_version=int(data.get("criteria_version") or 1),
            source_url=data.get("source_url", ""),
            domain=data.get("domain", ""),
            source_name=data.get("source_name", ""),
            source_tier=int(data.get("source_tier") or 3),
            title=data.get("title") or "",
            snippet=data.get("snippet") or "",
            year=data.get("year"),
            make=data.get("make"),
            model=data.get("model"),
            variant=data.get("variant"),
            km=data.get("km"),
            asking_price=data.get("asking_price"),
            location=data.get("location"),
            state=data.get("state"),
            stock_no=data.get("stock_no"),
            vin=data.get("vin"),
            canonical_id=data.get("canonical_id", ""),
            id_source=IdSource(data.get("id_source") or "content_hash"),
            confidence=Confidence(data.get("confidence") or "low"),
            is_listing=bool(data.get("is_listing")),
            listing_kind=ListingKind(data.get("listing_kind") or "unknown"),
            page_type=PageType(data.get("page_type") or "other"),
            classification=data.get("classification") or {},
            match_score=float(data.get("match_score") or 0),
            decision=Decision(data.get("decision") or "IGNORE"),
            reasons=list(data.get("reasons") or []),
            reject_reason=data.get("reject_reason"),
            gap_dollars=data.get("gap_dollars"),
            gap_pct=data.get("gap_pct"),
            verified_fields=dict(data.get("verified_fields") or {}),
            alert_emitted=bool(data.get("alert_emitted")),
            is_stale=bool(data.get("is_stale")),
            record_id=data.get("id"),
        )


@dataclass
class Run:
    """
    Metrics and status for one orchestrator invocation against one hunt.

    Mutable while running; frozen once ``finalize`` has been called.
    """
    hunt_id: str
    criteria_version: int = 1
    run_id: Optional[str] = None
    status: RunStatus = RunStatus.RUNNING

    queries: list[str] = field(default_factory=list)
    queries_run: int = 0
    queries_failed: int = 0
    results_found: int = 0
    listings_seen: int = 0
    non_listings_seen: int = 0
    results_pages_scraped: int = 0
    candidates_created: int = 0
    candidates_updated: int = 0
    candidates_rejected: int = 0
    alerts_emitted: int = 0
    enrichments: int = 0
    tier2_triggered: bool = False
    reject_reasons: dict[str, int] = field(default_factory=dict)
    errors: list[str] = field(default_factory=list)

    started_at: datetime = field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None

    @property
    def is_finalized(self) -> bool:
        return self.finished_at is not None

    def _check_open(self) -> None:
        if self.is_finalized:
            raise RuntimeError(f"Run {self.run_id or self.hunt_id} is already finalized")

    def bump(self, counter: str, amount: int = 1) -> None:
        """Increment an integer metric."""
        self._check_open()
        setattr(self, counter, getattr(self, counter) + amount)

    def record_reject(self, reason: str) -> None:
        """Count a rejection under its reason code (without the ``:detail`` suffix)."""
        self._check_open()
        key = reason.split(":")[0]
        self.reject_reasons[key] = self.reject_reasons.get(key, 0) + 1

    def record_error(self, message: str) -> None:
        self._check_open()
        self.errors.append(message)

    def finalize(self, status: Optional[RunStatus] = None) -> RunStatus:
        """Close the run and derive its status unless one is forced."""
        self._check_open()
        if status is None:
            if not self.errors:
                status = RunStatus.SUCCESS
            elif self.queries_run and self.queries_failed >= self.queries_run:
                status = RunStatus.FAILED
            else:
                status = RunStatus.PARTIAL
        self.status = status
        self.finished_at = datetime.utcnow()
        return status

    def to_dict(self) -> dict:
        return {
            "hunt_id": self.hunt_id,
            "criteria_version": self.criteria_version,
            "status": self.status.value,
            "queries": self.queries,
            "queries_run": self.queries_run,
            "queries_failed": self.queries_failed,
            "results_found": self.results_found,
            "listings_seen": self.listings_seen,
            "non_listings_seen": self.non_listings_seen,
            "results_pages_scraped": self.results_pages_scraped,
            "candidates_created": self.candidates_created,
            "candidates_updated": self.candidates_updated,
            "candidates_rejected": self.candidates_rejected,
            "alerts_emitted": self.alerts_emitted,
            "enrichments": self.enrichments,
            "tier2_triggered": self.tier2_triggered,
            "reject_reasons": self.reject_reasons,
            "errors": self.errors,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
        }


@dataclass
class Alert:
    """
    One-shot notification handed off when a candidate first becomes BUY or WATCH.
    """
    hunt_id: str
    listing_id: str
    canonical_id: str
    alert_type: Decision
    payload: dict = field(default_factory=dict)
    alert_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "hunt_id": self.hunt_id,
            "listing_id": self.listing_id,
            "canonical_id": self.canonical_id,
            "alert_type": self.alert_type.value,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Alert":
        return cls(
            alert_id=data.get("id"),
            hunt_id=str(data["hunt_id"]),
            listing_id=str(data["listing_id"]),
            canonical_id=data.get("canonical_id", ""),
            alert_type=Decision(data["alert_type"]),
            payload=data.get("payload") or {},
            created_at=_parse_ts(data.get("created_at")) or datetime.utcnow(),
        )
