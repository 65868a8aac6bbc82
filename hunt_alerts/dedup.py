"""
Deduplication and persistence adapter for Hunt Alerts.

Every candidate gets a canonical identifier, strongest source first:
1. Record id from the source's detail URL shape, e.g. ``pickles:12345678``
2. Source stock/lot number in the same namespace, so a results-page card
   and its detail page collapse to one record
3. Hash of the normalized URL for detail pages without an id shape
4. Hash over title, price, odometer and state (last resort)

Candidates are upserted on (hunt_id, criteria_version, canonical_id).
"""

import hashlib
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from .classification import classify_page
from .db import Database
from .models import Candidate, Decision, Hunt, IdSource
from .sources.registry import profile_for_url

logger = logging.getLogger(__name__)

# Fields that can be confirmed from page content
VERIFIABLE_FIELDS = ("year", "asking_price", "km", "state")
# Fields kept from the stored record when a rediscovery lacks them
STICKY_FIELDS = ("location", "variant", "stock_no", "vin")

TRACKING_PARAMS = re.compile(r"^(utm_\w+|gclid|fbclid|srsltid|ref|source)$", re.IGNORECASE)


def normalize_url(url: str) -> str:
    """Lower-case host without www, no fragment, no tracking params, no trailing slash."""
    parts = urlparse(url.strip())
    host = (parts.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    query = urlencode([(k, v) for k, v in parse_qsl(parts.query) if not TRACKING_PARAMS.match(k)])
    path = parts.path.rstrip("/") or "/"
    return urlunparse(("https", host, path, "", query, ""))


def _digest(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def content_hash(title: str, price, km, state) -> str:
    parts = [re.sub(r"\s+", " ", (title or "").lower()).strip(), str(price or ""), str(km or ""), (state or "").upper()]
    return _digest("|".join(parts))


def canonical_id(
    url: str,
    source_name: Optional[str] = None,
    stock_no: Optional[str] = None,
    title: str = "",
    price=None,
    km=None,
    state: Optional[str] = None,
) -> tuple[str, IdSource]:
    """
    Compute the dedup key for a candidate.

    Returns:
        (canonical_id, id_source)
    """
    profile = profile_for_url(url)
    if profile is not None:
        record_id = profile.detail_id(url)
        if record_id:
            return f"{profile.name}:{record_id}", IdSource.URL

    source = profile.name if profile else source_name
    if stock_no and source:
        return f"{source}:{stock_no.strip().upper()}", IdSource.STOCK

    if classify_page(url).is_listing:
        return f"{source or 'url'}:{_digest(normalize_url(url))[:16]}", IdSource.URL_HASH

    return f"content:{content_hash(title, price, km, state)[:16]}", IdSource.CONTENT_HASH


def assign_canonical_id(candidate: Candidate) -> str:
    candidate.canonical_id, candidate.id_source = canonical_id(
        candidate.source_url,
        candidate.source_name,
        candidate.stock_no,
        candidate.title,
        candidate.asking_price,
        candidate.km,
        candidate.state,
    )
    return candidate.canonical_id


@dataclass
class RunDedupContext:
    """
    Per-run dedup state. Created for one run and passed explicitly.

    Nothing here outlives the run; cross-run dedup lives in the database.
    """
    seen_ids: dict[str, str] = field(default_factory=dict)  # canonical_id -> record id
    seen_urls: set[str] = field(default_factory=set)
    scraped_pages: set[str] = field(default_factory=set)

    def seen(self, canonical: str) -> bool:
        return canonical in self.seen_ids

    def remember(self, candidate: Candidate) -> None:
        self.seen_ids[candidate.canonical_id] = candidate.record_id or ""
        self.seen_urls.add(candidate.source_url.rstrip("/"))

    def claim_page(self, url: str) -> bool:
        """True the first time a results page is claimed for scraping in this run."""
        key = normalize_url(url)
        if key in self.scraped_pages:
            return False
        self.scraped_pages.add(key)
        return True


@dataclass
class UpsertOutcome:
    record_id: str
    created: bool
    previous_decision: Optional[Decision] = None
    should_alert: bool = False


class CandidateStore:
    """Candidate lookups and idempotent writes."""

    def __init__(self, db: Database):
        self.db = db

    def lookup(self, candidate: Candidate) -> Optional[Candidate]:
        return self.db.find_candidate(candidate.hunt_id, candidate.criteria_version, candidate.canonical_id)

    @staticmethod
    def merge_prior(candidate: Candidate, prior: Optional[Candidate]) -> Candidate:
        """
        Fold the stored record into a fresh extraction.

        A verified stored value wins over a new value that is only inferred
        from a search snippet. Missing values are filled from the stored record.
        """
        if prior is None:
            return candidate

        for name in VERIFIABLE_FIELDS:
            new_value = getattr(candidate, name)
            old_value = getattr(prior, name)
            if old_value is None:
                continue
            if prior.is_verified(name) and not candidate.is_verified(name):
                setattr(candidate, name, old_value)
                candidate.verified_fields[name] = True
            elif new_value is None:
                setattr(candidate, name, old_value)
                candidate.verified_fields[name] = prior.is_verified(name)

        for name in STICKY_FIELDS:
            if getattr(candidate, name) is None and getattr(prior, name) is not None:
                setattr(candidate, name, getattr(prior, name))

        # A card without a detail link only knows the results page URL
        if not candidate.classification.get("extraction", {}).get("has_link", True) and prior.source_url:
            candidate.source_url = prior.source_url

        candidate.record_id = prior.record_id
        candidate.alert_emitted = prior.alert_emitted
        return candidate

    def save(
        self,
        candidate: Candidate,
        prior: Optional[Candidate],
        run_id: Optional[str] = None,
    ) -> UpsertOutcome:
        """
        Upsert a candidate and report what changed.

        ``should_alert`` is set when the candidate is BUY or WATCH and no
        alert has ever been emitted for it.
        """
        now = datetime.utcnow().isoformat()
        row = candidate.to_row()
        row["last_seen_at"] = now
        row["last_run_id"] = run_id
        if prior is None:
            row["first_seen_at"] = now
            row["alert_emitted"] = False

        record_id = self.db.upsert_candidate(row)
        candidate.record_id = record_id

        already_alerted = prior.alert_emitted if prior is not None else False
        outcome = UpsertOutcome(
            record_id=record_id,
            created=prior is None,
            previous_decision=prior.decision if prior is not None else None,
            should_alert=candidate.decision.is_actionable and not already_alerted,
        )
        if outcome.created:
            logger.info(f"New candidate {candidate.canonical_id}: {candidate.decision.value} ({candidate.match_score})")
        elif outcome.previous_decision != candidate.decision:
            logger.info(
                f"Candidate {candidate.canonical_id}: {outcome.previous_decision.value} -> {candidate.decision.value}"
            )
        return outcome

    def mark_stale(self, hunt: Hunt) -> int:
        return self.db.mark_stale_candidates(hunt.hunt_id, hunt.criteria_version)
