"""
Query orchestrator for Hunt Alerts.

Drives one run of the pipeline against one hunt:

    building_queries -> tier1_priority_search -> tier2_fallback_search -> finalizing

Tier 1 queries the priority auction sources. Tier 2 (marketplaces and the
open web) only runs when tier 1 created too few candidates. Every search
result goes through classify -> extract -> gate -> score -> upsert -> alert.
Results pages of high-volume sources are scraped once per run and split
into cards.

Provider failures are recorded on the run and never abort it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .alerts import AlertEmitter
from .classification import classify_listing_intent, classify_page
from .compatibility import gate_candidate, normalize_value
from .config import AppConfig, get_app_config
from .db import Database
from .dedup import CandidateStore, RunDedupContext, assign_canonical_id
from .extraction import (
    ORIGIN_PAGE,
    ORIGIN_SNIPPET,
    ExtractionResult,
    extract_candidate,
    extract_cards,
    extract_detail_urls,
    slug_text,
)
from .models import Candidate, Decision, Hunt, PageType, Run, RunStatus
from .scoring import apply_decision
from .sources.base import ProviderError
from .sources.firecrawl import ScrapeProvider, SearchProvider, SearchResult
from .sources.registry import MARKETPLACE_SOURCES, PRIORITY_SOURCES, profile_for_url

logger = logging.getLogger(__name__)

SNIPPET_MARKDOWN_CHARS = 500


class Phase(str, Enum):
    BUILDING_QUERIES = "building_queries"
    TIER1_PRIORITY_SEARCH = "tier1_priority_search"
    TIER2_FALLBACK_SEARCH = "tier2_fallback_search"
    FINALIZING = "finalizing"


@dataclass
class Query:
    """One unit of work for a tier."""
    text: str
    tier: int
    kind: str  # broad, narrow, caller, open_web, results_page
    source_name: Optional[str] = None
    url: Optional[str] = None  # set for results_page seeds


# =============================================================================
# QUERY BUILDING
# =============================================================================

def _years(hunt: Hunt) -> str:
    if hunt.year_floor == hunt.year_ceiling:
        return str(hunt.year_floor)
    return f"{hunt.year_floor}-{hunt.year_ceiling}"


def _requirement_terms(hunt: Hunt) -> list[str]:
    """Search words for the hunt's required attributes."""
    terms = []
    if hunt.series_family:
        terms.append(hunt.series_family)
    for value in (hunt.cab_type, hunt.body_type):
        normalized = normalize_value(value)
        if normalized:
            terms.append(normalized.replace("_", " ").lower())
    terms.extend(t for t in hunt.must_have_tokens if t not in terms)
    return terms


def narrowed_text(hunt: Hunt) -> str:
    return " ".join([_years(hunt), hunt.make, hunt.model] + _requirement_terms(hunt))


def build_tier1_queries(
    hunt: Hunt,
    extra_queries: Optional[list[str]] = None,
    limit: int = 8,
) -> list[Query]:
    """
    Priority-source queries in execution order.

    Broad make+model queries per priority source come first (maximum
    recall), then requirement-narrowed queries against the same sources, then
    caller-supplied queries, then direct results-page seeds. ``limit``
    caps the generated search queries only.
    """
    broad = [
        Query(f"site:{s.primary_domain} {hunt.make} {hunt.model}", 1, "broad", s.name)
        for s in PRIORITY_SOURCES
    ]
    narrow = [
        Query(f"site:{s.primary_domain} {narrowed_text(hunt)}", 1, "narrow", s.name)
        for s in PRIORITY_SOURCES
    ]
    queries = (broad + narrow)[:limit]
    queries += [Query(q, 1, "caller") for q in (extra_queries or []) if q and q.strip()]
    for source in PRIORITY_SOURCES:
        url = source.search_url(hunt.make, hunt.model)
        if url:
            queries.append(Query(url, 1, "results_page", source.name, url=url))
    return queries


def build_tier2_queries(hunt: Hunt, limit: int = 8) -> list[Query]:
    """Marketplace and open-web fallback queries."""
    queries = [
        Query(f"site:{s.primary_domain} {narrowed_text(hunt)}", 2, "narrow", s.name)
        for s in MARKETPLACE_SOURCES
    ]
    queries.append(Query(f"{_years(hunt)} {hunt.make} {hunt.model} for sale Australia", 2, "open_web"))
    queries.append(Query(f"{narrowed_text(hunt)} dealer stock", 2, "open_web"))
    return queries[:limit]


# =============================================================================
# RUNNER
# =============================================================================

class HuntRunner:
    """
    Runs the pipeline once for one hunt.

    Usage:
        runner = HuntRunner(hunt, db, search, scrape)
        run = runner.run(max_results=10)
    """

    def __init__(
        self,
        hunt: Hunt,
        db: Database,
        search: SearchProvider,
        scrape: ScrapeProvider,
        config: Optional[AppConfig] = None,
    ):
        self.hunt = hunt
        self.db = db
        self.search = search
        self.scrape = scrape
        self.config = config or get_app_config()
        self.store = CandidateStore(db)
        self.alerts = AlertEmitter(db)
        self.ctx = RunDedupContext()
        self.run_record = Run(hunt_id=hunt.hunt_id, criteria_version=hunt.criteria_version)
        self.phase = Phase.BUILDING_QUERIES
        self.max_results = self.config.max_results
        # canonical_id -> candidate, BUY/WATCH seen this run
        self._actionable: dict[str, Candidate] = {}

    def run(self, max_results: Optional[int] = None, extra_queries: Optional[list[str]] = None) -> Run:
        """
        Execute all phases and return the finalized run.

        Raises:
            Exception: anything unexpected, after the run is finalized as failed
        """
        run = self.run_record
        if max_results:
            self.max_results = max_results
        run.run_id = self.db.create_run(run)

        try:
            self.store.mark_stale(self.hunt)

            self.phase = Phase.BUILDING_QUERIES
            tier1 = build_tier1_queries(self.hunt, extra_queries, self.config.max_queries_per_tier)
            logger.info(f"Hunt {self.hunt.hunt_id}: {len(tier1)} tier 1 queries")

            self.phase = Phase.TIER1_PRIORITY_SEARCH
            for query in tier1:
                self._execute(query)

            tier1_created = run.candidates_created
            if tier1_created < self.config.tier2_min_yield:
                self.phase = Phase.TIER2_FALLBACK_SEARCH
                run.tier2_triggered = True
                tier2 = build_tier2_queries(self.hunt, self.config.max_queries_per_tier)
                logger.info(
                    f"Tier 1 created {tier1_created} (< {self.config.tier2_min_yield}), "
                    f"running {len(tier2)} tier 2 queries"
                )
                for query in tier2:
                    self._execute(query)

            self._enrich()
        except Exception as e:
            logger.exception(f"Run for hunt {self.hunt.hunt_id} crashed: {e}")
            self.phase = Phase.FINALIZING
            run.record_error(f"crash: {e}")
            run.finalize(RunStatus.FAILED)
            self.db.finalize_run(run)
            raise

        self.phase = Phase.FINALIZING
        status = run.finalize()
        self.db.finalize_run(run)
        self.db.touch_hunt_scanned(self.hunt.hunt_id)
        logger.info(
            f"Hunt {self.hunt.hunt_id} {status.value}: {run.queries_run} queries, "
            f"{run.candidates_created} created, {run.candidates_updated} updated, "
            f"{run.candidates_rejected} rejected, {run.alerts_emitted} alerts"
        )
        return run

    # -------------------------------------------------------------------------
    # Query execution
    # -------------------------------------------------------------------------

    def _execute(self, query: Query) -> None:
        run = self.run_record
        run.queries.append(query.text)
        run.bump("queries_run")

        try:
            if query.kind == "results_page":
                self._handle_results_page(query.url)
                return
            results = self.search.search(query.text, limit=self.max_results)
        except ProviderError as e:
            run.bump("queries_failed")
            run.record_error(f"{query.text}: {e}")
            logger.warning(f"Query failed '{query.text}': {e}")
            return

        run.bump("results_found", len(results))
        for result in results:
            self._handle_result(result)

    def _handle_result(self, result: SearchResult) -> None:
        run = self.run_record
        page = classify_page(result.url, result.title)
        profile = profile_for_url(result.url)

        if (
            page.page_type in (PageType.SEARCH, PageType.CATEGORY)
            and profile is not None
            and profile.high_volume
            and not profile.blocked
        ):
            try:
                self._handle_results_page(result.url)
            except ProviderError as e:
                run.record_error(f"results page {result.url}: {e}")
                logger.warning(f"Results page scrape failed {result.url}: {e}")
            return

        if not page.is_listing:
            run.bump("non_listings_seen")
            run.record_reject(page.reject_reason or "NON_LISTING")
            return

        run.bump("listings_seen")
        text = result.description or result.markdown[:SNIPPET_MARKDOWN_CHARS]
        extraction = extract_candidate(result.url, result.title, text, self.hunt, origin=ORIGIN_SNIPPET, page=page)
        if extraction.candidate is not None:
            intent = classify_listing_intent(result.url, result.title, text)
            extraction.candidate.classification["intent"] = intent.intent
        self._accept(extraction)

    def _handle_results_page(self, url: str) -> None:
        """Scrape a results page once per run and process its cards and detail links."""
        if not self.ctx.claim_page(url):
            return
        run = self.run_record
        page = self.scrape.scrape(url)
        run.bump("results_pages_scraped")

        owned: set[str] = set()
        for extraction in extract_cards(page.markdown, url, self.hunt):
            run.bump("listings_seen")
            candidate = self._accept(extraction)
            if candidate is not None:
                owned.add(candidate.source_url.rstrip("/"))

        swept = extract_detail_urls(url, page.html, page.markdown, exclude=owned | self.ctx.seen_urls)
        for detail_url in swept:
            run.bump("listings_seen")
            words = slug_text(detail_url)
            self._accept(extract_candidate(detail_url, words, "", self.hunt, origin=ORIGIN_SNIPPET))

        logger.info(f"Results page {url}: {len(owned)} cards, {len(swept)} swept links")

    # -------------------------------------------------------------------------
    # Candidate handling
    # -------------------------------------------------------------------------

    def _accept(self, extraction: ExtractionResult, canonical: Optional[str] = None) -> Optional[Candidate]:
        """
        Gate, score and persist an extraction.

        Returns:
            The persisted candidate, or None when rejected
        """
        run = self.run_record
        if extraction.candidate is None:
            run.bump("candidates_rejected")
            run.record_reject(extraction.reject_reason or "EXTRACTION_FAILED")
            return None

        candidate = extraction.candidate
        assign_canonical_id(candidate)
        if canonical:
            candidate.canonical_id = canonical

        prior = self.store.lookup(candidate)
        self.store.merge_prior(candidate, prior)

        gate = gate_candidate(candidate, self.hunt)
        apply_decision(candidate, self.hunt, gate)

        if not gate.allow_watch:
            run.bump("candidates_rejected")
            run.record_reject(gate.hard_reasons[0])
            logger.debug(f"Rejected {candidate.source_url}: {gate.hard_reasons}")
            if prior is not None and prior.decision != Decision.IGNORE:
                # Stored record now contradicted by better evidence
                self.store.save(candidate, prior, run.run_id)
            return None

        outcome = self.store.save(candidate, prior, run.run_id)
        if outcome.created:
            run.bump("candidates_created")
        else:
            run.bump("candidates_updated")
        self.ctx.remember(candidate)

        if candidate.decision.is_actionable:
            self._actionable[candidate.canonical_id] = candidate
        else:
            self._actionable.pop(candidate.canonical_id, None)
            if candidate.reject_reason:
                run.record_reject(candidate.reject_reason)

        if outcome.should_alert and self.alerts.emit(candidate, self.hunt):
            run.bump("alerts_emitted")
        return candidate

    def _enrich(self) -> None:
        """
        Scrape actionable candidates whose price is only inferred.

        The page is re-extracted, re-gated and re-scored under the same
        canonical id. Blocked sources and cards without a detail link are
        skipped.
        """
        run = self.run_record
        targets = []
        for candidate in list(self._actionable.values()):
            profile = profile_for_url(candidate.source_url)
            if candidate.is_verified("asking_price"):
                continue
            if profile is not None and profile.blocked:
                continue
            if not classify_page(candidate.source_url).is_listing:
                continue
            targets.append(candidate)

        for candidate in targets[:self.config.max_enrichments]:
            try:
                page = self.scrape.scrape(candidate.source_url)
            except ProviderError as e:
                run.record_error(f"enrich {candidate.source_url}: {e}")
                logger.warning(f"Enrichment failed for {candidate.source_url}: {e}")
                continue

            run.bump("enrichments")
            extraction = extract_candidate(
                candidate.source_url,
                candidate.title,
                page.markdown,
                self.hunt,
                origin=ORIGIN_PAGE,
                snippet=candidate.snippet,
            )
            if extraction.candidate is None:
                self._demote(candidate, extraction.reject_reason or "EXTRACTION_FAILED")
                continue
            extraction.candidate.classification.update(
                {k: v for k, v in candidate.classification.items() if k in ("intent", "extraction")}
            )
            self._accept(extraction, canonical=candidate.canonical_id)

    def _demote(self, candidate: Candidate, reason: str) -> None:
        """Page content contradicts a stored actionable candidate."""
        run = self.run_record
        prior = self.store.lookup(candidate)
        candidate.decision = Decision.IGNORE
        candidate.reject_reason = reason
        self.store.save(candidate, prior, run.run_id)
        run.record_reject(reason)
        self._actionable.pop(candidate.canonical_id, None)
        logger.info(f"Demoted {candidate.canonical_id} after enrichment: {reason}")
