"""
Hunt Alerts - Outward listing discovery for dealer vehicle hunts

Given a stored vehicle search profile (a hunt), searches auction houses,
marketplaces and dealer sites, extracts candidate listings, filters them
against strict compatibility rules, scores them against the hunt's price
economics and hands off BUY / WATCH alerts.

Modules:
- config: Configuration and environment variables
- models: Data models (dataclasses)
- db: Supabase integration for storage
- sources: Search/scrape providers and known listing sources
- classification: Page classifier (ordered URL-shape rules)
- extraction: Field parsers, listing and results-page card extraction
- compatibility: Series/engine/cab/body detection and gates
- scoring: Match score and BUY/WATCH/IGNORE decision
- dedup: Canonical identifiers and idempotent candidate storage
- alerts: One-shot alert hand-off
- orchestrator: Tiered query state machine
- pipeline: run_hunt request/response entry point
- scheduler: APScheduler setup for periodic runs
- server: Flask endpoint
"""

__version__ = "0.1.0"

# Convenient imports
from .models import (
    Hunt,
    Candidate,
    Run,
    Alert,
    Decision,
    Confidence,
    ListingKind,
    PageType,
    RunStatus,
)
from .classification import classify_page, classify_listing_intent, source_tier
from .extraction import extract_candidate, extract_cards, extract_detail_urls
from .compatibility import evaluate, GateResult
from .scoring import decide, ScoreResult
from .dedup import canonical_id, CandidateStore, RunDedupContext
from .orchestrator import HuntRunner
from .pipeline import run_hunt, run_active_hunts, HuntNotFoundError

__all__ = [
    # Models
    "Hunt",
    "Candidate",
    "Run",
    "Alert",
    "Decision",
    "Confidence",
    "ListingKind",
    "PageType",
    "RunStatus",
    # Classification
    "classify_page",
    "classify_listing_intent",
    "source_tier",
    # Extraction
    "extract_candidate",
    "extract_cards",
    "extract_detail_urls",
    # Compatibility
    "evaluate",
    "GateResult",
    # Scoring
    "decide",
    "ScoreResult",
    # Dedup
    "canonical_id",
    "CandidateStore",
    "RunDedupContext",
    # Pipeline
    "HuntRunner",
    "run_hunt",
    "run_active_hunts",
    "HuntNotFoundError",
]
