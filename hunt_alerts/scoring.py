"""
Scoring and decision engine for Hunt Alerts.

Computes a 0-10 match score from vehicle fit and price gap, then maps
it to BUY, WATCH or IGNORE. Score alone never makes a BUY: the price gap
must also clear the hunt's own minimums.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from .compatibility import GateResult
from .models import Candidate, Confidence, Decision, Hunt, ListingKind

logger = logging.getLogger(__name__)

# =============================================================================
# SCORING CONSTANTS
# =============================================================================

BASE_SCORE = 5.0
MAX_SCORE = 10.0
MIN_SCORE = 0.0

BUY_THRESHOLD = 7.0
WATCH_THRESHOLD = 5.0

EXACT_YEAR_BONUS = 1.5
ADJACENT_YEAR_BONUS = 0.5
MAKE_BONUS = 1.0
MODEL_BONUS = 1.0
SERIES_BONUS = 0.5
ENGINE_BONUS = 0.5
AUCTION_BONUS = 0.5
VERIFIED_LISTING_BONUS = 0.5
HIGH_CONFIDENCE_BONUS = 0.5

# (minimum gap percent, bonus), checked in order
GAP_BONUSES = ((10.0, 1.5), (5.0, 1.0), (0.0, 0.5))
OVERPRICED_PENALTY = -1.0


@dataclass
class ScoreResult:
    """Score, decision and the reasons behind them."""
    score: float
    decision: Decision
    reasons: list[str] = field(default_factory=list)
    gap_dollars: Optional[float] = None
    gap_pct: Optional[float] = None
    reject_reason: Optional[str] = None


def compute_gap(exit_value: Optional[float], asking_price: Optional[float]) -> tuple[Optional[float], Optional[float]]:
    """
    Price gap against the hunt's proven exit value.

    Returns:
        (gap_dollars, gap_pct) with gap_pct in percent, or (None, None)
        when either value is unknown
    """
    if not exit_value or asking_price is None:
        return None, None
    gap = float(exit_value) - float(asking_price)
    return gap, round(gap / float(exit_value) * 100, 2)


def _year_bonus(candidate: Candidate, hunt: Hunt, reasons: list[str]) -> float:
    if candidate.year is None:
        return 0.0
    if hunt.year_floor <= candidate.year <= hunt.year_ceiling:
        reasons.append("year_exact")
        return EXACT_YEAR_BONUS
    if hunt.year_floor - 1 <= candidate.year <= hunt.year_ceiling + 1:
        reasons.append("year_adjacent")
        return ADJACENT_YEAR_BONUS
    return 0.0


def _gap_bonus(gap_pct: Optional[float], reasons: list[str]) -> float:
    if gap_pct is None:
        return 0.0
    for threshold, bonus in GAP_BONUSES:
        if gap_pct >= threshold:
            reasons.append(f"gap_{gap_pct:.1f}pct")
            return bonus
    reasons.append("overpriced")
    return OVERPRICED_PENALTY


def compute_score(candidate: Candidate, hunt: Hunt, gate: Optional[GateResult] = None) -> ScoreResult:
    """Score a candidate without deciding."""
    reasons: list[str] = []
    score = BASE_SCORE

    score += _year_bonus(candidate, hunt, reasons)
    if candidate.make:
        score += MAKE_BONUS
        reasons.append("make_match")
    if candidate.model:
        score += MODEL_BONUS
        reasons.append("model_match")

    if gate is not None:
        series = gate.detections.get("series")
        if hunt.series_family and series and series.value and not any(
            r.startswith("SERIES_") for r in gate.reasons
        ):
            score += SERIES_BONUS
            reasons.append("series_match")
        engine = gate.detections.get("engine")
        if hunt.engine_family and engine and engine.value and not any(
            r.startswith("ENGINE_") for r in gate.reasons
        ):
            score += ENGINE_BONUS
            reasons.append("engine_match")

    if candidate.listing_kind == ListingKind.AUCTION_LOT:
        score += AUCTION_BONUS
        reasons.append("auction_source")
    if candidate.is_listing and candidate.is_verified("asking_price"):
        score += VERIFIED_LISTING_BONUS
        reasons.append("verified_listing")
    if candidate.confidence == Confidence.HIGH:
        score += HIGH_CONFIDENCE_BONUS
        reasons.append("high_confidence")

    gap, gap_pct = compute_gap(hunt.proven_exit_value, candidate.asking_price)
    score += _gap_bonus(gap_pct, reasons)

    score = max(MIN_SCORE, min(MAX_SCORE, round(score, 2)))
    return ScoreResult(score=score, decision=Decision.IGNORE, reasons=reasons, gap_dollars=gap, gap_pct=gap_pct)


def decide(candidate: Candidate, hunt: Hunt, gate: GateResult) -> ScoreResult:
    """
    Score a candidate and decide BUY / WATCH / IGNORE.

    - A non-listing page is always IGNORE.
    - A hard gate failure is always IGNORE.
    - BUY needs score >= BUY_THRESHOLD, a known gap clearing both the
      absolute and percentage BUY minimums, confidence above low and no
      soft gate reasons.
    - Otherwise WATCH at score >= WATCH_THRESHOLD, else IGNORE.
    """
    result = compute_score(candidate, hunt, gate)
    result.reasons.extend(gate.reasons)

    if not candidate.is_listing:
        result.decision = Decision.IGNORE
        result.reject_reason = f"NON_LISTING:{candidate.page_type.value}"
        return result

    if not gate.allow_watch:
        result.decision = Decision.IGNORE
        result.reject_reason = gate.hard_reasons[0]
        return result

    if result.score >= BUY_THRESHOLD:
        blockers = _buy_blockers(candidate, hunt, gate, result)
        if not blockers:
            result.decision = Decision.BUY
            return result
        result.reasons.extend(blockers)

    if result.score >= WATCH_THRESHOLD:
        result.decision = Decision.WATCH
    else:
        result.decision = Decision.IGNORE
        result.reject_reason = "LOW_SCORE"
    return result


def _buy_blockers(candidate: Candidate, hunt: Hunt, gate: GateResult, result: ScoreResult) -> list[str]:
    blockers = []
    if result.gap_dollars is None:
        blockers.append("gap_unknown")
    else:
        if result.gap_dollars < hunt.min_gap_abs_buy:
            blockers.append("gap_below_buy_abs")
        if result.gap_pct < hunt.min_gap_pct_buy:
            blockers.append("gap_below_buy_pct")
    if candidate.confidence == Confidence.LOW:
        blockers.append("low_confidence")
    if gate.soft_reasons:
        blockers.append("needs_verify")
    return blockers


def clears_watch_gap(hunt: Hunt, gap_dollars: Optional[float], gap_pct: Optional[float]) -> bool:
    """Whether a gap meets the hunt's WATCH minimums (informational only)."""
    if gap_dollars is None or gap_pct is None:
        return False
    return gap_dollars >= hunt.min_gap_abs_watch and gap_pct >= hunt.min_gap_pct_watch


def apply_decision(candidate: Candidate, hunt: Hunt, gate: GateResult) -> ScoreResult:
    """Decide and write the outcome onto the candidate."""
    result = decide(candidate, hunt, gate)
    candidate.match_score = result.score
    candidate.decision = result.decision
    candidate.reasons = result.reasons
    candidate.reject_reason = result.reject_reason
    candidate.gap_dollars = result.gap_dollars
    candidate.gap_pct = result.gap_pct
    return result
