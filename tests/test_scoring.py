"""Tests for match scoring and the BUY / WATCH / IGNORE decision."""

import dataclasses

import pytest

from hunt_alerts.compatibility import GateResult, evaluate
from hunt_alerts.models import Candidate, Confidence, Decision, ListingKind, PageType
from hunt_alerts.scoring import apply_decision, clears_watch_gap, compute_gap, decide


def make_candidate(**overrides):
    values = dict(
        hunt_id="hunt-1",
        criteria_version=1,
        source_url="https://www.gumtree.com.au/s-ad/penrith/cars-vans-utes/toyota-landcruiser/1312345678",
        domain="gumtree.com.au",
        source_name="gumtree",
        source_tier=2,
        title="2022 Toyota LandCruiser GXL",
        year=2022,
        make="Toyota",
        model="LandCruiser",
        asking_price=78000,
        confidence=Confidence.HIGH,
        is_listing=True,
        listing_kind=ListingKind.RETAIL_LISTING,
        page_type=PageType.LISTING,
    )
    values.update(overrides)
    return Candidate(**values)


def test_compute_gap():
    assert compute_gap(90000, 78000) == (12000.0, 13.33)
    assert compute_gap(None, 78000) == (None, None)
    assert compute_gap(90000, None) == (None, None)


def test_underpriced_listing_is_buy(hunt):
    result = decide(make_candidate(), hunt, GateResult())

    assert result.decision == Decision.BUY
    assert result.score >= 7.0
    assert result.gap_dollars == 12000.0
    assert "year_exact" in result.reasons
    assert result.reject_reason is None


def test_small_gap_caps_at_watch(hunt):
    result = decide(make_candidate(asking_price=86000), hunt, GateResult())

    assert result.score >= 7.0
    assert result.decision == Decision.WATCH
    assert "gap_below_buy_abs" in result.reasons
    assert "gap_below_buy_pct" in result.reasons


def test_unknown_price_cannot_be_buy(hunt):
    result = decide(make_candidate(asking_price=None), hunt, GateResult())
    assert result.decision == Decision.WATCH
    assert "gap_unknown" in result.reasons


def test_low_confidence_cannot_be_buy(hunt):
    result = decide(make_candidate(confidence=Confidence.LOW), hunt, GateResult())
    assert result.decision == Decision.WATCH
    assert "low_confidence" in result.reasons


def test_soft_gate_reason_needs_verification(hunt):
    result = decide(make_candidate(), hunt, GateResult(soft_reasons=["SERIES_UNKNOWN"]))
    assert result.decision == Decision.WATCH
    assert "needs_verify" in result.reasons
    assert "SERIES_UNKNOWN" in result.reasons


def test_hard_gate_is_always_ignore(hunt):
    gate = GateResult(hard_reasons=["SERIES_MISMATCH:LC300"])
    result = decide(make_candidate(), hunt, gate)

    assert result.decision == Decision.IGNORE
    assert result.reject_reason == "SERIES_MISMATCH:LC300"


@pytest.mark.parametrize("page_type", [PageType.SEARCH, PageType.ARTICLE, PageType.CATEGORY])
def test_non_listing_is_always_ignore(hunt, page_type):
    candidate = make_candidate(is_listing=False, page_type=page_type)
    result = decide(candidate, hunt, GateResult())

    assert result.decision == Decision.IGNORE
    assert result.reject_reason == f"NON_LISTING:{page_type.value}"


def test_low_score_is_ignore(hunt):
    candidate = make_candidate(year=None, make=None, model=None, confidence=Confidence.LOW, asking_price=95000)
    result = decide(candidate, hunt, GateResult())

    assert result.score < 5.0
    assert result.decision == Decision.IGNORE
    assert result.reject_reason == "LOW_SCORE"
    assert "overpriced" in result.reasons


def test_source_and_verification_bonuses(hunt):
    plain = decide(make_candidate(asking_price=None), hunt, GateResult())
    auction = decide(
        make_candidate(asking_price=None, listing_kind=ListingKind.AUCTION_LOT), hunt, GateResult()
    )
    verified = decide(
        make_candidate(verified_fields={"asking_price": True}), hunt, GateResult()
    )

    assert auction.score == plain.score + 0.5
    assert "auction_source" in auction.reasons
    assert "verified_listing" in verified.reasons


def test_series_bonus_only_when_required_and_passed(hunt):
    candidate = make_candidate(title="2022 Toyota LandCruiser LC300 GR Sport", asking_price=None)
    lc300 = dataclasses.replace(hunt, series_family="LC300")

    with_series = decide(candidate, lc300, evaluate(candidate.text_blob(), lc300))
    without = decide(candidate, hunt, evaluate(candidate.text_blob(), hunt))

    assert "series_match" in with_series.reasons
    assert "series_match" not in without.reasons


def test_score_is_clamped(hunt):
    candidate = make_candidate(
        asking_price=60000,
        listing_kind=ListingKind.AUCTION_LOT,
        verified_fields={"asking_price": True},
    )
    assert decide(candidate, hunt, GateResult()).score == 10.0


def test_watch_gap_flag(hunt):
    assert clears_watch_gap(hunt, 4000, 4.44)
    assert not clears_watch_gap(hunt, 1000, 1.1)
    assert not clears_watch_gap(hunt, None, None)


def test_apply_decision_writes_onto_candidate(hunt):
    candidate = make_candidate()
    apply_decision(candidate, hunt, GateResult())

    assert candidate.decision == Decision.BUY
    assert candidate.gap_pct == 13.33
    assert candidate.match_score == 10.0
