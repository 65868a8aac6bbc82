"""Tests for the shared dataclasses."""

import pytest

from hunt_alerts.models import Alert, Candidate, Confidence, Decision, Hunt, Run, RunStatus


def test_hunt_from_row_normalizes_values(hunt_row):
    hunt_row.update({"must_have_tokens": ["gxl", "Winch"], "year_min": 2020, "min_gap_pct_buy": "8"})
    hunt = Hunt.from_dict(hunt_row)

    assert hunt.hunt_id == "hunt-1"
    assert hunt.must_have_tokens == ["GXL", "WINCH"]
    assert (hunt.year_floor, hunt.year_ceiling) == (2020, 2022)
    assert hunt.min_gap_pct_buy == 8.0
    assert hunt.is_active


def test_run_status_derivation():
    clean = Run(hunt_id="h", queries_run=3)
    assert clean.finalize() == RunStatus.SUCCESS

    partial = Run(hunt_id="h", queries_run=3, queries_failed=1, errors=["q: HTTP 500"])
    assert partial.finalize() == RunStatus.PARTIAL

    failed = Run(hunt_id="h", queries_run=3, queries_failed=3, errors=["a", "b", "c"])
    assert failed.finalize() == RunStatus.FAILED


def test_finalized_run_refuses_changes():
    run = Run(hunt_id="h")
    run.bump("queries_run")
    run.finalize()

    with pytest.raises(RuntimeError):
        run.bump("queries_run")
    with pytest.raises(RuntimeError):
        run.record_reject("LOW_SCORE")
    with pytest.raises(RuntimeError):
        run.finalize()
    assert run.queries_run == 1


def test_reject_histogram_groups_by_code():
    run = Run(hunt_id="h")
    run.record_reject("YEAR_OUT_OF_RANGE:2015")
    run.record_reject("YEAR_OUT_OF_RANGE:2016")
    run.record_reject("MODEL_COLLISION")
    assert run.reject_reasons == {"YEAR_OUT_OF_RANGE": 2, "MODEL_COLLISION": 1}


def test_candidate_row_round_trip_keeps_identity():
    candidate = Candidate(
        hunt_id="hunt-1",
        criteria_version=2,
        source_url="https://www.pickles.com.au/lot/123",
        domain="pickles.com.au",
        source_name="pickles",
        title="x" * 300,
        confidence=Confidence.HIGH,
        decision=Decision.WATCH,
    )
    row = candidate.to_row()
    assert len(row["title"]) == 200
    assert "alert_emitted" not in row

    row["id"] = "row-9"
    row["alert_emitted"] = True
    restored = Candidate.from_row(row)
    assert restored.record_id == "row-9"
    assert restored.alert_emitted
    assert restored.decision == Decision.WATCH
    assert restored.criteria_version == 2


def test_alert_from_row():
    alert = Alert.from_dict({
        "id": "a-1",
        "hunt_id": "hunt-1",
        "listing_id": "row-9",
        "canonical_id": "pickles:123",
        "alert_type": "BUY",
        "created_at": "2026-10-19T01:02:03Z",
    })
    assert alert.alert_type == Decision.BUY
    assert alert.created_at.year == 2026
