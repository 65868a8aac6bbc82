"""Tests for attribute detection and the hard/soft compatibility gates."""

import dataclasses

from hunt_alerts.compatibility import count_signals, detect, evaluate, gate_candidate, normalize_value, _COMPILED
from hunt_alerts.models import Candidate, Confidence


def _with(hunt, **changes):
    return dataclasses.replace(hunt, **changes)


def test_lc300_against_lc70_hunt_is_hard_reject(hunt):
    lc70 = _with(hunt, series_family="LC70")
    gate = evaluate("2022 Toyota LandCruiser LC300 GR Sport", lc70)

    assert gate.hard_reasons == ["SERIES_MISMATCH:LC300"]
    assert not gate.allow_watch
    assert gate.detections["series"].confidence == Confidence.HIGH


def test_single_signal_gives_medium_confidence():
    detection = detect("series", "Toyota LandCruiser 79 Series GXL")
    assert detection.value == "LC70"
    assert detection.confidence == Confidence.MEDIUM


def test_nested_signal_is_not_counted_twice():
    signals = _COMPILED["series"]["LC70"]
    assert count_signals("WWW.DEALER.COM.AU/LC79/", signals) == 1
    assert count_signals("WWW.DEALER.COM.AU/LC79/ VDJ79", signals) == 2


def test_tied_families_are_ambiguous():
    detection = detect("series", "Swap LC200 for LC300")
    assert detection.value is None
    assert detection.confidence == Confidence.LOW
    assert detection.tied == ["LC200", "LC300"]


def test_ambiguous_series_is_soft_reject(hunt):
    gate = evaluate("Swap LC200 for LC300", _with(hunt, series_family="LC300"))
    assert gate.hard_reasons == []
    assert gate.soft_reasons == ["SERIES_UNKNOWN"]
    assert gate.allow_watch


def test_undetected_requirement_is_soft_reject(hunt):
    gate = evaluate("2022 Toyota LandCruiser GXL", _with(hunt, series_family="LC300", cab_type="dual"))
    assert gate.soft_reasons == ["SERIES_UNKNOWN", "CAB_UNKNOWN"]
    assert gate.allow_watch


def test_prefix_engine_codes():
    assert detect("engine", "VDJ79R GXL dual cab").value == "V8_DIESEL"
    assert detect("engine", "GDJ79 2.8L manual").value == "I4_DIESEL"
    assert detect("cab", "VDJ79R GXL dual cab").value == "DUAL"


def test_loosely_stored_hunt_values_are_normalized(hunt):
    assert normalize_value("Cab Chassis") == "CAB_CHASSIS"
    assert normalize_value(" dual ") == "DUAL"
    assert normalize_value("") is None

    gate = evaluate("LandCruiser GXL wagon", _with(hunt, body_type="cab chassis"))
    assert gate.hard_reasons == ["BODY_MISMATCH:WAGON"]


def test_strict_tokens_are_soft(hunt):
    strict = _with(hunt, must_have_tokens=["GXL"], must_have_mode="strict")
    assert evaluate("LandCruiser Sahara", strict).soft_reasons == ["MISSING_REQUIRED_TOKEN:GXL"]
    assert evaluate("LandCruiser GXL", strict).soft_reasons == []

    soft = _with(strict, must_have_mode="soft")
    assert evaluate("LandCruiser Sahara", soft).soft_reasons == []


def test_no_requirements_no_reasons(hunt):
    gate = evaluate("LC300 twin turbo wagon", hunt)
    assert gate.reasons == []
    assert gate.detections["series"].value == "LC300"


def test_gate_candidate_records_detections(hunt):
    candidate = Candidate(
        hunt_id="hunt-1",
        criteria_version=1,
        source_url="https://www.gumtree.com.au/s-ad/x/1312345678",
        domain="gumtree.com.au",
        source_name="gumtree",
        title="2021 Toyota LandCruiser 79 Series GXL double cab",
    )
    gate_candidate(candidate, hunt)

    assert candidate.classification["series"]["value"] == "LC70"
    assert candidate.classification["cab"]["value"] == "DUAL"
    assert candidate.classification["engine"]["value"] is None
