"""Tests for the run_hunt entry point, the HTTP server and the scheduler."""

from datetime import timedelta

import pytest

from hunt_alerts import config, pipeline, scheduler, server
from hunt_alerts.config import FirecrawlConfig
from hunt_alerts.pipeline import HuntNotFoundError, handle_run_request, run_hunt

from .conftest import FakeScrape, FakeSearch, page

PICKLES_RESULTS = "https://www.pickles.com.au/used/search/cars/toyota/landcruiser"


def providers():
    return {
        "search": FakeSearch(),
        "scrape": FakeScrape({PICKLES_RESULTS: page(PICKLES_RESULTS)}),
    }


def test_run_hunt_returns_summary(seeded_db):
    summary = run_hunt("hunt-1", max_results=5, extra_queries=["LandCruiser GXL auction"], db=seeded_db, **providers())

    assert summary["success"] is True
    assert summary["status"] == "success"
    assert summary["run_id"]
    assert summary["hunt"] == "2022 Toyota LandCruiser"
    assert "LandCruiser GXL auction" in summary["queries"]
    assert "duration_seconds" in summary


def test_unknown_hunt_raises(seeded_db):
    with pytest.raises(HuntNotFoundError, match="nope"):
        run_hunt("nope", db=seeded_db, **providers())


def test_unknown_hunt_is_404(seeded_db):
    body, status = handle_run_request("nope", {}, db=seeded_db, **providers())
    assert status == 404
    assert body["success"] is False


def test_missing_provider_key_is_500(seeded_db, monkeypatch):
    monkeypatch.setattr(config, "_firecrawl_config", FirecrawlConfig(api_key=""))

    body, status = handle_run_request("hunt-1", {}, db=seeded_db)

    assert status == 500
    assert "FIRECRAWL_API_KEY" in body["error"]
    assert seeded_db.client.rows("outward_hunt_runs") == []


def test_unexpected_error_is_500(seeded_db):
    class BrokenSearch:
        def search(self, query, limit=10):
            raise RuntimeError("boom")

    body, status = handle_run_request(
        "hunt-1", {}, db=seeded_db, search=BrokenSearch(), scrape=FakeScrape()
    )
    assert status == 500
    assert body == {"success": False, "error": "boom"}


def test_request_payload_is_passed_through(seeded_db):
    body, status = handle_run_request(
        "hunt-1", {"max_results": "3", "queries": ["troopy for sale"]}, db=seeded_db, **providers()
    )
    assert status == 200
    assert "troopy for sale" in body["queries"]


def test_run_active_hunts(seeded_db, monkeypatch):
    monkeypatch.setattr(pipeline, "get_db", lambda: seeded_db)
    monkeypatch.setattr(
        pipeline,
        "handle_run_request",
        lambda hunt_id, payload, db=None: ({"success": True}, 200),
    )

    assert pipeline.run_active_hunts() == {"hunt-1": {"status_code": 200, "success": True}}


# =============================================================================
# SERVER
# =============================================================================

def test_health():
    client = server.app.test_client()
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json() == {"status": "ok"}


def test_run_endpoint_returns_handler_status(monkeypatch):
    calls = []

    def fake_handler(hunt_id, payload):
        calls.append((hunt_id, payload))
        return {"success": False, "error": f"Hunt not found: {hunt_id}"}, 404

    monkeypatch.setattr(server, "handle_run_request", fake_handler)
    client = server.app.test_client()
    response = client.post("/hunts/abc/run", json={"max_results": 5})

    assert response.status_code == 404
    assert response.get_json()["error"] == "Hunt not found: abc"
    assert calls == [("abc", {"max_results": 5})]


# =============================================================================
# SCHEDULER
# =============================================================================

def test_scheduler_job_never_overlaps():
    sched = scheduler.create_scheduler(interval_hours=2)
    job = sched.get_job("run_active_hunts")

    assert job is not None
    assert job.max_instances == 1
    assert job.trigger.interval == timedelta(hours=2)


def test_scheduled_cycle_survives_errors(monkeypatch):
    def explode(*args, **kwargs):
        raise RuntimeError("database down")

    monkeypatch.setattr(scheduler, "run_active_hunts", explode)
    scheduler.run_active_hunts_job()
