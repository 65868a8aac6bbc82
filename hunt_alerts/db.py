"""
Supabase database integration module.

Handles all database operations:
- Reading hunts (search profiles) owned by the dashboard
- Upserting discovered candidates
- Recording hunt runs and their metrics
- Handing off alerts

Tables required:
- sale_hunts: Dealer vehicle search profiles
- hunt_external_candidates: Discovered listings, unique on
  (hunt_id, criteria_version, canonical_id)
- outward_hunt_runs: One row per pipeline run
- hunt_alerts: One-shot BUY/WATCH notifications
"""

import logging
from datetime import datetime
from typing import Optional
from supabase import create_client, Client

from .config import get_supabase_config
from .models import Hunt, Candidate, Run, Alert

logger = logging.getLogger(__name__)

CANDIDATE_CONFLICT_KEY = "hunt_id,criteria_version,canonical_id"


class Database:
    """
    Supabase database client wrapper.

    Provides methods for all database operations needed by the hunt pipeline.
    A ready client can be passed in (tests use an in-memory fake).
    """

    def __init__(self, client: Optional[Client] = None):
        if client is None:
            config = get_supabase_config()
            config.require()
            client = create_client(config.url, config.key)
        self._client = client

    @property
    def client(self) -> Client:
        """Get the Supabase client."""
        return self._client

    # =========================================================================
    # HUNT OPERATIONS
    # =========================================================================

    def get_hunt(self, hunt_id: str) -> Optional[Hunt]:
        """Get a hunt by ID."""
        result = self._client.table("sale_hunts").select("*").eq("id", hunt_id).execute()
        if not result.data:
            return None
        return Hunt.from_dict(result.data[0])

    def get_active_hunts(self) -> list[Hunt]:
        """Get all hunts the scheduler should run."""
        result = self._client.table("sale_hunts").select("*").eq("status", "active").execute()
        return [Hunt.from_dict(row) for row in result.data]

    def touch_hunt_scanned(self, hunt_id: str) -> None:
        """Record when a hunt was last scanned."""
        self._client.table("sale_hunts").update({
            "last_scan_at": datetime.utcnow().isoformat(),
        }).eq("id", hunt_id).execute()

    # =========================================================================
    # CANDIDATE OPERATIONS
    # =========================================================================

    def find_candidate(
        self,
        hunt_id: str,
        criteria_version: int,
        canonical_id: str,
    ) -> Optional[Candidate]:
        """Look up a candidate by its unique key."""
        result = (
            self._client.table("hunt_external_candidates")
            .select("*")
            .eq("hunt_id", hunt_id)
            .eq("criteria_version", criteria_version)
            .eq("canonical_id", canonical_id)
            .execute()
        )
        if not result.data:
            return None
        return Candidate.from_row(result.data[0])

    def upsert_candidate(self, row: dict) -> str:
        """
        Insert or update a candidate row on its unique key.

        Concurrent writers for the same key collapse into one row.

        Returns:
            The candidate row ID
        """
        result = (
            self._client.table("hunt_external_candidates")
            .upsert(row, on_conflict=CANDIDATE_CONFLICT_KEY)
            .execute()
        )
        record_id = result.data[0]["id"]
        logger.debug(f"Upserted candidate {row.get('canonical_id')}: {record_id}")
        return record_id

    def mark_stale_candidates(self, hunt_id: str, criteria_version: int) -> int:
        """Flag candidates found under an older criteria version."""
        result = (
            self._client.table("hunt_external_candidates")
            .update({"is_stale": True})
            .eq("hunt_id", hunt_id)
            .lt("criteria_version", criteria_version)
            .execute()
        )
        count = len(result.data or [])
        if count:
            logger.info(f"Marked {count} stale candidates for hunt {hunt_id}")
        return count

    def claim_alert(self, record_id: str) -> bool:
        """
        Set ``alert_emitted`` on a candidate if it is not already set.

        Returns:
            True if this call flipped the flag
        """
        result = (
            self._client.table("hunt_external_candidates")
            .update({"alert_emitted": True})
            .eq("id", record_id)
            .eq("alert_emitted", False)
            .execute()
        )
        return bool(result.data)

    # =========================================================================
    # RUN OPERATIONS
    # =========================================================================

    def create_run(self, run: Run) -> str:
        """Create a run record and return its ID."""
        result = self._client.table("outward_hunt_runs").insert(run.to_dict()).execute()
        run_id = result.data[0]["id"]
        logger.info(f"Started run {run_id} for hunt {run.hunt_id}")
        return run_id

    def finalize_run(self, run: Run) -> None:
        """Write final metrics and status of a run."""
        if not run.run_id:
            return
        self._client.table("outward_hunt_runs").update(run.to_dict()).eq("id", run.run_id).execute()
        logger.info(f"Finished run {run.run_id}: {run.status.value}")

    # =========================================================================
    # ALERT OPERATIONS
    # =========================================================================

    def create_alert(self, alert: Alert) -> str:
        """Create a new alert record."""
        result = self._client.table("hunt_alerts").insert(alert.to_dict()).execute()
        alert_id = result.data[0]["id"]
        logger.info(f"Created {alert.alert_type.value} alert {alert_id} for {alert.canonical_id}")
        return alert_id

    def get_alerts_for_hunt(self, hunt_id: str) -> list[Alert]:
        """Get all alerts raised for a hunt."""
        result = self._client.table("hunt_alerts").select("*").eq("hunt_id", hunt_id).execute()
        return [Alert.from_dict(row) for row in result.data]


# Global database instance (lazy loaded)
_db: Optional[Database] = None


def get_db() -> Database:
    """Get database instance (singleton)."""
    global _db
    if _db is None:
        _db = Database()
    return _db
