"""
Alert hand-off for Hunt Alerts.

When a candidate becomes BUY or WATCH for the first time, one alert row is
written to ``hunt_alerts``. Delivery (email, push, dashboard) reads that
table and is not handled here.
"""

import logging
from typing import Optional

from .db import Database
from .models import Alert, Candidate, Hunt
from .scoring import clears_watch_gap

logger = logging.getLogger(__name__)


def build_payload(candidate: Candidate, hunt: Hunt) -> dict:
    """Everything a consumer needs to render the alert without re-reading the candidate."""
    return {
        "year": candidate.year,
        "make": candidate.make or hunt.make,
        "model": candidate.model or hunt.model,
        "variant": candidate.variant,
        "km": candidate.km,
        "asking_price": candidate.asking_price,
        "proven_exit_value": hunt.proven_exit_value,
        "gap_dollars": candidate.gap_dollars,
        "gap_pct": candidate.gap_pct,
        "clears_watch_gap": clears_watch_gap(hunt, candidate.gap_dollars, candidate.gap_pct),
        "match_score": candidate.match_score,
        "confidence": candidate.confidence.value,
        "source": candidate.source_name,
        "source_tier": candidate.source_tier,
        "listing_url": candidate.source_url,
        "location": candidate.location,
        "state": candidate.state,
        "classification": candidate.classification,
        "verified_fields": candidate.verified_fields,
        "reasons": candidate.reasons,
    }


class AlertEmitter:
    """
    Writes one-shot alerts.

    Usage:
        emitter = AlertEmitter(db)
        emitter.emit(candidate, hunt)
    """

    def __init__(self, db: Database):
        self.db = db

    def emit(self, candidate: Candidate, hunt: Hunt) -> Optional[Alert]:
        """
        Emit an alert for an actionable, persisted candidate.

        The candidate's ``alert_emitted`` flag is checked and set before the
        alert row is written. Two concurrent runs can still both pass the
        check; a duplicate alert is the accepted worst case.

        Returns:
            The Alert, or None if the candidate already had one
        """
        if not candidate.decision.is_actionable or not candidate.record_id:
            return None
        if candidate.alert_emitted or not self.db.claim_alert(candidate.record_id):
            logger.debug(f"Alert already emitted for {candidate.canonical_id}")
            return None

        alert = Alert(
            hunt_id=hunt.hunt_id,
            listing_id=candidate.record_id,
            canonical_id=candidate.canonical_id,
            alert_type=candidate.decision,
            payload=build_payload(candidate, hunt),
        )
        alert.alert_id = self.db.create_alert(alert)
        candidate.alert_emitted = True

        logger.info(
            f"{alert.alert_type.value} alert for {candidate.year} {hunt.make} {hunt.model} "
            f"at {candidate.asking_price} ({candidate.source_name})"
        )
        return alert
