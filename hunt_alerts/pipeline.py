"""
Main pipeline module for Hunt Alerts.

Entry points:
- run_hunt: one request/response run for one hunt
- handle_run_request: the same, shaped as (body, HTTP status) for the server
- run_active_hunts: every active hunt in turn (used by the scheduler)

Fatal problems (missing credentials, unknown hunt) are raised before any
query is issued.
"""

import logging
from datetime import datetime
from typing import Optional

from .config import ConfigurationError, get_app_config, get_firecrawl_config
from .db import Database, get_db
from .models import Hunt
from .orchestrator import HuntRunner
from .sources.firecrawl import ScrapeProvider, SearchProvider

logger = logging.getLogger(__name__)


class HuntNotFoundError(LookupError):
    """The requested hunt does not exist."""


def _summary(run, hunt: Hunt) -> dict:
    summary = run.to_dict()
    summary["run_id"] = run.run_id
    summary["success"] = True
    years = str(hunt.year) if hunt.year_floor == hunt.year_ceiling else f"{hunt.year_floor}-{hunt.year_ceiling}"
    summary["hunt"] = f"{years} {hunt.make} {hunt.model}"
    if run.finished_at:
        summary["duration_seconds"] = round((run.finished_at - run.started_at).total_seconds(), 1)
    return summary


def run_hunt(
    hunt_id: str,
    max_results: Optional[int] = None,
    extra_queries: Optional[list[str]] = None,
    db: Optional[Database] = None,
    search: Optional[SearchProvider] = None,
    scrape: Optional[ScrapeProvider] = None,
) -> dict:
    """
    Run the hunt pipeline once.

    Args:
        hunt_id: ID of the hunt in ``sale_hunts``
        max_results: Results requested per search query
        extra_queries: Caller-supplied queries run at the end of tier 1
        db, search, scrape: Collaborators (built from configuration when omitted)

    Returns:
        Summary dict with run metrics and status

    Raises:
        ConfigurationError: missing Supabase or Firecrawl credentials
        HuntNotFoundError: no hunt with this ID
    """
    if search is None or scrape is None:
        get_firecrawl_config().require()
    db = db or get_db()

    hunt = db.get_hunt(hunt_id)
    if hunt is None:
        raise HuntNotFoundError(f"Hunt not found: {hunt_id}")

    search = search or SearchProvider()
    scrape = scrape or ScrapeProvider()

    logger.info(f"Starting hunt {hunt_id}: {hunt.make} {hunt.model} ({hunt.year_floor}-{hunt.year_ceiling})")
    runner = HuntRunner(hunt, db, search, scrape, config=get_app_config())
    run = runner.run(max_results=max_results, extra_queries=extra_queries)
    return _summary(run, hunt)


def handle_run_request(hunt_id: str, payload: Optional[dict] = None, **collaborators) -> tuple[dict, int]:
    """
    Run a hunt and shape the outcome as (JSON body, HTTP status).

    200 with the summary, 404 for an unknown hunt, 500 for configuration
    errors and crashes.
    """
    payload = payload or {}
    try:
        max_results = payload.get("max_results")
        summary = run_hunt(
            hunt_id,
            max_results=int(max_results) if max_results else None,
            extra_queries=payload.get("queries"),
            **collaborators,
        )
        return summary, 200
    except HuntNotFoundError as e:
        logger.warning(str(e))
        return {"success": False, "error": str(e)}, 404
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return {"success": False, "error": str(e)}, 500
    except Exception as e:
        logger.exception(f"Hunt {hunt_id} failed: {e}")
        return {"success": False, "error": str(e)}, 500


def run_active_hunts(max_results: Optional[int] = None) -> dict:
    """
    Run every active hunt sequentially.

    One hunt failing does not stop the others.

    Returns:
        Summary dict keyed by hunt ID
    """
    start_time = datetime.utcnow()
    db = get_db()
    hunts = db.get_active_hunts()
    logger.info(f"Running {len(hunts)} active hunts")

    results = {}
    for hunt in hunts:
        body, status = handle_run_request(hunt.hunt_id, {"max_results": max_results}, db=db)
        results[hunt.hunt_id] = {"status_code": status, **body}

    duration = (datetime.utcnow() - start_time).total_seconds()
    logger.info(f"Active hunts complete in {duration:.1f}s")
    return results


# =============================================================================
# CLI ENTRY POINT
# =============================================================================

def main():
    """CLI entry point for running hunts by hand."""
    import argparse
    import json

    parser = argparse.ArgumentParser(description="Hunt Alerts Pipeline")
    parser.add_argument("--hunt", metavar="HUNT_ID", help="Run a single hunt")
    parser.add_argument("--all", action="store_true", help="Run all active hunts")
    parser.add_argument("--max-results", type=int, default=None, help="Results per search query")
    parser.add_argument("--query", action="append", default=[], help="Extra search query (repeatable)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    if args.hunt:
        body, status = handle_run_request(args.hunt, {"max_results": args.max_results, "queries": args.query})
        print(json.dumps(body, indent=2, default=str))
        raise SystemExit(0 if status == 200 else 1)
    elif args.all:
        results = run_active_hunts(args.max_results)
        print(json.dumps(results, indent=2, default=str))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
