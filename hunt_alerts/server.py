"""
HTTP server for Hunt Alerts.

A small Flask app that exposes the pipeline as a request/response call:
- POST /hunts/<hunt_id>/run  runs one hunt and returns its run summary
- GET  /health               liveness check

Request body (optional JSON): {"max_results": 10, "queries": ["..."]}
"""

import logging
from flask import Flask, jsonify, request

from .pipeline import handle_run_request

logger = logging.getLogger(__name__)

app = Flask(__name__)


@app.route("/hunts/<hunt_id>/run", methods=["POST"])
def run_hunt_endpoint(hunt_id: str):
    """Run a hunt. 200 with the summary, 404 unknown hunt, 500 on fatal errors."""
    payload = request.get_json(silent=True) or {}
    body, status = handle_run_request(hunt_id, payload)
    return jsonify(body), status


@app.route("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


def run_server(host: str = "0.0.0.0", port: int = 5000, debug: bool = False):
    """Run the Flask server."""
    app.run(host=host, port=port, debug=debug)


def main():
    """CLI entry point for the server."""
    import argparse

    parser = argparse.ArgumentParser(description="Hunt Alerts HTTP Server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=5000, help="Port to bind to")
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )

    logger.info(f"Starting hunt server on {args.host}:{args.port}")
    run_server(args.host, args.port, args.debug)


if __name__ == "__main__":
    main()
