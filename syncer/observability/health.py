"""
Liveness Endpoint — Minimal Flask app served beside the sync loop.

``GET /health`` answers 204 as soon as the server is up, whatever the
outcome of the last reconciliation. ``GET /metrics`` renders the
metrics registry for Prometheus.

## Usage

    from syncer.observability.health import HealthServer

    server = HealthServer(port=3000)
    server.start()   # background thread
    ...
    server.stop()
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from flask import Flask, Response
from werkzeug.serving import make_server

from .metrics import MetricsRegistry, metrics

logger = logging.getLogger(__name__)


def create_app(registry: Optional[MetricsRegistry] = None) -> Flask:
    """Create the liveness Flask application."""
    app = Flask(__name__)
    app.config["METRICS"] = registry or metrics

    @app.route("/health")
    def health():
        return "", 204

    @app.route("/metrics")
    def export_metrics():
        return Response(
            app.config["METRICS"].export_prometheus(),
            mimetype="text/plain; version=0.0.4",
        )

    return app


class HealthServer:
    """Runs the liveness app on a daemon thread. Shares no state with the engine."""

    def __init__(self, host: str = "0.0.0.0", port: int = 3000, app: Optional[Flask] = None):
        self.host = host
        self.port = port
        self.app = app or create_app()
        self._server = None
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        # werkzeug logs every request at INFO; probes would flood the log
        logging.getLogger("werkzeug").setLevel(logging.WARNING)

        self._server = make_server(self.host, self.port, self.app, threaded=True)
        self.port = self._server.server_port
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="health-server",
            daemon=True,
        )
        self._thread.start()
        logger.info(f"Health endpoint listening on {self.host}:{self.port}/health")

    def stop(self) -> None:
        if self._server is not None:
            self._server.shutdown()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None
