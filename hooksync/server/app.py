"""
Hook Server — Flask application receiving GitHub push notifications.

The endpoint performs no authentication of its own. Put it behind a
reverse proxy that restricts who may POST to it.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from flask import Flask, Response, jsonify, request

from ..config.settings import HookSettings
from ..observability.metrics import MetricsRegistry, metrics
from .routes_hook import hook_bp

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[HookSettings] = None,
    metrics_registry: Optional[MetricsRegistry] = None,
) -> Flask:
    """Create the Flask application."""
    app = Flask(__name__)

    app.config["HOOK_SETTINGS"] = settings or HookSettings.load()
    app.config["HOOK_METRICS"] = metrics_registry or metrics

    # GitHub payloads for large pushes can reach a few MB
    app.config["MAX_CONTENT_LENGTH"] = 25 * 1024 * 1024

    # ── Register Blueprints ───────────────────────────────────────
    app.register_blueprint(hook_bp, url_prefix="/github_hook")   # /github_hook

    @app.route("/metrics", methods=["GET"])
    def prometheus_metrics():
        """Prometheus scrape endpoint (``?format=json`` for JSON)."""
        registry = app.config["HOOK_METRICS"]
        if request.args.get("format") == "json":
            return jsonify(registry.export_json())
        return Response(
            registry.export_prometheus(),
            mimetype="text/plain; version=0.0.4",
        )

    # ── Error Handlers ────────────────────────────────────────────

    @app.errorhandler(500)
    def internal_server_error(e):
        """Return JSON for any unhandled 500 so GitHub's delivery log stays readable."""
        logger.error(f"Unhandled 500 on {request.method} {request.path}: {e}")
        return jsonify({
            "title": "InternalServerError",
            "message": f"Internal server error: {e}",
        }), 500

    # ── Request Logging ───────────────────────────────────────────

    @app.before_request
    def log_request_start():
        request._start_time = time.time()

    @app.after_request
    def log_request_end(response):
        duration_ms = 0
        if hasattr(request, "_start_time"):
            duration_ms = int((time.time() - request._start_time) * 1000)

        log_fn = logger.debug if request.path == "/metrics" else logger.info
        log_fn(f"{request.method} {request.path} → {response.status_code} ({duration_ms}ms)")
        return response

    logger.info(
        f"Hook server initialized (registry={app.config['HOOK_SETTINGS'].registry_path})"
    )
    return app


def run_server(
    host: str = "127.0.0.1",
    port: int = 5055,
    settings: Optional[HookSettings] = None,
    debug: bool = False,
) -> None:
    """Run the development server."""
    app = create_app(settings)
    logger.info(f"Listening on http://{host}:{port}/github_hook")
    app.run(host=host, port=port, debug=debug, use_reloader=False)
