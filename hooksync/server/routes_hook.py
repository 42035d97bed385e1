"""
Webhook API — Receives push notifications from GitHub.

Blueprint: hook_bp
Prefix: /github_hook

    POST /github_hook?project_id=<project>&repository_id=<repo>

Both parameters are optional: without ``project_id`` the GitHub
repository name from the payload is used as the project identifier.
The response is the list of log messages produced by the update.
"""

from __future__ import annotations

import logging
from typing import List

from flask import Blueprint, current_app, jsonify, request

from ..errors import InvalidStateError, NotFoundError
from ..models.sync import SyncRequest
from ..sync.updater import UpdateOrchestrator

logger = logging.getLogger(__name__)

hook_bp = Blueprint("github_hook", __name__)

REQUEST_LOGGER_NAME = "hooksync.sync"


class MessageCollector(logging.Handler):
    """Keeps the messages of one request so they can be sent back."""

    def __init__(self, level: int = logging.INFO):
        super().__init__(level=level)
        self.messages: List[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        self.messages.append(record.getMessage())


def _request_logger(collector: MessageCollector) -> logging.Logger:
    """
    A throwaway logger for one delivery.

    It is not registered with the logging manager, so concurrent requests
    each collect only their own messages; records still propagate to the
    application's handlers through the parent.
    """
    request_logger = logging.Logger(REQUEST_LOGGER_NAME, level=logging.DEBUG)
    request_logger.parent = logging.getLogger(REQUEST_LOGGER_NAME)
    request_logger.addHandler(collector)
    return request_logger


def _respond(body, status: int = 200):
    current_app.config["HOOK_METRICS"].increment(
        "webhook_requests_total", labels={"status": str(status)}
    )
    return jsonify(body), status


def _error(error: Exception, status: int):
    logger.warning(f"[hook] {type(error).__name__}: {error} → {status}")
    return _respond({"title": type(error).__name__, "message": str(error)}, status)


@hook_bp.route("", methods=["GET"])
def api_hook_info():
    """Describe the endpoint (GitHub's 'ping' check does a GET in some setups)."""
    return _respond({
        "message": "github-hook-sync is listening. POST a GitHub push notification here.",
    })


@hook_bp.route("", methods=["POST"])
def api_hook_update():
    """Update the mirrors of the notified project."""
    try:
        sync_request = SyncRequest.from_http(
            request.get_json(silent=True), request.form, request.args
        )
    except ValueError as e:
        return _error(e, 400)

    collector = MessageCollector()
    orchestrator = UpdateOrchestrator.from_settings(
        current_app.config["HOOK_SETTINGS"],
        logger=_request_logger(collector),
        metrics=current_app.config["HOOK_METRICS"],
    )

    try:
        orchestrator.run(sync_request.payload, sync_request.params)
    except NotFoundError as e:
        return _error(e, 404)
    except InvalidStateError as e:
        return _error(e, 412)

    return _respond(collector.messages)
