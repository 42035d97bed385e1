"""
Sync Models — Transient values of a single update invocation.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

# Failure reasons reported on SyncOutcome
REASON_DIRECTORY = "directory_failed"
REASON_CLONE = "clone_failed"
REASON_FETCH = "fetch_failed"
REASON_PERSIST = "persist_failed"
REASON_INDEX = "index_failed"
REASON_CANCELLED = "cancelled"
REASON_ERROR = "error"

_CATEGORIES = {
    REASON_DIRECTORY: "setup",
    REASON_CLONE: "setup",
    REASON_FETCH: "fetch",
    REASON_PERSIST: "persist",
    REASON_INDEX: "index",
    REASON_CANCELLED: "cancelled",
}


@dataclass
class SyncRequest:
    """Raw notification payload plus request parameters."""

    payload: Dict[str, Any] = field(default_factory=dict)
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def project_identifier(self) -> Optional[str]:
        """``project_id`` param first, then ``repository.name`` from the payload."""
        project_id = self.params.get("project_id")
        if project_id is not None:
            return str(project_id)

        repository = self.payload.get("repository") if isinstance(self.payload, dict) else None
        if isinstance(repository, dict) and repository.get("name") is not None:
            return str(repository["name"])
        return None

    @property
    def repository_selector(self) -> Optional[str]:
        selector = self.params.get("repository_id")
        return None if selector is None else str(selector)

    @classmethod
    def from_http(
        cls,
        body: Optional[Any],
        form: Mapping[str, str],
        args: Mapping[str, str],
    ) -> "SyncRequest":
        """
        Build a request from an inbound webhook delivery.

        GitHub sends either a JSON body or a form-encoded ``payload`` field
        holding the JSON text. Raises ValueError if that text is not valid JSON.
        """
        raw = form.get("payload")
        if raw:
            payload = json.loads(raw)
        else:
            payload = body if body is not None else {}

        if not isinstance(payload, dict):
            raise ValueError("Payload must be a JSON object")

        params: Dict[str, Any] = {}
        for key in ("project_id", "repository_id"):
            value = args.get(key, form.get(key))
            if value is not None:
                params[key] = value

        return cls(payload=payload, params=params)


@dataclass
class SyncOutcome:
    """Result of synchronising one repository."""

    repository: str
    success: bool
    elapsed_ms: float = 0.0
    reason: Optional[str] = None
    relocated: bool = False
    local_path: Optional[str] = None

    @property
    def category(self) -> Optional[str]:
        if self.success:
            return None
        return _CATEGORIES.get(self.reason or "", REASON_ERROR)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repository": self.repository,
            "success": self.success,
            "elapsed_ms": self.elapsed_ms,
            "reason": self.reason,
            "category": self.category,
            "relocated": self.relocated,
            "local_path": self.local_path,
        }
