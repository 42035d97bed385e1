"""
Redmine Indexer — Trigger changeset fetching over the repository web service.

Redmine exposes ``GET /sys/fetch_changesets?id=<project>&key=<key>`` when
"Enable WS for repository management" is switched on. The call makes
Redmine scan the project's repositories (including the mirror we just
fetched) for new commits.

## Environment Variables

- HOOKSYNC_INDEXER_URL: Redmine base URL, e.g. https://redmine.example.com
- HOOKSYNC_INDEXER_KEY: repository management API key
- HOOKSYNC_INDEXER_TIMEOUT: request timeout in seconds (default: 30)
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from ..errors import IndexerError
from ..models.repository import RepositoryRecord
from .base import ChangesetIndexer

logger = logging.getLogger(__name__)

FETCH_PATH = "/sys/fetch_changesets"


class RedmineIndexer(ChangesetIndexer):
    """Calls Redmine's fetch_changesets web service with httpx."""

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._client = client

    @property
    def name(self) -> str:
        return "redmine"

    def fetch_changesets(self, record: RepositoryRecord) -> None:
        params = {"id": record.project}
        if self.api_key:
            params["key"] = self.api_key

        url = f"{self.base_url}{FETCH_PATH}"
        try:
            if self._client is not None:
                response = self._client.get(url, params=params, timeout=self.timeout)
            else:
                response = httpx.get(
                    url,
                    params=params,
                    timeout=self.timeout,
                    headers={"User-Agent": "github-hook-sync/2.1"},
                )
        except httpx.TimeoutException as e:
            raise IndexerError(f"fetch_changesets for {record.project} timed out") from e
        except httpx.RequestError as e:
            raise IndexerError(f"fetch_changesets for {record.project} failed: {e}") from e

        if response.status_code >= 400:
            raise IndexerError(
                f"fetch_changesets for {record.project} returned {response.status_code}"
            )

        logger.info(
            f"Changesets fetched for {record.project}/{record.identifier}: "
            f"{response.status_code}"
        )
