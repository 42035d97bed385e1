"""
Indexer Base Class — Interface for changeset indexers.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from ..models.repository import RepositoryRecord

if TYPE_CHECKING:
    from ..config.settings import HookSettings

logger = logging.getLogger(__name__)


class ChangesetIndexer(ABC):
    """
    Scans a freshly fetched mirror for new commits.

    Implementations must be idempotent: they are called after every
    successful fetch, whether or not anything new arrived.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        pass

    @abstractmethod
    def fetch_changesets(self, record: RepositoryRecord) -> None:
        """
        Index new changesets of ``record``.

        Raises IndexerError on failure.
        """
        pass


class NullIndexer(ChangesetIndexer):
    """Indexer used when none is configured."""

    @property
    def name(self) -> str:
        return "null"

    def fetch_changesets(self, record: RepositoryRecord) -> None:
        logger.debug(
            f"No indexer configured, skipping changesets for "
            f"{record.project}/{record.identifier}"
        )


def build_indexer(settings: "HookSettings") -> ChangesetIndexer:
    """Pick the indexer for the given settings."""
    if settings.indexer_url:
        from .redmine import RedmineIndexer

        return RedmineIndexer(
            base_url=settings.indexer_url,
            api_key=settings.indexer_key,
            timeout=settings.indexer_timeout,
        )
    return NullIndexer()
