"""
Changeset indexers — tell the project-management system to scan a mirror.
"""

from .base import ChangesetIndexer, NullIndexer, build_indexer
from .redmine import RedmineIndexer

__all__ = ["ChangesetIndexer", "NullIndexer", "RedmineIndexer", "build_indexer"]
