"""
Data models — registry records and per-invocation sync values.
"""

from .repository import ProjectHandle, RegistryDocument, RepositoryRecord
from .sync import SyncOutcome, SyncRequest

__all__ = [
    "ProjectHandle",
    "RegistryDocument",
    "RepositoryRecord",
    "SyncOutcome",
    "SyncRequest",
]
