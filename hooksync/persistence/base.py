"""
Registry Base Class — Interface the sync core needs from a project registry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import List, Optional

from ..models.repository import ProjectHandle, RepositoryRecord


class Registry(ABC):
    """
    Maps project identifiers to their tracked repositories.

    All registries must implement:
    - find_project(): case-insensitive lookup
    - save_repository(): persist an updated record
    - list_projects(): every project, for listings
    """

    @abstractmethod
    def find_project(self, identifier: str) -> Optional[ProjectHandle]:
        """Return the project whose identifier matches, ignoring case."""
        pass

    @abstractmethod
    def save_repository(self, record: RepositoryRecord) -> None:
        """
        Persist ``record``, matched by its project and identifier.

        Raises RegistryError if the record is not known to the registry.
        """
        pass

    @abstractmethod
    def list_projects(self) -> List[ProjectHandle]:
        pass
