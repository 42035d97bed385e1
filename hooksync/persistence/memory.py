"""
In-Memory Registry — Registry for embedding and tests.
"""

from __future__ import annotations

import threading
from typing import Iterable, List, Optional

from ..errors import RegistryError
from ..models.repository import ProjectHandle, RepositoryRecord
from .base import Registry


class InMemoryRegistry(Registry):
    """
    Holds projects in a list.

    Usage:
        registry = InMemoryRegistry([ProjectHandle(identifier="acme", repositories=[...])])
        registry.find_project("ACME")
    """

    def __init__(self, projects: Optional[Iterable[ProjectHandle]] = None):
        self._projects: List[ProjectHandle] = list(projects or [])
        self._lock = threading.Lock()
        self.saved: List[RepositoryRecord] = []

        for project in self._projects:
            for repo in project.repositories:
                if not repo.project:
                    repo.project = project.identifier

    def find_project(self, identifier: str) -> Optional[ProjectHandle]:
        wanted = identifier.lower()
        for project in self._projects:
            if project.identifier.lower() == wanted:
                return project
        return None

    def list_projects(self) -> List[ProjectHandle]:
        return list(self._projects)

    def save_repository(self, record: RepositoryRecord) -> None:
        with self._lock:
            project = self.find_project(record.project)
            if project is None:
                raise RegistryError(f"No project '{record.project}'")

            for index, repo in enumerate(project.repositories):
                if repo.identifier == record.identifier:
                    project.repositories[index] = record
                    self.saved.append(record.model_copy())
                    return

            raise RegistryError(
                f"Repository '{record.identifier}' not found in project "
                f"'{project.identifier}'"
            )
