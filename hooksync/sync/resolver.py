"""
Repository Resolver — Which tracked repositories does a notification touch?
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..errors import InvalidStateError, NotFoundError
from ..logging_config import null_logger
from ..models.repository import ProjectHandle, RepositoryRecord
from ..models.sync import SyncRequest
from ..persistence.base import Registry


class RepositoryResolver:
    """
    Maps a notification to the git repositories to synchronise.

    The project identifier comes from the ``project_id`` parameter, or
    failing that from the payload's ``repository.name`` (the GitHub
    repository is assumed to share its name with the project). A
    ``repository_id`` parameter narrows the result to one repository; an
    unknown selector falls back to every git repository of the project.
    """

    def __init__(self, registry: Registry, logger: Optional[logging.Logger] = None):
        self.registry = registry
        self.logger = logger or null_logger()

    def resolve(
        self,
        payload: Dict[str, Any],
        params: Optional[Mapping[str, Any]] = None,
    ) -> List[RepositoryRecord]:
        request = SyncRequest(payload=payload or {}, params=dict(params or {}))

        project = self.find_project(request)
        repositories = self.git_repositories(project)

        selector = request.repository_selector
        if selector is None:
            return repositories

        selected = [repo for repo in repositories if repo.identifier == selector]
        if not selected:
            self.logger.warning(
                f"[hook] The repository '{selector}' isn't in the list of "
                f"project '{project.identifier}' repos. Updating all repos instead."
            )
            return repositories

        return selected[:1]

    def find_project(self, request: SyncRequest) -> ProjectHandle:
        identifier = request.project_identifier
        if identifier is None:
            raise NotFoundError("Project identifier not specified")

        project = self.registry.find_project(identifier)
        if project is None:
            raise NotFoundError(f"No project found with identifier '{identifier}'")
        return project

    def git_repositories(self, project: ProjectHandle) -> List[RepositoryRecord]:
        repositories = project.git_repositories()
        if not repositories:
            raise InvalidStateError(
                f"Project '{project.name or project.identifier}' "
                f"('{project.identifier}') has no git repository"
            )
        return repositories
