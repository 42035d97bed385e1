"""
Registry File — JSON-backed project/repository registry.

Format (state/registry.json):

    {
        "schema_version": 1,
        "projects": [
            {
                "identifier": "acme",
                "repositories": [
                    {"identifier": "main", "url": "https://github.com/acme/acme.git",
                     "root_url": "", "scm": "git"}
                ]
            }
        ]
    }

The file is read on every lookup so edits made while the server runs are
picked up by the next webhook delivery.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from ..errors import RegistryError
from ..models.repository import ProjectHandle, RegistryDocument, RepositoryRecord
from .base import Registry

logger = logging.getLogger(__name__)


def load_registry(path: Path) -> RegistryDocument:
    """
    Load the registry document from a JSON file.

    A missing file is an empty registry. Every repository gets its owning
    project identifier filled in.

    Raises:
        RegistryError: If the file is unreadable or doesn't match the schema
    """
    if not path.exists():
        logger.debug(f"Registry file {path} not found, using empty registry")
        return RegistryDocument()

    try:
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        document = RegistryDocument(**data)
    except (OSError, json.JSONDecodeError, ValidationError, TypeError) as e:
        raise RegistryError(f"Invalid registry file {path}: {e}") from e

    for project in document.projects:
        for repo in project.repositories:
            if not repo.project:
                repo.project = project.identifier

    return document


def save_registry(document: RegistryDocument, path: Path) -> None:
    """
    Save the registry document to a JSON file.

    Uses atomic write (write to temp, then rename) to prevent corruption.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    temp_path = path.with_suffix(".tmp")
    with temp_path.open("w", encoding="utf-8") as f:
        json.dump(document.model_dump(), f, indent=4)
        f.write("\n")

    temp_path.replace(path)
    logger.debug(f"Registry saved → {path.name}")


class JsonFileRegistry(Registry):
    """Registry stored in a single JSON document."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def find_project(self, identifier: str) -> Optional[ProjectHandle]:
        wanted = identifier.lower()
        for project in load_registry(self.path).projects:
            if project.identifier.lower() == wanted:
                return project
        return None

    def list_projects(self) -> List[ProjectHandle]:
        return load_registry(self.path).projects

    def save_repository(self, record: RepositoryRecord) -> None:
        with self._lock:
            document = load_registry(self.path)
            project = next(
                (p for p in document.projects
                 if p.identifier.lower() == record.project.lower()),
                None,
            )
            if project is None:
                raise RegistryError(f"No project '{record.project}' in {self.path}")

            for index, repo in enumerate(project.repositories):
                if repo.identifier == record.identifier:
                    project.repositories[index] = record.model_copy()
                    break
            else:
                raise RegistryError(
                    f"Repository '{record.identifier}' not found in project "
                    f"'{project.identifier}'"
                )

            try:
                save_registry(document, self.path)
            except OSError as e:
                raise RegistryError(f"Failed to write registry {self.path}: {e}") from e

        logger.info(
            f"Repository saved: {record.project}/{record.identifier} "
            f"(root_url={record.root_url})"
        )
