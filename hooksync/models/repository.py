"""
Repository Models — Pydantic schemas for the project/repository registry.

The registry file (state/registry.json) maps project identifiers to the
repositories tracked for them. The sync core only reads these records,
except for ``root_url`` which is rewritten when a mirror is relocated
under the configured base directory.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

SCM_GIT = "git"


class RepositoryRecord(BaseModel):
    """A tracked repository of a project."""

    identifier: str
    url: str = ""  # remote URL, or a local path for already-resolved mirrors
    root_url: str = ""  # local mirror path the indexer reads from
    scm: str = SCM_GIT
    project: str = ""  # owning project identifier

    @property
    def is_git(self) -> bool:
        return self.scm.lower() == SCM_GIT


class ProjectHandle(BaseModel):
    """A project and its repositories."""

    identifier: str
    name: Optional[str] = None
    repositories: List[RepositoryRecord] = Field(default_factory=list)

    def git_repositories(self) -> List[RepositoryRecord]:
        return [repo for repo in self.repositories if repo.is_git]


class RegistryDocument(BaseModel):
    """On-disk format of the file-backed registry."""

    schema_version: int = 1
    projects: List[ProjectHandle] = Field(default_factory=list)
