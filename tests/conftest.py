"""
Shared fixtures for hook sync tests.

Provides a recording fake process runner (no git needed), in-memory and
file-backed registries, and a Flask test app wired to a temporary
registry file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

import pytest

from hooksync.config.settings import HookSettings
from hooksync.indexer.base import ChangesetIndexer
from hooksync.models.repository import ProjectHandle, RepositoryRecord
from hooksync.observability.metrics import MetricsRegistry
from hooksync.persistence.memory import InMemoryRegistry
from hooksync.sync.process import ProcessResult


class FakeRunner:
    """
    Stands in for ProcessRunner.

    Records every call as (args, cwd). ``mkdir -p`` creates the directory
    and ``git clone`` drops a HEAD file, so the mirror looks initialised
    afterwards, just like with real git. ``fail_when`` decides which
    commands fail.
    """

    def __init__(self, fail_when: Optional[Callable[[List[str], Optional[str]], bool]] = None):
        self.calls: List[Tuple[List[str], Optional[str]]] = []
        self.fail_when = fail_when or (lambda args, cwd: False)

    def run(self, args: Sequence[str], cwd: Optional[str] = None, *, secrets=(), failure_level=logging.ERROR):
        args = list(args)
        self.calls.append((args, cwd))

        if self.fail_when(args, cwd):
            return ProcessResult(success=False, output=["fatal: simulated failure"], returncode=128)

        if args[:2] == ["mkdir", "-p"]:
            Path(args[2]).mkdir(parents=True, exist_ok=True)
        elif "clone" in args and cwd:
            (Path(cwd) / "HEAD").write_text("ref: refs/heads/main\n")

        return ProcessResult(success=True, output=[], returncode=0)

    @property
    def commands(self) -> List[List[str]]:
        return [args for args, _ in self.calls]

    def subcommands(self) -> List[str]:
        """First git subcommand of each call (``mkdir`` for the directory step)."""
        return [args[1] if args[0] != "mkdir" else "mkdir" for args in self.commands]


class RecordingIndexer(ChangesetIndexer):
    """Indexer that remembers which records it was asked to index."""

    def __init__(self, fail_for: Sequence[str] = ()):
        self.indexed: List[RepositoryRecord] = []
        self.fail_for = set(fail_for)

    @property
    def name(self) -> str:
        return "recording"

    def fetch_changesets(self, record: RepositoryRecord) -> None:
        from hooksync.errors import IndexerError

        if record.identifier in self.fail_for:
            raise IndexerError(f"indexer rejected {record.identifier}")
        self.indexed.append(record.model_copy())


def make_project(identifier: str = "acme", repositories: Optional[List[RepositoryRecord]] = None) -> ProjectHandle:
    if repositories is None:
        repositories = [
            RepositoryRecord(identifier="main", url="https://github.com/acme/acme.git"),
        ]
    return ProjectHandle(identifier=identifier, repositories=repositories)


def write_registry(path: Path, projects: List[dict]) -> None:
    """Helper to write a registry JSON file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps({"schema_version": 1, "projects": projects}, indent=2), encoding="utf-8")


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def indexer() -> RecordingIndexer:
    return RecordingIndexer()


@pytest.fixture
def registry() -> InMemoryRegistry:
    return InMemoryRegistry([make_project()])


@pytest.fixture
def test_logger() -> logging.Logger:
    """A propagating logger so caplog sees the sync core's messages."""
    logger = logging.getLogger("hooksync.test")
    logger.setLevel(logging.DEBUG)
    return logger


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    return MetricsRegistry(prefix="test")


@pytest.fixture
def registry_file(tmp_path: Path) -> Path:
    """Registry with one git project ``acme`` and one non-git repository."""
    path = tmp_path / "state" / "registry.json"
    write_registry(path, [
        {
            "identifier": "acme",
            "name": "Acme",
            "repositories": [
                {"identifier": "main", "url": "https://github.com/acme/acme.git", "scm": "git"},
                {"identifier": "legacy", "url": "svn://svn.example.com/acme", "scm": "subversion"},
            ],
        },
        {
            "identifier": "docs",
            "repositories": [
                {"identifier": "wiki", "url": "svn://svn.example.com/docs", "scm": "subversion"},
            ],
        },
    ])
    return path


@pytest.fixture
def settings(tmp_path: Path, registry_file: Path) -> HookSettings:
    return HookSettings(
        registry_path=registry_file,
        base_dir=str(tmp_path / "mirrors"),
        command_timeout=None,
    )


@pytest.fixture
def app(settings: HookSettings, metrics_registry: MetricsRegistry):
    """Flask test app backed by the temporary registry."""
    pytest.importorskip("flask")
    from hooksync.server.app import create_app

    app = create_app(settings, metrics_registry=metrics_registry)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    """Flask test client."""
    return app.test_client()
