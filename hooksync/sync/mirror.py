"""
Mirror Synchronizer — Clone-or-fetch one repository into a bare mirror.

Steps, strictly in order, each short-circuiting on failure:

1. Resolve the clone URL and mirror path (credentials, relocation)
2. ``mkdir -p <path>``
3. Already cloned? (``<path>/HEAD`` exists)
4. If not: ``git clone --bare <url> .``
5. ``git fetch origin`` then ``git fetch --prune origin "+refs/heads/*:refs/heads/*"``
   (the prune fetch is best-effort)
6. If relocated: write the new ``root_url`` back to the registry
7. Ask the changeset indexer to scan the mirror

Repeated deliveries for the same repository are safe: the HEAD check is
re-run every time, so the second delivery only fetches.
"""

from __future__ import annotations

import logging
import os
import shlex
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence

from ..errors import ExecutionFailure, IndexerError, RegistryError
from ..indexer.base import ChangesetIndexer
from ..logging_config import null_logger
from ..models.repository import RepositoryRecord
from ..models.sync import (
    REASON_CLONE,
    REASON_DIRECTORY,
    REASON_FETCH,
    REASON_INDEX,
    REASON_PERSIST,
    SyncOutcome,
)
from ..persistence.base import Registry
from .process import ProcessRunner, mask_secrets
from .urls import EffectiveLocation, rewrite

HEAD_MARKER = "HEAD"
PRUNE_REFSPEC = "+refs/heads/*:refs/heads/*"


def is_initialized(local_path: str) -> bool:
    """A mirror is cloned iff its bare-repository HEAD file exists."""
    return (Path(local_path) / HEAD_MARKER).exists()


class PathLocks:
    """
    One lock per mirror directory, shared by every synchronizer.

    Paths are normalised, so ``/srv/m//a.git`` and ``/srv/m/a.git/`` are
    the same mirror. An entry lives only while some thread holds or waits
    for it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._users: Dict[str, int] = {}

    @staticmethod
    def key(local_path: str) -> str:
        return os.path.normpath(os.path.abspath(local_path))

    def __len__(self) -> int:
        return len(self._locks)

    @contextmanager
    def hold(self, local_path: str) -> Iterator[None]:
        key = self.key(local_path)
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]


# Process-wide: every delivery builds its own synchronizer
mirror_locks = PathLocks()


class MirrorSynchronizer:
    """
    Brings one repository's local mirror up to date with its remote.

    Two synchronisations never run against the same mirror path at once.
    Locks come from the process-wide ``mirror_locks`` unless ``locks`` is
    given, so concurrent webhook deliveries and a worker pool both
    serialise on the mirror directory.
    """

    def __init__(
        self,
        registry: Registry,
        indexer: ChangesetIndexer,
        git_command: str = "git",
        credentials: Optional[str] = None,
        base_dir: Optional[str] = None,
        runner: Optional[ProcessRunner] = None,
        logger: Optional[logging.Logger] = None,
        locks: Optional[PathLocks] = None,
    ):
        self.registry = registry
        self.indexer = indexer
        self.git_command = git_command
        self.credentials = credentials or None
        self.base_dir = base_dir or None
        self.logger = logger or null_logger()
        self.runner = runner or ProcessRunner(logger=self.logger)
        self.locks = locks if locks is not None else mirror_locks

    @property
    def _secrets(self) -> List[str]:
        return [self.credentials] if self.credentials else []

    def locate(self, record: RepositoryRecord) -> EffectiveLocation:
        return rewrite(record.url, self.credentials, self.base_dir)

    def sync(self, record: RepositoryRecord) -> SyncOutcome:
        """Run the full clone-or-fetch sequence for ``record``."""
        started = time.monotonic()
        location = self.locate(record)

        with self.locks.hold(location.local_path):
            reason = self._run_steps(record, location)

        elapsed_ms = round((time.monotonic() - started) * 1000.0, 1)
        return SyncOutcome(
            repository=record.identifier,
            success=reason is None,
            elapsed_ms=elapsed_ms,
            reason=reason,
            relocated=location.relocated,
            local_path=location.local_path,
        )

    def _run_steps(self, record: RepositoryRecord, location: EffectiveLocation) -> Optional[str]:
        """Return None on success, else the failure reason."""
        path = location.local_path
        try:
            self._step(REASON_DIRECTORY, ["mkdir", "-p", path])

            if is_initialized(path):
                self.logger.debug(f"[mirror] {record.identifier}: mirror already cloned at {path}")
            else:
                self.logger.info(f"[mirror] {record.identifier}: cloning into {path}")
                self._step(
                    REASON_CLONE,
                    self._git("clone", "--bare", location.clone_url, "."),
                    cwd=path,
                )

            self._step(REASON_FETCH, self._git("fetch", "origin"), cwd=path)
            self._prune(path)
        except ExecutionFailure as e:
            self.logger.error(
                f"[mirror] {record.identifier}: {e.reason} ({e.command})",
                extra={"repository": record.identifier, "reason": e.reason},
            )
            return e.reason

        if location.relocated:
            try:
                self._persist_location(record, path)
            except RegistryError as e:
                self.logger.error(f"[mirror] {record.identifier}: could not save root_url: {e}")
                return REASON_PERSIST

        try:
            self.indexer.fetch_changesets(record)
        except IndexerError as e:
            self.logger.error(f"[mirror] {record.identifier}: indexing failed: {e}")
            return REASON_INDEX

        return None

    def _git(self, *args: str) -> List[str]:
        return [self.git_command, *args]

    def _step(self, reason: str, args: Sequence[str], cwd: Optional[str] = None) -> None:
        result = self.runner.run(args, cwd=cwd, secrets=self._secrets)
        if not result.success:
            raise ExecutionFailure(
                reason,
                command=mask_secrets(shlex.join(args), self._secrets),
                output=[mask_secrets(line, self._secrets) for line in result.output],
            )

    def _prune(self, path: str) -> None:
        # Best-effort: a failed prune leaves the mirror usable
        self.runner.run(
            self._git("fetch", "--prune", "origin", PRUNE_REFSPEC),
            cwd=path,
            secrets=self._secrets,
            failure_level=logging.DEBUG,
        )

    def _persist_location(self, record: RepositoryRecord, path: str) -> None:
        # record is only updated once the registry accepted the new root_url
        self.registry.save_repository(record.model_copy(update={"root_url": path}))
        record.root_url = path
        self.logger.info(f"[mirror] {record.identifier}: root_url set to {path}")
