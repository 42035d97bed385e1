"""
Update Orchestrator — Entry point for one webhook delivery.

Resolves the affected repositories, synchronises each one and logs a line
per repository with its duration, whether it worked or not. One broken
mirror never stops its siblings.

## Usage

    from hooksync.config.settings import HookSettings
    from hooksync.sync.updater import UpdateOrchestrator

    orchestrator = UpdateOrchestrator.from_settings(HookSettings.load(), logger=log)
    outcomes = orchestrator.run(payload, {"repository_id": "main"})
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Mapping, Optional

from ..config.settings import HookSettings
from ..indexer.base import build_indexer
from ..logging_config import null_logger
from ..models.repository import RepositoryRecord
from ..models.sync import REASON_CANCELLED, REASON_ERROR, SyncOutcome
from ..observability.metrics import MetricsRegistry
from ..observability.metrics import metrics as default_metrics
from ..persistence.registry_file import JsonFileRegistry
from .mirror import MirrorSynchronizer
from .process import ProcessRunner
from .resolver import RepositoryResolver


class UpdateOrchestrator:
    """
    Runs the synchronizer over every resolved repository.

    With ``workers > 1`` repositories are synchronised on a thread pool;
    the synchronizer's per-path locks keep two workers off the same
    mirror. Cancellation (``cancel`` event) is only checked before a
    repository starts, never in the middle of a git command.
    """

    def __init__(
        self,
        resolver: RepositoryResolver,
        synchronizer: MirrorSynchronizer,
        logger: Optional[logging.Logger] = None,
        workers: int = 1,
        metrics: Optional[MetricsRegistry] = None,
    ):
        self.resolver = resolver
        self.synchronizer = synchronizer
        self.logger = logger or null_logger()
        self.workers = max(1, workers)
        self.metrics = metrics or default_metrics

    @classmethod
    def from_settings(
        cls,
        settings: HookSettings,
        logger: Optional[logging.Logger] = None,
        metrics: Optional[MetricsRegistry] = None,
    ) -> "UpdateOrchestrator":
        """Wire registry, indexer, runner and synchronizer from settings."""
        registry = JsonFileRegistry(settings.registry_path)
        runner = ProcessRunner(timeout=settings.command_timeout, logger=logger)
        synchronizer = MirrorSynchronizer(
            registry=registry,
            indexer=build_indexer(settings),
            git_command=settings.git_command,
            credentials=settings.credentials,
            base_dir=settings.base_dir,
            runner=runner,
            logger=logger,
        )
        return cls(
            resolver=RepositoryResolver(registry, logger=logger),
            synchronizer=synchronizer,
            logger=logger,
            workers=settings.workers,
            metrics=metrics,
        )

    def run(
        self,
        payload: Dict[str, Any],
        params: Optional[Mapping[str, Any]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> List[SyncOutcome]:
        """
        Synchronise every repository the notification refers to.

        Raises NotFoundError / InvalidStateError before anything runs if
        the repositories can't be resolved. Returns one outcome per
        repository, in resolution order.
        """
        repositories = self.resolver.resolve(payload, params)

        if self.workers == 1 or len(repositories) == 1:
            outcomes = [self._update(repo, cancel) for repo in repositories]
        else:
            with ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="hook-sync"
            ) as pool:
                outcomes = list(pool.map(lambda repo: self._update(repo, cancel), repositories))

        ok_count = sum(1 for o in outcomes if o.success)
        self.logger.info(f"[hook] {ok_count}/{len(outcomes)} repositories updated")
        return outcomes

    def _update(
        self,
        repository: RepositoryRecord,
        cancel: Optional[threading.Event],
    ) -> SyncOutcome:
        if cancel is not None and cancel.is_set():
            self.logger.warning(f"[hook] Update cancelled before {repository.identifier}")
            outcome = SyncOutcome(
                repository=repository.identifier, success=False, reason=REASON_CANCELLED
            )
            self._record(outcome)
            return outcome

        started = time.monotonic()
        try:
            outcome = self.synchronizer.sync(repository)
        except Exception:
            self.logger.exception(f"[hook] Unexpected error updating {repository.identifier}")
            outcome = SyncOutcome(repository=repository.identifier, success=False, reason=REASON_ERROR)
        outcome.elapsed_ms = round((time.monotonic() - started) * 1000.0, 1)

        if outcome.success:
            self.logger.info(
                f"[hook] Repository updated: {repository.identifier} "
                f"(Git: {outcome.elapsed_ms}ms)",
                extra={"repository": repository.identifier, "elapsed_ms": outcome.elapsed_ms},
            )
        else:
            self.logger.info(
                f"[hook] Repository update failed: {repository.identifier} "
                f"(Git: {outcome.elapsed_ms}ms, reason: {outcome.reason})",
                extra={
                    "repository": repository.identifier,
                    "elapsed_ms": outcome.elapsed_ms,
                    "reason": outcome.reason,
                },
            )

        self._record(outcome)
        return outcome

    def _record(self, outcome: SyncOutcome) -> None:
        result = "ok" if outcome.success else "failed"
        self.metrics.increment(
            "sync_total", labels={"result": result, "reason": outcome.reason or "none"}
        )
        if outcome.reason == REASON_CANCELLED:
            return
        self.metrics.timing("sync_duration_seconds", outcome.elapsed_ms / 1000.0)
        if outcome.success:
            self.metrics.set_gauge(
                "last_success_timestamp_seconds", time.time(),
                labels={"repository": outcome.repository},
            )
