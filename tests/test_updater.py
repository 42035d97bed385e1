"""
Tests for the update orchestrator — one webhook delivery end to end.
"""

from __future__ import annotations

import logging
import re
import threading
import time

import pytest

from hooksync.errors import NotFoundError
from hooksync.models.repository import ProjectHandle, RepositoryRecord
from hooksync.models.sync import REASON_CANCELLED, REASON_CLONE, REASON_ERROR
from hooksync.persistence.memory import InMemoryRegistry
from hooksync.persistence.registry_file import load_registry
from hooksync.sync.mirror import MirrorSynchronizer
from hooksync.sync.resolver import RepositoryResolver
from hooksync.sync.updater import UpdateOrchestrator

from tests.conftest import FakeRunner, RecordingIndexer, make_project

PUSH = {"repository": {"name": "acme"}}


def _registry(*names: str) -> InMemoryRegistry:
    return InMemoryRegistry([
        ProjectHandle(identifier="acme", repositories=[
            RepositoryRecord(identifier=name, url=f"https://github.com/acme/{name}.git")
            for name in names
        ]),
    ])


def _orchestrator(tmp_path, registry, runner, indexer=None, logger=None, workers=1, metrics=None):
    synchronizer = MirrorSynchronizer(
        registry=registry,
        indexer=indexer or RecordingIndexer(),
        base_dir=str(tmp_path / "mirrors"),
        runner=runner,
        logger=logger,
    )
    return UpdateOrchestrator(
        resolver=RepositoryResolver(registry, logger=logger),
        synchronizer=synchronizer,
        logger=logger,
        workers=workers,
        metrics=metrics,
    )


class TestRun:

    def test_all_repositories_updated(self, tmp_path, runner, metrics_registry):
        registry = _registry("api", "web")

        outcomes = _orchestrator(tmp_path, registry, runner, metrics=metrics_registry).run(PUSH)

        assert [o.repository for o in outcomes] == ["api", "web"]
        assert all(o.success for o in outcomes)
        assert runner.subcommands().count("clone") == 2

    def test_partial_failure_is_isolated(self, tmp_path, metrics_registry):
        runner = FakeRunner(fail_when=lambda args, cwd: "clone" in args and "api.git" in args[3])
        registry = _registry("api", "web")
        indexer = RecordingIndexer()

        outcomes = _orchestrator(
            tmp_path, registry, runner, indexer=indexer, metrics=metrics_registry,
        ).run(PUSH)

        assert [(o.repository, o.success, o.reason) for o in outcomes] == [
            ("api", False, REASON_CLONE),
            ("web", True, None),
        ]
        assert [r.identifier for r in indexer.indexed] == ["web"]

    def test_payload_only_without_base_dir(self, tmp_path, monkeypatch, metrics_registry):
        """Mirror path is the remote URL itself; the record is indexed untouched."""
        monkeypatch.chdir(tmp_path)
        registry = InMemoryRegistry([make_project()])
        runner = FakeRunner()
        indexer = RecordingIndexer()
        synchronizer = MirrorSynchronizer(registry=registry, indexer=indexer, runner=runner)
        orchestrator = UpdateOrchestrator(
            resolver=RepositoryResolver(registry),
            synchronizer=synchronizer,
            metrics=metrics_registry,
        )
        original = registry.find_project("acme").repositories[0].model_copy()

        outcomes = orchestrator.run({"repository": {"name": "acme"}}, {})

        url = "https://github.com/acme/acme.git"
        assert [o.success for o in outcomes] == [True]
        assert runner.calls == [
            (["mkdir", "-p", url], None),
            (["git", "clone", "--bare", url, "."], url),
            (["git", "fetch", "origin"], url),
            (["git", "fetch", "--prune", "origin", "+refs/heads/*:refs/heads/*"], url),
        ]
        assert indexer.indexed == [original]
        assert registry.saved == []

    def test_resolution_errors_propagate(self, tmp_path, runner, metrics_registry):
        orchestrator = _orchestrator(tmp_path, _registry("api"), runner, metrics=metrics_registry)

        with pytest.raises(NotFoundError):
            orchestrator.run({"repository": {"name": "ghost"}})
        assert runner.calls == []

    def test_selector_narrows(self, tmp_path, runner, metrics_registry):
        orchestrator = _orchestrator(tmp_path, _registry("api", "web"), runner, metrics=metrics_registry)

        outcomes = orchestrator.run(PUSH, {"repository_id": "web"})

        assert [o.repository for o in outcomes] == ["web"]

    def test_unexpected_exception_becomes_error_outcome(self, tmp_path, metrics_registry, caplog, test_logger):
        caplog.set_level(logging.DEBUG, logger="hooksync.test")

        class ExplodingIndexer(RecordingIndexer):
            def fetch_changesets(self, record):
                if record.identifier == "api":
                    raise RuntimeError("boom")
                super().fetch_changesets(record)

        orchestrator = _orchestrator(
            tmp_path, _registry("api", "web"), FakeRunner(),
            indexer=ExplodingIndexer(), logger=test_logger, metrics=metrics_registry,
        )

        outcomes = orchestrator.run(PUSH)

        assert outcomes[0].reason == REASON_ERROR
        assert outcomes[0].category == "error"
        assert outcomes[1].success is True
        assert any(r.exc_info for r in caplog.records)


class TestOutcomeLog:

    def test_one_line_per_repository(self, tmp_path, metrics_registry, caplog, test_logger):
        caplog.set_level(logging.INFO, logger="hooksync.test")
        runner = FakeRunner(fail_when=lambda args, cwd: "clone" in args and "api.git" in args[3])

        _orchestrator(
            tmp_path, _registry("api", "web"), runner,
            logger=test_logger, metrics=metrics_registry,
        ).run(PUSH)

        messages = [r.getMessage() for r in caplog.records]
        failed = [m for m in messages if m.startswith("[hook] Repository update failed: api")]
        updated = [m for m in messages if m.startswith("[hook] Repository updated: web")]
        assert len(failed) == 1
        assert len(updated) == 1
        assert re.search(r"\(Git: [\d.]+ms, reason: clone_failed\)", failed[0])
        assert re.search(r"\(Git: [\d.]+ms\)$", updated[0])

    def test_outcome_records_carry_extra_fields(self, tmp_path, runner, metrics_registry, caplog, test_logger):
        caplog.set_level(logging.INFO, logger="hooksync.test")

        _orchestrator(
            tmp_path, _registry("api"), runner, logger=test_logger, metrics=metrics_registry,
        ).run(PUSH)

        record = next(r for r in caplog.records if "Repository updated" in r.getMessage())
        assert record.repository == "api"
        assert record.elapsed_ms >= 0


class TestCancellation:

    def test_cancel_before_start(self, tmp_path, runner, metrics_registry):
        cancel = threading.Event()
        cancel.set()

        outcomes = _orchestrator(
            tmp_path, _registry("api", "web"), runner, metrics=metrics_registry,
        ).run(PUSH, cancel=cancel)

        assert [o.reason for o in outcomes] == [REASON_CANCELLED, REASON_CANCELLED]
        assert runner.calls == []

    def test_cancel_between_repositories(self, tmp_path, metrics_registry):
        cancel = threading.Event()

        class CancellingIndexer(RecordingIndexer):
            def fetch_changesets(self, record):
                super().fetch_changesets(record)
                cancel.set()

        outcomes = _orchestrator(
            tmp_path, _registry("api", "web"), FakeRunner(),
            indexer=CancellingIndexer(), metrics=metrics_registry,
        ).run(PUSH, cancel=cancel)

        # The running repository finishes; the next one never starts
        assert outcomes[0].success is True
        assert outcomes[1].reason == REASON_CANCELLED


class TestWorkers:

    def test_parallel_preserves_order(self, tmp_path, metrics_registry):
        class SlowRunner(FakeRunner):
            def run(self, args, cwd=None, **kwargs):
                if "clone" in args and "a.git" in args[3]:
                    time.sleep(0.05)
                return super().run(args, cwd, **kwargs)

        orchestrator = _orchestrator(
            tmp_path, _registry("a", "b", "c"), SlowRunner(),
            workers=3, metrics=metrics_registry,
        )

        outcomes = orchestrator.run(PUSH)

        assert [o.repository for o in outcomes] == ["a", "b", "c"]
        assert all(o.success for o in outcomes)

    def test_parallel_runs_concurrently(self, tmp_path, metrics_registry):
        barrier = threading.Barrier(2, timeout=5)

        class BarrierIndexer(RecordingIndexer):
            def fetch_changesets(self, record):
                # Both repositories must be inside the indexer at the same time
                barrier.wait()
                super().fetch_changesets(record)

        outcomes = _orchestrator(
            tmp_path, _registry("a", "b"), FakeRunner(),
            indexer=BarrierIndexer(), workers=2, metrics=metrics_registry,
        ).run(PUSH)

        assert all(o.success for o in outcomes)

    def test_workers_floor(self, tmp_path, runner):
        assert _orchestrator(tmp_path, _registry("a"), runner, workers=0).workers == 1


class TestMetrics:

    def test_results_counted(self, tmp_path, metrics_registry):
        runner = FakeRunner(fail_when=lambda args, cwd: "clone" in args and "api.git" in args[3])

        _orchestrator(tmp_path, _registry("api", "web"), runner, metrics=metrics_registry).run(PUSH)

        sync_total = metrics_registry.counter("sync_total")
        assert sync_total.get({"result": "ok", "reason": "none"}) == 1
        assert sync_total.get({"result": "failed", "reason": REASON_CLONE}) == 1
        assert metrics_registry.histogram("sync_duration_seconds").count() == 2
        last_success = metrics_registry.gauge("last_success_timestamp_seconds")
        assert last_success.get({"repository": "web"}) > 0
        assert last_success.get({"repository": "api"}) == 0

    def test_cancelled_not_timed(self, tmp_path, runner, metrics_registry):
        cancel = threading.Event()
        cancel.set()

        _orchestrator(tmp_path, _registry("api"), runner, metrics=metrics_registry).run(PUSH, cancel=cancel)

        assert metrics_registry.counter("sync_total").get({"result": "failed", "reason": "cancelled"}) == 1
        assert metrics_registry.histogram("sync_duration_seconds").count() == 0


class TestFromSettings:

    def test_end_to_end_with_registry_file(self, settings, monkeypatch, metrics_registry):
        runner = FakeRunner()
        monkeypatch.setattr("hooksync.sync.updater.ProcessRunner", lambda **kwargs: runner)

        orchestrator = UpdateOrchestrator.from_settings(settings, metrics=metrics_registry)
        outcomes = orchestrator.run(PUSH)

        expected = f"{settings.base_dir}/acme/acme.git"
        assert [o.repository for o in outcomes] == ["main"]
        assert outcomes[0].success is True
        document = load_registry(settings.registry_path)
        main = document.projects[0].repositories[0]
        assert main.root_url == expected
        # The non-git repository is left alone
        assert document.projects[0].repositories[1].root_url == ""

    def test_wiring(self, settings):
        settings.workers = 3
        settings.credentials = "bot:token"

        orchestrator = UpdateOrchestrator.from_settings(settings)

        assert orchestrator.workers == 3
        assert orchestrator.synchronizer.credentials == "bot:token"
        assert orchestrator.synchronizer.base_dir == settings.base_dir
        assert orchestrator.synchronizer.indexer.name == "null"
