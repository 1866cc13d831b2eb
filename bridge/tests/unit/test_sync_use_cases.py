"""
Tests del orquestador de pasadas con dobles en memoria.

Cubre los escenarios de punta a punta: creación, filtro de requeridos,
idempotencia entre pasadas, dry-run, errores aislados y fallas de pasada.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from qc_bridge.application.services.record_processor import RecordProcessor
from qc_bridge.application.use_cases.sync_use_cases import (
    STATE_DONE,
    STATE_FAILED,
    STATE_FETCH_PAGES,
    SyncOrchestrator,
)
from qc_bridge.core.config import SyncOptions
from qc_bridge.domain.entities import Cursor, SourceRecord, UpsertResult
from qc_bridge.infrastructure.observability.health_monitor import HealthMonitor
from qc_bridge.shared.exceptions import CategoryNotFoundError, SourceApiError, SyncPassError

NOW = datetime(2025, 1, 10, 13, 0, tzinfo=timezone.utc)
T1 = datetime(2025, 1, 10, 12, 1, tzinfo=timezone.utc)
T2 = datetime(2025, 1, 10, 12, 2, tzinfo=timezone.utc)
T3 = datetime(2025, 1, 10, 12, 3, tzinfo=timezone.utc)


class InMemoryCursors:
    def __init__(self, initial: datetime | None = None) -> None:
        self.value = initial
        self.boundary = {}
        self.saves = []

    def get(self, source):
        if not self.value:
            return None
        return Cursor(source, self.value, {"boundary": dict(self.boundary)})

    def save(self, source, timestamp, boundary=None):
        self.saves.append(timestamp)
        self.value = timestamp
        self.boundary = dict(boundary or {})


class InMemoryOpsLog:
    def __init__(self) -> None:
        self.rows = []

    def record(self, operation, *, entity_type="system", entity_id=None, metadata=None):
        self.rows.append((operation, entity_type, entity_id, dict(metadata or {})))


class InMemoryNotion:
    """Base de Notion en memoria: reader + link-back sobre el mismo estado."""

    def __init__(self, records) -> None:
        self.pages = {r.external_id: r for r in records}
        self.queries = []
        self.link_backs = []
        self.error: Exception | None = None

    def fetch_since(self, since):
        self.queries.append(since)
        if self.error is not None:
            raise self.error
        found = [r for r in self.pages.values() if r.last_modified >= since]
        return sorted(found, key=lambda r: r.last_modified, reverse=True)

    def mark_linked(self, source_external_id, target_id):
        self.link_backs.append((source_external_id, target_id))
        page = self.pages[source_external_id]
        self.pages[source_external_id] = SourceRecord(
            **{**page.__dict__, "linked": True, "target_id": target_id}
        )


class InMemoryTasks:
    """Tareas + vínculos en memoria, con categorías conocidas."""

    def __init__(self, categories=("health", "business")) -> None:
        self.categories = set(categories)
        self.tasks = {}
        self.links = {}
        self.upserts = 0

    def upsert(self, **kwargs):
        self.upserts += 1
        if kwargs["category_key"] not in self.categories:
            raise CategoryNotFoundError(kwargs["category_key"])
        source_id = kwargs["source_id"]
        existing = next((tid for tid, t in self.tasks.items() if t["source_id"] == source_id), None)
        task_id = existing or f"task-{len(self.tasks) + 1}"
        self.tasks[task_id] = kwargs
        return UpsertResult(task_id=task_id, created=existing is None)

    # SyncLinkStore
    def get(self, external_id):
        return self.links.get(external_id)

    def save(self, link):
        self.links[link.external_id] = link


def _record(external_id, last_modified, **kwargs):
    values = {"title": f"Task {external_id}", "category": "Health", "priority": "🔴 P1"}
    values.update(kwargs)
    return SourceRecord(external_id=external_id, last_modified=last_modified, **values)


def _orchestrator(notion, tasks, cursors, *, dry_run=False, monitor=None, ops_log=None, **options):
    opts = SyncOptions(dry_run=dry_run, **options)
    processor = RecordProcessor(
        gateway=tasks, sync_links=tasks, link_back=notion, options=opts, sleep=lambda _: None
    )
    return SyncOrchestrator(
        cursor_store=cursors,
        source_reader=notion,
        processor=processor,
        options=opts,
        monitor=monitor,
        ops_log=ops_log,
        clock=lambda: NOW,
    )


def test_happy_create_advances_cursor_and_links() -> None:
    notion = InMemoryNotion([_record("a", T1, focus_slot="🎯 Deep Work Block 1")])
    tasks, cursors = InMemoryTasks(), InMemoryCursors()

    summary = _orchestrator(notion, tasks, cursors).run_pass()

    assert (summary.fetched, summary.created, summary.errors) == (1, 1, 0)
    task = tasks.tasks["task-1"]
    assert task["priority"] == "P1" and task["focus_slot"] == "Deep Work Block 1"
    assert notion.pages["a"].linked is True
    assert cursors.value == T1
    # sin cursor previo se lee desde now - 1h
    assert notion.queries == [NOW - timedelta(hours=1)]


def test_missing_category_is_skipped_but_cursor_advances() -> None:
    notion = InMemoryNotion([_record("a", T2, category=None)])
    tasks, cursors = InMemoryTasks(), InMemoryCursors(T1)

    summary = _orchestrator(notion, tasks, cursors).run_pass()

    assert (summary.fetched, summary.skipped) == (1, 1)
    assert tasks.upserts == 0
    assert cursors.value == T2


def test_second_pass_is_idempotent() -> None:
    notion = InMemoryNotion([_record("a", T1), _record("b", T2, category="Business")])
    tasks, cursors = InMemoryTasks(), InMemoryCursors(T1)
    orchestrator = _orchestrator(notion, tasks, cursors)

    first = orchestrator.run_pass()
    second = orchestrator.run_pass()

    assert first.created == 2
    # la página en el borde del cursor vuelve a leerse, pero sin cambios
    assert second.fetched == 1
    assert (second.created, second.updated, second.skipped) == (0, 0, 1)
    assert tasks.upserts == 2
    assert len(tasks.tasks) == 2


def test_cosmetic_edit_does_not_trigger_update() -> None:
    notion = InMemoryNotion([_record("a", T1, priority="🔴 P1")])
    tasks, cursors = InMemoryTasks(), InMemoryCursors()
    orchestrator = _orchestrator(notion, tasks, cursors)
    orchestrator.run_pass()

    page = notion.pages["a"]
    notion.pages["a"] = SourceRecord(**{**page.__dict__, "priority": "P1", "last_modified": T3})
    summary = orchestrator.run_pass()

    assert summary.skipped == 1
    assert tasks.upserts == 1
    assert cursors.value == T3


def test_dry_run_writes_nothing() -> None:
    notion = InMemoryNotion([_record("a", T1), _record("b", T2)])
    tasks, cursors = InMemoryTasks(), InMemoryCursors()

    summary = _orchestrator(notion, tasks, cursors, dry_run=True).run_pass()

    assert summary.created == 2
    assert summary.dry_run is True
    assert tasks.upserts == 0 and tasks.links == {}
    assert notion.link_backs == []
    assert cursors.saves == []


def test_record_error_does_not_stop_the_pass() -> None:
    notion = InMemoryNotion(
        [_record("a", T1), _record("b", T2, category="Unknown"), _record("c", T3)]
    )
    tasks, cursors = InMemoryTasks(), InMemoryCursors()

    summary = _orchestrator(notion, tasks, cursors).run_pass()

    assert (summary.created, summary.errors) == (2, 1)
    assert notion.pages["b"].linked is False
    # el cursor cubre también el registro con error
    assert cursors.value == T3


def test_high_error_ratio_emits_warning(log_records) -> None:
    notion = InMemoryNotion([_record("a", T1, category="Unknown"), _record("b", T2)])
    orchestrator = _orchestrator(notion, InMemoryTasks(), InMemoryCursors(), error_alert_ratio=0.2)

    summary = orchestrator.run_pass()

    assert summary.error_ratio == 0.5
    warnings = [r for r in log_records if r["level"].name == "WARNING"]
    assert any("Tasa de errores" in r["message"] for r in warnings)


def test_cursor_never_moves_backwards() -> None:
    notion = InMemoryNotion([_record("a", T1)])
    cursors = InMemoryCursors(T3)

    summary = _orchestrator(notion, InMemoryTasks(), cursors).run_pass(since_override=T1 - timedelta(minutes=1))

    assert summary.created == 1
    assert cursors.saves == []
    assert cursors.value == T3


def test_since_override_wins_over_stored_cursor() -> None:
    notion = InMemoryNotion([])
    cursors = InMemoryCursors(T3)
    override = datetime(2025, 1, 1, tzinfo=timezone.utc)

    _orchestrator(notion, InMemoryTasks(), cursors).run_pass(since_override=override)

    assert notion.queries == [override]


def test_empty_fetch_keeps_cursor() -> None:
    cursors = InMemoryCursors(T2)
    summary = _orchestrator(InMemoryNotion([]), InMemoryTasks(), cursors).run_pass()

    assert summary.fetched == 0
    assert cursors.saves == []
    assert summary.cursor_after == T2


def test_fetch_failure_raises_sync_pass_error_without_moving_cursor() -> None:
    notion = InMemoryNotion([_record("a", T2)])
    notion.error = SourceApiError("unauthorized", status_code=401)
    cursors = InMemoryCursors(T1)
    monitor = HealthMonitor()
    orchestrator = _orchestrator(notion, InMemoryTasks(), cursors, monitor=monitor)

    with pytest.raises(SyncPassError) as excinfo:
        orchestrator.run_pass()

    assert excinfo.value.state == STATE_FETCH_PAGES
    assert isinstance(excinfo.value.cause, SourceApiError)
    assert orchestrator.state == STATE_FAILED
    assert cursors.value == T1
    assert monitor.metrics["consecutive_failures"] == 1


def test_pass_runs_with_correlation_id(log_records) -> None:
    _orchestrator(InMemoryNotion([_record("a", T1)]), InMemoryTasks(), InMemoryCursors()).run_pass()

    ids = {r["extra"].get("correlation_id") for r in log_records}
    ids.discard(None)
    assert len(ids) == 1
    assert ids.pop().startswith("sync-")


def test_monitor_counts_completed_pass() -> None:
    monitor = HealthMonitor()
    orchestrator = _orchestrator(
        InMemoryNotion([_record("a", T1)]), InMemoryTasks(), InMemoryCursors(), monitor=monitor
    )

    orchestrator.run_pass()

    assert orchestrator.state == STATE_DONE
    assert monitor.metrics["sync_runs"] == 1
    assert monitor.metrics["tasks_created"] == 1
    assert monitor.metrics["last_successful_sync"] is not None


def test_unknown_focus_slot_is_upserted_as_null(log_records) -> None:
    notion = InMemoryNotion([_record("a", T1, focus_slot="Study Time")])
    tasks = InMemoryTasks()

    summary = _orchestrator(notion, tasks, InMemoryCursors()).run_pass()

    assert summary.created == 1
    assert tasks.tasks["task-1"]["focus_slot"] is None
    warnings = [r for r in log_records if r["level"].name == "WARNING"]
    assert any("Study Time" in r["message"] for r in warnings)


class TestCursorBoundary:
    def test_failing_record_is_not_retried_every_pass(self, log_records) -> None:
        notion = InMemoryNotion([_record("a", T1, category="unknown-region", focus_slot="Study Time")])
        tasks, cursors = InMemoryTasks(), InMemoryCursors()
        orchestrator = _orchestrator(notion, tasks, cursors)

        first = orchestrator.run_pass()
        alerts_after_first = sum(1 for r in log_records if r["level"].no >= 30)
        later = [orchestrator.run_pass() for _ in range(4)]

        assert first.errors == 1
        assert [s.errors for s in later] == [0, 0, 0, 0]
        assert all(s.fetched == 1 and s.skipped == 1 for s in later)
        assert tasks.upserts == 1
        assert sum(1 for r in log_records if r["level"].no >= 30) == alerts_after_first
        assert cursors.saves == [T1]
        assert set(cursors.boundary) == {"a"}

    def test_edit_within_the_same_timestamp_is_reprocessed(self) -> None:
        notion = InMemoryNotion([_record("a", T1)])
        tasks, cursors = InMemoryTasks(), InMemoryCursors()
        orchestrator = _orchestrator(notion, tasks, cursors)
        orchestrator.run_pass()

        page = notion.pages["a"]
        notion.pages["a"] = SourceRecord(**{**page.__dict__, "title": "Renamed"})
        summary = orchestrator.run_pass()

        assert summary.updated == 1
        assert tasks.upserts == 2
        assert tasks.tasks["task-1"]["title"] == "Renamed"

    def test_new_page_at_the_boundary_timestamp_is_processed(self) -> None:
        notion = InMemoryNotion([_record("a", T1)])
        tasks, cursors = InMemoryTasks(), InMemoryCursors()
        orchestrator = _orchestrator(notion, tasks, cursors)
        orchestrator.run_pass()

        notion.pages["b"] = _record("b", T1, category="Business")
        summary = orchestrator.run_pass()

        assert (summary.created, summary.skipped) == (1, 1)
        assert set(cursors.boundary) == {"a", "b"}
        assert cursors.value == T1

    def test_since_override_ignores_the_boundary(self) -> None:
        notion = InMemoryNotion([_record("a", T1, category="Unknown")])
        tasks, cursors = InMemoryTasks(), InMemoryCursors()
        orchestrator = _orchestrator(notion, tasks, cursors)
        orchestrator.run_pass()

        summary = orchestrator.run_pass(since_override=T1)

        assert summary.errors == 1
        assert tasks.upserts == 2


class TestOpsLog:
    def test_rows_for_each_record_and_the_pass(self) -> None:
        notion = InMemoryNotion([_record("a", T1), _record("b", T2, category="Unknown")])
        ops_log = InMemoryOpsLog()

        _orchestrator(notion, InMemoryTasks(), InMemoryCursors(), ops_log=ops_log).run_pass()

        assert [row[0] for row in ops_log.rows] == ["sync_record", "sync_record", "sync_pass"]
        records = {row[2]: row[3]["result_status"] for row in ops_log.rows[:2]}
        assert records == {"a": "created", "b": "error"}
        assert all(row[1] == "notion_page" for row in ops_log.rows[:2])
        operation, entity_type, entity_id, metadata = ops_log.rows[-1]
        assert (entity_type, entity_id) == ("system", None)
        assert metadata["result_status"] == "success"
        assert (metadata["tasks_created"], metadata["errors_count"]) == (1, 1)

    def test_dry_run_writes_no_rows(self) -> None:
        ops_log = InMemoryOpsLog()
        _orchestrator(
            InMemoryNotion([_record("a", T1)]), InMemoryTasks(), InMemoryCursors(),
            dry_run=True, ops_log=ops_log,
        ).run_pass()

        assert ops_log.rows == []

    def test_failed_pass_is_logged(self) -> None:
        notion = InMemoryNotion([])
        notion.error = SourceApiError("unauthorized", status_code=401)
        ops_log = InMemoryOpsLog()

        with pytest.raises(SyncPassError):
            _orchestrator(notion, InMemoryTasks(), InMemoryCursors(), ops_log=ops_log).run_pass()

        [(operation, _, _, metadata)] = ops_log.rows
        assert operation == "sync_pass"
        assert metadata["result_status"] == "failed"
        assert metadata["state"] == STATE_FETCH_PAGES


class TestRunForever:
    def test_runs_until_max_passes(self) -> None:
        notion = InMemoryNotion([_record("a", T1)])
        orchestrator = _orchestrator(notion, InMemoryTasks(), InMemoryCursors())

        assert orchestrator.run_forever(0, 0, max_passes=3) == 3
        assert len(notion.queries) == 3

    def test_failed_pass_does_not_stop_the_loop(self) -> None:
        notion = InMemoryNotion([])
        notion.error = SourceApiError("boom", status_code=500)
        orchestrator = _orchestrator(notion, InMemoryTasks(), InMemoryCursors())

        assert orchestrator.run_forever(0, 0, max_passes=2) == 2

    def test_stop_ends_the_loop(self) -> None:
        notion = InMemoryNotion([])
        orchestrator = _orchestrator(notion, InMemoryTasks(), InMemoryCursors())
        orchestrator.stop()

        assert orchestrator.run_forever(0, 0) == 0
        assert orchestrator.stopped
