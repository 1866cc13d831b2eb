"""
Tests del procesamiento por registro: filtro de requeridos, detección de
cambios por hash, upsert + vínculo, errores aislados y dry-run.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from qc_bridge.application.services.content_hasher import compute_content_hash
from qc_bridge.application.services.normalizer import normalize_record
from qc_bridge.application.services.record_processor import RecordProcessor
from qc_bridge.core.config import SyncOptions
from qc_bridge.domain.entities import RecordOutcome, SyncLink, UpsertResult
from qc_bridge.shared.exceptions import CategoryNotFoundError, SourceApiError


class FakeGateway:
    def __init__(self, results=None) -> None:
        self.results = list(results or [])
        self.calls = []

    def upsert(self, **kwargs):
        self.calls.append(kwargs)
        result = self.results.pop(0) if self.results else UpsertResult(task_id="t-1", created=True)
        if isinstance(result, Exception):
            raise result
        return result


class FakeSyncLinks:
    def __init__(self, links=None) -> None:
        self.links = dict(links or {})
        self.saved = []

    def get(self, external_id):
        return self.links.get(external_id)

    def save(self, link):
        self.saved.append(link)
        self.links[link.external_id] = link


class FakeLinkBack:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls = []

    def mark_linked(self, source_external_id, target_id):
        self.calls.append((source_external_id, target_id))
        if self.error is not None:
            raise self.error


@pytest.fixture
def deps():
    return FakeGateway(), FakeSyncLinks(), FakeLinkBack()


def _processor(gateway, links, link_back, *, dry_run=False, sleeps=None, **options):
    return RecordProcessor(
        gateway=gateway,
        sync_links=links,
        link_back=link_back,
        options=SyncOptions(dry_run=dry_run, **options),
        write_delay_s=0.1,
        sleep=(sleeps.append if sleeps is not None else (lambda _: None)),
    )


def _hash_of(record) -> str:
    return compute_content_hash(normalize_record(record).hash_fields())


def test_new_record_is_created_and_linked(deps, make_record) -> None:
    gateway, links, link_back = deps
    sleeps = []
    record = make_record(priority="🔴 P1", focus_slot="🎯 Deep Work Block 1")

    result = _processor(gateway, links, link_back, sleeps=sleeps).process(record)

    assert result.outcome is RecordOutcome.CREATED
    assert result.target_id == "t-1"
    call = gateway.calls[0]
    assert call["category_key"] == "health"
    assert call["priority"] == "P1"
    assert call["status"] == "To Do"
    assert call["focus_slot"] == "Deep Work Block 1"
    assert call["source_id"] == "page-1"
    assert links.saved[0].target_id == "t-1"
    assert links.saved[0].content_hash == _hash_of(record)
    assert link_back.calls == [("page-1", "t-1")]
    assert sleeps == [0.1]


def test_missing_category_is_skipped_without_remote_calls(deps, make_record) -> None:
    gateway, links, link_back = deps
    record = make_record(category=None, domain=None, venture=None)

    result = _processor(gateway, links, link_back).process(record)

    assert result.outcome is RecordOutcome.SKIPPED_MISSING_FIELD
    assert result.reason == "missing:category"
    assert gateway.calls == [] and links.saved == [] and link_back.calls == []


def test_required_fields_are_configurable(deps, make_record) -> None:
    gateway, links, link_back = deps
    processor = _processor(gateway, links, link_back, required_fields=("category", "project"))

    result = processor.process(make_record(project=None))

    assert result.outcome is RecordOutcome.SKIPPED_MISSING_FIELD
    assert result.reason == "missing:project"


def test_required_domain_is_read_from_the_notion_record(deps, make_record) -> None:
    gateway, links, link_back = deps
    processor = _processor(gateway, links, link_back, required_fields=("domain",))

    result = processor.process(make_record(category=None, domain="Health", priority="P1"))

    assert result.outcome is RecordOutcome.CREATED
    assert len(gateway.calls) == 1
    assert gateway.calls[0]["category_key"] == "health"


def test_required_venture_missing_is_skipped(deps, make_record) -> None:
    gateway, links, link_back = deps
    processor = _processor(gateway, links, link_back, required_fields=("category", "venture"))

    result = processor.process(make_record(venture="  "))

    assert result.outcome is RecordOutcome.SKIPPED_MISSING_FIELD
    assert result.reason == "missing:venture"
    assert gateway.calls == []


def test_unknown_required_field_is_rejected() -> None:
    with pytest.raises(ValueError, match="domian"):
        SyncOptions(required_fields=("category", "domian"))


def test_linked_and_unchanged_is_skipped(make_record) -> None:
    record = make_record(linked=True, target_id="t-1")
    links = FakeSyncLinks(
        {"page-1": SyncLink("page-1", "t-1", _hash_of(record), datetime(2025, 1, 1, tzinfo=timezone.utc))}
    )
    gateway, link_back = FakeGateway(), FakeLinkBack()

    result = _processor(gateway, links, link_back).process(record)

    assert result.outcome is RecordOutcome.SKIPPED_UNCHANGED
    assert gateway.calls == [] and link_back.calls == []


def test_cosmetic_source_change_is_still_unchanged(make_record) -> None:
    """'🔴 P1' -> 'P1' en Notion no cambia el hash normalizado."""
    original = make_record(priority="🔴 P1", linked=True, target_id="t-1")
    edited = make_record(priority="P1", linked=True, target_id="t-1")
    links = FakeSyncLinks({"page-1": SyncLink("page-1", "t-1", _hash_of(original), datetime.now(timezone.utc))})

    result = _processor(FakeGateway(), links, FakeLinkBack()).process(edited)

    assert result.outcome is RecordOutcome.SKIPPED_UNCHANGED


def test_linked_and_changed_is_updated(make_record) -> None:
    record = make_record(title="New title", linked=True, target_id="t-1")
    links = FakeSyncLinks({"page-1": SyncLink("page-1", "t-1", "old-hash", datetime.now(timezone.utc))})
    gateway = FakeGateway([UpsertResult(task_id="t-1", created=False)])

    result = _processor(gateway, links, FakeLinkBack()).process(record)

    assert result.outcome is RecordOutcome.UPDATED
    assert links.links["page-1"].content_hash == _hash_of(record)


def test_unlinked_record_is_upserted_even_if_hash_matches(make_record) -> None:
    """Sin el check de Linked no se consulta el vínculo: se reintenta el upsert."""
    record = make_record(linked=False)
    links = FakeSyncLinks({"page-1": SyncLink("page-1", "t-1", _hash_of(record), datetime.now(timezone.utc))})
    gateway = FakeGateway([UpsertResult(task_id="t-1", created=False)])

    result = _processor(gateway, links, FakeLinkBack()).process(record)

    assert result.outcome is RecordOutcome.UPDATED
    assert len(gateway.calls) == 1


def test_category_not_found_is_an_error_outcome(make_record, log_records) -> None:
    gateway = FakeGateway([CategoryNotFoundError("health")])
    links, link_back = FakeSyncLinks(), FakeLinkBack()

    result = _processor(gateway, links, link_back).process(make_record())

    assert result.outcome is RecordOutcome.ERROR
    assert "health" in result.reason
    assert links.saved == [] and link_back.calls == []
    errors = [r for r in log_records if r["level"].name == "ERROR"]
    assert errors[0]["extra"]["external_id"] == "page-1"
    assert errors[0]["extra"]["error_type"] == "CategoryNotFoundError"


def test_transient_upsert_failure_is_retried(make_record) -> None:
    gateway = FakeGateway([ConnectionResetError("reset"), UpsertResult(task_id="t-2", created=True)])
    sleeps = []

    result = _processor(gateway, FakeSyncLinks(), FakeLinkBack(), sleeps=sleeps).process(make_record())

    assert result.outcome is RecordOutcome.CREATED
    assert len(gateway.calls) == 2
    assert sleeps == [1.0, 0.1]


def test_link_back_failure_keeps_created_outcome(make_record, log_records) -> None:
    links = FakeSyncLinks()
    link_back = FakeLinkBack(SourceApiError("conflict", status_code=409))

    result = _processor(FakeGateway(), links, link_back).process(make_record())

    assert result.outcome is RecordOutcome.CREATED
    assert result.link_back_failed is True
    # el vínculo en Postgres se guardó igual
    assert links.saved[0].target_id == "t-1"
    assert any(r["level"].name == "WARNING" for r in log_records)


def test_dry_run_makes_no_writes(deps, make_record) -> None:
    gateway, links, link_back = deps
    processor = _processor(gateway, links, link_back, dry_run=True)

    created = processor.process(make_record("page-new"))
    updated = processor.process(make_record("page-old", target_id="t-7"))

    assert created.outcome is RecordOutcome.CREATED
    assert updated.outcome is RecordOutcome.UPDATED
    assert gateway.calls == [] and links.saved == [] and link_back.calls == []
