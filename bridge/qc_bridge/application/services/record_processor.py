"""
Procesamiento de un registro de Notion.

Flujo por registro:
1. normalizar campos
2. filtro de campos requeridos -> skipped (sin ninguna llamada remota)
3. si ya está vinculado y el hash no cambió -> skipped
4. upsert de la tarea (con retry)
5. guardar SyncLink y escribir el vínculo de vuelta en Notion

Cualquier error del registro se convierte en un RecordResult ERROR: nunca
se propaga al orquestador, así un registro malo no corta la pasada.
"""
from __future__ import annotations

import time
from typing import Callable, Optional, Protocol

from loguru import logger

from qc_bridge.application.services.content_hasher import compute_content_hash
from qc_bridge.application.services.normalizer import normalize_record, normalize_text
from qc_bridge.core.config import SyncOptions
from qc_bridge.domain.entities import (
    NormalizedRecord,
    RecordOutcome,
    RecordResult,
    SourceRecord,
    SyncLink,
    UpsertResult,
)
from qc_bridge.shared.constants.vocabulary import SOURCE_REQUIRED_FIELDS
from qc_bridge.shared.utils.datetime_utils import utc_now
from qc_bridge.shared.utils.retry import with_retry


class UpsertGateway(Protocol):
    def upsert(self, **kwargs) -> UpsertResult: ...


class SyncLinkStore(Protocol):
    def get(self, external_id: str) -> Optional[SyncLink]: ...

    def save(self, link: SyncLink) -> None: ...


class LinkBackWriter(Protocol):
    def mark_linked(self, source_external_id: str, target_id: str) -> None: ...


class RecordProcessor:
    def __init__(
        self,
        *,
        gateway: UpsertGateway,
        sync_links: SyncLinkStore,
        link_back: LinkBackWriter,
        options: SyncOptions,
        max_attempts: int = 3,
        base_delay_s: float = 1.0,
        write_delay_s: float = 0.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._gateway = gateway
        self._sync_links = sync_links
        self._link_back = link_back
        self._options = options
        self._max_attempts = max_attempts
        self._base_delay_s = base_delay_s
        self._write_delay_s = write_delay_s
        self._sleep = sleep

    def _retry(self, operation, name: str):
        return with_retry(
            operation,
            max_attempts=self._max_attempts,
            base_delay_s=self._base_delay_s,
            sleep=self._sleep,
            operation_name=name,
        )

    def missing_required_fields(
        self, record: SourceRecord, normalized: NormalizedRecord
    ) -> list[str]:
        missing = []
        for name in self._options.required_fields:
            if name in SOURCE_REQUIRED_FIELDS:
                value = normalize_text(getattr(record, name))
            else:
                value = normalized.get(name)
            if value in (None, ""):
                missing.append(name)
        return missing

    def process(self, record: SourceRecord) -> RecordResult:
        log = logger.bind(external_id=record.external_id, title=record.title)
        normalized: Optional[NormalizedRecord] = None

        try:
            normalized = normalize_record(record, self._options.focus_slots)
            log = log.bind(category=normalized.category_key, priority=normalized.priority)

            missing = self.missing_required_fields(record, normalized)
            if missing:
                log.info(f"Omitido '{record.title}': faltan campos requeridos {missing}")
                return RecordResult(
                    outcome=RecordOutcome.SKIPPED_MISSING_FIELD,
                    external_id=record.external_id,
                    reason=f"missing:{','.join(missing)}",
                )

            content_hash = compute_content_hash(normalized.hash_fields())

            if record.linked and record.target_id:
                link = self._retry(
                    lambda: self._sync_links.get(record.external_id), "sync_links.get"
                )
                if link is not None and link.content_hash == content_hash:
                    log.info(f"Omitido '{record.title}': sin cambios desde la última sincronización")
                    return RecordResult(
                        outcome=RecordOutcome.SKIPPED_UNCHANGED,
                        external_id=record.external_id,
                        target_id=link.target_id,
                        reason="unchanged",
                    )

            if self._options.dry_run:
                outcome = RecordOutcome.UPDATED if record.target_id else RecordOutcome.CREATED
                log.info(
                    f"Dry run: se haría upsert de '{record.title}' "
                    f"(priority={normalized.priority}, status={normalized.status}, "
                    f"focus_slot={normalized.focus_slot})"
                )
                return RecordResult(
                    outcome=outcome,
                    external_id=record.external_id,
                    target_id=record.target_id,
                    reason="dry_run",
                )

            result = self._retry(
                lambda: self._gateway.upsert(
                    title=normalized.title,
                    category_key=normalized.category_key,
                    project_name=normalized.project,
                    milestone_name=normalized.milestone,
                    priority=normalized.priority,
                    status=normalized.status,
                    due_date=normalized.due_date,
                    assignee=normalized.assignee,
                    source_id=record.external_id,
                    focus_date=normalized.focus_date,
                    focus_slot=normalized.focus_slot,
                    content_hash=content_hash,
                ),
                "tasks.upsert",
            )

            link = SyncLink(
                external_id=record.external_id,
                target_id=result.task_id,
                content_hash=content_hash,
                last_seen_at=utc_now(),
            )
            self._retry(lambda: self._sync_links.save(link), "sync_links.save")

            link_back_failed = False
            try:
                self._link_back.mark_linked(record.external_id, result.task_id)
            except Exception as e:
                # La tarea y el SyncLink ya están al día; solo el check visual de Notion queda atrasado
                link_back_failed = True
                log.warning(f"No se pudo marcar la página como vinculada: {e}")

            outcome = RecordOutcome.CREATED if result.created else RecordOutcome.UPDATED
            log.bind(task_id=result.task_id).info(
                f"Tarea {'creada' if result.created else 'actualizada'}: '{normalized.title}' -> {result.task_id}"
            )
            self._sleep(self._write_delay_s)

            return RecordResult(
                outcome=outcome,
                external_id=record.external_id,
                target_id=result.task_id,
                link_back_failed=link_back_failed,
            )

        except Exception as e:
            log.bind(
                category=normalized.category_key if normalized else record.category,
                error_type=type(e).__name__,
            ).error(f"Error procesando '{record.title}' ({record.external_id}): {e}")
            return RecordResult(
                outcome=RecordOutcome.ERROR,
                external_id=record.external_id,
                reason=str(e)[:500],
            )
