"""
Casos de uso de sincronización Notion -> Postgres.

Una pasada recorre los estados:
  ReadCursor -> FetchPages -> ProcessRecords -> AdvanceCursor -> Done
y cualquier falla fuera del procesamiento por registro termina en Failed
(se levanta SyncPassError con el estado donde ocurrió).
"""
from __future__ import annotations

import threading
import time
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from loguru import logger

from qc_bridge.application.services.content_hasher import compute_source_fingerprint
from qc_bridge.application.services.record_processor import RecordProcessor
from qc_bridge.core.config import SyncOptions
from qc_bridge.domain.entities import (
    Cursor,
    RecordOutcome,
    RecordResult,
    SourceRecord,
    SyncSummary,
)
from qc_bridge.infrastructure.observability.health_monitor import HealthMonitor
from qc_bridge.shared.exceptions import SyncPassError
from qc_bridge.shared.utils.datetime_utils import ensure_utc, utc_now

STATE_READ_CURSOR = "ReadCursor"
STATE_FETCH_PAGES = "FetchPages"
STATE_PROCESS_RECORDS = "ProcessRecords"
STATE_ADVANCE_CURSOR = "AdvanceCursor"
STATE_DONE = "Done"
STATE_FAILED = "Failed"


class CursorStore(Protocol):
    def get(self, source: str) -> Optional[Cursor]: ...

    def save(
        self, source: str, timestamp: datetime, boundary: Optional[Mapping[str, str]] = None
    ) -> None: ...


class SourceReader(Protocol):
    def fetch_since(self, since: datetime) -> List[SourceRecord]: ...


class OpsLog(Protocol):
    def record(
        self,
        operation: str,
        *,
        entity_type: str = ...,
        entity_id: Optional[str] = ...,
        metadata: Optional[Mapping[str, Any]] = ...,
    ) -> None: ...


def new_correlation_id() -> str:
    return f"sync-{uuid.uuid4().hex[:12]}"


class SyncOrchestrator:
    """
    Orquestador de pasadas. Un solo proceso por base de origen: no toma
    locks, los registros se procesan de a uno y en el orden de lectura.
    """

    def __init__(
        self,
        *,
        cursor_store: CursorStore,
        source_reader: SourceReader,
        processor: RecordProcessor,
        options: SyncOptions,
        monitor: Optional[HealthMonitor] = None,
        ops_log: Optional[OpsLog] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cursors = cursor_store
        self._reader = source_reader
        self._processor = processor
        self._options = options
        self._monitor = monitor
        self._ops_log = ops_log
        self._clock = clock
        self._stop = threading.Event()
        self.state = STATE_DONE

    # --- control del loop -------------------------------------------------

    def stop(self) -> None:
        self._stop.set()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    # --- pasada -------------------------------------------------------------

    def _resolve_since(self, stored: Optional[Cursor], since_override: Optional[datetime]) -> datetime:
        if since_override is not None:
            return ensure_utc(since_override)
        if stored is not None and stored.last_synced_at is not None:
            return ensure_utc(stored.last_synced_at)
        return self._clock() - self._options.lookback

    def run_pass(self, since_override: Optional[datetime] = None) -> SyncSummary:
        override = since_override if since_override is not None else self._options.since_override

        with logger.contextualize(correlation_id=new_correlation_id()):
            started = time.monotonic()
            summary = SyncSummary(dry_run=self._options.dry_run)
            if self._monitor:
                self._monitor.record_sync_start()

            try:
                self.state = STATE_READ_CURSOR
                stored = self._cursors.get(self._options.source_name)
                since = self._resolve_since(stored, override)
                summary.cursor_before = since
                # Con --since se reprocesa todo, incluso lo ya visto en el borde
                boundary = stored.boundary if stored is not None and override is None else {}
                logger.info(
                    f"Iniciando sync desde {since.isoformat()}"
                    + (" (dry run)" if self._options.dry_run else "")
                )

                self.state = STATE_FETCH_PAGES
                records = self._reader.fetch_since(since)
                summary.fetched = len(records)
                logger.info(f"Notion devolvió {len(records)} páginas modificadas")

                self.state = STATE_PROCESS_RECORDS
                for record in records:
                    if self._seen_at_boundary(record, stored, boundary):
                        summary.record(
                            RecordResult(
                                outcome=RecordOutcome.SKIPPED_UNCHANGED,
                                external_id=record.external_id,
                                target_id=record.target_id,
                                reason="cursor_boundary",
                            )
                        )
                        continue
                    result = self._processor.process(record)
                    summary.record(result)
                    self._log_operation(
                        "sync_record",
                        entity_type="notion_page",
                        entity_id=record.external_id,
                        metadata={
                            "result_status": result.outcome.value,
                            "target_id": result.target_id,
                            "reason": result.reason,
                            "link_back_failed": result.link_back_failed,
                        },
                    )

                self.state = STATE_ADVANCE_CURSOR
                summary.cursor_after = self._advance_cursor(stored, records)

            except Exception as e:
                failed_in = self.state
                self.state = STATE_FAILED
                if self._monitor:
                    self._monitor.record_sync_failure()
                logger.bind(state=failed_in).critical(f"Sync falló en {failed_in}: {e}")
                self._log_operation(
                    "sync_pass",
                    metadata={
                        "result_status": "failed",
                        "state": failed_in,
                        "error": str(e)[:500],
                        "duration_ms": int((time.monotonic() - started) * 1000),
                    },
                )
                raise SyncPassError(failed_in, e) from e

            summary.duration_ms = int((time.monotonic() - started) * 1000)
            self.state = STATE_DONE

            if self._monitor:
                self._monitor.record_sync_complete(
                    fetched=summary.fetched,
                    created=summary.created,
                    updated=summary.updated,
                    skipped=summary.skipped,
                    errors=summary.errors,
                )

            logger.bind(**summary.to_dict()).success(
                f"Sync completado: {summary.fetched} leídos, {summary.created} creados, "
                f"{summary.updated} actualizados, {summary.skipped} omitidos, "
                f"{summary.errors} errores en {summary.duration_ms}ms"
            )
            if summary.error_ratio > self._options.error_alert_ratio:
                logger.bind(error_rate=round(summary.error_ratio, 3)).warning(
                    f"Tasa de errores alta en sync: {summary.errors}/{summary.fetched}"
                )
            self._log_operation(
                "sync_pass", metadata={"result_status": "success", **summary.to_dict()}
            )

            return summary

    @staticmethod
    def _seen_at_boundary(
        record: SourceRecord, stored: Optional[Cursor], boundary: Dict[str, str]
    ) -> bool:
        """
        True si la página ya se procesó en una pasada anterior con este mismo
        last_modified (el filtro on_or_after la vuelve a traer).
        """
        if stored is None or record.external_id not in boundary:
            return False
        if ensure_utc(record.last_modified) != ensure_utc(stored.last_synced_at):
            return False
        return boundary[record.external_id] == compute_source_fingerprint(record)

    def _log_operation(self, operation: str, **kwargs) -> None:
        if self._ops_log is None or self._options.dry_run:
            return
        self._ops_log.record(operation, **kwargs)

    def _advance_cursor(
        self, stored: Optional[Cursor], records: List[SourceRecord]
    ) -> Optional[datetime]:
        """
        Nuevo cursor = máximo last_modified de TODO lo leído (incluye
        omitidos y errores). Nunca retrocede respecto al cursor guardado.

        Junto al cursor se guardan las páginas leídas en ese instante exacto,
        para no reprocesarlas en la próxima pasada mientras no cambien.
        """
        stored_at = ensure_utc(stored.last_synced_at) if stored and stored.last_synced_at else None
        if not records:
            return stored_at

        newest = max(ensure_utc(r.last_modified) for r in records)
        if stored_at is not None and newest < stored_at:
            return stored_at

        boundary = {
            r.external_id: compute_source_fingerprint(r)
            for r in records
            if ensure_utc(r.last_modified) == newest
        }
        if stored_at is not None and newest == stored_at:
            previous = stored.boundary
            merged = {**previous, **boundary}
            if merged == previous:
                return stored_at
            boundary = merged

        if self._options.dry_run:
            logger.info(f"Dry run: el cursor avanzaría a {newest.isoformat()}")
            return stored_at

        self._cursors.save(self._options.source_name, newest, boundary)
        logger.debug(
            f"Cursor {self._options.source_name} -> {newest.isoformat()} "
            f"({len(boundary)} páginas en el borde)"
        )
        return newest

    # --- modo continuo --------------------------------------------------------

    def run_forever(
        self,
        interval_s: float,
        failure_interval_s: float,
        max_passes: Optional[int] = None,
    ) -> int:
        """
        Loop continuo: pasada -> espera `interval_s`. Si la pasada falla se
        espera `failure_interval_s` y se reintenta. Devuelve la cantidad de
        pasadas ejecutadas.
        """
        passes = 0
        logger.info(f"Modo continuo: cada {interval_s}s (tras falla: {failure_interval_s}s)")

        while not self._stop.is_set():
            passes += 1
            wait_s = interval_s
            try:
                self.run_pass()
            except SyncPassError:
                wait_s = failure_interval_s

            if max_passes is not None and passes >= max_passes:
                break
            self._stop.wait(wait_s)

        logger.info(f"Loop de sync detenido tras {passes} pasadas")
        return passes
