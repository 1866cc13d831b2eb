"""
Entidades del dominio de sincronización.

Se mantienen libres de I/O para poder testearlas fácilmente.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class SourceRecord:
    """
    Registro de Notion ya extraído a campos tipados.

    Solo `target_id` y `linked` se escriben de vuelta en Notion.
    """

    external_id: str
    last_modified: datetime
    title: str = "Untitled"
    category: Optional[str] = None
    domain: Optional[str] = None
    venture: Optional[str] = None
    project: Optional[str] = None
    milestone: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[str] = None
    focus_date: Optional[str] = None
    focus_slot: Optional[str] = None
    assignee: Optional[str] = None
    linked: bool = False
    target_id: Optional[str] = None


@dataclass(frozen=True)
class NormalizedRecord:
    """
    Registro normalizado (solo en memoria, por pasada).

    Invariante: cada campo es un valor canónico o None.
    """

    title: str
    category_key: Optional[str]
    project: Optional[str] = None
    milestone: Optional[str] = None
    priority: Optional[str] = None
    status: Optional[str] = None
    due_date: Optional[str] = None
    focus_date: Optional[str] = None
    focus_slot: Optional[str] = None
    assignee: Optional[str] = None

    def hash_fields(self) -> Dict[str, Any]:
        """Campos relevantes para detectar cambios (ver content_hasher)."""
        return {
            "title": self.title,
            "category": self.category_key,
            "project": self.project,
            "milestone": self.milestone,
            "priority": self.priority,
            "due": self.due_date,
            "assignee": self.assignee,
            "status": self.status,
            "focus_slot": self.focus_slot,
            "focus_date": self.focus_date,
        }

    def get(self, field_name: str) -> Any:
        """Acceso por nombre usado por el filtro de campos requeridos."""
        if field_name == "category":
            return self.category_key
        return getattr(self, field_name, None)


@dataclass(frozen=True)
class SyncLink:
    """Mapeo persistente página de Notion <-> tarea en Postgres."""

    external_id: str
    target_id: str
    content_hash: str
    last_seen_at: datetime


@dataclass(frozen=True)
class Cursor:
    """
    Estado persistido por fuente (cursor incremental).

    last_synced_at marca el "punto" de lectura en Notion (>= cursor).
    cursor_data["boundary"] guarda external_id -> fingerprint de las páginas
    ya procesadas con last_modified == last_synced_at.
    """

    source: str
    last_synced_at: datetime
    cursor_data: Dict[str, Any] = field(default_factory=dict)

    @property
    def boundary(self) -> Dict[str, str]:
        return dict(self.cursor_data.get("boundary") or {})


@dataclass(frozen=True)
class UpsertResult:
    task_id: str
    created: bool
    domain_id: Optional[str] = None
    venture_id: Optional[str] = None
    project_id: Optional[str] = None
    milestone_id: Optional[str] = None


class RecordOutcome(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    SKIPPED_MISSING_FIELD = "skipped_missing_field"
    SKIPPED_UNCHANGED = "skipped_unchanged"
    ERROR = "error"

    @property
    def is_skip(self) -> bool:
        return self in (RecordOutcome.SKIPPED_MISSING_FIELD, RecordOutcome.SKIPPED_UNCHANGED)


@dataclass(frozen=True)
class RecordResult:
    """Resultado del procesamiento de un registro."""

    outcome: RecordOutcome
    external_id: str
    target_id: Optional[str] = None
    reason: Optional[str] = None
    link_back_failed: bool = False


@dataclass
class SyncSummary:
    """Resumen de una pasada completa."""

    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    duration_ms: int = 0
    cursor_before: Optional[datetime] = None
    cursor_after: Optional[datetime] = None
    dry_run: bool = False

    def record(self, result: RecordResult) -> None:
        if result.outcome is RecordOutcome.CREATED:
            self.created += 1
        elif result.outcome is RecordOutcome.UPDATED:
            self.updated += 1
        elif result.outcome.is_skip:
            self.skipped += 1
        else:
            self.errors += 1

    @property
    def error_ratio(self) -> float:
        return self.errors / self.fetched if self.fetched else 0.0

    @property
    def success_rate(self) -> float:
        if not self.fetched:
            return 1.0
        return (self.created + self.updated + self.skipped) / self.fetched

    def to_dict(self) -> Dict[str, Any]:
        return {
            "records_fetched": self.fetched,
            "tasks_created": self.created,
            "tasks_updated": self.updated,
            "records_skipped": self.skipped,
            "errors_count": self.errors,
            "duration_ms": self.duration_ms,
            "success_rate": round(self.success_rate, 3),
            "cursor_before": self.cursor_before.isoformat() if self.cursor_before else None,
            "cursor_after": self.cursor_after.isoformat() if self.cursor_after else None,
            "dry_run": self.dry_run,
        }
