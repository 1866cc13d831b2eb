"""
Normalizador de valores de Notion al vocabulario canónico de Postgres.

Notion entrega los selects tal como los escribió el usuario: con emoji
("🔴 P1", "🔄 In Progress", "🎯 Deep Work Block 1"), en minúsculas o con
sinónimos ("high", "complete"). La tabla `tasks` solo acepta los valores de
`qc_bridge.shared.constants.vocabulary`.

Reglas:
- Todas las funciones son totales: nunca levantan excepción.
- Son idempotentes: normalizar un valor canónico retorna el mismo valor.
- Valor ausente (None / vacío) -> None, para que el upsert preserve lo que haya.
- Status y prioridad tienen default seguro (To Do / P2) para texto no reconocido.
- Focus slot NO tiene default: un slot incorrecto agendaría mal la tarea.
"""
from __future__ import annotations

import re
from typing import Iterable, Optional

from loguru import logger

from qc_bridge.domain.entities import NormalizedRecord, SourceRecord
from qc_bridge.shared.constants.vocabulary import (
    DEFAULT_FOCUS_SLOTS,
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
    STATUS_DONE,
    STATUS_IN_PROGRESS,
    STATUS_ON_HOLD,
    STATUS_TODO,
)

# Emoji, selectores de variación (U+FE0F), ZWJ, puntuación y espacios iniciales
_LEADING_SYMBOLS = re.compile(r"^[\W_]+", re.UNICODE)
_WHITESPACE = re.compile(r"\s+")

# Orden importa: "on hold" antes que cualquier otra pista
_STATUS_CUES = (
    (("hold",), STATUS_ON_HOLD),
    (("progress",), STATUS_IN_PROGRESS),
    (("done", "complete"), STATUS_DONE),
    (("to do", "todo", "to-do"), STATUS_TODO),
)

_PRIORITY_CUES = (
    (("p0", "urgent"), "P0"),
    (("p1", "high"), "P1"),
    (("p2", "medium"), "P2"),
    (("p3", "low"), "P3"),
)


def _clean(value: object) -> str:
    if value is None:
        return ""
    return _WHITESPACE.sub(" ", str(value)).strip()


def strip_leading_symbols(value: Optional[str]) -> str:
    """Quita emoji/símbolos iniciales: '🎯 Deep Work Block 1' -> 'Deep Work Block 1'."""
    return _LEADING_SYMBOLS.sub("", _clean(value)).strip()


def normalize_status(value: Optional[str]) -> Optional[str]:
    """
    Mapea un status libre a To Do / In Progress / Done / On Hold.

    Texto no reconocido -> To Do. Ausente -> None.
    """
    text = strip_leading_symbols(value).lower()
    if not text:
        return None
    for cues, canonical in _STATUS_CUES:
        if any(cue in text for cue in cues):
            return canonical
    return DEFAULT_STATUS


def normalize_priority(value: Optional[str]) -> Optional[str]:
    """
    Mapea una prioridad libre a P0..P3.

    Texto no reconocido -> P2. Ausente -> None.
    """
    text = strip_leading_symbols(value).lower()
    if not text:
        return None
    for cues, canonical in _PRIORITY_CUES:
        if any(cue in text for cue in cues):
            return canonical
    return DEFAULT_PRIORITY


def normalize_focus_slot(
    value: Optional[str],
    canonical_slots: Iterable[str] = DEFAULT_FOCUS_SLOTS,
) -> Optional[str]:
    """
    Busca el slot canónico que corresponde al valor de Notion.

    1. match exacto case-insensitive
    2. substring case-insensitive en cualquier dirección

    Sin match -> None y warning: la lista de opciones de Notion se desalineó
    de la lista canónica.
    """
    text = strip_leading_symbols(value)
    if not text:
        return None

    slots = [s for s in canonical_slots if s]
    needle = text.lower()

    for slot in slots:
        if slot.lower() == needle:
            return slot

    for slot in slots:
        candidate = slot.lower()
        if needle in candidate or candidate in needle:
            return slot

    logger.bind(focus_slot=value).warning(
        f"Focus slot '{value}' no coincide con ningún slot canónico; se deja en null"
    )
    return None


def normalize_category(value: Optional[str]) -> Optional[str]:
    """Clave de categoría (slug/nombre de venture o dominio) en minúsculas."""
    text = _clean(value).lower()
    return text or None


def normalize_text(value: Optional[str]) -> Optional[str]:
    text = _clean(value)
    return text or None


def normalize_record(
    record: SourceRecord,
    focus_slots: Iterable[str] = DEFAULT_FOCUS_SLOTS,
) -> NormalizedRecord:
    """
    Normaliza todos los campos de un registro de Notion.

    La categoría es el venture si existe; si no, el Area; si no, el dominio.
    """
    category = (
        normalize_category(record.venture)
        or normalize_category(record.category)
        or normalize_category(record.domain)
    )
    return NormalizedRecord(
        title=normalize_text(record.title) or "Untitled",
        category_key=category,
        project=normalize_text(record.project),
        milestone=normalize_text(record.milestone),
        priority=normalize_priority(record.priority),
        status=normalize_status(record.status),
        due_date=normalize_text(record.due_date),
        focus_date=normalize_text(record.focus_date),
        focus_slot=normalize_focus_slot(record.focus_slot, focus_slots),
        assignee=normalize_text(record.assignee),
    )
