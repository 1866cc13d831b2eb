"""
Hash de contenido para detección de cambios.

Se serializan SIEMPRE las mismas claves en el mismo orden, por lo que el
orden de entrada o campos extra no alteran el resultado. Al calcularse sobre
valores ya normalizados, "🔴 P1", "high" y "P1" producen el mismo hash.
"""
from __future__ import annotations

import hashlib
import json
from dataclasses import asdict
from typing import Any, Mapping, Tuple

from qc_bridge.domain.entities import SourceRecord
from qc_bridge.shared.utils.datetime_utils import to_iso_string

HASH_FIELD_ORDER: Tuple[str, ...] = (
    "title",
    "category",
    "project",
    "milestone",
    "priority",
    "due",
    "assignee",
    "status",
    "focus_slot",
    "focus_date",
)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return to_iso_string(value)


def compute_content_hash(fields: Mapping[str, Any]) -> str:
    """
    sha256 (hex) de los campos relevantes en orden fijo.

    Args:
        fields: mapa campo -> valor normalizado (ver NormalizedRecord.hash_fields)
    """
    ordered = [[key, _as_text(fields.get(key))] for key in HASH_FIELD_ORDER]
    payload = json.dumps(ordered, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


# Campos que escribe el propio bridge (link-back) o que ya marca el cursor
_FINGERPRINT_EXCLUDED = ("external_id", "last_modified", "linked", "target_id")


def compute_source_fingerprint(record: SourceRecord) -> str:
    """
    sha256 (hex) de los valores crudos de Notion, sin normalizar.

    Identifica una página ya procesada en el borde del cursor: dos ediciones
    dentro del mismo minuto comparten last_edited_time pero no fingerprint.
    """
    values = {
        name: _as_text(value)
        for name, value in sorted(asdict(record).items())
        if name not in _FINGERPRINT_EXCLUDED
    }
    payload = json.dumps(values, ensure_ascii=False, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()
