"""
Utilidades puras para manejo de fechas y horas (siempre UTC aware).
"""
from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Retorna la hora actual en UTC, como datetime aware."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Normaliza datetime a UTC (aware).

    Notion devuelve ISO8601 con zona; aun así, normalizamos para
    comparar/almacenar de forma consistente. Un datetime naive se asume UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(value: Optional[str]) -> Optional[datetime]:
    """
    Convierte un string ISO 8601 a datetime UTC.

    Acepta el sufijo 'Z'. Retorna None si el valor está vacío o no es parseable.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).strip().replace("Z", "+00:00"))
    except (ValueError, TypeError):
        return None
    return ensure_utc(parsed)


def isoformat_z(dt: datetime) -> str:
    """
    Serializa datetime a ISO8601 con 'Z' (UTC), sin microsegundos.

    Es el formato que acepta el filtro `last_edited_time` de Notion.
    """
    dt_utc = ensure_utc(dt)
    return dt_utc.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def to_iso_string(value: Union[date, datetime, str, None]) -> str:
    """
    Representación estable de una fecha para hashing. None -> "".
    """
    if value is None:
        return ""
    if isinstance(value, datetime):
        return ensure_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)
