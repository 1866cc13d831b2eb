"""
Extractores tipados de propiedades de páginas de Notion.

Cada función recibe el dict `properties` de una página y el nombre de la
propiedad, y retorna un valor Python simple. Comportamiento ante ausencia
(propiedad inexistente, tipo inesperado o valor vacío):

- extract_text      -> None
- extract_select    -> None   (select, status o primer multi_select)
- extract_date      -> None   (string ISO de `start`)
- extract_checkbox  -> False
- extract_person    -> None   (nombre o email de la primera persona)

Nada de esto levanta excepción: la validación de negocio ocurre después,
sobre el SourceRecord ya tipado.
"""
from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Optional

from qc_bridge.core.config import Settings
from qc_bridge.domain.entities import SourceRecord
from qc_bridge.shared.exceptions import SourceApiError
from qc_bridge.shared.utils.datetime_utils import parse_iso_datetime

Properties = Mapping[str, Any]


def _prop(properties: Properties, name: str) -> Mapping[str, Any]:
    value = properties.get(name) if isinstance(properties, Mapping) else None
    return value if isinstance(value, Mapping) else {}


def _plain_text(fragments: Any) -> Optional[str]:
    if not isinstance(fragments, list):
        return None
    text = "".join(
        str(f.get("plain_text") or (f.get("text") or {}).get("content") or "")
        for f in fragments
        if isinstance(f, Mapping)
    ).strip()
    return text or None


def extract_text(properties: Properties, name: str) -> Optional[str]:
    """Texto de una propiedad title / rich_text (también acepta select)."""
    prop = _prop(properties, name)
    prop_type = prop.get("type")
    if prop_type in ("title", "rich_text"):
        return _plain_text(prop.get(prop_type))
    if "title" in prop:
        return _plain_text(prop.get("title"))
    if "rich_text" in prop:
        return _plain_text(prop.get("rich_text"))
    return extract_select(properties, name)


def extract_select(properties: Properties, name: str) -> Optional[str]:
    """Nombre de la opción de un select / status / multi_select (primera)."""
    prop = _prop(properties, name)
    for key in ("select", "status"):
        option = prop.get(key)
        if isinstance(option, Mapping) and option.get("name"):
            return str(option["name"])
    options = prop.get("multi_select")
    if isinstance(options, list):
        for option in options:
            if isinstance(option, Mapping) and option.get("name"):
                return str(option["name"])
    return None


def extract_date(properties: Properties, name: str) -> Optional[str]:
    prop = _prop(properties, name)
    value = prop.get("date")
    if isinstance(value, Mapping) and value.get("start"):
        return str(value["start"])
    return None


def extract_checkbox(properties: Properties, name: str) -> bool:
    return _prop(properties, name).get("checkbox") is True


def extract_person(properties: Properties, name: str) -> Optional[str]:
    """Assignee: acepta people (nombre/email de la primera persona) o texto."""
    prop = _prop(properties, name)
    people = prop.get("people")
    if isinstance(people, list):
        for person in people:
            if not isinstance(person, Mapping):
                continue
            email = (person.get("person") or {}).get("email")
            if person.get("name") or email:
                return str(person.get("name") or email)
        return None
    return extract_text(properties, name)


def page_to_source_record(page: Mapping[str, Any], settings: Settings) -> SourceRecord:
    """
    Convierte una página de Notion a SourceRecord.

    Raises:
        SourceApiError: la página no trae id o last_edited_time parseable
            (preferimos fallar temprano y visible).
    """
    page_id = page.get("id")
    if not page_id:
        raise SourceApiError("Notion devolvió una página sin 'id'")

    last_modified: Optional[datetime] = parse_iso_datetime(page.get("last_edited_time"))
    if last_modified is None:
        raise SourceApiError(
            f"No se pudo parsear last_edited_time de la página {page_id}: {page.get('last_edited_time')}"
        )

    props = page.get("properties") or {}
    return SourceRecord(
        external_id=str(page_id),
        last_modified=last_modified,
        title=extract_text(props, settings.PROP_TITLE) or "Untitled",
        category=extract_select(props, settings.PROP_AREA),
        domain=extract_select(props, settings.PROP_DOMAIN),
        venture=extract_select(props, settings.PROP_VENTURE),
        project=extract_text(props, settings.PROP_PROJECT),
        milestone=extract_text(props, settings.PROP_MILESTONE),
        priority=extract_select(props, settings.PROP_PRIORITY),
        status=extract_select(props, settings.PROP_STATUS),
        due_date=extract_date(props, settings.PROP_DUE),
        focus_date=extract_date(props, settings.PROP_FOCUS_DATE),
        focus_slot=extract_select(props, settings.PROP_FOCUS_SLOT),
        assignee=extract_person(props, settings.PROP_ASSIGNEE),
        linked=extract_checkbox(props, settings.PROP_LINKED),
        target_id=extract_text(props, settings.PROP_TARGET_ID),
    )
