"""
Cliente mínimo de la REST API de Notion (sin SDKs externos).

Requisitos cubiertos:
- requests
- query de base de datos (una página de resultados por llamada)
- update / create de páginas

No reintenta: los errores se levantan tal cual (SourceApiError con
status_code, o las excepciones de conexión/timeout de requests) y el retry lo
aplica quien llama, con `qc_bridge.shared.utils.retry.with_retry`.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

import requests

from qc_bridge.infrastructure.observability.health_monitor import HealthMonitor
from qc_bridge.shared.exceptions import SourceApiError


@dataclass(frozen=True)
class NotionCredentials:
    token: str
    version: str = "2022-06-28"


class NotionClient:
    """
    Cliente HTTP de Notion.

    Importante:
    - No interpreta propiedades: eso lo hacen los extractores tipados.
    - Los errores 4xx/5xx se convierten en SourceApiError con status_code.
    """

    def __init__(
        self,
        credentials: NotionCredentials,
        *,
        session: Optional[requests.Session] = None,
        base_url: str = "https://api.notion.com/v1",
        timeout_s: int = 30,
        monitor: Optional[HealthMonitor] = None,
    ) -> None:
        self._creds = credentials
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._session = session or requests.Session()
        self._monitor = monitor

    def query_database(
        self,
        database_id: str,
        *,
        filter: Optional[dict[str, Any]] = None,
        sorts: Optional[list[dict[str, Any]]] = None,
        page_size: int = 25,
        start_cursor: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Una página de resultados de `databases/{id}/query`.

        Retorna el payload crudo: results, has_more, next_cursor.
        """
        body: dict[str, Any] = {"page_size": page_size}
        if filter:
            body["filter"] = filter
        if sorts:
            body["sorts"] = sorts
        if start_cursor:
            body["start_cursor"] = start_cursor

        return self._request_json("POST", f"databases/{database_id}/query", body=body)

    def update_page(self, page_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return self._request_json("PATCH", f"pages/{page_id}", body={"properties": properties})

    def create_page(self, database_id: str, properties: dict[str, Any]) -> dict[str, Any]:
        return self._request_json(
            "POST",
            "pages",
            body={"parent": {"database_id": database_id}, "properties": properties},
        )

    def _request_json(self, method: str, path: str, *, body: dict[str, Any]) -> dict[str, Any]:
        headers = {
            "Authorization": f"Bearer {self._creds.token}",
            "Notion-Version": self._creds.version,
            "Content-Type": "application/json",
        }
        url = f"{self._base_url}/{path}"

        started = time.monotonic()
        try:
            resp = self._session.request(
                method=method,
                url=url,
                json=body,
                headers=headers,
                timeout=self._timeout_s,
            )
        finally:
            if self._monitor is not None:
                self._monitor.record_notion_call((time.monotonic() - started) * 1000)

        if 200 <= resp.status_code < 300:
            return resp.json()

        message = resp.text
        try:
            message = resp.json().get("message") or message
        except ValueError:
            pass

        raise SourceApiError(
            f"Notion {method} {path} falló {resp.status_code}: {message}",
            status_code=resp.status_code,
            body=resp.text[:2000],
        )
