"""
Sink de loguru que convierte warnings/errores en alertas de Notion.

Cada registro de nivel WARNING o superior crea una página en la base de
alertas con: título, nivel, prioridad, servicio, entorno, detalle (contexto
del log en JSON), correlation id, estado ("Open") y fecha de creación.

El sink nunca levanta hacia quien loguea y no se re-invoca a sí mismo: si
Notion falla, el error se escribe en stderr y el log original sigue su curso.
"""
from __future__ import annotations

import json
import sys
import threading
from typing import Any, Dict, Mapping

import requests

from qc_bridge.infrastructure.external.notion.notion_client import NotionClient
from qc_bridge.shared.constants.vocabulary import ALERT_STATUS_OPEN
from qc_bridge.shared.exceptions import SourceApiError

# Límite de Notion para un bloque rich_text
NOTION_TEXT_LIMIT = 2000

_LEVEL_EMOJI = {"WARNING": "⚠️", "ERROR": "🚨", "CRITICAL": "💥"}
# Opciones del select "Priority" tal como existen en la base de alertas
ALERT_PRIORITY_HIGH = "🔴 P1"
ALERT_PRIORITY_MEDIUM = "🟡 P2"

_LEVEL_PRIORITY = {
    "WARNING": ALERT_PRIORITY_MEDIUM,
    "ERROR": ALERT_PRIORITY_HIGH,
    "CRITICAL": ALERT_PRIORITY_HIGH,
}
_LEVEL_NAME = {"WARNING": "WARN", "ERROR": "ERROR", "CRITICAL": "FATAL"}


def _truncate(text: str, limit: int = NOTION_TEXT_LIMIT) -> str:
    return text if len(text) <= limit else text[: limit - 15] + "...[truncated]"


def _rich_text(content: str) -> Dict[str, Any]:
    return {"rich_text": [{"text": {"content": _truncate(content)}}]}


class NotionAlertSink:
    """
    Uso:
        sink = NotionAlertSink(client, database_id, service="qc-bridge", environment="production")
        logger.add(sink, level="WARNING")
    """

    def __init__(
        self,
        client: NotionClient,
        database_id: str,
        *,
        service: str,
        environment: str,
    ) -> None:
        self._client = client
        self._database_id = database_id
        self._service = service
        self._environment = environment
        self._local = threading.local()

    def build_properties(self, record: Mapping[str, Any]) -> Dict[str, Any]:
        level = record["level"].name
        message = str(record["message"])
        extra = dict(record.get("extra") or {})
        correlation_id = str(extra.get("correlation_id") or "N/A")

        context = {k: v for k, v in extra.items() if k not in ("service", "environment", "version")}
        exception = record.get("exception")
        if exception is not None and exception.value is not None:
            context["exception"] = f"{type(exception.value).__name__}: {exception.value}"

        title = f"{_LEVEL_EMOJI.get(level, 'ℹ️')} {_LEVEL_NAME.get(level, level)}: {message}"

        return {
            "Title": {"title": [{"text": {"content": _truncate(title)}}]},
            "Level": {"select": {"name": _LEVEL_NAME.get(level, level)}},
            "Priority": {"select": {"name": _LEVEL_PRIORITY.get(level, ALERT_PRIORITY_MEDIUM)}},
            "Service": _rich_text(self._service),
            "Environment": {"select": {"name": self._environment}},
            "Error Details": _rich_text(json.dumps(context, indent=2, default=str, ensure_ascii=False)),
            "Correlation ID": _rich_text(correlation_id),
            "Status": {"select": {"name": ALERT_STATUS_OPEN}},
            "Created": {"date": {"start": record["time"].isoformat()}},
        }

    def __call__(self, message) -> None:
        # Re-entrada: un log emitido mientras se crea la alerta no genera otra alerta
        if getattr(self._local, "busy", False):
            return

        self._local.busy = True
        try:
            self._client.create_page(self._database_id, self.build_properties(message.record))
        except (SourceApiError, requests.RequestException) as e:
            sys.stderr.write(f"Error enviando alerta a Notion: {e}\n")
        finally:
            self._local.busy = False
