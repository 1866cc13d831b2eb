"""
Escritura de vuelta en Notion: id de la tarea creada + check "Linked".
"""
from __future__ import annotations

import time
from typing import Callable

from loguru import logger

from qc_bridge.core.config import Settings
from qc_bridge.infrastructure.external.notion.notion_client import NotionClient
from qc_bridge.shared.utils.retry import with_retry


class NotionLinkBackWriter:
    def __init__(
        self,
        client: NotionClient,
        settings: Settings,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._client = client
        self._settings = settings
        self._sleep = sleep

    def link_properties(self, target_id: str) -> dict:
        return {
            self._settings.PROP_TARGET_ID: {"rich_text": [{"text": {"content": target_id}}]},
            self._settings.PROP_LINKED: {"checkbox": True},
        }

    def mark_linked(self, source_external_id: str, target_id: str) -> None:
        properties = self.link_properties(target_id)
        with_retry(
            lambda: self._client.update_page(source_external_id, properties),
            max_attempts=self._settings.RETRY_MAX_ATTEMPTS,
            base_delay_s=self._settings.RETRY_BASE_DELAY_S,
            sleep=self._sleep,
            operation_name="notion.update_page",
        )
        logger.debug(f"Página {source_external_id} vinculada a tarea {target_id}")
        self._sleep(self._settings.NOTION_DELAY_S)
