"""
Lectura incremental de la base "Quick Capture" de Notion.
"""
from __future__ import annotations

import time
from datetime import datetime
from typing import Any, Callable, List

from loguru import logger

from qc_bridge.core.config import Settings
from qc_bridge.domain.entities import SourceRecord
from qc_bridge.infrastructure.external.notion.notion_client import NotionClient
from qc_bridge.infrastructure.external.notion.property_extractors import page_to_source_record
from qc_bridge.shared.utils.datetime_utils import isoformat_z
from qc_bridge.shared.utils.retry import with_retry


def build_incremental_filter(since: datetime) -> dict[str, Any]:
    """
    Filtro Notion para traer páginas editadas en o después de `since`.

    Incluye igualdad (on_or_after) para ser tolerante a cortes a mitad de
    pasada; la idempotencia queda asegurada por el hash de contenido.
    """
    return {
        "timestamp": "last_edited_time",
        "last_edited_time": {"on_or_after": isoformat_z(since)},
    }


class NotionSourceReader:
    """
    Trae TODAS las páginas modificadas desde el cursor, ordenadas por
    last_edited_time descendente, siguiendo `next_cursor` hasta agotar.
    """

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

    def fetch_since(self, since: datetime) -> List[SourceRecord]:
        database_id = self._settings.NOTION_DATABASE_ID
        filter_ = build_incremental_filter(since)
        sorts = [{"timestamp": "last_edited_time", "direction": "descending"}]

        records: List[SourceRecord] = []
        start_cursor = None
        page_number = 0

        while True:
            if page_number > 0:
                self._sleep(self._settings.NOTION_DELAY_S)

            payload = with_retry(
                lambda: self._client.query_database(
                    database_id,
                    filter=filter_,
                    sorts=sorts,
                    page_size=self._settings.NOTION_PAGE_SIZE,
                    start_cursor=start_cursor,
                ),
                max_attempts=self._settings.RETRY_MAX_ATTEMPTS,
                base_delay_s=self._settings.RETRY_BASE_DELAY_S,
                sleep=self._sleep,
                operation_name="notion.query_database",
            )
            page_number += 1

            results = payload.get("results") or []
            records.extend(page_to_source_record(page, self._settings) for page in results)

            logger.debug(
                f"Notion query página {page_number}: {len(results)} resultados, "
                f"has_more={payload.get('has_more')}"
            )

            start_cursor = payload.get("next_cursor")
            if not payload.get("has_more") or not start_cursor:
                break

        return records
