"""
Repositorio de SyncLinks (tabla integrations_notion).
"""
from __future__ import annotations

from typing import Optional

from qc_bridge.domain.entities import SyncLink
from qc_bridge.infrastructure.database.connection import PostgresDatabase
from qc_bridge.shared.utils.datetime_utils import ensure_utc


class SyncLinkRepository:
    def __init__(self, db: PostgresDatabase) -> None:
        self._db = db

    def get(self, external_id: str) -> Optional[SyncLink]:
        with self._db.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT notion_page_id, task_id, external_hash, last_seen_at
                    FROM integrations_notion
                    WHERE notion_page_id = %s
                    """,
                    (external_id,),
                )
                row = cur.fetchone()

        if not row:
            return None

        return SyncLink(
            external_id=row["notion_page_id"],
            target_id=str(row["task_id"]),
            content_hash=row.get("external_hash") or "",
            last_seen_at=ensure_utc(row["last_seen_at"]),
        )

    def save(self, link: SyncLink) -> None:
        with self._db.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO integrations_notion (notion_page_id, task_id, external_hash, last_seen_at)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (notion_page_id)
                    DO UPDATE SET
                        task_id = EXCLUDED.task_id,
                        external_hash = EXCLUDED.external_hash,
                        last_seen_at = EXCLUDED.last_seen_at
                    """,
                    (
                        link.external_id,
                        link.target_id,
                        link.content_hash,
                        ensure_utc(link.last_seen_at),
                    ),
                )
