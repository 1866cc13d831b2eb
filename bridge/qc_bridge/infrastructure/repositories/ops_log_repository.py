"""
Bitácora de operaciones en Postgres (tabla ops_logs).

Una fila por pasada y una por registro procesado. Es auxiliar: si la tabla
no existe o la escritura falla, se loguea en debug y la sync sigue.
"""
from __future__ import annotations

from typing import Any, Mapping, Optional

import psycopg
from loguru import logger
from psycopg.types.json import Jsonb

from qc_bridge.infrastructure.database.connection import PostgresDatabase


class OpsLogRepository:
    def __init__(self, db: PostgresDatabase, *, created_by: str = "qc-bridge") -> None:
        self._db = db
        self._created_by = created_by

    def record(
        self,
        operation: str,
        *,
        entity_type: str = "system",
        entity_id: Optional[str] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ) -> None:
        try:
            with self._db.connect() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO ops_logs (operation, entity_type, entity_id, metadata, created_by)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        (
                            operation,
                            entity_type,
                            entity_id,
                            Jsonb(dict(metadata or {})),
                            self._created_by,
                        ),
                    )
        except psycopg.Error as e:
            logger.debug(f"No se pudo guardar el log de operación {operation}: {e}")
