"""
Repositorio del cursor incremental (tabla sync_state).

Una fila por fuente. Se lee una vez al inicio de la pasada y se escribe una
vez al final (last writer wins). Dos pasadas en paralelo contra la misma
fila se pisan: el lock debe ponerlo quien invoca el bridge.

`cursor_data` es JSONB: {"timestamp": ..., "boundary": {external_id: fingerprint}}.
"""
from __future__ import annotations

from datetime import datetime
from typing import Mapping, Optional

import psycopg
from psycopg.types.json import Jsonb

from qc_bridge.domain.entities import Cursor
from qc_bridge.infrastructure.database.connection import PostgresDatabase
from qc_bridge.shared.exceptions import CursorStoreError
from qc_bridge.shared.utils.datetime_utils import ensure_utc, isoformat_z
from qc_bridge.shared.utils.retry import retryable


class CursorRepository:
    def __init__(
        self,
        db: PostgresDatabase,
        *,
        max_attempts: int = 3,
        base_delay_s: float = 1.0,
    ) -> None:
        self._db = db
        retry = retryable(max_attempts=max_attempts, base_delay_s=base_delay_s)
        self.get = retry(self._get)
        self.save = retry(self._save)

    def _get(self, source: str) -> Optional[Cursor]:
        """
        Raises:
            CursorStoreError: la fila no se pudo leer (errores de conexión
                se propagan tal cual para que el retry los reconozca).
        """
        try:
            row = self._read(source)
        except psycopg.OperationalError:
            raise
        except psycopg.Error as e:
            raise CursorStoreError(source, f"No se pudo leer el cursor de {source}: {e}") from e

        if not row or row.get("last_synced_at") is None:
            return None

        return Cursor(
            source=row["source"],
            last_synced_at=ensure_utc(row["last_synced_at"]),
            cursor_data=row.get("cursor_data") or {},
        )

    def _save(
        self,
        source: str,
        timestamp: datetime,
        boundary: Optional[Mapping[str, str]] = None,
    ) -> None:
        """
        Raises:
            CursorStoreError: la fila no se pudo escribir (errores de conexión
                se propagan tal cual para que el retry los reconozca).
        """
        ts = ensure_utc(timestamp)
        data = {"timestamp": isoformat_z(ts), "boundary": dict(boundary or {})}
        try:
            self._write(source, ts, data)
        except psycopg.OperationalError:
            raise
        except psycopg.Error as e:
            raise CursorStoreError(source, f"No se pudo guardar el cursor de {source}: {e}") from e

    def _read(self, source: str):
        with self._db.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT source, last_synced_at, cursor_data
                    FROM sync_state
                    WHERE source = %s
                    """,
                    (source,),
                )
                return cur.fetchone()

    def _write(self, source: str, ts: datetime, data: dict) -> None:
        with self._db.connect() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    INSERT INTO sync_state (source, last_synced_at, cursor_data, updated_at)
                    VALUES (%s, %s, %s, now())
                    ON CONFLICT (source)
                    DO UPDATE SET
                        last_synced_at = EXCLUDED.last_synced_at,
                        cursor_data = EXCLUDED.cursor_data,
                        updated_at = now()
                    """,
                    (source, ts, Jsonb(data)),
                )
