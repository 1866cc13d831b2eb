"""
Conexiones a Postgres (psycopg v3).

Cada operación abre su propia conexión y su propia transacción: el volumen
es de decenas de registros por pasada, no vale la pena un pool.
"""
from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator, Optional

import psycopg
from psycopg.rows import dict_row

from qc_bridge.infrastructure.observability.health_monitor import HealthMonitor


class PostgresDatabase:
    def __init__(self, dsn: str, *, monitor: Optional[HealthMonitor] = None) -> None:
        self._dsn = dsn
        self._monitor = monitor

    def _open(self) -> psycopg.Connection:
        try:
            return psycopg.connect(self._dsn, row_factory=dict_row)
        except psycopg.OperationalError as e:
            # Se relanza el mismo tipo para que el retry lo reconozca como transitorio.
            raise psycopg.OperationalError(
                f"{e}\n"
                f"Sugerencia: verifica que DATABASE_URL sea accesible desde donde ejecutas el bridge.\n"
                f"- Si apunta a un hostname de Docker (p.ej. 'postgres'), eso solo resuelve dentro de Docker.\n"
                f"- En Supabase usa el connection string del pooler (puerto 6543) o el directo (5432)."
            ) from e

    @contextmanager
    def connect(self) -> Iterator[psycopg.Connection]:
        """
        Abre una conexión en una transacción.

        Commit si el bloque termina bien, rollback si levanta.
        """
        started = time.monotonic()
        conn = self._open()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()
            if self._monitor is not None:
                self._monitor.record_database_call((time.monotonic() - started) * 1000)
