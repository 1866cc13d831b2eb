"""
Acceso a PostgreSQL (psycopg v3) y DDL de referencia (schema.sql).
"""
from qc_bridge.infrastructure.database.connection import PostgresDatabase

__all__ = ["PostgresDatabase"]
