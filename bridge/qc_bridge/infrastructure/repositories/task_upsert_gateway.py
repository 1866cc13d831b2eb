"""
Gateway de upsert de tareas con resolución de jerarquía.

Reemplaza al stored procedure `create_or_update_task` por una transacción
explícita en código:

1. categoría -> venture (nombre o slug, case-insensitive) o, si no, dominio
2. proyecto bajo el venture/dominio resuelto (se crea si no existe)
3. milestone bajo el proyecto (se crea si no existe)
4. tarea por notion_page_id: UPDATE parcial (COALESCE) o INSERT

Todo ocurre en una sola conexión/transacción: si algo falla no queda ningún
proyecto o milestone huérfano.
"""
from __future__ import annotations

from typing import Any, Optional, Tuple

import psycopg

from qc_bridge.domain.entities import UpsertResult
from qc_bridge.infrastructure.database.connection import PostgresDatabase
from qc_bridge.shared.constants.vocabulary import DEFAULT_PRIORITY, DEFAULT_STATUS
from qc_bridge.shared.exceptions import CategoryNotFoundError, TargetStoreError


def _id(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


class TaskUpsertGateway:
    def __init__(self, db: PostgresDatabase) -> None:
        self._db = db

    def upsert(
        self,
        *,
        title: str,
        category_key: str,
        project_name: Optional[str] = None,
        milestone_name: Optional[str] = None,
        priority: Optional[str] = None,
        status: Optional[str] = None,
        due_date: Optional[str] = None,
        assignee: Optional[str] = None,
        source_id: Optional[str] = None,
        focus_date: Optional[str] = None,
        focus_slot: Optional[str] = None,
        content_hash: Optional[str] = None,
    ) -> UpsertResult:
        """
        Crea o actualiza la tarea y su jerarquía.

        Raises:
            CategoryNotFoundError: la categoría no existe como venture ni dominio.
            TargetStoreError: Postgres rechazó la escritura (constraint, tipo de dato).
        """
        try:
            return self._upsert(
                title=title, category_key=category_key, project_name=project_name,
                milestone_name=milestone_name, priority=priority, status=status,
                due_date=due_date, assignee=assignee, source_id=source_id,
                focus_date=focus_date, focus_slot=focus_slot, content_hash=content_hash,
            )
        except (psycopg.IntegrityError, psycopg.DataError) as e:
            raise TargetStoreError(
                f"Postgres rechazó la tarea '{title}': {e}",
                details={"source_id": source_id, "sqlstate": e.sqlstate},
            ) from e

    def _upsert(self, *, title, category_key, project_name, milestone_name, priority, status,
                due_date, assignee, source_id, focus_date, focus_slot, content_hash) -> UpsertResult:
        with self._db.connect() as conn:
            with conn.cursor() as cur:
                domain_id, venture_id = self._resolve_category(cur, category_key)

                project_id = None
                if project_name:
                    project_id = self._resolve_or_create_project(
                        cur, project_name, domain_id=domain_id, venture_id=venture_id
                    )

                milestone_id = None
                if milestone_name and project_id is not None:
                    milestone_id = self._resolve_or_create_milestone(cur, milestone_name, project_id)

                fields = {
                    "title": title,
                    "domain_id": domain_id,
                    "venture_id": venture_id,
                    "project_id": project_id,
                    "milestone_id": milestone_id,
                    "priority": priority,
                    "status": status,
                    "due_date": due_date,
                    "assignee": assignee,
                    "focus_slot": focus_slot,
                    "focus_date": focus_date,
                    "source_id": source_id,
                    "content_hash": content_hash,
                }

                task_id = self._find_task_by_source(cur, source_id) if source_id else None
                if task_id is None:
                    task_id = self._insert_task(cur, fields)
                    created = True
                else:
                    self._update_task(cur, task_id, fields)
                    created = False

        return UpsertResult(
            task_id=_id(task_id),
            created=created,
            domain_id=_id(domain_id),
            venture_id=_id(venture_id),
            project_id=_id(project_id),
            milestone_id=_id(milestone_id),
        )

    def _resolve_category(self, cur: psycopg.Cursor, category_key: str) -> Tuple[Any, Any]:
        key = (category_key or "").strip()
        if not key:
            raise CategoryNotFoundError(category_key or "")

        cur.execute(
            """
            SELECT id, primary_domain_id
            FROM ventures
            WHERE LOWER(slug) = LOWER(%s) OR LOWER(name) = LOWER(%s)
            ORDER BY (LOWER(slug) = LOWER(%s)) DESC
            LIMIT 1
            """,
            (key, key, key),
        )
        row = cur.fetchone()
        if row:
            return row["primary_domain_id"], row["id"]

        cur.execute(
            """
            SELECT id
            FROM domains
            WHERE LOWER(slug) = LOWER(%s) OR LOWER(name) = LOWER(%s)
            ORDER BY (LOWER(slug) = LOWER(%s)) DESC
            LIMIT 1
            """,
            (key, key, key),
        )
        row = cur.fetchone()
        if row:
            return row["id"], None

        raise CategoryNotFoundError(key)

    def _resolve_or_create_project(
        self, cur: psycopg.Cursor, name: str, *, domain_id: Any, venture_id: Any
    ) -> Any:
        if venture_id is not None:
            cur.execute(
                """
                SELECT id FROM projects
                WHERE LOWER(name) = LOWER(%s) AND venture_id = %s
                LIMIT 1
                """,
                (name, venture_id),
            )
        else:
            cur.execute(
                """
                SELECT id FROM projects
                WHERE LOWER(name) = LOWER(%s) AND venture_id IS NULL AND domain_id = %s
                LIMIT 1
                """,
                (name, domain_id),
            )
        row = cur.fetchone()
        if row:
            return row["id"]

        cur.execute(
            """
            INSERT INTO projects (name, domain_id, venture_id, description, created_at)
            VALUES (%s, %s, %s, %s, now())
            RETURNING id
            """,
            (
                name,
                domain_id,
                venture_id,
                "Project under venture" if venture_id is not None else "Project under domain",
            ),
        )
        return cur.fetchone()["id"]

    def _resolve_or_create_milestone(self, cur: psycopg.Cursor, name: str, project_id: Any) -> Any:
        cur.execute(
            """
            SELECT id FROM milestones
            WHERE LOWER(name) = LOWER(%s) AND project_id = %s
            LIMIT 1
            """,
            (name, project_id),
        )
        row = cur.fetchone()
        if row:
            return row["id"]

        cur.execute(
            """
            INSERT INTO milestones (name, project_id, created_at)
            VALUES (%s, %s, now())
            RETURNING id
            """,
            (name, project_id),
        )
        return cur.fetchone()["id"]

    def _find_task_by_source(self, cur: psycopg.Cursor, source_id: str) -> Any:
        cur.execute(
            "SELECT id FROM tasks WHERE notion_page_id = %s FOR UPDATE",
            (source_id,),
        )
        row = cur.fetchone()
        return row["id"] if row else None

    def _insert_task(self, cur: psycopg.Cursor, f: dict) -> Any:
        cur.execute(
            """
            INSERT INTO tasks (
                name, domain_id, venture_id, project_id, milestone_id,
                priority, status, due_date, assignee_email,
                focus_slot, focus_date, notion_page_id, external_hash, created_at
            )
            VALUES (
                %s, %s, %s, %s, %s,
                COALESCE(%s, %s), COALESCE(%s, %s), %s::date, %s,
                %s, %s::date, %s, %s, now()
            )
            RETURNING id
            """,
            (
                f["title"], f["domain_id"], f["venture_id"], f["project_id"], f["milestone_id"],
                f["priority"], DEFAULT_PRIORITY, f["status"], DEFAULT_STATUS,
                f["due_date"], f["assignee"],
                f["focus_slot"], f["focus_date"], f["source_id"], f["content_hash"],
            ),
        )
        return cur.fetchone()["id"]

    def _update_task(self, cur: psycopg.Cursor, task_id: Any, f: dict) -> None:
        # Campos None no se pisan: update parcial
        cur.execute(
            """
            UPDATE tasks SET
                name = %s,
                domain_id = COALESCE(%s, domain_id),
                venture_id = COALESCE(%s, venture_id),
                project_id = COALESCE(%s, project_id),
                milestone_id = COALESCE(%s, milestone_id),
                priority = COALESCE(%s, priority),
                status = COALESCE(%s, status),
                due_date = COALESCE(%s::date, due_date),
                assignee_email = COALESCE(%s, assignee_email),
                focus_slot = COALESCE(%s, focus_slot),
                focus_date = COALESCE(%s::date, focus_date),
                external_hash = COALESCE(%s, external_hash),
                updated_at = now()
            WHERE id = %s
            """,
            (
                f["title"], f["domain_id"], f["venture_id"], f["project_id"], f["milestone_id"],
                f["priority"], f["status"], f["due_date"], f["assignee"],
                f["focus_slot"], f["focus_date"], f["content_hash"],
                task_id,
            ),
        )
