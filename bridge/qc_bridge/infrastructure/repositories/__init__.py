"""
Repositorios sobre PostgreSQL: cursor de sync, vínculos Notion <-> tarea y
upsert de tareas, más la bitácora ops_logs.
"""
from qc_bridge.infrastructure.repositories.cursor_repository import CursorRepository
from qc_bridge.infrastructure.repositories.ops_log_repository import OpsLogRepository
from qc_bridge.infrastructure.repositories.sync_link_repository import SyncLinkRepository
from qc_bridge.infrastructure.repositories.task_upsert_gateway import TaskUpsertGateway

__all__ = ["CursorRepository", "OpsLogRepository", "SyncLinkRepository", "TaskUpsertGateway"]
