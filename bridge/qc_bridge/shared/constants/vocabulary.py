"""
Vocabulario canónico de tareas.

Estos valores son los únicos que aceptan los CHECK constraints de la tabla
`tasks` en Postgres. Todo valor que venga de Notion debe pasar por el
normalizador antes de llegar a la base de datos.
"""
from typing import Tuple

# Status
STATUS_TODO = "To Do"
STATUS_IN_PROGRESS = "In Progress"
STATUS_DONE = "Done"
STATUS_ON_HOLD = "On Hold"

CANONICAL_STATUSES: Tuple[str, ...] = (
    STATUS_TODO,
    STATUS_IN_PROGRESS,
    STATUS_DONE,
    STATUS_ON_HOLD,
)
DEFAULT_STATUS = STATUS_TODO

# Prioridad
CANONICAL_PRIORITIES: Tuple[str, ...] = ("P0", "P1", "P2", "P3")
DEFAULT_PRIORITY = "P2"

# Focus slots (bloques del día). Se pueden sobreescribir con FOCUS_SLOTS.
DEFAULT_FOCUS_SLOTS: Tuple[str, ...] = (
    "Morning Routine",
    "Deep Work Block 1",
    "Admin Block 1",
    "Recharge & Rest",
    "Deep Work Block 2",
    "Admin Block 2",
    "Shutdown Routine",
)

# Campos que se pueden exigir con SYNC_REQUIRED_FIELDS.
# domain y venture se leen del registro de Notion; el resto, del normalizado.
SOURCE_REQUIRED_FIELDS: Tuple[str, ...] = ("domain", "venture")
REQUIRED_FIELD_NAMES: Tuple[str, ...] = (
    "title",
    "category",
    "domain",
    "venture",
    "project",
    "milestone",
    "priority",
    "status",
    "due_date",
    "focus_date",
    "focus_slot",
    "assignee",
)

# Estado inicial de una alerta en la base de alertas de Notion
ALERT_STATUS_OPEN = "Open"
