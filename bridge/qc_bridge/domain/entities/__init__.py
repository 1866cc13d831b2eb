from qc_bridge.domain.entities.task_record import (
    Cursor,
    NormalizedRecord,
    RecordOutcome,
    RecordResult,
    SourceRecord,
    SyncLink,
    SyncSummary,
    UpsertResult,
)

__all__ = [
    "Cursor",
    "NormalizedRecord",
    "RecordOutcome",
    "RecordResult",
    "SourceRecord",
    "SyncLink",
    "SyncSummary",
    "UpsertResult",
]
