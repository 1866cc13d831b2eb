from qc_bridge.shared.exceptions.base import BridgeException, ConfigurationError
from qc_bridge.shared.exceptions.sync import (
    CategoryNotFoundError,
    CursorStoreError,
    SourceApiError,
    SyncPassError,
    TargetStoreError,
)

__all__ = [
    "BridgeException",
    "CategoryNotFoundError",
    "ConfigurationError",
    "CursorStoreError",
    "SourceApiError",
    "SyncPassError",
    "TargetStoreError",
]
