"""
Excepciones del pipeline de sincronización Notion -> Postgres.
"""
from typing import Any, Optional

from qc_bridge.shared.exceptions.base import BridgeException


class SourceApiError(BridgeException):
    """Error de integración con la API de Notion."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(
            message=message,
            error_code="SOURCE_API_ERROR",
            details={"status_code": status_code, "body": body}
        )
        self.status_code = status_code


class TargetStoreError(BridgeException):
    """Error al escribir/leer en Postgres que no es de conexión."""

    def __init__(self, message: str, details=None):
        super().__init__(message=message, error_code="TARGET_STORE_ERROR", details=details)


class CursorStoreError(TargetStoreError):
    """Error relacionado con el estado/cursor del sync."""

    def __init__(self, source: str, message: str):
        super().__init__(message=message, details={"source": source})
        self.error_code = "CURSOR_STORE_ERROR"
        self.source = source


class CategoryNotFoundError(TargetStoreError):
    """La categoría (venture o dominio) del registro no existe en Postgres."""

    def __init__(self, category_key: str):
        super().__init__(
            message=f'La categoría "{category_key}" no corresponde a ningún venture ni dominio',
            details={"category_key": category_key}
        )
        self.error_code = "CATEGORY_NOT_FOUND"
        self.category_key = category_key


class SyncPassError(BridgeException):
    """
    Falla irrecuperable de una pasada completa (no de un registro).

    Se levanta desde el orquestador con la causa original encadenada.
    """

    def __init__(self, state: str, cause: BaseException):
        super().__init__(
            message=f"La pasada de sync falló en el estado {state}: {cause}",
            error_code="SYNC_PASS_FAILED",
            details={"state": state, "cause": type(cause).__name__}
        )
        self.state = state
        self.cause = cause
