"""
Excepción base para todas las excepciones personalizadas del bridge.
"""
from typing import Optional, Dict, Any


class BridgeException(Exception):
    """
    Excepción base del bridge.
    Todas las excepciones personalizadas deben heredar de esta clase.
    """

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Inicializa la excepción.

        Args:
            message: Mensaje de error descriptivo
            error_code: Código de error personalizado
            details: Detalles adicionales del error (van al contexto del log)
        """
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(BridgeException):
    """Error de configuración (variables de entorno faltantes o inválidas)."""

    def __init__(self, message: str, missing: Optional[list] = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            details={"missing": missing} if missing else None
        )
        self.missing = missing or []
