"""
Casos de uso de la aplicacion.
"""
from .sync_use_cases import SyncOrchestrator

__all__ = ["SyncOrchestrator"]
