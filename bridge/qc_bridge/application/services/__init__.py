"""
Servicios de aplicacion.

Normalización, hash de contenido y procesamiento de un registro.
"""
from qc_bridge.application.services.content_hasher import (
    HASH_FIELD_ORDER,
    compute_content_hash,
    compute_source_fingerprint,
)
from qc_bridge.application.services.normalizer import (
    normalize_focus_slot,
    normalize_priority,
    normalize_record,
    normalize_status,
)
from qc_bridge.application.services.record_processor import RecordProcessor

__all__ = [
    "HASH_FIELD_ORDER",
    "compute_content_hash",
    "compute_source_fingerprint",
    "normalize_focus_slot",
    "normalize_priority",
    "normalize_record",
    "normalize_status",
    "RecordProcessor",
]
