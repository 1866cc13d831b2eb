"""
Contadores operativos del bridge y estado de salud.

El servidor de health lee estos contadores desde otro thread, por eso todo
acceso pasa por un lock.
"""
from __future__ import annotations

import threading
import time
from collections import deque
from datetime import datetime
from typing import Any, Deque, Dict, Optional

from qc_bridge.shared.utils.datetime_utils import utc_now

HEALTHY = "healthy"
WARNING = "warning"
DEGRADED = "degraded"
CRITICAL = "critical"

CRITICAL_ERROR_RATE = 0.3
WARNING_ERROR_RATE = 0.1
STALE_SYNC_AFTER_S = 300

# Ventana de tiempos de respuesta que se guardan por API
_TIMINGS_WINDOW = 100


def format_duration(seconds: float) -> str:
    """Duración legible: '2d 3h 4m', '3h 4m', '4m 5s', '5s'."""
    total = int(max(seconds, 0))
    minutes, secs = divmod(total, 60)
    hours, minutes = divmod(minutes, 60)
    days, hours = divmod(hours, 24)

    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


class HealthMonitor:
    """
    Métricas en memoria del proceso.

    Uso:
        monitor = HealthMonitor(service_name="qc-bridge", ...)
        monitor.record_sync_start()
        ...
        monitor.record_sync_complete(fetched=..., created=..., ...)
        monitor.health_check()  # dict para /health
    """

    def __init__(
        self,
        *,
        service_name: str = "qc-bridge",
        version: str = "",
        environment: str = "production",
        clock=time.monotonic,
    ) -> None:
        self.service_name = service_name
        self.version = version
        self.environment = environment
        self._clock = clock
        self._lock = threading.Lock()
        self._uptime_start = clock()
        self._sync_started_at: Optional[float] = None
        self._last_success_clock: Optional[float] = None
        self._timings: Dict[str, Deque[float]] = {
            "notion": deque(maxlen=_TIMINGS_WINDOW),
            "database": deque(maxlen=_TIMINGS_WINDOW),
        }
        self.metrics: Dict[str, Any] = {
            "sync_runs": 0,
            "sync_failures": 0,
            "consecutive_failures": 0,
            "records_processed": 0,
            "tasks_created": 0,
            "tasks_updated": 0,
            "tasks_skipped": 0,
            "errors_count": 0,
            "notion_api_calls": 0,
            "database_calls": 0,
            "last_sync_duration_ms": 0,
            "last_successful_sync": None,
            "uptime_start": utc_now().isoformat(),
        }

    # --- contadores -----------------------------------------------------

    def record_notion_call(self, duration_ms: Optional[float] = None) -> None:
        with self._lock:
            self.metrics["notion_api_calls"] += 1
            if duration_ms is not None:
                self._timings["notion"].append(duration_ms)

    def record_database_call(self, duration_ms: Optional[float] = None) -> None:
        with self._lock:
            self.metrics["database_calls"] += 1
            if duration_ms is not None:
                self._timings["database"].append(duration_ms)

    def record_sync_start(self) -> None:
        with self._lock:
            self.metrics["sync_runs"] += 1
            self._sync_started_at = self._clock()

    def record_sync_complete(
        self, *, fetched: int, created: int, updated: int, skipped: int, errors: int,
        finished_at: Optional[datetime] = None,
    ) -> None:
        with self._lock:
            now = self._clock()
            if self._sync_started_at is not None:
                self.metrics["last_sync_duration_ms"] = int((now - self._sync_started_at) * 1000)
            self.metrics["records_processed"] += fetched
            self.metrics["tasks_created"] += created
            self.metrics["tasks_updated"] += updated
            self.metrics["tasks_skipped"] += skipped
            self.metrics["errors_count"] += errors
            self.metrics["consecutive_failures"] = 0
            self.metrics["last_successful_sync"] = (finished_at or utc_now()).isoformat()
            self._last_success_clock = now

    def record_sync_failure(self) -> None:
        with self._lock:
            self.metrics["sync_failures"] += 1
            self.metrics["consecutive_failures"] += 1
            self.metrics["errors_count"] += 1

    # --- estado ---------------------------------------------------------

    def _error_rate(self) -> float:
        denominator = max(self.metrics["records_processed"] + self.metrics["sync_failures"], 1)
        return self.metrics["errors_count"] / denominator

    def _status(self, error_rate: float, last_sync_age_s: Optional[float]) -> str:
        if error_rate > CRITICAL_ERROR_RATE:
            return CRITICAL
        if last_sync_age_s is not None and last_sync_age_s > STALE_SYNC_AFTER_S:
            return DEGRADED
        if error_rate > WARNING_ERROR_RATE:
            return WARNING
        return HEALTHY

    def health_status(self) -> Dict[str, Any]:
        with self._lock:
            now = self._clock()
            uptime_s = now - self._uptime_start
            last_sync_age_s = (
                now - self._last_success_clock if self._last_success_clock is not None else None
            )
            error_rate = self._error_rate()
            return {
                "status": self._status(error_rate, last_sync_age_s),
                "uptime_ms": int(uptime_s * 1000),
                "uptime_human": format_duration(uptime_s),
                "error_rate": round(error_rate, 2),
                "last_sync_age_ms": int(last_sync_age_s * 1000) if last_sync_age_s is not None else None,
                "last_sync_age_human": format_duration(last_sync_age_s) if last_sync_age_s is not None else "never",
                "metrics": dict(self.metrics),
            }

    def health_check(self) -> Dict[str, Any]:
        """Payload del endpoint /health."""
        return {
            "service": self.service_name,
            "version": self.version,
            "environment": self.environment,
            "timestamp": utc_now().isoformat(),
            **self.health_status(),
        }

    def performance_summary(self) -> Dict[str, Any]:
        """Promedio / máximo de los últimos tiempos de respuesta por API."""
        with self._lock:
            summary: Dict[str, Any] = {}
            for api, samples in self._timings.items():
                values = list(samples)
                summary[api] = {
                    "samples": len(values),
                    "avg_ms": round(sum(values) / len(values), 1) if values else None,
                    "max_ms": round(max(values), 1) if values else None,
                }
            return summary
