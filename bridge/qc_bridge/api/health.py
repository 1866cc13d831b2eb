"""
Servidor de health del bridge (FastAPI).

Expone el estado del HealthMonitor para checks de liveness y dashboards:
  GET /health   -> 200 si healthy/warning, 503 si degraded/critical
  GET /metrics  -> health + contadores + tiempos de respuesta por API
"""
from __future__ import annotations

import threading

import uvicorn
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from loguru import logger

from qc_bridge.infrastructure.observability.health_monitor import HEALTHY, WARNING, HealthMonitor

_SERVING_STATUSES = (HEALTHY, WARNING)


def create_health_app(monitor: HealthMonitor) -> FastAPI:
    """
    Factory de la app de health.

    Args:
        monitor: instancia compartida con el orquestador

    Returns:
        FastAPI: app lista para servir con uvicorn
    """
    application = FastAPI(
        title=monitor.service_name,
        version=monitor.version,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    @application.get("/health", tags=["Health"])
    def health_check():
        """Estado resumido; el código HTTP refleja si el servicio está sano."""
        payload = monitor.health_check()
        status_code = 200 if payload["status"] in _SERVING_STATUSES else 503
        return JSONResponse(status_code=status_code, content=payload)

    @application.get("/metrics", tags=["Health"])
    def metrics():
        return {
            **monitor.health_check(),
            "performance": monitor.performance_summary(),
        }

    return application


def start_health_server(monitor: HealthMonitor, *, host: str, port: int) -> threading.Thread:
    """
    Levanta uvicorn en un thread daemon; muere con el proceso.
    """
    config = uvicorn.Config(
        create_health_app(monitor),
        host=host,
        port=port,
        log_level="warning",
        access_log=False,
    )
    server = uvicorn.Server(config)

    thread = threading.Thread(target=server.run, name="health-server", daemon=True)
    thread.start()
    logger.info(f"Health server escuchando en http://{host}:{port} (/health, /metrics)")
    return thread
