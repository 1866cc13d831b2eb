"""
Configuracion de loguru para el bridge.

- stderr: texto legible o JSON (LOG_JSON=true) con service/env/version/correlation_id
- archivo opcional con rotacion diaria (LOG_FILE)
- alertas: sink de Notion para WARNING+ (si hay base de alertas y no es dry-run)
"""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

from loguru import logger

from qc_bridge.core.config import Settings
from qc_bridge.infrastructure.observability.alert_sink import NotionAlertSink

TEXT_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{extra[correlation_id]} | {message}"
)


def configure_logging(
    settings: Settings,
    *,
    verbose: bool = False,
    alert_sink: Optional[NotionAlertSink] = None,
) -> None:
    """
    Reemplaza los handlers por defecto de loguru.

    Args:
        settings: configuracion del proceso
        verbose: fuerza nivel DEBUG en stderr
        alert_sink: sink de alertas; None lo desactiva
    """
    level = "DEBUG" if verbose else settings.LOG_LEVEL.upper()

    logger.remove()
    logger.configure(
        extra={
            "service": settings.SERVICE_NAME,
            "environment": settings.ENVIRONMENT,
            "version": settings.SERVICE_VERSION,
            "correlation_id": "-",
        }
    )

    if settings.LOG_JSON:
        logger.add(sys.stderr, level=level, serialize=True, backtrace=False, diagnose=False)
    else:
        logger.add(sys.stderr, level=level, format=TEXT_FORMAT, backtrace=False, diagnose=False)

    if settings.LOG_FILE:
        Path(settings.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            settings.LOG_FILE,
            level="DEBUG",
            serialize=settings.LOG_JSON,
            rotation="1 day",
            retention="30 days",
        )

    if alert_sink is not None:
        logger.add(alert_sink, level="WARNING", format="{message}", catch=True)
