"""
CLI: Notion "Quick Capture" -> Postgres (one-way sync de tareas).

Uso recomendado:
  - Proceso largo (systemd / contenedor) en modo continuo, con --server para liveness/readiness.
  - O como job (cron) con --once.

Variables de entorno requeridas:
  - NOTION_TOKEN
  - NOTION_DATABASE_ID
  - DATABASE_URL (postgresql://... o postgres://...)

Ejecución:
  qc-bridge                         # loop continuo
  qc-bridge --once                  # una pasada
  qc-bridge --once --dry-run --verbose
  qc-bridge --since 2025-01-01T00:00:00Z --once
  qc-bridge --server                # loop continuo + /health y /metrics
  qc-bridge --schema-only           # imprime el DDL
"""
from __future__ import annotations

import argparse
import signal
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Sequence

from dotenv import load_dotenv
from loguru import logger
from pydantic import ValidationError

from qc_bridge.application.services.record_processor import RecordProcessor
from qc_bridge.application.use_cases.sync_use_cases import SyncOrchestrator
from qc_bridge.core.config import Settings, SyncOptions, get_settings
from qc_bridge.core.log_config import configure_logging
from qc_bridge.infrastructure.database.connection import PostgresDatabase
from qc_bridge.infrastructure.external.notion.link_back_writer import NotionLinkBackWriter
from qc_bridge.infrastructure.external.notion.notion_client import NotionClient, NotionCredentials
from qc_bridge.infrastructure.external.notion.source_reader import NotionSourceReader
from qc_bridge.infrastructure.observability.alert_sink import NotionAlertSink
from qc_bridge.infrastructure.observability.health_monitor import HealthMonitor
from qc_bridge.infrastructure.repositories.cursor_repository import CursorRepository
from qc_bridge.infrastructure.repositories.ops_log_repository import OpsLogRepository
from qc_bridge.infrastructure.repositories.sync_link_repository import SyncLinkRepository
from qc_bridge.infrastructure.repositories.task_upsert_gateway import TaskUpsertGateway
from qc_bridge.shared.exceptions import ConfigurationError, SyncPassError
from qc_bridge.shared.utils.datetime_utils import parse_iso_datetime

_SCHEMA_PATH = Path(__file__).resolve().parent / "infrastructure" / "database" / "schema.sql"


def _since_arg(value: str) -> datetime:
    parsed = parse_iso_datetime(value)
    if parsed is None:
        raise argparse.ArgumentTypeError(f"timestamp ISO inválido: {value!r}")
    return parsed


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="qc-bridge",
        description="Sincroniza la base Quick Capture de Notion con las tareas en Postgres.",
    )
    parser.add_argument("--once", action="store_true", help="Ejecuta una sola pasada y termina.")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulación: lee y decide, pero no escribe en Postgres, Notion ni el cursor.",
    )
    parser.add_argument("--verbose", action="store_true", help="Logs en nivel DEBUG.")
    parser.add_argument(
        "--since",
        type=_since_arg,
        default=None,
        metavar="ISO",
        help="Ignora el cursor guardado y lee desde este timestamp.",
    )
    parser.add_argument(
        "--server",
        action="store_true",
        help="Levanta el servidor de health (/health, /metrics) en modo continuo.",
    )
    parser.add_argument(
        "--schema-only",
        action="store_true",
        help="Solo imprime el DDL recomendado (no ejecuta sync).",
    )
    return parser


def read_schema_sql() -> str:
    return _SCHEMA_PATH.read_text(encoding="utf-8")


def _notion_client(settings: Settings, monitor: Optional[HealthMonitor] = None) -> NotionClient:
    return NotionClient(
        NotionCredentials(token=settings.NOTION_TOKEN, version=settings.NOTION_VERSION),
        base_url=settings.NOTION_API_URL,
        timeout_s=settings.NOTION_TIMEOUT_S,
        monitor=monitor,
    )


def build_alert_sink(settings: Settings, *, dry_run: bool) -> Optional[NotionAlertSink]:
    """Sink de alertas de Notion; None en dry-run o si no hay base de alertas."""
    if dry_run or not settings.alerts_enabled:
        return None
    return NotionAlertSink(
        _notion_client(settings),
        settings.NOTION_ALERTS_DATABASE_ID,
        service=settings.SERVICE_NAME,
        environment=settings.ENVIRONMENT,
    )


def build_orchestrator(
    settings: Settings,
    *,
    dry_run: bool = False,
    since_override: Optional[datetime] = None,
    monitor: Optional[HealthMonitor] = None,
) -> SyncOrchestrator:
    """Arma el grafo completo: Notion + Postgres + procesador + orquestador."""
    options = SyncOptions.from_settings(settings, dry_run=dry_run, since_override=since_override)
    db = PostgresDatabase(settings.effective_database_url, monitor=monitor)
    notion = _notion_client(settings, monitor)

    ops_log = None
    if settings.OPS_LOG_ENABLED:
        ops_log = OpsLogRepository(db, created_by=settings.SERVICE_NAME)

    processor = RecordProcessor(
        gateway=TaskUpsertGateway(db),
        sync_links=SyncLinkRepository(db),
        link_back=NotionLinkBackWriter(notion, settings),
        options=options,
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        base_delay_s=settings.RETRY_BASE_DELAY_S,
        write_delay_s=settings.DATABASE_DELAY_S,
    )
    return SyncOrchestrator(
        cursor_store=CursorRepository(
            db,
            max_attempts=settings.RETRY_MAX_ATTEMPTS,
            base_delay_s=settings.RETRY_BASE_DELAY_S,
        ),
        source_reader=NotionSourceReader(notion, settings),
        processor=processor,
        options=options,
        monitor=monitor,
        ops_log=ops_log,
    )


def _install_signal_handlers(orchestrator: SyncOrchestrator) -> None:
    def _handle(signum, _frame):
        logger.info(f"Señal {signal.Signals(signum).name} recibida, deteniendo bridge...")
        orchestrator.stop()
        raise SystemExit(0)

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def run(args: argparse.Namespace, settings: Settings) -> int:
    missing = settings.validate_required()
    if missing:
        raise ConfigurationError(
            f"Faltan variables de entorno obligatorias: {', '.join(missing)}", missing=missing
        )

    monitor = HealthMonitor(
        service_name=settings.SERVICE_NAME,
        version=settings.SERVICE_VERSION,
        environment=settings.ENVIRONMENT,
    )
    orchestrator = build_orchestrator(
        settings, dry_run=args.dry_run, since_override=args.since, monitor=monitor
    )
    _install_signal_handlers(orchestrator)

    logger.info(
        f"{settings.SERVICE_NAME} v{settings.SERVICE_VERSION} ({settings.ENVIRONMENT}) "
        f"modo={'once' if args.once else 'continuo'} dry_run={args.dry_run}"
    )

    if args.once:
        try:
            orchestrator.run_pass()
        except SyncPassError:
            return 1
        return 0

    if args.server:
        from qc_bridge.api.health import start_health_server

        start_health_server(monitor, host=settings.HEALTH_HOST, port=settings.HEALTH_PORT)

    orchestrator.run_forever(settings.SYNC_INTERVAL_S, settings.SYNC_FAILURE_INTERVAL_S)
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    if args.schema_only:
        print(read_schema_sql())
        return 0

    load_dotenv(override=False)
    try:
        settings = get_settings()
    except ValidationError as e:
        logger.critical(f"Configuración inválida: {e}")
        return 1

    configure_logging(
        settings,
        verbose=args.verbose,
        alert_sink=build_alert_sink(settings, dry_run=args.dry_run),
    )

    try:
        return run(args, settings)
    except ConfigurationError as e:
        logger.critical(e.message)
        return 1
    except Exception as e:
        logger.opt(exception=e).critical(f"Error no controlado: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
