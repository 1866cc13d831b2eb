"""
Retry con backoff exponencial para llamadas remotas (Notion / Postgres).

Estrategia:
- delay = base * 2^(intento-1)
- solo se reintentan errores transitorios: 429, 5xx, conexión reseteada, timeout
- errores no recuperables se propagan en el primer intento
- agotados los intentos se propaga el error ORIGINAL (sin envolver)
"""
from __future__ import annotations

import functools
import time
from typing import Callable, Optional, TypeVar

import psycopg
import requests
from loguru import logger

T = TypeVar("T")

RETRYABLE_STATUS_CODES = {429}


def _status_code_of(exc: BaseException) -> Optional[int]:
    for attr in ("status_code", "status"):
        value = getattr(exc, attr, None)
        if isinstance(value, int):
            return value
    response = getattr(exc, "response", None)
    if response is not None and isinstance(getattr(response, "status_code", None), int):
        return response.status_code
    return None


def is_retryable(exc: BaseException) -> bool:
    """
    Indica si el error parece transitorio.

    - HTTP 429 o >= 500 (atributo status_code/status o exc.response)
    - conexión reseteada / timeout (requests, builtins)
    - psycopg.OperationalError (conexión caída)
    """
    status = _status_code_of(exc)
    if status is not None:
        return status in RETRYABLE_STATUS_CODES or status >= 500

    return isinstance(
        exc,
        (
            requests.ConnectionError,
            requests.Timeout,
            ConnectionResetError,
            TimeoutError,
            psycopg.OperationalError,
        ),
    )


def with_retry(
    operation: Callable[[], T],
    *,
    max_attempts: int = 3,
    base_delay_s: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Callable[[float], None] = time.sleep,
    operation_name: str = "operation",
) -> T:
    """
    Ejecuta `operation` con reintentos.

    Args:
        operation: callable sin argumentos
        max_attempts: intentos totales (>= 1)
        base_delay_s: delay del primer reintento
        is_retryable: predicado de errores transitorios
        sleep: función de espera (inyectable en tests)
        operation_name: nombre para los logs

    Returns:
        El resultado de `operation`.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts debe ser >= 1")

    attempt = 1
    while True:
        try:
            return operation()
        except Exception as e:
            if not is_retryable(e) or attempt >= max_attempts:
                raise

            delay = base_delay_s * (2 ** (attempt - 1))
            # debug y no warning: un reintento no es una alerta
            logger.debug(
                f"Reintento {attempt}/{max_attempts} de {operation_name} en {delay:.2f}s: {e}"
            )
            sleep(delay)
            attempt += 1


def retryable(
    *,
    max_attempts: int = 3,
    base_delay_s: float = 1.0,
    is_retryable: Callable[[BaseException], bool] = is_retryable,
    sleep: Optional[Callable[[float], None]] = None,
):
    """
    Forma decorador de `with_retry`.

    Uso:
        @retryable(max_attempts=3, base_delay_s=1.0)
        def get(self, source): ...
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return with_retry(
                lambda: func(*args, **kwargs),
                max_attempts=max_attempts,
                base_delay_s=base_delay_s,
                is_retryable=is_retryable,
                sleep=sleep or time.sleep,
                operation_name=func.__qualname__,
            )

        return wrapper

    return decorator
