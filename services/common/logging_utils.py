"""Shared logging helpers for the resolver sidecar and its engine modules."""

from __future__ import annotations

import asyncio
import functools
import logging
import os
import time
from typing import Any, Callable, TypeVar

R = TypeVar("R")

_TRUTHY_VALUES = {"1", "true", "yes", "on"}
_DEFAULT_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"
_VALID_LEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _is_truthy(value: str | None) -> bool:
    if value is None:
        return False
    return value.strip().lower() in _TRUTHY_VALUES


def resolve_level(
    *,
    default_level: str = "INFO",
    log_level_env: str = "LOG_LEVEL",
    debug_env: str = "DEBUG",
) -> int:
    """Pick a level from LOG_LEVEL, then DEBUG, then the given default."""
    configured = os.getenv(log_level_env, "").strip().lower()
    if configured:
        return _VALID_LEVEL_NAMES.get(configured, logging.INFO)

    if _is_truthy(os.getenv(debug_env)):
        return logging.DEBUG

    return _VALID_LEVEL_NAMES.get(default_level.strip().lower(), logging.INFO)


def configure_service_logger(
    service_name: str,
    *,
    default_level: str = "INFO",
    log_level_env: str = "LOG_LEVEL",
    debug_env: str = "DEBUG",
    fmt: str = _DEFAULT_FORMAT,
    package_loggers: tuple[str, ...] = ("services.hifi_resolver",),
) -> logging.Logger:
    """Configure root logging and return the named service logger.

    Engine modules log through ``logging.getLogger(__name__)``; the loggers
    listed in ``package_loggers`` get the same level as the service logger so
    attempt-level messages follow LOG_LEVEL too.
    """
    level = resolve_level(
        default_level=default_level,
        log_level_env=log_level_env,
        debug_env=debug_env,
    )
    logging.basicConfig(level=level, format=fmt)
    for name in package_loggers:
        logging.getLogger(name).setLevel(level)
    logger = logging.getLogger(service_name)
    logger.setLevel(level)
    return logger


def with_log_context(logger: logging.Logger, **context: Any) -> logging.LoggerAdapter:
    """Prefix every message with ``key=value`` context fields."""
    return _ContextAdapter(logger, context)


class _ContextAdapter(logging.LoggerAdapter):
    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        prefix = " ".join(f"{key}={value}" for key, value in (self.extra or {}).items())
        if prefix:
            msg = f"[{prefix}] {msg}"
        return msg, kwargs


def log_exceptions(
    logger: logging.Logger,
    message: str,
    *,
    level: int = logging.ERROR,
    ignore: tuple[type[BaseException], ...] = (),
) -> Callable[[Callable[..., R]], Callable[..., R]]:
    """Decorator that logs unexpected exceptions and re-raises.

    Exceptions listed in ``ignore`` are expected at the call site and are
    re-raised without logging.
    """

    def decorator(func: Callable[..., R]) -> Callable[..., R]:
        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> R:
                try:
                    return await func(*args, **kwargs)
                except ignore:
                    raise
                except Exception:
                    logger.log(level, message, exc_info=True)
                    raise

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> R:
            try:
                return func(*args, **kwargs)
            except ignore:
                raise
            except Exception:
                logger.log(level, message, exc_info=True)
                raise

        return wrapper

    return decorator


def log_timing(
    logger: logging.Logger,
    operation: str,
    *,
    level: int = logging.INFO,
) -> Callable[[Callable[..., R]], Callable[..., R]]:
    """Decorator that logs operation duration for sync or async functions.

    Failures are logged at the same level with the exception type only; the
    caller decides whether the error itself deserves a traceback.
    """

    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000.0

    def decorator(func: Callable[..., R]) -> Callable[..., R]:
        if asyncio.iscoroutinefunction(func):

            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> R:
                start = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as err:
                    logger.log(level, "%s failed after %.2fms (%s)", operation, _elapsed_ms(start), type(err).__name__)
                    raise
                logger.log(level, "%s completed in %.2fms", operation, _elapsed_ms(start))
                return result

            return async_wrapper

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> R:
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as err:
                logger.log(level, "%s failed after %.2fms (%s)", operation, _elapsed_ms(start), type(err).__name__)
                raise
            logger.log(level, "%s completed in %.2fms", operation, _elapsed_ms(start))
            return result

        return wrapper

    return decorator
