"""Structured logging setup for the sync engine."""

import functools
import logging
import logging.handlers
import sys
import time
from pathlib import Path
from typing import List, Optional

import structlog
import colorlog
from structlog.typing import Processor

from ..config.settings import LoggingSettings, get_settings

# Marks handlers installed here so repeated setup replaces them.
_HANDLER_FLAG = "_curio_sync_handler"


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _build_processors(format_type: str) -> List[Processor]:
    processors: List[Processor] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]
    if format_type == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def _install_handler(handler: logging.Handler) -> None:
    setattr(handler, _HANDLER_FLAG, True)
    logging.getLogger().addHandler(handler)


def _remove_installed_handlers() -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _HANDLER_FLAG, False):
            root.removeHandler(handler)
            handler.close()


def setup_logging(
    log_level: Optional[str] = None,
    log_format: Optional[str] = None,
    log_file: Optional[str] = None,
    settings: Optional[LoggingSettings] = None
) -> None:
    """Configure structlog on top of stdlib logging.

    Explicit arguments override ``settings``, which default to the
    application's logging settings. Calling this again replaces the
    handlers installed by the previous call.

    Args:
        log_level: Level name such as ``DEBUG``
        log_format: ``json`` or ``console``
        log_file: Optional path of a rotating log file
        settings: Logging settings to read defaults from
    """
    settings = settings or get_settings().logging
    level = _resolve_level(log_level or settings.level)
    format_type = log_format or settings.format
    file_path = log_file or settings.file_path

    logging.getLogger().setLevel(level)
    _remove_installed_handlers()

    structlog.configure(
        processors=_build_processors(format_type),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    _install_handler(_console_handler(level))
    if file_path:
        _install_handler(_file_handler(file_path, level))


def _file_handler(file_path: str, level: int) -> logging.Handler:
    """Rotating file handler; the directory is created on demand."""
    Path(file_path).parent.mkdir(parents=True, exist_ok=True)

    handler = logging.handlers.RotatingFileHandler(
        file_path,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=3,
        encoding="utf-8"
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
    return handler


def _console_handler(level: int) -> logging.Handler:
    handler = colorlog.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(colorlog.ColoredFormatter(
        "%(log_color)s%(levelname)-8s%(reset)s %(name)s: %(message)s",
        reset=True,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    ))
    return handler


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_async_execution_time(func):
    """Log how long a coroutine took, and whether it raised."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        start = time.perf_counter()
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.error(
                "Operation failed",
                operation=func.__qualname__,
                execution_time=f"{time.perf_counter() - start:.4f}s",
                error=str(e)
            )
            raise
        logger.debug(
            "Operation finished",
            operation=func.__qualname__,
            execution_time=f"{time.perf_counter() - start:.4f}s"
        )
        return result

    return wrapper
