"""
Logging configuration for the locator healing engine.

This module provides structured logging configuration with a JSON formatter,
a contextual logger adapter for healing operations, and rotating file
handlers for the engine's loggers.
"""

import logging
import logging.handlers
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import asdict, is_dataclass
from enum import Enum

ROOT_LOGGER_NAME = "locator_healer"

COMPONENTS = ("pipeline", "cache", "report", "service")

CONSOLE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

_MB = 1024 * 1024

# Record attributes copied into the JSON payload when present
_CONTEXT_FIELDS = (
    "cache_key",
    "test_case",
    "operation",
    "phase",
    "duration",
    "success",
    "platform",
    "strategy",
    "error_code",
    "metadata",
)


class StructuredFormatter(logging.Formatter):
    """Renders each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }
        payload.update({
            name: getattr(record, name) for name in _CONTEXT_FIELDS if hasattr(record, name)
        })

        if record.exc_info:
            exc_type, exc_value, _ = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__ if exc_type else None,
                "message": str(exc_value) if exc_value else None,
                "traceback": self.formatException(record.exc_info)
            }

        return json.dumps(payload, default=self._to_json)

    @staticmethod
    def _to_json(obj):
        """Fallback for values json cannot encode natively."""
        if isinstance(obj, Enum):
            return obj.value
        if is_dataclass(obj):
            return asdict(obj)
        if isinstance(obj, datetime):
            return obj.isoformat()
        if hasattr(obj, '__dict__'):
            return obj.__dict__
        return str(obj)


class HealingLoggerAdapter(logging.LoggerAdapter):
    """Adapter that stamps every record with the locator and test being healed."""

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        kwargs.setdefault('extra', {}).update(self.extra)
        return msg, kwargs

    def log_operation_start(self, operation: str, **metadata):
        self.debug(f"Starting {operation}", extra={
            'operation': operation,
            'phase': 'start',
            'metadata': metadata
        })

    def log_operation_success(self, operation: str, duration: float, **metadata):
        self.info(f"Completed {operation} in {duration:.3f}s", extra={
            'operation': operation,
            'phase': 'complete',
            'success': True,
            'duration': duration,
            'metadata': metadata
        })

    def log_operation_failure(self, operation: str, duration: float, error: str,
                              error_code: Optional[str] = None, **metadata):
        """Log an operation that ended without a result."""
        self.warning(f"Failed {operation}: {error}", extra={
            'operation': operation,
            'phase': 'complete',
            'success': False,
            'duration': duration,
            'error_code': error_code,
            'metadata': metadata
        })


def _rotating_handler(path: Path, max_bytes: int, backup_count: int, level: int,
                      formatter: logging.Formatter) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


def _reset_handlers(logger: logging.Logger) -> None:
    """Detach and close handlers left over from a previous setup call."""
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
        handler.close()


def setup_healing_logging(log_level: str = "INFO", log_dir: str = "logs") -> Dict[str, logging.Logger]:
    """
    Set up structured logging for the healing engine.

    The engine logger writes to the console, to ``healing_all.log`` and to
    ``healing_errors.log``. Component loggers additionally write INFO and
    above to ``healing_operations.log``. Calling this again replaces the
    handlers instead of stacking them.

    Args:
        log_level: Level name for the engine logger and the console
        log_dir: Directory for the rotating log files, created if missing

    Returns:
        Loggers keyed "engine" plus one entry per component
    """
    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)
    level = getattr(logging, log_level.upper())
    structured = StructuredFormatter()

    engine_logger = logging.getLogger(ROOT_LOGGER_NAME)
    engine_logger.setLevel(level)
    _reset_handlers(engine_logger)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler.setLevel(level)

    engine_logger.addHandler(console_handler)
    engine_logger.addHandler(
        _rotating_handler(log_path / "healing_all.log", 10 * _MB, 5, logging.DEBUG, structured))
    engine_logger.addHandler(
        _rotating_handler(log_path / "healing_errors.log", 5 * _MB, 10, logging.ERROR, structured))
    engine_logger.propagate = False

    operations_handler = _rotating_handler(
        log_path / "healing_operations.log", 10 * _MB, 10, logging.INFO, structured)

    loggers = {"engine": engine_logger}
    for component in COMPONENTS:
        component_logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}")
        _reset_handlers(component_logger)
        component_logger.addHandler(operations_handler)
        loggers[component] = component_logger

    engine_logger.debug(f"Healing logging configured at {log_level.upper()} in {log_path}")
    return loggers


def get_healing_logger(component: str, cache_key: Optional[str] = None,
                       test_case: Optional[str] = None) -> HealingLoggerAdapter:
    """
    Get a healing logger adapter with contextual information.

    Args:
        component: Component name (pipeline, cache, report, service)
        cache_key: Optional cache key of the locator being healed
        test_case: Optional name of the running test

    Returns:
        HealingLoggerAdapter for ``locator_healer.<component>``
    """
    extra = {name: value for name, value in (("cache_key", cache_key), ("test_case", test_case))
             if value}
    return HealingLoggerAdapter(logging.getLogger(f"{ROOT_LOGGER_NAME}.{component}"), extra)
