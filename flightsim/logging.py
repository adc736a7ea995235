# flightsim/logging.py
"""
Structured logging for the flight scenario engine.

Every line is one JSON object:
- timestamp, level, logger, message (the event name)
- any keyword fields passed at the call site
- fields bound with StructuredLogger.bind (e.g. scenario_id)

Usage:
    from flightsim.logging import get_logger
    logger = get_logger(__name__)
    logger.info("tick_processed", scenario_id=scenario_id, elapsed=42)
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Third-party loggers that are too chatty at INFO
_NOISY_LOGGERS = ("httpx", "httpcore", "uvicorn", "sqlalchemy", "anthropic", "openai")


class StructuredLogFormatter(logging.Formatter):
    """Render a record as a single JSON object."""

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        fields = getattr(record, "fields", None)
        if fields:
            payload.update(fields)

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        if record.levelno >= logging.ERROR:
            payload["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(payload, default=str)


class StructuredLogger:
    """
    Logger that takes an event name plus keyword fields.

    Example:
        logger = get_logger(__name__).bind(scenario_id=scenario_id)
        logger.warning("parameters_seeded", altitude=30000)
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self._logger = logging.getLogger(name)
        self._context: Dict[str, Any] = dict(context or {})

    @property
    def name(self) -> str:
        return self._logger.name

    def bind(self, **fields) -> "StructuredLogger":
        """Return a logger that adds ``fields`` to every line."""
        return StructuredLogger(self._logger.name, {**self._context, **fields})

    def _log(self, level: int, event: str, exc_info: bool = False, **fields):
        merged = {**self._context, **fields}
        self._logger.log(level, event, exc_info=exc_info, extra={"fields": merged})

    def debug(self, event: str, **fields):
        self._log(logging.DEBUG, event, **fields)

    def info(self, event: str, **fields):
        self._log(logging.INFO, event, **fields)

    def warning(self, event: str, **fields):
        self._log(logging.WARNING, event, **fields)

    def error(self, event: str, exc_info: bool = False, **fields):
        self._log(logging.ERROR, event, exc_info=exc_info, **fields)

    def exception(self, event: str, **fields):
        """Log at ERROR with the active traceback attached."""
        self._log(logging.ERROR, event, exc_info=True, **fields)


_configured = False


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    log_file: Optional[str] = None,
):
    """
    Configure the root logger once per process.

    Args:
        level: Log level name
        json_output: JSON lines (True) or plain text (False) on stdout
        log_file: Optional path that always receives JSON lines
    """
    global _configured
    if _configured:
        return
    _configured = True

    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in root.handlers[:]:
        root.removeHandler(handler)

    console = logging.StreamHandler(sys.stdout)
    if json_output:
        console.setFormatter(StructuredLogFormatter())
    else:
        console.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
    root.addHandler(console)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredLogFormatter())
        root.addHandler(file_handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger, configuring logging from settings on first use.

    Args:
        name: Logger name (typically __name__)
    """
    if not _configured:
        from .settings import settings
        configure_logging(level=settings.log_level, json_output=settings.log_json)
    return StructuredLogger(name)


def get_scenario_logger(name: str, scenario_id: str) -> StructuredLogger:
    """Logger with the scenario ID bound to every line."""
    return get_logger(name).bind(scenario_id=scenario_id)


def get_api_logger() -> StructuredLogger:
    """Logger for API routes."""
    return get_logger("flightsim.api")
