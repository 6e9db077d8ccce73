"""Structured logging for groundwrite.

Every module logs through a child of the ``groundwrite`` logger, which owns the
single stdout handler. Records render as key=value pairs with the run id right
after the level, so one generation run can be followed across modules.
"""

import logging
import sys
from typing import Any

from pydantic import ValidationError

ROOT_LOGGER_NAME = "groundwrite"


def _format_value(value: Any) -> str:
    text = str(value)
    if text and not any(ch.isspace() or ch in '="' for ch in text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class RunContextFormatter(logging.Formatter):
    """key=value formatter that places run context ahead of the message."""

    def format(self, record: logging.LogRecord) -> str:
        fields: list[tuple[str, Any]] = [
            ("timestamp", self.formatTime(record, self.datefmt)),
            ("level", record.levelname),
            ("logger", record.name),
        ]

        run_id = getattr(record, "run_id", None)
        if run_id:
            fields.append(("run_id", run_id))

        fields.append(("message", record.getMessage()))

        context = getattr(record, "context", None) or {}
        fields.extend(sorted(context.items()))

        line = " ".join(f"{key}={_format_value(value)}" for key, value in fields)
        if record.exc_info:
            line = f"{line}\n{self.formatException(record.exc_info)}"
        return line


def resolve_log_level() -> int:
    """
    Level for the package logger.

    LOG_LEVEL wins when set to a known level name. Otherwise dev runs log at
    DEBUG and everything else at INFO. Settings that fail validation (missing
    credentials at import time) mean INFO.
    """
    from groundwrite.core.config import get_settings

    try:
        settings = get_settings()
    except ValidationError:
        return logging.INFO

    if settings.LOG_LEVEL:
        return logging.getLevelNamesMapping().get(settings.LOG_LEVEL.upper(), logging.INFO)
    return logging.DEBUG if settings.GROUNDWRITE_ENV == "dev" else logging.INFO


def configure_logging(force: bool = False) -> logging.Logger:
    """
    Attach the stdout handler to the package logger once.

    Args:
        force: Re-resolve the level and replace the existing handler

    Returns:
        The package logger
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    existing = [h for h in root.handlers if isinstance(h.formatter, RunContextFormatter)]

    if existing and not force:
        return root

    for handler in existing:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(RunContextFormatter())
    root.addHandler(handler)
    root.setLevel(resolve_log_level())
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger under the package namespace.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Logger whose records reach the package handler
    """
    configure_logging()
    if name != ROOT_LOGGER_NAME and not name.startswith(f"{ROOT_LOGGER_NAME}."):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def log_with_context(logger: logging.Logger, level: int, msg: str, **kwargs: Any) -> None:
    """
    Log with additional context fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **kwargs: Context fields; ``run_id`` is rendered ahead of the message
    """
    run_id = kwargs.pop("run_id", None)
    logger.log(level, msg, extra={"run_id": run_id, "context": kwargs})
