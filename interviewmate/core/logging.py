"""Key=value log lines carrying conversation context."""

import logging
import sys
from typing import Any

# Context fields rendered right after the message when a record carries them
CONTEXT_FIELDS = ("conversation_id", "user_id")


def _render(value: Any) -> str:
    text = str(value)
    if not text or any(ch.isspace() for ch in text):
        return '"' + text.replace('"', '\\"') + '"'
    return text


class StructuredFormatter(logging.Formatter):
    """Render records as key=value pairs: fixed fields, context fields, then extras."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value:
                fields[name] = value
        fields.update(getattr(record, "extra_data", None) or {})

        line = " ".join(f"{k}={_render(v)}" for k, v in fields.items())
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _level_for_environment() -> int:
    try:
        from interviewmate.core.config import get_settings

        environment = get_settings().INTERVIEWMATE_ENV
    except Exception:
        # Settings can be incomplete while modules are still importing
        return logging.INFO
    return logging.DEBUG if environment == "dev" else logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    The handler is attached once per logger name; DEBUG in the dev
    environment, INFO elsewhere.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_environment())
    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **context: Any) -> None:
    """
    Log with conversation context and extra key=value fields.

    Args:
        logger: Logger instance
        level: Log level (logging.INFO, etc.)
        msg: Log message
        **context: conversation_id / user_id plus any extra fields
    """
    extra: dict[str, Any] = {name: context.pop(name) for name in CONTEXT_FIELDS if name in context}
    extra["extra_data"] = context
    logger.log(level, msg, extra=extra)
