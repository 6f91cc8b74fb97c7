"""
Logging setup for the chat service.
"""

import json
import logging
import traceback
from datetime import datetime, timezone
from typing import Optional

from chatcache.config import get_settings


_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        extra_fields = {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}
        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data, ensure_ascii=False, default=str)


_configured = False


def setup_logging(level: Optional[str] = None, json_logs: Optional[bool] = None) -> logging.Logger:
    """
    Configure the root logger once with a console handler.

    Args:
        level: Log level name, defaults to ``LOG_LEVEL``
        json_logs: Emit JSON lines instead of plain text, defaults to ``LOG_JSON``

    Returns:
        logging.Logger: The root logger
    """
    global _configured
    settings = get_settings()
    level = (level or settings.log_level).upper()
    json_logs = settings.log_json if json_logs is None else json_logs

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level, logging.INFO))
    if _configured:
        return root_logger

    console_handler = logging.StreamHandler()
    if json_logs:
        console_handler.setFormatter(StructuredFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )
    root_logger.addHandler(console_handler)
    _configured = True
    return root_logger
