"""Structured JSON logging for the command line"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict

from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "cashlens"


def setup_logging(level: str = "WARNING") -> None:
    """Configure structured JSON logging on stderr; stdout carries command output"""
    logger = logging.getLogger()
    logger.setLevel(level.upper())

    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_command(command: str, transactions: int, duration_ms: float) -> None:
    """Log a completed analysis command"""
    logging.getLogger("cashlens_core.cli").info(
        "Command completed",
        extra={
            "command": command,
            "transactions": transactions,
            "duration_ms": round(duration_ms, 2),
        },
    )
