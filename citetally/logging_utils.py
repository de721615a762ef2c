"""Structured logging helper shared by the citation services."""

from __future__ import annotations

import logging
from typing import Any


def structured_log(
    logger: logging.Logger,
    level: str,
    event: str,
    /,
    **fields: Any,
) -> None:
    """Emit a structured log entry.

    The event name is passed as the log message. The JsonLogFormatter in
    logging_config.py reads it back through record.getMessage(), so it is
    not repeated in ``extra``.

    Usage:
        structured_log(logger, "info", "citations.record_updated", record_id=12, database_count=2)
    """
    log_method = getattr(logger, level.lower())
    log_method(event, extra=fields)
