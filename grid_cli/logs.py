"""
Console presentation of flow events.

Every flow step emits exactly one structlog event. What reaches the terminal
depends on the mode chosen at startup:

* quiet: ``info`` and above, rendered as the bare human message
* debug: everything, rendered with level, time and the key/value context
"""

from __future__ import annotations

import logging
import sys
from typing import Any, MutableMapping

import structlog


def _message_only(_logger: Any, _method: str, event_dict: MutableMapping[str, Any]) -> str:
    return str(event_dict.get("event", ""))


def setup_logging(debug: bool = False) -> None:
    """Configure structlog for the interactive terminal."""
    level = logging.DEBUG if debug else logging.INFO

    processors: list = [structlog.contextvars.merge_contextvars]
    if debug:
        processors += [
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer(),
        ]
    else:
        processors.append(_message_only)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stdout),
        cache_logger_on_first_use=False,
    )


def get_logger(name: str):
    return structlog.get_logger(name)
