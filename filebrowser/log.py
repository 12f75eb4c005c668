from __future__ import annotations

import logging
from typing import Any

import structlog

from .config import normalize_log_level

_LEVELS = {
    'error': logging.ERROR,
    'warn': logging.WARNING,
    'info': logging.INFO,
    'debug': logging.DEBUG,
}


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt='iso'),
            structlog.stdlib.add_log_level,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(_LEVELS[normalize_log_level(level)]),
    )


class ActionLogger:
    """Best-effort audit trail for filesystem actions.

    Base fields are always emitted at info level; debug extras (client
    metadata, per-file detail) are merged in only when debug logging is on.
    """

    def __init__(self, debug: bool = False):
        self.debug = debug
        self._logger = structlog.get_logger('filebrowser.actions')

    def log(self, action: str, base: dict[str, Any], debug_extras: dict[str, Any] | None = None) -> None:
        fields = dict(base)
        if self.debug and debug_extras:
            fields.update(debug_extras)
        self._logger.info('action', action=action, **fields)
