"""
Logging setup for certkeeper.

Records below ERROR go to a plain stderr stream handler; ERROR and above are
forwarded to the rich console so they render the same way as CLI errors.
"""

import logging
import os

from rich.markup import escape

from .console import console_manager

logger = logging.getLogger("certkeeper")

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_VALID_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}


class ConsoleManagerHandler(logging.Handler):
    """Forward ERROR and CRITICAL records to the console manager."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
            if record.levelno >= logging.ERROR:
                console_manager.print_error(escape(msg))
        except Exception:
            self.handleError(record)


class _BelowErrorFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno < logging.ERROR


def _resolve_level(level: str | None) -> int:
    name = (level or os.environ.get("CERTKEEPER_LOG_LEVEL") or "INFO").upper()
    if name not in _VALID_LEVELS:
        name = "INFO"
    return getattr(logging, name)


def init_logging(level: str | None = None) -> None:
    """Configure the package logger.

    Precedence: explicit ``level``, the ``CERTKEEPER_LOG_LEVEL`` environment
    variable, then INFO. Safe to call more than once.
    """
    logger.setLevel(_resolve_level(level))
    logger.propagate = False

    if not any(
        type(h) is logging.StreamHandler for h in logger.handlers
    ):
        stream_handler = logging.StreamHandler()
        stream_handler.setFormatter(logging.Formatter(_LOG_FORMAT, _DATE_FORMAT))
        stream_handler.addFilter(_BelowErrorFilter())
        logger.addHandler(stream_handler)

    if not any(isinstance(h, ConsoleManagerHandler) for h in logger.handlers):
        console_handler = ConsoleManagerHandler()
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(console_handler)
