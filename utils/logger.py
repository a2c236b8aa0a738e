"""
utils/logger.py — Project-wide logging configuration
=====================================================
Provides a single `get_logger(name)` factory so every pipeline stage gets
a consistently-formatted logger with colour-coded console output.

The default level comes from `config.LOG_LEVEL` (which honours the
`PPG_LOG_LEVEL` environment variable); per-cycle diagnostics are logged at
DEBUG so a running pipeline stays quiet at the default INFO level.
"""

import logging
import sys

from config import LOG_LEVEL

# Colour codes (ANSI-256, works on most terminals)
_COLOURS = {
    logging.DEBUG:    "\033[36m",   # cyan
    logging.INFO:     "\033[32m",   # green
    logging.WARNING:  "\033[33m",   # yellow
    logging.ERROR:    "\033[31m",   # red
    logging.CRITICAL: "\033[35m",   # magenta
}
_RESET = "\033[0m"


class _ColourFormatter(logging.Formatter):
    """Inject ANSI colour around the log-level tag (TTY streams only)."""

    def __init__(self, *args, use_colour: bool = True, **kwargs):
        super().__init__(*args, **kwargs)
        self._use_colour = use_colour

    def format(self, record: logging.LogRecord) -> str:
        # Work on a copy so other handlers see the untouched level name
        record = logging.makeLogRecord(record.__dict__)
        if self._use_colour:
            colour = _COLOURS.get(record.levelno, _RESET)
            record.levelname = f"{colour}{record.levelname:<8}{_RESET}"
        else:
            record.levelname = f"{record.levelname:<8}"
        return super().format(record)


_BASE_FMT = "%(asctime)s  %(levelname)s  %(name)-22s  %(message)s"
_DATE_FMT = "%H:%M:%S"

# Module-level registry to avoid adding duplicate handlers
_loggers: dict[str, logging.Logger] = {}


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = LOG_LEVEL
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        # getLevelName returns "Level X" for unknown names
        return resolved if isinstance(resolved, int) else logging.INFO
    return level


def get_logger(name: str, level: int | str | None = None) -> logging.Logger:
    """
    Return (or create) a named logger.

    Parameters
    ----------
    name  : str         Component name shown in log lines, e.g. "ppg.peaks".
    level : int | str   Minimum severity; defaults to config.LOG_LEVEL.
    """
    if name in _loggers:
        return _loggers[name]

    resolved = _resolve_level(level)
    logger = logging.getLogger(name)
    logger.setLevel(resolved)
    logger.propagate = False          # Avoid duplicate messages from root

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(resolved)
    handler.setFormatter(
        _ColourFormatter(
            fmt=_BASE_FMT,
            datefmt=_DATE_FMT,
            use_colour=sys.stdout.isatty(),
        )
    )
    logger.addHandler(handler)

    _loggers[name] = logger
    return logger
