"""
utils/logger.py — Project-wide logging configuration
=====================================================
Every module asks `get_logger("<package>.<module>")` for its logger; all of
them share one colour-coded console format and one level.

Level
-----
The starting level comes from the ``PPG_LOG_LEVEL`` environment variable
(``DEBUG``, ``INFO`` …, default INFO).  Entry points change it at runtime
with `set_level()` — `main.py --log-level`, `demo_cli.py --verbose` — which
also retunes the loggers created before the call.  The per-sample hot path
only logs at DEBUG.
"""

import logging
import os
import sys

# ANSI colour per severity tag
_COLOURS = {
    logging.DEBUG:    "\033[36m",   # cyan
    logging.INFO:     "\033[32m",   # green
    logging.WARNING:  "\033[33m",   # yellow
    logging.ERROR:    "\033[31m",   # red
    logging.CRITICAL: "\033[35m",   # magenta
}
_RESET = "\033[0m"

_FMT = "%(asctime)s  %(levelname)s  %(name)-20s  %(message)s"
_DATE_FMT = "%H:%M:%S"
_ENV_VAR = "PPG_LOG_LEVEL"


class _ColourFormatter(logging.Formatter):
    """Colour the level tag of a copy of the record (other handlers see it plain)."""

    def format(self, record: logging.LogRecord) -> str:
        tagged = logging.makeLogRecord(record.__dict__)
        colour = _COLOURS.get(record.levelno, _RESET)
        tagged.levelname = f"{colour}{record.levelname:<8}{_RESET}"
        return super().format(tagged)


# Loggers handed out so far; set_level() walks this
_loggers: dict[str, logging.Logger] = {}
_level: int | None = None


def _parse_level(level: int | str) -> int:
    if isinstance(level, int):
        return level
    parsed = logging.getLevelName(level.upper())
    if not isinstance(parsed, int):
        raise ValueError(f"Unknown log level '{level}'.")
    return parsed


def current_level() -> int:
    """Level applied to new loggers (environment default until `set_level()`)."""
    if _level is not None:
        return _level
    try:
        return _parse_level(os.environ.get(_ENV_VAR, "INFO"))
    except ValueError:
        return logging.INFO


def set_level(level: int | str) -> None:
    """
    Change the level of every project logger, existing and future.

    Parameters
    ----------
    level : int | str   A `logging` constant or its name ("debug", "INFO" …).
    """
    global _level
    _level = _parse_level(level)
    for logger in _loggers.values():
        logger.setLevel(_level)
        for handler in logger.handlers:
            handler.setLevel(_level)


def get_logger(name: str) -> logging.Logger:
    """
    Return (or create) a named logger.

    Parameters
    ----------
    name : str   Component name shown in log lines, e.g. "ppg.peaks".
    """
    if name in _loggers:
        return _loggers[name]

    level = current_level()
    logger = logging.getLogger(name)
    logger.setLevel(level)
    logger.propagate = False          # Avoid duplicate messages from root

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_ColourFormatter(fmt=_FMT, datefmt=_DATE_FMT))
    logger.addHandler(handler)

    _loggers[name] = logger
    return logger
