"""Logging setup for processes hosting the directory client.

- Console handler only; the host decides where stdout goes.
- Level via ``log_level`` (default INFO), invalid values fall back to INFO.
- ``ldap3``'s own logger is kept at WARNING or above.
"""
from __future__ import annotations

import logging

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Handler we installed, replaced on the next setup_logging call.
_console_handler: logging.Handler | None = None


def setup_logging(level: str = "INFO") -> logging.Handler:
    """Configure the root logger and return the installed handler."""
    global _console_handler

    level_str = (level or "INFO").strip().upper()
    if level_str not in _LEVELS:
        level_str = "INFO"
    log_level = getattr(logging, level_str, logging.INFO)

    root = logging.getLogger()
    if _console_handler and _console_handler in root.handlers:
        root.removeHandler(_console_handler)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT))
    _console_handler = ch

    root.setLevel(log_level)
    root.addHandler(ch)

    logging.getLogger("ldap3").setLevel(max(log_level, logging.WARNING))

    logging.getLogger("dirauth").info("Logging configured: level=%s", level_str)
    return ch
