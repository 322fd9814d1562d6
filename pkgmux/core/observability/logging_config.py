"""
Logging configuration: one-time setup for the pkgmux CLI.

Modules log through ``logging.getLogger(__name__)`` and never configure
handlers themselves. ``main.py`` calls :func:`setup_logging` once with the
level chosen by :func:`resolve_level`:

    --debug / --verbose / --quiet  >  $PKGMUX_LOG_LEVEL  >  WARNING

A second, usually more detailed, sink can be written to the file named by
$PKGMUX_LOG_FILE at $PKGMUX_LOG_FILE_LEVEL.
"""

from __future__ import annotations

import logging
import sys

LEVEL_ENV_VAR = "PKGMUX_LOG_LEVEL"
FILE_ENV_VAR = "PKGMUX_LOG_FILE"
FILE_LEVEL_ENV_VAR = "PKGMUX_LOG_FILE_LEVEL"

# (threshold, format, datefmt): first row whose threshold >= level wins
_CONSOLE_FORMATS = (
    (logging.DEBUG, "%(asctime)s %(levelname)-5s %(name)s:%(lineno)d: %(message)s", "%H:%M:%S"),
    (logging.INFO, "%(asctime)s [%(name)s] %(message)s", "%H:%M:%S"),
    (logging.CRITICAL, "%(message)s", None),
)

_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(process)d] %(name)s:%(lineno)d: %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"

# aiohttp and asyncio chatter about every connection and slow callback
_NOISY_LOGGERS = ("aiohttp", "asyncio", "urllib3", "charset_normalizer")


def resolve_level(debug: bool, verbose: bool, quiet: bool, env_level: str | None) -> str:
    """Pick the console level from CLI flags, falling back to the env var."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return env_level or "WARNING"


def setup_logging(
    level: str = "WARNING",
    log_file: str | None = None,
    log_file_level: str | None = None,
    quiet_third_party: bool = True,
) -> None:
    """Replace the root logger's handlers with pkgmux's console (and file) sinks.

    Args:
        level: Console level name. Unknown names mean WARNING.
        log_file: Optional path of an extra log file.
        log_file_level: Level for the file; defaults to ``level``.
        quiet_third_party: Hold library loggers at WARNING unless the
            console is at DEBUG.
    """
    console_level = _to_level(level)
    handlers: list[logging.Handler] = [_console_handler(console_level)]

    if log_file:
        file_level = _to_level(log_file_level) if log_file_level else console_level
        handlers.append(_file_handler(log_file, file_level))

    root = logging.getLogger()
    root.handlers.clear()
    for handler in handlers:
        root.addHandler(handler)
    # root must pass everything the most verbose sink wants
    root.setLevel(min(h.level for h in handlers))

    if quiet_third_party and console_level > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    logging.raiseExceptions = False


def _console_handler(level: int) -> logging.Handler:
    fmt, datefmt = next((f, d) for threshold, f, d in _CONSOLE_FORMATS if level <= threshold)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
    return handler


def _file_handler(path: str, level: int) -> logging.Handler:
    handler = logging.FileHandler(path, encoding="utf-8")
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
    return handler


def _to_level(name: str | None) -> int:
    value = logging.getLevelName(name.upper()) if name else logging.WARNING
    return value if isinstance(value, int) else logging.WARNING
