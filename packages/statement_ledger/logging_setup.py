"""Logging setup for the ``statement_ledger`` package.

Entry points (the CLI, the seeding script) call :func:`configure_logging`
once. Library modules only ask for a child logger through :func:`get_logger`
and never attach handlers. Until configuration runs the package logger holds
a ``NullHandler``, so embedding applications see no "No handler" warnings.

Messages follow ``"<operation>:<phase> key=value ..."`` so a single import or
categorization run can be followed with ``grep``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "statement_ledger"
LEVEL_ENV = "STATEMENT_LEDGER_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

# Third-party loggers that flood INFO while reading PDFs or calling the API.
_CHATTY_LOGGERS: tuple[str, ...] = ("pdfminer", "httpx", "openai")

_CONFIGURED = False


def resolve_level(level: int | str | None) -> int:
    """Numeric level for ``level``.

    Accepts ints, numeric strings and standard names in any case. ``None``
    or a blank string defers to ``STATEMENT_LEDGER_LOG_LEVEL`` and then to
    ``INFO``. Unknown names raise ``ValueError``.
    """

    if level is None or (isinstance(level, str) and not level.strip()):
        level = os.getenv(LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    numeric = logging.getLevelNamesMapping().get(name)
    if numeric is None:
        raise ValueError(f"unknown log level {level!r}")
    return numeric


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Attach one ``StreamHandler`` to the package logger; later calls are no-ops.

    Parameters
    ----------
    level:
        See :func:`resolve_level`.
    fmt:
        Format string, :data:`DEFAULT_FORMAT` when omitted.
    stream:
        Destination stream.
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    resolved = resolve_level(level)
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.handlers[:] = [h for h in logger.handlers if not isinstance(h, logging.NullHandler)]

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False

    if resolved > logging.DEBUG:
        for name in _CHATTY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "DEFAULT_FORMAT",
    "LEVEL_ENV",
    "PACKAGE_LOGGER",
    "configure_logging",
    "get_logger",
    "resolve_level",
]
