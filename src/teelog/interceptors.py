"""
Interceptors for capturing standard library and third-party logs.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, Optional, Sequence

from .core import CALLER_KEY
from .facade import Logger
from .formatters import short_caller
from .levels import Severity, parse_level_default

# The export pipeline reports its own failures through stdlib logging; feeding
# those back into it would loop.
DEFAULT_IGNORED_PREFIXES = ("opentelemetry", "grpc")


def severity_for(levelno: int) -> Severity:
    """Map a stdlib level number onto the nearest Severity at or below it."""
    if levelno >= logging.CRITICAL:
        return Severity.FATAL
    if levelno >= logging.ERROR:
        return Severity.ERROR
    if levelno >= logging.WARNING:
        return Severity.WARN
    if levelno >= logging.INFO:
        return Severity.INFO
    return Severity.DEBUG


class FacadeHandler(logging.Handler):
    """
    Redirect standard library logging records into a teelog Logger.

    The stdlib logger name becomes the record's logger name and the original
    call site is preserved. CRITICAL records are logged at FATAL without
    terminating the process.
    """

    def __init__(
        self,
        logger: Logger,
        level: int = logging.NOTSET,
        ignored_prefixes: Sequence[str] = DEFAULT_IGNORED_PREFIXES,
    ) -> None:
        super().__init__(level)
        self._logger = logger
        self._ignored = tuple(ignored_prefixes)
        self._named: Dict[str, Logger] = {}

    def _logger_for(self, name: str) -> Logger:
        logger = self._named.get(name)
        if logger is None:
            logger = self._named.setdefault(name, self._logger.named(name))
        return logger

    def emit(self, record: logging.LogRecord) -> None:
        try:
            if self._ignored and record.name.startswith(self._ignored):
                return
            kw = {
                CALLER_KEY: short_caller(record.pathname, record.lineno),
            }
            if record.exc_info:
                kw["exc_info"] = record.exc_info
            self._logger_for(record.name or "root").log(severity_for(record.levelno), record.getMessage(), **kw)
        except Exception:
            self.handleError(record)


def intercept_stdlib(
    logger: Logger,
    names: Iterable[str] = (),
    level: str = "debug",
    root: Optional[logging.Logger] = None,
) -> FacadeHandler:
    """
    Route stdlib logging through ``logger``.

    The root logger's handlers are replaced by a FacadeHandler; every logger in
    ``names`` loses its own handlers and propagates to the root instead.
    """
    handler = FacadeHandler(logger)
    root = root or logging.getLogger()
    root.handlers = [handler]
    root.setLevel(int(parse_level_default(level)))

    for name in names:
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True

    return handler


__all__ = ["FacadeHandler", "intercept_stdlib", "severity_for"]
