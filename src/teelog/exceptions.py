"""
teelog unified exception hierarchy.

Errors are split by when they can happen:

- configuration errors surface synchronously while a logger is being built;
- export errors belong to the remote delivery path and only reach a caller
  through ``sync()`` / ``close()``, never through a logging call.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class TeelogError(Exception):
    """Root of every error raised by teelog."""

    def __init__(
        self,
        message: str,
        *,
        code: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


# ================================
# Configuration errors
# ================================


class ConfigurationError(TeelogError):
    """Invalid logger configuration. Fatal to construction only."""

    pass


class InvalidLevelError(ConfigurationError):
    """Raised (or returned) when a level string is not recognised."""

    def __init__(self, level: str) -> None:
        super().__init__(f"unknown level: {level}", code="INVALID_LEVEL", details={"level": level})
        self.level = level


class UnknownOptionError(ConfigurationError):
    """A keyword option does not name any logger setting."""

    def __init__(self, options: Sequence[str]) -> None:
        options = list(options)
        super().__init__(
            f"unknown logger option(s): {', '.join(options)}",
            code="UNKNOWN_OPTION",
            details={"options": options},
        )
        self.options = options


class NoSinksConfiguredError(ConfigurationError):
    """Every sink was disabled or failed to build."""

    def __init__(self) -> None:
        super().__init__("no sinks configured", code="NO_SINKS")


# ================================
# Export errors
# ================================


class ExportError(TeelogError):
    """Remote delivery failure."""

    pass


class EmitTimeoutError(ExportError):
    """A single remote emission did not finish within its deadline."""

    def __init__(self, timeout: float) -> None:
        super().__init__(
            f"emit timed out after {timeout:.3f}s",
            code="EMIT_TIMEOUT",
            details={"timeout": timeout},
        )
        self.timeout = timeout


class _AggregateError(ExportError):
    _CODE = ""
    _PREFIX = ""

    def __init__(self, errors: Sequence[BaseException]) -> None:
        self.errors = list(errors)
        summary = "; ".join(str(e) for e in self.errors) or "unknown error"
        super().__init__(f"{self._PREFIX}: {summary}", code=self._CODE, details={"count": len(self.errors)})


class FlushError(_AggregateError):
    """One or more sinks failed to flush."""

    _CODE = "FLUSH_FAILED"
    _PREFIX = "failed to flush sinks"


class ShutdownError(_AggregateError):
    """Closing the logger hit one or more failures.

    Both the flush step and the provider shutdown step always run; every
    failure is collected in :attr:`errors`.
    """

    _CODE = "SHUTDOWN_FAILED"
    _PREFIX = "close errors"


__all__ = [
    "TeelogError",
    "ConfigurationError",
    "InvalidLevelError",
    "UnknownOptionError",
    "NoSinksConfiguredError",
    "ExportError",
    "EmitTimeoutError",
    "FlushError",
    "ShutdownError",
]
