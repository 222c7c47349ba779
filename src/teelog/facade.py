"""
Public logging facade.

Usage:
    log = Logger.create(level="debug", enable_otlp=True, service_name="billing")
    with request_context(trace_id="abc"):
        log.info("charged", amount=42)
    log.close()

A root ``Logger`` owns the OTLP provider it created. Loggers derived from it via
``bind`` / ``bind_context`` / ``named`` share that provider through a
non-owning reference: closing them only flushes, and they never have to be
closed at all.
"""

from __future__ import annotations

import contextvars
import sys
import threading
from typing import Any, Callable, Dict, List, Optional, TextIO

from opentelemetry.sdk._logs import LoggerProvider

from .config import LoggerSettings
from .context import extract_fields
from .core import CALLER_KEY, FIELDS_KEY, DualSinkCore, build_core, wrap
from .exceptions import FlushError, ShutdownError
from .levels import LevelHolder, Severity
from .records import Field, to_fields
from .sinks import DiscardSink

ExitFunc = Callable[[int], Any]

_METHODS = {
    Severity.DEBUG: "debug",
    Severity.INFO: "info",
    Severity.WARN: "warning",
    Severity.ERROR: "error",
    Severity.FATAL: "critical",
}


def _no_exit(code: int) -> None:
    pass


class ProviderHandle:
    """Lifecycle of one OTLP ``LoggerProvider``, shared by a root and its derivatives."""

    def __init__(self, provider: Optional[LoggerProvider], timeout: float) -> None:
        self.provider = provider
        self.timeout = timeout
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def mark_closed(self) -> bool:
        """Flip to closed; False if it already was."""
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            return True

    def shutdown(self) -> None:
        """Shut the provider down, waiting at most ``timeout`` seconds."""
        if self.provider is None:
            return
        errors: List[BaseException] = []

        def _run() -> None:
            try:
                self.provider.shutdown()
            except Exception as e:
                errors.append(e)

        worker = threading.Thread(target=_run, name="teelog-otlp-shutdown", daemon=True)
        worker.start()
        worker.join(self.timeout)
        if worker.is_alive():
            raise TimeoutError(f"failed to shutdown OTLP: timed out after {self.timeout:.3f}s")
        if errors:
            raise errors[0]


class Logger:
    """Structured logger fanning out to the console and OTLP sinks.

    Per-level methods accept ``Field`` objects positionally and fields as
    keywords; ``exc_info`` and ``stack_info`` are rendered into the record's
    stack trace and ``ctx`` selects the ``contextvars.Context`` to read trace
    and user ids from (defaults to the current one).
    """

    def __init__(
        self,
        core: DualSinkCore,
        *,
        settings: LoggerSettings,
        level: LevelHolder,
        lifecycle: Optional[ProviderHandle] = None,
        owns_provider: bool = False,
        name: Optional[str] = None,
        exit_func: ExitFunc = sys.exit,
    ) -> None:
        self._core = core
        self._settings = settings
        self._level = level
        self._lifecycle = lifecycle or ProviderHandle(None, settings.shutdown_timeout)
        self._owns_provider = owns_provider
        self._name = name
        self._exit_func = exit_func
        self._log = wrap(core, name)

    # -------------------------------------------------------------------------
    # Construction
    # -------------------------------------------------------------------------

    @classmethod
    def create(
        cls,
        settings: Optional[LoggerSettings] = None,
        *,
        stream: Optional[TextIO] = None,
        exporter: Any = None,
        exit_func: ExitFunc = sys.exit,
        **overrides: Any,
    ) -> "Logger":
        """
        Build a root logger.

        Args:
            settings: Base settings; defaults to ``LoggerSettings()`` (env aware)
            stream: Console stream, defaults to ``sys.stdout``
            exporter: Pre-built OTLP ``LogExporter`` (tests, custom transports)
            exit_func: Called with ``1`` after a fatal record
            **overrides: Individual settings, e.g. ``level="debug"``

        Raises:
            UnknownOptionError: an override does not name a setting
            InvalidLevelError: ``level`` is not a known level name
            NoSinksConfiguredError: no sink is enabled or could be built
        """
        if settings is None:
            LoggerSettings.check_option_names(overrides)
            settings = LoggerSettings(**overrides)
        else:
            settings = settings.merged(**overrides)

        level = LevelHolder(Severity.parse(settings.level))
        core, provider = build_core(settings, level, stream=stream, exporter=exporter)
        return cls(
            core,
            settings=settings,
            level=level,
            lifecycle=ProviderHandle(provider, settings.shutdown_timeout),
            owns_provider=provider is not None,
            name=settings.logger_name,
            exit_func=exit_func,
        )

    @classmethod
    def nop(cls) -> "Logger":
        """Logger that discards everything; sync/close are no-ops, fatal never exits."""
        return cls(
            DualSinkCore([]),
            settings=LoggerSettings.model_construct(),
            level=LevelHolder(Severity.FATAL),
            exit_func=_no_exit,
        )

    @classmethod
    def benchmark(cls) -> "Logger":
        """Runs the full pipeline at DEBUG into a sink that drops every record."""
        level = LevelHolder(Severity.DEBUG)
        return cls(
            DualSinkCore([DiscardSink(level)]),
            settings=LoggerSettings.model_construct(),
            level=level,
            exit_func=_no_exit,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def settings(self) -> LoggerSettings:
        return self._settings

    @property
    def core(self) -> DualSinkCore:
        return self._core

    @property
    def name(self) -> Optional[str]:
        return self._name

    @property
    def level(self) -> Severity:
        return self._level.level

    @property
    def owns_provider(self) -> bool:
        return self._owns_provider

    @property
    def provider(self) -> Optional[LoggerProvider]:
        return self._lifecycle.provider

    def enabled(self, level: Severity) -> bool:
        return self._core.enabled(level)

    # -------------------------------------------------------------------------
    # Emission
    # -------------------------------------------------------------------------

    def _emit(
        self,
        level: Severity,
        message: str,
        fields: tuple,
        ctx: Optional[contextvars.Context],
        kw: Dict[str, Any],
    ) -> None:
        if not self._core.enabled(level):
            return

        event_kw: Dict[str, Any] = {}
        for key in ("exc_info", "stack_info", CALLER_KEY):
            if key in kw:
                event_kw[key] = kw.pop(key)

        merged: List[Field] = extract_fields(ctx, self._settings.field_extractors)
        merged.extend(to_fields(*fields, **kw))
        event_kw[FIELDS_KEY] = merged

        getattr(self._log, _METHODS[level])(message, **event_kw)

    def debug(self, message: str, /, *fields: Field, ctx: Optional[contextvars.Context] = None, **kw: Any) -> None:
        self._emit(Severity.DEBUG, message, fields, ctx, kw)

    def info(self, message: str, /, *fields: Field, ctx: Optional[contextvars.Context] = None, **kw: Any) -> None:
        self._emit(Severity.INFO, message, fields, ctx, kw)

    def warn(self, message: str, /, *fields: Field, ctx: Optional[contextvars.Context] = None, **kw: Any) -> None:
        self._emit(Severity.WARN, message, fields, ctx, kw)

    warning = warn

    def error(self, message: str, /, *fields: Field, ctx: Optional[contextvars.Context] = None, **kw: Any) -> None:
        self._emit(Severity.ERROR, message, fields, ctx, kw)

    def exception(self, message: str, /, *fields: Field, ctx: Optional[contextvars.Context] = None, **kw: Any) -> None:
        """ERROR record carrying the exception currently being handled."""
        kw.setdefault("exc_info", True)
        self._emit(Severity.ERROR, message, fields, ctx, kw)

    def fatal(self, message: str, /, *fields: Field, ctx: Optional[contextvars.Context] = None, **kw: Any) -> None:
        """Log at FATAL, flush, then terminate through ``exit_func(1)``."""
        self._emit(Severity.FATAL, message, fields, ctx, kw)
        try:
            self.sync()
        except FlushError as e:
            sys.stderr.write(f"failed to flush before exit: {e}\n")
        self._exit_func(1)

    def log(
        self,
        level: Severity,
        message: str,
        /,
        *fields: Field,
        ctx: Optional[contextvars.Context] = None,
        **kw: Any,
    ) -> None:
        """Log at an explicit severity. FATAL here does not terminate the process."""
        self._emit(Severity(level), message, fields, ctx, kw)

    # -------------------------------------------------------------------------
    # Derivation
    # -------------------------------------------------------------------------

    def _derive(self, core: DualSinkCore, name: Optional[str]) -> "Logger":
        return Logger(
            core,
            settings=self._settings,
            level=self._level,
            lifecycle=self._lifecycle,
            owns_provider=False,
            name=name,
            exit_func=self._exit_func,
        )

    def bind(self, *fields: Field, **kw: Any) -> "Logger":
        """Derived logger attaching ``fields`` to every record it writes."""
        return self._derive(self._core.with_fields(to_fields(*fields, **kw)), self._name)

    def bind_context(self, ctx: Optional[contextvars.Context] = None) -> "Logger":
        """Derived logger with the context fields of ``ctx`` frozen in."""
        return self.bind(*extract_fields(ctx, self._settings.field_extractors))

    def named(self, name: str) -> "Logger":
        """Derived logger whose name is ``name`` appended to this one's."""
        full = f"{self._name}.{name}" if self._name else name
        return self._derive(self._core, full)

    def set_level(self, level: str) -> None:
        """Change the minimum severity for this logger family at runtime."""
        self._level.set(Severity.parse(level))

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def sync(self) -> None:
        """Flush all sinks (console: no-op, OTLP: bounded force-flush)."""
        if self._lifecycle.closed:
            return
        self._core.sync()

    def close(self) -> None:
        """
        Flush, then shut the OTLP provider down if this logger owns it.

        Both steps always run. Failures are reported together as ShutdownError.
        """
        errors: List[BaseException] = []
        try:
            self.sync()
        except FlushError as e:
            errors.append(e)

        if self._owns_provider and self._lifecycle.mark_closed():
            try:
                self._lifecycle.shutdown()
            except Exception as e:
                errors.append(e)

        if errors:
            raise ShutdownError(errors)

    def __enter__(self) -> "Logger":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"Logger(name={self._name!r}, level={self.level.name}, sinks={len(self._core.sinks)})"


# =============================================================================
# Process-wide default logger
# =============================================================================

_default_logger: Optional[Logger] = None
_default_lock = threading.Lock()


def configure_logging(settings: Optional[LoggerSettings] = None, **overrides: Any) -> Logger:
    """
    Build the process-wide logger returned by :func:`get_logger`.

    A previously configured default logger is closed first.
    """
    global _default_logger
    logger = Logger.create(settings, **overrides)
    with _default_lock:
        previous, _default_logger = _default_logger, logger
    if previous is not None:
        try:
            previous.close()
        except ShutdownError as e:
            sys.stderr.write(f"failed to close previous logger: {e}\n")
    return logger


def get_logger(name: Optional[str] = None) -> Logger:
    """The default logger (configured from the environment on first use), optionally named."""
    global _default_logger
    with _default_lock:
        if _default_logger is None:
            _default_logger = Logger.create()
        logger = _default_logger
    return logger.named(name) if name else logger


def shutdown_logging() -> None:
    """Close and forget the default logger."""
    global _default_logger
    with _default_lock:
        logger, _default_logger = _default_logger, None
    if logger is not None:
        logger.close()


__all__ = ["Logger", "ProviderHandle", "configure_logging", "get_logger", "shutdown_logging"]
