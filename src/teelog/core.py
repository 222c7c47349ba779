"""
Dual-sink core: structlog processor chain and sink fan-out.
"""

from __future__ import annotations

import sys
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, TextIO, Tuple

import structlog
from opentelemetry.sdk._logs import LoggerProvider
from structlog.processors import CallsiteParameter
from structlog.typing import EventDict, WrappedLogger

from .config import LoggerSettings
from .exceptions import FlushError, NoSinksConfiguredError
from .formatters import short_caller
from .levels import LevelHolder, Severity
from .otlp import create_otlp_sink
from .records import Field, Record
from .sinks import BaseSink, ConsoleSink

# Frames from these modules are skipped when looking for the call site.
IGNORED_FRAME_MODULES = ["teelog"]

# Keys consumed by the pipeline itself; everything else becomes a field.
FIELDS_KEY = "_fields"
CALLER_KEY = "_caller"
_RESERVED_KEYS = {
    "event",
    "level",
    "timestamp",
    "logger",
    "pathname",
    "lineno",
    "stack",
    "exception",
    FIELDS_KEY,
    CALLER_KEY,
}

_METHOD_TO_SEVERITY = {
    "debug": Severity.DEBUG,
    "info": Severity.INFO,
    "warn": Severity.WARN,
    "warning": Severity.WARN,
    "error": Severity.ERROR,
    "exception": Severity.ERROR,
    "critical": Severity.FATAL,
    "fatal": Severity.FATAL,
}


# =============================================================================
# Structlog Processors
# =============================================================================


def add_severity(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Translate the structlog method name into a Severity."""
    event_dict["level"] = _METHOD_TO_SEVERITY.get(method_name, Severity.INFO)
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Stamp the event with an aware UTC datetime."""
    event_dict["timestamp"] = datetime.now(timezone.utc)
    return event_dict


def build_processors(core: "DualSinkCore", logger_name: Optional[str] = None) -> List[Any]:
    """Full processor chain for one logger handle, ending in ``core``."""

    def add_logger_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        if logger_name:
            event_dict["logger"] = logger_name
        return event_dict

    return [
        add_severity,
        add_timestamp,
        add_logger_name,
        structlog.processors.CallsiteParameterAdder(
            parameters={CallsiteParameter.PATHNAME, CallsiteParameter.LINENO},
            additional_ignores=IGNORED_FRAME_MODULES,
        ),
        structlog.processors.StackInfoRenderer(additional_ignores=IGNORED_FRAME_MODULES),
        structlog.processors.format_exc_info,
        core,
    ]


# =============================================================================
# Core
# =============================================================================


def _stack_from(event_dict: EventDict) -> Optional[str]:
    parts = [event_dict.get("stack"), event_dict.get("exception")]
    text = "\n".join(p for p in parts if p)
    return text or None


def record_from_event(event_dict: EventDict) -> Record:
    """Turn a fully processed event dict into an immutable Record."""
    fields: List[Field] = [Field(*f) for f in event_dict.get(FIELDS_KEY, ())]
    fields.extend(Field(k, v) for k, v in event_dict.items() if k not in _RESERVED_KEYS)

    caller = event_dict.get(CALLER_KEY) or short_caller(event_dict.get("pathname"), event_dict.get("lineno"))
    return Record(
        message=str(event_dict.get("event", "")),
        level=event_dict.get("level", Severity.INFO),
        timestamp=event_dict.get("timestamp") or datetime.now(timezone.utc),
        logger_name=event_dict.get("logger"),
        caller=caller,
        stack=_stack_from(event_dict),
        fields=tuple(fields),
    )


class DualSinkCore:
    """Ordered sink list with fan-out, flush aggregation and field derivation.

    Used as the terminal structlog processor: it writes the record to every
    enabled sink and returns an empty string for the silent wrapped logger.
    """

    def __init__(self, sinks: Sequence[BaseSink]) -> None:
        self._sinks: Tuple[BaseSink, ...] = tuple(sinks)

    @property
    def sinks(self) -> Tuple[BaseSink, ...]:
        return self._sinks

    def enabled(self, level: Severity) -> bool:
        return any(sink.enabled(level) for sink in self._sinks)

    def write(self, record: Record) -> None:
        """Write to every sink enabled for ``record.level``, in order."""
        for sink in self._sinks:
            if not sink.enabled(record.level):
                continue
            try:
                sink.write(record)
            except Exception as e:
                sys.stderr.write(f"failed to write log to {type(sink).__name__}: {e}, message: {record.message}\n")

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> str:
        self.write(record_from_event(event_dict))
        return ""

    def sync(self) -> None:
        """Flush every sink; all failures are collected into one FlushError."""
        errors: List[BaseException] = []
        for sink in self._sinks:
            try:
                sink.flush()
            except FlushError as e:
                errors.extend(e.errors)
            except Exception as e:
                errors.append(e)
        if errors:
            raise FlushError(errors)

    def with_fields(self, fields: Iterable[Field]) -> "DualSinkCore":
        fields = tuple(fields)
        if not fields:
            return self
        return DualSinkCore([sink.with_fields(fields) for sink in self._sinks])

    def close(self) -> None:
        for sink in self._sinks:
            sink.close()


def build_core(
    settings: LoggerSettings,
    level: LevelHolder,
    *,
    stream: Optional[TextIO] = None,
    exporter: Any = None,
) -> Tuple[DualSinkCore, Optional[LoggerProvider]]:
    """
    Build the sinks described by ``settings``.

    Console first, OTLP second. A failing OTLP setup is reported on stderr and
    left out; only an empty sink list is an error.
    """
    sinks: List[BaseSink] = []
    provider: Optional[LoggerProvider] = None

    if settings.enable_stdout:
        sinks.append(ConsoleSink(level, fmt="json" if settings.as_json else "console", stream=stream))

    if settings.enable_otlp:
        try:
            otlp_sink, provider = create_otlp_sink(settings, level, exporter=exporter)
        except Exception as e:
            sys.stderr.write(f"failed to create OTLP sink: {e}\n")
        else:
            sinks.append(otlp_sink)

    if not sinks:
        raise NoSinksConfiguredError()

    return DualSinkCore(sinks), provider


# Silent terminal logger: the core has already written everything.
class NopFile:
    def write(self, s: str) -> None:
        pass

    def flush(self) -> None:
        pass


_NOP_FILE = NopFile()


def wrap(core: DualSinkCore, logger_name: Optional[str] = None) -> Any:
    """A structlog bound logger whose pipeline ends in ``core``."""
    return structlog.wrap_logger(
        structlog.PrintLogger(file=_NOP_FILE),
        processors=build_processors(core, logger_name),
        wrapper_class=structlog.make_filtering_bound_logger(0),
        context_class=dict,
    )


__all__ = ["DualSinkCore", "build_core", "build_processors", "record_from_event", "wrap"]
