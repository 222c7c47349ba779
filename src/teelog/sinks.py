"""
Log sink abstractions and the local sinks.
"""

from __future__ import annotations

import sys
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Dict, Iterable, Literal, Optional, TextIO, Tuple

import orjson

from .formatters import ConsoleFormatter, encode_duration, format_timestamp
from .levels import LevelHolder, Severity
from .records import Field, Record

LogFormat = Literal["console", "json"]

# Keys every console line owns; a field with one of these names is written
# under FIELD_KEY_PREFIX + name instead.
FIXED_KEYS = frozenset({"timestamp", "level", "logger", "caller", "message", "stacktrace"})
FIELD_KEY_PREFIX = "field."


def _json_default(obj: Any) -> Any:
    if isinstance(obj, timedelta):
        return encode_duration(obj)
    if isinstance(obj, (set, frozenset)):
        return list(obj)
    if isinstance(obj, BaseException):
        return f"{type(obj).__name__}: {obj}"
    return str(obj)


def orjson_dumps(v: Any, *, default: Any = _json_default) -> str:
    """Fast JSON serialization using orjson."""
    try:
        return orjson.dumps(v, default=default, option=orjson.OPT_UTC_Z | orjson.OPT_NAIVE_UTC).decode()
    except orjson.JSONEncodeError:
        # out-of-range ints, non-str dict keys and the like
        if isinstance(v, dict):
            return orjson.dumps({str(k): _stringify_unencodable(x) for k, x in v.items()}, default=default).decode()
        return orjson.dumps(str(v)).decode()


def _stringify_unencodable(value: Any) -> Any:
    try:
        orjson.dumps(value, default=_json_default)
        return value
    except orjson.JSONEncodeError:
        return str(value)


# =============================================================================
# Sink Abstraction (Strategy Pattern)
# =============================================================================


class BaseSink(ABC):
    """Abstract base class for log sinks.

    Sinks must be safe to call from many threads at once: ``write`` may not
    mutate shared state beyond what the underlying stream or pipeline already
    serialises.
    """

    def __init__(self, level: LevelHolder, fields: Iterable[Field] = ()) -> None:
        self._level = level
        self._fields: Tuple[Field, ...] = tuple(fields)

    @property
    def level(self) -> LevelHolder:
        return self._level

    @property
    def fields(self) -> Tuple[Field, ...]:
        return self._fields

    def enabled(self, level: Severity) -> bool:
        return self._level.enabled(level)

    @abstractmethod
    def write(self, record: Record) -> None:
        """Deliver a record to the sink."""
        ...

    @abstractmethod
    def flush(self) -> None:
        """Push out anything buffered by this sink."""
        ...

    @abstractmethod
    def with_fields(self, fields: Iterable[Field]) -> "BaseSink":
        """A sibling sink that prepends ``fields`` to every record it writes."""
        ...

    def close(self) -> None:
        """Release resources owned by the sink itself (none by default)."""
        pass


class ConsoleSink(BaseSink):
    """Standard output sink with configurable format.

    Args:
        level: Shared minimum severity
        fmt: "json" (one orjson object per line) or "console" (aligned text)
        stream: Output stream (default: sys.stdout). Never closed by the sink.
    """

    def __init__(
        self,
        level: LevelHolder,
        fmt: LogFormat = "json",
        stream: Optional[TextIO] = None,
        fields: Iterable[Field] = (),
    ) -> None:
        super().__init__(level, fields)
        self._fmt = fmt
        self._stream = stream if stream is not None else sys.stdout

    @property
    def format(self) -> LogFormat:
        return self._fmt

    def build_entry(self, record: Record) -> Dict[str, Any]:
        """Ordered console entry with the fixed key mapping."""
        entry: Dict[str, Any] = {
            "timestamp": format_timestamp(record.timestamp),
            "level": record.level.name,
        }
        if record.logger_name:
            entry["logger"] = record.logger_name
        if record.caller:
            entry["caller"] = record.caller
        entry["message"] = record.message
        if record.stack:
            entry["stacktrace"] = record.stack
        for key, value in self._fields + record.fields:
            key = str(key)
            if key in FIXED_KEYS:
                key = FIELD_KEY_PREFIX + key
            entry[key] = value
        return entry

    def render(self, record: Record) -> str:
        entry = self.build_entry(record)
        if self._fmt == "json":
            return orjson_dumps(entry)
        use_color = bool(getattr(self._stream, "isatty", lambda: False)())
        return ConsoleFormatter.format(entry, use_color=use_color)

    def write(self, record: Record) -> None:
        # one write call per record keeps concurrent lines from interleaving
        self._stream.write(self.render(record) + "\n")
        self._stream.flush()

    def flush(self) -> None:
        # every write is already flushed; the descriptor itself is never synced
        pass

    def with_fields(self, fields: Iterable[Field]) -> "ConsoleSink":
        return ConsoleSink(self._level, fmt=self._fmt, stream=self._stream, fields=self._fields + tuple(fields))


class DiscardSink(BaseSink):
    """Accepts every record and drops it. Used by the benchmark logger."""

    def __init__(self, level: Optional[LevelHolder] = None, fields: Iterable[Field] = ()) -> None:
        super().__init__(level or LevelHolder(Severity.DEBUG), fields)

    def write(self, record: Record) -> None:
        pass

    def flush(self) -> None:
        pass

    def with_fields(self, fields: Iterable[Field]) -> "DiscardSink":
        return DiscardSink(self._level, self._fields + tuple(fields))
