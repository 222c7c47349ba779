"""
Structured logging facade for teelog.

Provides structured logging with two sinks:
- stdout: console text or JSON lines
- otlp: OpenTelemetry collector via a batching OTLP/gRPC exporter

Every record is enriched with trace/user ids from the request context.

Library: structlog + orjson, OpenTelemetry SDK for export.
"""

from .config import LoggerSettings
from .context import (
    TRACE_ID_KEY,
    USER_ID_KEY,
    extract_fields,
    get_trace_id,
    get_user_id,
    request_context,
    set_trace_id,
    set_user_id,
)
from .exceptions import (
    ConfigurationError,
    ExportError,
    FlushError,
    InvalidLevelError,
    NoSinksConfiguredError,
    UnknownOptionError,
    ShutdownError,
    TeelogError,
)
from .facade import Logger, configure_logging, get_logger, shutdown_logging
from .interceptors import FacadeHandler, intercept_stdlib
from .levels import Severity, parse_level, parse_level_default
from .records import Field, Record

__all__ = [
    "ConfigurationError",
    "ExportError",
    "FacadeHandler",
    "Field",
    "FlushError",
    "InvalidLevelError",
    "Logger",
    "LoggerSettings",
    "NoSinksConfiguredError",
    "Record",
    "Severity",
    "ShutdownError",
    "TRACE_ID_KEY",
    "TeelogError",
    "UnknownOptionError",
    "USER_ID_KEY",
    "configure_logging",
    "extract_fields",
    "get_logger",
    "get_trace_id",
    "get_user_id",
    "intercept_stdlib",
    "parse_level",
    "parse_level_default",
    "request_context",
    "set_trace_id",
    "set_user_id",
    "shutdown_logging",
]
