"""
OpenTelemetry log export bridge.

Architecture:
┌─────────────┐     ┌──────────────┐     ┌───────────────────────┐     ┌───────────┐
│ DualSinkCore│────▶│ OTLPSink     │────▶│ BatchLogRecordProcessor│────▶│ OTLP/gRPC │
│             │     │ (emit ≤ T)   │     │ (background thread)    │     │ collector │
└─────────────┘     └──────┬───────┘     └───────────────────────┘     └───────────┘
                           │ timeout / error
                           ▼
                      stderr notice

Retries and batching belong to the OpenTelemetry SDK; this layer only maps the
record and bounds each call.
"""

from __future__ import annotations

import concurrent.futures
import sys
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from opentelemetry._logs import Logger as OTelLogger
from opentelemetry._logs import LogRecord, SeverityNumber
from opentelemetry.sdk._logs import LoggerProvider, LogRecordProcessor
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource

from .config import LoggerSettings
from .exceptions import EmitTimeoutError, FlushError
from .formatters import encode_duration
from .levels import LevelHolder, Severity
from .records import Field, Record
from .sinks import FIELD_KEY_PREFIX, BaseSink, orjson_dumps

DEFAULT_EMIT_TIMEOUT = 0.5
INSTRUMENTATION_SCOPE = "teelog"

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_FIXED_ATTRIBUTES = frozenset({"logger.name", "caller", "stacktrace"})

_SEVERITY_MAP: Dict[Severity, Tuple[SeverityNumber, str]] = {
    Severity.DEBUG: (SeverityNumber.DEBUG, "DEBUG"),
    Severity.INFO: (SeverityNumber.INFO, "INFO"),
    Severity.WARN: (SeverityNumber.WARN, "WARN"),
    Severity.ERROR: (SeverityNumber.ERROR, "ERROR"),
    Severity.FATAL: (SeverityNumber.FATAL, "FATAL"),
}

# Emissions run here so a stalled pipeline can never hold the calling thread
# past the emit timeout.
_EMIT_EXECUTOR = concurrent.futures.ThreadPoolExecutor(max_workers=4, thread_name_prefix="teelog-otlp")


def map_severity(level: Any) -> Tuple[SeverityNumber, str]:
    """Fixed severity table; anything unknown is reported as INFO."""
    try:
        return _SEVERITY_MAP[Severity(level)]
    except (ValueError, KeyError):
        return _SEVERITY_MAP[Severity.INFO]


def flatten_value(value: Any) -> Any:
    """Narrow a field value to an OTLP scalar attribute.

    str, bool, int (int64 range) and float pass through, durations become
    seconds, collections become their JSON text and anything else ``str()``.
    """
    if isinstance(value, (str, bool, float)):
        return value
    if isinstance(value, int):
        return value if INT64_MIN <= value <= INT64_MAX else str(value)
    if isinstance(value, timedelta):
        return encode_duration(value)
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return orjson_dumps(value)
    return str(value)


def _attribute_key(key: Any) -> str:
    key = str(key)
    return FIELD_KEY_PREFIX + key if key in _FIXED_ATTRIBUTES else key


def encode_attributes(fields: Iterable[Field]) -> Dict[str, Any]:
    return {_attribute_key(key): flatten_value(value) for key, value in fields}


def _timestamp_ns(record: Record) -> int:
    ts = record.timestamp
    return int(ts.timestamp()) * 1_000_000_000 + ts.microsecond * 1_000


def build_log_record(record: Record) -> LogRecord:
    """Translate a teelog record into the OpenTelemetry log data model."""
    severity_number, severity_text = map_severity(record.level)
    attributes = encode_attributes(record.fields)
    if record.logger_name:
        attributes["logger.name"] = record.logger_name
    if record.caller:
        attributes["caller"] = record.caller
    if record.stack:
        attributes["stacktrace"] = record.stack
    return LogRecord(
        timestamp=_timestamp_ns(record),
        observed_timestamp=time.time_ns(),
        severity_text=severity_text,
        severity_number=severity_number,
        body=record.message,
        attributes=attributes,
    )


class OTLPSink(BaseSink):
    """Sink forwarding records to an OpenTelemetry logger.

    Args:
        emitter: OpenTelemetry ``Logger`` obtained from a ``LoggerProvider``
        processor: Processor to force-flush on ``flush()`` (optional)
        level: Shared minimum severity
        emit_timeout: Seconds allowed per emit and per flush; 0/None -> 0.5s
    """

    def __init__(
        self,
        emitter: Optional[OTelLogger],
        processor: Optional[LogRecordProcessor],
        level: LevelHolder,
        emit_timeout: Optional[float] = None,
        fields: Iterable[Field] = (),
    ) -> None:
        super().__init__(level, fields)
        self._emitter = emitter
        self._processor = processor
        self._timeout = emit_timeout or DEFAULT_EMIT_TIMEOUT

    @property
    def emit_timeout(self) -> float:
        return self._timeout

    def with_fields(self, fields: Iterable[Field]) -> "OTLPSink":
        return OTLPSink(
            self._emitter,
            self._processor,
            self._level,
            emit_timeout=self._timeout,
            fields=self._fields + tuple(fields),
        )

    def write(self, record: Record) -> None:
        """Emit within the deadline; failures degrade to a stderr notice."""
        try:
            self._emit_with_timeout(build_log_record(record.with_leading_fields(self._fields)))
        except Exception as e:
            sys.stderr.write(f"failed to emit OTLP log: {e}, message: {record.message}\n")

    def _emit_with_timeout(self, log_record: LogRecord) -> None:
        if self._emitter is None:
            raise RuntimeError("OTLP emitter is not configured")
        future = _EMIT_EXECUTOR.submit(self._emitter.emit, log_record)
        try:
            future.result(timeout=self._timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise EmitTimeoutError(self._timeout) from None

    def flush(self) -> None:
        """Force-flush the processor, giving up after the emit timeout.

        The processor's own ``timeout_millis`` is not honoured while an export
        is in flight, so the call also runs under a hard deadline here.
        """
        if self._processor is None:
            return
        future = _EMIT_EXECUTOR.submit(self._processor.force_flush, timeout_millis=int(self._timeout * 1000))
        try:
            ok = future.result(timeout=self._timeout)
        except concurrent.futures.TimeoutError:
            future.cancel()
            raise FlushError([self._flush_timeout()]) from None
        except Exception as e:
            raise FlushError([e]) from e
        if ok is False:
            raise FlushError([self._flush_timeout()])

    def _flush_timeout(self) -> TimeoutError:
        return TimeoutError(f"OTLP processor did not flush within {self._timeout:.3f}s")


# =============================================================================
# Pipeline construction
# =============================================================================


@dataclass(frozen=True)
class OTLPPipeline:
    """The provider/processor/emitter triple behind an OTLPSink."""

    provider: LoggerProvider
    processor: LogRecordProcessor
    emitter: OTelLogger


def create_resource(service_name: str, service_environment: str) -> Resource:
    return Resource.create(
        {
            SERVICE_NAME: service_name,
            "deployment.environment": service_environment,
        }
    )


def create_exporter(endpoint: str, use_tls: bool) -> Any:
    """OTLP/gRPC log exporter; plaintext unless TLS is requested."""
    from opentelemetry.exporter.otlp.proto.grpc._log_exporter import OTLPLogExporter

    return OTLPLogExporter(endpoint=endpoint, insecure=not use_tls)


def build_pipeline(settings: LoggerSettings, exporter: Any = None) -> OTLPPipeline:
    """
    Build the batching export pipeline described by ``settings``.

    Args:
        settings: Logger settings (endpoint, TLS flag, service identity)
        exporter: Pre-built ``LogExporter``; mainly for tests
    """
    if exporter is None:
        exporter = create_exporter(settings.otlp_endpoint, settings.otlp_use_tls)
    processor = BatchLogRecordProcessor(exporter)
    provider = LoggerProvider(resource=create_resource(settings.service_name, settings.service_environment))
    provider.add_log_record_processor(processor)
    return OTLPPipeline(
        provider=provider,
        processor=processor,
        emitter=provider.get_logger(INSTRUMENTATION_SCOPE),
    )


def create_otlp_sink(
    settings: LoggerSettings,
    level: LevelHolder,
    exporter: Any = None,
) -> Tuple[OTLPSink, LoggerProvider]:
    pipeline = build_pipeline(settings, exporter=exporter)
    sink = OTLPSink(pipeline.emitter, pipeline.processor, level, emit_timeout=settings.emit_timeout)
    return sink, pipeline.provider


__all__ = [
    "DEFAULT_EMIT_TIMEOUT",
    "OTLPPipeline",
    "OTLPSink",
    "build_log_record",
    "build_pipeline",
    "create_otlp_sink",
    "encode_attributes",
    "flatten_value",
    "map_severity",
]
