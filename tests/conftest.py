import io
import typing as t
from unittest.mock import MagicMock

import orjson
import pytest

from teelog.levels import LevelHolder, Severity
from teelog.otlp import OTLPSink


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep TEELOG_* variables from the developer's shell out of the tests."""
    import os

    for key in list(os.environ):
        if key.startswith("TEELOG_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def stream() -> io.StringIO:
    """In-memory console stream."""
    return io.StringIO()


@pytest.fixture
def read_lines(stream) -> t.Callable[[], list[dict]]:
    """Parse every JSON line written to ``stream`` so far."""

    def _read() -> list[dict]:
        return [orjson.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


@pytest.fixture
def emitter() -> MagicMock:
    """Stand-in for an OpenTelemetry Logger."""
    return MagicMock(name="otel_logger")


@pytest.fixture
def processor() -> MagicMock:
    """Stand-in for a BatchLogRecordProcessor."""
    proc = MagicMock(name="processor")
    proc.force_flush.return_value = True
    return proc


@pytest.fixture
def otlp_sink(emitter, processor) -> OTLPSink:
    return OTLPSink(emitter, processor, LevelHolder(Severity.DEBUG), emit_timeout=0.2)
