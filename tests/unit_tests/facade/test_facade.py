"""
Logger facade: emission, derivation, levels and lifecycle.
"""

from __future__ import annotations

import contextvars
import threading
import time
from unittest.mock import MagicMock

import orjson
import pytest

import teelog
from teelog.config import LoggerSettings
from teelog.context import request_context
from teelog.core import DualSinkCore
from teelog.exceptions import (
    FlushError,
    InvalidLevelError,
    NoSinksConfiguredError,
    ShutdownError,
    UnknownOptionError,
)
from teelog.facade import Logger, ProviderHandle
from teelog.levels import LevelHolder, Severity
from teelog.otlp import OTLPSink
from teelog.records import Field
from teelog.sinks import ConsoleSink


@pytest.fixture
def log(stream) -> Logger:
    return Logger.create(stream=stream, level="debug")


class TestEmission:
    """Per-level methods on a console-only logger"""

    def test_every_level_writes_one_line(self, log, read_lines) -> None:
        log.debug("d")
        log.info("i")
        log.warn("w")
        log.warning("w2")
        log.error("e")
        assert [(e["level"], e["message"]) for e in read_lines()] == [
            ("DEBUG", "d"),
            ("INFO", "i"),
            ("WARN", "w"),
            ("WARN", "w2"),
            ("ERROR", "e"),
        ]

    def test_level_gating(self, stream, read_lines) -> None:
        log = Logger.create(stream=stream, level="warn")
        log.debug("no")
        log.info("no")
        log.warn("yes")
        assert [e["message"] for e in read_lines()] == ["yes"]

    def test_caller_points_at_call_site(self, log, read_lines) -> None:
        log.info("where")
        assert "test_facade.py:" in read_lines()[0]["caller"]

    def test_positional_and_keyword_fields(self, log, read_lines) -> None:
        log.info("paid", Field("order", 7), amount=9.5)
        entry = read_lines()[0]
        assert entry["order"] == 7
        assert entry["amount"] == 9.5
        assert list(entry)[-2:] == ["order", "amount"]

    def test_context_fields_precede_call_site_fields(self, log, read_lines) -> None:
        with request_context(trace_id="12345", user_id="user1"):
            log.info("hi", k="v")
        keys = list(read_lines()[0])
        assert keys[-3:] == ["trace_id", "user_id", "k"]

    def test_explicit_context_snapshot(self, log, read_lines) -> None:
        def build():
            teelog.set_trace_id("snap")
            return contextvars.copy_context()

        ctx = contextvars.copy_context().run(build)
        log.info("hi", ctx=ctx)
        assert read_lines()[0]["trace_id"] == "snap"

    def test_field_extractors_run_after_ids(self, stream, read_lines) -> None:
        log = Logger.create(stream=stream, field_extractors=[lambda ctx: [Field("tenant", "acme")]])
        with request_context(trace_id="t"):
            log.info("x")
        assert list(read_lines()[0])[-2:] == ["trace_id", "tenant"]

    def test_exception_carries_stacktrace(self, log, read_lines) -> None:
        try:
            raise ValueError("kaput")
        except ValueError:
            log.exception("failed")
        entry = read_lines()[0]
        assert entry["level"] == "ERROR"
        assert "ValueError: kaput" in entry["stacktrace"]

    def test_log_with_explicit_level(self, log, read_lines) -> None:
        log.log(Severity.ERROR, "explicit", k=1)
        entry = read_lines()[0]
        assert entry["level"] == "ERROR"
        assert entry["k"] == 1

    def test_text_mode(self, stream) -> None:
        log = Logger.create(stream=stream, as_json=False)
        log.info("hello", k="v")
        line = stream.getvalue().rstrip("\n")
        assert " |  INFO | " in line
        assert line.endswith("hello k=v")

    def test_concurrent_logging_produces_whole_lines(self, log, read_lines) -> None:
        def work(i: int) -> None:
            for n in range(50):
                log.info("tick", worker=i, n=n)

        threads = [threading.Thread(target=work, args=(i,)) for i in range(8)]
        for th in threads:
            th.start()
        for th in threads:
            th.join()
        assert len(read_lines()) == 400


class TestDerivation:
    """bind / bind_context / named"""

    def test_bind_does_not_affect_parent(self, log, read_lines) -> None:
        child = log.bind(Field("svc", "api"), region="eu")
        child.info("child")
        log.info("parent")
        child_entry, parent_entry = read_lines()
        assert child_entry["svc"] == "api"
        assert child_entry["region"] == "eu"
        assert "svc" not in parent_entry

    def test_bound_fields_precede_context_and_call_fields(self, log, read_lines) -> None:
        with request_context(trace_id="t"):
            log.bind(svc="api").info("x", k=1)
        assert list(read_lines()[0])[-3:] == ["svc", "trace_id", "k"]

    def test_bind_context_snapshots_ids(self, log, read_lines) -> None:
        with request_context(trace_id="frozen"):
            child = log.bind_context()
        child.info("later")
        assert read_lines()[0]["trace_id"] == "frozen"

    def test_named_joins_with_dots(self, log, read_lines) -> None:
        log.named("db").named("pool").info("x")
        assert read_lines()[0]["logger"] == "db.pool"

    def test_logger_name_from_settings(self, stream, read_lines) -> None:
        Logger.create(stream=stream, logger_name="app").named("http").info("x")
        assert read_lines()[0]["logger"] == "app.http"

    def test_derived_loggers_share_provider(self, log) -> None:
        child = log.bind(a=1)
        assert child.provider is log.provider
        assert not child.owns_provider


class TestLevels:
    """Runtime level changes"""

    def test_set_level_on_root_applies_to_children(self, stream, read_lines) -> None:
        log = Logger.create(stream=stream, level="error")
        child = log.bind(a=1)
        child.info("dropped")
        log.set_level("debug")
        child.info("kept")
        assert [e["message"] for e in read_lines()] == ["kept"]
        assert child.level is Severity.DEBUG

    def test_set_level_on_child_applies_to_root(self, log, read_lines) -> None:
        log.named("x").set_level("warn")
        log.info("dropped")
        assert read_lines() == []
        assert not log.enabled(Severity.INFO)

    def test_set_level_rejects_unknown(self, log) -> None:
        with pytest.raises(InvalidLevelError):
            log.set_level("loud")
        assert log.level is Severity.DEBUG


class TestCreate:
    """Logger.create failures"""

    def test_invalid_level(self, stream) -> None:
        with pytest.raises(InvalidLevelError):
            Logger.create(stream=stream, level="invalid")

    def test_no_sinks(self) -> None:
        with pytest.raises(NoSinksConfiguredError):
            Logger.create(enable_stdout=False, enable_otlp=False)

    def test_settings_object_with_overrides(self, stream, read_lines) -> None:
        log = Logger.create(LoggerSettings(level="error"), stream=stream, level="info")
        log.info("x")
        assert len(read_lines()) == 1


class TestFatal:
    """fatal: log, flush, exit"""

    def test_flushes_before_exit(self, stream) -> None:
        order = []
        log = Logger.create(stream=stream, exit_func=lambda code: order.append(("exit", code)))
        log.core.sync = MagicMock(side_effect=lambda: order.append(("sync",)))
        log.fatal("down")
        assert order == [("sync",), ("exit", 1)]
        assert orjson.loads(stream.getvalue())["level"] == "FATAL"

    def test_flush_failure_still_exits(self, stream, capsys) -> None:
        exit_func = MagicMock()
        log = Logger.create(stream=stream, exit_func=exit_func)
        log.core.sync = MagicMock(side_effect=FlushError([RuntimeError("gone")]))
        log.fatal("down")
        exit_func.assert_called_once_with(1)
        assert "failed to flush before exit" in capsys.readouterr().err

    def test_log_at_fatal_does_not_exit(self, stream) -> None:
        exit_func = MagicMock()
        Logger.create(stream=stream, exit_func=exit_func).log(Severity.FATAL, "x")
        exit_func.assert_not_called()


class TestSpecialLoggers:
    """nop and benchmark loggers"""

    def test_nop_is_silent_and_never_exits(self, capsys) -> None:
        log = Logger.nop()
        log.info("x")
        log.fatal("y")
        log.sync()
        log.close()
        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == ""

    def test_benchmark_runs_at_debug(self) -> None:
        log = Logger.benchmark()
        assert log.enabled(Severity.DEBUG)
        log.debug("x", k=1)
        log.close()


class TestLifecycle:
    """sync / close"""

    def test_close_without_provider(self, log) -> None:
        log.close()
        assert log.provider is None

    def test_context_manager_closes(self, stream) -> None:
        with Logger.create(stream=stream) as log:
            log.info("x")

    def test_close_collects_flush_and_shutdown_errors(self) -> None:
        core = DualSinkCore([])
        core.sync = MagicMock(side_effect=FlushError([RuntimeError("flush")]))
        provider = MagicMock()
        provider.shutdown.side_effect = RuntimeError("shutdown")
        log = Logger(
            core,
            settings=LoggerSettings(),
            level=LevelHolder(),
            lifecycle=ProviderHandle(provider, 1.0),
            owns_provider=True,
        )
        with pytest.raises(ShutdownError) as exc_info:
            log.close()
        assert len(exc_info.value.errors) == 2
        assert exc_info.value.code == "SHUTDOWN_FAILED"
        provider.shutdown.assert_called_once()

    def test_root_close_is_idempotent(self) -> None:
        provider = MagicMock()
        log = Logger(
            DualSinkCore([]),
            settings=LoggerSettings(),
            level=LevelHolder(),
            lifecycle=ProviderHandle(provider, 1.0),
            owns_provider=True,
        )
        log.close()
        log.close()
        provider.shutdown.assert_called_once()

    def test_derived_close_only_flushes(self) -> None:
        provider = MagicMock()
        root = Logger(
            DualSinkCore([ConsoleSink(LevelHolder())]),
            settings=LoggerSettings(),
            level=LevelHolder(),
            lifecycle=ProviderHandle(provider, 1.0),
            owns_provider=True,
        )
        root.bind(a=1).close()
        root.named("x").close()
        provider.shutdown.assert_not_called()
        root.close()
        provider.shutdown.assert_called_once()

    def test_shutdown_timeout(self) -> None:
        release = threading.Event()
        provider = MagicMock()
        provider.shutdown.side_effect = lambda: release.wait(5)
        handle = ProviderHandle(provider, 0.05)
        try:
            with pytest.raises(TimeoutError):
                handle.shutdown()
        finally:
            release.set()

    def test_otlp_records_exported_on_close(self, stream) -> None:
        from opentelemetry.sdk._logs.export import InMemoryLogRecordExporter

        exporter = InMemoryLogRecordExporter()
        log = Logger.create(stream=stream, enable_otlp=True, exporter=exporter, emit_timeout=2.0)
        assert log.owns_provider
        log.info("exported", k="v")
        log.close()
        assert len(exporter.get_finished_logs()) == 1


class TestDefaultLogger:
    """configure_logging / get_logger / shutdown_logging"""

    def test_configure_then_get(self, stream, read_lines) -> None:
        try:
            root = teelog.configure_logging(stream=stream, level="debug")
            assert teelog.get_logger() is root
            teelog.get_logger("worker").debug("x")
            assert read_lines()[0]["logger"] == "worker"
        finally:
            teelog.shutdown_logging()

    def test_reconfigure_replaces_logger(self, stream) -> None:
        try:
            first = teelog.configure_logging(stream=stream)
            second = teelog.configure_logging(stream=stream)
            assert first is not second
            assert teelog.get_logger() is second
        finally:
            teelog.shutdown_logging()


class TestReservedNames:
    """Call-site fields that share a name with a parameter or a fixed key"""

    def test_fixed_keys_are_not_overwritten(self, log, read_lines) -> None:
        log.error("boom", level="low", timestamp="t0", caller="fake")
        entry = read_lines()[0]
        assert entry["level"] == "ERROR"
        assert entry["timestamp"] != "t0"
        assert "test_facade.py:" in entry["caller"]
        assert entry["field.level"] == "low"
        assert entry["field.timestamp"] == "t0"
        assert entry["field.caller"] == "fake"

    def test_message_keyword_is_a_field(self, log, read_lines) -> None:
        log.info("hi", message="m")
        entry = read_lines()[0]
        assert entry["message"] == "hi"
        assert entry["field.message"] == "m"

    def test_log_accepts_level_and_ctx(self, log, read_lines) -> None:
        with request_context(trace_id="t"):
            ctx = contextvars.copy_context()
        log.log(Severity.WARN, "x", level="low", ctx=ctx)
        entry = read_lines()[0]
        assert entry["level"] == "WARN"
        assert entry["field.level"] == "low"
        assert entry["trace_id"] == "t"


class TestBoundedFlush:
    """sync / close / fatal with a stalled OTLP processor"""

    @pytest.fixture
    def stalled(self, emitter):
        release = threading.Event()
        processor = MagicMock(name="processor")
        processor.force_flush.side_effect = lambda timeout_millis: release.wait(5)
        level = LevelHolder(Severity.DEBUG)
        log = Logger(
            DualSinkCore([OTLPSink(emitter, processor, level, emit_timeout=0.05)]),
            settings=LoggerSettings(),
            level=level,
            exit_func=MagicMock(),
        )
        yield log
        release.set()

    def test_sync_raises_within_bound(self, stalled) -> None:
        started = time.monotonic()
        with pytest.raises(FlushError):
            stalled.sync()
        assert time.monotonic() - started < 1.0

    def test_close_reports_flush_timeout(self, stalled) -> None:
        with pytest.raises(ShutdownError) as exc_info:
            stalled.close()
        assert isinstance(exc_info.value.errors[0], FlushError)

    def test_fatal_still_exits_promptly(self, stalled, capsys) -> None:
        started = time.monotonic()
        stalled.fatal("down")
        assert time.monotonic() - started < 1.0
        stalled._exit_func.assert_called_once_with(1)
        assert "failed to flush before exit" in capsys.readouterr().err


class TestUnknownOptions:
    """Misspelled keyword options"""

    def test_create_rejects_unknown_option(self, stream) -> None:
        with pytest.raises(UnknownOptionError) as exc_info:
            Logger.create(stream=stream, levl="debug")
        assert exc_info.value.options == ["levl"]
        assert exc_info.value.code == "UNKNOWN_OPTION"

    def test_create_with_settings_rejects_unknown_option(self, stream) -> None:
        with pytest.raises(UnknownOptionError):
            Logger.create(LoggerSettings(), stream=stream, enable_otpl=True)

    def test_unrelated_environment_is_ignored(self, stream, monkeypatch) -> None:
        monkeypatch.setenv("TEELOG_NOT_AN_OPTION", "1")
        Logger.create(stream=stream).info("x")
