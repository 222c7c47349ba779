"""
Console line formatting: ISO timestamps, caller shortening, ANSI colours and the
aligned human-readable layout used when JSON output is off.
"""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

# =============================================================================
# Primitive encoders
# =============================================================================


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 with millisecond precision, UTC rendered as ``Z``."""
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    text = ts.isoformat(timespec="milliseconds")
    return text[:-6] + "Z" if text.endswith("+00:00") else text


def short_caller(pathname: Optional[str], lineno: Optional[int]) -> Optional[str]:
    """``/abs/path/pkg/module.py`` + 42 -> ``pkg/module.py:42``."""
    if not pathname:
        return None
    parts = os.path.normpath(pathname).split(os.sep)
    short = "/".join(parts[-2:]) if len(parts) >= 2 else parts[-1]
    return f"{short}:{lineno}" if lineno is not None else short


def encode_duration(value: timedelta) -> float:
    """Durations are reported in seconds."""
    return value.total_seconds()


# =============================================================================
# Console Formatter (Aligned Columns)
# =============================================================================

COLORS = {
    "reset": "\033[0m",
    "dim": "\033[2m",
    "timestamp": "\033[90m",
    "logger": "\033[35m",
    "caller": "\033[90m",
    "key": "\033[34m",
}


def colorize(text: str, color: str) -> str:
    """Apply ANSI color to text."""
    return f"{COLORS.get(color, '')}{text}{COLORS['reset']}"


class ConsoleFormatter:
    """Renders an ordered console entry as one aligned, human-readable line."""

    _RESET = "\x1b[0m"
    _LEVEL_COLORS = {
        "DEBUG": "\x1b[36m",
        "INFO": "\x1b[32m",
        "WARN": "\x1b[33m",
        "ERROR": "\x1b[31m",
        "FATAL": "\x1b[1;31m",
    }

    EXCLUDED_KEYS = {"timestamp", "level", "logger", "caller", "message", "stacktrace"}
    LEVEL_WIDTH = 5
    LOGGER_WIDTH = 0
    CALLER_WIDTH = 24
    SEPARATOR = " | "

    @staticmethod
    def _fit_right(text: str, width: int) -> str:
        if width <= 0:
            return text
        if len(text) > width:
            if width <= 3:
                text = text[-width:]
            else:
                text = "..." + text[-(width - 3) :]
        return f"{text:>{width}}"

    @classmethod
    def _colorize_level(cls, text: str, level_upper: str, use_color: bool) -> str:
        if not use_color:
            return text
        color = cls._LEVEL_COLORS.get(level_upper)
        if not color:
            return text
        return f"{color}{text}{cls._RESET}"

    @staticmethod
    def _maybe_color(text: str, color: str, use_color: bool) -> str:
        if not use_color:
            return text
        return colorize(text, color)

    @classmethod
    def format(cls, entry: Mapping[str, Any], *, use_color: bool = False) -> str:
        """Format a console entry into an aligned string.

        Format: timestamp | LEVEL | [logger |] [caller |] message key=value ...
        A stack trace, when present, follows on the next lines.
        """
        level_upper = str(entry.get("level", "INFO")).upper()
        columns = [
            cls._maybe_color(str(entry.get("timestamp", "")), "timestamp", use_color),
            cls._colorize_level(cls._fit_right(level_upper, cls.LEVEL_WIDTH), level_upper, use_color),
        ]

        logger_name = entry.get("logger")
        if logger_name:
            columns.append(cls._maybe_color(cls._fit_right(str(logger_name), cls.LOGGER_WIDTH), "logger", use_color))

        caller = entry.get("caller")
        if caller:
            columns.append(cls._maybe_color(cls._fit_right(str(caller), cls.CALLER_WIDTH), "caller", use_color))

        message_text = str(entry.get("message", ""))
        extras = []
        for k, v in entry.items():
            if k in cls.EXCLUDED_KEYS:
                continue
            if isinstance(v, timedelta):
                v = encode_duration(v)
            key_colored = cls._maybe_color(k, "key", use_color)
            value_colored = cls._maybe_color(str(v), "dim", use_color)
            extras.append(f"{key_colored}={value_colored}")
        if extras:
            message_text = f"{message_text} " + " ".join(extras)
        columns.append(message_text)

        line = cls.SEPARATOR.join(columns)
        stack = entry.get("stacktrace")
        if stack:
            line = f"{line}\n{stack}"
        return line
