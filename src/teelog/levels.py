"""
Severity levels and level-string parsing.
"""

from __future__ import annotations

import threading
from enum import IntEnum
from typing import Optional, Tuple

from .exceptions import InvalidLevelError


class Severity(IntEnum):
    """Ordered log severity.

    Values line up with the stdlib ``logging`` constants so they can be handed
    to structlog's filtering bound logger and compared with stdlib records.
    """

    DEBUG = 10
    INFO = 20
    WARN = 30
    ERROR = 40
    FATAL = 50

    @classmethod
    def parse(cls, text: str) -> "Severity":
        """Strict variant of :func:`parse_level`: raises on unknown input."""
        level, err = parse_level(text)
        if err is not None:
            raise err
        return level


_NAMES = {
    "debug": Severity.DEBUG,
    "info": Severity.INFO,
    "warn": Severity.WARN,
    "warning": Severity.WARN,
    "error": Severity.ERROR,
    "fatal": Severity.FATAL,
    "critical": Severity.FATAL,
}


def parse_level(text: str) -> Tuple[Severity, Optional[InvalidLevelError]]:
    """Map a configuration string to a :class:`Severity`.

    Matching is case-insensitive. Unknown input yields ``Severity.INFO`` together
    with an :class:`InvalidLevelError`; the caller decides whether that matters.
    """
    level = _NAMES.get(str(text).strip().lower())
    if level is None:
        return Severity.INFO, InvalidLevelError(text)
    return level, None


def parse_level_default(text: str) -> Severity:
    """Best-effort mapping: unknown input silently becomes ``INFO``."""
    level, _ = parse_level(text)
    return level


class LevelHolder:
    """Mutable minimum severity shared between sinks and derived loggers.

    Reads are plain attribute loads; only writers take the lock.
    """

    def __init__(self, level: Severity = Severity.INFO) -> None:
        self._level = Severity(level)
        self._lock = threading.Lock()

    @property
    def level(self) -> Severity:
        return self._level

    def set(self, level: Severity) -> None:
        with self._lock:
            self._level = Severity(level)

    def enabled(self, level: Severity) -> bool:
        return level >= self._level

    def __repr__(self) -> str:
        return f"LevelHolder({self._level.name})"


__all__ = ["Severity", "LevelHolder", "parse_level", "parse_level_default"]
