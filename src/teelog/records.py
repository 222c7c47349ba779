from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, NamedTuple, Optional, Tuple

from .levels import Severity


class Field(NamedTuple):
    """A single structured key/value pair attached to a record."""

    key: str
    value: Any


def to_fields(*fields: Field, **kw: Any) -> Tuple[Field, ...]:
    """Normalise positional ``Field`` objects and keyword pairs, keeping order."""
    out = [Field(*f) for f in fields]
    out.extend(Field(k, v) for k, v in kw.items())
    return tuple(out)


@dataclass(frozen=True)
class Record:
    """One log entry, built once per logging call and never mutated."""

    message: str
    level: Severity
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    logger_name: Optional[str] = None
    caller: Optional[str] = None
    stack: Optional[str] = None
    fields: Tuple[Field, ...] = ()

    def with_leading_fields(self, extra: Iterable[Field]) -> "Record":
        """Copy of this record with ``extra`` placed before its own fields."""
        extra = tuple(extra)
        if not extra:
            return self
        return Record(
            message=self.message,
            level=self.level,
            timestamp=self.timestamp,
            logger_name=self.logger_name,
            caller=self.caller,
            stack=self.stack,
            fields=extra + self.fields,
        )


__all__ = ["Field", "Record", "to_fields"]
