"""
Request-scoped context fields.

Trace and user identifiers live in module-private ``ContextVar`` objects, so the
only way to read or write them is through the accessors below; unrelated code
using ``contextvars`` can never collide with them. Callers may hand a snapshot
``contextvars.Context`` to the logger, otherwise the current context is used.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterable, Iterator, List, Optional, Sequence

from .records import Field

TRACE_ID_KEY = "trace_id"
USER_ID_KEY = "user_id"

_trace_id_context: ContextVar[Optional[str]] = ContextVar("_teelog_trace_id", default=None)
_user_id_context: ContextVar[Optional[str]] = ContextVar("_teelog_user_id", default=None)

FieldExtractor = Callable[[contextvars.Context], Iterable[Field]]


def _lookup(var: ContextVar[Optional[str]], ctx: Optional[contextvars.Context]) -> Optional[str]:
    value = var.get() if ctx is None else ctx.get(var)
    return value if isinstance(value, str) else None


def get_trace_id(ctx: Optional[contextvars.Context] = None) -> Optional[str]:
    """Trace id stored in ``ctx`` (or the current context)."""
    return _lookup(_trace_id_context, ctx)


def get_user_id(ctx: Optional[contextvars.Context] = None) -> Optional[str]:
    """User id stored in ``ctx`` (or the current context)."""
    return _lookup(_user_id_context, ctx)


def set_trace_id(trace_id: Optional[str]) -> contextvars.Token:
    return _trace_id_context.set(trace_id)


def set_user_id(user_id: Optional[str]) -> contextvars.Token:
    return _user_id_context.set(user_id)


@contextmanager
def request_context(*, trace_id: Optional[str] = None, user_id: Optional[str] = None) -> Iterator[None]:
    """
    Scope trace/user ids to a block, restoring the previous values on exit.

    Usage:
        with request_context(trace_id="abc", user_id="u1"):
            log.info("handled")
    """
    tokens = []
    if trace_id is not None:
        tokens.append((_trace_id_context, _trace_id_context.set(trace_id)))
    if user_id is not None:
        tokens.append((_user_id_context, _user_id_context.set(user_id)))
    try:
        yield
    finally:
        for var, token in reversed(tokens):
            var.reset(token)


def extract_fields(
    ctx: Optional[contextvars.Context],
    extractors: Sequence[FieldExtractor] = (),
) -> List[Field]:
    """
    Build the ordered context field list for one logging call.

    Order: trace id, user id (each only when non-empty), then the output of every
    extractor in registration order. Extractors always run.
    """
    if ctx is None:
        ctx = contextvars.copy_context()

    fields: List[Field] = []

    trace_id = get_trace_id(ctx)
    if trace_id:
        fields.append(Field(TRACE_ID_KEY, trace_id))
    user_id = get_user_id(ctx)
    if user_id:
        fields.append(Field(USER_ID_KEY, user_id))

    for extractor in extractors:
        fields.extend(Field(*f) for f in extractor(ctx) or ())

    return fields


__all__ = [
    "TRACE_ID_KEY",
    "USER_ID_KEY",
    "FieldExtractor",
    "extract_fields",
    "get_trace_id",
    "get_user_id",
    "request_context",
    "set_trace_id",
    "set_user_id",
]
