"""
Correlation ids for log lines that belong to the same unit of work.

A unit of work is one dispatched bus message or one reconciliation pass.
The id lives in a contextvar, so tasks spawned while a scope is active
inherit it (publish workers excepted, they run in their own context).
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "hkz2m_correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a fresh id (uuid4 hex, 32 chars)."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation id to a block, restoring the previous one on exit.

    Args:
        correlation_id: Id to use; a new one is generated when omitted.

    Yields:
        The id active inside the block.

    Example:
        with correlation_context() as corr_id:
            await reconciler.handle_inventory(payload)
    """
    if correlation_id is None:
        correlation_id = generate_correlation_id()
    token = _correlation_id.set(correlation_id)
    try:
        yield correlation_id
    finally:
        _correlation_id.reset(token)
