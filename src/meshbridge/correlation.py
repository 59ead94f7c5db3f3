"""
Correlation ids for inbound MQTT messages.

Every message is dispatched inside its own correlation scope so that the log lines
of one command (and any confirmatory read it schedules) can be grouped together,
even while many messages are being processed concurrently on the same loop.
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
    "correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new UUID4 hex id (32 chars, no dashes)."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation id to the enclosed block, restoring the previous one on exit.

    Args:
        correlation_id: Id to use; a fresh one is generated when omitted

    Yields:
        The correlation id active inside the block

    Example:
        with correlation_context() as corr_id:
            await router.handle_message(topic, payload)
    """
    token = _correlation_id.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id.get() or ""
    finally:
        _correlation_id.reset(token)
