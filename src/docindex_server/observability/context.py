"""Request-id propagation across async and worker-thread boundaries."""

from __future__ import annotations

from contextvars import ContextVar
from uuid import uuid4


# asyncio.to_thread copies the context, so the id follows calls into workers
request_context: ContextVar[dict | None] = ContextVar("request_context", default=None)


def generate_request_id() -> str:
    """Generate a 16-char hex request ID."""
    return uuid4().hex[:16]


def get_request_context() -> dict:
    return request_context.get() or {}


def set_request_context(request_id: str, **extra: object) -> None:
    """Set request context for the current async context."""
    request_context.set({"request_id": request_id, **extra})


def clear_request_context() -> None:
    request_context.set(None)
