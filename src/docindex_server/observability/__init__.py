"""Observability module: structured logging, request correlation and Prometheus metrics."""

from docindex_server.observability.context import (
    clear_request_context,
    generate_request_id,
    get_request_context,
    request_context,
    set_request_context,
)
from docindex_server.observability.logging import ACCESS_LOGGER_NAME, JsonFormatter, configure_logging
from docindex_server.observability.metrics import (
    REQUEST_COUNT,
    REQUEST_LATENCY,
    SEARCH_LATENCY,
    get_metrics,
    get_metrics_content_type,
    track_latency,
)


__all__ = [
    "ACCESS_LOGGER_NAME",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "SEARCH_LATENCY",
    "JsonFormatter",
    "clear_request_context",
    "configure_logging",
    "generate_request_id",
    "get_metrics",
    "get_metrics_content_type",
    "get_request_context",
    "request_context",
    "set_request_context",
    "track_latency",
]
