"""Prometheus metrics for the HTTP surface, the query engines and persistence."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


REQUEST_LATENCY = Histogram(
    "docindex_request_latency_seconds",
    "Request latency in seconds",
    ["method", "route"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

REQUEST_COUNT = Counter(
    "docindex_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)

ERROR_COUNT = Counter(
    "docindex_errors_total",
    "Errors reported to clients",
    ["code"],
)

SEARCH_LATENCY = Histogram(
    "docindex_search_latency_seconds",
    "Query latency per search modality",
    ["index", "kind"],
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5),
)

INDEX_DOC_COUNT = Gauge(
    "docindex_index_document_count",
    "Documents in index",
    ["index"],
)

DOCUMENTS_INSERTED = Counter(
    "docindex_documents_inserted_total",
    "Documents inserted",
    ["index"],
)

PERSIST_FAILURES = Counter(
    "docindex_persist_failures_total",
    "Index writes that failed after the in-memory mutation was applied",
    ["index"],
)


@contextmanager
def track_latency(histogram: Histogram, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    """Get content type for metrics endpoint."""
    return CONTENT_TYPE_LATEST
