"""HTTP middleware: request-id correlation, access log line and request metrics."""

from __future__ import annotations

import logging
import time
from typing import Any

from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match

from docindex_server.observability.context import clear_request_context, generate_request_id, set_request_context
from docindex_server.observability.logging import ACCESS_LOGGER_NAME
from docindex_server.observability.metrics import REQUEST_COUNT, REQUEST_LATENCY


access_logger = logging.getLogger(ACCESS_LOGGER_NAME)

REQUEST_ID_HEADER = "x-request-id"


def _extract_index_from_path(path: str) -> str | None:
    parts = path.split("/")
    if len(parts) > 2 and parts[1] == "indexes" and parts[2]:
        return parts[2]
    return None


def _route_label(request: Request) -> str:
    # path template keeps metric label cardinality bounded
    for route in request.app.routes:
        match, _ = route.matches(request.scope)
        if match is Match.FULL:
            return getattr(route, "path", "unmatched")
    return "unmatched"


async def log_request(request: Request, call_next: Any) -> Response:
    """Log ``METHOD PATH -> STATUS LATENCYms req=<n>b`` for every request."""
    request_id = request.headers.get(REQUEST_ID_HEADER) or generate_request_id()
    set_request_context(request_id, index=_extract_index_from_path(request.url.path))
    start = time.perf_counter()
    status_code = 500
    try:
        response: Response = await call_next(request)
        status_code = response.status_code
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
    finally:
        elapsed = time.perf_counter() - start
        route = _route_label(request)
        REQUEST_COUNT.labels(method=request.method, route=route, status=str(status_code)).inc()
        REQUEST_LATENCY.labels(method=request.method, route=route).observe(elapsed)
        access_logger.info(
            "%s %s -> %d %.2fms req=%sb",
            request.method,
            request.url.path,
            status_code,
            elapsed * 1000,
            request.headers.get("content-length", "0"),
        )
        clear_request_context()
