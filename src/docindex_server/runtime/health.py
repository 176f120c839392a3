"""Health endpoint factory."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.responses import JSONResponse


if TYPE_CHECKING:
    from starlette.requests import Request

    from docindex_server.service_layer.index_service import IndexService


def build_health_endpoint(service: IndexService):
    """Return a coroutine function reporting loaded and unavailable indexes."""

    async def health_check(request: Request) -> JSONResponse:
        payload = service.health()
        payload["known_indexes"] = await service.list_indexes()
        # Always 200, check "status" field for degraded state
        return JSONResponse(payload, status_code=200)

    return health_check
