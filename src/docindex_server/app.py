"""Main ASGI application entry point.

Routes:
    GET  /                                  liveness text
    GET  /health                            loaded, known and unavailable indexes
    GET  /metrics                           Prometheus metrics
    GET  /indexes                           all known index names
    POST /indexes/{index}/documents         insert one document
    GET  /indexes/{index}/documents/{id}    fetch one document
    POST /indexes/{index}/bulk              insert {"documents": [...]}
    PUT  /indexes/{index}/mapping           replace {"fields": {...}}
    GET  /indexes/{index}/mapping           current mapping
    GET  /indexes/{index}/search            text search (q, limit, fuzz, scores)
    POST /indexes/{index}/query             structured query DSL
    POST /indexes/{index}/search_vector     nearest-neighbour search

Writes answer 200 once the index file reflects them and 202 when the mutation
is visible but not yet durable (deferred mode, or a failed write).

Usage:
    docindex-server
    PORT=8080 DATA_DIR=/var/lib/docindex docindex-server
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager, suppress
import logging
from typing import Any

import orjson
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.gzip import GZipMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response
from starlette.routing import Route

from docindex_server.config import Settings
from docindex_server.domain.model import FieldMapping
from docindex_server.domain.search import BulkDocuments, MappingUpdate, StructuredQuery, TextQuery, VectorQuery
from docindex_server.errors import DocIndexError, InvalidInputError
from docindex_server.observability import configure_logging, get_metrics, get_metrics_content_type
from docindex_server.observability.access import log_request
from docindex_server.observability.metrics import ERROR_COUNT
from docindex_server.registry import IndexRegistry
from docindex_server.runtime.health import build_health_endpoint
from docindex_server.search.index import WriteResult
from docindex_server.service_layer.index_service import IndexService


logger = logging.getLogger(__name__)


class ORJSONResponse(JSONResponse):
    def render(self, content: Any) -> bytes:
        return orjson.dumps(content)


def _validation_message(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "body"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


async def _read_json(request: Request) -> Any:
    raw = await request.body()
    if not raw.strip():
        raise InvalidInputError("Request body must be a JSON value")
    try:
        return orjson.loads(raw)
    except orjson.JSONDecodeError as exc:
        raise InvalidInputError(f"Malformed JSON body: {exc}") from exc


def _parse(model: type[BaseModel], data: Any) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidInputError(_validation_message(exc)) from exc


def _write_response(payload: dict[str, Any], result: WriteResult) -> ORJSONResponse:
    payload.update(result.to_dict())
    return ORJSONResponse(payload, status_code=200 if result.persisted else 202)


def _build_routes(service: IndexService) -> list[Route]:
    async def homepage(request: Request) -> PlainTextResponse:
        return PlainTextResponse("Hello world")

    async def metrics_endpoint(request: Request) -> Response:
        return Response(get_metrics(), media_type=get_metrics_content_type())

    async def list_indexes(request: Request) -> ORJSONResponse:
        return ORJSONResponse({"indexes": await service.list_indexes()})

    async def insert_document(request: Request) -> ORJSONResponse:
        body = await _read_json(request)
        result = await service.insert_document(request.path_params["index"], body)
        return _write_response({"id": result.id}, result)

    async def get_document(request: Request) -> ORJSONResponse:
        document = await service.get_document(request.path_params["index"], request.path_params["doc_id"])
        return ORJSONResponse(document.to_dict())

    async def bulk_documents(request: Request) -> ORJSONResponse:
        bulk: BulkDocuments = _parse(BulkDocuments, await _read_json(request))
        result = await service.bulk_insert(request.path_params["index"], bulk.documents)
        return _write_response({"ids": list(result.ids)}, result)

    async def put_mapping(request: Request) -> ORJSONResponse:
        update: MappingUpdate = _parse(MappingUpdate, await _read_json(request))
        mapping = FieldMapping(fields=update.fields)
        result = await service.set_mapping(request.path_params["index"], mapping)
        return _write_response({"fields": mapping.to_dict()}, result)

    async def get_mapping(request: Request) -> ORJSONResponse:
        mapping = await service.get_mapping(request.path_params["index"])
        return ORJSONResponse({"fields": mapping.to_dict()})

    async def search_text(request: Request) -> ORJSONResponse:
        query: TextQuery = _parse(TextQuery, dict(request.query_params))
        hits = await service.search_text(request.path_params["index"], query)
        return ORJSONResponse({"hits": [hit.to_dict(include_score=query.scores) for hit in hits]})

    async def structured_query(request: Request) -> ORJSONResponse:
        query: StructuredQuery = _parse(StructuredQuery, await _read_json(request))
        result = await service.query(request.path_params["index"], query)
        return ORJSONResponse(result.to_dict(include_score=query.scores))

    async def search_vector(request: Request) -> ORJSONResponse:
        query: VectorQuery = _parse(VectorQuery, await _read_json(request))
        hits = await service.search_vector(request.path_params["index"], query)
        return ORJSONResponse({"hits": [hit.to_dict(include_score=query.scores) for hit in hits]})

    return [
        Route("/", endpoint=homepage, methods=["GET"]),
        Route("/health", endpoint=build_health_endpoint(service), methods=["GET"]),
        Route("/metrics", endpoint=metrics_endpoint, methods=["GET"]),
        Route("/indexes", endpoint=list_indexes, methods=["GET"]),
        Route("/indexes/{index}/documents", endpoint=insert_document, methods=["POST"]),
        Route("/indexes/{index}/documents/{doc_id:int}", endpoint=get_document, methods=["GET"]),
        Route("/indexes/{index}/bulk", endpoint=bulk_documents, methods=["POST"]),
        Route("/indexes/{index}/mapping", endpoint=put_mapping, methods=["PUT"]),
        Route("/indexes/{index}/mapping", endpoint=get_mapping, methods=["GET"]),
        Route("/indexes/{index}/search", endpoint=search_text, methods=["GET"]),
        Route("/indexes/{index}/query", endpoint=structured_query, methods=["POST"]),
        Route("/indexes/{index}/search_vector", endpoint=search_vector, methods=["POST"]),
    ]


async def _handle_index_error(request: Request, exc: Exception) -> ORJSONResponse:
    assert isinstance(exc, DocIndexError)
    ERROR_COUNT.labels(code=exc.code).inc()
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc)
    return ORJSONResponse({"error": exc.to_dict()}, status_code=exc.status_code)


async def _handle_unexpected_error(request: Request, exc: Exception) -> ORJSONResponse:
    ERROR_COUNT.labels(code="internal_error").inc()
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return ORJSONResponse({"error": {"code": "internal_error", "message": "Internal server error"}}, status_code=500)


def create_app(settings: Settings | None = None, service: IndexService | None = None) -> Starlette:
    """Create the ASGI application.

    Args:
        settings: Runtime configuration (read from the environment when omitted)
        service: Pre-built service, mainly for tests sharing a registry

    Returns:
        Starlette application serving the index API
    """
    settings = settings or Settings()
    if service is None:
        service = IndexService(
            IndexRegistry.from_settings(settings),
            default_vector_limit=settings.default_vector_limit,
            default_vector_field=settings.default_vector_field,
        )

    @asynccontextmanager
    async def lifespan(app: Starlette):
        app.state.index_service = service
        flusher: asyncio.Task | None = None
        if not service.registry.persist_on_write:
            flusher = asyncio.create_task(service.run_flusher(settings.flush_interval_seconds))
        try:
            yield
        finally:
            if flusher is not None:
                flusher.cancel()
                with suppress(asyncio.CancelledError):
                    await flusher
            failures = await service.flush()
            if failures:
                logger.error("Shutdown flush left %d indexes unsaved: %s", len(failures), sorted(failures))
            else:
                logger.info("Shutdown flush complete")

    app = Starlette(
        debug=settings.log_level == "debug",
        routes=_build_routes(service),
        exception_handlers={DocIndexError: _handle_index_error, Exception: _handle_unexpected_error},
        lifespan=lifespan,
    )
    app.add_middleware(GZipMiddleware, minimum_size=settings.gzip_minimum_size)
    app.add_middleware(BaseHTTPMiddleware, dispatch=log_request)
    app.state.index_service = service
    logger.info("Index server initialized (data dir %s, persist mode %s)", settings.data_dir, settings.persist_mode)
    return app


def main() -> None:
    """Main entry point for the index server."""
    import uvicorn

    settings = Settings()
    configure_logging(level=settings.log_level, json_output=settings.log_json, access_log=settings.access_log)

    logger.info("Starting docindex-server on %s:%d", settings.host, settings.port)
    logger.info("Health check: http://%s:%d/health", settings.host, settings.port)

    app = create_app(settings)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        log_config=None,  # Don't let uvicorn override our logging config
    )


if __name__ == "__main__":
    main()
