from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.api.routes import router
from backend.app.dependencies import get_settings, get_telemetry
from backend.app.logging_config import configure_application_logging
from backend.app.repositories.database import StorageUnavailableError

LOGGER = logging.getLogger("cinema_flash.app")

_COLLECTION_PREFIX = "collections"
_INTERACTION_PREFIX = "interactions"


def health_check() -> dict[str, str]:
    return {"status": "ok"}


@asynccontextmanager
async def app_lifespan(_: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    configure_application_logging(settings)
    LOGGER.info(
        "cinema flash starting model=%s grounding=%s db_path=%s history_max_items=%s "
        "credential_configured=%s",
        settings.gemini_model,
        settings.gemini_grounding_enabled,
        settings.db_path,
        settings.history_max_items,
        bool(settings.gemini_api_key),
    )
    yield
    LOGGER.info("cinema flash stopped")


def request_scope(path: str) -> dict[str, str]:
    """
    Collection and movie context carried by a request path.

    `/collections/{collection}/{movie_id}` yields both keys, `/collections/{collection}`
    only the collection, and `/interactions/{action}` the interaction name.
    """
    segments = [segment for segment in path.split("/") if segment]
    if not segments:
        return {}
    scope: dict[str, str] = {}
    if segments[0] == _COLLECTION_PREFIX and len(segments) >= 2:
        scope["collection"] = segments[1]
        if len(segments) >= 3:
            scope["movie_id"] = segments[2]
    elif segments[0] == _INTERACTION_PREFIX and len(segments) >= 2:
        scope["interaction"] = "/".join(segments[1:])
        if segments[1] == "watchlist":
            scope["collection"] = "watchlist"
        elif segments[1] == "open-link":
            scope["collection"] = "history"
    return scope


async def request_context_middleware(
    request: Request,
    call_next: Callable[[Request], Awaitable[Response]],
) -> Response:
    incoming_request_id = request.headers.get("X-Request-ID", "").strip()
    request_id = incoming_request_id or str(uuid4())
    scope = request_scope(request.url.path)
    attributes: dict[str, Any] = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        **scope,
    }
    context_tokens = bind_contextvars(
        http_request_id=request_id,
        http_method=request.method,
        http_path=request.url.path,
        **scope,
    )
    try:
        with get_telemetry().span("http.request", **attributes) as outcome:
            response = await call_next(request)
            outcome["status_code"] = response.status_code
    finally:
        reset_contextvars(**context_tokens)
    response.headers["X-Request-ID"] = request_id
    return response


async def storage_unavailable_handler(_: Request, exc: Exception) -> JSONResponse:
    LOGGER.error("local store unavailable: %s", exc)
    return JSONResponse(
        status_code=503,
        content={"detail": {"code": "storage_unavailable", "message": str(exc)}},
    )


def create_app() -> FastAPI:
    app = FastAPI(title="Cinema Flash API", version="0.1.0", lifespan=app_lifespan)

    app.middleware("http")(request_context_middleware)
    app.add_exception_handler(StorageUnavailableError, storage_unavailable_handler)
    app.include_router(router)
    app.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        tags=["system"],
        operation_id="health_check",
    )

    return app


app = create_app()
