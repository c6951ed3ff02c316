from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from structlog.contextvars import bind_contextvars, reset_contextvars

from backend.app.dependencies import get_discovery_service, get_interaction_repository
from backend.app.models.discovery_contracts import (
    ApiError,
    DiagnosticsResponse,
    LinkDescription,
    OpenLinkRequest,
    RemoveResponse,
    SearchRequest,
    SearchResponse,
    WatchlistToggleRequest,
    WatchlistToggleResponse,
)
from backend.app.models.movie import Movie, StoredMovie
from backend.app.repositories.interaction_repository import Collection, InteractionRepository
from backend.app.services.discovery_service import DiscoveryService
from backend.app.services.gemini_service import (
    CredentialInvalidError,
    CredentialMissingError,
    RateLimitedError,
)
from backend.app.services.movie_normalizer import DiscoveryError, MalformedResponseError
from backend.app.services.source_catalog import describe_link

LOGGER = logging.getLogger("cinema_flash.api")

router = APIRouter()


def _discovery_error(exc: DiscoveryError) -> ApiError:
    if isinstance(exc, RateLimitedError):
        return ApiError(
            code="rate_limited",
            message=str(exc),
            retryable=True,
            retry_after_seconds=exc.retry_after_seconds,
        )
    if isinstance(exc, CredentialInvalidError):
        return ApiError(code="credential_invalid", message=str(exc))
    if isinstance(exc, CredentialMissingError):
        return ApiError(code="credential_missing", message=str(exc))
    if isinstance(exc, MalformedResponseError):
        return ApiError(code="malformed_response", message=str(exc), retryable=True)
    return ApiError(code="upstream_unavailable", message=str(exc), retryable=True)


@router.get(
    "/collections/{collection}",
    response_model=list[StoredMovie],
    tags=["collections"],
    operation_id="collection_list",
)
def collection_list(
    collection: Collection,
    repository: Annotated[InteractionRepository, Depends(get_interaction_repository)],
) -> list[StoredMovie]:
    return repository.list_items(collection)


@router.put(
    "/collections/{collection}/{movie_id}",
    response_model=StoredMovie,
    tags=["collections"],
    operation_id="collection_put",
)
def collection_put(
    collection: Collection,
    movie_id: str,
    movie: Movie,
    repository: Annotated[InteractionRepository, Depends(get_interaction_repository)],
) -> StoredMovie:
    if movie.id != movie_id.strip():
        raise HTTPException(
            status_code=400,
            detail=f"Movie id does not match path. path={movie_id} body={movie.id}",
        )
    return repository.put(collection, movie)


@router.delete(
    "/collections/{collection}/{movie_id}",
    response_model=RemoveResponse,
    tags=["collections"],
    operation_id="collection_remove",
)
def collection_remove(
    collection: Collection,
    movie_id: str,
    repository: Annotated[InteractionRepository, Depends(get_interaction_repository)],
) -> RemoveResponse:
    return RemoveResponse(removed=repository.remove(collection, movie_id))


@router.post(
    "/movies/search",
    response_model=SearchResponse,
    tags=["movies"],
    operation_id="movies_search",
)
def movies_search(
    request: SearchRequest,
    service: Annotated[DiscoveryService, Depends(get_discovery_service)],
) -> SearchResponse:
    context_tokens = bind_contextvars(
        search_language=request.language,
        search_media_type=request.media_type,
    )
    try:
        movies = service.search(
            request.query,
            language=request.language,
            media_type=request.media_type,
        )
    except DiscoveryError as exc:
        LOGGER.warning("movie search failed error_type=%s", type(exc).__name__)
        return SearchResponse(ok=False, movies=[], error=_discovery_error(exc))
    finally:
        reset_contextvars(**context_tokens)
    return SearchResponse(ok=True, movies=movies)


@router.get(
    "/movies/featured",
    response_model=SearchResponse,
    tags=["movies"],
    operation_id="movies_featured",
)
def movies_featured(
    service: Annotated[DiscoveryService, Depends(get_discovery_service)],
) -> SearchResponse:
    return SearchResponse(ok=True, movies=service.featured())


@router.post(
    "/interactions/open-link",
    response_model=StoredMovie,
    tags=["interactions"],
    operation_id="interactions_open_link",
)
def interactions_open_link(
    request: OpenLinkRequest,
    service: Annotated[DiscoveryService, Depends(get_discovery_service)],
) -> StoredMovie:
    try:
        return service.open_link(request.movie, request.url)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post(
    "/interactions/watchlist/toggle",
    response_model=WatchlistToggleResponse,
    tags=["interactions"],
    operation_id="interactions_watchlist_toggle",
)
def interactions_watchlist_toggle(
    request: WatchlistToggleRequest,
    service: Annotated[DiscoveryService, Depends(get_discovery_service)],
) -> WatchlistToggleResponse:
    in_watchlist = service.toggle_watchlist(request.movie)
    return WatchlistToggleResponse(movie_id=request.movie.id, in_watchlist=in_watchlist)


@router.get(
    "/links/describe",
    response_model=LinkDescription,
    tags=["movies"],
    operation_id="links_describe",
)
def links_describe(url: str) -> LinkDescription:
    label = describe_link(url.strip())
    return LinkDescription(url=url.strip(), name=label.name, site=label.site)


@router.get(
    "/system/diagnostics",
    response_model=DiagnosticsResponse,
    tags=["system"],
    operation_id="system_diagnostics",
)
def system_diagnostics(
    service: Annotated[DiscoveryService, Depends(get_discovery_service)],
) -> DiagnosticsResponse:
    api_online, diagnostics = service.diagnostics()
    return DiagnosticsResponse(
        api_online=api_online,
        status=diagnostics.status,
        message=diagnostics.message,
        details=diagnostics.details,
    )
