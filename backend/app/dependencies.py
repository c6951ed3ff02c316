from __future__ import annotations

from functools import lru_cache

from backend.app.config import AppSettings, load_settings
from backend.app.repositories.database import Database
from backend.app.repositories.interaction_repository import InteractionRepository
from backend.app.services.discovery_service import DiscoveryService
from backend.app.services.gemini_service import GeminiClient
from backend.app.telemetry import TelemetryClient, build_telemetry_client


@lru_cache(maxsize=1)
def get_settings() -> AppSettings:
    return load_settings()


@lru_cache(maxsize=1)
def get_database() -> Database:
    # Tables are created on first use so a broken data dir only fails store calls.
    return Database(get_settings().db_path)


@lru_cache(maxsize=1)
def get_interaction_repository() -> InteractionRepository:
    settings = get_settings()
    return InteractionRepository(
        get_database(),
        history_max_items=settings.history_max_items,
    )


@lru_cache(maxsize=1)
def get_discovery_service() -> DiscoveryService:
    settings = get_settings()
    return DiscoveryService(
        gemini_client=GeminiClient(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            base_url=settings.gemini_base_url,
            timeout_seconds=settings.gemini_http_timeout_seconds,
            grounding_enabled=settings.gemini_grounding_enabled,
            result_count=settings.search_result_count,
        ),
        interaction_repository=get_interaction_repository(),
        featured_query=settings.featured_query,
        telemetry=get_telemetry(),
    )


@lru_cache(maxsize=1)
def get_telemetry() -> TelemetryClient:
    settings = get_settings()
    return build_telemetry_client(
        enabled=settings.telemetry_enabled,
        sink=settings.telemetry_sink,
    )


def reset_cached_dependencies() -> None:
    get_discovery_service.cache_clear()
    get_interaction_repository.cache_clear()
    get_database.cache_clear()
    get_telemetry.cache_clear()
    get_settings.cache_clear()
