from __future__ import annotations

import logging

from backend.app.models.discovery_contracts import FilterLanguage, FilterType
from backend.app.models.movie import Movie, StoredMovie
from backend.app.repositories.interaction_repository import (
    HISTORY,
    WATCHLIST,
    InteractionRepository,
)
from backend.app.services.gemini_service import (
    ApiKeyDiagnostics,
    GeminiClient,
    api_key_diagnostics,
)
from backend.app.services.movie_normalizer import DiscoveryError, normalize_movie_payload
from backend.app.services.source_catalog import describe_link, is_absolute_url
from backend.app.telemetry import TelemetryClient

LOGGER = logging.getLogger("cinema_flash.discovery")

_LANGUAGE_PROMPT_LABELS: dict[str, str] = {
    "all": "any",
    "subtitled": "subtitled",
    "dubbed": "dubbed",
}
_TYPE_PROMPT_LABELS: dict[str, str] = {
    "all": "movies and series",
    "movie": "movies",
    "series": "series",
}


class DiscoveryService:
    def __init__(
        self,
        *,
        gemini_client: GeminiClient,
        interaction_repository: InteractionRepository,
        featured_query: str,
        telemetry: TelemetryClient | None = None,
    ) -> None:
        self._gemini_client = gemini_client
        self._interactions = interaction_repository
        self._featured_query = featured_query
        self._telemetry = telemetry if telemetry is not None else TelemetryClient.disabled()

    def search(
        self,
        query: str,
        *,
        language: FilterLanguage = "all",
        media_type: FilterType = "all",
    ) -> list[Movie]:
        normalized_query = query.strip()
        if not normalized_query:
            raise ValueError("query must not be blank")

        with self._telemetry.span(
            "movie.search",
            query=normalized_query,
            language=language,
            media_type=media_type,
        ) as outcome:
            generation = self._gemini_client.generate_movies(
                query=normalized_query,
                language=_LANGUAGE_PROMPT_LABELS[language],
                media_type=_TYPE_PROMPT_LABELS[media_type],
            )
            movies = normalize_movie_payload(
                generation.payload_text,
                grounding_urls=generation.grounding_urls,
            )
            outcome["result_count"] = len(movies)
            outcome["grounding_link_count"] = len(generation.grounding_urls)
        return movies

    def featured(self) -> list[Movie]:
        try:
            return self.search(self._featured_query)
        except DiscoveryError:
            LOGGER.warning("featured movies unavailable", exc_info=True)
            return []

    def open_link(self, movie: Movie, url: str) -> StoredMovie:
        if not is_absolute_url(url.strip()):
            raise ValueError("url must be an absolute http/https URL")
        stored = self._interactions.put(HISTORY, movie)
        self._telemetry.emit("interaction.put", collection=HISTORY, movie_id=movie.id)
        LOGGER.info("link opened movie_id=%s site=%s", movie.id, describe_link(url.strip()).site)
        return stored

    def toggle_watchlist(self, movie: Movie) -> bool:
        if self._interactions.contains(WATCHLIST, movie.id):
            self._interactions.remove(WATCHLIST, movie.id)
            self._telemetry.emit("interaction.remove", collection=WATCHLIST, movie_id=movie.id)
            return False
        self._interactions.put(WATCHLIST, movie)
        self._telemetry.emit("interaction.put", collection=WATCHLIST, movie_id=movie.id)
        return True

    def history(self) -> list[StoredMovie]:
        return self._interactions.list_items(HISTORY)

    def watchlist(self) -> list[StoredMovie]:
        return self._interactions.list_items(WATCHLIST)

    def diagnostics(self) -> tuple[bool, ApiKeyDiagnostics]:
        return self._gemini_client.configured, api_key_diagnostics(self._gemini_client.api_key)
