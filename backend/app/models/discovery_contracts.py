from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.models.movie import Movie

FilterLanguage = Literal["all", "subtitled", "dubbed"]
FilterType = Literal["all", "movie", "series"]

ErrorCode = Literal[
    "credential_missing",
    "credential_invalid",
    "rate_limited",
    "upstream_unavailable",
    "malformed_response",
    "storage_unavailable",
]


def _default_movies() -> list[Movie]:
    return []


class ApiError(BaseModel):
    model_config = ConfigDict(extra="forbid")

    code: ErrorCode
    message: str
    retryable: bool = False
    retry_after_seconds: int | None = None


class SearchRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    query: str = Field(min_length=1, max_length=200)
    language: FilterLanguage = "all"
    media_type: FilterType = Field(default="all", alias="type")

    @field_validator("query")
    @classmethod
    def _strip_query(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("query must not be blank")
        return stripped


class SearchResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ok: bool
    movies: list[Movie] = Field(default_factory=_default_movies)
    error: ApiError | None = None


class OpenLinkRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    movie: Movie
    url: str = Field(min_length=1, max_length=2048)


class WatchlistToggleRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    movie: Movie


class WatchlistToggleResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    movie_id: str
    in_watchlist: bool


class RemoveResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    removed: bool


class LinkDescription(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str
    name: str
    site: str


class DiagnosticsResponse(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_online: bool
    status: Literal["missing", "invalid_length", "detected"]
    message: str
    details: str
