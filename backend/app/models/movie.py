from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from backend.app.services.source_catalog import is_absolute_url

MediaType = Literal["movie", "series"]
LanguageStatus = Literal["subtitled", "dubbed", "original"]

PLACEHOLDER_POSTER_TEMPLATE = "https://picsum.photos/seed/{movie_id}/400/600"


def _default_str_list() -> list[str]:
    return []


class Movie(BaseModel):
    """Canonical movie record shared by search results and stored collections."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str = Field(min_length=1)
    title: str = ""
    original_title: str = Field(default="", alias="originalTitle")
    year: str = ""
    rating: float = 0.0
    poster: str = ""
    type: MediaType = "movie"
    language_status: LanguageStatus = Field(default="original", alias="languageStatus")
    genre: list[str] = Field(default_factory=_default_str_list)
    description: str = ""
    quality: str = ""
    duration: str | None = None
    sources: list[str] = Field(default_factory=_default_str_list)

    @field_validator("id")
    @classmethod
    def _strip_id(cls, value: str) -> str:
        stripped = value.strip()
        if not stripped:
            raise ValueError("movie id must not be blank")
        return stripped

    @field_validator("sources")
    @classmethod
    def _keep_absolute_sources(cls, value: list[str]) -> list[str]:
        kept: list[str] = []
        for raw_url in value:
            url = raw_url.strip()
            if is_absolute_url(url) and url not in kept:
                kept.append(url)
        return kept

    @property
    def placeholder_poster(self) -> str:
        return PLACEHOLDER_POSTER_TEMPLATE.format(movie_id=self.id)

    @property
    def display_title(self) -> str:
        return self.title or self.original_title or self.id


class StoredMovie(Movie):
    """A movie persisted in a collection, stamped with its last write time."""

    timestamp: datetime

    def to_movie(self) -> Movie:
        return Movie.model_validate(self.model_dump(exclude={"timestamp"}))


class RawMovieCandidate(BaseModel):
    """
    One object from a generation payload before normalization.

    Every field is optional; missing values become defaults during conversion.
    Values of the wrong shape fail validation instead of being coerced.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: str | int | None = None
    title: str | None = None
    original_title: str | None = Field(default=None, alias="originalTitle")
    year: str | int | None = None
    rating: float | None = None
    poster: str | None = None
    type: str | None = None
    language_status: str | None = Field(default=None, alias="languageStatus")
    genre: list[str] | None = None
    description: str | None = None
    quality: str | None = None
    duration: str | int | None = None
    sources: list[str] | None = None

    @field_validator("genre", mode="before")
    @classmethod
    def _split_genre_text(cls, value: object) -> object:
        if isinstance(value, str):
            return [part for part in (piece.strip() for piece in value.split(",")) if part]
        return value

    @field_validator("sources", mode="before")
    @classmethod
    def _wrap_single_source(cls, value: object) -> object:
        if isinstance(value, str):
            return [value]
        return value
