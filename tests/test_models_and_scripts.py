from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

import pytest
from pydantic import ValidationError

from backend.app.models.discovery_contracts import ApiError, SearchRequest, SearchResponse
from backend.app.models.movie import Movie, RawMovieCandidate, StoredMovie
from backend.app.scripts.export_openapi import main as export_openapi


def test_movie_defaults_and_aliases() -> None:
    movie = Movie.model_validate({"id": " m1 ", "originalTitle": "Heat", "languageStatus": "dubbed"})

    assert movie.id == "m1"
    assert movie.original_title == "Heat"
    assert movie.language_status == "dubbed"
    assert movie.genre == []
    assert movie.sources == []
    assert movie.duration is None
    assert movie.display_title == "Heat"
    assert movie.placeholder_poster == "https://picsum.photos/seed/m1/400/600"
    assert movie.model_dump(by_alias=True)["originalTitle"] == "Heat"


def test_movie_sources_drop_non_http_links() -> None:
    movie = Movie.model_validate(
        {
            "id": "m1",
            "sources": [
                "javascript:alert(1)",
                "  https://akwam.re/movie/heat  ",
                "https://akwam.re/movie/heat",
                "data:text/html,hi",
            ],
        }
    )

    assert movie.sources == ["https://akwam.re/movie/heat"]


def test_movie_rejects_blank_id_and_unknown_enums() -> None:
    with pytest.raises(ValidationError):
        Movie.model_validate({"id": "   "})
    with pytest.raises(ValidationError):
        Movie.model_validate({"id": "m1", "type": "anime"})
    with pytest.raises(ValidationError):
        Movie.model_validate({"id": "m1", "languageStatus": "muted"})


def test_stored_movie_strips_timestamp() -> None:
    stored = StoredMovie.model_validate(
        {"id": "m1", "title": "X", "timestamp": datetime(2026, 1, 2, tzinfo=UTC)}
    )

    movie = stored.to_movie()
    assert type(movie) is Movie
    assert movie.title == "X"
    assert "timestamp" not in movie.model_dump()


def test_raw_candidate_accepts_numeric_id_and_year() -> None:
    candidate = RawMovieCandidate.model_validate({"id": 42, "year": 1999, "rating": "7.5"})

    assert candidate.id == 42
    assert candidate.year == 1999
    assert candidate.rating == 7.5


def test_search_request_accepts_type_alias_and_strips_query() -> None:
    request = SearchRequest.model_validate({"query": "  Heat  ", "type": "series"})

    assert request.query == "Heat"
    assert request.media_type == "series"
    assert request.language == "all"
    with pytest.raises(ValidationError):
        SearchRequest.model_validate({"query": "Heat", "unexpected": True})


def test_search_response_default_fields() -> None:
    response = SearchResponse(ok=False, error=ApiError(code="rate_limited", message="slow"))

    assert response.movies == []
    assert response.error is not None
    assert response.error.retryable is False
    assert response.error.retry_after_seconds is None


def test_export_openapi_writes_schema(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    output = export_openapi([])

    assert output == Path("openapi") / "openapi.json"
    schema = cast(dict[str, Any], json.loads((tmp_path / output).read_text(encoding="utf-8")))
    assert schema["info"]["title"] == "Cinema Flash API"
    assert "/movies/search" in schema["paths"]
    assert "/collections/{collection}" in schema["paths"]


def test_export_openapi_accepts_output_path(tmp_path: Path) -> None:
    target = tmp_path / "schemas" / "cinema.json"

    export_openapi([str(target)])

    assert target.exists()
