from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Sequence
from typing import Any, cast

from pydantic import ValidationError

from backend.app.models.movie import LanguageStatus, MediaType, Movie, RawMovieCandidate
from backend.app.services.source_catalog import (
    is_absolute_url,
    is_blocked_domain,
    is_listing_page,
    is_relevant,
    search_fallback_url,
    trust_rank,
)

LOGGER = logging.getLogger("cinema_flash.normalizer")

_CODE_FENCE_PATTERN = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_WRAPPER_KEYS: tuple[str, ...] = ("movies", "results", "items")
_SLUG_PATTERN = re.compile(r"[^\w]+")


class DiscoveryError(Exception):
    """Base class for failures while producing search results."""


class MalformedResponseError(DiscoveryError):
    """The generation payload could not be read as a sequence of movie objects."""


def normalize_movie_payload(
    payload_text: str | None,
    grounding_urls: Sequence[str] | None = None,
) -> list[Movie]:
    raw_items = parse_raw_candidates(payload_text)
    shared_urls = list(grounding_urls or [])

    movies: list[Movie] = []
    used_ids: set[str] = set()
    for index, raw in enumerate(raw_items):
        movie = _movie_from_raw(raw, index=index, grounding_urls=shared_urls)
        movie_id = _unique_id(movie.id, used_ids)
        used_ids.add(movie_id)
        if movie_id != movie.id:
            movie = movie.model_copy(update={"id": movie_id})
        movies.append(movie)

    LOGGER.debug(
        "normalized movie payload count=%s grounding_urls=%s", len(movies), len(shared_urls)
    )
    return movies


def parse_raw_candidates(payload_text: str | None) -> list[RawMovieCandidate]:
    if not isinstance(payload_text, str):
        raise MalformedResponseError("Generation payload is missing.")
    text = _strip_code_fences(payload_text)
    if not text:
        raise MalformedResponseError("Generation payload is empty.")

    parsed = _load_json(text)
    items = _unwrap_items(parsed)
    if items is None:
        raise MalformedResponseError(
            f"Generation payload is not a list of movies (got {type(parsed).__name__})."
        )

    candidates: list[RawMovieCandidate] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            LOGGER.warning(
                "skipping generation item index=%s reason=not_an_object type=%s",
                index,
                type(item).__name__,
            )
            continue
        try:
            candidates.append(RawMovieCandidate.model_validate(item))
        except ValidationError as exc:
            LOGGER.warning(
                "skipping generation item index=%s reason=invalid_fields fields=%s",
                index,
                ",".join(str(error["loc"][0]) for error in exc.errors() if error["loc"]),
            )

    if items and not candidates:
        raise MalformedResponseError(
            f"None of the {len(items)} generation payload items could be read as a movie."
        )
    return candidates


def build_sources(
    candidate_urls: Iterable[object],
    *,
    titles: Sequence[str],
    fallback_title: str,
) -> list[str]:
    """
    Filter, de-duplicate and rank candidate watch links for one title.

    A URL survives when it is an absolute http(s) URL, references the title,
    is not a listing/search page and is not hosted on a non-content domain.
    Ranking is a stable sort by trust rank. When nothing survives, a single
    search URL for `fallback_title` is returned (or nothing without a title).
    """
    seen: set[str] = set()
    deduped: list[str] = []
    for raw_url in candidate_urls:
        if not isinstance(raw_url, str):
            continue
        url = raw_url.strip()
        if not url or url in seen:
            continue
        seen.add(url)
        deduped.append(url)

    kept = [
        url
        for url in deduped
        if is_absolute_url(url)
        and not is_blocked_domain(url)
        and not is_listing_page(url)
        and is_relevant(url, *titles)
    ]
    if kept:
        return sorted(kept, key=trust_rank)

    fallback = fallback_title.strip()
    if not fallback:
        return []
    return [search_fallback_url(fallback)]


def normalize_media_type(value: str | None) -> MediaType:
    lowered = (value or "").strip().lower()
    if lowered in {"tv", "show", "tv show"} or "series" in lowered or "مسلسل" in lowered:
        return "series"
    return "movie"


def normalize_language_status(value: str | None) -> LanguageStatus:
    lowered = (value or "").strip().lower()
    if "dub" in lowered or "مدبلج" in lowered:
        return "dubbed"
    if "sub" in lowered or "مترجم" in lowered:
        return "subtitled"
    return "original"


def _movie_from_raw(
    raw: RawMovieCandidate,
    *,
    index: int,
    grounding_urls: list[str],
) -> Movie:
    title = _text(raw.title)
    original_title = _text(raw.original_title)
    year = _text(raw.year)
    movie_id = _text(raw.id) or _derived_id(index=index, title=original_title or title, year=year)

    candidate_urls: list[object] = [*(raw.sources or []), *grounding_urls]
    sources = build_sources(
        candidate_urls,
        titles=(title, original_title),
        fallback_title=original_title or title,
    )

    return Movie(
        id=movie_id,
        title=title,
        original_title=original_title,
        year=year,
        rating=raw.rating if raw.rating is not None else 0.0,
        poster=_text(raw.poster),
        type=normalize_media_type(raw.type),
        language_status=normalize_language_status(raw.language_status),
        genre=[genre.strip() for genre in raw.genre or [] if genre.strip()],
        description=_text(raw.description),
        quality=_text(raw.quality),
        duration=_text(raw.duration) or None,
        sources=sources,
    )


def _strip_code_fences(text: str) -> str:
    return _CODE_FENCE_PATTERN.sub("", text).strip()


def _load_json(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Grounded (non-JSON-mode) answers may wrap the array in prose.
    start = text.find("[")
    end = text.rfind("]")
    if start == -1 or end <= start:
        raise MalformedResponseError("Generation payload is not valid JSON.")
    try:
        return json.loads(text[start : end + 1])
    except json.JSONDecodeError as exc:
        raise MalformedResponseError(f"Generation payload is not valid JSON: {exc.msg}") from exc


def _unwrap_items(parsed: Any) -> list[object] | None:
    if isinstance(parsed, list):
        return cast(list[object], parsed)
    if isinstance(parsed, dict):
        raw_dict = cast(dict[str, object], parsed)
        for key in _WRAPPER_KEYS:
            value = raw_dict.get(key)
            if isinstance(value, list):
                return cast(list[object], value)
    return None


def _derived_id(*, index: int, title: str, year: str) -> str:
    slug = _SLUG_PATTERN.sub("-", title.lower()).strip("-_") or "movie"
    parts = [f"gen{index + 1}", slug]
    if year:
        parts.append(year)
    return "-".join(parts)


def _unique_id(movie_id: str, used_ids: set[str]) -> str:
    if movie_id not in used_ids:
        return movie_id
    suffix = 2
    while f"{movie_id}-{suffix}" in used_ids:
        suffix += 1
    return f"{movie_id}-{suffix}"


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    return str(value).strip()
