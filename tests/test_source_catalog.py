from __future__ import annotations

import pytest

from backend.app.services.source_catalog import (
    UNTRUSTED_RANK,
    describe_link,
    is_absolute_url,
    is_blocked_domain,
    is_listing_page,
    is_relevant,
    is_search_fallback_url,
    match_trusted_source,
    relevance_score,
    search_fallback_url,
    title_tokens,
    trust_rank,
    url_hostname,
)


@pytest.mark.parametrize(
    ("url", "expected"),
    [
        ("https://wecima.show/watch/heat", True),
        ("http://films.example.net/x", True),
        ("ftp://films.example.net/x", False),
        ("https://localhost/x", False),
        ("https://films.example.net/has space", False),
        ("/watch/heat", False),
        ("", False),
    ],
)
def test_is_absolute_url(url: str, expected: bool) -> None:
    assert is_absolute_url(url) is expected


def test_url_hostname_strips_www_prefix() -> None:
    assert url_hostname("https://www.Akwam.re/movie/heat") == "akwam.re"
    assert url_hostname("not a url") is None


def test_trusted_sources_match_domains_and_aliases() -> None:
    wecima = match_trusted_source("https://mycima.example.cc/watch/heat")
    akwam = match_trusted_source("https://sub.akwam.re/movie/heat")

    assert wecima is not None and wecima.name == "WeCima"
    assert akwam is not None and akwam.name == "Akwam"
    assert match_trusted_source("https://films.example.net/heat") is None


def test_trust_rank_prefers_watch_paths() -> None:
    assert trust_rank("https://wecima.show/watch/heat") == 1
    assert trust_rank("https://wecima.show/info/heat") == 4
    assert trust_rank("https://egybest.mx/movie/heat") == 3
    assert trust_rank("https://films.example.net/heat") == UNTRUSTED_RANK


@pytest.mark.parametrize(
    "url",
    [
        "https://www.youtube.com/watch?v=abc",
        "https://m.facebook.com/video/1",
        "https://www.google.com/search?q=heat",
        "https://google.com.eg/url?q=heat",
        "https://vertexaisearch.cloud.google.com/grounding-api-redirect/abc",
    ],
)
def test_non_content_domains_are_blocked(url: str) -> None:
    assert is_blocked_domain(url) is True


def test_content_domain_is_not_blocked() -> None:
    assert is_blocked_domain("https://films.example.net/watch/heat") is False


@pytest.mark.parametrize(
    "url",
    [
        "https://films.example.net/",
        "https://films.example.net/search/heat",
        "https://films.example.net/genre/crime/heat",
        "https://films.example.net/movies",
        "https://films.example.net/latest",
        "https://films.example.net/movies/page/3",
        "https://films.example.net/watch?s=heat",
    ],
)
def test_listing_pages_are_detected(url: str) -> None:
    assert is_listing_page(url) is True


def test_detail_page_is_not_listing() -> None:
    assert is_listing_page("https://films.example.net/movies/heat-1995") is False


def test_title_tokens_drop_stop_words_and_duplicates() -> None:
    assert title_tokens("The Lord of the Rings") == ["lord", "rings"]
    assert title_tokens("فيلم الفيل الأزرق") == ["الفيل", "الأزرق"]
    assert title_tokens("  ") == []


def test_relevance_matches_compact_slugs() -> None:
    assert relevance_score("https://films.example.net/watch/thedarkknight", "The Dark Knight") == 1.0
    assert relevance_score("https://films.example.net/watch/heat-1995", "Heat") == 1.0
    assert relevance_score("https://films.example.net/watch/heat-1995", "Titanic") == 0.0


def test_relevance_uses_best_of_titles_and_threshold() -> None:
    url = "https://films.example.net/watch/the-blue-elephant"

    assert is_relevant(url, "الفيل الأزرق", "The Blue Elephant") is True
    assert is_relevant(url, "The Red Balloon") is False
    assert is_relevant(url, "", "  ") is True


def test_search_fallback_url_encodes_title() -> None:
    url = search_fallback_url("الفيل الأزرق")

    assert url.startswith("https://www.google.com/search?q=")
    assert " " not in url
    assert url.endswith("%20stream%20free")
    assert is_search_fallback_url(url) is True
    assert is_search_fallback_url("https://wecima.show/watch/heat") is False


@pytest.mark.parametrize(
    ("url", "name", "site"),
    [
        (search_fallback_url("Heat"), "Google advanced search", "Google"),
        ("https://wecima.show/watch/heat", "WeCima server", "WeCima"),
        ("https://www.films.example.net/watch/heat", "External server: films", "films.example.net"),
        ("not a url", "Direct watch link", "External"),
    ],
)
def test_describe_link_labels(url: str, name: str, site: str) -> None:
    label = describe_link(url)

    assert label.name == name
    assert label.site == site
