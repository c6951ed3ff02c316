from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, quote, unquote, urlparse

SEARCH_FALLBACK_BASE_URL = "https://www.google.com/search?q="
SEARCH_FALLBACK_SUFFIX = "stream free"

UNTRUSTED_RANK = 100
# Trusted domain, but the path does not look like a watch page.
OFF_WATCH_PATH_PENALTY = 3
RELEVANCE_THRESHOLD = 0.5


@dataclass(frozen=True)
class TrustedSource:
    name: str
    domain: str
    aliases: tuple[str, ...]
    priority: int
    watch_path_pattern: str


@dataclass(frozen=True)
class LinkLabel:
    name: str
    site: str


TRUSTED_SOURCES: tuple[TrustedSource, ...] = (
    TrustedSource(
        name="iWaatch",
        domain="iwaatch.com",
        aliases=("iwaatch", "i-watch"),
        priority=1,
        watch_path_pattern="/view/",
    ),
    TrustedSource(
        name="WeCima",
        domain="wecima.show",
        aliases=("wecima", "mycima", "my-cima", "wecima.cc", "wecima.top"),
        priority=1,
        watch_path_pattern="/watch/",
    ),
    TrustedSource(
        name="Cima Wbas",
        domain="cimawbas.tv",
        aliases=("cimawbas", "cema-w-bas", "cimawbas.site"),
        priority=1,
        watch_path_pattern="/watch/",
    ),
    TrustedSource(
        name="Akwam",
        domain="akwam.re",
        aliases=("akwam", "akw.am", "akwam.net", "akwam.cx"),
        priority=2,
        watch_path_pattern="/movie/",
    ),
    TrustedSource(
        name="FaselHD",
        domain="faselhd.center",
        aliases=("faselhd", "fasel-hd", "faselhd.top"),
        priority=2,
        watch_path_pattern="/movies/",
    ),
    TrustedSource(
        name="EgyBest",
        domain="egybest.mx",
        aliases=("egybest", "egy-best", "egybest.run", "egybest.news"),
        priority=3,
        watch_path_pattern="/movie/",
    ),
)

BLOCKED_DOMAINS: frozenset[str] = frozenset(
    {
        "youtube.com",
        "youtu.be",
        "vimeo.com",
        "dailymotion.com",
        "tiktok.com",
        "facebook.com",
        "fb.com",
        "instagram.com",
        "twitter.com",
        "x.com",
        "t.me",
        "telegram.me",
        "reddit.com",
        "pinterest.com",
        "bing.com",
        "duckduckgo.com",
        "yahoo.com",
    }
)
# Any host with a `google` label (google.com, google.com.eg, vertexaisearch.cloud.google.com).
_BLOCKED_HOST_LABELS: frozenset[str] = frozenset({"google"})

_LISTING_SEGMENTS: frozenset[str] = frozenset(
    {"search", "category", "categories", "genre", "genres", "tag", "tags", "browse", "filter"}
)
_LISTING_TAIL_SEGMENTS: frozenset[str] = frozenset(
    {"movie", "movies", "series", "films", "page", "home", "index", "trending", "latest", "list"}
)
_SEARCH_QUERY_KEYS: frozenset[str] = frozenset({"s", "q", "search", "query", "keyword"})

_TITLE_STOP_WORDS: frozenset[str] = frozenset(
    {"the", "an", "of", "and", "movie", "film", "series", "season", "episode", "فيلم", "مسلسل"}
)
_TOKEN_PATTERN = re.compile(r"[^\W_]+")


def is_absolute_url(url: str) -> bool:
    if not url or any(character.isspace() or ord(character) < 32 for character in url):
        return False
    try:
        parsed = urlparse(url)
        hostname = parsed.hostname
    except ValueError:
        return False
    if parsed.scheme not in {"http", "https"} or not hostname:
        return False
    return "." in hostname


def url_hostname(url: str) -> str | None:
    try:
        hostname = urlparse(url).hostname
    except ValueError:
        return None
    if not hostname:
        return None
    hostname = hostname.lower()
    if hostname.startswith("www."):
        hostname = hostname[4:]
    return hostname


def match_trusted_source(url: str) -> TrustedSource | None:
    hostname = url_hostname(url)
    if hostname is None:
        return None
    for source in TRUSTED_SOURCES:
        if _host_matches_domain(hostname, source.domain):
            return source
        for alias in source.aliases:
            if "." in alias:
                if _host_matches_domain(hostname, alias):
                    return source
            elif alias in hostname:
                return source
    return None


def trust_rank(url: str) -> int:
    """Lower ranks sort first: trusted watch pages, other trusted pages, then the rest."""
    source = match_trusted_source(url)
    if source is None:
        return UNTRUSTED_RANK
    path = _url_path(url).lower()
    if source.watch_path_pattern and source.watch_path_pattern in path:
        return source.priority
    return source.priority + OFF_WATCH_PATH_PENALTY


def is_blocked_domain(url: str) -> bool:
    hostname = url_hostname(url)
    if hostname is None:
        return True
    if any(_host_matches_domain(hostname, domain) for domain in BLOCKED_DOMAINS):
        return True
    return any(label in _BLOCKED_HOST_LABELS for label in hostname.split("."))


def is_listing_page(url: str) -> bool:
    try:
        parsed = urlparse(url)
    except ValueError:
        return True
    segments = [segment.lower() for segment in unquote(parsed.path).split("/") if segment]
    if not segments:
        return True
    if any(segment in _LISTING_SEGMENTS for segment in segments):
        return True
    tail = segments[-1]
    if tail in _LISTING_TAIL_SEGMENTS:
        return True
    if tail.isdigit() and len(segments) >= 2 and segments[-2] == "page":
        return True
    query_keys = {key.lower() for key, _ in parse_qsl(parsed.query, keep_blank_values=True)}
    return bool(query_keys & _SEARCH_QUERY_KEYS)


def title_tokens(title: str) -> list[str]:
    tokens: list[str] = []
    for token in _TOKEN_PATTERN.findall(title.lower()):
        if len(token) < 2 or token in _TITLE_STOP_WORDS:
            continue
        if token not in tokens:
            tokens.append(token)
    return tokens


def relevance_score(url: str, title: str) -> float:
    """Fraction of title tokens that appear in the decoded URL host, path and query."""
    tokens = title_tokens(title)
    if not tokens:
        return 0.0
    try:
        parsed = urlparse(url)
    except ValueError:
        return 0.0
    url_text = unquote(f"{parsed.netloc} {parsed.path} {parsed.query}").lower()
    url_tokens = set(_TOKEN_PATTERN.findall(url_text))
    compact = "".join(_TOKEN_PATTERN.findall(url_text))

    matched = 0
    for token in tokens:
        if token in url_tokens or (len(token) >= 4 and token in compact):
            matched += 1
    return matched / len(tokens)


def is_relevant(url: str, *titles: str) -> bool:
    usable = [title for title in titles if title_tokens(title)]
    if not usable:
        # Nothing to compare against; relevance cannot rule the link out.
        return True
    return max(relevance_score(url, title) for title in usable) >= RELEVANCE_THRESHOLD


def search_fallback_url(title: str) -> str:
    query = f"{title.strip()} {SEARCH_FALLBACK_SUFFIX}".strip()
    return f"{SEARCH_FALLBACK_BASE_URL}{quote(query, safe='')}"


def is_search_fallback_url(url: str) -> bool:
    return url.startswith(SEARCH_FALLBACK_BASE_URL) or "google.com/search" in url


def describe_link(url: str) -> LinkLabel:
    if is_search_fallback_url(url):
        return LinkLabel(name="Google advanced search", site="Google")
    source = match_trusted_source(url)
    if source is not None:
        return LinkLabel(name=f"{source.name} server", site=source.name)
    hostname = url_hostname(url) if is_absolute_url(url) else None
    if hostname is None:
        return LinkLabel(name="Direct watch link", site="External")
    return LinkLabel(name=f"External server: {hostname.split('.')[0]}", site=hostname)


def _host_matches_domain(hostname: str, domain: str) -> bool:
    return hostname == domain or hostname.endswith(f".{domain}")


def _url_path(url: str) -> str:
    try:
        return unquote(urlparse(url).path)
    except ValueError:
        return ""
