from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal, cast
from urllib.error import HTTPError, URLError
from urllib.parse import quote, urljoin, urlsplit
from urllib.request import HTTPRedirectHandler, Request, build_opener, urlopen

from backend.app.services.movie_normalizer import DiscoveryError

LOGGER = logging.getLogger("cinema_flash.gemini")

MIN_API_KEY_LENGTH = 10
GROUNDING_REDIRECT_HOST = "vertexaisearch.cloud.google.com"
_USER_AGENT = "cinema-flash/0.1"
_MOVIE_FIELDS: tuple[str, ...] = (
    "id",
    "title",
    "originalTitle",
    "year",
    "rating",
    "poster",
    "type",
    "languageStatus",
    "genre",
    "description",
    "quality",
)


class UpstreamUnavailableError(DiscoveryError):
    pass


class RateLimitedError(DiscoveryError):
    def __init__(self, message: str, *, retry_after_seconds: int | None = None) -> None:
        super().__init__(message)
        self.retry_after_seconds = retry_after_seconds


class CredentialMissingError(DiscoveryError):
    pass


class CredentialInvalidError(CredentialMissingError):
    pass


class _NoRedirectHandler(HTTPRedirectHandler):
    def redirect_request(self, *args: Any, **kwargs: Any) -> None:
        return None


@dataclass(frozen=True)
class GenerationResult:
    payload_text: str
    grounding_urls: tuple[str, ...]


@dataclass(frozen=True)
class ApiKeyDiagnostics:
    status: Literal["missing", "invalid_length", "detected"]
    message: str
    details: str


def api_key_configured(api_key: str | None) -> bool:
    return api_key is not None and len(api_key) >= MIN_API_KEY_LENGTH


def api_key_diagnostics(api_key: str | None) -> ApiKeyDiagnostics:
    if not api_key:
        return ApiKeyDiagnostics(
            status="missing",
            message="No Gemini API key is configured.",
            details="Set CINEMA_FLASH_GEMINI_API_KEY (or API_KEY) in the environment.",
        )
    if len(api_key) < MIN_API_KEY_LENGTH:
        return ApiKeyDiagnostics(
            status="invalid_length",
            message="The configured Gemini API key is too short to be valid.",
            details=f"Current length: {len(api_key)} characters.",
        )
    masked = f"{api_key[:4]}...{api_key[-3:]}"
    return ApiKeyDiagnostics(
        status="detected",
        message="A Gemini API key is configured.",
        details=f"Key starts with {masked} (length: {len(api_key)} characters).",
    )


class GeminiClient:
    def __init__(
        self,
        *,
        api_key: str | None,
        model: str,
        base_url: str = "https://generativelanguage.googleapis.com/v1beta",
        timeout_seconds: float = 30.0,
        grounding_enabled: bool = False,
        result_count: int = 10,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = max(1.0, timeout_seconds)
        self._grounding_enabled = grounding_enabled
        self._result_count = max(1, result_count)

    @property
    def api_key(self) -> str | None:
        return self._api_key

    @property
    def configured(self) -> bool:
        return api_key_configured(self._api_key)

    def generate_movies(self, *, query: str, language: str, media_type: str) -> GenerationResult:
        if not self.configured:
            raise CredentialMissingError("Gemini API key is missing.")

        body = self._request_body(
            prompt=_build_prompt(
                query=query,
                language=language,
                media_type=media_type,
                result_count=self._result_count,
            )
        )
        url = f"{self._base_url}/models/{quote(self._model, safe='')}:generateContent"
        status_code, payload, headers = self._post_json(url, body)

        if status_code == 429:
            raise RateLimitedError(
                "Gemini rate limit exceeded.",
                retry_after_seconds=_retry_after_seconds(headers),
            )
        if status_code in {401, 403}:
            raise CredentialInvalidError(
                f"Gemini rejected the API key (status {status_code})."
            )
        if status_code < 200 or status_code >= 300:
            raise UpstreamUnavailableError(
                f"Gemini request failed with status {status_code}: {_error_message(payload)}"
            )

        text = _candidate_text(payload)
        if text is None:
            raise UpstreamUnavailableError("Gemini returned no candidate text.")
        grounding_urls = self._resolve_grounding_urls(_grounding_urls(payload))
        LOGGER.info(
            "gemini generation finished model=%s chars=%s grounding_urls=%s",
            self._model,
            len(text),
            len(grounding_urls),
        )
        return GenerationResult(payload_text=text, grounding_urls=grounding_urls)

    def _resolve_grounding_urls(self, urls: tuple[str, ...]) -> tuple[str, ...]:
        """
        Replace search redirect links with the pages they point to.

        Redirects that cannot be followed are dropped; other links pass through.
        """
        resolved: list[str] = []
        for url in urls:
            target = self._follow_redirect(url) if _is_grounding_redirect(url) else url
            if target is not None and target not in resolved:
                resolved.append(target)
        return tuple(resolved)

    def _follow_redirect(self, url: str) -> str | None:
        opener = build_opener(_NoRedirectHandler())
        request = Request(url, headers={"user-agent": _USER_AGENT}, method="HEAD")
        try:
            with opener.open(request, timeout=self._timeout_seconds) as response:
                location = response.headers.get("Location")
        except HTTPError as exc:
            location = exc.headers.get("Location") if 300 <= exc.code < 400 else None
        except (URLError, TimeoutError, OSError) as exc:
            LOGGER.debug("grounding redirect failed error_type=%s", type(exc).__name__)
            return None
        if not isinstance(location, str) or not location.strip():
            LOGGER.debug("grounding redirect returned no location")
            return None
        return urljoin(url, location.strip())

    def _request_body(self, *, prompt: str) -> dict[str, Any]:
        body: dict[str, Any] = {"contents": [{"role": "user", "parts": [{"text": prompt}]}]}
        if self._grounding_enabled:
            # Search grounding cannot be combined with a JSON response schema.
            body["tools"] = [{"google_search": {}}]
            return body
        body["generationConfig"] = {
            "responseMimeType": "application/json",
            "responseSchema": _response_schema(),
        }
        return body

    def _post_json(
        self,
        url: str,
        body: dict[str, Any],
    ) -> tuple[int, dict[str, Any], Any]:
        assert self._api_key is not None
        request = Request(
            url,
            data=json.dumps(body, ensure_ascii=False).encode("utf-8"),
            headers={
                "x-goog-api-key": self._api_key,
                "content-type": "application/json",
                "accept": "application/json",
                "user-agent": _USER_AGENT,
            },
            method="POST",
        )

        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                status_code = int(response.getcode() or 0)
                raw_body = response.read().decode("utf-8", errors="replace")
                response_headers = response.headers
        except HTTPError as exc:
            status_code = int(exc.code)
            raw_body = exc.read().decode("utf-8", errors="replace")
            response_headers = exc.headers
        except (URLError, TimeoutError, OSError) as exc:
            raise UpstreamUnavailableError(f"Gemini request failed: {exc}") from exc

        return status_code, _parse_json_dict(raw_body), response_headers


def _build_prompt(*, query: str, language: str, media_type: str, result_count: int) -> str:
    return (
        f'Find movies or series matching the name: "{query}".\n'
        f'Requested type: "{media_type}", translation status: "{language}".\n'
        f"Answer with JSON only: a list of {result_count} items.\n"
        f"Each item has: {', '.join(_MOVIE_FIELDS)}, and sources "
        "(a list of direct watch page URLs, may be empty).\n"
        "Make the data realistic, as an Arabic movie site would present it."
    )


def _response_schema() -> dict[str, Any]:
    string_schema: dict[str, Any] = {"type": "STRING"}
    properties: dict[str, Any] = {field_name: string_schema for field_name in _MOVIE_FIELDS}
    properties["rating"] = {"type": "NUMBER"}
    properties["genre"] = {"type": "ARRAY", "items": string_schema}
    properties["sources"] = {"type": "ARRAY", "items": string_schema}
    return {
        "type": "ARRAY",
        "items": {
            "type": "OBJECT",
            "properties": properties,
            "required": list(_MOVIE_FIELDS),
        },
    }


def _parse_json_dict(raw_body: str) -> dict[str, Any]:
    try:
        parsed = json.loads(raw_body)
    except json.JSONDecodeError:
        return {}
    if not isinstance(parsed, dict):
        return {}
    return cast(dict[str, Any], parsed)


def _first_candidate(payload: dict[str, Any]) -> dict[str, Any] | None:
    candidates = payload.get("candidates")
    if not isinstance(candidates, list) or not candidates:
        return None
    first = cast(list[object], candidates)[0]
    if not isinstance(first, dict):
        return None
    return cast(dict[str, Any], first)


def _candidate_text(payload: dict[str, Any]) -> str | None:
    candidate = _first_candidate(payload)
    if candidate is None:
        return None
    content = candidate.get("content")
    if not isinstance(content, dict):
        return None
    parts = cast(dict[str, Any], content).get("parts")
    if not isinstance(parts, list):
        return None

    texts: list[str] = []
    for part in cast(list[object], parts):
        if isinstance(part, dict):
            text = cast(dict[str, Any], part).get("text")
            if isinstance(text, str):
                texts.append(text)
    joined = "".join(texts).strip()
    return joined or None


def _grounding_urls(payload: dict[str, Any]) -> tuple[str, ...]:
    candidate = _first_candidate(payload)
    if candidate is None:
        return ()
    metadata = candidate.get("groundingMetadata")
    if not isinstance(metadata, dict):
        return ()
    chunks = cast(dict[str, Any], metadata).get("groundingChunks")
    if not isinstance(chunks, list):
        return ()

    urls: list[str] = []
    for chunk in cast(list[object], chunks):
        if not isinstance(chunk, dict):
            continue
        web = cast(dict[str, Any], chunk).get("web")
        if not isinstance(web, dict):
            continue
        uri = cast(dict[str, Any], web).get("uri")
        if isinstance(uri, str) and uri.strip():
            urls.append(uri.strip())
    return tuple(urls)


def _is_grounding_redirect(url: str) -> bool:
    host = (urlsplit(url).hostname or "").lower()
    return host == GROUNDING_REDIRECT_HOST or host.endswith(f".{GROUNDING_REDIRECT_HOST}")


def _error_message(payload: dict[str, Any]) -> str:
    error = payload.get("error")
    if isinstance(error, dict):
        message = cast(dict[str, Any], error).get("message")
        if isinstance(message, str) and message.strip():
            return message.strip()
    return "no error detail"


def _retry_after_seconds(headers: Any) -> int | None:
    if headers is None:
        return None
    raw_value = headers.get("Retry-After")
    if not isinstance(raw_value, str):
        return None
    try:
        return max(1, int(raw_value.strip()))
    except ValueError:
        return None
