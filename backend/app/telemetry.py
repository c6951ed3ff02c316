from __future__ import annotations

from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass
from time import perf_counter
from typing import Any, Literal, Protocol

import structlog

from backend.app.logging_config import TELEMETRY_LOGGER_NAME

TelemetrySinkName = Literal["none", "log"]

# Search text and watch links reveal what a user watches; they never leave the process.
_SENSITIVE_ATTRIBUTE_TOKENS: frozenset[str] = frozenset(
    {"api_key", "authorization", "prompt", "query", "secret", "title", "url"}
)
_MAX_STRING_LENGTH = 160

TelemetryValue = bool | int | float | str | None


class TelemetrySink(Protocol):
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        ...


class NoOpTelemetrySink:
    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        _ = (event_name, attributes)


class StructuredLogTelemetrySink:
    def __init__(self) -> None:
        self._logger = structlog.get_logger(TELEMETRY_LOGGER_NAME)

    def emit(self, *, event_name: str, attributes: Mapping[str, Any]) -> None:
        self._logger.info("telemetry", telemetry_event=event_name, **dict(attributes))


@dataclass(frozen=True)
class TelemetryClient:
    enabled: bool
    sink: TelemetrySink

    @classmethod
    def disabled(cls) -> TelemetryClient:
        return cls(enabled=False, sink=NoOpTelemetrySink())

    def emit(self, event_name: str, **attributes: Any) -> None:
        if not self.enabled:
            return
        self.sink.emit(event_name=event_name, attributes=_sanitize_attributes(attributes))

    @contextmanager
    def span(self, operation: str, **attributes: Any) -> Iterator[dict[str, Any]]:
        """
        Emit `<operation>.start`, then `.finish` or `.error` with `duration_ms`.

        The yielded dict collects outcome attributes (result counts, status codes)
        that are added to the finish event. Exceptions are re-raised unchanged.
        """
        started_at = perf_counter()
        outcome: dict[str, Any] = {}
        self.emit(f"{operation}.start", **attributes)
        try:
            yield outcome
        except Exception as exc:
            self.emit(
                f"{operation}.error",
                **{
                    **attributes,
                    "duration_ms": _elapsed_ms(started_at),
                    "error_type": type(exc).__name__,
                },
            )
            raise
        self.emit(
            f"{operation}.finish",
            **{**attributes, **outcome, "duration_ms": _elapsed_ms(started_at)},
        )


def build_telemetry_client(*, enabled: bool, sink: TelemetrySinkName) -> TelemetryClient:
    if enabled and sink == "log":
        return TelemetryClient(enabled=True, sink=StructuredLogTelemetrySink())
    return TelemetryClient.disabled()


def _elapsed_ms(started_at: float) -> int:
    return int((perf_counter() - started_at) * 1000)


def _sanitize_attributes(attributes: Mapping[str, Any]) -> dict[str, TelemetryValue]:
    sanitized: dict[str, TelemetryValue] = {}
    for raw_key, raw_value in attributes.items():
        key = str(raw_key).strip().lower()
        if not key:
            continue
        if any(token in key for token in _SENSITIVE_ATTRIBUTE_TOKENS):
            sanitized[key] = "[redacted]"
            continue
        sanitized[key] = _sanitize_value(raw_value)
    return sanitized


def _sanitize_value(value: Any) -> TelemetryValue:
    if value is None or isinstance(value, bool | int | float):
        return value
    if isinstance(value, str):
        compact = " ".join(value.split())
        if len(compact) <= _MAX_STRING_LENGTH:
            return compact
        return f"{compact[:_MAX_STRING_LENGTH]}..."
    if isinstance(value, list | tuple | set | frozenset | dict):
        # Collections (genres, sources, movie batches) are reported by size only.
        return len(value)
    return type(value).__name__
