from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import pytest
import structlog
from fastapi.testclient import TestClient

from backend.app.config import AppSettings
from backend.app.dependencies import reset_cached_dependencies
from backend.app.logging_config import (
    LOG_FILE_NAME,
    TELEMETRY_LOG_FILE_NAME,
    _stream_supports_color,  # pyright: ignore[reportPrivateUsage]
    configure_application_logging,
)
from backend.app.main import create_app, request_scope


def _settings(tmp_path: Path, **overrides: Any) -> AppSettings:
    options: dict[str, Any] = {
        "data_dir": tmp_path,
        "db_path": tmp_path / "state.db",
        "log_dir": tmp_path / "logs",
        "log_level": "INFO",
    }
    options.update(overrides)
    return AppSettings(**options)


def _flush(logger_name: str) -> None:
    for handler in logging.getLogger(logger_name).handlers:
        handler.flush()


def _json_lines(path: Path) -> list[dict[str, object]]:
    return [
        json.loads(line)
        for line in path.read_text(encoding="utf-8").splitlines()
        if line.strip()
    ]


def test_configure_application_logging_creates_files(tmp_path: Path) -> None:
    settings = _settings(tmp_path)

    log_file = configure_application_logging(settings)
    logging.getLogger("cinema_flash.test").info("runtime-log-test title=%s", "الأب الروحي")
    structlog.get_logger("cinema_flash.telemetry").info(
        "telemetry",
        telemetry_event="test.event",
    )

    app_logger = logging.getLogger("cinema_flash")
    assert len(app_logger.handlers) == 2
    assert {handler.level for handler in app_logger.handlers} == {logging.INFO, logging.DEBUG}
    file_handlers = [
        handler for handler in app_logger.handlers if isinstance(handler, logging.FileHandler)
    ]
    assert len(file_handlers) == 1

    telemetry_logger = logging.getLogger("cinema_flash.telemetry")
    assert telemetry_logger.propagate is False
    assert len(telemetry_logger.handlers) == 1
    _flush("cinema_flash")
    _flush("cinema_flash.telemetry")

    assert log_file == settings.log_dir / LOG_FILE_NAME
    parsed_events = _json_lines(log_file)
    runtime_event = next(
        event
        for event in parsed_events
        if str(event.get("event", "")).startswith("runtime-log-test")
    )
    assert runtime_event["event"] == "runtime-log-test title=الأب الروحي"
    assert runtime_event["logger"] == "cinema_flash.test"
    assert runtime_event["level"] == "info"
    assert runtime_event["pathname"]
    assert runtime_event["lineno"]
    assert all(event.get("telemetry_event") != "test.event" for event in parsed_events)

    telemetry_events = _json_lines(settings.log_dir / TELEMETRY_LOG_FILE_NAME)
    telemetry_event = next(
        event for event in telemetry_events if event.get("telemetry_event") == "test.event"
    )
    assert telemetry_event["logger"] == "cinema_flash.telemetry"


def test_configure_application_logging_is_idempotent(tmp_path: Path) -> None:
    settings = _settings(tmp_path, log_level="warning")

    configure_application_logging(settings)
    configure_application_logging(settings)

    app_logger = logging.getLogger("cinema_flash")
    assert len(app_logger.handlers) == 2
    assert {handler.level for handler in app_logger.handlers} == {logging.WARNING, logging.DEBUG}
    assert len(logging.getLogger("cinema_flash.telemetry").handlers) == 1


def test_unknown_log_level_falls_back_to_info(tmp_path: Path) -> None:
    configure_application_logging(_settings(tmp_path, log_level="chatty"))

    levels = {handler.level for handler in logging.getLogger("cinema_flash").handlers}
    assert levels == {logging.INFO, logging.DEBUG}


def test_app_lifespan_configures_logging_under_data_dir(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    data_dir = tmp_path / "lifespan-data"
    monkeypatch.setenv("CINEMA_FLASH_DATA_DIR", str(data_dir))
    monkeypatch.setenv("CINEMA_FLASH_TELEMETRY_SINK", "log")
    reset_cached_dependencies()

    try:
        with TestClient(create_app()) as client:
            response = client.get("/health", headers={"X-Request-ID": "req-lifespan"})
            assert response.status_code == 200
    finally:
        reset_cached_dependencies()

    _flush("cinema_flash")
    _flush("cinema_flash.telemetry")
    assert (data_dir / "logs" / LOG_FILE_NAME).exists()
    telemetry_events = _json_lines(data_dir / "logs" / TELEMETRY_LOG_FILE_NAME)
    finish_event = next(
        event
        for event in telemetry_events
        if event.get("telemetry_event") == "http.request.finish"
    )
    assert finish_event["request_id"] == "req-lifespan"
    assert finish_event["status_code"] == 200


def test_stream_supports_color_detects_tty() -> None:
    class _TTY:
        def isatty(self) -> bool:
            return True

    class _Pipe:
        def isatty(self) -> bool:
            return False

    class _Broken:
        def isatty(self) -> bool:
            raise RuntimeError("boom")

    assert _stream_supports_color(_TTY()) is True
    assert _stream_supports_color(_Pipe()) is False
    assert _stream_supports_color(_Broken()) is False
    assert _stream_supports_color(object()) is False


def test_server_loggers_share_app_handlers(tmp_path: Path) -> None:
    settings = _settings(tmp_path)

    log_file = configure_application_logging(settings)
    logging.getLogger("uvicorn.error").info("Started server process [%d]", 1)
    _flush("uvicorn.error")

    app_handlers = set(logging.getLogger("cinema_flash").handlers)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        server_logger = logging.getLogger(name)
        assert server_logger.propagate is False
        assert set(server_logger.handlers) == app_handlers

    server_event = next(
        event for event in _json_lines(log_file) if event.get("logger") == "uvicorn.error"
    )
    assert server_event["event"] == "Started server process [1]"


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("/collections/watchlist", {"collection": "watchlist"}),
        ("/collections/history/tt0068646", {"collection": "history", "movie_id": "tt0068646"}),
        (
            "/interactions/watchlist/toggle",
            {"interaction": "watchlist/toggle", "collection": "watchlist"},
        ),
        ("/interactions/open-link", {"interaction": "open-link", "collection": "history"}),
        ("/movies/search", {}),
        ("/", {}),
    ],
)
def test_request_scope_reads_collection_context(path: str, expected: dict[str, str]) -> None:
    assert request_scope(path) == expected


def test_request_telemetry_carries_collection_context(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    data_dir = tmp_path / "scoped-data"
    monkeypatch.setenv("CINEMA_FLASH_DATA_DIR", str(data_dir))
    monkeypatch.setenv("CINEMA_FLASH_TELEMETRY_SINK", "log")
    reset_cached_dependencies()

    try:
        with TestClient(create_app()) as client:
            response = client.put(
                "/collections/watchlist/x1",
                json={"id": "x1", "title": "Heat"},
                headers={"X-Request-ID": "req-scoped"},
            )
            assert response.status_code == 200
    finally:
        reset_cached_dependencies()

    _flush("cinema_flash.telemetry")
    telemetry_events = _json_lines(data_dir / "logs" / TELEMETRY_LOG_FILE_NAME)
    finish_event = next(
        event
        for event in telemetry_events
        if event.get("telemetry_event") == "http.request.finish"
        and event.get("request_id") == "req-scoped"
    )
    assert finish_event["collection"] == "watchlist"
    assert finish_event["movie_id"] == "x1"
    assert finish_event["status_code"] == 200
