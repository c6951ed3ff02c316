from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from backend.app.dependencies import reset_cached_dependencies
from backend.app.main import create_app
from backend.app.models.movie import Movie
from backend.app.repositories.database import Database
from backend.app.repositories.interaction_repository import WATCHLIST, InteractionRepository


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch) -> None:  # pyright: ignore[reportUnusedFunction]
    for name in ("API_KEY", "GEMINI_API_KEY", "CINEMA_FLASH_GEMINI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def _make_movie(movie_id: str = "m1", **overrides: object) -> Movie:
    payload: dict[str, object] = {
        "id": movie_id,
        "title": "الأب الروحي",
        "originalTitle": "The Godfather",
        "year": "1972",
        "rating": 9.2,
        "poster": "https://image.example.org/godfather.jpg",
        "type": "movie",
        "languageStatus": "subtitled",
        "genre": ["Crime", "Drama"],
        "description": "The aging patriarch of an organized crime dynasty.",
        "quality": "1080p",
        "sources": ["https://wecima.show/watch/the-godfather-1972"],
    }
    payload.update(overrides)
    return Movie.model_validate(payload)


@pytest.fixture
def movie_factory() -> Callable[..., Movie]:
    return _make_movie


@pytest.fixture
def repository(tmp_path: Path) -> InteractionRepository:
    return InteractionRepository(Database(tmp_path / "state.db"))


def _seed_watchlist(data_dir: Path) -> None:
    db = Database(data_dir / "state.db")
    db.initialize()
    InteractionRepository(db).put(WATCHLIST, _make_movie("seeded", originalTitle="Heat"))


@pytest.fixture
def client(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    data_dir = tmp_path / "runtime-data"
    data_dir.mkdir(parents=True, exist_ok=True)
    _seed_watchlist(data_dir)

    monkeypatch.setenv("CINEMA_FLASH_DATA_DIR", str(data_dir))
    monkeypatch.setenv("CINEMA_FLASH_GEMINI_API_KEY", "test-gemini-key-123")
    monkeypatch.setenv("CINEMA_FLASH_TELEMETRY_SINK", "none")
    reset_cached_dependencies()

    app = create_app()
    with TestClient(app) as test_client:
        yield test_client

    reset_cached_dependencies()
