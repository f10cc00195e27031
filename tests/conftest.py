import pytest

from kotoba.application.mastery.difficulty import DifficultyService
from kotoba.application.mastery.review_service import ReviewService
from kotoba.infrastructure.adapters.mastery.memory_store import (
    MemoryMasteryStore,
    MemoryWordCatalog,
)
from kotoba.infrastructure.adapters.mastery.sqlite_store import (
    SqliteDatabase,
    SqliteMasteryStore,
    SqliteWordCatalog,
)


@pytest.fixture
def sqlite_db(tmp_path):
    """A fresh on-disk database per test."""
    db = SqliteDatabase(tmp_path / "kotoba.sqlite", timeout=2.0)
    yield db
    db.close()


@pytest.fixture(params=["memory", "sqlite"])
def backend(request, tmp_path):
    """(store, catalog) for every storage adapter."""
    if request.param == "memory":
        store = MemoryMasteryStore(lock_timeout=2.0)
        yield store, MemoryWordCatalog(store=store)
        return

    db = SqliteDatabase(tmp_path / "kotoba.sqlite", timeout=2.0)
    yield SqliteMasteryStore(db), SqliteWordCatalog(db)
    db.close()


@pytest.fixture
def store(backend):
    return backend[0]


@pytest.fixture
def catalog(backend):
    return backend[1]


@pytest.fixture
def review_service(store, catalog):
    return ReviewService(store, catalog)


@pytest.fixture
def difficulty_service(store, catalog):
    return DifficultyService(store, catalog)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Isolate config and logs from the real user directory
    monkeypatch.setenv("HOME", str(home))
    for var in ("KOTOBA_BACKEND", "KOTOBA_DB_PATH", "KOTOBA_SCORE_THRESHOLD"):
        monkeypatch.delenv(var, raising=False)
    return home
