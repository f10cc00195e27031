"""
Mastery Backend Factory
Centralizes the logic for selecting the storage adapters and wiring services.
"""

import logging
from dataclasses import dataclass

from kotoba.application.config import AppConfig
from kotoba.application.mastery.difficulty import DifficultyParams, DifficultyService
from kotoba.application.mastery.review_service import ReviewService
from kotoba.domain.mastery.ports import MasteryStore, WordCatalog
from kotoba.infrastructure.adapters.mastery.memory_store import (
    MemoryMasteryStore,
    MemoryWordCatalog,
)
from kotoba.infrastructure.adapters.mastery.sqlite_store import (
    SqliteDatabase,
    SqliteMasteryStore,
    SqliteWordCatalog,
)

logger = logging.getLogger(__name__)


@dataclass
class MasteryServices:
    """Everything a transport needs, built from one AppConfig."""

    store: MasteryStore
    catalog: WordCatalog
    reviews: ReviewService
    difficulty: DifficultyService
    database: SqliteDatabase | None = None

    def close(self) -> None:
        if self.database is not None:
            self.database.close()


def get_mastery_backend(
    config: AppConfig,
) -> tuple[MasteryStore, WordCatalog, SqliteDatabase | None]:
    """
    Returns the store and catalog implementations selected by config.
    """
    if config.backend == "memory":
        store = MemoryMasteryStore(lock_timeout=config.sqlite_timeout)
        return store, MemoryWordCatalog(store=store), None

    db = SqliteDatabase(config.db_path, timeout=config.sqlite_timeout)
    logger.debug(f"Using SQLite database at {config.db_path}")
    return SqliteMasteryStore(db), SqliteWordCatalog(db), db


def difficulty_params_from_config(config: AppConfig) -> DifficultyParams:
    return DifficultyParams(
        score_threshold=config.score_threshold,
        min_attempts=config.min_attempts,
        fail_rate_threshold=config.fail_rate_threshold,
    )


def build_services(config: AppConfig) -> MasteryServices:
    store, catalog, db = get_mastery_backend(config)
    return MasteryServices(
        store=store,
        catalog=catalog,
        reviews=ReviewService(store, catalog),
        difficulty=DifficultyService(
            store, catalog, default_params=difficulty_params_from_config(config)
        ),
        database=db,
    )
