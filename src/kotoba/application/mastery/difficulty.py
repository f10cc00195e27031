"""
Difficulty Classifier.

Ranks and filters words by derived difficulty. The classification itself is
pure; DifficultyService only joins the catalog with the store.
"""

import logging
from collections.abc import Iterable

from pydantic import BaseModel, Field

from kotoba.domain.constants import (
    DEFAULT_FAIL_RATE_THRESHOLD,
    DEFAULT_MIN_ATTEMPTS,
    DEFAULT_SCORE_THRESHOLD,
)
from kotoba.domain.mastery.models import SeriesSummary, StatsRecord, Word, WordWithStats
from kotoba.domain.mastery.ports import MasteryStore, WordCatalog

logger = logging.getLogger(__name__)


class DifficultyParams(BaseModel):
    """
    Tunable thresholds for the classifier.

    A word is difficult if score <= score_threshold, OR if it has at least
    min_attempts attempts and a fail rate strictly above fail_rate_threshold.
    """

    score_threshold: int = DEFAULT_SCORE_THRESHOLD
    min_attempts: int = Field(default=DEFAULT_MIN_ATTEMPTS, ge=0)
    fail_rate_threshold: float = Field(default=DEFAULT_FAIL_RATE_THRESHOLD, ge=0.0, le=1.0)


def is_difficult(record: StatsRecord, params: DifficultyParams | None = None) -> bool:
    params = params or DifficultyParams()

    # Score clause applies regardless of attempts.
    if record.score <= params.score_threshold:
        return True

    attempts = record.attempts
    if attempts == 0 or attempts < params.min_attempts:
        return False
    return record.fail_count / attempts > params.fail_rate_threshold


def join_stats(
    words: Iterable[Word], records: dict[int, StatsRecord]
) -> list[WordWithStats]:
    """Pair each word with its record, using a zero record when none exists."""
    return [
        WordWithStats(word=w, stats=records.get(w.id) or StatsRecord.empty(w.id))
        for w in words
    ]


def rank_difficult(
    entries: Iterable[WordWithStats], params: DifficultyParams | None = None
) -> list[WordWithStats]:
    """Keep difficult entries, most negative score first, newest word on ties."""
    params = params or DifficultyParams()
    difficult = [e for e in entries if is_difficult(e.stats, params)]
    return sorted(difficult, key=lambda e: (e.stats.score, -e.word_id))


class DifficultyService:
    """
    Read-only query layer over StatsRecord ⋈ Word.
    """

    def __init__(
        self,
        store: MasteryStore,
        catalog: WordCatalog,
        default_params: DifficultyParams | None = None,
    ):
        self._store = store
        self._catalog = catalog
        self._defaults = default_params or DifficultyParams()

    @property
    def default_params(self) -> DifficultyParams:
        return self._defaults

    async def list_words_with_stats(
        self, scope_id: int, tag_id: int | None = None
    ) -> list[WordWithStats]:
        """All words of a scope (or of one series) with their stats, newest first."""
        words = await self._catalog.list_words(scope_id, tag_id=tag_id)
        if not words:
            return []
        records = await self._store.get_many(w.id for w in words)
        return join_stats(words, records)

    async def list_difficult_words(
        self, scope_id: int, params: DifficultyParams | None = None
    ) -> list[WordWithStats]:
        params = params or self._defaults
        entries = await self.list_words_with_stats(scope_id)
        ranked = rank_difficult(entries, params)
        logger.debug(
            f"Difficult words for scope {scope_id}: {len(ranked)}/{len(entries)} "
            f"(params={params.model_dump()})"
        )
        return ranked

    async def list_series(self, scope_id: int) -> list[SeriesSummary]:
        """Word count and total score per series of the scope."""
        tags = await self._catalog.list_tags(scope_id)
        member_ids = {wid for tag in tags for wid in tag.word_ids}
        records = await self._store.get_many(member_ids) if member_ids else {}

        return [
            SeriesSummary(
                tag_id=tag.id,
                tag_name=tag.name,
                words_count=len(set(tag.word_ids)),
                total_score=sum(
                    records[wid].score for wid in set(tag.word_ids) if wid in records
                ),
            )
            for tag in tags
        ]
