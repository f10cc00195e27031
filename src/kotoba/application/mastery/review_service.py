"""
Review Submission Service: Application layer orchestrator.

Authorizes review submissions against the Word Catalog and applies them to
the MasteryStore through the scoring engine.
"""

import logging
from collections.abc import Iterable
from functools import partial
from typing import Any

from kotoba.domain.errors import NotFound, ValidationError
from kotoba.domain.mastery.models import ReviewOutcome, StatsRecord
from kotoba.domain.mastery.ports import MasteryStore, WordCatalog

from .scoring import apply_outcome, utcnow

logger = logging.getLogger(__name__)


def validate_word_id(word_id: Any) -> int:
    if isinstance(word_id, bool) or not isinstance(word_id, int) or word_id <= 0:
        raise ValidationError(f"Invalid word id {word_id!r}: expected a positive integer")
    return word_id


def _bulk_mutator(outcome: ReviewOutcome, batch_started_at, record: StatsRecord) -> StatsRecord:
    # A never-reviewed record enters the batch with the batch start as baseline.
    return apply_outcome(record.with_baseline(batch_started_at), outcome)


class ReviewService:
    """
    Application service for submitting review outcomes.

    Depends on the MasteryStore and WordCatalog ports only.
    """

    def __init__(self, store: MasteryStore, catalog: WordCatalog):
        self._store = store
        self._catalog = catalog

    async def _authorize(self, scope_id: int, word_id: int) -> None:
        owner = await self._catalog.owner_of(word_id)
        if owner is None or owner != scope_id:
            # Same error for missing and foreign words.
            raise NotFound(f"Word {word_id} not found")

    async def submit_review(
        self, scope_id: int, word_id: int, outcome: ReviewOutcome | str
    ) -> StatsRecord:
        """
        Apply a single review outcome to a word owned by the acting scope.

        Authorization and the update are separate steps. A word deleted in
        between is reported as NotFound by the SQLite store; the memory store
        has no word table and may recreate its record.

        Raises:
            ValidationError: Malformed word id or outcome.
            NotFound: The word does not exist or belongs to another scope.
            StorageFailure: The atomic update could not be completed.
        """
        word_id = validate_word_id(word_id)
        outcome = ReviewOutcome.parse(outcome)
        await self._authorize(scope_id, word_id)

        updated = await self._store.update(word_id, partial(apply_outcome, outcome=outcome))
        logger.debug(
            f"Review applied: word={word_id} outcome={outcome.value} score={updated.score}"
        )
        return updated

    async def submit_bulk_reviews(
        self, scope_id: int, reviews: Iterable[tuple[int, ReviewOutcome | str]]
    ) -> int:
        """
        Apply a completed session's outcomes in one all-or-nothing batch.

        Pairs whose word is not owned by the scope are skipped and not counted.
        Duplicated words are applied independently, in order.

        Returns:
            Number of pairs applied.
        """
        parsed = [
            (validate_word_id(word_id), ReviewOutcome.parse(outcome))
            for word_id, outcome in reviews
        ]

        owners: dict[int, int | None] = {}
        for word_id, _ in parsed:
            if word_id not in owners:
                owners[word_id] = await self._catalog.owner_of(word_id)

        accepted = [(wid, outcome) for wid, outcome in parsed if owners[wid] == scope_id]
        skipped = len(parsed) - len(accepted)
        if skipped:
            logger.info(f"Bulk review: skipped {skipped} pair(s) not owned by scope {scope_id}")
        if not accepted:
            return 0

        batch_started_at = utcnow()
        updates = [
            (word_id, partial(_bulk_mutator, outcome, batch_started_at))
            for word_id, outcome in accepted
        ]
        await self._store.update_many(updates)
        logger.info(f"Bulk review: applied {len(accepted)} pair(s) for scope {scope_id}")
        return len(accepted)

    async def ensure_stats(self, scope_id: int, word_id: int) -> StatsRecord:
        """Create the word's record if absent and return it."""
        word_id = validate_word_id(word_id)
        await self._authorize(scope_id, word_id)
        return await self._store.ensure(word_id)

    async def get_stats(self, scope_id: int, word_id: int) -> StatsRecord:
        """Return the word's record, or a zero record if it was never reviewed."""
        word_id = validate_word_id(word_id)
        await self._authorize(scope_id, word_id)
        record = await self._store.get(word_id)
        return record or StatsRecord.empty(word_id)
