"""
Domain models for word mastery tracking.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from kotoba.domain.errors import ValidationError


class ReviewOutcome(str, Enum):
    """Self-assessment a learner gives after reviewing a word."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAIL = "fail"

    @classmethod
    def parse(cls, value: "ReviewOutcome | str") -> "ReviewOutcome":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(o.value for o in cls)
            raise ValidationError(
                f"Unknown review outcome {value!r} (expected one of: {allowed})"
            ) from None


@dataclass(frozen=True)
class StatsRecord:
    """
    Mastery counters for a single word.

    Attributes:
        word_id: Identifier of the word in the Word Catalog.
        success_count: Number of reviews answered correctly.
        partial_count: Number of reviews answered partially.
        fail_count: Number of failed reviews.
        score: Running sum of per-outcome deltas. Unbounded in both directions.
        last_reviewed_at: UTC time of the last applied review, None if never reviewed.
    """

    word_id: int
    success_count: int = 0
    partial_count: int = 0
    fail_count: int = 0
    score: int = 0
    last_reviewed_at: datetime | None = None

    @classmethod
    def empty(cls, word_id: int) -> "StatsRecord":
        return cls(word_id=word_id)

    @property
    def attempts(self) -> int:
        return self.success_count + self.partial_count + self.fail_count

    @property
    def fail_rate(self) -> float | None:
        if self.attempts == 0:
            return None
        return self.fail_count / self.attempts

    def with_baseline(self, now: datetime) -> "StatsRecord":
        """Return a copy whose missing last_reviewed_at is filled with ``now``."""
        if self.last_reviewed_at is not None:
            return self
        return replace(self, last_reviewed_at=now)


@dataclass(frozen=True)
class Word:
    """
    Vocabulary entry owned by the Word Catalog.

    The engine only reads identity and ownership; text fields are carried
    for display in ranked views.
    """

    id: int
    owner_id: int
    french: str
    romaji: str | None = None
    kana: str | None = None
    kanji: str | None = None
    note: str | None = None
    created_at: datetime | None = None


@dataclass(frozen=True)
class WordWithStats:
    """A word joined with its mastery record (zero record if never reviewed)."""

    word: Word
    stats: StatsRecord

    @property
    def word_id(self) -> int:
        return self.word.id

    @property
    def score(self) -> int:
        return self.stats.score


@dataclass(frozen=True)
class SeriesSummary:
    """Aggregate view of one tag ("series") for a scope."""

    tag_id: int
    tag_name: str
    words_count: int
    total_score: int


@dataclass(frozen=True)
class Tag:
    """A tag of the catalog with the ids of the scope's words carrying it."""

    id: int
    owner_id: int
    name: str
    word_ids: tuple[int, ...] = ()
