"""
Scoring engine: turns a review outcome into counter and score deltas.

This is a pure computation module with no I/O.
"""

from dataclasses import replace
from datetime import datetime, timezone

from kotoba.domain.constants import FAIL_DELTA, PARTIAL_DELTA, SUCCESS_DELTA
from kotoba.domain.mastery.models import ReviewOutcome, StatsRecord

SCORE_DELTAS: dict[ReviewOutcome, int] = {
    ReviewOutcome.SUCCESS: SUCCESS_DELTA,
    ReviewOutcome.PARTIAL: PARTIAL_DELTA,
    ReviewOutcome.FAIL: FAIL_DELTA,
}

_COUNTER_FIELDS: dict[ReviewOutcome, str] = {
    ReviewOutcome.SUCCESS: "success_count",
    ReviewOutcome.PARTIAL: "partial_count",
    ReviewOutcome.FAIL: "fail_count",
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def score_delta(outcome: ReviewOutcome) -> int:
    return SCORE_DELTAS[outcome]


def apply_outcome(
    record: StatsRecord, outcome: ReviewOutcome, now: datetime | None = None
) -> StatsRecord:
    """
    Apply one review outcome to a record.

    Exactly one counter moves by one, the score moves by the outcome's delta
    and last_reviewed_at becomes ``now``. Every other field is unchanged.

    Args:
        record: Current state.
        outcome: The learner's self-assessment.
        now: Review time; defaults to the current UTC time.

    Returns:
        The next record state.
    """
    counter = _COUNTER_FIELDS[outcome]
    return replace(
        record,
        **{counter: getattr(record, counter) + 1},
        score=record.score + SCORE_DELTAS[outcome],
        last_reviewed_at=now or utcnow(),
    )
