from datetime import datetime, timedelta, timezone

import pytest

from kotoba.application.mastery.scoring import apply_outcome, score_delta
from kotoba.domain.errors import ValidationError
from kotoba.domain.mastery.models import ReviewOutcome, StatsRecord

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

RECORDS = [
    StatsRecord.empty(1),
    StatsRecord(word_id=2, success_count=3, partial_count=1, fail_count=7, score=-7),
    StatsRecord(
        word_id=3,
        success_count=40,
        partial_count=2,
        fail_count=0,
        score=82,
        last_reviewed_at=NOW - timedelta(days=3),
    ),
]

COUNTERS = {
    ReviewOutcome.SUCCESS: "success_count",
    ReviewOutcome.PARTIAL: "partial_count",
    ReviewOutcome.FAIL: "fail_count",
}


def test_score_delta_table():
    assert score_delta(ReviewOutcome.SUCCESS) == 2
    assert score_delta(ReviewOutcome.PARTIAL) == 1
    assert score_delta(ReviewOutcome.FAIL) == -2


@pytest.mark.parametrize("record", RECORDS, ids=lambda r: f"word{r.word_id}")
@pytest.mark.parametrize("outcome", list(ReviewOutcome), ids=lambda o: o.value)
def test_apply_outcome_moves_score_by_exact_delta(record, outcome):
    updated = apply_outcome(record, outcome, now=NOW)
    assert updated.score == record.score + score_delta(outcome)


@pytest.mark.parametrize("record", RECORDS, ids=lambda r: f"word{r.word_id}")
@pytest.mark.parametrize("outcome", list(ReviewOutcome), ids=lambda o: o.value)
def test_apply_outcome_moves_exactly_one_counter(record, outcome):
    updated = apply_outcome(record, outcome, now=NOW)

    for o, field in COUNTERS.items():
        expected = getattr(record, field) + (1 if o is outcome else 0)
        assert getattr(updated, field) == expected
    assert updated.word_id == record.word_id
    assert updated.last_reviewed_at == NOW


def test_apply_outcome_does_not_mutate_input():
    record = StatsRecord(word_id=5, score=4, success_count=2)
    apply_outcome(record, ReviewOutcome.FAIL, now=NOW)
    assert record.score == 4
    assert record.fail_count == 0
    assert record.last_reviewed_at is None


def test_apply_outcome_defaults_to_current_utc_time():
    before = datetime.now(timezone.utc)
    updated = apply_outcome(StatsRecord.empty(1), ReviewOutcome.PARTIAL)
    assert updated.last_reviewed_at is not None
    assert updated.last_reviewed_at >= before
    assert updated.last_reviewed_at.tzinfo is not None


def test_score_has_no_floor():
    record = StatsRecord(word_id=1, fail_count=50, score=-100)
    assert apply_outcome(record, ReviewOutcome.FAIL, now=NOW).score == -102


@pytest.mark.parametrize("raw", ["success", "PARTIAL", " fail "])
def test_outcome_parse_accepts_known_values(raw):
    assert ReviewOutcome.parse(raw).value == raw.strip().lower()


@pytest.mark.parametrize("raw", ["good", "", "2", None])
def test_outcome_parse_rejects_unknown_values(raw):
    with pytest.raises(ValidationError):
        ReviewOutcome.parse(raw)
