from datetime import datetime, timezone

import pytest

from kotoba.domain.errors import KotobaError, StorageFailure, ValidationError
from kotoba.domain.mastery.models import ReviewOutcome, StatsRecord


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("success", ReviewOutcome.SUCCESS),
        ("Partial", ReviewOutcome.PARTIAL),
        (" fail ", ReviewOutcome.FAIL),
        (ReviewOutcome.FAIL, ReviewOutcome.FAIL),
    ],
)
def test_parse_outcome(raw, expected):
    assert ReviewOutcome.parse(raw) is expected


@pytest.mark.parametrize("raw", ["excellent", "", None, 2])
def test_parse_unknown_outcome(raw):
    with pytest.raises(ValidationError, match="Unknown review outcome"):
        ReviewOutcome.parse(raw)


def test_empty_record():
    record = StatsRecord.empty(7)
    assert record.word_id == 7
    assert record.attempts == 0
    assert record.fail_rate is None
    assert record.last_reviewed_at is None


def test_fail_rate():
    record = StatsRecord(word_id=1, success_count=1, partial_count=1, fail_count=2, score=-1)
    assert record.attempts == 4
    assert record.fail_rate == 0.5


def test_with_baseline_only_fills_missing_timestamp():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    earlier = datetime(2024, 4, 1, tzinfo=timezone.utc)

    assert StatsRecord.empty(1).with_baseline(now).last_reviewed_at == now
    reviewed = StatsRecord(word_id=1, last_reviewed_at=earlier)
    assert reviewed.with_baseline(now) is reviewed


def test_error_taxonomy():
    assert issubclass(ValidationError, ValueError)
    assert isinstance(ValidationError("x"), KotobaError)
    assert StorageFailure.retryable
    assert not ValidationError.retryable
