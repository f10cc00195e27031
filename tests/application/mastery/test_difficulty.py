import pytest
from pydantic import ValidationError as PydanticValidationError

from kotoba.application.mastery.difficulty import (
    DifficultyParams,
    is_difficult,
    join_stats,
    rank_difficult,
)
from kotoba.domain.mastery.models import StatsRecord, Word, WordWithStats


def _entry(word_id: int, **stats) -> WordWithStats:
    return WordWithStats(
        word=Word(id=word_id, owner_id=1, french=f"mot{word_id}"),
        stats=StatsRecord(word_id=word_id, **stats),
    )


def test_default_params():
    params = DifficultyParams()
    assert params.score_threshold == -5
    assert params.min_attempts == 5
    assert params.fail_rate_threshold == 0.4


def test_fail_rate_clause_flags_word():
    record = StatsRecord(word_id=1, success_count=1, partial_count=0, fail_count=4, score=-3)
    assert record.attempts == 5
    assert record.fail_rate == 0.8
    assert is_difficult(record) is True


def test_score_clause_flags_word_before_min_attempts():
    record = StatsRecord(word_id=1, fail_count=1, score=-6)
    assert record.attempts < DifficultyParams().min_attempts
    assert is_difficult(record) is True


def test_score_at_threshold_is_difficult():
    assert is_difficult(StatsRecord(word_id=1, score=-5)) is True
    assert is_difficult(StatsRecord(word_id=1, score=-4)) is False


def test_fail_rate_must_strictly_exceed_threshold():
    # 2 fails out of 5 is exactly 0.4
    record = StatsRecord(word_id=1, success_count=3, fail_count=2, score=2)
    assert is_difficult(record) is False


def test_fail_rate_ignored_below_min_attempts():
    record = StatsRecord(word_id=1, fail_count=2, score=-4)
    assert is_difficult(record) is False


def test_unreviewed_word_is_never_difficult_by_default():
    assert is_difficult(StatsRecord.empty(1)) is False


def test_zero_min_attempts_does_not_divide_by_zero():
    params = DifficultyParams(min_attempts=0, fail_rate_threshold=0.0)
    assert is_difficult(StatsRecord.empty(1), params) is False


def test_custom_thresholds():
    record = StatsRecord(word_id=1, success_count=2, fail_count=1, score=2)
    assert is_difficult(record, DifficultyParams(min_attempts=3, fail_rate_threshold=0.3))
    assert not is_difficult(record, DifficultyParams(min_attempts=3, fail_rate_threshold=0.5))
    assert is_difficult(record, DifficultyParams(score_threshold=2))


@pytest.mark.parametrize(
    "kwargs",
    [{"min_attempts": -1}, {"fail_rate_threshold": 1.5}, {"fail_rate_threshold": -0.1}],
)
def test_params_are_validated(kwargs):
    with pytest.raises(PydanticValidationError):
        DifficultyParams(**kwargs)


def test_rank_orders_by_score_then_newest_word():
    entries = [
        _entry(1, fail_count=2, score=-3, success_count=0),
        _entry(2, fail_count=5, score=-10),
        _entry(3, fail_count=3, score=-6),
        _entry(4, fail_count=3, score=-6),
        _entry(5, success_count=9, score=18),
    ]
    params = DifficultyParams(score_threshold=-3)

    ranked = rank_difficult(entries, params)

    assert [e.word_id for e in ranked] == [2, 4, 3, 1]


def test_rank_puts_most_negative_first():
    entries = [_entry(1, score=-3, fail_count=4, success_count=1), _entry(2, score=-10, fail_count=5)]
    assert [e.score for e in rank_difficult(entries)] == [-10, -3]


def test_join_stats_fills_missing_records():
    words = [Word(id=1, owner_id=1, french="a"), Word(id=2, owner_id=1, french="b")]
    joined = join_stats(words, {2: StatsRecord(word_id=2, score=4, success_count=2)})
    assert joined[0].stats == StatsRecord.empty(1)
    assert joined[1].score == 4


# --- Service over real adapters ---


@pytest.mark.asyncio
async def test_service_lists_difficult_words(difficulty_service, review_service, catalog):
    easy = await catalog.add_word(1, "facile")
    hard = await catalog.add_word(1, "difficile")
    flaky = await catalog.add_word(1, "capricieux")
    await catalog.add_word(1, "jamais vu")
    other = await catalog.add_word(2, "pas à moi")

    await review_service.submit_bulk_reviews(
        1,
        [(easy.id, "success")] * 3
        + [(hard.id, "fail")] * 4
        + [(flaky.id, "success")] + [(flaky.id, "fail")] * 4,
    )
    await review_service.submit_bulk_reviews(2, [(other.id, "fail")] * 5)

    ranked = await difficulty_service.list_difficult_words(1)

    assert [e.word_id for e in ranked] == [hard.id, flaky.id]
    assert [e.score for e in ranked] == [-8, -6]


@pytest.mark.asyncio
async def test_service_ties_prefer_newest(difficulty_service, review_service, catalog):
    older = await catalog.add_word(1, "vieux")
    newer = await catalog.add_word(1, "neuf")
    await review_service.submit_bulk_reviews(
        1, [(older.id, "fail")] * 3 + [(newer.id, "fail")] * 3
    )

    ranked = await difficulty_service.list_difficult_words(1)

    assert [e.word_id for e in ranked] == [newer.id, older.id]


@pytest.mark.asyncio
async def test_service_uses_custom_params(difficulty_service, review_service, catalog):
    word = await catalog.add_word(1, "moyen")
    await review_service.submit_review(1, word.id, "fail")

    assert await difficulty_service.list_difficult_words(1) == []
    ranked = await difficulty_service.list_difficult_words(
        1, DifficultyParams(score_threshold=-2)
    )
    assert [e.word_id for e in ranked] == [word.id]


@pytest.mark.asyncio
async def test_service_lists_words_with_stats_by_series(
    difficulty_service, review_service, catalog
):
    a = await catalog.add_word(1, "lundi")
    b = await catalog.add_word(1, "mardi")
    c = await catalog.add_word(1, "pomme")
    days = await catalog.add_tag(1, "jours")
    fruits = await catalog.add_tag(1, "fruits")
    await catalog.tag_word(1, a.id, days)
    await catalog.tag_word(1, b.id, days)
    await catalog.tag_word(1, c.id, fruits)
    await review_service.submit_review(1, a.id, "success")
    await review_service.submit_review(1, b.id, "partial")

    entries = await difficulty_service.list_words_with_stats(1, tag_id=days)
    assert [(e.word_id, e.score) for e in entries] == [(b.id, 1), (a.id, 2)]

    series = await difficulty_service.list_series(1)
    assert [(s.tag_name, s.words_count, s.total_score) for s in series] == [
        ("fruits", 1, 0),
        ("jours", 2, 3),
    ]

