import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Annotated

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from kotoba.application.factory import MasteryServices
from kotoba.application.mastery.difficulty import DifficultyParams
from kotoba.consts import VERSION
from kotoba.domain.constants import SCOPE_HEADER
from kotoba.domain.errors import KotobaError, NotFound, StorageFailure, ValidationError
from kotoba.domain.mastery.models import SeriesSummary, StatsRecord, WordWithStats

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("kotoba.server")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    from kotoba.application.config import resolve_config
    from kotoba.application.factory import build_services

    logger.info(f"Kotoba Server v{VERSION} starting up...")
    if getattr(app.state, "services", None) is None:
        app.state.services = build_services(resolve_config())
    yield
    # Shutdown
    logger.info("Kotoba Server shutting down...")
    app.state.services.close()


app = FastAPI(
    title="Kotoba Server",
    description="Mastery tracking and difficulty ranking for vocabulary reviews.",
    version=VERSION,
    lifespan=lifespan,
)


def get_services(request: Request) -> MasteryServices:
    return request.app.state.services


def get_scope(x_user_id: Annotated[int, Header(alias=SCOPE_HEADER)]) -> int:
    return x_user_id


Services = Annotated[MasteryServices, Depends(get_services)]
Scope = Annotated[int, Depends(get_scope)]


def _http_error(exc: KotobaError) -> HTTPException:
    if isinstance(exc, NotFound):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, StorageFailure):
        logger.error(f"Storage failure: {exc}")
        return HTTPException(status_code=503, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class StatsModel(BaseModel):
    word_id: int
    success_count: int
    partial_count: int
    fail_count: int
    score: int
    last_reviewed_at: datetime | None

    @classmethod
    def from_record(cls, record: StatsRecord) -> "StatsModel":
        return cls(
            word_id=record.word_id,
            success_count=record.success_count,
            partial_count=record.partial_count,
            fail_count=record.fail_count,
            score=record.score,
            last_reviewed_at=record.last_reviewed_at,
        )


class WordModel(BaseModel):
    id: int
    french: str
    romaji: str | None
    kana: str | None
    kanji: str | None
    note: str | None
    created_at: datetime | None
    success_count: int
    partial_count: int
    fail_count: int
    score: int
    last_reviewed_at: datetime | None

    @classmethod
    def from_entry(cls, entry: WordWithStats) -> "WordModel":
        w, s = entry.word, entry.stats
        return cls(
            id=w.id,
            french=w.french,
            romaji=w.romaji,
            kana=w.kana,
            kanji=w.kanji,
            note=w.note,
            created_at=w.created_at,
            success_count=s.success_count,
            partial_count=s.partial_count,
            fail_count=s.fail_count,
            score=s.score,
            last_reviewed_at=s.last_reviewed_at,
        )


class StatsResponse(BaseModel):
    stats: StatsModel


class ReviewRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Strict: "1" and 1.0 are not word ids.
    word_id: Annotated[int, Field(strict=True, gt=0, alias="wordId")]
    result: str


class BulkReviewRequest(BaseModel):
    reviews: list[ReviewRequest]


class BulkReviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    applied_count: int = Field(alias="appliedCount")


class WordsResponse(BaseModel):
    words: list[WordModel]


class DifficultParamsModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    score_threshold: int = Field(alias="scoreThreshold")
    fail_rate_threshold: float = Field(alias="failRateThreshold")
    min_attempts: int = Field(alias="minAttempts")


class DifficultWordsResponse(BaseModel):
    words: list[WordModel]
    params: DifficultParamsModel


class SeriesModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tag_id: int = Field(alias="tagId")
    tag_name: str = Field(alias="tagName")
    words_count: int = Field(alias="wordsCount")
    total_score: int = Field(alias="totalScore")

    @classmethod
    def from_summary(cls, summary: SeriesSummary) -> "SeriesModel":
        return cls(
            tag_id=summary.tag_id,
            tag_name=summary.tag_name,
            words_count=summary.words_count,
            total_score=summary.total_score,
        )


class SeriesResponse(BaseModel):
    series: list[SeriesModel]


start_time = time.time()


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


@app.post("/reviews", response_model=StatsResponse)
async def submit_review(req: ReviewRequest, services: Services, scope: Scope):
    """Apply one review outcome and echo the updated record."""
    try:
        record = await services.reviews.submit_review(scope, req.word_id, req.result)
    except KotobaError as e:
        raise _http_error(e) from e
    return StatsResponse(stats=StatsModel.from_record(record))


@app.post("/reviews/bulk", response_model=BulkReviewResponse, status_code=201)
async def submit_bulk_reviews(req: BulkReviewRequest, services: Services, scope: Scope):
    """Apply a completed session in one all-or-nothing batch."""
    try:
        applied = await services.reviews.submit_bulk_reviews(
            scope, [(r.word_id, r.result) for r in req.reviews]
        )
    except KotobaError as e:
        raise _http_error(e) from e
    return BulkReviewResponse(applied_count=applied)


@app.get("/words", response_model=WordsResponse)
async def list_words(
    services: Services,
    scope: Scope,
    tag_id: Annotated[int | None, Query(alias="tagId")] = None,
):
    try:
        entries = await services.difficulty.list_words_with_stats(scope, tag_id=tag_id)
    except KotobaError as e:
        raise _http_error(e) from e
    return WordsResponse(words=[WordModel.from_entry(e) for e in entries])


@app.get("/words/difficult", response_model=DifficultWordsResponse)
async def list_difficult_words(
    services: Services,
    scope: Scope,
    score_threshold: Annotated[int | None, Query(alias="scoreThreshold")] = None,
    fail_rate_threshold: Annotated[
        float | None, Query(alias="failRateThreshold", ge=0.0, le=1.0)
    ] = None,
    min_attempts: Annotated[int | None, Query(alias="minAttempts", ge=0)] = None,
):
    """
    Words whose score or fail rate crosses the thresholds, hardest first.
    Missing query parameters fall back to the configured defaults.
    """
    overrides = {
        "score_threshold": score_threshold,
        "fail_rate_threshold": fail_rate_threshold,
        "min_attempts": min_attempts,
    }
    params = services.difficulty.default_params.model_copy(
        update={k: v for k, v in overrides.items() if v is not None}
    )
    try:
        entries = await services.difficulty.list_difficult_words(scope, params)
    except KotobaError as e:
        raise _http_error(e) from e
    return DifficultWordsResponse(
        words=[WordModel.from_entry(e) for e in entries],
        params=_params_model(params),
    )


def _params_model(params: DifficultyParams) -> DifficultParamsModel:
    return DifficultParamsModel(
        score_threshold=params.score_threshold,
        fail_rate_threshold=params.fail_rate_threshold,
        min_attempts=params.min_attempts,
    )


@app.get("/words/{word_id}/stats", response_model=StatsResponse)
async def get_word_stats(word_id: int, services: Services, scope: Scope):
    try:
        record = await services.reviews.get_stats(scope, word_id)
    except KotobaError as e:
        raise _http_error(e) from e
    return StatsResponse(stats=StatsModel.from_record(record))


@app.get("/series", response_model=SeriesResponse)
async def list_series(services: Services, scope: Scope):
    """Word count and total score per series."""
    try:
        summaries = await services.difficulty.list_series(scope)
    except KotobaError as e:
        raise _http_error(e) from e
    return SeriesResponse(series=[SeriesModel.from_summary(s) for s in summaries])
