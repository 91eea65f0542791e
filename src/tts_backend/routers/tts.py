"""Routes for speech generation, segmentation and TTS cost analysis."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import PlainTextResponse

from ..config import Settings, get_settings
from ..repository import TtsRepository
from ..schemas.costs import (
    BudgetStatus,
    CostEstimate,
    CostEstimateRequest,
    HistoricalCostSummary,
    ScenarioComparison,
    UsageProfile,
)
from ..schemas.tts import (
    BatchRun,
    BatchTtsRequest,
    GeneratedAudio,
    LongAudioOutput,
    LongAudioRequest,
    SegmentationRequest,
    SegmentationResult,
    TtsRequest,
)
from ..services.audio_storage import AudioStorageError
from ..services.speech_generation import SpeechGenerationService
from ..services.tts.batching import BatchProcessor
from ..services.tts.cost_estimator import (
    CostEstimationError,
    analyze_historical_costs,
    check_daily_budget,
    compare_scenarios,
    estimate_costs,
    generate_cost_report,
    generate_usage_profile,
)
from ..services.tts.dispatcher import SegmentAudioDispatcher
from ..services.tts.errors import (
    BudgetExceededError,
    EmptyTextError,
    ProviderUnavailableError,
    SegmentGenerationError,
    SpeechProviderError,
)
from ..services.tts.long_audio import process_long_audio
from ..services.tts.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/tts", tags=["tts"])

DEFAULT_HISTORY_DAYS = 30


def get_speech_service(request: Request) -> SpeechGenerationService:
    service = getattr(request.app.state, "speech_service", None)
    if service is None:
        raise HTTPException(status_code=500, detail="Speech service unavailable")
    return service


def get_segment_dispatcher(request: Request) -> SegmentAudioDispatcher:
    dispatcher = getattr(request.app.state, "segment_dispatcher", None)
    if dispatcher is None:
        raise HTTPException(status_code=500, detail="Segment dispatcher unavailable")
    return dispatcher


def get_rate_limiter(request: Request) -> RateLimiter:
    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        raise HTTPException(status_code=500, detail="Rate limiter unavailable")
    return limiter


def get_repository(request: Request) -> TtsRepository:
    repository = getattr(request.app.state, "tts_repository", None)
    if repository is None:
        raise HTTPException(status_code=500, detail="TTS repository unavailable")
    return repository


def _client_key(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


def _enforce_rate_limit(request: Request, limiter: RateLimiter) -> None:
    client_key = _client_key(request)
    if not limiter.check(client_key):
        logger.warning("TTS rate limit exceeded for %s", client_key)
        raise HTTPException(
            status_code=429,
            detail="Rate limit exceeded. Please try again later.",
            headers={"Retry-After": str(int(limiter.retry_after(client_key)) + 1)},
        )


_SPEECH_ERRORS = (
    EmptyTextError,
    ProviderUnavailableError,
    BudgetExceededError,
    SpeechProviderError,
    AudioStorageError,
)


def _speech_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, EmptyTextError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, (ProviderUnavailableError, BudgetExceededError)):
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, SpeechProviderError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _default_range(
    start: datetime | None, end: datetime | None
) -> tuple[datetime, datetime]:
    end = _as_utc(end) if end else datetime.now(timezone.utc)
    start = _as_utc(start) if start else end - timedelta(days=DEFAULT_HISTORY_DAYS)
    return start, end


@router.post("", response_model=GeneratedAudio)
async def generate_speech(
    payload: TtsRequest,
    request: Request,
    service: SpeechGenerationService = Depends(get_speech_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> GeneratedAudio:
    """Return a cached or freshly generated clip for the given text."""

    _enforce_rate_limit(request, limiter)
    logger.info(
        "Processing TTS request: %d chars, provider_preference=%s",
        len(payload.text),
        payload.provider_preference,
    )
    try:
        return await service.generate(
            payload.text,
            payload.voice,
            payload.provider_preference,
            mode=payload.mode,
            session_id=payload.session_id,
            segment_count=payload.segment_count,
        )
    except _SPEECH_ERRORS as exc:
        raise _speech_http_error(exc) from exc


@router.post("/segments", response_model=SegmentationResult)
async def preview_segments(payload: SegmentationRequest) -> SegmentationResult:
    """Show how a response would be truncated or split, without generating audio."""

    return process_long_audio(payload.text, payload.mode, payload.config)


@router.post("/long", response_model=LongAudioOutput)
async def generate_long_audio(
    payload: LongAudioRequest,
    request: Request,
    dispatcher: SegmentAudioDispatcher = Depends(get_segment_dispatcher),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> LongAudioOutput:
    _enforce_rate_limit(request, limiter)
    try:
        return await dispatcher.process_and_generate_long_audio(
            payload.text,
            payload.mode,
            payload.voice,
            payload.config,
            payload.provider_preference,
        )
    except SegmentGenerationError as exc:
        logger.error("Long audio generation failed: %s", exc)
        cause = exc.__cause__
        unavailable = isinstance(cause, (ProviderUnavailableError, BudgetExceededError))
        raise HTTPException(
            status_code=503 if unavailable else 502,
            detail={"message": str(exc), "segment_index": exc.index},
        ) from exc
    except _SPEECH_ERRORS as exc:
        raise _speech_http_error(exc) from exc


@router.post("/batch", response_model=BatchRun)
async def generate_batch(
    payload: BatchTtsRequest,
    request: Request,
    service: SpeechGenerationService = Depends(get_speech_service),
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> BatchRun:
    """Generate short responses, merging consecutive ones into shared clips."""

    _enforce_rate_limit(request, limiter)
    processor = BatchProcessor(service, payload.config)
    try:
        return await processor.batch_tts(payload.items, payload.provider_preference)
    except _SPEECH_ERRORS as exc:
        raise _speech_http_error(exc) from exc


@router.post("/costs/estimate", response_model=CostEstimate)
async def estimate(
    payload: CostEstimateRequest,
    settings: Settings = Depends(get_settings),
) -> CostEstimate:
    try:
        return estimate_costs(
            payload.profile,
            payload.monthly_users,
            payload.pricing or settings.pricing,
            settings.cost_constants,
        )
    except CostEstimationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/costs/compare", response_model=ScenarioComparison)
async def compare(
    payload: CostEstimateRequest,
    settings: Settings = Depends(get_settings),
) -> ScenarioComparison:
    try:
        return compare_scenarios(
            payload.profile,
            payload.monthly_users,
            payload.pricing or settings.pricing,
            settings.cost_constants,
        )
    except CostEstimationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/costs/report", response_class=PlainTextResponse)
async def report(
    payload: CostEstimateRequest,
    settings: Settings = Depends(get_settings),
) -> str:
    try:
        estimate_result = estimate_costs(
            payload.profile,
            payload.monthly_users,
            payload.pricing or settings.pricing,
            settings.cost_constants,
        )
    except CostEstimationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return generate_cost_report(estimate_result)


@router.get("/costs/history", response_model=HistoricalCostSummary)
async def cost_history(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    repository: TtsRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> HistoricalCostSummary:
    start, end = _default_range(start, end)
    try:
        return await analyze_historical_costs(repository, start, end, settings.pricing)
    except CostEstimationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/costs/profile", response_model=UsageProfile)
async def usage_profile(
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    repository: TtsRepository = Depends(get_repository),
) -> UsageProfile:
    start, end = _default_range(start, end)
    try:
        return await generate_usage_profile(repository, start, end)
    except CostEstimationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/costs/budget", response_model=BudgetStatus)
async def budget_status(
    repository: TtsRepository = Depends(get_repository),
    settings: Settings = Depends(get_settings),
) -> BudgetStatus:
    return await check_daily_budget(
        repository, settings.tts_daily_budget_usd, pricing=settings.pricing
    )


__all__ = [
    "get_rate_limiter",
    "get_repository",
    "get_segment_dispatcher",
    "get_speech_service",
    "router",
]
