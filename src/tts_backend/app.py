"""Application factory for the FastAPI service."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from .config import PROJECT_ROOT, get_settings
from .logging_handlers import DateStampedFileHandler, cleanup_old_logs
from .logging_settings import LoggingSettings, parse_logging_settings
from .repository import TtsRepository
from .routers.tts import router as tts_router
from .services.audio_storage import AUDIO_URL_PREFIX, AudioStorage
from .services.speech_generation import SpeechGenerationService
from .services.tts.dispatcher import SegmentAudioDispatcher
from .services.tts.rate_limiter import RateLimiter
from .services.tts_service import TTSService

logger = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
_LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


def _configure_logging(logging_settings: LoggingSettings, generation_log_dir: Path) -> None:
    """Configure the root logger and the generation-event log.

    ``LOG_LEVEL`` overrides the terminal level from ``logging_settings.conf``;
    ``LOG_FILE`` adds a plain file handler.
    """
    # Load .env file first to ensure LOG_LEVEL and LOG_FILE are available
    load_dotenv()

    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        log_level = getattr(logging, env_level.upper(), logging.INFO)
    else:
        log_level = logging_settings.terminal_level or logging.WARNING

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATEFMT)
    handlers: list[logging.Handler] = []

    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if logging_settings.terminal_level is not None or env_level:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("tts_backend").setLevel(log_level)
    logging.getLogger("uvicorn").setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    logging.getLogger("uvicorn.error").setLevel(log_level)

    # Quiet down noisy third-party libraries
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)

    generation_logger = logging.getLogger("tts_backend.generations")
    for handler in list(generation_logger.handlers):
        generation_logger.removeHandler(handler)
        handler.close()
    if logging_settings.generations_level is not None:
        generation_handler = DateStampedFileHandler(
            generation_log_dir, prefix="generations", delay=True
        )
        generation_handler.setLevel(logging_settings.generations_level)
        generation_handler.setFormatter(formatter)
        generation_logger.addHandler(generation_handler)
        generation_logger.setLevel(min(log_level, logging_settings.generations_level))


def _resolve_under(base: Path, p: Path) -> Path:
    # Allow absolute paths as-is (useful for tests and external mounts).
    if p.is_absolute():
        return p.resolve()
    resolved = (base / p).resolve()
    if not resolved.is_relative_to(base):
        raise ValueError(f"Configured path {resolved} escapes project root {base}")
    return resolved


def create_app() -> FastAPI:
    settings = get_settings()
    logging_settings = parse_logging_settings(PROJECT_ROOT / "logging_settings.conf")
    generation_log_dir = _resolve_under(PROJECT_ROOT, settings.generation_log_dir)

    # Configure logging first thing
    _configure_logging(logging_settings, generation_log_dir)

    repository = TtsRepository(_resolve_under(PROJECT_ROOT, settings.tts_database_path))
    storage = AudioStorage(
        _resolve_under(PROJECT_ROOT, settings.audio_storage_dir),
        str(settings.public_base_url),
    )
    storage.ensure_directory()

    tts_service = TTSService(settings)
    speech_service = SpeechGenerationService(
        tts_service,
        repository,
        storage,
        cache_ttl=settings.audio_cache_ttl,
        daily_budget_usd=settings.tts_daily_budget_usd,
        pricing=settings.pricing,
    )
    dispatcher = SegmentAudioDispatcher(
        speech_service,
        timeout_seconds=settings.tts_request_timeout,
        max_concurrency=settings.tts_max_concurrency,
    )
    rate_limiter = RateLimiter(
        settings.tts_rate_limit_requests,
        settings.tts_rate_limit_window_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await repository.initialize()
        cleanup_old_logs(
            [generation_log_dir], logging_settings.retention_hours, logger
        )
        expired_urls = await repository.delete_expired_audio()
        for audio_url in expired_urls:
            await storage.delete_url(audio_url)
        if expired_urls:
            logger.info("Purged %d expired audio cache entries", len(expired_urls))
        try:
            yield
        finally:
            await TTSService.close_http_client()
            await repository.close()

    app = FastAPI(
        title="TTS Response Backend",
        version="0.1.0",
        description="Cached speech generation, long-response segmentation and TTS cost modelling.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.tts_repository = repository
    app.state.audio_storage = storage
    app.state.tts_service = tts_service
    app.state.speech_service = speech_service
    app.state.segment_dispatcher = dispatcher
    app.state.rate_limiter = rate_limiter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(tts_router)
    app.mount(AUDIO_URL_PREFIX, StaticFiles(directory=storage.directory), name="audio")

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, object]:
        return {
            "status": "ok",
            "providers": tts_service.available_providers,
        }

    return app


__all__ = ["create_app"]
