"""Application factory for the FastAPI service."""

from __future__ import annotations

import asyncio
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, get_settings
from .gateway import GatewayClient
from .rate_limit import RateLimiter
from .repository import EventRepository
from .routers.chat import router as chat_router
from .routers.extraction import router as extraction_router
from .routers.validation import router as validation_router
from .services.extraction import EventExtractor
from .services.moderation import Moderator
from .services.page_fetch import PageFetcher
from .services.transcription import Transcriber
from .services.web_search import BraveEventSearch
from .tools import EventToolExecutor

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    """Configure logging based on LOG_LEVEL environment variable."""
    # Load .env file first to ensure LOG_FILE is available
    load_dotenv()

    log_level_str = os.getenv("LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_str, logging.INFO)
    formatter = logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    handlers: list[logging.Handler] = []
    log_file = os.getenv("LOG_FILE")
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)
    handlers.append(console_handler)

    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    logging.getLogger("laiive").setLevel(log_level)
    for name in ("uvicorn", "uvicorn.access", "uvicorn.error"):
        logging.getLogger(name).setLevel(log_level)

    # httpx logs every request line at INFO
    if log_level > logging.DEBUG:
        logging.getLogger("httpx").setLevel(logging.WARNING)
        logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_rate_limiters(settings: Settings) -> dict[str, RateLimiter]:
    """Create one independent limiter per rate-limited endpoint."""

    def limiter(limit: int) -> RateLimiter:
        return RateLimiter(
            limit,
            settings.rate_limit_window_seconds,
            max_keys=settings.rate_limit_max_keys,
        )

    return {
        "promoter": limiter(settings.promoter_rate_limit),
        "extract_image": limiter(settings.extraction_rate_limit),
        "extract_text": limiter(settings.extraction_rate_limit),
        "extract_url": limiter(settings.extraction_rate_limit),
        "transcribe": limiter(settings.transcription_rate_limit),
        "validate_conversation": limiter(settings.validation_rate_limit),
    }


async def _http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Render errors as ``{"error": ...}``; dict details are sent as-is."""

    content = exc.detail if isinstance(exc.detail, dict) else {"error": exc.detail}
    return JSONResponse(
        status_code=exc.status_code,
        content=content,
        headers=getattr(exc, "headers", None),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, _http_exception_handler)


def create_app(settings: Settings | None = None) -> FastAPI:
    # Configure logging first thing
    _configure_logging()

    settings = settings or get_settings()

    repository = EventRepository(settings.database_path)
    gateway = GatewayClient(settings)
    web_search = (
        BraveEventSearch(settings.brave_api_key.get_secret_value())
        if settings.brave_api_key is not None
        else None
    )
    executor = EventToolExecutor(
        repository,
        radius_km=settings.search_radius_km,
        web_search=web_search,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await repository.initialize()
        logger.info("Event repository ready at %s", settings.database_path)
        try:
            yield
        finally:
            try:
                await asyncio.wait_for(gateway.aclose(), timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning("Gateway client shutdown timed out after 10s")
            await repository.close()

    app = FastAPI(
        title="laiive backend",
        version="0.1.0",
        description="Chat-driven discovery and publishing of live music events.",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.repository = repository
    app.state.gateway = gateway
    app.state.executor = executor
    app.state.moderator = Moderator(gateway, model=settings.moderation_model)
    app.state.extractor = EventExtractor(
        gateway,
        PageFetcher(),
        page_text_limit=settings.page_text_limit,
    )
    app.state.transcriber = Transcriber(settings)
    app.state.rate_limiters = build_rate_limiters(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    install_error_handlers(app)

    app.include_router(chat_router)
    app.include_router(extraction_router)
    app.include_router(validation_router)

    @app.get("/health", tags=["health"])
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok", "chat_model": settings.chat_model}

    return app


__all__ = ["build_rate_limiters", "create_app", "install_error_handlers"]
