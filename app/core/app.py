from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.api.main import api_router
from app.services.ai import get_provider
from app.services.ai.generation import GenerationService
from app.services.content_store import ContentStore
from app.services.interactions import InteractionService
from app.services.preferences import PreferenceService
from app.services.recommendation.feed import FeedService
from app.services.recommendation.trending import TrendingUpdater
from app.services.redis_service import RedisService
from app.services.scheduler import PeriodicTask
from app.services.streaming import StreamConnectionRegistry

from .config import settings
from .version import __version__


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application lifespan events (startup/shutdown).
    """
    redis_service = RedisService(settings.REDIS_URL)
    store = ContentStore(redis_service)
    preferences = PreferenceService(store)
    feed = FeedService(store, preferences)
    trending = TrendingUpdater(store, on_updated=feed.invalidate_cache)
    registry = StreamConnectionRegistry()
    provider = get_provider(settings)

    app.state.settings = settings
    app.state.redis = redis_service
    app.state.store = store
    app.state.feed = feed
    app.state.trending = trending
    app.state.interactions = InteractionService(store, preferences)
    app.state.stream_registry = registry
    app.state.generation = GenerationService(provider, registry)

    max_age_ms = settings.STREAM_MAX_AGE_SECONDS * 1000
    tasks = [
        PeriodicTask(
            "stream-cleanup",
            settings.STREAM_CLEANUP_INTERVAL_SECONDS,
            lambda: registry.cleanup_old_connections(max_age_ms),
        )
    ]
    if settings.AUTO_UPDATE_TRENDING:
        tasks.append(
            PeriodicTask("trending-refresh", settings.TRENDING_REFRESH_INTERVAL_SECONDS, trending.update_trending_scores)
        )
    for task in tasks:
        task.start()

    yield

    for task in tasks:
        await task.stop()

    stopped = registry.cleanup_old_connections(0)
    if stopped:
        logger.info(f"Stopped {stopped} open stream connections on shutdown")

    try:
        await provider.close()
    except Exception as exc:
        logger.warning(f"Failed to close generation provider: {exc}")
    await redis_service.close()


app = FastAPI(
    title=settings.APP_NAME,
    description="Short-video feed ranking and AI generation streams",
    version=__version__,
    lifespan=lifespan,
    docs_url=None if settings.APP_ENV != "development" else "/docs",
    redoc_url=None if settings.APP_ENV != "development" else "/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Invalid input is a 400, like every other client error this API returns."""
    errors = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
        for err in exc.errors()
    ]
    logger.info(f"Rejected invalid request to {request.url.path}: {errors}")
    return JSONResponse(status_code=400, content={"success": False, "detail": errors})


app.include_router(api_router)
