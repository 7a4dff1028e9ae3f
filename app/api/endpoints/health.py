from fastapi import APIRouter, Depends
from loguru import logger

from app.api.deps import get_redis, get_stream_registry
from app.services.redis_service import RedisService
from app.services.streaming import StreamConnectionRegistry

router = APIRouter(tags=["health"])


@router.get("/health", summary="Simple readiness probe")
async def health_check() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/metrics", summary="Runtime metrics (lightweight)")
async def metrics(
    registry: StreamConnectionRegistry = Depends(get_stream_registry),
    redis: RedisService | None = Depends(get_redis),
) -> dict:
    """Return lightweight runtime metrics: open generation streams and Redis reachability."""
    metrics: dict = {"open_stream_connections": len(registry)}

    if redis is None:
        metrics["redis"] = "unavailable"
        return metrics

    try:
        metrics["redis"] = "ok" if await redis.ping() else "unreachable"
    except Exception as exc:
        logger.warning(f"Failed to ping Redis for metrics: {exc}")
        metrics["redis"] = "error"
    return metrics
