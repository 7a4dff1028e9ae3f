from typing import Any

from fastapi import Header, HTTPException, Request, status

from app.services.ai.generation import GenerationService
from app.services.interactions import InteractionService
from app.services.recommendation.feed import FeedService
from app.services.redis_service import RedisService
from app.services.streaming import StreamConnectionRegistry


def _get_state_attr(request: Request, name: str, error_detail: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=error_detail)
    return value


def get_feed_service(request: Request) -> FeedService:
    return _get_state_attr(request, "feed", "Feed service not initialized")


def get_interaction_service(request: Request) -> InteractionService:
    return _get_state_attr(request, "interactions", "Interaction service not initialized")


def get_stream_registry(request: Request) -> StreamConnectionRegistry:
    return _get_state_attr(request, "stream_registry", "Stream registry not initialized")


def get_generation_service(request: Request) -> GenerationService:
    return _get_state_attr(request, "generation", "Generation service not initialized")


def get_redis(request: Request) -> RedisService | None:
    return getattr(request.app.state, "redis", None)


def get_optional_user_id(x_user_id: str | None = Header(default=None)) -> int | None:
    """User id from the X-User-Id header; authentication happens upstream of this service."""
    if x_user_id is None or not x_user_id.strip():
        return None
    try:
        return int(x_user_id)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid X-User-Id header")


def get_current_user_id(x_user_id: str | None = Header(default=None)) -> int:
    user_id = get_optional_user_id(x_user_id)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="X-User-Id header is required")
    return user_id
