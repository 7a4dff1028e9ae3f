from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from app.api.deps import get_current_user_id, get_feed_service, get_optional_user_id
from app.core.config import settings
from app.models.feed import Pagination
from app.services.recommendation.feed import FeedService

router = APIRouter(prefix="/feed", tags=["feed"])

LimitQuery = Query(default=settings.FEED_DEFAULT_LIMIT, ge=1, le=settings.FEED_MAX_LIMIT)
OffsetQuery = Query(default=0, ge=0)


def _page(items: list, limit: int, offset: int) -> dict:
    return {
        "success": True,
        "data": items,
        "pagination": Pagination(limit=limit, offset=offset, has_more=len(items) == limit),
    }


@router.get("/for-you")
async def for_you_feed(
    limit: int = LimitQuery,
    offset: int = OffsetQuery,
    user_id: int = Depends(get_current_user_id),
    feed: FeedService = Depends(get_feed_service),
):
    try:
        items = await feed.get_personalized_feed(user_id, limit, offset)
    except Exception as e:
        logger.exception(f"Error building personalized feed for user {user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to build feed")
    return _page(items, limit, offset)


@router.get("/trending")
async def trending_feed(
    limit: int = LimitQuery, offset: int = OffsetQuery, feed: FeedService = Depends(get_feed_service)
):
    return _page(await feed.get_trending_feed(limit, offset), limit, offset)


@router.get("/new")
async def new_releases_feed(
    limit: int = LimitQuery, offset: int = OffsetQuery, feed: FeedService = Depends(get_feed_service)
):
    return _page(await feed.get_new_releases(limit, offset), limit, offset)


@router.get("/genre/{genre}")
async def genre_feed(
    genre: str, limit: int = LimitQuery, offset: int = OffsetQuery, feed: FeedService = Depends(get_feed_service)
):
    if not genre.strip():
        raise HTTPException(status_code=400, detail="Genre is required")
    return _page(await feed.get_by_genre(genre, limit, offset), limit, offset)


@router.get("/home")
async def home_carousels(
    user_id: int | None = Depends(get_optional_user_id), feed: FeedService = Depends(get_feed_service)
):
    try:
        carousels = await feed.get_home_carousels(user_id)
    except Exception as e:
        logger.exception(f"Error building home carousels: {e}")
        raise HTTPException(status_code=500, detail="Failed to build home carousels")
    return {"success": True, "data": carousels}


@router.get("/continue-watching")
async def continue_watching(
    limit: int = Query(default=settings.HOME_CAROUSEL_SIZE, ge=1, le=settings.FEED_MAX_LIMIT),
    user_id: int = Depends(get_current_user_id),
    feed: FeedService = Depends(get_feed_service),
):
    return {"success": True, "data": await feed.get_continue_watching(user_id, limit)}
