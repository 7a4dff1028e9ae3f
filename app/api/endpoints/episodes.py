from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from app.api.deps import get_current_user_id, get_interaction_service, get_optional_user_id
from app.services.interactions import EpisodeNotFoundError, InteractionService

router = APIRouter(prefix="/episodes", tags=["episodes"])


class ProgressRequest(BaseModel):
    progress: float = Field(ge=0.0, le=1.0)
    watch_time: int | None = Field(default=None, ge=0)


@router.post("/{episode_id}/view")
async def record_view(episode_id: int, interactions: InteractionService = Depends(get_interaction_service)):
    try:
        await interactions.record_view(episode_id)
    except EpisodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}


@router.post("/{episode_id}/like")
async def toggle_like(
    episode_id: int,
    user_id: int = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    try:
        is_liked = await interactions.toggle_like(episode_id, user_id)
    except EpisodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True, "data": {"isLiked": is_liked}}


@router.post("/{episode_id}/share")
async def record_share(
    episode_id: int,
    user_id: int | None = Depends(get_optional_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    try:
        await interactions.record_share(episode_id, user_id)
    except EpisodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"success": True}


@router.post("/{episode_id}/progress")
async def update_progress(
    episode_id: int,
    payload: ProgressRequest,
    user_id: int = Depends(get_current_user_id),
    interactions: InteractionService = Depends(get_interaction_service),
):
    try:
        entry = await interactions.update_progress(user_id, episode_id, payload.progress, payload.watch_time)
    except EpisodeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"success": True, "data": entry}
