from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import StreamingResponse
from loguru import logger
from pydantic import ValidationError

from app.api.deps import get_current_user_id, get_generation_service, get_optional_user_id, get_stream_registry
from app.core.config import settings
from app.models.generation import AnalyzeImageRequest, GenerateTextRequest, GenerationOptions
from app.services.ai.errors import ProviderError
from app.services.ai.generation import GenerationService
from app.services.ai.models import build_image_messages, build_text_messages, list_models, resolve_model
from app.services.streaming import StreamConnectionRegistry

router = APIRouter(prefix="/ai", tags=["ai"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive", "X-Accel-Buffering": "no"}


async def _run(
    generation: GenerationService,
    messages: list[dict],
    options: GenerationOptions,
    streaming: bool,
    user_id: int | None,
):
    if streaming:
        connection_id, channel = generation.start_stream(messages, options, user_id)
        return StreamingResponse(
            generation.stream_response(connection_id, channel),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    try:
        text = await generation.generate(messages, options)
    except ProviderError as e:
        status_code = e.status_code if e.status_code and e.status_code >= 400 else 502
        raise HTTPException(status_code=status_code, detail=e.message)
    except Exception as e:
        logger.exception(f"Unexpected error during generation: {e}")
        raise HTTPException(status_code=500, detail="Failed to generate response")
    return {"success": True, "data": {"text": text, "model": options.model}}


async def _generate_text(
    request: GenerateTextRequest, header_user_id: int | None, generation: GenerationService
):
    options = GenerationOptions(
        model=resolve_model(request.model, settings.DEFAULT_TEXT_MODEL),
        temperature=request.temperature,
        max_tokens=request.max_tokens,
    )
    user_id = request.userId if request.userId is not None else header_user_id
    return await _run(generation, build_text_messages(request.prompt), options, request.streaming, user_id)


async def _analyze_image(
    request: AnalyzeImageRequest, header_user_id: int | None, generation: GenerationService
):
    options = GenerationOptions(model=resolve_model(request.model, settings.DEFAULT_VISION_MODEL))
    messages = build_image_messages(request.prompt, request.image_source())
    user_id = request.userId if request.userId is not None else header_user_id
    return await _run(generation, messages, options, request.streaming, user_id)


@router.get("/models")
async def available_models():
    return {"success": True, "data": list_models()}


@router.post("/generate-text")
async def generate_text(
    payload: GenerateTextRequest,
    user_id: int | None = Depends(get_optional_user_id),
    generation: GenerationService = Depends(get_generation_service),
):
    return await _generate_text(payload, user_id, generation)


@router.get("/generate-text")
async def generate_text_query(
    prompt: str = Query(default=""),
    temperature: float | None = None,
    max_tokens: int | None = None,
    model: str | None = None,
    streaming: bool = False,
    userId: int | None = None,
    user_id: int | None = Depends(get_optional_user_id),
    generation: GenerationService = Depends(get_generation_service),
):
    # EventSource clients can only issue GET requests
    try:
        payload = GenerateTextRequest(
            prompt=prompt,
            temperature=temperature,
            max_tokens=max_tokens,
            model=model,
            streaming=streaming,
            userId=userId,
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False, include_context=False))
    return await _generate_text(payload, user_id, generation)


@router.post("/analyze-image")
async def analyze_image(
    payload: AnalyzeImageRequest,
    user_id: int | None = Depends(get_optional_user_id),
    generation: GenerationService = Depends(get_generation_service),
):
    return await _analyze_image(payload, user_id, generation)


@router.get("/analyze-image")
async def analyze_image_query(
    imageUrl: str | None = None,
    prompt: str = "Describe this image in detail.",
    model: str | None = None,
    streaming: bool = False,
    userId: int | None = None,
    user_id: int | None = Depends(get_optional_user_id),
    generation: GenerationService = Depends(get_generation_service),
):
    try:
        payload = AnalyzeImageRequest(
            imageUrl=imageUrl, prompt=prompt, model=model, streaming=streaming, userId=userId
        )
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=e.errors(include_url=False, include_context=False))
    return await _analyze_image(payload, user_id, generation)


@router.get("/stop-generation")
async def stop_generation(
    connectionId: str | None = None, registry: StreamConnectionRegistry = Depends(get_stream_registry)
):
    if not connectionId:
        raise HTTPException(status_code=400, detail="connectionId is required")

    if not registry.stop(connectionId):
        raise HTTPException(status_code=404, detail="Conexão não encontrada ou já finalizada")
    return {"success": True, "message": "Geração interrompida"}


@router.get("/connections")
async def active_connections(
    user_id: int = Depends(get_current_user_id), registry: StreamConnectionRegistry = Depends(get_stream_registry)
):
    return {"success": True, "data": registry.list_connections(user_id)}
