from collections.abc import AsyncIterator

from google import genai
from google.genai import errors, types
from loguru import logger

from app.core.config import settings
from app.models.generation import GenerationOptions
from app.services.ai.errors import ProviderError


class GeminiProvider:
    """
    Text generation through the Gemini API.

    Image analysis is not routed here; the message list must be plain text.
    """

    def __init__(self, model: str = settings.DEFAULT_GEMINI_MODEL, api_key: str | None = None):
        self.model = model
        self.client = None
        if api_key := api_key or settings.GEMINI_API_KEY:
            try:
                self.client = genai.Client(api_key=api_key)
            except Exception as e:
                logger.warning(f"Failed to initialize Gemini client: {e}")
        else:
            logger.warning("GEMINI_API_KEY not set. Gemini generation will be disabled.")

    def _model_for(self, options: GenerationOptions) -> str:
        # OpenRouter-style ids ("vendor/model") are meaningless to Gemini
        if options.model and "/" not in options.model:
            return options.model
        return self.model

    @staticmethod
    def _contents(messages: list[dict]) -> str:
        parts = []
        for message in messages:
            content = message.get("content")
            if not isinstance(content, str):
                raise ProviderError("Gemini provider only supports text prompts", status_code=400)
            parts.append(content)
        return "\n\n".join(parts)

    @staticmethod
    def _config(options: GenerationOptions) -> types.GenerateContentConfig:
        return types.GenerateContentConfig(temperature=options.temperature, max_output_tokens=options.max_tokens)

    def _require_client(self):
        if not self.client:
            raise ProviderError("Gemini client not initialized", status_code=503)
        return self.client

    async def close(self) -> None:
        self.client = None

    async def generate(self, messages: list[dict], options: GenerationOptions) -> str:
        client = self._require_client()
        try:
            response = await client.aio.models.generate_content(
                model=self._model_for(options),
                contents=self._contents(messages),
                config=self._config(options),
            )
        except errors.APIError as e:
            logger.error(f"Error generating content with Gemini: {e}")
            raise ProviderError(e.message or str(e), status_code=e.code) from e
        return (response.text or "").strip()

    async def stream_generation(self, messages: list[dict], options: GenerationOptions) -> AsyncIterator[str]:
        client = self._require_client()
        try:
            stream = await client.aio.models.generate_content_stream(
                model=self._model_for(options),
                contents=self._contents(messages),
                config=self._config(options),
            )
            async for chunk in stream:
                if chunk.text:
                    yield chunk.text
        except errors.APIError as e:
            logger.error(f"Error streaming content with Gemini: {e}")
            raise ProviderError(e.message or str(e), status_code=e.code) from e
