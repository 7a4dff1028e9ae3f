import json
from collections.abc import AsyncIterator
from contextlib import aclosing
from typing import Any

import httpx
from loguru import logger

from app.core.base_client import BaseClient
from app.core.config import settings
from app.models.generation import GenerationOptions
from app.services.ai.errors import ProviderError

DONE_MARKER = "[DONE]"


def parse_sse_data(line: str) -> str | None:
    """Return the payload of a `data:` line, or None for blanks, comments and other fields."""
    line = line.strip()
    if not line or line.startswith(":"):
        return None
    if not line.startswith("data:"):
        return None
    return line[len("data:") :].strip()


def extract_content(payload: dict[str, Any]) -> str | None:
    """Pull generated text out of the chunk shapes different upstream models send."""
    choices = payload.get("choices")
    if isinstance(choices, list) and choices:
        first = choices[0] or {}
        delta = first.get("delta") or {}
        if delta.get("content"):
            return delta["content"]
        if first.get("text"):
            return first["text"]
    if isinstance(payload.get("content"), str) and payload["content"]:
        return payload["content"]
    if isinstance(payload.get("text"), str) and payload["text"]:
        return payload["text"]
    delta = payload.get("delta")
    if isinstance(delta, dict) and delta.get("content"):
        return delta["content"]
    return None


def parse_stream_event(data: str) -> str | None:
    """
    Turn one upstream event payload into text.

    Error payloads raise ProviderError; payloads that are not JSON are passed
    through as raw text.
    """
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        logger.warning(f"Non-JSON stream payload forwarded as text: {data[:80]}")
        return data or None

    if not isinstance(payload, dict):
        return None

    content = extract_content(payload)
    error = payload.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else str(error)
        raise ProviderError(message or "Stream data error")
    return content


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    except (json.JSONDecodeError, ValueError):
        pass
    return f"Upstream returned HTTP {response.status_code}"


class OpenRouterProvider(BaseClient):
    """
    Chat-completions client for OpenRouter.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str = settings.OPENROUTER_BASE_URL,
        timeout: float = settings.OPENROUTER_TIMEOUT_SECONDS,
    ):
        api_key = api_key or settings.OPENROUTER_API_KEY
        if not api_key:
            logger.warning("OPENROUTER_API_KEY not set. Generation requests will be rejected upstream.")
        headers = {
            "Authorization": f"Bearer {api_key or ''}",
            "HTTP-Referer": settings.SITE_URL,
            "X-Title": settings.SITE_NAME,
            "Content-Type": "application/json",
        }
        super().__init__(base_url=base_url, timeout=timeout, max_retries=2, headers=headers)

    @staticmethod
    def _payload(messages: list[dict], options: GenerationOptions, stream: bool) -> dict[str, Any]:
        payload: dict[str, Any] = {"model": options.model, "messages": messages, "stream": stream}
        if options.temperature is not None:
            payload["temperature"] = options.temperature
        if options.max_tokens is not None:
            payload["max_tokens"] = options.max_tokens
        return payload

    async def generate(self, messages: list[dict], options: GenerationOptions) -> str:
        try:
            data = await self.post("/chat/completions", json=self._payload(messages, options, stream=False))
        except httpx.HTTPStatusError as e:
            raise ProviderError(_error_message(e.response), status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Upstream request failed: {e}") from e

        try:
            return data["choices"][0]["message"]["content"] or ""
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError("Upstream response had no content") from e

    async def stream_generation(self, messages: list[dict], options: GenerationOptions) -> AsyncIterator[str]:
        logger.info(f"Opening generation stream with model {options.model}")
        lines = self.stream_lines(
            "POST",
            "/chat/completions",
            json=self._payload(messages, options, stream=True),
            headers={"Accept": "text/event-stream"},
        )
        try:
            async with aclosing(lines):
                async for line in lines:
                    data = parse_sse_data(line)
                    if data is None:
                        continue
                    if data == DONE_MARKER:
                        return
                    text = parse_stream_event(data)
                    if text:
                        yield text
        except httpx.HTTPStatusError as e:
            raise ProviderError(_error_message(e.response), status_code=e.response.status_code) from e
        except httpx.RequestError as e:
            raise ProviderError(f"Upstream stream failed: {e}") from e
