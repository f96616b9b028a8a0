"""Gemini provider using google-genai SDK with native async."""

import asyncio
import logging
import time

from google import genai
from google.genai import types as genai_types

from docpipe.models import ModelReply, ModelRequest
from docpipe.providers.base import ModelProvider, ProviderError

logger = logging.getLogger(__name__)

_NAME = "gemini"


def build_contents(request: ModelRequest) -> list[genai_types.Content]:
    """Instruction text, then inline images, then content text, as one user turn."""
    parts = [genai_types.Part.from_text(text=t) for t in request.instruction_parts]
    parts += [genai_types.Part.from_bytes(data=img, mime_type="image/png") for img in request.images]
    parts += [genai_types.Part.from_text(text=t) for t in request.content_parts]
    return [genai_types.Content(role="user", parts=parts)]


def build_generation_config(request: ModelRequest) -> genai_types.GenerateContentConfig | None:
    """Only parameters the caller actually set are sent."""
    params = {
        "temperature": request.temperature,
        "top_p": request.top_p,
        "max_output_tokens": request.max_output_tokens,
    }
    params = {k: v for k, v in params.items() if v is not None}
    if not params:
        return None
    return genai_types.GenerateContentConfig(**params)


class GeminiProvider(ModelProvider):
    """Google Gemini provider via google-genai SDK."""

    def __init__(self, api_key: str, timeout_sec: int = 180) -> None:
        api_key = (api_key or "").strip()
        if not api_key:
            raise ProviderError(_NAME, "API Key is required.")
        self._timeout_sec = timeout_sec
        self._client = genai.Client(api_key=api_key)

    def name(self) -> str:
        return _NAME

    async def generate(self, request: ModelRequest) -> ModelReply:
        start = time.monotonic()
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=request.model,
                    contents=build_contents(request),
                    config=build_generation_config(request),
                ),
                timeout=self._timeout_sec,
            )
        except TimeoutError as exc:
            raise ProviderError(_NAME, f"Request timed out after {self._timeout_sec}s") from exc
        except Exception as exc:
            raise ProviderError(_NAME, f"API call failed: {exc}") from exc

        latency = time.monotonic() - start

        token_count: int | None = None
        if response.usage_metadata:
            token_count = response.usage_metadata.total_token_count

        logger.info(
            "Gemini %s: %.2fs, %d image(s), %s tokens",
            request.model,
            latency,
            len(request.images),
            token_count,
        )

        return ModelReply(
            text=response.text or "",
            model=request.model,
            latency_sec=latency,
            token_count=token_count,
        )
