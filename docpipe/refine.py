"""One-shot text refinement for the notes buffer."""

import logging

from docpipe.models import ModelRequest, RefinementConfig
from docpipe.providers.base import ModelProvider, ProviderError

logger = logging.getLogger(__name__)

REFINE_TEMPERATURE = 0.3
DEFAULT_MODEL = "gemini-2.5-flash"
DEFAULT_MAX_TOKENS = 2000


class RefinementFailure(Exception):
    """Raised when the refinement call fails."""


async def refine_text(
    provider: ModelProvider,
    text: str,
    instruction: str,
    model: str = DEFAULT_MODEL,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> str:
    """Rewrite `text` following `instruction`.

    Returns the original text unchanged when the endpoint replies with
    nothing. Blank input is returned as-is without a call.

    Raises:
        RefinementFailure: The endpoint call failed.
    """
    if not text.strip():
        return text
    request = ModelRequest(
        model=model or DEFAULT_MODEL,
        instruction_parts=[],
        content_parts=[f"{instruction}\n\n---Input Text---\n{text}"],
        temperature=REFINE_TEMPERATURE,
        max_output_tokens=max_tokens or DEFAULT_MAX_TOKENS,
    )
    try:
        reply = await provider.generate(request)
    except ProviderError as exc:
        logger.error("Refinement failed: %s", exc)
        raise RefinementFailure(str(exc)) from exc
    return reply.text or text


async def refine_with_config(provider: ModelProvider, text: str, config: RefinementConfig) -> str:
    return await refine_text(provider, text, config.prompt, config.model, config.max_tokens)
