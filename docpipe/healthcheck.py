"""Endpoint health check: ping the model with the current credential."""

import asyncio
import logging

from docpipe.models import ModelRequest
from docpipe.providers.base import ModelProvider

logger = logging.getLogger(__name__)

_PING_PROMPT = "Reply with the word OK only."
_TIMEOUT_SEC = 15.0


async def check_endpoint(provider: ModelProvider, model: str) -> tuple[bool, str]:
    """Returns (ok, error_message); error_message is "" when ok is True."""
    request = ModelRequest(model=model, instruction_parts=[_PING_PROMPT], max_output_tokens=16)
    try:
        await asyncio.wait_for(provider.generate(request), timeout=_TIMEOUT_SEC)
    except Exception as exc:
        logger.debug("Health check for %s failed: %s", model, exc)
        return False, str(exc) or type(exc).__name__
    return True, ""


async def check_models(provider: ModelProvider, models: list[str]) -> dict[str, tuple[bool, str]]:
    """Ping each model in parallel."""
    results = await asyncio.gather(*(check_endpoint(provider, m) for m in models))
    return dict(zip(models, results))
