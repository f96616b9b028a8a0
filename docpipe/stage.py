"""Single agent invocation. Never raises; failures become the stage's output text."""

import logging
import math

from docpipe.models import AgentDefinition, ModelRequest, StageResult
from docpipe.providers.base import ModelProvider

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.5-flash"
EMPTY_OUTPUT_PLACEHOLDER = "No response generated."


def estimate_tokens(system_instruction: str, user_prefix: str, input_text: str, output_text: str) -> int:
    """Roughly four characters per token. Advisory only."""
    chars = len(system_instruction) + len(user_prefix) + len(input_text) + len(output_text)
    return math.ceil(chars / 4)


def build_stage_request(agent: AgentDefinition, input_text: str) -> ModelRequest:
    return ModelRequest(
        model=agent.model_id or DEFAULT_MODEL,
        instruction_parts=[agent.system_instruction],
        content_parts=[f"{agent.user_prefix}\n\n---Document Content---\n{input_text}"],
        temperature=agent.temperature,
        top_p=agent.top_p,
        max_output_tokens=agent.max_output_tokens,
    )


async def run_agent(provider: ModelProvider, agent: AgentDefinition, input_text: str) -> StageResult:
    """Call the endpoint for one stage.

    Any failure is logged and returned as an error message with zero tokens,
    so a bad stage never aborts the rest of a run.
    """
    try:
        reply = await provider.generate(build_stage_request(agent, input_text))
    except Exception as exc:
        logger.warning("Agent %s failed: %s", agent.id, exc)
        return StageResult(output=f"Error executing agent {agent.name}: {str(exc) or 'Unknown error'}", tokens=0)

    output = reply.text or EMPTY_OUTPUT_PLACEHOLDER
    tokens = estimate_tokens(agent.system_instruction, agent.user_prefix, input_text, output)
    return StageResult(output=output, tokens=tokens)
