"""Load settings.yaml into typed dataclasses. Built-in agents are validated at load."""

import logging
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from docpipe.models import MAX_OUTPUT_TOKENS, MIN_OUTPUT_TOKENS, AgentDefinition, RefinementConfig

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"


@dataclass
class DefaultsConfig:
    ocr_model: str
    render_scale: float
    page_confirm_threshold: int
    default_page_window: int
    output_dir: Path
    store_path: Path
    api_key_env: str = "GEMINI_API_KEY"
    timeout_sec: int = 180


@dataclass
class PromptsConfig:
    ocr: str
    markdown_transform: str
    note_presets: dict[str, str] = field(default_factory=dict)


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    prompts: PromptsConfig
    refinement: RefinementConfig
    agents: list[AgentDefinition]
    models: list[str] = field(default_factory=list)


def _parse_agent(raw: dict) -> AgentDefinition:
    agent = AgentDefinition(
        id=str(raw["id"]),
        name=str(raw["name"]),
        description=str(raw.get("description", "")),
        system_instruction=str(raw["system_prompt"]),
        user_prefix=str(raw["user_prompt"]),
        model_id=str(raw["model"]),
        temperature=float(raw["temperature"]),
        top_p=float(raw["top_p"]),
        max_output_tokens=int(raw["max_tokens"]),
    )
    if not MIN_OUTPUT_TOKENS <= agent.max_output_tokens <= MAX_OUTPUT_TOKENS:
        raise ValueError(
            f"Agent {agent.id}: max_tokens {agent.max_output_tokens} outside "
            f"[{MIN_OUTPUT_TOKENS}, {MAX_OUTPUT_TOKENS}]"
        )
    return agent


def load_config(settings_path: Path = _SETTINGS_PATH) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Raises FileNotFoundError if settings file missing, KeyError on a missing
    required key and ValueError on duplicate agent ids or out-of-range token
    limits.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        ocr_model=str(defaults_raw["ocr_model"]),
        render_scale=float(defaults_raw["render_scale"]),
        page_confirm_threshold=int(defaults_raw["page_confirm_threshold"]),
        default_page_window=int(defaults_raw["default_page_window"]),
        output_dir=Path(defaults_raw["output_dir"]),
        store_path=Path(defaults_raw["store_path"]).expanduser(),
        api_key_env=str(defaults_raw.get("api_key_env", "GEMINI_API_KEY")),
        timeout_sec=int(defaults_raw.get("timeout_sec", 180)),
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        ocr=str(prompts_raw["ocr"]).strip(),
        markdown_transform=str(prompts_raw["markdown_transform"]).strip(),
        note_presets={str(k): str(v) for k, v in prompts_raw.get("note_presets", {}).items()},
    )

    refinement_raw = raw["refinement"]
    refinement = RefinementConfig(
        prompt=str(refinement_raw["prompt"]),
        model=str(refinement_raw["model"]),
        max_tokens=int(refinement_raw["max_tokens"]),
    )

    agents = [_parse_agent(a) for a in raw["agents"]]
    ids = [a.id for a in agents]
    if len(set(ids)) != len(ids):
        raise ValueError(f"Duplicate agent ids in settings: {ids}")

    logger.debug("Loaded %d built-in agents from %s", len(agents), settings_path)

    return AppConfig(
        defaults=defaults,
        prompts=prompts,
        refinement=refinement,
        agents=agents,
        models=[str(m) for m in raw.get("models", [])],
    )
