"""Local key-value settings: the API key and the saved refinement config."""

import logging
import os
from pathlib import Path

import yaml

from docpipe.models import RefinementConfig

logger = logging.getLogger(__name__)

API_KEY_SLOT = "gemini_api_key"
REFINEMENT_SLOT = "note_ai_config"


class SettingsStore:
    """A small YAML file read once on construction and rewritten on every save."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._data: dict = {}
        if path.exists():
            try:
                loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
            except yaml.YAMLError as exc:
                logger.error("Failed to load settings store %s: %s", path, exc)
                loaded = None
            if isinstance(loaded, dict):
                self._data = loaded

    @property
    def path(self) -> Path:
        return self._path

    def _write(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(yaml.safe_dump(self._data, allow_unicode=True, sort_keys=True), encoding="utf-8")
        try:
            os.chmod(self._path, 0o600)
        except OSError:
            logger.debug("Could not restrict permissions on %s", self._path)

    def get_api_key(self) -> str:
        return str(self._data.get(API_KEY_SLOT) or "")

    def set_api_key(self, value: str) -> None:
        self._data[API_KEY_SLOT] = value
        self._write()
        logger.info("API key saved to %s", self._path)

    def get_refinement(self, fallback: RefinementConfig) -> RefinementConfig:
        """Saved refinement config, field by field over `fallback`."""
        raw = self._data.get(REFINEMENT_SLOT)
        if not isinstance(raw, dict):
            return fallback
        try:
            return RefinementConfig(
                prompt=str(raw.get("prompt", fallback.prompt)),
                model=str(raw.get("model", fallback.model)),
                max_tokens=int(raw.get("maxTokens", fallback.max_tokens)),
            )
        except (TypeError, ValueError):
            logger.error("Failed to load note config from %s", self._path)
            return fallback

    def save_refinement(self, config: RefinementConfig) -> None:
        self._data[REFINEMENT_SLOT] = {
            "prompt": config.prompt,
            "model": config.model,
            "maxTokens": config.max_tokens,
        }
        self._write()
        logger.info("Refinement settings saved to %s", self._path)


def resolve_api_key(store: SettingsStore, env_var: str = "GEMINI_API_KEY") -> str:
    """Stored key first, then the environment (after .env is loaded)."""
    return store.get_api_key().strip() or os.environ.get(env_var, "").strip()
