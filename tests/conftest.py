"""Shared pytest fixtures."""

from pathlib import Path
from unittest.mock import AsyncMock

import pymupdf
import pytest

from config.config_loader import AppConfig, DefaultsConfig, PromptsConfig
from docpipe.agents import AgentSelection, AgentStore
from docpipe.models import AgentDefinition, ModelReply, ModelRequest, RefinementConfig
from docpipe.providers.base import ModelProvider
from docpipe.session import Session


def make_agent(agent_id: str, name: str | None = None, **overrides) -> AgentDefinition:
    fields = dict(
        id=agent_id,
        name=name or f"Agent {agent_id}",
        description=f"Test agent {agent_id}",
        system_instruction=f"System prompt for {agent_id}",
        user_prefix=f"User prefix for {agent_id}:",
        model_id="gemini-2.5-flash",
        temperature=0.2,
        top_p=0.95,
        max_output_tokens=2000,
    )
    fields.update(overrides)
    return AgentDefinition(**fields)


@pytest.fixture
def sample_agents() -> list[AgentDefinition]:
    return [make_agent("agent-1", "Data Extractor"), make_agent("agent-2", "Safety Analyst"),
            make_agent("agent-3", "Report Generator")]


@pytest.fixture
def sample_refinement() -> RefinementConfig:
    return RefinementConfig(prompt="Clean up grammar.", model="gemini-2.5-flash", max_tokens=2000)


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_agents, sample_refinement) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(
            ocr_model="gemini-2.5-flash",
            render_scale=1.0,
            page_confirm_threshold=20,
            default_page_window=5,
            output_dir=tmp_path / "output",
            store_path=tmp_path / "store.yaml",
        ),
        prompts=PromptsConfig(
            ocr="Transcribe these pages.",
            markdown_transform="Convert to Markdown.",
            note_presets={"Fix Grammar": "Fix grammar and improve readability."},
        ),
        refinement=sample_refinement,
        agents=sample_agents,
        models=["gemini-2.5-flash", "gemini-2.5-pro"],
    )


@pytest.fixture
def agent_store(sample_agents) -> AgentStore:
    return AgentStore(sample_agents)


@pytest.fixture
def session(sample_app_config) -> Session:
    return Session.from_config(sample_app_config, credential="test-key")


@pytest.fixture
def make_pdf():
    """Build an in-memory PDF with `pages` numbered pages."""

    def _make(pages: int = 3) -> bytes:
        doc = pymupdf.open()
        for i in range(pages):
            page = doc.new_page(width=200, height=200)
            page.insert_text((20, 50), f"Page {i + 1}")
        data = doc.tobytes()
        doc.close()
        return data

    return _make


@pytest.fixture
def png_bytes() -> bytes:
    pix = pymupdf.Pixmap(pymupdf.csRGB, pymupdf.IRect(0, 0, 4, 4), False)
    pix.set_rect(pix.irect, (255, 255, 255))
    return pix.tobytes("png")


class MockProvider(ModelProvider):
    """Test double ModelProvider that echoes a fixed reply and records requests."""

    def __init__(self, provider_name: str = "mock", response_text: str = "Mock response") -> None:
        self._name = provider_name
        self._response_text = response_text
        self.requests: list[ModelRequest] = []
        # Shadow the class method with an AsyncMock at the instance level.
        # ABC check passes because generate is defined in the class body below.
        self.generate = AsyncMock(side_effect=self._reply)  # type: ignore[assignment]

    async def _reply(self, request: ModelRequest) -> ModelReply:
        self.requests.append(request)
        return ModelReply(text=self._response_text, model=request.model, latency_sec=0.1, token_count=10)

    def name(self) -> str:
        return self._name

    async def generate(self, request: ModelRequest) -> ModelReply:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return await self._reply(request)


@pytest.fixture
def mock_provider() -> MockProvider:
    return MockProvider()
