"""Tests for docpipe/cli.py: override parsing, selection flags and commands end to end with a mock provider."""

import asyncio
from pathlib import Path

import click
import pytest
import yaml
from click.testing import CliRunner

import docpipe.cli as cli
from docpipe.agents import UnknownAgent
from docpipe.providers.base import ProviderError
from tests.conftest import MockProvider


@pytest.fixture
def provider(monkeypatch) -> MockProvider:
    mock = MockProvider(response_text="Mock response")
    monkeypatch.setattr(cli, "_build_provider", lambda config, credential: mock)
    return mock


@pytest.fixture
def runner(monkeypatch) -> CliRunner:
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    return CliRunner()


def _invoke(runner: CliRunner, tmp_path: Path, *args: str):
    return runner.invoke(cli.main, ["--store", str(tmp_path / "store.yaml"), *args])


def test_parse_override_float():
    assert cli._parse_override("agent-2.temperature=0.5") == ("agent-2", "temperature", 0.5)


def test_parse_override_maps_prompt_names():
    agent_id, attribute, value = cli._parse_override("agent-1.system_prompt=Line one\\nLine two")
    assert attribute == "system_instruction"
    assert value == "Line one\nLine two"


@pytest.mark.parametrize("text", ["agent-1.temperature", "temperature=0.2", "agent-1.colour=red",
                                  "agent-1.top_p=high", "agent-1.max_tokens=50", "agent-1.max_tokens=9000"])
def test_parse_override_rejects(text):
    with pytest.raises(click.BadParameter):
        cli._parse_override(text)


def test_apply_selection_include_and_exclude(session):
    cli._apply_selection(session, include=("agent-1", "agent-3"), exclude=("agent-3",))
    assert session.selection.ordered() == ["agent-1"]


def test_apply_selection_unknown_exclude(session):
    with pytest.raises(UnknownAgent):
        cli._apply_selection(session, include=(), exclude=("ghost",))


def test_agents_command_lists_defaults(runner, tmp_path):
    result = _invoke(runner, tmp_path, "agents")
    assert result.exit_code == 0
    assert "agent-1" in result.output
    assert "agent-5" in result.output


def test_run_text_pipeline(runner, tmp_path, provider):
    source = tmp_path / "extracted.md"
    source.write_text("Device: Example Stent", encoding="utf-8")
    out_dir = tmp_path / "reports"

    result = _invoke(runner, tmp_path, "run", str(source), "--text", "--agent", "agent-1", "--agent", "agent-5",
                     "--set", "agent-5.temperature=0.7", "--output", str(out_dir))

    assert result.exit_code == 0, result.output
    assert provider.generate.await_count == 2
    assert provider.requests[0].content_parts[0].endswith("Device: Example Stent")
    assert provider.requests[1].content_parts[0].endswith("Mock response")
    assert provider.requests[1].temperature == 0.7
    reports = list(out_dir.glob("*.md"))
    assert len(reports) == 1
    assert "Report Generator" in reports[0].read_text(encoding="utf-8")


class LoopBoundProvider(MockProvider):
    """Fails like an SDK client whose connection pool belongs to the first event loop it ran on."""

    def __init__(self) -> None:
        super().__init__(response_text="Mock response")
        self._loop: asyncio.AbstractEventLoop | None = None

    async def _reply(self, request):
        loop = asyncio.get_running_loop()
        if self._loop is None:
            self._loop = loop
        elif loop is not self._loop:
            raise ProviderError("mock", "API call failed: Event loop is closed")
        return await super()._reply(request)


def test_run_pdf_ocr_and_pipeline_share_event_loop(runner, tmp_path, monkeypatch, make_pdf):
    provider = LoopBoundProvider()
    monkeypatch.setattr(cli, "_build_provider", lambda config, credential: provider)
    pdf = tmp_path / "doc.pdf"
    pdf.write_bytes(make_pdf(2))

    result = _invoke(runner, tmp_path, "run", str(pdf), "--pages", "1-2", "--agent", "agent-1", "--agent", "agent-2",
                     "--output", str(tmp_path / "reports"))

    assert result.exit_code == 0, result.output
    assert provider.generate.await_count == 3
    assert len(provider.requests[0].images) == 2
    assert provider.requests[1].content_parts[0].endswith("Mock response")
    report = next((tmp_path / "reports").glob("*.md")).read_text(encoding="utf-8")
    assert "Error executing agent" not in report


def test_run_without_key_fails(tmp_path, monkeypatch, provider):
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    source = tmp_path / "extracted.md"
    source.write_text("text", encoding="utf-8")
    result = CliRunner().invoke(cli.main, ["--store", str(tmp_path / "store.yaml"), "run", str(source), "--text"])
    assert result.exit_code == 1
    assert "API Key" in result.output
    assert provider.generate.await_count == 0


def test_run_empty_text_rejected(runner, tmp_path, provider):
    source = tmp_path / "empty.md"
    source.write_text("   ", encoding="utf-8")
    result = _invoke(runner, tmp_path, "run", str(source), "--text", "--no-save")
    assert result.exit_code == 1
    assert "perform OCR first" in result.output


def test_run_unknown_agent(runner, tmp_path, provider):
    source = tmp_path / "doc.md"
    source.write_text("text", encoding="utf-8")
    result = _invoke(runner, tmp_path, "run", str(source), "--text", "--agent", "agent-42")
    assert result.exit_code == 1
    assert "agent-42" in result.output


def test_run_bad_override_is_usage_error(runner, tmp_path, provider):
    source = tmp_path / "doc.md"
    source.write_text("text", encoding="utf-8")
    result = _invoke(runner, tmp_path, "run", str(source), "--text", "--set", "agent-1.max_tokens=1")
    assert result.exit_code == 2


def test_ocr_command_writes_text(runner, tmp_path, provider, make_pdf):
    pdf = tmp_path / "doc.pdf"
    pdf.write_bytes(make_pdf(2))
    out = tmp_path / "doc.txt"
    result = _invoke(runner, tmp_path, "ocr", str(pdf), "--pages", "1-2", "-o", str(out))
    assert result.exit_code == 0, result.output
    assert out.read_text(encoding="utf-8") == "Mock response"
    assert len(provider.requests[0].images) == 2


def test_ocr_bad_page_range(runner, tmp_path, provider, make_pdf):
    pdf = tmp_path / "doc.pdf"
    pdf.write_bytes(make_pdf(2))
    result = _invoke(runner, tmp_path, "ocr", str(pdf), "--pages", "7-9")
    assert result.exit_code == 1
    assert "Invalid page range" in result.output


def test_notes_refine_preset(runner, tmp_path, provider):
    notes = tmp_path / "notes.md"
    notes.write_text("teh notes", encoding="utf-8")
    result = _invoke(runner, tmp_path, "notes", "refine", str(notes), "--preset", "Fix Grammar")
    assert result.exit_code == 0, result.output
    assert notes.read_text(encoding="utf-8") == "Mock response"
    assert provider.requests[0].content_parts[0].startswith("Fix grammar and improve readability.")


def test_notes_refine_unknown_preset(runner, tmp_path, provider):
    notes = tmp_path / "notes.md"
    notes.write_text("teh notes", encoding="utf-8")
    result = _invoke(runner, tmp_path, "notes", "refine", str(notes), "--preset", "Poem")
    assert result.exit_code == 1


def test_notes_export(runner, tmp_path):
    notes = tmp_path / "notes.md"
    notes.write_text("# Title\n- item", encoding="utf-8")
    result = _invoke(runner, tmp_path, "notes", "export", str(notes))
    assert result.exit_code == 0
    html = (tmp_path / "notes.html").read_text(encoding="utf-8")
    assert "<h1>Title</h1>" in html


def test_config_refine_saves(runner, tmp_path):
    result = _invoke(runner, tmp_path, "config", "refine", "--prompt", "Be brief.", "--max-tokens", "1000")
    assert result.exit_code == 0
    saved = yaml.safe_load((tmp_path / "store.yaml").read_text(encoding="utf-8"))
    assert saved["note_ai_config"] == {"prompt": "Be brief.", "model": "gemini-2.5-flash", "maxTokens": 1000}


def test_config_set_key(runner, tmp_path):
    result = _invoke(runner, tmp_path, "config", "set-key", "--key", "secret-key")
    assert result.exit_code == 0
    saved = yaml.safe_load((tmp_path / "store.yaml").read_text(encoding="utf-8"))
    assert saved["gemini_api_key"] == "secret-key"
    assert "secret-key" not in result.output


def test_check_command(runner, tmp_path, provider):
    result = _invoke(runner, tmp_path, "check")
    assert result.exit_code == 0
    assert "OK" in result.output
