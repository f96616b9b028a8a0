"""Click CLI: document loading, OCR, agent pipeline, notes and local settings."""

import asyncio
import dataclasses
import logging
import sys
from dataclasses import dataclass
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import _SETTINGS_PATH, AppConfig, load_config
from docpipe.agents import AgentStoreLocked, UnknownAgent
from docpipe.document import DocumentLoadFailure, load_document_file
from docpipe.export import export_notes
from docpipe.healthcheck import check_models
from docpipe.models import MAX_OUTPUT_TOKENS, MIN_OUTPUT_TOKENS, ExecutionLogEntry, PipelineRunState, RefinementConfig
from docpipe.ocr import OcrFailure, ocr_document
from docpipe.output import print_agents, print_dashboard, print_entry, print_final_output, save_report
from docpipe.pages import NoPagesSelected
from docpipe.pipeline import PipelineEngine, PipelineRejected
from docpipe.providers.base import ModelProvider, ProviderError
from docpipe.providers.gemini import GeminiProvider
from docpipe.refine import RefinementFailure, refine_with_config
from docpipe.session import Session
from docpipe.store import SettingsStore, resolve_api_key

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

_HANDLED_ERRORS = (
    AgentStoreLocked,
    DocumentLoadFailure,
    NoPagesSelected,
    OcrFailure,
    PipelineRejected,
    ProviderError,
    RefinementFailure,
    UnknownAgent,
)

# CLI field name -> (AgentDefinition attribute, type)
_OVERRIDE_FIELDS: dict[str, tuple[str, type]] = {
    "name": ("name", str),
    "description": ("description", str),
    "system_prompt": ("system_instruction", str),
    "user_prompt": ("user_prefix", str),
    "model": ("model_id", str),
    "temperature": ("temperature", float),
    "top_p": ("top_p", float),
    "max_tokens": ("max_output_tokens", int),
}


@dataclass
class AppContext:
    config: AppConfig
    store: SettingsStore
    session: Session


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/bold red] {message}")
    sys.exit(1)


def _build_provider(config: AppConfig, credential: str) -> ModelProvider:
    return GeminiProvider(credential, timeout_sec=config.defaults.timeout_sec)


def _require_provider(app: AppContext) -> ModelProvider:
    if not app.session.credential:
        _fail(f"Please enter your Google Gemini API Key (docpipe config set-key or {app.config.defaults.api_key_env}).")
    return _build_provider(app.config, app.session.credential)


def _parse_override(text: str) -> tuple[str, str, object]:
    """Parse "agent-2.temperature=0.5" into (agent_id, attribute, typed value)."""
    target, sep, raw_value = text.partition("=")
    agent_id, dot, field_name = target.rpartition(".")
    if not sep or not dot or not agent_id:
        raise click.BadParameter(f"Expected AGENT_ID.FIELD=VALUE, got {text!r}", param_hint="--set")
    if field_name not in _OVERRIDE_FIELDS:
        allowed = ", ".join(_OVERRIDE_FIELDS)
        raise click.BadParameter(f"Unknown field {field_name!r} (allowed: {allowed})", param_hint="--set")
    attribute, kind = _OVERRIDE_FIELDS[field_name]
    try:
        value = kind(raw_value)
    except ValueError as exc:
        raise click.BadParameter(f"{field_name} must be {kind.__name__}: {raw_value!r}", param_hint="--set") from exc
    if attribute == "max_output_tokens" and not MIN_OUTPUT_TOKENS <= value <= MAX_OUTPUT_TOKENS:
        raise click.BadParameter(
            f"max_tokens must be between {MIN_OUTPUT_TOKENS} and {MAX_OUTPUT_TOKENS}", param_hint="--set"
        )
    if kind is str:
        value = value.replace("\\n", "\n")
    return agent_id, attribute, value


def _apply_selection(session: Session, include: tuple[str, ...], exclude: tuple[str, ...]) -> None:
    """--agent narrows the selection to the given ids, --exclude toggles ids off."""
    if include:
        session.selection.replace(include)
    for agent_id in exclude:
        if agent_id in session.selection:
            session.selection.toggle(agent_id)
        else:
            session.agents.get(agent_id)  # unknown ids still fail loudly


async def _extract_text(
    app: AppContext,
    provider: ModelProvider,
    file_path: Path,
    pages: str | None,
    model: str | None,
    assume_yes: bool,
) -> str | None:
    session = app.session
    defaults = app.config.defaults
    session.set_document(load_document_file(file_path), defaults.default_page_window)
    if pages:
        session.page_range = pages
    ocr_model = model or defaults.ocr_model
    console.print(
        f"[bold cyan]OCR[/bold cyan] {file_path.name}: {session.document.page_count} page(s), "
        f"range [bold]{session.page_range}[/bold], model {ocr_model}"
    )

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Analyzing document...", total=100)

        def confirm(count: int) -> bool:
            if assume_yes:
                return True
            progress.stop()
            answer = click.confirm(f"You are about to process {count} pages. This might take a while. Continue?")
            progress.start()
            return answer

        def on_page(index: int, total: int, page_number: int) -> None:
            # Rendering is the first half of the bar, the OCR call the second.
            description = f"Rendering page {page_number}..."
            if index == total - 1:
                description += f" then sending {total} image(s) to {ocr_model}"
            progress.update(task, description=description, completed=(index + 1) / total * 50)

        text = await ocr_document(
            session,
            provider,
            ocr_model,
            scale=defaults.render_scale,
            confirm_threshold=defaults.page_confirm_threshold,
            confirm=confirm,
            on_page=on_page,
            instruction=app.config.prompts.ocr,
        )
        progress.update(task, description="Complete!", completed=100)
    return text


async def _run_pipeline(app: AppContext, provider: ModelProvider) -> tuple[ExecutionLogEntry, ...]:
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task = progress.add_task("Starting pipeline...", total=100)

        def on_progress(state: PipelineRunState) -> None:
            progress.update(task, description=state.status_message, completed=state.progress_percent)

        def on_entry(entry: ExecutionLogEntry) -> None:
            progress.print(f"[green]OK[/green] {entry.agent_name} ({entry.latency_seconds:.1f}s)")

        engine = PipelineEngine(
            app.session,
            provider_factory=lambda _credential: provider,
            on_progress=on_progress,
            on_entry=on_entry,
        )
        return await engine.run()


async def _ocr_then_run(
    app: AppContext,
    provider: ModelProvider,
    file_path: Path,
    pages: str | None,
    model: str | None,
    assume_yes: bool,
    skip_ocr: bool = False,
) -> tuple[ExecutionLogEntry, ...] | None:
    """OCR then the pipeline on one event loop; the provider's client is bound to it."""
    if not skip_ocr:
        text = await _extract_text(app, provider, file_path, pages, model, assume_yes)
        if text is None:
            return None
    selected = app.session.selection.ordered()
    console.print(f"\n[bold cyan]Pipeline[/bold cyan] -- {len(selected)} agent(s): {', '.join(selected)}")
    return await _run_pipeline(app, provider)


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
@click.option("--settings", "settings_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Alternate settings.yaml")
@click.option("--store", "store_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Alternate local key-value store file")
@click.pass_context
def main(ctx: click.Context, verbose: bool, settings_path: Path | None, store_path: Path | None) -> None:
    """docpipe -- OCR a document and run it through a chain of review agents.

    \b
    Examples:
      docpipe agents
      docpipe ocr submission.pdf --pages 1-3,7
      docpipe run submission.pdf --agent agent-1 --agent agent-5
      docpipe run extracted.md --text --set agent-2.temperature=0.4
      docpipe notes refine notes.md --preset "Fix Grammar"
      docpipe notes export notes.md --open
    """
    if sys.platform == "win32":
        if hasattr(sys.stdout, "reconfigure"):
            sys.stdout.reconfigure(encoding="utf-8", errors="replace")
        if hasattr(sys.stderr, "reconfigure"):
            sys.stderr.reconfigure(encoding="utf-8", errors="replace")

    load_dotenv()
    _setup_logging(verbose)

    try:
        config = load_config(settings_path or _SETTINGS_PATH)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)

    store = SettingsStore(store_path or config.defaults.store_path)
    session = Session.from_config(
        config,
        credential=resolve_api_key(store, config.defaults.api_key_env),
        refinement=store.get_refinement(config.refinement),
    )
    ctx.obj = AppContext(config=config, store=store, session=session)


@main.command("agents")
@click.pass_obj
def agents_cmd(app: AppContext) -> None:
    """List the built-in agents in execution order."""
    print_agents(app.session.agents.definitions(), app.session.selection.ids)


@main.command("ocr")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--pages", default=None, help='Page range, e.g. "1-3,5" (default: first 5 pages)')
@click.option("--model", default=None, help="OCR model (default: from config)")
@click.option("--yes", "assume_yes", is_flag=True, help="Skip the large page count confirmation")
@click.option("-o", "--output", "output_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write extracted text here instead of stdout")
@click.pass_obj
def ocr_cmd(app: AppContext, file: Path, pages: str | None, model: str | None, assume_yes: bool,
            output_path: Path | None) -> None:
    """Extract text from a PDF or image with a vision model."""
    provider = _require_provider(app)
    try:
        text = asyncio.run(_extract_text(app, provider, file, pages, model, assume_yes))
    except _HANDLED_ERRORS as exc:
        _fail(str(exc))
    if text is None:
        console.print("[yellow]Cancelled.[/yellow]")
        return
    if output_path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(text, encoding="utf-8")
        console.print(f"[dim]Saved to: {output_path}[/dim]")
    else:
        click.echo(text)


@main.command("run")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--text", "is_text", is_flag=True, help="FILE is already extracted text; skip OCR")
@click.option("--agent", "include", multiple=True, help="Run only these agent ids (repeatable)")
@click.option("--exclude", multiple=True, help="Leave these agent ids out (repeatable)")
@click.option("--set", "overrides", multiple=True, metavar="ID.FIELD=VALUE",
              help="Edit an agent for this run, e.g. agent-2.max_tokens=3000 (repeatable)")
@click.option("--pages", default=None, help="Page range for OCR")
@click.option("--model", default=None, help="OCR model (default: from config)")
@click.option("--yes", "assume_yes", is_flag=True, help="Skip the large page count confirmation")
@click.option("--output", "output_dir", type=click.Path(file_okay=False, path_type=Path), default=None,
              help="Report directory (default: from config)")
@click.option("--no-save", is_flag=True, help="Do not write a markdown report")
@click.pass_obj
def run_cmd(
    app: AppContext,
    file: Path,
    is_text: bool,
    include: tuple[str, ...],
    exclude: tuple[str, ...],
    overrides: tuple[str, ...],
    pages: str | None,
    model: str | None,
    assume_yes: bool,
    output_dir: Path | None,
    no_save: bool,
) -> None:
    """OCR FILE (or read it as text) and run the selected agents over it in order."""
    session = app.session
    parsed = [_parse_override(o) for o in overrides]
    try:
        for agent_id, attribute, value in parsed:
            session.agents.update_field(agent_id, attribute, value)
        _apply_selection(session, include, exclude)
    except _HANDLED_ERRORS as exc:
        _fail(f"Unknown agent {exc}" if isinstance(exc, UnknownAgent) else str(exc))

    provider = _require_provider(app)

    if is_text:
        session.ocr_text = file.read_text(encoding="utf-8")
    try:
        log = asyncio.run(_ocr_then_run(app, provider, file, pages, model, assume_yes, skip_ocr=is_text))
    except _HANDLED_ERRORS as exc:
        _fail(str(exc))
    if log is None:
        console.print("[yellow]Cancelled.[/yellow]")
        return

    for i, entry in enumerate(log, start=1):
        print_entry(i, entry)
    print_dashboard(log)
    print_final_output(log)

    if not no_save:
        saved = save_report(log, output_dir or app.config.defaults.output_dir, source=str(file))
        console.print(f"\n[dim]Saved to: {saved}[/dim]")


@main.group("notes")
def notes_group() -> None:
    """Quick notes: AI refinement and HTML export."""


@notes_group.command("refine")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--prompt", default=None, help="Instruction (default: saved refinement prompt)")
@click.option("--preset", default=None, help="Use a named preset instruction from config")
@click.option("--markdown", "to_markdown", is_flag=True, help="Restructure the notes as clean Markdown")
@click.option("-o", "--output", "output_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="Write here instead of rewriting FILE")
@click.pass_obj
def notes_refine_cmd(app: AppContext, file: Path, prompt: str | None, preset: str | None, to_markdown: bool,
                     output_path: Path | None) -> None:
    """Rewrite a notes file with the model."""
    session = app.session
    session.notes = file.read_text(encoding="utf-8")
    if not session.notes.strip():
        console.print("[yellow]Nothing to refine.[/yellow]")
        return

    if to_markdown:
        instruction = app.config.prompts.markdown_transform
    elif preset:
        presets = app.config.prompts.note_presets
        if preset not in presets:
            _fail(f"Unknown preset {preset!r} (available: {', '.join(presets)})")
        instruction = presets[preset]
    else:
        instruction = prompt or session.refinement.prompt

    provider = _require_provider(app)
    try:
        session.notes = asyncio.run(
            refine_with_config(provider, session.notes, dataclasses.replace(session.refinement, prompt=instruction))
        )
    except _HANDLED_ERRORS as exc:
        _fail(f"Failed to refine notes: {exc}")

    target = output_path or file
    target.write_text(session.notes, encoding="utf-8")
    console.print(f"[dim]Saved to: {target}[/dim]")


@notes_group.command("export")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("-o", "--output", "output_path", type=click.Path(dir_okay=False, path_type=Path), default=None,
              help="HTML file (default: FILE with .html suffix)")
@click.option("--open", "open_after", is_flag=True, help="Open the HTML in the browser for printing")
@click.pass_obj
def notes_export_cmd(app: AppContext, file: Path, output_path: Path | None, open_after: bool) -> None:
    """Convert a notes file to printable HTML."""
    app.session.notes = file.read_text(encoding="utf-8")
    saved = export_notes(app.session.notes, output_path or file.with_suffix(".html"))
    console.print(f"[dim]Saved to: {saved}[/dim]")
    if open_after:
        click.launch(str(saved))


@main.group("config")
def config_group() -> None:
    """Local settings: API key and refinement defaults."""


@config_group.command("set-key")
@click.option("--key", prompt="Google Gemini API Key", hide_input=True, help="API key to store")
@click.pass_obj
def config_set_key_cmd(app: AppContext, key: str) -> None:
    """Store the API key in the local settings file."""
    app.store.set_api_key(key.strip())
    app.session.credential = key.strip()
    console.print(f"[green]Saved[/green] API key to {app.store.path}")


@config_group.command("refine")
@click.option("--prompt", default=None, help="Default refinement instruction")
@click.option("--model", default=None, help="Refinement model")
@click.option("--max-tokens", type=click.IntRange(MIN_OUTPUT_TOKENS, MAX_OUTPUT_TOKENS), default=None,
              help="Maximum output tokens")
@click.option("--save/--no-save", default=True, help="Persist the result (default: save)")
@click.pass_obj
def config_refine_cmd(app: AppContext, prompt: str | None, model: str | None, max_tokens: int | None,
                      save: bool) -> None:
    """Show or change the notes refinement settings."""
    current = app.session.refinement
    updated = RefinementConfig(
        prompt=prompt if prompt is not None else current.prompt,
        model=model or current.model,
        max_tokens=max_tokens or current.max_tokens,
    )
    app.session.refinement = updated
    console.print(f"prompt: {updated.prompt}\nmodel: {updated.model}\nmax_tokens: {updated.max_tokens}")
    if save and updated != current:
        app.store.save_refinement(updated)
        console.print("[green]Settings Saved![/green]")


@main.command("check")
@click.option("--model", "models", multiple=True, help="Model(s) to ping (default: OCR model)")
@click.pass_obj
def check_cmd(app: AppContext, models: tuple[str, ...]) -> None:
    """Ping the model endpoint with the stored API key."""
    try:
        provider = _require_provider(app)
    except ProviderError as exc:
        _fail(str(exc))
    targets = list(models) or [app.config.defaults.ocr_model]
    console.print("\n[bold]Checking endpoint...[/bold]")
    results = asyncio.run(check_models(provider, targets))
    failed = False
    for name in targets:
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name}")
        else:
            failed = True
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name}: {short_err}")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
