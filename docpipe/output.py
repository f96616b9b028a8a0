"""Rich console output and markdown file save for pipeline runs."""

import logging
import re
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.text import Text

from docpipe.metrics import summarize, truncate
from docpipe.models import AgentDefinition, ExecutionLogEntry

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _slug(text: str, max_len: int = 40) -> str:
    """Convert text to a filename-safe slug."""
    slug = re.sub(r"[^\w\s-]", "", text.lower())
    slug = re.sub(r"[\s_-]+", "-", slug).strip("-")
    return slug[:max_len]


def _output_preview(text: str, words: int = 50) -> str:
    """Return first N words of an agent output."""
    all_words = text.split()
    preview = " ".join(all_words[:words])
    if len(all_words) > words:
        preview += "..."
    return preview


def print_agents(agents: Sequence[AgentDefinition], selected: set[str] | frozenset[str] | None = None) -> None:
    table = Table(title="Agents", show_lines=False)
    table.add_column("", width=1)
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Model", style="dim")
    table.add_column("Temp", justify="right")
    table.add_column("Top-p", justify="right")
    table.add_column("Max tokens", justify="right")
    for agent in agents:
        mark = "[green]x[/green]" if selected is None or agent.id in selected else ""
        table.add_row(
            mark,
            agent.id,
            f"{agent.name}\n[dim]{agent.description}[/dim]",
            agent.model_id,
            f"{agent.temperature:g}",
            f"{agent.top_p:g}",
            str(agent.max_output_tokens),
        )
    console.print(table)


def print_entry(index: int, entry: ExecutionLogEntry) -> None:
    """Print one finished stage as a short panel."""
    console.print(
        Panel(
            _output_preview(entry.output),
            title=f"[bold]{index}. {entry.agent_name}[/bold]",
            subtitle=f"{entry.latency_seconds:.1f}s | ~{entry.tokens} tokens",
            border_style="dim",
        )
    )


def print_dashboard(log: Sequence[ExecutionLogEntry]) -> None:
    """Totals plus one row per stage, the console version of the dashboard."""
    summary = summarize(log)
    console.print(Rule("[bold green]Execution Dashboard[/bold green]"))
    console.print(
        Text(
            f"Agents: {len(summary.entries)} | "
            f"Total tokens (est.): {summary.total_tokens} | "
            f"Avg latency: {summary.average_latency:.2f}s",
            style="dim",
        )
    )
    table = Table(show_header=True, header_style="bold")
    table.add_column("Agent")
    table.add_column("Tokens", justify="right")
    table.add_column("Latency (s)", justify="right")
    table.add_column("Output")
    for view in summary.entries:
        table.add_row(view.short_name, str(view.tokens), f"{view.latency:.2f}", truncate(view.output_preview, 80))
    console.print(table)


def print_final_output(log: Sequence[ExecutionLogEntry]) -> None:
    if not log:
        return
    console.print(Rule(f"[bold cyan]{log[-1].agent_name}[/bold cyan]"))
    console.print(Markdown(log[-1].output))


def save_report(
    log: Sequence[ExecutionLogEntry],
    output_dir: Path,
    source: str,
    slug_override: str | None = None,
) -> Path:
    """Save the full execution log as a markdown file.

    Args:
        log: Entries of one completed run.
        output_dir: Directory to save the file in.
        source: Where the pipeline input came from (file path).
        slug_override: Filename stem instead of one derived from `source`.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    slug = slug_override if slug_override is not None else _slug(Path(source).stem or "run")
    filepath = output_dir / f"{timestamp}_{slug}.md"

    summary = summarize(log)
    lines: list[str] = [
        f"# Document Review: {Path(source).name}",
        "",
        f"**Date:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"**Source:** {source}",
        f"**Agents:** {', '.join(e.agent_name for e in log)}",
        f"**Total tokens (est.):** {summary.total_tokens}",
        f"**Average latency:** {summary.average_latency:.2f}s",
        "",
        "---",
        "",
    ]

    for i, entry in enumerate(log, start=1):
        lines += [
            f"## {i}. {entry.agent_name}",
            "",
            entry.output,
            "",
            f"*Agent: {entry.agent_id} | Latency: {entry.latency_seconds:.2f}s "
            f"| Tokens (est.): {entry.tokens} | Completed: {entry.timestamp}*",
            "",
        ]

    filepath.write_text("\n".join(lines), encoding="utf-8")
    logger.info("Run report saved to: %s", filepath)
    return filepath
