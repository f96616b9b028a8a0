"""Dashboard numbers derived from an execution log. Pure, recomputed on every read."""

from collections.abc import Sequence
from dataclasses import dataclass

from docpipe.models import ExecutionLogEntry

_NAME_WIDTH = 10
_OUTPUT_PREVIEW = 200


@dataclass(frozen=True)
class EntryView:
    agent_id: str
    short_name: str
    tokens: int
    latency: float         # rounded to 2 decimals
    output_preview: str


@dataclass(frozen=True)
class LogSummary:
    total_tokens: int
    average_latency: float
    entries: tuple[EntryView, ...]


def truncate(text: str, width: int) -> str:
    return text if len(text) <= width else text[:width] + "..."


def total_tokens(log: Sequence[ExecutionLogEntry]) -> int:
    return sum(e.tokens for e in log)


def average_latency(log: Sequence[ExecutionLogEntry]) -> float:
    """Mean latency in seconds, rounded to 2 decimals; 0.0 for an empty log."""
    if not log:
        return 0.0
    return round(sum(e.latency_seconds for e in log) / len(log), 2)


def entry_view(entry: ExecutionLogEntry, name_width: int = _NAME_WIDTH, preview: int = _OUTPUT_PREVIEW) -> EntryView:
    return EntryView(
        agent_id=entry.agent_id,
        short_name=truncate(entry.agent_name, name_width),
        tokens=entry.tokens,
        latency=round(entry.latency_seconds, 2),
        output_preview=truncate(entry.output, preview),
    )


def summarize(log: Sequence[ExecutionLogEntry]) -> LogSummary:
    return LogSummary(
        total_tokens=total_tokens(log),
        average_latency=average_latency(log),
        entries=tuple(entry_view(e) for e in log),
    )
