"""Pure dataclasses for the document review pipeline. No logic, no deps."""

from dataclasses import dataclass, field
from enum import Enum

MIN_OUTPUT_TOKENS = 100
MAX_OUTPUT_TOKENS = 8192


@dataclass
class AgentDefinition:
    id: str
    name: str
    description: str
    system_instruction: str
    user_prefix: str
    model_id: str
    temperature: float
    top_p: float
    max_output_tokens: int


@dataclass(frozen=True)
class ExecutionLogEntry:
    agent_id: str
    agent_name: str        # copied at run time, survives later edits
    input: str
    output: str
    latency_seconds: float
    tokens: int            # character-count estimate, advisory only
    timestamp: str         # ISO-8601, completion time


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class PipelineRunState:
    status: RunStatus = RunStatus.IDLE
    current_agent_id: str | None = None
    progress_percent: float = 0.0
    status_message: str = ""


@dataclass
class RefinementConfig:
    prompt: str
    model: str
    max_tokens: int


@dataclass
class ModelRequest:
    model: str
    instruction_parts: list[str]
    content_parts: list[str] = field(default_factory=list)
    images: list[bytes] = field(default_factory=list)   # PNG buffers
    temperature: float | None = None
    top_p: float | None = None
    max_output_tokens: int | None = None


@dataclass
class ModelReply:
    text: str              # may be empty
    model: str
    latency_sec: float
    token_count: int | None = None


@dataclass
class StageResult:
    output: str
    tokens: int
