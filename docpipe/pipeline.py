"""Pipeline execution engine: selected agents run one after another, output chained to input.

States: IDLE -> RUNNING -> COMPLETED | FAILED -> IDLE (on reset).

The engine is driven by `advance()`, which runs exactly one stage. `run()`
is the start-then-advance-until-done convenience used by the CLI.
"""

import dataclasses
import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone

from docpipe.models import AgentDefinition, ExecutionLogEntry, PipelineRunState, RunStatus
from docpipe.providers.base import ModelProvider
from docpipe.session import Session
from docpipe.stage import run_agent

logger = logging.getLogger(__name__)


class PipelineRejected(Exception):
    """Raised when a run cannot start or the engine is driven out of order."""


class PipelineEngine:
    """Runs the session's selected agents strictly in store order.

    Args:
        session: Source of OCR text, agents, selection and credential; sink
            for the execution log and run state.
        provider_factory: Builds the model endpoint from the credential once
            per run.
        on_progress: Called with a copy of the run state before each stage
            is issued, after each stage is logged, and on completion.
        on_entry: Called with each new log entry right after it is appended.
        clock: Monotonic seconds, used for stage latency.
    """

    def __init__(
        self,
        session: Session,
        provider_factory: Callable[[str], ModelProvider],
        on_progress: Callable[[PipelineRunState], None] | None = None,
        on_entry: Callable[[ExecutionLogEntry], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session = session
        self._provider_factory = provider_factory
        self._on_progress = on_progress
        self._on_entry = on_entry
        self._clock = clock
        self._provider: ModelProvider | None = None
        self._plan: list[AgentDefinition] = []
        self._position = 0
        self._current_input = ""

    @property
    def status(self) -> RunStatus:
        return self._session.run_state.status

    @property
    def plan(self) -> list[AgentDefinition]:
        """Snapshot of the agents for the current or last run."""
        return list(self._plan)

    def _notify(self) -> None:
        if self._on_progress:
            self._on_progress(dataclasses.replace(self._session.run_state))

    def _check_preconditions(self) -> None:
        session = self._session
        if self.status == RunStatus.RUNNING:
            raise PipelineRejected("A pipeline run is already in progress.")
        if not session.ocr_text or not session.ocr_text.strip():
            raise PipelineRejected("Please upload a document and perform OCR first.")
        if not session.credential or not session.credential.strip():
            raise PipelineRejected("API Key missing.")
        if not session.selection.ordered():
            raise PipelineRejected("Please select at least one agent to run.")

    def start(self) -> None:
        """Enter RUNNING with a snapshot of the selected agents.

        Any previous log is discarded. Agent definitions and the selection
        are locked until the run ends.

        Raises:
            PipelineRejected: A precondition is not met; nothing changes.
        """
        self._check_preconditions()
        session = self._session
        provider = self._provider_factory(session.credential)

        self._provider = provider
        self._plan = session.agents.snapshot(session.selection.ordered())
        self._position = 0
        self._current_input = session.ocr_text

        session.clear_log()
        session.agents.lock()
        try:
            session.run_state = PipelineRunState(status=RunStatus.RUNNING, status_message="Starting pipeline...")
            logger.info("Pipeline started with %d agent(s): %s", len(self._plan), ", ".join(a.id for a in self._plan))
            self._notify()
        except BaseException:
            self._fail(None)
            raise

    async def advance(self) -> ExecutionLogEntry:
        """Run the next stage, log it, and complete the run after the last one.

        Raises:
            PipelineRejected: The engine is not RUNNING.
        """
        if self.status != RunStatus.RUNNING:
            raise PipelineRejected(f"Cannot advance pipeline in state {self.status.value}")
        agent = self._plan[self._position]
        try:
            return await self._run_stage(agent)
        except BaseException:
            self._fail(agent)
            raise

    async def _run_stage(self, agent: AgentDefinition) -> ExecutionLogEntry:
        state = self._session.run_state

        state.current_agent_id = agent.id
        state.status_message = f"Running Agent: {agent.name}..."
        self._notify()

        input_text = self._current_input
        start = self._clock()
        result = await run_agent(self._provider, agent, input_text)
        latency = self._clock() - start

        entry = ExecutionLogEntry(
            agent_id=agent.id,
            agent_name=agent.name,
            input=input_text,
            output=result.output,
            latency_seconds=latency,
            tokens=result.tokens,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
        self._session.append_log(entry)
        self._current_input = result.output
        self._position += 1
        state.progress_percent = self._position / len(self._plan) * 100
        logger.info("Agent %s finished in %.2fs (%d/%d)", agent.id, latency, self._position, len(self._plan))

        if self._on_entry:
            self._on_entry(entry)

        if self._position >= len(self._plan):
            self._complete()
        else:
            self._notify()
        return entry

    async def run(self) -> tuple[ExecutionLogEntry, ...]:
        """Start and drive the run to completion. Returns the full log."""
        self.start()
        while self.status == RunStatus.RUNNING:
            await self.advance()
        return self._session.log

    def reset(self) -> None:
        """Clear the log and return to IDLE. Agents and selection are untouched."""
        if self.status == RunStatus.RUNNING:
            raise PipelineRejected("Cannot clear the log while a pipeline run is in progress.")
        self._session.clear_log()
        self._session.run_state = PipelineRunState()
        self._plan = []
        self._position = 0
        self._current_input = ""
        logger.info("Execution log cleared")

    def _complete(self) -> None:
        state = self._session.run_state
        state.status = RunStatus.COMPLETED
        state.current_agent_id = None
        state.progress_percent = 100.0
        state.status_message = "Pipeline complete."
        self._session.agents.unlock()
        self._provider = None
        logger.info("Pipeline completed: %d log entries", len(self._session.log))
        self._notify()

    def _fail(self, agent: AgentDefinition | None) -> None:
        state = self._session.run_state
        state.status = RunStatus.FAILED
        state.current_agent_id = None
        state.status_message = f"Pipeline failed at agent {agent.name}" if agent else "Pipeline failed to start"
        self._session.agents.unlock()
        self._provider = None
        logger.error("Pipeline failed at agent %s", agent.id if agent else "-")
        self._notify()
