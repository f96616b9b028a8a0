"""Explicit session context: everything one user works on between commands."""

import logging
from dataclasses import dataclass, field

from config.config_loader import AppConfig
from docpipe.agents import AgentSelection, AgentStore
from docpipe.document import LoadedDocument
from docpipe.models import ExecutionLogEntry, PipelineRunState, RefinementConfig
from docpipe.pages import default_page_range

logger = logging.getLogger(__name__)

DEFAULT_NOTES = "# Quick Notes\n\n- [ ] Check contraindications\n- [ ] Verify dosage"


@dataclass
class Session:
    """Owns agent definitions, selection, source text, log and run state.

    The pipeline engine is the only writer of the execution log and run
    state; everything else reads them.
    """

    agents: AgentStore
    selection: AgentSelection
    refinement: RefinementConfig
    credential: str = ""
    document: LoadedDocument | None = None
    page_range: str = ""
    ocr_text: str = ""
    notes: str = DEFAULT_NOTES
    run_state: PipelineRunState = field(default_factory=PipelineRunState)
    _log: list[ExecutionLogEntry] = field(default_factory=list, repr=False)

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        credential: str = "",
        refinement: RefinementConfig | None = None,
    ) -> "Session":
        agents = AgentStore(config.agents)
        return cls(
            agents=agents,
            selection=AgentSelection(agents),
            refinement=refinement or config.refinement,
            credential=credential,
        )

    @property
    def log(self) -> tuple[ExecutionLogEntry, ...]:
        return tuple(self._log)

    def append_log(self, entry: ExecutionLogEntry) -> None:
        self._log.append(entry)

    def clear_log(self) -> None:
        self._log.clear()

    def set_document(self, document: LoadedDocument, page_window: int = 5) -> None:
        """New upload: default page range, previous OCR text discarded."""
        self.document = document
        self.page_range = default_page_range(document.page_count, page_window)
        self.ocr_text = ""
        logger.debug("Document set: %d pages, range %s", document.page_count, self.page_range)
