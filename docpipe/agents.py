"""Ordered agent definitions and the selection of agents for the next run."""

import copy
import dataclasses
import logging
from collections.abc import Iterable

from docpipe.models import AgentDefinition

logger = logging.getLogger(__name__)

_FIELDS = {f.name for f in dataclasses.fields(AgentDefinition)}


class UnknownAgent(KeyError):
    """Raised for an agent id or index that is not in the store."""


class AgentStoreLocked(RuntimeError):
    """Raised when agents or the selection are changed while a run is active."""


class AgentStore:
    """Ordered, in-place editable list of agent definitions.

    Store order is the execution order. Definitions are never added or
    removed one at a time; the whole set is only ever reset to defaults.
    Field values are not validated here beyond the field name existing.
    """

    def __init__(self, defaults: Iterable[AgentDefinition]) -> None:
        self._defaults = [copy.copy(a) for a in defaults]
        self._agents = [copy.copy(a) for a in self._defaults]
        self._locked = False

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self):
        return iter(self._agents)

    @property
    def locked(self) -> bool:
        return self._locked

    def lock(self) -> None:
        self._locked = True

    def unlock(self) -> None:
        self._locked = False

    def _check_unlocked(self) -> None:
        if self._locked:
            raise AgentStoreLocked("Agent configuration cannot change while a pipeline run is active")

    def definitions(self) -> list[AgentDefinition]:
        return list(self._agents)

    def ids(self) -> list[str]:
        return [a.id for a in self._agents]

    def get(self, agent_id: str) -> AgentDefinition:
        for agent in self._agents:
            if agent.id == agent_id:
                return agent
        raise UnknownAgent(agent_id)

    def index_of(self, agent_id: str) -> int:
        for i, agent in enumerate(self._agents):
            if agent.id == agent_id:
                return i
        raise UnknownAgent(agent_id)

    def update_field(self, key: int | str, field: str, value: object) -> AgentDefinition:
        """Set one field of one definition, addressed by index or id."""
        self._check_unlocked()
        if field not in _FIELDS:
            raise AttributeError(f"AgentDefinition has no field {field!r}")
        if field == "id":
            raise AttributeError("Agent ids are stable and cannot be edited")
        if isinstance(key, int):
            if not 0 <= key < len(self._agents):
                raise UnknownAgent(key)
            index = key
        else:
            index = self.index_of(key)
        self._agents[index] = dataclasses.replace(self._agents[index], **{field: value})
        logger.debug("Agent %s: %s updated", self._agents[index].id, field)
        return self._agents[index]

    def reset_to_defaults(self) -> None:
        self._check_unlocked()
        self._agents = [copy.copy(a) for a in self._defaults]
        logger.info("Agent definitions reset to %d defaults", len(self._agents))

    def snapshot(self, ids: Iterable[str]) -> list[AgentDefinition]:
        """Copies of the definitions whose id is in `ids`, in store order."""
        wanted = set(ids)
        return [copy.copy(a) for a in self._agents if a.id in wanted]


class AgentSelection:
    """The set of agent ids that take part in the next run."""

    def __init__(self, store: AgentStore, ids: Iterable[str] | None = None) -> None:
        self._store = store
        self._ids: set[str] = set(store.ids() if ids is None else ids)
        self.prune()

    def __contains__(self, agent_id: str) -> bool:
        return agent_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)

    def prune(self) -> None:
        """Drop ids that no longer reference a definition."""
        known = set(self._store.ids())
        stale = self._ids - known
        if stale:
            logger.debug("Dropping stale agent ids from selection: %s", sorted(stale))
        self._ids &= known

    def toggle(self, agent_id: str) -> bool:
        """Flip one id's membership. Returns True if it is now selected."""
        self._check_unlocked()
        if agent_id in self._ids:
            self._ids.discard(agent_id)
            return False
        if agent_id not in self._store.ids():
            raise UnknownAgent(agent_id)
        self._ids.add(agent_id)
        return True

    def toggle_all(self) -> None:
        """Select everything, or clear the selection if everything is selected."""
        self._check_unlocked()
        self.prune()
        if len(self._ids) == len(self._store):
            self._ids = set()
        else:
            self._ids = set(self._store.ids())

    def replace(self, ids: Iterable[str]) -> None:
        self._check_unlocked()
        ids = set(ids)
        unknown = ids - set(self._store.ids())
        if unknown:
            raise UnknownAgent(", ".join(sorted(unknown)))
        self._ids = ids

    def ordered(self) -> list[str]:
        """Selected ids in store order."""
        self.prune()
        return [agent_id for agent_id in self._store.ids() if agent_id in self._ids]

    def _check_unlocked(self) -> None:
        if self._store.locked:
            raise AgentStoreLocked("Agent selection cannot change while a pipeline run is active")
