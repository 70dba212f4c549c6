"""
AgentRegistry -- one agent per role.

Holds the role agents the MessageBus delivers to and the coordinator builds
sessions from. Roles are a closed set, so the registry is keyed by AgentRole.

Usage:
    registry = build_default_registry(llm)   # all five, collaboration-enabled
    director = registry.get(AgentRole.DIRECTOR)
    stylists = registry.get_by_specialization("aesthetics")
"""

import logging

from ..errors import UnknownAgentError
from ..llm.client import TextGenerator
from .base import Agent
from .collaborative import CollaborativeAgent
from .critic import CriticAgent
from .director import DirectorAgent
from .ideator import IdeatorAgent
from .messages import AgentRole
from .refiner import RefinerAgent
from .stylist import StylistAgent

logger = logging.getLogger(__name__)

ROLE_CLASSES = {
    AgentRole.DIRECTOR: DirectorAgent,
    AgentRole.IDEATOR: IdeatorAgent,
    AgentRole.STYLIST: StylistAgent,
    AgentRole.REFINER: RefinerAgent,
    AgentRole.CRITIC: CriticAgent,
}


class AgentEntry:
    """Registry entry wrapping an agent with its advertised specializations."""

    def __init__(self, agent: Agent, specializations: list[str] | None = None):
        self.agent = agent
        self.specializations = specializations or []

    def to_dict(self) -> dict:
        info = {
            "role": self.agent.role.value,
            "status": self.agent.state.status,
            "specializations": self.specializations,
            "history_size": len(self.agent.state.history),
            "collaborative": isinstance(self.agent, CollaborativeAgent),
        }
        if isinstance(self.agent, CollaborativeAgent):
            info["metrics"] = self.agent.collaboration.metrics.as_dict()
            info["sessions"] = list(self.agent.collaboration.sessions)
        return info


class AgentRegistry:
    """Role -> agent map. Registering a role twice replaces the earlier agent."""

    def __init__(self):
        self._agents: dict[AgentRole, AgentEntry] = {}

    def register(self, agent: Agent) -> None:
        if not isinstance(agent, Agent):
            raise TypeError(f"{type(agent).__name__} does not implement the Agent protocol")
        specializations = (
            agent.collaboration.specializations
            if isinstance(agent, CollaborativeAgent)
            else list(getattr(agent, "specializations", ()))
        )
        if agent.role in self._agents:
            logger.warning(f"[AgentRegistry] Replacing agent for role '{agent.role.value}'")
        self._agents[agent.role] = AgentEntry(agent, list(specializations))
        logger.info(f"[AgentRegistry] Registered {agent.role.value}")

    def unregister(self, role: AgentRole | str) -> bool:
        role = AgentRole.parse(role)
        if role in self._agents:
            del self._agents[role]
            logger.info(f"[AgentRegistry] Unregistered {role.value}")
            return True
        return False

    def get(self, role: AgentRole | str) -> Agent:
        """Agent for a role. Raises UnknownAgentError if none is registered."""
        try:
            return self._agents[AgentRole.parse(role)].agent
        except (KeyError, ValueError):
            raise UnknownAgentError(f"No agent registered for role '{role}'") from None

    def has(self, role: AgentRole | str) -> bool:
        try:
            return AgentRole.parse(role) in self._agents
        except ValueError:
            return False

    def get_all(self) -> list[Agent]:
        return [entry.agent for entry in self._agents.values()]

    def get_by_specialization(self, tag: str) -> list[Agent]:
        tag = tag.lower()
        return [
            entry.agent
            for entry in self._agents.values()
            if any(tag in s.lower() for s in entry.specializations)
        ]

    def specializations_of(self, role: AgentRole) -> list[str]:
        entry = self._agents.get(role)
        return list(entry.specializations) if entry else []

    def list_info(self) -> list[dict]:
        return [entry.to_dict() for entry in self._agents.values()]

    @property
    def roles(self) -> list[AgentRole]:
        return list(self._agents)

    @property
    def count(self) -> int:
        return len(self._agents)


def build_default_registry(llm: TextGenerator, collaborative: bool = True) -> AgentRegistry:
    """Create all five role agents, wrapped in the collaboration layer by default."""
    registry = AgentRegistry()
    for role_class in ROLE_CLASSES.values():
        agent = role_class(llm)
        registry.register(CollaborativeAgent(agent, llm) if collaborative else agent)
    return registry
