"""
Role agents and the messaging layer.

- messages.py: AgentMessage envelope, AgentRole, MessageType, Action vocabulary
- base.py: Agent protocol, AgentState, RoleAgent dispatch
- director.py / ideator.py / stylist.py / refiner.py / critic.py: the five roles
- collaborative.py: CollaborativeAgent (knowledge, feedback, votes, metrics, affinities)
- registry.py: AgentRegistry keyed by role
- bus.py: MessageBus (direct delivery and queue-driven routing)
"""

from .messages import (
    SYSTEM_ADDRESS,
    Action,
    AgentMessage,
    AgentRole,
    MessageType,
    new_message,
    reply_to,
)
from .base import Agent, AgentState, AgentStatus, RoleAgent
from .collaborative import CollaborationPattern, CollaborativeAgent, Vote
from .director import DirectorAgent, ProjectStage
from .ideator import IdeatorAgent
from .stylist import StylistAgent
from .refiner import RefinerAgent
from .critic import CriticAgent
from .registry import AgentRegistry, build_default_registry
from .bus import MessageBus
