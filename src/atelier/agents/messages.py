"""
Agent message envelope, roles and the action vocabulary carried in content.

Messages are immutable. Replies are built with reply_to(), which addresses the
reply to the original sender.

Usage:
    msg = new_message(SYSTEM_ADDRESS, AgentRole.DIRECTOR, {"action": Action.CREATE_PROJECT, ...})
    reply = reply_to(msg, AgentRole.DIRECTOR, {"action": Action.ASSIGN_TASK, ...}, MessageType.REQUEST)
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

SYSTEM_ADDRESS = "system"


class AgentRole(Enum):
    """The closed set of agent roles."""

    DIRECTOR = "director"
    IDEATOR = "ideator"
    STYLIST = "stylist"
    REFINER = "refiner"
    CRITIC = "critic"

    @classmethod
    def parse(cls, value: "str | AgentRole") -> "AgentRole":
        return value if isinstance(value, cls) else cls(str(value).lower())


class MessageType:
    REQUEST = "request"
    RESPONSE = "response"
    UPDATE = "update"
    FEEDBACK = "feedback"
    SYSTEM = "system"


class Action:
    """Values of content["action"]."""

    # Director pipeline
    CREATE_PROJECT = "create_project"
    ASSIGN_TASK = "assign_task"
    TASK_COMPLETED = "task_completed"
    PROJECT_COMPLETED = "project_completed"

    # Collaboration protocol
    SESSION_CREATED = "collaboration_session_created"
    ACKNOWLEDGE_COLLABORATION = "acknowledge_collaboration"
    SHARE_KNOWLEDGE = "share_knowledge"
    ACKNOWLEDGE_KNOWLEDGE = "acknowledge_knowledge"
    REQUEST_FEEDBACK = "request_feedback"
    PROVIDE_FEEDBACK = "provide_feedback"
    CONSENSUS_VOTE = "consensus_vote"
    CONSENSUS_VOTE_RESPONSE = "consensus_vote_response"
    FEEDBACK_ACKNOWLEDGED = "feedback_acknowledged"


def address_of(target: "AgentRole | str | None") -> str | None:
    """Normalize a role or raw address to the string stored on messages."""
    if target is None:
        return None
    return target.value if isinstance(target, AgentRole) else str(target)


@dataclass(frozen=True)
class AgentMessage:
    """
    One message between agents (or between the system and an agent).

    to_agent None means broadcast. content is a structured payload whose
    "action" key selects the handler inside the receiving agent.
    """

    from_agent: str
    to_agent: str | None
    content: dict[str, Any]
    type: str = MessageType.REQUEST
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def action(self) -> str | None:
        return self.content.get("action")

    @property
    def is_broadcast(self) -> bool:
        return self.to_agent is None


def new_message(
    from_agent: "AgentRole | str",
    to_agent: "AgentRole | str | None",
    content: dict[str, Any],
    type: str = MessageType.REQUEST,
) -> AgentMessage:
    return AgentMessage(
        from_agent=address_of(from_agent),
        to_agent=address_of(to_agent),
        content=content,
        type=type,
    )


def reply_to(
    message: AgentMessage,
    from_agent: "AgentRole | str",
    content: dict[str, Any],
    type: str = MessageType.RESPONSE,
) -> AgentMessage:
    """Build a reply addressed to the original sender."""
    return new_message(from_agent, message.from_agent, content, type)
