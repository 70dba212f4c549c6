"""
Agent contract and the shared role-agent machinery.

Every agent satisfies Agent: a role, a state, and

    async process(message) -> AgentMessage | None

process() appends the message to the agent's bounded history, may change the
agent's own state, and returns at most one reply. Fan-out belongs to the
MessageBus and the CollaborationCoordinator, never to an agent.

RoleAgent dispatches on message type:
    request  -> handle_request   (assign_task -> perform_task)
    response -> handle_response
    update   -> merge content into context
    feedback -> store, acknowledge

An exception anywhere in processing is logged and turned into a None reply;
the agent goes back to idle.
"""

import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..llm.client import CacheablePrompt, TextGenerator
from ..llm.json_parser import parse_list_items
from ..security.prompt_guard import wrap_user_content
from .messages import Action, AgentMessage, AgentRole, MessageType, reply_to

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100
MATERIAL_PREVIEW_CHARS = 4000


class AgentStatus:
    IDLE = "idle"
    WORKING = "working"


@dataclass
class AgentState:
    """What an agent owns: status, recent messages, free-form context."""

    role: AgentRole
    status: str = AgentStatus.IDLE
    history: deque = field(default_factory=lambda: deque(maxlen=HISTORY_LIMIT))
    context: dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class Agent(Protocol):
    """Anything the bus and coordinator can deliver messages to."""

    @property
    def role(self) -> AgentRole: ...

    @property
    def state(self) -> AgentState: ...

    async def process(self, message: AgentMessage) -> AgentMessage | None: ...


def describe_material(material: Any, limit: int = MATERIAL_PREVIEW_CHARS) -> str:
    """Render upstream results (dicts, lists, text) for inclusion in a prompt."""
    if material is None:
        return "(none)"
    if isinstance(material, str):
        text = material
    else:
        text = json.dumps(material, indent=2, default=str)
    return text if len(text) <= limit else text[:limit] + "\n..."


def split_title(item: str) -> dict[str, str]:
    """Split "Title: description" (or "Title - description") list items."""
    for sep in (":", " - ", " – "):
        if sep in item:
            title, _, rest = item.partition(sep)
            title = title.strip(" *_\"'")
            if title and len(title) <= 80:
                return {"title": title, "description": rest.strip()}
    return {"title": item[:60].strip(), "description": item.strip()}


class RoleAgent:
    """
    Base class for the five role agents.

    Subclasses set role, specializations and system_prompt(), and implement
    perform_task(). The LLM is the only collaborator.
    """

    role: AgentRole
    specializations: tuple[str, ...] = ()
    temperature: float = 0.7

    def __init__(self, llm: TextGenerator, history_limit: int = HISTORY_LIMIT):
        self._llm = llm
        self._state = AgentState(role=self.role, history=deque(maxlen=history_limit))
        self.last_latency_ms = 0.0

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def llm(self) -> TextGenerator:
        return self._llm

    @property
    def name(self) -> str:
        return self.role.value

    def system_prompt(self) -> str:
        return f"You are the {self.role.value.title()} agent in a multi-agent art creation system."

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def process(self, message: AgentMessage) -> AgentMessage | None:
        self._state.history.append(message)
        self._state.status = AgentStatus.WORKING
        start = time.monotonic()
        try:
            handler = {
                MessageType.REQUEST: self.handle_request,
                MessageType.RESPONSE: self.handle_response,
                MessageType.UPDATE: self.handle_update,
                MessageType.FEEDBACK: self.handle_feedback,
            }.get(message.type)
            if handler is None:
                return None
            return await handler(message)
        except Exception as e:
            logger.error(
                f"[{self.role.value.title()}] Failed to process {message.type} "
                f"({message.action or 'no action'}) from {message.from_agent}: "
                f"{type(e).__name__}: {e}"
            )
            return None
        finally:
            self._state.status = AgentStatus.IDLE
            self.last_latency_ms = (time.monotonic() - start) * 1000

    def is_addressed(self, message: AgentMessage) -> bool:
        """True if this agent is the recipient or the task's target role."""
        target = message.content.get("target_role")
        if target is not None:
            return target == self.role.value
        return message.to_agent in (None, self.role.value)

    async def handle_request(self, message: AgentMessage) -> AgentMessage | None:
        if message.action != Action.ASSIGN_TASK or not self.is_addressed(message):
            return None

        task = dict(message.content.get("task", {}))
        project = message.content.get("project") or {}
        logger.info(f"[{self.role.value.title()}] Working on task {task.get('id', '?')}")
        result = await self.perform_task(task, project)
        return reply_to(
            message,
            self.role,
            {
                "action": Action.TASK_COMPLETED,
                "task_id": task.get("id"),
                "result": result,
            },
        )

    async def handle_response(self, message: AgentMessage) -> AgentMessage | None:
        return None

    async def handle_update(self, message: AgentMessage) -> AgentMessage | None:
        self._state.context.update(
            {k: v for k, v in message.content.items() if k != "action"}
        )
        return None

    async def handle_feedback(self, message: AgentMessage) -> AgentMessage | None:
        self._state.context.setdefault("feedback", []).append(dict(message.content))
        return reply_to(
            message, self.role, {"action": Action.FEEDBACK_ACKNOWLEDGED, "message_id": message.id}
        )

    # -------------------------------------------------------------------------
    # Work
    # -------------------------------------------------------------------------

    async def perform_task(self, task: dict, project: dict) -> dict:
        raise NotImplementedError

    async def generate(self, request: str, temperature: float | None = None) -> str:
        """One LLM call framed by this agent's system prompt."""
        response = await self._llm.call(
            prompt=CacheablePrompt(system=self.system_prompt(), user_message=request),
            role=self.role.value,
            temperature=self.temperature if temperature is None else temperature,
        )
        return response.content

    async def generate_items(self, request: str, limit: int, temperature: float | None = None) -> list[str]:
        return parse_list_items(await self.generate(request, temperature), limit=limit)

    @staticmethod
    def project_brief(project: dict, task: dict) -> str:
        """The project and task description, fenced as user material."""
        requirements = project.get("requirements") or task.get("requirements") or []
        brief = (
            f"Project: {project.get('title', 'Untitled')} - {project.get('description', '')}\n"
            f"Task: {task.get('description', '')}"
        )
        if requirements:
            brief += "\nRequirements:\n" + "\n".join(f"- {r}" for r in requirements)
        return wrap_user_content(brief, label="PROJECT")
