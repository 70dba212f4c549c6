"""
CollaborativeAgent -- adds the collaboration protocol to any role agent.

Wraps a RoleAgent and intercepts four actions before role dispatch:

    collaboration_session_created -> join the session, acknowledge_collaboration
    share_knowledge               -> store under a fresh id, acknowledge_knowledge
    request_feedback              -> provide_feedback (text, 1-10 rating, <=3 suggestions)
    consensus_vote                -> consensus_vote_response (approve / reject / abstain)

Feedback and votes come from one LLM call framed by the agent's role. Any
failure or unparseable answer falls back to a fixed reply, so these handlers
never raise: feedback falls back to rating 7 with exactly one suggestion,
votes fall back to abstain.

Everything else goes to the wrapped agent, with performance metrics updated
around the call.
"""

import logging
import re
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..llm.client import CacheablePrompt, TextGenerator
from ..llm.json_parser import extract_rating, parse_labeled_fields, parse_list_items
from ..security.prompt_guard import wrap_user_content
from .base import AgentState, AgentStatus, RoleAgent, describe_material
from .messages import Action, AgentMessage, AgentRole, reply_to

logger = logging.getLogger(__name__)

DEFAULT_AFFINITY = 0.5
MAX_SUGGESTIONS = 3
FALLBACK_RATING = 7


class CollaborationPattern(Enum):
    """Declaration order breaks ties in pattern selection."""

    SEQUENTIAL = "sequential"
    PARALLEL = "parallel"
    ITERATIVE = "iterative"
    FEEDBACK = "feedback"
    CONSENSUS = "consensus"
    SPECIALIZATION = "specialization"
    EMERGENT = "emergent"


class Vote:
    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"


ROLE_PATTERN_AFFINITY = {
    AgentRole.DIRECTOR: {CollaborationPattern.SEQUENTIAL: 0.8, CollaborationPattern.CONSENSUS: 0.7},
    AgentRole.IDEATOR: {CollaborationPattern.PARALLEL: 0.8, CollaborationPattern.EMERGENT: 0.7},
    AgentRole.STYLIST: {CollaborationPattern.SPECIALIZATION: 0.8, CollaborationPattern.ITERATIVE: 0.7},
    AgentRole.REFINER: {CollaborationPattern.ITERATIVE: 0.8, CollaborationPattern.FEEDBACK: 0.7},
    AgentRole.CRITIC: {CollaborationPattern.FEEDBACK: 0.8, CollaborationPattern.CONSENSUS: 0.7},
}
# Each role works best with the next one in the creative chain.
NEXT_IN_CHAIN = {
    AgentRole.DIRECTOR: AgentRole.IDEATOR,
    AgentRole.IDEATOR: AgentRole.STYLIST,
    AgentRole.STYLIST: AgentRole.REFINER,
    AgentRole.REFINER: AgentRole.CRITIC,
    AgentRole.CRITIC: AgentRole.DIRECTOR,
}


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


# =============================================================================
# STATE
# =============================================================================


@dataclass
class PerformanceMetrics:
    task_completion_rate: float = 0.8
    response_time: float = 0.7
    feedback_score: float = 0.5
    innovation_score: float = 0.6

    def as_dict(self) -> dict[str, float]:
        return {
            "task_completion_rate": self.task_completion_rate,
            "response_time": self.response_time,
            "feedback_score": self.feedback_score,
            "innovation_score": self.innovation_score,
        }


@dataclass
class KnowledgeItem:
    content: Any
    source: str
    importance: float = 0.5
    session_id: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4())[:12])
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())


@dataclass
class CollaborationState:
    """Collaboration-specific state layered over AgentState."""

    sessions: list[str] = field(default_factory=list)
    specializations: list[str] = field(default_factory=list)
    metrics: PerformanceMetrics = field(default_factory=PerformanceMetrics)
    knowledge: dict[str, KnowledgeItem] = field(default_factory=dict)
    pattern_affinity: dict[CollaborationPattern, float] = field(default_factory=dict)
    collaborator_affinity: dict[AgentRole, float] = field(default_factory=dict)

    @classmethod
    def seeded(cls, role: AgentRole, specializations: list[str]) -> "CollaborationState":
        patterns = {p: DEFAULT_AFFINITY for p in CollaborationPattern}
        patterns.update(ROLE_PATTERN_AFFINITY.get(role, {}))
        collaborators = {r: DEFAULT_AFFINITY for r in AgentRole if r != role}
        collaborators[NEXT_IN_CHAIN[role]] = 0.7
        return cls(
            specializations=list(specializations),
            pattern_affinity=patterns,
            collaborator_affinity=collaborators,
        )


# =============================================================================
# AGENT
# =============================================================================


class CollaborativeAgent:
    """
    Collaboration layer around a role agent.

    Usage:
        agent = CollaborativeAgent(IdeatorAgent(llm), llm)
        reply = await agent.process(message)
        agent.collaboration.metrics.feedback_score
    """

    def __init__(self, agent: RoleAgent, llm: TextGenerator):
        self._agent = agent
        self._llm = llm
        self.collaboration = CollaborationState.seeded(agent.role, list(agent.specializations))
        self._handlers = {
            Action.SESSION_CREATED: self._on_session_created,
            Action.SHARE_KNOWLEDGE: self._on_share_knowledge,
            Action.REQUEST_FEEDBACK: self._on_request_feedback,
            Action.CONSENSUS_VOTE: self._on_consensus_vote,
        }

    @property
    def role(self) -> AgentRole:
        return self._agent.role

    @property
    def state(self) -> AgentState:
        return self._agent.state

    @property
    def inner(self) -> RoleAgent:
        return self._agent

    @property
    def label(self) -> str:
        return self.role.value.title()

    async def process(self, message: AgentMessage) -> AgentMessage | None:
        handler = self._handlers.get(message.action)
        if handler is not None:
            self.state.history.append(message)
            self.state.status = AgentStatus.WORKING
            try:
                return await handler(message)
            except Exception as e:
                logger.error(f"[{self.label}] {message.action} failed: {type(e).__name__}: {e}")
                return None
            finally:
                self.state.status = AgentStatus.IDLE

        if message.action == Action.PROVIDE_FEEDBACK:
            rating = self._parse_rating(message)
            if rating is not None:
                self.record_feedback(rating)

        start = time.monotonic()
        reply = await self._agent.process(message)
        if message.action == Action.ASSIGN_TASK and self._agent.is_addressed(message):
            self._record_task((time.monotonic() - start) * 1000, reply)
        return reply

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def _record_task(self, elapsed_ms: float, reply: AgentMessage | None) -> None:
        metrics = self.collaboration.metrics
        success = reply is not None and reply.action == Action.TASK_COMPLETED
        metrics.task_completion_rate = _clamp(
            metrics.task_completion_rate * 0.7 + (0.3 if success else 0.0)
        )
        speed = _clamp(5000 / (elapsed_ms + 1000))
        metrics.response_time = _clamp(metrics.response_time * 0.8 + speed * 0.2)

    def record_feedback(self, rating: float) -> None:
        """Blend a 1-10 rating of this agent's work into its feedback score."""
        metrics = self.collaboration.metrics
        metrics.feedback_score = _clamp(metrics.feedback_score * 0.7 + (rating / 10) * 0.3)

    def _parse_rating(self, message: AgentMessage) -> float | None:
        feedback = message.content.get("feedback")
        if not isinstance(feedback, dict) or feedback.get("rating") is None:
            return None
        try:
            return float(feedback["rating"])
        except (TypeError, ValueError):
            logger.warning(
                f"[{self.label}] Ignoring non-numeric rating {feedback['rating']!r} "
                f"from {message.from_agent}"
            )
            return None

    def nudge_pattern_affinity(self, pattern: CollaborationPattern, outcome: float, rate: float) -> None:
        current = self.collaboration.pattern_affinity.get(pattern, DEFAULT_AFFINITY)
        self.collaboration.pattern_affinity[pattern] = _clamp(current + rate * (outcome - current))

    # -------------------------------------------------------------------------
    # Protocol handlers
    # -------------------------------------------------------------------------

    async def _on_session_created(self, message: AgentMessage) -> AgentMessage:
        session_id = message.content.get("session_id")
        if session_id and session_id not in self.collaboration.sessions:
            self.collaboration.sessions.append(session_id)
        pattern = message.content.get("pattern")
        affinity = None
        if pattern is not None:
            affinity = self.collaboration.pattern_affinity.get(CollaborationPattern(pattern))
        return reply_to(
            message,
            self.role,
            {
                "action": Action.ACKNOWLEDGE_COLLABORATION,
                "session_id": session_id,
                "specializations": list(self.collaboration.specializations),
                "pattern_affinity": affinity,
            },
        )

    async def _on_share_knowledge(self, message: AgentMessage) -> AgentMessage:
        item = KnowledgeItem(
            content=message.content.get("knowledge"),
            source=message.from_agent,
            importance=float(message.content.get("importance", 0.5)),
            session_id=message.content.get("session_id"),
        )
        self.collaboration.knowledge[item.id] = item
        logger.debug(f"[{self.label}] Stored knowledge {item.id} from {item.source}")
        return reply_to(
            message,
            self.role,
            {
                "action": Action.ACKNOWLEDGE_KNOWLEDGE,
                "knowledge_id": item.id,
                "session_id": item.session_id,
            },
        )

    async def _on_request_feedback(self, message: AgentMessage) -> AgentMessage:
        content = message.content
        artifact_type = content.get("artifact_type", "artifact")
        feedback = await self._generate_feedback(artifact_type, content.get("artifact"))
        return reply_to(
            message,
            self.role,
            {
                "action": Action.PROVIDE_FEEDBACK,
                "artifact_id": content.get("artifact_id"),
                "session_id": content.get("session_id"),
                "feedback": feedback,
            },
        )

    async def _generate_feedback(self, artifact_type: str, artifact: Any) -> dict:
        fallback = {
            "content": f"{self.role.value} has reviewed the {artifact_type}.",
            "rating": FALLBACK_RATING,
            "suggestions": [f"Consider refining the {artifact_type} further."],
        }
        try:
            text = await self._ask(
                f"Review the following {artifact_type} from your perspective as the "
                f"{self.role.value}.\n\n"
                + wrap_user_content(describe_material(artifact), label="ARTIFACT")
                + "\n\nReply with:\nFeedback: <your assessment>\nRating: <1-10>\n"
                "Suggestions: a bulleted list of at most three improvements",
                temperature=0.5,
            )
        except Exception as e:
            logger.warning(f"[{self.label}] Feedback generation failed, using fallback: {e}")
            return fallback

        rating = extract_rating(text)
        if rating is None:
            logger.warning(f"[{self.label}] No rating in feedback, using fallback")
            return fallback
        fields = parse_labeled_fields(text, ["Feedback", "Rating", "Suggestions"])
        suggestions = parse_list_items(fields["Suggestions"], limit=MAX_SUGGESTIONS)
        return {
            "content": fields["Feedback"] or text.strip(),
            "rating": rating,
            "suggestions": suggestions,
        }

    async def _on_consensus_vote(self, message: AgentMessage) -> AgentMessage:
        content = message.content
        vote, rationale = await self._generate_vote(content.get("proposal"))
        return reply_to(
            message,
            self.role,
            {
                "action": Action.CONSENSUS_VOTE_RESPONSE,
                "proposal_id": content.get("proposal_id"),
                "session_id": content.get("session_id"),
                "vote": vote,
                "rationale": rationale,
            },
        )

    async def _generate_vote(self, proposal: Any) -> tuple[str, str]:
        fallback = (
            Vote.ABSTAIN,
            f"{self.role.value} has insufficient information to evaluate this proposal.",
        )
        try:
            text = await self._ask(
                f"As the {self.role.value}, vote on this proposal.\n\n"
                + wrap_user_content(describe_material(proposal), label="PROPOSAL")
                + "\n\nReply with:\nVote: approve, reject or abstain\nRationale: <one or two sentences>",
                temperature=0.3,
            )
        except Exception as e:
            logger.warning(f"[{self.label}] Vote generation failed, abstaining: {e}")
            return fallback

        fields = parse_labeled_fields(text, ["Vote", "Rationale"])
        match = re.search(r"\b(approve|reject|abstain)\b", fields["Vote"] or text, re.IGNORECASE)
        if match is None:
            logger.warning(f"[{self.label}] Unreadable vote, abstaining")
            return fallback
        return match.group(1).lower(), fields["Rationale"] or text.strip()

    async def _ask(self, request: str, temperature: float) -> str:
        response = await self._llm.call(
            prompt=CacheablePrompt(system=self._agent.system_prompt(), user_message=request),
            role=self.role.value,
            temperature=temperature,
        )
        return response.content
