"""
CollaborationCoordinator -- named working sessions among a subset of agents.

A session picks participants and one of seven collaboration patterns, runs the
pattern's message choreography over the MessageBus, then concludes. On
conclusion each participant's affinity for the pattern moves toward the
session's outcome score, so pattern selection learns what works.

Lifecycle: created -> active -> concluded.

Usage:
    coordinator = CollaborationCoordinator(registry, bus)
    session = await coordinator.create_session(
        "Harbor series", "Three studies of a harbor at dawn",
        participants=[AgentRole.IDEATOR, AgentRole.STYLIST, AgentRole.CRITIC],
    )  # pattern chosen from participant affinities
    result = await coordinator.run_session(session.id, {"description": "Plan the series"})
    print(coordinator.get_collaboration_metrics())
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..agents.bus import MessageBus
from ..agents.collaborative import (
    DEFAULT_AFFINITY,
    ROLE_PATTERN_AFFINITY,
    CollaborationPattern,
    CollaborativeAgent,
    Vote,
)
from ..agents.messages import (
    SYSTEM_ADDRESS,
    Action,
    AgentMessage,
    AgentRole,
    MessageType,
    new_message,
)
from ..agents.registry import AgentRegistry
from ..config import CollaborationConfig
from ..errors import SessionError, UnknownAgentError
from .patterns import PATTERN_RUNNERS

logger = logging.getLogger(__name__)

# Keyword -> role used by recommend_collaboration(). The Director always joins.
RECOMMENDATION_KEYWORDS = {
    AgentRole.IDEATOR: ("idea", "concept", "brainstorm"),
    AgentRole.STYLIST: ("style", "visual", "aesthetic", "color"),
    AgentRole.REFINER: ("refine", "improve", "polish", "detail"),
    AgentRole.CRITIC: ("evaluate", "critique", "review", "assess"),
}


class SessionState:
    CREATED = "created"
    ACTIVE = "active"
    CONCLUDED = "concluded"


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass
class SessionMetrics:
    message_count: int = 0
    iteration_count: int = 0
    consensus_rate: float = 0.0
    contribution_balance: dict[str, int] = field(default_factory=dict)
    collaboration_score: float = 0.0

    @property
    def balance_score(self) -> float:
        """1.0 when every contributor produced equally, toward 0 when lopsided."""
        counts = list(self.contribution_balance.values())
        if not counts or max(counts) == 0:
            return 0.0
        return min(counts) / max(counts)


@dataclass
class CollaborationSession:
    title: str
    description: str
    participants: list[AgentRole]
    pattern: CollaborationPattern
    state: str = SessionState.CREATED
    artifacts: list[dict] = field(default_factory=list)
    history: list[AgentMessage] = field(default_factory=list)
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    result: dict[str, Any] | None = None
    id: str = field(default_factory=lambda: f"session-{str(uuid.uuid4())[:8]}")
    created_at: str = field(default_factory=lambda: datetime.now().isoformat())
    concluded_at: str | None = None

    @property
    def project(self) -> dict:
        return {"id": self.id, "title": self.title, "description": self.description}


# =============================================================================
# COORDINATOR
# =============================================================================


class CollaborationCoordinator:
    """
    Creates, runs and concludes collaboration sessions.

    Messages from the coordinator carry from_agent="system". All traffic goes
    through bus.deliver(), and both the message and its reply are recorded
    on the session.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        bus: MessageBus,
        config: CollaborationConfig | None = None,
    ):
        self.config = config or CollaborationConfig()
        self._registry = registry
        self._bus = bus
        self._sessions: dict[str, CollaborationSession] = {}

    # -------------------------------------------------------------------------
    # Sessions
    # -------------------------------------------------------------------------

    async def create_session(
        self,
        title: str,
        description: str,
        participants: list[AgentRole | str],
        pattern: CollaborationPattern | str | None = None,
    ) -> CollaborationSession:
        roles = []
        for p in participants:
            role = AgentRole.parse(p)
            if not self._registry.has(role):
                raise UnknownAgentError(f"No agent registered for role '{role.value}'")
            if role not in roles:
                roles.append(role)
        if not roles:
            raise ValueError("A session needs at least one participant")

        chosen = CollaborationPattern(pattern) if pattern is not None else self.select_pattern(roles)
        session = CollaborationSession(
            title=title, description=description, participants=roles, pattern=chosen
        )
        self._sessions[session.id] = session
        logger.info(
            f"[Collaboration] Created session '{title}' ({session.id}) "
            f"pattern={chosen.value} participants={[r.value for r in roles]}"
        )

        replies = await asyncio.gather(
            *[
                self.exchange(
                    session,
                    role,
                    {
                        "action": Action.SESSION_CREATED,
                        "title": title,
                        "description": description,
                        "pattern": chosen.value,
                        "participants": [r.value for r in roles],
                    },
                    MessageType.SYSTEM,
                )
                for role in roles
            ],
            return_exceptions=True,
        )
        acknowledged = sum(
            1
            for r in replies
            if isinstance(r, AgentMessage) and r.action == Action.ACKNOWLEDGE_COLLABORATION
        )
        session.state = SessionState.ACTIVE
        logger.info(f"[Collaboration] {acknowledged}/{len(roles)} participants joined {session.id}")
        return session

    def get_session(self, session_id: str) -> CollaborationSession | None:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[CollaborationSession]:
        return list(self._sessions.values())

    def _active_session(self, session_id: str) -> CollaborationSession:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionError(f"Unknown session {session_id}")
        if session.state == SessionState.CONCLUDED:
            raise SessionError(f"Session {session_id} is already concluded")
        return session

    async def run_session(self, session_id: str, task: dict) -> dict:
        """Run the session's pattern on a task, then conclude the session."""
        session = self._active_session(session_id)
        task = {"description": session.description, **task}
        logger.info(f"[Collaboration] Running {session.pattern.value} session {session.id}")

        result = await PATTERN_RUNNERS[session.pattern](self, session, task)
        session.result = result
        self.conclude_session(session.id, result.get("outcome", 0.0))
        return result

    def conclude_session(self, session_id: str, outcome: float = 0.0) -> CollaborationSession:
        """Close a session and nudge participants' affinity for its pattern toward outcome."""
        session = self._active_session(session_id)
        outcome = max(0.0, min(1.0, outcome))
        session.state = SessionState.CONCLUDED
        session.concluded_at = datetime.now().isoformat()
        session.metrics.collaboration_score = outcome

        for role in session.participants:
            agent = self._registry.get(role) if self._registry.has(role) else None
            if isinstance(agent, CollaborativeAgent):
                agent.nudge_pattern_affinity(
                    session.pattern, outcome, self.config.affinity_learning_rate
                )
                if session.id in agent.collaboration.sessions:
                    agent.collaboration.sessions.remove(session.id)

        logger.info(
            f"[Collaboration] Concluded {session.id} ({session.pattern.value}) "
            f"score={outcome:.2f} messages={session.metrics.message_count}"
        )
        return session

    # -------------------------------------------------------------------------
    # Pattern selection
    # -------------------------------------------------------------------------

    def pattern_affinity(self, role: AgentRole, pattern: CollaborationPattern) -> float:
        agent = self._registry.get(role) if self._registry.has(role) else None
        if isinstance(agent, CollaborativeAgent):
            return agent.collaboration.pattern_affinity.get(pattern, DEFAULT_AFFINITY)
        return ROLE_PATTERN_AFFINITY.get(role, {}).get(pattern, DEFAULT_AFFINITY)

    def specializations_of(self, role: AgentRole) -> list[str]:
        return self._registry.specializations_of(role)

    def select_pattern(self, participants: list[AgentRole]) -> CollaborationPattern:
        """Pattern with the highest summed participant affinity; declaration order breaks ties."""
        best, best_score = None, float("-inf")
        for pattern in CollaborationPattern:
            score = sum(self.pattern_affinity(role, pattern) for role in participants)
            if score > best_score:
                best, best_score = pattern, score
        return best

    def recommend_collaboration(self, task_description: str) -> dict:
        """Suggest participants by keyword and a pattern by affinity."""
        text = task_description.lower()
        participants = [AgentRole.DIRECTOR]
        for role, words in RECOMMENDATION_KEYWORDS.items():
            if any(w in text for w in words):
                participants.append(role)
        if len(participants) < 2:
            participants.append(AgentRole.IDEATOR)
        participants = [r for r in participants if self._registry.has(r)]

        pattern = self.select_pattern(participants)
        return {
            "participants": participants,
            "pattern": pattern,
            "rationale": (
                f"{pattern.value} has the strongest combined affinity among "
                f"{', '.join(r.value for r in participants)}"
            ),
        }

    # -------------------------------------------------------------------------
    # Messaging primitives used by the pattern runners
    # -------------------------------------------------------------------------

    async def exchange(
        self,
        session: CollaborationSession,
        role: AgentRole,
        content: dict,
        type: str = MessageType.REQUEST,
        sender: AgentRole | str = SYSTEM_ADDRESS,
    ) -> AgentMessage | None:
        message = new_message(sender, role, {**content, "session_id": session.id}, type)
        session.history.append(message)
        session.metrics.message_count += 1
        reply = await self._bus.deliver(message)
        if reply is not None:
            session.history.append(reply)
            session.metrics.message_count += 1
        return reply

    async def assign(self, session: CollaborationSession, role: AgentRole, task: dict) -> Any:
        """Give a participant a task; returns its result or None."""
        reply = await self.exchange(
            session,
            role,
            {
                "action": Action.ASSIGN_TASK,
                "task": task,
                "target_role": role.value,
                "project": session.project,
            },
        )
        if reply is None or reply.action != Action.TASK_COMPLETED:
            logger.warning(f"[Collaboration] {role.value} produced nothing for {task.get('id')}")
            return None
        result = reply.content.get("result")
        self.add_session_artifact(session.id, role, result)
        return result

    async def request_feedback(
        self,
        session: CollaborationSession,
        author: AgentRole,
        artifact: Any,
        reviewers: list[AgentRole],
        artifact_type: str = "artwork",
    ) -> list[dict]:
        """Ask reviewers to rate an artifact; ratings feed the author's feedback score."""
        artifact_id = str(uuid.uuid4())[:12]
        replies = await asyncio.gather(
            *[
                self.exchange(
                    session,
                    reviewer,
                    {
                        "action": Action.REQUEST_FEEDBACK,
                        "artifact_id": artifact_id,
                        "artifact_type": artifact_type,
                        "artifact": artifact,
                    },
                )
                for reviewer in reviewers
            ],
            return_exceptions=True,
        )
        feedback = []
        for reviewer, reply in zip(reviewers, replies):
            if isinstance(reply, Exception):
                logger.error(f"[Collaboration] Feedback from {reviewer.value} failed: {reply}")
                continue
            if reply is None or reply.action != Action.PROVIDE_FEEDBACK:
                continue
            entry = {"reviewer": reviewer.value, **reply.content["feedback"]}
            feedback.append(entry)
            self.record_agent_feedback(author, entry["rating"])
        return feedback

    async def call_vote(
        self, session: CollaborationSession, proposal: Any, voters: list[AgentRole]
    ) -> dict:
        """
        Collect votes. Approved only if approvals are a strict majority of the
        approve/reject votes cast; a tie or no votes cast is a rejection.
        """
        proposal_id = str(uuid.uuid4())[:12]
        replies = await asyncio.gather(
            *[
                self.exchange(
                    session,
                    voter,
                    {
                        "action": Action.CONSENSUS_VOTE,
                        "proposal_id": proposal_id,
                        "proposal": proposal,
                    },
                )
                for voter in voters
            ],
            return_exceptions=True,
        )
        votes = {}
        for voter, reply in zip(voters, replies):
            if isinstance(reply, AgentMessage) and reply.action == Action.CONSENSUS_VOTE_RESPONSE:
                votes[voter.value] = {
                    "vote": reply.content.get("vote", Vote.ABSTAIN),
                    "rationale": reply.content.get("rationale", ""),
                }
            else:
                votes[voter.value] = {"vote": Vote.ABSTAIN, "rationale": "no response"}

        tally = {v: 0 for v in (Vote.APPROVE, Vote.REJECT, Vote.ABSTAIN)}
        for entry in votes.values():
            tally[entry["vote"]] = tally.get(entry["vote"], 0) + 1
        cast = tally[Vote.APPROVE] + tally[Vote.REJECT]
        approved = cast > 0 and tally[Vote.APPROVE] * 2 > cast
        session.metrics.consensus_rate = tally[Vote.APPROVE] / cast if cast else 0.0

        logger.info(
            f"[Collaboration] Vote on {proposal_id}: {tally} -> "
            f"{'approved' if approved else 'rejected'}"
        )
        return {"proposal_id": proposal_id, "approved": approved, "tally": tally, "votes": votes}

    async def share_knowledge(
        self,
        session_id: str,
        from_role: AgentRole | str,
        knowledge: Any,
        importance: float = 0.5,
        to_role: AgentRole | str | None = None,
    ) -> list[str]:
        """
        Send knowledge to one participant, or to every other participant when
        to_role is None. Returns the knowledge ids the recipients stored.
        """
        session = self._active_session(session_id)
        sender = AgentRole.parse(from_role)
        targets = (
            [AgentRole.parse(to_role)]
            if to_role is not None
            else [r for r in session.participants if r != sender]
        )
        ids = []
        for target in targets:
            reply = await self.exchange(
                session,
                target,
                {
                    "action": Action.SHARE_KNOWLEDGE,
                    "knowledge": knowledge,
                    "importance": importance,
                },
                sender=sender,
            )
            if reply is not None and reply.action == Action.ACKNOWLEDGE_KNOWLEDGE:
                ids.append(reply.content["knowledge_id"])
        return ids

    # -------------------------------------------------------------------------
    # Bookkeeping
    # -------------------------------------------------------------------------

    def add_session_artifact(self, session_id: str, role: AgentRole, artifact: Any) -> None:
        session = self._sessions[session_id]
        session.artifacts.append({
            "role": role.value,
            "artifact": artifact,
            "timestamp": datetime.now().isoformat(),
        })
        balance = session.metrics.contribution_balance
        balance[role.value] = balance.get(role.value, 0) + 1

    def record_agent_feedback(self, role: AgentRole | str, rating: float) -> None:
        """Blend a 1-10 rating into a collaborative agent's feedback score."""
        agent = self._registry.get(role)
        if isinstance(agent, CollaborativeAgent):
            agent.record_feedback(float(rating))
        else:
            logger.warning(f"[Collaboration] {AgentRole.parse(role).value} does not track feedback")

    def get_collaboration_metrics(self) -> dict:
        sessions = list(self._sessions.values())
        by_state = {s: 0 for s in (SessionState.CREATED, SessionState.ACTIVE, SessionState.CONCLUDED)}
        for s in sessions:
            by_state[s.state] += 1

        effectiveness = {}
        for pattern in CollaborationPattern:
            scores = [
                s.metrics.collaboration_score
                for s in sessions
                if s.pattern == pattern and s.state == SessionState.CONCLUDED
            ]
            if scores:
                effectiveness[pattern.value] = {
                    "sessions": len(scores),
                    "average_score": sum(scores) / len(scores),
                }

        agent_performance = {
            agent.role.value: agent.collaboration.metrics.as_dict()
            for agent in self._registry.get_all()
            if isinstance(agent, CollaborativeAgent)
        }
        total_messages = sum(s.metrics.message_count for s in sessions)
        return {
            "total_sessions": len(sessions),
            "sessions_by_state": by_state,
            "average_messages_per_session": total_messages / len(sessions) if sessions else 0.0,
            "pattern_effectiveness": effectiveness,
            "agent_performance": agent_performance,
        }
