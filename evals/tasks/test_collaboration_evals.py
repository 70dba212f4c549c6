"""
Collaboration Evals -- session lifecycle, pattern selection and the seven patterns.

CODE-BASED graders over CollaborationCoordinator with scripted agents.
"""

import pytest

from atelier.agents import AgentRole, CollaborationPattern, MessageBus, Vote, build_default_registry
from atelier.artifacts import PlaceholderArtifactGenerator
from atelier.config import CollaborationConfig, EngineConfig, PreferenceConfig
from atelier.engine import create_engine
from atelier.errors import GenerationError, SessionError, UnknownAgentError
from atelier.orchestration import CollaborationCoordinator, SessionState

from ..conftest import REVIEW_REPLY, studio_reply

DIRECTOR, IDEATOR, STYLIST, REFINER, CRITIC = (
    AgentRole.DIRECTOR,
    AgentRole.IDEATOR,
    AgentRole.STYLIST,
    AgentRole.REFINER,
    AgentRole.CRITIC,
)


def coordinator_for(llm, **config) -> CollaborationCoordinator:
    registry = build_default_registry(llm)
    return CollaborationCoordinator(registry, MessageBus(registry), CollaborationConfig(**config))


class TestSessions:
    """Eval: sessions move created -> active -> concluded and enforce it."""

    @pytest.mark.asyncio
    async def test_create_notifies_participants(self, coordinator, registry):
        session = await coordinator.create_session("Harbor", "Fog study", [IDEATOR, "critic"])

        assert session.state == SessionState.ACTIVE
        assert session.participants == [IDEATOR, CRITIC]
        assert session.metrics.message_count == 4
        assert session.id in registry.get(IDEATOR).collaboration.sessions

    @pytest.mark.asyncio
    async def test_unknown_participant_rejected(self, mock_llm):
        registry = build_default_registry(mock_llm)
        registry.unregister(CRITIC)
        coordinator = CollaborationCoordinator(registry, MessageBus(registry))
        with pytest.raises(UnknownAgentError):
            await coordinator.create_session("Harbor", "x", [IDEATOR, CRITIC])

    @pytest.mark.asyncio
    async def test_concluded_session_cannot_run_again(self, coordinator):
        session = await coordinator.create_session("Harbor", "x", [IDEATOR], CollaborationPattern.PARALLEL)
        await coordinator.run_session(session.id, {})

        assert session.state == SessionState.CONCLUDED
        with pytest.raises(SessionError):
            await coordinator.run_session(session.id, {})
        with pytest.raises(SessionError):
            await coordinator.run_session("session-missing", {})

    @pytest.mark.asyncio
    async def test_conclusion_nudges_pattern_affinity(self, coordinator, registry):
        session = await coordinator.create_session("Harbor", "x", [DIRECTOR], CollaborationPattern.CONSENSUS)
        coordinator.conclude_session(session.id, 0.0)

        affinity = registry.get(DIRECTOR).collaboration.pattern_affinity[CollaborationPattern.CONSENSUS]
        assert affinity == pytest.approx(0.63)
        assert session.id not in registry.get(DIRECTOR).collaboration.sessions


class TestPatternSelection:
    """Eval: highest summed affinity wins, declaration order breaks ties."""

    def test_shared_consensus_affinity_wins(self, coordinator):
        assert coordinator.select_pattern([DIRECTOR, CRITIC]) == CollaborationPattern.CONSENSUS

    def test_single_participant_uses_own_affinity(self, coordinator):
        assert coordinator.select_pattern([IDEATOR]) == CollaborationPattern.PARALLEL
        assert coordinator.select_pattern([STYLIST, REFINER]) == CollaborationPattern.ITERATIVE

    def test_tie_goes_to_earlier_pattern(self, coordinator):
        # parallel and specialization both sum to 1.3
        assert coordinator.select_pattern([IDEATOR, STYLIST]) == CollaborationPattern.PARALLEL

    @pytest.mark.asyncio
    async def test_session_without_pattern_uses_selection(self, coordinator):
        session = await coordinator.create_session("Review", "x", [DIRECTOR, CRITIC])
        assert session.pattern == CollaborationPattern.CONSENSUS

    def test_recommendation_matches_keywords(self, coordinator):
        rec = coordinator.recommend_collaboration("Evaluate and refine the color palette")
        assert rec["participants"] == [DIRECTOR, STYLIST, REFINER, CRITIC]
        assert isinstance(rec["pattern"], CollaborationPattern)

    def test_recommendation_has_at_least_two_participants(self, coordinator):
        assert coordinator.recommend_collaboration("Something")["participants"] == [DIRECTOR, IDEATOR]


class TestConsensus:
    """Eval: approval needs a strict majority of approve/reject votes."""

    @pytest.mark.asyncio
    async def test_tie_is_rejected(self, make_llm):
        def responder(role, text):
            if role == "critic":
                return "Vote: reject\nRationale: too vague"
            return "Vote: approve\nRationale: fine"

        coordinator = coordinator_for(make_llm(responder))
        session = await coordinator.create_session("Plan", "x", [DIRECTOR, CRITIC], CollaborationPattern.CONSENSUS)
        result = await coordinator.run_session(session.id, {"proposal": "Three prints in ink"})

        assert result["approved"] is False
        assert result["tally"] == {Vote.APPROVE: 1, Vote.REJECT: 1, Vote.ABSTAIN: 0}
        assert result["outcome"] == 0.0
        assert session.metrics.consensus_rate == pytest.approx(0.5)

    @pytest.mark.asyncio
    async def test_majority_approves(self, coordinator):
        session = await coordinator.create_session(
            "Plan", "x", [DIRECTOR, CRITIC, STYLIST], CollaborationPattern.CONSENSUS
        )
        result = await coordinator.run_session(session.id, {"proposal": "Go"})
        assert result["approved"] is True
        assert session.metrics.collaboration_score == 1.0

    @pytest.mark.asyncio
    async def test_all_abstaining_is_rejected(self, make_llm):
        def responder(role, text):
            raise GenerationError("down", provider="mock")

        coordinator = coordinator_for(make_llm(responder))
        session = await coordinator.create_session("Plan", "x", [DIRECTOR, CRITIC], CollaborationPattern.CONSENSUS)
        result = await coordinator.run_session(session.id, {"proposal": "Go"})

        assert result["tally"][Vote.ABSTAIN] == 2
        assert result["approved"] is False


class TestPatterns:
    """Eval: each pattern's choreography produces its result shape."""

    @pytest.mark.asyncio
    async def test_sequential_chains_outputs(self, coordinator):
        session = await coordinator.create_session(
            "Chain", "Harbor", [IDEATOR, STYLIST, REFINER], CollaborationPattern.SEQUENTIAL
        )
        result = await coordinator.run_session(session.id, {"description": "Develop the harbor piece"})

        assert [o["role"] for o in result["outputs"]] == ["ideator", "stylist", "refiner"]
        assert result["outcome"] == 1.0
        assigns = [m for m in session.history if m.action == "assign_task"]
        assert assigns[1].content["task"]["input"] == result["outputs"][0]["result"]
        assert result["final"]["artwork"]["title"] == "Harbor Dawn"

    @pytest.mark.asyncio
    async def test_parallel_merges_results(self, coordinator):
        session = await coordinator.create_session("Fan", "x", [IDEATOR, STYLIST], CollaborationPattern.PARALLEL)
        result = await coordinator.run_session(session.id, {"description": "Ideas and styles"})

        assert set(result["results"]) == {"ideator", "stylist"}
        assert session.metrics.contribution_balance == {"ideator": 1, "stylist": 1}
        assert session.metrics.balance_score == 1.0

    @pytest.mark.asyncio
    async def test_iterative_converges_on_high_rating(self, coordinator, registry):
        session = await coordinator.create_session("Loop", "x", [REFINER, CRITIC], CollaborationPattern.ITERATIVE)
        result = await coordinator.run_session(session.id, {"description": "Refine the harbor"})

        assert result["converged"] is True
        assert result["iterations"] == 1
        assert result["outcome"] == pytest.approx(0.9)
        assert registry.get(REFINER).collaboration.metrics.feedback_score == pytest.approx(0.62)

    @pytest.mark.asyncio
    async def test_iterative_stops_at_iteration_cap(self, make_llm):
        def responder(role, text):
            if text.startswith("Review the following"):
                return REVIEW_REPLY.replace("Rating: 9", "Rating: 5")
            return studio_reply(role, text)

        llm = make_llm(responder)
        coordinator = coordinator_for(llm, max_iterations=3)
        session = await coordinator.create_session("Loop", "x", [REFINER, CRITIC], CollaborationPattern.ITERATIVE)
        result = await coordinator.run_session(session.id, {"description": "Refine"})

        assert result["converged"] is False
        assert result["iterations"] == 3
        assert result["mean_rating"] == 5
        refiner_prompts = [
            c.kwargs["prompt"].user_message
            for c in llm.call.call_args_list
            if c.kwargs["role"] == "refiner" and "Describe the refined artwork" in c.kwargs["prompt"].user_message
        ]
        assert len(refiner_prompts) == 3
        assert "tighten the framing" in refiner_prompts[1]

    @pytest.mark.asyncio
    async def test_feedback_collects_reviews(self, coordinator):
        session = await coordinator.create_session(
            "Review", "x", [REFINER, CRITIC, STYLIST], CollaborationPattern.FEEDBACK
        )
        result = await coordinator.run_session(session.id, {"description": "One draft"})

        assert [f["reviewer"] for f in result["feedback"]] == ["critic", "stylist"]
        assert result["mean_rating"] == 9

    @pytest.mark.asyncio
    async def test_specialization_routes_by_expertise(self, coordinator):
        session = await coordinator.create_session(
            "Split", "x", [CRITIC, REFINER], CollaborationPattern.SPECIALIZATION
        )
        result = await coordinator.run_session(
            session.id,
            {"subtasks": ["Write a critique of the composition", "Add detail to the foreground"]},
        )
        assert [(a["subtask"], a["role"]) for a in result["assignments"]] == [
            ("Write a critique of the composition", "critic"),
            ("Add detail to the foreground", "refiner"),
        ]
        assert result["outcome"] == 1.0

    @pytest.mark.asyncio
    async def test_specialization_accepts_subtask_without_description(self, coordinator):
        session = await coordinator.create_session(
            "Split", "x", [REFINER, CRITIC], CollaborationPattern.SPECIALIZATION
        )
        result = await coordinator.run_session(session.id, {"subtasks": [{"tags": ["critique"]}]})

        assert result["assignments"][0]["subtask"] == ""
        assert result["assignments"][0]["role"] == "critic"
        assert session.state == SessionState.CONCLUDED

    @pytest.mark.asyncio
    async def test_emergent_shares_every_contribution(self, coordinator, registry):
        session = await coordinator.create_session(
            "Jam", "x", [IDEATOR, STYLIST, DIRECTOR], CollaborationPattern.EMERGENT
        )
        result = await coordinator.run_session(session.id, {"description": "Open jam"})

        assert set(result["contributions"]) == {"ideator", "stylist", "director"}
        assert result["knowledge_shared"] == 6
        assert len(registry.get(STYLIST).collaboration.knowledge) == 2


class TestMetrics:
    @pytest.mark.asyncio
    async def test_metrics_summarize_sessions(self, coordinator):
        done = await coordinator.create_session("A", "x", [IDEATOR], CollaborationPattern.PARALLEL)
        await coordinator.run_session(done.id, {})
        await coordinator.create_session("B", "x", [CRITIC], CollaborationPattern.FEEDBACK)

        metrics = coordinator.get_collaboration_metrics()
        assert metrics["total_sessions"] == 2
        assert metrics["sessions_by_state"] == {"created": 0, "active": 1, "concluded": 1}
        assert metrics["pattern_effectiveness"] == {"parallel": {"sessions": 1, "average_score": 1.0}}
        assert set(metrics["agent_performance"]) == {r.value for r in AgentRole}


class TestEngine:
    """Eval: the facade wires every component and runs the Director pipeline."""

    @pytest.mark.asyncio
    async def test_run_project(self, mock_llm):
        engine = create_engine(EngineConfig(preference=PreferenceConfig(persist=False)), llm=mock_llm)
        await engine.start()
        outcome = await engine.run_project("Harbor", "Fog and cranes", ["ink only"])

        assert outcome["project"]["status"] == "completed"
        assert outcome["project"]["requirements"] == ["ink only"]
        assert outcome["results"]["styling"]["selected"]["name"] == "Ink Wash"

        stats = engine.get_statistics()
        assert stats["scheduler"]["total_ideas"] == 0
        assert len(stats["agents"]) == 5

    def test_engine_shares_its_collaborators(self, mock_llm):
        artifacts = PlaceholderArtifactGenerator()
        engine = create_engine(
            EngineConfig(preference=PreferenceConfig(persist=False)), llm=mock_llm, artifacts=artifacts
        )

        assert engine.scheduler._artifacts is artifacts
        assert engine.coordinator._bus is engine.bus
        assert engine.coordinator._registry is engine.registry
        assert engine.registry.get(AgentRole.CRITIC)._llm is mock_llm
