"""
Scheduler Evals -- admission, eviction, active-set bounds and thread lifecycle.

CODE-BASED graders over IdeaScheduler with a mock text collaborator.
"""

import asyncio
import re
from unittest.mock import AsyncMock

import pytest

from atelier.artifacts import PlaceholderArtifactGenerator
from atelier.config import SchedulerConfig
from atelier.errors import GenerationError
from atelier.ideas import IdeaScheduler, IdeaStatus, ResultKind, ThreadStatus
from atelier.llm import LLMResponse

from ..conftest import ROLE_REPLIES

ARTIFACTS = PlaceholderArtifactGenerator()


def gated_llm(gate: asyncio.Event):
    """Collaborator whose calls block until the gate opens."""

    async def call(prompt, role="", temperature=0.7, max_tokens=4096):
        await gate.wait()
        return LLMResponse(content=ROLE_REPLIES.get(role, "ok"), model="mock-model", provider="mock")

    client = AsyncMock()
    client.call.side_effect = call
    return client


class TestCapacity:
    """Eval: the store never exceeds its limits and evicts the lowest priority."""

    def test_evicts_lowest_priority_when_full(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS, SchedulerConfig(max_ideas=2))
        a = scheduler.add_idea("A", "first", priority=1)
        b = scheduler.add_idea("B", "second", priority=5)
        c = scheduler.add_idea("C", "third", priority=3)

        ids = {idea.id for idea in scheduler.list_ideas()}
        assert ids == {b.id, c.id}
        assert scheduler.get_idea(a.id) is None
        assert scheduler.get_statistics()["total_threads"] == 2

    def test_priority_tie_evicts_first_added(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS, SchedulerConfig(max_ideas=2))
        first = scheduler.add_idea("First", "x", priority=2)
        second = scheduler.add_idea("Second", "x", priority=2)
        scheduler.add_idea("Third", "x", priority=4)

        assert scheduler.get_idea(first.id) is None
        assert scheduler.get_idea(second.id) is not None

    def test_negative_priority_is_clamped(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS)
        idea = scheduler.add_idea("Low", "x", priority=-3)
        assert idea.priority == 0

    def test_thread_cap_per_idea(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS, SchedulerConfig(max_threads_per_idea=2))
        idea = scheduler.add_idea("Harbor", "fog")

        assert scheduler.create_exploration_thread(idea.id, "Monochrome") is not None
        assert scheduler.create_exploration_thread(idea.id, "Neon") is None
        assert len(scheduler.get_threads_for_idea(idea.id)) == 2

    def test_unknown_idea_thread_is_rejected(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS)
        assert scheduler.create_exploration_thread("missing", "x") is None

    def test_without_event_loop_threads_stay_queued(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS)
        idea = scheduler.add_idea("Harbor", "fog")

        assert scheduler.get_active_threads() == []
        assert idea.status == IdeaStatus.PENDING
        assert scheduler.get_threads_for_idea(idea.id)[0].status == ThreadStatus.ACTIVE


class TestScheduling:
    """Eval: exploration runs the full pipeline within the active bound."""

    @pytest.mark.asyncio
    async def test_pipeline_produces_concept_style_image(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS)
        idea = scheduler.add_idea("Harbor", "fog and cranes", style="ink", theme="industry")
        await scheduler.wait_idle()

        thread = scheduler.get_threads_for_idea(idea.id)[0]
        assert thread.status == ThreadStatus.COMPLETED
        assert thread.progress == 1.0
        assert [r.kind for r in thread.results] == [ResultKind.CONCEPT, ResultKind.STYLE, ResultKind.IMAGE]
        assert thread.result_of(ResultKind.IMAGE).content == (
            'Placeholder image for Harbor - Initial exploration of "Harbor"'
        )
        assert scheduler.get_idea(idea.id).status == IdeaStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_active_threads_never_exceed_limit(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS, SchedulerConfig(max_active_threads=2))
        for title in ("A", "B", "C"):
            scheduler.add_idea(title, "x")

        assert len(scheduler.get_active_threads()) == 2
        assert len(scheduler.in_flight_threads()) == 2

        await scheduler.wait_idle()
        stats = scheduler.get_statistics()
        assert stats["threads_by_status"][ThreadStatus.COMPLETED] == 3
        assert stats["active_threads"] == 0

    @pytest.mark.asyncio
    async def test_waiting_threads_run_by_priority(self, make_llm):
        order = []

        def responder(role, text):
            if role == "concept":
                order.append(re.search(r"Title: (\w+)", text).group(1))
            return ROLE_REPLIES.get(role, "ok")

        scheduler = IdeaScheduler(make_llm(responder), ARTIFACTS, SchedulerConfig(max_active_threads=1))
        scheduler.add_idea("Alpha", "x", priority=1)
        scheduler.add_idea("Bravo", "x", priority=5)
        scheduler.add_idea("Charlie", "x", priority=3)
        await scheduler.wait_idle()

        assert order == ["Alpha", "Bravo", "Charlie"]

    @pytest.mark.asyncio
    async def test_style_variants_ranked_by_preferences(self, mock_llm, preferences):
        scheduler = IdeaScheduler(
            mock_llm, ARTIFACTS, SchedulerConfig(style_variants=3), preferences=preferences
        )
        idea = scheduler.add_idea("Harbor", "fog", style="ink", theme="industry")
        await scheduler.wait_idle()

        style = scheduler.get_threads_for_idea(idea.id)[0].result_of(ResultKind.STYLE)
        assert style.metadata["variants"] == 3
        assert preferences.get_access_count(style.metadata["style_id"]) == 1


class TestPauseResume:
    """Eval: pausing frees a slot, resuming only runs when a slot is free."""

    @pytest.mark.asyncio
    async def test_pause_promotes_waiting_thread(self):
        gate = asyncio.Event()
        scheduler = IdeaScheduler(gated_llm(gate), ARTIFACTS, SchedulerConfig(max_active_threads=1))
        first = scheduler.add_idea("First", "x")
        await asyncio.sleep(0)
        second = scheduler.add_idea("Second", "x")
        t1 = scheduler.get_threads_for_idea(first.id)[0]
        t2 = scheduler.get_threads_for_idea(second.id)[0]
        assert [t.id for t in scheduler.get_active_threads()] == [t1.id]

        assert scheduler.pause_thread(t1.id) is True
        assert t1.status == ThreadStatus.PAUSED
        assert [t.id for t in scheduler.get_active_threads()] == [t2.id]

        assert scheduler.resume_thread(t1.id) is False
        assert t1.status == ThreadStatus.ACTIVE

        gate.set()
        await scheduler.wait_idle()
        assert t1.status == ThreadStatus.COMPLETED
        assert t2.status == ThreadStatus.COMPLETED
        assert [r.kind for r in t1.results].count(ResultKind.CONCEPT) == 1

    @pytest.mark.asyncio
    async def test_resume_with_free_slot_runs_immediately(self):
        gate = asyncio.Event()
        scheduler = IdeaScheduler(gated_llm(gate), ARTIFACTS, SchedulerConfig(max_active_threads=2))
        idea = scheduler.add_idea("Solo", "x")
        thread = scheduler.get_threads_for_idea(idea.id)[0]

        scheduler.pause_thread(thread.id)
        assert scheduler.get_active_threads() == []
        assert scheduler.resume_thread(thread.id) is True

        gate.set()
        await scheduler.wait_idle()
        assert thread.status == ThreadStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_terminal_threads_are_stable(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS)
        idea = scheduler.add_idea("Done", "x")
        await scheduler.wait_idle()
        thread = scheduler.get_threads_for_idea(idea.id)[0]

        assert scheduler.pause_thread(thread.id) is False
        assert scheduler.resume_thread(thread.id) is False
        assert scheduler.explore_thread(thread.id) is None
        assert thread.status == ThreadStatus.COMPLETED


class TestFailures:
    """Eval: collaborator failures abandon the thread and keep earlier results."""

    @pytest.mark.asyncio
    async def test_concept_failure_abandons_thread(self, make_llm):
        def responder(role, text):
            raise GenerationError("provider down", provider="mock")

        scheduler = IdeaScheduler(make_llm(responder), ARTIFACTS)
        idea = scheduler.add_idea("Broken", "x")
        await scheduler.wait_idle()

        thread = scheduler.get_threads_for_idea(idea.id)[0]
        assert thread.status == ThreadStatus.ABANDONED
        assert thread.results == []
        assert scheduler.get_idea(idea.id).status == IdeaStatus.ABANDONED

    @pytest.mark.asyncio
    async def test_style_failure_keeps_concept(self, make_llm):
        def responder(role, text):
            if role == "style":
                raise GenerationError("style model down", provider="mock")
            return ROLE_REPLIES.get(role, "ok")

        scheduler = IdeaScheduler(make_llm(responder), ARTIFACTS)
        idea = scheduler.add_idea("Half", "x")
        await scheduler.wait_idle()

        thread = scheduler.get_threads_for_idea(idea.id)[0]
        assert thread.status == ThreadStatus.ABANDONED
        assert [r.kind for r in thread.results] == [ResultKind.CONCEPT]

    @pytest.mark.asyncio
    async def test_step_timeout_abandons_thread(self):
        async def slow(prompt, role="", temperature=0.7, max_tokens=4096):
            await asyncio.sleep(5)

        llm = AsyncMock()
        llm.call.side_effect = slow
        scheduler = IdeaScheduler(llm, ARTIFACTS, SchedulerConfig(step_timeout=0.05))
        idea = scheduler.add_idea("Slow", "x")
        await scheduler.wait_idle()

        assert scheduler.get_threads_for_idea(idea.id)[0].status == ThreadStatus.ABANDONED

    @pytest.mark.asyncio
    async def test_eviction_cancels_in_flight_work(self):
        gate = asyncio.Event()
        scheduler = IdeaScheduler(gated_llm(gate), ARTIFACTS, SchedulerConfig(max_ideas=1))
        old = scheduler.add_idea("Old", "x", priority=1)
        await asyncio.sleep(0)
        new = scheduler.add_idea("New", "x", priority=2)

        assert scheduler.get_idea(old.id) is None
        gate.set()
        await scheduler.wait_idle()
        assert scheduler.get_idea(new.id).status == IdeaStatus.COMPLETED
        assert scheduler.get_statistics()["total_threads"] == 1


class TestFeedback:
    def test_feedback_recorded_with_known_source(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS)
        idea = scheduler.add_idea("Harbor", "fog")

        assert scheduler.add_feedback(idea.id, "More contrast", 6, source="critic").source == "critic"
        assert scheduler.add_feedback(idea.id, "Odd", 3, source="robot").source == "user"
        assert scheduler.add_feedback("missing", "x", 5) is None
        assert len(idea.feedback) == 2

    def test_update_priority(self, mock_llm):
        scheduler = IdeaScheduler(mock_llm, ARTIFACTS)
        idea = scheduler.add_idea("Harbor", "fog")

        assert scheduler.update_idea_priority(idea.id, 9) is True
        assert idea.priority == 9
        assert scheduler.update_idea_priority("missing", 1) is False
