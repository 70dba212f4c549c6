"""
IdeaScheduler -- bounded, priority-driven exploration of creative ideas.

Owns every Idea, ExplorationThread and ThreadResult. Ideas are admitted into a
store of at most max_ideas (the lowest-priority idea is evicted to make room),
each idea holds at most max_threads_per_idea threads, and at most
max_active_threads threads are explored at once.

Each admitted thread runs a fixed pipeline as its own asyncio.Task:

    concept (text) -> style (text, conditioned on the concept) -> image (artifact)

progress moves 0.33 -> 0.66 -> 1.0 as results are appended. Any step failure
abandons the thread and keeps the results produced so far. Whenever a thread
leaves the active set, activate_next_thread() refills the freed slot before
control returns to the event loop.

All bookkeeping is synchronous. Methods that start work (add_idea,
create_exploration_thread, resume_thread, activate_next_thread) must run inside
an event loop to launch tasks; without one, threads stay queued until the next
activation from inside a loop.

Usage:
    scheduler = IdeaScheduler(llm, PlaceholderArtifactGenerator(), SchedulerConfig(max_active_threads=2))
    idea = scheduler.add_idea("Harbor at dawn", "Fog, cranes, first light", style="ink", theme="industry")
    scheduler.create_exploration_thread(idea.id, "Monochrome study", "Only greys and one accent")
    await scheduler.wait_idle()
    print(scheduler.get_statistics())
"""

import asyncio
import itertools
import logging
from collections.abc import Awaitable, Callable

from ..artifacts import ArtifactGenerator
from ..config import SchedulerConfig
from ..learning.aesthetic import PreferenceEngine
from ..learning.models import StyleCandidate
from ..llm.client import CacheablePrompt, TextGenerator
from ..security.prompt_guard import wrap_user_content
from .models import (
    ExplorationThread,
    Feedback,
    FeedbackSource,
    Idea,
    IdeaStatus,
    ResultKind,
    ThreadResult,
    ThreadStatus,
)

logger = logging.getLogger(__name__)

CONCEPT_SYSTEM_PROMPT = (
    "You are a creative assistant specialized in generating artistic concepts. "
    "Your responses should be concise, creative, and focused on visual art concepts."
)
STYLE_SYSTEM_PROMPT = (
    "You are a creative assistant specialized in generating artistic styles. "
    "Your responses should be concise, creative, and focused on visual art styles."
)
STYLE_SECTIONS = (
    "Color palette",
    "Textures and patterns",
    "Composition approach",
    "Visual references",
    "Technical considerations",
)
PIPELINE = (
    (ResultKind.CONCEPT, 0.33),
    (ResultKind.STYLE, 0.66),
    (ResultKind.IMAGE, 1.0),
)


class IdeaScheduler:
    """
    Admission, eviction and cooperative scheduling of exploration threads.

    The active set holds ids of threads that have been admitted and given a
    task. A thread with status "active" outside the active set is waiting for
    a slot; a "paused" thread is waiting to be resumed.
    """

    def __init__(
        self,
        llm: TextGenerator,
        artifacts: ArtifactGenerator,
        config: SchedulerConfig | None = None,
        preferences: PreferenceEngine | None = None,
    ):
        self.config = config or SchedulerConfig()
        self._llm = llm
        self._artifacts = artifacts
        self._preferences = preferences

        self._ideas: dict[str, Idea] = {}
        self._threads: dict[str, ExplorationThread] = {}
        self._active: set[str] = set()
        self._in_flight: dict[str, asyncio.Task] = {}
        self._sequence = itertools.count()

    # =========================================================================
    # IDEAS
    # =========================================================================

    def add_idea(
        self,
        title: str,
        description: str,
        style: str = "",
        theme: str = "",
        priority: int = 1,
        tags: list[str] | None = None,
        inspirations: list[str] | None = None,
    ) -> Idea:
        """
        Admit an idea with one initial exploration thread.

        Never refuses: when the store is full the lowest-priority idea (first
        added wins ties) is evicted along with its threads.
        """
        if priority < 0:
            logger.warning(f"[IdeaScheduler] Negative priority {priority} for '{title}', using 0")
            priority = 0

        if len(self._ideas) >= self.config.max_ideas:
            self._evict_lowest_priority()

        idea = Idea(
            title=title,
            description=description,
            style=style,
            theme=theme,
            priority=priority,
            tags=list(tags or []),
            inspirations=list(inspirations or []),
        )
        self._ideas[idea.id] = idea
        logger.info(f"[IdeaScheduler] Added idea '{title}' ({idea.id}, priority {priority})")

        self.create_exploration_thread(
            idea.id,
            f'Initial exploration of "{title}"',
            f"Standard exploration of the idea: {description}",
        )
        # Eviction may have freed slots beyond the one the new thread took.
        self.activate_next_thread()
        return idea

    def _evict_lowest_priority(self) -> Idea | None:
        if not self._ideas:
            return None
        victim = min(self._ideas.values(), key=lambda idea: idea.priority)

        for thread_id in victim.thread_ids:
            task = self._in_flight.pop(thread_id, None)
            if task is not None and not task.done():
                task.cancel()
            self._active.discard(thread_id)
            self._threads.pop(thread_id, None)
        del self._ideas[victim.id]

        logger.warning(
            f"[IdeaScheduler] Store full, evicted idea '{victim.title}' "
            f"({victim.id}, priority {victim.priority}, {len(victim.thread_ids)} threads)"
        )
        return victim

    def get_idea(self, idea_id: str) -> Idea | None:
        return self._ideas.get(idea_id)

    def list_ideas(self) -> list[Idea]:
        return list(self._ideas.values())

    def update_idea_priority(self, idea_id: str, priority: int) -> bool:
        idea = self._ideas.get(idea_id)
        if idea is None:
            logger.warning(f"[IdeaScheduler] Cannot reprioritize unknown idea {idea_id}")
            return False
        idea.priority = max(0, priority)
        idea.touch()
        return True

    def add_feedback(
        self, idea_id: str, text: str, rating: float, source: str = FeedbackSource.USER
    ) -> Feedback | None:
        idea = self._ideas.get(idea_id)
        if idea is None:
            logger.warning(f"[IdeaScheduler] Feedback for unknown idea {idea_id} dropped")
            return None
        if source not in FeedbackSource.ALL:
            logger.warning(f"[IdeaScheduler] Unknown feedback source '{source}', recording as user")
            source = FeedbackSource.USER
        feedback = Feedback(text=text, rating=rating, source=source)
        idea.feedback.append(feedback)
        idea.touch()
        return feedback

    # =========================================================================
    # THREADS
    # =========================================================================

    def create_exploration_thread(
        self, idea_id: str, direction: str, description: str = ""
    ) -> ExplorationThread | None:
        """Append a thread to an idea and schedule it if a slot is free."""
        idea = self._ideas.get(idea_id)
        if idea is None:
            logger.warning(f"[IdeaScheduler] Cannot create thread: unknown idea {idea_id}")
            return None
        if len(idea.thread_ids) >= self.config.max_threads_per_idea:
            logger.warning(
                f"[IdeaScheduler] Idea '{idea.title}' already has "
                f"{self.config.max_threads_per_idea} threads"
            )
            return None

        thread = ExplorationThread(
            idea_id=idea_id,
            direction=direction,
            description=description,
            sequence=next(self._sequence),
        )
        self._threads[thread.id] = thread
        idea.thread_ids.append(thread.id)
        logger.info(f"[IdeaScheduler] Created thread '{direction}' ({thread.id}) for '{idea.title}'")

        if self._has_free_slot():
            self._admit(thread)
        self._refresh_idea_status(idea)
        return thread

    def get_thread(self, thread_id: str) -> ExplorationThread | None:
        return self._threads.get(thread_id)

    def get_threads_for_idea(self, idea_id: str) -> list[ExplorationThread]:
        idea = self._ideas.get(idea_id)
        if idea is None:
            return []
        return [self._threads[t] for t in idea.thread_ids if t in self._threads]

    def get_active_threads(self) -> list[ExplorationThread]:
        return [self._threads[t] for t in self._active if t in self._threads]

    def in_flight_threads(self) -> list[str]:
        return list(self._in_flight)

    def pause_thread(self, thread_id: str) -> bool:
        """
        Move an active thread to paused and hand its slot to the next candidate.

        An in-flight step is not interrupted; its result is still appended and
        the pipeline stops before the next step.
        """
        thread = self._threads.get(thread_id)
        if thread is None or thread.status != ThreadStatus.ACTIVE:
            return False

        thread.status = ThreadStatus.PAUSED
        thread.touch()
        self._active.discard(thread_id)
        logger.info(f"[IdeaScheduler] Paused thread '{thread.direction}'")

        self.activate_next_thread(exclude=thread_id)
        self._refresh_idea_status(self._ideas[thread.idea_id])
        return True

    def resume_thread(self, thread_id: str) -> bool:
        """
        Reactivate a paused thread.

        Returns True only if the thread got a slot. Otherwise it stays active
        but unscheduled and is picked up by a later activation.
        """
        thread = self._threads.get(thread_id)
        if thread is None or thread.is_terminal:
            return False
        if thread_id in self._active:
            return True

        thread.status = ThreadStatus.ACTIVE
        thread.touch()
        admitted = self._has_free_slot() and self._admit(thread)
        self._refresh_idea_status(self._ideas[thread.idea_id])
        logger.info(
            f"[IdeaScheduler] Resumed thread '{thread.direction}' "
            f"({'running' if admitted else 'queued'})"
        )
        return admitted

    def explore_thread(self, thread_id: str) -> asyncio.Task | None:
        """
        Start (or return) the exploration task for a thread.

        The pipeline resumes at the first step without a result. Returns None
        when the thread is unknown, terminal, paused, or cannot get a slot.
        """
        existing = self._in_flight.get(thread_id)
        if existing is not None and not existing.done():
            return existing

        thread = self._threads.get(thread_id)
        if thread is None or thread.status != ThreadStatus.ACTIVE:
            return None
        if thread_id not in self._active:
            if not self._has_free_slot() or not self._admit(thread):
                return None
            return self._in_flight.get(thread_id)

        return self._launch(thread_id)

    # =========================================================================
    # SCHEDULING
    # =========================================================================

    def activate_next_thread(self, exclude: str | None = None) -> list[ExplorationThread]:
        """
        Fill free slots from waiting threads.

        Threads that are active but unscheduled go first, then paused threads
        (which are flipped back to active). Within each group the owning
        idea's priority decides, then creation order.
        """
        admitted: list[ExplorationThread] = []
        while self._has_free_slot():
            candidate = self._next_candidate(exclude)
            if candidate is None:
                break
            if candidate.status == ThreadStatus.PAUSED:
                candidate.status = ThreadStatus.ACTIVE
                candidate.touch()
            if not self._admit(candidate):
                break
            admitted.append(candidate)
            self._refresh_idea_status(self._ideas[candidate.idea_id])
        return admitted

    def _next_candidate(self, exclude: str | None) -> ExplorationThread | None:
        def rank(thread: ExplorationThread):
            waiting_first = 0 if thread.status == ThreadStatus.ACTIVE else 1
            return (waiting_first, -self._ideas[thread.idea_id].priority, thread.sequence)

        candidates = [
            t
            for t in self._threads.values()
            if t.id != exclude
            and t.id not in self._active
            and t.status in (ThreadStatus.ACTIVE, ThreadStatus.PAUSED)
        ]
        return min(candidates, key=rank) if candidates else None

    def _has_free_slot(self) -> bool:
        return len(self._active) < self.config.max_active_threads

    def _admit(self, thread: ExplorationThread) -> bool:
        """Put a thread in the active set and start its task. Needs a running loop."""
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.debug(f"[IdeaScheduler] No event loop, thread {thread.id} stays queued")
            return False
        self._active.add(thread.id)
        if thread.id not in self._in_flight or self._in_flight[thread.id].done():
            self._launch(thread.id)
        return True

    def _launch(self, thread_id: str) -> asyncio.Task:
        task = asyncio.create_task(self._run_pipeline(thread_id), name=f"explore-{thread_id}")
        self._in_flight[thread_id] = task
        return task

    async def wait_idle(self) -> None:
        """Wait until no exploration task is running."""
        while self._in_flight:
            await asyncio.gather(*list(self._in_flight.values()), return_exceptions=True)

    # =========================================================================
    # PIPELINE
    # =========================================================================

    async def _run_pipeline(self, thread_id: str) -> None:
        try:
            for kind, progress in PIPELINE:
                if not self._should_continue(thread_id):
                    return
                thread = self._threads[thread_id]
                if thread.result_of(kind) is not None:
                    continue

                idea = self._ideas[thread.idea_id]
                try:
                    result = await self._with_timeout(self._step(kind), thread, idea)
                except Exception as e:
                    self._step_failed(thread_id, kind, e)
                    return

                thread = self._threads.get(thread_id)
                if thread is None or thread.is_terminal:
                    return
                thread.results.append(result)
                thread.progress = progress
                thread.touch()
                logger.debug(f"[IdeaScheduler] Thread {thread_id} finished {kind} step")

            if self._should_continue(thread_id):
                self._finish(self._threads[thread_id], ThreadStatus.COMPLETED)
        finally:
            if self._in_flight.get(thread_id) is asyncio.current_task():
                del self._in_flight[thread_id]

    def _should_continue(self, thread_id: str) -> bool:
        thread = self._threads.get(thread_id)
        return (
            thread is not None
            and thread.status == ThreadStatus.ACTIVE
            and thread_id in self._active
        )

    def _step(self, kind: str) -> Callable[[ExplorationThread, Idea], Awaitable[ThreadResult]]:
        return {
            ResultKind.CONCEPT: self._generate_concept,
            ResultKind.STYLE: self._generate_style,
            ResultKind.IMAGE: self._generate_image,
        }[kind]

    async def _with_timeout(self, step, thread: ExplorationThread, idea: Idea) -> ThreadResult:
        if self.config.step_timeout is None:
            return await step(thread, idea)
        return await asyncio.wait_for(step(thread, idea), timeout=self.config.step_timeout)

    def _step_failed(self, thread_id: str, kind: str, error: Exception) -> None:
        thread = self._threads.get(thread_id)
        if thread is None or thread.is_terminal:
            return
        if thread.status == ThreadStatus.PAUSED:
            # Paused threads cannot be abandoned; the step is retried on resume.
            logger.warning(
                f"[IdeaScheduler] {kind} step failed for paused thread {thread_id}: {error}"
            )
            return
        logger.error(
            f"[IdeaScheduler] {kind} step failed for thread '{thread.direction}': "
            f"{type(error).__name__}: {error}"
        )
        self._finish(thread, ThreadStatus.ABANDONED)

    def _finish(self, thread: ExplorationThread, status: str) -> None:
        thread.status = status
        if status == ThreadStatus.COMPLETED:
            thread.progress = 1.0
        thread.touch()
        self._active.discard(thread.id)
        logger.info(f"[IdeaScheduler] Thread '{thread.direction}' -> {status}")

        self._refresh_idea_status(self._ideas[thread.idea_id])
        self.activate_next_thread()

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def _generate_concept(self, thread: ExplorationThread, idea: Idea) -> ThreadResult:
        prompt = CacheablePrompt(
            system=CONCEPT_SYSTEM_PROMPT,
            user_message=(
                "Generate a detailed concept for the following art idea:\n\n"
                + wrap_user_content(
                    f"Title: {idea.title}\n"
                    f"Description: {idea.description}\n"
                    f"Style: {idea.style}\n"
                    f"Theme: {idea.theme}\n"
                    f"Exploration Direction: {thread.direction}\n"
                    f"{thread.description}"
                )
                + "\n\nYour response should be a detailed concept description "
                "that can be used to create artwork."
            ),
        )
        response = await self._llm.call(
            prompt=prompt, role="concept", temperature=self.config.concept_temperature
        )
        return ThreadResult(
            thread_id=thread.id,
            kind=ResultKind.CONCEPT,
            content=response.content,
            metadata={"provider": response.provider, "model": response.model},
        )

    async def _generate_style(self, thread: ExplorationThread, idea: Idea) -> ThreadResult:
        concept = thread.result_of(ResultKind.CONCEPT)
        sections = "\n".join(f"{i}. {s}" for i, s in enumerate(STYLE_SECTIONS, 1))
        prompt = CacheablePrompt(
            system=STYLE_SYSTEM_PROMPT,
            user_message=(
                "Generate a detailed style guide for the following art concept:\n\n"
                + wrap_user_content(
                    f"Title: {idea.title}\n"
                    f"Base Style: {idea.style}\n"
                    f"Concept: {concept.content if concept else ''}"
                )
                + f"\n\nYour response should include:\n{sections}"
            ),
        )

        variants = []
        for _ in range(self.config.style_variants):
            response = await self._llm.call(
                prompt=prompt, role="style", temperature=self.config.style_temperature
            )
            variants.append(
                StyleCandidate(
                    name=f"{thread.direction} #{len(variants) + 1}",
                    tags=[t for t in (idea.style, idea.theme, *idea.tags) if t],
                    content=response,
                )
            )

        chosen = variants[0]
        if len(variants) > 1 and self._preferences is not None:
            chosen = self._preferences.select_best_style(variants)

        return ThreadResult(
            thread_id=thread.id,
            kind=ResultKind.STYLE,
            content=chosen.content.content,
            metadata={
                "provider": chosen.content.provider,
                "model": chosen.content.model,
                "style_id": chosen.id,
                "variants": len(variants),
            },
        )

    async def _generate_image(self, thread: ExplorationThread, idea: Idea) -> ThreadResult:
        concept = thread.result_of(ResultKind.CONCEPT)
        style = thread.result_of(ResultKind.STYLE)
        artifact = await self._artifacts.generate_artifact({
            "title": idea.title,
            "direction": thread.direction,
            "prompt": "\n\n".join(r.content for r in (concept, style) if r is not None),
        })
        metadata = {k: v for k, v in artifact.items() if k not in ("url", "content")}
        metadata["generator"] = type(self._artifacts).__name__
        return ThreadResult(
            thread_id=thread.id,
            kind=ResultKind.IMAGE,
            content=artifact.get("url") or artifact.get("content", ""),
            metadata=metadata,
        )

    # =========================================================================
    # STATUS & STATISTICS
    # =========================================================================

    def _refresh_idea_status(self, idea: Idea) -> None:
        """
        Derive idea status from its threads.

        exploring: a thread is scheduled, or an unfinished thread has results.
        completed / abandoned: every thread is terminal, completed if any
        thread completed.
        pending: otherwise.
        """
        threads = self.get_threads_for_idea(idea.id)
        if threads and all(t.is_terminal for t in threads):
            any_completed = any(t.status == ThreadStatus.COMPLETED for t in threads)
            status = IdeaStatus.COMPLETED if any_completed else IdeaStatus.ABANDONED
        elif any(t.id in self._active or (t.results and not t.is_terminal) for t in threads):
            status = IdeaStatus.EXPLORING
        else:
            status = IdeaStatus.PENDING

        if status != idea.status:
            logger.info(f"[IdeaScheduler] Idea '{idea.title}' -> {status}")
            idea.status = status
            idea.touch()

    def get_statistics(self) -> dict:
        ideas_by_status = {
            s: 0
            for s in (IdeaStatus.PENDING, IdeaStatus.EXPLORING, IdeaStatus.COMPLETED, IdeaStatus.ABANDONED)
        }
        threads_by_status = {
            s: 0
            for s in (ThreadStatus.ACTIVE, ThreadStatus.PAUSED, ThreadStatus.COMPLETED, ThreadStatus.ABANDONED)
        }
        for idea in self._ideas.values():
            ideas_by_status[idea.status] = ideas_by_status.get(idea.status, 0) + 1
        for thread in self._threads.values():
            threads_by_status[thread.status] = threads_by_status.get(thread.status, 0) + 1

        return {
            "total_ideas": len(self._ideas),
            "total_threads": len(self._threads),
            "active_threads": len(self._active),
            "in_flight": len(self._in_flight),
            "ideas_by_status": ideas_by_status,
            "threads_by_status": threads_by_status,
        }
