"""
Runners for the seven collaboration patterns.

Each runner takes (coordinator, session, task) and returns a result dict with
at least an "outcome" in [0, 1]. The coordinator uses the outcome as the
session's collaboration score and as the target for affinity updates.

    sequential      each participant works on the previous one's output
    parallel        everyone works on the same input at once, results merged
    iterative       first participant drafts, the rest review, repeat until
                    the mean rating converges or the iteration cap is hit
    feedback        one draft, one round of reviews
    consensus       every participant votes on a proposal
    specialization  subtasks go to the participant whose specializations match
    emergent        everyone contributes, contributions are shared with all
"""

import asyncio
import logging
import re
import uuid
from typing import TYPE_CHECKING, Any

from ..agents.collaborative import CollaborationPattern
from ..agents.messages import AgentRole

if TYPE_CHECKING:
    from .collaboration import CollaborationCoordinator, CollaborationSession

logger = logging.getLogger(__name__)


def _subtask(task: dict, kind: str, material: Any = None, **extra) -> dict:
    return {
        "id": f"task-{kind}-{str(uuid.uuid4())[:8]}",
        "type": kind,
        "description": task["description"],
        "requirements": list(task.get("requirements", [])),
        "input": material,
        **extra,
    }


def _mean_rating(feedback: list[dict]) -> float:
    if not feedback:
        return 0.0
    return sum(f["rating"] for f in feedback) / len(feedback)


# =============================================================================
# RUNNERS
# =============================================================================


async def run_sequential(coordinator: "CollaborationCoordinator", session: "CollaborationSession", task: dict) -> dict:
    material = task.get("input")
    outputs = []
    for role in session.participants:
        result = await coordinator.assign(session, role, _subtask(task, "sequential", material))
        if result is None:
            continue
        outputs.append({"role": role.value, "result": result})
        material = result
    return {
        "outputs": outputs,
        "final": material,
        "outcome": len(outputs) / len(session.participants),
    }


async def run_parallel(coordinator: "CollaborationCoordinator", session: "CollaborationSession", task: dict) -> dict:
    material = task.get("input")
    results = await asyncio.gather(
        *[
            coordinator.assign(session, role, _subtask(task, "parallel", material))
            for role in session.participants
        ],
        return_exceptions=True,
    )
    merged = {}
    for role, result in zip(session.participants, results):
        if isinstance(result, Exception):
            logger.error(f"[Collaboration] Parallel work by {role.value} failed: {result}")
        elif result is not None:
            merged[role.value] = result
    return {"results": merged, "outcome": len(merged) / len(session.participants)}


async def run_iterative(coordinator: "CollaborationCoordinator", session: "CollaborationSession", task: dict) -> dict:
    producer, reviewers = session.participants[0], session.participants[1:]
    max_iterations = task.get("max_iterations", coordinator.config.max_iterations)
    target = coordinator.config.convergence_rating

    draft = task.get("input")
    suggestions: list[str] = []
    feedback: list[dict] = []
    mean = 0.0
    converged = False

    for _ in range(max_iterations):
        session.metrics.iteration_count += 1
        result = await coordinator.assign(
            session, producer, _subtask(task, "iteration", draft, suggestions=suggestions)
        )
        if result is None:
            break
        draft = result
        if not reviewers:
            converged = True
            break
        feedback = await coordinator.request_feedback(session, producer, draft, reviewers)
        mean = _mean_rating(feedback)
        logger.info(
            f"[Collaboration] Iteration {session.metrics.iteration_count} of {session.id}: "
            f"mean rating {mean:.1f}"
        )
        if mean >= target:
            converged = True
            break
        suggestions = [s for f in feedback for s in f.get("suggestions", [])]

    if not reviewers:
        outcome = 1.0 if converged else 0.0
    else:
        outcome = mean / 10
    return {
        "final": draft,
        "iterations": session.metrics.iteration_count,
        "mean_rating": mean,
        "converged": converged,
        "feedback": feedback,
        "outcome": outcome,
    }


async def run_feedback(coordinator: "CollaborationCoordinator", session: "CollaborationSession", task: dict) -> dict:
    producer, reviewers = session.participants[0], session.participants[1:]
    draft = await coordinator.assign(session, producer, _subtask(task, "draft", task.get("input")))
    if draft is None:
        return {"draft": None, "feedback": [], "mean_rating": 0.0, "outcome": 0.0}
    feedback = await coordinator.request_feedback(session, producer, draft, reviewers) if reviewers else []
    mean = _mean_rating(feedback)
    return {
        "draft": draft,
        "feedback": feedback,
        "mean_rating": mean,
        "outcome": mean / 10 if reviewers else 1.0,
    }


async def run_consensus(coordinator: "CollaborationCoordinator", session: "CollaborationSession", task: dict) -> dict:
    proposal = task.get("proposal") or task.get("input") or task["description"]
    vote = await coordinator.call_vote(session, proposal, session.participants)
    return {**vote, "proposal": proposal, "outcome": 1.0 if vote["approved"] else 0.0}


def _words(text: str) -> set[str]:
    return set(re.findall(r"[a-z]+", text.lower()))


def best_specialist(subtask: dict, participants: list[AgentRole], specializations: dict[AgentRole, list[str]]) -> AgentRole:
    """Participant whose specializations overlap the subtask most; earlier participants win ties."""
    words = _words(subtask.get("description", "")) | {t.lower() for t in subtask.get("tags", [])}
    best, best_score = participants[0], -1
    for role in participants:
        score = sum(1 for s in specializations.get(role, []) if _words(s) & words)
        if score > best_score:
            best, best_score = role, score
    return best


async def run_specialization(coordinator: "CollaborationCoordinator", session: "CollaborationSession", task: dict) -> dict:
    subtasks = [
        s if isinstance(s, dict) else {"description": str(s)}
        for s in (task.get("subtasks") or [task["description"]])
    ]
    specializations = {
        role: coordinator.specializations_of(role) for role in session.participants
    }
    assignments = [
        (subtask, best_specialist(subtask, session.participants, specializations))
        for subtask in subtasks
    ]
    results = await asyncio.gather(
        *[
            coordinator.assign(
                session,
                role,
                _subtask({**task, "description": subtask.get("description", "")}, "specialized", task.get("input")),
            )
            for subtask, role in assignments
        ],
        return_exceptions=True,
    )
    completed = []
    for (subtask, role), result in zip(assignments, results):
        if isinstance(result, Exception):
            logger.error(f"[Collaboration] Specialist {role.value} failed: {result}")
            result = None
        completed.append({"subtask": subtask.get("description", ""), "role": role.value, "result": result})
    done = sum(1 for c in completed if c["result"] is not None)
    return {"assignments": completed, "outcome": done / len(completed)}


async def run_emergent(coordinator: "CollaborationCoordinator", session: "CollaborationSession", task: dict) -> dict:
    material = task.get("input")
    results = await asyncio.gather(
        *[
            coordinator.assign(session, role, _subtask(task, "contribution", material))
            for role in session.participants
        ],
        return_exceptions=True,
    )
    contributions = {}
    for role, result in zip(session.participants, results):
        if isinstance(result, Exception) or result is None:
            continue
        contributions[role.value] = result

    shared = 0
    if len(session.participants) > 1:
        for role_value, contribution in contributions.items():
            ids = await coordinator.share_knowledge(session.id, role_value, contribution)
            shared += len(ids)

    return {
        "contributions": contributions,
        "participation": dict(session.metrics.contribution_balance),
        "knowledge_shared": shared,
        "outcome": len(contributions) / len(session.participants),
    }


PATTERN_RUNNERS = {
    CollaborationPattern.SEQUENTIAL: run_sequential,
    CollaborationPattern.PARALLEL: run_parallel,
    CollaborationPattern.ITERATIVE: run_iterative,
    CollaborationPattern.FEEDBACK: run_feedback,
    CollaborationPattern.CONSENSUS: run_consensus,
    CollaborationPattern.SPECIALIZATION: run_specialization,
    CollaborationPattern.EMERGENT: run_emergent,
}
