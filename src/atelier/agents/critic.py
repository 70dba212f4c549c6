"""
CriticAgent -- scores an artwork against five weighted criteria.

The overall score is the weighted mean of the per-criterion scores. Criteria
the model does not score default to the neutral 5.
"""

import logging
import re

from ..llm.json_parser import parse_labeled_fields, parse_list_items
from .base import RoleAgent, describe_material
from .messages import AgentRole

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 5.0
EVALUATION_CRITERIA = {
    "aesthetics": (0.25, "Visual appeal and beauty"),
    "originality": (0.2, "Uniqueness and novelty"),
    "coherence": (0.15, "Internal consistency and harmony"),
    "technique": (0.15, "Skill and execution"),
    "impact": (0.25, "Emotional and intellectual effect"),
}
SECTIONS = ["Strengths", "Areas for improvement", "Recommendations"]


def weighted_score(scores: dict[str, float]) -> float:
    total_weight = 0.0
    weighted_sum = 0.0
    for criterion, score in scores.items():
        weight = EVALUATION_CRITERIA.get(criterion, (0.0, ""))[0]
        weighted_sum += score * weight
        total_weight += weight
    return weighted_sum / total_weight if total_weight > 0 else 0.0


def parse_scores(text: str) -> dict[str, float]:
    scores = {}
    for criterion in EVALUATION_CRITERIA:
        match = re.search(rf"{criterion}\W{{0,4}}(\d+(?:\.\d+)?)", text, re.IGNORECASE)
        value = float(match.group(1)) if match else NEUTRAL_SCORE
        scores[criterion] = max(1.0, min(10.0, value))
    return scores


class CriticAgent(RoleAgent):
    role = AgentRole.CRITIC
    specializations = ("evaluation", "critique", "analysis")
    temperature = 0.4

    def system_prompt(self) -> str:
        criteria = "\n".join(
            f"- {name} (weight: {weight}): {desc}"
            for name, (weight, desc) in EVALUATION_CRITERIA.items()
        )
        return (
            "You are the Critic agent in a multi-agent art creation system. "
            "Your role is to provide thoughtful, constructive evaluation of artwork.\n\n"
            f"Evaluation criteria:\n{criteria}"
        )

    async def perform_task(self, task: dict, project: dict) -> dict:
        artwork = task.get("artwork") or task.get("input")
        text = await self.generate(
            f"{self.project_brief(project, task)}\n\n"
            f"Artwork:\n{describe_material(artwork)}\n\n"
            "Evaluate the artwork. Give one line per criterion as 'criterion: score' "
            "with a score from 1 to 10, then sections titled Strengths, "
            "Areas for improvement and Recommendations, each a bulleted list."
        )
        sections = parse_labeled_fields(text, SECTIONS)
        scores = parse_scores(text)
        evaluation = {
            "scores": scores,
            "overall_score": round(weighted_score(scores), 2),
            "strengths": parse_list_items(sections["Strengths"]),
            "areas_for_improvement": parse_list_items(sections["Areas for improvement"]),
            "recommendations": parse_list_items(sections["Recommendations"]),
        }
        logger.info(f"[Critic] Overall score {evaluation['overall_score']}")
        return evaluation
