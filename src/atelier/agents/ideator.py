"""
IdeatorAgent -- generates art ideas through one of seven ideation approaches.

The approach is picked per project by keyword matches weighted by learned
approach weights. A provide_feedback message carrying an approach and a 1-10
rating moves that approach's weight toward rating/10.
"""

import logging

from .base import RoleAgent, describe_material, split_title
from .messages import Action, AgentMessage, AgentRole, reply_to

logger = logging.getLogger(__name__)

APPROACH_LEARNING_RATE = 0.1
IDEAS_PER_TASK = 5

APPROACH_KEYWORDS = {
    "conceptual": ("concept", "abstract", "idea", "philosophy", "meaning"),
    "narrative": ("story", "narrative", "character", "plot", "sequence"),
    "visual": ("visual", "composition", "color", "form", "texture"),
    "emotional": ("emotion", "feeling", "mood", "atmosphere", "expression"),
    "technical": ("technique", "method", "process", "execution", "craft"),
    "cultural": ("culture", "reference", "history", "society", "tradition"),
    "experimental": ("experiment", "innovative", "novel", "unique", "unconventional"),
}
DEFAULT_APPROACH_WEIGHTS = {
    "conceptual": 0.8,
    "narrative": 0.6,
    "visual": 0.9,
    "emotional": 0.7,
    "technical": 0.5,
    "cultural": 0.6,
    "experimental": 0.4,
}
APPROACH_FOCUS = {
    "conceptual": "abstract concepts, philosophical themes and ideas that challenge perception",
    "narrative": "storytelling, characters and moments that suggest a larger story",
    "visual": "composition, color theory, form, texture and visual impact",
    "emotional": "emotional impact, mood and atmosphere",
    "technical": "execution methods, materials and processes",
    "cultural": "cultural references, history and tradition",
    "experimental": "unconventional, innovative approaches that break expectations",
}


class IdeatorAgent(RoleAgent):
    role = AgentRole.IDEATOR
    specializations = ("ideation", "creativity", "conceptualization")
    temperature = 0.8

    def __init__(self, llm, **kwargs):
        super().__init__(llm, **kwargs)
        self._state.context.update({
            "approach_weights": dict(DEFAULT_APPROACH_WEIGHTS),
            "generated_ideas": [],
        })

    @property
    def approach_weights(self) -> dict[str, float]:
        return self._state.context["approach_weights"]

    def preferred_approaches(self, n: int = 3) -> list[str]:
        return sorted(self.approach_weights, key=self.approach_weights.get, reverse=True)[:n]

    def choose_approach(self, project: dict, task: dict | None = None) -> str:
        """Keyword matches times weight; highest weighted approach on no match."""
        text = " ".join([
            str(project.get("title", "")),
            str(project.get("description", "")),
            " ".join(map(str, project.get("requirements", []))),
            str((task or {}).get("description", "")),
        ]).lower()
        scores = {
            approach: sum(1 for word in words if word in text) * self.approach_weights.get(approach, 0.5)
            for approach, words in APPROACH_KEYWORDS.items()
        }
        best = max(scores, key=scores.get)
        return best if scores[best] > 0 else self.preferred_approaches(1)[0]

    def system_prompt(self) -> str:
        return (
            "You are the Ideator agent in a multi-agent art creation system. "
            "Your role is to generate creative, diverse and novel art ideas."
        )

    async def perform_task(self, task: dict, project: dict) -> dict:
        approach = self.choose_approach(project, task)
        items = await self.generate_items(
            f"Focus on {APPROACH_FOCUS[approach]}.\n\n"
            f"{self.project_brief(project, task)}\n\n"
            f"Upstream material:\n{describe_material(task.get('input'))}\n\n"
            f"Generate {IDEAS_PER_TASK} {approach} art ideas as a numbered list. "
            "Start each item with a short title, then a colon, then the description.",
            limit=IDEAS_PER_TASK,
        )
        ideas = [split_title(item) for item in items]
        self._state.context["generated_ideas"].extend(ideas)
        logger.info(f"[Ideator] Generated {len(ideas)} {approach} ideas")
        return {"approach": approach, "ideas": ideas}

    async def handle_request(self, message: AgentMessage) -> AgentMessage | None:
        if message.action == Action.PROVIDE_FEEDBACK:
            return self._learn(message)
        return await super().handle_request(message)

    async def handle_response(self, message: AgentMessage) -> AgentMessage | None:
        if message.action == Action.PROVIDE_FEEDBACK:
            return self._learn(message)
        return None

    def _learn(self, message: AgentMessage) -> AgentMessage | None:
        content = message.content
        feedback = content.get("feedback") or {}
        approach = content.get("approach") or feedback.get("approach")
        rating = content.get("rating", feedback.get("rating"))
        if approach not in self.approach_weights or rating is None:
            return None

        current = self.approach_weights[approach]
        updated = current * (1 - APPROACH_LEARNING_RATE) + (float(rating) / 10) * APPROACH_LEARNING_RATE
        self.approach_weights[approach] = updated
        logger.debug(f"[Ideator] Approach '{approach}' weight {current:.2f} -> {updated:.2f}")
        return reply_to(
            message,
            self.role,
            {"action": Action.FEEDBACK_ACKNOWLEDGED, "approach": approach, "new_weight": updated},
        )
