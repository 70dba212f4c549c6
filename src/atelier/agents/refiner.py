"""RefinerAgent -- describes a refined artwork in the selected style."""

import logging

from ..llm.json_parser import parse_labeled_fields
from .base import RoleAgent, describe_material
from .messages import AgentRole

logger = logging.getLogger(__name__)

ARTWORK_FIELDS = [
    "Title",
    "Description",
    "Visual elements",
    "Composition",
    "Color usage",
    "Texture",
    "Focal points",
    "Emotional impact",
]


class RefinerAgent(RoleAgent):
    role = AgentRole.REFINER
    specializations = ("refinement", "improvement", "detail")
    temperature = 0.6

    def system_prompt(self) -> str:
        return (
            "You are the Refiner agent in a multi-agent art creation system. "
            "Your role is to refine and improve artwork based on a selected style, "
            "adding detail while preserving the style's character."
        )

    async def perform_task(self, task: dict, project: dict) -> dict:
        style = task.get("style") or task.get("input")
        suggestions = task.get("suggestions") or []
        request = (
            f"{self.project_brief(project, task)}\n\n"
            f"Style / current draft:\n{describe_material(style)}\n\n"
        )
        if suggestions:
            request += "Address these suggestions:\n" + "\n".join(f"- {s}" for s in suggestions) + "\n\n"
        request += "Describe the refined artwork. Use one line per field:\n" + "\n".join(
            f"{f}: ..." for f in ARTWORK_FIELDS
        )

        text = await self.generate(request)
        fields = parse_labeled_fields(text, ARTWORK_FIELDS)
        artwork = {
            key.lower().replace(" ", "_"): value for key, value in fields.items()
        }
        artwork["title"] = artwork["title"] or project.get("title") or "Untitled"
        artwork["description"] = artwork["description"] or text.strip()
        logger.info(f"[Refiner] Refined artwork '{artwork['title']}'")
        return {"artwork": artwork}
