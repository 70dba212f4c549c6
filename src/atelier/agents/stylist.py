"""StylistAgent -- turns ideas into distinct, named artistic styles."""

import logging

from .base import RoleAgent, describe_material, split_title
from .messages import AgentRole

logger = logging.getLogger(__name__)

STYLES_PER_TASK = 3
STYLE_FIELDS = (
    "Key visual characteristics",
    "Color palette",
    "Texture and materials",
    "Composition guidelines",
)


class StylistAgent(RoleAgent):
    role = AgentRole.STYLIST
    specializations = ("style", "aesthetics", "visual design")
    temperature = 0.7

    def system_prompt(self) -> str:
        return (
            "You are the Stylist agent in a multi-agent art creation system. "
            "Your role is to develop cohesive, distinctive and adaptable artistic "
            "styles based on creative ideas."
        )

    async def perform_task(self, task: dict, project: dict) -> dict:
        ideas = task.get("ideas") or task.get("input")
        fields = ", ".join(f.lower() for f in STYLE_FIELDS)
        items = await self.generate_items(
            f"{self.project_brief(project, task)}\n\n"
            f"Ideas:\n{describe_material(ideas)}\n\n"
            f"Develop {STYLES_PER_TASK} unique artistic styles as a numbered list. "
            f"Start each with the style name and a colon, then describe its {fields}.",
            limit=STYLES_PER_TASK,
        )
        styles = [
            {"name": s["title"], "description": s["description"]}
            for s in (split_title(item) for item in items)
        ]
        if not styles:
            styles = [{"name": "Default Style", "description": "Balanced palette, clear focal point"}]
        logger.info(f"[Stylist] Developed {len(styles)} styles")
        return {"styles": styles, "selected": styles[0]}
