"""
DirectorAgent -- drives a project through ideation, styling, refinement and
critique, one assignment at a time.

    create_project (request from system)
      -> assign_task to Ideator
    task_completed from Ideator  -> assign_task to Stylist   (ideas attached)
    task_completed from Stylist  -> assign_task to Refiner   (style attached)
    task_completed from Refiner  -> assign_task to Critic    (artwork attached)
    task_completed from Critic   -> broadcast project_completed (update)

Each step is a single reply, so the MessageBus carries the whole pipeline
without the Director ever fanning out. As a collaboration participant the
Director answers assign_task with a short production plan.
"""

import logging
import uuid

from .base import RoleAgent, describe_material, split_title
from .messages import Action, AgentMessage, AgentRole, MessageType, new_message, reply_to

logger = logging.getLogger(__name__)


class ProjectStage:
    PLANNING = "planning"
    STYLING = "styling"
    REFINEMENT = "refinement"
    CRITIQUE = "critique"
    COMPLETED = "completed"


# current stage -> (next stage, next role, task type, key the previous result is passed under)
STAGE_PLAN = {
    ProjectStage.PLANNING: (ProjectStage.STYLING, AgentRole.STYLIST, "styling", "ideas"),
    ProjectStage.STYLING: (ProjectStage.REFINEMENT, AgentRole.REFINER, "refinement", "style"),
    ProjectStage.REFINEMENT: (ProjectStage.CRITIQUE, AgentRole.CRITIC, "critique", "artwork"),
}
TASK_VERBS = {
    "ideation": "Generate creative ideas",
    "styling": "Develop style",
    "refinement": "Refine artwork",
    "critique": "Critique artwork",
}


def _task_id(kind: str) -> str:
    return f"task-{kind}-{str(uuid.uuid4())[:8]}"


class DirectorAgent(RoleAgent):
    role = AgentRole.DIRECTOR
    specializations = ("coordination", "planning", "management")
    temperature = 0.5

    def __init__(self, llm, **kwargs):
        super().__init__(llm, **kwargs)
        self._state.context.update({
            "current_project": None,
            "project_stage": None,
            "assigned_tasks": {},
            "completed_tasks": [],
        })

    def system_prompt(self) -> str:
        return (
            "You are the Director agent in a multi-agent art creation system. "
            "You coordinate the Ideator, Stylist, Refiner and Critic and keep the "
            "project coherent from first idea to final critique."
        )

    @property
    def stage(self) -> str | None:
        return self._state.context["project_stage"]

    @property
    def project(self) -> dict | None:
        return self._state.context["current_project"]

    async def handle_request(self, message: AgentMessage) -> AgentMessage | None:
        if message.action == Action.CREATE_PROJECT:
            return self._start_project(message)
        return await super().handle_request(message)

    def _start_project(self, message: AgentMessage) -> AgentMessage:
        content = message.content
        project = {
            "id": content.get("id") or f"project-{str(uuid.uuid4())[:8]}",
            "title": content.get("title") or "Untitled Project",
            "description": content.get("description", ""),
            "requirements": list(content.get("requirements", [])),
            "status": ProjectStage.PLANNING,
        }
        ctx = self._state.context
        ctx["current_project"] = project
        ctx["project_stage"] = ProjectStage.PLANNING
        ctx["assigned_tasks"] = {}
        ctx["completed_tasks"] = []
        logger.info(f"[Director] Started project '{project['title']}' ({project['id']})")

        task = self._new_task("ideation", requirements=project["requirements"])
        return self._assign(task, AgentRole.IDEATOR)

    async def handle_response(self, message: AgentMessage) -> AgentMessage | None:
        if message.action != Action.TASK_COMPLETED:
            return None
        ctx = self._state.context
        task = ctx["assigned_tasks"].pop(message.content.get("task_id"), None)
        if task is None:
            logger.debug(f"[Director] Ignoring completion for unknown task from {message.from_agent}")
            return None

        task["status"] = "completed"
        task["result"] = message.content.get("result")
        ctx["completed_tasks"].append(task)

        if self.stage in STAGE_PLAN:
            next_stage, next_role, kind, result_key = STAGE_PLAN[self.stage]
            ctx["project_stage"] = next_stage
            self.project["status"] = next_stage
            logger.info(f"[Director] '{self.project['title']}' -> {next_stage}")
            return self._assign(self._new_task(kind, **{result_key: task["result"]}), next_role)

        if self.stage == ProjectStage.CRITIQUE:
            ctx["project_stage"] = ProjectStage.COMPLETED
            self.project["status"] = ProjectStage.COMPLETED
            self.project["feedback"] = task["result"]
            logger.info(f"[Director] '{self.project['title']}' completed")
            return new_message(
                self.role,
                None,
                {
                    "action": Action.PROJECT_COMPLETED,
                    "project": self.project,
                    "results": self.collect_results(),
                },
                MessageType.UPDATE,
            )
        return None

    def _new_task(self, kind: str, **inputs) -> dict:
        task = {
            "id": _task_id(kind),
            "type": kind,
            "description": f"{TASK_VERBS[kind]} for project: {self.project['title']}",
            "status": "pending",
            **inputs,
        }
        self._state.context["assigned_tasks"][task["id"]] = task
        return task

    def _assign(self, task: dict, role: AgentRole) -> AgentMessage:
        return new_message(
            self.role,
            role,
            {
                "action": Action.ASSIGN_TASK,
                "task": task,
                "target_role": role.value,
                "project": self.project,
            },
            MessageType.REQUEST,
        )

    def collect_results(self) -> dict:
        """Completed task results keyed by task type."""
        return {t["type"]: t.get("result") for t in self._state.context["completed_tasks"]}

    async def perform_task(self, task: dict, project: dict) -> dict:
        """Produce a step-by-step production plan for a collaboration task."""
        steps = await self.generate_items(
            f"{self.project_brief(project, task)}\n\n"
            f"Upstream material:\n{describe_material(task.get('input'))}\n\n"
            "Write a numbered production plan (3-6 steps). Name the agent role "
            "responsible for each step.",
            limit=6,
        )
        return {"plan": [split_title(s) for s in steps]}
