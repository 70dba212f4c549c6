"""
CreativeEngine -- one object wiring the scheduler, preferences and agents.

Factory:
    engine = create_engine(EngineConfig.from_env())
    await engine.start()                 # loads persisted preferences

Then:
    idea = engine.scheduler.add_idea("Harbor at dawn", "Fog and cranes", style="ink", theme="industry")
    await engine.scheduler.wait_idle()

    results = await engine.run_project("Harbor series", "Three studies of a harbor")

    session = await engine.coordinator.create_session("Critique", "Review the series",
                                                      [AgentRole.CRITIC, AgentRole.REFINER])

Components can be passed in for tests; anything not given is built from the
config.
"""

import logging

from .agents.bus import MessageBus
from .agents.messages import SYSTEM_ADDRESS, Action, AgentMessage, AgentRole, new_message
from .agents.registry import AgentRegistry, build_default_registry
from .artifacts import ArtifactGenerator, HttpArtifactGenerator, PlaceholderArtifactGenerator
from .config import EngineConfig
from .ideas.scheduler import IdeaScheduler
from .learning.aesthetic import PreferenceEngine
from .learning.store import PreferenceStore
from .llm.client import TextGenerator, create_client
from .orchestration.collaboration import CollaborationCoordinator

logger = logging.getLogger(__name__)


class CreativeEngine:
    def __init__(
        self,
        config: EngineConfig,
        llm: TextGenerator,
        scheduler: IdeaScheduler,
        preferences: PreferenceEngine,
        registry: AgentRegistry,
        bus: MessageBus,
        coordinator: CollaborationCoordinator,
    ):
        self.config = config
        self.llm = llm
        self.scheduler = scheduler
        self.preferences = preferences
        self.registry = registry
        self.bus = bus
        self.coordinator = coordinator

    async def start(self) -> None:
        await self.preferences.load()
        logger.info(
            f"[Engine] Ready: {self.registry.count} agents, "
            f"{self.preferences.rating_stats()['count']} rated styles"
        )

    async def run_project(
        self, title: str, description: str, requirements: list[str] | None = None
    ) -> dict | None:
        """
        Run the Director pipeline over the bus.

        Returns the project_completed content (project plus per-stage results),
        or None if the pipeline stopped early.
        """
        routed = await self.bus.send(
            new_message(
                SYSTEM_ADDRESS,
                AgentRole.DIRECTOR,
                {
                    "action": Action.CREATE_PROJECT,
                    "title": title,
                    "description": description,
                    "requirements": requirements or [],
                },
            )
        )
        completed: AgentMessage | None = next(
            (m for m in reversed(routed) if m.action == Action.PROJECT_COMPLETED), None
        )
        if completed is None:
            logger.warning(f"[Engine] Project '{title}' stopped after {len(routed)} messages")
            return None
        return {"project": completed.content["project"], "results": completed.content["results"]}

    def get_statistics(self) -> dict:
        return {
            "scheduler": self.scheduler.get_statistics(),
            "preferences": self.preferences.rating_stats(),
            "agents": self.registry.list_info(),
            "collaboration": self.coordinator.get_collaboration_metrics(),
        }


def create_engine(
    config: EngineConfig | None = None,
    llm: TextGenerator | None = None,
    artifacts: ArtifactGenerator | None = None,
    registry: AgentRegistry | None = None,
) -> CreativeEngine:
    """
    Engine factory -- builds every component not supplied.

    Args:
        config: Engine configuration (defaults if None).
        llm: Text collaborator (provider client from config.llm if None).
        artifacts: Image collaborator (HTTP if config.artifact_endpoint is set,
            placeholder images otherwise).
        registry: Pre-built agent registry (all five collaborative agents if None).
    """
    config = config or EngineConfig()
    if llm is None:
        llm = create_client(
            provider=config.llm.provider,
            model=config.llm.model,
            timeout=config.llm.timeout,
            max_retries=config.llm.max_retries,
        )
    if artifacts is None:
        if config.artifact_endpoint:
            artifacts = HttpArtifactGenerator(config.artifact_endpoint)
        else:
            artifacts = PlaceholderArtifactGenerator()

    store = PreferenceStore(config.preference.data_dir) if config.preference.persist else None
    preferences = PreferenceEngine(config.preference, store=store)
    scheduler = IdeaScheduler(llm, artifacts, config.scheduler, preferences=preferences)

    registry = registry or build_default_registry(llm)
    bus = MessageBus(registry, max_hops=config.collaboration.max_hops)
    coordinator = CollaborationCoordinator(registry, bus, config.collaboration)

    logger.info(
        f"[Engine] Created (artifacts={type(artifacts).__name__}, "
        f"max_active_threads={config.scheduler.max_active_threads})"
    )
    return CreativeEngine(
        config=config,
        llm=llm,
        scheduler=scheduler,
        preferences=preferences,
        registry=registry,
        bus=bus,
        coordinator=coordinator,
    )
