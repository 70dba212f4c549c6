"""
atelier -- creative-task scheduler and multi-agent art studio.

  - ideas/: IdeaScheduler (bounded idea store, prioritized exploration threads)
  - learning/: PreferenceEngine (ELO ratings, exploration, tag preferences)
  - agents/: role agents, AgentRegistry, MessageBus
  - orchestration/: CollaborationCoordinator and the seven collaboration patterns
  - engine.py: CreativeEngine facade wiring all of the above
"""

from .config import (
    CollaborationConfig,
    EngineConfig,
    LLMConfig,
    PreferenceConfig,
    SchedulerConfig,
)
from .engine import CreativeEngine, create_engine
from .errors import (
    AtelierError,
    GenerationError,
    NoCandidatesError,
    SessionError,
    UnknownAgentError,
)

__version__ = "0.1.0"
