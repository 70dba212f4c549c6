"""
Engine configuration -- dataclass configs with environment overrides.

Every component takes its config object explicitly. EngineConfig bundles them
for the CreativeEngine facade and can be populated from ATELIER_* variables.

Usage:
    config = EngineConfig.from_env()
    engine = create_engine(config)

Environment variables:
    ATELIER_MAX_IDEAS             store capacity (default 50)
    ATELIER_MAX_THREADS_PER_IDEA  threads per idea (default 3)
    ATELIER_MAX_ACTIVE_THREADS    concurrently explored threads (default 5)
    ATELIER_STEP_TIMEOUT          per-step timeout in seconds (default: none)
    ATELIER_STYLE_VARIANTS        style candidates ranked per thread (default 1)
    ATELIER_DATA_DIR              preference persistence dir (default .atelier/aesthetic)
    ATELIER_LLM_PROVIDER          anthropic / openai / google (default: auto-detect)
    ATELIER_LLM_MODEL             provider model override
    ATELIER_ARTIFACT_ENDPOINT     HTTP image generation endpoint (default: placeholder images)
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from .security.validators import ValidationError, validate_non_negative_int

logger = logging.getLogger(__name__)

ENV_PREFIX = "ATELIER_"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"[Config] {ENV_PREFIX}{name}={raw!r} is not an integer, using {default}")
        return default


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.environ.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"[Config] {ENV_PREFIX}{name}={raw!r} is not a number, using {default}")
        return default


def _env_str(name: str, default: str | None = None) -> str | None:
    raw = os.environ.get(ENV_PREFIX + name)
    return raw if raw else default


# =============================================================================
# COMPONENT CONFIGS
# =============================================================================


@dataclass
class SchedulerConfig:
    """Capacity limits and step behaviour for the idea scheduler."""

    max_ideas: int = 50
    max_threads_per_idea: int = 3
    max_active_threads: int = 5
    step_timeout: float | None = None  # Seconds per generation step, None = wait forever
    style_variants: int = 1  # >1 ranks style candidates through the PreferenceEngine
    concept_temperature: float = 0.8
    style_temperature: float = 0.7

    def __post_init__(self):
        for name in ("max_ideas", "max_threads_per_idea", "max_active_threads", "style_variants"):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be at least 1 (got {getattr(self, name)})")
        if self.step_timeout is not None and self.step_timeout <= 0:
            raise ValidationError(f"step_timeout must be positive (got {self.step_timeout})")


@dataclass
class PreferenceConfig:
    """ELO and exploration parameters for the PreferenceEngine."""

    initial_rating: float = 1400.0
    k_factor: float = 32.0
    exploration_bonus: float = 0.2
    recency_weight: float = 0.1
    tag_learning_rate: float = 0.1  # Weight adjustment per comparison for unique tags
    max_examples: int = 5
    exploration_interval_hours: float = 24.0
    data_dir: Path = Path(".atelier/aesthetic")
    persist: bool = True

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.k_factor < 0:
            raise ValidationError(f"k_factor cannot be negative (got {self.k_factor})")


@dataclass
class CollaborationConfig:
    """Knobs for the CollaborationCoordinator's pattern runners."""

    max_iterations: int = 3  # Iterative pattern budget
    convergence_rating: float = 8.0  # Mean critic rating that ends an iterative session
    affinity_learning_rate: float = 0.1  # Pattern affinity nudge on session conclusion
    max_hops: int = 50  # MessageBus chain guard

    def __post_init__(self):
        for name in ("max_iterations", "max_hops"):
            if getattr(self, name) < 1:
                raise ValidationError(f"{name} must be at least 1 (got {getattr(self, name)})")


@dataclass
class LLMConfig:
    """Text collaborator selection. API keys come from provider env vars."""

    provider: str | None = None  # None = auto-detect from available API keys
    model: str | None = None
    timeout: float = 120.0
    max_retries: int = 2

    def __post_init__(self):
        validate_non_negative_int(self.max_retries, "max_retries")


# =============================================================================
# ENGINE CONFIG
# =============================================================================


@dataclass
class EngineConfig:
    """Everything the CreativeEngine facade needs to wire its components."""

    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    preference: PreferenceConfig = field(default_factory=PreferenceConfig)
    collaboration: CollaborationConfig = field(default_factory=CollaborationConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    artifact_endpoint: str | None = None

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Build a config from defaults overridden by ATELIER_* variables."""
        scheduler = SchedulerConfig(
            max_ideas=_env_int("MAX_IDEAS", 50),
            max_threads_per_idea=_env_int("MAX_THREADS_PER_IDEA", 3),
            max_active_threads=_env_int("MAX_ACTIVE_THREADS", 5),
            step_timeout=_env_float("STEP_TIMEOUT", None),
            style_variants=_env_int("STYLE_VARIANTS", 1),
        )
        preference = PreferenceConfig(
            data_dir=Path(_env_str("DATA_DIR", ".atelier/aesthetic")),
        )
        llm = LLMConfig(
            provider=_env_str("LLM_PROVIDER"),
            model=_env_str("LLM_MODEL"),
        )
        config = cls(
            scheduler=scheduler,
            preference=preference,
            llm=llm,
            artifact_endpoint=_env_str("ARTIFACT_ENDPOINT"),
        )
        logger.debug(
            f"[Config] Loaded from env: max_ideas={scheduler.max_ideas}, "
            f"max_active_threads={scheduler.max_active_threads}, "
            f"data_dir={preference.data_dir}"
        )
        return config
