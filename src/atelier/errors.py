"""
Typed exceptions for the atelier engine.

Most failures inside the engine degrade to a logged fallback (an abandoned
thread, a None reply, a default vote). These exceptions cover the cases that
are raised: programmer errors at a public boundary, and collaborator failures
that the scheduler turns into thread abandonment.
"""


class AtelierError(Exception):
    """Base class for all atelier errors."""


class GenerationError(AtelierError):
    """A text or artifact collaborator failed after exhausting its retries."""

    def __init__(self, message: str, provider: str = "", cause: Exception | None = None):
        super().__init__(message)
        self.provider = provider
        self.cause = cause


class NoCandidatesError(AtelierError):
    """select_best_style() was called with an empty candidate list."""


class UnknownAgentError(AtelierError, KeyError):
    """A message or session referenced a role with no registered agent."""


class SessionError(AtelierError):
    """A collaboration session was used outside its lifecycle (unknown or concluded)."""
