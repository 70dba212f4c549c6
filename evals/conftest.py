"""Eval fixtures -- scripted LLM collaborators, agents, bus and coordinator."""

from unittest.mock import AsyncMock

import pytest

from atelier.agents import MessageBus, build_default_registry
from atelier.config import CollaborationConfig, PreferenceConfig
from atelier.learning import PreferenceEngine
from atelier.llm import CacheablePrompt, LLMResponse
from atelier.orchestration import CollaborationCoordinator

IDEATOR_REPLY = (
    "1. Tide Clock: a harbor measured in rising water\n"
    "2. Crane Ballet: cranes moving like dancers in fog\n"
    "3. First Light: a single lamp against the grey\n"
)
STYLIST_REPLY = "1. Ink Wash: muted greys, soft edges\n2. Neon Fog: saturated glow through haze\n"
REFINER_REPLY = (
    "Title: Harbor Dawn\n"
    "Description: Cranes dissolving into morning fog\n"
    "Composition: low horizon, cranes on the left third\n"
    "Color usage: greys with one orange accent\n"
    "Texture: wet ink bleed\n"
    "Focal points: the lamp on the pier\n"
    "Emotional impact: quiet anticipation\n"
)
CRITIC_REPLY = (
    "aesthetics: 8\noriginality: 7\ncoherence: 8\ntechnique: 6\nimpact: 9\n"
    "Strengths:\n- strong mood\n"
    "Areas for improvement:\n- weak contrast\n"
    "Recommendations:\n- push the orange accent\n"
)
DIRECTOR_REPLY = "1. Ideator: brainstorm\n2. Stylist: pick a style\n3. Critic: review\n"
REVIEW_REPLY = "Feedback: solid work\nRating: 9\nSuggestions:\n- tighten the framing\n"
VOTE_REPLY = "Vote: approve\nRationale: clear and feasible"

ROLE_REPLIES = {
    "ideator": IDEATOR_REPLY,
    "stylist": STYLIST_REPLY,
    "refiner": REFINER_REPLY,
    "critic": CRITIC_REPLY,
    "director": DIRECTOR_REPLY,
    "concept": "A harbor at dawn rendered as a study in fog and steel.",
    "style": "Palette: greys. Brushwork: loose ink. Composition: low horizon.",
}


def prompt_text(prompt) -> str:
    return prompt.user_message if isinstance(prompt, CacheablePrompt) else str(prompt)


def studio_reply(role: str, text: str) -> str:
    """Default collaborator: role-appropriate output, reviews rate 9, votes approve."""
    if text.startswith("Review the following"):
        return REVIEW_REPLY
    if "vote on this proposal" in text:
        return VOTE_REPLY
    return ROLE_REPLIES.get(role, "ok")


@pytest.fixture
def make_llm():
    """
    Build a mock TextGenerator from a responder(role, prompt_text) -> str.

    A responder may raise to simulate a collaborator failure.
    """

    def build(responder=studio_reply):
        def call(prompt, role="", temperature=0.7, max_tokens=4096):
            return LLMResponse(
                content=responder(role, prompt_text(prompt)),
                model="mock-model",
                provider="mock",
            )

        client = AsyncMock()
        client.call.side_effect = call
        return client

    return build


@pytest.fixture
def mock_llm(make_llm):
    """Mock LLM client that answers every role without API calls."""
    return make_llm()


@pytest.fixture
def preferences():
    return PreferenceEngine(PreferenceConfig(persist=False))


@pytest.fixture
def registry(mock_llm):
    return build_default_registry(mock_llm)


@pytest.fixture
def bus(registry):
    return MessageBus(registry)


@pytest.fixture
def coordinator(registry, bus):
    return CollaborationCoordinator(registry, bus, CollaborationConfig())
