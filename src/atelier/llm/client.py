"""
Text collaborator -- provider-agnostic LLM client used by the scheduler and agents.

Every text generation in atelier goes through one call signature:

    response = await llm.call(prompt, role="ideator", temperature=0.8)
    response.content  # str

Anything with that coroutine satisfies TextGenerator, so tests pass an AsyncMock
and production code passes an LLMClient. The client:
  - routes to Anthropic, OpenAI or Google
  - marks the stable system prefix for provider prompt caching
  - retries transient failures with exponential backoff
  - raises GenerationError once retries are exhausted (callers decide how to degrade)

Usage:
    prompt = CacheablePrompt(
        system="You are the Stylist agent...",
        user_message="Develop a style for: ...",
    )
    client = create_client()
    response = await client.call(prompt=prompt, role="stylist", temperature=0.7)
"""

import asyncio
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from ..errors import GenerationError
from ..security.prompt_guard import sanitize_for_prompt

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 120
DEFAULT_MAX_RETRIES = 2
DEFAULT_MAX_PROMPT_LENGTH = 60_000
RETRY_BASE_DELAY = 1.0
RETRY_MAX_DELAY = 30.0

DEFAULT_MODELS = {
    "anthropic": "claude-sonnet-4-20250514",
    "openai": "gpt-4o",
    "google": "gemini-2.0-flash",
}
API_KEY_VARS = {
    "anthropic": "ANTHROPIC_API_KEY",
    "openai": "OPENAI_API_KEY",
    "google": "GOOGLE_API_KEY",
}
RETRYABLE_ERRORS = {
    "RateLimitError",
    "APITimeoutError",
    "InternalServerError",
    "ServiceUnavailableError",
    "APIConnectionError",
    "Timeout",
    "ConnectError",
}


# =============================================================================
# DATA MODELS
# =============================================================================


@dataclass
class CacheablePrompt:
    """
    A system/user prompt pair.

    system carries the agent's role framing and is stable across calls, so the
    client marks it for caching. context is optional per-session material.
    user_message is the request itself.
    """

    system: str = ""
    context: str = ""
    user_message: str = ""

    def to_flat_prompt(self) -> str:
        """Join the parts for providers without a separate system channel."""
        return "\n\n".join(p for p in (self.system, self.context, self.user_message) if p)


@dataclass
class TokenUsage:
    """Token counts for one call, or accumulated across calls."""

    input_tokens: int = 0
    output_tokens: int = 0
    cached_input_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens

    def add(self, other: "TokenUsage") -> None:
        self.input_tokens += other.input_tokens
        self.output_tokens += other.output_tokens
        self.cached_input_tokens += other.cached_input_tokens


@dataclass
class LLMResponse:
    """Text returned by the collaborator plus provenance."""

    content: str
    usage: TokenUsage = field(default_factory=TokenUsage)
    model: str = ""
    provider: str = ""
    latency_ms: float = 0.0


@runtime_checkable
class TextGenerator(Protocol):
    """The generateText collaborator: anything with an async call()."""

    async def call(
        self,
        prompt: "str | CacheablePrompt",
        role: str = "assistant",
        temperature: float = 0.5,
        max_tokens: int = 2048,
    ) -> LLMResponse: ...


# =============================================================================
# LLM CLIENT
# =============================================================================


class LLMClient:
    """
    TextGenerator backed by a hosted model.

    Usage:
        client = LLMClient(provider="openai")
        response = await client.call("Three concepts for a lighthouse", role="ideator")
    """

    def __init__(
        self,
        provider: str = "anthropic",
        model: str | None = None,
        api_key: str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        max_prompt_length: int = DEFAULT_MAX_PROMPT_LENGTH,
    ):
        self._provider = provider.lower()
        if self._provider not in DEFAULT_MODELS:
            raise ValueError(f"Unsupported provider: {provider}")
        self._model = model or DEFAULT_MODELS[self._provider]
        self._api_key = api_key or self._load_api_key()
        self._timeout = timeout
        self._max_retries = max_retries
        self._max_prompt_length = max_prompt_length
        self._client: Any = None
        self._total_usage = TokenUsage()

        self._init_client()
        logger.info(
            f"[LLM] Initialized {self._provider} client "
            f"(model={self._model}, timeout={self._timeout}s)"
        )

    def _load_api_key(self) -> str:
        env_var = API_KEY_VARS[self._provider]
        key = os.environ.get(env_var, "")
        if not key:
            logger.warning(f"[LLM] {env_var} not set -- calls will fail")
        return key

    def _init_client(self) -> None:
        """Create the provider SDK client. SDKs are imported on first use."""
        try:
            if self._provider == "anthropic":
                import anthropic

                self._client = anthropic.AsyncAnthropic(
                    api_key=self._api_key, timeout=self._timeout
                )
            elif self._provider == "openai":
                import openai

                self._client = openai.AsyncOpenAI(
                    api_key=self._api_key, timeout=self._timeout
                )
            else:
                import google.generativeai as genai

                genai.configure(api_key=self._api_key)
                self._client = genai.GenerativeModel(self._model)
        except ImportError:
            logger.error(
                f"[LLM] {self._provider} SDK not installed. "
                f"Install the matching extra (e.g. atelier[google])."
            )
            self._client = None

    async def call(
        self,
        prompt: str | CacheablePrompt,
        role: str = "assistant",
        temperature: float = 0.5,
        max_tokens: int = 2048,
    ) -> LLMResponse:
        """
        Generate text, retrying transient provider failures.

        Args:
            prompt: Plain string (sent as the user message) or CacheablePrompt.
            role: Agent or pipeline step issuing the call. Used for logging only.
            temperature: Sampling temperature.
            max_tokens: Output token cap.

        Raises:
            GenerationError: SDK missing, or every attempt failed.
        """
        if isinstance(prompt, str):
            prompt = CacheablePrompt(user_message=prompt)
        prompt = self._sanitize_prompt(prompt)

        if self._client is None:
            raise GenerationError(
                f"{self._provider} client not initialized", provider=self._provider
            )

        start = time.time()
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                response = await self._call_provider(prompt, temperature, max_tokens)
                response.latency_ms = (time.time() - start) * 1000
                self._total_usage.add(response.usage)
                logger.debug(
                    f"[LLM] {self._provider}/{role}: "
                    f"{response.usage.input_tokens}in "
                    f"({response.usage.cached_input_tokens} cached) + "
                    f"{response.usage.output_tokens}out "
                    f"({response.latency_ms:.0f}ms)"
                )
                return response
            except Exception as e:
                last_error = e
                if type(e).__name__ in RETRYABLE_ERRORS and attempt < self._max_retries:
                    delay = min(RETRY_BASE_DELAY * (2**attempt), RETRY_MAX_DELAY)
                    logger.warning(
                        f"[LLM] Retryable error for {role} (attempt {attempt + 1}): "
                        f"{type(e).__name__}. Retrying in {delay:.1f}s"
                    )
                    await asyncio.sleep(delay)
                else:
                    break

        logger.error(
            f"[LLM] {role} call failed after {attempt + 1} attempt(s): {last_error}"
        )
        raise GenerationError(
            f"{self._provider} call failed: {type(last_error).__name__}",
            provider=self._provider,
            cause=last_error,
        )

    def _sanitize_prompt(self, prompt: CacheablePrompt) -> CacheablePrompt:
        limit = self._max_prompt_length // 3
        return CacheablePrompt(
            system=sanitize_for_prompt(prompt.system, max_length=limit),
            context=sanitize_for_prompt(prompt.context, max_length=limit),
            user_message=sanitize_for_prompt(prompt.user_message, max_length=limit),
        )

    async def _call_provider(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        if self._provider == "anthropic":
            return await self._call_anthropic(prompt, temperature, max_tokens)
        if self._provider == "openai":
            return await self._call_openai(prompt, temperature, max_tokens)
        return await self._call_google(prompt, temperature, max_tokens)

    async def _call_anthropic(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        """Anthropic with cache_control on the system blocks."""
        system_blocks = [
            {"type": "text", "text": text, "cache_control": {"type": "ephemeral"}}
            for text in (prompt.system, prompt.context)
            if text
        ]
        kwargs: dict[str, Any] = {
            "model": self._model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": [{"role": "user", "content": prompt.user_message}],
        }
        if system_blocks:
            kwargs["system"] = system_blocks

        response = await self._client.messages.create(**kwargs)
        usage = response.usage
        return LLMResponse(
            content="".join(
                block.text for block in response.content if getattr(block, "type", "text") == "text"
            ),
            usage=TokenUsage(
                input_tokens=getattr(usage, "input_tokens", 0) or 0,
                output_tokens=getattr(usage, "output_tokens", 0) or 0,
                cached_input_tokens=getattr(usage, "cache_read_input_tokens", 0) or 0,
            ),
            model=self._model,
            provider="anthropic",
        )

    async def _call_openai(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        """OpenAI chat completions (prefix caching is automatic)."""
        messages = [
            {"role": "system", "content": text}
            for text in (prompt.system, prompt.context)
            if text
        ]
        messages.append({"role": "user", "content": prompt.user_message})

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
        )
        usage = response.usage
        details = getattr(usage, "prompt_tokens_details", None)
        return LLMResponse(
            content=response.choices[0].message.content or "",
            usage=TokenUsage(
                input_tokens=usage.prompt_tokens if usage else 0,
                output_tokens=usage.completion_tokens if usage else 0,
                cached_input_tokens=getattr(details, "cached_tokens", 0) or 0,
            ),
            model=self._model,
            provider="openai",
        )

    async def _call_google(
        self, prompt: CacheablePrompt, temperature: float, max_tokens: int
    ) -> LLMResponse:
        """Gemini's SDK call is blocking, so it runs in a worker thread."""
        response = await asyncio.to_thread(
            self._client.generate_content,
            prompt.to_flat_prompt(),
            generation_config={"temperature": temperature, "max_output_tokens": max_tokens},
        )
        metadata = getattr(response, "usage_metadata", None)
        return LLMResponse(
            content=response.text,
            usage=TokenUsage(
                input_tokens=getattr(metadata, "prompt_token_count", 0) or 0,
                output_tokens=getattr(metadata, "candidates_token_count", 0) or 0,
            ),
            model=self._model,
            provider="google",
        )

    @property
    def total_usage(self) -> TokenUsage:
        return self._total_usage

    @property
    def provider(self) -> str:
        return self._provider

    @property
    def model(self) -> str:
        return self._model


# =============================================================================
# FACTORY
# =============================================================================


def create_client(
    provider: str | None = None,
    model: str | None = None,
    api_key: str | None = None,
    **kwargs,
) -> LLMClient:
    """
    Create a client, picking the provider from available API keys if not given.

    Detection order: explicit argument, ANTHROPIC_API_KEY, OPENAI_API_KEY,
    GOOGLE_API_KEY, then anthropic.
    """
    if provider is None:
        provider = next(
            (name for name, var in API_KEY_VARS.items() if os.environ.get(var)),
            None,
        )
        if provider is None:
            provider = "anthropic"
            logger.warning("[LLM] No API key found. Defaulting to anthropic.")

    return LLMClient(provider=provider, model=model, api_key=api_key, **kwargs)
