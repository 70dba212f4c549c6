"""
Artifact collaborator -- turns a finished concept + style into an image.

Image generation is out of scope for the engine, so this module only defines
the seam and two implementations:

  PlaceholderArtifactGenerator -- no backend; returns a descriptive stand-in
  HttpArtifactGenerator        -- POSTs the spec to an image service

HTTP contract:
    POST {endpoint}
    {"prompt": str, "title": str, "direction": str, "width": int, "height": int}
    -> {"url": str, ...}  or  {"content": str, ...}

Usage:
    generator = HttpArtifactGenerator("http://localhost:7860/generate", api_key="...")
    artifact = await generator.generate_artifact({"prompt": "...", "title": "Harbor"})
    artifact["url"]
"""

import logging
from typing import Any, Protocol, runtime_checkable

import httpx

from .errors import GenerationError
from .security.validators import validate_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 180
MAX_RETRIES = 2
MAX_RESPONSE_BYTES = 5_000_000
DEFAULT_SIZE = 1024


@runtime_checkable
class ArtifactGenerator(Protocol):
    """The generateArtifact collaborator."""

    async def generate_artifact(self, spec: dict[str, Any]) -> dict[str, Any]: ...


class PlaceholderArtifactGenerator:
    """Stand-in used when no image backend is configured."""

    async def generate_artifact(self, spec: dict[str, Any]) -> dict[str, Any]:
        return {
            "content": f"Placeholder image for {spec.get('title', '')} - {spec.get('direction', '')}",
            "status": "placeholder",
            "width": spec.get("width", DEFAULT_SIZE),
            "height": spec.get("height", DEFAULT_SIZE),
            "format": "jpg",
        }


class HttpArtifactGenerator:
    """
    ArtifactGenerator backed by an HTTP image service.

    Timeouts are retried; HTTP errors and connection failures are not.
    Every failure ends as GenerationError, which the scheduler turns into an
    abandoned thread.
    """

    def __init__(
        self,
        endpoint: str,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._endpoint = validate_url(endpoint, field_name="artifact endpoint")
        self._api_key = api_key
        self._timeout = timeout
        self._max_retries = max_retries
        self._transport = transport
        self._request_count = 0

    @property
    def request_count(self) -> int:
        return self._request_count

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def generate_artifact(self, spec: dict[str, Any]) -> dict[str, Any]:
        payload = {"width": DEFAULT_SIZE, "height": DEFAULT_SIZE, **spec}
        last_error: Exception | None = None

        for attempt in range(self._max_retries + 1):
            try:
                async with httpx.AsyncClient(
                    timeout=self._timeout, transport=self._transport
                ) as client:
                    response = await client.post(
                        self._endpoint, json=payload, headers=self._headers()
                    )
                    response.raise_for_status()
                    if len(response.content) > MAX_RESPONSE_BYTES:
                        raise GenerationError(
                            f"Artifact response exceeds {MAX_RESPONSE_BYTES} byte limit",
                            provider="http",
                        )
                    self._request_count += 1
                    data = response.json()
                    break
            except httpx.TimeoutException as e:
                last_error = e
                logger.warning(
                    f"[Artifacts] Timeout from {self._endpoint} "
                    f"(attempt {attempt + 1}/{self._max_retries + 1})"
                )
            except httpx.HTTPStatusError as e:
                logger.error(
                    f"[Artifacts] HTTP {e.response.status_code} "
                    f"from {self._endpoint}: {e.response.text[:200]}"
                )
                raise GenerationError(
                    f"Artifact service returned {e.response.status_code}",
                    provider="http",
                    cause=e,
                ) from e
            except (httpx.ConnectError, ValueError) as e:
                logger.error(f"[Artifacts] Request to {self._endpoint} failed: {e}")
                raise GenerationError(
                    f"Artifact service unavailable: {type(e).__name__}",
                    provider="http",
                    cause=e,
                ) from e
        else:
            raise GenerationError(
                f"Artifact service timed out after {self._max_retries + 1} attempts",
                provider="http",
                cause=last_error,
            )

        if not isinstance(data, dict) or not (data.get("url") or data.get("content")):
            raise GenerationError("Artifact response has neither url nor content", provider="http")

        data.setdefault("status", "generated")
        return data
