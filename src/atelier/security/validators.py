"""
Input validators for the engine's outer edges: config values, CLI arguments
and the artifact endpoint URL.

Parse at the boundary. Inside the engine ids and enums are trusted.
"""

import ipaddress
import logging
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

ALLOWED_URL_SCHEMES = {"http", "https"}
BLOCKED_HOSTNAMES = {"metadata.google.internal"}


class ValidationError(ValueError):
    """Raised when boundary input is invalid. The message is user-facing."""

    pass


def validate_not_empty(value: str, field_name: str = "input") -> str:
    """Reject empty or whitespace-only strings; return the stripped value."""
    if not value or not value.strip():
        raise ValidationError(f"{field_name} cannot be empty")
    return value.strip()


def validate_in_choices(value: str, choices: list[str], field_name: str = "value") -> str:
    """Validate that a value is one of the allowed choices."""
    if value not in choices:
        raise ValidationError(f"{field_name} must be one of: {', '.join(choices)}")
    return value


def validate_non_negative_int(value: int, field_name: str = "number") -> int:
    """Priorities and counts: integers, zero allowed."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{field_name} must be a non-negative integer (got {value!r})")
    return value


def _is_link_local(hostname: str) -> bool:
    try:
        return ipaddress.ip_address(hostname).is_link_local
    except ValueError:
        return False


def validate_url(url: str, field_name: str = "url") -> str:
    """
    Validate an artifact service URL.

    Image backends commonly run on localhost, so private addresses are
    allowed. Non-http schemes and cloud metadata endpoints
    (169.254.x, metadata.google.internal) are rejected.
    """
    if not url or not url.strip():
        raise ValidationError(f"{field_name} cannot be empty")

    parsed = urlparse(url.strip())
    if parsed.scheme not in ALLOWED_URL_SCHEMES:
        raise ValidationError(
            f"{field_name} must use http or https (got '{parsed.scheme}')"
        )

    hostname = parsed.hostname
    if not hostname:
        raise ValidationError(f"{field_name} must include a hostname")
    if hostname.lower() in BLOCKED_HOSTNAMES or _is_link_local(hostname):
        raise ValidationError(f"{field_name} cannot point to a metadata endpoint")

    logger.debug(f"[Validators] URL validated: {parsed.scheme}://{hostname}")
    return url.strip()
