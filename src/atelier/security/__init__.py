"""Security utilities -- prompt injection defense and boundary validation."""
from .prompt_guard import wrap_user_content, detect_injection_attempt, sanitize_for_prompt
from .validators import (
    ValidationError,
    validate_in_choices,
    validate_non_negative_int,
    validate_not_empty,
    validate_url,
)
