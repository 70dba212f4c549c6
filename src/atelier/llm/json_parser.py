"""
Best-effort parsing of free-text LLM output.

Models are asked for numbered lists, "Label: value" lines or JSON, and do not
always comply. Every parser here degrades to something usable (usually the
whole response as a single item) instead of raising.

Usage:
    concepts = parse_list_items(response.content)
    fields = parse_labeled_fields(response.content, ["Color palette", "Composition"])
    rating = extract_rating(response.content)  # int 1..10 or None
    data = extract_json(response.content)      # dict or None
"""

import json
import logging
import re
from typing import Any

logger = logging.getLogger(__name__)

LIST_ITEM_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s+(.*\S)\s*$")
RATING_RES = (
    re.compile(r"rating\W{0,3}\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s*/\s*10"),
)
FENCED_JSON_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


def parse_list_items(text: str, limit: int | None = None) -> list[str]:
    """
    Collect numbered or bulleted items.

    Continuation lines are folded into the preceding item. If no list markers
    are found the whole stripped response is returned as one item; an empty
    response yields an empty list.
    """
    items: list[str] = []
    for line in (text or "").splitlines():
        match = LIST_ITEM_RE.match(line)
        if match:
            items.append(match.group(1))
        elif items and line.strip():
            items[-1] = f"{items[-1]} {line.strip()}"

    if not items and text and text.strip():
        items = [text.strip()]

    return items[:limit] if limit is not None else items


def parse_labeled_fields(text: str, labels: list[str]) -> dict[str, str]:
    """
    Extract "Label: value" sections for the given labels (case-insensitive).

    A section runs until the next known label. Labels that never appear map
    to an empty string.
    """
    result = {label: "" for label in labels}
    if not text:
        return result

    pattern = re.compile(
        r"^\W*(" + "|".join(re.escape(label) for label in labels) + r")\W*:\s*(.*)$",
        re.IGNORECASE,
    )
    lookup = {label.lower(): label for label in labels}
    current: str | None = None
    for line in text.splitlines():
        match = pattern.match(line)
        if match:
            current = lookup[match.group(1).lower()]
            result[current] = match.group(2).strip()
        elif current and line.strip():
            result[current] = f"{result[current]}\n{line.strip()}".strip()
    return result


def extract_rating(text: str, low: int = 1, high: int = 10) -> int | None:
    """Find a "Rating: N" or "N/10" score, clamped to [low, high]."""
    if not text:
        return None
    for pattern in RATING_RES:
        match = pattern.search(text)
        if match:
            return max(low, min(high, int(match.group(1))))
    return None


def extract_json(text: str) -> Any:
    """
    Parse JSON from a response that may wrap it in prose or code fences.

    Returns the decoded value, or None if nothing parses.
    """
    if not text:
        return None

    candidates = [text.strip()]
    candidates.extend(m.strip() for m in FENCED_JSON_RE.findall(text))
    for opener, closer in (("{", "}"), ("[", "]")):
        start, end = text.find(opener), text.rfind(closer)
        if start != -1 and end > start:
            candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue

    logger.debug(f"[JSONParser] No JSON found in {len(text)} chars of output")
    return None
