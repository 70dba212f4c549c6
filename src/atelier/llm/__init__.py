"""
Text collaborator -- LLM client and output parsing.

Usage:
    from atelier.llm import create_client, CacheablePrompt

    client = create_client()  # Auto-detects provider from env
    response = await client.call(prompt="Three concepts for a harbor at dawn", role="ideator")
    print(response.content)
"""

from .client import (
    CacheablePrompt,
    LLMClient,
    LLMResponse,
    TextGenerator,
    TokenUsage,
    create_client,
)
from .json_parser import extract_json, extract_rating, parse_labeled_fields, parse_list_items
