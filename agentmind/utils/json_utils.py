"""
JSON utilities for cleaning LLM responses and serializing record payloads.
"""

import json
from typing import Any


def clean_json_response(response: str) -> str:
    """Clean LLM response by removing code block markers.

    Args:
        response: Raw LLM response

    Returns:
        Cleaned JSON string
    """
    response = response.strip()

    # Remove ```json and ``` markers
    if response.startswith('```json'):
        response = response[7:]
    elif response.startswith('```'):
        response = response[3:]

    if response.endswith('```'):
        response = response[:-3]

    return response.strip()


def parse_json_object(response: str) -> dict:
    """Parse an LLM reply into a JSON object.

    Falls back to the outermost brace-delimited span when the model wrapped
    the object in prose.

    Raises:
        json.JSONDecodeError: If no object can be decoded
    """
    cleaned = clean_json_response(response)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        start, end = cleaned.find('{'), cleaned.rfind('}')
        if start == -1 or end <= start:
            raise
        parsed = json.loads(cleaned[start:end + 1])
    if not isinstance(parsed, dict):
        raise json.JSONDecodeError('Expected a JSON object', cleaned, 0)
    return parsed


def dumps_content(content: Any) -> str:
    """Serialize record content for keyword matching (stable key order)."""
    return json.dumps(content, sort_keys=True, default=str, ensure_ascii=False)
