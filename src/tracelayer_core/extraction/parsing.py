"""Tolerant JSON parsing of model output."""
import json
import re
from typing import Any

FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
JSON_SPAN = re.compile(r"(\{[\s\S]*\}|\[[\s\S]*\])")


class ExtractionParseError(ValueError):
    """Raised when a model response contains no parseable JSON."""

    def __init__(self, text: str):
        super().__init__(f"Failed to parse AI response as JSON: {text[:200]}")
        self.text = text


def safe_json_parse(text: str) -> Any:
    """
    Parse JSON from a model response.

    Tries, in order: the whole text, the first fenced ```json block, and the
    outermost {...} or [...] span.

    Raises:
        ExtractionParseError: If none of the candidates parse
    """
    try:
        return json.loads(text)
    except (TypeError, ValueError):
        pass

    text = text or ""
    for pattern in (FENCED_BLOCK, JSON_SPAN):
        match = pattern.search(text)
        if match:
            try:
                return json.loads(match.group(1).strip())
            except ValueError:
                continue

    raise ExtractionParseError(text)


def parse_object(text: str) -> dict:
    """Parse a response that must be a JSON object."""
    data = safe_json_parse(text)
    if not isinstance(data, dict):
        raise ExtractionParseError(text)
    return data
