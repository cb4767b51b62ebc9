"""
Conversion between named fields and the text a model reads or writes.

Two representations are supported: ``key: value`` lines in the fixed order
of :data:`PREDEFINED_KEYS`, and a JSON object. Parsing never raises; a field
the model did not write is simply missing from the result.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Mapping, Optional, Sequence

from .prompt_texts import PREDEFINED_KEYS

logger = logging.getLogger(__name__)

FALLBACK_TOPIC_LINE = "topic: general knowledge."

# Suffixes tried in order when a JSON completion was cut off mid-object.
_JSON_REPAIRS = ("", "}", '"}')


def un_json(text: str) -> Optional[Dict[str, Any]]:
    """Parse ``text`` as a JSON object, repairing a missing ``}`` or ``"}``."""
    for suffix in _JSON_REPAIRS:
        try:
            data = json.loads(text + suffix)
        except json.JSONDecodeError:
            continue
        if isinstance(data, dict):
            return data
    return None


def deconstruct(text: str, markers: Sequence[str] = PREDEFINED_KEYS) -> Dict[str, str]:
    """
    Split ``key: value`` text into fields, scanning from the right.

    The last marker is the anchor: its value is everything after its final
    occurrence. Every other marker is then searched, in reverse order, only
    in the text preceding the fields already found, and its value runs to
    the end of that line.
    """
    anchor = markers[-1]
    start = text.rfind(anchor + ":")
    if start < 0:
        return {}

    parts: Dict[str, str] = {anchor: text[start + len(anchor) + 1:].strip()}
    remaining = text[:start]
    for marker in reversed(markers[:-1]):
        pos = remaining.rfind(marker + ":")
        if pos < 0:
            continue
        value = remaining[pos + len(marker) + 1:].strip()
        parts[marker] = value.split("\n", 1)[0].strip()
        remaining = remaining[:pos]
    return parts


def breakdown(hint: str, completion: str) -> Dict[str, str]:
    """
    Recover the named fields from a completion.

    ``hint`` is the partial assistant message the model was asked to
    continue; it is glued back in front of the completion before parsing.
    """
    text = hint + completion
    candidate = text.lstrip()
    if candidate.startswith("{"):
        parsed = un_json(candidate)
        if parsed is not None:
            return {key: _as_text(value) for key, value in parsed.items()}
        logger.debug("Failed to parse JSON: %s", text.replace("\n", ""))

    result = deconstruct(text)
    if not result.get("topic"):
        result = deconstruct(text + "\n" + FALLBACK_TOPIC_LINE)
    return result


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    return json.dumps(value)


class StructuredCodec:
    """Renders fields for prompts in either line or JSON form."""

    def __init__(self, *, json_schema: bool = False) -> None:
        self.json_schema = json_schema

    def construct(self, fields: Mapping[str, Any]) -> str:
        if self.json_schema:
            return json.dumps(dict(fields), indent=2)
        lines = []
        for key in PREDEFINED_KEYS:
            value = fields.get(key)
            if value:
                lines.append(f"{key}: {value}")
        return "\n".join(lines)

    def breakdown(self, hint: str, completion: str) -> Dict[str, str]:
        return breakdown(hint, completion)

    def structure(self, prefix: str, fields: Mapping[str, Any]) -> str:
        """Render a titled block of fields for a system prompt."""
        if self.json_schema:
            title = f"{prefix} (JSON with this schema)" if prefix else ""
            return title + "\n" + json.dumps(dict(fields), indent=2) + "\n"
        return (prefix or "") + "\n\n" + self.construct(fields) + "\n"


__all__ = [
    "FALLBACK_TOPIC_LINE",
    "StructuredCodec",
    "breakdown",
    "deconstruct",
    "un_json",
]
