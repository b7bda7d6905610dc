"""JSON parsing helpers.

Models sometimes wrap JSON in prose or markdown fences, or emit partial
JSON. These helpers extract the first top-level JSON value and parse it
safely.
"""

from __future__ import annotations

import json
import re
from typing import Any, Optional

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_CLOSERS = {"{": "}", "[": "]"}


def extract_first_json(text: str, openers: str = "{[") -> str:
    """Return the first balanced JSON object or array found in the text.

    Only the bracket kinds listed in ``openers`` are considered. Brackets
    inside string literals are ignored. If nothing can be extracted, the
    original text is returned.
    """
    if not text:
        return ""

    positions = [p for p in (text.find(o) for o in openers) if p >= 0]
    if not positions:
        return text
    start = min(positions)
    opener = text[start]
    closer = _CLOSERS[opener]

    depth = 0
    in_string = False
    escape_next = False
    for i, char in enumerate(text[start:], start):
        if escape_next:
            escape_next = False
            continue
        if char == "\\":
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            continue
        if in_string:
            continue
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return text[start : i + 1]

    # Unbalanced JSON; return original for best-effort debugging.
    return text


def extract_first_json_object(text: str) -> str:
    return extract_first_json(text, openers="{")


def parse_json_value(text: str) -> Optional[Any]:
    """Parse a JSON object or array from a model response.

    Strategy:
    1) Try full parse.
    2) Try the body of a markdown code fence.
    3) Extract the first balanced object/array and parse that.
    Returns None when every strategy fails.
    """
    if not text or not text.strip():
        return None

    candidates = [text]
    fence = _FENCE_RE.search(text)
    if fence:
        candidates.append(fence.group(1))
    candidates.append(extract_first_json(text))

    for candidate in candidates:
        try:
            return json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
    return None


def safe_parse_json(text: str) -> dict[str, Any]:
    """Parse a JSON object from a model response, returning {} on failure."""
    data = parse_json_value(text)
    if isinstance(data, dict):
        return data

    extracted = extract_first_json_object(text)
    try:
        data = json.loads(extracted)
    except (json.JSONDecodeError, TypeError):
        return {}
    return data if isinstance(data, dict) else {}
