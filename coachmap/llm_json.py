"""
Text preprocessing for model output that should be JSON.

Fence stripping and parsing are kept apart so each can be tested alone;
schema checks live in coachmap.schemas.
"""
from __future__ import annotations

import json
import re
from typing import Any

_JSON_FENCE = re.compile(r"```json\s*(.*?)\s*```", re.S | re.I)
_ANY_FENCE = re.compile(r"```\s*(.*?)\s*```", re.S)


def strip_code_fence(raw: str | None) -> str:
    """Return the body of the first ```json (or bare ```) fence, else the trimmed text."""
    text = (raw or "").strip()
    m = _JSON_FENCE.search(text) or _ANY_FENCE.search(text)
    return m.group(1).strip() if m else text


def parse_json_object(raw: str | None) -> dict[str, Any]:
    """Parse a single top-level JSON object, unwrapping a code fence if needed.

    The trimmed text is tried as-is first, so backticks inside string values
    of a bare object are left alone. Raises ValueError on empty input,
    invalid JSON, or a non-object document.
    """
    text = (raw or "").strip()
    if not text:
        raise ValueError("empty response")
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        body = strip_code_fence(text)
        if not body:
            raise ValueError("empty response")
        data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data
