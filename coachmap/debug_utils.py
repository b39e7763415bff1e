# coachmap/debug_utils.py
# Verbose payload logging for the narrative map pipeline, off unless COACHMAP_DEBUG is set.
import json
import os
from typing import Any, Optional

from .config import settings

PAYLOAD_PREVIEW_CHARS = 2000


def _truthy(value: Optional[str]) -> bool:
    if value is None:
        return False
    return value.strip().lower() in {"1", "true", "yes", "on"}


def debug_enabled() -> bool:
    env = os.getenv("COACHMAP_DEBUG")
    if env is not None:
        return _truthy(env)
    return bool(settings.COACHMAP_DEBUG)


def preview(text: Optional[str], limit: int = 240) -> str:
    """Single-line preview of a long string for log output."""
    if not text:
        return ""
    flat = str(text).replace("\n", " ")
    return flat if len(flat) <= limit else flat[:limit] + "…"


def _dump(payload: dict[str, Any]) -> str:
    try:
        text = json.dumps(payload, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        text = repr(payload)
    return preview(text, PAYLOAD_PREVIEW_CHARS)


def debug_log(message: str, payload: Optional[dict[str, Any]] = None, tag: str = "debug") -> None:
    """Print `[tag] message :: {payload}` when debug logging is on."""
    if not debug_enabled():
        return
    if payload is None:
        print(f"[{tag}] {message}")
    else:
        print(f"[{tag}] {message} :: {_dump(payload)}")
