"""
Insight generation: one LLM call over the aggregated context, parsed into the
GeneratedInsights contract. Touches no persistent state; the call's usage
figures travel back with the insights so the caller can record them once the
map is stored.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Optional

from .debug_utils import debug_log, preview
from .errors import GenerationFailedError, UpstreamError
from .llm import LLM_PROVIDER, get_llm_client, model_name_of
from .llm_json import parse_json_object
from .prompts import NARRATIVE_MAP_SYSTEM, narrative_map_user_prompt
from .schemas import GeneratedInsights, validate_insights
from .usage import usage_from_response

TOUCHPOINT = "narrative_map"
PARSE_ERROR_MESSAGE = "Failed to parse AI response as JSON"


@dataclass(frozen=True)
class GenerationUsage:
    provider: str
    model: Optional[str]
    tokens_in: int
    tokens_out: int
    duration_ms: int
    estimated: bool
    prompt_chars: int


@dataclass(frozen=True)
class GenerationResult:
    insights: GeneratedInsights
    usage: GenerationUsage


def _content_text(response: Any) -> str:
    """Text of a chat response; handles plain strings and content-block lists."""
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for block in content:
            if isinstance(block, str):
                parts.append(block)
            elif isinstance(block, dict) and block.get("type", "text") == "text":
                parts.append(str(block.get("text") or ""))
        return "".join(parts)
    return "" if content is None else str(content)


def generate_insights(document: str, *, llm=None, ref: Optional[str] = None) -> GenerationResult:
    """Ask the model for a Narrative Integrity Map and validate the answer.

    Raises GenerationFailedError when the call fails, the text is not a JSON
    object, or nothing usable survives validation. Nothing is retried.
    """
    client = llm or get_llm_client()
    user_prompt = narrative_map_user_prompt(document)
    messages = [("system", NARRATIVE_MAP_SYSTEM), ("human", user_prompt)]

    started = time.perf_counter()
    try:
        response = client.invoke(messages)
    except UpstreamError:
        raise
    except Exception as e:
        print(f"[narrative-map][LLM] call_error ref={ref} err={e}")
        raise GenerationFailedError(f"Text generation failed: {e}") from e
    duration_ms = int((time.perf_counter() - started) * 1000)

    raw = _content_text(response)
    tokens_in, tokens_out, estimated = usage_from_response(response, NARRATIVE_MAP_SYSTEM + user_prompt, raw)
    usage = GenerationUsage(
        provider=LLM_PROVIDER,
        model=model_name_of(client),
        tokens_in=tokens_in,
        tokens_out=tokens_out,
        duration_ms=duration_ms,
        estimated=estimated,
        prompt_chars=len(user_prompt),
    )

    try:
        data = parse_json_object(raw)
    except ValueError as e:
        print(f"[narrative-map][LLM] parse_error ref={ref} err={e} raw_preview=\"{preview(raw)}\"")
        raise GenerationFailedError(PARSE_ERROR_MESSAGE) from e

    insights = validate_insights(data)
    if insights.is_empty():
        print(f"[narrative-map][LLM] empty_payload ref={ref} raw_preview=\"{preview(raw)}\"")
        raise GenerationFailedError("AI response contained no usable insights")

    debug_log(
        "insights parsed",
        {
            "ref": ref,
            "claimed": len(insights.superpowers_claimed),
            "emerging": len(insights.superpowers_emerging),
            "hidden": len(insights.superpowers_hidden),
            "world_asking": len(insights.world_asking),
            "weekly_actions": len(insights.suggested_weekly_actions),
            "duration_ms": duration_ms,
        },
        tag="narrative-map",
    )
    return GenerationResult(insights=insights, usage=usage)
