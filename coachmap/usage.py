from __future__ import annotations

import math
from typing import Any

from sqlalchemy.orm import Session, sessionmaker

from .db import SessionLocal
from .models import UsageEvent


def estimate_tokens(text: str | None) -> int:
    if not text:
        return 0
    return max(1, int(math.ceil(len(text) / 4)))


def usage_from_response(response: Any, prompt_text: str, output_text: str) -> tuple[int, int, bool]:
    """(tokens_in, tokens_out, estimated) from a LangChain message, falling back to a length estimate."""
    meta = getattr(response, "usage_metadata", None)
    if isinstance(meta, dict):
        tin = meta.get("input_tokens")
        tout = meta.get("output_tokens")
        if isinstance(tin, int) and isinstance(tout, int):
            return tin, tout, False
    return estimate_tokens(prompt_text), estimate_tokens(output_text), True


def _log_usage_event_with_session(
    s: Session,
    *,
    provider: str,
    product: str,
    model: str | None,
    tokens_in: int | None,
    tokens_out: int | None,
    duration_ms: int | None = None,
    tag: str | None = None,
    ref: str | None = None,
    meta: dict | None = None,
) -> None:
    row = UsageEvent(
        provider=provider,
        product=product,
        model=model,
        tokens_in=tokens_in,
        tokens_out=tokens_out,
        duration_ms=duration_ms,
        tag=tag,
        ref=ref,
        meta=meta,
    )
    s.add(row)


def log_usage_event(
    *,
    provider: str,
    product: str,
    model: str | None,
    tokens_in: int | None,
    tokens_out: int | None,
    duration_ms: int | None = None,
    tag: str | None = None,
    ref: str | None = None,
    meta: dict | None = None,
    session_factory: sessionmaker | None = None,
) -> None:
    """Record one outbound call. Usage logging never fails the caller."""
    factory = session_factory or SessionLocal
    try:
        with factory() as s:
            _log_usage_event_with_session(
                s,
                provider=provider,
                product=product,
                model=model,
                tokens_in=tokens_in,
                tokens_out=tokens_out,
                duration_ms=duration_ms,
                tag=tag,
                ref=ref,
                meta=meta,
            )
            s.commit()
    except Exception as e:
        print(f"[usage] log failed: {e}")
