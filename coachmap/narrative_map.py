"""
Narrative Integrity Map pipeline: aggregate -> generate -> merge.

Every failure surfaces as a NarrativeMapError subclass; nothing is stored
unless generation succeeded, and nothing is retried.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import sessionmaker

from .context import build_client_context
from .db import SessionLocal
from .errors import InputError, NotFoundError
from .generator import TOUCHPOINT, GenerationUsage, generate_insights
from .merger import merge_insights, persist_merge
from .models import CoachingEngagement, NarrativeMapHistory
from .records import (
    decode_superpowers,
    decode_weekly_actions,
    decode_world_asking,
    decode_zone_interpretation,
)
from .usage import log_usage_event

SUCCESS_MESSAGE = "Narrative Integrity Map generated successfully"
MISSING_EMAIL_MESSAGE = "Client email is required"


@dataclass
class NarrativeMapResult:
    engagement_id: str
    insights: Dict[str, Any]
    message: str = SUCCESS_MESSAGE

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "engagement_id": self.engagement_id,
            "insights": self.insights,
            "message": self.message,
        }


def _record_usage(usage: GenerationUsage, *, ref: str, session_factory: sessionmaker) -> None:
    # Only called once the map is stored; a failed run leaves no rows behind.
    log_usage_event(
        provider=usage.provider,
        product="llm",
        model=usage.model,
        tokens_in=usage.tokens_in,
        tokens_out=usage.tokens_out,
        duration_ms=usage.duration_ms,
        tag=TOUCHPOINT,
        ref=ref,
        meta={"estimated": usage.estimated, "prompt_chars": usage.prompt_chars},
        session_factory=session_factory,
    )


def generate_narrative_map(
    client_email: Optional[str],
    engagement_id: Optional[str] = None,
    *,
    llm=None,
    session_factory: Optional[sessionmaker] = None,
    now: Optional[datetime] = None,
    strict_versioning: Optional[bool] = None,
) -> NarrativeMapResult:
    email = (client_email or "").strip()
    if not email:
        raise InputError(MISSING_EMAIL_MESSAGE)
    factory = session_factory or SessionLocal

    ctx = build_client_context(email, (engagement_id or "").strip() or None, session_factory=factory)
    print(f"[narrative-map] generating engagement={ctx.engagement_id} version={ctx.version_read} chars={len(ctx.document)}")

    generated = generate_insights(ctx.document, llm=llm, ref=ctx.engagement_id)
    insights = generated.insights

    payload = merge_insights(
        insights,
        engagement=ctx.engagement,
        zone_defaults=ctx.zone_defaults,
        latest_snapshot_zone=ctx.latest_snapshot_zone,
        now=now,
    )
    persist_merge(
        ctx.engagement_id,
        payload,
        expected_version=ctx.version_read,
        session_factory=factory,
        strict=strict_versioning,
    )
    print(f"[narrative-map] stored engagement={ctx.engagement_id} version={payload['ai_insights_version']}")
    _record_usage(generated.usage, ref=ctx.engagement_id, session_factory=factory)
    return NarrativeMapResult(engagement_id=ctx.engagement_id, insights=payload)


# ──────────────────────────────────────────────────────────────────────────────
# Read side (stored map + audit trail)
# ──────────────────────────────────────────────────────────────────────────────

def _asdicts(items) -> List[dict]:
    return [asdict(item) for item in items]


def get_stored_map(engagement_id: str, *, session_factory: Optional[sessionmaker] = None) -> Dict[str, Any]:
    """Current insight fields of an engagement, decoded and validated on read."""
    factory = session_factory or SessionLocal
    with factory() as s:
        eng = s.get(CoachingEngagement, engagement_id)
        if eng is None:
            raise NotFoundError("Engagement not found")
        zone = decode_zone_interpretation(eng.zone_interpretation)
        return {
            "engagement_id": eng.id,
            "client_email": eng.client_email,
            "superpowers_claimed": _asdicts(decode_superpowers(eng.superpowers_claimed)),
            "superpowers_emerging": _asdicts(decode_superpowers(eng.superpowers_emerging)),
            "superpowers_hidden": _asdicts(decode_superpowers(eng.superpowers_hidden)),
            "zone_interpretation": asdict(zone) if zone else None,
            "world_asking": _asdicts(decode_world_asking(eng.world_asking)),
            "weekly_actions": _asdicts(decode_weekly_actions(eng.weekly_actions)),
            "anchor_quote": eng.anchor_quote,
            "ai_insights_generated_at": eng.ai_insights_generated_at.isoformat() if eng.ai_insights_generated_at else None,
            "ai_insights_version": int(eng.ai_insights_version or 0),
        }


def list_history(
    engagement_id: str,
    *,
    limit: int = 50,
    session_factory: Optional[sessionmaker] = None,
) -> List[Dict[str, Any]]:
    factory = session_factory or SessionLocal
    with factory() as s:
        rows = (
            s.query(NarrativeMapHistory)
            .filter(NarrativeMapHistory.engagement_id == engagement_id)
            .order_by(NarrativeMapHistory.created_at.desc(), NarrativeMapHistory.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": r.id,
                "engagement_id": r.engagement_id,
                "field_name": r.field_name,
                "old_value": r.old_value,
                "new_value": r.new_value,
                "changed_by": r.changed_by,
                "created_at": r.created_at.isoformat() if r.created_at else None,
            }
            for r in rows
        ]
