# ==============================================================================
# coachmap/merger.py
# ------------------------------------------------------------------------------
# PURPOSE:
#   Turn validated generator output into the engagement's stored insight
#   fields, then persist:
#     - superpowers / world_asking items get provenance (source, created_at)
#     - zone_interpretation = zone default overlaid with the generated note
#     - suggested weekly actions become active weekly_actions for today
#     - ai_insights_version = version read at aggregation + 1
#   One engagement UPDATE, then one narrative_map_history INSERT.
#
# VERSIONING:
#   With strict versioning the UPDATE is conditional on the version we read,
#   so a concurrent generation for the same engagement fails with a 409
#   instead of silently overwriting the other run.
# ==============================================================================

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .config import settings
from .db import SessionLocal
from .debug_utils import debug_log
from .errors import PersistenceError, VersionConflictError
from .models import (
    CoachingEngagement,
    NarrativeMapHistory,
    ZoneDefault,
    DEFAULT_ZONE,
)
from .schemas import GeneratedInsights, GeneratedSuperpower, GeneratedWorldAsking

AI_SOURCE = "ai"
HISTORY_FIELD = "ai_generation"

# Stored insight columns written by a generation (payload keys that map 1:1 to columns).
INSIGHT_COLUMNS = (
    "superpowers_claimed",
    "superpowers_emerging",
    "superpowers_hidden",
    "zone_interpretation",
    "world_asking",
    "weekly_actions",
    "anchor_quote",
)


def resolve_zone(latest_snapshot_zone: Optional[str], stored_zone: Optional[str]) -> str:
    """Most recent snapshot zone, else the engagement's stored zone, else the default."""
    for candidate in (latest_snapshot_zone, stored_zone):
        zone = (candidate or "").strip().lower()
        if zone:
            return zone
    return DEFAULT_ZONE


def find_zone_default(zone: str, zone_defaults: Iterable[ZoneDefault]) -> Optional[ZoneDefault]:
    for row in zone_defaults:
        if (row.zone_name or "").strip().lower() == zone:
            return row
    return None


def _with_provenance(items: List[GeneratedSuperpower] | List[GeneratedWorldAsking], stamp: str) -> List[dict]:
    return [{**item.model_dump(), "source": AI_SOURCE, "created_at": stamp} for item in items]


def merge_insights(
    insights: GeneratedInsights,
    *,
    engagement: CoachingEngagement,
    zone_defaults: Iterable[ZoneDefault],
    latest_snapshot_zone: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Build the full merged payload (JSON-safe) for one engagement."""
    now = now or datetime.now(timezone.utc)
    stamp = now.isoformat()
    today = now.date().isoformat()

    zone = resolve_zone(latest_snapshot_zone, engagement.current_zone)
    default = find_zone_default(zone, zone_defaults)
    zone_interpretation = {
        "zone": zone,
        "headline": (default.headline if default else None) or "",
        "description": (default.description if default else None) or "",
        "the_work": (default.the_work if default else None) or "",
        "custom_note": insights.zone_interpretation.custom_note or "",
        "source": AI_SOURCE,
        "updated_at": stamp,
    }

    weekly_actions = [
        {**a.model_dump(), "assigned_date": today, "status": "active"}
        for a in insights.suggested_weekly_actions
    ]

    return {
        "superpowers_claimed": _with_provenance(insights.superpowers_claimed, stamp),
        "superpowers_emerging": _with_provenance(insights.superpowers_emerging, stamp),
        "superpowers_hidden": _with_provenance(insights.superpowers_hidden, stamp),
        "zone_interpretation": zone_interpretation,
        "world_asking": _with_provenance(insights.world_asking, stamp),
        "weekly_actions": weekly_actions,
        "anchor_quote": insights.suggested_anchor_quote or None,
        "ai_insights_generated_at": stamp,
        "ai_insights_version": int(engagement.ai_insights_version or 0) + 1,
        "updated_at": stamp,
    }


def _naive_utc(iso: str) -> datetime:
    dt = datetime.fromisoformat(iso)
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def persist_merge(
    engagement_id: str,
    payload: Dict[str, Any],
    *,
    expected_version: int,
    session_factory: Optional[sessionmaker] = None,
    strict: Optional[bool] = None,
) -> None:
    """Write the merged payload to the engagement, then append the history row.

    The history row is only written once the update has committed. A failed
    history insert is reported but the committed update stays in place.
    """
    factory = session_factory or SessionLocal
    strict = settings.NARRATIVE_MAP_STRICT_VERSIONING if strict is None else strict

    values = {col: payload[col] for col in INSIGHT_COLUMNS}
    values["ai_insights_version"] = payload["ai_insights_version"]
    values["ai_insights_generated_at"] = _naive_utc(payload["ai_insights_generated_at"])
    values["updated_at"] = _naive_utc(payload["updated_at"])

    with factory() as s:
        stmt = update(CoachingEngagement).where(CoachingEngagement.id == engagement_id)
        if strict:
            stmt = stmt.where(func.coalesce(CoachingEngagement.ai_insights_version, 0) == expected_version)
        try:
            result = s.execute(stmt.values(**values).execution_options(synchronize_session=False))
            if result.rowcount == 0:
                s.rollback()
                current = s.get(CoachingEngagement, engagement_id)
                if current is None:
                    raise PersistenceError(f"Failed to update engagement: {engagement_id} no longer exists")
                raise VersionConflictError(
                    f"Engagement {engagement_id} was updated by another generation "
                    f"(stored version {current.ai_insights_version}, expected {expected_version})"
                )
            s.commit()
        except SQLAlchemyError as e:
            s.rollback()
            raise PersistenceError(f"Failed to update engagement: {e}") from e

        debug_log(
            "engagement updated",
            {"engagement_id": engagement_id, "version": payload["ai_insights_version"], "strict": strict},
            tag="narrative-map",
        )

        try:
            s.add(NarrativeMapHistory(
                engagement_id=engagement_id,
                field_name=HISTORY_FIELD,
                old_value=None,
                new_value=payload,
                changed_by=AI_SOURCE,
            ))
            s.commit()
        except SQLAlchemyError as e:
            s.rollback()
            print(f"[narrative-map] history insert failed after update engagement={engagement_id} err={e}")
            raise PersistenceError(f"Failed to record narrative map history: {e}") from e
