from datetime import datetime, timezone

import pytest
from sqlalchemy.exc import SQLAlchemyError

from coachmap import merger
from coachmap.errors import PersistenceError, VersionConflictError
from coachmap.merger import merge_insights, persist_merge, resolve_zone
from coachmap.models import CoachingEngagement, NarrativeMapHistory, ZoneDefault
from coachmap.schemas import validate_insights

from conftest import VALID_INSIGHTS

NOW = datetime(2026, 10, 5, 8, 30, tzinfo=timezone.utc)


def _zone_defaults(session_factory):
    with session_factory() as s:
        return s.query(ZoneDefault).all()


def test_resolve_zone_prefers_latest_snapshot():
    assert resolve_zone("Discovering", "owning") == "discovering"
    assert resolve_zone(None, "owning") == "owning"
    assert resolve_zone("", None) == "exploring"


def test_merge_overlays_zone_default_and_tags_provenance(make_engagement, session_factory):
    eng = make_engagement("a@x.com", current_zone="owning")
    payload = merge_insights(
        validate_insights(VALID_INSIGHTS),
        engagement=eng,
        zone_defaults=_zone_defaults(session_factory),
        latest_snapshot_zone="discovering",
        now=NOW,
    )

    zone = payload["zone_interpretation"]
    assert zone["zone"] == "discovering"
    assert zone["headline"] == "Bring your past wins forward"
    assert zone["custom_note"] == "The evidence is there; confidence is catching up."
    assert zone["source"] == "ai"

    for item in payload["superpowers_claimed"] + payload["world_asking"]:
        assert item["source"] == "ai"
        assert item["created_at"] == NOW.isoformat()

    assert payload["weekly_actions"] == [{
        "fires_element": "influence",
        "action": "Open one meeting by stating your position.",
        "assigned_date": "2026-10-05",
        "status": "active",
    }]
    assert payload["anchor_quote"] == "I already know what I think."
    assert payload["ai_insights_version"] == 1


def test_merge_without_matching_zone_default_keeps_blank_copy(make_engagement):
    eng = make_engagement("a@x.com")
    payload = merge_insights(validate_insights(VALID_INSIGHTS), engagement=eng, zone_defaults=[], now=NOW)
    assert payload["zone_interpretation"]["zone"] == "exploring"
    assert payload["zone_interpretation"]["headline"] == ""


def test_persist_updates_engagement_then_appends_history(make_engagement, session_factory):
    eng = make_engagement("a@x.com", ai_insights_version=3)
    payload = merge_insights(validate_insights(VALID_INSIGHTS), engagement=eng, zone_defaults=[], now=NOW)
    persist_merge(eng.id, payload, expected_version=3, session_factory=session_factory, strict=True)

    with session_factory() as s:
        stored = s.get(CoachingEngagement, eng.id)
        assert stored.ai_insights_version == 4
        assert stored.superpowers_claimed[0]["superpower"] == "Steady under pressure"
        assert stored.ai_insights_generated_at == datetime(2026, 10, 5, 8, 30)
        rows = s.query(NarrativeMapHistory).filter(NarrativeMapHistory.engagement_id == eng.id).all()
        assert len(rows) == 1
        assert rows[0].changed_by == "ai"
        assert rows[0].field_name == "ai_generation"
        assert rows[0].new_value["ai_insights_version"] == 4


def test_concurrent_bump_is_a_version_conflict(make_engagement, session_factory):
    eng = make_engagement("a@x.com")
    payload = merge_insights(validate_insights(VALID_INSIGHTS), engagement=eng, zone_defaults=[], now=NOW)

    # Another generation lands first.
    with session_factory() as s:
        s.get(CoachingEngagement, eng.id).ai_insights_version = 1
        s.commit()

    with pytest.raises(VersionConflictError) as exc:
        persist_merge(eng.id, payload, expected_version=0, session_factory=session_factory, strict=True)
    assert exc.value.status_code == 409

    with session_factory() as s:
        assert s.get(CoachingEngagement, eng.id).superpowers_claimed is None
        assert s.query(NarrativeMapHistory).count() == 0


def test_last_writer_wins_when_not_strict(make_engagement, session_factory):
    eng = make_engagement("a@x.com")
    payload = merge_insights(validate_insights(VALID_INSIGHTS), engagement=eng, zone_defaults=[], now=NOW)
    with session_factory() as s:
        s.get(CoachingEngagement, eng.id).ai_insights_version = 1
        s.commit()

    persist_merge(eng.id, payload, expected_version=0, session_factory=session_factory, strict=False)
    with session_factory() as s:
        assert s.get(CoachingEngagement, eng.id).ai_insights_version == 1
        assert s.query(NarrativeMapHistory).count() == 1


def test_missing_engagement_is_a_persistence_error(session_factory):
    payload = merge_insights(
        validate_insights(VALID_INSIGHTS),
        engagement=CoachingEngagement(client_email="gone@x.com", ai_insights_version=0),
        zone_defaults=[],
        now=NOW,
    )
    with pytest.raises(PersistenceError) as exc:
        persist_merge("does-not-exist", payload, expected_version=0, session_factory=session_factory, strict=True)
    assert not isinstance(exc.value, VersionConflictError)


def test_failed_history_insert_leaves_committed_update(make_engagement, session_factory, monkeypatch):
    eng = make_engagement("a@x.com")
    payload = merge_insights(validate_insights(VALID_INSIGHTS), engagement=eng, zone_defaults=[], now=NOW)

    def _boom(**kwargs):
        raise SQLAlchemyError("history table unavailable")

    monkeypatch.setattr(merger, "NarrativeMapHistory", _boom)
    with pytest.raises(PersistenceError) as exc:
        persist_merge(eng.id, payload, expected_version=0, session_factory=session_factory, strict=True)
    assert "history" in exc.value.message

    with session_factory() as s:
        assert s.get(CoachingEngagement, eng.id).ai_insights_version == 1
