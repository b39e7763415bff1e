"""
Pytest configuration and fixtures

Tests run against a throwaway SQLite file. Tables are created once per session
and every row is cleared before each test; zone defaults are re-seeded so the
merger always has its reference rows.
"""
import json
import os
import sys
import tempfile
from datetime import datetime
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

# Must be set before coachmap.db builds its engine.
_DB_DIR = tempfile.mkdtemp(prefix="coachmap-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'test.db')}"
os.environ.setdefault("OPENAI_API_KEY", "test-key")
os.environ["COACHMAP_DISABLE_AUTO_SEED"] = "1"

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from coachmap.db import SessionLocal, engine  # noqa: E402
from coachmap.models import (  # noqa: E402
    Base,
    CoachingEngagement,
    MoreLessMarker,
    Snapshot,
)
from coachmap.seed import upsert_zone_defaults  # noqa: E402


VALID_INSIGHTS = {
    "superpowers_claimed": [
        {
            "superpower": "Steady under pressure",
            "description": "Keeps the room calm when plans change.",
            "evidence": ["Named the trade-off in planning"],
            "fires_element": "Resilience",
        },
        {
            "superpower": "Listening first",
            "description": "Rebuilt a team by asking before telling.",
            "evidence": ["Turned around the support team"],
            "fires_element": "influence",
        },
    ],
    "superpowers_emerging": [
        {"superpower": "Speaking up early", "description": "Starting to share a view first.", "evidence": [], "fires_element": "influence"},
    ],
    "superpowers_hidden": [
        {"superpower": "Values clarity", "description": "Decisions line up with ethics.", "evidence": ["Integrity line"], "fires_element": "ethics"},
    ],
    "zone_interpretation": {"zone": "discovering", "custom_note": "The evidence is there; confidence is catching up."},
    "world_asking": [
        {"insight": "The team is asking for your view before the decision, not after.", "fires_element": "influence"},
    ],
    "suggested_weekly_actions": [
        {"action": "Open one meeting by stating your position.", "fires_element": "influence"},
    ],
    "suggested_anchor_quote": "I already know what I think.",
}


@pytest.fixture(scope="session", autouse=True)
def _schema():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(autouse=True)
def _clean_tables():
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    with SessionLocal() as s:
        upsert_zone_defaults(s)
        s.commit()
    yield


@pytest.fixture
def session_factory():
    return SessionLocal


@pytest.fixture
def db_session():
    s = SessionLocal()
    try:
        yield s
    finally:
        s.close()


def fake_llm(content=None, *, error=None):
    """Chat-model double: .invoke(messages) returns an object with .content, or raises."""
    llm = MagicMock()
    llm.model_name = "fake-model"
    if error is not None:
        llm.invoke.side_effect = error
    else:
        text = content if isinstance(content, str) else json.dumps(content if content is not None else VALID_INSIGHTS)
        llm.invoke.return_value = SimpleNamespace(content=text, usage_metadata={"input_tokens": 1200, "output_tokens": 300})
    return llm


@pytest.fixture
def make_llm():
    return fake_llm


@pytest.fixture
def make_engagement(db_session):
    def _make(client_email="a@x.com", **fields):
        defaults = dict(
            status="active",
            current_phase="validate",
            current_week=5,
            primary_arena="Work",
            story_present="Leading a reorganisation.",
        )
        defaults.update(fields)
        eng = CoachingEngagement(client_email=client_email, **defaults)
        db_session.add(eng)
        db_session.commit()
        db_session.refresh(eng)
        return eng
    return _make


@pytest.fixture
def scenario_a(db_session, make_engagement):
    """One active engagement at week 5 (validate), two markers, one discovering snapshot."""
    eng = make_engagement("a@x.com")
    db_session.add_all([
        MoreLessMarker(client_email="a@x.com", marker_type="more", marker_text="Sharing my view first",
                       baseline_score=3, current_score=5, target_score=9, fires_connection="influence"),
        MoreLessMarker(client_email="a@x.com", marker_type="less", marker_text="Replaying conversations",
                       baseline_score=7, current_score=4, target_score=1, fires_connection="feelings"),
        Snapshot(client_email="a@x.com", goal="Lead with confidence", overall_zone="discovering",
                 total_confidence=2.8, total_alignment=4.1, created_at=datetime(2026, 9, 1, 9, 0)),
    ])
    db_session.commit()
    return eng
