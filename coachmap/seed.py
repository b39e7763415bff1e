# coachmap/seed.py
# • Seeds the four FIRES zone defaults (zone_defaults).
# • Optionally seeds a demo client with one active engagement and a little evidence.

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict

from sqlalchemy.orm import Session

from .db import SessionLocal
from .models import (
    Client,
    CoachingEngagement,
    CoachingNote,
    ImpactVerification,
    MoreLessMarker,
    SessionTranscript,
    Snapshot,
    ZoneDefault,
)

ZONE_DEFAULTS: Dict[str, Dict[str, str]] = {
    "exploring": {
        "headline": "Stay curious and refine your direction",
        "description": "Confidence and alignment are both still forming. You are testing what matters and what you can do.",
        "the_work": "Notice what energises you, name one small experiment a week, and keep refining the story you want to live.",
    },
    "discovering": {
        "headline": "Bring your past wins forward",
        "description": "Your direction fits who you are, but your confidence hasn't caught up yet.",
        "the_work": "Collect evidence of what you've already done well and use it to back the next step you take.",
    },
    "performing": {
        "headline": "Reconnect to your identity",
        "description": "You are capable and delivering, but the work has drifted from what matters most to you.",
        "the_work": "Check your goals against your values and re-anchor the effort in the story you actually want to tell.",
    },
    "owning": {
        "headline": "Extend your influence to others",
        "description": "High confidence and high alignment: you know your story and you live it.",
        "the_work": "Use what you've built to help others clarify and act on their own stories.",
    },
}

DEMO_CLIENT_EMAIL = "demo.client@example.com"


def upsert_zone_defaults(session: Session) -> int:
    n = 0
    for zone_name, fields in ZONE_DEFAULTS.items():
        row = session.query(ZoneDefault).filter(ZoneDefault.zone_name == zone_name).one_or_none()
        if row is None:
            session.add(ZoneDefault(zone_name=zone_name, **fields))
            n += 1
        else:
            for key, value in fields.items():
                setattr(row, key, value)
    return n


def seed_zone_defaults_if_empty() -> int:
    with SessionLocal() as s:
        if s.query(ZoneDefault).count() > 0:
            return 0
        n = upsert_zone_defaults(s)
        s.commit()
    print(f"[auto-seed] zone_defaults inserted={n}")
    return n


def upsert_demo_client(session: Session) -> CoachingEngagement:
    client = session.query(Client).filter(Client.email == DEMO_CLIENT_EMAIL).one_or_none()
    if client is None:
        client = Client(email=DEMO_CLIENT_EMAIL, name="Demo Client", status="approved", coach_email="coach@example.com")
        session.add(client)

    eng = (
        session.query(CoachingEngagement)
        .filter(CoachingEngagement.client_email == DEMO_CLIENT_EMAIL, CoachingEngagement.status == "active")
        .one_or_none()
    )
    if eng is not None:
        return eng

    eng = CoachingEngagement(
        client_email=DEMO_CLIENT_EMAIL,
        coach_email="coach@example.com",
        status="active",
        current_phase="validate",
        current_week=5,
        primary_arena="Work",
        story_present="I'm leading a team through a reorganisation and second-guessing my calls.",
        story_past="I've rebuilt a struggling team before and it worked because I listened first.",
        story_potential="I'm ready to lead with my values out loud.",
        goals=[{"goal": "Speak up earlier in leadership meetings", "fires_lever": "influence"}],
        challenges=[{"challenge": "Overthinking before decisions", "fires_lever": "feelings"}],
        fires_focus=["influence", "strengths"],
    )
    session.add(eng)

    now = datetime.utcnow()
    session.add_all([
        MoreLessMarker(client_email=DEMO_CLIENT_EMAIL, marker_type="more", marker_text="Sharing my view first",
                       baseline_score=3, current_score=5, target_score=9, fires_connection="influence"),
        MoreLessMarker(client_email=DEMO_CLIENT_EMAIL, marker_type="less", marker_text="Replaying conversations at night",
                       baseline_score=7, current_score=4, target_score=1, fires_connection="feelings"),
        Snapshot(client_email=DEMO_CLIENT_EMAIL, goal="Lead the reorganisation with confidence",
                 overall_zone="discovering", total_confidence=2.8, total_alignment=4.1,
                 growth_opportunity_category="strengths", growth_opportunity_zone="exploring",
                 owning_highlight_category="ethics", owning_highlight_zone="owning",
                 fs_answers={"fs1": "Run a calm, honest all-hands"}, ps_answers={"ps1": "Turned around the support team"},
                 created_at=now - timedelta(days=14)),
        ImpactVerification(client_email=DEMO_CLIENT_EMAIL,
                           responses={"what_did": "Named the trade-off in the planning meeting",
                                      "how_did": "Asked a question instead of defending",
                                      "what_impact": "The team agreed a scope cut"},
                           integrity_line="I said the true thing kindly.", fires_focus=["influence"],
                           created_at=now - timedelta(days=3)),
        SessionTranscript(client_email=DEMO_CLIENT_EMAIL, session_number=4, session_date=date.today() - timedelta(days=7),
                          summary="Explored where hesitation shows up.", key_themes=["voice", "trust"],
                          key_quotes=[{"quote": "I already know what I think.", "context": "on meetings"}]),
        CoachingNote(client_email=DEMO_CLIENT_EMAIL, note_date=date.today() - timedelta(days=7),
                     content="Strong energy when talking about the old team.", coach_curiosity="What made listening first feel safe?"),
    ])
    return eng


def run_seed(demo: bool = False) -> None:
    with SessionLocal() as s:
        n = upsert_zone_defaults(s)
        s.commit()
        print(f"[seed] zone_defaults inserted={n}")
        if demo:
            eng = upsert_demo_client(s)
            s.commit()
            print(f"[seed] demo client={DEMO_CLIENT_EMAIL} engagement={eng.id}")
