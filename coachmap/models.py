from __future__ import annotations

import uuid
from datetime import datetime
from sqlalchemy import (
    Column, Integer, String, Text, Date, DateTime, Boolean, Float, ForeignKey,
    Index, JSON, text
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests/dev)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# Shared status labels so API/CLI/seeds stay in sync
CLIENT_STATUSES = ("pending", "approved", "inactive", "deleted")
ENGAGEMENT_ACTIVE = "active"
ENGAGEMENT_COMPLETED = "completed"
PHASES = ("name", "validate", "communicate")
FIRES_ELEMENTS = ("feelings", "influence", "resilience", "ethics", "strengths")
ZONES = ("exploring", "discovering", "performing", "owning")
DEFAULT_ZONE = "exploring"


def _uuid() -> str:
    return str(uuid.uuid4())

# ──────────────────────────────────────────────────────────────────────────────
# Core
# ──────────────────────────────────────────────────────────────────────────────
class Client(Base):
    __tablename__ = "clients"
    id          = Column(Integer, primary_key=True)
    email       = Column(String(255), nullable=False, unique=True, index=True)
    name        = Column(String(200), nullable=True)
    status      = Column(String(16), nullable=False, server_default=text("'pending'"))  # pending|approved|inactive|deleted
    coach_email = Column(String(255), nullable=True, index=True)
    created_at  = Column(DateTime, nullable=False, server_default=func.now())


class CoachingEngagement(Base):
    __tablename__ = "coaching_engagements"
    id              = Column(String(36), primary_key=True, default=_uuid)
    client_email    = Column(String(255), nullable=False, index=True)
    coach_email     = Column(String(255), nullable=True)
    status          = Column(String(16), nullable=False, server_default=text("'active'"))   # active|completed
    current_phase   = Column(String(16), nullable=True)     # name|validate|communicate
    current_week    = Column(Integer, nullable=True)        # 1..12
    primary_arena   = Column(String(120), nullable=True)

    # The 3Ps story
    story_present   = Column(Text, nullable=True)
    story_past      = Column(Text, nullable=True)
    story_potential = Column(Text, nullable=True)

    goals           = Column(JSONType, nullable=True)       # [{goal, fires_lever}]
    challenges      = Column(JSONType, nullable=True)       # [{challenge, fires_lever}]
    fires_focus     = Column(JSONType, nullable=True)       # ["feelings", ...]
    current_zone    = Column(String(32), nullable=True)

    # Generated insight fields (written by the narrative map merger)
    superpowers_claimed  = Column(JSONType, nullable=True)
    superpowers_emerging = Column(JSONType, nullable=True)
    superpowers_hidden   = Column(JSONType, nullable=True)
    zone_interpretation  = Column(JSONType, nullable=True)
    world_asking         = Column(JSONType, nullable=True)
    weekly_actions       = Column(JSONType, nullable=True)
    anchor_quote         = Column(Text, nullable=True)
    ai_insights_generated_at = Column(DateTime, nullable=True)
    ai_insights_version  = Column(Integer, nullable=False, default=0, server_default=text("0"))

    created_at      = Column(DateTime, nullable=False, server_default=func.now())
    updated_at      = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("ix_coaching_engagements_client_status", "client_email", "status"),
    )

# ──────────────────────────────────────────────────────────────────────────────
# Evidence records (append-mostly, scoped by client email)
# ──────────────────────────────────────────────────────────────────────────────

class Snapshot(Base):
    __tablename__ = "snapshots"
    id           = Column(Integer, primary_key=True)
    client_email = Column(String(255), nullable=False, index=True)
    goal         = Column(Text, nullable=True)
    overall_zone = Column(String(32), nullable=True)
    total_confidence = Column(Float, nullable=True)
    total_alignment  = Column(Float, nullable=True)
    growth_opportunity_category = Column(String(32), nullable=True)
    growth_opportunity_zone     = Column(String(32), nullable=True)
    owning_highlight_category   = Column(String(32), nullable=True)
    owning_highlight_zone       = Column(String(32), nullable=True)
    zone_breakdown = Column(JSONType, nullable=True)   # {element: zone}
    fs_answers     = Column(JSONType, nullable=True)   # future story answers {fs1..fs6}
    ps_answers     = Column(JSONType, nullable=True)   # past story answers {ps1..ps4}
    past_support   = Column(Text, nullable=True)
    future_support = Column(Text, nullable=True)
    narrative      = Column(JSONType, nullable=True)   # {summary, ...}
    created_at     = Column(DateTime, nullable=False, default=datetime.utcnow)


class ImpactVerification(Base):
    __tablename__ = "impact_verifications"
    id             = Column(Integer, primary_key=True)
    client_email   = Column(String(255), nullable=False, index=True)
    responses      = Column(JSONType, nullable=True)   # {what_did|moment, how_did|role, what_impact|impact}
    integrity_line = Column(Text, nullable=True)
    fires_focus    = Column(JSONType, nullable=True)
    created_at     = Column(DateTime, nullable=False, default=datetime.utcnow)


class MoreLessMarker(Base):
    __tablename__ = "more_less_markers"
    id               = Column(Integer, primary_key=True)
    client_email     = Column(String(255), nullable=False, index=True)
    marker_type      = Column(String(8), nullable=False)  # more|less
    marker_text      = Column(Text, nullable=False)
    baseline_score   = Column(Integer, nullable=True)
    current_score    = Column(Integer, nullable=True)     # coach-editable
    target_score     = Column(Integer, nullable=True)
    fires_connection = Column(String(32), nullable=True)
    exchange_insight = Column(Text, nullable=True)        # coach-editable
    is_active        = Column(Boolean, nullable=False, default=True, server_default=text("true"))
    created_at       = Column(DateTime, nullable=False, default=datetime.utcnow)


class MoreLessUpdate(Base):
    __tablename__ = "more_less_updates"
    id            = Column(Integer, primary_key=True)
    marker_id     = Column(Integer, ForeignKey("more_less_markers.id", ondelete="CASCADE"), nullable=False, index=True)
    update_date   = Column(Date, nullable=True)
    score         = Column(Integer, nullable=True)
    note          = Column(Text, nullable=True)
    exchange_note = Column(Text, nullable=True)
    created_at    = Column(DateTime, nullable=False, default=datetime.utcnow)


class SessionTranscript(Base):
    __tablename__ = "session_transcripts"
    id                   = Column(Integer, primary_key=True)
    client_email         = Column(String(255), nullable=False, index=True)
    session_number       = Column(Integer, nullable=True)
    session_date         = Column(Date, nullable=True)
    summary              = Column(Text, nullable=True)
    key_themes           = Column(JSONType, nullable=True)   # ["..."]
    client_breakthroughs = Column(Text, nullable=True)
    coach_observations   = Column(Text, nullable=True)
    next_session_focus   = Column(Text, nullable=True)
    key_quotes           = Column(JSONType, nullable=True)   # [{quote, context}]
    transcript_text      = Column(Text, nullable=True)
    created_at           = Column(DateTime, nullable=False, default=datetime.utcnow)


class CoachingNote(Base):
    __tablename__ = "coaching_notes"
    id              = Column(Integer, primary_key=True)
    client_email    = Column(String(255), nullable=False, index=True)
    note_date       = Column(Date, nullable=True)
    content         = Column(Text, nullable=False)
    coach_curiosity = Column(Text, nullable=True)
    created_at      = Column(DateTime, nullable=False, default=datetime.utcnow)


class VoiceMemo(Base):
    __tablename__ = "voice_memos"
    id            = Column(Integer, primary_key=True)
    client_email  = Column(String(255), nullable=False, index=True)
    title         = Column(String(200), nullable=True)
    transcription = Column(Text, nullable=True)
    storage_path  = Column(String(500), nullable=True)
    created_at    = Column(DateTime, nullable=False, default=datetime.utcnow)


class ClientFile(Base):
    __tablename__ = "client_files"
    id           = Column(Integer, primary_key=True)
    client_email = Column(String(255), nullable=False, index=True)
    file_name    = Column(String(255), nullable=False)
    file_type    = Column(String(120), nullable=True)
    description  = Column(Text, nullable=True)
    storage_path = Column(String(500), nullable=True)   # object storage key; bytes never live here
    created_at   = Column(DateTime, nullable=False, default=datetime.utcnow)

# ──────────────────────────────────────────────────────────────────────────────
# Reference + audit
# ──────────────────────────────────────────────────────────────────────────────

class ZoneDefault(Base):
    __tablename__ = "zone_defaults"
    id          = Column(Integer, primary_key=True)
    zone_name   = Column(String(32), nullable=False, unique=True)
    headline    = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    the_work    = Column(Text, nullable=True)


class NarrativeMapHistory(Base):
    __tablename__ = "narrative_map_history"
    id            = Column(Integer, primary_key=True)
    engagement_id = Column(String(36), ForeignKey("coaching_engagements.id", ondelete="CASCADE"), nullable=False, index=True)
    field_name    = Column(String(64), nullable=False)
    old_value     = Column(JSONType, nullable=True)
    new_value     = Column(JSONType, nullable=True)
    changed_by    = Column(String(64), nullable=False)     # ai | coach email
    created_at    = Column(DateTime, nullable=False, default=datetime.utcnow)


class UsageEvent(Base):
    __tablename__ = "usage_events"

    # One row per outbound LLM call (tokens are provider-reported when available, else estimated)
    id          = Column(Integer, primary_key=True)
    provider    = Column(String(32), nullable=False)
    product     = Column(String(32), nullable=False)        # llm
    model       = Column(String(120), nullable=True)
    tokens_in   = Column(Integer, nullable=True)
    tokens_out  = Column(Integer, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    tag         = Column(String(64), nullable=True)
    ref         = Column(String(64), nullable=True)         # e.g. engagement id
    meta        = Column(JSONType, nullable=True)
    created_at  = Column(DateTime, nullable=False, default=datetime.utcnow)
