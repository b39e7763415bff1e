# ==============================================================================
# coachmap/context.py
# ------------------------------------------------------------------------------
# PURPOSE:
#   Collect every data source for one client/engagement and render it as the
#   single text document the narrative map generator reads.
#
#   1) Fan-out: independent reads run concurrently, one session per read.
#   2) Fan-in: all reads must finish; any failure aborts the aggregation.
#   3) Render: bounded, ordered sections (story, markers, snapshots, impact,
#      sessions, notes, marker updates, voice memos, files).
#
# Read-only: nothing here writes to the store.
# ==============================================================================

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Callable, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from .config import settings
from .db import SessionLocal
from .debug_utils import debug_log
from .errors import NotFoundError, PersistenceError
from .models import (
    Client,
    ClientFile,
    CoachingEngagement,
    CoachingNote,
    ImpactVerification,
    MoreLessMarker,
    MoreLessUpdate,
    SessionTranscript,
    Snapshot,
    VoiceMemo,
    ZoneDefault,
    ENGAGEMENT_ACTIVE,
)
from .records import (
    decode_challenges,
    decode_goals,
    decode_key_quotes,
    decode_str_list,
    decode_str_map,
)

NO_ENGAGEMENT_MESSAGE = "No active engagement found for this client"

SNAPSHOT_LIMIT = 5
IMPACT_LIMIT = 20
SESSION_LIMIT = 5
NOTE_LIMIT = 10
MARKER_UPDATE_LIMIT = 20
VOICE_MEMO_LIMIT = 10
CLIENT_FILE_LIMIT = 10

# Transcripts at or above this length are left out; shorter ones are always marked as an excerpt ("...").
TRANSCRIPT_MAX_CHARS = 5000
TRANSCRIPT_EXCERPT_CHARS = 2000
VOICE_MEMO_CHARS = 1000

PROGRAMME_WEEKS = 12

# Snapshot answer codes worth surfacing, in display order.
FUTURE_STORY_ANSWERS = (
    ("fs1", "Future goal"),
    ("fs3", "Emotion needed"),
    ("fs4", "Staying in difficulty"),
    ("fs5", "Values alignment"),
    ("fs6", "Strengths needed"),
)
PAST_STORY_ANSWERS = (
    ("ps1", "Past success"),
    ("ps3", "What worked"),
    ("ps4", "How stayed in difficulty"),
)


@dataclass
class ClientContext:
    client_email: str
    engagement: CoachingEngagement
    client: Optional[Client] = None
    markers: List[MoreLessMarker] = field(default_factory=list)
    snapshots: List[Snapshot] = field(default_factory=list)
    impacts: List[ImpactVerification] = field(default_factory=list)
    sessions: List[SessionTranscript] = field(default_factory=list)
    notes: List[CoachingNote] = field(default_factory=list)
    marker_updates: List[MoreLessUpdate] = field(default_factory=list)
    voice_memos: List[VoiceMemo] = field(default_factory=list)
    client_files: List[ClientFile] = field(default_factory=list)
    zone_defaults: List[ZoneDefault] = field(default_factory=list)
    document: str = ""

    @property
    def engagement_id(self) -> str:
        return self.engagement.id

    @property
    def version_read(self) -> int:
        """ai_insights_version as it was when the context was loaded."""
        return int(self.engagement.ai_insights_version or 0)

    @property
    def latest_snapshot_zone(self) -> Optional[str]:
        if not self.snapshots:
            return None
        zone = (self.snapshots[0].overall_zone or "").strip().lower()
        return zone or None


# ──────────────────────────────────────────────────────────────────────────────
# Marker progress
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class MarkerProgress:
    delta: Optional[float]          # positive = moving the right way
    percent: Optional[float]        # 0..100 of the way from baseline to target
    complete: bool = False
    baseline_at_target: bool = False

    def label(self) -> str:
        if self.delta is None:
            return "(not yet scored)"
        if self.baseline_at_target:
            return "(target reached)"
        if self.delta > 0:
            text = f"+{_num(self.delta)} progress"
        elif self.delta < 0:
            text = f"{_num(self.delta)} regression"
        else:
            text = "no change"
        if self.percent is not None:
            text += f", {_num(round(self.percent))}% to target"
        return f"({text})"


def marker_progress(
    marker_type: Optional[str],
    baseline: Optional[float],
    current: Optional[float],
    target: Optional[float],
) -> MarkerProgress:
    """Progress of a More/Less marker.

    "more" markers progress as the score rises (current - baseline); "less"
    markers progress as it falls (baseline - current). A marker whose baseline
    already equals its target counts as complete.
    """
    if baseline is None or current is None:
        return MarkerProgress(delta=None, percent=None)
    if (marker_type or "").strip().lower() == "less":
        delta = baseline - current
    else:
        delta = current - baseline
    if target is None:
        return MarkerProgress(delta=delta, percent=None)
    if target == baseline:
        return MarkerProgress(delta=delta, percent=100.0, complete=True, baseline_at_target=True)
    pct = (current - baseline) / (target - baseline) * 100.0
    pct = max(0.0, min(100.0, pct))
    return MarkerProgress(delta=delta, percent=pct, complete=pct >= 100.0)


# ──────────────────────────────────────────────────────────────────────────────
# Queries (each runs in its own session on a worker thread)
# ──────────────────────────────────────────────────────────────────────────────

def _load_client(s: Session, email: str) -> Optional[Client]:
    return s.query(Client).filter(Client.email == email).one_or_none()


def _load_engagement(s: Session, email: str, engagement_id: Optional[str]) -> Optional[CoachingEngagement]:
    q = s.query(CoachingEngagement).filter(
        CoachingEngagement.client_email == email,
        CoachingEngagement.status == ENGAGEMENT_ACTIVE,
    )
    if engagement_id:
        q = q.filter(CoachingEngagement.id == engagement_id)
    return q.order_by(CoachingEngagement.created_at.desc()).first()


def _load_markers(s: Session, email: str) -> List[MoreLessMarker]:
    return (
        s.query(MoreLessMarker)
        .filter(MoreLessMarker.client_email == email, MoreLessMarker.is_active.is_(True))
        .order_by(MoreLessMarker.id.asc())
        .all()
    )


def _load_snapshots(s: Session, email: str) -> List[Snapshot]:
    return (
        s.query(Snapshot)
        .filter(Snapshot.client_email == email)
        .order_by(Snapshot.created_at.desc(), Snapshot.id.desc())
        .limit(SNAPSHOT_LIMIT)
        .all()
    )


def _load_impacts(s: Session, email: str) -> List[ImpactVerification]:
    return (
        s.query(ImpactVerification)
        .filter(ImpactVerification.client_email == email)
        .order_by(ImpactVerification.created_at.desc(), ImpactVerification.id.desc())
        .limit(IMPACT_LIMIT)
        .all()
    )


def _load_sessions(s: Session, email: str) -> List[SessionTranscript]:
    return (
        s.query(SessionTranscript)
        .filter(SessionTranscript.client_email == email)
        .order_by(SessionTranscript.session_date.desc(), SessionTranscript.id.desc())
        .limit(SESSION_LIMIT)
        .all()
    )


def _load_notes(s: Session, email: str) -> List[CoachingNote]:
    return (
        s.query(CoachingNote)
        .filter(CoachingNote.client_email == email)
        .order_by(CoachingNote.note_date.desc(), CoachingNote.id.desc())
        .limit(NOTE_LIMIT)
        .all()
    )


def _load_voice_memos(s: Session, email: str) -> List[VoiceMemo]:
    return (
        s.query(VoiceMemo)
        .filter(VoiceMemo.client_email == email)
        .order_by(VoiceMemo.created_at.desc(), VoiceMemo.id.desc())
        .limit(VOICE_MEMO_LIMIT)
        .all()
    )


def _load_client_files(s: Session, email: str) -> List[ClientFile]:
    return (
        s.query(ClientFile)
        .filter(ClientFile.client_email == email)
        .order_by(ClientFile.created_at.desc(), ClientFile.id.desc())
        .limit(CLIENT_FILE_LIMIT)
        .all()
    )


def _load_zone_defaults(s: Session) -> List[ZoneDefault]:
    return s.query(ZoneDefault).order_by(ZoneDefault.zone_name.asc()).all()


def _load_marker_updates(s: Session, marker_ids: List[int]) -> List[MoreLessUpdate]:
    if not marker_ids:
        return []
    return (
        s.query(MoreLessUpdate)
        .filter(MoreLessUpdate.marker_id.in_(marker_ids))
        .order_by(MoreLessUpdate.created_at.desc(), MoreLessUpdate.id.desc())
        .limit(MARKER_UPDATE_LIMIT)
        .all()
    )


def _run_query(session_factory: sessionmaker, fn: Callable[..., Any], *args) -> Any:
    # Rows are read with all scalar columns loaded, so they stay usable after close().
    with session_factory() as s:
        return fn(s, *args)


def fetch_client_records(
    client_email: str,
    engagement_id: Optional[str] = None,
    *,
    session_factory: Optional[sessionmaker] = None,
    max_workers: Optional[int] = None,
) -> ClientContext:
    """Load the engagement and every evidence record set for a client.

    Raises NotFoundError when there is no active engagement (or the explicit
    engagement id is not an active engagement of this client), and
    PersistenceError when any read fails.
    """
    factory = session_factory or SessionLocal
    workers = max_workers or settings.NARRATIVE_MAP_FETCH_WORKERS
    reads: dict[str, tuple] = {
        "client": (_load_client, client_email),
        "engagement": (_load_engagement, client_email, engagement_id),
        "markers": (_load_markers, client_email),
        "snapshots": (_load_snapshots, client_email),
        "impacts": (_load_impacts, client_email),
        "sessions": (_load_sessions, client_email),
        "notes": (_load_notes, client_email),
        "zone_defaults": (_load_zone_defaults,),
        "voice_memos": (_load_voice_memos, client_email),
        "client_files": (_load_client_files, client_email),
    }

    results: dict[str, Any] = {}
    with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
        futures = {
            name: pool.submit(_run_query, factory, query[0], *query[1:])
            for name, query in reads.items()
        }
        for name, fut in futures.items():
            try:
                results[name] = fut.result()
            except SQLAlchemyError as e:
                raise PersistenceError(f"Failed to load {name}: {e}") from e

    engagement = results["engagement"]
    if engagement is None:
        debug_log("no active engagement", {"client_email": client_email, "engagement_id": engagement_id}, tag="context")
        raise NotFoundError(NO_ENGAGEMENT_MESSAGE)

    markers = results["markers"]
    try:
        marker_updates = _run_query(factory, _load_marker_updates, [m.id for m in markers])
    except SQLAlchemyError as e:
        raise PersistenceError(f"Failed to load marker_updates: {e}") from e

    return ClientContext(
        client_email=client_email,
        engagement=engagement,
        client=results["client"],
        markers=markers,
        snapshots=results["snapshots"],
        impacts=results["impacts"],
        sessions=results["sessions"],
        notes=results["notes"],
        marker_updates=marker_updates,
        voice_memos=results["voice_memos"],
        client_files=results["client_files"],
        zone_defaults=results["zone_defaults"],
    )


# ──────────────────────────────────────────────────────────────────────────────
# Rendering
# ──────────────────────────────────────────────────────────────────────────────

def _num(value: Any) -> str:
    if value is None:
        return "—"
    try:
        f = float(value)
    except (TypeError, ValueError):
        return str(value)
    return str(int(f)) if f.is_integer() else f"{f:.1f}"


def _day(value: Any) -> str:
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, str) and value:
        return value.split("T")[0]
    return "undated"


def _truncate(text: str, limit: int) -> str:
    return text[:limit] + ("..." if len(text) > limit else "")


def _section(lines: List[str], title: str) -> None:
    lines.append(f"=== {title} ===")


def _render_engagement(lines: List[str], ctx: ClientContext) -> None:
    eng = ctx.engagement
    name = (ctx.client.name if ctx.client and ctx.client.name else None) or ctx.client_email
    lines.append(f"CLIENT: {name}")
    lines.append("")

    _section(lines, "ENGAGEMENT CONTEXT")
    phase = (eng.current_phase or "not set").upper()
    week = eng.current_week if eng.current_week is not None else "?"
    lines.append(f"Phase: {phase} - Week {week} of {PROGRAMME_WEEKS}")
    lines.append(f"Primary Arena: {eng.primary_arena or 'Not set'}")
    lines.append("")

    if eng.story_present or eng.story_past or eng.story_potential:
        _section(lines, "THE STORY WE'RE STRENGTHENING")
        lines.append(f"PRESENT (Where they are now): {eng.story_present or 'Not captured'}")
        lines.append(f"PAST (What brought them here): {eng.story_past or 'Not captured'}")
        lines.append(f"POTENTIAL (Where they're going): {eng.story_potential or 'Not captured'}")
        lines.append("")

    goals = decode_goals(eng.goals)
    challenges = decode_challenges(eng.challenges)
    if goals or challenges:
        _section(lines, "GOALS & CHALLENGES")
        if goals:
            lines.append("Goals:")
            for g in goals:
                lines.append(f"  • {g.goal} (FIRES: {g.fires_lever or 'unassigned'})")
        if challenges:
            lines.append("Challenges:")
            for c in challenges:
                lines.append(f"  • {c.challenge} (FIRES: {c.fires_lever or 'unassigned'})")
        lines.append("")

    focus = decode_str_list(eng.fires_focus)
    if focus:
        lines.append(f"FIRES FOCUS: {', '.join(focus)}")
        lines.append("")


def _render_markers(lines: List[str], markers: List[MoreLessMarker]) -> None:
    if not markers:
        return
    _section(lines, "MORE/LESS MARKERS")
    for m in markers:
        progress = marker_progress(m.marker_type, m.baseline_score, m.current_score, m.target_score)
        lines.append(f"{(m.marker_type or 'more').upper()}: \"{m.marker_text}\"")
        lines.append(
            f"  Baseline: {_num(m.baseline_score)} → Current: {_num(m.current_score)} → "
            f"Target: {_num(m.target_score)} {progress.label()}"
        )
        if m.fires_connection:
            lines.append(f"  FIRES: {m.fires_connection}")
        if m.exchange_insight:
            lines.append(f"  Exchange: {m.exchange_insight}")
    lines.append("")


def _render_snapshots(lines: List[str], snapshots: List[Snapshot]) -> None:
    if not snapshots:
        return
    _section(lines, "FIRES SNAPSHOTS")
    for i, s in enumerate(snapshots, start=1):
        lines.append(f"Snapshot {i} ({_day(s.created_at)}):")
        if s.goal:
            lines.append(f"  Goal: {s.goal}")
        lines.append(f"  Overall Zone: {s.overall_zone or 'unknown'}")
        if s.total_confidence is not None or s.total_alignment is not None:
            lines.append(f"  Confidence: {_num(s.total_confidence)} | Alignment: {_num(s.total_alignment)}")
        if s.growth_opportunity_category:
            lines.append(f"  Growth Opportunity: {s.growth_opportunity_category} ({s.growth_opportunity_zone or 'n/a'})")
        if s.owning_highlight_category:
            lines.append(f"  Owning Highlight: {s.owning_highlight_category} ({s.owning_highlight_zone or 'n/a'})")

        breakdown = decode_str_map(s.zone_breakdown)
        if breakdown:
            lines.append("  Zone Breakdown:")
            for element, zone in breakdown.items():
                lines.append(f"    {element}: {zone}")

        fs = decode_str_map(s.fs_answers)
        ps = decode_str_map(s.ps_answers)
        answers = [(label, fs[code]) for code, label in FUTURE_STORY_ANSWERS if code in fs]
        answers += [(label, ps[code]) for code, label in PAST_STORY_ANSWERS if code in ps]
        if s.past_support:
            answers.append(("Who helped", s.past_support))
        if s.future_support:
            answers.append(("Who they'll rely on", s.future_support))
        if answers:
            lines.append("  Key Answers:")
            for label, text in answers:
                lines.append(f"    {label}: {text}")

        summary = s.narrative.get("summary") if isinstance(s.narrative, dict) else None
        if summary:
            lines.append(f"  AI Narrative: {summary}")
        lines.append("")


def _render_impacts(lines: List[str], impacts: List[ImpactVerification]) -> None:
    if not impacts:
        return
    _section(lines, "RECENT IMPACT ENTRIES")
    for entry in impacts:
        r = decode_str_map(entry.responses)
        lines.append(f"{_day(entry.created_at)}:")
        what = r.get("what_did") or r.get("moment")
        how = r.get("how_did") or r.get("role")
        impact = r.get("what_impact") or r.get("impact")
        if what:
            lines.append(f"  What they did: {what}")
        if how:
            lines.append(f"  How they did it: {how}")
        if impact:
            lines.append(f"  Impact created: {impact}")
        if entry.integrity_line:
            lines.append(f"  Integrity Line: \"{entry.integrity_line}\"")
        focus = decode_str_list(entry.fires_focus)
        if focus:
            lines.append(f"  FIRES Focus: {', '.join(focus)}")
    lines.append("")


def _render_sessions(lines: List[str], sessions: List[SessionTranscript]) -> None:
    if not sessions:
        return
    _section(lines, "COACHING SESSIONS")
    for s in sessions:
        number = s.session_number if s.session_number is not None else "?"
        lines.append(f"Session {number} ({_day(s.session_date)}):")
        if s.summary:
            lines.append(f"  Summary: {s.summary}")
        themes = decode_str_list(s.key_themes)
        if themes:
            lines.append(f"  Themes: {', '.join(themes)}")
        if s.client_breakthroughs:
            lines.append(f"  Breakthroughs: {s.client_breakthroughs}")
        if s.coach_observations:
            lines.append(f"  Coach Observations: {s.coach_observations}")
        if s.next_session_focus:
            lines.append(f"  Next Focus: {s.next_session_focus}")
        quotes = decode_key_quotes(s.key_quotes)
        if quotes:
            lines.append("  Key Quotes:")
            for q in quotes:
                suffix = f" - {q.context}" if q.context else ""
                lines.append(f"    \"{q.quote}\"{suffix}")
        transcript = s.transcript_text or ""
        if transcript and len(transcript) < TRANSCRIPT_MAX_CHARS:
            lines.append("  Transcript Excerpt:")
            lines.append(f"    {transcript[:TRANSCRIPT_EXCERPT_CHARS]}...")
        lines.append("")


def _render_notes(lines: List[str], notes: List[CoachingNote]) -> None:
    if not notes:
        return
    _section(lines, "COACH NOTES")
    for n in notes:
        lines.append(f"{_day(n.note_date)}: {n.content}")
        if n.coach_curiosity:
            lines.append(f"  [Coach Curiosity: {n.coach_curiosity}]")
    lines.append("")


def _render_marker_updates(lines: List[str], updates: List[MoreLessUpdate]) -> None:
    if not updates:
        return
    _section(lines, "MORE/LESS PROGRESS UPDATES")
    for u in updates:
        lines.append(f"{_day(u.update_date or u.created_at)}: Score {_num(u.score)}")
        if u.note:
            lines.append(f"  Note: {u.note}")
        if u.exchange_note:
            lines.append(f"  Exchange: {u.exchange_note}")
    lines.append("")


def _render_voice_memos(lines: List[str], memos: List[VoiceMemo]) -> None:
    if not memos:
        return
    _section(lines, "VOICE MEMOS")
    for v in memos:
        lines.append(f"{_day(v.created_at)}: {v.title or 'Untitled'}")
        if v.transcription:
            lines.append(f"  Transcription: {_truncate(v.transcription, VOICE_MEMO_CHARS)}")
    lines.append("")


def _render_client_files(lines: List[str], files: List[ClientFile]) -> None:
    if not files:
        return
    _section(lines, "CLIENT FILES")
    for f in files:
        lines.append(f"{_day(f.created_at)}: {f.file_name} ({f.file_type or 'unknown type'})")
        if f.description:
            lines.append(f"  Description: {f.description}")
    lines.append("")


def render_context(ctx: ClientContext) -> str:
    lines: List[str] = []
    _render_engagement(lines, ctx)
    _render_markers(lines, ctx.markers)
    _render_snapshots(lines, ctx.snapshots)
    _render_impacts(lines, ctx.impacts)
    _render_sessions(lines, ctx.sessions)
    _render_notes(lines, ctx.notes)
    _render_marker_updates(lines, ctx.marker_updates)
    _render_voice_memos(lines, ctx.voice_memos)
    _render_client_files(lines, ctx.client_files)
    return "\n".join(lines)


def build_client_context(
    client_email: str,
    engagement_id: Optional[str] = None,
    *,
    session_factory: Optional[sessionmaker] = None,
) -> ClientContext:
    """Fetch and render; the returned context carries the document in .document."""
    ctx = fetch_client_records(client_email, engagement_id, session_factory=session_factory)
    ctx.document = render_context(ctx)
    debug_log(
        "context built",
        {
            "engagement_id": ctx.engagement_id,
            "chars": len(ctx.document),
            "markers": len(ctx.markers),
            "snapshots": len(ctx.snapshots),
            "impacts": len(ctx.impacts),
            "sessions": len(ctx.sessions),
            "notes": len(ctx.notes),
            "marker_updates": len(ctx.marker_updates),
            "voice_memos": len(ctx.voice_memos),
            "client_files": len(ctx.client_files),
        },
        tag="context",
    )
    return ctx
