# coachmap/admin_routes.py
import html
import json
import os

from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import HTMLResponse
from sqlalchemy.orm import sessionmaker

from .config import settings
from .db import get_session_factory
from .models import CoachingEngagement, NarrativeMapHistory


def _require_admin(x_admin_token: str = Header(None, alias="X-Admin-Token")) -> None:
    expected = (os.getenv("ADMIN_API_TOKEN") or settings.ADMIN_API_TOKEN or "").strip()
    if not expected:
        raise HTTPException(status_code=503, detail="ADMIN_API_TOKEN not configured")
    if x_admin_token != expected:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


admin = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(_require_admin)])


def _esc(value) -> str:
    return html.escape("" if value is None else str(value))


def _json_pre(value) -> str:
    if value is None:
        return ""
    text = json.dumps(value, indent=2, ensure_ascii=False, default=str)
    return f"<pre style='white-space:pre-wrap'>{html.escape(text)}</pre>"


@admin.get("/narrative-map/history", response_class=HTMLResponse)
def list_generations(limit: int = 50, session_factory: sessionmaker = Depends(get_session_factory)):
    limit = max(1, min(200, limit))
    with session_factory() as s:
        rows = (
            s.query(NarrativeMapHistory, CoachingEngagement.client_email)
            .outerjoin(CoachingEngagement, CoachingEngagement.id == NarrativeMapHistory.engagement_id)
            .order_by(NarrativeMapHistory.created_at.desc(), NarrativeMapHistory.id.desc())
            .limit(limit)
            .all()
        )
        out = []
        for h, client_email in rows:
            new_value = h.new_value if isinstance(h.new_value, dict) else {}
            out.append(
                "<tr>"
                f"<td>#{h.id}</td>"
                f"<td><a href='/admin/engagements/{_esc(h.engagement_id)}'>{_esc(h.engagement_id)}</a></td>"
                f"<td>{_esc(client_email)}</td>"
                f"<td>{_esc(h.field_name)}</td>"
                f"<td>{_esc(new_value.get('ai_insights_version'))}</td>"
                f"<td>{_esc(h.changed_by)}</td>"
                f"<td>{_esc(h.created_at)}</td>"
                "</tr>"
            )
        page = (
            "<h2>Narrative Map Generations</h2>"
            "<table border='1' cellpadding='6' cellspacing='0'>"
            "<tr><th>ID</th><th>Engagement</th><th>Client</th><th>Field</th><th>Version</th><th>By</th><th>At</th></tr>"
            + "".join(out) + "</table>"
        )
        return HTMLResponse(page)


@admin.get("/engagements/{engagement_id}", response_class=HTMLResponse)
def engagement_detail(engagement_id: str, session_factory: sessionmaker = Depends(get_session_factory)):
    with session_factory() as s:
        eng = s.get(CoachingEngagement, engagement_id)
        if not eng:
            raise HTTPException(404, "Engagement not found")
        history = (
            s.query(NarrativeMapHistory)
            .filter(NarrativeMapHistory.engagement_id == engagement_id)
            .order_by(NarrativeMapHistory.created_at.desc(), NarrativeMapHistory.id.desc())
            .limit(20)
            .all()
        )
        fields = [
            ("Superpowers (claimed)", eng.superpowers_claimed),
            ("Superpowers (emerging)", eng.superpowers_emerging),
            ("Superpowers (hidden)", eng.superpowers_hidden),
            ("Zone interpretation", eng.zone_interpretation),
            ("World asking", eng.world_asking),
            ("Weekly actions", eng.weekly_actions),
        ]
        field_rows = "".join(f"<tr><th align='left'>{label}</th><td>{_json_pre(value)}</td></tr>" for label, value in fields)
        history_rows = "".join(
            f"<tr><td>#{h.id}</td><td>{_esc(h.changed_by)}</td><td>{_esc(h.created_at)}</td></tr>" for h in history
        )
        page = (
            f"<h2>Engagement {_esc(eng.id)}</h2>"
            f"<p>Client: {_esc(eng.client_email)} | Status: {_esc(eng.status)} | "
            f"Phase: {_esc(eng.current_phase)} week {_esc(eng.current_week)}</p>"
            f"<p>Version: {_esc(eng.ai_insights_version or 0)} | Generated: {_esc(eng.ai_insights_generated_at)}</p>"
            f"<p>Anchor: <em>{_esc(eng.anchor_quote)}</em></p>"
            "<table border='1' cellpadding='6' cellspacing='0'>" + field_rows + "</table>"
            "<h3>History</h3>"
            "<table border='1' cellpadding='6' cellspacing='0'><tr><th>ID</th><th>By</th><th>At</th></tr>"
            + history_rows + "</table>"
        )
        return HTMLResponse(page)
