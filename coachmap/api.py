# coachmap/api.py
# HTTP surface for the Narrative Integrity Map: the generate function endpoint
# (CORS-open, {error} bodies), read endpoints for the stored map/history, health.

import os
import traceback
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from sqlalchemy.orm import sessionmaker

from .admin_routes import admin
from .config import settings
from .db import engine, get_session_factory, init_db
from .errors import InputError, NarrativeMapError
from .models import Base
from .narrative_map import generate_narrative_map, get_stored_map, list_history
from .schemas import GenerateNarrativeMapRequest

ENV = os.getenv("ENV", "development").lower()
APP_START_DT = datetime.now(timezone.utc)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
}

app = FastAPI(title="Coachmap")


def _uptime_seconds() -> int:
    return int((datetime.now(timezone.utc) - APP_START_DT).total_seconds())

# ──────────────────────────────────────────────────────────────────────────────
# Dependencies (overridable in tests)
# ──────────────────────────────────────────────────────────────────────────────

def get_llm() -> Any:
    """None means the generator builds the configured chat model itself."""
    return None

# ──────────────────────────────────────────────────────────────────────────────
# Startup / CORS
# ──────────────────────────────────────────────────────────────────────────────

@app.on_event("startup")
def on_startup():
    if settings.RESET_DB_ON_STARTUP:
        print("⚠️  RESET_DB_ON_STARTUP set: dropping and recreating all tables")
        Base.metadata.drop_all(bind=engine)
    init_db(seed=settings.SEED_ZONE_DEFAULTS)
    print(f"🚀 coachmap api started [{ENV.upper()}]")


@app.middleware("http")
async def add_cors_headers(request: Request, call_next):
    if request.method == "OPTIONS":
        return Response(status_code=200, headers=CORS_HEADERS)
    response = await call_next(request)
    for key, value in CORS_HEADERS.items():
        response.headers[key] = value
    return response


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse({"error": message}, status_code=status_code)


def _parse_request(body: dict) -> GenerateNarrativeMapRequest:
    try:
        return GenerateNarrativeMapRequest.model_validate(body)
    except ValidationError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err.get("loc")})
        raise InputError(f"Invalid request field: {', '.join(fields) or 'body'}") from e

# ──────────────────────────────────────────────────────────────────────────────
# Narrative map
# ──────────────────────────────────────────────────────────────────────────────

@app.post("/functions/generate-narrative-map")
async def generate_narrative_map_endpoint(
    request: Request,
    session_factory: sessionmaker = Depends(get_session_factory),
    llm: Any = Depends(get_llm),
):
    try:
        try:
            body = await request.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            raise InputError("Request body must be a JSON object")
        req = _parse_request(body)
        result = await run_in_threadpool(
            generate_narrative_map,
            req.clientEmail,
            req.engagementId,
            llm=llm,
            session_factory=session_factory,
        )
        return JSONResponse(result.to_response())
    except NarrativeMapError as e:
        print(f"[narrative-map] {type(e).__name__} status={e.status_code} err={e.message}")
        return _error(e.message, e.status_code)
    except Exception as e:
        print(f"[narrative-map] unexpected error: {e!r}")
        traceback.print_exc()
        return _error(str(e) or "Unknown error", 500)


@app.get("/engagements/{engagement_id}/narrative-map")
def stored_narrative_map(engagement_id: str, session_factory: sessionmaker = Depends(get_session_factory)):
    try:
        return get_stored_map(engagement_id, session_factory=session_factory)
    except NarrativeMapError as e:
        return _error(e.message, e.status_code)


@app.get("/engagements/{engagement_id}/narrative-map/history")
def narrative_map_history(
    engagement_id: str,
    limit: int = 50,
    session_factory: sessionmaker = Depends(get_session_factory),
):
    limit = max(1, min(200, limit))
    return {"engagement_id": engagement_id, "history": list_history(engagement_id, limit=limit, session_factory=session_factory)}

# ──────────────────────────────────────────────────────────────────────────────
# Health / Root
# ──────────────────────────────────────────────────────────────────────────────

@app.get("/health")
def health():
    return {
        "ok": True,
        "env": ENV,
        "app_start_utc": APP_START_DT.isoformat(),
        "uptime_seconds": _uptime_seconds(),
    }


@app.get("/")
def root(detail: Optional[bool] = False):
    out = {"service": "coachmap", "status": "ok", "env": ENV}
    if detail:
        out["routes"] = sorted({getattr(r, "path", "") for r in app.router.routes})
    return out


app.include_router(admin)
