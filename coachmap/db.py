# coachmap/db.py
from __future__ import annotations
import os

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

# ──────────────────────────────────────────────────────────────────────────────
# DATABASE URL
# ──────────────────────────────────────────────────────────────────────────────

# Prefer env var; fall back to config.py; else local SQLite.
DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    from .config import settings
    DATABASE_URL = getattr(settings, "DATABASE_URL", None)
if not DATABASE_URL:
    DATABASE_URL = "sqlite:///./coachmap.db"

# ──────────────────────────────────────────────────────────────────────────────
# SQLAlchemy engine/session
# ──────────────────────────────────────────────────────────────────────────────
# Context fetches run on worker threads, each with its own session.
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, pool_pre_ping=True, future=True, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────
def _is_postgres() -> bool:
    try:
        return engine.url.get_backend_name().startswith("postgres")
    except Exception:
        return False

def _table_exists(conn, table_name: str) -> bool:
    """
    Works on Postgres and SQLite. Uses information_schema for PG and sqlite_master for SQLite.
    """
    if _is_postgres():
        res = conn.execute(text("""
            SELECT EXISTS (
                SELECT FROM information_schema.tables
                WHERE table_schema = 'public' AND table_name = :t
            )
        """), {"t": table_name}).scalar()
        return bool(res)
    res = conn.execute(text("""
        SELECT 1 FROM sqlite_master WHERE type='table' AND name=:t
    """), {"t": table_name}).first()
    return bool(res)

def maybe_seed_zone_defaults() -> None:
    """
    Seed the four FIRES zone defaults if the table exists and is empty.
    Uses coachmap.seed.seed_zone_defaults_if_empty().
    """
    if os.getenv("COACHMAP_DISABLE_AUTO_SEED", "0") == "1":
        print("[auto-seed] Skipped by env (COACHMAP_DISABLE_AUTO_SEED=1).")
        return

    from .seed import seed_zone_defaults_if_empty

    with engine.begin() as conn:
        if not _table_exists(conn, "zone_defaults"):
            return

    try:
        seed_zone_defaults_if_empty()
    except Exception as e:
        print(f"[auto-seed] Failed while seeding zone defaults: {e}")

def init_db(seed: bool = True) -> None:
    """
    One‑shot initializer to call at app startup:
      1) create tables,
      2) seed zone defaults if empty.
    """
    # Import here to avoid circular import at module import time
    from .models import Base

    Base.metadata.create_all(bind=engine)

    if seed:
        maybe_seed_zone_defaults()

def get_session_factory() -> sessionmaker:
    """FastAPI dependency for the session factory; tests override it."""
    return SessionLocal
