#!/usr/bin/env python3
"""
Environment check before deploying the narrative map API.
Usage: python scripts/check_env.py [--warn-optional]
"""
from __future__ import annotations

import argparse
import os
import sys
from typing import Callable, Dict, Iterable, List

REQUIRED = ["DATABASE_URL", "OPENAI_API_KEY"]

OPTIONAL = [
    "ENV",
    "ADMIN_API_TOKEN",
    "NARRATIVE_MAP_MODEL",
    "NARRATIVE_MAP_MAX_TOKENS",
    "NARRATIVE_MAP_TEMPERATURE",
    "NARRATIVE_MAP_STRICT_VERSIONING",
]

# Values that must parse if present.
TYPED: Dict[str, Callable[[str], object]] = {
    "NARRATIVE_MAP_MAX_TOKENS": int,
    "NARRATIVE_MAP_TEMPERATURE": float,
    "NARRATIVE_MAP_FETCH_WORKERS": int,
}


def _value(key: str) -> str:
    return (os.getenv(key) or "").strip()


def _missing(keys: Iterable[str]) -> List[str]:
    return [k for k in keys if not _value(k)]


def _malformed() -> List[str]:
    bad: List[str] = []
    for key, cast in TYPED.items():
        raw = _value(key)
        if not raw:
            continue
        try:
            cast(raw)
        except ValueError:
            bad.append(f"{key}={raw!r} (expected {cast.__name__})")
    return bad


def main() -> int:
    parser = argparse.ArgumentParser(description="Validate narrative map API environment variables.")
    parser.add_argument("--warn-optional", action="store_true", help="Also list optional variables that are missing")
    args = parser.parse_args()

    missing = _missing(REQUIRED)
    if missing:
        print("[env-check] Missing required environment variables:")
        for item in missing:
            print(f"  - {item}")
        return 1

    bad = _malformed()
    if bad:
        print("[env-check] Malformed values:")
        for item in bad:
            print(f"  - {item}")
        return 1

    if _value("ENV").lower() == "production" and _value("DATABASE_URL").startswith("sqlite"):
        print("[env-check] DATABASE_URL points at SQLite in production")
        return 1

    if args.warn_optional:
        optional_missing = _missing(OPTIONAL)
        if optional_missing:
            print("[env-check] Optional vars missing:")
            for k in optional_missing:
                print(f"  - {k}")

    print("[env-check] OK")
    return 0


if __name__ == "__main__":
    sys.exit(main())
