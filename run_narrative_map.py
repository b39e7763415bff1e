#!/usr/bin/env python3
"""
Generate a Narrative Integrity Map for one client from the command line.

Examples
  python run_narrative_map.py --seed-demo
  python run_narrative_map.py --email demo.client@example.com
  python run_narrative_map.py --email jo@example.com --engagement-id 3f0c... --show
"""
from __future__ import annotations

import argparse
import json
import os
import sys

# Ensure project root is on sys.path
ROOT_DIR = os.path.dirname(os.path.abspath(__file__))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from coachmap.db import init_db
from coachmap.errors import NarrativeMapError
from coachmap.narrative_map import generate_narrative_map, get_stored_map
from coachmap.seed import DEMO_CLIENT_EMAIL, run_seed


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a Narrative Integrity Map for a client.")
    parser.add_argument("--email", default=None, help="Client email")
    parser.add_argument("--engagement-id", default=None, help="Specific active engagement id")
    parser.add_argument("--seed-demo", action="store_true", help=f"Seed zone defaults and the demo client ({DEMO_CLIENT_EMAIL})")
    parser.add_argument("--show", action="store_true", help="Print the stored map after generating")
    args = parser.parse_args()

    init_db(seed=True)

    if args.seed_demo:
        run_seed(demo=True)
        if not args.email:
            return

    try:
        result = generate_narrative_map(args.email, args.engagement_id)
    except NarrativeMapError as e:
        print(f"[error] {e.status_code}: {e.message}")
        sys.exit(1)

    print(f"[narrative-map] {result.message} engagement={result.engagement_id}")
    payload = get_stored_map(result.engagement_id) if args.show else result.to_response()
    print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


if __name__ == "__main__":
    main()
