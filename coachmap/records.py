"""
Typed shapes for the loosely structured JSON columns.

Rows are decoded on read: items that are not the expected shape are dropped
(and reported through debug_log) instead of flowing into prompts as blanks.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional, TypeVar

from .debug_utils import debug_log

T = TypeVar("T")


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


@dataclass(frozen=True)
class Goal:
    goal: str
    fires_lever: Optional[str] = None


@dataclass(frozen=True)
class Challenge:
    challenge: str
    fires_lever: Optional[str] = None


@dataclass(frozen=True)
class KeyQuote:
    quote: str
    context: Optional[str] = None


@dataclass(frozen=True)
class Superpower:
    superpower: str
    description: str = ""
    evidence: List[str] = field(default_factory=list)
    fires_element: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class WorldAsking:
    insight: str
    fires_element: Optional[str] = None
    source: Optional[str] = None
    created_at: Optional[str] = None


@dataclass(frozen=True)
class WeeklyAction:
    action: str
    fires_element: Optional[str] = None
    assigned_date: Optional[str] = None
    status: str = "active"


@dataclass(frozen=True)
class ZoneInterpretation:
    zone: str
    headline: str = ""
    description: str = ""
    the_work: str = ""
    custom_note: str = ""
    source: Optional[str] = None
    updated_at: Optional[str] = None


def _decode_list(raw: Any, build: Callable[[dict], Optional[T]], label: str) -> List[T]:
    if not raw:
        return []
    if not isinstance(raw, list):
        debug_log(f"{label}: expected list, got {type(raw).__name__}", tag="records")
        return []
    out: List[T] = []
    for idx, item in enumerate(raw):
        rec = build(item) if isinstance(item, dict) else None
        if rec is None:
            debug_log(f"{label}[{idx}] dropped", {"item": item}, tag="records")
            continue
        out.append(rec)
    return out


def _goal(item: dict) -> Optional[Goal]:
    text = _clean(item.get("goal"))
    return Goal(text, _clean(item.get("fires_lever"))) if text else None


def _challenge(item: dict) -> Optional[Challenge]:
    text = _clean(item.get("challenge"))
    return Challenge(text, _clean(item.get("fires_lever"))) if text else None


def _key_quote(item: dict) -> Optional[KeyQuote]:
    text = _clean(item.get("quote"))
    return KeyQuote(text, _clean(item.get("context"))) if text else None


def _superpower(item: dict) -> Optional[Superpower]:
    name = _clean(item.get("superpower"))
    if not name:
        return None
    evidence = [e for e in (_clean(x) for x in (item.get("evidence") or [])) if e]
    return Superpower(
        superpower=name,
        description=_clean(item.get("description")) or "",
        evidence=evidence,
        fires_element=_clean(item.get("fires_element")),
        source=_clean(item.get("source")),
        created_at=_clean(item.get("created_at")),
    )


def _world_asking(item: dict) -> Optional[WorldAsking]:
    text = _clean(item.get("insight"))
    if not text:
        return None
    return WorldAsking(
        text,
        _clean(item.get("fires_element")),
        _clean(item.get("source")),
        _clean(item.get("created_at")),
    )


def _weekly_action(item: dict) -> Optional[WeeklyAction]:
    text = _clean(item.get("action"))
    if not text:
        return None
    return WeeklyAction(
        text,
        _clean(item.get("fires_element")),
        _clean(item.get("assigned_date")),
        _clean(item.get("status")) or "active",
    )


def decode_goals(raw: Any) -> List[Goal]:
    return _decode_list(raw, _goal, "goals")


def decode_challenges(raw: Any) -> List[Challenge]:
    return _decode_list(raw, _challenge, "challenges")


def decode_key_quotes(raw: Any) -> List[KeyQuote]:
    return _decode_list(raw, _key_quote, "key_quotes")


def decode_superpowers(raw: Any) -> List[Superpower]:
    return _decode_list(raw, _superpower, "superpowers")


def decode_world_asking(raw: Any) -> List[WorldAsking]:
    return _decode_list(raw, _world_asking, "world_asking")


def decode_weekly_actions(raw: Any) -> List[WeeklyAction]:
    return _decode_list(raw, _weekly_action, "weekly_actions")


def decode_zone_interpretation(raw: Any) -> Optional[ZoneInterpretation]:
    if not isinstance(raw, dict):
        return None
    zone = _clean(raw.get("zone"))
    if not zone:
        return None
    return ZoneInterpretation(
        zone=zone,
        headline=_clean(raw.get("headline")) or "",
        description=_clean(raw.get("description")) or "",
        the_work=_clean(raw.get("the_work")) or "",
        custom_note=_clean(raw.get("custom_note")) or "",
        source=_clean(raw.get("source")),
        updated_at=_clean(raw.get("updated_at")),
    )


def decode_str_list(raw: Any) -> List[str]:
    """Plain string lists (fires_focus, key_themes); non-strings are skipped."""
    if not isinstance(raw, list):
        return []
    return [s for s in (_clean(x) for x in raw) if s]


def decode_str_map(raw: Any) -> dict[str, str]:
    """Answer maps keyed by question code (fs_answers, ps_answers, zone_breakdown)."""
    if not isinstance(raw, dict):
        return {}
    out: dict[str, str] = {}
    for key, value in raw.items():
        text = _clean(value)
        if text:
            out[str(key)] = text
    return out
