"""
Pydantic shapes for the generator's JSON contract and the HTTP request body.
"""
from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .debug_utils import debug_log
from .models import FIRES_ELEMENTS

MAX_SUPERPOWERS = 3
MAX_WORLD_ASKING = 4
MAX_WEEKLY_ACTIONS = 2


def _fires(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    key = value.strip().lower()
    return key if key in FIRES_ELEMENTS else None


class _Item(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    fires_element: Optional[str] = None

    @field_validator("fires_element", mode="before")
    @classmethod
    def _normalise_fires(cls, v):
        return _fires(v)


class GeneratedSuperpower(_Item):
    superpower: str = Field(min_length=1)
    description: str = ""
    evidence: List[str] = Field(default_factory=list)

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, v):
        return v if isinstance(v, str) else ""

    @field_validator("evidence", mode="before")
    @classmethod
    def _evidence_list(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(x).strip() for x in v if isinstance(x, (str, int, float)) and str(x).strip()]


class GeneratedWorldAsking(_Item):
    insight: str = Field(min_length=1)


class GeneratedWeeklyAction(_Item):
    action: str = Field(min_length=1)


class GeneratedZoneNote(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    zone: Optional[str] = None
    custom_note: str = ""

    @field_validator("custom_note", mode="before")
    @classmethod
    def _note_text(cls, v):
        return v if isinstance(v, str) else ""


class GeneratedInsights(BaseModel):
    superpowers_claimed: List[GeneratedSuperpower] = Field(default_factory=list)
    superpowers_emerging: List[GeneratedSuperpower] = Field(default_factory=list)
    superpowers_hidden: List[GeneratedSuperpower] = Field(default_factory=list)
    zone_interpretation: GeneratedZoneNote = Field(default_factory=GeneratedZoneNote)
    world_asking: List[GeneratedWorldAsking] = Field(default_factory=list)
    suggested_weekly_actions: List[GeneratedWeeklyAction] = Field(default_factory=list)
    suggested_anchor_quote: Optional[str] = None

    def is_empty(self) -> bool:
        return not (
            self.superpowers_claimed
            or self.superpowers_emerging
            or self.superpowers_hidden
            or self.world_asking
            or self.suggested_weekly_actions
            or self.zone_interpretation.custom_note
            or self.suggested_anchor_quote
        )


def _valid_items(raw: Any, model: type[BaseModel], key: str, cap: int) -> list:
    if raw is None:
        return []
    if not isinstance(raw, list):
        debug_log(f"{key}: expected list, got {type(raw).__name__}", tag="narrative-map")
        return []
    out = []
    for idx, item in enumerate(raw):
        try:
            out.append(model.model_validate(item))
        except ValidationError as e:
            debug_log(f"{key}[{idx}] rejected", {"item": item, "errors": e.errors()}, tag="narrative-map")
    if len(out) > cap:
        debug_log(f"{key}: capped {len(out)} -> {cap}", tag="narrative-map")
    return out[:cap]


def validate_insights(data: dict[str, Any]) -> GeneratedInsights:
    """Validate a parsed generator payload item by item.

    Malformed items are dropped, lists are capped at the contract maxima and
    unknown FIRES elements become None. The top-level shape is never rejected
    here; callers decide whether an empty result is acceptable.
    """
    zone_raw = data.get("zone_interpretation")
    try:
        zone = GeneratedZoneNote.model_validate(zone_raw) if isinstance(zone_raw, dict) else GeneratedZoneNote()
    except ValidationError:
        zone = GeneratedZoneNote()
    quote = data.get("suggested_anchor_quote")
    quote = quote.strip() if isinstance(quote, str) and quote.strip() else None
    return GeneratedInsights(
        superpowers_claimed=_valid_items(data.get("superpowers_claimed"), GeneratedSuperpower, "superpowers_claimed", MAX_SUPERPOWERS),
        superpowers_emerging=_valid_items(data.get("superpowers_emerging"), GeneratedSuperpower, "superpowers_emerging", MAX_SUPERPOWERS),
        superpowers_hidden=_valid_items(data.get("superpowers_hidden"), GeneratedSuperpower, "superpowers_hidden", MAX_SUPERPOWERS),
        zone_interpretation=zone,
        world_asking=_valid_items(data.get("world_asking"), GeneratedWorldAsking, "world_asking", MAX_WORLD_ASKING),
        suggested_weekly_actions=_valid_items(data.get("suggested_weekly_actions"), GeneratedWeeklyAction, "suggested_weekly_actions", MAX_WEEKLY_ACTIONS),
        suggested_anchor_quote=quote,
    )


class GenerateNarrativeMapRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    clientEmail: Optional[str] = None
    engagementId: Optional[str] = None
    regenerateAll: Any = None  # accepted and ignored; generation always rebuilds every field
