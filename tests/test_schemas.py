from coachmap.schemas import (
    MAX_SUPERPOWERS,
    MAX_WEEKLY_ACTIONS,
    GenerateNarrativeMapRequest,
    validate_insights,
)

from conftest import VALID_INSIGHTS


def test_valid_payload_round_trips_through_validation():
    insights = validate_insights(VALID_INSIGHTS)
    assert [s.superpower for s in insights.superpowers_claimed] == ["Steady under pressure", "Listening first"]
    assert insights.superpowers_claimed[0].fires_element == "resilience"
    assert insights.zone_interpretation.custom_note.startswith("The evidence is there")
    assert insights.suggested_anchor_quote == "I already know what I think."
    assert not insights.is_empty()


def test_malformed_items_are_dropped_not_fatal():
    data = {
        "superpowers_claimed": [
            {"superpower": "", "description": "no name"},
            {"description": "missing name"},
            "not an object",
            {"superpower": "Kept", "description": None, "evidence": "single line", "fires_element": "astrology"},
        ],
        "world_asking": {"insight": "should have been a list"},
        "suggested_weekly_actions": [{"action": "Do one thing"}],
    }
    insights = validate_insights(data)
    assert len(insights.superpowers_claimed) == 1
    kept = insights.superpowers_claimed[0]
    assert kept.superpower == "Kept"
    assert kept.description == ""
    assert kept.evidence == ["single line"]
    assert kept.fires_element is None
    assert insights.world_asking == []
    assert [a.action for a in insights.suggested_weekly_actions] == ["Do one thing"]


def test_lists_are_capped():
    data = {
        "superpowers_hidden": [{"superpower": f"S{i}"} for i in range(6)],
        "suggested_weekly_actions": [{"action": f"A{i}"} for i in range(5)],
    }
    insights = validate_insights(data)
    assert len(insights.superpowers_hidden) == MAX_SUPERPOWERS
    assert len(insights.suggested_weekly_actions) == MAX_WEEKLY_ACTIONS


def test_empty_payload_is_reported_empty():
    assert validate_insights({}).is_empty()
    assert validate_insights({"zone_interpretation": {"custom_note": 42}, "suggested_anchor_quote": "  "}).is_empty()


def test_request_body_tolerates_missing_and_extra_fields():
    req = GenerateNarrativeMapRequest.model_validate({"clientEmail": "a@x.com", "somethingElse": 1})
    assert req.clientEmail == "a@x.com"
    assert req.engagementId is None
    assert req.regenerateAll is False
