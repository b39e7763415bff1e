from coachmap.debug_utils import debug_log, preview
from coachmap.records import (
    decode_goals,
    decode_key_quotes,
    decode_str_list,
    decode_str_map,
    decode_superpowers,
    decode_zone_interpretation,
)


def test_invalid_items_are_dropped_on_read():
    goals = decode_goals([{"goal": "Speak up", "fires_lever": "influence"}, {"goal": ""}, "loose string", None])
    assert [(g.goal, g.fires_lever) for g in goals] == [("Speak up", "influence")]


def test_non_list_columns_decode_to_empty():
    assert decode_superpowers({"superpower": "not in a list"}) == []
    assert decode_goals(None) == []
    assert decode_str_list("influence") == []


def test_superpower_evidence_keeps_only_text():
    [sp] = decode_superpowers([{"superpower": "Calm", "evidence": ["kept", "", None, 3]}])
    assert sp.evidence == ["kept", "3"]
    assert sp.description == ""


def test_key_quotes_keep_optional_context():
    quotes = decode_key_quotes([{"quote": "I know"}, {"quote": "Out loud", "context": "on meetings"}])
    assert [q.context for q in quotes] == [None, "on meetings"]


def test_zone_interpretation_requires_a_zone():
    assert decode_zone_interpretation({"headline": "no zone"}) is None
    zi = decode_zone_interpretation({"zone": "owning", "custom_note": "Keep going"})
    assert zi.zone == "owning"
    assert zi.headline == ""
    assert zi.custom_note == "Keep going"


def test_str_map_skips_blank_answers():
    assert decode_str_map({"fs1": "Run a calm all-hands", "fs3": "  ", "fs4": 7}) == {"fs1": "Run a calm all-hands", "fs4": "7"}


def test_debug_log_is_gated(monkeypatch, capsys):
    monkeypatch.delenv("COACHMAP_DEBUG", raising=False)
    debug_log("hidden", {"a": 1}, tag="t")
    assert capsys.readouterr().out == ""

    monkeypatch.setenv("COACHMAP_DEBUG", "1")
    debug_log("shown", {"a": 1}, tag="t")
    assert capsys.readouterr().out.strip() == '[t] shown :: {"a": 1}'


def test_preview_flattens_and_truncates():
    assert preview("a\nb") == "a b"
    assert preview("x" * 300, limit=10) == "x" * 10 + "…"
