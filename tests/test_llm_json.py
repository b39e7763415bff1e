import json

import pytest

from coachmap.llm_json import parse_json_object, strip_code_fence


def test_fenced_and_bare_json_parse_identically():
    fenced = '```json\n{"a":1}\n```'
    bare = '{"a":1}'
    assert parse_json_object(fenced) == parse_json_object(bare) == {"a": 1}


def test_strip_code_fence_handles_uppercase_and_unlabelled_fences():
    assert strip_code_fence('```JSON\n{"a": 2}\n```') == '{"a": 2}'
    assert strip_code_fence('```\n{"b": 3}\n```') == '{"b": 3}'


def test_strip_code_fence_ignores_prose_around_the_fence():
    raw = 'Here is the map:\n```json\n{"anchor": "x"}\n```\nHope this helps.'
    assert strip_code_fence(raw) == '{"anchor": "x"}'


def test_strip_code_fence_without_fence_returns_trimmed_text():
    assert strip_code_fence('   {"a": 1}\n') == '{"a": 1}'
    assert strip_code_fence(None) == ""


@pytest.mark.parametrize("raw", ["", "   ", "```json\n```", "not json at all", "[1, 2, 3]", '"just a string"'])
def test_parse_json_object_rejects_non_objects(raw):
    with pytest.raises(ValueError):
        parse_json_object(raw)


def test_bare_object_with_backticks_inside_strings_is_not_unwrapped():
    payload = {
        "superpowers_claimed": [],
        "suggested_anchor_quote": "I write ```code``` and ```tests```",
    }
    assert parse_json_object(json.dumps(payload)) == payload


def test_fenced_object_with_backticks_inside_strings():
    raw = 'Sure:\n```json\n{"quote": "uses `inline` ticks"}\n```'
    assert parse_json_object(raw) == {"quote": "uses `inline` ticks"}
