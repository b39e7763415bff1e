import pytest

from coachmap import llm
from coachmap.errors import UpstreamError


def test_model_comes_from_env_then_settings(monkeypatch):
    monkeypatch.setenv("NARRATIVE_MAP_MODEL", "gpt-4o-mini")
    assert llm.narrative_map_model() == "gpt-4o-mini"

    monkeypatch.delenv("NARRATIVE_MAP_MODEL")
    monkeypatch.setattr(llm.settings, "NARRATIVE_MAP_MODEL", "gpt-4.1")
    assert llm.narrative_map_model() == "gpt-4.1"


def test_client_is_cached_per_model(monkeypatch):
    monkeypatch.setenv("NARRATIVE_MAP_MODEL", "gpt-4o-mini")
    monkeypatch.setattr(llm, "_clients", {})
    first = llm.get_llm_client()
    assert llm.get_llm_client() is first
    assert llm.model_name_of(first) == "gpt-4o-mini"


def test_missing_api_key_is_upstream_error(monkeypatch):
    monkeypatch.setenv("NARRATIVE_MAP_MODEL", "gpt-4o-mini")
    monkeypatch.setattr(llm, "_clients", {})
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(llm.settings, "OPENAI_API_KEY", None)
    with pytest.raises(UpstreamError) as exc:
        llm.get_llm_client()
    assert exc.value.message == "OPENAI_API_KEY not configured"
