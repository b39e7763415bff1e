import pytest
from fastapi.testclient import TestClient

from coachmap.api import app, get_llm, get_session_factory
from coachmap.db import SessionLocal

from conftest import fake_llm

ENDPOINT = "/functions/generate-narrative-map"


@pytest.fixture
def client():
    app.dependency_overrides[get_session_factory] = lambda: SessionLocal
    app.dependency_overrides[get_llm] = lambda: fake_llm()
    yield TestClient(app)
    app.dependency_overrides.clear()


def _assert_cors(resp):
    assert resp.headers["access-control-allow-origin"] == "*"
    assert "content-type" in resp.headers["access-control-allow-headers"]


def test_generate_success(client, scenario_a):
    resp = client.post(ENDPOINT, json={"clientEmail": "a@x.com"})
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["engagement_id"] == scenario_a.id
    assert body["message"] == "Narrative Integrity Map generated successfully"
    assert body["insights"]["ai_insights_version"] == 1
    _assert_cors(resp)


def test_generate_with_explicit_engagement_id(client, scenario_a):
    resp = client.post(ENDPOINT, json={"clientEmail": "a@x.com", "engagementId": scenario_a.id, "regenerateAll": True})
    assert resp.status_code == 200
    assert resp.json()["engagement_id"] == scenario_a.id


def test_missing_email_is_400(client):
    resp = client.post(ENDPOINT, json={})
    assert resp.status_code == 400
    assert resp.json() == {"error": "Client email is required"}
    _assert_cors(resp)


def test_non_json_body_is_400(client):
    resp = client.post(ENDPOINT, content="not json", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert "error" in resp.json()


def test_no_active_engagement_is_404(client):
    resp = client.post(ENDPOINT, json={"clientEmail": "nobody@x.com"})
    assert resp.status_code == 404
    assert resp.json() == {"error": "No active engagement found for this client"}
    _assert_cors(resp)


def test_generation_failure_is_500(client, scenario_a):
    app.dependency_overrides[get_llm] = lambda: fake_llm(error=RuntimeError("boom"))
    resp = client.post(ENDPOINT, json={"clientEmail": "a@x.com"})
    assert resp.status_code == 500
    assert resp.json()["error"].startswith("Text generation failed")
    _assert_cors(resp)


def test_unparseable_output_is_500(client, scenario_a):
    app.dependency_overrides[get_llm] = lambda: fake_llm("here you go: {not json")
    resp = client.post(ENDPOINT, json={"clientEmail": "a@x.com"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Failed to parse AI response as JSON"}


def test_preflight_returns_empty_200_with_cors(client):
    resp = client.options(ENDPOINT)
    assert resp.status_code == 200
    assert resp.content == b""
    _assert_cors(resp)


def test_stored_map_and_history_endpoints(client, scenario_a):
    client.post(ENDPOINT, json={"clientEmail": "a@x.com"})
    client.post(ENDPOINT, json={"clientEmail": "a@x.com"})

    stored = client.get(f"/engagements/{scenario_a.id}/narrative-map")
    assert stored.status_code == 200
    assert stored.json()["ai_insights_version"] == 2

    history = client.get(f"/engagements/{scenario_a.id}/narrative-map/history").json()["history"]
    assert [h["new_value"]["ai_insights_version"] for h in history] == [2, 1]


def test_stored_map_unknown_engagement_is_404(client):
    resp = client.get("/engagements/missing/narrative-map")
    assert resp.status_code == 404
    assert resp.json() == {"error": "Engagement not found"}


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["ok"] is True


def test_admin_history_requires_token(client, monkeypatch, scenario_a):
    monkeypatch.setenv("ADMIN_API_TOKEN", "s3cret")
    client.post(ENDPOINT, json={"clientEmail": "a@x.com"})

    assert client.get("/admin/narrative-map/history").status_code == 401
    assert client.get("/admin/narrative-map/history", headers={"X-Admin-Token": "nope"}).status_code == 401

    resp = client.get("/admin/narrative-map/history", headers={"X-Admin-Token": "s3cret"})
    assert resp.status_code == 200
    assert scenario_a.id in resp.text
    assert "a@x.com" in resp.text

    detail = client.get(f"/admin/engagements/{scenario_a.id}", headers={"X-Admin-Token": "s3cret"})
    assert detail.status_code == 200
    assert "Steady under pressure" in detail.text


def test_admin_without_configured_token_is_503(client, monkeypatch):
    monkeypatch.delenv("ADMIN_API_TOKEN", raising=False)
    monkeypatch.setattr("coachmap.admin_routes.settings.ADMIN_API_TOKEN", None)
    resp = client.get("/admin/narrative-map/history", headers={"X-Admin-Token": "anything"})
    assert resp.status_code == 503


def test_null_regenerate_all_is_accepted(client, scenario_a):
    resp = client.post(ENDPOINT, json={"clientEmail": "a@x.com", "regenerateAll": None})
    assert resp.status_code == 200
    assert resp.json()["engagement_id"] == scenario_a.id


@pytest.mark.parametrize(
    "body, field",
    [
        ({"clientEmail": 42}, "clientEmail"),
        ({"clientEmail": ["a@x.com"]}, "clientEmail"),
        ({"clientEmail": "a@x.com", "engagementId": {"id": 1}}, "engagementId"),
    ],
)
def test_malformed_fields_are_400(client, body, field):
    resp = client.post(ENDPOINT, json=body)
    assert resp.status_code == 400
    assert resp.json() == {"error": f"Invalid request field: {field}"}
    _assert_cors(resp)


def test_admin_views_use_the_injected_session_factory(client, monkeypatch, tmp_path):
    from sqlalchemy import create_engine
    from sqlalchemy.orm import sessionmaker

    from coachmap.models import Base, CoachingEngagement, NarrativeMapHistory

    other_engine = create_engine(f"sqlite:///{tmp_path / 'admin.db'}", future=True)
    Base.metadata.create_all(bind=other_engine)
    OtherSession = sessionmaker(bind=other_engine, autoflush=False)
    with OtherSession() as s:
        eng = CoachingEngagement(id="eng-elsewhere", client_email="elsewhere@x.com", status="active")
        s.add(eng)
        s.flush()
        s.add(NarrativeMapHistory(engagement_id=eng.id, field_name="ai_generation",
                                  new_value={"ai_insights_version": 1}, changed_by="ai"))
        s.commit()

    monkeypatch.setenv("ADMIN_API_TOKEN", "s3cret")
    app.dependency_overrides[get_session_factory] = lambda: OtherSession
    try:
        headers = {"X-Admin-Token": "s3cret"}
        listing = client.get("/admin/narrative-map/history", headers=headers)
        assert "elsewhere@x.com" in listing.text
        detail = client.get("/admin/engagements/eng-elsewhere", headers=headers)
        assert detail.status_code == 200
    finally:
        other_engine.dispose()
