import pytest
from fastapi.testclient import TestClient

from trustgrid.main import app
from trustgrid.auth import create_access_token
from trustgrid.accounts.profiles import Profile
from trustgrid.deps import get_testimonial_store, get_profile_store, get_analyzer, get_notifier
from trustgrid.rate_limit import rate_limit_collect, rate_limit_verify


async def _no_limit():
    return None


@pytest.fixture
def wiring(store, profiles, analyzer, notifier):
    """Mutable handles so a test can swap the analyzer or notifier."""
    deps = {"analyzer": analyzer, "notifier": notifier}
    app.dependency_overrides[get_testimonial_store] = lambda: store
    app.dependency_overrides[get_profile_store] = lambda: profiles
    app.dependency_overrides[get_analyzer] = lambda: deps["analyzer"]
    app.dependency_overrides[get_notifier] = lambda: deps["notifier"]
    app.dependency_overrides[rate_limit_collect] = _no_limit
    app.dependency_overrides[rate_limit_verify] = _no_limit
    yield deps
    app.dependency_overrides.clear()


@pytest.fixture
def client(wiring, profiles):
    profiles.upsert(Profile(id="owner-1", username="acme", company_name="Acme Studio"))
    return TestClient(app)


@pytest.fixture
def auth():
    return {"Authorization": f"Bearer {create_access_token('owner-1', 'owner@acme.test')}"}


def _add(client, auth, **body):
    payload = {"client_name": "Sara", "text": "They shipped 3 releases ahead of schedule."}
    payload.update(body)
    return client.post("/v1/testimonials", json=payload, headers=auth)


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert "X-Request-Id" in response.headers


def test_owner_endpoints_require_token(client):
    assert client.get("/v1/testimonials").status_code == 401
    bad = {"Authorization": "Bearer not-a-jwt"}
    assert client.get("/v1/trust/score", headers=bad).status_code == 401


def test_add_manual_proof_is_verified_and_scored(client, auth):
    response = _add(client, auth)
    assert response.status_code == 201
    data = response.json()
    assert data["testimonial"]["status"] == "verified"
    assert data["analysis"]["score"] == 88

    report = client.get("/v1/trust/score", headers=auth).json()
    # 10 + 88*0.5 + 2
    assert report["score"] == 56
    assert report["verified_count"] == 1


def test_validation_errors_map_to_400(client, auth, store):
    response = _add(client, auth, text="")
    assert response.status_code == 400
    body = response.json()
    assert body["error"] == "validation_error"
    assert body["detail"]["field"] == "text"
    assert "request_id" in body
    assert len(store) == 0


def test_email_flow_end_to_end(client, auth, notifier):
    response = _add(client, auth, verification_method="email", client_email="sara@example.com")
    data = response.json()
    assert data["testimonial"]["status"] == "pending_verification"
    assert "verification_token" not in data["testimonial"]
    assert data["notification_sent"] is True

    token = notifier.verification_requests[0]["link"].rsplit("/", 1)[1]

    preview = client.get(f"/verify/{token}").json()
    assert preview["status"] == "pending_verification"
    assert preview["company_name"] == "Acme Studio"
    assert "client_email" not in preview["testimonial"]

    first = client.post(f"/verify/{token}")
    assert first.status_code == 200
    assert first.json()["outcome"] == "verified"

    second = client.post(f"/verify/{token}")
    assert second.json()["outcome"] == "already_verified"
    assert second.json()["testimonial"]["verified_at"] == first.json()["testimonial"]["verified_at"]


def test_unknown_token_is_404(client):
    response = client.post("/verify/nothing-here")
    assert response.status_code == 404
    assert response.json()["error"] == "not_found"


def test_email_failure_still_creates(client, auth, wiring, failing_notifier, store):
    wiring["notifier"] = failing_notifier
    response = _add(client, auth, verification_method="email", client_email="sara@example.com")
    assert response.status_code == 201
    data = response.json()
    assert data["notification_sent"] is False
    assert "Too many emails" in data["notification_error"]
    assert len(store) == 1


def test_resend_conflicts_once_verified(client, auth):
    testimonial_id = _add(client, auth).json()["testimonial"]["id"]
    response = client.post(f"/v1/testimonials/{testimonial_id}/resend", headers=auth)
    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


def test_public_wall_shows_verified_only(client, auth):
    _add(client, auth, client_name="Verified Vera")
    _add(client, auth, client_name="Pending Pat", verification_method="email", client_email="pat@example.com")

    wall = client.get("/walls/ACME").json()
    assert wall["profile"]["display_name"] == "Acme Studio"
    assert [t["client_name"] for t in wall["testimonials"]] == ["Verified Vera"]
    assert wall["trust_score"] == 56

    assert client.get("/walls/nobody").status_code == 404
    assert client.get("/v1/analytics", headers=auth).json()["wall_views"] == 1


def test_collection_submission_waits_for_owner(client, auth):
    form = client.get("/collect/acme").json()["form"]
    assert [q["id"] for q in form["questions"]] == ["q1", "q2"]

    response = client.post("/collect/acme", json={
        "client_name": "Reviewer Rob",
        "answers": {"q1": "Clear communication throughout", "q2": 5},
    })
    assert response.status_code == 201
    created = response.json()
    assert created["status"] == "pending"

    assert client.get("/walls/acme").json()["testimonials"] == []

    verified = client.post(f"/v1/testimonials/{created['id']}/verify", headers=auth)
    assert verified.json()["status"] == "verified"
    assert verified.json()["rating"] == 5
    assert [t["client_name"] for t in client.get("/walls/acme").json()["testimonials"]] == ["Reviewer Rob"]


def test_collection_requires_answers(client):
    response = client.post("/collect/acme", json={"client_name": "Rob", "answers": {"q1": "Nice"}})
    assert response.status_code == 400


def test_malformed_handle_is_400_not_404(client):
    for path in ("/walls/a!", "/walls/x", "/walls/acme_studio/widget", "/collect/x"):
        response = client.get(path)
        assert response.status_code == 400, path
        assert response.json()["error"] == "validation_error"

    assert client.post("/collect/no", json={"client_name": "Rob", "answers": {}}).status_code == 400
    assert client.get("/walls/nobody").status_code == 404


def test_other_owner_cannot_touch_records(client, auth):
    testimonial_id = _add(client, auth).json()["testimonial"]["id"]
    intruder = {"Authorization": f"Bearer {create_access_token('owner-2')}"}

    assert client.delete(f"/v1/testimonials/{testimonial_id}", headers=intruder).status_code == 404
    assert client.post(f"/v1/testimonials/{testimonial_id}/verify", headers=intruder).status_code == 404
    assert client.get("/v1/testimonials", headers=intruder).json() == []

    assert client.delete(f"/v1/testimonials/{testimonial_id}", headers=auth).status_code == 204
    assert client.get("/v1/testimonials", headers=auth).json() == []


def test_card_style_cycle_and_set(client, auth):
    testimonial_id = _add(client, auth).json()["testimonial"]["id"]
    url = f"/v1/testimonials/{testimonial_id}/style"
    assert client.patch(url, json={}, headers=auth).json()["card_style"] == "lime"
    assert client.patch(url, json={"style": "white"}, headers=auth).json()["card_style"] == "white"


def test_widget_config_roundtrip_and_public_widget(client, auth):
    _add(client, auth, client_name="Low", rating=2)
    _add(client, auth, client_name="High", rating=5)

    saved = client.put("/v1/widget", json={"layout": "list", "min_rating": 4, "show_score": False}, headers=auth)
    assert saved.status_code == 200
    assert client.get("/v1/widget", headers=auth).json()["layout"] == "list"

    widget = client.get("/walls/acme/widget").json()
    assert [t["client_name"] for t in widget["testimonials"]] == ["High"]
    assert "score" not in widget["testimonials"][0]

    embed = client.get("/v1/widget/embed", headers=auth).json()
    assert "/widget/acme" in embed["embed_code"]


def test_profile_handle_rules(client, auth, profiles):
    profiles.upsert(Profile(id="owner-2", username="taken"))

    assert client.put("/v1/profile", json={"username": "ab"}, headers=auth).status_code == 400
    assert client.put("/v1/profile", json={"username": "taken"}, headers=auth).status_code == 409

    updated = client.put("/v1/profile", json={"username": "Acme-Works/", "primary_color": "#112233"}, headers=auth)
    assert updated.status_code == 200
    assert updated.json()["username"] == "acme-works"


def test_team_invite_reports_email_failure(client, auth, wiring, failing_notifier):
    wiring["notifier"] = failing_notifier
    response = client.post("/v1/team/invites", json={"email": "dev@acme.test", "role": "Editor"}, headers=auth)
    assert response.status_code == 201
    assert response.json()["email_sent"] is False

    invites = client.get("/v1/team/invites", headers=auth).json()
    assert [(i["email"], i["role"], i["status"]) for i in invites] == [("dev@acme.test", "Editor", "Pending")]


def test_analyze_falls_back_when_analyzer_down(client, auth, wiring, failing_analyzer):
    wiring["analyzer"] = failing_analyzer
    response = client.post("/v1/analyze", json={"text": "Helpful and quick"}, headers=auth)
    assert response.status_code == 200
    assert response.json()["estimated"] is True
