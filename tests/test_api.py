"""HTTP surface tests against an in-memory engine."""

import pytest
from fastapi.testclient import TestClient

from trust_safety.api.main import create_app
from trust_safety.models.enums import PenaltySeverity


@pytest.fixture
def client(engine):
    return TestClient(create_app(engine))


def classify(client, user_id="u1", scope_id="creator_a"):
    response = client.post("/classify", json={"user_id": user_id, "text": "message", "scope_id": scope_id})
    assert response.status_code == 200
    return response.json()


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}


def test_classify_block(client, backend):
    backend.set_overall(0.92)
    body = classify(client)
    assert body["action"] == "block"
    assert body["allowed"] is False
    assert body["violation_id"]


def test_classify_rejects_missing_fields(client):
    assert client.post("/classify", json={"user_id": "u1"}).status_code == 422


def test_queue_and_decision(client, backend):
    backend.set_overall(0.65)
    item_id = classify(client)["review_item_id"]

    queue = client.get("/queue").json()
    assert [i["id"] for i in queue] == [item_id]

    response = client.post(f"/queue/{item_id}/decision",
                           json={"decision": "approve", "moderator_id": "mod_1"})
    assert response.status_code == 200
    assert response.json()["status"] == "approved"
    assert client.get("/queue").json() == []

    again = client.post(f"/queue/{item_id}/decision",
                        json={"decision": "reject", "moderator_id": "mod_2", "notes": "late"})
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_state"


def test_invalid_timeout_is_bad_request(client, backend):
    backend.set_overall(0.65)
    item_id = classify(client)["review_item_id"]
    response = client.post(f"/queue/{item_id}/decision",
                           json={"decision": "timeout", "moderator_id": "mod_1", "timeout_minutes": 90})
    assert response.status_code == 400


def test_unknown_item_is_not_found(client):
    response = client.post("/queue/00000000-0000-0000-0000-000000000000/decision",
                           json={"decision": "approve", "moderator_id": "mod_1"})
    assert response.status_code == 404


def test_escalate_and_admin_penalty(client, backend):
    backend.set_overall(0.65, top="hate_speech")
    item_id = classify(client)["review_item_id"]
    escalated = client.post(f"/queue/{item_id}/decision",
                            json={"decision": "escalate", "moderator_id": "mod_1", "notes": "slur"})
    assert escalated.json()["status"] == "escalated"

    response = client.post(f"/queue/{item_id}/admin-penalty", json={
        "admin_id": "admin_1", "severity": "temporary", "reason": "Hate speech", "duration_hours": 72,
    })
    assert response.status_code == 200
    assert response.json()["user_id"] == "u1"
    assert response.json()["category"] == "hate_speech"


def test_strikes_and_ban_check(client):
    for _ in range(4):
        response = client.post("/strikes", json={
            "user_id": "u1", "scope_id": "creator_a", "strike_type": "harassment", "reason": "abuse",
        })
        assert response.status_code == 201
    assert response.json()["level"] == 4
    assert response.json()["expires_at"] is None

    assert client.get("/users/u1/banned", params={"scope_id": "creator_a"}).json()["banned"] is True
    assert client.get("/users/u1/banned", params={"scope_id": "creator_b"}).json()["banned"] is False


def test_appeal_flow(client):
    for _ in range(3):
        strike = client.post("/strikes", json={
            "user_id": "u1", "scope_id": "creator_a", "strike_type": "harassment", "reason": "abuse",
        }).json()

    short = client.post("/appeals", json={"user_id": "u1", "target_id": strike["id"], "reason": "no"})
    assert short.status_code == 400

    created = client.post("/appeals", json={
        "user_id": "u1", "target_id": strike["id"], "reason": "This was a misunderstanding",
    })
    assert created.status_code == 201
    appeal_id = created.json()["id"]

    resolved = client.post(f"/appeals/{appeal_id}/resolve",
                           json={"decision": "accept", "admin_id": "admin_1", "message": "Overturned"})
    assert resolved.status_code == 200
    assert resolved.json()["status"] == "approved"
    assert client.get("/users/u1/banned", params={"scope_id": "creator_a"}).json()["banned"] is False


def test_non_appealable_penalty_is_forbidden(client, engine):
    with client:
        penalty = client.portal.call(
            engine.enforcement.apply_admin_penalty, "u1", "admin_1", PenaltySeverity.PERMANENT, "CSAM",
            None, "sexual_content_minors",
        )
        response = client.post("/appeals", json={
            "user_id": "u1", "target_id": str(penalty.id), "reason": "Please reconsider this",
        })
    assert response.status_code == 403
    assert response.json()["error"] == "policy_blocked"


def test_lockdown_flow(client, engine):
    with client:
        for i in range(15):
            client.portal.call(engine.mass_report.record_report, "stream_1", f"viewer_{i}", "creator_a")

        status = client.get("/streams/stream_1/lockdown").json()
        assert status["triggered"] is True
        assert status["unique_reporters"] == 15
        event_id = status["event"]["id"]

        ack = client.post(f"/lockdown/{event_id}/acknowledge", json={"creator_id": "creator_a"})
        assert ack.status_code == 200
        assert ack.json()["creator_acknowledged"] is True

        again = client.post(f"/lockdown/{event_id}/acknowledge", json={})
        assert again.status_code == 409
        assert client.get("/streams/stream_1/lockdown").json()["triggered"] is False
