"""
Endpoint tests through the FastAPI test client
"""
from datetime import datetime, timedelta, timezone


def post_event(client, headers, **overrides):
    payload = {
        "actor_id": "cust_1",
        "role": "requester",
        "event_type": "no-show",
        "counterpart_id": "prov_1",
    }
    payload.update(overrides)
    return client.post("/trust/events", json=payload, headers=headers)


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "running"


def test_health_reports_database(client):
    body = client.get("/health").json()

    assert body["database"] == "healthy"
    assert body["status"] == "healthy"
    assert "timestamp" in body


def test_record_event_requires_api_key(client):
    response = client.post("/trust/events", json={"actor_id": "a", "role": "requester", "event_type": "no-show"})

    assert response.status_code == 401


def test_record_event(client, api_headers):
    response = post_event(client, api_headers, dedup_key="incident:1", refs={"job_id": "job_9"})

    assert response.status_code == 200
    body = response.json()
    assert body["trust_level"] == 0
    assert body["deduplicated"] is False
    assert body["transition"] == "held"

    replay = post_event(client, api_headers, dedup_key="incident:1").json()
    assert replay["deduplicated"] is True
    assert replay["event_id"] == body["event_id"]


def test_second_no_show_promotes(client, api_headers):
    post_event(client, api_headers)
    body = post_event(client, api_headers, counterpart_id="prov_2").json()

    assert body["trust_level"] == 1
    assert body["previous_trust_level"] == 0
    assert body["transition"] == "promoted"


def test_unknown_event_type_is_400(client, api_headers):
    response = post_event(client, api_headers, event_type="rude-message")

    assert response.status_code == 400
    assert "rude-message" in response.json()["detail"]


def test_category_mismatch_is_400(client, api_headers):
    assert post_event(client, api_headers, category="positive").status_code == 400


def test_unknown_role_in_body_is_400(client, api_headers):
    assert post_event(client, api_headers, role="admin").status_code == 400


def test_blank_actor_is_rejected(client, api_headers):
    assert post_event(client, api_headers, actor_id="").status_code == 422
    assert post_event(client, api_headers, actor_id="   ").status_code == 400


def test_future_occurrence_is_400(client, api_headers):
    future = (datetime.now(timezone.utc) + timedelta(days=1)).isoformat()

    assert post_event(client, api_headers, occurred_at=future).status_code == 400


def test_missing_actor_is_422(client, api_headers):
    response = client.post("/trust/events", json={"role": "requester", "event_type": "no-show"}, headers=api_headers)

    assert response.status_code == 422


def test_guidance_for_unknown_actor(client, api_headers):
    response = client.get("/trust/requester/nobody/guidance", headers=api_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["level"] == 0
    assert body["status_label"] == "Normal"


def test_guidance_rejects_unknown_role_path(client, api_headers):
    assert client.get("/trust/admin/nobody/guidance", headers=api_headers).status_code == 422


def test_eligibility(client, api_headers):
    post_event(client, api_headers, role="fulfiller")
    post_event(client, api_headers, role="fulfiller", event_type="late-arrival", counterpart_id="cust_2")

    response = client.get(
        "/trust/fulfiller/cust_1/eligibility", params={"urgency": "high", "action": "accept-job"}, headers=api_headers
    )

    assert response.status_code == 200
    body = response.json()
    assert body["trust_level"] == 1
    assert body["eligible"] is True
    assert body["requires_fee"] is False
    assert body["warnings"]


def test_eligibility_rejects_unknown_urgency(client, api_headers):
    response = client.get("/trust/requester/a/eligibility", params={"urgency": "extreme"}, headers=api_headers)

    assert response.status_code == 422


def test_trust_state_requires_api_key(client, api_headers):
    post_event(client, api_headers, actor_id="cust_9")
    post_event(client, api_headers, actor_id="cust_9", counterpart_id="prov_2")

    assert client.get("/trust/requester/cust_9/guidance").status_code == 401
    assert client.get("/trust/requester/cust_9/eligibility").status_code == 401
    wrong_key = {"X-API-Key": "not-the-key"}
    assert client.get("/trust/requester/cust_9/guidance", headers=wrong_key).status_code == 401

    body = client.get("/trust/requester/cust_9/guidance", headers=api_headers).json()
    assert body["level"] == 1


def test_event_history(client, api_headers):
    post_event(client, api_headers)
    post_event(client, api_headers, event_type="job-completed", counterpart_id=None)

    assert client.get("/trust/requester/cust_1/events").status_code == 401

    history = client.get("/trust/requester/cust_1/events", headers=api_headers).json()
    assert [item["event_type"] for item in history] == ["job-completed", "no-show"]
    assert history[1]["expired"] is False


def test_snapshots(client, api_headers):
    missing = client.post(
        "/trust/requester/cust_1/snapshots", json={"reason": "Support review"}, headers=api_headers
    )
    assert missing.status_code == 404

    post_event(client, api_headers)
    created = client.post(
        "/trust/requester/cust_1/snapshots", json={"reason": "Support review"}, headers=api_headers
    )
    assert created.status_code == 200
    assert created.json()["reason"] == "Support review"

    listed = client.get("/trust/requester/cust_1/snapshots", headers=api_headers).json()
    assert len(listed) == 1
    assert listed[0]["score_data"]["negative_count_lifetime"] == 1


def test_taxonomy(client):
    body = client.get("/trust/taxonomy").json()
    by_type = {item["event_type"]: item for item in body}

    assert len(by_type) == 11
    assert by_type["no-show"]["category"] == "negative"
    assert by_type["support-credit"]["advances_recovery"] is True
    assert by_type["support-credit"]["counts_as_completion"] is False
