"""
End-to-end tests for the seat assignment HTTP API.
Covers the response contract of every branch, idempotent replays, and the audit endpoints.
"""

import pytest

from app import app as flask_app, db as app_db
from conftest import TWO_ROWS, make_attendees, registration
from errors import Conflict


@pytest.fixture
def client():
    flask_app.config.update(TESTING=True)
    return flask_app.test_client()


@pytest.fixture
def live_session(session_id):
    app_db.seed_session(session_id, "HTTP session", TWO_ROWS, make_attendees(5))
    return session_id


def assign(client, payload):
    return client.post("/assign-seat", json=payload)


# ============================================================================
# TEST CATEGORY 1: Assignment contract
# ============================================================================

def test_assign_seat_returns_new_assignment(client, live_session):
    resp = assign(client, registration(1, live_session, attendee_count=3))

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    assert "already_assigned" not in body
    assert body["data"]["seat_number"] == "A-01, A-02, A-03"
    assert body["data"]["version"] == 1
    assert body["data"]["attendee_count"] == 3


def test_repeat_request_is_idempotent(client, live_session):
    first = assign(client, registration(1, live_session)).get_json()

    for _ in range(3):
        resp = assign(client, registration(1, live_session))
        body = resp.get_json()
        assert resp.status_code == 200
        assert body["already_assigned"] is True
        assert body["data"]["seat_number"] == first["data"]["seat_number"]
        assert body["data"]["version"] == first["data"]["version"]


def test_not_registered_is_client_error(client, live_session):
    resp = assign(client, registration(99, live_session))
    assert resp.status_code == 400
    assert "pre-registration" in resp.get_json()["error"]


def test_insufficient_seats_is_client_error(client, live_session):
    resp = assign(client, registration(1, live_session, attendee_count=41))
    assert resp.status_code == 400
    assert resp.get_json() == {"error": "not enough seats are available for this request"}


def test_lost_race_is_reported_as_conflict(client, live_session, monkeypatch):
    def always_stale(attendee_id, expected_version, seat_number, attendee_count):
        raise Conflict(attendee_id, expected_version)

    monkeypatch.setattr(app_db, "conditional_update_seats", always_stale)

    resp = assign(client, registration(1, live_session))
    assert resp.status_code == 409
    body = resp.get_json()
    assert body["conflict"] is True
    assert "error" in body


# ============================================================================
# TEST CATEGORY 2: Invalid inputs
# ============================================================================

def test_invalid_inputs(client, live_session):
    # Body is not JSON
    resp1 = client.post("/assign-seat", data="phone=01055550001", content_type="text/plain")
    assert resp1.status_code == 400

    # Missing fields
    resp2 = assign(client, {"phone": "01055550001"})
    assert resp2.status_code == 400

    # attendee_count below one
    resp3 = assign(client, registration(1, live_session, attendee_count=0))
    assert resp3.status_code == 400

    # Phone with separators
    resp4 = assign(client, {**registration(1, live_session), "phone": "010-5555-0001"})
    assert resp4.status_code == 400

    # Every rejection still leaves an audit entry for the session
    logs = client.get(f"/sessions/{live_session}/assignment-logs").get_json()
    assert logs["count"] == 2


# ============================================================================
# TEST CATEGORY 3: Seat lookup and occupancy
# ============================================================================

def test_lookup_reports_seat_after_assignment(client, live_session):
    query = {"phone": "01055550002", "name": "Attendee 2"}

    before = client.get(f"/sessions/{live_session}/attendees/lookup", query_string=query)
    assert before.status_code == 200
    assert before.get_json()["data"]["seat_number"] is None

    assign(client, registration(2, live_session))

    after = client.get(f"/sessions/{live_session}/attendees/lookup", query_string=query)
    assert after.get_json()["data"]["seat_number"] == "A-01"


def test_lookup_unknown_and_invalid(client, live_session):
    unknown = client.get(
        f"/sessions/{live_session}/attendees/lookup",
        query_string={"phone": "01099999999", "name": "Nobody Here"},
    )
    assert unknown.status_code == 404

    invalid = client.get(f"/sessions/{live_session}/attendees/lookup", query_string={"phone": "1"})
    assert invalid.status_code == 400


def test_seat_status_counts(client, live_session):
    assign(client, registration(1, live_session, attendee_count=2))
    assign(client, registration(2, live_session))

    resp = client.get(f"/sessions/{live_session}/seats")
    assert resp.status_code == 200
    status = resp.get_json()
    assert status["total_seats"] == 40
    assert status["assigned_seats"] == 3
    assert status["available_seats"] == 37
    assert [row["row_label"] for row in status["rows"]] == ["A", "B"]
    assert status["invariants_valid"] is True


def test_seat_status_unknown_session(client):
    assert client.get("/sessions/no-such-session/seats").status_code == 404


# ============================================================================
# TEST CATEGORY 4: Audit endpoints
# ============================================================================

def test_assignment_logs_listing_and_filter(client, live_session):
    assign(client, registration(1, live_session))
    assign(client, registration(1, live_session))
    assign(client, registration(99, live_session))

    all_logs = client.get(f"/sessions/{live_session}/assignment-logs").get_json()
    assert [entry["event_type"] for entry in all_logs["logs"]] == ["error", "retry", "success"]

    retries = client.get(
        f"/sessions/{live_session}/assignment-logs", query_string={"event_type": "retry"}
    ).get_json()
    assert retries["count"] == 1
    assert retries["logs"][0]["version_attempted"] == retries["logs"][0]["version_final"] == 1

    bad_type = client.get(f"/sessions/{live_session}/assignment-logs", query_string={"event_type": "x"})
    assert bad_type.status_code == 400
    bad_limit = client.get(f"/sessions/{live_session}/assignment-logs", query_string={"limit": "0"})
    assert bad_limit.status_code == 400


def test_assignment_log_summary(client, live_session):
    assign(client, registration(1, live_session))
    assign(client, registration(1, live_session))

    summary = client.get(f"/sessions/{live_session}/assignment-logs/summary").get_json()
    assert summary["total"] == 2
    assert summary["success"] == 1
    assert summary["retry"] == 1
    assert summary["seat_collisions"] == {}


# ============================================================================
# TEST CATEGORY 5: Service plumbing
# ============================================================================

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.get_json()["status"] == "healthy"


def test_cors_headers_present(client, live_session):
    resp = client.post(
        "/assign-seat",
        json=registration(1, live_session),
        headers={"Origin": "https://kiosk.example.org"},
    )
    # Older flask-cors answers "*", newer releases echo the request origin
    assert resp.headers.get("Access-Control-Allow-Origin") in ("*", "https://kiosk.example.org")
