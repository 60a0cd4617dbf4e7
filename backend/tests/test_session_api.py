from datetime import datetime, timedelta

from app.services import submission_service
from app.services.events import EventType, new_event


def session_url(token, suffix=""):
    return f"/api/v1/session/{token}{suffix}"


def post_events(client, token, events):
    return client.post(
        session_url(token, "/events"),
        json={"events": [event.to_payload() for event in events]},
    )


def test_get_session(client, candidate):
    resp = client.get(session_url(candidate.token))

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "NOT_STARTED"
    assert data["content"] == ""
    assert data["candidate_name"] == "Ada"
    assert data["challenge"]["title"] == "Two Sum"
    assert data["time_remaining"] is None


def test_unknown_token_is_404(client):
    assert client.get(session_url("nope")).status_code == 404
    assert post_events(client, "nope", []).status_code == 404
    assert client.put(session_url("nope", "/content"), json={"content": "x"}).status_code == 404
    assert client.post(session_url("nope", "/submit")).status_code == 404


def test_first_content_save_starts_attempt(client, candidate):
    resp = client.put(session_url(candidate.token, "/content"), json={"content": "def solve(): pass"})

    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "IN_PROGRESS"
    assert data["started_at"] is not None
    assert data["content"] == "def solve(): pass"
    assert 0 < data["time_remaining"] <= 30 * 60


def test_append_events_reports_stored_count(client, candidate):
    batch = [
        new_event(EventType.FOCUS_IN, 1000),
        new_event(EventType.CONTENT_SNAPSHOT, 2000, cursor_start=1, content="a"),
    ]

    first = post_events(client, candidate.token, batch)
    assert first.status_code == 200
    assert first.json() == {"success": True, "received": 2, "stored": 2}

    retry = post_events(client, candidate.token, batch)
    assert retry.json()["stored"] == 0


def test_malformed_event_rejected(client, candidate):
    resp = client.post(
        session_url(candidate.token, "/events"),
        json={"events": [{"type": "KEYDOWN", "timestamp": 1}]},
    )
    assert resp.status_code == 422


def test_submit_computes_focused_time(client, db, candidate):
    now = datetime.utcnow()
    base = int((now - datetime(1970, 1, 1)).total_seconds() * 1000) - 10000
    post_events(
        client,
        candidate.token,
        [
            new_event(EventType.FOCUS_IN, base),
            new_event(EventType.FOCUS_OUT, base + 5000, window_focus=False),
            new_event(EventType.FOCUS_IN, base + 8000),
        ],
    )

    submission = submission_service.submit(db, candidate.token, now=now)

    # 5 s, then the open interval from +8 s up to submit
    assert submission.total_time_spent == 7
    assert submission.status == "SUBMITTED"


def test_writes_rejected_after_submit(client, candidate):
    client.put(session_url(candidate.token, "/content"), json={"content": "done"})
    resp = client.post(session_url(candidate.token, "/submit"))

    assert resp.status_code == 200
    assert resp.json()["status"] == "SUBMITTED"
    assert resp.json()["submitted_at"] is not None

    assert post_events(client, candidate.token, [new_event(EventType.FOCUS_OUT, 1)]).status_code == 409
    assert client.put(session_url(candidate.token, "/content"), json={"content": "more"}).status_code == 409
    assert client.post(session_url(candidate.token, "/submit")).status_code == 409

    assert client.get(session_url(candidate.token)).json()["content"] == "done"


def test_expired_attempt_auto_submitted_on_load(client, db, candidate):
    started = datetime.utcnow() - timedelta(minutes=31)
    submission_service.update_content(db, candidate.token, "partial", now=started)

    resp = client.get(session_url(candidate.token))

    assert resp.json()["status"] == "SUBMITTED"
    assert resp.json()["time_remaining"] == 0


def test_running_attempt_not_auto_submitted(client, db, candidate):
    submission_service.update_content(db, candidate.token, "partial")

    assert client.get(session_url(candidate.token)).json()["status"] == "IN_PROGRESS"
