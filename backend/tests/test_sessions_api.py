from datetime import datetime, timedelta

from conftest import start_session


def _webcam(looking=True, posture=80, blink=20, phone=False, ts=None):
    item = {
        "type": "webcam",
        "data": {"looking_at_screen": looking, "posture_score": posture, "blink_rate": blink, "has_phone": phone},
    }
    if ts is not None:
        item["timestamp"] = ts.isoformat()
    return item


def test_start_and_get_session(client, student):
    session_id = start_session(client, student)
    resp = client.get(f"/api/sessions/{session_id}", headers=student)
    data = resp.json()["data"]
    assert data["is_active"] is True
    assert data["status"] == "active"

    current = client.get("/api/sessions/active/current", headers=student)
    assert current.json()["data"]["id"] == session_id


def test_no_active_session_is_404(client, student):
    assert client.get("/api/sessions/active/current", headers=student).status_code == 404


def test_end_session_stores_final_metrics(client, student):
    session_id = start_session(client, student)
    t0 = datetime.utcnow()
    batch = [
        _webcam(ts=t0),
        _webcam(looking=False, phone=True, ts=t0 + timedelta(seconds=5)),
        _webcam(ts=t0 + timedelta(seconds=10)),
        _webcam(phone=True, ts=t0 + timedelta(seconds=15)),
        {"type": "highlight", "data": {"text": "mitochondria"}},
        {"type": "not-a-type", "data": {}},
    ]
    logged = client.post(f"/api/interactions/{session_id}/batch", json={"interactions": batch}, headers=student)
    assert logged.json()["count"] == 5

    resp = client.patch(f"/api/sessions/{session_id}/end", headers=student)
    assert resp.status_code == 200
    metrics = resp.json()["data"]["metrics"]
    assert metrics["attention_rate"] == 75
    assert metrics["distraction_count"] == 2
    assert metrics["total_metrics_recorded"] == 4
    assert metrics["total_highlights"] == 1

    stored = client.get(f"/api/sessions/{session_id}", headers=student).json()["data"]
    assert stored["status"] == "completed"
    assert stored["metrics"] == metrics


def test_end_session_twice_is_rejected(client, student):
    session_id = start_session(client, student)
    client.post(f"/api/interactions/{session_id}", json=_webcam(), headers=student)
    first = client.patch(f"/api/sessions/{session_id}/end", headers=student)
    assert first.status_code == 200

    second = client.patch(f"/api/sessions/{session_id}/end", headers=student)
    assert second.status_code == 400
    assert second.json()["message"] == "Session is already ended"

    stored = client.get(f"/api/sessions/{session_id}", headers=student).json()["data"]
    assert stored["metrics"] == first.json()["data"]["metrics"]


def test_end_session_tolerates_non_numeric_readings(client, student):
    session_id = start_session(client, student)
    batch = [
        _webcam(posture="n/a", blink="20"),
        _webcam(posture=80, blink=20),
        {"type": "page_turn", "data": {"from": 1, "to": 2, "time_spent": "30"}},
    ]
    client.post(f"/api/interactions/{session_id}/batch", json={"interactions": batch}, headers=student)

    resp = client.patch(f"/api/sessions/{session_id}/end", headers=student)
    assert resp.status_code == 200
    metrics = resp.json()["data"]["metrics"]
    assert metrics["avg_posture_score"] == 40
    assert metrics["avg_blink_rate"] == 20
    assert metrics["page_time_analytics"] == {"1": 30}
    assert resp.json()["data"]["status"] == "completed"


def test_session_without_webcam_ends_with_zero_metrics(client, student):
    session_id = start_session(client, student)
    metrics = client.patch(f"/api/sessions/{session_id}/end", headers=student).json()["data"]["metrics"]
    assert metrics["engagement_score"] == 0
    assert metrics["total_metrics_recorded"] == 0


def test_starting_a_session_ends_the_orphan(client, student):
    first = start_session(client, student, "doc-a")
    second = start_session(client, student, "doc-b")

    old = client.get(f"/api/sessions/{first}", headers=student).json()["data"]
    assert old["is_active"] is False
    assert old["metrics"]["total_metrics_recorded"] == 0

    current = client.get("/api/sessions/active/current", headers=student).json()["data"]
    assert current["id"] == second


def test_foreign_session_cannot_be_ended(client, student, other_student):
    session_id = start_session(client, student)
    resp = client.patch(f"/api/sessions/{session_id}/end", headers=other_student)
    assert resp.status_code == 404


def test_other_student_cannot_read_session(client, student, other_student, teacher):
    session_id = start_session(client, student, room_id="room-1")
    assert client.get(f"/api/sessions/{session_id}", headers=other_student).status_code == 403
    assert client.get(f"/api/sessions/{session_id}", headers=teacher).status_code == 200

    recent = client.get("/api/sessions/recent", headers=teacher).json()
    assert [s["id"] for s in recent["data"]] == [session_id]


def test_delete_session_cascades(client, student):
    session_id = start_session(client, student)
    client.post(f"/api/interactions/{session_id}", json=_webcam(), headers=student)
    client.post("/api/highlights", json={"document_id": "doc-1", "text": "x", "session_id": session_id}, headers=student)

    assert client.delete(f"/api/sessions/{session_id}", headers=student).status_code == 200
    assert client.get(f"/api/sessions/{session_id}", headers=student).status_code == 404
    assert client.get("/api/highlights", headers=student).json()["count"] == 0


def test_live_metrics_counts_interactions(client, student):
    session_id = start_session(client, student)
    client.post(f"/api/interactions/{session_id}", json=_webcam(), headers=student)
    client.post(
        f"/api/interactions/{session_id}",
        json={"type": "page_turn", "data": {"from": 1, "time_spent": 12}},
        headers=student,
    )
    data = client.get(f"/api/sessions/{session_id}/metrics", headers=student).json()["data"]
    assert data["total_interactions"] == 2
    assert data["webcam_events"] == 1
    assert data["page_changes"] == 1
    assert data["is_active"] is True


def test_delete_interaction_requires_ownership(client, student, other_student):
    session_id = start_session(client, student)
    created = client.post(f"/api/interactions/{session_id}", json=_webcam(), headers=student).json()["data"]
    assert client.delete(f"/api/interactions/item/{created['id']}", headers=other_student).status_code == 404
    assert client.delete(f"/api/interactions/item/{created['id']}", headers=student).status_code == 200


def test_room_metrics_is_teacher_only(client, student, other_student, teacher):
    start_session(client, student, room_id="room-9")
    start_session(client, other_student, room_id="room-9")

    assert client.get("/api/sessions/room/room-9/metrics", headers=student).status_code == 403

    data = client.get("/api/sessions/room/room-9/metrics", headers=teacher).json()["data"]
    assert data["total_students"] == 2
    assert data["total_sessions"] == 2
