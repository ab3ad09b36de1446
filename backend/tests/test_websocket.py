from conftest import register, sample, start_session


def _token(headers):
    return headers["Authorization"].split(" ", 1)[1]


def test_unauthenticated_socket_is_refused(client):
    with client.websocket_connect("/ws/live?token=bogus") as ws:
        msg = ws.receive_json()
    assert msg == {"type": "error", "message": "Authentication required"}


def test_student_receives_own_samples(client, student):
    session_id = start_session(client, student)
    with client.websocket_connect(f"/ws/live?token={_token(student)}") as ws:
        status = ws.receive_json()
        assert status["type"] == "connection-status"
        assert status["channels"] == [f"student:{status['user_id']}"]

        client.post("/api/metrics", json=sample(session_id, score=42, present=False), headers=student)
        msg = ws.receive_json()
        assert msg["type"] == "metric"
        assert msg["data"]["engagement_score"] == 42
        assert msg["alerts"][0]["type"] == "absence"


def test_teacher_joins_room_and_sees_room_samples(client, student, teacher):
    session_id = start_session(client, student, room_id="bio-7")
    with client.websocket_connect(f"/ws/live?token={_token(teacher)}") as ws:
        ws.receive_json()
        ws.send_json({"type": "join-room", "room_id": "bio-7"})
        assert ws.receive_json() == {"type": "room-joined", "room_id": "bio-7"}

        client.post("/api/metrics", json=sample(session_id, score=77), headers=student)
        msg = ws.receive_json()
        assert msg["type"] == "metric"
        assert msg["data"]["session_id"] == session_id
        assert "student_id" in msg

        ws.send_json({"type": "leave-room", "room_id": "bio-7"})
        assert ws.receive_json()["type"] == "room-left"


def test_student_cannot_join_room(client):
    headers, _ = register(client, "frank@example.com")
    with client.websocket_connect(f"/ws/live?token={_token(headers)}") as ws:
        ws.receive_json()
        ws.send_json({"type": "join-room", "room_id": "bio-7"})
        assert ws.receive_json()["type"] == "error"
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}
