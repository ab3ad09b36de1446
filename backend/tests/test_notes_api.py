from conftest import start_session


def test_highlight_crud(client, student):
    session_id = start_session(client, student)
    created = client.post(
        "/api/highlights",
        json={"document_id": "doc-1", "text": "osmosis", "session_id": session_id, "page_number": 3},
        headers=student,
    )
    assert created.status_code == 201
    highlight_id = created.json()["data"]["id"]

    listed = client.get("/api/highlights?document_id=doc-1", headers=student).json()
    assert listed["count"] == 1
    assert client.get("/api/highlights?document_id=doc-2", headers=student).json()["count"] == 0

    assert client.delete(f"/api/highlights/{highlight_id}", headers=student).status_code == 200
    assert client.delete(f"/api/highlights/{highlight_id}", headers=student).status_code == 404


def test_highlight_on_foreign_session_is_404(client, student, other_student):
    session_id = start_session(client, student)
    resp = client.post(
        "/api/highlights",
        json={"document_id": "doc-1", "text": "x", "session_id": session_id},
        headers=other_student,
    )
    assert resp.status_code == 404


def test_annotation_must_reference_own_highlight(client, student, other_student):
    highlight_id = client.post(
        "/api/highlights", json={"document_id": "doc-1", "text": "x"}, headers=student,
    ).json()["data"]["id"]

    foreign = client.post(
        "/api/annotations",
        json={"document_id": "doc-1", "content": "note", "highlight_id": highlight_id},
        headers=other_student,
    )
    assert foreign.status_code == 404

    own = client.post(
        "/api/annotations",
        json={"document_id": "doc-1", "content": "note", "highlight_id": highlight_id},
        headers=student,
    )
    assert own.status_code == 201
    assert own.json()["data"]["highlight_id"] == highlight_id
    assert client.get("/api/annotations", headers=student).json()["count"] == 1


def _highlight(client, headers, session_id, color, page):
    resp = client.post(
        "/api/highlights",
        json={"document_id": "doc-1", "text": "t", "session_id": session_id, "color": color, "page_number": page},
        headers=headers,
    )
    assert resp.status_code == 201
    return resp.json()["data"]["id"]


def test_highlight_stats_by_colour_and_page(client, student, other_student):
    session_id = start_session(client, student)
    _highlight(client, student, session_id, "yellow", 1)
    _highlight(client, student, session_id, "green", 2)
    _highlight(client, student, session_id, "yellow", 2)
    _highlight(client, student, session_id, "yellow", None)

    resp = client.get(f"/api/highlights/stats/{session_id}", headers=student)
    assert resp.status_code == 200
    stats = resp.json()["data"]
    assert stats["total"] == 4
    assert stats["by_color"] == [{"color": "yellow", "count": 3}, {"color": "green", "count": 1}]
    assert stats["by_page"] == {"1": 1, "2": 2}

    assert client.get(f"/api/highlights/stats/{session_id}", headers=other_student).status_code == 404


def test_annotation_stats_counts_linked_notes(client, student, other_student):
    session_id = start_session(client, student)
    highlight_id = _highlight(client, student, session_id, "blue", 4)
    for payload in (
        {"content": "a", "page_number": 4, "highlight_id": highlight_id},
        {"content": "b", "page_number": 4},
        {"content": "c"},
    ):
        payload.update(document_id="doc-1", session_id=session_id)
        assert client.post("/api/annotations", json=payload, headers=student).status_code == 201

    stats = client.get(f"/api/annotations/stats/{session_id}", headers=student).json()["data"]
    assert stats == {"session_id": session_id, "total": 3, "linked_to_highlight": 1, "by_page": {"4": 2}}

    assert client.get(f"/api/annotations/stats/{session_id}", headers=other_student).status_code == 404


def test_stats_for_empty_session(client, student):
    session_id = start_session(client, student)
    stats = client.get(f"/api/highlights/stats/{session_id}", headers=student).json()["data"]
    assert stats == {"session_id": session_id, "total": 0, "by_color": [], "by_page": {}}
