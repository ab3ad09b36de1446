from conftest import sample, start_session


def _finished_session(client, headers, scores, document_id="doc-1"):
    session_id = start_session(client, headers, document_id)
    client.post(
        "/api/metrics/batch",
        json={"metrics": [sample(session_id, score=s) for s in scores]},
        headers=headers,
    )
    client.patch(f"/api/sessions/{session_id}/end", headers=headers)
    return session_id


def test_overview_empty(client, student):
    data = client.get("/api/analytics/overview", headers=student).json()["data"]
    assert data == {"total_hours": 0, "this_week": 0, "avg_engagement": 0, "completed_sessions": 0, "streak": 0}


def test_overview_counts_completed_sessions_and_streak(client, student):
    _finished_session(client, student, [50, 70])
    data = client.get("/api/analytics/overview?period=7", headers=student).json()["data"]
    assert data["completed_sessions"] == 1
    assert data["avg_engagement"] == 60
    assert data["streak"] == 1


def test_productivity_score_rejects_non_positive_period(client, student):
    for period in (0, -3):
        resp = client.get(f"/api/analytics/productivity-score?period={period}", headers=student)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Period must be a positive number"


def test_productivity_score_shape(client, student):
    _finished_session(client, student, [80])
    client.post("/api/highlights", json={"document_id": "doc-1", "text": "key idea"}, headers=student)
    data = client.get("/api/analytics/productivity-score?period=7", headers=student).json()["data"]
    assert data["period"] == 7
    assert set(data["components"]) == {
        "session_consistency", "study_time", "engagement", "presence", "focus", "activity",
    }
    assert data["components"]["engagement"] == 80
    assert data["components"]["presence"] == 100
    assert data["grade"] in {"A+", "A", "A-", "B", "C", "D"}


def test_engagement_distribution_includes_100_in_last_bucket(client, student):
    _finished_session(client, student, [10, 15, 100, 85])
    buckets = client.get("/api/analytics/engagement-analysis", headers=student).json()["data"]["engagement_distribution"]
    assert [(b["range_start"], b["count"]) for b in buckets] == [(0, 2), (80, 2)]
    assert buckets[1]["avg_score"] == 92.5


def test_trends_granularity(client, student):
    _finished_session(client, student, [40, 60])
    body = client.get("/api/analytics/trends?granularity=weekly", headers=student).json()
    assert body["granularity"] == "weekly"
    assert body["data"][0]["avg_engagement"] == 50
    assert "-W" in body["data"][0]["period"]

    assert client.get("/api/analytics/trends?granularity=yearly", headers=student).status_code == 400


def test_material_analytics(client, student):
    _finished_session(client, student, [70], document_id="chem-101")
    data = client.get("/api/analytics/material/chem-101", headers=student).json()["data"]
    assert data["sessions"] == 1
    assert data["engagement"]["avg_engagement"] == 70

    missing = client.get("/api/analytics/material/none", headers=student).json()
    assert missing["data"] is None


def test_comparison_and_health_report(client, student):
    _finished_session(client, student, [60])
    comparison = client.get("/api/analytics/comparison?period=7", headers=student).json()["data"]
    assert comparison["current"]["datapoints"] == 1
    assert comparison["previous"]["datapoints"] == 0

    assert client.get("/api/analytics/health-report", headers=student).json()["data"]["datapoints"] == 1


def test_achievements_laser_focus(client, student):
    _finished_session(client, student, [90, 95])
    badges = client.get("/api/analytics/achievements", headers=student).json()["data"]
    assert "laser_focus" in {b["id"] for b in badges}
