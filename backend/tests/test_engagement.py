from datetime import datetime, timedelta

import pytest

from app.services.engagement import (
    FinalMetrics,
    InteractionRecord,
    SampleRecord,
    blink_compliance,
    compute_final_metrics,
    count_rising_edges,
    detect_anomalies,
    distraction_episodes,
    engagement_timeline,
    engagement_trend,
    health_insights,
    needs_break,
    normalize_sample,
    page_time_analytics,
    round_half_up,
    sample_alerts,
    summarize_samples,
)

T0 = datetime(2024, 3, 4, 10, 0, 0)


def webcam(seconds, looking=True, posture=80, blink=20, phone=False):
    return InteractionRecord(
        type="webcam",
        timestamp=T0 + timedelta(seconds=seconds),
        data={"looking_at_screen": looking, "posture_score": posture, "blink_rate": blink, "has_phone": phone},
    )


def rec(seconds, score=70.0, present=True, distracted=False, **kw):
    return SampleRecord(
        timestamp=T0 + timedelta(seconds=seconds),
        engagement_score=score,
        presence={"detected": present},
        distraction={"detected": distracted, "type": "phone" if distracted else "none"},
        **kw,
    )


# ── Rounding ─────────────────────────────────────────────

def test_round_half_up_goes_toward_positive_infinity():
    assert round_half_up(2.5) == 3
    assert round_half_up(0.5) == 1
    assert round_half_up(1.25, 1) == 1.3
    assert round_half_up(2.4) == 2


# ── Final metrics ────────────────────────────────────────

def test_no_webcam_samples_gives_zero_snapshot_with_duration():
    metrics = compute_final_metrics([InteractionRecord(type="scroll", timestamp=T0)], duration_seconds=125)
    assert metrics == FinalMetrics(duration_seconds=125)
    d = metrics.to_dict()
    for key in ("engagement_score", "attention_rate", "avg_blink_rate", "distraction_count", "total_metrics_recorded"):
        assert d[key] == 0
    assert d["duration_seconds"] == 125


def test_final_metrics_composite():
    # 3 of 4 looking -> 75; posture mean 80; blink 20 -> compliance 100
    events = [webcam(0), webcam(5), webcam(10, looking=False), webcam(15)]
    m = compute_final_metrics(events, duration_seconds=20)
    assert m.attention_rate == 75
    assert m.avg_posture_score == 80
    assert m.avg_blink_rate == 20
    assert m.engagement_score == round_half_up(75 * 0.5 + 80 * 0.3 + 100 * 0.2)
    assert m.total_metrics_recorded == 4


def test_missing_posture_pulls_average_down():
    events = [webcam(0, posture=80), InteractionRecord(type="webcam", timestamp=T0, data={"looking_at_screen": True})]
    assert compute_final_metrics(events).avg_posture_score == 40


def test_engagement_score_is_clamped():
    events = [webcam(i, posture=100, blink=20) for i in range(3)]
    assert 0 <= compute_final_metrics(events).engagement_score <= 100
    low = [webcam(i, looking=False, posture=0, blink=200) for i in range(3)]
    assert compute_final_metrics(low).engagement_score == 0


def test_highlights_and_pages_counted():
    events = [
        webcam(0),
        InteractionRecord(type="highlight", timestamp=T0, data={"text": "a"}),
        InteractionRecord(type="highlight", timestamp=T0, data={"text": "b"}),
        InteractionRecord(type="page_turn", timestamp=T0, data={"from": 1, "time_spent": 30}),
        InteractionRecord(type="page_change", timestamp=T0, data={"page": 2, "duration": 12}),
        InteractionRecord(type="page_turn", timestamp=T0, data={"from": 1, "time_spent": 10}),
    ]
    m = compute_final_metrics(events)
    assert m.total_highlights == 2
    assert m.page_time_analytics == {"1": 40, "2": 12}
    assert m.pages_visited == 2


def test_page_time_ignores_events_without_page():
    events = [InteractionRecord(type="page_turn", data={"time_spent": 5})]
    assert page_time_analytics(events) == {}


def test_page_time_accepts_numeric_strings_and_ignores_junk():
    events = [
        InteractionRecord(type="page_turn", data={"from": 1, "time_spent": "30"}),
        InteractionRecord(type="page_turn", data={"from": 1, "time_spent": "soon"}),
        InteractionRecord(type="page_change", data={"page": 2, "duration": [5]}),
    ]
    assert page_time_analytics(events) == {"1": 30, "2": 0}


def test_non_numeric_webcam_readings_count_as_zero():
    events = [
        webcam(0, posture=80, blink=20),
        webcam(5, posture="n/a", blink=float("nan")),
        webcam(10, posture="80", blink="20"),
    ]
    m = compute_final_metrics(events)
    # posture (80 + 0 + 80) / 3; blink (20 + 0 + 20) / 3
    assert m.avg_posture_score == 53
    assert m.avg_blink_rate == 13
    assert m.total_metrics_recorded == 3


@pytest.mark.parametrize("rate,expected", [(20, 100), (15, 100), (25, 100), (0, 70), (100, 0), (35, 80)])
def test_blink_compliance(rate, expected):
    assert blink_compliance(rate) == pytest.approx(expected)


def test_distraction_count_counts_rising_edges():
    assert count_rising_edges([False, True, True, False, True]) == 2
    assert count_rising_edges([True, True]) == 1
    assert count_rising_edges([None, False]) == 0


def test_out_of_order_webcam_events_sorted_before_edge_counting():
    # In time order the phone flags read F, T, T, F, T -> two edges
    events = [
        webcam(40, phone=True),
        webcam(0, phone=False),
        webcam(30, phone=False),
        webcam(10, phone=True),
        webcam(20, phone=True),
    ]
    assert compute_final_metrics(events).distraction_count == 2


# ── Write rules & alerts ─────────────────────────────────

def test_normalize_sample_clamps_engagement():
    assert normalize_sample({"engagement_score": 140})["engagement_score"] == 100
    assert normalize_sample({"engagement_score": -3})["engagement_score"] == 0


@pytest.mark.parametrize("health", [
    {"time_since_break": 30},
    {"eye_strain_risk": "critical"},
    {"fatigue_level": 80},
])
def test_normalize_sample_recommends_break(health):
    assert normalize_sample({"engagement_score": 50, "health": health})["health"]["break_recommended"] is True


def test_normalize_sample_leaves_healthy_sample_alone():
    out = normalize_sample({"engagement_score": 50, "health": {"fatigue_level": 10}})
    assert "break_recommended" not in out["health"]


def test_needs_break_and_alerts():
    r = rec(0, score=30, present=False, health={"fatigue_level": 72, "eye_strain_risk": "high"})
    assert needs_break(r)
    kinds = {a["type"] for a in sample_alerts(r)}
    assert kinds == {"absence", "health"}


def test_engaged_sample_raises_no_alerts():
    assert sample_alerts(rec(0, score=90)) == []


# ── Trend ────────────────────────────────────────────────

def test_trend_same_window_averages_together():
    samples = [rec(60, score=60), rec(120, score=80)]
    trend = engagement_trend(samples, 5)
    assert len(trend) == 1
    assert trend[0]["avg_engagement"] == 70.0
    assert trend[0]["datapoints"] == 2
    assert trend[0]["timestamp"] == T0


def test_trend_samples_straddling_boundary_split():
    samples = [rec(299, score=60), rec(301, score=80, distracted=True)]
    trend = engagement_trend(samples, 5)
    assert [b["avg_engagement"] for b in trend] == [60.0, 80.0]
    assert trend[1]["distraction_count"] == 1
    assert trend[1]["timestamp"] == T0 + timedelta(minutes=5)


def test_trend_orders_buckets_ascending_for_unsorted_input():
    trend = engagement_trend([rec(900), rec(0), rec(400)], 5)
    assert [b["timestamp"] for b in trend] == sorted(b["timestamp"] for b in trend)


# ── Anomalies ────────────────────────────────────────────

def test_engagement_drop_medium():
    anomalies = detect_anomalies([rec(0, score=80), rec(5, score=40)])
    assert len(anomalies) == 1
    assert anomalies[0]["type"] == "engagement_drop"
    assert anomalies[0]["severity"] == "medium"
    assert anomalies[0]["timestamp"] == T0 + timedelta(seconds=5)


def test_engagement_drop_high():
    anomalies = detect_anomalies([rec(0, score=90), rec(5, score=20)])
    assert [a["severity"] for a in anomalies] == ["high"]


def test_drop_of_exactly_thirty_is_not_anomalous():
    assert detect_anomalies([rec(0, score=70), rec(5, score=40)]) == []


def test_prolonged_absence_fires_once_per_run_at_fifth_sample():
    samples = [rec(i, present=False) for i in range(8)]
    samples += [rec(8)]
    samples += [rec(9 + i, present=False) for i in range(5)]
    absences = [a for a in detect_anomalies(samples) if a["type"] == "prolonged_absence"]
    assert len(absences) == 2
    assert absences[0]["timestamp"] == T0 + timedelta(seconds=4)
    assert absences[1]["timestamp"] == T0 + timedelta(seconds=13)


def test_short_absence_run_is_ignored():
    samples = [rec(i, present=False) for i in range(4)] + [rec(4)]
    assert detect_anomalies(samples) == []


# ── Summaries ────────────────────────────────────────────

def test_summarize_empty_is_none():
    assert summarize_samples([]) is None


def test_summarize_samples():
    samples = [rec(0, score=50), rec(60, score=90, distracted=True), rec(120, score=70, present=False)]
    s = summarize_samples(samples)
    assert s["total_datapoints"] == 3
    assert s["duration_minutes"] == 2
    assert s["avg_engagement"] == pytest.approx(70)
    assert s["max_engagement"] == 90
    assert s["distraction_types"] == ["phone"]
    assert s["presence_rate"] == pytest.approx(200 / 3)


def test_timeline_events():
    samples = [rec(0, score=40, posture={"score": 80}), rec(5, score=70, posture={"score": 30})]
    timeline = engagement_timeline(samples)
    assert timeline[0]["events"] == []
    assert set(timeline[1]["events"]) == {"poor_posture", "engagement_spike"}


def test_health_insights_skips_zero_blink_rates():
    samples = [
        rec(0, facial={"blink_rate": 0}, posture={"score": 80}),
        rec(5, facial={"blink_rate": 18}, posture={"score": 20}, health={"eye_strain_risk": "high"}),
    ]
    h = health_insights(samples)
    assert h["avg_blink_rate"] == 18
    assert h["eye_strain_alerts"] == 1
    assert h["posture_issues"] == 1
    assert h["health_score"] == 100 - 5 - 2


def test_distraction_episodes():
    samples = [
        rec(0, distracted=True),
        rec(10, distracted=True),
        rec(20),
        rec(30, distracted=True),
    ]
    d = distraction_episodes(samples)
    assert d["total_distractions"] == 3
    assert d["episodes"] == 2
    assert d["longest_episode"] == 10
    assert d["by_type"] == {"phone": 3}
