"""
StudyGuard Cross-Session Analytics
Per-user aggregates across sessions: overview with day streak,
trends, weekly patterns, engagement distribution, health report,
productivity score and period comparisons.

Every function returns an empty / zero payload when there is no data.
"""

import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

import numpy as np
from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.content import Annotation, Highlight
from app.models.metric import Sample
from app.models.session import StudySession
from app.models.user import User
from app.services.engagement import SampleRecord, round_half_up, summarize_samples
from app.utils.timeutil import end_of_day, start_of_day

logger = logging.getLogger("studyguard.analytics")


PRODUCTIVITY_WEIGHTS = {
    "session_consistency": 0.15,
    "study_time": 0.20,
    "engagement": 0.25,
    "presence": 0.15,
    "focus": 0.15,
    "activity": 0.10,
}

GRADE_THRESHOLDS = (
    (90, "A+"),
    (85, "A"),
    (80, "A-"),
    (70, "B"),
    (60, "C"),
)

POINTS_PER_DAILY_SESSION = 20
STUDY_MINUTES_PER_DAY = 60
POINTS_PER_DAILY_NOTE = 5

ENGAGEMENT_BUCKETS = [0, 20, 40, 60, 80, 100]

GRANULARITY_FORMATS = {
    "hourly": "%Y-%m-%d %H:00",
    "daily": "%Y-%m-%d",
    "monthly": "%Y-%m",
}

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")

Window = Tuple[datetime, Optional[datetime]]


# ── Helpers ──────────────────────────────────────────────

def resolve_window(
    period: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    default_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Window:
    """
    Explicit ``start_date`` + ``end_date`` (end stretched to end of day),
    otherwise ``period`` days back from now with an open end.
    """
    if start_date and end_date:
        return start_date, end_of_day(end_date)
    days = period or default_days or settings.ANALYTICS_DEFAULT_PERIOD_DAYS
    now = now or datetime.utcnow()
    return now - timedelta(days=days), None


def compute_streak(dates: Iterable[date], today: date) -> int:
    """
    Consecutive study days ending today, or yesterday when today has no
    session yet. Anything older than yesterday breaks the streak.
    """
    days = set(dates)
    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def letter_grade(score: float) -> str:
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "D"


def _session_minutes(session: StudySession) -> float:
    if not session.end_time or not session.start_time:
        return 0.0
    return (session.end_time - session.start_time).total_seconds() / 60


def _sample_query(db: Session, user_id: int, start: Optional[datetime] = None, end: Optional[datetime] = None):
    query = db.query(Sample).filter(Sample.user_id == user_id)
    if start is not None:
        query = query.filter(Sample.timestamp >= start)
    if end is not None:
        query = query.filter(Sample.timestamp <= end)
    return query


def _records(db: Session, user_id: int, start=None, end=None) -> List[SampleRecord]:
    rows = _sample_query(db, user_id, start, end).order_by(Sample.timestamp.asc(), Sample.id.asc()).all()
    return [SampleRecord.from_row(r) for r in rows]


def _sessions_in_window(db: Session, user_id: int, window: Window, completed_only: bool = False):
    start, end = window
    query = db.query(StudySession).filter(
        StudySession.student_id == user_id,
        StudySession.start_time >= start,
    )
    if end is not None:
        query = query.filter(StudySession.start_time <= end)
    if completed_only:
        query = query.filter(StudySession.is_active == False)  # noqa: E712
    return query.all()


def _rates(db: Session, user_id: int, start=None, end=None) -> Dict[str, Optional[float]]:
    """Mean engagement plus presence / distraction fractions, in SQL"""
    query = db.query(
        func.count(Sample.id),
        func.avg(Sample.engagement_score),
        func.sum(cast(Sample.presence_detected, Integer)),
        func.sum(cast(Sample.distraction_detected, Integer)),
    ).filter(Sample.user_id == user_id)
    if start is not None:
        query = query.filter(Sample.timestamp >= start)
    if end is not None:
        query = query.filter(Sample.timestamp <= end)

    count, avg_engagement, present, distracted = query.one()
    if not count:
        return {"count": 0, "avg_engagement": None, "presence_rate": None, "distraction_rate": None}
    return {
        "count": count,
        "avg_engagement": float(avg_engagement),
        "presence_rate": (present or 0) / count,
        "distraction_rate": (distracted or 0) / count,
    }


# ── Overview ─────────────────────────────────────────────

def overview(db: Session, user: User, window: Window, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    sessions = _sessions_in_window(db, user.id, window)
    total_minutes = sum(_session_minutes(s) for s in sessions)

    week_ago = now - timedelta(days=7)
    recent = (
        db.query(StudySession)
        .filter(StudySession.student_id == user.id, StudySession.start_time >= week_ago)
        .all()
    )
    week_minutes = sum(_session_minutes(s) for s in recent)

    rates = _rates(db, user.id, *window)
    avg_engagement = round_half_up(rates["avg_engagement"]) if rates["avg_engagement"] is not None else 0

    completed_dates = [
        start.date()
        for (start,) in db.query(StudySession.start_time).filter(
            StudySession.student_id == user.id, StudySession.is_active == False  # noqa: E712
        )
        if start is not None
    ]

    return {
        "total_hours": round_half_up(total_minutes / 60, 1),
        "this_week": round_half_up(week_minutes / 60, 1),
        "avg_engagement": avg_engagement,
        "completed_sessions": sum(1 for s in sessions if not s.is_active),
        "streak": compute_streak(completed_dates, now.date()),
    }


# ── Trends & patterns ────────────────────────────────────

def _period_key(ts: datetime, granularity: str) -> str:
    if granularity == "weekly":
        year, week, _ = ts.isocalendar()
        return f"{year}-W{week:02d}"
    return ts.strftime(GRANULARITY_FORMATS.get(granularity, GRANULARITY_FORMATS["daily"]))


def trends(db: Session, user: User, window: Window, granularity: str = "daily") -> List[Dict[str, Any]]:
    groups: Dict[str, List[SampleRecord]] = {}
    for record in _records(db, user.id, *window):
        groups.setdefault(_period_key(record.timestamp, granularity), []).append(record)

    result = []
    for period in sorted(groups):
        group = groups[period]
        result.append({
            "period": period,
            "avg_engagement": round_half_up(float(np.mean([r.engagement_score for r in group])), 1),
            "avg_posture": round_half_up(float(np.mean([r.posture_score for r in group])), 1),
            "avg_attention": round_half_up(float(np.mean([r.attention_score for r in group])), 1),
            "datapoints": len(group),
        })
    return result


def study_patterns(db: Session, user: User, window: Window) -> List[Dict[str, Any]]:
    """Completed sessions grouped by day of week (1 = Sunday)"""
    by_day: Dict[int, Dict[str, Any]] = {}
    for session in _sessions_in_window(db, user.id, window, completed_only=True):
        dow = (session.start_time.weekday() + 1) % 7 + 1
        entry = by_day.setdefault(dow, {
            "day_of_week": dow,
            "day": DAY_NAMES[dow - 1],
            "sessions": 0,
            "total_time": 0.0,
        })
        entry["sessions"] += 1
        entry["total_time"] += _session_minutes(session)

    for entry in by_day.values():
        entry["total_time"] = round_half_up(entry["total_time"], 1)
    return [by_day[k] for k in sorted(by_day)]


def engagement_distribution(db: Session, user: User, window: Window) -> List[Dict[str, Any]]:
    """Sample counts over [0,20), [20,40) ... [80,100]; empty buckets omitted"""
    scores = np.array(
        [s for (s,) in _sample_query(db, user.id, *window).with_entities(Sample.engagement_score)],
        dtype=float,
    )
    if scores.size == 0:
        return []

    counts, edges = np.histogram(scores, bins=ENGAGEMENT_BUCKETS)
    sums, _ = np.histogram(scores, bins=ENGAGEMENT_BUCKETS, weights=scores)
    buckets = []
    for i, count in enumerate(counts):
        if not count:
            continue
        buckets.append({
            "range_start": int(edges[i]),
            "range_end": int(edges[i + 1]),
            "count": int(count),
            "avg_score": round_half_up(float(sums[i] / count), 1),
        })
    return buckets


def health_report(db: Session, user: User, window: Window) -> Dict[str, Any]:
    records = _records(db, user.id, *window)
    if not records:
        return {}
    return {
        "avg_blink_rate": round_half_up(float(np.mean([r.blink_rate for r in records])), 1),
        "avg_posture": round_half_up(float(np.mean([r.posture_score for r in records])), 1),
        "avg_fatigue": round_half_up(float(np.mean([r.fatigue_level for r in records])), 1),
        "datapoints": len(records),
    }


# ── Productivity ─────────────────────────────────────────

def score_productivity(
    days: int,
    sessions: int,
    minutes: float,
    avg_engagement: float,
    presence_rate: float,
    distraction_rate: float,
    notes: int,
) -> Dict[str, Any]:
    """
    Blend six 0-100 sub-scores into an overall score and letter grade.

    Consistency awards POINTS_PER_DAILY_SESSION per session per day, so a
    full 100 takes five sessions a day; one session a day scores 20.
    """
    components = {
        "session_consistency": min(100.0, sessions / days * POINTS_PER_DAILY_SESSION),
        "study_time": min(100.0, minutes / (days * STUDY_MINUTES_PER_DAY) * 100),
        "engagement": avg_engagement,
        "presence": presence_rate * 100,
        "focus": max(0.0, 100 - distraction_rate * 100),
        "activity": min(100.0, notes / days * POINTS_PER_DAILY_NOTE),
    }
    overall = sum(components[k] * w for k, w in PRODUCTIVITY_WEIGHTS.items())
    return {
        "overall_score": round_half_up(overall),
        "grade": letter_grade(overall),
        "components": {k: round_half_up(v) for k, v in components.items()},
    }


def productivity_score(db: Session, user: User, days: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or datetime.utcnow()
    cutoff = now - timedelta(days=days)

    sessions = _sessions_in_window(db, user.id, (cutoff, None), completed_only=True)
    minutes = sum(_session_minutes(s) for s in sessions)
    rates = _rates(db, user.id, cutoff, None)

    highlights = db.query(func.count(Highlight.id)).filter(
        Highlight.user_id == user.id, Highlight.created_at >= cutoff
    ).scalar() or 0
    annotations = db.query(func.count(Annotation.id)).filter(
        Annotation.user_id == user.id, Annotation.created_at >= cutoff
    ).scalar() or 0

    result = score_productivity(
        days=days,
        sessions=len(sessions),
        minutes=minutes,
        avg_engagement=rates["avg_engagement"] or 0.0,
        presence_rate=rates["presence_rate"] or 0.0,
        distraction_rate=rates["distraction_rate"] or 0.0,
        notes=highlights + annotations,
    )
    result["period"] = days
    return result


# ── Comparisons ──────────────────────────────────────────

def _period_stats(db: Session, user_id: int, start: datetime, end: datetime) -> Dict[str, float]:
    records = _records(db, user_id, start, end)
    if not records:
        return {"avg_engagement": 0, "avg_posture": 0, "datapoints": 0}
    return {
        "avg_engagement": round_half_up(float(np.mean([r.engagement_score for r in records])), 1),
        "avg_posture": round_half_up(float(np.mean([r.posture_score for r in records])), 1),
        "datapoints": len(records),
    }


def period_comparison(db: Session, user: User, days: int, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Current ``days`` against the ``days`` before them"""
    now = now or datetime.utcnow()
    current_start = now - timedelta(days=days)
    previous_start = current_start - timedelta(days=days)
    return {
        "current": _period_stats(db, user.id, current_start, now),
        "previous": _period_stats(db, user.id, previous_start, current_start),
    }


def session_comparison(db: Session, user: User, session_id: str) -> Optional[Dict[str, Any]]:
    """One session's sample averages against the user's other sessions"""
    rows = (
        db.query(Sample)
        .filter(Sample.session_id == session_id)
        .order_by(Sample.timestamp.asc(), Sample.id.asc())
        .all()
    )
    current = summarize_samples(SampleRecord.from_row(r) for r in rows)
    if current is None:
        return None

    others = [
        SampleRecord.from_row(r)
        for r in db.query(Sample).filter(Sample.user_id == user.id, Sample.session_id != session_id)
    ]
    comparison: Dict[str, Any] = {
        "current": {
            "avg_engagement": current["avg_engagement"],
            "avg_posture": current["avg_posture_score"],
            "avg_blink_rate": current["avg_blink_rate"],
            "distraction_rate": current["distraction_rate"],
        },
        "historical": None,
        "differences": {},
    }
    if others:
        hist = {
            "avg_engagement": float(np.mean([r.engagement_score for r in others])),
            "avg_posture": float(np.mean([r.posture_score for r in others])),
            "avg_blink_rate": float(np.mean([r.blink_rate for r in others])),
            "distraction_rate": float(np.mean([1.0 if r.distracted else 0.0 for r in others])),
        }
        comparison["historical"] = hist
        comparison["differences"] = {
            "engagement": current["avg_engagement"] - hist["avg_engagement"],
            "posture": current["avg_posture_score"] - hist["avg_posture"],
            "blink_rate": current["avg_blink_rate"] - hist["avg_blink_rate"],
            "distraction_rate": current["distraction_rate"] - hist["distraction_rate"] * 100,
        }
    return comparison


def material_analytics(db: Session, user: User, document_id: str, window: Window) -> Optional[Dict[str, Any]]:
    sessions = [
        s for s in _sessions_in_window(db, user.id, window, completed_only=True)
        if s.document_id == document_id
    ]
    if not sessions:
        return None

    avg = (
        db.query(func.avg(Sample.engagement_score), func.count(Sample.id))
        .filter(Sample.session_id.in_([s.id for s in sessions]))
        .one()
    )
    avg_engagement, datapoints = avg
    return {
        "document_id": document_id,
        "sessions": len(sessions),
        "total_minutes": round_half_up(sum(_session_minutes(s) for s in sessions), 1),
        "engagement": (
            {"avg_engagement": round_half_up(float(avg_engagement), 1), "datapoints": datapoints}
            if datapoints else {}
        ),
    }


# ── Sample aggregates ────────────────────────────────────

def user_aggregate(
    db: Session,
    user: User,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> Optional[Dict[str, Any]]:
    records = _records(db, user.id, start, end)
    if not records:
        return None

    total = len(records)
    scores = np.array([r.engagement_score for r in records], dtype=float)
    present = sum(1 for r in records if r.present)
    distracted = sum(1 for r in records if r.distracted)

    emotions: Dict[str, int] = {}
    for r in records:
        emotions[r.emotion] = emotions.get(r.emotion, 0) + 1

    return {
        "total_datapoints": total,
        "avg_engagement": float(scores.mean()),
        "max_engagement": float(scores.max()),
        "min_engagement": float(scores.min()),
        "avg_posture": float(np.mean([r.posture_score for r in records])),
        "avg_blink_rate": float(np.mean([r.blink_rate for r in records])),
        "total_distractions": distracted,
        "presence_count": present,
        "presence_rate": present / total * 100,
        "distraction_rate": distracted / total * 100,
        "emotion_distribution": [
            {"emotion": e, "count": c}
            for e, c in sorted(emotions.items(), key=lambda kv: kv[1], reverse=True)
        ],
    }


def daily_aggregate(db: Session, user: User, days: int = 30, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    now = now or datetime.utcnow()
    groups: Dict[date, List[SampleRecord]] = {}
    for record in _records(db, user.id, now - timedelta(days=days), None):
        groups.setdefault(record.timestamp.date(), []).append(record)

    daily = []
    for day in sorted(groups):
        group = groups[day]
        daily.append({
            "date": start_of_day(datetime(day.year, day.month, day.day)),
            "avg_engagement": round_half_up(float(np.mean([r.engagement_score for r in group])), 1),
            "avg_posture": round_half_up(float(np.mean([r.posture_score for r in group])), 1),
            "avg_blink_rate": round_half_up(float(np.mean([r.blink_rate for r in group])), 1),
            "total_distractions": sum(1 for r in group if r.distracted),
            "datapoints": len(group),
        })
    return daily
