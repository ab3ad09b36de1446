"""
StudyGuard Achievements
Badges unlocked from a student's session history.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import Integer, cast, func
from sqlalchemy.orm import Session

from app.models.metric import Sample
from app.models.session import StudySession
from app.models.user import User
from app.services.analytics import compute_streak

STUDY_HOUR_BADGES = (
    (100, "century_scholar", "Century Scholar", "100+ hours of focused study", "gold"),
    (50, "dedicated_learner", "Dedicated Learner", "50+ hours of study time", "silver"),
    (10, "getting_started", "Getting Started", "Completed 10 hours of study", "bronze"),
)

ENGAGEMENT_BADGES = (
    (90, "excellence", "Excellence", "90%+ average engagement", "gold"),
    (80, "high_performer", "High Performer", "80%+ average engagement", "silver"),
)

CONSISTENCY_BADGES = (
    (50, "consistency_king", "Consistency King", "50+ sessions completed", "gold"),
    (20, "regular_student", "Regular Student", "20+ sessions completed", "silver"),
)

STREAK_MIN_DAYS = 7
LASER_FOCUS_MAX_DISTRACTION = 0.1


def _badge(badge_id: str, title: str, description: str, category: str, level: str, now: datetime) -> Dict[str, Any]:
    return {
        "id": badge_id,
        "title": title,
        "description": description,
        "category": category,
        "level": level,
        "unlocked_at": now,
    }


def _first_tier(value: float, tiers, category: str, now: datetime) -> Optional[Dict[str, Any]]:
    for threshold, badge_id, title, description, level in tiers:
        if value >= threshold:
            return _badge(badge_id, title, description, category, level, now)
    return None


def calculate_achievements(
    sessions: Iterable[Any],
    distraction_rate: Optional[float] = None,
    today: Optional[date] = None,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    ``sessions`` are study sessions (anything with ``duration_seconds``,
    ``is_active``, ``start_time`` and ``metrics``); ``distraction_rate`` is
    the fraction of distracted samples, or None when there are no samples.
    """
    now = now or datetime.utcnow()
    today = today or now.date()
    sessions = list(sessions)
    completed = [s for s in sessions if not s.is_active]

    total_hours = sum(s.duration_seconds or 0 for s in sessions) / 3600
    scores = [(s.metrics or {}).get("engagement_score", 0) or 0 for s in sessions]
    avg_engagement = sum(scores) / len(scores) if scores else 0

    achievements = []
    for value, tiers, category in (
        (total_hours, STUDY_HOUR_BADGES, "time"),
        (avg_engagement, ENGAGEMENT_BADGES, "engagement"),
        (len(completed), CONSISTENCY_BADGES, "consistency"),
    ):
        badge = _first_tier(value, tiers, category, now)
        if badge:
            achievements.append(badge)

    streak = compute_streak((s.start_time.date() for s in completed if s.start_time), today)
    if streak >= STREAK_MIN_DAYS:
        level = "gold" if streak >= 30 else "silver" if streak >= 14 else "bronze"
        achievements.append(_badge(
            "weekly_warrior", f"{streak}-Day Streak", "Studied consistently every day", "streak", level, now,
        ))

    if distraction_rate is not None and distraction_rate < LASER_FOCUS_MAX_DISTRACTION:
        achievements.append(_badge(
            "laser_focus", "Laser Focus", "Less than 10% distraction rate", "focus", "gold", now,
        ))

    return achievements


def user_achievements(db: Session, user: User) -> List[Dict[str, Any]]:
    sessions = db.query(StudySession).filter(StudySession.student_id == user.id).all()
    total, distracted = (
        db.query(func.count(Sample.id), func.sum(cast(Sample.distraction_detected, Integer)))
        .filter(Sample.user_id == user.id)
        .one()
    )
    rate = (distracted or 0) / total if total else None
    return calculate_achievements(sessions, distraction_rate=rate)
