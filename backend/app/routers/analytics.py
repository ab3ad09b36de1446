"""
Analytics Router
Cross-session statistics for the student dashboard.
"""

from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import ValidationError
from app.core.security import get_current_user
from app.models.user import User
from app.services import analytics
from app.services.achievements import user_achievements
from app.utils.timeutil import to_naive_utc

router = APIRouter(prefix="/api/analytics", tags=["Analytics"])


def get_window(
    period: Optional[int] = Query(None, ge=1),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> analytics.Window:
    """Query-string time window shared by the analytics routes"""
    return analytics.resolve_window(period, to_naive_utc(start_date), to_naive_utc(end_date))


@router.get("/overview")
def get_overview(
    window: analytics.Window = Depends(get_window),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Study hours, engagement, completed sessions and day streak"""
    return {"success": True, "data": analytics.overview(db, current_user, window)}


@router.get("/trends")
def get_trends(
    granularity: Literal["hourly", "daily", "weekly", "monthly"] = "daily",
    window: analytics.Window = Depends(get_window),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    data = analytics.trends(db, current_user, window, granularity)
    return {"success": True, "granularity": granularity, "data": data}


@router.get("/study-patterns")
def get_study_patterns(
    window: analytics.Window = Depends(get_window),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": {"by_day_of_week": analytics.study_patterns(db, current_user, window)}}


@router.get("/engagement-analysis")
def get_engagement_analysis(
    window: analytics.Window = Depends(get_window),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    buckets = analytics.engagement_distribution(db, current_user, window)
    return {"success": True, "data": {"engagement_distribution": buckets}}


@router.get("/health-report")
def get_health_report(
    window: analytics.Window = Depends(get_window),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": analytics.health_report(db, current_user, window)}


@router.get("/productivity-score")
def get_productivity_score(
    period: int = settings.PRODUCTIVITY_DEFAULT_PERIOD_DAYS,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Weighted productivity score and letter grade over the last ``period`` days"""
    if period <= 0:
        raise ValidationError("Period must be a positive number")
    return {"success": True, "data": analytics.productivity_score(db, current_user, period)}


@router.get("/comparison")
def get_comparison(
    period: int = Query(7, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return {"success": True, "data": analytics.period_comparison(db, current_user, period)}


@router.get("/material/{document_id}")
def get_material(
    document_id: str,
    window: analytics.Window = Depends(get_window),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    data = analytics.material_analytics(db, current_user, document_id, window)
    if data is None:
        return {
            "success": True,
            "data": None,
            "message": "No sessions for this material in the selected date range",
        }
    return {"success": True, "data": data}


@router.get("/achievements")
def get_achievements(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    badges = user_achievements(db, current_user)
    return {"success": True, "count": len(badges), "data": badges}
