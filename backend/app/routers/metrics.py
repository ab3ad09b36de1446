"""
Metrics Router
Engagement sample ingestion plus per-session and per-user sample analytics.
"""

import csv
import io
import json
import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.errors import NotFoundError
from app.core.security import get_current_user
from app.models.schemas import SampleBatch, SampleCreate
from app.models.user import User
from app.services import analytics, engagement, sample_store
from app.services.session_service import calculate_final_metrics, get_owned_session
from app.services.websocket_manager import ws_manager
from app.utils.timeutil import epoch_ms, to_naive_utc

logger = logging.getLogger("studyguard.metrics_router")

router = APIRouter(prefix="/api/metrics", tags=["Metrics"])

CSV_HEADER = ["Timestamp", "Engagement", "Presence", "Posture", "BlinkRate", "Emotion", "Distraction", "EyeStrain"]


async def _broadcast(db: Session, rows):
    """Push stored samples to the student's channel and the session's room"""
    rooms = sample_store.session_rooms(db, (r.session_id for r in rows))
    for row in rows:
        await ws_manager.send_metric(
            row.user_id,
            sample_store.sample_to_dict(row),
            engagement.sample_alerts(engagement.SampleRecord.from_row(row)),
            room_id=rooms.get(row.session_id),
        )


# ── Ingestion ────────────────────────────────────────────

@router.post("", status_code=201)
async def save_sample(
    data: SampleCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Save a single engagement sample"""
    row = sample_store.add_sample(db, current_user.id, data)
    await _broadcast(db, [row])
    return {
        "success": True,
        "message": "Metric saved successfully",
        "data": sample_store.sample_to_dict(row),
    }


@router.post("/batch", status_code=201)
async def save_samples(
    data: SampleBatch,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Save many samples in one all-or-nothing transaction"""
    rows = sample_store.add_samples(db, current_user.id, data.metrics)
    logger.info("Batch of %d sample(s) stored for user %s", len(rows), current_user.id)
    await _broadcast(db, rows)
    return {
        "success": True,
        "message": f"{len(rows)} metrics saved successfully",
        "count": len(rows),
    }


# ── Per-user aggregates ──────────────────────────────────

@router.get("/aggregate/user")
def aggregate_user(
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    data = analytics.user_aggregate(db, current_user, to_naive_utc(start_date), to_naive_utc(end_date))
    if data is None:
        return {"success": True, "data": None, "message": "No data available for the selected period"}
    return {"success": True, "data": data}


@router.get("/aggregate/daily")
def aggregate_daily(
    days: int = Query(30, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    daily = analytics.daily_aggregate(db, current_user, days)
    return {"success": True, "days": days, "count": len(daily), "data": daily}


# ── Per-session reads ────────────────────────────────────

@router.get("/session/{session_id}")
def session_samples(
    session_id: str,
    start_time: Optional[datetime] = None,
    end_time: Optional[datetime] = None,
    limit: Optional[int] = Query(None, ge=1),
    include_raw: bool = False,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    rows = sample_store.list_samples(
        db, session_id, to_naive_utc(start_time), to_naive_utc(end_time), limit
    )
    return {
        "success": True,
        "count": len(rows),
        "data": [sample_store.sample_to_dict(r, include_raw=include_raw) for r in rows],
    }


@router.get("/session/{session_id}/summary")
def session_summary(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Sample statistics plus the session's FinalMetrics"""
    session = get_owned_session(db, session_id, current_user)
    summary = engagement.summarize_samples(sample_store.load_records(db, session_id))
    final_metrics = session.metrics
    if session.is_active or not final_metrics:
        # Not ended yet: compute a provisional snapshot
        final_metrics = calculate_final_metrics(db, session_id)
    return {
        "success": True,
        "data": {
            "session_id": session.id,
            "status": session.status,
            "summary": summary,
            "final_metrics": final_metrics,
        },
    }


@router.get("/session/{session_id}/recent")
def recent_samples(
    session_id: str,
    minutes: int = Query(5, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    rows = sample_store.recent_samples(db, session_id, minutes)
    return {
        "success": True,
        "count": len(rows),
        "minutes": minutes,
        "data": [sample_store.sample_to_dict(r) for r in rows],
    }


@router.get("/session/{session_id}/trend")
def session_trend(
    session_id: str,
    interval: int = Query(settings.TREND_INTERVAL_MINUTES, ge=1),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    trend = engagement.engagement_trend(sample_store.load_records(db, session_id), interval)
    return {"success": True, "interval": interval, "count": len(trend), "data": trend}


@router.get("/session/{session_id}/anomalies")
def session_anomalies(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    anomalies = engagement.detect_anomalies(sample_store.load_records(db, session_id))
    return {"success": True, "count": len(anomalies), "data": anomalies}


@router.get("/session/{session_id}/alerts")
def session_alerts(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Alerts raised by the most recent sample"""
    get_owned_session(db, session_id, current_user)
    latest = sample_store.latest_sample(db, session_id)
    if latest is None:
        return {"success": True, "count": 0, "data": []}

    record = engagement.SampleRecord.from_row(latest)
    alerts = engagement.sample_alerts(record)
    return {
        "success": True,
        "count": len(alerts),
        "data": alerts,
        "needs_break": engagement.needs_break(record),
        "is_engaged": engagement.is_engaged(record),
    }


@router.get("/session/{session_id}/engagement-timeline")
def session_timeline(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    timeline = engagement.engagement_timeline(sample_store.load_records(db, session_id))
    return {"success": True, "count": len(timeline), "data": timeline}


@router.get("/session/{session_id}/health")
def session_health(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    return {"success": True, "data": engagement.health_insights(sample_store.load_records(db, session_id))}


@router.get("/session/{session_id}/distractions")
def session_distractions(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    return {"success": True, "data": engagement.distraction_episodes(sample_store.load_records(db, session_id))}


@router.get("/session/{session_id}/comparison")
def session_comparison(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """This session's averages against the user's other sessions"""
    get_owned_session(db, session_id, current_user)
    return {"success": True, "data": analytics.session_comparison(db, current_user, session_id)}


@router.get("/session/{session_id}/export")
def export_samples(
    session_id: str,
    format: Literal["json", "csv"] = "json",
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    rows = sample_store.list_samples(db, session_id)
    if not rows:
        raise NotFoundError("No metrics found")

    stamp = epoch_ms(datetime.utcnow())
    if format == "csv":
        content = _to_csv(rows)
        media_type = "text/csv"
    else:
        content = json.dumps(jsonable_encoder([sample_store.sample_to_dict(r) for r in rows]), indent=2)
        media_type = "application/json"

    filename = f"metrics_{session_id}_{stamp}.{format}"
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def _to_csv(rows) -> str:
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for row in rows:
        r = engagement.SampleRecord.from_row(row)
        writer.writerow([
            row.timestamp.isoformat(),
            r.engagement_score,
            str(r.present).lower(),
            r.posture_score,
            r.blink_rate,
            r.emotion,
            str(r.distracted).lower(),
            r.eye_strain_risk,
        ])
    return buf.getvalue()


@router.delete("/session/{session_id}")
def delete_samples(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    deleted = sample_store.delete_samples(db, session_id, current_user.id)
    return {
        "success": True,
        "message": f"{deleted} metrics deleted successfully",
        "deleted_count": deleted,
    }
