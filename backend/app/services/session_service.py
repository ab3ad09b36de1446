"""
StudyGuard Session Lifecycle
Start / end / delete study sessions and record their interactions.

A session goes active → completed exactly once. The transition is a
conditional UPDATE on ``is_active`` that also writes the FinalMetrics
snapshot, so only the request that flips the row stores one.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.errors import AuthorizationError, NotFoundError, ValidationError
from app.models.content import Annotation, Highlight
from app.models.metric import Sample
from app.models.schemas import InteractionCreate, SessionCreate
from app.models.session import Interaction, StudySession
from app.models.user import User
from app.services.engagement import InteractionRecord, compute_final_metrics

logger = logging.getLogger("studyguard.sessions")


# ─────────────────────────────────────────────────────────
# Lookup
# ─────────────────────────────────────────────────────────

def get_owned_session(db: Session, session_id: str, user: User) -> StudySession:
    """Session owned by ``user``; foreign sessions look missing"""
    session = (
        db.query(StudySession)
        .filter(StudySession.id == session_id, StudySession.student_id == user.id)
        .first()
    )
    if not session:
        raise NotFoundError("Session not found or unauthorized")
    return session


def get_visible_session(db: Session, session_id: str, user: User) -> StudySession:
    """Owner or any teacher may read a session"""
    session = db.query(StudySession).filter(StudySession.id == session_id).first()
    if not session:
        raise NotFoundError("Session not found")
    if session.student_id != user.id and user.role != "teacher":
        raise AuthorizationError("Access denied")
    return session


def get_active_session(db: Session, user: User) -> Optional[StudySession]:
    return (
        db.query(StudySession)
        .filter(StudySession.student_id == user.id, StudySession.is_active == True)  # noqa: E712
        .order_by(StudySession.start_time.desc())
        .first()
    )


def recent_sessions(db: Session, user: User, limit: Optional[int] = None) -> List[StudySession]:
    """Students see their own sessions; teachers see every room session"""
    query = db.query(StudySession)
    if user.role == "teacher":
        query = query.filter(StudySession.room_id.isnot(None))
    else:
        query = query.filter(StudySession.student_id == user.id)
    return (
        query.order_by(StudySession.created_at.desc())
        .limit(limit or settings.RECENT_SESSIONS_LIMIT)
        .all()
    )


# ─────────────────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────────────────

def _elapsed_seconds(start: datetime, end: datetime) -> int:
    return max(0, math.floor((end - start).total_seconds()))


def _snapshot(db: Session, session_id: str, duration_seconds: int) -> Dict[str, Any]:
    records = [InteractionRecord.from_row(i) for i in list_interactions(db, session_id)]
    return compute_final_metrics(records, duration_seconds).to_dict()


def _close(db: Session, session: StudySession) -> Optional[Dict[str, Any]]:
    """End ``session`` and store its snapshot in one conditional UPDATE.

    The snapshot is computed first, so a failure leaves the row active.
    Returns None when another request ended the session first.
    """
    now = datetime.utcnow()
    duration = _elapsed_seconds(session.start_time, now)
    metrics = _snapshot(db, session.id, duration)
    updated = (
        db.query(StudySession)
        .filter(StudySession.id == session.id, StudySession.is_active == True)  # noqa: E712
        .update(
            {
                StudySession.is_active: False,
                StudySession.end_time: now,
                StudySession.duration_seconds: duration,
                StudySession.metrics: metrics,
            },
            synchronize_session=False,
        )
    )
    db.commit()
    return metrics if updated == 1 else None


def create_session(db: Session, user: User, data: SessionCreate) -> StudySession:
    """Start a session, ending any session the student left open"""
    orphan = get_active_session(db, user)
    if orphan and _close(db, orphan) is not None:
        logger.info("Auto-ended orphaned session %s for user %s", orphan.id, user.id)

    session = StudySession(
        student_id=user.id,
        room_id=data.room_id,
        document_id=data.document_id,
        document_path=data.document_path,
        is_active=True,
        start_time=datetime.utcnow(),
        metrics={},
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info("Session %s started by user %s (document=%s)", session.id, user.id, data.document_id)
    return session


def end_session(db: Session, session_id: str, user: User) -> StudySession:
    session = get_owned_session(db, session_id, user)
    metrics = _close(db, session) if session.is_active else None
    if metrics is None:
        raise ValidationError("Session is already ended")

    db.refresh(session)
    logger.info(
        "Session %s ended: %ss, engagement=%s, samples=%s",
        session.id, session.duration_seconds,
        metrics.get("engagement_score"), metrics.get("total_metrics_recorded"),
    )
    return session


def calculate_final_metrics(db: Session, session_id: str) -> Dict[str, Any]:
    """FinalMetrics for a stored session, or {} when it does not exist"""
    session = db.query(StudySession).filter(StudySession.id == session_id).first()
    if not session:
        logger.warning("Session %s not found for final calculation", session_id)
        return {}
    return _snapshot(db, session_id, session.duration_seconds or 0)


def live_metrics(db: Session, session: StudySession) -> Dict[str, Any]:
    """Running counters plus the stored snapshot"""
    counts = {"total": 0, "webcam": 0, "page_turn": 0}
    for (kind,) in db.query(Interaction.type).filter(Interaction.session_id == session.id):
        counts["total"] += 1
        if kind in counts:
            counts[kind] += 1

    duration = (
        _elapsed_seconds(session.start_time, datetime.utcnow())
        if session.is_active
        else session.duration_seconds
    )
    return {
        "total_interactions": counts["total"],
        "webcam_events": counts["webcam"],
        "page_changes": counts["page_turn"],
        "duration": duration,
        "is_active": session.is_active,
        **(session.metrics or {}),
    }


def room_metrics(db: Session, room_id: str) -> Dict[str, Any]:
    """Session counts for a room, as seen by its teacher"""
    sessions = (
        db.query(StudySession)
        .filter(StudySession.room_id == room_id)
        .order_by(StudySession.created_at.asc())
        .all()
    )
    if not sessions:
        return {"room_id": room_id, "total_students": 0, "total_sessions": 0, "average_duration": 0, "last_session": None}
    return {
        "room_id": room_id,
        "total_students": len({s.student_id for s in sessions}),
        "total_sessions": len(sessions),
        "average_duration": sum(s.duration_seconds or 0 for s in sessions) / len(sessions),
        "last_session": sessions[-1].created_at,
    }


def delete_session(db: Session, session: StudySession) -> None:
    """Remove a session with its samples, interactions and notes"""
    session_id = session.id
    try:
        db.query(Sample).filter(Sample.session_id == session_id).delete(synchronize_session=False)
        db.query(Interaction).filter(Interaction.session_id == session_id).delete(synchronize_session=False)
        db.query(Annotation).filter(Annotation.session_id == session_id).delete(synchronize_session=False)
        db.query(Highlight).filter(Highlight.session_id == session_id).delete(synchronize_session=False)
        db.delete(session)
        db.commit()
    except Exception:
        db.rollback()
        raise
    logger.info("Session %s deleted", session_id)


# ─────────────────────────────────────────────────────────
# Interactions
# ─────────────────────────────────────────────────────────

def add_interaction(db: Session, session: StudySession, data: InteractionCreate) -> Interaction:
    interaction = Interaction(
        session_id=session.id,
        type=data.type,
        data=data.data,
        timestamp=data.timestamp or datetime.utcnow(),
    )
    db.add(interaction)
    db.commit()
    db.refresh(interaction)
    return interaction


def add_interactions(db: Session, session: StudySession, items: List[Dict[str, Any]]) -> List[Interaction]:
    """Store the valid items of a batch; unknown types are skipped"""
    rows = []
    for item in items:
        if not isinstance(item, dict):
            continue
        payload = dict(item)
        data = payload.get("data") or {}
        if payload.get("timestamp") is None and isinstance(data, dict):
            payload["timestamp"] = data.get("timestamp")
        try:
            parsed = InteractionCreate.model_validate(payload)
        except PydanticValidationError:
            continue
        rows.append(Interaction(
            session_id=session.id,
            type=parsed.type,
            data=parsed.data,
            timestamp=parsed.timestamp or datetime.utcnow(),
        ))

    if rows:
        db.add_all(rows)
        db.commit()
    skipped = len(items) - len(rows)
    if skipped:
        logger.debug("Session %s: skipped %d invalid interaction(s)", session.id, skipped)
    return rows


def list_interactions(db: Session, session_id: str) -> List[Interaction]:
    return (
        db.query(Interaction)
        .filter(Interaction.session_id == session_id)
        .order_by(Interaction.timestamp.asc(), Interaction.id.asc())
        .all()
    )


def delete_interaction(db: Session, interaction_id: int, user: User) -> None:
    interaction = (
        db.query(Interaction)
        .join(StudySession, StudySession.id == Interaction.session_id)
        .filter(Interaction.id == interaction_id, StudySession.student_id == user.id)
        .first()
    )
    if not interaction:
        raise NotFoundError("Interaction not found or access denied")
    db.delete(interaction)
    db.commit()
