"""
StudyGuard Sample Store
Append-only persistence for engagement samples.

Writes validate ownership of every referenced session up front, so a
batch either lands completely or not at all. Reads always come back
ordered by timestamp (then insertion id).
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from app.core.errors import NotFoundError
from app.models.metric import Sample
from app.models.schemas import SampleCreate
from app.models.session import StudySession
from app.services.engagement import SampleRecord, normalize_sample

logger = logging.getLogger("studyguard.samples")

SAMPLE_GROUPS = ("presence", "facial", "posture", "distraction", "health", "environment")


def _check_ownership(db: Session, user_id: int, session_ids: Iterable[str]) -> Dict[str, StudySession]:
    wanted = set(session_ids)
    owned = (
        db.query(StudySession)
        .filter(StudySession.id.in_(wanted), StudySession.student_id == user_id)
        .all()
    )
    found = {s.id: s for s in owned}
    missing = wanted - set(found)
    if missing:
        logger.debug("Rejecting samples for user %s: sessions %s not owned", user_id, sorted(missing))
        raise NotFoundError("Session not found or unauthorized")
    return found


def _build_row(user_id: int, payload: SampleCreate) -> Sample:
    data = normalize_sample(payload.model_dump())
    return Sample(
        session_id=data["session_id"],
        user_id=user_id,
        timestamp=data.get("timestamp") or datetime.utcnow(),
        presence=data["presence"],
        facial=data["facial"],
        posture=data["posture"],
        distraction=data["distraction"],
        health=data["health"],
        environment=data["environment"],
        engagement_score=data["engagement_score"],
        engagement_components=data["engagement_components"],
        raw_data=data.get("raw_data"),
        presence_detected=bool(data["presence"].get("detected")),
        distraction_detected=bool(data["distraction"].get("detected")),
    )


def add_samples(db: Session, user_id: int, payloads: List[SampleCreate]) -> List[Sample]:
    """Insert samples in one transaction; nothing is written on failure"""
    _check_ownership(db, user_id, (p.session_id for p in payloads))

    rows = [_build_row(user_id, p) for p in payloads]
    try:
        db.add_all(rows)
        db.commit()
    except Exception:
        db.rollback()
        raise
    for row in rows:
        db.refresh(row)
    logger.debug("Stored %d sample(s) for user %s", len(rows), user_id)
    return rows


def add_sample(db: Session, user_id: int, payload: SampleCreate) -> Sample:
    return add_samples(db, user_id, [payload])[0]


def list_samples(
    db: Session,
    session_id: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[Sample]:
    query = db.query(Sample).filter(Sample.session_id == session_id)
    if start is not None:
        query = query.filter(Sample.timestamp >= start)
    if end is not None:
        query = query.filter(Sample.timestamp <= end)
    query = query.order_by(Sample.timestamp.asc(), Sample.id.asc())
    if limit:
        query = query.limit(limit)
    return query.all()


def recent_samples(db: Session, session_id: str, minutes: int = 5) -> List[Sample]:
    """Samples from the last ``minutes``, newest first"""
    cutoff = datetime.utcnow() - timedelta(minutes=minutes)
    return (
        db.query(Sample)
        .filter(Sample.session_id == session_id, Sample.timestamp >= cutoff)
        .order_by(Sample.timestamp.desc(), Sample.id.desc())
        .all()
    )


def latest_sample(db: Session, session_id: str) -> Optional[Sample]:
    return (
        db.query(Sample)
        .filter(Sample.session_id == session_id)
        .order_by(Sample.timestamp.desc(), Sample.id.desc())
        .first()
    )


def load_records(db: Session, session_id: str) -> List[SampleRecord]:
    return [SampleRecord.from_row(row) for row in list_samples(db, session_id)]


def delete_samples(db: Session, session_id: str, user_id: Optional[int] = None) -> int:
    query = db.query(Sample).filter(Sample.session_id == session_id)
    if user_id is not None:
        query = query.filter(Sample.user_id == user_id)
    deleted = query.delete(synchronize_session=False)
    db.commit()
    logger.info("Deleted %d sample(s) of session %s", deleted, session_id)
    return deleted


def sample_to_dict(sample: Sample, include_raw: bool = False) -> Dict[str, Any]:
    data: Dict[str, Any] = {
        "id": sample.id,
        "session_id": sample.session_id,
        "user_id": sample.user_id,
        "timestamp": sample.timestamp,
        "engagement_score": sample.engagement_score,
        "engagement_components": sample.engagement_components or {},
    }
    for group in SAMPLE_GROUPS:
        data[group] = getattr(sample, group) or {}
    if include_raw:
        data["raw_data"] = sample.raw_data
    return data


def session_rooms(db: Session, session_ids: Iterable[str]) -> Dict[str, Optional[str]]:
    rows = db.query(StudySession.id, StudySession.room_id).filter(StudySession.id.in_(set(session_ids)))
    return {sid: room for sid, room in rows}
