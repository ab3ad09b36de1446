"""
Sessions Router
Start, end, inspect and delete study sessions.
"""

import logging
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import NotFoundError
from app.core.security import get_current_user, require_role
from app.models.schemas import SessionCreate, SessionResponse
from app.models.user import User
from app.services import session_service
from app.services.summary_service import SummaryService, get_summary_service

logger = logging.getLogger("studyguard.sessions_router")

router = APIRouter(prefix="/api/sessions", tags=["Sessions"])


@router.post("", status_code=201)
def start_session(
    data: SessionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Start a study session on a document"""
    session = session_service.create_session(db, current_user, data)
    return {"success": True, "data": SessionResponse.model_validate(session)}


@router.get("/recent")
def recent_sessions(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    sessions = session_service.recent_sessions(db, current_user)
    return {
        "success": True,
        "count": len(sessions),
        "data": [SessionResponse.model_validate(s) for s in sessions],
    }


@router.get("/active/current")
def active_session(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = session_service.get_active_session(db, current_user)
    if not session:
        raise NotFoundError("No active session found")
    return {"success": True, "data": SessionResponse.model_validate(session)}


@router.get("/room/{room_id}/metrics")
def room_metrics(
    room_id: str,
    current_user: User = Depends(require_role("teacher")),
    db: Session = Depends(get_db),
):
    """Teacher view of a room's session activity"""
    return {"success": True, "data": session_service.room_metrics(db, room_id)}


@router.get("/{session_id}")
def get_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = session_service.get_visible_session(db, session_id, current_user)
    return {"success": True, "data": SessionResponse.model_validate(session)}


@router.patch("/{session_id}/end")
def end_session(
    session_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    summary_service: Optional[SummaryService] = Depends(get_summary_service),
):
    """End an active session and store its final metrics"""
    session = session_service.end_session(db, session_id, current_user)

    if summary_service is not None and summary_service.enabled:
        background_tasks.add_task(summary_service.summarize_session, session.id)

    return {
        "success": True,
        "message": "Session ended successfully",
        "data": {
            "id": session.id,
            "duration_seconds": session.duration_seconds,
            "end_time": session.end_time,
            "metrics": session.metrics or {},
        },
    }


@router.get("/{session_id}/metrics")
def session_metrics(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = session_service.get_visible_session(db, session_id, current_user)
    return {"success": True, "data": session_service.live_metrics(db, session)}


@router.delete("/{session_id}")
def delete_session(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = session_service.get_visible_session(db, session_id, current_user)
    session_service.delete_session(db, session)
    return {"success": True, "message": "Session deleted successfully"}
