"""
Interactions Router
Reading events logged against a session (webcam ticks, page turns, highlights...).
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.security import get_current_user
from app.models.schemas import InteractionBatch, InteractionCreate, InteractionResponse
from app.models.user import User
from app.services import session_service

router = APIRouter(prefix="/api/interactions", tags=["Interactions"])


@router.post("/{session_id}", status_code=201)
def log_interaction(
    session_id: str,
    data: InteractionCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = session_service.get_owned_session(db, session_id, current_user)
    interaction = session_service.add_interaction(db, session, data)
    return {
        "success": True,
        "message": "Interaction logged successfully",
        "data": InteractionResponse.model_validate(interaction),
    }


@router.post("/{session_id}/batch", status_code=201)
def log_interactions(
    session_id: str,
    data: InteractionBatch,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Log many interactions; unknown types are skipped"""
    session = session_service.get_owned_session(db, session_id, current_user)
    rows = session_service.add_interactions(db, session, data.interactions)
    return {
        "success": True,
        "message": f"{len(rows)} interactions logged successfully",
        "count": len(rows),
    }


@router.get("/{session_id}")
def list_interactions(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session = session_service.get_visible_session(db, session_id, current_user)
    rows = session_service.list_interactions(db, session.id)
    return {
        "success": True,
        "count": len(rows),
        "data": [InteractionResponse.model_validate(r) for r in rows],
    }


@router.delete("/item/{interaction_id}")
def delete_interaction(
    interaction_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    session_service.delete_interaction(db, interaction_id, current_user)
    return {"success": True, "message": "Interaction deleted successfully", "id": interaction_id}
