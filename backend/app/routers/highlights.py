"""
Highlights Router
Text highlighted while reading; counted by the productivity activity score.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import NotFoundError
from app.core.security import get_current_user
from app.models.content import Highlight
from app.models.schemas import HighlightCreate, HighlightResponse
from app.models.user import User
from app.services.session_service import get_owned_session

router = APIRouter(prefix="/api/highlights", tags=["Highlights"])


@router.post("", status_code=201)
def create_highlight(
    data: HighlightCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if data.session_id:
        get_owned_session(db, data.session_id, current_user)

    highlight = Highlight(user_id=current_user.id, **data.model_dump())
    db.add(highlight)
    db.commit()
    db.refresh(highlight)
    return {"success": True, "data": HighlightResponse.model_validate(highlight)}


@router.get("")
def list_highlights(
    document_id: Optional[str] = None,
    session_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Highlight).filter(Highlight.user_id == current_user.id)
    if document_id:
        query = query.filter(Highlight.document_id == document_id)
    if session_id:
        query = query.filter(Highlight.session_id == session_id)
    rows = query.order_by(Highlight.created_at.desc()).all()
    return {
        "success": True,
        "count": len(rows),
        "data": [HighlightResponse.model_validate(h) for h in rows],
    }


@router.get("/stats/{session_id}")
def highlight_stats(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Highlight counts for one of the caller's sessions, by colour and page"""
    get_owned_session(db, session_id, current_user)
    scope = (Highlight.session_id == session_id, Highlight.user_id == current_user.id)

    by_color = (
        db.query(Highlight.color, func.count(Highlight.id))
        .filter(*scope)
        .group_by(Highlight.color)
        .order_by(func.count(Highlight.id).desc(), Highlight.color.asc())
        .all()
    )
    by_page = (
        db.query(Highlight.page_number, func.count(Highlight.id))
        .filter(*scope, Highlight.page_number.isnot(None))
        .group_by(Highlight.page_number)
        .all()
    )
    return {
        "success": True,
        "data": {
            "session_id": session_id,
            "total": sum(count for _, count in by_color),
            "by_color": [{"color": color, "count": count} for color, count in by_color],
            "by_page": {str(page): count for page, count in sorted(by_page)},
        },
    }


@router.delete("/{highlight_id}")
def delete_highlight(
    highlight_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    highlight = (
        db.query(Highlight)
        .filter(Highlight.id == highlight_id, Highlight.user_id == current_user.id)
        .first()
    )
    if not highlight:
        raise NotFoundError("Highlight not found")
    db.delete(highlight)
    db.commit()
    return {"success": True, "message": "Highlight deleted successfully"}
