"""
Annotations Router
Free-text notes, optionally attached to a highlight.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import NotFoundError
from app.core.security import get_current_user
from app.models.content import Annotation, Highlight
from app.models.schemas import AnnotationCreate, AnnotationResponse
from app.models.user import User
from app.services.session_service import get_owned_session

router = APIRouter(prefix="/api/annotations", tags=["Annotations"])


@router.post("", status_code=201)
def create_annotation(
    data: AnnotationCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if data.session_id:
        get_owned_session(db, data.session_id, current_user)
    if data.highlight_id is not None:
        owned = db.query(Highlight.id).filter(
            Highlight.id == data.highlight_id, Highlight.user_id == current_user.id
        ).first()
        if not owned:
            raise NotFoundError("Highlight not found")

    annotation = Annotation(user_id=current_user.id, **data.model_dump())
    db.add(annotation)
    db.commit()
    db.refresh(annotation)
    return {"success": True, "data": AnnotationResponse.model_validate(annotation)}


@router.get("")
def list_annotations(
    document_id: Optional[str] = None,
    session_id: Optional[str] = None,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    query = db.query(Annotation).filter(Annotation.user_id == current_user.id)
    if document_id:
        query = query.filter(Annotation.document_id == document_id)
    if session_id:
        query = query.filter(Annotation.session_id == session_id)
    rows = query.order_by(Annotation.created_at.desc()).all()
    return {
        "success": True,
        "count": len(rows),
        "data": [AnnotationResponse.model_validate(a) for a in rows],
    }


@router.get("/stats/{session_id}")
def annotation_stats(
    session_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_session(db, session_id, current_user)
    rows = (
        db.query(Annotation.page_number, Annotation.highlight_id)
        .filter(Annotation.session_id == session_id, Annotation.user_id == current_user.id)
        .all()
    )
    by_page = {}
    for page, _ in rows:
        if page is not None:
            by_page[str(page)] = by_page.get(str(page), 0) + 1
    return {
        "success": True,
        "data": {
            "session_id": session_id,
            "total": len(rows),
            "linked_to_highlight": sum(1 for _, highlight_id in rows if highlight_id is not None),
            "by_page": dict(sorted(by_page.items(), key=lambda item: int(item[0]))),
        },
    }


@router.delete("/{annotation_id}")
def delete_annotation(
    annotation_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    annotation = (
        db.query(Annotation)
        .filter(Annotation.id == annotation_id, Annotation.user_id == current_user.id)
        .first()
    )
    if not annotation:
        raise NotFoundError("Annotation not found")
    db.delete(annotation)
    db.commit()
    return {"success": True, "message": "Annotation deleted successfully"}
