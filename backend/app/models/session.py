"""
Study Session & Interaction Models
A session owns an ordered list of interactions and, once ended, a cached
FinalMetrics snapshot in ``metrics``.
"""

import uuid
from datetime import datetime

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, JSON, ForeignKey, Text
from app.core.database import Base


def _new_session_id() -> str:
    return str(uuid.uuid4())


class StudySession(Base):
    __tablename__ = "study_sessions"

    id = Column(String(36), primary_key=True, default=_new_session_id)
    student_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    room_id = Column(String(64), nullable=True, index=True)
    document_id = Column(String(128), nullable=False)
    document_path = Column(String(512), nullable=False)
    is_active = Column(Boolean, default=True, index=True)
    start_time = Column(DateTime, default=datetime.utcnow, index=True)
    end_time = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, default=0)
    metrics = Column(JSON, nullable=True)   # FinalMetrics snapshot, written at end
    ai_summary = Column(Text, default="")
    created_at = Column(DateTime, default=datetime.utcnow)

    @property
    def status(self) -> str:
        return "active" if self.is_active else "completed"


class Interaction(Base):
    __tablename__ = "interactions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("study_sessions.id"), nullable=False, index=True)
    type = Column(String(20), nullable=False)
    timestamp = Column(DateTime, default=datetime.utcnow)
    data = Column(JSON, nullable=True)
