"""
Highlight & Annotation Models
Reading notes captured during a session; counted by the activity sub-score.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, Text
from datetime import datetime
from app.core.database import Base


class Highlight(Base):
    __tablename__ = "highlights"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("study_sessions.id"), nullable=True, index=True)
    document_id = Column(String(128), nullable=False)
    text = Column(Text, nullable=False)
    page_number = Column(Integer, nullable=True)
    color = Column(String(20), default="yellow")
    position = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)


class Annotation(Base):
    __tablename__ = "annotations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_id = Column(String(36), ForeignKey("study_sessions.id"), nullable=True, index=True)
    highlight_id = Column(Integer, ForeignKey("highlights.id"), nullable=True)
    document_id = Column(String(128), nullable=False)
    content = Column(Text, nullable=False)
    page_number = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
