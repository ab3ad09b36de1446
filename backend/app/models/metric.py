"""
Engagement Sample Model
One row per webcam observation tick. Rows are never updated after insert.
Nested observation groups are stored as JSON; the flags used by SQL
aggregates are mirrored in indexed columns.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, JSON, ForeignKey, Index
from datetime import datetime
from app.core.database import Base


class Sample(Base):
    __tablename__ = "samples"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(36), ForeignKey("study_sessions.id"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    timestamp = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    presence = Column(JSON, default=dict)
    facial = Column(JSON, default=dict)
    posture = Column(JSON, default=dict)
    distraction = Column(JSON, default=dict)
    health = Column(JSON, default=dict)
    environment = Column(JSON, default=dict)

    engagement_score = Column(Float, nullable=False, default=0.0)
    engagement_components = Column(JSON, default=dict)
    raw_data = Column(JSON, nullable=True)

    presence_detected = Column(Boolean, default=False)
    distraction_detected = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_samples_session_timestamp", "session_id", "timestamp"),
        Index("ix_samples_user_timestamp", "user_id", "timestamp"),
    )
