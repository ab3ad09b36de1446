"""
Pydantic Schemas for API request/response validation
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from app.utils.timeutil import to_naive_utc


# ── Auth Schemas ─────────────────────────────────────────
class UserRegister(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=6)
    role: Literal["student", "teacher"] = "student"

    @field_validator("email")
    @classmethod
    def _normalize_email(cls, v: str) -> str:
        v = v.strip().lower()
        if "@" not in v:
            raise ValueError("Invalid email address")
        return v


class UserLogin(BaseModel):
    email: str
    password: str


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    role: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserResponse


# ── Sample Schemas ───────────────────────────────────────
Emotion = Literal["neutral", "happy", "sad", "angry", "surprised", "confused", "focused", "bored", "tired"]
PostureQuality = Literal["excellent", "good", "fair", "poor", "very_poor"]
DistractionType = Literal["phone", "looking_away", "multiple_people", "absence", "other", "none"]
EyeStrainRisk = Literal["low", "medium", "high", "critical"]
FatigueIndicator = Literal["slow_blink", "droopy_eyes", "yawning", "head_droop", "reduced_movement"]


class Presence(BaseModel):
    detected: bool = False
    confidence: float = Field(0.0, ge=0, le=1)
    face_count: int = Field(0, ge=0)


class GazeDirection(BaseModel):
    x: float = 0.0
    y: float = 0.0


class HeadPose(BaseModel):
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0


class Facial(BaseModel):
    eyes_open: bool = True
    blink_detected: bool = False
    blink_rate: float = Field(0.0, ge=0)
    eye_aspect_ratio: Optional[float] = Field(None, ge=0, le=1)
    gaze_direction: GazeDirection = Field(default_factory=GazeDirection)
    looking_at_screen: bool = True
    head_pose: HeadPose = Field(default_factory=HeadPose)
    emotion: Emotion = "neutral"
    emotion_confidence: float = Field(0.0, ge=0, le=1)


class Posture(BaseModel):
    score: float = Field(0.0, ge=0, le=100)
    detected: bool = False
    shoulders_visible: bool = False
    spine_angle: float = 0.0
    quality: PostureQuality = "good"
    distance_score: float = Field(50.0, ge=0, le=100)
    too_close: bool = False
    too_far: bool = False
    slouching: bool = False
    slouch_severity: float = Field(0.0, ge=0, le=100)


class Distraction(BaseModel):
    detected: bool = False
    type: DistractionType = "none"
    confidence: float = Field(0.0, ge=0, le=1)
    duration: float = 0.0
    phone_detected: bool = False
    multiple_faces: bool = False
    attention_score: float = Field(100.0, ge=0, le=100)


class Health(BaseModel):
    eye_strain_risk: EyeStrainRisk = "low"
    blink_rate_health: Literal["healthy", "low", "very_low"] = "healthy"
    fatigue_level: float = Field(0.0, ge=0, le=100)
    fatigue_indicators: List[FatigueIndicator] = Field(default_factory=list)
    time_since_break: float = Field(0.0, ge=0)   # minutes
    break_recommended: bool = False


class Environment(BaseModel):
    lighting_quality: Literal["excellent", "good", "poor", "very_poor"] = "good"
    noise_level: float = Field(0.0, ge=0, le=100)
    noise_detected: bool = False


class EngagementComponents(BaseModel):
    presence_score: float = 0.0
    attention_score: float = 0.0
    posture_score: float = 0.0
    emotion_score: float = 0.0
    health_score: float = 0.0


class SampleCreate(BaseModel):
    session_id: str = Field(..., min_length=1)
    timestamp: Optional[datetime] = None
    presence: Presence = Field(default_factory=Presence)
    facial: Facial = Field(default_factory=Facial)
    posture: Posture = Field(default_factory=Posture)
    distraction: Distraction = Field(default_factory=Distraction)
    health: Health = Field(default_factory=Health)
    environment: Environment = Field(default_factory=Environment)
    # Clamped to [0, 100] on write rather than rejected
    engagement_score: float
    engagement_components: EngagementComponents = Field(default_factory=EngagementComponents)
    raw_data: Optional[Dict[str, Any]] = None

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class SampleBatch(BaseModel):
    metrics: List[SampleCreate] = Field(..., min_length=1)


class SampleResponse(BaseModel):
    id: int
    session_id: str
    user_id: int
    timestamp: datetime
    presence: Dict[str, Any]
    facial: Dict[str, Any]
    posture: Dict[str, Any]
    distraction: Dict[str, Any]
    health: Dict[str, Any]
    environment: Dict[str, Any]
    engagement_score: float
    engagement_components: Dict[str, Any]
    raw_data: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


# ── Session Schemas ──────────────────────────────────────
InteractionType = Literal[
    "highlight", "scroll", "zoom", "page_change", "page_turn",
    "webcam", "face_metric", "break_start", "break_end",
    "click", "hover", "input", "focus", "blur", "navigation",
]


class SessionCreate(BaseModel):
    document_id: str = Field(..., min_length=1)
    document_path: str = Field(..., min_length=1)
    room_id: Optional[str] = None


class SessionResponse(BaseModel):
    id: str
    student_id: int
    room_id: Optional[str] = None
    document_id: str
    document_path: str
    is_active: bool
    status: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration_seconds: float = 0
    metrics: Optional[Dict[str, Any]] = None
    ai_summary: Optional[str] = None

    class Config:
        from_attributes = True


class InteractionCreate(BaseModel):
    type: InteractionType
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def _utc_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(v)


class InteractionBatch(BaseModel):
    # Unknown types are dropped rather than rejected
    interactions: List[Dict[str, Any]]


class InteractionResponse(BaseModel):
    id: int
    session_id: str
    type: str
    timestamp: datetime
    data: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True


# ── Highlight / Annotation Schemas ───────────────────────
class HighlightCreate(BaseModel):
    document_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    page_number: Optional[int] = Field(None, ge=0)
    color: str = "yellow"
    position: Optional[Dict[str, Any]] = None


class HighlightResponse(BaseModel):
    id: int
    document_id: str
    session_id: Optional[str] = None
    text: str
    page_number: Optional[int] = None
    color: str
    position: Optional[Dict[str, Any]] = None
    created_at: datetime

    class Config:
        from_attributes = True


class AnnotationCreate(BaseModel):
    document_id: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    highlight_id: Optional[int] = None
    page_number: Optional[int] = Field(None, ge=0)


class AnnotationResponse(BaseModel):
    id: int
    document_id: str
    session_id: Optional[str] = None
    highlight_id: Optional[int] = None
    content: str
    page_number: Optional[int] = None
    created_at: datetime

    class Config:
        from_attributes = True
