"""
StudyGuard Engagement Aggregation
Pure reductions over a session's interactions and engagement samples:
final session metrics, bucketed trends, anomalies and per-sample alerts.

Nothing here touches the database. Callers load rows, convert them to
``InteractionRecord`` / ``SampleRecord`` and pass plain lists in. Every
function sorts its input by timestamp first since samples may arrive out
of order.
"""

import math
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import numpy as np

from app.utils.timeutil import epoch_ms, from_epoch_ms

logger = logging.getLogger("studyguard.engagement")


# ── Thresholds ───────────────────────────────────────────

IDEAL_BLINK_RATE_MIN = 15
IDEAL_BLINK_RATE_MAX = 25
BLINK_MAX_DISTANCE = 50

ENGAGEMENT_WEIGHTS = {
    "attention_rate": 0.5,
    "posture_score": 0.3,
    "blink_compliance": 0.2,
}

ENGAGEMENT_DROP_THRESHOLD = 30
ENGAGEMENT_DROP_HIGH = 50
ABSENCE_STREAK_THRESHOLD = 5

BREAK_THRESHOLDS = {
    "fatigue_level": 75,
    "time_since_break": 25,   # minutes
}
NEEDS_BREAK_FATIGUE = 70
ENGAGED_MIN_SCORE = 60

TIMELINE_SWING = 20
POOR_POSTURE_SCORE = 50
POOR_POSTURE_QUALITIES = ("poor", "very_poor")
EYE_STRAIN_ALERT_LEVELS = ("high", "critical")


def round_half_up(value: float, ndigits: int = 0) -> float:
    """Round with .5 going toward +inf, unlike Python's banker's rounding"""
    if ndigits == 0:
        return math.floor(value + 0.5)
    factor = 10 ** ndigits
    return math.floor(value * factor + 0.5) / factor


def _mean(values: Iterable[float]) -> float:
    arr = np.fromiter((float(v) for v in values), dtype=float)
    if arr.size == 0:
        return 0.0
    return float(arr.mean())


def _number(value: Any) -> float:
    """Numeric reading from free-form interaction data; anything unusable counts as 0"""
    if value is None:
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        logger.debug("Non-numeric reading %r counted as 0", value)
        return 0.0
    if not math.isfinite(number):
        logger.debug("Non-finite reading %r counted as 0", value)
        return 0.0
    return number


def _by_time(items: Iterable[Any]) -> List[Any]:
    # Stable sort keeps insertion order for equal timestamps
    return sorted(items, key=lambda r: r.timestamp or datetime.min)


# ── Records ──────────────────────────────────────────────

@dataclass
class InteractionRecord:
    type: str
    data: Dict[str, Any] = field(default_factory=dict)
    timestamp: Optional[datetime] = None

    @classmethod
    def from_row(cls, row) -> "InteractionRecord":
        return cls(type=row.type, data=dict(row.data or {}), timestamp=row.timestamp)


@dataclass
class SampleRecord:
    """Read-only view of one stored engagement sample"""
    timestamp: datetime
    engagement_score: float = 0.0
    presence: Dict[str, Any] = field(default_factory=dict)
    facial: Dict[str, Any] = field(default_factory=dict)
    posture: Dict[str, Any] = field(default_factory=dict)
    distraction: Dict[str, Any] = field(default_factory=dict)
    health: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    session_id: Optional[str] = None

    @classmethod
    def from_row(cls, row) -> "SampleRecord":
        return cls(
            id=row.id,
            session_id=row.session_id,
            timestamp=row.timestamp,
            engagement_score=row.engagement_score or 0.0,
            presence=dict(row.presence or {}),
            facial=dict(row.facial or {}),
            posture=dict(row.posture or {}),
            distraction=dict(row.distraction or {}),
            health=dict(row.health or {}),
        )

    @property
    def present(self) -> bool:
        return bool(self.presence.get("detected", False))

    @property
    def distracted(self) -> bool:
        return bool(self.distraction.get("detected", False))

    @property
    def attention_score(self) -> float:
        return float(self.distraction.get("attention_score", 0) or 0)

    @property
    def posture_score(self) -> float:
        return float(self.posture.get("score", 0) or 0)

    @property
    def blink_rate(self) -> float:
        return float(self.facial.get("blink_rate", 0) or 0)

    @property
    def emotion(self) -> str:
        return self.facial.get("emotion", "neutral")

    @property
    def fatigue_level(self) -> float:
        return float(self.health.get("fatigue_level", 0) or 0)

    @property
    def eye_strain_risk(self) -> str:
        return self.health.get("eye_strain_risk", "low")


@dataclass
class FinalMetrics:
    """Snapshot written onto a session when it ends"""
    engagement_score: int = 0
    attention_rate: int = 0
    avg_posture_score: int = 0
    avg_blink_rate: int = 0
    distraction_count: int = 0
    duration_seconds: float = 0
    total_metrics_recorded: int = 0
    total_highlights: int = 0
    page_time_analytics: Dict[str, float] = field(default_factory=dict)
    pages_visited: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "engagement_score": self.engagement_score,
            "attention_rate": self.attention_rate,
            "avg_posture_score": self.avg_posture_score,
            "avg_blink_rate": self.avg_blink_rate,
            "distraction_count": self.distraction_count,
            "duration_seconds": self.duration_seconds,
            "total_metrics_recorded": self.total_metrics_recorded,
            "total_highlights": self.total_highlights,
            "page_time_analytics": dict(self.page_time_analytics),
            "pages_visited": self.pages_visited,
        }


# ── Session aggregation ──────────────────────────────────

def blink_compliance(blink_rate: float) -> float:
    """
    100 inside the ideal 15-25 BPM band, decaying linearly to 0 as the
    distance from the nearer bound approaches 50 BPM.
    """
    if IDEAL_BLINK_RATE_MIN <= blink_rate <= IDEAL_BLINK_RATE_MAX:
        return 100.0
    distance = min(abs(blink_rate - IDEAL_BLINK_RATE_MIN), abs(blink_rate - IDEAL_BLINK_RATE_MAX))
    penalty = min(distance / BLINK_MAX_DISTANCE, 1.0)
    return max(0.0, 100.0 * (1 - penalty))


def count_rising_edges(flags: Iterable[Any]) -> int:
    """Number of false→true transitions; a leading true counts as one"""
    edges = 0
    previous = False
    for flag in flags:
        current = bool(flag)
        if current and not previous:
            edges += 1
        previous = current
    return edges


def page_time_analytics(interactions: Iterable[InteractionRecord]) -> Dict[str, float]:
    """Seconds spent per page, summed from page_turn / page_change events"""
    page_time: Dict[str, float] = {}
    for event in interactions:
        if event.type not in ("page_turn", "page_change"):
            continue
        data = event.data or {}
        page = data.get("from") or data.get("page")
        if not page:
            continue
        spent = _number(data.get("time_spent") or data.get("duration"))
        key = str(page)
        page_time[key] = page_time.get(key, 0) + spent
    return page_time


def compute_final_metrics(
    interactions: Iterable[InteractionRecord],
    duration_seconds: float = 0,
) -> FinalMetrics:
    ordered = _by_time(interactions)
    webcam = [i for i in ordered if i.type == "webcam"]

    if not webcam:
        return FinalMetrics(duration_seconds=duration_seconds or 0)

    total = len(webcam)
    focused = sum(1 for i in webcam if i.data.get("looking_at_screen"))
    posture_mean = _mean(_number(i.data.get("posture_score")) for i in webcam)
    blink_mean = _mean(_number(i.data.get("blink_rate")) for i in webcam)

    attention_rate = round_half_up(100 * focused / total)
    avg_blink_rate = round_half_up(blink_mean)
    compliance = blink_compliance(avg_blink_rate)

    engagement = round_half_up(
        attention_rate * ENGAGEMENT_WEIGHTS["attention_rate"]
        + posture_mean * ENGAGEMENT_WEIGHTS["posture_score"]
        + compliance * ENGAGEMENT_WEIGHTS["blink_compliance"]
    )

    pages = page_time_analytics(ordered)
    return FinalMetrics(
        engagement_score=int(min(100, max(0, engagement))),
        attention_rate=int(attention_rate),
        avg_posture_score=int(round_half_up(posture_mean)),
        avg_blink_rate=int(avg_blink_rate),
        distraction_count=count_rising_edges(i.data.get("has_phone") for i in webcam),
        duration_seconds=duration_seconds or 0,
        total_metrics_recorded=total,
        total_highlights=sum(1 for i in ordered if i.type == "highlight"),
        page_time_analytics=pages,
        pages_visited=len(pages),
    )


# ── Sample write rules ───────────────────────────────────

def normalize_sample(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Clamp engagement and raise the break flag before a sample is stored"""
    payload["engagement_score"] = max(0.0, min(100.0, float(payload.get("engagement_score") or 0)))

    health = payload.setdefault("health", {})
    if (
        (health.get("time_since_break") or 0) > BREAK_THRESHOLDS["time_since_break"]
        or health.get("eye_strain_risk") == "critical"
        or (health.get("fatigue_level") or 0) > BREAK_THRESHOLDS["fatigue_level"]
    ):
        health["break_recommended"] = True
    return payload


def needs_break(sample: SampleRecord) -> bool:
    return (
        bool(sample.health.get("break_recommended"))
        or sample.eye_strain_risk == "critical"
        or sample.fatigue_level > NEEDS_BREAK_FATIGUE
    )


def is_engaged(sample: SampleRecord) -> bool:
    return sample.engagement_score >= ENGAGED_MIN_SCORE and sample.present and not sample.distracted


def sample_alerts(sample: SampleRecord) -> List[Dict[str, str]]:
    """Alerts raised by a single sample"""
    alerts = []
    if not sample.present:
        alerts.append({"type": "absence", "severity": "high", "message": "Student not detected"})
    if sample.distracted:
        alerts.append({
            "type": "distraction",
            "severity": "medium",
            "message": f"Distraction detected: {sample.distraction.get('type', 'other')}",
        })
    if sample.posture.get("quality") in POOR_POSTURE_QUALITIES:
        alerts.append({"type": "posture", "severity": "low", "message": "Poor posture detected"})
    if sample.eye_strain_risk in EYE_STRAIN_ALERT_LEVELS:
        alerts.append({"type": "health", "severity": "high", "message": "High eye strain risk detected"})
    if sample.health.get("break_recommended"):
        alerts.append({"type": "break", "severity": "medium", "message": "Break recommended"})
    return alerts


# ── Trend / anomaly analysis ─────────────────────────────

def engagement_trend(samples: Iterable[SampleRecord], interval_minutes: int = 5) -> List[Dict[str, Any]]:
    """
    Bucket samples into epoch-aligned windows of ``interval_minutes``.
    Each bucket reports mean engagement and attention (1 decimal),
    distraction sample count and the number of datapoints.
    """
    interval_ms = max(1, int(interval_minutes)) * 60 * 1000
    buckets: Dict[int, List[SampleRecord]] = {}
    for sample in _by_time(samples):
        ms = epoch_ms(sample.timestamp)
        buckets.setdefault(ms - ms % interval_ms, []).append(sample)

    trend = []
    for key in sorted(buckets):
        group = buckets[key]
        trend.append({
            "timestamp": from_epoch_ms(key),
            "avg_engagement": round_half_up(_mean(s.engagement_score for s in group), 1),
            "avg_attention": round_half_up(_mean(s.attention_score for s in group), 1),
            "distraction_count": sum(1 for s in group if s.distracted),
            "datapoints": len(group),
        })
    return trend


def detect_anomalies(samples: Iterable[SampleRecord]) -> List[Dict[str, Any]]:
    """
    Single pass over time-ordered samples.

    * ``engagement_drop``: adjacent drop above 30 points (high above 50)
    * ``prolonged_absence``: emitted once per absence run, on its 5th sample
    """
    anomalies = []
    previous: Optional[SampleRecord] = None
    absence_streak = 0

    for sample in _by_time(samples):
        if previous is not None:
            drop = previous.engagement_score - sample.engagement_score
            if drop > ENGAGEMENT_DROP_THRESHOLD:
                anomalies.append({
                    "type": "engagement_drop",
                    "timestamp": sample.timestamp,
                    "severity": "high" if drop > ENGAGEMENT_DROP_HIGH else "medium",
                    "details": f"Engagement dropped by {drop:.1f} points",
                })

        if sample.present:
            absence_streak = 0
        else:
            absence_streak += 1
            if absence_streak == ABSENCE_STREAK_THRESHOLD:
                anomalies.append({
                    "type": "prolonged_absence",
                    "timestamp": sample.timestamp,
                    "severity": "high",
                    "details": "Student absent for extended period",
                })
        previous = sample

    return anomalies


def engagement_timeline(samples: Iterable[SampleRecord]) -> List[Dict[str, Any]]:
    """Per-sample events: absence, distraction, poor posture and swings above 20 points"""
    timeline = []
    previous: Optional[SampleRecord] = None
    for sample in _by_time(samples):
        events = []
        if not sample.present:
            events.append("absence")
        if sample.distracted:
            events.append("distraction")
        if sample.posture_score < POOR_POSTURE_SCORE:
            events.append("poor_posture")
        if previous is not None:
            diff = sample.engagement_score - previous.engagement_score
            if diff > TIMELINE_SWING:
                events.append("engagement_spike")
            if diff < -TIMELINE_SWING:
                events.append("engagement_drop")
        timeline.append({
            "timestamp": sample.timestamp,
            "engagement_score": sample.engagement_score,
            "emotion": sample.emotion,
            "events": events,
        })
        previous = sample
    return timeline


# ── Session summaries ────────────────────────────────────

def summarize_samples(samples: Iterable[SampleRecord]) -> Optional[Dict[str, Any]]:
    ordered = _by_time(samples)
    if not ordered:
        return None

    total = len(ordered)
    scores = np.array([s.engagement_score for s in ordered], dtype=float)
    distracted = [s for s in ordered if s.distracted]

    emotions: Dict[str, int] = {}
    for s in ordered:
        emotions[s.emotion] = emotions.get(s.emotion, 0) + 1

    distraction_types: List[str] = []
    for s in distracted:
        kind = s.distraction.get("type", "other")
        if kind not in distraction_types:
            distraction_types.append(kind)

    return {
        "total_datapoints": total,
        "duration_minutes": (ordered[-1].timestamp - ordered[0].timestamp).total_seconds() / 60,
        "avg_engagement": float(scores.mean()),
        "max_engagement": float(scores.max()),
        "min_engagement": float(scores.min()),
        "presence_rate": sum(1 for s in ordered if s.present) / total * 100,
        "distraction_count": len(distracted),
        "distraction_rate": len(distracted) / total * 100,
        "distraction_types": distraction_types,
        "avg_posture_score": _mean(s.posture_score for s in ordered),
        "poor_posture_count": sum(1 for s in ordered if s.posture.get("quality") in POOR_POSTURE_QUALITIES),
        "avg_blink_rate": _mean(s.blink_rate for s in ordered),
        "eye_strain_alerts": sum(1 for s in ordered if s.eye_strain_risk in EYE_STRAIN_ALERT_LEVELS),
        "avg_fatigue": _mean(s.fatigue_level for s in ordered),
        "emotion_distribution": emotions,
        "engagement_timeline": [{"timestamp": s.timestamp, "score": s.engagement_score} for s in ordered],
    }


def health_insights(samples: Iterable[SampleRecord]) -> Dict[str, Any]:
    ordered = _by_time(samples)
    # Zero blink rates are missing readings, not a closed-eye measurement
    blink_rates = [s.blink_rate for s in ordered if s.blink_rate > 0]
    eye_strain = sum(1 for s in ordered if s.eye_strain_risk in EYE_STRAIN_ALERT_LEVELS)
    posture_issues = sum(1 for s in ordered if s.posture_score < POOR_POSTURE_SCORE)

    return {
        "avg_blink_rate": round_half_up(_mean(blink_rates), 1),
        "eye_strain_alerts": eye_strain,
        "posture_issues": posture_issues,
        "fatigue_timeline": [{"timestamp": s.timestamp, "fatigue_level": s.fatigue_level} for s in ordered],
        "health_score": max(0, 100 - eye_strain * 5 - posture_issues * 2),
    }


def distraction_episodes(samples: Iterable[SampleRecord]) -> Dict[str, Any]:
    """Group contiguous distracted samples into episodes"""
    ordered = _by_time(samples)
    by_type: Dict[str, int] = {}
    episodes: List[Dict[str, Any]] = []
    current: Optional[Dict[str, Any]] = None

    for s in ordered:
        if s.distracted:
            kind = s.distraction.get("type", "other")
            by_type[kind] = by_type.get(kind, 0) + 1
            if current is None:
                current = {"start": s.timestamp, "end": s.timestamp, "type": kind, "count": 1}
            else:
                current["end"] = s.timestamp
                current["count"] += 1
        elif current is not None:
            episodes.append(current)
            current = None
    if current is not None:
        episodes.append(current)

    for ep in episodes:
        ep["duration_seconds"] = (ep["end"] - ep["start"]).total_seconds()

    durations = [ep["duration_seconds"] for ep in episodes]
    total_distracted = sum(by_type.values())
    total_time = sum(durations)

    return {
        "total_distractions": total_distracted,
        "distraction_rate": total_distracted / len(ordered) * 100 if ordered else 0,
        "by_type": by_type,
        "episodes": len(episodes),
        "total_distraction_time": round_half_up(total_time),
        "avg_episode_duration": total_time / len(episodes) if episodes else 0,
        "longest_episode": max(durations) if durations else 0,
        "distraction_timeline": episodes,
    }
