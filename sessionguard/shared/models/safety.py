"""Safety monitoring domain models.

Core enums and records produced while monitoring a live treatment session.
Urgency is an integer 1 (low) to 5 (critical); risk level is derived
from it and never set independently.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


MIN_URGENCY = 1
MAX_URGENCY = 5


class RiskLevel(Enum):
    """Coarse session risk classification derived from urgency level."""
    SAFE = "safe"           # Urgency 1-2
    CAUTION = "caution"     # Urgency 3
    WARNING = "warning"     # Urgency 4
    DANGER = "danger"       # Urgency 5

    @classmethod
    def from_urgency(cls, urgency_level: int) -> "RiskLevel":
        """Map an urgency level to its risk level."""
        if urgency_level >= 5:
            return cls.DANGER
        if urgency_level >= 4:
            return cls.WARNING
        if urgency_level >= 3:
            return cls.CAUTION
        return cls.SAFE


class SeverityTier(Enum):
    """Severity tiers of the iatrogenic risk catalog."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def urgency(self) -> int:
        return _TIER_URGENCY[self]


_TIER_URGENCY = {
    SeverityTier.CRITICAL: 5,
    SeverityTier.HIGH: 4,
    SeverityTier.MEDIUM: 3,
    SeverityTier.LOW: 2,
}


class Priority(Enum):
    """Display priority shared by warnings and highlights."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"


class IatrogenicType(Enum):
    """Kind of harm the technique itself may cause."""
    CONTRAINDICATION = "contraindication"
    TECHNIQUE_ERROR = "technique_error"
    FORCE_EXCESSIVE = "force_excessive"
    ANATOMIC_RISK = "anatomic_risk"


class ActionRequired(Enum):
    """What the clinician is asked to do."""
    STOP_IMMEDIATELY = "STOP_IMMEDIATELY"
    CAUTION = "CAUTION"
    MONITOR = "MONITOR"
    INFORM = "INFORM"

    @classmethod
    def from_urgency(cls, urgency_level: int) -> "ActionRequired":
        if urgency_level >= 5:
            return cls.STOP_IMMEDIATELY
        if urgency_level >= 4:
            return cls.CAUTION
        if urgency_level >= 3:
            return cls.MONITOR
        return cls.INFORM


class RedFlagCategory(Enum):
    """Finding categories associated with serious underlying pathology."""
    NEUROLOGICAL = "neurological"
    VASCULAR = "vascular"
    INFECTION = "infection"
    FRACTURE = "fracture"
    SYSTEMIC = "systemic"

    @property
    def urgency(self) -> "RedFlagUrgency":
        if self in (RedFlagCategory.NEUROLOGICAL, RedFlagCategory.VASCULAR):
            return RedFlagUrgency.IMMEDIATE
        if self in (RedFlagCategory.INFECTION, RedFlagCategory.FRACTURE):
            return RedFlagUrgency.URGENT
        return RedFlagUrgency.MONITOR

    @property
    def priority(self) -> Priority:
        if self in (RedFlagCategory.NEUROLOGICAL, RedFlagCategory.VASCULAR):
            return Priority.HIGH
        if self in (RedFlagCategory.INFECTION, RedFlagCategory.FRACTURE):
            return Priority.MEDIUM
        return Priority.LOW

    @property
    def referral_needed(self) -> bool:
        return self is not RedFlagCategory.SYSTEMIC


class RedFlagUrgency(Enum):
    """Urgency class of a red flag."""
    IMMEDIATE = "immediate"
    URGENT = "urgent"
    MONITOR = "monitor"

    @property
    def level(self) -> int:
        return {"immediate": 5, "urgent": 4, "monitor": 3}[self.value]


class AlertType(Enum):
    """Alert classification shown to the clinician."""
    IATROGENIC_RISK = "iatrogenic_risk"
    TECHNIQUE_WARNING = "technique_warning"


def _check_urgency(urgency_level: int) -> None:
    if not MIN_URGENCY <= urgency_level <= MAX_URGENCY:
        raise ValueError(
            f"Urgency level must be {MIN_URGENCY}-{MAX_URGENCY}, got {urgency_level}"
        )


@dataclass(frozen=True)
class SafetyWarning:
    """An iatrogenic risk matched in a transcript chunk.

    Immutable - one record per pattern match, never merged.
    """
    severity: Priority
    urgency_level: int
    iatrogenic_type: IatrogenicType
    action_required: ActionRequired
    body_region: str
    evidence: str
    title: str = ""
    description: str = ""
    recommendation: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        _check_urgency(self.urgency_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "urgency_level": self.urgency_level,
            "iatrogenic_type": self.iatrogenic_type.value,
            "action_required": self.action_required.value,
            "body_region": self.body_region,
            "evidence": self.evidence,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SafetyHighlight:
    """A red flag matched in a transcript chunk."""
    priority: Priority
    category: RedFlagCategory
    urgency: RedFlagUrgency
    referral_needed: bool
    evidence: str
    title: str = ""
    description: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "priority": self.priority.value,
            "category": self.category.value,
            "urgency": self.urgency.value,
            "referral_needed": self.referral_needed,
            "evidence": self.evidence,
            "title": self.title,
            "description": self.description,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class AnalysisMetadata:
    processing_time_ms: float
    model_version: str


@dataclass(frozen=True)
class SafetyClinicalAnalysis:
    """Result of analyzing one transcript chunk.

    Ephemeral - produced once per call and never persisted by the engine.
    The transcript text itself is intentionally not carried here.
    """
    warnings: List[SafetyWarning]
    highlights: List[SafetyHighlight]
    risk_level: RiskLevel
    urgency_level: int
    should_alert: bool
    recommendations: List[str]
    confidence: float
    metadata: AnalysisMetadata
    success: bool = True
    chunk_id: Optional[str] = None
    timestamp_ms: Optional[int] = None
    chunk_window_ms: int = 0
    error: Optional[str] = None

    def __post_init__(self):
        _check_urgency(self.urgency_level)
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Confidence must be 0.0-1.0, got {self.confidence}")
        if self.risk_level is not RiskLevel.from_urgency(self.urgency_level):
            raise ValueError(
                f"Risk level {self.risk_level.value} inconsistent with "
                f"urgency {self.urgency_level}"
            )

    @property
    def finding_count(self) -> int:
        return len(self.warnings) + len(self.highlights)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for event payloads."""
        return {
            "warnings": [w.to_dict() for w in self.warnings],
            "highlights": [h.to_dict() for h in self.highlights],
            "risk_level": self.risk_level.value,
            "urgency_level": self.urgency_level,
            "should_alert": self.should_alert,
            "recommendations": list(self.recommendations),
            "confidence": self.confidence,
            "metadata": {
                "processing_time_ms": round(self.metadata.processing_time_ms, 2),
                "model_version": self.metadata.model_version,
            },
            "success": self.success,
            "chunk_id": self.chunk_id,
            "timestamp_ms": self.timestamp_ms,
            "chunk_window_ms": self.chunk_window_ms,
            "error": self.error,
        }


@dataclass
class SafetyAlert:
    """Mutable alert tracked by the controller until dismissed or cleared.

    Only ``is_dismissed`` changes after creation (acknowledgement).
    """
    id: str
    timestamp: datetime
    urgency_level: int
    type: AlertType
    message: str
    action_required: ActionRequired
    evidence: str
    recommendations: List[str] = field(default_factory=list)
    warnings: List[SafetyWarning] = field(default_factory=list)
    highlights: List[SafetyHighlight] = field(default_factory=list)
    body_region: Optional[str] = None
    is_dismissed: bool = False

    def __post_init__(self):
        _check_urgency(self.urgency_level)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "urgency_level": self.urgency_level,
            "type": self.type.value,
            "message": self.message,
            "action_required": self.action_required.value,
            "evidence": self.evidence,
            "recommendations": list(self.recommendations),
            "warnings": [w.to_dict() for w in self.warnings],
            "highlights": [h.to_dict() for h in self.highlights],
            "body_region": self.body_region,
            "is_dismissed": self.is_dismissed,
        }


@dataclass(frozen=True)
class SafetySystemState:
    """Pollable snapshot of monitoring state.

    ``is_active=False`` with no alerts means monitoring is unavailable,
    which is not the same as "no risk found".
    """
    is_active: bool
    is_processing: bool
    current_risk_level: RiskLevel
    active_alerts: List[SafetyAlert]
    analysis_count: int
    errors: List[str]
    last_analysis: Optional[SafetyClinicalAnalysis] = None
    lifecycle: str = "uninitialized"

    @property
    def monitoring_unavailable(self) -> bool:
        return not self.is_active


@dataclass(frozen=True)
class TranscriptChunk:
    """A bounded slice of session transcription submitted for analysis."""
    text: str
    chunk_id: Optional[str] = None
    timestamp_ms: Optional[int] = None
