"""Shared domain models for SessionGuard."""
from .safety import (
    MAX_URGENCY,
    MIN_URGENCY,
    ActionRequired,
    AlertType,
    AnalysisMetadata,
    IatrogenicType,
    Priority,
    RedFlagCategory,
    RedFlagUrgency,
    RiskLevel,
    SafetyAlert,
    SafetyClinicalAnalysis,
    SafetyHighlight,
    SafetySystemState,
    SafetyWarning,
    SeverityTier,
    TranscriptChunk,
)

__all__ = [
    "MAX_URGENCY",
    "MIN_URGENCY",
    "ActionRequired",
    "AlertType",
    "AnalysisMetadata",
    "IatrogenicType",
    "Priority",
    "RedFlagCategory",
    "RedFlagUrgency",
    "RiskLevel",
    "SafetyAlert",
    "SafetyClinicalAnalysis",
    "SafetyHighlight",
    "SafetySystemState",
    "SafetyWarning",
    "SeverityTier",
    "TranscriptChunk",
]
