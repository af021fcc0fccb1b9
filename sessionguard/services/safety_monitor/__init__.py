"""Safety Monitor: real-time iatrogenic risk and red-flag detection.

Transcript chunks from a live treatment session are matched against
static risk and red-flag catalogs; the resulting analysis drives alerts
that the presentation layer can acknowledge, dismiss or act on.

Components:
- classifier.py: RiskPatternClassifier, stateless catalog matcher
- engine.py: SafetyAnalysisEngine, per-session aggregation (fail-soft)
- controller.py: AlertLifecycleController, state machine and alerts
- events.py: SafetyEventChannel, ordered event delivery to consumers
- config.py: MonitoringConfig and pattern catalogs
- alert_publisher.py: optional Kinesis forwarder for an audit sink

Usage:
    controller = AlertLifecycleController(MonitoringConfig())
    subscription = controller.events.subscribe()
    if await controller.initialize():
        controller.start()
    analysis = await controller.analyze_transcription(chunk_text)
"""

from .alert_publisher import AlertEventPublisher
from .capability import (
    CapabilityProvider,
    MiniaudioCapabilityProvider,
    StaticCapabilityProvider,
)
from .classifier import RiskPatternClassifier
from .config import MonitoringConfig, RED_FLAG_PATTERNS, RISK_PATTERNS
from .controller import AlertLifecycleController, ControllerState
from .engine import SafetyAnalysisEngine
from .errors import AnalysisError, CapabilityError, ConfigurationError
from .events import EventSubscription, SafetyEvent, SafetyEventChannel, SafetyEventType
from .sources import QueueTranscriptSource, TranscriptSource

__all__ = [
    "AlertEventPublisher",
    "AlertLifecycleController",
    "AnalysisError",
    "CapabilityError",
    "CapabilityProvider",
    "ConfigurationError",
    "ControllerState",
    "EventSubscription",
    "MiniaudioCapabilityProvider",
    "MonitoringConfig",
    "QueueTranscriptSource",
    "RED_FLAG_PATTERNS",
    "RISK_PATTERNS",
    "RiskPatternClassifier",
    "SafetyAnalysisEngine",
    "SafetyEvent",
    "SafetyEventChannel",
    "SafetyEventType",
    "StaticCapabilityProvider",
    "TranscriptSource",
]
