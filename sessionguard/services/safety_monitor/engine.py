"""Safety analysis engine - one instance per monitoring session.

Aggregates classifier output into a single SafetyClinicalAnalysis per
transcript chunk. Analysis is fail-soft: an unexpected failure yields a
degraded safe/low-urgency result instead of an exception, so one bad
chunk cannot halt monitoring.
"""
import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from sessionguard.shared.models import (
    MAX_URGENCY,
    MIN_URGENCY,
    AnalysisMetadata,
    RiskLevel,
    SafetyClinicalAnalysis,
    SafetyHighlight,
    SafetySystemState,
    SafetyWarning,
)
from sessionguard.shared.utils import safe_fingerprint
from .capability import CapabilityProvider, MiniaudioCapabilityProvider
from .classifier import RiskPatternClassifier
from .config import MonitoringConfig
from .errors import CapabilityError

logger = logging.getLogger(__name__)


DEFAULT_RECOMMENDATIONS = (
    "Continue current technique",
    "Monitor patient response",
)
DEGRADED_RECOMMENDATION = "Analysis error - continue with caution"


class SafetyAnalysisEngine:
    """Classifies transcript chunks and derives urgency and risk.

    Owns configuration and session timing. Holds no reference to the
    controller that owns it.
    """

    # Confidence heuristic by number of findings
    CONFIDENCE_NO_FINDINGS = 0.9
    CONFIDENCE_MANY_FINDINGS = 0.95
    CONFIDENCE_DEFAULT = 0.85
    MANY_FINDINGS = 3

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        classifier: Optional[RiskPatternClassifier] = None,
        capability_provider: Optional[CapabilityProvider] = None,
    ):
        """Initialize engine with configuration.

        Args:
            config: Monitoring configuration (defaults apply if omitted)
            classifier: Pattern classifier
            capability_provider: Host capture capability check
        """
        self.config = config or MonitoringConfig()
        self.classifier = classifier or RiskPatternClassifier()
        self.capability_provider = capability_provider or MiniaudioCapabilityProvider()

        self.is_active = False
        self.analysis_count = 0
        self._start_time: Optional[float] = None

    def initialize(self) -> bool:
        """Verify the host can support real-time capture.

        Never raises. Callers must check the returned value.

        Returns:
            True if the host is supported and the session clock started
        """
        try:
            self.capability_provider.check()
        except CapabilityError as e:
            logger.error(
                "SAFETY_ENGINE_CAPABILITY_UNSUPPORTED",
                extra={
                    "provider": self.capability_provider.name,
                    "reason": str(e),
                }
            )
            return False
        except Exception as e:
            logger.error(
                "SAFETY_ENGINE_INIT_FAILED",
                extra={
                    "provider": self.capability_provider.name,
                    "error": str(e),
                    "error_type": type(e).__name__,
                }
            )
            return False

        self._start_time = time.monotonic()
        logger.info(
            "SAFETY_ENGINE_INITIALIZED",
            extra={
                "provider": self.capability_provider.name,
                "alert_threshold": self.config.alert_threshold,
                "auto_stop_threshold": self.config.auto_stop_threshold,
                "model_version": self.config.model_version,
            }
        )
        return True

    def start(self) -> bool:
        """Activate monitoring.

        Returns:
            False if monitoring is disabled in configuration
        """
        if not self.config.enabled:
            logger.warning("SAFETY_ENGINE_START_SKIPPED", extra={"reason": "disabled"})
            return False
        self.is_active = True
        logger.info("SAFETY_ENGINE_STARTED")
        return True

    def stop(self) -> None:
        """Deactivate monitoring. Alerts are the controller's concern."""
        self.is_active = False
        logger.info(
            "SAFETY_ENGINE_STOPPED",
            extra={"analysis_count": self.analysis_count}
        )

    async def analyze_transcription(
        self,
        text: str,
        chunk_id: Optional[str] = None,
        timestamp_ms: Optional[int] = None,
    ) -> SafetyClinicalAnalysis:
        """Analyze a transcript chunk for iatrogenic risk and red flags.

        Args:
            text: Transcript chunk
            chunk_id: Identifier assigned by the transcription provider
            timestamp_ms: Capture timestamp of the chunk

        Returns:
            SafetyClinicalAnalysis; a degraded safe result on failure

        Logs:
            - SAFETY_ANALYSIS_COMPLETED: When log_all_analyses is on
            - SAFETY_ANALYSIS_FAILED: On the fail-soft path
        """
        start_time = time.perf_counter()

        try:
            warnings, highlights = self.classifier.classify(text)
            urgency_level = self.calculate_urgency_level(warnings, highlights)
            risk_level = RiskLevel.from_urgency(urgency_level)

            analysis = SafetyClinicalAnalysis(
                warnings=warnings,
                highlights=highlights,
                risk_level=risk_level,
                urgency_level=urgency_level,
                should_alert=urgency_level >= self.config.alert_threshold,
                recommendations=self.generate_recommendations(warnings, highlights),
                confidence=self.calculate_confidence(warnings, highlights),
                metadata=AnalysisMetadata(
                    processing_time_ms=(time.perf_counter() - start_time) * 1000,
                    model_version=self.config.model_version,
                ),
                chunk_id=chunk_id,
                timestamp_ms=timestamp_ms,
                chunk_window_ms=self.config.chunk_window_ms,
            )
        except Exception as e:
            logger.error(
                "SAFETY_ANALYSIS_FAILED",
                extra={
                    "chunk_id": chunk_id,
                    "text_hash": safe_fingerprint(text),
                    "error": str(e),
                    "error_type": type(e).__name__,
                    "action": "DEGRADED_TO_SAFE",
                }
            )
            analysis = self._degraded_result(
                error=f"{type(e).__name__}: {e}",
                start_time=start_time,
                chunk_id=chunk_id,
                timestamp_ms=timestamp_ms,
            )

        self.analysis_count += 1

        if self.config.log_all_analyses and analysis.success:
            logger.info(
                "SAFETY_ANALYSIS_COMPLETED",
                extra={
                    "chunk_id": chunk_id,
                    "text_hash": safe_fingerprint(text),
                    "text_length": len(text),
                    "risk_level": analysis.risk_level.value,
                    "urgency_level": analysis.urgency_level,
                    "should_alert": analysis.should_alert,
                    "warning_count": len(analysis.warnings),
                    "highlight_count": len(analysis.highlights),
                    "latency_ms": analysis.metadata.processing_time_ms,
                }
            )

        return analysis

    def calculate_urgency_level(
        self,
        warnings: Sequence[SafetyWarning],
        highlights: Sequence[SafetyHighlight],
    ) -> int:
        """Maximum urgency across all matches, clamped to 1-5.

        Returns 1 when nothing matched.
        """
        urgencies = [w.urgency_level for w in warnings]
        urgencies.extend(h.urgency.level for h in highlights)
        max_urgency = max(urgencies, default=MIN_URGENCY)
        return max(MIN_URGENCY, min(MAX_URGENCY, max_urgency))

    def generate_recommendations(
        self,
        warnings: Sequence[SafetyWarning],
        highlights: Sequence[SafetyHighlight],
    ) -> List[str]:
        """Collect recommendations, deduplicated in first-seen order."""
        recommendations: List[str] = []

        for warning in warnings:
            if warning.recommendation:
                recommendations.append(warning.recommendation)

        for highlight in highlights:
            if highlight.referral_needed:
                recommendations.append(
                    f"Consider referral for {highlight.category.value}"
                )

        if not recommendations:
            recommendations.extend(DEFAULT_RECOMMENDATIONS)

        return list(dict.fromkeys(recommendations))

    def calculate_confidence(
        self,
        warnings: Sequence[SafetyWarning],
        highlights: Sequence[SafetyHighlight],
    ) -> float:
        total_findings = len(warnings) + len(highlights)
        if total_findings == 0:
            return self.CONFIDENCE_NO_FINDINGS
        if total_findings >= self.MANY_FINDINGS:
            return self.CONFIDENCE_MANY_FINDINGS
        return self.CONFIDENCE_DEFAULT

    def get_statistics(self) -> Dict[str, Any]:
        """Read-only counters and uptime since initialize()."""
        uptime_ms = 0.0
        if self._start_time is not None:
            uptime_ms = (time.monotonic() - self._start_time) * 1000
        return {
            "total_analyses": self.analysis_count,
            "system_uptime_ms": uptime_ms,
            "is_active": self.is_active,
        }

    def get_system_state(self) -> SafetySystemState:
        """Engine-level state. Alerts and risk level belong to the controller."""
        return SafetySystemState(
            is_active=self.is_active,
            is_processing=False,
            current_risk_level=RiskLevel.SAFE,
            active_alerts=[],
            analysis_count=self.analysis_count,
            errors=[],
            lifecycle="active" if self.is_active else "inactive",
        )

    def _degraded_result(
        self,
        error: str,
        start_time: float,
        chunk_id: Optional[str],
        timestamp_ms: Optional[int],
    ) -> SafetyClinicalAnalysis:
        return SafetyClinicalAnalysis(
            warnings=[],
            highlights=[],
            risk_level=RiskLevel.SAFE,
            urgency_level=MIN_URGENCY,
            should_alert=False,
            recommendations=[DEGRADED_RECOMMENDATION],
            confidence=0.0,
            metadata=AnalysisMetadata(
                processing_time_ms=(time.perf_counter() - start_time) * 1000,
                model_version=self.config.model_version,
            ),
            success=False,
            chunk_id=chunk_id,
            timestamp_ms=timestamp_ms,
            chunk_window_ms=self.config.chunk_window_ms,
            error=error,
        )
