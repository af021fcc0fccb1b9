"""Alert lifecycle controller - session state machine and active alerts.

Wraps exactly one SafetyAnalysisEngine per session and turns its
analyses into alerts for the presentation layer:

    UNINITIALIZED -> INITIALIZED -> ACTIVE <-> PROCESSING -> STOPPED

STOPPED is terminal until ``reinitialize()``. The public surface never
raises: failures are appended to ``errors`` and published as ERROR
events. Nothing is written durably here; persistence and audit belong
to whoever subscribes to the event channel.
"""
import asyncio
import logging
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sessionguard.shared.models import (
    ActionRequired,
    AlertType,
    RiskLevel,
    SafetyAlert,
    SafetyClinicalAnalysis,
    SafetySystemState,
    TranscriptChunk,
)
from sessionguard.shared.utils import safe_fingerprint
from .capability import CapabilityProvider
from .config import MonitoringConfig
from .engine import SafetyAnalysisEngine
from .errors import CapabilityError
from .events import SafetyEventChannel, SafetyEventType
from .sources import TranscriptSource

logger = logging.getLogger(__name__)


DEFAULT_AUTO_ANALYSIS_INTERVAL_MS = 15000
DEFAULT_ALERT_MESSAGE = "Review current technique"

# Urgency at which alerts escalate to iatrogenic risk / stop immediately
ESCALATION_URGENCY = 4


class ControllerState(Enum):
    """Lifecycle of a monitoring session."""
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    ACTIVE = "active"
    PROCESSING = "processing"
    STOPPED = "stopped"


class AlertLifecycleController:
    """Owns session state, active alerts and the analysis scheduler.

    At most one analysis is in flight per controller. A call arriving
    while one is processing, including a scheduler tick, is skipped.

    Usage:
        controller = AlertLifecycleController(config)
        events = controller.events.subscribe()
        if await controller.initialize():
            controller.start()
        await controller.analyze_transcription("...")
    """

    def __init__(
        self,
        config: Optional[MonitoringConfig] = None,
        capability_provider: Optional[CapabilityProvider] = None,
        engine_factory: Optional[Callable[[], SafetyAnalysisEngine]] = None,
        events: Optional[SafetyEventChannel] = None,
        auto_start: bool = False,
    ):
        """Initialize controller.

        Args:
            config: Monitoring configuration, fixed for the session
            capability_provider: Host capture check passed to the engine
            engine_factory: Builds the engine on each initialize()
            events: Event channel (a private one is created if omitted)
            auto_start: Start monitoring right after a successful initialize()
        """
        self.config = config or MonitoringConfig()
        self.capability_provider = capability_provider
        self._engine_factory = engine_factory or self._default_engine
        self.events = events or SafetyEventChannel()
        self.auto_start = auto_start

        self._engine: Optional[SafetyAnalysisEngine] = None
        self._lifecycle = ControllerState.UNINITIALIZED
        # Bumped by reinitialize(); results from an older session are discarded
        self._generation = 0
        self._auto_task: Optional[asyncio.Task] = None
        # Scheduled analysis shielded from schedule cancellation
        self._inflight: Optional[asyncio.Task] = None

        self.is_processing = False
        self.current_risk_level = RiskLevel.SAFE
        self.active_alerts: List[SafetyAlert] = []
        self.analysis_count = 0
        self.skipped_count = 0
        self.errors: List[str] = []
        self.last_analysis: Optional[SafetyClinicalAnalysis] = None
        self.statistics: Dict[str, Any] = self._empty_statistics()

    def _default_engine(self) -> SafetyAnalysisEngine:
        return SafetyAnalysisEngine(
            config=self.config,
            capability_provider=self.capability_provider,
        )

    @staticmethod
    def _empty_statistics() -> Dict[str, Any]:
        return {"total_analyses": 0, "system_uptime_ms": 0.0, "is_active": False}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        if self._lifecycle is ControllerState.ACTIVE and self.is_processing:
            return ControllerState.PROCESSING
        return self._lifecycle

    @property
    def is_active(self) -> bool:
        return self._lifecycle is ControllerState.ACTIVE

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    @property
    def auto_analysis_running(self) -> bool:
        return self._auto_task is not None and not self._auto_task.done()

    def get_system_state(self) -> SafetySystemState:
        """Snapshot of the session for polling consumers."""
        return SafetySystemState(
            is_active=self.is_active,
            is_processing=self.is_processing,
            current_risk_level=self.current_risk_level,
            active_alerts=list(self.active_alerts),
            analysis_count=self.analysis_count,
            errors=list(self.errors),
            last_analysis=self.last_analysis,
            lifecycle=self.state.value,
        )

    def get_statistics(self) -> Dict[str, Any]:
        if self._engine is not None:
            return self._engine.get_statistics()
        return dict(self.statistics)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> bool:
        """Build the engine and verify host capability.

        Only valid from UNINITIALIZED. A stopped or running session is
        rebuilt through ``reinitialize()``.

        Returns:
            True on success; False with an entry in ``errors`` otherwise
        """
        if self._lifecycle is not ControllerState.UNINITIALIZED:
            self._record_error(
                f"Already {self._lifecycle.value}; reinitialize required"
            )
            return False

        try:
            engine = self._engine_factory()
            if not engine.initialize():
                raise CapabilityError("Real-time capture not supported on this host")
        except Exception as e:
            self._record_error(f"Initialization failed: {e}", error_type=type(e).__name__)
            return False

        self._engine = engine
        self._transition(ControllerState.INITIALIZED)

        if self.auto_start:
            self.start()
        return True

    def start(self) -> bool:
        """Activate monitoring.

        Returns:
            True if monitoring is active after the call
        """
        if self._lifecycle is ControllerState.ACTIVE:
            return True
        if self._lifecycle is ControllerState.STOPPED:
            self._record_error("Monitoring stopped; reinitialize required")
            return False
        if self._engine is None:
            self._record_error("System not initialized")
            return False

        try:
            started = self._engine.start()
        except Exception as e:
            self._record_error(f"Start failed: {e}", error_type=type(e).__name__)
            return False
        if not started:
            self._record_error("Monitoring disabled by configuration")
            return False

        self._transition(ControllerState.ACTIVE)
        return True

    def stop(self) -> None:
        """Deactivate monitoring and cancel scheduled analysis.

        An analysis already in flight completes and is still applied.
        Alerts are kept.
        """
        self.stop_auto_analysis()
        if self._engine is None or self._lifecycle is ControllerState.STOPPED:
            return
        self._engine.stop()
        self._transition(ControllerState.STOPPED)

    async def reinitialize(self) -> bool:
        """Stop, reset every counter, alert and error, then initialize again."""
        self.stop()
        self._generation += 1
        self._engine = None
        self._lifecycle = ControllerState.UNINITIALIZED
        self.is_processing = False
        self.current_risk_level = RiskLevel.SAFE
        self.active_alerts = []
        self.analysis_count = 0
        self.skipped_count = 0
        self.errors = []
        self.last_analysis = None
        self.statistics = self._empty_statistics()

        logger.info("SAFETY_CONTROLLER_REINITIALIZING", extra={"generation": self._generation})
        return await self.initialize()

    async def aclose(self) -> None:
        """Tear down: cancel the scheduler, stop, close the event channel.

        A scheduled analysis already in flight is awaited, so its result
        is applied and published before the channel closes.
        """
        task = self._auto_task
        self.stop()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        inflight = self._inflight
        if inflight is not None:
            await inflight
            self._inflight = None
        self.events.close()
        logger.info("SAFETY_CONTROLLER_CLOSED", extra={"analysis_count": self.analysis_count})

    async def __aenter__(self) -> "AlertLifecycleController":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Analysis
    # ------------------------------------------------------------------

    async def analyze_transcription(
        self,
        text: str,
        chunk_id: Optional[str] = None,
        timestamp_ms: Optional[int] = None,
    ) -> Optional[SafetyClinicalAnalysis]:
        """Analyze one chunk and raise an alert if warranted.

        Args:
            text: Transcript chunk
            chunk_id: Identifier from the transcription provider
            timestamp_ms: Capture timestamp of the chunk

        Returns:
            The analysis, or None when not active, when another
            analysis is in flight, or when the engine failed

        Logs:
            - SAFETY_ANALYSIS_SKIPPED: Inactive or processing guard hit
            - SAFETY_ALERT_RAISED: Alert created (critical at urgency 5)
        """
        engine = self._engine
        if engine is None or self._lifecycle is not ControllerState.ACTIVE:
            logger.debug(
                "SAFETY_ANALYSIS_SKIPPED",
                extra={"chunk_id": chunk_id, "reason": "inactive", "state": self.state.value}
            )
            return None
        if self.is_processing:
            self.skipped_count += 1
            logger.info(
                "SAFETY_ANALYSIS_SKIPPED",
                extra={"chunk_id": chunk_id, "reason": "processing"}
            )
            return None

        generation = self._generation
        self.is_processing = True
        try:
            analysis = await engine.analyze_transcription(text, chunk_id, timestamp_ms)
        except Exception as e:
            if generation == self._generation:
                self._record_error(
                    f"Analysis failed: {e}",
                    error_type=type(e).__name__,
                    chunk_id=chunk_id,
                )
            return None
        finally:
            if generation == self._generation:
                self.is_processing = False

        if generation != self._generation:
            logger.info(
                "SAFETY_ANALYSIS_DISCARDED",
                extra={"chunk_id": chunk_id, "reason": "session_reinitialized"}
            )
            return analysis

        self._apply_analysis(analysis, text, engine)
        return analysis

    async def analyze_chunk(self, chunk: TranscriptChunk) -> Optional[SafetyClinicalAnalysis]:
        """Analyze a chunk descriptor from the transcription provider."""
        return await self.analyze_transcription(chunk.text, chunk.chunk_id, chunk.timestamp_ms)

    def _apply_analysis(
        self,
        analysis: SafetyClinicalAnalysis,
        text: str,
        engine: SafetyAnalysisEngine,
    ) -> Optional[SafetyAlert]:
        self.last_analysis = analysis
        self.current_risk_level = analysis.risk_level
        self.analysis_count += 1
        self.statistics = engine.get_statistics()

        self.events.publish(
            SafetyEventType.ANALYSIS_COMPLETED,
            {"analysis": analysis.to_dict(), "analysis_count": self.analysis_count},
        )

        if not analysis.should_alert:
            return None

        alert = self._create_alert(analysis, text)
        self.active_alerts.insert(0, alert)

        log = logger.critical if alert.urgency_level >= 5 else logger.warning
        log(
            "SAFETY_ALERT_RAISED",
            extra={
                "alert_id": alert.id,
                "chunk_id": analysis.chunk_id,
                "text_hash": safe_fingerprint(text),
                "urgency_level": alert.urgency_level,
                "alert_type": alert.type.value,
                "action_required": alert.action_required.value,
                "body_region": alert.body_region,
                "active_alert_count": len(self.active_alerts),
            }
        )
        self.events.publish(
            SafetyEventType.ALERT_RAISED,
            {
                "alert": alert.to_dict(),
                "chunk_id": analysis.chunk_id,
                "text_hash": safe_fingerprint(text),
            },
        )

        if alert.urgency_level >= self.config.auto_stop_threshold:
            logger.critical(
                "SAFETY_TECHNIQUE_STOP_RECOMMENDED",
                extra={"alert_id": alert.id, "urgency_level": alert.urgency_level}
            )
            self.events.publish(
                SafetyEventType.TECHNIQUE_STOP_RECOMMENDED,
                {
                    "alert_id": alert.id,
                    "urgency_level": alert.urgency_level,
                    "auto_stop_threshold": self.config.auto_stop_threshold,
                },
            )
        return alert

    def _create_alert(self, analysis: SafetyClinicalAnalysis, text: str) -> SafetyAlert:
        escalated = analysis.urgency_level >= ESCALATION_URGENCY
        return SafetyAlert(
            id=f"alert_{uuid.uuid4().hex[:12]}",
            timestamp=datetime.utcnow(),
            urgency_level=analysis.urgency_level,
            type=AlertType.IATROGENIC_RISK if escalated else AlertType.TECHNIQUE_WARNING,
            message=analysis.recommendations[0] if analysis.recommendations else DEFAULT_ALERT_MESSAGE,
            action_required=ActionRequired.STOP_IMMEDIATELY if escalated else ActionRequired.CAUTION,
            evidence=text,
            recommendations=list(analysis.recommendations),
            warnings=list(analysis.warnings),
            highlights=list(analysis.highlights),
            body_region=analysis.warnings[0].body_region if analysis.warnings else None,
        )

    # ------------------------------------------------------------------
    # Scheduled analysis
    # ------------------------------------------------------------------

    def start_auto_analysis(
        self,
        source: TranscriptSource,
        interval_ms: int = DEFAULT_AUTO_ANALYSIS_INTERVAL_MS,
    ) -> bool:
        """Analyze the next pending chunk from ``source`` every interval.

        Must be called from a running event loop. Replaces any schedule
        already running. Ticks do nothing unless the controller is
        ACTIVE and not PROCESSING.

        Returns:
            True if the schedule was started
        """
        if interval_ms <= 0:
            self._record_error(f"Invalid auto-analysis interval: {interval_ms}ms")
            return False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._record_error("Auto-analysis requires a running event loop")
            return False

        self.stop_auto_analysis()
        self._auto_task = loop.create_task(
            self._auto_analysis_loop(source, interval_ms / 1000.0)
        )
        logger.info("SAFETY_AUTO_ANALYSIS_STARTED", extra={"interval_ms": interval_ms})
        return True

    def stop_auto_analysis(self) -> None:
        """Cancel the schedule. No further tick runs after this call."""
        if self._auto_task is None:
            return
        self._auto_task.cancel()
        self._auto_task = None
        logger.info("SAFETY_AUTO_ANALYSIS_STOPPED")

    async def _auto_analysis_loop(self, source: TranscriptSource, interval_s: float) -> None:
        while True:
            await asyncio.sleep(interval_s)
            if self._lifecycle is not ControllerState.ACTIVE or self.is_processing:
                continue
            try:
                chunk = await source.next_chunk()
            except Exception as e:
                self._record_error(f"Transcript source failed: {e}", error_type=type(e).__name__)
                continue
            if chunk is None:
                continue
            # Cancelling the schedule must not cancel an analysis in flight
            self._inflight = asyncio.ensure_future(self.analyze_chunk(chunk))
            await asyncio.shield(self._inflight)
            self._inflight = None

    # ------------------------------------------------------------------
    # Alert actions
    # ------------------------------------------------------------------

    def _find_alert(self, alert_id: str) -> Optional[SafetyAlert]:
        for alert in self.active_alerts:
            if alert.id == alert_id:
                return alert
        return None

    def dismiss_alert(self, alert_id: str) -> bool:
        """Remove the alert with ``alert_id``. No-op if absent.

        Returns:
            True if an alert was removed
        """
        alert = self._find_alert(alert_id)
        if alert is None:
            logger.debug("SAFETY_ALERT_NOT_FOUND", extra={"alert_id": alert_id, "action": "dismiss"})
            return False
        self.active_alerts = [a for a in self.active_alerts if a.id != alert_id]
        logger.info("SAFETY_ALERT_DISMISSED", extra={"alert_id": alert_id})
        self.events.publish(SafetyEventType.ALERT_DISMISSED, {"alert_id": alert_id})
        return True

    def acknowledge_alert(self, alert_id: str) -> bool:
        """Mark the alert as seen while keeping it listed. No-op if absent.

        Returns:
            True if the alert exists
        """
        alert = self._find_alert(alert_id)
        if alert is None:
            logger.debug("SAFETY_ALERT_NOT_FOUND", extra={"alert_id": alert_id, "action": "acknowledge"})
            return False
        if not alert.is_dismissed:
            alert.is_dismissed = True
            logger.info(
                "SAFETY_ALERT_ACKNOWLEDGED",
                extra={
                    "alert_id": alert_id,
                    "time_to_acknowledge_seconds": (
                        datetime.utcnow() - alert.timestamp
                    ).total_seconds(),
                }
            )
            self.events.publish(SafetyEventType.ALERT_ACKNOWLEDGED, {"alert_id": alert_id})
        return True

    def clear_all_alerts(self) -> int:
        """Empty the active-alert list.

        Returns:
            Number of alerts removed
        """
        cleared = len(self.active_alerts)
        self.active_alerts = []
        if cleared:
            logger.info("SAFETY_ALERTS_CLEARED", extra={"cleared_count": cleared})
            self.events.publish(SafetyEventType.ALERTS_CLEARED, {"cleared_count": cleared})
        return cleared

    def request_technique_stop(self, alert_id: str) -> bool:
        """Emergency "stop technique" action from the presentation layer.

        Acknowledges the alert and publishes TECHNIQUE_STOP_REQUESTED.
        The controller never halts anything itself.

        Returns:
            False if no alert has this id
        """
        alert = self._find_alert(alert_id)
        if alert is None:
            logger.warning("SAFETY_ALERT_NOT_FOUND", extra={"alert_id": alert_id, "action": "stop_technique"})
            return False
        self.acknowledge_alert(alert_id)
        logger.critical(
            "SAFETY_TECHNIQUE_STOP_REQUESTED",
            extra={
                "alert_id": alert_id,
                "urgency_level": alert.urgency_level,
                "body_region": alert.body_region,
            }
        )
        self.events.publish(
            SafetyEventType.TECHNIQUE_STOP_REQUESTED,
            {
                "alert_id": alert_id,
                "urgency_level": alert.urgency_level,
                "body_region": alert.body_region,
            },
        )
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(self, new_state: ControllerState) -> None:
        previous = self._lifecycle
        self._lifecycle = new_state
        logger.info(
            "SAFETY_CONTROLLER_STATE_CHANGED",
            extra={"from_state": previous.value, "to_state": new_state.value}
        )
        self.events.publish(
            SafetyEventType.STATE_CHANGED,
            {
                "from_state": previous.value,
                "to_state": new_state.value,
                "is_active": self.is_active,
                "analysis_count": self.analysis_count,
                "active_alert_count": len(self.active_alerts),
            },
        )

    def _record_error(self, message: str, **context: Any) -> None:
        self.errors.append(message)
        logger.error(
            "SAFETY_CONTROLLER_ERROR",
            extra={"error": message, "state": self.state.value, **context}
        )
        self.events.publish(SafetyEventType.ERROR, {"message": message, **context})
