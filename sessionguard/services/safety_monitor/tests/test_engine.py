"""Tests for SafetyAnalysisEngine.

Covers urgency/risk derivation, alert threshold, recommendations,
confidence, counters and the fail-soft contract.
"""
import pytest
from unittest.mock import MagicMock

from sessionguard.shared.models import RiskLevel
from sessionguard.services.safety_monitor.capability import (
    CapabilityProvider,
    StaticCapabilityProvider,
)
from sessionguard.services.safety_monitor.config import MonitoringConfig
from sessionguard.services.safety_monitor.engine import (
    DEFAULT_RECOMMENDATIONS,
    DEGRADED_RECOMMENDATION,
    SafetyAnalysisEngine,
)


HIGH_RISK_TEXT = "El paciente refiere dolor intenso durante la manipulación"
NIGHT_PAIN_TEXT = "Dolor nocturno en la espalda"
CRITICAL_TEXT = "Voy a realizar un thrust en C1-C2 con rotación forzada del cuello"
SAFE_TEXT = "Realizo movilización suave de la articulación"


@pytest.fixture
def engine():
    """Create an initialized engine on a supported host."""
    engine = SafetyAnalysisEngine(capability_provider=StaticCapabilityProvider())
    assert engine.initialize() is True
    return engine


class TestInitialize:
    """Tests for capability checking."""

    def test_supported_host(self):
        engine = SafetyAnalysisEngine(capability_provider=StaticCapabilityProvider(True))
        assert engine.initialize() is True

    def test_unsupported_host_returns_false(self):
        """Unsupported host must not raise."""
        engine = SafetyAnalysisEngine(
            capability_provider=StaticCapabilityProvider(False, "no microphone")
        )
        assert engine.initialize() is False
        assert engine.get_statistics()["system_uptime_ms"] == 0

    def test_provider_crash_returns_false(self):
        """Unexpected provider failure is also non-fatal."""
        provider = MagicMock(spec=CapabilityProvider)
        provider.name = "broken"
        provider.check.side_effect = OSError("device busy")

        engine = SafetyAnalysisEngine(capability_provider=provider)

        assert engine.initialize() is False


class TestStartStop:
    """Tests for activation flag."""

    def test_start_and_stop_toggle_active(self, engine):
        assert engine.start() is True
        assert engine.is_active is True
        engine.stop()
        assert engine.is_active is False

    def test_disabled_config_refuses_start(self):
        engine = SafetyAnalysisEngine(
            config=MonitoringConfig(enabled=False),
            capability_provider=StaticCapabilityProvider(),
        )
        engine.initialize()

        assert engine.start() is False
        assert engine.is_active is False


@pytest.mark.asyncio
class TestAnalyzeTranscription:
    """Tests for aggregation of classifier output."""

    async def test_no_match_is_safe(self, engine):
        """Chunks matching nothing are urgency 1, safe, no alert."""
        analysis = await engine.analyze_transcription(SAFE_TEXT)

        assert analysis.urgency_level == 1
        assert analysis.risk_level == RiskLevel.SAFE
        assert analysis.should_alert is False
        assert analysis.recommendations == list(DEFAULT_RECOMMENDATIONS)
        assert analysis.confidence == 0.9
        assert analysis.success is True

    async def test_high_risk_scenario(self, engine):
        """High-tier match yields warning level and an alert."""
        analysis = await engine.analyze_transcription(HIGH_RISK_TEXT)

        assert len(analysis.warnings) == 1
        assert analysis.warnings[0].urgency_level == 4
        assert analysis.highlights == []
        assert analysis.urgency_level == 4
        assert analysis.risk_level == RiskLevel.WARNING
        assert analysis.should_alert is True
        assert analysis.recommendations == ["Suspend technique and reassess"]
        assert analysis.confidence == 0.85

    async def test_night_pain_scenario(self, engine):
        """Immediate neurological red flag yields danger."""
        analysis = await engine.analyze_transcription(NIGHT_PAIN_TEXT)

        assert len(analysis.highlights) == 1
        assert analysis.highlights[0].category.value == "neurological"
        assert analysis.urgency_level == 5
        assert analysis.risk_level == RiskLevel.DANGER
        assert analysis.recommendations == ["Consider referral for neurological"]

    async def test_critical_match_is_danger(self, engine):
        """Any critical match means urgency 5 and an alert."""
        analysis = await engine.analyze_transcription(CRITICAL_TEXT)

        assert analysis.urgency_level == 5
        assert analysis.risk_level == RiskLevel.DANGER
        assert analysis.should_alert is True

    async def test_systemic_only_is_caution(self, engine):
        """Monitor-class red flag maps to urgency 3 with default advice."""
        analysis = await engine.analyze_transcription(
            "Refiere fatiga extrema desde hace semanas"
        )

        assert analysis.urgency_level == 3
        assert analysis.risk_level == RiskLevel.CAUTION
        assert analysis.recommendations == list(DEFAULT_RECOMMENDATIONS)

    async def test_low_tier_below_threshold(self, engine):
        analysis = await engine.analyze_transcription("El paciente refiere molestia leve")

        assert analysis.urgency_level == 2
        assert analysis.risk_level == RiskLevel.SAFE
        assert analysis.should_alert is False
        assert analysis.recommendations == ["Continue with caution"]

    async def test_threshold_is_configurable(self):
        """should_alert follows the configured threshold."""
        engine = SafetyAnalysisEngine(
            config=MonitoringConfig(alert_threshold=5),
            capability_provider=StaticCapabilityProvider(),
        )

        analysis = await engine.analyze_transcription(HIGH_RISK_TEXT)

        assert analysis.urgency_level == 4
        assert analysis.should_alert is False

    async def test_recommendations_deduplicated(self, engine):
        """Repeated findings collapse to one recommendation each."""
        analysis = await engine.analyze_transcription(
            "Parestesia nueva en el brazo y debilidad súbita"
        )

        assert analysis.recommendations == [
            "Suspend technique and reassess",
            "Consider referral for neurological",
        ]
        assert analysis.finding_count == 4
        assert analysis.confidence == 0.95

    async def test_chunk_metadata_carried(self, engine):
        analysis = await engine.analyze_transcription(
            SAFE_TEXT, chunk_id="chunk_7", timestamp_ms=1234
        )

        assert analysis.chunk_id == "chunk_7"
        assert analysis.timestamp_ms == 1234
        assert analysis.chunk_window_ms == 15000
        assert analysis.metadata.model_version == "safety-v1.0"
        assert analysis.metadata.processing_time_ms >= 0

    async def test_analysis_count_increments(self, engine):
        for _ in range(3):
            await engine.analyze_transcription(SAFE_TEXT)

        assert engine.analysis_count == 3
        assert engine.get_statistics()["total_analyses"] == 3


@pytest.mark.asyncio
class TestFailSoft:
    """Internal failures degrade instead of raising."""

    async def test_non_text_input_degrades(self, engine):
        analysis = await engine.analyze_transcription(None)

        assert analysis.success is False
        assert analysis.risk_level == RiskLevel.SAFE
        assert analysis.urgency_level == 1
        assert analysis.should_alert is False
        assert analysis.recommendations == [DEGRADED_RECOMMENDATION]
        assert "AnalysisError" in analysis.error

    async def test_classifier_crash_degrades(self, engine):
        engine.classifier = MagicMock()
        engine.classifier.classify.side_effect = RuntimeError("regex engine exploded")

        analysis = await engine.analyze_transcription(CRITICAL_TEXT)

        assert analysis.success is False
        assert analysis.urgency_level == 1
        assert "regex engine exploded" in analysis.error

    async def test_degraded_path_counts(self, engine):
        """Every completed call counts, including the fail-soft path."""
        await engine.analyze_transcription(SAFE_TEXT)
        await engine.analyze_transcription(None)

        assert engine.analysis_count == 2


class TestDerivedLevels:
    """Risk level is a function of urgency."""

    @pytest.mark.parametrize("urgency,expected", [
        (1, RiskLevel.SAFE),
        (2, RiskLevel.SAFE),
        (3, RiskLevel.CAUTION),
        (4, RiskLevel.WARNING),
        (5, RiskLevel.DANGER),
    ])
    def test_risk_from_urgency(self, urgency, expected):
        assert RiskLevel.from_urgency(urgency) == expected

    def test_urgency_defaults_to_one(self, engine):
        assert engine.calculate_urgency_level([], []) == 1


class TestSystemState:

    def test_engine_state(self, engine):
        engine.start()
        state = engine.get_system_state()

        assert state.is_active is True
        assert state.active_alerts == []
        assert state.analysis_count == 0

    def test_uptime_after_initialize(self, engine):
        assert engine.get_statistics()["system_uptime_ms"] >= 0
