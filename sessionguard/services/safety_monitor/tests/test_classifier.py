"""Tests for RiskPatternClassifier.

Matches across tiers and categories are independent and never
deduplicated; these tests pin that behavior down.
"""
import re

import pytest

from sessionguard.shared.models import (
    ActionRequired,
    IatrogenicType,
    Priority,
    RedFlagCategory,
    RedFlagUrgency,
    SeverityTier,
)
from sessionguard.services.safety_monitor.classifier import RiskPatternClassifier
from sessionguard.services.safety_monitor.config import (
    RED_FLAG_PATTERNS,
    RISK_PATTERNS,
    RiskPattern,
)
from sessionguard.services.safety_monitor.errors import AnalysisError


@pytest.fixture
def classifier():
    """Create a classifier over the default catalogs."""
    return RiskPatternClassifier()


class TestNoMatch:
    """Chunks that match nothing."""

    def test_neutral_text_has_no_findings(self, classifier):
        """Routine session speech should produce no records."""
        warnings, highlights = classifier.classify(
            "Realizo movilización suave de la articulación"
        )

        assert warnings == []
        assert highlights == []

    def test_empty_text(self, classifier):
        """Empty chunk should produce no records."""
        assert classifier.classify("") == ([], [])

    def test_non_text_raises_analysis_error(self, classifier):
        """Non-string input is an analysis failure."""
        with pytest.raises(AnalysisError):
            classifier.classify(None)


class TestRiskWarnings:
    """Iatrogenic risk matches by tier."""

    def test_high_tier_scenario(self, classifier):
        """Intense pain during manipulation is one high-tier warning."""
        warnings, highlights = classifier.classify(
            "El paciente refiere dolor intenso durante la manipulación"
        )

        assert len(warnings) == 1
        assert highlights == []
        warning = warnings[0]
        assert warning.urgency_level == 4
        assert warning.severity == Priority.HIGH
        assert warning.iatrogenic_type == IatrogenicType.TECHNIQUE_ERROR
        assert warning.action_required == ActionRequired.CAUTION
        assert warning.evidence == "dolor intenso durante"
        assert warning.body_region == "unspecified"
        assert warning.recommendation == "Suspend technique and reassess"

    def test_critical_tier(self, classifier):
        """High-velocity cervical thrust is critical."""
        warnings, _ = classifier.classify(
            "Voy a realizar un thrust en C1-C2 con rotación forzada del cuello"
        )

        assert len(warnings) == 2
        assert all(w.urgency_level == 5 for w in warnings)
        assert all(w.action_required == ActionRequired.STOP_IMMEDIATELY for w in warnings)
        assert all(w.iatrogenic_type == IatrogenicType.CONTRAINDICATION for w in warnings)
        assert all(w.body_region == "Cervical" for w in warnings)

    def test_medium_tier(self, classifier):
        """Excessive force is a medium-tier warning."""
        warnings, _ = classifier.classify(
            "Aplico la técnica con fuerza excesiva en el hombro"
        )

        assert len(warnings) == 1
        assert warnings[0].urgency_level == 3
        assert warnings[0].severity == Priority.MEDIUM
        assert warnings[0].action_required == ActionRequired.MONITOR
        assert warnings[0].body_region == "Shoulder"

    def test_low_tier(self, classifier):
        """Mild discomfort is low-tier and informational."""
        warnings, _ = classifier.classify("El paciente refiere molestia leve")

        assert len(warnings) == 1
        assert warnings[0].urgency_level == 2
        assert warnings[0].severity == Priority.LOW
        assert warnings[0].action_required == ActionRequired.INFORM
        assert warnings[0].iatrogenic_type == IatrogenicType.ANATOMIC_RISK

    def test_case_insensitive(self, classifier):
        """Patterns match regardless of case."""
        warnings, _ = classifier.classify("DOLOR INSOPORTABLE")

        assert len(warnings) == 1
        assert warnings[0].evidence == "DOLOR INSOPORTABLE"

    def test_tiers_are_not_mutually_exclusive(self, classifier):
        """A chunk can raise critical and medium warnings together."""
        warnings, _ = classifier.classify(
            "Noto fuerza excesiva y el paciente dice que no puedo continuar"
        )

        urgencies = sorted(w.urgency_level for w in warnings)
        assert urgencies == [3, 5]


class TestRedFlagHighlights:
    """Red-flag matches by category."""

    def test_night_pain_is_neurological(self, classifier):
        """Night pain is an immediate neurological red flag."""
        warnings, highlights = classifier.classify("Dolor nocturno en la espalda")

        assert warnings == []
        assert len(highlights) == 1
        highlight = highlights[0]
        assert highlight.category == RedFlagCategory.NEUROLOGICAL
        assert highlight.urgency == RedFlagUrgency.IMMEDIATE
        assert highlight.priority == Priority.HIGH
        assert highlight.referral_needed is True
        assert highlight.evidence == "Dolor nocturno"

    def test_infection_is_urgent(self, classifier):
        """Infection signs are urgent with referral."""
        _, highlights = classifier.classify("Hay signos de infección local activa")

        assert [h.category for h in highlights] == [RedFlagCategory.INFECTION]
        assert highlights[0].urgency == RedFlagUrgency.URGENT
        assert highlights[0].priority == Priority.MEDIUM

    def test_systemic_needs_no_referral(self, classifier):
        """Systemic findings are monitored without referral."""
        _, highlights = classifier.classify("Refiere fatiga extrema desde hace semanas")

        assert len(highlights) == 1
        assert highlights[0].category == RedFlagCategory.SYSTEMIC
        assert highlights[0].urgency == RedFlagUrgency.MONITOR
        assert highlights[0].priority == Priority.LOW
        assert highlights[0].referral_needed is False

    def test_repeated_category_is_not_deduplicated(self, classifier):
        """Two neurological matches produce two highlights and two warnings."""
        warnings, highlights = classifier.classify(
            "Parestesia nueva en el brazo y debilidad súbita"
        )

        assert len(highlights) == 2
        assert {h.category for h in highlights} == {RedFlagCategory.NEUROLOGICAL}
        assert len(warnings) == 2
        assert {w.evidence.lower() for w in warnings} == {
            "parestesia nueva",
            "debilidad súbita",
        }


class TestBodyRegion:
    """Body region extraction."""

    def test_first_region_in_table_order(self, classifier):
        """Region table order decides, not position in the chunk."""
        assert classifier.extract_body_region(
            "molestia en la rodilla y el cuello"
        ) == "Cervical"

    def test_lower_back(self, classifier):
        assert classifier.extract_body_region("tensión en la espalda baja") == "Lumbar"

    def test_unspecified_default(self, classifier):
        assert classifier.extract_body_region("molestia general") == "unspecified"


class TestCatalogs:
    """Catalog shape."""

    def test_every_tier_present(self):
        tiers = {p.severity_tier for p in RISK_PATTERNS}
        assert tiers == set(SeverityTier)

    def test_every_category_present(self):
        categories = {p.category for p in RED_FLAG_PATTERNS}
        assert categories == set(RedFlagCategory)

    def test_patterns_are_immutable(self):
        with pytest.raises(Exception):  # FrozenInstanceError
            RISK_PATTERNS[0].severity_tier = SeverityTier.LOW

    def test_custom_catalog(self):
        """Classifier accepts replacement catalogs."""
        custom = RiskPatternClassifier(
            risk_patterns=[
                RiskPattern(
                    pattern=re.compile("crack", re.IGNORECASE),
                    category=IatrogenicType.FORCE_EXCESSIVE,
                    severity_tier=SeverityTier.MEDIUM,
                )
            ],
            red_flag_patterns=[],
        )

        warnings, highlights = custom.classify("Se oye un CRACK")

        assert [w.evidence for w in warnings] == ["CRACK"]
        assert highlights == []
