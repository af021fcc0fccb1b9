"""Risk pattern classifier - stateless matcher over both catalogs.

Every chunk is tested against every risk pattern in every tier and
every red-flag pattern in every category. Matches are not mutually
exclusive and are not deduplicated: a chunk may raise a critical and a
medium warning plus a neurological highlight at the same time, each
with its own evidence.
"""
import logging
from datetime import datetime
from typing import List, Sequence, Tuple

from sessionguard.shared.models import (
    ActionRequired,
    Priority,
    SafetyHighlight,
    SafetyWarning,
    SeverityTier,
)
from .config import (
    BODY_REGION_PATTERNS,
    PATTERN_VERSION,
    RED_FLAG_PATTERNS,
    RISK_PATTERNS,
    TIER_DESCRIPTION,
    TIER_RECOMMENDATION,
    UNSPECIFIED_REGION,
    BodyRegionPattern,
    RedFlagPattern,
    RiskPattern,
)
from .errors import AnalysisError

logger = logging.getLogger(__name__)


_TIER_SEVERITY = {
    SeverityTier.CRITICAL: Priority.HIGH,
    SeverityTier.HIGH: Priority.HIGH,
    SeverityTier.MEDIUM: Priority.MEDIUM,
    SeverityTier.LOW: Priority.LOW,
}


class RiskPatternClassifier:
    """Matches transcript text against the risk and red-flag catalogs.

    Holds no per-call state; one instance can serve any number of
    sessions. Catalogs default to the module-level tables and can be
    replaced for testing.
    """

    def __init__(
        self,
        risk_patterns: Sequence[RiskPattern] = RISK_PATTERNS,
        red_flag_patterns: Sequence[RedFlagPattern] = RED_FLAG_PATTERNS,
        body_regions: Sequence[BodyRegionPattern] = BODY_REGION_PATTERNS,
    ):
        self._risk_patterns = tuple(risk_patterns)
        self._red_flag_patterns = tuple(red_flag_patterns)
        self._body_regions = tuple(body_regions)

        logger.info(
            "RISK_CLASSIFIER_INITIALIZED",
            extra={
                "pattern_version": PATTERN_VERSION,
                "risk_pattern_count": len(self._risk_patterns),
                "red_flag_pattern_count": len(self._red_flag_patterns),
            }
        )

    def classify(self, text: str) -> Tuple[List[SafetyWarning], List[SafetyHighlight]]:
        """Classify a transcript chunk.

        Args:
            text: Transcript chunk

        Returns:
            Tuple of (warnings, highlights), one record per pattern match

        Raises:
            AnalysisError: If text is not a string
        """
        if not isinstance(text, str):
            raise AnalysisError(
                f"Transcript chunk must be text, got {type(text).__name__}"
            )
        return self.detect_warnings(text), self.detect_highlights(text)

    def detect_warnings(self, text: str) -> List[SafetyWarning]:
        """Match iatrogenic risk patterns, critical tier first."""
        warnings: List[SafetyWarning] = []
        body_region = self.extract_body_region(text)

        for risk in self._risk_patterns:
            match = risk.pattern.search(text)
            if not match:
                continue
            tier = risk.severity_tier
            urgency = tier.urgency
            evidence = match.group(0)
            warnings.append(SafetyWarning(
                severity=_TIER_SEVERITY[tier],
                urgency_level=urgency,
                iatrogenic_type=risk.category,
                action_required=ActionRequired.from_urgency(urgency),
                body_region=body_region,
                evidence=evidence,
                title=f"{tier.value.capitalize()} risk detected",
                description=f"{TIER_DESCRIPTION[tier]}: {evidence}",
                recommendation=TIER_RECOMMENDATION[tier],
                timestamp=datetime.utcnow(),
            ))
        return warnings

    def detect_highlights(self, text: str) -> List[SafetyHighlight]:
        """Match red-flag patterns across all categories."""
        highlights: List[SafetyHighlight] = []

        for flag in self._red_flag_patterns:
            match = flag.pattern.search(text)
            if not match:
                continue
            category = flag.category
            evidence = match.group(0)
            highlights.append(SafetyHighlight(
                priority=category.priority,
                category=category,
                urgency=category.urgency,
                referral_needed=category.referral_needed,
                evidence=evidence,
                title=f"Red flag: {category.value}",
                description=f"Red flag {category.value}: {evidence}",
                timestamp=datetime.utcnow(),
            ))
        return highlights

    def extract_body_region(self, text: str) -> str:
        """Return the first anatomical region mentioned in the chunk."""
        for body_region in self._body_regions:
            if body_region.pattern.search(text):
                return body_region.region
        return UNSPECIFIED_REGION
