"""Safety monitor configuration and pattern catalogs.

The catalogs match Spanish-language session speech captured during
manual therapy. They are literal regular expressions; clinical validity
is the responsibility of whoever maintains the lists.
"""
import os
import re
from dataclasses import dataclass
from typing import Pattern, Tuple

from sessionguard.shared.models import (
    MAX_URGENCY,
    MIN_URGENCY,
    IatrogenicType,
    RedFlagCategory,
    SeverityTier,
)
from .errors import ConfigurationError


@dataclass(frozen=True)
class MonitoringConfig:
    """Configuration for one monitoring session.

    Fixed at construction - there is no hot reload. The audio, visual
    and vibration switches are forwarded to the presentation layer and
    not used by the engine itself.
    """

    enabled: bool = True

    # Transcript chunk sizing, as delivered by the transcription provider
    chunk_window_ms: int = 15000
    overlap_window_ms: int = 2000

    # Urgency at or above which an alert is raised
    alert_threshold: int = 3
    # Urgency at or above which stopping the technique is recommended
    auto_stop_threshold: int = 5

    enable_audio_alert: bool = True
    enable_visual_alert: bool = True
    enable_vibration: bool = True

    log_all_analyses: bool = True

    # Version tracking for audit trail
    model_version: str = "safety-v1.0"

    def __post_init__(self):
        for name in ("alert_threshold", "auto_stop_threshold"):
            value = getattr(self, name)
            if not MIN_URGENCY <= value <= MAX_URGENCY:
                raise ConfigurationError(
                    f"{name} must be {MIN_URGENCY}-{MAX_URGENCY}, got {value}"
                )
        if self.auto_stop_threshold < self.alert_threshold:
            raise ConfigurationError(
                "auto_stop_threshold must not be below alert_threshold"
            )
        if self.chunk_window_ms <= 0:
            raise ConfigurationError(
                f"chunk_window_ms must be positive, got {self.chunk_window_ms}"
            )
        if not 0 <= self.overlap_window_ms < self.chunk_window_ms:
            raise ConfigurationError(
                "overlap_window_ms must be non-negative and shorter than the chunk window"
            )

    @classmethod
    def from_env(cls, prefix: str = "SAFETY_MONITOR_") -> "MonitoringConfig":
        """Build configuration from environment variables.

        Unset variables keep their defaults. Invalid values raise
        ConfigurationError.
        """
        defaults = cls()

        def _bool(name: str, default: bool) -> bool:
            raw = os.getenv(prefix + name)
            if raw is None or raw == "":
                return default
            return raw.strip().lower() in {"1", "true", "yes", "on"}

        def _int(name: str, default: int) -> int:
            raw = os.getenv(prefix + name)
            if raw is None or raw == "":
                return default
            try:
                return int(raw)
            except ValueError:
                raise ConfigurationError(f"{prefix + name} must be an integer, got {raw!r}")

        return cls(
            enabled=_bool("ENABLED", defaults.enabled),
            chunk_window_ms=_int("CHUNK_WINDOW_MS", defaults.chunk_window_ms),
            overlap_window_ms=_int("OVERLAP_WINDOW_MS", defaults.overlap_window_ms),
            alert_threshold=_int("ALERT_THRESHOLD", defaults.alert_threshold),
            auto_stop_threshold=_int("AUTO_STOP_THRESHOLD", defaults.auto_stop_threshold),
            enable_audio_alert=_bool("ENABLE_AUDIO_ALERT", defaults.enable_audio_alert),
            enable_visual_alert=_bool("ENABLE_VISUAL_ALERT", defaults.enable_visual_alert),
            enable_vibration=_bool("ENABLE_VIBRATION", defaults.enable_vibration),
            log_all_analyses=_bool("LOG_ALL_ANALYSES", defaults.log_all_analyses),
            model_version=os.getenv(prefix + "MODEL_VERSION", defaults.model_version),
        )


@dataclass(frozen=True)
class RiskPattern:
    """One iatrogenic risk pattern of the catalog."""
    pattern: Pattern[str]
    category: IatrogenicType
    severity_tier: SeverityTier


@dataclass(frozen=True)
class RedFlagPattern:
    """One red-flag pattern of the catalog."""
    pattern: Pattern[str]
    category: RedFlagCategory


@dataclass(frozen=True)
class BodyRegionPattern:
    pattern: Pattern[str]
    region: str


PATTERN_VERSION = "2025.07.28"

UNSPECIFIED_REGION = "unspecified"

TIER_IATROGENIC_TYPE = {
    SeverityTier.CRITICAL: IatrogenicType.CONTRAINDICATION,
    SeverityTier.HIGH: IatrogenicType.TECHNIQUE_ERROR,
    SeverityTier.MEDIUM: IatrogenicType.FORCE_EXCESSIVE,
    SeverityTier.LOW: IatrogenicType.ANATOMIC_RISK,
}

TIER_RECOMMENDATION = {
    SeverityTier.CRITICAL: "STOP TECHNIQUE IMMEDIATELY",
    SeverityTier.HIGH: "Suspend technique and reassess",
    SeverityTier.MEDIUM: "Reduce intensity and monitor",
    SeverityTier.LOW: "Continue with caution",
}

TIER_DESCRIPTION = {
    SeverityTier.CRITICAL: "Critical risk detected",
    SeverityTier.HIGH: "High risk identified",
    SeverityTier.MEDIUM: "Caution required",
    SeverityTier.LOW: "Monitor",
}


def _compile(expression: str) -> Pattern[str]:
    return re.compile(expression, re.IGNORECASE)


def _risk_tier(tier: SeverityTier, *expressions: str) -> Tuple[RiskPattern, ...]:
    return tuple(
        RiskPattern(
            pattern=_compile(expression),
            category=TIER_IATROGENIC_TYPE[tier],
            severity_tier=tier,
        )
        for expression in expressions
    )


def _red_flags(category: RedFlagCategory, *expressions: str) -> Tuple[RedFlagPattern, ...]:
    return tuple(
        RedFlagPattern(pattern=_compile(expression), category=category)
        for expression in expressions
    )


# Iatrogenic risk patterns, tested in tier order (critical first)
RISK_PATTERNS: Tuple[RiskPattern, ...] = (
    # ==========================================================================
    # CRITICAL (urgency 5) - stop immediately
    # ==========================================================================
    *_risk_tier(
        SeverityTier.CRITICAL,
        r"thrust.*c1.*c2",
        r"rotación.*forzada.*cuello",
        r"manipulación.*cervical.*alta.*velocidad",
        r"dolor.*insoportable",
        r"pérdida.*conciencia",
        r"no.*puedo.*continuar",
    ),
    # ==========================================================================
    # HIGH (urgency 4) - critical alert
    # ==========================================================================
    *_risk_tier(
        SeverityTier.HIGH,
        r"dolor.*irradiado.*nuevo",
        r"dolor.*intenso.*durante",
        r"parestesia.*nueva",
        r"debilidad.*súbita",
        r"mareo.*durante.*técnica",
        r"n[aá]usea.*manipulación",
        r"duele.*mucho.*pare",
    ),
    # ==========================================================================
    # MEDIUM (urgency 3) - caution
    # ==========================================================================
    *_risk_tier(
        SeverityTier.MEDIUM,
        r"manipulación.*cervical",
        r"fuerza.*excesiva",
        r"técnica.*peligrosa",
        r"inflamación.*local",
        r"resistencia.*excesiva",
    ),
    # ==========================================================================
    # LOW (urgency 2) - monitor
    # ==========================================================================
    *_risk_tier(
        SeverityTier.LOW,
        r"molestia",
        r"tensión",
        r"incomodidad",
        r"presión.*zona",
    ),
)

# Red flags warranting referral, by clinical category
RED_FLAG_PATTERNS: Tuple[RedFlagPattern, ...] = (
    *_red_flags(
        RedFlagCategory.NEUROLOGICAL,
        r"parestesia.*nueva",
        r"debilidad.*súbita",
        r"pérdida.*fuerza",
        r"alteración.*sensibilidad",
        r"dolor.*nocturno",
    ),
    *_red_flags(
        RedFlagCategory.VASCULAR,
        r"edema.*súbito",
        r"cambio.*color.*extremidad",
        r"pulso.*débil",
        r"frialdad.*extremidad",
    ),
    *_red_flags(
        RedFlagCategory.INFECTION,
        r"fiebre.*elevada",
        r"signos.*infección",
        r"calor.*local",
        r"enrojecimiento.*intenso",
    ),
    *_red_flags(
        RedFlagCategory.FRACTURE,
        r"dolor.*intenso.*trauma",
        r"deformidad.*visible",
        r"crepitación",
        r"movilidad.*anormal",
    ),
    *_red_flags(
        RedFlagCategory.SYSTEMIC,
        r"pérdida.*peso.*inexplicada",
        r"fiebre.*persistente",
        r"sudoración.*nocturna",
        r"fatiga.*extrema",
    ),
)

# First match wins
BODY_REGION_PATTERNS: Tuple[BodyRegionPattern, ...] = (
    BodyRegionPattern(_compile(r"cervical|cuello"), "Cervical"),
    BodyRegionPattern(_compile(r"lumbar|espalda.*baja"), "Lumbar"),
    BodyRegionPattern(_compile(r"dorsal|espalda.*media"), "Dorsal"),
    BodyRegionPattern(_compile(r"hombro"), "Shoulder"),
    BodyRegionPattern(_compile(r"rodilla"), "Knee"),
)

