"""Safety monitor error taxonomy.

None of these escape the controller's public surface: capability
failures make ``initialize()`` return False, analysis failures are
degraded into a safe/low-urgency result.
"""


class SafetyMonitorError(Exception):
    """Base exception for the safety monitor."""
    pass


class CapabilityError(SafetyMonitorError):
    """Host platform cannot support real-time capture."""
    pass


class AnalysisError(SafetyMonitorError):
    """Unexpected failure inside classification or aggregation."""
    pass


class ConfigurationError(SafetyMonitorError, ValueError):
    """Monitoring configuration is out of range."""
    pass
