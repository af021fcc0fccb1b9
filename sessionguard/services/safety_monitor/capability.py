"""Host capability providers for real-time capture.

The engine does not probe the host itself; the host application injects
a provider. ``check()`` raises CapabilityError when the host cannot
support live monitoring, and the engine turns that into a False return
from ``initialize()``.
"""
import logging
from abc import ABC, abstractmethod

from .errors import CapabilityError

logger = logging.getLogger(__name__)


class CapabilityProvider(ABC):
    """Abstract base class for capture capability checks."""

    name: str = "abstract"

    @abstractmethod
    def check(self) -> None:
        """Verify the host supports real-time capture.

        Raises:
            CapabilityError: If microphone access or a streaming
                audio API is unavailable
        """
        pass


class StaticCapabilityProvider(CapabilityProvider):
    """Provider with a fixed answer.

    For hosts where capture happens elsewhere (a browser, a separate
    recording device) and the caller already knows the outcome.
    """

    name = "static"

    def __init__(self, supported: bool = True, reason: str = "capture not supported"):
        self.supported = supported
        self.reason = reason

    def check(self) -> None:
        if not self.supported:
            raise CapabilityError(self.reason)


class MiniaudioCapabilityProvider(CapabilityProvider):
    """Checks for a capture device through miniaudio.

    Requires the ``miniaudio`` package and at least one capture device
    visible to its backends.
    """

    name = "miniaudio"

    def check(self) -> None:
        try:
            import miniaudio  # type: ignore
        except ImportError as e:
            raise CapabilityError(f"Streaming audio API unavailable: {e}") from e

        try:
            captures = miniaudio.Devices().get_captures()
        except Exception as e:
            raise CapabilityError(f"Audio device enumeration failed: {e}") from e

        if not captures:
            raise CapabilityError("No microphone capture device available")

        logger.info(
            "CAPTURE_DEVICES_DETECTED",
            extra={"capture_device_count": len(captures)}
        )
