"""PHI handling utilities: no session speech in application logs.

Transcript chunks are clinical speech. They are fingerprinted before
logging or forwarding to any external sink.
"""
import hashlib
import logging

logger = logging.getLogger(__name__)


def hash_text_for_audit(text: str) -> str:
    """Hash transcript text for audit trail without exposing content.

    Used to correlate a log line or forwarded event with the
    transcription held by the capture layer, if needed for review.

    Args:
        text: Raw transcript chunk

    Returns:
        SHA-256 hex digest of the text
    """
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def safe_fingerprint(text: object) -> str:
    """Fingerprint arbitrary input, tolerating non-text values.

    Returns an empty string for non-text input so logging never fails
    on a malformed chunk.
    """
    if not isinstance(text, str):
        logger.debug("PHI_FINGERPRINT_SKIPPED", extra={"type": type(text).__name__})
        return ""
    return hash_text_for_audit(text)
