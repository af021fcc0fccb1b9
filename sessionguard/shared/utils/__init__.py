"""Shared utilities for SessionGuard."""
from .phi import hash_text_for_audit, safe_fingerprint

__all__ = ["hash_text_for_audit", "safe_fingerprint"]
