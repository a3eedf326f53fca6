"""Shared utilities for the MindCompass triage engine."""
from .pii import hash_pii, hash_text_for_audit, configure_pii_salt, normalize_alias

__all__ = ["hash_pii", "hash_text_for_audit", "configure_pii_salt", "normalize_alias"]
