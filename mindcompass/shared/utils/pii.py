"""Alias and journal-text handling for logs and events.

The alias is the user's only key, so it is treated as PII: it is hashed
before it reaches a log line, a crisis event or a partition key. Journal
text is never logged; a fingerprint is logged instead.
"""
import hashlib
import logging
from typing import Optional

logger = logging.getLogger(__name__)


# Loaded from PII_HASH_SALT at service startup
_PII_SALT: Optional[str] = None


def configure_pii_salt(salt: str) -> None:
    """Configure the alias hashing salt.

    Must be called during application startup before any alias hashing.

    Args:
        salt: Secret salt value

    Raises:
        ValueError: If salt is empty or too short
    """
    global _PII_SALT
    if not salt or len(salt) < 32:
        logger.critical(
            "PII_SALT_CONFIGURATION_FAILED",
            extra={"reason": "Salt too short or empty", "min_length": 32}
        )
        raise ValueError("PII salt must be at least 32 characters")

    _PII_SALT = salt
    logger.info("PII_SALT_CONFIGURED", extra={"salt_length": len(salt)})


def normalize_alias(alias: str) -> str:
    """Canonical form of a user alias (stripped, lower-cased).

    Raises:
        ValueError: If the alias is empty after stripping
    """
    if not isinstance(alias, str) or not alias.strip():
        raise ValueError("Alias must not be empty")
    return alias.strip().lower()


def hash_pii(value: str) -> str:
    """Hash an alias for safe logging and event payloads.

    Uses SHA-256 with a secret salt, so the same alias always maps to the
    same opaque hash.

    Args:
        value: The alias to hash

    Returns:
        64-char hex digest

    Raises:
        RuntimeError: If the salt has not been configured
    """
    if _PII_SALT is None:
        logger.critical(
            "PII_HASH_FAILED",
            extra={"reason": "Salt not configured", "action": "call configure_pii_salt()"}
        )
        raise RuntimeError("PII salt not configured. Call configure_pii_salt() first.")

    salted = f"{_PII_SALT}{value}"
    return hashlib.sha256(salted.encode()).hexdigest()


def hash_text_for_audit(text: Optional[str]) -> str:
    """Fingerprint journal text without exposing its content."""
    return hashlib.sha256((text or "").encode()).hexdigest()
