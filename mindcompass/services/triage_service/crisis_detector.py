"""Deterministic crisis-language detector.

This is the safety net that runs on every free-text reflection,
independently of the classifier and before its output is trusted. A
match forces HIGH priority downstream.

The detector has no failure mode: None, empty or non-string input is
simply "no crisis", and it never raises.
"""
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from mindcompass.shared.utils import hash_text_for_audit
from .config import CRISIS_PATTERN_VERSION, CRISIS_PATTERNS, CrisisPattern

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DetectionResult:
    """Result of scanning one reflection. Immutable."""
    is_crisis: bool
    matched_pattern_ids: Tuple[str, ...] = field(default_factory=tuple)
    pattern_version: str = CRISIS_PATTERN_VERSION

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_crisis": self.is_crisis,
            "matched_pattern_ids": list(self.matched_pattern_ids),
            "pattern_version": self.pattern_version,
        }


class CrisisDetector:
    """Matches free text against the versioned crisis pattern list."""

    def __init__(
        self,
        patterns: Optional[Sequence[CrisisPattern]] = None,
        pattern_version: str = CRISIS_PATTERN_VERSION,
    ):
        """Initialize detector and pre-compile patterns.

        Args:
            patterns: Reviewed crisis patterns (defaults to CRISIS_PATTERNS)
            pattern_version: Version stamped on every result

        Raises:
            ValueError: If the pattern list is empty
            re.error: If a pattern fails to compile
        """
        self.patterns = tuple(patterns) if patterns is not None else CRISIS_PATTERNS
        if not self.patterns:
            # An empty list would fail open on every message
            raise ValueError("Crisis detector requires at least one pattern")
        self.pattern_version = pattern_version
        self._compiled = self._compile_patterns(self.patterns)

        logger.info(
            "CRISIS_DETECTOR_INITIALIZED",
            extra={
                "pattern_version": pattern_version,
                "crisis_pattern_count": len(self.patterns),
            },
        )

    def _compile_patterns(
        self,
        patterns: Sequence[CrisisPattern],
    ) -> List[Tuple[str, "re.Pattern[str]"]]:
        return [
            (pattern.pattern_id, re.compile(pattern.regex, re.IGNORECASE))
            for pattern in patterns
        ]

    def scan(self, text: Optional[str]) -> DetectionResult:
        """Scan a reflection for crisis language.

        Args:
            text: Raw free text (may be None or empty)

        Returns:
            DetectionResult listing every matched pattern id

        Logs:
            - CRISIS_LANGUAGE_DETECTED: If any pattern matches (critical level)
        """
        if not isinstance(text, str) or not text.strip():
            return DetectionResult(is_crisis=False, pattern_version=self.pattern_version)

        matched = tuple(
            pattern_id
            for pattern_id, compiled in self._compiled
            if compiled.search(text)
        )

        if matched:
            logger.critical(
                "CRISIS_LANGUAGE_DETECTED",
                extra={
                    "text_hash": hash_text_for_audit(text),
                    "matched_pattern_ids": list(matched),
                    "pattern_version": self.pattern_version,
                    "action": "FORCE_HIGH_PRIORITY",
                },
            )

        return DetectionResult(
            is_crisis=bool(matched),
            matched_pattern_ids=matched,
            pattern_version=self.pattern_version,
        )

    def is_crisis(self, text: Optional[str]) -> bool:
        return self.scan(text).is_crisis
