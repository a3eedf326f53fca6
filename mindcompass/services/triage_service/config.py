"""Triage Service configuration, scoring thresholds and crisis patterns.

The crisis pattern list below is a safety-critical artifact. Every change
to it MUST bump CRISIS_PATTERN_VERSION, add a PATTERN_CHANGELOG entry and
add detector tests for the new phrasing.
"""
import os
from dataclasses import dataclass, field
from typing import Dict, Tuple

from mindcompass.shared.models import PriorityLevel


@dataclass(frozen=True)
class ScoringThresholds:
    """Weekly Pulse distress thresholds (maximum score is 3 x item count).

    totalScore >= high -> HIGH, >= medium -> MEDIUM, otherwise LOW.
    """
    medium: int = 15
    high: int = 30

    def __post_init__(self):
        if not 0 < self.medium < self.high:
            raise ValueError(
                f"Thresholds must satisfy 0 < medium < high, got {self.medium}/{self.high}"
            )


@dataclass(frozen=True)
class CrisisPattern:
    """One reviewed crisis-language pattern."""
    pattern_id: str
    regex: str
    category: str        # suicidal_ideation | self_harm | hopelessness
    added_in: str        # CRISIS_PATTERN_VERSION that introduced it


CRISIS_PATTERN_VERSION = "2026.10.02"

PATTERN_CHANGELOG: Tuple[Tuple[str, str], ...] = (
    ("2026.09.15", "Initial reviewed set: 10 patterns covering ideation, self-harm and hopelessness."),
    ("2026.10.02", "can't go on: accept typographic apostrophe (can’t) from mobile keyboards."),
)

# Multi-word phrases use \s+ so "KILL  MYSELF" and line breaks still match.
# No word boundaries on "suicid" so suicide/suicidal/suicidality all match.
CRISIS_PATTERNS: Tuple[CrisisPattern, ...] = (
    # Direct suicidal ideation
    CrisisPattern("suicide", r"suicid", "suicidal_ideation", "2026.09.15"),
    CrisisPattern("kill_myself", r"kill\s+myself", "suicidal_ideation", "2026.09.15"),
    CrisisPattern("want_to_die", r"want\s+to\s+die", "suicidal_ideation", "2026.09.15"),
    CrisisPattern("end_it_all", r"end\s+it\s+all", "suicidal_ideation", "2026.09.15"),
    CrisisPattern("better_off_dead", r"better\s+off\s+dead", "suicidal_ideation", "2026.09.15"),
    CrisisPattern("take_my_own_life", r"take\s+my\s+own\s+life", "suicidal_ideation", "2026.09.15"),
    # Self-harm intent
    CrisisPattern("hurt_myself", r"hurt\s+myself", "self_harm", "2026.09.15"),
    CrisisPattern("cutting_myself", r"cutting\s+myself", "self_harm", "2026.09.15"),
    # Hopelessness
    CrisisPattern("no_reason_to_live", r"no\s+reason\s+to\s+live", "hopelessness", "2026.09.15"),
    CrisisPattern("cant_go_on", r"can['’]?t\s+go\s+on", "hopelessness", "2026.10.02"),
)

# Pre-approved copy. Changes go through clinical review, not code review.
CRISIS_ACKNOWLEDGMENT = (
    "I hear how much pain you are in right now. Please, let's connect you "
    "with someone who can help you stay safe."
)

FALLBACK_REFLECTION = (
    "Thank you for sharing your thoughts. It takes courage to reflect on "
    "how you're feeling."
)

ESCALATION_NOTICES: Dict[PriorityLevel, str] = {
    PriorityLevel.MEDIUM: (
        "Your check-in answers suggest you are carrying a heavy load. "
        "Talking it through with a listener could really help."
    ),
    PriorityLevel.HIGH: (
        "Your check-in answers suggest you need more than self-care right now. "
        "Please reach out to a professional today."
    ),
}


@dataclass(frozen=True)
class TriageConfig:
    """Runtime configuration for the triage pipeline."""
    thresholds: ScoringThresholds = field(default_factory=ScoringThresholds)

    # Bounded wait for the classifier; expiry is treated as a failure
    classifier_timeout_seconds: float = 15.0

    # Crisis notification events (Kinesis)
    crisis_publishing_enabled: bool = False
    kinesis_stream_name: str = "mindcompass-crisis-events"

    # Check-in store backend: "memory" or "postgres"
    store_backend: str = "memory"

    # Worker threads for fire-and-forget side effects
    side_effect_workers: int = 2

    def __post_init__(self):
        if self.classifier_timeout_seconds <= 0:
            raise ValueError("Classifier timeout must be positive")
        if self.store_backend not in ("memory", "postgres"):
            raise ValueError(f"Unknown store backend: {self.store_backend}")

    @property
    def pattern_version(self) -> str:
        return CRISIS_PATTERN_VERSION

    @classmethod
    def from_env(cls) -> "TriageConfig":
        """Create config from environment variables.

        Environment variables:
            MEDIUM_THRESHOLD: Score for MEDIUM priority (default 15)
            HIGH_THRESHOLD: Score for HIGH priority (default 30)
            CLASSIFIER_TIMEOUT_SECONDS: Classifier deadline (default 15)
            CRISIS_PUBLISHING_ENABLED: Publish crisis events (default false)
            KINESIS_STREAM_NAME: Crisis event stream
            CHECKIN_STORE: memory | postgres (default memory)
            SIDE_EFFECT_WORKERS: Dispatcher threads (default 2)
        """
        return cls(
            thresholds=ScoringThresholds(
                medium=int(os.getenv("MEDIUM_THRESHOLD", "15")),
                high=int(os.getenv("HIGH_THRESHOLD", "30")),
            ),
            classifier_timeout_seconds=float(os.getenv("CLASSIFIER_TIMEOUT_SECONDS", "15")),
            crisis_publishing_enabled=os.getenv("CRISIS_PUBLISHING_ENABLED", "false").lower() == "true",
            kinesis_stream_name=os.getenv("KINESIS_STREAM_NAME", "mindcompass-crisis-events"),
            store_backend=os.getenv("CHECKIN_STORE", "memory").lower(),
            side_effect_workers=int(os.getenv("SIDE_EFFECT_WORKERS", "2")),
        )
