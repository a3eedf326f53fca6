"""Priority tier and check-in domain models.

This file defines the core enums and value objects shared by the triage
pipeline, the resource router and the check-in store. Priority tiers are
never compared as raw strings; use the severity order defined here.
"""
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class PriorityLevel(Enum):
    """Triage priority tiers, ordered LOW < MEDIUM < HIGH.

    HIGH is the terminal safety state: nothing downstream may lower it.
    """
    LOW = "low"           # Self-care
    MEDIUM = "medium"     # Counselor / human listener
    HIGH = "high"         # Helpline / safety escalation

    @property
    def severity(self) -> int:
        """Rank used for fusion comparisons (LOW=1, MEDIUM=2, HIGH=3)."""
        return _SEVERITY[self]

    @classmethod
    def parse(cls, value: Any) -> "PriorityLevel":
        """Parse a priority label, case-insensitively.

        Raises:
            ValueError: If the label is not one of low/medium/high
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Priority must be a string, got {type(value).__name__}")
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown priority level: {value!r}") from None

    def __lt__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.severity < other.severity

    def __le__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.severity <= other.severity

    def __gt__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.severity > other.severity

    def __ge__(self, other):
        if not isinstance(other, PriorityLevel):
            return NotImplemented
        return self.severity >= other.severity


_SEVERITY = {
    PriorityLevel.LOW: 1,
    PriorityLevel.MEDIUM: 2,
    PriorityLevel.HIGH: 3,
}


def max_severity(*levels: Optional[PriorityLevel]) -> PriorityLevel:
    """Return the most severe of the given levels, ignoring absent ones.

    Raises:
        ValueError: If no level is present
    """
    present = [level for level in levels if level is not None]
    if not present:
        raise ValueError("At least one priority level is required")
    return max(present, key=lambda level: level.severity)


class SupportType(Enum):
    """Increasing tiers of support-resource intensity."""
    SELF_HELP = "self_help"
    COUNSELOR = "counselor"
    HELPLINE = "helpline"


class AssessmentMode(Enum):
    """How the user chose to check in."""
    SCIENTIFIC = "scientific"   # Weekly Pulse questionnaire + optional notes
    JOURNAL = "journal"         # Free-text reflection only


class UserRole(Enum):
    STUDENT = "Student"
    PROFESSIONAL = "Professional"


class AgeRange(Enum):
    TEEN = "18-21"
    YOUNG_ADULT = "22-25"
    ADULT = "26-30"
    MATURE = "30+"


SUPPORT_LABELS: Dict[PriorityLevel, str] = {
    PriorityLevel.LOW: "Good for Self-Care",
    PriorityLevel.MEDIUM: "Might Benefit from Additional Support",
    PriorityLevel.HIGH: "Connecting You with Immediate Help",
}


@dataclass(frozen=True)
class QuestionnaireItem:
    """One Weekly Pulse screening item.

    Positively framed items ("I have been able to concentrate...") are
    inverted: strong agreement means LESS distress.
    """
    item_id: int
    prompt_text: str
    source_instrument: str
    positively_framed: bool = False

    def __post_init__(self):
        if isinstance(self.item_id, bool) or not isinstance(self.item_id, int) or self.item_id <= 0:
            raise ValueError(f"Item id must be a positive integer, got {self.item_id!r}")

    def distress_for(self, raw_level: int) -> int:
        """Map a raw agreement level (0-3) to its distress contribution."""
        if isinstance(raw_level, bool) or not isinstance(raw_level, int) or not 0 <= raw_level <= 3:
            raise ValueError(f"Raw level must be an integer 0-3, got {raw_level!r}")
        return 3 - raw_level if self.positively_framed else raw_level

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.item_id,
            "text": self.prompt_text,
            "source": self.source_instrument,
            "reverse": self.positively_framed,
        }


@dataclass(frozen=True)
class ResourceEntry:
    """Static support-resource catalog entry."""
    title: str
    description: str
    link: str
    support_type: SupportType
    min_priority: PriorityLevel
    is_emergency: bool = False

    @property
    def is_internal(self) -> bool:
        """True for links to in-app tools (``internal:grounding`` etc.)."""
        return self.link.startswith("internal:")

    def is_eligible(self, priority: PriorityLevel) -> bool:
        return priority >= self.min_priority

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "description": self.description,
            "link": self.link,
            "type": self.support_type.value,
            "min_priority": self.min_priority.value,
            "is_emergency": self.is_emergency,
        }


@dataclass(frozen=True)
class AssessmentResult:
    """Outcome of one completed check-in.

    Immutable: a new check-in creates a new result. The
    constructor enforces the fusion invariants so an understated result
    can never be built.
    """
    mode: AssessmentMode
    total_score: Optional[int]
    deterministic_priority: Optional[PriorityLevel]
    free_text: str
    classifier_priority: PriorityLevel
    classifier_reflection: str
    final_priority: PriorityLevel
    final_reflection: str
    crisis_override_applied: bool
    classifier_source: str = "llm"
    escalation_notice: Optional[str] = None
    matched_crisis_patterns: Tuple[str, ...] = ()
    pattern_version: str = ""
    assessment_id: str = field(default_factory=lambda: f"asmt_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        if self.total_score is not None and self.total_score < 0:
            raise ValueError(f"Total score must be non-negative, got {self.total_score}")
        floor = max_severity(self.deterministic_priority, self.classifier_priority)
        if self.final_priority < floor:
            raise ValueError(
                f"Final priority {self.final_priority.value} is below "
                f"contributing signal {floor.value}"
            )
        if self.crisis_override_applied and self.final_priority is not PriorityLevel.HIGH:
            raise ValueError("Crisis override requires HIGH final priority")

    @property
    def support_label(self) -> str:
        return SUPPORT_LABELS[self.final_priority]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses (free text excluded)."""
        return {
            "assessment_id": self.assessment_id,
            "mode": self.mode.value,
            "total_score": self.total_score,
            "deterministic_priority": (
                self.deterministic_priority.value if self.deterministic_priority else None
            ),
            "classifier_priority": self.classifier_priority.value,
            "classifier_source": self.classifier_source,
            "final_priority": self.final_priority.value,
            "reflection": self.final_reflection,
            "escalation_notice": self.escalation_notice,
            "support_label": self.support_label,
            "crisis_override_applied": self.crisis_override_applied,
            "pattern_version": self.pattern_version,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class UserProfile:
    """Anonymous profile. The alias is the only identifier we hold."""
    alias: str
    role: UserRole = UserRole.STUDENT
    age_range: AgeRange = AgeRange.YOUNG_ADULT

    def __post_init__(self):
        if not self.alias or not self.alias.strip():
            raise ValueError("Alias must not be empty")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alias": self.alias,
            "role": self.role.value,
            "age_range": self.age_range.value,
        }


@dataclass(frozen=True)
class UserStats:
    total_check_ins: int = 0
    last_check_in_at: Optional[datetime] = None
    consistency_streak: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_check_ins": self.total_check_ins,
            "last_check_in_at": self.last_check_in_at.isoformat() if self.last_check_in_at else None,
            "consistency_streak": self.consistency_streak,
        }
