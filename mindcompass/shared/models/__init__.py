"""Shared domain models for the MindCompass triage engine."""
from .triage import (
    PriorityLevel,
    SupportType,
    AssessmentMode,
    UserRole,
    AgeRange,
    SUPPORT_LABELS,
    QuestionnaireItem,
    ResourceEntry,
    AssessmentResult,
    UserProfile,
    UserStats,
    max_severity,
)

__all__ = [
    "PriorityLevel",
    "SupportType",
    "AssessmentMode",
    "UserRole",
    "AgeRange",
    "SUPPORT_LABELS",
    "QuestionnaireItem",
    "ResourceEntry",
    "AssessmentResult",
    "UserProfile",
    "UserStats",
    "max_severity",
]
