"""Check-in store: anonymous profiles, streaks and saved assessments.

The triage core calls this only after a decision is final, through the
side-effect dispatcher. Nothing here can change a triage result.

Streak rule: the consistency streak grows by one on the first check-in of
each calendar day; further check-ins that day leave it unchanged.
"""
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from mindcompass.shared.models import AssessmentResult, UserProfile, UserStats
from mindcompass.shared.utils import hash_pii, normalize_alias

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserRecord:
    """What the store knows about an alias."""
    alias: str
    profile: Optional[UserProfile] = None
    stats: UserStats = field(default_factory=UserStats)


@dataclass(frozen=True)
class AssessmentRecord:
    """One persisted check-in. Written once, never edited."""
    assessment_id: str
    alias: str
    responses: Dict[int, int]
    reflection_text: str
    priority: str
    result: Dict[str, Any]
    created_at: datetime


def advance_stats(stats: UserStats, now: datetime) -> UserStats:
    """Apply one check-in at ``now`` to the running stats."""
    last = stats.last_check_in_at
    is_new_day = last is None or last.date() != now.date()

    return UserStats(
        total_check_ins=stats.total_check_ins + 1,
        last_check_in_at=now,
        consistency_streak=stats.consistency_streak + 1 if is_new_day else stats.consistency_streak,
    )


class CheckInStore(ABC):
    """Persistence collaborator used after triage."""

    @abstractmethod
    def get_or_create_user(self, alias: str) -> UserRecord:
        """Return the record for an alias, creating an empty one if new."""

    @abstractmethod
    def update_user_profile(self, profile: UserProfile) -> None:
        """Create or replace the profile for ``profile.alias``."""

    @abstractmethod
    def record_check_in(self, alias: str, now: Optional[datetime] = None) -> UserStats:
        """Count a check-in and return the updated stats."""

    @abstractmethod
    def save_assessment(
        self,
        alias: str,
        responses: Mapping[int, int],
        text: str,
        result: AssessmentResult,
    ) -> AssessmentRecord:
        """Persist a completed assessment."""

    @abstractmethod
    def list_assessments(self, alias: str, limit: int = 50) -> List[AssessmentRecord]:
        """Assessments for an alias, newest first."""


class InMemoryCheckInStore(CheckInStore):
    """Process-local store for development and tests.

    Thread-safe: the dispatcher writes from worker threads.
    """

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._assessments: List[AssessmentRecord] = []
        self._lock = threading.Lock()

        logger.info("CHECKIN_STORE_INITIALIZED", extra={"backend": "memory"})

    def get_or_create_user(self, alias: str) -> UserRecord:
        key = normalize_alias(alias)
        with self._lock:
            record = self._users.get(key)
            if record is None:
                record = UserRecord(alias=key)
                self._users[key] = record
                logger.info("USER_CREATED", extra={"alias_hash": hash_pii(key)})
        return record

    def update_user_profile(self, profile: UserProfile) -> None:
        key = normalize_alias(profile.alias)
        with self._lock:
            record = self._users.get(key) or UserRecord(alias=key)
            self._users[key] = replace(record, profile=replace(profile, alias=key))
        logger.info("USER_PROFILE_UPDATED", extra={"alias_hash": hash_pii(key)})

    def record_check_in(self, alias: str, now: Optional[datetime] = None) -> UserStats:
        key = normalize_alias(alias)
        now = now or datetime.utcnow()
        with self._lock:
            record = self._users.get(key) or UserRecord(alias=key)
            stats = advance_stats(record.stats, now)
            self._users[key] = replace(record, stats=stats)

        logger.info(
            "CHECK_IN_RECORDED",
            extra={
                "alias_hash": hash_pii(key),
                "total_check_ins": stats.total_check_ins,
                "consistency_streak": stats.consistency_streak,
            },
        )
        return stats

    def save_assessment(
        self,
        alias: str,
        responses: Mapping[int, int],
        text: str,
        result: AssessmentResult,
    ) -> AssessmentRecord:
        key = normalize_alias(alias)
        record = AssessmentRecord(
            assessment_id=result.assessment_id,
            alias=key,
            responses=dict(responses),
            reflection_text=text or "",
            priority=result.final_priority.value,
            result=result.to_dict(),
            created_at=result.created_at,
        )
        with self._lock:
            self._assessments.append(record)

        logger.info(
            "ASSESSMENT_SAVED",
            extra={
                "alias_hash": hash_pii(key),
                "assessment_id": record.assessment_id,
                "priority": record.priority,
            },
        )
        return record

    def list_assessments(self, alias: str, limit: int = 50) -> List[AssessmentRecord]:
        key = normalize_alias(alias)
        with self._lock:
            matches = [record for record in self._assessments if record.alias == key]
        matches.sort(key=lambda record: record.created_at, reverse=True)
        return matches[:limit]
