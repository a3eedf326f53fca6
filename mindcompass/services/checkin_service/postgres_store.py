"""PostgreSQL-backed check-in store.

Tables:
    users        - one row per alias: profile fields + streak stats
    assessments  - append-only check-in results
"""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from mindcompass.shared.database import BaseRepository, ConnectionManager
from mindcompass.shared.models import (
    AgeRange,
    AssessmentResult,
    UserProfile,
    UserRole,
    UserStats,
)
from mindcompass.shared.utils import hash_pii, normalize_alias
from .store import (
    AssessmentRecord,
    CheckInStore,
    UserRecord,
    advance_stats,
)

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    alias               TEXT PRIMARY KEY,
    role                TEXT,
    age_range           TEXT,
    total_checkins      INTEGER NOT NULL DEFAULT 0,
    last_checkin_at     TIMESTAMP,
    consistency_streak  INTEGER NOT NULL DEFAULT 0,
    updated_at          TIMESTAMP NOT NULL DEFAULT NOW()
);

CREATE TABLE IF NOT EXISTS assessments (
    id               TEXT PRIMARY KEY,
    alias            TEXT NOT NULL REFERENCES users (alias),
    checkin_data     JSONB NOT NULL,
    reflection_text  TEXT NOT NULL DEFAULT '',
    priority_level   TEXT NOT NULL,
    result           JSONB NOT NULL,
    created_at       TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_assessments_alias ON assessments (alias, created_at DESC);
"""


def _load_json(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


class UserRepository(BaseRepository[UserRecord]):
    """Repository for the users table (keyed on alias)."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "users", key_column="alias")

    def _row_to_entity(self, row: tuple) -> UserRecord:
        """Convert a users row.

        Expected columns:
            0: alias
            1: role
            2: age_range
            3: total_checkins
            4: last_checkin_at
            5: consistency_streak
            6: updated_at
        """
        profile = None
        if row[1] and row[2]:
            profile = UserProfile(alias=row[0], role=UserRole(row[1]), age_range=AgeRange(row[2]))

        return UserRecord(
            alias=row[0],
            profile=profile,
            stats=UserStats(
                total_check_ins=row[3] or 0,
                last_check_in_at=row[4],
                consistency_streak=row[5] or 0,
            ),
        )

    def _entity_to_params(self, entity: UserRecord) -> Dict[str, Any]:
        return {
            "alias": entity.alias,
            "role": entity.profile.role.value if entity.profile else None,
            "age_range": entity.profile.age_range.value if entity.profile else None,
            "total_checkins": entity.stats.total_check_ins,
            "last_checkin_at": entity.stats.last_check_in_at,
            "consistency_streak": entity.stats.consistency_streak,
            "updated_at": datetime.utcnow(),
        }


class AssessmentRepository(BaseRepository[AssessmentRecord]):
    """Repository for the append-only assessments table."""

    def __init__(self, connection_manager: ConnectionManager):
        super().__init__(connection_manager, "assessments")

    def _row_to_entity(self, row: tuple) -> AssessmentRecord:
        """Convert an assessments row.

        Expected columns:
            0: id
            1: alias
            2: checkin_data
            3: reflection_text
            4: priority_level
            5: result
            6: created_at
        """
        responses = _load_json(row[2]) or {}
        return AssessmentRecord(
            assessment_id=row[0],
            alias=row[1],
            responses={int(item_id): level for item_id, level in responses.items()},
            reflection_text=row[3] or "",
            priority=row[4],
            result=_load_json(row[5]) or {},
            created_at=row[6],
        )

    def _entity_to_params(self, entity: AssessmentRecord) -> Dict[str, Any]:
        return {
            "id": entity.assessment_id,
            "alias": entity.alias,
            "checkin_data": json.dumps({str(k): v for k, v in entity.responses.items()}),
            "reflection_text": entity.reflection_text,
            "priority_level": entity.priority,
            "result": json.dumps(entity.result),
            "created_at": entity.created_at,
        }


class PostgresCheckInStore(CheckInStore):
    """Check-in store on PostgreSQL via the shared connection pool."""

    def __init__(self, connection_manager: ConnectionManager):
        self.connection_manager = connection_manager
        self.users = UserRepository(connection_manager)
        self.assessments = AssessmentRepository(connection_manager)

        logger.info("CHECKIN_STORE_INITIALIZED", extra={"backend": "postgres"})

    def ensure_schema(self) -> None:
        with self.connection_manager.transaction() as cur:
            cur.execute(SCHEMA_SQL)
        logger.info("CHECKIN_SCHEMA_ENSURED")

    def get_or_create_user(self, alias: str) -> UserRecord:
        """Fetch the alias's row, inserting an empty one if absent.

        The insert never touches an existing row, so a concurrent
        ``record_check_in`` or profile update is not overwritten.
        """
        key = normalize_alias(alias)
        with self.connection_manager.transaction() as cur:
            cur.execute(
                "INSERT INTO users (alias) VALUES (%s) ON CONFLICT (alias) DO NOTHING",
                (key,),
            )
            created = cur.rowcount == 1
            cur.execute("SELECT * FROM users WHERE alias = %s", (key,))
            row = cur.fetchone()

        if created:
            logger.info("USER_CREATED", extra={"alias_hash": hash_pii(key)})
        return self.users._row_to_entity(row)

    def update_user_profile(self, profile: UserProfile) -> None:
        """Set role and age range only; streak columns are left alone."""
        key = normalize_alias(profile.alias)
        with self.connection_manager.transaction() as cur:
            cur.execute(
                "INSERT INTO users (alias, role, age_range, updated_at) "
                "VALUES (%s, %s, %s, %s) "
                "ON CONFLICT (alias) DO UPDATE SET role = EXCLUDED.role, "
                "age_range = EXCLUDED.age_range, updated_at = EXCLUDED.updated_at",
                (key, profile.role.value, profile.age_range.value, datetime.utcnow()),
            )
        logger.info("USER_PROFILE_UPDATED", extra={"alias_hash": hash_pii(key)})

    def record_check_in(self, alias: str, now: Optional[datetime] = None) -> UserStats:
        """Advance stats inside one transaction (row locked FOR UPDATE)."""
        key = normalize_alias(alias)
        now = now or datetime.utcnow()

        with self.connection_manager.transaction() as cur:
            cur.execute(
                "INSERT INTO users (alias) VALUES (%s) ON CONFLICT (alias) DO NOTHING",
                (key,),
            )
            cur.execute(
                "SELECT total_checkins, last_checkin_at, consistency_streak "
                "FROM users WHERE alias = %s FOR UPDATE",
                (key,),
            )
            total, last_check_in_at, streak = cur.fetchone()
            stats = advance_stats(
                UserStats(
                    total_check_ins=total or 0,
                    last_check_in_at=last_check_in_at,
                    consistency_streak=streak or 0,
                ),
                now,
            )
            cur.execute(
                "UPDATE users SET total_checkins = %s, last_checkin_at = %s, "
                "consistency_streak = %s, updated_at = %s WHERE alias = %s",
                (
                    stats.total_check_ins,
                    stats.last_check_in_at,
                    stats.consistency_streak,
                    now,
                    key,
                ),
            )

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
        self.get_or_create_user(key)
        record = AssessmentRecord(
            assessment_id=result.assessment_id,
            alias=key,
            responses=dict(responses),
            reflection_text=text or "",
            priority=result.final_priority.value,
            result=result.to_dict(),
            created_at=result.created_at,
        )
        self.assessments.insert(record)

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
        return self.assessments.find_where("alias", normalize_alias(alias), limit=limit)
