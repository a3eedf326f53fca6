"""Check-in Service: anonymous profiles, consistency streaks, saved results.

Called only after the triage decision is final, through the side-effect
dispatcher. A store failure is logged and never reaches the user.

Components:
- store.py: CheckInStore interface + in-memory implementation
- postgres_store.py: PostgreSQL implementation on the shared pool
"""

from mindcompass.shared.database import ConnectionManager, DatabaseConfig
from .store import (
    AssessmentRecord,
    CheckInStore,
    InMemoryCheckInStore,
    UserRecord,
    advance_stats,
)
from .postgres_store import PostgresCheckInStore


def build_store(config) -> CheckInStore:
    """Create the store named by ``config.store_backend`` ("memory" or "postgres").

    The postgres backend creates its tables (idempotently) before it is
    returned.

    Raises:
        ValueError: If the backend is unknown
        Exception: Whatever psycopg2 raises while provisioning the schema
    """
    backend = config.store_backend
    if backend == "memory":
        return InMemoryCheckInStore()
    if backend == "postgres":
        store = PostgresCheckInStore(ConnectionManager(DatabaseConfig.from_env()))
        store.ensure_schema()
        return store
    raise ValueError(f"Unknown check-in store backend: {backend}")


__all__ = [
    "AssessmentRecord",
    "CheckInStore",
    "InMemoryCheckInStore",
    "PostgresCheckInStore",
    "UserRecord",
    "advance_stats",
    "build_store",
]
