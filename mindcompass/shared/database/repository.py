"""Base repository pattern for check-in persistence.

Subclasses map one table to one entity type; this base supplies keyed
lookup, upsert, insert and count with consistent error translation.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, List, Optional, TypeVar

from .connection import ConnectionManager

logger = logging.getLogger(__name__)

T = TypeVar('T')


class RepositoryError(Exception):
    """Base exception for repository errors."""


class NotFoundError(RepositoryError):
    """Entity not found in database."""


class DuplicateError(RepositoryError):
    """Duplicate entity already exists."""


class BaseRepository(ABC, Generic[T]):
    """Abstract base repository with common operations."""

    def __init__(
        self,
        connection_manager: ConnectionManager,
        table_name: str,
        key_column: str = "id",
    ):
        """Initialize repository.

        Args:
            connection_manager: Database connection manager
            table_name: Name of the database table
            key_column: Primary key column used for lookups and upserts
        """
        self.connection_manager = connection_manager
        self.table_name = table_name
        self.key_column = key_column

        logger.info(
            "REPOSITORY_INITIALIZED",
            extra={"table_name": table_name}
        )

    @abstractmethod
    def _row_to_entity(self, row: tuple) -> T:
        """Convert database row to entity."""

    @abstractmethod
    def _entity_to_params(self, entity: T) -> Dict[str, Any]:
        """Convert entity to column -> value mapping."""

    def find_by_key(self, key: Any) -> Optional[T]:
        """Find entity by primary key, or None."""
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT * FROM {self.table_name} WHERE {self.key_column} = %s",
                    (key,)
                )
                row = cur.fetchone()

        if row is None:
            return None
        return self._row_to_entity(row)

    def get(self, key: Any) -> T:
        """Find entity by primary key.

        Raises:
            NotFoundError: If no row matches
        """
        entity = self.find_by_key(key)
        if entity is None:
            raise NotFoundError(f"{self.table_name}: no row with {self.key_column}={key!r}")
        return entity

    def find_where(self, column: str, value: Any, limit: int = 50) -> List[T]:
        """Find entities by a column value, newest first."""
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    f"SELECT * FROM {self.table_name} WHERE {column} = %s "
                    f"ORDER BY created_at DESC LIMIT %s",
                    (value, limit)
                )
                rows = cur.fetchall()

        return [self._row_to_entity(row) for row in rows]

    def save(self, entity: T) -> T:
        """Insert or update entity keyed on ``key_column``."""
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        values = list(params.values())
        placeholders = ["%s"] * len(values)

        update_clause = ", ".join(
            f"{col} = EXCLUDED.{col}" for col in columns if col != self.key_column
        )

        query = f"""
            INSERT INTO {self.table_name} ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
            ON CONFLICT ({self.key_column}) DO UPDATE SET {update_clause}
            RETURNING *
        """

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, values)
                row = cur.fetchone()
            conn.commit()

        if row:
            return self._row_to_entity(row)
        return entity

    def insert(self, entity: T) -> T:
        """Insert a new entity; records written this way are never updated.

        Raises:
            DuplicateError: If the key already exists
        """
        params = self._entity_to_params(entity)
        columns = list(params.keys())
        placeholders = ["%s"] * len(columns)

        query = f"""
            INSERT INTO {self.table_name} ({", ".join(columns)})
            VALUES ({", ".join(placeholders)})
            ON CONFLICT ({self.key_column}) DO NOTHING
        """

        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(query, list(params.values()))
                inserted = cur.rowcount
            conn.commit()

        if inserted == 0:
            raise DuplicateError(
                f"{self.table_name}: {self.key_column}={params[self.key_column]!r} already exists"
            )
        return entity

    def count(self) -> int:
        with self.connection_manager.get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(f"SELECT COUNT(*) FROM {self.table_name}")
                row = cur.fetchone()

        return row[0] if row else 0
