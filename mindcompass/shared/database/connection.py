"""PostgreSQL pool for the check-in store.

Side effects are written from dispatcher worker threads, so connections come
from a ThreadedConnectionPool that is opened lazily on first use. Credentials
come from DB_* variables, or from Secrets Manager when DB_SECRET_ARN is set.
"""
import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import boto3
from psycopg2 import pool

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DatabaseConfig:
    """Where the check-in database lives and how big the pool is."""
    host: str
    port: int = 5432
    database: str = "mindcompass"
    username: str = ""
    password: str = ""
    min_connections: int = 1
    max_connections: int = 5
    connect_timeout: int = 10
    ssl_mode: str = "require"

    def __post_init__(self):
        if not 0 < self.min_connections <= self.max_connections:
            raise ValueError(
                f"Pool bounds must satisfy 0 < min <= max, got "
                f"{self.min_connections}/{self.max_connections}"
            )

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        """Build config from DB_* variables.

        DB_SECRET_ARN, when set, takes host/port/name/credentials from the
        secret; pool sizing still comes from DB_MIN_CONN / DB_MAX_CONN.
        """
        pool_sizing = {
            "min_connections": int(os.getenv("DB_MIN_CONN", "1")),
            "max_connections": int(os.getenv("DB_MAX_CONN", "5")),
            "ssl_mode": os.getenv("DB_SSL_MODE", "require"),
        }

        secret_arn = os.getenv("DB_SECRET_ARN")
        if secret_arn:
            return cls.from_secrets_manager(
                secret_arn,
                region=os.getenv("AWS_REGION", "ap-south-1"),
                **pool_sizing,
            )

        return cls(
            host=os.getenv("DB_HOST", "localhost"),
            port=int(os.getenv("DB_PORT", "5432")),
            database=os.getenv("DB_NAME", "mindcompass"),
            username=os.getenv("DB_USER", ""),
            password=os.getenv("DB_PASSWORD", ""),
            **pool_sizing,
        )

    @classmethod
    def from_secrets_manager(
        cls,
        secret_arn: str,
        region: str = "ap-south-1",
        **overrides: Any,
    ) -> "DatabaseConfig":
        """Read an RDS-style JSON secret (host, port, dbname, username, password).

        Raises:
            Exception: Whatever boto3 raises; logged first without the secret
        """
        try:
            secretsmanager = boto3.client("secretsmanager", region_name=region)
            secret = json.loads(
                secretsmanager.get_secret_value(SecretId=secret_arn)["SecretString"]
            )
        except Exception as e:
            logger.error(
                "DB_SECRET_LOAD_FAILED",
                extra={"secret_arn": secret_arn, "region": region, "error": str(e)},
            )
            raise

        return cls(
            host=secret.get("host", "localhost"),
            port=int(secret.get("port", 5432)),
            database=secret.get("dbname", "mindcompass"),
            username=secret.get("username", ""),
            password=secret.get("password", ""),
            **overrides,
        )

    def connect_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for psycopg2 connections."""
        return {
            "host": self.host,
            "port": self.port,
            "dbname": self.database,
            "user": self.username,
            "password": self.password,
            "connect_timeout": self.connect_timeout,
            "sslmode": self.ssl_mode,
        }


class ConnectionManager:
    """Lazily opened, thread-safe connection pool."""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self._pool: Optional[pool.ThreadedConnectionPool] = None

    @property
    def is_initialized(self) -> bool:
        return self._pool is not None

    def initialize(self) -> None:
        """Open the pool. Calling it again is a no-op."""
        if self._pool is not None:
            return

        try:
            self._pool = pool.ThreadedConnectionPool(
                self.config.min_connections,
                self.config.max_connections,
                **self.config.connect_kwargs(),
            )
        except Exception as e:
            logger.error(
                "DB_POOL_OPEN_FAILED",
                extra={"host": self.config.host, "error": str(e)},
            )
            raise

        logger.info(
            "DB_POOL_OPENED",
            extra={
                "host": self.config.host,
                "database": self.config.database,
                "max_connections": self.config.max_connections,
            },
        )

    @contextmanager
    def get_connection(self) -> Iterator[Any]:
        """Borrow a pooled connection; rolled back if the block raises."""
        self.initialize()

        conn = self._pool.getconn()
        try:
            yield conn
        except Exception:
            conn.rollback()
            raise
        finally:
            self._pool.putconn(conn)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """Cursor inside one transaction, committed when the block exits cleanly."""
        with self.get_connection() as conn:
            with conn.cursor() as cur:
                yield cur
            conn.commit()

    def health_check(self) -> Dict[str, Any]:
        """Round-trip ``SELECT 1`` for the readiness probe.

        Never opens the pool; an unopened pool reports not_initialized.
        """
        if self._pool is None:
            return {"status": "not_initialized", "healthy": False}

        started = time.monotonic()
        try:
            with self.get_connection() as conn:
                with conn.cursor() as cur:
                    cur.execute("SELECT 1")
                    cur.fetchone()
        except Exception as e:
            logger.error("DB_HEALTH_CHECK_FAILED", extra={"error": str(e)})
            return {"status": "error", "healthy": False, "error": str(e)}

        return {
            "status": "connected",
            "healthy": True,
            "latency_ms": round((time.monotonic() - started) * 1000, 2),
        }

    def close(self) -> None:
        if self._pool is not None:
            self._pool.closeall()
            self._pool = None
            logger.info("DB_POOL_CLOSED")
