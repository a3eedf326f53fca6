"""Tests for database configuration and the pooled connection manager."""
import json

import pytest
from unittest.mock import MagicMock, patch

from mindcompass.shared.database.connection import ConnectionManager, DatabaseConfig


class TestDatabaseConfig:
    """Tests for DatabaseConfig dataclass."""

    def test_default_values(self):
        config = DatabaseConfig(host="localhost")

        assert config.port == 5432
        assert config.database == "mindcompass"
        assert config.min_connections == 1
        assert config.max_connections == 5
        assert config.ssl_mode == "require"

    def test_from_env(self):
        with patch.dict("os.environ", {
            "DB_HOST": "env-host",
            "DB_PORT": "5434",
            "DB_NAME": "env_db",
            "DB_USER": "env_user",
            "DB_PASSWORD": "env_pass",
            "DB_MAX_CONN": "8",
        }):
            config = DatabaseConfig.from_env()

        assert config.host == "env-host"
        assert config.port == 5434
        assert config.database == "env_db"
        assert config.username == "env_user"
        assert config.max_connections == 8

    def test_invalid_pool_bounds(self):
        with pytest.raises(ValueError):
            DatabaseConfig(host="localhost", min_connections=4, max_connections=2)

    @patch("mindcompass.shared.database.connection.boto3.client")
    def test_from_env_prefers_secret(self, mock_boto_client):
        mock_boto_client.return_value.get_secret_value.return_value = {
            "SecretString": json.dumps({"host": "rds-host", "username": "svc"})
        }
        with patch.dict("os.environ", {"DB_SECRET_ARN": "arn:aws:secretsmanager:x", "DB_MAX_CONN": "9"}):
            config = DatabaseConfig.from_env()

        assert config.host == "rds-host"
        assert config.username == "svc"
        assert config.max_connections == 9

    @patch("mindcompass.shared.database.connection.boto3.client")
    def test_from_secrets_manager(self, mock_boto_client):
        secrets = MagicMock()
        secrets.get_secret_value.return_value = {
            "SecretString": json.dumps({
                "host": "secret-host",
                "port": 6543,
                "dbname": "secret_db",
                "username": "svc",
                "password": "pw",
            })
        }
        mock_boto_client.return_value = secrets

        config = DatabaseConfig.from_secrets_manager("arn:aws:secretsmanager:x")

        assert config.host == "secret-host"
        assert config.port == 6543
        assert config.database == "secret_db"
        assert config.username == "svc"

    @patch("mindcompass.shared.database.connection.boto3.client")
    def test_from_secrets_manager_failure_raises(self, mock_boto_client):
        mock_boto_client.return_value.get_secret_value.side_effect = Exception("denied")

        with pytest.raises(Exception, match="denied"):
            DatabaseConfig.from_secrets_manager("arn:aws:secretsmanager:x")


class TestConnectionManager:
    """Tests for ConnectionManager."""

    @pytest.fixture
    def mock_pool_cls(self):
        with patch("mindcompass.shared.database.connection.pool.ThreadedConnectionPool") as pool_cls:
            yield pool_cls

    @pytest.fixture
    def manager(self):
        return ConnectionManager(DatabaseConfig(host="localhost"))

    def test_not_initialized_until_used(self, manager):
        assert manager.is_initialized is False

    def test_initialize_creates_pool_once(self, manager, mock_pool_cls):
        manager.initialize()
        manager.initialize()

        assert manager.is_initialized is True
        mock_pool_cls.assert_called_once()
        assert mock_pool_cls.call_args.args == (1, 5)
        assert mock_pool_cls.call_args.kwargs["dbname"] == "mindcompass"

    def test_get_connection_returns_connection_to_pool(self, manager, mock_pool_cls):
        pool = mock_pool_cls.return_value
        conn = pool.getconn.return_value

        with manager.get_connection() as borrowed:
            assert borrowed is conn

        pool.putconn.assert_called_once_with(conn)
        conn.rollback.assert_not_called()

    def test_get_connection_rolls_back_on_error(self, manager, mock_pool_cls):
        pool = mock_pool_cls.return_value
        conn = pool.getconn.return_value

        with pytest.raises(RuntimeError):
            with manager.get_connection():
                raise RuntimeError("query failed")

        conn.rollback.assert_called_once()
        pool.putconn.assert_called_once_with(conn)

    def test_initialize_failure_raises(self, manager, mock_pool_cls):
        mock_pool_cls.side_effect = Exception("connection refused")

        with pytest.raises(Exception, match="connection refused"):
            manager.initialize()
        assert manager.is_initialized is False

    def test_health_check_not_initialized(self, manager):
        assert manager.health_check() == {"status": "not_initialized", "healthy": False}

    def test_health_check_connected(self, manager, mock_pool_cls):
        manager.initialize()

        status = manager.health_check()

        assert status["healthy"] is True
        assert status["status"] == "connected"

    def test_health_check_error(self, manager, mock_pool_cls):
        manager.initialize()
        mock_pool_cls.return_value.getconn.side_effect = Exception("pool exhausted")

        status = manager.health_check()

        assert status["healthy"] is False
        assert "pool exhausted" in status["error"]

    def test_close(self, manager, mock_pool_cls):
        manager.initialize()
        manager.close()

        mock_pool_cls.return_value.closeall.assert_called_once()
        assert manager.is_initialized is False

    def test_transaction_commits(self, manager, mock_pool_cls):
        conn = mock_pool_cls.return_value.getconn.return_value
        cursor = conn.cursor.return_value.__enter__.return_value

        with manager.transaction() as cur:
            cur.execute("SELECT 1")

        cursor.execute.assert_called_once_with("SELECT 1")
        conn.commit.assert_called_once()

    def test_transaction_rolls_back_without_commit(self, manager, mock_pool_cls):
        conn = mock_pool_cls.return_value.getconn.return_value

        with pytest.raises(RuntimeError):
            with manager.transaction():
                raise RuntimeError("constraint violated")

        conn.commit.assert_not_called()
        conn.rollback.assert_called_once()
