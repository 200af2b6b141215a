"""Tests for server configuration.

These tests demonstrate:
1. Configuration validation
2. Environment variable loading
3. Default value behavior
4. Service wiring chosen by configuration
"""

import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from library_lending.config import ServerConfig, get_config, reset_config
from library_lending.policy import DatabasePolicyProvider, StaticPolicyProvider
from library_lending.services import LibraryServices


class TestServerConfig:
    """Test server configuration behavior."""

    def test_default_configuration(self):
        """Defaults suit a local stdio deployment."""
        config = ServerConfig()

        assert config.server_name == "library-lending"
        assert config.server_version == "0.1.0"
        assert config.transport == "stdio"
        assert config.database_path == Path("data/library.db").absolute()
        assert config.database_url is None
        assert config.lock_timeout_seconds == 5.0
        assert config.policy_source == "database"

        # Nothing leaves the process unless asked
        assert config.logfire_token is None
        assert config.send_to_logfire is False

    def test_environment_variable_loading(self):
        env_vars = {
            "LIBRARY_LENDING_SERVER_NAME": "branch-lending",
            "LIBRARY_LENDING_SERVER_VERSION": "2.0.0",
            "LIBRARY_LENDING_DATABASE_PATH": "/tmp/lending.db",
            "LIBRARY_LENDING_TRANSPORT": "streamable_http",
            "LIBRARY_LENDING_LOCK_TIMEOUT_SECONDS": "2.5",
            "LIBRARY_LENDING_POLICY_SOURCE": "static",
            "LIBRARY_LENDING_DEBUG": "true",
        }

        with patch.dict(os.environ, env_vars):
            config = ServerConfig()

            assert config.server_name == "branch-lending"
            assert config.server_version == "2.0.0"
            assert config.database_path == Path("/tmp/lending.db")
            assert config.transport == "streamable_http"
            assert config.lock_timeout_seconds == 2.5
            assert config.policy_source == "static"
            assert config.debug is True
            assert config.is_development

    def test_server_name_validation(self):
        for name in ["library-lending", "branch-01"]:
            assert ServerConfig(server_name=name).server_name == name

        for name in ["Library_Lending", "library lending", "ab", "a" * 51]:
            with pytest.raises(ValidationError):
                ServerConfig(server_name=name)

    def test_transport_validation(self):
        with pytest.raises(ValidationError):
            ServerConfig(transport="websocket")

    def test_lock_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            ServerConfig(lock_timeout_seconds=0)

    def test_policy_source_validation(self):
        with pytest.raises(ValidationError):
            ServerConfig(policy_source="yaml")

    def test_database_url(self, tmp_path):
        config = ServerConfig(database_path=tmp_path / "lending.db")
        assert config.get_database_url() == f"sqlite:///{tmp_path / 'lending.db'}"

        config = ServerConfig(database_url="sqlite:///:memory:")
        assert config.get_database_url() == "sqlite:///:memory:"

    def test_logfire_token_hidden_from_repr(self):
        config = ServerConfig(logfire_token="secret-token")
        assert "secret-token" not in repr(config)


class TestConfigSingleton:
    """Test the process-wide configuration instance."""

    def test_get_config_returns_same_instance(self):
        assert get_config() is get_config()

    def test_reset_config(self):
        first = get_config()
        reset_config()
        assert get_config() is not first

    def test_environment_read_on_first_use(self):
        with patch.dict(os.environ, {"LIBRARY_LENDING_LOG_LEVEL": "WARNING"}):
            reset_config()
            assert get_config().log_level == "WARNING"


class TestServiceWiring:
    """Configuration decides how the services are built."""

    def test_policy_source_selects_provider(self, tmp_path):
        static = LibraryServices(
            ServerConfig(database_path=tmp_path / "a.db", policy_source="static")
        )
        database = LibraryServices(
            ServerConfig(database_path=tmp_path / "b.db", policy_source="database")
        )
        try:
            assert isinstance(static.policy_provider, StaticPolicyProvider)
            assert isinstance(database.policy_provider, DatabasePolicyProvider)
        finally:
            static.close()
            database.close()

    def test_lock_timeout_applied(self, tmp_path):
        config = ServerConfig(database_path=tmp_path / "lending.db", lock_timeout_seconds=1.5)
        with LibraryServices(config) as services:
            assert services.locks.timeout == 1.5
            assert services.db.busy_timeout == 1.5

    def test_database_directory_created(self, tmp_path):
        config = ServerConfig(database_path=tmp_path / "nested" / "lending.db")
        with LibraryServices(config) as services:
            services.init_database()
            assert (tmp_path / "nested" / "lending.db").exists()
