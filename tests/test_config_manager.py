"""
Test cases for the configuration management system.
Tests config loading, validation, and access functionality.
"""

import os
import json
from unittest.mock import patch, mock_open
import pytest

from config_manager import (
    ConfigManager,
    BackendConfig,
    AppConfig,
    CredentialsConfig,
    SessionConfig,
    PathsConfig,
    get_backend_config,
    get_app_config,
    get_session_config,
    get_paths_config,
)


class TestConfigManager:
    """Test the ConfigManager class functionality."""

    def test_defaults_when_file_missing(self):
        """Test loading configuration when file doesn't exist."""
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            with patch.dict(os.environ, {}, clear=True):
                manager = ConfigManager()

        for section in ("backend", "app", "credentials", "session", "paths"):
            assert section in manager._config
        assert manager.get_backend_config().transport == "http"
        assert manager.get_session_config().stall_timeout_seconds == 120.0
        assert manager.get_session_config().default_categories == ["cs.AI", "cs.LG"]

    def test_load_config_from_file(self):
        """Test loading configuration from existing file."""
        test_config = {
            "backend": {"transport": "worker", "worker_command": "scripts/run_fetch.py"},
            "app": {"host": "localhost", "port": 8080},
            "session": {"stall_timeout_seconds": 45},
        }

        with patch('builtins.open', mock_open(read_data=json.dumps(test_config))):
            with patch('config_manager.Path') as mock_path:
                mock_path.return_value.exists.return_value = True
                with patch.dict(os.environ, {}, clear=True):
                    manager = ConfigManager()

        backend = manager.get_backend_config()
        assert backend.transport == "worker"
        assert backend.worker_command == "scripts/run_fetch.py"
        # Keys missing from the file keep their defaults
        assert backend.timeout == 10.0
        assert manager.get_app_config().port == 8080
        assert manager.get_session_config().stall_timeout_seconds == 45.0

    def test_invalid_json_keeps_defaults(self):
        """Test that an unreadable file falls back to the defaults."""
        with patch('builtins.open', mock_open(read_data="{broken")):
            with patch('config_manager.Path') as mock_path:
                mock_path.return_value.exists.return_value = True
                with patch.dict(os.environ, {}, clear=True):
                    manager = ConfigManager()

        assert manager.get_app_config().port == 22582

    def test_override_with_env_variables(self):
        """Test that environment variables override config file values."""
        env_vars = {
            "BACKEND_TRANSPORT": "WORKER",
            "BACKEND_BASE_URL": "http://fetch-backend:9000",
            "BACKEND_TIMEOUT": "2.5",
            "WORKER_COMMAND": "worker.py",
            "GLM_API_KEY": "glm-key",
            "CLAUDE_API_KEY": "claude-key",
            "APP_HOST": "localhost",
            "APP_PORT": "8080",
            "APP_DEBUG": "true",
            "STALL_TIMEOUT_SECONDS": "30",
            "DATA_DIR": "/var/lib/fetch",
        }

        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            with patch.dict(os.environ, env_vars, clear=True):
                manager = ConfigManager()

        backend = manager.get_backend_config()
        assert backend.transport == "worker"
        assert backend.base_url == "http://fetch-backend:9000"
        assert backend.timeout == 2.5
        assert backend.worker_command == "worker.py"
        credentials = manager.get_credentials_config()
        assert credentials.glm_api_key == "glm-key"
        assert credentials.claude_api_key == "claude-key"
        app_config = manager.get_app_config()
        assert app_config.host == "localhost"
        assert app_config.port == 8080
        assert app_config.debug is True
        assert manager.get_session_config().stall_timeout_seconds == 30.0
        assert manager.get_paths_config().data_dir == "/var/lib/fetch"

    def test_unknown_transport_falls_back_to_http(self):
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            with patch.dict(os.environ, {"BACKEND_TRANSPORT": "carrier-pigeon"}, clear=True):
                manager = ConfigManager()

        assert manager.get_backend_config().transport == "http"

    def test_get_config(self):
        """Test getting raw configuration dictionary."""
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            manager = ConfigManager()
            manager._config = {"test": "value"}

            config = manager.get_config()

            assert config == {"test": "value"}
            assert config is not manager._config  # Should be a copy

    def test_save_config(self):
        """Test saving configuration to file."""
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            manager = ConfigManager()

            with patch('builtins.open', mock_open()) as mock_file:
                manager.save_config()

                mock_file.assert_called_once()
                mock_file().write.assert_called()

    def test_reload_config(self):
        """Test reloading configuration."""
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            manager = ConfigManager()

            original_config = manager._config.copy()
            manager._config["test"] = "modified"
            manager.reload()

            assert "test" not in manager._config
            assert manager._config == original_config


class TestCredentialsConfig:
    """Test provider credential lookup."""

    def test_lookup(self):
        credentials = CredentialsConfig(glm_api_key="glm-key", claude_api_key="  ")

        assert credentials.get_api_key("glm") == "glm-key"
        assert credentials.has_credential("glm")
        assert not credentials.has_credential("claude")
        assert credentials.get_api_key("openai") == ""


class TestConfigDataClasses:
    """Test the configuration data classes."""

    def test_backend_config(self):
        config = BackendConfig(
            transport="http",
            base_url="http://127.0.0.1:8765",
            timeout=10.0,
            worker_command="fetch_worker.py",
            max_reconnects=3,
            reconnect_delay=2.0,
            cancel_grace_seconds=5.0,
            proxy_url=None
        )

        assert config.transport == "http"
        assert config.max_reconnects == 3
        assert config.proxy_url is None

    def test_session_config(self):
        config = SessionConfig(
            stall_timeout_seconds=120.0,
            heartbeat_seconds=15.0,
            notifications_enabled=True,
            default_categories=["cs.AI"],
            default_provider="glm"
        )

        assert config.default_categories == ["cs.AI"]
        assert config.notifications_enabled is True


class TestGlobalFunctions:
    """Test the global configuration functions."""

    def test_global_getters(self):
        assert isinstance(get_backend_config(), BackendConfig)
        assert isinstance(get_app_config(), AppConfig)
        assert isinstance(get_session_config(), SessionConfig)
        assert isinstance(get_paths_config(), PathsConfig)

    @pytest.mark.parametrize("transport", ["http", "worker"])
    def test_transport_values(self, transport):
        with patch('config_manager.Path') as mock_path:
            mock_path.return_value.exists.return_value = False
            with patch.dict(os.environ, {"BACKEND_TRANSPORT": transport}, clear=True):
                assert ConfigManager().get_backend_config().transport == transport
