"""
Configuration management for the fetch session service.
Handles loading, validating, and providing access to application settings.
"""

import os
import json
import logging
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)

TRANSPORTS = ("http", "worker")


@dataclass
class BackendConfig:
    """Fetch backend connection settings."""
    transport: str
    base_url: str
    timeout: float
    worker_command: str
    max_reconnects: int
    reconnect_delay: float
    cancel_grace_seconds: float
    proxy_url: Optional[str]


@dataclass
class AppConfig:
    """Application configuration settings."""
    host: str
    port: int
    debug: bool


@dataclass
class CredentialsConfig:
    """LLM provider API keys used for deep analysis."""
    glm_api_key: str
    claude_api_key: str

    def get_api_key(self, provider: str) -> str:
        """API key for *provider* ('glm' or 'claude'), or an empty string."""
        return {"glm": self.glm_api_key, "claude": self.claude_api_key}.get(provider, "") or ""

    def has_credential(self, provider: str) -> bool:
        return bool(self.get_api_key(provider).strip())


@dataclass
class SessionConfig:
    """Fetch session behaviour."""
    stall_timeout_seconds: float
    heartbeat_seconds: float
    notifications_enabled: bool
    default_categories: list[str]
    default_provider: str


@dataclass
class PathsConfig:
    """Path configuration settings."""
    data_dir: str
    fetch_settings_file: str


class ConfigManager:
    """Manages application configuration loading and access."""

    def __init__(self, config_file: str = "fetch_app_config.json"):
        self.config_file = Path(config_file)
        self._config: Optional[Dict[str, Any]] = None
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from file and environment variables."""
        # Start with default config
        self._config = self._get_default_config()

        # Load base config from file
        if self.config_file.exists():
            try:
                with open(self.config_file, 'r', encoding='utf-8') as f:
                    file_config = json.load(f)
                    # Merge file config with defaults
                    self._merge_config(file_config)
            except (json.JSONDecodeError, FileNotFoundError) as e:
                # Keep default config if file is invalid or not found
                logger.warning(f"Ignoring unreadable config file {self.config_file}: {e}")

        # Override with environment variables
        self._override_with_env()

        if self._config["backend"]["transport"] not in TRANSPORTS:
            logger.warning(
                f"Unknown backend transport {self._config['backend']['transport']!r}, using 'http'"
            )
            self._config["backend"]["transport"] = "http"

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration."""
        return {
            "backend": {
                "transport": "http",
                "base_url": "http://127.0.0.1:8765",
                "timeout": 10.0,
                "worker_command": "fetch_worker.py",
                "max_reconnects": 3,
                "reconnect_delay": 2.0,
                "cancel_grace_seconds": 5.0,
                "proxy_url": None
            },
            "app": {
                "host": "0.0.0.0",
                "port": 22582,
                "debug": False
            },
            "credentials": {
                "glm_api_key": "",
                "claude_api_key": ""
            },
            "session": {
                "stall_timeout_seconds": 120.0,
                "heartbeat_seconds": 15.0,
                "notifications_enabled": True,
                "default_categories": ["cs.AI", "cs.LG"],
                "default_provider": "glm"
            },
            "paths": {
                "data_dir": "data",
                "fetch_settings_file": "fetch_settings.json"
            }
        }

    def _merge_config(self, file_config: Dict[str, Any]) -> None:
        """Merge file configuration with current config."""
        for section, values in file_config.items():
            if section in self._config:
                if isinstance(values, dict):
                    self._config[section].update(values)
                else:
                    self._config[section] = values
            else:
                self._config[section] = values

    def _override_with_env(self) -> None:
        """Override configuration with environment variables."""
        # Backend settings
        if os.getenv("BACKEND_TRANSPORT"):
            self._config["backend"]["transport"] = os.getenv("BACKEND_TRANSPORT").lower()

        if os.getenv("BACKEND_BASE_URL"):
            self._config["backend"]["base_url"] = os.getenv("BACKEND_BASE_URL")

        if os.getenv("BACKEND_TIMEOUT"):
            self._config["backend"]["timeout"] = float(os.getenv("BACKEND_TIMEOUT"))

        if os.getenv("WORKER_COMMAND"):
            self._config["backend"]["worker_command"] = os.getenv("WORKER_COMMAND")

        if os.getenv("HTTPS_PROXY"):
            self._config["backend"]["proxy_url"] = os.getenv("HTTPS_PROXY")

        # Credentials
        if os.getenv("GLM_API_KEY"):
            self._config["credentials"]["glm_api_key"] = os.getenv("GLM_API_KEY")

        if os.getenv("CLAUDE_API_KEY"):
            self._config["credentials"]["claude_api_key"] = os.getenv("CLAUDE_API_KEY")

        # App settings
        if os.getenv("APP_HOST"):
            self._config["app"]["host"] = os.getenv("APP_HOST")

        if os.getenv("APP_PORT"):
            self._config["app"]["port"] = int(os.getenv("APP_PORT"))

        if os.getenv("APP_DEBUG"):
            self._config["app"]["debug"] = os.getenv("APP_DEBUG").lower() == "true"

        # Session settings
        if os.getenv("STALL_TIMEOUT_SECONDS"):
            self._config["session"]["stall_timeout_seconds"] = float(os.getenv("STALL_TIMEOUT_SECONDS"))

        # Paths
        if os.getenv("DATA_DIR"):
            self._config["paths"]["data_dir"] = os.getenv("DATA_DIR")

    def get_backend_config(self) -> BackendConfig:
        """Get backend configuration."""
        backend_config = self._config["backend"]
        return BackendConfig(
            transport=backend_config["transport"],
            base_url=backend_config["base_url"],
            timeout=float(backend_config["timeout"]),
            worker_command=backend_config["worker_command"],
            max_reconnects=int(backend_config["max_reconnects"]),
            reconnect_delay=float(backend_config["reconnect_delay"]),
            cancel_grace_seconds=float(backend_config["cancel_grace_seconds"]),
            proxy_url=backend_config.get("proxy_url")
        )

    def get_app_config(self) -> AppConfig:
        """Get application configuration."""
        app_config = self._config["app"]
        return AppConfig(
            host=app_config["host"],
            port=int(app_config["port"]),
            debug=bool(app_config["debug"])
        )

    def get_credentials_config(self) -> CredentialsConfig:
        """Get provider credentials."""
        credentials = self._config["credentials"]
        return CredentialsConfig(
            glm_api_key=credentials.get("glm_api_key") or "",
            claude_api_key=credentials.get("claude_api_key") or ""
        )

    def get_session_config(self) -> SessionConfig:
        """Get fetch session configuration."""
        session_config = self._config["session"]
        return SessionConfig(
            stall_timeout_seconds=float(session_config["stall_timeout_seconds"]),
            heartbeat_seconds=float(session_config["heartbeat_seconds"]),
            notifications_enabled=bool(session_config["notifications_enabled"]),
            default_categories=list(session_config["default_categories"]),
            default_provider=session_config["default_provider"]
        )

    def get_paths_config(self) -> PathsConfig:
        """Get paths configuration."""
        paths_config = self._config["paths"]
        return PathsConfig(
            data_dir=paths_config["data_dir"],
            fetch_settings_file=paths_config["fetch_settings_file"]
        )

    def get_config(self) -> Dict[str, Any]:
        """Get raw configuration dictionary."""
        return self._config.copy()

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    def save_config(self) -> None:
        """Save current configuration to file."""
        with open(self.config_file, 'w', encoding='utf-8') as f:
            json.dump(self._config, f, indent=2, ensure_ascii=False)


# Global configuration instance
config_manager = ConfigManager()


def get_backend_config() -> BackendConfig:
    """Get backend configuration."""
    return config_manager.get_backend_config()


def get_app_config() -> AppConfig:
    """Get application configuration."""
    return config_manager.get_app_config()


def get_credentials_config() -> CredentialsConfig:
    """Get provider credentials."""
    return config_manager.get_credentials_config()


def get_session_config() -> SessionConfig:
    """Get fetch session configuration."""
    return config_manager.get_session_config()


def get_paths_config() -> PathsConfig:
    """Get paths configuration."""
    return config_manager.get_paths_config()


def reload_config() -> None:
    """Reload configuration."""
    config_manager.reload()


def save_config() -> None:
    """Save configuration to file."""
    config_manager.save_config()
