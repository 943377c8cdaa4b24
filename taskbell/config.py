"""
Client configuration module.

Manages the notification client's configuration: backend URL, the
logged-in user's session, Reverb WebSocket settings and local storage
paths. Configuration can be loaded from a YAML file or environment
variables.
"""

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from platformdirs import user_config_dir, user_data_dir


# ============================================================================
# Constants
# ============================================================================

APP_NAME = "taskbell"
APP_AUTHOR = "TaskBell"
CONFIG_FILENAME = "client-config.yaml"
HISTORY_FILENAME = "notification_history.json"
PUSH_STATE_DIRNAME = "push"

# Environment variable names
ENV_SERVER_URL = "TASKBELL_SERVER_URL"
ENV_API_TOKEN = "TASKBELL_API_TOKEN"
ENV_USER_ID = "TASKBELL_USER_ID"
ENV_REVERB_APP_KEY = "TASKBELL_REVERB_APP_KEY"
ENV_REVERB_HOST = "TASKBELL_REVERB_HOST"
ENV_REVERB_PORT = "TASKBELL_REVERB_PORT"
ENV_REVERB_SCHEME = "TASKBELL_REVERB_SCHEME"
ENV_PUSH_SERVICE_URL = "TASKBELL_PUSH_SERVICE_URL"
ENV_LOG_LEVEL = "TASKBELL_LOG_LEVEL"
ENV_LANGUAGE = "TASKBELL_LANGUAGE"
ENV_DATA_DIR = "TASKBELL_DATA_DIR"
ENV_CONFIG_PATH = "TASKBELL_CONFIG_PATH"

# Default values
DEFAULT_SERVER_URL = "http://localhost:8000"
DEFAULT_REVERB_APP_KEY = "local-key"
DEFAULT_REVERB_HOST = "localhost"
DEFAULT_REVERB_PORT = 8080
DEFAULT_REVERB_SCHEME = "http"
DEFAULT_REQUEST_TIMEOUT = 30  # seconds
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_LANGUAGE = "en"

VALID_SCHEMES = frozenset(["http", "https"])
VALID_LANGUAGES = frozenset(["en", "id"])

# URL validation regex
URL_PATTERN = re.compile(
    r"^https?://"  # http:// or https://
    r"(?:(?:[A-Z0-9](?:[A-Z0-9-]{0,61}[A-Z0-9])?\.)+[A-Z]{2,6}\.?|"  # domain
    r"localhost|"  # localhost
    r"\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3})"  # ...or ip
    r"(?::\d+)?"  # optional port
    r"(?:/?|[/?]\S+)$",
    re.IGNORECASE,
)


# ============================================================================
# Exceptions
# ============================================================================


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration validation fails."""

    pass


# ============================================================================
# Helper Functions
# ============================================================================


def get_default_config_dir() -> Path:
    """
    Get the default configuration directory for the current platform.

    Returns:
        Path to the platform-appropriate config directory
    """
    return Path(user_config_dir(APP_NAME, APP_AUTHOR))


def get_default_data_dir() -> Path:
    """
    Get the default data directory for the current platform.

    Returns:
        Path to the platform-appropriate data directory
    """
    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


def _parse_int(value, default: Optional[int]) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ============================================================================
# ClientConfig Class
# ============================================================================


class ClientConfig:
    """
    Notification client configuration manager.

    Configuration sources (in priority order):
    1. Environment variables
    2. Configuration file
    3. Default values

    Attributes:
        server_url: Backend base URL (REST API lives under /api)
        api_token: Bearer token of the logged-in user
        user_id: Authenticated user's id
        reverb_app_key: Reverb application key
        reverb_host: Reverb WebSocket host
        reverb_port: Reverb WebSocket port
        reverb_scheme: "http" (ws://) or "https" (wss://)
        push_service_url: Base URL handed out as push endpoint by the
            desktop push adapter (empty disables push support)
        data_dir: Directory holding the notification history and push state
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        language: Language of relative notification times ("en" or "id")
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        config_dir: Optional[Path] = None,
    ):
        """
        Initialize client configuration.

        Args:
            config_path: Explicit path to config file (takes precedence)
            config_dir: Directory containing config file
        """
        if config_path:
            self._config_path = Path(config_path)
            self._config_dir = self._config_path.parent
        elif config_dir:
            self._config_dir = Path(config_dir)
            self._config_path = self._config_dir / CONFIG_FILENAME
        else:
            env_path = os.environ.get(ENV_CONFIG_PATH)
            if env_path:
                self._config_path = Path(env_path)
                self._config_dir = self._config_path.parent
            else:
                self._config_dir = get_default_config_dir()
                self._config_path = self._config_dir / CONFIG_FILENAME

        self._server_url: str = DEFAULT_SERVER_URL
        self._api_token: str = ""
        self._user_id: Optional[int] = None
        self._reverb_app_key: str = DEFAULT_REVERB_APP_KEY
        self._reverb_host: str = DEFAULT_REVERB_HOST
        self._reverb_port: int = DEFAULT_REVERB_PORT
        self._reverb_scheme: str = DEFAULT_REVERB_SCHEME
        self._push_service_url: str = ""
        self._request_timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT
        self._data_dir: str = ""
        self._log_level: str = DEFAULT_LOG_LEVEL
        self._language: str = DEFAULT_LANGUAGE

        self._load()

    @property
    def config_path(self) -> Path:
        """Get the configuration file path."""
        return self._config_path

    @property
    def config_dir(self) -> Path:
        """Get the configuration directory."""
        return self._config_dir

    # -------------------------------------------------------------------------
    # Server and Session
    # -------------------------------------------------------------------------

    @property
    def server_url(self) -> str:
        """Get the backend base URL."""
        return os.environ.get(ENV_SERVER_URL, self._server_url)

    @server_url.setter
    def server_url(self, value: str) -> None:
        self._server_url = value

    @property
    def api_token(self) -> str:
        """Get the bearer token of the logged-in user."""
        return os.environ.get(ENV_API_TOKEN, self._api_token)

    @api_token.setter
    def api_token(self, value: str) -> None:
        self._api_token = value

    @property
    def user_id(self) -> Optional[int]:
        """Get the authenticated user's id."""
        env_value = os.environ.get(ENV_USER_ID)
        if env_value:
            return _parse_int(env_value, None)
        return self._user_id

    @user_id.setter
    def user_id(self, value: Optional[int]) -> None:
        self._user_id = value

    @property
    def request_timeout_seconds(self) -> int:
        return self._request_timeout_seconds

    @request_timeout_seconds.setter
    def request_timeout_seconds(self, value: int) -> None:
        self._request_timeout_seconds = value

    # -------------------------------------------------------------------------
    # Realtime (Reverb)
    # -------------------------------------------------------------------------

    @property
    def reverb_app_key(self) -> str:
        return os.environ.get(ENV_REVERB_APP_KEY, self._reverb_app_key)

    @reverb_app_key.setter
    def reverb_app_key(self, value: str) -> None:
        self._reverb_app_key = value

    @property
    def reverb_host(self) -> str:
        return os.environ.get(ENV_REVERB_HOST, self._reverb_host)

    @reverb_host.setter
    def reverb_host(self, value: str) -> None:
        self._reverb_host = value

    @property
    def reverb_port(self) -> int:
        return _parse_int(os.environ.get(ENV_REVERB_PORT), self._reverb_port)

    @reverb_port.setter
    def reverb_port(self, value: int) -> None:
        self._reverb_port = value

    @property
    def reverb_scheme(self) -> str:
        return os.environ.get(ENV_REVERB_SCHEME, self._reverb_scheme).lower()

    @reverb_scheme.setter
    def reverb_scheme(self, value: str) -> None:
        self._reverb_scheme = value

    # -------------------------------------------------------------------------
    # Local State
    # -------------------------------------------------------------------------

    @property
    def push_service_url(self) -> str:
        return os.environ.get(ENV_PUSH_SERVICE_URL, self._push_service_url)

    @push_service_url.setter
    def push_service_url(self, value: str) -> None:
        self._push_service_url = value

    @property
    def data_dir(self) -> Path:
        """Get the data directory (history file and push state)."""
        configured = os.environ.get(ENV_DATA_DIR, self._data_dir)
        if configured:
            return Path(configured).expanduser()
        return get_default_data_dir()

    @data_dir.setter
    def data_dir(self, value: str) -> None:
        self._data_dir = str(value)

    @property
    def log_level(self) -> str:
        """Get the log level."""
        return os.environ.get(ENV_LOG_LEVEL, self._log_level)

    @log_level.setter
    def log_level(self, value: str) -> None:
        self._log_level = value

    @property
    def language(self) -> str:
        """Get the display language for notification times."""
        return os.environ.get(ENV_LANGUAGE, self._language)

    @language.setter
    def language(self, value: str) -> None:
        self._language = value

    # -------------------------------------------------------------------------
    # Computed Properties
    # -------------------------------------------------------------------------

    @property
    def is_authenticated(self) -> bool:
        """Check if a user session (token and user id) is present."""
        return bool(self.api_token) and self.user_id is not None

    @property
    def root_url(self) -> str:
        """Backend base URL without a trailing /api suffix."""
        url = self.server_url.rstrip("/")
        return re.sub(r"/api$", "", url)

    @property
    def api_base_url(self) -> str:
        """Base URL of the REST API."""
        return f"{self.root_url}/api"

    @property
    def realtime_url(self) -> str:
        """Reverb WebSocket URL for the configured application key."""
        ws_scheme = "wss" if self.reverb_scheme == "https" else "ws"
        return f"{ws_scheme}://{self.reverb_host}:{self.reverb_port}/app/{self.reverb_app_key}"

    @property
    def history_path(self) -> Path:
        """Path of the persisted notification history."""
        return self.data_dir / HISTORY_FILENAME

    @property
    def push_state_dir(self) -> Path:
        """Directory holding the local push subscription and permission."""
        return self.data_dir / PUSH_STATE_DIRNAME

    # -------------------------------------------------------------------------
    # Configuration Management
    # -------------------------------------------------------------------------

    def _load(self) -> None:
        """Load configuration from file."""
        if not self._config_path.exists():
            return

        try:
            with open(self._config_path) as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Failed to parse config file: {e}")

        self._server_url = data.get("server_url", DEFAULT_SERVER_URL)
        self._api_token = data.get("api_token", "")
        self._user_id = data.get("user_id")
        self._reverb_app_key = data.get("reverb_app_key", DEFAULT_REVERB_APP_KEY)
        self._reverb_host = data.get("reverb_host", DEFAULT_REVERB_HOST)
        self._reverb_port = _parse_int(data.get("reverb_port"), DEFAULT_REVERB_PORT)
        self._reverb_scheme = data.get("reverb_scheme", DEFAULT_REVERB_SCHEME)
        self._push_service_url = data.get("push_service_url", "")
        self._request_timeout_seconds = _parse_int(
            data.get("request_timeout_seconds"), DEFAULT_REQUEST_TIMEOUT
        )
        self._data_dir = data.get("data_dir", "")
        self._log_level = data.get("log_level", DEFAULT_LOG_LEVEL)
        self._language = data.get("language", DEFAULT_LANGUAGE)

    def save(self) -> None:
        """Save configuration to file."""
        self._config_dir.mkdir(parents=True, exist_ok=True)

        data = {
            "server_url": self._server_url,
            "api_token": self._api_token,
            "user_id": self._user_id,
            "reverb_app_key": self._reverb_app_key,
            "reverb_host": self._reverb_host,
            "reverb_port": self._reverb_port,
            "reverb_scheme": self._reverb_scheme,
            "push_service_url": self._push_service_url,
            "request_timeout_seconds": self._request_timeout_seconds,
            "data_dir": self._data_dir,
            "log_level": self._log_level,
            "language": self._language,
        }

        with open(self._config_path, "w") as f:
            yaml.dump(data, f, default_flow_style=False)

        # The file holds the session token
        try:
            os.chmod(self._config_path, 0o600)
        except OSError:
            pass

    def validate(self) -> None:
        """
        Validate the current configuration.

        Raises:
            ConfigValidationError: If configuration is invalid
        """
        if not self.server_url or not URL_PATTERN.match(self.server_url):
            raise ConfigValidationError(
                f"Invalid server_url format: {self.server_url}"
            )

        if self.push_service_url and not URL_PATTERN.match(self.push_service_url):
            raise ConfigValidationError(
                f"Invalid push_service_url format: {self.push_service_url}"
            )

        if self.reverb_scheme not in VALID_SCHEMES:
            raise ConfigValidationError(
                f"reverb_scheme must be one of {sorted(VALID_SCHEMES)}, got: {self.reverb_scheme}"
            )

        if not 0 < self.reverb_port < 65536:
            raise ConfigValidationError(
                f"reverb_port must be between 1 and 65535, got: {self.reverb_port}"
            )

        if self.request_timeout_seconds <= 0:
            raise ConfigValidationError(
                f"request_timeout_seconds must be positive, got: {self.request_timeout_seconds}"
            )

        if self.language not in VALID_LANGUAGES:
            raise ConfigValidationError(
                f"language must be one of {sorted(VALID_LANGUAGES)}, got: {self.language}"
            )

    def update_session(self, user_id: int, api_token: str) -> None:
        """
        Store the logged-in user's session.

        Automatically saves the configuration after updating.

        Args:
            user_id: Authenticated user's id
            api_token: Bearer token issued at login
        """
        self._user_id = user_id
        self._api_token = api_token
        self.save()

    def clear_session(self) -> None:
        """
        Clear session information.

        Does not automatically save - call save() explicitly.
        """
        self._user_id = None
        self._api_token = ""
