"""
Server configuration for todoist-mcp.

Supports configuration via:
1. Environment variables (highest priority)
2. TOML config file (todoist-mcp.toml)
3. Default values (lowest priority)

Environment variables:
- TODOIST_API_TOKEN: Todoist API token, or ``file:///path/to/token`` to read it
  from a file (contents are trimmed)
- TODOIST_MCP_CONFIG_FILE: Path to TOML config file
- TODOIST_MCP_REST_BASE_URL: REST API base URL
- TODOIST_MCP_SYNC_URL: Sync API endpoint
- TODOIST_MCP_REQUEST_TIMEOUT: Seconds allowed for one HTTP request
- TODOIST_MCP_TOOL_TIMEOUT: Seconds allowed for one tool invocation
- TODOIST_MCP_BATCH_THRESHOLD: Bulk operations above this size use the Sync API
- TODOIST_MCP_RATE_LIMIT_MAX_REQUESTS: Requests allowed per window
- TODOIST_MCP_RATE_LIMIT_WINDOW_SECONDS: Window length in seconds
- TODOIST_MCP_LOG_LEVEL: Logging level (DEBUG, INFO, WARNING, ERROR)
- TODOIST_MCP_STRUCTURED_LOGGING: Emit JSON log lines (true/false)
- TODOIST_MCP_VERIFY_CONNECTION: Probe the API at startup (true/false)

Example todoist-mcp.toml:

    [todoist]
    api_token_file = "~/.config/todoist/token"

    [rate_limit]
    max_requests = 450
    window_seconds = 900

    [logging]
    level = "DEBUG"
"""

import logging
import os
from dataclasses import dataclass, field
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_package_version
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # Python < 3.11 fallback

from todoist_mcp.core.bulk import BATCH_THRESHOLD
from todoist_mcp.core.logging_config import configure_logging
from todoist_mcp.core.rate_limit import (
    DEFAULT_MAX_REQUESTS,
    DEFAULT_WINDOW_SECONDS,
    RateLimitConfig,
)
from todoist_mcp.core.resilience import MEDIUM_TIMEOUT
from todoist_mcp.core.rest_client import DEFAULT_REST_BASE_URL
from todoist_mcp.core.security import validate_api_token
from todoist_mcp.core.sync_client import DEFAULT_SYNC_URL
from todoist_mcp.core.transport import DEFAULT_REQUEST_TIMEOUT

logger = logging.getLogger(__name__)

TOKEN_FILE_PREFIX = "file://"
DEFAULT_CONFIG_FILES = ("todoist-mcp.toml", ".todoist-mcp.toml")


def _get_version() -> str:
    """Get package version from metadata."""
    try:
        return get_package_version("todoist-mcp")
    except PackageNotFoundError:
        return "0.3.0"  # Fallback for dev without install


_PACKAGE_VERSION = _get_version()


class ConfigError(ValueError):
    """Configuration is missing or invalid; fatal at startup."""


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


def _parse_number(name: str, value: Any, cast=float):
    try:
        parsed = cast(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be a number, got {value!r}") from exc
    if parsed <= 0:
        raise ConfigError(f"{name} must be positive, got {value!r}")
    return parsed


def read_token_file(path: str) -> str:
    """Read a token from ``path``, trimming surrounding whitespace.

    Raises:
        ConfigError: if the file cannot be read or is empty
    """
    token_path = Path(path).expanduser()
    try:
        token = token_path.read_text(encoding="utf-8").strip()
    except OSError as exc:
        raise ConfigError(f"failed to read token file {token_path}: {exc}") from exc
    if not token:
        raise ConfigError(f"token file {token_path} is empty")
    return token


@dataclass
class RateLimitSettings:
    """Shared request window for both Todoist APIs."""

    max_requests: int = DEFAULT_MAX_REQUESTS
    window_seconds: float = DEFAULT_WINDOW_SECONDS

    @classmethod
    def from_toml_dict(cls, data: Dict[str, Any]) -> "RateLimitSettings":
        settings = cls()
        if "max_requests" in data:
            settings.max_requests = _parse_number(
                "rate_limit.max_requests", data["max_requests"], int
            )
        if "window_seconds" in data:
            settings.window_seconds = _parse_number(
                "rate_limit.window_seconds", data["window_seconds"]
            )
        return settings

    def to_limiter_config(self) -> RateLimitConfig:
        return RateLimitConfig(
            max_requests=self.max_requests, window_seconds=self.window_seconds
        )


@dataclass
class ServerConfig:
    """Server configuration with support for env vars and TOML overrides."""

    # Credential (validated by validate())
    api_token: str = ""

    # Backend configuration
    rest_base_url: str = DEFAULT_REST_BASE_URL
    sync_url: str = DEFAULT_SYNC_URL
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    max_idle_connections: int = 10

    # Dispatch policy
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    batch_threshold: int = BATCH_THRESHOLD
    tool_timeout: float = MEDIUM_TIMEOUT

    # Logging configuration
    log_level: str = "INFO"
    structured_logging: bool = False

    # Server configuration
    server_name: str = "todoist-mcp"
    server_version: str = field(default_factory=lambda: _PACKAGE_VERSION)
    verify_connection: bool = True

    @classmethod
    def from_env(cls, config_file: Optional[str] = None) -> "ServerConfig":
        """
        Create configuration from environment variables and optional TOML file.

        Priority (highest to lowest):
        1. Environment variables
        2. TOML config file
        3. Default values

        The token is resolved but not validated; call ``validate()`` before use.
        """
        config = cls()

        toml_path = config_file or os.environ.get("TODOIST_MCP_CONFIG_FILE")
        if toml_path:
            config._load_toml(Path(toml_path))
        else:
            for default_path in DEFAULT_CONFIG_FILES:
                if Path(default_path).exists():
                    config._load_toml(Path(default_path))
                    break

        config._load_env()
        return config

    def _load_toml(self, path: Path) -> None:
        """Load configuration from TOML file."""
        if not path.exists():
            logger.warning(f"Config file not found: {path}")
            return

        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"Error loading config file {path}: {e}") from e

        # Backend settings
        if "todoist" in data:
            td = data["todoist"]
            if "api_token_file" in td:
                self.api_token = read_token_file(td["api_token_file"])
            if "api_token" in td:
                self.api_token = self._resolve_token(str(td["api_token"]))
            if "rest_base_url" in td:
                self.rest_base_url = str(td["rest_base_url"])
            if "sync_url" in td:
                self.sync_url = str(td["sync_url"])
            if "request_timeout" in td:
                self.request_timeout = _parse_number(
                    "todoist.request_timeout", td["request_timeout"]
                )
            if "max_idle_connections" in td:
                self.max_idle_connections = _parse_number(
                    "todoist.max_idle_connections", td["max_idle_connections"], int
                )

        if "rate_limit" in data:
            self.rate_limit = RateLimitSettings.from_toml_dict(data["rate_limit"])

        if "bulk" in data and "batch_threshold" in data["bulk"]:
            self.batch_threshold = _parse_number(
                "bulk.batch_threshold", data["bulk"]["batch_threshold"], int
            )

        # Server settings
        if "server" in data:
            srv = data["server"]
            if "name" in srv:
                self.server_name = srv["name"]
            if "tool_timeout" in srv:
                self.tool_timeout = _parse_number("server.tool_timeout", srv["tool_timeout"])
            if "verify_connection" in srv:
                self.verify_connection = _parse_bool(srv["verify_connection"])

        # Logging settings
        if "logging" in data:
            log = data["logging"]
            if "level" in log:
                self.log_level = str(log["level"]).upper()
            if "structured" in log:
                self.structured_logging = _parse_bool(log["structured"])

    def _load_env(self) -> None:
        """Load configuration from environment variables."""
        if token := os.environ.get("TODOIST_API_TOKEN"):
            self.api_token = self._resolve_token(token)

        if rest_url := os.environ.get("TODOIST_MCP_REST_BASE_URL"):
            self.rest_base_url = rest_url
        if sync_url := os.environ.get("TODOIST_MCP_SYNC_URL"):
            self.sync_url = sync_url

        if request_timeout := os.environ.get("TODOIST_MCP_REQUEST_TIMEOUT"):
            self.request_timeout = _parse_number(
                "TODOIST_MCP_REQUEST_TIMEOUT", request_timeout
            )
        if tool_timeout := os.environ.get("TODOIST_MCP_TOOL_TIMEOUT"):
            self.tool_timeout = _parse_number("TODOIST_MCP_TOOL_TIMEOUT", tool_timeout)
        if threshold := os.environ.get("TODOIST_MCP_BATCH_THRESHOLD"):
            self.batch_threshold = _parse_number(
                "TODOIST_MCP_BATCH_THRESHOLD", threshold, int
            )

        if max_requests := os.environ.get("TODOIST_MCP_RATE_LIMIT_MAX_REQUESTS"):
            self.rate_limit.max_requests = _parse_number(
                "TODOIST_MCP_RATE_LIMIT_MAX_REQUESTS", max_requests, int
            )
        if window := os.environ.get("TODOIST_MCP_RATE_LIMIT_WINDOW_SECONDS"):
            self.rate_limit.window_seconds = _parse_number(
                "TODOIST_MCP_RATE_LIMIT_WINDOW_SECONDS", window
            )

        # Log level
        if level := os.environ.get("TODOIST_MCP_LOG_LEVEL"):
            self.log_level = level.upper()
        if structured := os.environ.get("TODOIST_MCP_STRUCTURED_LOGGING"):
            self.structured_logging = _parse_bool(structured)

        if verify := os.environ.get("TODOIST_MCP_VERIFY_CONNECTION"):
            self.verify_connection = _parse_bool(verify)

    @staticmethod
    def _resolve_token(value: str) -> str:
        if value.startswith(TOKEN_FILE_PREFIX):
            return read_token_file(value[len(TOKEN_FILE_PREFIX):])
        return value

    def validate(self) -> None:
        """Check the credential and settings before anything talks to Todoist.

        Raises:
            ConfigError: describing the first problem found
        """
        try:
            validate_api_token(self.api_token)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

        if self.batch_threshold < 1:
            raise ConfigError("batch_threshold must be at least 1")

    def redacted(self) -> Dict[str, Any]:
        """Settings safe to print or log (the token is masked)."""
        masked = f"...{self.api_token[-4:]}" if len(self.api_token) >= 8 else "(unset)"
        return {
            "api_token": masked,
            "rest_base_url": self.rest_base_url,
            "sync_url": self.sync_url,
            "request_timeout": self.request_timeout,
            "tool_timeout": self.tool_timeout,
            "batch_threshold": self.batch_threshold,
            "rate_limit": {
                "max_requests": self.rate_limit.max_requests,
                "window_seconds": self.rate_limit.window_seconds,
            },
            "log_level": self.log_level,
            "server_name": self.server_name,
            "server_version": self.server_version,
        }

    def setup_logging(self) -> None:
        """Configure logging based on settings (always to stderr)."""
        configure_logging(
            level=getattr(logging, self.log_level, logging.INFO),
            format="structured" if self.structured_logging else "human",
        )


# Global configuration instance
_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get the global configuration instance."""
    global _config
    if _config is None:
        _config = ServerConfig.from_env()
    return _config


def set_config(config: ServerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
