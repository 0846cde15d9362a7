"""Configuration system for docsynth-realtime.

This module implements the configuration schema using Pydantic for
validation, with support for environment variable resolution and fail-fast
validation with actionable error messages.
"""

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Annotated, Final, Literal
from urllib.parse import urlsplit, urlunsplit

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

# Matches ${VARIABLE_NAME} references
ENV_VAR_PATTERN: Final[re.Pattern[str]] = re.compile(r"\$\{([A-Z0-9_]+)\}")

DEFAULT_STORAGE_PATH: Final[Path] = Path("~/.docsynth/storage.json")


class ReconnectConfig(BaseModel):
    """Reconnection policy applied after an unexpected close.

    The default reproduces the dashboard behaviour: a fixed five second
    delay, no jitter, no attempt ceiling. ``exponential`` switches to
    exponential backoff with jitter capped at ``max_backoff_seconds``.
    """

    strategy: Annotated[
        Literal["fixed", "exponential"],
        Field(description="Delay strategy between reconnect attempts"),
    ] = "fixed"
    delay_seconds: Annotated[
        float,
        Field(ge=0.0, description="Fixed delay, or base delay for exponential backoff, in seconds"),
    ] = 5.0
    max_backoff_seconds: Annotated[
        float,
        Field(gt=0.0, description="Upper bound for exponential backoff delays in seconds"),
    ] = 60.0
    jitter_percent: Annotated[
        float,
        Field(ge=0.0, le=100.0, description="Random jitter applied to exponential delays (percent)"),
    ] = 20.0
    max_attempts: Annotated[
        int | None,
        Field(ge=1, description="Maximum consecutive reconnect attempts (null = unlimited)"),
    ] = None


class ConnectionConfig(BaseModel):
    """Configuration for the backend REST and WebSocket endpoints."""

    api_url: Annotated[str, Field(description="Backend base URL")] = "http://localhost:3001"
    ws_url: Annotated[
        str | None,
        Field(description="WebSocket endpoint; derived from api_url when omitted"),
    ] = None
    token: Annotated[
        str | None,
        Field(description="Bearer token; falls back to the token saved in client storage"),
    ] = None
    auto_reconnect: Annotated[bool, Field(description="Reconnect after unexpected closes")] = True
    open_timeout_seconds: Annotated[
        float,
        Field(gt=0.0, description="Timeout for opening the WebSocket in seconds"),
    ] = 10.0
    request_timeout_seconds: Annotated[
        float,
        Field(gt=0.0, description="Timeout for REST requests in seconds"),
    ] = 10.0
    heartbeat_seconds: Annotated[
        float | None,
        Field(gt=0.0, description="WebSocket ping interval in seconds (null disables)"),
    ] = 30.0
    reconnect: Annotated[ReconnectConfig, Field(description="Reconnect policy")] = ReconnectConfig()

    @field_validator("api_url", mode="after")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate the API URL uses http or https.

        Raises:
            ValueError: If the scheme is not http/https
        """
        scheme = urlsplit(v).scheme
        if scheme not in {"http", "https"}:
            msg = f"api_url must use http or https, got: {v!r}"
            raise ValueError(msg)
        return v.rstrip("/")

    @field_validator("ws_url", mode="after")
    @classmethod
    def validate_ws_url(cls, v: str | None) -> str | None:
        """Validate the WebSocket URL uses ws or wss.

        Raises:
            ValueError: If the scheme is not ws/wss
        """
        if v is None:
            return v
        if urlsplit(v).scheme not in {"ws", "wss"}:
            msg = f"ws_url must use ws or wss, got: {v!r}"
            raise ValueError(msg)
        return v

    def resolved_ws_url(self) -> str:
        """Return the WebSocket endpoint, deriving it from api_url if unset.

        ``http://host`` becomes ``ws://host/ws`` and ``https://host`` becomes
        ``wss://host/ws``.
        """
        if self.ws_url is not None:
            return self.ws_url
        parts = urlsplit(self.api_url)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, parts.path.rstrip("/") + "/ws", "", ""))


class NotificationsConfig(BaseModel):
    """Configuration for the notification store."""

    max_notifications: Annotated[
        int,
        Field(ge=1, le=1000, description="Maximum number of stored notifications"),
    ] = 50
    hydrate_on_start: Annotated[
        bool,
        Field(description="Fetch notification history from the API on start"),
    ] = True


class ActivityConfig(BaseModel):
    """Configuration for the activity feed."""

    max_events: Annotated[
        int,
        Field(ge=1, le=200, description="Maximum number of activity events kept"),
    ] = 8


class StorageConfig(BaseModel):
    """Configuration for client-side persistence."""

    model_config = ConfigDict(validate_default=True)

    path: Annotated[Path, Field(description="JSON file holding persisted client state")] = DEFAULT_STORAGE_PATH

    @field_validator("path", mode="after")
    @classmethod
    def expand_user(cls, v: Path) -> Path:
        """Expand ``~`` in the storage path."""
        return v.expanduser()


class ApplicationConfig(BaseModel):
    """Configuration for application-level settings."""

    log_level: Annotated[
        str,
        Field(
            description="Logging level",
            pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
        ),
    ] = "INFO"
    log_file: Annotated[Path | None, Field(description="Optional log file path")] = None


class MainConfig(BaseModel):
    """Main application configuration schema.

    Top-level configuration container aggregating all configuration sections:
    - connection: REST/WebSocket endpoints, token and reconnect policy
    - notifications: Notification store behaviour
    - activity: Activity feed behaviour
    - storage: Client-side persistence
    - application: Logging settings
    """

    connection: Annotated[ConnectionConfig, Field(description="Backend connection")] = ConnectionConfig()
    notifications: Annotated[NotificationsConfig, Field(description="Notification store")] = NotificationsConfig()
    activity: Annotated[ActivityConfig, Field(description="Activity feed")] = ActivityConfig()
    storage: Annotated[StorageConfig, Field(description="Client storage")] = StorageConfig()
    application: Annotated[ApplicationConfig, Field(description="Application settings")] = ApplicationConfig()

    @model_validator(mode="after")
    def validate_backoff_bounds(self) -> "MainConfig":
        """Reject a base delay larger than the exponential backoff ceiling."""
        reconnect = self.connection.reconnect
        if reconnect.strategy == "exponential" and reconnect.delay_seconds > reconnect.max_backoff_seconds:
            msg = (
                f"connection.reconnect.delay_seconds ({reconnect.delay_seconds}) must not exceed "
                f"max_backoff_seconds ({reconnect.max_backoff_seconds})"
            )
            raise ValueError(msg)
        return self


class EnvironmentVariableError(Exception):
    """Exception raised when a referenced environment variable is not set."""


class ConfigurationError(Exception):
    """Exception raised when configuration loading or validation fails."""


def resolve_env_var(value: str) -> str:
    """Resolve ``${VARIABLE_NAME}`` references in a string value.

    Args:
        value: String potentially containing environment variable references

    Returns:
        String with environment variables resolved

    Raises:
        EnvironmentVariableError: If a referenced environment variable is missing

    Examples:
        >>> os.environ["DOCSYNTH_TOKEN"] = "abc"
        >>> resolve_env_var("${DOCSYNTH_TOKEN}")
        'abc'
    """

    def replace_match(match: re.Match[str]) -> str:
        var_name = match.group(1)
        env_value = os.environ.get(var_name)
        if env_value is None:
            msg = (
                f"Required environment variable '{var_name}' is not set. "
                f"Please set this variable before starting the application."
            )
            raise EnvironmentVariableError(msg)
        return env_value

    return ENV_VAR_PATTERN.sub(replace_match, value)


def resolve_env_vars_in_dict(data: Mapping[str, object]) -> dict[str, object]:
    """Recursively resolve environment variables in a dictionary.

    Traverses nested dictionaries and lists, resolving references in string
    values. Non-string values are preserved as-is.

    Args:
        data: Dictionary potentially containing environment variable references

    Returns:
        New dictionary with environment variables resolved

    Raises:
        EnvironmentVariableError: If a referenced environment variable is missing
    """
    return {key: _resolve_node(value) for key, value in data.items()}


def _resolve_node(value: object) -> object:
    if isinstance(value, str):
        return resolve_env_var(value)
    if isinstance(value, dict):
        # YAML data is untyped at load time; validated by Pydantic after resolution
        return resolve_env_vars_in_dict(value)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    if isinstance(value, list):
        return [_resolve_node(item) for item in value]  # pyright: ignore[reportUnknownVariableType]  # YAML boundary
    return value


def format_validation_error(error: ValidationError, *, config_path: Path) -> str:
    """Render a pydantic ValidationError as field-level diagnostics.

    Args:
        error: The validation error
        config_path: File the configuration was loaded from

    Returns:
        Multi-line, human-readable message
    """
    error_lines = ["Configuration validation failed:", ""]
    for detail in error.errors():
        field_path = " → ".join(str(loc) for loc in detail["loc"]) or "(root)"
        error_lines.append(f"  Field: {field_path}")
        error_lines.append(f"  Error: {detail['msg']}")
        error_lines.append(f"  Type: {detail['type']}")
        error_lines.append("")
    error_lines.append(f"Configuration file: {config_path}")
    error_lines.append("Please fix the above errors and try again.")
    return "\n".join(error_lines)


def load_main_config(config_path: Path) -> MainConfig:
    """Load and validate the application configuration from a YAML file.

    Args:
        config_path: Path to the configuration YAML file

    Returns:
        Validated MainConfig instance

    Raises:
        ConfigurationError: If the file cannot be loaded, an environment
            variable is missing, or validation fails

    Examples:
        >>> config = load_main_config(Path("config/docsynth.yaml"))
        >>> config.connection.resolved_ws_url()
        'wss://api.example.com/ws'
    """
    if not config_path.exists():
        msg = (
            f"Configuration file not found: {config_path}\n"
            f"Please create a configuration file at this location."
        )
        raise ConfigurationError(msg)

    try:
        with config_path.open("r", encoding="utf-8") as f:
            raw_data: object = yaml.safe_load(f)  # pyright: ignore[reportAny]  # YAML boundary
    except yaml.YAMLError as e:
        msg = (
            f"Failed to parse YAML configuration file: {config_path}\n"
            f"YAML parsing error: {e}\n"
            f"Please check the file for syntax errors."
        )
        raise ConfigurationError(msg) from e
    except OSError as e:
        msg = f"Failed to read configuration file: {config_path}\nError: {e}\nPlease check file permissions."
        raise ConfigurationError(msg) from e

    # An empty file means "all defaults"
    if raw_data is None:
        raw_data = {}

    if not isinstance(raw_data, dict):
        msg = (
            f"Invalid configuration file format: {config_path}\n"
            f"Expected YAML dictionary at root level, got: {type(raw_data).__name__}"
        )
        raise ConfigurationError(msg)

    try:
        resolved_data = resolve_env_vars_in_dict(raw_data)  # pyright: ignore[reportUnknownArgumentType]  # YAML boundary
    except EnvironmentVariableError as e:
        msg = (
            f"Environment variable resolution failed in: {config_path}\n"
            f"{e}"
        )
        raise ConfigurationError(msg) from e

    try:
        return MainConfig.model_validate(resolved_data)
    except ValidationError as e:
        raise ConfigurationError(format_validation_error(e, config_path=config_path)) from e
