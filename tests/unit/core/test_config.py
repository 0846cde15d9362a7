"""Unit tests for configuration models and loading."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from docsynth_realtime.core.config import (
    ConfigurationError,
    ConnectionConfig,
    EnvironmentVariableError,
    MainConfig,
    ReconnectConfig,
    StorageConfig,
    load_main_config,
    resolve_env_var,
    resolve_env_vars_in_dict,
)


@pytest.mark.unit
class TestConnectionConfig:
    """Test ConnectionConfig validation and URL derivation."""

    def test_defaults(self) -> None:
        """Test that defaults point at a local backend with fixed reconnects."""
        config = ConnectionConfig()

        assert config.api_url == "http://localhost:3001"
        assert config.auto_reconnect is True
        assert config.reconnect.strategy == "fixed"
        assert config.reconnect.delay_seconds == 5.0
        assert config.reconnect.max_attempts is None

    def test_api_url_trailing_slash_stripped(self) -> None:
        """Test that trailing slashes are removed from api_url."""
        config = ConnectionConfig(api_url="https://api.example.com/")

        assert config.api_url == "https://api.example.com"

    def test_api_url_rejects_non_http_scheme(self) -> None:
        """Test that api_url must use http or https."""
        with pytest.raises(ValidationError, match="api_url must use http or https"):
            _ = ConnectionConfig(api_url="ftp://api.example.com")

    def test_ws_url_rejects_http_scheme(self) -> None:
        """Test that ws_url must use ws or wss."""
        with pytest.raises(ValidationError, match="ws_url must use ws or wss"):
            _ = ConnectionConfig(ws_url="https://api.example.com/ws")

    @pytest.mark.parametrize(
        ("api_url", "expected"),
        [
            ("http://localhost:3001", "ws://localhost:3001/ws"),
            ("https://api.example.com", "wss://api.example.com/ws"),
            ("https://example.com/backend/", "wss://example.com/backend/ws"),
        ],
    )
    def test_resolved_ws_url_derived_from_api_url(self, api_url: str, expected: str) -> None:
        """Test that the WebSocket endpoint is derived from the API URL."""
        assert ConnectionConfig(api_url=api_url).resolved_ws_url() == expected

    def test_explicit_ws_url_wins(self) -> None:
        """Test that an explicit ws_url is used as-is."""
        config = ConnectionConfig(api_url="https://api.example.com", ws_url="wss://push.example.com/socket")

        assert config.resolved_ws_url() == "wss://push.example.com/socket"


@pytest.mark.unit
class TestMainConfig:
    """Test cross-field validation on MainConfig."""

    def test_defaults_are_valid(self) -> None:
        """Test that an empty configuration validates."""
        config = MainConfig()

        assert config.notifications.max_notifications == 50
        assert config.activity.max_events == 8
        assert config.application.log_level == "INFO"

    def test_exponential_delay_above_ceiling_rejected(self) -> None:
        """Test that an exponential base delay above the ceiling is rejected."""
        with pytest.raises(ValidationError, match="must not exceed"):
            _ = MainConfig.model_validate(
                {
                    "connection": {
                        "reconnect": {"strategy": "exponential", "delay_seconds": 90, "max_backoff_seconds": 60}
                    }
                }
            )

    def test_fixed_delay_above_ceiling_allowed(self) -> None:
        """Test that the ceiling only applies to exponential backoff."""
        config = MainConfig.model_validate(
            {"connection": {"reconnect": {"strategy": "fixed", "delay_seconds": 90, "max_backoff_seconds": 60}}}
        )

        assert config.connection.reconnect.delay_seconds == 90

    def test_invalid_log_level_rejected(self) -> None:
        """Test that unknown log levels fail validation."""
        with pytest.raises(ValidationError):
            _ = MainConfig.model_validate({"application": {"log_level": "VERBOSE"}})

    def test_reconnect_attempts_must_be_positive(self) -> None:
        """Test that max_attempts below 1 is rejected."""
        with pytest.raises(ValidationError):
            _ = ReconnectConfig(max_attempts=0)

    def test_storage_path_expands_user(self) -> None:
        """Test that ~ in the storage path is expanded."""
        config = StorageConfig(path=Path("~/state.json"))

        assert "~" not in str(config.path)


@pytest.mark.unit
class TestEnvironmentResolution:
    """Test ${VAR} resolution."""

    def test_resolve_env_var(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a referenced variable is substituted."""
        monkeypatch.setenv("DOCSYNTH_TOKEN", "abc123")

        assert resolve_env_var("Bearer ${DOCSYNTH_TOKEN}") == "Bearer abc123"

    def test_missing_env_var_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a missing variable raises EnvironmentVariableError."""
        monkeypatch.delenv("DOCSYNTH_MISSING", raising=False)

        with pytest.raises(EnvironmentVariableError, match="DOCSYNTH_MISSING"):
            _ = resolve_env_var("${DOCSYNTH_MISSING}")

    def test_resolve_nested_structures(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that nested dicts and lists are resolved and other values kept."""
        monkeypatch.setenv("DOCSYNTH_HOST", "api.example.com")

        resolved = resolve_env_vars_in_dict(
            {"connection": {"api_url": "https://${DOCSYNTH_HOST}", "hosts": ["${DOCSYNTH_HOST}", 3]}, "n": 5}
        )

        assert resolved == {
            "connection": {"api_url": "https://api.example.com", "hosts": ["api.example.com", 3]},
            "n": 5,
        }


@pytest.mark.unit
class TestLoadMainConfig:
    """Test loading configuration files."""

    def test_load_valid_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that a valid YAML file loads with env vars resolved."""
        monkeypatch.setenv("DOCSYNTH_TOKEN", "tok")
        config_file = tmp_path / "docsynth.yaml"
        _ = config_file.write_text(
            "connection:\n"
            "  api_url: https://api.example.com\n"
            "  token: ${DOCSYNTH_TOKEN}\n"
            "notifications:\n"
            "  max_notifications: 20\n",
            encoding="utf-8",
        )

        config = load_main_config(config_file)

        assert config.connection.token == "tok"
        assert config.connection.resolved_ws_url() == "wss://api.example.com/ws"
        assert config.notifications.max_notifications == 20

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        """Test that an empty file yields the default configuration."""
        config_file = tmp_path / "docsynth.yaml"
        _ = config_file.write_text("", encoding="utf-8")

        assert load_main_config(config_file) == MainConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file raises ConfigurationError."""
        with pytest.raises(ConfigurationError, match="not found"):
            _ = load_main_config(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test that malformed YAML raises ConfigurationError."""
        config_file = tmp_path / "docsynth.yaml"
        _ = config_file.write_text("connection: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Failed to parse YAML"):
            _ = load_main_config(config_file)

    def test_non_mapping_root(self, tmp_path: Path) -> None:
        """Test that a list at the root is rejected."""
        config_file = tmp_path / "docsynth.yaml"
        _ = config_file.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Expected YAML dictionary"):
            _ = load_main_config(config_file)

    def test_validation_error_lists_fields(self, tmp_path: Path) -> None:
        """Test that validation failures name the offending field."""
        config_file = tmp_path / "docsynth.yaml"
        _ = config_file.write_text("notifications:\n  max_notifications: 0\n", encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            _ = load_main_config(config_file)

        message = str(exc_info.value)
        assert "notifications → max_notifications" in message
        assert str(config_file) in message

    def test_missing_env_var_reported(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test that unresolved variables surface as ConfigurationError."""
        monkeypatch.delenv("DOCSYNTH_ABSENT", raising=False)
        config_file = tmp_path / "docsynth.yaml"
        _ = config_file.write_text("connection:\n  token: ${DOCSYNTH_ABSENT}\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="DOCSYNTH_ABSENT"):
            _ = load_main_config(config_file)
