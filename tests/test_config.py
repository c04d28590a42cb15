"""Integration tests for configuration module."""

from pathlib import Path

import pytest

from email_retry.config import (
    AppConfig,
    ConfigurationError,
    EnvironmentConfig,
    RetryConfig,
    load_config,
    parse_app_config,
    validate_config_file,
)
from email_retry.config.duration import (
    DurationParseError,
    humanize_seconds,
    parse_duration,
    validate_duration_range,
)
from email_retry.config.environment import DEFAULT_DATABASE_URL, DEFAULT_SENDER_NAME, load_environment_config
from email_retry.config.validators import check_for_warnings
from email_retry.domain.models import EmailType

# Test fixtures directory
FIXTURES_DIR = Path(__file__).parent / "fixtures"


def write_config(tmp_path: Path, content: str) -> Path:
    config_file = tmp_path / "config.yaml"
    config_file.write_text(content)
    return config_file


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, mock_env_vars):
        app_config, env_config = load_config(FIXTURES_DIR / "valid_config.yaml")

        retry = app_config.retry
        assert retry.base_delay_seconds == 2.0
        assert retry.max_delay_seconds == 120.0
        assert retry.jitter_factor == 0.25
        assert retry.limits[EmailType.DISCLOSURE] == 6
        assert retry.limits[EmailType.REMINDER] == 3
        # Unlisted types keep their defaults
        assert retry.limits[EmailType.VERIFICATION] == 2
        assert retry.limits[EmailType.ADMIN_NOTIFICATION] == 1
        assert retry.default_limit == 2
        assert retry.email_type == EmailType.DISCLOSURE
        assert retry.extra_permanent_patterns == ["blocked by policy"]
        assert retry.extra_transient_patterns == ["greylisted"]

        assert app_config.retry_interval_seconds == 900

        assert app_config.email.use_tls is True
        assert app_config.email.sender_email == "noreply@example.com"
        assert app_config.email.timeout_seconds == 20

        assert app_config.logging.level == "INFO"
        assert app_config.logging.format == "key-value"
        assert app_config.logging.environment == "staging"

        assert env_config.smtp_host == "smtp.example.com"
        assert env_config.smtp_port == 587

    def test_load_minimal_config(self, mock_env_vars):
        """Test loading a minimal configuration with defaults."""
        app_config, _ = load_config(FIXTURES_DIR / "minimal_config.yaml")

        assert app_config.retry_interval_seconds == 1800
        assert app_config.retry.base_delay_seconds == 1.0
        assert app_config.retry.max_delay_seconds == 60.0
        assert app_config.retry.jitter_factor == 0.5
        assert app_config.retry.limits == {
            EmailType.DISCLOSURE: 5,
            EmailType.REMINDER: 3,
            EmailType.VERIFICATION: 2,
            EmailType.ADMIN_NOTIFICATION: 1,
        }
        assert app_config.retry.email_type is None
        assert app_config.email.timeout_seconds == 30
        assert app_config.logging.level == "INFO"

    def test_load_iso8601_duration_config(self, mock_env_vars):
        app_config, _ = load_config(FIXTURES_DIR / "iso8601_duration_config.yaml")

        assert app_config.retry.retry_interval == "PT1H"
        assert app_config.retry_interval_seconds == 3600

    def test_config_file_not_found(self, mock_env_vars):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(Path("nonexistent.yaml"))

        assert "not found" in str(exc_info.value)

    def test_default_location_lookup(self, tmp_path, monkeypatch, mock_env_vars):
        write_config(tmp_path, "retry:\n  retry_interval: 5m\n")
        monkeypatch.chdir(tmp_path)

        app_config, _ = load_config()

        assert app_config.retry_interval_seconds == 300

    def test_no_config_anywhere(self, tmp_path, monkeypatch, mock_env_vars):
        monkeypatch.chdir(tmp_path)

        with pytest.raises(ConfigurationError) as exc_info:
            load_config()

        assert any("config.yaml" in error for error in exc_info.value.errors)

    def test_invalid_yaml_syntax(self, tmp_path, mock_env_vars):
        config_file = write_config(tmp_path, "retry:\n  limits: [unclosed\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_file)

        assert "Failed to parse YAML" in str(exc_info.value)

    def test_empty_config_file(self, tmp_path, mock_env_vars):
        with pytest.raises(ConfigurationError, match="empty"):
            load_config(write_config(tmp_path, ""))

    def test_non_mapping_root(self, tmp_path, mock_env_vars):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            load_config(write_config(tmp_path, "- just\n- a list\n"))

    def test_environment_errors_surface_from_load_config(self, tmp_path, monkeypatch):
        monkeypatch.delenv("SMTP_HOST", raising=False)
        monkeypatch.delenv("SMTP_PORT", raising=False)

        with pytest.raises(ConfigurationError, match="Environment variable validation failed"):
            load_config(FIXTURES_DIR / "minimal_config.yaml")


class TestConfigurationValidation:
    """Test schema validation of the retry settings."""

    def test_unknown_email_type_in_limits(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"retry": {"limits": {"newsletter": 3}}})

        assert exc_info.value.message == "Configuration validation failed"
        assert any("newsletter" in error for error in exc_info.value.errors)

    @pytest.mark.parametrize("limit", [-1, 21])
    def test_limit_out_of_range(self, limit):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"retry": {"limits": {"reminder": limit}}})

        assert any("Retry limit for 'reminder' must be between 0 and 20" in e for e in exc_info.value.errors)

    def test_zero_limit_is_allowed(self):
        config = parse_app_config({"retry": {"limits": {"admin_notification": 0}}})

        assert config.retry.limits[EmailType.ADMIN_NOTIFICATION] == 0

    def test_max_delay_below_base_delay(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"retry": {"base_delay_seconds": 10, "max_delay_seconds": 5}})

        assert any("max_delay_seconds" in e for e in exc_info.value.errors)

    @pytest.mark.parametrize("jitter", [-0.1, 1.5])
    def test_jitter_factor_out_of_range(self, jitter):
        with pytest.raises(ConfigurationError):
            parse_app_config({"retry": {"jitter_factor": jitter}})

    def test_retry_interval_too_short(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"retry": {"retry_interval": "30s"}})

        assert any("Retry interval too short" in e for e in exc_info.value.errors)

    def test_retry_interval_unparseable(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"retry": {"retry_interval": "soon"}})

        assert any("Invalid duration format" in e for e in exc_info.value.errors)

    def test_invalid_log_format(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"logging": {"format": "xml"}})

        assert any("logging -> format" in e for e in exc_info.value.errors)

    def test_wrong_type_is_reported_with_field_path(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_app_config({"email": {"timeout_seconds": "soon"}})

        assert any("email -> timeout_seconds" in e for e in exc_info.value.errors)

    def test_blank_sender_email_becomes_none(self):
        config = parse_app_config({"email": {"sender_email": "   "}})

        assert config.email.sender_email is None

    def test_defaults_without_any_sections(self):
        config = AppConfig()

        assert config.retry_interval_seconds == 900
        assert isinstance(config.retry, RetryConfig)


class TestConfigurationWarnings:
    def test_disclosure_limit_zero_warns(self):
        warnings = check_for_warnings({"retry": {"limits": {"disclosure": 0}}})

        assert any("Retry limit for 'disclosure' is 0" in w for w in warnings)

    def test_large_limit_warns(self):
        warnings = check_for_warnings({"retry": {"limits": {"reminder": 12}}})

        assert any("Large retry limit for 'reminder'" in w for w in warnings)

    def test_zero_jitter_warns(self):
        assert check_for_warnings({"retry": {"jitter_factor": 0}})

    def test_overlapping_patterns_warn(self):
        warnings = check_for_warnings(
            {
                "retry": {
                    "extra_permanent_patterns": ["Greylisted"],
                    "extra_transient_patterns": ["greylisted "],
                }
            }
        )

        assert warnings == [
            "Patterns listed as both permanent and transient are treated as permanent: greylisted"
        ]

    def test_clean_config_has_no_warnings(self):
        assert check_for_warnings({"retry": {"limits": {"reminder": 3}}}) == []

    def test_load_config_emits_user_warning(self, tmp_path, mock_env_vars):
        config_file = write_config(tmp_path, "retry:\n  jitter_factor: 0\n")

        with pytest.warns(UserWarning, match="jitter_factor is 0"):
            app_config, _ = load_config(config_file)

        assert app_config.retry.jitter_factor == 0


class TestDurationParsing:
    """Test duration string parsing."""

    @pytest.mark.parametrize(
        "value, seconds",
        [
            ("15m", 900),
            ("1h", 3600),
            ("30s", 30),
            ("2d", 172800),
            ("1h30m", 5400),
            ("1h 30m", 5400),
            ("PT15M", 900),
            ("PT1H", 3600),
            ("PT1H30M", 5400),
            ("P1D", 86400),
            ("pt30s", 30),
        ],
    )
    def test_valid_durations(self, value, seconds):
        assert parse_duration(value) == seconds

    @pytest.mark.parametrize("value", ["invalid", "15x", "m15", "P", "PT", "PT1X"])
    def test_parse_invalid_format(self, value):
        with pytest.raises(DurationParseError):
            parse_duration(value)

    @pytest.mark.parametrize("value", ["", "   ", None])
    def test_parse_empty_string(self, value):
        with pytest.raises(DurationParseError, match="cannot be empty"):
            parse_duration(value)

    def test_zero_duration_rejected(self):
        with pytest.raises(DurationParseError, match="cannot be zero"):
            parse_duration("0m")

    def test_validate_duration_range_too_short(self):
        with pytest.raises(DurationParseError) as exc_info:
            validate_duration_range(30, min_seconds=60, max_seconds=86400)

        assert str(exc_info.value) == "Retry interval too short: 30 seconds. Minimum is 1 minute."

    def test_validate_duration_range_too_long(self):
        with pytest.raises(DurationParseError, match="Retry interval too long: 2 days"):
            validate_duration_range(172800, min_seconds=60, max_seconds=86400)

    def test_validate_duration_range_valid(self):
        validate_duration_range(900, min_seconds=60, max_seconds=86400)

    @pytest.mark.parametrize(
        "seconds, text",
        [(1, "1 second"), (45, "45 seconds"), (60, "1 minute"), (5400, "1 hour"), (7200, "2 hours")],
    )
    def test_humanize_seconds(self, seconds, text):
        assert humanize_seconds(seconds) == text


class TestEnvironmentVariables:
    """Test environment variable loading."""

    def test_load_valid_environment_config(self, mock_env_vars):
        env_config = load_environment_config()

        assert env_config.smtp_host == "smtp.example.com"
        assert env_config.smtp_port == 587
        assert env_config.smtp_user == "mailer@example.com"
        assert env_config.has_smtp_auth
        assert env_config.smtp_sender_name == DEFAULT_SENDER_NAME
        assert env_config.database_url == DEFAULT_DATABASE_URL
        assert env_config.log_level is None

    def test_missing_required_env_vars(self, monkeypatch):
        monkeypatch.delenv("SMTP_HOST", raising=False)
        monkeypatch.delenv("SMTP_PORT", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert "Missing required environment variable: SMTP_HOST" in exc_info.value.errors
        assert "Missing required environment variable: SMTP_PORT" in exc_info.value.errors

    @pytest.mark.parametrize("port, message", [("abc", "valid integer"), ("70000", "between 1 and 65535")])
    def test_invalid_smtp_port(self, mock_env_vars, monkeypatch, port, message):
        monkeypatch.setenv("SMTP_PORT", port)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert message in str(exc_info.value)

    def test_invalid_log_level(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "VERBOSE")

        with pytest.raises(ConfigurationError, match="Invalid LOG_LEVEL"):
            load_environment_config()

    def test_user_without_password(self, mock_env_vars, monkeypatch):
        monkeypatch.delenv("SMTP_PASS")

        with pytest.raises(ConfigurationError, match="SMTP_USER is set but SMTP_PASS is not"):
            load_environment_config()

    def test_unauthenticated_relay(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("SMTP_USER", "")
        monkeypatch.setenv("SMTP_PASS", "")

        env_config = load_environment_config()

        assert env_config.smtp_user is None
        assert not env_config.has_smtp_auth

    def test_optional_env_vars(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("SMTP_SENDER_NAME", "Keeper Notifications")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("DATABASE_URL", "sqlite:////var/lib/retry/failures.db")

        env_config = load_environment_config()

        assert env_config.smtp_sender_name == "Keeper Notifications"
        assert env_config.log_level == "DEBUG"
        assert env_config.database_url == "sqlite:////var/lib/retry/failures.db"

    def test_repr_hides_password(self):
        env_config = EnvironmentConfig("smtp.example.com", 587, "user", "hunter2")

        assert "hunter2" not in repr(env_config)


class TestConfigurationHelpers:
    def test_validate_config_file_utility(self, capsys):
        assert validate_config_file(FIXTURES_DIR / "valid_config.yaml") is True
        assert "✓" in capsys.readouterr().out

    def test_validate_config_file_reports_errors(self, tmp_path, capsys):
        config_file = write_config(tmp_path, "retry:\n  jitter_factor: 3\n")

        assert validate_config_file(config_file) is False
        assert "✗" in capsys.readouterr().out

    def test_configuration_error_formatting(self):
        error = ConfigurationError("Bad config", errors=["first"], suggestions=["fix it"])
        error.add_error("second")

        text = str(error)
        assert text.startswith("Bad config")
        assert "1. first" in text
        assert "2. second" in text
        assert "- fix it" in text
