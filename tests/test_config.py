"""Tests for configuration loading and validation."""

from datetime import date
from pathlib import Path

import pytest

from mail_forwarder.config import (
    AppConfig,
    ConfigurationError,
    load_config,
    merge_overrides,
    validate_config_file,
)
from mail_forwarder.config.environment import load_environment_config
from mail_forwarder.config.models import PollingConfig, RunSettings
from mail_forwarder.domain.models import ForwardStrategy, RunMode

FIXTURES_DIR = Path(__file__).parent / "fixtures"


@pytest.fixture(autouse=True)
def isolated_cwd(tmp_path, monkeypatch):
    """Run each test where no default forwarder.yaml exists."""
    monkeypatch.chdir(tmp_path)
    return tmp_path


def run_overrides(**run):
    base = {
        "source_scope": "a@x.com",
        "target_scope": "b@y.com",
        "date_range_start": "2024-06-01",
        "date_range_end": "2024-06-30",
    }
    base.update(run)
    return {"run": base}


class TestConfigurationLoading:
    """Test configuration loading from YAML files and overrides."""

    def test_load_valid_config(self, mock_env_vars):
        app_config, env_config = load_config(FIXTURES_DIR / "valid_config.yaml")

        assert app_config.run.source_scope == "a@x.com"
        assert app_config.run.target_scope == "b@y.com"
        assert app_config.run.date_range_start == date(2024, 6, 1)
        assert app_config.run.date_range_end == date(2024, 6, 30)
        assert app_config.run.target_folder == "June"
        assert app_config.run.strategy == ForwardStrategy.BULK_EXPORT
        assert app_config.run.mode == RunMode.LIVE

        assert app_config.polling.initial_interval_seconds == 10
        assert app_config.polling.timeout_seconds == 5400
        assert app_config.forwarding.max_retries == 5
        assert app_config.graph.page_size == 50
        assert app_config.logging.level == "DEBUG"
        assert app_config.logging.format == "json"

        assert env_config.credentials is not None
        assert env_config.credentials.tenant_id == "11111111-1111-1111-1111-111111111111"

    def test_load_minimal_config_applies_defaults(self, clean_env):
        app_config, env_config = load_config(FIXTURES_DIR / "minimal_config.yaml")

        assert app_config.run.target_folder == "ForwardedEmails"
        assert app_config.run.strategy == ForwardStrategy.PER_ITEM
        assert app_config.run.verbose is False
        assert app_config.run.assume_yes is False
        assert app_config.polling.initial_interval_seconds == 5
        assert app_config.polling.backoff_multiplier == 2.0
        assert app_config.polling.max_interval_seconds == 60
        assert app_config.polling.timeout_seconds == 1800
        assert app_config.polling.max_consecutive_status_errors == 5
        assert app_config.logging.level == "INFO"

        # Test mode needs no credentials
        assert env_config.credentials is None
        assert env_config.database_url == "sqlite:///./data/forward_ledger.db"

    def test_default_log_path_is_timestamped(self, clean_env):
        app_config, _ = load_config(FIXTURES_DIR / "minimal_config.yaml")

        log_path = app_config.run.log_path
        assert log_path.parent == Path("logs")
        assert log_path.name.startswith("mail_forward_")
        assert log_path.suffix == ".log"

    def test_iso8601_timeout(self, clean_env):
        app_config, _ = load_config(FIXTURES_DIR / "iso8601_timeout_config.yaml")
        assert app_config.polling.timeout_seconds == 2700

    def test_config_file_is_optional(self, clean_env):
        app_config, _ = load_config(None, run_overrides(test_mode=True))
        assert app_config.run.source_scope == "a@x.com"

    def test_default_file_is_discovered(self, clean_env, isolated_cwd):
        (isolated_cwd / "forwarder.yaml").write_text(
            (FIXTURES_DIR / "minimal_config.yaml").read_text()
        )
        app_config, _ = load_config()
        assert app_config.run.test_mode is True

    def test_overrides_win_over_file(self, clean_env):
        app_config, _ = load_config(
            FIXTURES_DIR / "minimal_config.yaml",
            {"run": {"target_folder": "Archive", "verbose": True, "strategy": None}},
        )
        assert app_config.run.target_folder == "Archive"
        assert app_config.run.verbose is True
        # None overrides are ignored
        assert app_config.run.strategy == ForwardStrategy.PER_ITEM

    def test_missing_explicit_file_raises(self, clean_env):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(Path("does_not_exist.yaml"))

    def test_invalid_yaml_raises(self, clean_env, isolated_cwd):
        bad = isolated_cwd / "bad.yaml"
        bad.write_text("run: [unclosed")
        with pytest.raises(ConfigurationError, match="Failed to parse YAML"):
            load_config(bad)

    def test_non_mapping_yaml_raises(self, clean_env, isolated_cwd):
        bad = isolated_cwd / "list.yaml"
        bad.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(bad)


class TestConfigurationValidation:
    """Test validation errors surface as ConfigurationError."""

    def test_missing_required_option(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(None, {"run": {"target_scope": "b@y.com", "test_mode": True}})

        errors = exc_info.value.errors
        assert "Missing required option: run -> source_scope" in errors
        assert "Missing required option: run -> date_range_start" in errors

    def test_start_after_end_rejected(self, clean_env):
        with pytest.raises(ConfigurationError, match="must not be after"):
            load_config(FIXTURES_DIR / "invalid_dates_config.yaml")

    def test_single_day_window_accepted(self, clean_env):
        app_config, _ = load_config(
            None, run_overrides(date_range_end="2024-06-01", test_mode=True)
        )
        assert app_config.run.to_search_request().day_count == 1

    def test_invalid_date_format(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(None, run_overrides(date_range_start="06/01/2024", test_mode=True))
        assert any("run -> date_range_start" in error for error in exc_info.value.errors)

    def test_invalid_mailbox_rejected(self, clean_env):
        with pytest.raises(ConfigurationError, match="Invalid mailbox address"):
            load_config(None, run_overrides(source_scope="not-an-address", test_mode=True))

    def test_invalid_strategy_rejected(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(None, run_overrides(strategy="carrier-pigeon", test_mode=True))
        assert any("run -> strategy" in error for error in exc_info.value.errors)

    def test_forwarding_into_own_inbox_rejected(self, clean_env):
        with pytest.raises(ConfigurationError, match="loop"):
            load_config(
                None,
                run_overrides(target_scope="A@x.com", target_folder="Inbox", test_mode=True),
            )

    def test_live_mode_requires_case_id(self, mock_env_vars):
        with pytest.raises(ConfigurationError, match="ediscovery_case_id"):
            load_config(None, run_overrides())

    def test_live_mode_requires_credentials(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(
                None,
                {**run_overrides(), "graph": {"ediscovery_case_id": "case-1"}},
            )
        assert "Missing required environment variable: GRAPH_TENANT_ID" in exc_info.value.errors

    def test_timeout_out_of_range(self, clean_env):
        with pytest.raises(ConfigurationError, match="too short"):
            load_config(None, {**run_overrides(test_mode=True), "polling": {"timeout": "30s"}})

    def test_max_interval_below_initial_rejected(self):
        with pytest.raises(ValueError, match="max_interval_seconds"):
            PollingConfig(initial_interval_seconds=30, max_interval_seconds=10)

    def test_error_message_is_numbered_with_suggestions(self, clean_env):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(None, {"run": {"test_mode": True}})

        message = str(exc_info.value)
        assert "Validation Errors:" in message
        assert "  1. " in message
        assert "Suggestions:" in message


class TestConfigurationWarnings:
    """Test non-fatal configuration warnings."""

    def test_long_window_warns(self, clean_env):
        with pytest.warns(UserWarning, match="Date range covers"):
            load_config(
                None,
                run_overrides(
                    date_range_start="2022-01-01", date_range_end="2024-06-30", test_mode=True
                ),
            )

    def test_assume_yes_in_test_mode_warns(self, clean_env):
        with pytest.warns(UserWarning, match="assume_yes has no effect"):
            load_config(None, run_overrides(test_mode=True, assume_yes=True))


class TestEnvironmentConfig:
    """Test environment variable loading."""

    def test_invalid_guid_rejected(self, mock_env_vars):
        mock_env_vars.setenv("GRAPH_TENANT_ID", "contoso")
        with pytest.raises(ConfigurationError, match="Expected a GUID"):
            load_environment_config()

    def test_invalid_log_level_rejected(self, mock_env_vars):
        mock_env_vars.setenv("LOG_LEVEL", "LOUD")
        with pytest.raises(ConfigurationError, match="Invalid LOG_LEVEL"):
            load_environment_config()

    def test_optional_values(self, mock_env_vars):
        mock_env_vars.setenv("LOG_LEVEL", "debug")
        mock_env_vars.setenv("DATABASE_URL", "sqlite:///tmp/ledger.db")
        mock_env_vars.setenv("ENVIRONMENT", "production")

        env_config = load_environment_config()

        assert env_config.log_level == "DEBUG"
        assert env_config.database_url == "sqlite:///tmp/ledger.db"
        assert env_config.environment == "production"

    def test_secret_not_in_repr(self, mock_env_vars):
        env_config = load_environment_config()
        assert "s3cret" not in repr(env_config.credentials)


class TestRunSettings:
    def test_search_request_and_target(self):
        settings = RunSettings(
            source_scope="a@x.com",
            target_scope="b@y.com",
            date_range_start=date(2024, 6, 1),
            date_range_end=date(2024, 6, 30),
            target_folder="  June  ",
        )

        request = settings.to_search_request()
        target = settings.to_target()

        assert request.source_scope == "a@x.com"
        assert request.date_range_start == date(2024, 6, 1)
        assert request.date_range_end == date(2024, 6, 30)
        assert str(target) == "b@y.com/June"

    def test_app_config_test_mode_without_case_id(self):
        config = AppConfig(
            run=RunSettings(
                source_scope="a@x.com",
                target_scope="b@y.com",
                date_range_start=date(2024, 6, 1),
                date_range_end=date(2024, 6, 30),
                test_mode=True,
            )
        )
        assert config.graph.ediscovery_case_id is None


def test_merge_overrides_is_deep_and_skips_none():
    base = {"run": {"verbose": False, "strategy": "per-item"}, "polling": {"timeout": "30m"}}
    merged = merge_overrides(base, {"run": {"verbose": True, "strategy": None}, "graph": {"page_size": 10}})

    assert merged == {
        "run": {"verbose": True, "strategy": "per-item"},
        "polling": {"timeout": "30m"},
        "graph": {"page_size": 10},
    }
    # The input is not modified
    assert base["run"]["verbose"] is False


def test_validate_config_file(capsys):
    assert validate_config_file(FIXTURES_DIR / "minimal_config.yaml") is True
    assert "is valid" in capsys.readouterr().out

    assert validate_config_file(FIXTURES_DIR / "invalid_dates_config.yaml") is False
    assert "validation failed" in capsys.readouterr().out
