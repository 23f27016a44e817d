"""Tests for configuration settings.

Tests the Config class and environment variable handling.
"""

import pytest
from pathlib import Path
from unittest.mock import patch

from workgate.common.config.settings import (
    Config,
    Environment,
    LogLevel,
    AuditStorageType,
    get_config,
    reset_config,
)


class TestEnums:
    """Tests for configuration enums."""

    def test_environment_from_string(self):
        assert Environment("development") == Environment.DEVELOPMENT
        assert Environment("production") == Environment.PRODUCTION

    def test_log_level_values(self):
        assert LogLevel.DEBUG.value == "DEBUG"
        assert LogLevel.CRITICAL.value == "CRITICAL"

    def test_storage_type_values(self):
        assert AuditStorageType.MEMORY.value == "memory"
        assert AuditStorageType.FILE.value == "file"
        assert AuditStorageType.DYNAMODB.value == "dynamodb"


class TestConfig:
    """Tests for Config class."""

    def test_default_config(self):
        """Test default configuration values."""
        with patch.dict("os.environ", {}, clear=True):
            config = Config()

            assert config.environment == Environment.DEVELOPMENT
            assert config.debug is False
            assert config.log_level == LogLevel.INFO
            assert config.audit_storage_type == AuditStorageType.MEMORY
            assert config.audit_background_writer is False
            assert config.audit_capture_snapshot is True
            assert config.audit_snapshot_max_bytes == 16 * 1024
            assert config.rules_file is None
            assert config.metrics_enabled is False
            assert config.override_platform_roles == ("ADMIN",)
            assert config.override_workspace_roles == ("OWNER", "ADMIN")

    def test_environment_override(self):
        """Test environment variable overrides."""
        env = {
            "WORKGATE_ENVIRONMENT": "staging",
            "WORKGATE_LOG_LEVEL": "DEBUG",
            "WORKGATE_RULES_FILE": "/etc/workgate/rules.yaml",
            "WORKGATE_RULE_SET_CACHE_SIZE": "64",
            "WORKGATE_OVERRIDE_WORKSPACE_ROLES": "OWNER, LEAD",
        }
        with patch.dict("os.environ", env, clear=True):
            config = Config()

            assert config.environment == Environment.STAGING
            assert config.log_level == LogLevel.DEBUG
            assert config.rules_file == Path("/etc/workgate/rules.yaml")
            assert config.rule_set_cache_size == 64
            assert config.override_workspace_roles == ("OWNER", "LEAD")

    def test_file_storage_creates_log_dir(self, tmp_path):
        log_dir = tmp_path / "audit"
        env = {
            "WORKGATE_AUDIT_STORAGE_TYPE": "file",
            "WORKGATE_AUDIT_LOG_DIR": str(log_dir),
        }
        with patch.dict("os.environ", env, clear=True):
            Config()
        assert log_dir.is_dir()

    def test_dynamodb_requires_table(self):
        """Test DynamoDB storage requires a table name."""
        with patch.dict("os.environ", {"WORKGATE_AUDIT_STORAGE_TYPE": "dynamodb"}, clear=True):
            with pytest.raises(ValueError, match="WORKGATE_AUDIT_DYNAMODB_TABLE"):
                Config()

    def test_dynamodb_with_table(self):
        env = {
            "WORKGATE_AUDIT_STORAGE_TYPE": "dynamodb",
            "WORKGATE_AUDIT_DYNAMODB_TABLE": "governance-evaluations",
        }
        with patch.dict("os.environ", env, clear=True):
            config = Config()
            assert config.audit_dynamodb_table == "governance-evaluations"

    def test_negative_snapshot_cap_rejected(self):
        with patch.dict("os.environ", {"WORKGATE_AUDIT_SNAPSHOT_MAX_BYTES": "-1"}, clear=True):
            with pytest.raises(ValueError):
                Config()

    def test_debug_in_production_warns(self):
        env = {"WORKGATE_ENVIRONMENT": "production", "WORKGATE_DEBUG": "true"}
        with patch.dict("os.environ", env, clear=True):
            with pytest.warns(RuntimeWarning):
                config = Config()
            assert config.is_production

    def test_config_dir(self):
        with patch.dict("os.environ", {}, clear=True):
            config = Config()
            assert config.config_dir == config.project_root / "config"
            assert (config.config_dir / "governance_rules.yaml").exists()


class TestGlobalConfig:
    """Tests for the configuration singleton."""

    def test_get_config_is_cached(self):
        reset_config()
        try:
            assert get_config() is get_config()
        finally:
            reset_config()

    def test_reset_config(self):
        reset_config()
        first = get_config()
        reset_config()
        try:
            assert get_config() is not first
        finally:
            reset_config()
