"""Configuration management - Centralized configuration for WorkGate.

Provides environment-aware configuration with sensible defaults.
All configuration is loaded from environment variables with fallbacks.
"""

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

from workgate.common.constants import (
    AuditConstants,
    CacheConstants,
    OverrideConstants,
)


class Environment(str, Enum):
    """Application environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class AuditStorageType(str, Enum):
    """Evaluation record storage backend types."""
    MEMORY = "memory"
    FILE = "file"
    DYNAMODB = "dynamodb"


def _get_project_root() -> Path:
    """Get the project root directory."""
    # settings.py -> config -> common -> workgate -> src -> project_root
    current = Path(__file__).resolve()
    return current.parent.parent.parent.parent.parent


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_list(name: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


@dataclass
class Config:
    """Central configuration object for WorkGate.

    All settings can be overridden via environment variables prefixed with WORKGATE_.

    Example:
        WORKGATE_ENVIRONMENT=production
        WORKGATE_AUDIT_STORAGE_TYPE=dynamodb
        WORKGATE_AUDIT_DYNAMODB_TABLE=governance-evaluations
    """

    # Core settings
    environment: Environment = field(
        default_factory=lambda: Environment(
            os.getenv("WORKGATE_ENVIRONMENT", "development")
        )
    )
    debug: bool = field(
        default_factory=lambda: _env_flag("WORKGATE_DEBUG", "false")
    )
    log_level: LogLevel = field(
        default_factory=lambda: LogLevel(os.getenv("WORKGATE_LOG_LEVEL", "INFO"))
    )

    # Paths
    project_root: Path = field(default_factory=_get_project_root)

    # Audit settings
    audit_storage_type: AuditStorageType = field(
        default_factory=lambda: AuditStorageType(
            os.getenv("WORKGATE_AUDIT_STORAGE_TYPE", "memory")
        )
    )
    audit_log_dir: Path = field(
        default_factory=lambda: Path(
            os.getenv("WORKGATE_AUDIT_LOG_DIR", "./logs/governance")
        )
    )
    audit_dynamodb_table: Optional[str] = field(
        default_factory=lambda: os.getenv("WORKGATE_AUDIT_DYNAMODB_TABLE")
    )
    audit_background_writer: bool = field(
        default_factory=lambda: _env_flag("WORKGATE_AUDIT_BACKGROUND_WRITER", "false")
    )
    audit_capture_snapshot: bool = field(
        default_factory=lambda: _env_flag("WORKGATE_AUDIT_CAPTURE_SNAPSHOT", "true")
    )
    audit_snapshot_max_bytes: int = field(
        default_factory=lambda: int(
            os.getenv("WORKGATE_AUDIT_SNAPSHOT_MAX_BYTES", str(AuditConstants.SNAPSHOT_MAX_BYTES))
        )
    )

    # AWS settings (for DynamoDB / CloudWatch)
    aws_region: str = field(
        default_factory=lambda: os.getenv("AWS_DEFAULT_REGION", "us-east-1")
    )
    metrics_enabled: bool = field(
        default_factory=lambda: _env_flag("WORKGATE_METRICS_ENABLED", "false")
    )

    # Rule engine settings
    rules_file: Optional[Path] = field(
        default_factory=lambda: (
            Path(os.environ["WORKGATE_RULES_FILE"])
            if os.getenv("WORKGATE_RULES_FILE") else None
        )
    )
    rule_set_cache_size: int = field(
        default_factory=lambda: int(
            os.getenv("WORKGATE_RULE_SET_CACHE_SIZE", str(CacheConstants.RULE_SET_CACHE_SIZE))
        )
    )
    override_platform_roles: Tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "WORKGATE_OVERRIDE_PLATFORM_ROLES", OverrideConstants.PLATFORM_ROLES
        )
    )
    override_workspace_roles: Tuple[str, ...] = field(
        default_factory=lambda: _env_list(
            "WORKGATE_OVERRIDE_WORKSPACE_ROLES", OverrideConstants.WORKSPACE_ROLES
        )
    )

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.audit_storage_type == AuditStorageType.FILE:
            self.audit_log_dir.mkdir(parents=True, exist_ok=True)

        if self.audit_storage_type == AuditStorageType.DYNAMODB:
            if not self.audit_dynamodb_table:
                raise ValueError(
                    "WORKGATE_AUDIT_DYNAMODB_TABLE must be set when using DynamoDB audit storage"
                )

        if self.audit_snapshot_max_bytes < 0:
            raise ValueError("WORKGATE_AUDIT_SNAPSHOT_MAX_BYTES must not be negative")

        # Warn about debug in production
        if self.environment == Environment.PRODUCTION and self.debug:
            import warnings
            warnings.warn(
                "Debug mode is enabled in production environment",
                RuntimeWarning,
                stacklevel=2
            )

    @property
    def config_dir(self) -> Path:
        """Get the config directory path."""
        return self.project_root / "config"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == Environment.PRODUCTION

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == Environment.DEVELOPMENT


# Singleton instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config: The global configuration singleton.
    """
    global _config
    if _config is None:
        _config = Config()
    return _config


def reset_config() -> None:
    """Reset the global configuration (for testing)."""
    global _config
    _config = None
