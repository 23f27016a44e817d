"""Common utilities - logging, config, exceptions."""

from workgate.common.logging.logger import get_logger
from workgate.common.config import Config, get_config, reset_config
from workgate.common.exceptions import (
    WorkGateException,
    ConfigurationError,
    ValidationError,
    RuleDefinitionError,
    RuleSetNotFound,
    RuleNotConfigured,
    MissingInputField,
    RuleEvaluationError,
    AuditError,
    AuditPersistenceFailure,
    ConcurrentPointerConflict,
    InvalidPointerTarget,
    DuplicateRuleVersion,
    GovernanceBlockedError,
)

__all__ = [
    # Logging
    "get_logger",
    # Config
    "Config",
    "get_config",
    "reset_config",
    # Exceptions
    "WorkGateException",
    "ConfigurationError",
    "ValidationError",
    "RuleDefinitionError",
    "RuleSetNotFound",
    "RuleNotConfigured",
    "MissingInputField",
    "RuleEvaluationError",
    "AuditError",
    "AuditPersistenceFailure",
    "ConcurrentPointerConflict",
    "InvalidPointerTarget",
    "DuplicateRuleVersion",
    "GovernanceBlockedError",
]
