"""Custom exceptions for WorkGate.

Provides a hierarchy of exceptions for different error types.
All WorkGate exceptions inherit from WorkGateException.
"""

from typing import Any, Dict, List, Optional, Sequence

from workgate.common.constants import RuleConstants


class WorkGateException(Exception):
    """Base exception for all WorkGate errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: str = "WORKGATE_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(WorkGateException):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIG_ERROR", details=details)


class ValidationError(WorkGateException):
    """Raised when input validation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class RuleDefinitionError(ValidationError):
    """Raised when a rule definition cannot be parsed into an expression tree."""


class RuleSetNotFound(WorkGateException):
    """No rule set is configured for a scope.

    Recovered locally: absence of governance configuration means ALLOW.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="RULE_SET_NOT_FOUND", details=details)


class RuleNotConfigured(WorkGateException):
    """Raised when a rule code has no active version pointer in a rule set."""

    def __init__(self, rule_set_id: str, rule_code: str):
        self.rule_set_id = rule_set_id
        self.rule_code = rule_code
        super().__init__(
            f"Rule '{rule_code}' has no active version in rule set '{rule_set_id}'",
            code="RULE_NOT_CONFIGURED",
            details={"rule_set_id": rule_set_id, "rule_code": rule_code},
        )


class MissingInputField(WorkGateException):
    """Raised when a rule references snapshot fields the caller did not supply."""

    def __init__(self, fields: Sequence[str]):
        self.fields: List[str] = list(fields)
        super().__init__(
            f"{RuleConstants.MISSING_INPUT_PREFIX}: {', '.join(self.fields)}",
            code="MISSING_INPUT_FIELD",
            details={"fields": self.fields},
        )


class RuleEvaluationError(WorkGateException):
    """Raised when an expression cannot be evaluated against a snapshot."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="RULE_EVALUATION_ERROR", details=details)


class AuditError(WorkGateException):
    """Raised when audit logging fails."""

    def __init__(
        self,
        message: str,
        code: str = "AUDIT_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message, code=code, details=details)


class AuditPersistenceFailure(AuditError):
    """An evaluation record could not be persisted.

    Reported to the error side channel; never propagated to evaluate() callers.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="AUDIT_PERSISTENCE_FAILURE", details=details)


class ConcurrentPointerConflict(WorkGateException):
    """Raised when a repoint lost a compare-and-swap race."""

    def __init__(
        self,
        rule_set_id: str,
        rule_code: str,
        expected_revision: Optional[int],
        actual_revision: Optional[int],
    ):
        self.rule_set_id = rule_set_id
        self.rule_code = rule_code
        self.expected_revision = expected_revision
        self.actual_revision = actual_revision
        super().__init__(
            f"Active version pointer for '{rule_code}' in rule set '{rule_set_id}' "
            f"changed concurrently (expected revision {expected_revision}, "
            f"found {actual_revision})",
            code="CONCURRENT_POINTER_CONFLICT",
            details={
                "rule_set_id": rule_set_id,
                "rule_code": rule_code,
                "expected_revision": expected_revision,
                "actual_revision": actual_revision,
            },
        )


class InvalidPointerTarget(ValidationError):
    """Raised when a pointer would reference a rule of another set or code."""


class DuplicateRuleVersion(ValidationError):
    """Raised when (rule set, code, version) already exists."""


class GovernanceBlockedError(WorkGateException):
    """Raised by enforce() when the decision is BLOCK."""

    def __init__(self, decision: Any):
        self.decision = decision
        messages = [r.message for r in decision.failing_reasons]
        super().__init__(
            "; ".join(messages) or "Transition blocked by governance",
            code="GOVERNANCE_BLOCKED",
            details={
                "rule_set_id": decision.rule_set_id,
                "rule_codes": [r.rule_code for r in decision.failing_reasons],
            },
        )
