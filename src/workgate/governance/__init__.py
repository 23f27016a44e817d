"""Governance - rule sets, versioned rules, enforcement and the evaluation audit trail."""

from workgate.governance.admin import GovernanceAdminService
from workgate.governance.engine import GovernanceEngine, create_engine
from workgate.governance.enforcement import EnforcementPolicy
from workgate.governance.registry import RuleSetCache, RuleSetRegistry
from workgate.governance.rules.evaluator import RuleEvaluator
from workgate.governance.schemas import (
    ActiveVersionPointer,
    Decision,
    DecisionOutcome,
    EnforcementMode,
    EntityType,
    EvaluationRecord,
    Rule,
    RuleDefinition,
    RuleSet,
    RuleVerdict,
    ScopeType,
    TransitionFilter,
    TransitionType,
    Verdict,
)
from workgate.governance.versions import VersionResolver

__all__ = [
    "GovernanceEngine",
    "GovernanceAdminService",
    "create_engine",
    "EnforcementPolicy",
    "RuleSetCache",
    "RuleSetRegistry",
    "RuleEvaluator",
    "VersionResolver",
    "ActiveVersionPointer",
    "Decision",
    "DecisionOutcome",
    "EnforcementMode",
    "EntityType",
    "EvaluationRecord",
    "Rule",
    "RuleDefinition",
    "RuleSet",
    "RuleVerdict",
    "ScopeType",
    "TransitionFilter",
    "TransitionType",
    "Verdict",
]
