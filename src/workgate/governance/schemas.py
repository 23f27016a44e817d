"""Governance schemas - type definitions for rule sets, rules and decisions.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from workgate.common.exceptions import RuleDefinitionError
from workgate.governance.rules.expressions import parse_condition


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class ScopeType(str, Enum):
    """Where a rule set applies."""
    SYSTEM = "SYSTEM"
    ORG = "ORG"
    WORKSPACE = "WORKSPACE"


class EnforcementMode(str, Enum):
    """How failing rules in a rule set affect the transition."""
    OFF = "OFF"
    WARN = "WARN"
    ADMIN_OVERRIDE = "ADMIN_OVERRIDE"
    BLOCK = "BLOCK"


class EntityType(str, Enum):
    """Entity types governed out of the box. Any string is accepted."""
    PROJECT = "project"
    TASK = "task"
    PHASE_GATE = "phase_gate"
    CHANGE_REQUEST = "change_request"


class TransitionType(str, Enum):
    """Kinds of state transitions submitted for evaluation."""
    STATUS_CHANGE = "STATUS_CHANGE"
    PHASE_ADVANCE = "PHASE_ADVANCE"
    GATE_DECISION = "GATE_DECISION"


class Verdict(str, Enum):
    """Outcome of a single rule."""
    PASS = "PASS"
    FAIL = "FAIL"
    NOT_CONFIGURED = "NOT_CONFIGURED"


class DecisionOutcome(str, Enum):
    """Final governance decision."""
    ALLOW = "ALLOW"
    WARN = "WARN"
    OVERRIDE = "OVERRIDE"
    BLOCK = "BLOCK"


class RuleSet(BaseModel):
    """A named, scoped collection of rules with one enforcement mode."""
    rule_set_id: str = Field(
        default_factory=lambda: f"rs_{uuid4().hex[:12]}",
        description="Unique rule set identifier"
    )
    scope_type: ScopeType = Field(
        ...,
        description="SYSTEM, ORG or WORKSPACE"
    )
    organization_id: Optional[str] = Field(
        default=None,
        description="Owning organization (empty for SYSTEM scope)"
    )
    workspace_id: Optional[str] = Field(
        default=None,
        description="Target workspace (WORKSPACE scope only)"
    )
    entity_type: str = Field(
        ...,
        min_length=1,
        description="Entity type governed by this set, e.g. 'task'"
    )
    name: str = Field(
        ...,
        min_length=1,
        description="Human-readable name"
    )
    description: str = Field(
        default="",
        description="Longer description"
    )
    enforcement_mode: EnforcementMode = Field(
        default=EnforcementMode.WARN,
        description="How failing rules are enforced"
    )
    is_active: bool = Field(
        default=True,
        description="Only active sets are consulted at evaluation time"
    )
    created_by: Optional[str] = Field(
        default=None,
        description="Administrator who created the set"
    )
    created_at: datetime = Field(
        default_factory=_utcnow,
        description="Creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=_utcnow,
        description="Last update timestamp"
    )

    @field_validator("entity_type", mode="before")
    @classmethod
    def _unwrap_entity_type(cls, value: Any) -> Any:
        return _enum_value(value)

    @model_validator(mode="after")
    def _check_scope_target(self) -> "RuleSet":
        if self.scope_type == ScopeType.SYSTEM:
            if self.organization_id or self.workspace_id:
                raise ValueError("SYSTEM rule sets cannot target an organization or workspace")
        elif self.scope_type == ScopeType.ORG:
            if not self.organization_id:
                raise ValueError("ORG rule sets require organization_id")
            if self.workspace_id:
                raise ValueError("ORG rule sets cannot target a workspace")
        elif not self.workspace_id:
            raise ValueError("WORKSPACE rule sets require workspace_id")
        return self

    @property
    def scope_id(self) -> Optional[str]:
        """Identifier of the scope target (None for SYSTEM)."""
        if self.scope_type == ScopeType.WORKSPACE:
            return self.workspace_id
        if self.scope_type == ScopeType.ORG:
            return self.organization_id
        return None

    @property
    def scope_key(self) -> Tuple[str, Optional[str], str]:
        """(scope, scope id, entity type) lookup key."""
        return (self.scope_type.value, self.scope_id, self.entity_type)


class TransitionFilter(BaseModel):
    """Restricts a rule to transitions with matching from/to values."""
    model_config = ConfigDict(frozen=True)

    from_value: Optional[str] = None
    to_value: Optional[str] = None

    def matches(self, from_value: Optional[str], to_value: Optional[str]) -> bool:
        if self.from_value is not None and self.from_value != from_value:
            return False
        if self.to_value is not None and self.to_value != to_value:
            return False
        return True


class RuleDefinition(BaseModel):
    """Declarative, data-only rule body.

    ``condition`` is either the JSON form of the expression tree or a
    condition string such as ``"currentWipCount <= wipLimit"``. Both are
    validated here and parsed into the typed tree by the evaluator.
    """
    model_config = ConfigDict(frozen=True)

    condition: Union[Dict[str, Any], str] = Field(
        ...,
        description="Expression tree or condition string"
    )
    message: str = Field(
        ...,
        min_length=1,
        description="Failure message template, '{field}' placeholders allowed"
    )
    pass_message: Optional[str] = Field(
        default=None,
        description="Optional message template for passing verdicts"
    )
    when: Optional[TransitionFilter] = Field(
        default=None,
        description="Only evaluate for matching transitions"
    )
    description: str = Field(default="")

    @field_validator("condition")
    @classmethod
    def _check_condition(cls, value: Union[Dict[str, Any], str]) -> Union[Dict[str, Any], str]:
        try:
            parse_condition(value)
        except RuleDefinitionError as e:
            raise ValueError(e.message) from e
        return value


class Rule(BaseModel):
    """One immutable, versioned rule belonging to a rule set."""
    model_config = ConfigDict(frozen=True)

    rule_id: str = Field(
        default_factory=lambda: f"rul_{uuid4().hex[:12]}",
        description="Unique rule identifier"
    )
    rule_set_id: str = Field(..., description="Owning rule set")
    code: str = Field(
        ...,
        min_length=1,
        description="Stable code shared by all versions, e.g. MAX_WIP"
    )
    version: int = Field(..., ge=1, description="Version number, starting at 1")
    is_active: bool = Field(default=True)
    definition: RuleDefinition
    created_by: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=_utcnow)


class ActiveVersionPointer(BaseModel):
    """Names the rule version currently enforced for (rule set, code)."""
    model_config = ConfigDict(frozen=True)

    rule_set_id: str
    rule_code: str
    rule_id: str
    version: int = Field(..., ge=1)
    revision: int = Field(
        default=1,
        ge=1,
        description="Incremented on every repoint; used for compare-and-swap"
    )
    updated_by: Optional[str] = None
    updated_at: datetime = Field(default_factory=_utcnow)


class RuleVerdict(BaseModel):
    """Outcome of one rule, as surfaced in decision reasons."""
    model_config = ConfigDict(frozen=True)

    rule_code: str
    outcome: Verdict
    message: str
    rule_set_id: Optional[str] = None
    rule_id: Optional[str] = None
    rule_version: Optional[int] = None

    @property
    def failed(self) -> bool:
        return self.outcome == Verdict.FAIL


class Decision(BaseModel):
    """Result of a governance evaluation returned to the caller."""
    outcome: DecisionOutcome = Field(..., description="ALLOW, WARN, OVERRIDE or BLOCK")
    reasons: List[RuleVerdict] = Field(default_factory=list)
    rule_set_id: Optional[str] = Field(
        default=None,
        description="Rule set that determined the outcome"
    )
    rule_set_ids: List[str] = Field(
        default_factory=list,
        description="All rule sets consulted, in scope order"
    )
    enforcement_mode: Optional[EnforcementMode] = Field(
        default=None,
        description="Enforcement mode of the deciding rule set"
    )
    evaluated_at: datetime = Field(default_factory=_utcnow)
    evaluation_id: Optional[str] = Field(
        default=None,
        description="Evaluation record id, when one was persisted"
    )

    @property
    def proceeds(self) -> bool:
        """Whether the transition may go ahead."""
        return self.outcome != DecisionOutcome.BLOCK

    @property
    def is_blocked(self) -> bool:
        return self.outcome == DecisionOutcome.BLOCK

    @property
    def has_warning(self) -> bool:
        return self.outcome == DecisionOutcome.WARN

    @property
    def failing_reasons(self) -> List[RuleVerdict]:
        return [r for r in self.reasons if r.failed]


class EvaluationRecord(BaseModel):
    """A single immutable governance evaluation audit row."""
    model_config = ConfigDict(frozen=True)

    evaluation_id: str = Field(
        default_factory=lambda: f"gev_{uuid4().hex[:12]}",
        description="Unique evaluation identifier"
    )
    sequence: int = Field(
        default=0,
        description="Monotonic per-process sequence for ordering reconstruction"
    )
    organization_id: str
    workspace_id: Optional[str] = Field(
        default=None,
        description="Owning workspace; None for organization-level entities"
    )
    entity_type: str
    entity_id: str
    transition_type: str
    from_value: Optional[str] = None
    to_value: Optional[str] = None

    # Rule consulted
    rule_set_id: Optional[str] = None
    rule_id: Optional[str] = None
    rule_version: Optional[int] = None
    enforcement_mode: Optional[EnforcementMode] = None

    # Outcome
    decision: DecisionOutcome
    reasons: List[RuleVerdict] = Field(default_factory=list)

    # Inputs
    inputs_hash: str
    inputs_snapshot: Optional[Dict[str, Any]] = None

    # Actor
    actor_user_id: str
    actor_platform_role: Optional[str] = None
    actor_workspace_role: Optional[str] = None
    override_reason: Optional[str] = None
    request_id: Optional[str] = None

    created_at: datetime = Field(default_factory=_utcnow)

    # Integrity (populated by hash-chaining stores)
    previous_hash: Optional[str] = None
    entry_hash: Optional[str] = None

    @field_validator("entity_type", "transition_type", mode="before")
    @classmethod
    def _unwrap_enums(cls, value: Any) -> Any:
        return _enum_value(value)

    def to_jsonl(self) -> str:
        """Serialize record to JSONL format."""
        return json.dumps(self.model_dump(mode="json"), default=str)

    @classmethod
    def from_jsonl(cls, line: str) -> "EvaluationRecord":
        """Deserialize record from JSONL format."""
        return cls.model_validate(json.loads(line))
