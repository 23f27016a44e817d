"""Unit tests for governance schemas."""

import pytest
from pydantic import ValidationError

from workgate.governance.schemas import (
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
    Verdict,
)


class TestRuleSet:
    """Test RuleSet scope validation."""

    def test_system_scope(self):
        rs = RuleSet(scope_type=ScopeType.SYSTEM, entity_type="task", name="Sys")
        assert rs.rule_set_id.startswith("rs_")
        assert rs.scope_id is None
        assert rs.scope_key == ("SYSTEM", None, "task")
        assert rs.enforcement_mode == EnforcementMode.WARN
        assert rs.is_active

    def test_system_scope_rejects_organization(self):
        with pytest.raises(ValidationError):
            RuleSet(scope_type="SYSTEM", organization_id="org_1", entity_type="task", name="x")

    def test_org_scope_requires_organization(self):
        with pytest.raises(ValidationError):
            RuleSet(scope_type="ORG", entity_type="task", name="x")

    def test_workspace_scope_requires_workspace(self):
        with pytest.raises(ValidationError):
            RuleSet(scope_type="WORKSPACE", organization_id="org_1", entity_type="task", name="x")

    def test_workspace_scope_id(self):
        rs = RuleSet(
            scope_type="WORKSPACE", organization_id="org_1", workspace_id="ws_1",
            entity_type=EntityType.TASK, name="x",
        )
        assert rs.scope_id == "ws_1"
        assert rs.entity_type == "task"


class TestRuleDefinition:
    """Test RuleDefinition validation."""

    def test_string_condition(self):
        definition = RuleDefinition(condition="a <= b", message="m")
        assert definition.condition == "a <= b"

    def test_invalid_condition_rejected(self):
        with pytest.raises(ValidationError, match="Unsupported syntax"):
            RuleDefinition(condition="a[0] <= b", message="m")

    def test_empty_message_rejected(self):
        with pytest.raises(ValidationError):
            RuleDefinition(condition="a <= b", message="")

    def test_when_filter(self):
        definition = RuleDefinition(
            condition="a <= b", message="m", when={"to_value": "IN_PROGRESS"},
        )
        assert definition.when.matches("TODO", "IN_PROGRESS")
        assert not definition.when.matches("TODO", "DONE")


class TestRule:
    """Test Rule immutability."""

    def test_rule_is_frozen(self):
        rule = Rule(
            rule_set_id="rs_1", code="MAX_WIP", version=1,
            definition=RuleDefinition(condition="a <= b", message="m"),
        )
        assert rule.rule_id.startswith("rul_")
        with pytest.raises(ValidationError):
            rule.version = 2

    def test_version_starts_at_one(self):
        with pytest.raises(ValidationError):
            Rule(
                rule_set_id="rs_1", code="MAX_WIP", version=0,
                definition=RuleDefinition(condition="a <= b", message="m"),
            )


class TestTransitionFilter:
    """Test TransitionFilter matching."""

    def test_empty_filter_matches_everything(self):
        assert TransitionFilter().matches(None, None)

    def test_from_and_to(self):
        f = TransitionFilter(from_value="TODO", to_value="DOING")
        assert f.matches("TODO", "DOING")
        assert not f.matches("DONE", "DOING")


class TestDecision:
    """Test Decision helpers."""

    def test_blocked(self):
        decision = Decision(
            outcome=DecisionOutcome.BLOCK,
            reasons=[
                RuleVerdict(rule_code="A", outcome=Verdict.FAIL, message="bad"),
                RuleVerdict(rule_code="B", outcome=Verdict.PASS, message="ok"),
            ],
        )
        assert decision.is_blocked
        assert not decision.proceeds
        assert [r.rule_code for r in decision.failing_reasons] == ["A"]

    def test_override_proceeds(self):
        assert Decision(outcome=DecisionOutcome.OVERRIDE).proceeds


class TestEvaluationRecord:
    """Test EvaluationRecord serialization."""

    def test_jsonl_round_trip(self):
        record = EvaluationRecord(
            organization_id="org_1",
            workspace_id="ws_1",
            entity_type=EntityType.TASK,
            entity_id="task_1",
            transition_type="STATUS_CHANGE",
            decision=DecisionOutcome.WARN,
            reasons=[RuleVerdict(rule_code="A", outcome=Verdict.FAIL, message="bad")],
            inputs_hash="0123456789abcdef",
            inputs_snapshot={"a": 1},
            actor_user_id="user_1",
        )
        restored = EvaluationRecord.from_jsonl(record.to_jsonl())
        assert restored == record
        assert restored.evaluation_id.startswith("gev_")
        assert restored.entity_type == "task"
