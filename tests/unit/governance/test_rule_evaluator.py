"""Unit tests for the RuleEvaluator."""

import pytest
from decimal import Decimal

from workgate.governance.rules.evaluator import RuleEvaluator, coerce_value, render_message
from workgate.governance.schemas import Rule, RuleDefinition, Verdict


def make_rule(condition, message="failed", code="R1", version=1, **definition):
    return Rule(
        rule_set_id="rs_test",
        code=code,
        version=version,
        definition=RuleDefinition(condition=condition, message=message, **definition),
    )


@pytest.fixture
def evaluator():
    return RuleEvaluator()


class TestVerdicts:
    """Test PASS / FAIL verdicts."""

    def test_pass(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit")
        verdict = evaluator.evaluate(rule, {"currentWipCount": 2, "wipLimit": 3})
        assert verdict.outcome == Verdict.PASS
        assert verdict.message == "passed"
        assert verdict.rule_code == "R1"
        assert verdict.rule_version == 1
        assert verdict.rule_id == rule.rule_id

    def test_fail_renders_message(self, evaluator):
        rule = make_rule(
            "currentWipCount <= wipLimit",
            message="WIP limit of {wipLimit} reached ({currentWipCount} in progress)",
        )
        verdict = evaluator.evaluate(rule, {"currentWipCount": 4, "wipLimit": 3})
        assert verdict.outcome == Verdict.FAIL
        assert verdict.message == "WIP limit of 3 reached (4 in progress)"

    def test_pass_message_template(self, evaluator):
        rule = make_rule("x > 0", pass_message="{ruleCode} ok with x={x}")
        verdict = evaluator.evaluate(rule, {"x": 5})
        assert verdict.message == "R1 ok with x=5"

    def test_unknown_placeholder_left_in_place(self, evaluator):
        rule = make_rule("x > 0", message="bad {nothere}")
        verdict = evaluator.evaluate(rule, {"x": 0})
        assert verdict.message == "bad {nothere}"

    def test_v2_condition_with_arithmetic(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit + 1", version=2)
        verdict = evaluator.evaluate(rule, {"currentWipCount": 4, "wipLimit": 3})
        assert verdict.outcome == Verdict.PASS

    def test_json_condition(self, evaluator):
        rule = make_rule({
            "op": "gte",
            "left": {"field": "approvalCount"},
            "right": {"field": "requiredApprovals"},
        })
        assert evaluator.evaluate(rule, {"approvalCount": 2, "requiredApprovals": 2}).outcome == Verdict.PASS
        assert evaluator.evaluate(rule, {"approvalCount": 1, "requiredApprovals": 2}).outcome == Verdict.FAIL


class TestFailClosed:
    """Test that evaluation problems fail closed."""

    def test_missing_field(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit")
        verdict = evaluator.evaluate(rule, {"wipLimit": 3})
        assert verdict.outcome == Verdict.FAIL
        assert verdict.message == "required input missing: currentWipCount"

    def test_missing_fields_listed_in_reference_order(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit")
        verdict = evaluator.evaluate(rule, {})
        assert verdict.message == "required input missing: currentWipCount, wipLimit"

    def test_type_mismatch(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit")
        verdict = evaluator.evaluate(rule, {"currentWipCount": "four", "wipLimit": 3})
        assert verdict.outcome == Verdict.FAIL
        assert verdict.message.startswith("rule evaluation failed:")

    def test_null_value_is_not_comparable(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit")
        verdict = evaluator.evaluate(rule, {"currentWipCount": None, "wipLimit": 3})
        assert verdict.outcome == Verdict.FAIL

    def test_division_by_zero(self, evaluator):
        rule = make_rule("done / total >= 0.5")
        verdict = evaluator.evaluate(rule, {"done": 1, "total": 0})
        assert verdict.outcome == Verdict.FAIL
        assert "division by zero" in verdict.message

    def test_non_boolean_result(self, evaluator):
        rule = make_rule("wipLimit + 1")
        verdict = evaluator.evaluate(rule, {"wipLimit": 3})
        assert verdict.outcome == Verdict.FAIL
        assert "not boolean" in verdict.message

    def test_boolean_is_not_a_number(self, evaluator):
        rule = make_rule("flag > 0")
        verdict = evaluator.evaluate(rule, {"flag": True})
        assert verdict.outcome == Verdict.FAIL

    def test_unsupported_input_type(self, evaluator):
        rule = make_rule("x == 1")
        verdict = evaluator.evaluate(rule, {"x": {"nested": 1}})
        assert verdict.outcome == Verdict.FAIL


class TestSemantics:
    """Test value semantics of the interpreter."""

    def test_decimal_arithmetic_is_exact(self, evaluator):
        rule = make_rule("a + b == 0.3")
        assert evaluator.evaluate(rule, {"a": 0.1, "b": 0.2}).outcome == Verdict.PASS

    def test_large_integer_arithmetic_is_not_rounded(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit + 1")
        snapshot = {"currentWipCount": 10**30 + 1, "wipLimit": 10**30}
        assert evaluator.evaluate(rule, snapshot).outcome == Verdict.PASS
        assert evaluator.evaluate(
            make_rule("currentWipCount <= wipLimit"), snapshot
        ).outcome == Verdict.FAIL

    def test_division_is_exact(self, evaluator):
        rule = make_rule("x / 3 * 3 == x")
        assert evaluator.evaluate(rule, {"x": 1}).outcome == Verdict.PASS
        assert evaluator.evaluate(make_rule("1 / 3 < 0.3334"), {}).outcome == Verdict.PASS

    def test_negative_literal_is_exact(self, evaluator):
        rule = make_rule("x + -1000000000000000000000000000001 == 0")
        assert evaluator.evaluate(rule, {"x": 10**30 + 1}).outcome == Verdict.PASS

    def test_int_and_float_compare_equal(self, evaluator):
        rule = make_rule("a == b")
        assert evaluator.evaluate(rule, {"a": 3, "b": 3.0}).outcome == Verdict.PASS

    def test_true_is_not_one(self, evaluator):
        rule = make_rule("flag == 1")
        assert evaluator.evaluate(rule, {"flag": True}).outcome == Verdict.FAIL

    def test_membership(self, evaluator):
        rule = make_rule('role in ["OWNER", "ADMIN"]')
        assert evaluator.evaluate(rule, {"role": "ADMIN"}).outcome == Verdict.PASS
        assert evaluator.evaluate(rule, {"role": "MEMBER"}).outcome == Verdict.FAIL

    def test_membership_in_snapshot_list(self, evaluator):
        rule = make_rule("status not in allowed")
        verdict = evaluator.evaluate(rule, {"status": "DONE", "allowed": ["TODO", "DOING"]})
        assert verdict.outcome == Verdict.PASS

    def test_present(self, evaluator):
        rule = make_rule({"present": "assigneeUserId"})
        assert evaluator.evaluate(rule, {"assigneeUserId": "u1"}).outcome == Verdict.PASS
        assert evaluator.evaluate(rule, {"assigneeUserId": ""}).outcome == Verdict.FAIL
        assert evaluator.evaluate(rule, {"assigneeUserId": None}).outcome == Verdict.FAIL
        assert evaluator.evaluate(rule, {}).outcome == Verdict.FAIL

    def test_string_ordering(self, evaluator):
        rule = make_rule("dueDate <= '2026-12-31'")
        assert evaluator.evaluate(rule, {"dueDate": "2026-10-18"}).outcome == Verdict.PASS


class TestEvaluateMany:
    """Test independent evaluation of several rules."""

    def test_no_short_circuit(self, evaluator):
        rules = [
            make_rule("a > 0", code="A"),
            make_rule("b > 0", code="B"),
            make_rule("c > 0", code="C"),
        ]
        verdicts = evaluator.evaluate_many(rules, {"a": 0, "c": 1})
        assert [v.rule_code for v in verdicts] == ["A", "B", "C"]
        assert [v.outcome for v in verdicts] == [Verdict.FAIL, Verdict.FAIL, Verdict.PASS]

    def test_deterministic(self, evaluator):
        rule = make_rule("currentWipCount <= wipLimit", message="{currentWipCount}")
        snapshot = {"currentWipCount": 4, "wipLimit": 3}
        assert evaluator.evaluate(rule, snapshot) == evaluator.evaluate(rule, snapshot)

    def test_compiled_once_per_rule(self, evaluator):
        rule = make_rule("x > 0")
        assert evaluator.compile(rule) is evaluator.compile(rule)

    def test_not_configured(self):
        verdict = RuleEvaluator.not_configured("MAX_WIP")
        assert verdict.outcome == Verdict.NOT_CONFIGURED
        assert verdict.message == "rule not configured: MAX_WIP"
        assert not verdict.failed


class TestHelpers:
    """Test module helpers."""

    def test_coerce_value(self):
        assert coerce_value(3) == Decimal("3")
        assert coerce_value(0.1) == Decimal("0.1")
        assert coerce_value(["a", 1]) == ("a", Decimal("1"))
        assert coerce_value(True) is True

    def test_render_message_ignores_bad_format(self):
        assert render_message("{a!z}", {"a": 1}) == "{a!z}"

    def test_render_message_substitutes_plain_names_only(self):
        values = {"note": "hi", "items": ["a"]}
        assert render_message("{note.__class__.__mro__}", values) == "{note.__class__.__mro__}"
        assert render_message("{items[0]}", values) == "{items[0]}"
        assert render_message("say {note}", values) == "say hi"
