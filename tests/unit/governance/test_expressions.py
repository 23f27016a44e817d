"""Unit tests for rule condition parsing."""

import pytest
from decimal import Decimal

from workgate.common.exceptions import RuleDefinitionError
from workgate.governance.rules.expressions import (
    And,
    Arithmetic,
    Comparison,
    FieldRef,
    Literal,
    Not,
    Or,
    Present,
    parse_condition,
)


class TestJsonConditions:
    """Test parsing the JSON form of conditions."""

    def test_comparison_of_fields(self):
        expr = parse_condition({
            "op": "lte",
            "left": {"field": "currentWipCount"},
            "right": {"field": "wipLimit"},
        })
        assert expr == Comparison("lte", FieldRef("currentWipCount"), FieldRef("wipLimit"))

    def test_non_object_operand_is_literal(self):
        expr = parse_condition({"op": "eq", "left": {"field": "status"}, "right": "DONE"})
        assert expr.right == Literal("DONE")

    def test_numbers_become_decimal(self):
        expr = parse_condition({"op": "gt", "left": {"field": "x"}, "right": 0.1})
        assert expr.right == Literal(Decimal("0.1"))

    def test_booleans_stay_booleans(self):
        expr = parse_condition({"literal": True})
        assert expr == Literal(True)

    def test_list_literal_becomes_tuple(self):
        expr = parse_condition({"op": "in", "left": {"field": "role"}, "right": ["A", "B"]})
        assert expr.right == Literal(("A", "B"))

    def test_boolean_nodes(self):
        expr = parse_condition({
            "and": [
                {"present": "assigneeUserId"},
                {"or": [{"literal": True}, {"not": {"literal": False}}]},
            ]
        })
        assert isinstance(expr, And)
        assert expr.operands[0] == Present("assigneeUserId")
        assert isinstance(expr.operands[1], Or)
        assert isinstance(expr.operands[1].operands[1], Not)

    def test_arithmetic_node(self):
        expr = parse_condition({
            "op": "lte",
            "left": {"field": "currentWipCount"},
            "right": {"op": "add", "left": {"field": "wipLimit"}, "right": 1},
        })
        assert expr.right == Arithmetic("add", FieldRef("wipLimit"), Literal(Decimal("1")))

    def test_unknown_operator_rejected(self):
        with pytest.raises(RuleDefinitionError, match="Unknown operator"):
            parse_condition({"op": "like", "left": 1, "right": 2})

    def test_operator_without_right_rejected(self):
        with pytest.raises(RuleDefinitionError):
            parse_condition({"op": "eq", "left": 1})

    def test_ambiguous_node_rejected(self):
        with pytest.raises(RuleDefinitionError, match="Ambiguous"):
            parse_condition({"field": "a", "literal": 1})

    def test_empty_and_rejected(self):
        with pytest.raises(RuleDefinitionError):
            parse_condition({"and": []})

    def test_non_finite_literal_rejected(self):
        with pytest.raises(RuleDefinitionError):
            parse_condition({"literal": float("nan")})

    def test_depth_limit(self):
        node = {"literal": True}
        for _ in range(40):
            node = {"not": node}
        with pytest.raises(RuleDefinitionError, match="nesting"):
            parse_condition(node)

    def test_node_count_limit(self):
        node = {"and": [{"literal": True}] * 300}
        with pytest.raises(RuleDefinitionError, match="nodes"):
            parse_condition(node)

    def test_condition_must_be_object_or_string(self):
        with pytest.raises(RuleDefinitionError):
            parse_condition(42)


class TestConditionStrings:
    """Test parsing condition strings."""

    def test_simple_comparison(self):
        expr = parse_condition("currentWipCount <= wipLimit")
        assert expr == Comparison("lte", FieldRef("currentWipCount"), FieldRef("wipLimit"))

    def test_arithmetic(self):
        expr = parse_condition("currentWipCount <= wipLimit + 1")
        assert expr == Comparison(
            "lte",
            FieldRef("currentWipCount"),
            Arithmetic("add", FieldRef("wipLimit"), Literal(Decimal("1"))),
        )

    def test_chained_comparison_becomes_and(self):
        expr = parse_condition("0 <= progress <= 100")
        assert isinstance(expr, And)
        assert len(expr.operands) == 2

    def test_membership_and_present(self):
        expr = parse_condition('role in ["ADMIN", "OWNER"] and not present(blockedBy)')
        assert isinstance(expr, And)
        assert expr.operands[0] == Comparison("in", FieldRef("role"), Literal(("ADMIN", "OWNER")))
        assert expr.operands[1] == Not(Present("blockedBy"))

    def test_negative_number(self):
        expr = parse_condition("balance >= -5")
        assert expr.right == Literal(Decimal("-5"))

    def test_dotted_field_name(self):
        expr = parse_condition("task.priority == 'HIGH'")
        assert expr.left == FieldRef("task.priority")

    def test_function_calls_rejected(self):
        with pytest.raises(RuleDefinitionError, match="present"):
            parse_condition("__import__('os').system('true')")

    def test_subscripts_rejected(self):
        with pytest.raises(RuleDefinitionError, match="Unsupported syntax"):
            parse_condition("items[0] == 1")

    def test_lambda_rejected(self):
        with pytest.raises(RuleDefinitionError):
            parse_condition("(lambda: True)()")

    def test_syntax_error(self):
        with pytest.raises(RuleDefinitionError, match="syntax"):
            parse_condition("a <=")

    def test_empty_string(self):
        with pytest.raises(RuleDefinitionError, match="empty"):
            parse_condition("   ")


class TestRequiredFields:
    """Test required field discovery."""

    def test_reference_order_without_duplicates(self):
        expr = parse_condition("b > a and a > c")
        assert expr.required_fields() == ["b", "a", "c"]

    def test_present_fields_are_not_required(self):
        expr = parse_condition("present(assignee) or priority == 'LOW'")
        assert expr.required_fields() == ["priority"]
