"""Rule Evaluator - interprets rule conditions against an input snapshot."""

import logging
import math
import re
import threading
from decimal import Decimal
from fractions import Fraction
from typing import Any, Dict, Iterable, List, Mapping, Optional

from workgate.common.constants import RuleConstants
from workgate.common.exceptions import MissingInputField, RuleEvaluationError
from workgate.governance.rules.expressions import (
    And,
    Arithmetic,
    Comparison,
    Expression,
    FieldRef,
    Literal,
    Not,
    Or,
    Present,
    parse_condition,
)
from workgate.governance.schemas import Rule, RuleVerdict, Verdict

logger = logging.getLogger(__name__)


_PLACEHOLDER = re.compile(r"\{([A-Za-z_][A-Za-z0-9_]*)\}")


def render_message(template: str, values: Mapping[str, Any]) -> str:
    """Interpolate plain ``{field}`` placeholders from the snapshot.

    Only bare names are substituted. Attribute and index lookups such as
    ``{x.attr}`` or ``{x[0]}`` are left as written, as are unknown names.
    """
    def substitute(match: "re.Match") -> str:
        name = match.group(1)
        if name not in values:
            return match.group(0)
        return str(values[name])

    return _PLACEHOLDER.sub(substitute, template)


def coerce_value(value: Any) -> Any:
    """Bring a snapshot value into evaluation form (numbers as Decimal)."""
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise RuleEvaluationError(f"Non-finite number {value} in input")
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise RuleEvaluationError(f"Non-finite number {value} in input")
        return Decimal(str(value))
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(coerce_value(v) for v in value)
    raise RuleEvaluationError(f"Unsupported input type: {type(value).__name__}")


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (Decimal, Fraction)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, tuple):
        return "list"
    return type(value).__name__


def _is_number(value: Any) -> bool:
    return isinstance(value, (Decimal, Fraction))


def _exact(value: Any) -> Any:
    """Numbers as Fraction so arithmetic and comparison never round."""
    if _is_number(value):
        return Fraction(value)
    return value


class RuleEvaluator:
    """Evaluates resolved rules against a flat snapshot of named values.

    Rule definitions are parsed once per rule id; rules are immutable so the
    parsed tree can be reused for the lifetime of the evaluator.
    """

    def __init__(self):
        self._compiled: Dict[str, Expression] = {}
        self._lock = threading.Lock()

    def compile(self, rule: Rule) -> Expression:
        """Return the parsed expression tree for a rule."""
        with self._lock:
            expression = self._compiled.get(rule.rule_id)
        if expression is None:
            expression = parse_condition(rule.definition.condition)
            with self._lock:
                self._compiled[rule.rule_id] = expression
        return expression

    def evaluate(self, rule: Rule, snapshot: Mapping[str, Any]) -> RuleVerdict:
        """Evaluate one rule.

        Missing fields, type errors and non-boolean results fail closed.
        """
        expression = self.compile(rule)

        missing = [name for name in expression.required_fields() if name not in snapshot]
        if missing:
            error = MissingInputField(missing)
            logger.debug(f"Rule {rule.code} v{rule.version} failed closed: {error.message}")
            return self._verdict(rule, Verdict.FAIL, error.message)

        try:
            result = self._interpret(expression, snapshot)
        except RuleEvaluationError as e:
            logger.warning(
                f"Rule {rule.code} v{rule.version} could not be evaluated: {e.message}"
            )
            return self._verdict(rule, Verdict.FAIL, f"rule evaluation failed: {e.message}")

        if not isinstance(result, bool):
            return self._verdict(
                rule,
                Verdict.FAIL,
                f"rule evaluation failed: condition produced {_type_name(result)}, not boolean",
            )

        template_values = {"ruleCode": rule.code, "ruleVersion": rule.version, **snapshot}
        if result:
            message = rule.definition.pass_message
            return self._verdict(
                rule,
                Verdict.PASS,
                render_message(message, template_values) if message else "passed",
            )
        return self._verdict(
            rule, Verdict.FAIL, render_message(rule.definition.message, template_values)
        )

    def evaluate_many(
        self, rules: Iterable[Rule], snapshot: Mapping[str, Any]
    ) -> List[RuleVerdict]:
        """Evaluate every rule independently; a failure never skips the rest."""
        return [self.evaluate(rule, snapshot) for rule in rules]

    @staticmethod
    def not_configured(rule_code: str, rule_set_id: Optional[str] = None) -> RuleVerdict:
        """Verdict for a requested code that has no active version."""
        return RuleVerdict(
            rule_code=rule_code,
            outcome=Verdict.NOT_CONFIGURED,
            message=f"{RuleConstants.NOT_CONFIGURED_PREFIX}: {rule_code}",
            rule_set_id=rule_set_id,
        )

    def _verdict(self, rule: Rule, outcome: Verdict, message: str) -> RuleVerdict:
        return RuleVerdict(
            rule_code=rule.code,
            outcome=outcome,
            message=message,
            rule_set_id=rule.rule_set_id,
            rule_id=rule.rule_id,
            rule_version=rule.version,
        )

    # ------------------------------------------------------------------
    # Interpreter
    # ------------------------------------------------------------------

    def _interpret(self, node: Expression, snapshot: Mapping[str, Any]) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, FieldRef):
            return coerce_value(snapshot[node.name])

        if isinstance(node, Present):
            value = snapshot.get(node.name)
            if value is None:
                return False
            if isinstance(value, (str, list, tuple, set, frozenset, dict)):
                return len(value) > 0
            return True

        if isinstance(node, Comparison):
            return self._compare(
                node.op,
                self._interpret(node.left, snapshot),
                self._interpret(node.right, snapshot),
            )

        if isinstance(node, Arithmetic):
            return self._arithmetic(
                node.op,
                self._interpret(node.left, snapshot),
                self._interpret(node.right, snapshot),
            )

        if isinstance(node, And):
            for operand in node.operands:
                if not self._boolean(operand, snapshot, "and"):
                    return False
            return True

        if isinstance(node, Or):
            for operand in node.operands:
                if self._boolean(operand, snapshot, "or"):
                    return True
            return False

        if isinstance(node, Not):
            return not self._boolean(node.operand, snapshot, "not")

        raise RuleEvaluationError(f"Unknown expression node: {type(node).__name__}")

    def _boolean(self, node: Expression, snapshot: Mapping[str, Any], context: str) -> bool:
        value = self._interpret(node, snapshot)
        if not isinstance(value, bool):
            raise RuleEvaluationError(
                f"'{context}' operand must be boolean, got {_type_name(value)}"
            )
        return value

    def _compare(self, op: str, left: Any, right: Any) -> bool:
        if op == "eq":
            return self._equal(left, right)
        if op == "ne":
            return not self._equal(left, right)

        if op in ("in", "not_in"):
            if not isinstance(right, tuple):
                raise RuleEvaluationError(
                    f"'{op}' needs a list on the right, got {_type_name(right)}"
                )
            found = any(self._equal(left, item) for item in right)
            return found if op == "in" else not found

        left, right = _exact(left), _exact(right)
        comparable = (
            (_is_number(left) and _is_number(right))
            or (isinstance(left, str) and isinstance(right, str))
        )
        if not comparable:
            raise RuleEvaluationError(
                f"cannot compare {_type_name(left)} with {_type_name(right)} using '{op}'"
            )
        if op == "lt":
            return left < right
        if op == "lte":
            return left <= right
        if op == "gt":
            return left > right
        if op == "gte":
            return left >= right
        raise RuleEvaluationError(f"Unknown comparison operator: {op}")

    @staticmethod
    def _equal(left: Any, right: Any) -> bool:
        # True == Decimal(1) must not hold
        if isinstance(left, bool) != isinstance(right, bool):
            return False
        return _exact(left) == _exact(right)

    def _arithmetic(self, op: str, left: Any, right: Any) -> Fraction:
        if not (_is_number(left) and _is_number(right)):
            raise RuleEvaluationError(
                f"'{op}' needs numbers, got {_type_name(left)} and {_type_name(right)}"
            )
        left, right = Fraction(left), Fraction(right)
        if op == "add":
            return left + right
        if op == "sub":
            return left - right
        if op == "mul":
            return left * right
        if op == "div":
            if right == 0:
                raise RuleEvaluationError("division by zero")
            return left / right
        raise RuleEvaluationError(f"Unknown arithmetic operator: {op}")
