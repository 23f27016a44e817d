"""Rule condition expression tree.

Conditions are data, never code. A closed set of node kinds is parsed once
from either the JSON form stored with a rule or from a condition string, and
then interpreted by the RuleEvaluator.

JSON form::

    {"field": "wipLimit"}
    {"literal": 3}
    {"op": "lte", "left": {"field": "currentWipCount"}, "right": {"field": "wipLimit"}}
    {"and": [...]}, {"or": [...]}, {"not": {...}}
    {"op": "add", "left": ..., "right": ...}
    {"present": "assigneeUserId"}

Condition strings use a restricted Python-like syntax translated node by node
from ``ast.parse``: ``currentWipCount <= wipLimit + 1``,
``actorRole in ["ADMIN", "OWNER"] and not present(blockedBy)``.
"""

import ast
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Iterator, List, Tuple, Union

from workgate.common.constants import RuleConstants
from workgate.common.exceptions import RuleDefinitionError


COMPARISON_OPS = ("eq", "ne", "lt", "lte", "gt", "gte", "in", "not_in")
ARITHMETIC_OPS = ("add", "sub", "mul", "div")

_AST_COMPARISONS = {
    ast.Eq: "eq",
    ast.NotEq: "ne",
    ast.Lt: "lt",
    ast.LtE: "lte",
    ast.Gt: "gt",
    ast.GtE: "gte",
    ast.In: "in",
    ast.NotIn: "not_in",
}

_AST_ARITHMETIC = {
    ast.Add: "add",
    ast.Sub: "sub",
    ast.Mult: "mul",
    ast.Div: "div",
}


class Expression:
    """Base class for expression nodes."""

    def children(self) -> Tuple["Expression", ...]:
        return ()

    def walk(self) -> Iterator["Expression"]:
        yield self
        for child in self.children():
            yield from child.walk()

    def required_fields(self) -> List[str]:
        """Snapshot fields that must be supplied, in reference order.

        Fields only tested with ``present`` are not required.
        """
        seen: List[str] = []
        for node in self.walk():
            if isinstance(node, FieldRef) and node.name not in seen:
                seen.append(node.name)
        return seen


@dataclass(frozen=True)
class Literal(Expression):
    value: Any


@dataclass(frozen=True)
class FieldRef(Expression):
    name: str


@dataclass(frozen=True)
class Present(Expression):
    name: str


@dataclass(frozen=True)
class Comparison(Expression):
    op: str
    left: Expression
    right: Expression

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class Arithmetic(Expression):
    op: str
    left: Expression
    right: Expression

    def children(self) -> Tuple[Expression, ...]:
        return (self.left, self.right)


@dataclass(frozen=True)
class And(Expression):
    operands: Tuple[Expression, ...]

    def children(self) -> Tuple[Expression, ...]:
        return self.operands


@dataclass(frozen=True)
class Or(Expression):
    operands: Tuple[Expression, ...]

    def children(self) -> Tuple[Expression, ...]:
        return self.operands


@dataclass(frozen=True)
class Not(Expression):
    operand: Expression

    def children(self) -> Tuple[Expression, ...]:
        return (self.operand,)


def normalize_literal(value: Any) -> Any:
    """Convert a raw literal into its evaluation form.

    Numbers become Decimal built from their string form so that 0.1 + 0.2
    compares equal to 0.3. Booleans are kept as booleans.
    """
    if value is None or isinstance(value, (bool, str)):
        return value
    if isinstance(value, (int, Decimal)):
        return Decimal(str(value))
    if isinstance(value, float):
        if not math.isfinite(value):
            raise RuleDefinitionError(f"Non-finite number {value!r} is not allowed")
        return Decimal(str(value))
    if isinstance(value, (list, tuple)):
        return tuple(normalize_literal(v) for v in value)
    raise RuleDefinitionError(f"Unsupported literal type: {type(value).__name__}")


def parse_condition(raw: Union[Dict[str, Any], str]) -> Expression:
    """Parse a stored condition (JSON object or condition string)."""
    if isinstance(raw, str):
        expression = _TextParser().parse(raw)
    elif isinstance(raw, dict):
        expression = _parse_node(raw, depth=0)
    else:
        raise RuleDefinitionError(
            f"Condition must be an object or a string, got {type(raw).__name__}"
        )

    node_count = sum(1 for _ in expression.walk())
    if node_count > RuleConstants.MAX_EXPRESSION_NODES:
        raise RuleDefinitionError(
            f"Condition has {node_count} nodes; limit is {RuleConstants.MAX_EXPRESSION_NODES}"
        )
    return expression


def _check_depth(depth: int) -> None:
    if depth > RuleConstants.MAX_EXPRESSION_DEPTH:
        raise RuleDefinitionError(
            f"Condition nesting exceeds {RuleConstants.MAX_EXPRESSION_DEPTH} levels"
        )


def _field_name(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise RuleDefinitionError(f"Field name must be a non-empty string, got {value!r}")
    return value


def _parse_node(raw: Any, depth: int) -> Expression:
    _check_depth(depth)

    if not isinstance(raw, dict):
        return Literal(normalize_literal(raw))

    if "op" in raw:
        op = raw["op"]
        extra = set(raw) - {"op", "left", "right"}
        if extra or "left" not in raw or "right" not in raw:
            raise RuleDefinitionError(
                f"Operator node '{op}' needs exactly 'left' and 'right'"
            )
        left = _parse_node(raw["left"], depth + 1)
        right = _parse_node(raw["right"], depth + 1)
        if op in COMPARISON_OPS:
            return Comparison(op, left, right)
        if op in ARITHMETIC_OPS:
            return Arithmetic(op, left, right)
        raise RuleDefinitionError(f"Unknown operator: {op!r}")

    if len(raw) != 1:
        raise RuleDefinitionError(f"Ambiguous condition node with keys {sorted(raw)}")

    kind, body = next(iter(raw.items()))
    if kind == "field":
        return FieldRef(_field_name(body))
    if kind == "literal":
        return Literal(normalize_literal(body))
    if kind == "present":
        return Present(_field_name(body))
    if kind == "not":
        return Not(_parse_node(body, depth + 1))
    if kind in ("and", "or"):
        if not isinstance(body, list) or not body:
            raise RuleDefinitionError(f"'{kind}' needs a non-empty list of conditions")
        operands = tuple(_parse_node(item, depth + 1) for item in body)
        return And(operands) if kind == "and" else Or(operands)

    raise RuleDefinitionError(f"Unknown condition node: {kind!r}")


class _TextParser:
    """Translates a condition string into the expression tree.

    Only whitelisted syntax nodes are accepted; the parsed tree is never
    compiled or executed.
    """

    def parse(self, text: str) -> Expression:
        if not text.strip():
            raise RuleDefinitionError("Condition string is empty")
        if len(text) > RuleConstants.MAX_CONDITION_LENGTH:
            raise RuleDefinitionError(
                f"Condition string exceeds {RuleConstants.MAX_CONDITION_LENGTH} characters"
            )
        try:
            tree = ast.parse(text.strip(), mode="eval")
        except SyntaxError as e:
            raise RuleDefinitionError(f"Invalid condition syntax: {e.msg}") from e
        return self._convert(tree.body, depth=0)

    def _convert(self, node: ast.AST, depth: int) -> Expression:
        _check_depth(depth)

        if isinstance(node, ast.BoolOp):
            operands = tuple(self._convert(v, depth + 1) for v in node.values)
            return And(operands) if isinstance(node.op, ast.And) else Or(operands)

        if isinstance(node, ast.UnaryOp):
            if isinstance(node.op, ast.Not):
                return Not(self._convert(node.operand, depth + 1))
            if isinstance(node.op, (ast.USub, ast.UAdd)):
                operand = self._convert(node.operand, depth + 1)
                if isinstance(node.op, ast.UAdd):
                    return operand
                if isinstance(operand, Literal) and isinstance(operand.value, Decimal):
                    return Literal(operand.value.copy_negate())
                return Arithmetic("sub", Literal(Decimal(0)), operand)

        if isinstance(node, ast.Compare):
            return self._convert_compare(node, depth)

        if isinstance(node, ast.BinOp) and type(node.op) in _AST_ARITHMETIC:
            return Arithmetic(
                _AST_ARITHMETIC[type(node.op)],
                self._convert(node.left, depth + 1),
                self._convert(node.right, depth + 1),
            )

        if isinstance(node, (ast.Name, ast.Attribute)):
            return FieldRef(self._dotted_name(node))

        if isinstance(node, ast.Constant):
            return Literal(normalize_literal(node.value))

        if isinstance(node, (ast.List, ast.Tuple)):
            values = []
            for element in node.elts:
                converted = self._convert(element, depth + 1)
                if not isinstance(converted, Literal):
                    raise RuleDefinitionError("Lists may only contain literal values")
                values.append(converted.value)
            return Literal(tuple(values))

        if isinstance(node, ast.Call):
            return self._convert_call(node)

        raise RuleDefinitionError(
            f"Unsupported syntax in condition: {type(node).__name__}"
        )

    def _convert_compare(self, node: ast.Compare, depth: int) -> Expression:
        operands = [node.left] + list(node.comparators)
        comparisons = []
        for index, op in enumerate(node.ops):
            if type(op) not in _AST_COMPARISONS:
                raise RuleDefinitionError(
                    f"Unsupported comparison operator: {type(op).__name__}"
                )
            comparisons.append(Comparison(
                _AST_COMPARISONS[type(op)],
                self._convert(operands[index], depth + 1),
                self._convert(operands[index + 1], depth + 1),
            ))
        # a < b < c means a < b and b < c
        if len(comparisons) == 1:
            return comparisons[0]
        return And(tuple(comparisons))

    def _convert_call(self, node: ast.Call) -> Expression:
        if not (isinstance(node.func, ast.Name) and node.func.id == "present"):
            raise RuleDefinitionError("Only present(field) calls are allowed in conditions")
        if node.keywords or len(node.args) != 1:
            raise RuleDefinitionError("present() takes exactly one field")
        argument = node.args[0]
        if isinstance(argument, ast.Constant) and isinstance(argument.value, str):
            return Present(_field_name(argument.value))
        if isinstance(argument, (ast.Name, ast.Attribute)):
            return Present(self._dotted_name(argument))
        raise RuleDefinitionError("present() takes a field name")

    def _dotted_name(self, node: ast.AST) -> str:
        parts = []
        while isinstance(node, ast.Attribute):
            parts.append(node.attr)
            node = node.value
        if not isinstance(node, ast.Name):
            raise RuleDefinitionError("Field references must be plain or dotted names")
        parts.append(node.id)
        return ".".join(reversed(parts))
