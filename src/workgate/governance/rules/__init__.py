"""Rule conditions - expression tree and parser.

The RuleEvaluator lives in ``workgate.governance.rules.evaluator``.
"""

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

__all__ = [
    "And",
    "Arithmetic",
    "Comparison",
    "Expression",
    "FieldRef",
    "Literal",
    "Not",
    "Or",
    "Present",
    "parse_condition",
]
