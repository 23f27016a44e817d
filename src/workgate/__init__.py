"""WorkGate - Governance rule engine for workspace entity transitions."""

__version__ = "0.1.0"
__author__ = "WorkGate Team"

from workgate.governance.engine import GovernanceEngine
from workgate.governance.schemas import (
    Decision,
    DecisionOutcome,
    EnforcementMode,
    RuleVerdict,
    Verdict,
)

__all__ = [
    "GovernanceEngine",
    "Decision",
    "DecisionOutcome",
    "EnforcementMode",
    "RuleVerdict",
    "Verdict",
]
