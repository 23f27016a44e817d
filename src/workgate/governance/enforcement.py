"""Enforcement Policy - turns rule verdicts and an enforcement mode into a decision."""

from typing import Iterable, Optional, Sequence

from workgate.common.constants import OverrideConstants
from workgate.governance.schemas import (
    DecisionOutcome,
    EnforcementMode,
    RuleVerdict,
    Verdict,
)


# Higher is more restrictive
RESTRICTIVENESS = {
    DecisionOutcome.ALLOW: 0,
    DecisionOutcome.WARN: 1,
    DecisionOutcome.OVERRIDE: 2,
    DecisionOutcome.BLOCK: 3,
}


class EnforcementPolicy:
    """Reduces verdicts to decisions.

    Per rule set:
    - OFF: always ALLOW (verdicts are still recorded)
    - WARN: WARN if any rule failed
    - BLOCK: BLOCK if any rule failed
    - ADMIN_OVERRIDE: BLOCK if any rule failed, unless an authorised
      override was supplied, in which case OVERRIDE

    NOT_CONFIGURED verdicts are surfaced in reasons but are not failures.
    """

    def __init__(
        self,
        override_platform_roles: Sequence[str] = OverrideConstants.PLATFORM_ROLES,
        override_workspace_roles: Sequence[str] = OverrideConstants.WORKSPACE_ROLES,
    ):
        self.override_platform_roles = tuple(override_platform_roles)
        self.override_workspace_roles = tuple(override_workspace_roles)

    def decide(
        self,
        verdicts: Iterable[RuleVerdict],
        mode: EnforcementMode,
        override_granted: bool = False,
    ) -> DecisionOutcome:
        """Decision for one rule set."""
        failed = any(v.outcome == Verdict.FAIL for v in verdicts)
        if not failed or mode == EnforcementMode.OFF:
            return DecisionOutcome.ALLOW
        if mode == EnforcementMode.WARN:
            return DecisionOutcome.WARN
        if mode == EnforcementMode.ADMIN_OVERRIDE and override_granted:
            return DecisionOutcome.OVERRIDE
        return DecisionOutcome.BLOCK

    def combine(self, outcomes: Iterable[DecisionOutcome]) -> DecisionOutcome:
        """Most restrictive outcome wins: BLOCK > OVERRIDE > WARN > ALLOW."""
        return max(outcomes, key=RESTRICTIVENESS.__getitem__, default=DecisionOutcome.ALLOW)

    def can_override(
        self,
        platform_role: Optional[str],
        workspace_role: Optional[str],
        override_reason: Optional[str],
    ) -> bool:
        """Whether an actor may push a failing ADMIN_OVERRIDE rule set through."""
        if not override_reason or not override_reason.strip():
            return False
        return (
            platform_role in self.override_platform_roles
            or workspace_role in self.override_workspace_roles
        )
