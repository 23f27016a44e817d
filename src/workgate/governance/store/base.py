"""Governance Store - persistence contract for rule sets, rules and pointers.

Design principles:
- Evaluation reads go through a point-in-time read view, so resolving the
  rule set and resolving rule versions can never disagree within one call
- Rules are insert-only; the active version pointer is the only mutable row
  and is updated with compare-and-swap on its revision
- Rule sets are deactivated, never deleted
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from workgate.governance.schemas import (
    ActiveVersionPointer,
    Rule,
    RuleSet,
    ScopeType,
)


class GovernanceView(ABC):
    """Read-only, point-in-time view of governance configuration."""

    @property
    @abstractmethod
    def revision(self) -> int:
        """Store revision this view was taken at."""

    @abstractmethod
    def find_rule_sets(
        self,
        scope_type: ScopeType,
        scope_id: Optional[str],
        entity_type: str,
        active_only: bool = True,
    ) -> List[RuleSet]:
        """Rule sets for one scope target and entity type, newest update first."""

    @abstractmethod
    def get_rule_set(self, rule_set_id: str) -> Optional[RuleSet]:
        pass

    @abstractmethod
    def get_pointer(self, rule_set_id: str, rule_code: str) -> Optional[ActiveVersionPointer]:
        """Point lookup of the active version pointer."""

    @abstractmethod
    def list_pointers(self, rule_set_id: str) -> List[ActiveVersionPointer]:
        """All pointers of a rule set, ordered by rule code."""

    @abstractmethod
    def get_rule(self, rule_id: str) -> Optional[Rule]:
        pass

    @abstractmethod
    def find_rule(self, rule_set_id: str, rule_code: str, version: int) -> Optional[Rule]:
        pass

    @abstractmethod
    def latest_version(self, rule_set_id: str, rule_code: str) -> int:
        """Highest stored version for (rule set, code), 0 if none."""


class GovernanceStore(ABC):
    """Abstract base class for governance configuration storage backends."""

    @abstractmethod
    def snapshot(self) -> GovernanceView:
        """Take a consistent read view."""

    @abstractmethod
    def save_rule_set(self, rule_set: RuleSet) -> RuleSet:
        """Insert or replace a rule set."""

    @abstractmethod
    def update_rule_set(self, rule_set_id: str, changes: Dict[str, Any]) -> RuleSet:
        """Apply field changes to the stored rule set atomically.

        Changes are applied to the current row, not to a copy the caller read
        earlier, so concurrent updates of different fields both survive.

        Raises:
            RuleSetNotFound: If the rule set does not exist
        """

    @abstractmethod
    def add_rule(self, rule: Rule) -> Rule:
        """Insert an immutable rule version.

        Raises:
            DuplicateRuleVersion: If (rule set, code, version) already exists
            ValidationError: If the rule set does not exist
        """

    @abstractmethod
    def set_pointer(
        self,
        rule_set_id: str,
        rule_code: str,
        rule_id: str,
        expected_revision: Optional[int],
        updated_by: Optional[str] = None,
    ) -> ActiveVersionPointer:
        """Atomically repoint the active version of a rule code.

        Args:
            expected_revision: Revision the caller last read, or None when
                the caller expects no pointer to exist yet

        Raises:
            ConcurrentPointerConflict: If the stored revision differs
            InvalidPointerTarget: If the rule belongs to another set or code
        """
