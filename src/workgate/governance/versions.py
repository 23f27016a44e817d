"""Version Resolver - pins the active version of each rule code."""

import logging
from typing import List, Optional

from workgate.common.exceptions import RuleNotConfigured
from workgate.governance.schemas import ActiveVersionPointer, Rule, RuleSet
from workgate.governance.store.base import GovernanceStore, GovernanceView

logger = logging.getLogger(__name__)


class VersionResolver:
    """Resolves rules through the active version pointer.

    Resolution is a pointer lookup plus a rule lookup, independent of how
    many historical versions exist.
    """

    def __init__(self, store: GovernanceStore):
        self.store = store

    def resolve(
        self,
        rule_set: RuleSet,
        rule_code: str,
        view: Optional[GovernanceView] = None,
    ) -> Rule:
        """Return the active rule for a code.

        Raises:
            RuleNotConfigured: If the code has no active version pointer
        """
        view = view or self.store.snapshot()
        pointer = view.get_pointer(rule_set.rule_set_id, rule_code)
        if pointer is None:
            raise RuleNotConfigured(rule_set.rule_set_id, rule_code)
        return self._load(view, pointer)

    def resolve_all(
        self,
        rule_set: RuleSet,
        view: Optional[GovernanceView] = None,
    ) -> List[Rule]:
        """Active rule of every code with a pointer in the set, ordered by code."""
        view = view or self.store.snapshot()
        return [self._load(view, pointer) for pointer in view.list_pointers(rule_set.rule_set_id)]

    def _load(self, view: GovernanceView, pointer: ActiveVersionPointer) -> Rule:
        rule = view.get_rule(pointer.rule_id)
        if rule is None:
            # Stores validate pointer targets; a dangling pointer is a broken store
            logger.error(
                f"Active pointer for {pointer.rule_code} in {pointer.rule_set_id} "
                f"references missing rule {pointer.rule_id}"
            )
            raise RuleNotConfigured(pointer.rule_set_id, pointer.rule_code)
        return rule
