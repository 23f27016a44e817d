"""Rule Set Registry - finds the active rule sets that apply to a transition.

Lookup order is WORKSPACE, then ORG, then SYSTEM. Scope order only decides
the order of reasons; the final decision is decided by restrictiveness in
the EnforcementPolicy.
"""

import logging
import threading
from collections import OrderedDict
from typing import List, Optional, Tuple

from workgate.common.constants import CacheConstants
from workgate.governance.schemas import RuleSet, ScopeType
from workgate.governance.store.base import GovernanceStore, GovernanceView

logger = logging.getLogger(__name__)

CacheKey = Tuple[str, Optional[str], str]


class RuleSetCache:
    """Read-through cache of the active rule set per (scope, scope id, entity type).

    Entries are tagged with the store revision they were read at and only
    served to a view of the same revision. Administrative operations also
    invalidate affected keys explicitly.
    """

    def __init__(self, max_size: int = CacheConstants.RULE_SET_CACHE_SIZE):
        self.max_size = max_size
        self._entries: "OrderedDict[CacheKey, Tuple[int, Optional[RuleSet]]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def get(self, key: CacheKey, revision: int) -> Tuple[bool, Optional[RuleSet]]:
        """Return (found, rule set). A cached None means 'no active set'."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry[0] != revision:
                self._misses += 1
                return False, None
            self._entries.move_to_end(key)
            self._hits += 1
            return True, entry[1]

    def put(self, key: CacheKey, revision: int, rule_set: Optional[RuleSet]) -> None:
        with self._lock:
            current = self._entries.get(key)
            if current is not None and current[0] > revision:
                return
            self._entries[key] = (revision, rule_set)
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def invalidate(self, key: Optional[CacheKey] = None) -> None:
        """Drop one key, or everything when key is None."""
        with self._lock:
            if key is None:
                self._entries.clear()
            else:
                self._entries.pop(key, None)

    def get_stats(self) -> dict:
        with self._lock:
            return {
                "entries": len(self._entries),
                "max_size": self.max_size,
                "hits": self._hits,
                "misses": self._misses,
            }


class RuleSetRegistry:
    """Resolves applicable, active rule sets for an entity type and scope."""

    def __init__(self, store: GovernanceStore, cache: Optional[RuleSetCache] = None):
        self.store = store
        self.cache = cache

    def applicable(
        self,
        entity_type: str,
        organization_id: Optional[str],
        workspace_id: Optional[str],
        view: Optional[GovernanceView] = None,
    ) -> List[RuleSet]:
        """Active rule sets in scope order: workspace, organization, system.

        An empty list means no governance is configured, which callers must
        treat as ALLOW.
        """
        view = view or self.store.snapshot()
        scopes = []
        if workspace_id:
            scopes.append((ScopeType.WORKSPACE, workspace_id))
        if organization_id:
            scopes.append((ScopeType.ORG, organization_id))
        scopes.append((ScopeType.SYSTEM, None))

        rule_sets = []
        for scope_type, scope_id in scopes:
            rule_set = self._lookup(view, scope_type, scope_id, entity_type)
            if rule_set is not None:
                rule_sets.append(rule_set)
        return rule_sets

    def _lookup(
        self,
        view: GovernanceView,
        scope_type: ScopeType,
        scope_id: Optional[str],
        entity_type: str,
    ) -> Optional[RuleSet]:
        key = (scope_type.value, scope_id, entity_type)
        if self.cache is not None:
            found, rule_set = self.cache.get(key, view.revision)
            if found:
                return rule_set

        candidates = view.find_rule_sets(scope_type, scope_id, entity_type, active_only=True)
        rule_set = candidates[0] if candidates else None
        if len(candidates) > 1:
            logger.warning(
                f"{len(candidates)} active rule sets for {scope_type.value}/{scope_id}/"
                f"{entity_type}; using most recently updated {rule_set.rule_set_id}"
            )

        if self.cache is not None:
            self.cache.put(key, view.revision, rule_set)
        return rule_set

    def invalidate(self, rule_set: Optional[RuleSet] = None) -> None:
        """Invalidate the cache entry for a rule set's scope (or everything)."""
        if self.cache is None:
            return
        self.cache.invalidate(rule_set.scope_key if rule_set is not None else None)
