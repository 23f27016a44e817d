"""In-memory governance store with copy-on-write snapshots."""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from workgate.common.exceptions import (
    ConcurrentPointerConflict,
    DuplicateRuleVersion,
    InvalidPointerTarget,
    RuleSetNotFound,
    ValidationError,
)
from workgate.governance.schemas import (
    ActiveVersionPointer,
    Rule,
    RuleSet,
    ScopeType,
)
from workgate.governance.store.base import GovernanceStore, GovernanceView

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _State:
    # Never mutated once published; writers build a new _State
    revision: int = 0
    rule_sets: Dict[str, RuleSet] = field(default_factory=dict)
    rules: Dict[str, Rule] = field(default_factory=dict)
    rule_index: Dict[Tuple[str, str, int], str] = field(default_factory=dict)
    pointers: Dict[Tuple[str, str], ActiveVersionPointer] = field(default_factory=dict)


class _MemoryView(GovernanceView):
    def __init__(self, state: _State):
        self._state = state

    @property
    def revision(self) -> int:
        return self._state.revision

    def find_rule_sets(
        self,
        scope_type: ScopeType,
        scope_id: Optional[str],
        entity_type: str,
        active_only: bool = True,
    ) -> List[RuleSet]:
        matches = [
            rs for rs in self._state.rule_sets.values()
            if rs.scope_type == scope_type
            and rs.scope_id == scope_id
            and rs.entity_type == entity_type
            and (rs.is_active or not active_only)
        ]
        return sorted(matches, key=lambda rs: (rs.updated_at, rs.rule_set_id), reverse=True)

    def get_rule_set(self, rule_set_id: str) -> Optional[RuleSet]:
        return self._state.rule_sets.get(rule_set_id)

    def get_pointer(self, rule_set_id: str, rule_code: str) -> Optional[ActiveVersionPointer]:
        return self._state.pointers.get((rule_set_id, rule_code))

    def list_pointers(self, rule_set_id: str) -> List[ActiveVersionPointer]:
        pointers = [p for (rs_id, _), p in self._state.pointers.items() if rs_id == rule_set_id]
        return sorted(pointers, key=lambda p: p.rule_code)

    def get_rule(self, rule_id: str) -> Optional[Rule]:
        return self._state.rules.get(rule_id)

    def find_rule(self, rule_set_id: str, rule_code: str, version: int) -> Optional[Rule]:
        rule_id = self._state.rule_index.get((rule_set_id, rule_code, version))
        return self._state.rules.get(rule_id) if rule_id else None

    def latest_version(self, rule_set_id: str, rule_code: str) -> int:
        versions = [
            version for (rs_id, code, version) in self._state.rule_index
            if rs_id == rule_set_id and code == rule_code
        ]
        return max(versions, default=0)


class InMemoryGovernanceStore(GovernanceStore):
    """Thread-safe in-memory store.

    Each write publishes a new immutable state under a lock; a read view is
    just a reference to the state current at that instant.
    """

    def __init__(self):
        self._state = _State()
        self._lock = threading.Lock()

    def snapshot(self) -> GovernanceView:
        return _MemoryView(self._state)

    @property
    def revision(self) -> int:
        return self._state.revision

    def save_rule_set(self, rule_set: RuleSet) -> RuleSet:
        with self._lock:
            state = self._state
            rule_sets = dict(state.rule_sets)
            rule_sets[rule_set.rule_set_id] = rule_set
            self._state = replace(state, revision=state.revision + 1, rule_sets=rule_sets)
        logger.debug(f"Saved rule set {rule_set.rule_set_id} ({rule_set.name})")
        return rule_set

    def update_rule_set(self, rule_set_id: str, changes: Dict[str, Any]) -> RuleSet:
        with self._lock:
            state = self._state
            current = state.rule_sets.get(rule_set_id)
            if current is None:
                raise RuleSetNotFound(
                    f"Rule set '{rule_set_id}' not found",
                    details={"rule_set_id": rule_set_id},
                )
            updated = current.model_copy(
                update={**changes, "updated_at": datetime.now(timezone.utc)}
            )
            rule_sets = dict(state.rule_sets)
            rule_sets[rule_set_id] = updated
            self._state = replace(state, revision=state.revision + 1, rule_sets=rule_sets)
        logger.debug(f"Updated rule set {rule_set_id}: {sorted(changes)}")
        return updated

    def add_rule(self, rule: Rule) -> Rule:
        key = (rule.rule_set_id, rule.code, rule.version)
        with self._lock:
            state = self._state
            if rule.rule_set_id not in state.rule_sets:
                raise ValidationError(
                    f"Rule set '{rule.rule_set_id}' does not exist",
                    details={"rule_set_id": rule.rule_set_id},
                )
            if key in state.rule_index or rule.rule_id in state.rules:
                raise DuplicateRuleVersion(
                    f"Rule {rule.code} v{rule.version} already exists in rule set "
                    f"'{rule.rule_set_id}'",
                    details={"rule_set_id": rule.rule_set_id, "rule_code": rule.code,
                             "version": rule.version},
                )
            rules = dict(state.rules)
            rules[rule.rule_id] = rule
            rule_index = dict(state.rule_index)
            rule_index[key] = rule.rule_id
            self._state = replace(
                state, revision=state.revision + 1, rules=rules, rule_index=rule_index
            )
        return rule

    def set_pointer(
        self,
        rule_set_id: str,
        rule_code: str,
        rule_id: str,
        expected_revision: Optional[int],
        updated_by: Optional[str] = None,
    ) -> ActiveVersionPointer:
        with self._lock:
            state = self._state
            rule = state.rules.get(rule_id)
            if rule is None or rule.rule_set_id != rule_set_id or rule.code != rule_code:
                raise InvalidPointerTarget(
                    f"Rule '{rule_id}' is not a version of {rule_code} in rule set "
                    f"'{rule_set_id}'",
                    details={"rule_set_id": rule_set_id, "rule_code": rule_code,
                             "rule_id": rule_id},
                )

            current = state.pointers.get((rule_set_id, rule_code))
            actual_revision = current.revision if current else None
            if actual_revision != expected_revision:
                raise ConcurrentPointerConflict(
                    rule_set_id, rule_code, expected_revision, actual_revision
                )

            pointer = ActiveVersionPointer(
                rule_set_id=rule_set_id,
                rule_code=rule_code,
                rule_id=rule.rule_id,
                version=rule.version,
                revision=(actual_revision or 0) + 1,
                updated_by=updated_by,
                updated_at=datetime.now(timezone.utc),
            )
            pointers = dict(state.pointers)
            pointers[(rule_set_id, rule_code)] = pointer
            self._state = replace(state, revision=state.revision + 1, pointers=pointers)
        return pointer
