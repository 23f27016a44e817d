"""Governance administration - rule set lifecycle, rule versions and publishing.

Rules are never edited in place. Amending a rule adds a new version, and
publishing moves the active version pointer with a compare-and-swap on the
pointer revision. Every mutation invalidates the rule set cache before it
returns.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from workgate.common.exceptions import (
    ConfigurationError,
    InvalidPointerTarget,
    RuleSetNotFound,
    ValidationError,
)
from workgate.governance.registry import RuleSetRegistry
from workgate.governance.schemas import (
    ActiveVersionPointer,
    EnforcementMode,
    Rule,
    RuleDefinition,
    RuleSet,
    ScopeType,
)
from workgate.governance.store.base import GovernanceStore

logger = logging.getLogger(__name__)


class RuleSeed(BaseModel):
    """One rule code and its versions in a seed file."""
    code: str = Field(..., min_length=1)
    versions: List[RuleDefinition] = Field(
        ...,
        min_length=1,
        description="Definitions in version order; the first is version 1"
    )
    active_version: Optional[int] = Field(
        default=None,
        ge=1,
        description="Version to publish (defaults to the last one)"
    )


class RuleSetSeed(BaseModel):
    """One rule set in a seed file."""
    name: str = Field(..., min_length=1)
    scope_type: ScopeType
    organization_id: Optional[str] = None
    workspace_id: Optional[str] = None
    entity_type: str = Field(..., min_length=1)
    enforcement_mode: EnforcementMode = EnforcementMode.WARN
    description: str = ""
    is_active: bool = True
    rules: List[RuleSeed] = Field(default_factory=list)


class RulesFile(BaseModel):
    """Parsed rule seed file.

    This is the in-memory representation of governance_rules.yaml.
    """
    version: str = "1"
    rule_sets: List[RuleSetSeed] = Field(default_factory=list)


class GovernanceAdminService:
    """Administrative operations on the governance store."""

    def __init__(self, store: GovernanceStore, registry: Optional[RuleSetRegistry] = None):
        self.store = store
        self.registry = registry

    def _invalidate(self, rule_set: Optional[RuleSet] = None) -> None:
        if self.registry is not None:
            self.registry.invalidate(rule_set)

    def _require_rule_set(self, rule_set_id: str) -> RuleSet:
        rule_set = self.store.snapshot().get_rule_set(rule_set_id)
        if rule_set is None:
            raise RuleSetNotFound(
                f"Rule set '{rule_set_id}' not found",
                details={"rule_set_id": rule_set_id},
            )
        return rule_set

    # ========== RULE SETS ==========

    def create_rule_set(
        self,
        name: str,
        scope_type: Union[ScopeType, str],
        entity_type: str,
        organization_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        enforcement_mode: Union[EnforcementMode, str] = EnforcementMode.WARN,
        description: str = "",
        created_by: Optional[str] = None,
        is_active: bool = True,
    ) -> RuleSet:
        try:
            rule_set = RuleSet(
                name=name,
                scope_type=scope_type,
                entity_type=entity_type,
                organization_id=organization_id,
                workspace_id=workspace_id,
                enforcement_mode=enforcement_mode,
                description=description,
                created_by=created_by,
                is_active=is_active,
            )
        except PydanticValidationError as e:
            raise ValidationError(f"Invalid rule set: {e}") from e

        self.store.save_rule_set(rule_set)
        self._invalidate(rule_set)
        logger.info(
            f"Created rule set {rule_set.rule_set_id} '{name}' "
            f"({rule_set.scope_type.value}/{rule_set.scope_id}/{rule_set.entity_type}, "
            f"{rule_set.enforcement_mode.value})"
        )
        return rule_set

    def _update_rule_set(self, rule_set_id: str, **changes: Any) -> RuleSet:
        updated = self.store.update_rule_set(rule_set_id, changes)
        self._invalidate(updated)
        return updated

    def set_enforcement_mode(
        self, rule_set_id: str, mode: Union[EnforcementMode, str]
    ) -> RuleSet:
        mode = EnforcementMode(mode)
        rule_set = self._update_rule_set(rule_set_id, enforcement_mode=mode)
        logger.info(f"Rule set {rule_set_id} enforcement mode set to {mode.value}")
        return rule_set

    def deactivate_rule_set(self, rule_set_id: str) -> RuleSet:
        """Deactivate a rule set. Rule sets are never deleted."""
        rule_set = self._update_rule_set(rule_set_id, is_active=False)
        logger.info(f"Rule set {rule_set_id} deactivated")
        return rule_set

    def activate_rule_set(self, rule_set_id: str) -> RuleSet:
        rule_set = self._update_rule_set(rule_set_id, is_active=True)
        logger.info(f"Rule set {rule_set_id} activated")
        return rule_set

    # ========== RULE VERSIONS ==========

    def add_rule_version(
        self,
        rule_set_id: str,
        code: str,
        definition: Union[RuleDefinition, Dict[str, Any]],
        created_by: Optional[str] = None,
    ) -> Rule:
        """Insert the next version of a rule code. Does not publish it.

        Raises:
            RuleSetNotFound: If the rule set does not exist
            ValidationError: If the definition is invalid
            DuplicateRuleVersion: If another writer added the same version first
        """
        self._require_rule_set(rule_set_id)
        if not isinstance(definition, RuleDefinition):
            try:
                definition = RuleDefinition.model_validate(definition)
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid definition for rule {code}: {e}",
                    details={"rule_set_id": rule_set_id, "rule_code": code},
                ) from e

        version = self.store.snapshot().latest_version(rule_set_id, code) + 1
        rule = self.store.add_rule(Rule(
            rule_set_id=rule_set_id,
            code=code,
            version=version,
            definition=definition,
            created_by=created_by,
        ))
        logger.info(f"Added {code} v{version} to rule set {rule_set_id}")
        return rule

    def publish_version(
        self,
        rule_set_id: str,
        code: str,
        version: int,
        expected_revision: Optional[int] = None,
        updated_by: Optional[str] = None,
    ) -> ActiveVersionPointer:
        """Make a version the active one for its code.

        Args:
            rule_set_id: Rule set owning the code
            code: Rule code
            version: Version to activate
            expected_revision: Pointer revision the caller last saw. When
                omitted, the revision current at the time of the call is used,
                so the swap still fails if another writer moves the pointer
                between the read and the write.
            updated_by: Administrator performing the change

        Raises:
            InvalidPointerTarget: If the version does not exist for this code
            ConcurrentPointerConflict: If the pointer revision does not match
        """
        rule_set = self._require_rule_set(rule_set_id)
        view = self.store.snapshot()
        rule = view.find_rule(rule_set_id, code, version)
        if rule is None:
            raise InvalidPointerTarget(
                f"{code} v{version} does not exist in rule set '{rule_set_id}'",
                details={"rule_set_id": rule_set_id, "rule_code": code, "version": version},
            )
        if expected_revision is None:
            current = view.get_pointer(rule_set_id, code)
            expected_revision = current.revision if current else None

        pointer = self.store.set_pointer(
            rule_set_id=rule_set_id,
            rule_code=code,
            rule_id=rule.rule_id,
            expected_revision=expected_revision,
            updated_by=updated_by,
        )
        self._invalidate(rule_set)
        logger.info(
            f"Published {code} v{version} in rule set {rule_set_id} "
            f"(pointer revision {pointer.revision})"
        )
        return pointer

    def add_and_publish(
        self,
        rule_set_id: str,
        code: str,
        definition: Union[RuleDefinition, Dict[str, Any]],
        created_by: Optional[str] = None,
    ) -> Rule:
        """Add the next version of a code and activate it."""
        rule = self.add_rule_version(rule_set_id, code, definition, created_by=created_by)
        self.publish_version(rule_set_id, code, rule.version, updated_by=created_by)
        return rule

    def get_active_pointer(self, rule_set_id: str, code: str) -> Optional[ActiveVersionPointer]:
        return self.store.snapshot().get_pointer(rule_set_id, code)

    # ========== SEEDING ==========

    def load_rules_file(self, path: Union[str, Path]) -> List[RuleSet]:
        """Create rule sets, rule versions and pointers from a YAML seed file.

        Raises:
            ConfigurationError: If the file is missing or invalid
        """
        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Rules file not found: {path}")

        try:
            with open(path, "r") as f:
                raw_config = yaml.safe_load(f) or {}
            rules_file = RulesFile.model_validate(raw_config)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Rules file {path} is not valid YAML: {e}") from e
        except PydanticValidationError as e:
            raise ConfigurationError(
                f"Rules file {path} failed validation: {e}",
                details={"path": str(path)},
            ) from e

        created = []
        for seed in rules_file.rule_sets:
            created.append(self._seed_rule_set(seed))
        logger.info(f"Loaded {len(created)} rule set(s) from {path}")
        return created

    def _seed_rule_set(self, seed: RuleSetSeed) -> RuleSet:
        rule_set = self.create_rule_set(
            name=seed.name,
            scope_type=seed.scope_type,
            entity_type=seed.entity_type,
            organization_id=seed.organization_id,
            workspace_id=seed.workspace_id,
            enforcement_mode=seed.enforcement_mode,
            description=seed.description,
            created_by="seed",
            is_active=seed.is_active,
        )
        for rule_seed in seed.rules:
            rules = [
                self.add_rule_version(rule_set.rule_set_id, rule_seed.code, definition, "seed")
                for definition in rule_seed.versions
            ]
            active = rule_seed.active_version or rules[-1].version
            if active > len(rules):
                raise ConfigurationError(
                    f"{rule_seed.code}: active_version {active} does not exist",
                    details={"rule_set": seed.name, "rule_code": rule_seed.code},
                )
            self.publish_version(rule_set.rule_set_id, rule_seed.code, active, updated_by="seed")
        return rule_set
