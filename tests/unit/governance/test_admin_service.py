"""Unit tests for governance administration."""

import threading

import pytest

from workgate.common.exceptions import (
    ConcurrentPointerConflict,
    ConfigurationError,
    InvalidPointerTarget,
    RuleSetNotFound,
    ValidationError,
)
from workgate.governance.schemas import EnforcementMode

MAX_WIP_V2 = {
    "condition": "currentWipCount <= wipLimit + 1",
    "message": "WIP limit of {wipLimit} exceeded",
}


class TestRuleSets:
    """Test rule set lifecycle."""

    def test_create_rule_set(self, admin, governance_store):
        rule_set = admin.create_rule_set(
            name="Org rules", scope_type="ORG", organization_id="org_1", entity_type="task",
        )
        assert governance_store.snapshot().get_rule_set(rule_set.rule_set_id) == rule_set
        assert rule_set.enforcement_mode == EnforcementMode.WARN

    def test_invalid_scope_rejected(self, admin):
        with pytest.raises(ValidationError):
            admin.create_rule_set(name="Bad", scope_type="WORKSPACE", entity_type="task")

    def test_set_enforcement_mode(self, admin, wip_rule_set):
        updated = admin.set_enforcement_mode(wip_rule_set.rule_set_id, "OFF")
        assert updated.enforcement_mode == EnforcementMode.OFF
        assert updated.updated_at >= wip_rule_set.updated_at

    def test_unknown_mode_rejected(self, admin, wip_rule_set):
        with pytest.raises(ValueError):
            admin.set_enforcement_mode(wip_rule_set.rule_set_id, "SOMETIMES")

    def test_deactivate_and_activate(self, admin, engine, wip_rule_set):
        admin.deactivate_rule_set(wip_rule_set.rule_set_id)
        assert engine.registry.applicable("task", "org_1", "ws_1") == []

        admin.activate_rule_set(wip_rule_set.rule_set_id)
        assert len(engine.registry.applicable("task", "org_1", "ws_1")) == 1

    def test_unknown_rule_set(self, admin):
        with pytest.raises(RuleSetNotFound):
            admin.deactivate_rule_set("rs_missing")

    def test_concurrent_updates_both_survive(self, admin):
        for i in range(20):
            rule_set = admin.create_rule_set(
                name=f"Race {i}", scope_type="WORKSPACE", organization_id="org_1",
                workspace_id=f"ws_race_{i}", entity_type="task",
            )
            barrier = threading.Barrier(2)

            def deactivate():
                barrier.wait()
                admin.deactivate_rule_set(rule_set.rule_set_id)

            def block():
                barrier.wait()
                admin.set_enforcement_mode(rule_set.rule_set_id, "BLOCK")

            threads = [threading.Thread(target=deactivate), threading.Thread(target=block)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            final = admin.store.snapshot().get_rule_set(rule_set.rule_set_id)
            assert final.is_active is False
            assert final.enforcement_mode == EnforcementMode.BLOCK


class TestRuleVersions:
    """Test adding and publishing versions."""

    def test_versions_increment(self, admin, wip_rule_set):
        rule = admin.add_rule_version(wip_rule_set.rule_set_id, "MAX_WIP", MAX_WIP_V2)
        assert rule.version == 2
        # Adding does not publish
        assert admin.get_active_pointer(wip_rule_set.rule_set_id, "MAX_WIP").version == 1

    def test_invalid_definition_rejected(self, admin, wip_rule_set):
        with pytest.raises(ValidationError) as exc_info:
            admin.add_rule_version(
                wip_rule_set.rule_set_id, "MAX_WIP", {"condition": "__import__('os')", "message": "x"},
            )
        assert exc_info.value.details["rule_code"] == "MAX_WIP"

    def test_publish_missing_version(self, admin, wip_rule_set):
        with pytest.raises(InvalidPointerTarget):
            admin.publish_version(wip_rule_set.rule_set_id, "MAX_WIP", 9)

    def test_publish_bumps_revision(self, admin, wip_rule_set):
        admin.add_rule_version(wip_rule_set.rule_set_id, "MAX_WIP", MAX_WIP_V2)
        pointer = admin.publish_version(wip_rule_set.rule_set_id, "MAX_WIP", 2, expected_revision=1)
        assert pointer.revision == 2
        assert pointer.version == 2

    def test_stale_revision_conflicts(self, admin, wip_rule_set):
        admin.add_rule_version(wip_rule_set.rule_set_id, "MAX_WIP", MAX_WIP_V2)
        admin.publish_version(wip_rule_set.rule_set_id, "MAX_WIP", 2, expected_revision=1)

        with pytest.raises(ConcurrentPointerConflict):
            admin.publish_version(wip_rule_set.rule_set_id, "MAX_WIP", 1, expected_revision=1)
        assert admin.get_active_pointer(wip_rule_set.rule_set_id, "MAX_WIP").version == 2

    def test_publish_invalidates_cache(self, admin, engine, wip_rule_set, evaluate_task):
        evaluate_task(4)
        admin.add_and_publish(wip_rule_set.rule_set_id, "MAX_WIP", MAX_WIP_V2)
        assert evaluate_task(4).reasons[0].rule_version == 2


class TestRulesFile:
    """Test seeding from YAML."""

    def test_load_rules_file(self, admin, governance_store, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text(
            """
version: "1"
rule_sets:
  - name: System tasks
    scope_type: SYSTEM
    entity_type: task
    enforcement_mode: BLOCK
    rules:
      - code: MAX_WIP
        active_version: 1
        versions:
          - condition: "currentWipCount <= wipLimit"
            message: "WIP limit reached"
          - condition: "currentWipCount <= wipLimit + 1"
            message: "WIP limit reached"
"""
        )

        created = admin.load_rules_file(rules_file)

        assert len(created) == 1
        rule_set = created[0]
        assert rule_set.enforcement_mode == EnforcementMode.BLOCK
        view = governance_store.snapshot()
        assert view.latest_version(rule_set.rule_set_id, "MAX_WIP") == 2
        assert view.get_pointer(rule_set.rule_set_id, "MAX_WIP").version == 1

    def test_missing_file(self, admin, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            admin.load_rules_file(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, admin, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text("rule_sets: [unclosed\n")
        with pytest.raises(ConfigurationError, match="not valid YAML"):
            admin.load_rules_file(rules_file)

    def test_invalid_rule_set(self, admin, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text(
            "rule_sets:\n  - name: x\n    scope_type: GALAXY\n    entity_type: task\n"
        )
        with pytest.raises(ConfigurationError, match="failed validation"):
            admin.load_rules_file(rules_file)

    def test_active_version_out_of_range(self, admin, tmp_path):
        rules_file = tmp_path / "rules.yaml"
        rules_file.write_text(
            """
rule_sets:
  - name: System tasks
    scope_type: SYSTEM
    entity_type: task
    rules:
      - code: MAX_WIP
        active_version: 3
        versions:
          - condition: "a <= b"
            message: "m"
"""
        )
        with pytest.raises(ConfigurationError):
            admin.load_rules_file(rules_file)

    def test_bundled_rules_file_loads(self, admin):
        from pathlib import Path

        path = Path(__file__).resolve().parents[3] / "config" / "governance_rules.yaml"
        assert len(admin.load_rules_file(path)) >= 2
