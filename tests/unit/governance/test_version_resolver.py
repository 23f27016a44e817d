"""Unit tests for active version resolution."""

import pytest

from workgate.common.exceptions import RuleNotConfigured
from workgate.governance.admin import GovernanceAdminService
from workgate.governance.store.memory import InMemoryGovernanceStore
from workgate.governance.versions import VersionResolver


def definition(limit):
    return {"condition": f"count <= {limit}", "message": f"limit {limit}"}


@pytest.fixture
def setup():
    store = InMemoryGovernanceStore()
    admin = GovernanceAdminService(store)
    rule_set = admin.create_rule_set("Tasks", "SYSTEM", "task")
    return store, admin, rule_set, VersionResolver(store)


class TestVersionResolver:
    """Test pointer-based resolution."""

    def test_unpublished_code_not_configured(self, setup):
        _, admin, rule_set, resolver = setup
        admin.add_rule_version(rule_set.rule_set_id, "MAX_WIP", definition(3))
        with pytest.raises(RuleNotConfigured) as exc_info:
            resolver.resolve(rule_set, "MAX_WIP")
        assert exc_info.value.code == "RULE_NOT_CONFIGURED"

    def test_resolves_published_version(self, setup):
        _, admin, rule_set, resolver = setup
        admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", definition(3))
        admin.add_rule_version(rule_set.rule_set_id, "MAX_WIP", definition(5))

        rule = resolver.resolve(rule_set, "MAX_WIP")
        assert rule.version == 1

    def test_republish_older_version(self, setup):
        _, admin, rule_set, resolver = setup
        admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", definition(3))
        admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", definition(5))
        assert resolver.resolve(rule_set, "MAX_WIP").version == 2

        admin.publish_version(rule_set.rule_set_id, "MAX_WIP", 1)
        assert resolver.resolve(rule_set, "MAX_WIP").version == 1

    def test_resolve_all_ordered_by_code(self, setup):
        _, admin, rule_set, resolver = setup
        admin.add_and_publish(rule_set.rule_set_id, "ZED", definition(1))
        admin.add_and_publish(rule_set.rule_set_id, "ALPHA", definition(2))
        admin.add_rule_version(rule_set.rule_set_id, "UNPUBLISHED", definition(3))

        codes = [rule.code for rule in resolver.resolve_all(rule_set)]
        assert codes == ["ALPHA", "ZED"]

    def test_resolution_uses_given_view(self, setup):
        store, admin, rule_set, resolver = setup
        admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", definition(3))
        view = store.snapshot()
        admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", definition(5))

        assert resolver.resolve(rule_set, "MAX_WIP", view=view).version == 1
        assert resolver.resolve(rule_set, "MAX_WIP").version == 2
