"""Shared fixtures for WorkGate tests."""

import pytest

from workgate.governance.admin import GovernanceAdminService
from workgate.governance.audit.recorder import AuditRecorder
from workgate.governance.audit.store import InMemoryEvaluationStore
from workgate.governance.engine import GovernanceEngine
from workgate.governance.store.memory import InMemoryGovernanceStore


MAX_WIP_V1 = {
    "condition": "currentWipCount <= wipLimit",
    "message": "WIP limit of {wipLimit} reached ({currentWipCount} in progress)",
}

@pytest.fixture
def governance_store():
    """Empty in-memory governance store."""
    return InMemoryGovernanceStore()


@pytest.fixture
def evaluation_store():
    """Empty in-memory evaluation store."""
    return InMemoryEvaluationStore()


@pytest.fixture
def engine(governance_store, evaluation_store):
    """Engine over the in-memory stores."""
    return GovernanceEngine(
        store=governance_store,
        recorder=AuditRecorder(evaluation_store),
    )


@pytest.fixture
def admin(governance_store, engine):
    """Admin service sharing the engine's registry cache."""
    return GovernanceAdminService(governance_store, engine.registry)


@pytest.fixture
def wip_rule_set(admin):
    """Workspace task rule set with MAX_WIP v1 published, in BLOCK mode."""
    rule_set = admin.create_rule_set(
        name="Delivery WIP",
        scope_type="WORKSPACE",
        organization_id="org_1",
        workspace_id="ws_1",
        entity_type="task",
        enforcement_mode="BLOCK",
        created_by="admin_1",
    )
    admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", MAX_WIP_V1, created_by="admin_1")
    return rule_set


@pytest.fixture
def evaluate_task(engine):
    """Evaluate a TODO -> IN_PROGRESS task move in org_1/ws_1."""
    def _evaluate(current_wip, wip_limit=3, **kwargs):
        snapshot = {"currentWipCount": current_wip, "wipLimit": wip_limit}
        snapshot.update(kwargs.pop("extra", {}))
        params = dict(
            organization_id="org_1",
            workspace_id="ws_1",
            entity_type="task",
            entity_id="task_1",
            transition_type="STATUS_CHANGE",
            from_value="TODO",
            to_value="IN_PROGRESS",
            actor_user_id="user_1",
            input_snapshot=snapshot,
        )
        params.update(kwargs)
        return engine.evaluate(**params)
    return _evaluate
