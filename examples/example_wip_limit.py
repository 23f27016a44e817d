"""Example: WIP limit governance for task status changes.

1. Seed a workspace rule set with a MAX_WIP rule in WARN mode
2. Evaluate a task moving to IN_PROGRESS over the limit
3. Switch the rule set to BLOCK and try again
4. Publish a more lenient v2 of the rule
5. Read the evaluation trail back
"""

from workgate.common.logging import get_logger
from workgate.governance import GovernanceAdminService, GovernanceEngine
from workgate.governance.audit import AuditRecorder, InMemoryEvaluationStore
from workgate.governance.store import InMemoryGovernanceStore

logger = get_logger(__name__)


def example_wip_limit_scenario():
    store = InMemoryGovernanceStore()
    evaluations = InMemoryEvaluationStore()
    engine = GovernanceEngine(store=store, recorder=AuditRecorder(evaluations))
    admin = GovernanceAdminService(store, engine.registry)

    rule_set = admin.create_rule_set(
        name="Delivery team WIP",
        scope_type="WORKSPACE",
        organization_id="org_acme",
        workspace_id="ws_delivery",
        entity_type="task",
        enforcement_mode="WARN",
        created_by="admin_1",
    )
    admin.add_and_publish(rule_set.rule_set_id, "MAX_WIP", {
        "condition": "currentWipCount <= wipLimit",
        "message": "WIP limit of {wipLimit} reached ({currentWipCount} in progress)",
    }, created_by="admin_1")

    def move_task():
        return engine.evaluate_task_status_change(
            organization_id="org_acme",
            workspace_id="ws_delivery",
            task_id="task_42",
            from_status="TODO",
            to_status="IN_PROGRESS",
            task={"currentWipCount": 4, "wipLimit": 3},
            actor_user_id="user_7",
            actor_workspace_role="MEMBER",
        )

    decision = move_task()
    logger.info(f"WARN mode: {decision.outcome.value} - {decision.reasons[0].message}")

    admin.set_enforcement_mode(rule_set.rule_set_id, "BLOCK")
    decision = move_task()
    logger.info(f"BLOCK mode: {decision.outcome.value}")

    v2 = admin.add_rule_version(rule_set.rule_set_id, "MAX_WIP", {
        "condition": "currentWipCount <= wipLimit + 1",
        "message": "WIP limit of {wipLimit} exceeded by more than one",
    }, created_by="admin_1")
    admin.publish_version(rule_set.rule_set_id, "MAX_WIP", v2.version, updated_by="admin_1")
    decision = move_task()
    logger.info(f"After publishing v{v2.version}: {decision.outcome.value}")

    for record in evaluations.query_by_entity("ws_delivery", "task", "task_42"):
        logger.info(
            f"  {record.created_at.isoformat()} {record.decision.value} "
            f"rule v{record.rule_version} inputs={record.inputs_hash}"
        )

    return decision


if __name__ == "__main__":
    example_wip_limit_scenario()
