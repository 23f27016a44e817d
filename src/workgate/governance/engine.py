"""Governance Engine - evaluates proposed state transitions against rule sets.

The engine is the single entry point callers use before committing a
transition:

    registry → version resolver → rule evaluator → enforcement policy → audit

Evaluation is synchronous and stateless. Every call reads one consistent
view of the governance store, so concurrent administrative changes are seen
either entirely or not at all.
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from workgate.common.config import Config, get_config
from workgate.common.exceptions import GovernanceBlockedError, RuleNotConfigured
from workgate.governance.audit.config import create_audit_recorder
from workgate.governance.audit.recorder import AuditRecorder
from workgate.governance.enforcement import EnforcementPolicy
from workgate.governance.registry import RuleSetCache, RuleSetRegistry
from workgate.governance.rules.evaluator import RuleEvaluator
from workgate.governance.schemas import (
    Decision,
    DecisionOutcome,
    EntityType,
    Rule,
    RuleSet,
    RuleVerdict,
    TransitionType,
    Verdict,
    _enum_value,
)
from workgate.governance.store.base import GovernanceStore, GovernanceView
from workgate.governance.store.memory import InMemoryGovernanceStore
from workgate.governance.versions import VersionResolver
from workgate.monitoring.metrics import AlertingThresholds, MetricsCollector
from workgate.monitoring.reporting import (
    CompositeErrorReporter,
    ErrorReporter,
    LoggingErrorReporter,
    MetricsErrorReporter,
)

logger = logging.getLogger(__name__)


class _SetOutcome:
    """Verdicts and decision of one applicable rule set."""

    __slots__ = ("rule_set", "verdicts", "outcome")

    def __init__(self, rule_set: RuleSet, verdicts: List[RuleVerdict], outcome: DecisionOutcome):
        self.rule_set = rule_set
        self.verdicts = verdicts
        self.outcome = outcome


class GovernanceEngine:
    """Facade over registry, resolver, evaluator, policy and recorder."""

    def __init__(
        self,
        store: GovernanceStore,
        recorder: AuditRecorder,
        registry: Optional[RuleSetRegistry] = None,
        resolver: Optional[VersionResolver] = None,
        evaluator: Optional[RuleEvaluator] = None,
        policy: Optional[EnforcementPolicy] = None,
        metrics: Optional[MetricsCollector] = None,
    ):
        self.store = store
        self.recorder = recorder
        self.registry = registry or RuleSetRegistry(store, RuleSetCache())
        self.resolver = resolver or VersionResolver(store)
        self.evaluator = evaluator or RuleEvaluator()
        self.policy = policy or EnforcementPolicy()
        self.metrics = metrics

    def evaluate(
        self,
        organization_id: str,
        workspace_id: Optional[str],
        entity_type: str,
        entity_id: str,
        transition_type: str,
        from_value: Optional[str] = None,
        to_value: Optional[str] = None,
        actor_user_id: str = "",
        actor_platform_role: Optional[str] = None,
        actor_workspace_role: Optional[str] = None,
        input_snapshot: Optional[Mapping[str, Any]] = None,
        request_id: Optional[str] = None,
        rule_codes: Optional[Sequence[str]] = None,
        override_reason: Optional[str] = None,
    ) -> Decision:
        """Evaluate a proposed transition.

        Args:
            organization_id: Organization owning the entity
            workspace_id: Workspace owning the entity, or None for an
                organization-level entity (only ORG and SYSTEM sets apply)
            entity_type: Governed entity type, e.g. "task"
            entity_id: Entity identifier
            transition_type: Kind of transition, e.g. STATUS_CHANGE
            from_value: Current state
            to_value: Proposed state
            actor_user_id: User performing the transition
            actor_platform_role: Platform role of the actor
            actor_workspace_role: Workspace role of the actor
            input_snapshot: Named values the rules are evaluated against
            request_id: Correlation id copied to the evaluation record
            rule_codes: Restrict evaluation to these rule codes
            override_reason: Justification for an ADMIN_OVERRIDE override

        Returns:
            Decision with outcome and per-rule reasons. Callers must not
            proceed when the outcome is BLOCK.
        """
        started = time.perf_counter()
        entity_type = _enum_value(entity_type)
        transition_type = _enum_value(transition_type)

        view = self.store.snapshot()
        rule_sets = self.registry.applicable(entity_type, organization_id, workspace_id, view)
        if not rule_sets:
            return Decision(outcome=DecisionOutcome.ALLOW)

        context = self._build_context(
            input_snapshot, entity_type, transition_type, from_value, to_value,
            actor_user_id, actor_platform_role, actor_workspace_role,
        )
        override_granted = self.policy.can_override(
            actor_platform_role, actor_workspace_role, override_reason
        )
        requested = list(dict.fromkeys(rule_codes)) if rule_codes is not None else None

        results: List[_SetOutcome] = []
        configured = set()
        for rule_set in rule_sets:
            rules = self._resolve(rule_set, requested, view)
            configured.update(rule.code for rule in rules)
            rules = [rule for rule in rules if self._applies(rule, from_value, to_value)]
            verdicts = self.evaluator.evaluate_many(rules, context)
            outcome = self.policy.decide(verdicts, rule_set.enforcement_mode, override_granted)
            results.append(_SetOutcome(rule_set, verdicts, outcome))

        not_configured = [
            self.evaluator.not_configured(code)
            for code in (requested or ())
            if code not in configured
        ]
        reasons = [v for result in results for v in result.verdicts] + not_configured
        rule_set_ids = [rs.rule_set_id for rs in rule_sets]

        if not reasons:
            return Decision(outcome=DecisionOutcome.ALLOW, rule_set_ids=rule_set_ids)

        outcome = self.policy.combine(result.outcome for result in results)
        deciding, primary = self._primary(results, outcome)
        decision = Decision(
            outcome=outcome,
            reasons=reasons,
            rule_set_id=deciding.rule_set.rule_set_id if deciding else None,
            rule_set_ids=rule_set_ids,
            enforcement_mode=deciding.rule_set.enforcement_mode if deciding else None,
        )
        self._log_decision(decision, entity_type, entity_id, override_reason, override_granted)

        record = self.recorder.record(
            organization_id=organization_id,
            workspace_id=workspace_id,
            entity_type=entity_type,
            entity_id=entity_id,
            transition_type=transition_type,
            from_value=from_value,
            to_value=to_value,
            decision=decision,
            inputs=context,
            actor_user_id=actor_user_id,
            actor_platform_role=actor_platform_role,
            actor_workspace_role=actor_workspace_role,
            override_reason=override_reason,
            request_id=request_id,
            rule_id=primary.rule_id if primary else None,
            rule_version=primary.rule_version if primary else None,
        )
        if record is not None:
            decision = decision.model_copy(update={"evaluation_id": record.evaluation_id})

        self._record_metrics(decision, entity_type, started)
        return decision

    def enforce(self, *args, **kwargs) -> Decision:
        """Evaluate and raise GovernanceBlockedError when the outcome is BLOCK.

        Accepts the same arguments as evaluate().
        """
        decision = self.evaluate(*args, **kwargs)
        if decision.is_blocked:
            raise GovernanceBlockedError(decision)
        return decision

    # ------------------------------------------------------------------
    # Convenience entry points
    # ------------------------------------------------------------------

    def evaluate_task_status_change(
        self,
        organization_id: str,
        workspace_id: str,
        task_id: str,
        from_status: Optional[str],
        to_status: Optional[str],
        task: Optional[Mapping[str, Any]] = None,
        actor_user_id: str = "",
        actor_platform_role: Optional[str] = None,
        actor_workspace_role: Optional[str] = None,
        project_id: Optional[str] = None,
        request_id: Optional[str] = None,
        override_reason: Optional[str] = None,
    ) -> Decision:
        return self.evaluate(
            organization_id=organization_id,
            workspace_id=workspace_id,
            entity_type=EntityType.TASK,
            entity_id=task_id,
            transition_type=TransitionType.STATUS_CHANGE,
            from_value=from_status,
            to_value=to_status,
            actor_user_id=actor_user_id,
            actor_platform_role=actor_platform_role,
            actor_workspace_role=actor_workspace_role,
            input_snapshot=self._entity_snapshot(task, projectId=project_id),
            request_id=request_id,
            override_reason=override_reason,
        )

    def evaluate_change_request_status_change(
        self,
        organization_id: str,
        workspace_id: str,
        change_request_id: str,
        from_status: Optional[str],
        to_status: Optional[str],
        change_request: Optional[Mapping[str, Any]] = None,
        actor_user_id: str = "",
        actor_platform_role: Optional[str] = None,
        actor_workspace_role: Optional[str] = None,
        request_id: Optional[str] = None,
        override_reason: Optional[str] = None,
    ) -> Decision:
        return self.evaluate(
            organization_id=organization_id,
            workspace_id=workspace_id,
            entity_type=EntityType.CHANGE_REQUEST,
            entity_id=change_request_id,
            transition_type=TransitionType.STATUS_CHANGE,
            from_value=from_status,
            to_value=to_status,
            actor_user_id=actor_user_id,
            actor_platform_role=actor_platform_role,
            actor_workspace_role=actor_workspace_role,
            input_snapshot=self._entity_snapshot(change_request),
            request_id=request_id,
            override_reason=override_reason,
        )

    def evaluate_phase_gate_transition(
        self,
        organization_id: str,
        workspace_id: str,
        gate_id: str,
        from_status: Optional[str],
        to_status: Optional[str],
        gate: Optional[Mapping[str, Any]] = None,
        actor_user_id: str = "",
        actor_platform_role: Optional[str] = None,
        actor_workspace_role: Optional[str] = None,
        project_id: Optional[str] = None,
        request_id: Optional[str] = None,
        override_reason: Optional[str] = None,
    ) -> Decision:
        return self.evaluate(
            organization_id=organization_id,
            workspace_id=workspace_id,
            entity_type=EntityType.PHASE_GATE,
            entity_id=gate_id,
            transition_type=TransitionType.GATE_DECISION,
            from_value=from_status,
            to_value=to_status,
            actor_user_id=actor_user_id,
            actor_platform_role=actor_platform_role,
            actor_workspace_role=actor_workspace_role,
            input_snapshot=self._entity_snapshot(gate, projectId=project_id),
            request_id=request_id,
            override_reason=override_reason,
        )

    def evaluate_project_phase_advance(
        self,
        organization_id: str,
        workspace_id: str,
        project_id: str,
        from_phase: Optional[str],
        to_phase: Optional[str],
        project: Optional[Mapping[str, Any]] = None,
        actor_user_id: str = "",
        actor_platform_role: Optional[str] = None,
        actor_workspace_role: Optional[str] = None,
        request_id: Optional[str] = None,
        override_reason: Optional[str] = None,
    ) -> Decision:
        return self.evaluate(
            organization_id=organization_id,
            workspace_id=workspace_id,
            entity_type=EntityType.PROJECT,
            entity_id=project_id,
            transition_type=TransitionType.PHASE_ADVANCE,
            from_value=from_phase,
            to_value=to_phase,
            actor_user_id=actor_user_id,
            actor_platform_role=actor_platform_role,
            actor_workspace_role=actor_workspace_role,
            input_snapshot=self._entity_snapshot(project),
            request_id=request_id,
            override_reason=override_reason,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _entity_snapshot(entity: Optional[Mapping[str, Any]], **extra: Any) -> Dict[str, Any]:
        snapshot = dict(entity or {})
        for key, value in extra.items():
            if value is not None:
                snapshot.setdefault(key, value)
        return snapshot

    @staticmethod
    def _build_context(
        input_snapshot: Optional[Mapping[str, Any]],
        entity_type: str,
        transition_type: str,
        from_value: Optional[str],
        to_value: Optional[str],
        actor_user_id: str,
        actor_platform_role: Optional[str],
        actor_workspace_role: Optional[str],
    ) -> Dict[str, Any]:
        context = dict(input_snapshot or {})
        # Caller-supplied keys take precedence
        context.setdefault("entityType", entity_type)
        context.setdefault("transitionType", transition_type)
        context.setdefault("fromValue", from_value)
        context.setdefault("toValue", to_value)
        context.setdefault("actorUserId", actor_user_id)
        context.setdefault("actorPlatformRole", actor_platform_role)
        context.setdefault("actorWorkspaceRole", actor_workspace_role)
        return context

    def _resolve(
        self,
        rule_set: RuleSet,
        requested: Optional[List[str]],
        view: GovernanceView,
    ) -> List[Rule]:
        if requested is None:
            rules = self.resolver.resolve_all(rule_set, view)
        else:
            rules = []
            for code in requested:
                try:
                    rules.append(self.resolver.resolve(rule_set, code, view))
                except RuleNotConfigured:
                    continue
        active = [rule for rule in rules if rule.is_active]
        if len(active) != len(rules):
            logger.debug(
                f"Skipping {len(rules) - len(active)} inactive rule(s) in {rule_set.rule_set_id}"
            )
        return active

    @staticmethod
    def _applies(rule: Rule, from_value: Optional[str], to_value: Optional[str]) -> bool:
        when = rule.definition.when
        return when is None or when.matches(from_value, to_value)

    @staticmethod
    def _primary(
        results: Iterable[_SetOutcome], outcome: DecisionOutcome
    ) -> Tuple[Optional[_SetOutcome], Optional[RuleVerdict]]:
        """The rule set that determined the outcome and the rule to attribute it to."""
        evaluated = [result for result in results if result.verdicts]
        if not evaluated:
            return None, None
        for result in evaluated:
            if result.outcome == outcome:
                failing = [v for v in result.verdicts if v.failed]
                return result, (failing or result.verdicts)[0]
        first = evaluated[0]
        return first, first.verdicts[0]

    def _log_decision(
        self,
        decision: Decision,
        entity_type: str,
        entity_id: str,
        override_reason: Optional[str],
        override_granted: bool,
    ) -> None:
        failing = ", ".join(v.rule_code for v in decision.failing_reasons)
        if decision.outcome == DecisionOutcome.BLOCK:
            logger.info(f"Blocked {entity_type}/{entity_id}: {failing}")
            if override_reason and not override_granted:
                logger.warning(
                    f"Override of {entity_type}/{entity_id} refused: actor lacks an override role"
                )
        elif decision.outcome == DecisionOutcome.OVERRIDE:
            logger.warning(
                f"Override accepted for {entity_type}/{entity_id} ({failing}): {override_reason}"
            )
        elif decision.outcome == DecisionOutcome.WARN:
            logger.info(f"Warning for {entity_type}/{entity_id}: {failing}")

    def _record_metrics(self, decision: Decision, entity_type: str, started: float) -> None:
        latency_ms = (time.perf_counter() - started) * 1000
        if latency_ms > AlertingThresholds.EVALUATION_LATENCY_WARNING_MS:
            logger.warning(f"Governance evaluation took {latency_ms:.1f} ms")

        if self.metrics is None:
            return
        try:
            self.metrics.record_decision(
                outcome=decision.outcome.value,
                entity_type=entity_type,
                latency_ms=latency_ms,
                failed_rules=len(decision.failing_reasons),
                not_configured=sum(
                    1 for v in decision.reasons if v.outcome == Verdict.NOT_CONFIGURED
                ),
            )
        except Exception as e:
            logger.warning(f"Failed to record governance metrics: {e}")


def create_error_reporter(metrics: Optional[MetricsCollector] = None) -> ErrorReporter:
    """Logging reporter, plus CloudWatch counts when metrics are enabled."""
    reporters: List[ErrorReporter] = [LoggingErrorReporter()]
    if metrics is not None:
        reporters.append(MetricsErrorReporter(metrics))
    return CompositeErrorReporter(reporters)


def create_engine(
    config: Optional[Config] = None,
    store: Optional[GovernanceStore] = None,
    recorder: Optional[AuditRecorder] = None,
    metrics: Optional[MetricsCollector] = None,
) -> GovernanceEngine:
    """Build an engine from configuration.

    Seeds the governance store from ``config.rules_file`` when one is set
    and no store was passed in.
    """
    config = config or get_config()

    if metrics is None and config.metrics_enabled:
        metrics = MetricsCollector(region=config.aws_region)

    error_reporter = create_error_reporter(metrics)
    recorder = recorder or create_audit_recorder(config, error_reporter=error_reporter)

    if store is None:
        store = InMemoryGovernanceStore()
        if config.rules_file:
            from workgate.governance.admin import GovernanceAdminService

            GovernanceAdminService(store).load_rules_file(config.rules_file)

    return GovernanceEngine(
        store=store,
        recorder=recorder,
        registry=RuleSetRegistry(store, RuleSetCache(max_size=config.rule_set_cache_size)),
        policy=EnforcementPolicy(
            override_platform_roles=config.override_platform_roles,
            override_workspace_roles=config.override_workspace_roles,
        ),
        metrics=metrics,
    )
