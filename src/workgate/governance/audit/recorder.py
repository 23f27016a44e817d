"""Audit Recorder - writes one evaluation record per governance evaluation.

Recording never changes the outcome of an evaluation: persistence failures
are logged and handed to the error reporter, and the caller still receives
its decision.
"""

import hashlib
import itertools
import json
import logging
import threading
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional

from workgate.common.constants import AuditConstants
from workgate.common.exceptions import AuditPersistenceFailure
from workgate.governance.audit.store import EvaluationStore
from workgate.governance.schemas import Decision, EvaluationRecord
from workgate.monitoring.reporting import ErrorReporter

logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, tuple):
        return list(value)
    return str(value)


def canonical_json(inputs: Mapping[str, Any]) -> str:
    """Deterministic JSON: sorted keys, no whitespace, Decimals as strings."""
    return json.dumps(
        inputs,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=_json_default,
    )


def compute_inputs_hash(inputs: Mapping[str, Any]) -> str:
    """Truncated SHA-256 of the canonical JSON of the evaluation inputs."""
    digest = hashlib.new(AuditConstants.HASH_ALGORITHM)
    digest.update(canonical_json(inputs).encode("utf-8"))
    return digest.hexdigest()[:AuditConstants.INPUTS_HASH_LENGTH]


class AuditRecorder:
    """Builds evaluation records and appends them to an evaluation store."""

    def __init__(
        self,
        store: EvaluationStore,
        error_reporter: Optional[ErrorReporter] = None,
        capture_snapshot: bool = True,
        snapshot_max_bytes: int = AuditConstants.SNAPSHOT_MAX_BYTES,
    ):
        self.store = store
        self.error_reporter = error_reporter
        self.capture_snapshot = capture_snapshot
        self.snapshot_max_bytes = snapshot_max_bytes

        self._sequence = itertools.count(1)
        self._sequence_lock = threading.Lock()
        self._failures = 0

    def _next_sequence(self) -> int:
        with self._sequence_lock:
            return next(self._sequence)

    def _snapshot_for_record(self, inputs: Mapping[str, Any], encoded: str) -> Optional[Dict[str, Any]]:
        if not self.capture_snapshot:
            return None
        size = len(encoded.encode("utf-8"))
        if size > self.snapshot_max_bytes:
            logger.debug(
                f"Input snapshot of {size} bytes exceeds {self.snapshot_max_bytes}; "
                f"recording hash only"
            )
            return None
        # Round-trip so the stored snapshot is plain JSON data
        return json.loads(encoded)

    def record(
        self,
        *,
        organization_id: str,
        workspace_id: Optional[str],
        entity_type: str,
        entity_id: str,
        transition_type: str,
        from_value: Optional[str],
        to_value: Optional[str],
        decision: Decision,
        inputs: Mapping[str, Any],
        actor_user_id: str,
        actor_platform_role: Optional[str] = None,
        actor_workspace_role: Optional[str] = None,
        override_reason: Optional[str] = None,
        request_id: Optional[str] = None,
        rule_id: Optional[str] = None,
        rule_version: Optional[int] = None,
    ) -> Optional[EvaluationRecord]:
        """Persist one evaluation record.

        Returns:
            The stored record, or None when it could not be persisted
        """
        record = None
        try:
            encoded = canonical_json(inputs)
            record = EvaluationRecord(
                sequence=self._next_sequence(),
                organization_id=organization_id,
                workspace_id=workspace_id,
                entity_type=entity_type,
                entity_id=entity_id,
                transition_type=transition_type,
                from_value=from_value,
                to_value=to_value,
                rule_set_id=decision.rule_set_id,
                rule_id=rule_id,
                rule_version=rule_version,
                enforcement_mode=decision.enforcement_mode,
                decision=decision.outcome,
                reasons=decision.reasons,
                inputs_hash=compute_inputs_hash(inputs),
                inputs_snapshot=self._snapshot_for_record(inputs, encoded),
                actor_user_id=actor_user_id,
                actor_platform_role=actor_platform_role,
                actor_workspace_role=actor_workspace_role,
                override_reason=override_reason,
                request_id=request_id,
                created_at=decision.evaluated_at,
            )
            return self.store.append(record)
        except Exception as e:
            self._handle_failure(e, record, organization_id, entity_type, entity_id, decision)
            return None

    def _handle_failure(
        self,
        cause: Exception,
        record: Optional[EvaluationRecord],
        organization_id: str,
        entity_type: str,
        entity_id: str,
        decision: Decision,
    ) -> None:
        self._failures += 1
        details = {
            "evaluation_id": record.evaluation_id if record is not None else None,
            "organization_id": organization_id,
            "entity_type": entity_type,
            "entity_id": entity_id,
            "decision": decision.outcome.value,
        }
        logger.error(
            f"AUDIT_PERSISTENCE_FAILURE: evaluation of {entity_type}/{entity_id} "
            f"({decision.outcome.value}) was not recorded: {cause}"
        )
        if self.error_reporter is None:
            return

        failure = AuditPersistenceFailure(
            f"Failed to persist evaluation record: {cause}",
            details=details,
        )
        failure.__cause__ = cause
        try:
            self.error_reporter.report(failure)
        except Exception as e:
            logger.error(f"Error reporter failed: {e}")

    @property
    def failure_count(self) -> int:
        """Number of records that could not be persisted."""
        return self._failures
