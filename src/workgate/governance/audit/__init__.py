"""Governance audit trail: evaluation records and their stores."""

from workgate.governance.audit.background_writer import BackgroundAuditWriter
from workgate.governance.audit.recorder import (
    AuditRecorder,
    canonical_json,
    compute_inputs_hash,
)
from workgate.governance.audit.store import (
    AuditLogIntegrityError,
    EvaluationStore,
    FileEvaluationStore,
    InMemoryEvaluationStore,
)

__all__ = [
    "AuditRecorder",
    "canonical_json",
    "compute_inputs_hash",
    "EvaluationStore",
    "InMemoryEvaluationStore",
    "FileEvaluationStore",
    "BackgroundAuditWriter",
    "AuditLogIntegrityError",
]
