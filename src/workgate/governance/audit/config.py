"""Audit Layer Configuration and Initialization.

Provides factory methods for evaluation stores and the audit recorder.

Environment variables (read through workgate.common.config.Config):
- WORKGATE_AUDIT_STORAGE_TYPE: "memory" (default), "file", or "dynamodb"
- WORKGATE_AUDIT_LOG_DIR: directory for JSONL evaluation logs
- WORKGATE_AUDIT_DYNAMODB_TABLE: DynamoDB table for evaluation records
- WORKGATE_AUDIT_BACKGROUND_WRITER: write records on a background thread
- AWS_DEFAULT_REGION: AWS region
"""

import logging
from typing import Optional

from workgate.common.config import AuditStorageType, Config, get_config
from workgate.common.exceptions import ConfigurationError
from workgate.governance.audit.background_writer import BackgroundAuditWriter
from workgate.governance.audit.recorder import AuditRecorder
from workgate.governance.audit.store import (
    EvaluationStore,
    FileEvaluationStore,
    InMemoryEvaluationStore,
)
from workgate.monitoring.reporting import ErrorReporter

logger = logging.getLogger(__name__)


def create_evaluation_store(
    config: Optional[Config] = None,
    storage_type: Optional[str] = None,
    error_reporter: Optional[ErrorReporter] = None,
    **kwargs
) -> EvaluationStore:
    """Factory method to create an evaluation store based on configuration.

    Args:
        config: Configuration (global config if not provided)
        storage_type: "memory", "file" or "dynamodb"; overrides config
        error_reporter: Receives background write failures
        **kwargs: Additional arguments for store initialization

    Returns:
        Configured EvaluationStore instance
    """
    config = config or get_config()
    try:
        storage_type = AuditStorageType(storage_type or config.audit_storage_type)
    except ValueError as e:
        raise ConfigurationError(f"Unknown audit storage type: {storage_type}") from e

    if storage_type == AuditStorageType.MEMORY:
        store = InMemoryEvaluationStore()
    elif storage_type == AuditStorageType.FILE:
        store = FileEvaluationStore(
            log_dir=str(kwargs.pop("log_dir", config.audit_log_dir)),
            **kwargs
        )
    else:
        from workgate.governance.audit.dynamodb_store import DynamoDBEvaluationStore

        store = DynamoDBEvaluationStore(
            table_name=kwargs.pop("table_name", config.audit_dynamodb_table),
            region=kwargs.pop("region", config.aws_region),
            **kwargs
        )

    logger.info(f"Evaluation store: {type(store).__name__}")
    if config.audit_background_writer:
        return BackgroundAuditWriter(store=store, error_reporter=error_reporter)
    return store


def create_audit_recorder(
    config: Optional[Config] = None,
    store: Optional[EvaluationStore] = None,
    error_reporter: Optional[ErrorReporter] = None,
) -> AuditRecorder:
    """Factory method to create an audit recorder with the configured backend."""
    config = config or get_config()
    store = store or create_evaluation_store(config, error_reporter=error_reporter)
    return AuditRecorder(
        store=store,
        error_reporter=error_reporter,
        capture_snapshot=config.audit_capture_snapshot,
        snapshot_max_bytes=config.audit_snapshot_max_bytes,
    )


__all__ = [
    "create_evaluation_store",
    "create_audit_recorder",
]
