#!/usr/bin/env python3
"""Main entry point for WorkGate."""

from workgate.common.logging import get_logger
from workgate.common.config import Config
from workgate.governance import create_engine

logger = get_logger(__name__)


def main():
    """Main entry point."""
    config = Config()
    engine = create_engine(config)
    logger.info(f"WorkGate initialized in {config.environment.value} mode")
    logger.info(f"Project root: {config.project_root}")
    logger.info(f"Audit storage: {config.audit_storage_type.value}")
    if config.rules_file:
        revision = engine.store.snapshot().revision
        logger.info(f"Seeded governance store from {config.rules_file} (revision {revision})")


if __name__ == "__main__":
    main()
