#!/usr/bin/env python3
"""Verify the hash chain of file-backed governance evaluation logs.

Usage:
    python scripts/verify_audit_log.py --log-dir ./logs/governance
    python scripts/verify_audit_log.py --date 2026-10-18
"""

import argparse
import sys

from workgate.common.config import get_config
from workgate.common.logging import get_logger
from workgate.governance.audit import AuditLogIntegrityError, FileEvaluationStore

logger = get_logger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--log-dir", default=None, help="Evaluation log directory")
    parser.add_argument("--date", default=None, help="Single day to verify (YYYY-MM-DD)")
    args = parser.parse_args(argv)

    log_dir = args.log_dir or str(get_config().audit_log_dir)
    store = FileEvaluationStore(log_dir=log_dir)

    if args.date:
        dates = [args.date]
    else:
        prefix, _, suffix = store.log_filename_pattern.partition("{date}")
        dates = [p.name[len(prefix):len(p.name) - len(suffix)] for p in store.get_log_files()]

    failures = 0
    for date in dates:
        try:
            store.verify_integrity(date)
            logger.info(f"{date}: OK")
        except AuditLogIntegrityError as e:
            failures += 1
            logger.error(f"{date}: {e.message}")

    logger.info(f"Verified {len(dates)} log file(s), {failures} failure(s)")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
