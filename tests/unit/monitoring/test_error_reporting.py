"""Tests for the error reporting side channel."""

import logging
from unittest.mock import MagicMock

from workgate.common.exceptions import AuditPersistenceFailure
from workgate.monitoring.reporting import (
    CompositeErrorReporter,
    LoggingErrorReporter,
    MetricsErrorReporter,
)


def failure():
    return AuditPersistenceFailure("write failed", details={"entity_id": "task_1"})


class TestLoggingErrorReporter:
    def test_logs_code_and_details(self, caplog):
        with caplog.at_level(logging.ERROR):
            LoggingErrorReporter().report(failure(), {"request_id": "req_1"})

        assert "AUDIT_PERSISTENCE_FAILURE: write failed" in caplog.text
        assert "task_1" in caplog.text
        assert "req_1" in caplog.text


class TestMetricsErrorReporter:
    def test_counts_by_code(self):
        collector = MagicMock()
        MetricsErrorReporter(collector).report(failure())
        collector.record_audit_failure.assert_called_once_with("AUDIT_PERSISTENCE_FAILURE")


class TestCompositeErrorReporter:
    def test_fans_out(self):
        first, second = MagicMock(), MagicMock()
        error = failure()
        CompositeErrorReporter([first, second]).report(error)

        first.report.assert_called_once_with(error, None)
        second.report.assert_called_once_with(error, None)

    def test_failing_reporter_skipped(self, caplog):
        broken, healthy = MagicMock(), MagicMock()
        broken.report.side_effect = RuntimeError("boom")

        CompositeErrorReporter([broken, healthy]).report(failure())

        healthy.report.assert_called_once()
        assert "failed to report AUDIT_PERSISTENCE_FAILURE" in caplog.text
