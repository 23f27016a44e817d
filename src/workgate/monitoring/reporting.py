"""Error reporting side channel.

Failures that must never change a governance decision (most importantly,
audit persistence failures) are handed to an ErrorReporter so operators can
alert on them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional

from workgate.common.exceptions import WorkGateException
from workgate.monitoring.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class ErrorReporter(ABC):
    """Receives out-of-band errors."""

    @abstractmethod
    def report(self, error: WorkGateException, context: Optional[Dict[str, Any]] = None) -> None:
        pass


class LoggingErrorReporter(ErrorReporter):
    """Writes reported errors to the log with their code as a searchable tag."""

    def __init__(self, log: Optional[logging.Logger] = None):
        self.log = log or logger

    def report(self, error, context=None):
        payload = error.to_dict()
        if context:
            payload["context"] = context
        self.log.error(f"{error.code}: {error.message} {payload}")


class MetricsErrorReporter(ErrorReporter):
    """Counts reported errors in CloudWatch, dimensioned by error code."""

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    def report(self, error, context=None):
        self.collector.record_audit_failure(error.code)


class CompositeErrorReporter(ErrorReporter):
    """Fans a report out to several reporters.

    A reporter that raises is logged and skipped so the others still run.
    """

    def __init__(self, reporters: Iterable[ErrorReporter]):
        self.reporters = list(reporters)

    def report(self, error, context=None):
        for reporter in self.reporters:
            try:
                reporter.report(error, context)
            except Exception as e:
                logger.error(f"{type(reporter).__name__} failed to report {error.code}: {e}")
