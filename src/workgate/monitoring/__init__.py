"""Monitoring - CloudWatch metrics and the error reporting side channel."""

from workgate.monitoring.reporting import (
    CompositeErrorReporter,
    ErrorReporter,
    LoggingErrorReporter,
    MetricsErrorReporter,
)

__all__ = [
    "ErrorReporter",
    "LoggingErrorReporter",
    "MetricsErrorReporter",
    "CompositeErrorReporter",
]
