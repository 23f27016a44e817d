"""Monitoring - track evaluation volume, outcomes, latency and audit failures."""

import atexit, logging, os, threading
from datetime import datetime, timezone
from typing import Dict, List, Optional
from dataclasses import dataclass
from enum import Enum

import boto3
from botocore.exceptions import ClientError
from workgate.common.constants import MonitoringConstants

logger = logging.getLogger(__name__)


class MetricType(str, Enum):
    EVALUATION_COUNT = "evaluation_count"
    DECISION_OUTCOME = "decision_outcome"
    EVALUATION_LATENCY = "evaluation_latency"
    RULE_FAILURES = "rule_failures"
    RULES_NOT_CONFIGURED = "rules_not_configured"
    AUDIT_FAILURE = "audit_failure"


@dataclass
class MetricPoint:
    metric_name: str
    value: float
    unit: str = "None"
    timestamp: Optional[datetime] = None
    dimensions: Optional[Dict[str, str]] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc)


class MetricsCollector:
    """Collects and publishes governance metrics to CloudWatch.

    Publishing happens on a flush thread, woken when the buffer reaches
    batch_size and otherwise every flush_interval seconds. Recording a
    metric never waits on CloudWatch.
    """

    DEFAULT_REGION = "us-east-1"
    DEFAULT_NAMESPACE = MonitoringConstants.DEFAULT_NAMESPACE
    MAX_METRICS_PER_REQUEST = 20

    def __init__(self, namespace: Optional[str] = None, region: Optional[str] = None,
                 aws_profile: Optional[str] = None,
                 batch_size: int = MonitoringConstants.DEFAULT_BATCH_SIZE,
                 flush_interval: float = MonitoringConstants.FLUSH_INTERVAL_SECONDS):
        self.namespace = namespace or os.environ.get("CLOUDWATCH_NAMESPACE", self.DEFAULT_NAMESPACE)
        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        self.batch_size = batch_size
        self.flush_interval = flush_interval
        self.metric_buffer: List[MetricPoint] = []
        self._lock = threading.Lock()
        self._flush_requested = threading.Event()
        self._shutdown_event = threading.Event()

        if aws_profile:
            session = boto3.Session(profile_name=aws_profile)
            self.cloudwatch = session.client("cloudwatch", region_name=self.region)
        else:
            self.cloudwatch = boto3.client("cloudwatch", region_name=self.region)

        self._flush_thread = threading.Thread(
            target=self._flush_loop,
            name="MetricsFlusher",
            daemon=True,
        )
        self._flush_thread.start()
        atexit.register(self.shutdown)

        logger.info(f"Initialized MetricsCollector: namespace={self.namespace}")

    def _flush_loop(self) -> None:
        while not self._shutdown_event.is_set():
            self._flush_requested.wait(timeout=self.flush_interval)
            self._flush_requested.clear()
            try:
                self.flush()
            except IOError as e:
                logger.warning(f"Background metrics flush failed: {e}")

    def record_metric(self, metric: MetricPoint) -> None:
        """Buffer a metric point; a full buffer wakes the flush thread."""
        with self._lock:
            self.metric_buffer.append(metric)
            full = len(self.metric_buffer) >= self.batch_size
        if full:
            self._flush_requested.set()

    def record_decision(
        self,
        outcome: str,
        entity_type: str,
        latency_ms: float,
        failed_rules: int = 0,
        not_configured: int = 0,
    ) -> None:
        """Record metrics for one governance evaluation.

        Args:
            outcome: Decision outcome (ALLOW/WARN/OVERRIDE/BLOCK)
            entity_type: Governed entity type
            latency_ms: Evaluation latency in milliseconds
            failed_rules: Number of failing rule verdicts
            not_configured: Number of NOT_CONFIGURED verdicts
        """
        self.record_metric(MetricPoint(
            metric_name=MetricType.DECISION_OUTCOME.value,
            value=1.0,
            unit="Count",
            dimensions={"outcome": outcome, "entity_type": entity_type},
        ))

        self.record_metric(MetricPoint(
            metric_name=MetricType.EVALUATION_LATENCY.value,
            value=latency_ms,
            unit="Milliseconds",
            dimensions={"entity_type": entity_type},
        ))

        if failed_rules:
            self.record_metric(MetricPoint(
                metric_name=MetricType.RULE_FAILURES.value,
                value=float(failed_rules),
                unit="Count",
                dimensions={"entity_type": entity_type},
            ))

        if not_configured:
            self.record_metric(MetricPoint(
                metric_name=MetricType.RULES_NOT_CONFIGURED.value,
                value=float(not_configured),
                unit="Count",
                dimensions={"entity_type": entity_type},
            ))

    def record_audit_failure(self, error_code: str) -> None:
        """Record an evaluation record that could not be persisted."""
        self.record_metric(MetricPoint(
            metric_name=MetricType.AUDIT_FAILURE.value,
            value=1.0,
            unit="Count",
            dimensions={"error_code": error_code},
        ))

    def flush(self) -> None:
        """Flush buffered metrics to CloudWatch.

        Raises:
            IOError: If CloudWatch write fails
        """
        with self._lock:
            if not self.metric_buffer:
                return
            pending = list(self.metric_buffer)
            self.metric_buffer.clear()

        metric_data = []
        for metric in pending:
            metric_dict = {
                "MetricName": metric.metric_name,
                "Value": metric.value,
                "Unit": metric.unit,
                "Timestamp": metric.timestamp,
            }

            if metric.dimensions:
                metric_dict["Dimensions"] = [
                    {"Name": k, "Value": str(v)}
                    for k, v in metric.dimensions.items()
                ]

            metric_data.append(metric_dict)

        try:
            for i in range(0, len(metric_data), self.MAX_METRICS_PER_REQUEST):
                batch = metric_data[i:i + self.MAX_METRICS_PER_REQUEST]
                self.cloudwatch.put_metric_data(
                    Namespace=self.namespace,
                    MetricData=batch,
                )
            logger.debug(f"Published {len(pending)} metrics to CloudWatch")
        except ClientError as e:
            logger.error(f"Failed to publish metrics: {e}")
            raise IOError(f"CloudWatch write failed: {e}") from e

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop the flush thread and publish remaining metrics."""
        if self._shutdown_event.is_set():
            return
        self._shutdown_event.set()
        self._flush_requested.set()
        self._flush_thread.join(
            timeout=timeout if timeout is not None else MonitoringConstants.FLUSH_TIMEOUT_SECONDS
        )
        try:
            self.flush()
        except IOError as e:
            logger.error(f"Final metrics flush failed: {e}")


class AlertingThresholds:
    """Thresholds for alerting on governance behaviour."""

    EVALUATION_LATENCY_WARNING_MS = MonitoringConstants.EVALUATION_LATENCY_WARNING_MS
