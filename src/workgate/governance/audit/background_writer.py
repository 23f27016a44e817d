"""Background Evaluation Writer - Async evaluation record persistence for high throughput."""

import atexit, logging, queue, threading
from typing import Optional

from workgate.common.constants import AuditConstants, DataConstants
from workgate.common.exceptions import AuditPersistenceFailure
from workgate.governance.audit.store import EvaluationStore
from workgate.governance.schemas import EvaluationRecord
from workgate.monitoring.reporting import ErrorReporter

logger = logging.getLogger(__name__)


class BackgroundAuditWriter(EvaluationStore):
    """Background writer for non-blocking evaluation record writes.

    Records are written by a single thread in submission order. Reads go
    straight to the wrapped store, so records still queued are not visible
    until flushed.
    """

    DEFAULT_QUEUE_SIZE = AuditConstants.QUEUE_SIZE
    DEFAULT_FLUSH_TIMEOUT = AuditConstants.FLUSH_TIMEOUT_SECONDS

    def __init__(
        self,
        store: EvaluationStore,
        max_queue_size: int = DEFAULT_QUEUE_SIZE,
        flush_timeout: float = DEFAULT_FLUSH_TIMEOUT,
        sync_fallback: bool = True,
        error_reporter: Optional[ErrorReporter] = None,
    ):
        """Initialize background evaluation writer.

        Args:
            store: Evaluation store backend that performs the actual writes.
            max_queue_size: Maximum number of records to buffer.
            flush_timeout: Timeout for flushing queue on shutdown.
            sync_fallback: Whether to write synchronously when queue is full.
            error_reporter: Receives failures that happen on the writer thread.
        """
        self.store = store
        self.max_queue_size = max_queue_size
        self.flush_timeout = flush_timeout
        self.sync_fallback = sync_fallback
        self.error_reporter = error_reporter

        self._queue: queue.Queue[Optional[EvaluationRecord]] = queue.Queue(
            maxsize=max_queue_size
        )

        self._shutdown_event = threading.Event()
        self._writer_thread: Optional[threading.Thread] = None

        self._records_written = 0
        self._records_dropped = 0
        self._records_failed = 0
        self._sync_fallback_count = 0
        self._stats_lock = threading.Lock()

        self._start_writer()
        atexit.register(self.shutdown)

    def _start_writer(self) -> None:
        self._writer_thread = threading.Thread(
            target=self._writer_loop,
            name="EvaluationWriter",
            daemon=True,
        )
        self._writer_thread.start()
        logger.info("Background evaluation writer started")

    def _writer_loop(self) -> None:
        """Background loop that writes records from the queue."""
        while not self._shutdown_event.is_set():
            try:
                record = self._queue.get(timeout=AuditConstants.QUEUE_GET_TIMEOUT)
            except queue.Empty:
                continue

            if record is None:
                self._queue.task_done()
                break

            try:
                self._write(record)
            finally:
                self._queue.task_done()

        self._drain_queue()
        logger.info("Background evaluation writer stopped")

    def _write(self, record: EvaluationRecord) -> None:
        try:
            self.store.append(record)
            with self._stats_lock:
                self._records_written += 1
        except Exception as e:
            with self._stats_lock:
                self._records_failed += 1
            logger.error(
                f"AUDIT_PERSISTENCE_FAILURE: could not write evaluation "
                f"{record.evaluation_id}: {e}"
            )
            self._report(record, e)

    def _report(self, record: EvaluationRecord, cause: Exception) -> None:
        if self.error_reporter is None:
            return
        failure = AuditPersistenceFailure(
            f"Failed to persist evaluation record: {cause}",
            details={
                "evaluation_id": record.evaluation_id,
                "organization_id": record.organization_id,
                "entity_type": record.entity_type,
                "entity_id": record.entity_id,
                "decision": record.decision.value,
            },
        )
        failure.__cause__ = cause
        try:
            self.error_reporter.report(failure)
        except Exception as e:
            logger.error(f"Error reporter failed: {e}")

    def _drain_queue(self) -> None:
        """Drain remaining records from the queue."""
        drained = 0
        while True:
            try:
                record = self._queue.get_nowait()
            except queue.Empty:
                break
            try:
                if record is not None:
                    self._write(record)
                    drained += 1
            finally:
                self._queue.task_done()

        if drained > 0:
            logger.info(f"Drained {drained} evaluation records during shutdown")

    def append(self, record: EvaluationRecord) -> EvaluationRecord:
        """Queue a record for writing.

        Returns:
            The record as submitted (hash fields are populated by the store
            on the actual write)

        Note:
            If queue is full and sync_fallback is True, writes synchronously.
            If queue is full and sync_fallback is False, drops the record and
            raises.

        Raises:
            AuditPersistenceFailure: If the record was dropped
        """
        if self._shutdown_event.is_set():
            return self.store.append(record)

        try:
            self._queue.put_nowait(record)
            return record
        except queue.Full:
            if self.sync_fallback:
                with self._stats_lock:
                    self._sync_fallback_count += 1
                logger.warning("Evaluation queue full, writing synchronously")
                return self.store.append(record)

            with self._stats_lock:
                self._records_dropped += 1
            logger.warning(f"Evaluation queue full, record {record.evaluation_id} dropped")
            raise AuditPersistenceFailure(
                "Evaluation queue full, record dropped",
                details={
                    "evaluation_id": record.evaluation_id,
                    "queue_size": self.max_queue_size,
                },
            )

    def get(self, evaluation_id):
        return self.store.get(evaluation_id)

    def query_by_organization(self, organization_id, since=None, limit=DataConstants.DEFAULT_QUERY_LIMIT):
        return self.store.query_by_organization(organization_id, since=since, limit=limit)

    def query_by_entity(self, workspace_id, entity_type, entity_id, limit=DataConstants.DEFAULT_QUERY_LIMIT):
        return self.store.query_by_entity(workspace_id, entity_type, entity_id, limit=limit)

    def query_by_decision(self, decision, since=None, limit=DataConstants.DEFAULT_QUERY_LIMIT):
        return self.store.query_by_decision(decision, since=since, limit=limit)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Shutdown the background writer gracefully.

        Args:
            timeout: Maximum time to wait for queue drain. Uses default if None.
        """
        if self._shutdown_event.is_set():
            return

        timeout = timeout if timeout is not None else self.flush_timeout

        logger.info("Shutting down background evaluation writer...")
        self._shutdown_event.set()

        try:
            self._queue.put_nowait(None)
        except queue.Full:
            pass  # writer sees the shutdown event

        if self._writer_thread and self._writer_thread.is_alive():
            self._writer_thread.join(timeout=timeout)
            if self._writer_thread.is_alive():
                logger.warning("Evaluation writer did not stop cleanly")

        logger.info(
            f"Evaluation writer shutdown complete. "
            f"Written: {self._records_written}, "
            f"Failed: {self._records_failed}, "
            f"Dropped: {self._records_dropped}, "
            f"Sync fallbacks: {self._sync_fallback_count}"
        )

    def flush(self) -> None:
        """Block until every queued record has been written or failed."""
        self._queue.join()

    def get_stats(self) -> dict:
        """Get writer statistics."""
        with self._stats_lock:
            return {
                "records_written": self._records_written,
                "records_failed": self._records_failed,
                "records_dropped": self._records_dropped,
                "sync_fallback_count": self._sync_fallback_count,
                "queue_size": self._queue.qsize(),
                "max_queue_size": self.max_queue_size,
            }

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def is_running(self) -> bool:
        return not self._shutdown_event.is_set()
