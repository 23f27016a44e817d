"""Evaluation Store - append-only persistence for governance evaluation records.

This module provides an interface for evaluation record storage backends,
decoupling audit logic from specific persistence mechanisms.

Design principles:
- Append-only: the contract has no update or delete
- Queryable newest-first by organization, by entity and by decision
- Thread-safe operations
- Optional hash chain for tamper evidence (file backend)
"""

import fcntl
import hashlib
import json
import logging
import os
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Generator, Iterable, List, Optional, Tuple

from workgate.common.constants import AuditConstants, DataConstants
from workgate.common.exceptions import AuditError
from workgate.governance.schemas import DecisionOutcome, EvaluationRecord

logger = logging.getLogger(__name__)


class AuditLogIntegrityError(AuditError):
    """Raised when the evaluation log hash chain does not verify."""

    def __init__(self, message: str):
        super().__init__(message, code="AUDIT_INTEGRITY_ERROR")


def _newest_first(records: Iterable[EvaluationRecord]) -> List[EvaluationRecord]:
    return sorted(records, key=lambda r: (r.created_at, r.sequence), reverse=True)


def _since(records: Iterable[EvaluationRecord], since: Optional[datetime]) -> Iterable[EvaluationRecord]:
    if since is None:
        return records
    return (r for r in records if r.created_at >= since)


class EvaluationStore(ABC):
    """Abstract base class for evaluation record storage backends.

    Implementations must provide thread-safe, append-only storage.
    """

    @abstractmethod
    def append(self, record: EvaluationRecord) -> EvaluationRecord:
        """Append an evaluation record.

        Returns:
            The stored record (hash chain fields populated where supported)

        Raises:
            Exception: Any backend failure; the AuditRecorder reports it
        """

    @abstractmethod
    def get(self, evaluation_id: str) -> Optional[EvaluationRecord]:
        pass

    @abstractmethod
    def query_by_organization(
        self,
        organization_id: str,
        since: Optional[datetime] = None,
        limit: int = DataConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[EvaluationRecord]:
        """Records for an organization, newest first."""

    @abstractmethod
    def query_by_entity(
        self,
        workspace_id: Optional[str],
        entity_type: str,
        entity_id: str,
        limit: int = DataConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[EvaluationRecord]:
        """Records for one entity in a workspace, newest first."""

    @abstractmethod
    def query_by_decision(
        self,
        decision: DecisionOutcome,
        since: Optional[datetime] = None,
        limit: int = DataConstants.DEFAULT_QUERY_LIMIT,
    ) -> List[EvaluationRecord]:
        """Records with a given decision, newest first."""


class InMemoryEvaluationStore(EvaluationStore):
    """Evaluation store kept in process memory, indexed like the persistent backends."""

    def __init__(self):
        self._records: Dict[str, EvaluationRecord] = {}
        self._by_org: Dict[str, List[EvaluationRecord]] = defaultdict(list)
        self._by_entity: Dict[Tuple[str, str, str], List[EvaluationRecord]] = defaultdict(list)
        self._by_decision: Dict[DecisionOutcome, List[EvaluationRecord]] = defaultdict(list)
        self._lock = threading.Lock()

    def append(self, record: EvaluationRecord) -> EvaluationRecord:
        with self._lock:
            if record.evaluation_id in self._records:
                raise AuditError(
                    f"Evaluation record {record.evaluation_id} already exists; records are append-only"
                )
            self._records[record.evaluation_id] = record
            self._by_org[record.organization_id].append(record)
            self._by_entity[
                (record.workspace_id, record.entity_type, record.entity_id)
            ].append(record)
            self._by_decision[record.decision].append(record)
        return record

    def get(self, evaluation_id: str) -> Optional[EvaluationRecord]:
        with self._lock:
            return self._records.get(evaluation_id)

    def query_by_organization(self, organization_id, since=None,
                              limit=DataConstants.DEFAULT_QUERY_LIMIT):
        with self._lock:
            records = list(self._by_org.get(organization_id, ()))
        return _newest_first(_since(records, since))[:limit]

    def query_by_entity(self, workspace_id, entity_type, entity_id,
                        limit=DataConstants.DEFAULT_QUERY_LIMIT):
        with self._lock:
            records = list(self._by_entity.get((workspace_id, entity_type, entity_id), ()))
        return _newest_first(records)[:limit]

    def query_by_decision(self, decision, since=None,
                          limit=DataConstants.DEFAULT_QUERY_LIMIT):
        with self._lock:
            records = list(self._by_decision.get(DecisionOutcome(decision), ()))
        return _newest_first(_since(records, since))[:limit]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class FileEvaluationStore(EvaluationStore):
    """File-based evaluation store with JSONL format and hash chain integrity.

    Features:
    - Append-only JSONL files with daily rotation
    - Hash chain for tamper detection
    - Atomic writes with file locking
    - Sidecar metadata for fast startup
    """

    METADATA_SUFFIX = ".meta"

    def __init__(
        self,
        log_dir: str,
        log_filename_pattern: str = AuditConstants.LOG_FILENAME_PATTERN,
        enable_hash_chain: bool = True,
        hash_algorithm: str = AuditConstants.HASH_ALGORITHM,
        fsync_on_write: bool = False,
    ):
        """Initialize file evaluation store.

        Args:
            log_dir: Directory for evaluation logs.
            log_filename_pattern: Pattern for log filename. {date} is replaced.
            enable_hash_chain: Whether to enable hash chain integrity.
            hash_algorithm: Hash algorithm for integrity checks.
            fsync_on_write: Whether to fsync after each write (slower but safer).
        """
        self.log_dir = Path(log_dir)
        self.log_filename_pattern = log_filename_pattern
        self.enable_hash_chain = enable_hash_chain
        self.hash_algorithm = hash_algorithm
        self.fsync_on_write = fsync_on_write

        self._lock = threading.Lock()
        self._last_hash: Optional[str] = None
        self._chain_date: Optional[str] = None

        self.log_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.log_dir, 0o700)
        except OSError as e:
            logger.warning(f"Could not restrict permissions on {self.log_dir}: {e}")

    @staticmethod
    def _today() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d")

    def _log_path(self, date: str) -> Path:
        return self.log_dir / self.log_filename_pattern.replace("{date}", date)

    def _metadata_path(self, date: str) -> Path:
        log_path = self._log_path(date)
        return log_path.with_suffix(log_path.suffix + self.METADATA_SUFFIX)

    def _load_last_hash(self, date: str) -> Optional[str]:
        """Load last hash from metadata file or scan log."""
        meta_path = self._metadata_path(date)
        if meta_path.exists():
            try:
                with open(meta_path, "r") as f:
                    return json.load(f).get("last_hash")
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Ignoring unreadable metadata {meta_path}: {e}")

        last_hash = None
        log_path = self._log_path(date)
        if log_path.exists():
            with open(log_path, "r") as f:
                for line in f:
                    line = line.strip()
                    if line:
                        last_hash = json.loads(line).get("entry_hash")
        return last_hash

    def _save_metadata(self, date: str, last_hash: str) -> None:
        meta = {
            "last_hash": last_hash,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        try:
            with open(self._metadata_path(date), "w") as f:
                json.dump(meta, f)
        except IOError as e:
            logger.warning(f"Could not write audit metadata: {e}")

    def _compute_hash(self, content: str) -> str:
        hasher = hashlib.new(self.hash_algorithm)
        hasher.update(content.encode("utf-8"))
        return hasher.hexdigest()

    def _serialize_for_hash(self, entry_dict: dict) -> str:
        return json.dumps(entry_dict, sort_keys=True, ensure_ascii=False, default=str)

    def _chain(self, record: EvaluationRecord, date: str) -> EvaluationRecord:
        if not self.enable_hash_chain:
            return record

        if self._chain_date != date:
            self._last_hash = self._load_last_hash(date)
            self._chain_date = date

        entry_dict = record.model_dump(mode="json")
        entry_dict["previous_hash"] = self._last_hash
        entry_dict["entry_hash"] = None
        entry_hash = self._compute_hash(self._serialize_for_hash(entry_dict))
        return record.model_copy(
            update={"previous_hash": self._last_hash, "entry_hash": entry_hash}
        )

    def append(self, record: EvaluationRecord) -> EvaluationRecord:
        """Append record to today's log with file locking."""
        with self._lock:
            date = self._today()
            record = self._chain(record, date)

            fd = os.open(
                str(self._log_path(date)),
                os.O_WRONLY | os.O_CREAT | os.O_APPEND,
                0o600,
            )
            try:
                fcntl.flock(fd, fcntl.LOCK_EX)
                try:
                    os.write(fd, (record.to_jsonl() + "\n").encode("utf-8"))
                    if self.fsync_on_write:
                        os.fsync(fd)
                finally:
                    fcntl.flock(fd, fcntl.LOCK_UN)
            finally:
                os.close(fd)

            if self.enable_hash_chain and record.entry_hash:
                self._last_hash = record.entry_hash
                self._save_metadata(date, record.entry_hash)

            return record

    def iter_records(self, date: Optional[str] = None) -> Generator[EvaluationRecord, None, None]:
        """Yield records of one day (today by default) in write order."""
        log_path = self._log_path(date or self._today())
        if not log_path.exists():
            return

        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    yield EvaluationRecord.from_jsonl(line)
                except (json.JSONDecodeError, ValueError) as e:
                    logger.warning(f"Skipped malformed evaluation record: {e}")

    def _all_records(self) -> Generator[EvaluationRecord, None, None]:
        for log_file in self.get_log_files():
            with open(log_file, "r") as f:
                for line in f:
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        yield EvaluationRecord.from_jsonl(line)
                    except (json.JSONDecodeError, ValueError) as e:
                        logger.warning(f"Skipped malformed evaluation record: {e}")

    def get(self, evaluation_id: str) -> Optional[EvaluationRecord]:
        for record in self._all_records():
            if record.evaluation_id == evaluation_id:
                return record
        return None

    def query_by_organization(self, organization_id, since=None,
                              limit=DataConstants.DEFAULT_QUERY_LIMIT):
        matches = (r for r in self._all_records() if r.organization_id == organization_id)
        return _newest_first(_since(matches, since))[:limit]

    def query_by_entity(self, workspace_id, entity_type, entity_id,
                        limit=DataConstants.DEFAULT_QUERY_LIMIT):
        matches = (
            r for r in self._all_records()
            if r.workspace_id == workspace_id
            and r.entity_type == entity_type
            and r.entity_id == entity_id
        )
        return _newest_first(matches)[:limit]

    def query_by_decision(self, decision, since=None,
                          limit=DataConstants.DEFAULT_QUERY_LIMIT):
        decision = DecisionOutcome(decision)
        matches = (r for r in self._all_records() if r.decision == decision)
        return _newest_first(_since(matches, since))[:limit]

    def verify_integrity(self, date: Optional[str] = None) -> bool:
        """Verify hash chain integrity of one day's log file."""
        if not self.enable_hash_chain:
            return True

        log_path = self._log_path(date or self._today())
        if not log_path.exists():
            return True

        previous_hash = None
        line_number = 0

        with open(log_path, "r") as f:
            for line in f:
                line_number += 1
                line = line.strip()
                if not line:
                    continue

                try:
                    entry_dict = json.loads(line)
                except json.JSONDecodeError as e:
                    raise AuditLogIntegrityError(
                        f"Malformed JSON at line {line_number}: {e}"
                    )

                if entry_dict.get("previous_hash") != previous_hash:
                    raise AuditLogIntegrityError(
                        f"Hash chain broken at line {line_number}. "
                        f"Expected previous_hash={previous_hash}, "
                        f"got {entry_dict.get('previous_hash')}"
                    )

                stored_hash = entry_dict.get("entry_hash")
                entry_dict["entry_hash"] = None
                computed_hash = self._compute_hash(self._serialize_for_hash(entry_dict))
                if computed_hash != stored_hash:
                    raise AuditLogIntegrityError(
                        f"Entry hash mismatch at line {line_number}. "
                        f"Entry may have been tampered with."
                    )

                previous_hash = stored_hash

        return True

    def get_log_files(self) -> List[Path]:
        """All evaluation log files, oldest first."""
        return sorted(self.log_dir.glob("*.jsonl"))
