"""DynamoDB Evaluation Store for governance evaluation records.

Table layout (single table, string keys):
- pk/sk:          PK#EVALUATION#<evaluation_id> / SK#EVALUATION
- gsi1 (org):     ORG#<organization_id> / <created_at>#<sequence>
- gsi2 (entity):  ENTITY#<workspace_id or empty>#<entity_type>#<entity_id> / <created_at>#<sequence>
- gsi3 (outcome): DECISION#<decision> / <created_at>#<sequence>

The full record is stored as JSON in ``record_json``; the remaining
attributes exist for indexing and ad-hoc console queries.
"""

import logging, os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError

from workgate.common.constants import DataConstants
from workgate.common.exceptions import AuditError
from workgate.governance.audit.store import EvaluationStore
from workgate.governance.schemas import DecisionOutcome, EvaluationRecord

logger = logging.getLogger(__name__)


class DynamoDBEvaluationStore(EvaluationStore):
    """Append-only DynamoDB store for evaluation records."""

    DEFAULT_REGION = "us-east-1"
    ENTITY = "EVALUATION"

    def __init__(
        self,
        table_name: Optional[str] = None,
        region: Optional[str] = None,
        aws_profile: Optional[str] = None,
        enable_ttl: bool = False,
        ttl_days: int = 365,
        table: Any = None,
    ):
        self.table_name = table_name or os.environ.get("WORKGATE_AUDIT_DYNAMODB_TABLE")
        if not self.table_name:
            raise ValueError("WORKGATE_AUDIT_DYNAMODB_TABLE required")

        self.region = region or os.environ.get("AWS_DEFAULT_REGION", self.DEFAULT_REGION)
        self.enable_ttl = enable_ttl
        self.ttl_days = ttl_days

        if table is not None:
            self.table = table
        else:
            if aws_profile:
                session = boto3.Session(profile_name=aws_profile)
                dynamodb = session.resource("dynamodb", region_name=self.region)
            else:
                dynamodb = boto3.resource("dynamodb", region_name=self.region)
            self.table = dynamodb.Table(self.table_name)
        logger.info(f"DynamoDB evaluation store initialized: {self.table_name} ({self.region})")

    def _key(self, evaluation_id: str) -> Dict[str, str]:
        return {"pk": f"PK#{self.ENTITY}#{evaluation_id}", "sk": f"SK#{self.ENTITY}"}

    @staticmethod
    def _entity_key(workspace_id: Optional[str], entity_type: str, entity_id: str) -> str:
        # Organization-level entities have no workspace segment
        return f"ENTITY#{workspace_id or ''}#{entity_type}#{entity_id}"

    def _get_ttl_timestamp(self) -> int:
        future = datetime.now(timezone.utc) + timedelta(days=self.ttl_days)
        return int(future.timestamp())

    def _build_item(self, record: EvaluationRecord) -> Dict[str, Any]:
        """Build DynamoDB item with standard structure."""
        sort_key = f"{record.created_at.isoformat()}#{record.sequence:012d}"
        item = {
            **self._key(record.evaluation_id),
            "entity": self.ENTITY,
            "evaluation_id": record.evaluation_id,
            "organization_id": record.organization_id,
            "entity_type": record.entity_type,
            "entity_id": record.entity_id,
            "decision": record.decision.value,
            "inputs_hash": record.inputs_hash,
            "actor_user_id": record.actor_user_id,
            "created_at": record.created_at.isoformat(),
            "record_json": record.to_jsonl(),
            "gsi1_pk": f"ORG#{record.organization_id}",
            "gsi1_sk": sort_key,
            "gsi2_pk": self._entity_key(
                record.workspace_id, record.entity_type, record.entity_id
            ),
            "gsi2_sk": sort_key,
            "gsi3_pk": f"DECISION#{record.decision.value}",
            "gsi3_sk": sort_key,
        }
        if record.workspace_id:
            item["workspace_id"] = record.workspace_id
        if record.rule_set_id:
            item["rule_set_id"] = record.rule_set_id
        if self.enable_ttl:
            item["ttl_timestamp"] = self._get_ttl_timestamp()
        return item

    @staticmethod
    def _to_record(item: Dict[str, Any]) -> EvaluationRecord:
        return EvaluationRecord.from_jsonl(item["record_json"])

    def _query_index(
        self,
        index: str,
        pk_value: str,
        limit: int = DataConstants.DEFAULT_QUERY_LIMIT,
        timestamp_filter: Optional[datetime] = None,
    ) -> List[EvaluationRecord]:
        """Query a GSI newest first with consistent error handling."""
        try:
            expr_values = {":pk": pk_value}
            key_cond = f"{index}_pk = :pk"

            if timestamp_filter:
                key_cond += f" AND {index}_sk >= :ts"
                expr_values[":ts"] = timestamp_filter.isoformat()

            response = self.table.query(
                IndexName=f"{index}_pk-{index}_sk-index",
                KeyConditionExpression=key_cond,
                ExpressionAttributeValues=expr_values,
                Limit=limit,
                ScanIndexForward=False,
            )
            return [self._to_record(item) for item in response.get("Items", [])]
        except ClientError as e:
            logger.error(f"Query failed ({index}): {e}")
            return []

    def append(self, record: EvaluationRecord) -> EvaluationRecord:
        try:
            self.table.put_item(
                Item=self._build_item(record),
                ConditionExpression="attribute_not_exists(pk)",
            )
            return record
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException":
                raise AuditError(
                    f"Evaluation record {record.evaluation_id} already exists; "
                    f"records are append-only"
                ) from e
            logger.error(f"put evaluation failed: {e}")
            raise

    def get(self, evaluation_id: str) -> Optional[EvaluationRecord]:
        try:
            resp = self.table.get_item(Key=self._key(evaluation_id))
            if item := resp.get("Item"):
                return self._to_record(item)
            return None
        except ClientError as e:
            logger.error(f"get evaluation failed: {e}")
            return None

    def query_by_organization(self, organization_id, since=None,
                              limit=DataConstants.DEFAULT_QUERY_LIMIT):
        return self._query_index("gsi1", f"ORG#{organization_id}", limit, since)

    def query_by_entity(self, workspace_id, entity_type, entity_id,
                        limit=DataConstants.DEFAULT_QUERY_LIMIT):
        return self._query_index(
            "gsi2", self._entity_key(workspace_id, entity_type, entity_id), limit
        )

    def query_by_decision(self, decision, since=None,
                          limit=DataConstants.DEFAULT_QUERY_LIMIT):
        return self._query_index(
            "gsi3", f"DECISION#{DecisionOutcome(decision).value}", limit, since
        )

    def health_check(self) -> bool:
        try:
            self.table.table_status
            return True
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False
