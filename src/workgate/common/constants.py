"""Centralized constants for the WorkGate governance engine."""


# ===== AUDIT & LOGGING =====
class AuditConstants:
    QUEUE_SIZE = 10000
    FLUSH_TIMEOUT_SECONDS = 5.0
    QUEUE_GET_TIMEOUT = 1.0
    HASH_ALGORITHM = "sha256"
    INPUTS_HASH_LENGTH = 16
    SNAPSHOT_MAX_BYTES = 16 * 1024
    LOG_FILENAME_PATTERN = "governance_evaluations_{date}.jsonl"


# ===== RULE DEFINITIONS =====
class RuleConstants:
    MAX_EXPRESSION_DEPTH = 32
    MAX_EXPRESSION_NODES = 256
    MAX_CONDITION_LENGTH = 2000
    MISSING_INPUT_PREFIX = "required input missing"
    NOT_CONFIGURED_PREFIX = "rule not configured"


# ===== REGISTRY CACHE =====
class CacheConstants:
    RULE_SET_CACHE_SIZE = 1024


# ===== OVERRIDES =====
class OverrideConstants:
    PLATFORM_ROLES = ("ADMIN",)
    WORKSPACE_ROLES = ("OWNER", "ADMIN")


# ===== MONITORING =====
class MonitoringConstants:
    DEFAULT_NAMESPACE = "WorkGate/Governance"
    DEFAULT_BATCH_SIZE = 20
    FLUSH_INTERVAL_SECONDS = 60.0
    FLUSH_TIMEOUT_SECONDS = 5.0
    EVALUATION_LATENCY_WARNING_MS = 5


# ===== DATA & QUERY LIMITS =====
class DataConstants:
    DEFAULT_QUERY_LIMIT = 100
