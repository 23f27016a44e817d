"""Store module - persistence for rule sets, rule versions and active pointers."""

from workgate.governance.store.base import GovernanceStore, GovernanceView
from workgate.governance.store.memory import InMemoryGovernanceStore

__all__ = [
    "GovernanceStore",
    "GovernanceView",
    "InMemoryGovernanceStore",
]
