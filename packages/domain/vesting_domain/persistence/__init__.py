"""Storage collaborators for vesting records.

- VestingStore: the contract VestingService depends on
- InMemoryVestingStore: dict-backed reference implementation
- SqlVestingStore: SQLAlchemy implementation (schedules, milestones, plans,
  grants and vesting_events tables)
"""

from .store import InMemoryVestingStore, KeyedLockRegistry, VestingStore, processed_events_error
from .sql import SqlVestingStore

__all__ = [
    "KeyedLockRegistry",
    "InMemoryVestingStore",
    "SqlVestingStore",
    "VestingStore",
    "processed_events_error",
]
