"""Persistence collaborator contract and the in-memory reference store.

The engine never talks to storage directly. VestingService goes through a
VestingStore, which must guarantee:

- replace_milestones / replace_events are atomic: readers see either the old
  set or the new one, never a mix
- replace_events(require_pending=True) checks the stored lifecycle statuses
  inside the same atomic step as the replacement
- grant_lock(grant_id) serializes regeneration per grant and
  schedule_lock(schedule_id) serializes milestone repair per schedule
- failures surface as PersistenceError with the cause chained
"""

import threading
from datetime import date
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Sequence

from ..errors import ConsistencyError, NotFoundError
from ..schemas import Grant, IncentivePlan, Milestone, ScheduleDefinition, VestingEvent


# =============================================================================
# Keyed locks
# =============================================================================

class KeyedLockRegistry:
    """Lazily created threading.Lock per key (grant id or schedule id).

    At most one read-compute-replace sequence runs per key; different
    keys proceed in parallel.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        lock = self.lock_for(key)
        with lock:
            yield


def processed_events_error(grant_id: str, processed: int, stage: str) -> ConsistencyError:
    """The refusal raised when a grant's events already left 'pending'."""
    return ConsistencyError(
        f"{processed} events already left 'pending'; refusing to regenerate",
        grant_id=grant_id,
        stage=stage,
    )


# =============================================================================
# Store contract
# =============================================================================

class VestingStore(ABC):
    """Storage contract used by VestingService.

    Reads return pydantic models detached from storage: mutating them never
    changes what is stored.
    """

    # -- records ------------------------------------------------------------

    @abstractmethod
    def get_grant(self, grant_id: str) -> Optional[Grant]:
        """Grant by id, or None."""

    @abstractmethod
    def get_plan(self, plan_id: str) -> Optional[IncentivePlan]:
        """Plan by id, or None."""

    @abstractmethod
    def get_schedule(self, schedule_id: str) -> Optional[ScheduleDefinition]:
        """Schedule definition by id, or None."""

    @abstractmethod
    def list_grants(self, company_id: Optional[str] = None) -> List[Grant]:
        """All grants (of one company when given), ordered by id."""

    @abstractmethod
    def save_grant(self, grant: Grant) -> None:
        """Insert or update a grant."""

    @abstractmethod
    def save_plan(self, plan: IncentivePlan) -> None:
        """Insert or update a plan."""

    @abstractmethod
    def save_schedule(self, schedule: ScheduleDefinition) -> None:
        """Insert or update a schedule definition."""

    # -- milestones ---------------------------------------------------------

    @abstractmethod
    def list_milestones(self, schedule_id: str) -> List[Milestone]:
        """Persisted milestones of a schedule, ordered by sequence_order."""

    @abstractmethod
    def replace_milestones(self, schedule_id: str, milestones: Sequence[Milestone]) -> None:
        """Atomically delete every milestone of the schedule and insert ``milestones``.

        Raises:
            PersistenceError: If the replacement failed (nothing changed)
        """

    # -- events -------------------------------------------------------------

    @abstractmethod
    def list_events(self, grant_id: str) -> List[VestingEvent]:
        """Persisted events of a grant, ordered by sequence_number."""

    @abstractmethod
    def replace_events(
        self,
        grant_id: str,
        events: Sequence[VestingEvent],
        require_pending: bool = False,
    ) -> None:
        """Atomically delete every event of the grant and insert ``events``.

        With ``require_pending`` the stored events are checked in the same
        atomic step: a lifecycle update committed by another writer before
        the replacement is never overwritten.

        Raises:
            ConsistencyError: require_pending and a stored event is not 'pending'
                (nothing changed)
            PersistenceError: If the replacement failed (nothing changed)
        """

    @abstractmethod
    def update_event_status(
        self,
        grant_id: str,
        sequence_number: int,
        lifecycle_status: str,
        actual_vest_date: Optional[date] = None,
    ) -> VestingEvent:
        """Record a lifecycle transition made by an external process.

        Raises:
            NotFoundError: If the grant has no event with that sequence number
        """

    @abstractmethod
    def grant_lock(self, grant_id: str):
        """Context manager held for a grant's whole regeneration."""

    @abstractmethod
    def schedule_lock(self, schedule_id: str):
        """Context manager held while a schedule's milestones are checked and repaired."""


# =============================================================================
# In-memory store
# =============================================================================

class InMemoryVestingStore(VestingStore):
    """Dict-backed store for tests, previews and single-process use.

    Replacement builds the new list first and swaps it in under the store
    lock (copy-on-write), so concurrent readers never see a partial set.

    Example:
        store = InMemoryVestingStore()
        store.save_schedule(ScheduleDefinition(id="std", name="4y/1y",
                                               total_duration_months=48,
                                               cliff_months=12))
        store.save_grant(grant)
        VestingService(store).materialize(grant.id)
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._grant_locks = KeyedLockRegistry()
        self._schedule_locks = KeyedLockRegistry()
        self._grants: Dict[str, Grant] = {}
        self._plans: Dict[str, IncentivePlan] = {}
        self._schedules: Dict[str, ScheduleDefinition] = {}
        self._milestones: Dict[str, List[Milestone]] = {}
        self._events: Dict[str, List[VestingEvent]] = {}

    # -- records ------------------------------------------------------------

    def get_grant(self, grant_id: str) -> Optional[Grant]:
        with self._lock:
            grant = self._grants.get(grant_id)
        return grant.model_copy(deep=True) if grant is not None else None

    def get_plan(self, plan_id: str) -> Optional[IncentivePlan]:
        with self._lock:
            plan = self._plans.get(plan_id)
        return plan.model_copy(deep=True) if plan is not None else None

    def get_schedule(self, schedule_id: str) -> Optional[ScheduleDefinition]:
        with self._lock:
            schedule = self._schedules.get(schedule_id)
        return schedule.model_copy(deep=True) if schedule is not None else None

    def list_grants(self, company_id: Optional[str] = None) -> List[Grant]:
        with self._lock:
            grants = list(self._grants.values())
        return [
            g.model_copy(deep=True)
            for g in sorted(grants, key=lambda g: g.id)
            if company_id is None or g.company_id == company_id
        ]

    def save_grant(self, grant: Grant) -> None:
        with self._lock:
            self._grants[grant.id] = grant.model_copy(deep=True)

    def save_plan(self, plan: IncentivePlan) -> None:
        with self._lock:
            self._plans[plan.id] = plan.model_copy(deep=True)

    def save_schedule(self, schedule: ScheduleDefinition) -> None:
        with self._lock:
            self._schedules[schedule.id] = schedule.model_copy(deep=True)

    # -- milestones ---------------------------------------------------------

    def list_milestones(self, schedule_id: str) -> List[Milestone]:
        with self._lock:
            current = self._milestones.get(schedule_id, [])
        return [m.model_copy() for m in current]

    def replace_milestones(self, schedule_id: str, milestones: Sequence[Milestone]) -> None:
        fresh = sorted(
            (m.model_copy(update={"schedule_id": schedule_id}) for m in milestones),
            key=lambda m: m.sequence_order,
        )
        with self._lock:
            self._milestones[schedule_id] = fresh

    # -- events -------------------------------------------------------------

    def list_events(self, grant_id: str) -> List[VestingEvent]:
        with self._lock:
            current = self._events.get(grant_id, [])
        return [e.model_copy() for e in current]

    def replace_events(
        self,
        grant_id: str,
        events: Sequence[VestingEvent],
        require_pending: bool = False,
    ) -> None:
        fresh = sorted(
            (e.model_copy(update={"grant_id": grant_id}) for e in events),
            key=lambda e: e.sequence_number,
        )
        with self._lock:
            if require_pending:
                # update_event_status takes the same lock, so no status can land in between
                processed = [e for e in self._events.get(grant_id, []) if e.lifecycle_status != "pending"]
                if processed:
                    raise processed_events_error(grant_id, len(processed), stage="replace_events")
            self._events[grant_id] = fresh

    def grant_lock(self, grant_id: str):
        return self._grant_locks.hold(grant_id)

    def schedule_lock(self, schedule_id: str):
        return self._schedule_locks.hold(schedule_id)

    def update_event_status(
        self,
        grant_id: str,
        sequence_number: int,
        lifecycle_status: str,
        actual_vest_date: Optional[date] = None,
    ) -> VestingEvent:
        with self._lock:
            current = self._events.get(grant_id, [])
            for index, event in enumerate(current):
                if event.sequence_number == sequence_number:
                    updated = VestingEvent.model_validate({
                        **event.model_dump(),
                        "lifecycle_status": lifecycle_status,
                        "actual_vest_date": actual_vest_date,
                    })
                    self._events[grant_id] = current[:index] + [updated] + current[index + 1:]
                    return updated.model_copy()

        raise NotFoundError(
            "vesting event",
            f"{grant_id}#{sequence_number}",
            grant_id=grant_id,
            stage="update_event_status",
        )
