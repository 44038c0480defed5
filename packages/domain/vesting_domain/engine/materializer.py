"""Event Materializer.

Expands vesting slots into dated, sequenced VestingEvents. This is the single
computation shared by the preview path and the persisted path: both call
compute_vesting_events() (or materialize_events() with milestone-derived
slots), so the two cannot drift apart.
"""

from datetime import date
from typing import List, Optional, Sequence, Tuple

from ..errors import ConsistencyError, ValidationError
from ..logging_config import get_logger
from ..schemas import Allocation, Milestone, ResolvedSchedule, VestingEvent
from .calendar import add_months
from .planner import allocate_for, period_offsets

logger = get_logger("engine.materializer")

Slot = Tuple[int, bool]


_EVENT_TYPE_BY_PLAN_KIND = {
    "performance_based": "performance",
    # no dedicated hybrid event type downstream
    "hybrid": "time_based",
    "time_based": "time_based",
}


def event_type_for_plan(plan_schedule_kind: Optional[str]) -> str:
    """Map the plan's schedule kind to the event type of non-cliff events."""
    return _EVENT_TYPE_BY_PLAN_KIND.get(plan_schedule_kind or "time_based", "time_based")


def validate_schedule_inputs(
    schedule: ResolvedSchedule,
    total_shares: int,
    grant_id: Optional[str] = None,
) -> None:
    """Reject parameter combinations the engine cannot compute with.

    Raises:
        ValidationError: total_shares <= 0, or cliff longer than the schedule
    """
    if total_shares <= 0:
        raise ValidationError(
            f"total_shares must be positive, got {total_shares}",
            grant_id=grant_id,
            schedule_id=schedule.schedule_id,
            stage="validate",
        )
    if schedule.cliff_months > schedule.total_duration_months:
        raise ValidationError(
            f"cliff_months ({schedule.cliff_months}) exceeds "
            f"total_duration_months ({schedule.total_duration_months})",
            grant_id=grant_id,
            schedule_id=schedule.schedule_id,
            stage="validate",
        )


def slots_from_milestones(milestones: Sequence[Milestone]) -> List[Slot]:
    """Turn a validated milestone set into (months_from_start, is_cliff) slots.

    All slots come back as non-cliff; the caller flags the first one as the
    cliff when the schedule has a cliff.
    """
    ordered = sorted(milestones, key=lambda m: m.sequence_order)
    return [(m.months_from_start, False) for m in ordered]


def materialize_events(
    slots: Sequence[Slot],
    allocation: Allocation,
    vesting_start_date: date,
    plan_schedule_kind: Optional[str] = None,
    grant_id: Optional[str] = None,
) -> List[VestingEvent]:
    """Build the ordered event list for a set of slots and an allocation.

    Args:
        slots: (months_from_start, is_cliff) in ascending order
        allocation: Output of allocate()
        vesting_start_date: Anchor date for all month offsets
        plan_schedule_kind: The plan's schedule kind (decides non-cliff types)
        grant_id: Stamped on every event

    Returns:
        Events with sequence numbers 1..n. Every non-final event gets its
        allocated amount; the final event gets total - allocated_so_far.

    Raises:
        ConsistencyError: If the slots do not fit the allocation or the result
            breaks an event-set invariant
    """
    total = allocation.total_shares
    expected_slots = (1 if _has_cliff_slot(slots) else 0) + allocation.period_count
    if len(slots) != max(expected_slots, 1):
        raise ConsistencyError(
            f"{len(slots)} slots do not match allocation of "
            f"{allocation.period_count} periods",
            grant_id=grant_id,
            stage="materialize",
        )

    period_type = event_type_for_plan(plan_schedule_kind)
    events: List[VestingEvent] = []
    allocated = 0

    for index, (months, is_cliff) in enumerate(slots):
        is_last = index == len(slots) - 1
        if is_last:
            shares = total - allocated
        elif is_cliff:
            shares = allocation.cliff_shares
        else:
            shares = allocation.per_period_shares

        allocated += shares
        events.append(
            VestingEvent(
                grant_id=grant_id,
                sequence_number=index + 1,
                event_date=add_months(vesting_start_date, months),
                months_from_start=months,
                shares=shares,
                cumulative_shares=min(allocated, total),
                event_type="cliff" if is_cliff else period_type,
            )
        )

    check_event_invariants(events, total, grant_id=grant_id)
    return events


def compute_vesting_events(
    schedule: ResolvedSchedule,
    total_shares: int,
    vesting_start_date: date,
    plan_schedule_kind: Optional[str] = None,
    grant_id: Optional[str] = None,
) -> List[VestingEvent]:
    """Full pipeline: plan periods, allocate shares, materialize events.

    Example (10,000 shares, 48 months, 12 month cliff, annual, percentage):
        2025-01-01  cliff       2500  (2500)
        2026-01-01  time_based  2500  (5000)
        2027-01-01  time_based  2500  (7500)
        2028-01-01  time_based  2500  (10000)
    """
    validate_schedule_inputs(schedule, total_shares, grant_id=grant_id)
    allocation = allocate_for(schedule, total_shares)
    slots = period_offsets(schedule)

    events = materialize_events(
        slots,
        allocation,
        vesting_start_date,
        plan_schedule_kind=plan_schedule_kind,
        grant_id=grant_id,
    )
    logger.debug(
        "events_materialized",
        extra={
            "event_count": len(events),
            "cliff_shares": allocation.cliff_shares,
            "per_period_shares": allocation.per_period_shares,
            "period_count": allocation.period_count,
            "distribution_mode": schedule.distribution_mode,
        },
    )
    return events


def compute_events_from_milestones(
    milestones: Sequence[Milestone],
    schedule: ResolvedSchedule,
    total_shares: int,
    vesting_start_date: date,
    plan_schedule_kind: Optional[str] = None,
    grant_id: Optional[str] = None,
) -> List[VestingEvent]:
    """Expand a validated milestone set into events for one grant.

    Milestones only supply the month offsets; shares always come from the
    allocator so the result equals compute_vesting_events() for a milestone
    set that passed the Reconciliation Guard.
    """
    validate_schedule_inputs(schedule, total_shares, grant_id=grant_id)
    allocation = allocate_for(schedule, total_shares)

    slots = slots_from_milestones(milestones)
    if schedule.cliff_months > 0 and slots:
        slots[0] = (slots[0][0], True)

    return materialize_events(
        slots,
        allocation,
        vesting_start_date,
        plan_schedule_kind=plan_schedule_kind,
        grant_id=grant_id,
    )


# =============================================================================
# Invariants
# =============================================================================

def _has_cliff_slot(slots: Sequence[Slot]) -> bool:
    return any(is_cliff for _, is_cliff in slots)


def check_event_invariants(
    events: Sequence[VestingEvent],
    total_shares: int,
    grant_id: Optional[str] = None,
) -> None:
    """Verify the event-set invariants.

    - sum(shares) == total_shares
    - sequence numbers are 1..n
    - event dates are non-decreasing
    - last cumulative_shares == total_shares
    - at most one cliff event, and only as the first event

    Raises:
        ConsistencyError: On the first violated invariant
    """
    def fail(message: str) -> None:
        raise ConsistencyError(message, grant_id=grant_id, stage="invariants")

    if not events:
        fail("event list is empty")

    if sum(e.shares for e in events) != total_shares:
        fail(f"shares sum to {sum(e.shares for e in events)}, expected {total_shares}")

    numbers = [e.sequence_number for e in events]
    if numbers != list(range(1, len(events) + 1)):
        fail(f"sequence numbers {numbers} are not contiguous from 1")

    for previous, current in zip(events, events[1:]):
        if current.event_date < previous.event_date:
            fail(
                f"event {current.sequence_number} ({current.event_date}) is dated "
                f"before event {previous.sequence_number} ({previous.event_date})"
            )

    if events[-1].cumulative_shares != total_shares:
        fail(
            f"final cumulative_shares {events[-1].cumulative_shares} "
            f"!= total_shares {total_shares}"
        )

    cliff_positions = [i for i, e in enumerate(events) if e.event_type == "cliff"]
    if len(cliff_positions) > 1 or cliff_positions not in ([], [0]):
        fail(f"cliff events at positions {cliff_positions}")
