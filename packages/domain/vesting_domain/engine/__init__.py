"""Vesting schedule computation engine.

Pure functions and small classes that turn a grant and its schedule into an
ordered list of vesting events.

Pipeline:
    ScheduleResolver → plan_periods → allocate → compute_vesting_events

Key concepts:
- Integer share arithmetic only; the last event absorbs rounding remainders
- Calendar-month dates, always offset from the vesting start date
- Preview and persisted paths call the same compute_vesting_events()
- Persisted milestones are validated (assess_milestones) before reuse and
  regenerated in full by the ReconciliationGuard when stale
- Display status is projected for an explicit observation date, never stored

Usage:
    from vesting_domain.engine import ScheduleResolver, compute_vesting_events

    resolved = ScheduleResolver(store.get_schedule).resolve(grant, plan)
    events = compute_vesting_events(
        resolved, grant.total_shares, grant.vesting_start_date,
        plan_schedule_kind=plan.vesting_schedule_kind,
    )
"""

from .calendar import add_months, months_between
from .resolver import ScheduleResolver
from .planner import (
    PERCENTAGE_CLIFF_PCT,
    plan_periods,
    plan_periods_for,
    expected_milestone_count,
    period_offsets,
    allocate,
    allocate_for,
    generate_milestones,
)
from .materializer import (
    event_type_for_plan,
    validate_schedule_inputs,
    slots_from_milestones,
    materialize_events,
    compute_vesting_events,
    compute_events_from_milestones,
    check_event_invariants,
)
from .reconciliation import ReconciliationGuard, assess_milestones
from .status import (
    project_status,
    project_events,
    next_vesting_event,
    event_stats,
    vesting_progress,
    upcoming_events,
)
from .summary import summarize_schedule, infer_summary_from_events

__all__ = [
    "add_months",
    "months_between",
    "ScheduleResolver",
    "PERCENTAGE_CLIFF_PCT",
    "plan_periods",
    "plan_periods_for",
    "expected_milestone_count",
    "period_offsets",
    "allocate",
    "allocate_for",
    "generate_milestones",
    "event_type_for_plan",
    "validate_schedule_inputs",
    "slots_from_milestones",
    "materialize_events",
    "compute_vesting_events",
    "compute_events_from_milestones",
    "check_event_invariants",
    "ReconciliationGuard",
    "assess_milestones",
    "project_status",
    "project_events",
    "next_vesting_event",
    "event_stats",
    "vesting_progress",
    "upcoming_events",
    "summarize_schedule",
    "infer_summary_from_events",
]
