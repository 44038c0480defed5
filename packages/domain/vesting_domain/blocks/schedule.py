"""Vesting schedule computation block.

Runs the event pipeline for one grant and lays the result out as DataFrames
for the workbook renderer.

Output DataFrames:
- vesting_events: One row per event with dates, shares and cumulative totals
- vesting_schedule_summary: Single row describing the schedule
"""

from typing import List, Optional
import pandas as pd

from .base import Block, BlockContext
from ..engine import allocate_for, compute_vesting_events, summarize_schedule
from ..schemas import Grant, ResolvedSchedule, VestingEvent

EVENT_COLUMNS = [
    "sequence_number",
    "event_date",
    "months_from_start",
    "event_type",
    "shares",
    "cumulative_shares",
    "vested_pct",
    "lifecycle_status",
]


class VestingScheduleBlock(Block):
    """Computes a grant's vesting events as DataFrames.

    Inputs (from context):
        - grant: Grant with total_shares and vesting_start_date
        - resolved_schedule: ResolvedSchedule from the ScheduleResolver
        - plan_schedule_kind: The plan's schedule kind (may be None)

    Outputs (to context):
        - vesting_events_list: List[VestingEvent] (for downstream blocks)

        - vesting_events: DataFrame with columns:
            * sequence_number: 1-based event position
            * event_date: Scheduled vesting date
            * months_from_start: Calendar months after vesting start
            * event_type: cliff | time_based | performance
            * shares: Shares vesting at this event
            * cumulative_shares: Running total
            * vested_pct: cumulative_shares / total_shares * 100
            * lifecycle_status: Persisted status (pending for fresh computations)

        - vesting_schedule_summary: DataFrame with single row:
            * grant_id, grant_number, total_shares, vesting_start_date
            * total_duration_months, cliff_months, frequency, distribution_mode
            * source: Which resolver tier supplied the schedule
            * cliff_date, final_vest_date, event_count
            * cliff_shares, per_period_shares, period_count

    Example:
        context = BlockContext.from_values(
            grant=grant, resolved_schedule=resolved, plan_schedule_kind="time_based"
        )
        VestingScheduleBlock().execute(context)
        context.get("vesting_events")
    """

    def __init__(self, events: Optional[List[VestingEvent]] = None):
        """Initialize VestingScheduleBlock.

        Args:
            events: Already persisted events to lay out instead of computing
                fresh ones (keeps their lifecycle status)
        """
        self.events = events

    def inputs(self) -> List[str]:
        return ["grant", "resolved_schedule", "plan_schedule_kind"]

    def outputs(self) -> List[str]:
        return [
            "vesting_events_list",
            "vesting_events",
            "vesting_schedule_summary",
        ]

    def execute(self, context: BlockContext) -> None:
        grant: Grant = context.get("grant")
        resolved: ResolvedSchedule = context.get("resolved_schedule")
        plan_kind: Optional[str] = context.get("plan_schedule_kind")

        if self.events is not None:
            events = sorted(self.events, key=lambda e: e.sequence_number)
        else:
            events = compute_vesting_events(
                resolved,
                grant.total_shares,
                grant.vesting_start_date,
                plan_schedule_kind=plan_kind,
                grant_id=grant.id,
            )

        context.set("vesting_events_list", events)
        context.set("vesting_events", self._events_frame(events, grant.total_shares))
        context.set(
            "vesting_schedule_summary",
            self._summary_frame(grant, resolved, plan_kind, events),
        )

    def _events_frame(self, events: List[VestingEvent], total_shares: int) -> pd.DataFrame:
        if not events:
            return pd.DataFrame(columns=EVENT_COLUMNS)

        rows = [
            {
                "sequence_number": e.sequence_number,
                "event_date": e.event_date,
                "months_from_start": e.months_from_start,
                "event_type": e.event_type,
                "shares": e.shares,
                "cumulative_shares": e.cumulative_shares,
                "vested_pct": e.cumulative_shares / total_shares * 100,
                "lifecycle_status": e.lifecycle_status,
            }
            for e in events
        ]
        return pd.DataFrame(rows, columns=EVENT_COLUMNS)

    def _summary_frame(
        self,
        grant: Grant,
        resolved: ResolvedSchedule,
        plan_kind: Optional[str],
        events: List[VestingEvent],
    ) -> pd.DataFrame:
        summary = summarize_schedule(resolved, grant.vesting_start_date, plan_kind)
        allocation = allocate_for(resolved, grant.total_shares)

        return pd.DataFrame([{
            "grant_id": grant.id,
            "grant_number": grant.grant_number,
            "total_shares": grant.total_shares,
            "vesting_start_date": grant.vesting_start_date,
            "total_duration_months": resolved.total_duration_months,
            "cliff_months": resolved.cliff_months,
            "frequency": resolved.frequency,
            "distribution_mode": resolved.distribution_mode,
            "vesting_kind": summary.vesting_kind,
            "source": resolved.source,
            "cliff_date": summary.cliff_date,
            "final_vest_date": events[-1].event_date if events else None,
            "event_count": len(events),
            "cliff_shares": allocation.cliff_shares,
            "per_period_shares": allocation.per_period_shares,
            "period_count": allocation.period_count,
        }])
