"""Vesting summaries.

A summary is the short description shown next to a grant: cliff, frequency,
kind, length in years and cliff date. It comes from the persisted events when
a grant has them (they are what will actually vest) and from the resolved
schedule otherwise.
"""

from datetime import date
from typing import List, Optional, Sequence

from ..schemas import ResolvedSchedule, VestingEvent, VestingSummary
from .calendar import add_months, months_between
from .materializer import event_type_for_plan


def summarize_schedule(
    schedule: ResolvedSchedule,
    vesting_start_date: date,
    plan_schedule_kind: Optional[str] = None,
) -> VestingSummary:
    """Summary straight from resolved schedule parameters."""
    return VestingSummary(
        cliff_months=schedule.cliff_months,
        frequency=schedule.frequency,
        vesting_kind=event_type_for_plan(plan_schedule_kind or schedule.schedule_kind),
        vesting_years=schedule.total_duration_months // 12,
        cliff_date=add_months(vesting_start_date, schedule.cliff_months),
        source=schedule.source,
    )


def _frequency_from_spacing(months: int) -> str:
    if months >= 12:
        return "annually"
    if months >= 3:
        return "quarterly"
    return "monthly"


def infer_summary_from_events(
    events: Sequence[VestingEvent],
    vesting_start_date: date,
) -> Optional[VestingSummary]:
    """Reverse-engineer a summary from persisted event dates.

    Offsets are measured in calendar months from the start date, so month-end
    clamped dates (Jan 31 -> Feb 28) still read as whole months.

    - cliff: offset of the cliff event, 0 when there is none
    - frequency: spacing of the first two post-cliff events (or cliff to the
      first period when there is only one); "monthly" when nothing to measure
    - years: last event offset / 12, rounded half up, at least 1
    - kind: type of the first non-cliff event, else time_based

    Returns:
        None for an empty event list
    """
    if not events:
        return None

    ordered = sorted(events, key=lambda e: (e.event_date, e.sequence_number))
    offsets = [months_between(vesting_start_date, e.event_date) for e in ordered]

    has_cliff = ordered[0].event_type == "cliff"
    cliff_months = max(0, offsets[0]) if has_cliff else 0

    period_offsets: List[int] = [
        offset for event, offset in zip(ordered, offsets) if event.event_type != "cliff"
    ]
    if len(period_offsets) > 1:
        frequency = _frequency_from_spacing(period_offsets[1] - period_offsets[0])
    elif has_cliff and period_offsets:
        frequency = _frequency_from_spacing(period_offsets[0] - cliff_months)
    else:
        frequency = "monthly"

    kind = next(
        (e.event_type for e in ordered if e.event_type != "cliff"),
        "time_based",
    )

    return VestingSummary(
        cliff_months=cliff_months,
        frequency=frequency,
        vesting_kind=kind,
        vesting_years=max(1, (offsets[-1] + 6) // 12),
        cliff_date=add_months(vesting_start_date, cliff_months),
        source="events",
    )
