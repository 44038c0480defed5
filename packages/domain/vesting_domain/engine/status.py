"""Status Projector and event reporting.

Display status is derived from the persisted lifecycle status plus an explicit
observation date. Nothing here reads the clock or writes back: the same events
and the same date always give the same projection.

    persisted transferred/exercised/cancelled/forfeited -> that status
    persisted vested, or actual_vest_date <= date      -> vested
    persisted pending and event_date <= date           -> pending_due
    otherwise                                          -> upcoming
"""

from datetime import date, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence

from ..schemas import (
    ProjectedEvent,
    VestingEvent,
    VestingEventStats,
    VestingProgress,
)

TERMINAL_STATUSES = ("transferred", "exercised", "cancelled", "forfeited")
VESTED_DISPLAY_STATUSES = ("vested", "transferred", "exercised")
PROCESSED_STATUSES = ("transferred", "exercised")


# =============================================================================
# Projection
# =============================================================================

def project_status(event: VestingEvent, observation_date: date) -> str:
    """Display status of one event as of ``observation_date``.

    Example:
        event dated 2025-01-01, persisted "pending"
        project_status(event, date(2024, 12, 31)) -> "upcoming"
        project_status(event, date(2025, 1, 1))   -> "pending_due"
    """
    status = event.lifecycle_status

    if status in TERMINAL_STATUSES:
        return status

    if status == "vested":
        return "vested"
    if event.actual_vest_date is not None and event.actual_vest_date <= observation_date:
        return "vested"

    if status == "pending" and event.event_date <= observation_date:
        return "pending_due"

    return "upcoming"


def project_events(
    events: Sequence[VestingEvent],
    observation_date: date,
) -> List[ProjectedEvent]:
    """Pair every event with its display status, in sequence order."""
    ordered = sorted(events, key=lambda e: e.sequence_number)
    return [
        ProjectedEvent(
            event=event,
            display_status=project_status(event, observation_date),
            observation_date=observation_date,
        )
        for event in ordered
    ]


def next_vesting_event(
    events: Sequence[VestingEvent],
    observation_date: date,
) -> Optional[ProjectedEvent]:
    """The event that needs attention next.

    The earliest ``pending_due`` event wins (it is overdue for processing);
    otherwise the earliest ``upcoming`` one. None when everything is settled.
    """
    projected = project_events(events, observation_date)
    for wanted in ("pending_due", "upcoming"):
        for item in projected:
            if item.display_status == wanted:
                return item
    return None


# =============================================================================
# Reporting
# =============================================================================

def event_stats(events: Sequence[VestingEvent]) -> VestingEventStats:
    """Counts and share totals grouped by persisted lifecycle status."""
    events_by_status: Dict[str, int] = {}
    shares_by_status: Dict[str, int] = {}

    for event in events:
        status = event.lifecycle_status
        events_by_status[status] = events_by_status.get(status, 0) + 1
        shares_by_status[status] = shares_by_status.get(status, 0) + event.shares

    return VestingEventStats(
        total_events=len(events),
        total_shares=sum(e.shares for e in events),
        events_by_status=events_by_status,
        shares_by_status=shares_by_status,
        cliff_events=sum(1 for e in events if e.event_type == "cliff"),
        time_based_events=sum(1 for e in events if e.event_type == "time_based"),
        performance_events=sum(1 for e in events if e.event_type == "performance"),
        processed_events=sum(1 for e in events if e.lifecycle_status in PROCESSED_STATUSES),
    )


def vesting_progress(
    events: Sequence[VestingEvent],
    total_shares: int,
    observation_date: date,
) -> VestingProgress:
    """Vested versus unvested shares of one grant as of ``observation_date``.

    Shares count as vested when the projected status is vested, transferred
    or exercised. Forfeited and cancelled shares are neither vested nor
    counted towards progress.
    """
    projected = project_events(events, observation_date)
    vested = sum(
        item.event.shares
        for item in projected
        if item.display_status in VESTED_DISPLAY_STATUSES
    )

    if total_shares > 0:
        pct = (Decimal(vested) * 100 / Decimal(total_shares)).quantize(
            Decimal("0.01"), rounding=ROUND_HALF_UP
        )
    else:
        pct = Decimal("0.00")

    upcoming = next_vesting_event(events, observation_date)

    return VestingProgress(
        observation_date=observation_date,
        total_shares=total_shares,
        vested_shares=vested,
        unvested_shares=total_shares - vested,
        progress_pct=pct,
        next_event=upcoming.event if upcoming else None,
        next_event_status=upcoming.display_status if upcoming else None,
    )


def upcoming_events(
    events: Sequence[VestingEvent],
    observation_date: date,
    window_days: int = 30,
    limit: Optional[int] = None,
) -> List[VestingEvent]:
    """Pending events dated within ``window_days`` after ``observation_date``.

    The window is inclusive on both ends. Results are ordered by date, then
    sequence number, and cut to ``limit`` when given.
    """
    if window_days < 0:
        raise ValueError(f"window_days cannot be negative, got {window_days}")

    horizon = observation_date + timedelta(days=window_days)
    found = [
        e for e in events
        if e.lifecycle_status == "pending" and observation_date <= e.event_date <= horizon
    ]
    found.sort(key=lambda e: (e.event_date, e.sequence_number))

    if limit is not None:
        return found[:limit]
    return found
