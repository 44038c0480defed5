"""Vesting events - the engine's output unit.

Events are produced by the Event Materializer and owned by the persistence
collaborator afterwards. The engine never changes lifecycle_status; external
business processes (vesting execution, transfer, exercise, forfeiture) do,
and the Status Projector only reads it.
"""

from typing import Optional, Tuple
from datetime import date
from pydantic import Field

from .base import (
    DomainModel,
    GrantId,
    ShareCount,
    EventType,
    LifecycleStatus,
    DisplayStatus,
)


# =============================================================================
# Vesting Event
# =============================================================================

class VestingEvent(DomainModel):
    """A single dated vesting event of a grant.

    Example (scenario: 10,000 shares, 48 months, 12 month cliff, annual):
        VestingEvent(sequence_number=1, event_date=date(2025, 1, 1),
                     months_from_start=12, shares=2500,
                     cumulative_shares=2500, event_type="cliff")
    """

    grant_id: Optional[GrantId] = Field(
        default=None,
        description="Grant this event belongs to (None for ad-hoc previews)"
    )

    sequence_number: int = Field(
        ge=1,
        description="1-based position in the grant's ordered event list"
    )

    event_date: date = Field(
        description="Scheduled vesting date"
    )

    months_from_start: int = Field(
        ge=0,
        description="Calendar months between vesting start and event_date"
    )

    shares: ShareCount = Field(
        description="Shares vesting at this event"
    )

    cumulative_shares: ShareCount = Field(
        description="Running total up to and including this event"
    )

    event_type: EventType = Field(
        description="cliff | time_based | performance | acceleration"
    )

    lifecycle_status: LifecycleStatus = Field(
        default="pending",
        description="Persisted status, set by external processes only"
    )

    actual_vest_date: Optional[date] = Field(
        default=None,
        description="Date the vesting was actually executed (set externally)"
    )

    def schedule_key(self) -> Tuple[date, int, int, str]:
        """Tuple compared between the preview and persisted computation paths."""
        return (self.event_date, self.shares, self.cumulative_shares, self.event_type)


# =============================================================================
# Projected Event (display only)
# =============================================================================

class ProjectedEvent(DomainModel):
    """A persisted event paired with its display status for one observation date.

    Never stored; recomputed on every read.
    """

    event: VestingEvent = Field(
        description="The canonical persisted event (unchanged)"
    )

    display_status: DisplayStatus = Field(
        description="Presentation-facing status derived by the Status Projector"
    )

    observation_date: date = Field(
        description="Date the status was projected for"
    )
