"""Engine intermediate results and reporting models.

- Allocation: output of the Share Allocator
- StalenessVerdict: output of the Reconciliation Guard's predicate
- VestingSummary: compact schedule description for display
- VestingEventStats / VestingProgress: aggregate views over persisted events
- BatchReport: per-grant outcome of bulk regeneration
"""

from typing import Dict, List, Optional
from datetime import date
from decimal import Decimal
from pydantic import Field

from .base import (
    DomainModel,
    FrozenDomainModel,
    ShareCount,
    MonthCount,
    VestingFrequency,
    ScheduleSource,
)
from .events import VestingEvent


# =============================================================================
# Allocation
# =============================================================================

class Allocation(FrozenDomainModel):
    """Integer share split computed by the Share Allocator.

    Invariant: cliff_shares + period_count * per_period_shares <= total_shares.
    The final event absorbs the remainder when events are materialized.
    """

    total_shares: int = Field(gt=0)
    cliff_shares: ShareCount = Field(default=0)
    per_period_shares: ShareCount = Field(default=0)
    period_count: int = Field(ge=0)

    @property
    def remainder(self) -> int:
        """Shares the last event receives on top of per_period_shares."""
        return self.total_shares - self.cliff_shares - self.period_count * self.per_period_shares


# =============================================================================
# Staleness Verdict
# =============================================================================

class StalenessVerdict(FrozenDomainModel):
    """Outcome of validating a persisted milestone set.

    reasons is empty for a valid set. "missing" means there is nothing
    persisted yet: regenerate, but there is nothing stale to delete.
    """

    expected_count: int = Field(ge=0)
    actual_count: int = Field(ge=0)
    reasons: List[str] = Field(default_factory=list)

    @property
    def is_missing(self) -> bool:
        return self.actual_count == 0 and self.expected_count > 0

    @property
    def is_stale(self) -> bool:
        return bool(self.reasons) and not self.is_missing

    @property
    def needs_regeneration(self) -> bool:
        return bool(self.reasons)


# =============================================================================
# Vesting Summary
# =============================================================================

class VestingSummary(DomainModel):
    """Compact description of a grant's schedule, independent of the event list."""

    cliff_months: MonthCount
    frequency: VestingFrequency
    vesting_kind: str = Field(
        description="Event type actually used (non-cliff) or the schedule kind"
    )
    vesting_years: int = Field(ge=0)
    cliff_date: date
    source: str = Field(
        description="events | one of the resolver tiers"
    )


# =============================================================================
# Event Stats
# =============================================================================

class VestingEventStats(DomainModel):
    """Counts and share totals per persisted lifecycle status."""

    total_events: int = 0
    total_shares: int = 0
    events_by_status: Dict[str, int] = Field(default_factory=dict)
    shares_by_status: Dict[str, int] = Field(default_factory=dict)
    cliff_events: int = 0
    time_based_events: int = 0
    performance_events: int = 0
    processed_events: int = Field(
        default=0,
        description="Events already transferred or exercised"
    )


# =============================================================================
# Progress
# =============================================================================

class VestingProgress(DomainModel):
    """Grant-level progress as of an observation date."""

    observation_date: date
    total_shares: int
    vested_shares: int
    unvested_shares: int
    progress_pct: Decimal = Field(
        description="vested_shares / total_shares * 100, rounded to 2 places"
    )
    next_event: Optional[VestingEvent] = None
    next_event_status: Optional[str] = None


# =============================================================================
# Batch Report
# =============================================================================

class BatchFailure(DomainModel):
    """One grant that failed during a batch operation."""

    grant_id: str
    stage: Optional[str] = None
    error_code: str
    reason: str


class BatchReport(DomainModel):
    """Aggregate outcome of a bulk operation (continue-on-error)."""

    succeeded: List[str] = Field(default_factory=list)
    failed: List[BatchFailure] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.succeeded) + len(self.failed) + len(self.skipped)

    @property
    def ok(self) -> bool:
        return not self.failed
