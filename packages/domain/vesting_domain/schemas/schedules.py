"""Vesting schedule definitions, milestones, and resolved schedule parameters.

A ScheduleDefinition is the reusable template (duration, cliff, frequency).
Milestones are its precomputed, persisted period descriptors. A ResolvedSchedule
is the single concrete parameter set the engine computes with, after the
resolver has picked one source out of the prioritized candidates.
"""

from typing import Optional
from decimal import Decimal
from pydantic import Field, model_validator

from .base import (
    DomainModel,
    FrozenDomainModel,
    ScheduleId,
    MonthCount,
    VestingFrequency,
    DistributionMode,
    ScheduleKind,
    ScheduleSource,
    frequency_to_months,
)


# =============================================================================
# Schedule Definition
# =============================================================================

class ScheduleDefinition(DomainModel):
    """Reusable vesting schedule template.

    Created by plan/schedule setup and read-only to the engine.

    Example:
        Standard 4-year schedule with a 1-year cliff, vesting annually:

        ScheduleDefinition(
            id="standard_4y",
            name="4 years, 1 year cliff",
            total_duration_months=48,
            cliff_months=12,
            frequency="annually",
        )

        With percentage distribution this produces 4 events:
        25% at month 12, then 25% at months 24, 36 and 48.
    """

    id: ScheduleId = Field(
        description="Unique schedule identifier"
    )

    name: str = Field(
        default="",
        description="Human-readable schedule name"
    )

    total_duration_months: int = Field(
        gt=0,
        description="Total vesting duration in months (cliff included)"
    )

    cliff_months: MonthCount = Field(
        default=0,
        description="Cliff length in months (0 = no cliff)"
    )

    frequency: VestingFrequency = Field(
        default="monthly",
        description="Interval between post-cliff vesting events"
    )

    distribution_mode: DistributionMode = Field(
        default="percentage",
        description="percentage = 25% cliff / 75% over periods; even = equal slices"
    )

    schedule_kind: ScheduleKind = Field(
        default="time_based",
        description="Template's schedule kind (event types come from the plan's kind)"
    )

    is_template: bool = Field(
        default=True,
        description="True if this schedule is a reusable template"
    )

    @model_validator(mode='after')
    def validate_cliff_within_duration(self):
        """Cliff cannot be longer than the whole schedule."""
        if self.cliff_months > self.total_duration_months:
            raise ValueError(
                f"cliff_months ({self.cliff_months}) cannot exceed "
                f"total_duration_months ({self.total_duration_months})"
            )
        return self

    @property
    def frequency_months(self) -> int:
        """Months per vesting period."""
        return frequency_to_months(self.frequency)


# =============================================================================
# Milestone
# =============================================================================

class Milestone(DomainModel):
    """Persisted period descriptor belonging to a ScheduleDefinition.

    Milestones are read back from storage and may be stale or corrupt, so
    months_from_start accepts None and 0 here. The Reconciliation Guard is
    responsible for rejecting such sets (see engine.reconciliation).
    """

    schedule_id: Optional[ScheduleId] = Field(
        default=None,
        description="Owning schedule"
    )

    sequence_order: int = Field(
        ge=0,
        description="0-based position within the schedule"
    )

    months_from_start: Optional[int] = Field(
        default=None,
        description="Calendar months from vesting start (must be > 0 to be valid)"
    )

    vesting_percentage: Optional[Decimal] = Field(
        default=None,
        ge=0,
        le=100,
        description="Share of the grant vesting at this milestone (0-100)"
    )

    milestone_type: str = Field(
        default="time",
        description="time | performance | hybrid (derived from the template's kind)"
    )


# =============================================================================
# Plan Fallback Configuration
# =============================================================================

class PlanVestingConfig(DomainModel):
    """Inline vesting configuration stored on an incentive plan.

    Used only when neither the grant, the call, nor the plan links a schedule.
    Durations are expressed in years and converted to months (years * 12).
    """

    years: int = Field(
        default=4,
        gt=0,
        description="Vesting duration in years"
    )

    cliff_months: MonthCount = Field(
        default=12,
        description="Cliff length in months"
    )

    frequency: VestingFrequency = Field(
        default="annually",
        description="Interval between post-cliff vesting events"
    )

    @property
    def total_duration_months(self) -> int:
        return self.years * 12


# =============================================================================
# Schedule Defaults
# =============================================================================

class ScheduleDefaults(FrozenDomainModel):
    """Last-resort schedule parameters (tier 5 of the resolver)."""

    total_duration_months: int = Field(default=48, gt=0)
    cliff_months: MonthCount = Field(default=12)
    frequency: VestingFrequency = Field(default="annually")
    distribution_mode: DistributionMode = Field(default="percentage")
    schedule_kind: ScheduleKind = Field(default="time_based")

    @classmethod
    def from_settings(cls, settings) -> "ScheduleDefaults":
        """Build defaults from a VestingSettings instance."""
        return cls(
            total_duration_months=settings.default_duration_months,
            cliff_months=settings.default_cliff_months,
            frequency=settings.default_frequency,
            distribution_mode=settings.default_distribution_mode,
            schedule_kind=settings.default_schedule_kind,
        )


# =============================================================================
# Resolved Schedule
# =============================================================================

class ResolvedSchedule(FrozenDomainModel):
    """The single effective parameter set used for one computation.

    Produced by ScheduleResolver.resolve(); every downstream engine function
    takes this one struct instead of probing optional fields of the sources.
    """

    total_duration_months: int = Field(
        gt=0,
        description="Total vesting duration in months"
    )

    cliff_months: MonthCount = Field(
        description="Cliff length in months"
    )

    frequency: VestingFrequency = Field(
        description="Interval between post-cliff vesting events"
    )

    distribution_mode: DistributionMode = Field(
        description="Distribution mode requested for this computation"
    )

    source: ScheduleSource = Field(
        description="Which tier of the resolver produced these parameters"
    )

    schedule_id: Optional[ScheduleId] = Field(
        default=None,
        description="Persisted schedule the parameters came from (grant/explicit/plan_template)"
    )

    schedule_kind: ScheduleKind = Field(
        default="time_based",
        description="Kind of the source schedule (milestone type; not used for event types)"
    )

    @property
    def frequency_months(self) -> int:
        """Months per vesting period."""
        return frequency_to_months(self.frequency)

    @property
    def remaining_months(self) -> int:
        """Months after the cliff (negative if the cliff overruns the duration)."""
        return self.total_duration_months - self.cliff_months

    @property
    def has_persisted_schedule(self) -> bool:
        """True if the parameters came from a stored schedule with milestones."""
        return self.schedule_id is not None
