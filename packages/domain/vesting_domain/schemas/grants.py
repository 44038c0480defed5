"""Grants and incentive plans.

A Grant is issued once under an IncentivePlan. Its total_shares and
vesting_start_date are the only numeric/temporal inputs to the engine.
The plan carries the schedule kind that decides event types, an optional
template schedule, and an optional inline fallback configuration.
"""

from typing import Optional
from datetime import date
from pydantic import Field

from .base import (
    DomainModel,
    GrantId,
    PlanId,
    ScheduleId,
    PositiveShareCount,
    DistributionMode,
    ScheduleKind,
)
from .schedules import PlanVestingConfig


# =============================================================================
# Incentive Plan
# =============================================================================

class IncentivePlan(DomainModel):
    """Incentive plan a grant is issued under.

    The plan's vesting_schedule_kind is the source of truth for event types:
    a performance-based plan produces "performance" events even if its
    template schedule is marked time-based.
    """

    id: PlanId = Field(
        description="Unique plan identifier"
    )

    name: str = Field(
        default="",
        description="Human-readable plan name"
    )

    company_id: Optional[str] = Field(
        default=None,
        description="Company the plan belongs to"
    )

    vesting_schedule_kind: ScheduleKind = Field(
        default="time_based",
        description="Plan-level schedule kind used to classify vesting events"
    )

    template_schedule_id: Optional[ScheduleId] = Field(
        default=None,
        description="Linked template schedule (resolver tier 3)"
    )

    vesting_config: Optional[PlanVestingConfig] = Field(
        default=None,
        description="Inline fallback configuration (resolver tier 4)"
    )


# =============================================================================
# Grant
# =============================================================================

class Grant(DomainModel):
    """An equity grant to an employee.

    Example:
        Grant(
            id="gr_001",
            plan_id="ltip_2024",
            total_shares=10_000,
            vesting_start_date=date(2024, 1, 1),
            vesting_schedule_id="standard_4y",
        )
    """

    id: GrantId = Field(
        description="Unique grant identifier"
    )

    plan_id: Optional[PlanId] = Field(
        default=None,
        description="Plan the grant was issued under"
    )

    grant_number: Optional[str] = Field(
        default=None,
        description="Human-facing grant number (e.g., 'GR-2024-0042')"
    )

    company_id: Optional[str] = Field(
        default=None,
        description="Issuing company"
    )

    employee_id: Optional[str] = Field(
        default=None,
        description="Grant recipient"
    )

    total_shares: PositiveShareCount = Field(
        description="Total shares granted"
    )

    vesting_start_date: date = Field(
        description="Date vesting starts (anchor for all calendar-month offsets)"
    )

    vesting_schedule_id: Optional[ScheduleId] = Field(
        default=None,
        description="Schedule explicitly attached to the grant (resolver tier 1)"
    )

    distribution_mode: Optional[DistributionMode] = Field(
        default=None,
        description="Distribution mode requested for this grant (None = schedule's mode)"
    )

    @property
    def label(self) -> str:
        """Grant number if set, otherwise the id (for logs and reports)."""
        return self.grant_number or self.id
