"""Vesting domain schemas.

This package contains all Pydantic models for the vesting domain layer:
- Base types and vocabularies
- Schedule definitions, milestones and resolved schedules
- Grants and incentive plans
- Vesting events and projected (display) events
- Allocations, verdicts, summaries and batch reports
- Workbook configuration for the Excel renderer

Usage:
    from vesting_domain.schemas import (
        ScheduleDefinition, Milestone, Grant, IncentivePlan,
        ResolvedSchedule, VestingEvent, BatchReport
    )
"""

# Base types
from .base import (
    DomainModel,
    FrozenDomainModel,
    ShareCount,
    PositiveShareCount,
    MonthCount,
    GrantId,
    ScheduleId,
    PlanId,
    VestingFrequency,
    DistributionMode,
    ScheduleKind,
    EventType,
    LifecycleStatus,
    DisplayStatus,
    ScheduleSource,
    FREQUENCY_MONTHS,
    frequency_to_months,
)

# Schedules
from .schedules import (
    ScheduleDefinition,
    Milestone,
    PlanVestingConfig,
    ScheduleDefaults,
    ResolvedSchedule,
)

# Grants and plans
from .grants import (
    IncentivePlan,
    Grant,
)

# Events
from .events import (
    VestingEvent,
    ProjectedEvent,
)

# Reports
from .reports import (
    Allocation,
    StalenessVerdict,
    VestingSummary,
    VestingEventStats,
    VestingProgress,
    BatchFailure,
    BatchReport,
)

# Workbook
from .workbook import (
    GrantSheetCFG,
    VestingWorkbookCFG,
    sheet_title_for,
)

__all__ = [
    # Base types
    "DomainModel",
    "FrozenDomainModel",
    "ShareCount",
    "PositiveShareCount",
    "MonthCount",
    "GrantId",
    "ScheduleId",
    "PlanId",
    "VestingFrequency",
    "DistributionMode",
    "ScheduleKind",
    "EventType",
    "LifecycleStatus",
    "DisplayStatus",
    "ScheduleSource",
    "FREQUENCY_MONTHS",
    "frequency_to_months",
    # Schedules
    "ScheduleDefinition",
    "Milestone",
    "PlanVestingConfig",
    "ScheduleDefaults",
    "ResolvedSchedule",
    # Grants
    "IncentivePlan",
    "Grant",
    # Events
    "VestingEvent",
    "ProjectedEvent",
    # Reports
    "Allocation",
    "StalenessVerdict",
    "VestingSummary",
    "VestingEventStats",
    "VestingProgress",
    "BatchFailure",
    "BatchReport",
    # Workbook
    "GrantSheetCFG",
    "VestingWorkbookCFG",
    "sheet_title_for",
]
