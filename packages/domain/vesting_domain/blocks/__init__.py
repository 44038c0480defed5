"""Tabular blocks for vesting schedules.

This package lays engine results out as pandas DataFrames for the workbook
renderer or other consumption.

Architecture:
    Schemas (data models) → Engine (events) → Blocks (DataFrames)

Available blocks:
- VestingScheduleBlock: Computes a grant's events and schedule summary
- VestingStatusBlock: Projects display statuses for an observation date

Usage:
    from vesting_domain.blocks import BlockContext, BlockExecutor
    from vesting_domain.blocks import VestingScheduleBlock, VestingStatusBlock

    executor = BlockExecutor([VestingScheduleBlock(), VestingStatusBlock()])
    context = executor.execute(BlockContext.from_values(
        grant=grant,
        resolved_schedule=resolved,
        plan_schedule_kind=plan.vesting_schedule_kind,
        observation_date=date(2025, 6, 30),
    ))

    events_df = context.get("vesting_events")
    totals_df = context.get("vesting_status_totals")
"""

from .base import Block, BlockExecutor, BlockContext, CircularDependencyError, topological_sort
from .schedule import VestingScheduleBlock
from .status import VestingStatusBlock

__all__ = [
    "Block",
    "BlockExecutor",
    "BlockContext",
    "CircularDependencyError",
    "topological_sort",
    "VestingScheduleBlock",
    "VestingStatusBlock",
]
