"""Workbook configuration - entry point for Excel generation.

VestingWorkbookCFG lists the grants to render, one sheet each, plus the
observation date used for display statuses. It is what gets passed to the
ScheduleSheetRenderer.
"""

import re
from typing import Dict, List, Optional
from datetime import date
from pydantic import Field, model_validator

from .base import DomainModel, ScheduleKind
from .events import VestingEvent
from .grants import Grant
from .schedules import ResolvedSchedule

_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")

# Excel limit on worksheet names
MAX_SHEET_TITLE = 31


def sheet_title_for(label: str) -> str:
    """Excel sheet name for a label: invalid characters []:*?/\\ become "_", cut to 31 chars."""
    return _INVALID_SHEET_CHARS.sub("_", label)[:MAX_SHEET_TITLE] or "Grant"


class GrantSheetCFG(DomainModel):
    """One grant sheet.

    When ``events`` is given (persisted events), the sheet shows them as
    stored, lifecycle status included. Otherwise events are computed from
    ``resolved_schedule``.
    """

    grant: Grant = Field(
        description="Grant to render"
    )

    resolved_schedule: ResolvedSchedule = Field(
        description="Effective schedule from the ScheduleResolver"
    )

    plan_schedule_kind: Optional[ScheduleKind] = Field(
        default=None,
        description="The plan's schedule kind (decides event types)"
    )

    events: Optional[List[VestingEvent]] = Field(
        default=None,
        description="Persisted events to show instead of a fresh computation"
    )

    label: Optional[str] = Field(
        default=None,
        description="Sheet name (defaults to the grant number or id)"
    )

    @property
    def sheet_label(self) -> str:
        return self.label or self.grant.label

    @property
    def sheet_title(self) -> str:
        return sheet_title_for(self.sheet_label)


class VestingWorkbookCFG(DomainModel):
    """Root configuration for a vesting workbook.

    Example:
        VestingWorkbookCFG(
            title="ACME vesting schedules",
            observation_date=date(2025, 6, 30),
            grant_sheets=[GrantSheetCFG(grant=grant, resolved_schedule=resolved)],
        )
    """

    title: str = Field(
        default="Vesting Schedules",
        description="Workbook title (shown on every sheet)"
    )

    observation_date: Optional[date] = Field(
        default=None,
        description="Date for display statuses (no status column when None)"
    )

    grant_sheets: List[GrantSheetCFG] = Field(
        default_factory=list,
        description="Sheets to render, in order"
    )

    @model_validator(mode="after")
    def validate_unique_labels(self):
        # Compared after Excel cleanup; sheet names are case-insensitive
        by_title: Dict[str, List[str]] = {}
        for sheet in self.grant_sheets:
            by_title.setdefault(sheet.sheet_title.casefold(), []).append(sheet.sheet_label)
        duplicates = sorted(labels for labels in by_title.values() if len(labels) > 1)
        if duplicates:
            raise ValueError(f"Duplicate sheet labels (same Excel sheet name): {duplicates}")
        return self
