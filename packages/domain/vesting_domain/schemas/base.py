"""Base classes and type system for vesting domain models.

This module provides the foundational types, vocabularies, and base classes
used throughout the vesting schema system.
"""

from typing import Annotated, Dict, Literal
from pydantic import BaseModel, Field, ConfigDict

# =============================================================================
# Base Model
# =============================================================================

class DomainModel(BaseModel):
    """Base class for all domain models.

    Provides common configuration for all Pydantic models in the domain layer:
    - Validation on assignment for runtime safety
    - Literal vocabularies stored as plain strings
    - Support for date and Decimal types
    """

    model_config = ConfigDict(
        frozen=False,
        validate_assignment=True,
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )


class FrozenDomainModel(DomainModel):
    """Domain model that cannot be mutated after construction.

    Used for engine inputs and outputs that must stay reproducible
    (resolved schedules, allocations, verdicts).
    """

    model_config = ConfigDict(
        frozen=True,
        use_enum_values=True,
        arbitrary_types_allowed=True,
    )


# =============================================================================
# Type Aliases - Numeric
# =============================================================================

ShareCount = Annotated[
    int,
    Field(ge=0, description="Number of whole shares (non-negative)")
]

PositiveShareCount = Annotated[
    int,
    Field(gt=0, description="Number of whole shares (strictly positive)")
]

MonthCount = Annotated[
    int,
    Field(ge=0, description="Number of calendar months (non-negative)")
]


# =============================================================================
# Vocabularies
# =============================================================================

VestingFrequency = Literal["monthly", "quarterly", "annually"]

DistributionMode = Literal["percentage", "even"]

ScheduleKind = Literal["time_based", "performance_based", "hybrid"]

EventType = Literal["cliff", "time_based", "performance", "acceleration"]

LifecycleStatus = Literal[
    "pending",
    "vested",
    "transferred",
    "exercised",
    "forfeited",
    "cancelled",
]

DisplayStatus = Literal[
    "vested",
    "transferred",
    "exercised",
    "pending_due",
    "upcoming",
    "forfeited",
    "cancelled",
]

ScheduleSource = Literal["grant", "explicit", "plan_template", "plan_config", "defaults"]

FREQUENCY_MONTHS: Dict[str, int] = {
    "monthly": 1,
    "quarterly": 3,
    "annually": 12,
}


def frequency_to_months(frequency: str) -> int:
    """Convert a frequency name to its number of months per period.

    Raises:
        ValueError: If the frequency is not one of monthly/quarterly/annually
    """
    try:
        return FREQUENCY_MONTHS[frequency]
    except KeyError:
        raise ValueError(
            f"Unknown vesting frequency '{frequency}'. "
            f"Expected one of {sorted(FREQUENCY_MONTHS)}"
        ) from None


# =============================================================================
# ID Conventions
# =============================================================================

GrantId = Annotated[
    str,
    Field(min_length=1, description="Grant identifier (UUID or grant number)")
]

ScheduleId = Annotated[
    str,
    Field(min_length=1, description="Vesting schedule identifier")
]

PlanId = Annotated[
    str,
    Field(min_length=1, description="Incentive plan identifier")
]


# =============================================================================
# ID Examples and Conventions
# =============================================================================
#
# Grant IDs:
#   - "550e8400-e29b-41d4-a716-446655440000"
#   - "GR-2024-0042"
#
# Schedule IDs:
#   - "standard_4y_1y_cliff" - 48 months, 12 month cliff, annual
#   - "quarterly_3y" - 36 months, no cliff, quarterly
#
# Plan IDs:
#   - "ltip_2024" - Long-term incentive plan
#   - "esop" - Employee stock option plan
#
# =============================================================================
