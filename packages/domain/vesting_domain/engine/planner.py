"""Period Planner and Share Allocator.

Pure integer arithmetic, no I/O, no clock access.

Period count:
    remaining = total_duration_months - cliff_months

    percentage mode: floor(remaining / frequency)
        The cliff always takes 25% and the other 75% is split over whole
        periods only, so a short trailing period never gets a full slice.

    even mode: ceil(remaining / frequency)
        Every period, including a short tail, gets an equal slice. The last
        event may then fall on or before the nominal end date.

    A cliff that consumes the whole duration (remaining <= 0) gives 0 periods.

Allocation:
    percentage, cliff > 0:  cliff = floor(total * 25 / 100)
    even,       cliff > 0:  cliff = floor(total / (periods + 1))
    per_period = floor((total - cliff) / periods)
    The last event absorbs whatever floor rounding left over.

    periods == 0: the cliff takes everything (both modes); without a cliff
    the grant collapses to a single full-amount event at the start date.
"""

from typing import List, Tuple
from decimal import Decimal, ROUND_DOWN

from ..errors import ValidationError
from ..schemas import Allocation, Milestone, ResolvedSchedule

PERCENTAGE_CLIFF_PCT = 25


# =============================================================================
# Period Planner
# =============================================================================

def plan_periods(
    total_duration_months: int,
    cliff_months: int,
    frequency_months: int,
    distribution_mode: str,
) -> int:
    """Number of post-cliff vesting periods.

    Args:
        total_duration_months: Total schedule length in months
        cliff_months: Cliff length in months (0 = no cliff)
        frequency_months: Months per period (1, 3 or 12)
        distribution_mode: "percentage" or "even"

    Returns:
        Period count (0 when the cliff covers the whole duration)

    Raises:
        ValidationError: On a non-positive frequency or unknown mode

    Examples:
        plan_periods(48, 12, 12, "percentage") -> 3
        plan_periods(40, 12, 3, "percentage")  -> 9   (floor(28 / 3))
        plan_periods(40, 12, 3, "even")        -> 10  (ceil(28 / 3))
    """
    if frequency_months <= 0:
        raise ValidationError(
            f"frequency_months must be positive, got {frequency_months}",
            stage="plan_periods",
        )
    if cliff_months < 0:
        raise ValidationError(
            f"cliff_months cannot be negative, got {cliff_months}",
            stage="plan_periods",
        )

    remaining = total_duration_months - cliff_months
    if remaining <= 0:
        return 0

    if distribution_mode == "percentage":
        return remaining // frequency_months
    if distribution_mode == "even":
        return -(-remaining // frequency_months)

    raise ValidationError(
        f"Unknown distribution mode '{distribution_mode}'",
        stage="plan_periods",
    )


def plan_periods_for(schedule: ResolvedSchedule) -> int:
    """plan_periods() for a resolved schedule."""
    return plan_periods(
        schedule.total_duration_months,
        schedule.cliff_months,
        schedule.frequency_months,
        schedule.distribution_mode,
    )


def expected_milestone_count(schedule: ResolvedSchedule) -> int:
    """Number of milestones (= events) the schedule should have.

    The cliff counts as one slot when cliff_months > 0. A schedule with no
    cliff and zero periods has no milestones: its single event sits at the
    start date, which is not a valid milestone offset.
    """
    return (1 if schedule.cliff_months > 0 else 0) + plan_periods_for(schedule)


def period_offsets(schedule: ResolvedSchedule) -> List[Tuple[int, bool]]:
    """Month offsets of every vesting slot, in order.

    Returns:
        List of (months_from_start, is_cliff). The cliff slot comes first when
        cliff_months > 0; period i (1-based) sits at cliff + i * frequency.
        An empty schedule (no cliff, no periods) yields one slot at offset 0.
    """
    period_count = plan_periods_for(schedule)
    frequency = schedule.frequency_months
    cliff = schedule.cliff_months

    slots: List[Tuple[int, bool]] = []
    if cliff > 0:
        slots.append((cliff, True))
    for i in range(1, period_count + 1):
        slots.append((cliff + i * frequency, False))

    if not slots:
        slots.append((0, False))
    return slots


# =============================================================================
# Share Allocator
# =============================================================================

def allocate(
    total_shares: int,
    cliff_months: int,
    period_count: int,
    distribution_mode: str,
) -> Allocation:
    """Split total_shares into a cliff amount and a per-period amount.

    Args:
        total_shares: Shares granted (must be positive)
        cliff_months: Cliff length in months (0 = no cliff slice)
        period_count: Post-cliff periods from plan_periods()
        distribution_mode: "percentage" or "even"

    Returns:
        Allocation with cliff_shares and per_period_shares. The caller gives
        the final event total_shares minus everything allocated before it.

    Raises:
        ValidationError: On non-positive total_shares, negative period_count,
            or unknown distribution mode

    Example:
        allocate(10_000, 12, 9, "percentage")
        -> cliff_shares=2500, per_period_shares=833   (7500 // 9)
    """
    if total_shares <= 0:
        raise ValidationError(
            f"total_shares must be positive, got {total_shares}",
            stage="allocate",
        )
    if period_count < 0:
        raise ValidationError(
            f"period_count cannot be negative, got {period_count}",
            stage="allocate",
        )
    if distribution_mode not in ("percentage", "even"):
        raise ValidationError(
            f"Unknown distribution mode '{distribution_mode}'",
            stage="allocate",
        )

    has_cliff = cliff_months > 0

    if period_count == 0:
        # Cliff (or the lone start-date event) carries 100%
        return Allocation(
            total_shares=total_shares,
            cliff_shares=total_shares if has_cliff else 0,
            per_period_shares=0 if has_cliff else total_shares,
            period_count=0,
        )

    if not has_cliff:
        return Allocation(
            total_shares=total_shares,
            cliff_shares=0,
            per_period_shares=total_shares // period_count,
            period_count=period_count,
        )

    if distribution_mode == "percentage":
        cliff_shares = total_shares * PERCENTAGE_CLIFF_PCT // 100
    else:
        cliff_shares = total_shares // (period_count + 1)

    return Allocation(
        total_shares=total_shares,
        cliff_shares=cliff_shares,
        per_period_shares=(total_shares - cliff_shares) // period_count,
        period_count=period_count,
    )


def allocate_for(schedule: ResolvedSchedule, total_shares: int) -> Allocation:
    """allocate() for a resolved schedule."""
    return allocate(
        total_shares,
        schedule.cliff_months,
        plan_periods_for(schedule),
        schedule.distribution_mode,
    )


# =============================================================================
# Milestone generation
# =============================================================================

_MILESTONE_TYPES = {
    "time_based": "time",
    "performance_based": "performance",
    "hybrid": "hybrid",
}


def generate_milestones(schedule: ResolvedSchedule, schedule_id: str) -> List[Milestone]:
    """Build the full milestone set for a schedule from its parameters.

    Percentages describe the allocation policy, not exact shares (those come
    from allocate()):
        percentage mode: cliff 25, periods split the other 75 (100 without a cliff)
        even mode: every slot 100 / slot_count

    Percentages are truncated to 4 decimal places; they are informational.
    """
    if expected_milestone_count(schedule) == 0:
        return []

    slots = period_offsets(schedule)
    period_count = sum(1 for _, is_cliff in slots if not is_cliff)
    milestone_type = _MILESTONE_TYPES.get(schedule.schedule_kind, "time")

    if schedule.distribution_mode == "percentage":
        cliff_pct = Decimal(100) if period_count == 0 else Decimal(PERCENTAGE_CLIFF_PCT)
        if schedule.cliff_months == 0:
            cliff_pct = Decimal(0)
        period_pct = (Decimal(100) - cliff_pct) / period_count if period_count else Decimal(0)
    else:
        cliff_pct = period_pct = Decimal(100) / len(slots)

    milestones: List[Milestone] = []
    for order, (months, is_cliff) in enumerate(slots):
        pct = cliff_pct if is_cliff else period_pct
        milestones.append(
            Milestone(
                schedule_id=schedule_id,
                sequence_order=order,
                months_from_start=months,
                vesting_percentage=pct.quantize(Decimal("0.0001"), rounding=ROUND_DOWN),
                milestone_type=milestone_type,
            )
        )
    return milestones
