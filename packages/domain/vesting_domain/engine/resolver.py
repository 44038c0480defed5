"""Schedule Resolver.

Picks the effective schedule parameters for a grant from prioritized sources.
Candidates are collected as an ordered list of tagged sources; the first one
that actually exists wins:

    1. grant          - schedule attached to the grant
    2. explicit       - schedule passed to the computation call
    3. plan_template  - the plan's linked template schedule
    4. plan_config    - the plan's inline {years, cliff_months, frequency}
    5. defaults       - 48 months, 12 month cliff, annually (from settings)

A reference that does not resolve falls through to the next tier. Only a
call with neither grant nor plan context is an error.
"""

from typing import Callable, List, Optional, Tuple, Union

from ..errors import NotFoundError
from ..logging_config import get_logger
from ..schemas import (
    Grant,
    IncentivePlan,
    PlanVestingConfig,
    ResolvedSchedule,
    ScheduleDefaults,
    ScheduleDefinition,
)

logger = get_logger("engine.resolver")

ScheduleLookup = Callable[[str], Optional[ScheduleDefinition]]

# Tagged candidate: (source tag, reference or inline payload)
Candidate = Tuple[str, Union[str, PlanVestingConfig, ScheduleDefaults]]


class ScheduleResolver:
    """Resolves one ResolvedSchedule per computation.

    Args:
        schedule_lookup: Callable returning a ScheduleDefinition by id (or None)
        defaults: Tier 5 parameters (ScheduleDefaults() if omitted)

    Example:
        resolver = ScheduleResolver(store.get_schedule, ScheduleDefaults())
        resolved = resolver.resolve(grant, plan)
        resolved.source  # "grant", "explicit", "plan_template", ...
    """

    def __init__(
        self,
        schedule_lookup: ScheduleLookup,
        defaults: Optional[ScheduleDefaults] = None,
    ):
        self.schedule_lookup = schedule_lookup
        self.defaults = defaults or ScheduleDefaults()

    def candidates(
        self,
        grant: Optional[Grant],
        plan: Optional[IncentivePlan],
        explicit_schedule_id: Optional[str] = None,
    ) -> List[Candidate]:
        """Ordered candidate sources, highest priority first."""
        found: List[Candidate] = []
        if grant is not None and grant.vesting_schedule_id:
            found.append(("grant", grant.vesting_schedule_id))
        if explicit_schedule_id:
            found.append(("explicit", explicit_schedule_id))
        if plan is not None and plan.template_schedule_id:
            found.append(("plan_template", plan.template_schedule_id))
        if plan is not None and plan.vesting_config is not None:
            found.append(("plan_config", plan.vesting_config))
        found.append(("defaults", self.defaults))
        return found

    def resolve(
        self,
        grant: Optional[Grant],
        plan: Optional[IncentivePlan],
        explicit_schedule_id: Optional[str] = None,
        distribution_mode: Optional[str] = None,
    ) -> ResolvedSchedule:
        """Resolve the effective schedule for a grant.

        Args:
            grant: The grant (may be None for plan-level previews)
            plan: The grant's plan (may be None)
            explicit_schedule_id: Schedule passed to the computation call
            distribution_mode: Mode override; otherwise the grant's requested
                mode, then the schedule's mode, then the default

        Raises:
            NotFoundError: If neither grant nor plan is given
        """
        if grant is None and plan is None:
            raise NotFoundError("grant or plan context", stage="resolve")

        grant_id = grant.id if grant is not None else None
        requested_mode = distribution_mode or (grant.distribution_mode if grant else None)

        for source, payload in self.candidates(grant, plan, explicit_schedule_id):
            if isinstance(payload, str):
                schedule = self.schedule_lookup(payload)
                if schedule is None:
                    logger.warning(
                        "schedule_reference_unresolved",
                        extra={"source": source, "schedule_id": payload, "grant_id": grant_id},
                    )
                    continue
                return ResolvedSchedule(
                    total_duration_months=schedule.total_duration_months,
                    cliff_months=schedule.cliff_months,
                    frequency=schedule.frequency,
                    distribution_mode=requested_mode or schedule.distribution_mode,
                    source=source,
                    schedule_id=schedule.id,
                    schedule_kind=schedule.schedule_kind,
                )

            if isinstance(payload, PlanVestingConfig):
                return ResolvedSchedule(
                    total_duration_months=payload.total_duration_months,
                    cliff_months=payload.cliff_months,
                    frequency=payload.frequency,
                    distribution_mode=requested_mode or self.defaults.distribution_mode,
                    source=source,
                    schedule_kind=plan.vesting_schedule_kind if plan else self.defaults.schedule_kind,
                )

            return ResolvedSchedule(
                total_duration_months=payload.total_duration_months,
                cliff_months=payload.cliff_months,
                frequency=payload.frequency,
                distribution_mode=requested_mode or payload.distribution_mode,
                source=source,
                schedule_kind=plan.vesting_schedule_kind if plan else payload.schedule_kind,
            )

        raise NotFoundError("vesting schedule", grant_id=grant_id, stage="resolve")
