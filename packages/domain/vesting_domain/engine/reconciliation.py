"""Reconciliation Guard.

Two separate pieces:

    assess_milestones()  - pure predicate: is a persisted milestone set still
                           valid for the schedule and distribution mode
                           requested now?
    ReconciliationGuard  - explicit action: reuse a valid set, otherwise
                           replace it in full through the store's atomic
                           replace_milestones().

A stale set is never patched. Validation never writes.
"""

from typing import List, Sequence

from ..errors import ConsistencyError, PersistenceError
from ..logging_config import LogContext, get_logger
from ..schemas import Milestone, ResolvedSchedule, StalenessVerdict
from .planner import expected_milestone_count, generate_milestones, period_offsets

logger = get_logger("engine.reconciliation")

REASON_MISSING = "missing"
REASON_COUNT_MISMATCH = "count_mismatch"
REASON_INVALID_OFFSET = "invalid_months_from_start"
REASON_IDENTICAL_OFFSETS = "identical_months_from_start"
REASON_SPACING_MISMATCH = "spacing_mismatch"


def assess_milestones(
    milestones: Sequence[Milestone],
    schedule: ResolvedSchedule,
) -> StalenessVerdict:
    """Validate a persisted milestone set against a fresh expectation.

    The expectation is computed for the distribution mode carried by
    ``schedule`` (the mode this grant requested). Percentage and even modes
    expect different counts, so a set that is valid for the other mode is
    still stale here.

    Reasons reported (any one means regenerate):
        missing                     nothing persisted yet
        count_mismatch              len != (cliff ? 1 : 0) + period_count
        invalid_months_from_start   a null or zero offset
        identical_months_from_start several milestones, one shared offset
        spacing_mismatch            offsets differ from the planner's offsets
    """
    expected = expected_milestone_count(schedule)
    actual = len(milestones)
    reasons: List[str] = []

    if actual == 0:
        if expected > 0:
            reasons.append(REASON_MISSING)
        return StalenessVerdict(expected_count=expected, actual_count=0, reasons=reasons)

    if actual != expected:
        reasons.append(REASON_COUNT_MISMATCH)

    offsets = [m.months_from_start for m in sorted(milestones, key=lambda m: m.sequence_order)]

    if any(not offset for offset in offsets):
        reasons.append(REASON_INVALID_OFFSET)

    if actual > 1 and len(set(offsets)) == 1:
        reasons.append(REASON_IDENTICAL_OFFSETS)

    if not reasons:
        expected_offsets = [months for months, _ in period_offsets(schedule)]
        if offsets != expected_offsets:
            reasons.append(REASON_SPACING_MISMATCH)

    return StalenessVerdict(expected_count=expected, actual_count=actual, reasons=reasons)


class ReconciliationGuard:
    """Keeps a schedule's persisted milestones consistent with its parameters.

    Args:
        store: A VestingStore (list_milestones / replace_milestones / schedule_lock)

    Example:
        guard = ReconciliationGuard(store)
        milestones = guard.ensure_milestones("standard_4y", resolved)
    """

    def __init__(self, store):
        self.store = store

    def check(self, schedule_id: str, schedule: ResolvedSchedule) -> StalenessVerdict:
        """Validate the persisted set without changing it."""
        return assess_milestones(self.store.list_milestones(schedule_id), schedule)

    def ensure_milestones(self, schedule_id: str, schedule: ResolvedSchedule) -> List[Milestone]:
        """Return a valid milestone set, regenerating it in full when stale.

        Check and replacement run under the store's schedule lock: grants
        sharing one stale template repair it once, and later callers see the
        fresh set.

        Raises:
            ConsistencyError: If the stale set could not be replaced. The store
                error is chained as __cause__.
        """
        with self.store.schedule_lock(schedule_id):
            persisted = self.store.list_milestones(schedule_id)
            verdict = assess_milestones(persisted, schedule)
            if not verdict.needs_regeneration:
                return sorted(persisted, key=lambda m: m.sequence_order)

            return self.regenerate(schedule_id, schedule, verdict)

    def regenerate(
        self,
        schedule_id: str,
        schedule: ResolvedSchedule,
        verdict: StalenessVerdict,
    ) -> List[Milestone]:
        """Replace the schedule's milestone set with a freshly generated one."""
        fresh = generate_milestones(schedule, schedule_id)

        with LogContext.bind(schedule_id=schedule_id):
            if verdict.is_stale:
                logger.warning(
                    "milestones_stale",
                    extra={
                        "reasons": verdict.reasons,
                        "found": verdict.actual_count,
                        "expected": verdict.expected_count,
                        "distribution_mode": schedule.distribution_mode,
                    },
                )

            try:
                self.store.replace_milestones(schedule_id, fresh)
            except PersistenceError as exc:
                raise ConsistencyError(
                    f"Could not regenerate milestones ({', '.join(verdict.reasons)}): {exc.message}",
                    schedule_id=schedule_id,
                    stage="regenerate_milestones",
                ) from exc

            logger.info(
                "milestones_regenerated",
                extra={"count": len(fresh), "reasons": verdict.reasons},
            )
        return fresh
