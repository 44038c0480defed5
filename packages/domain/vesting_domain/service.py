"""Vesting service - grant-level operations over a VestingStore.

Preview and materialize run the same engine pipeline; only materialize
writes. Regeneration of one grant is serialized by the store's grant lock
and replaces the grant's events atomically.

Single-grant calls fail fast with a typed VestingError. Batch calls
(regenerate_all, generate_missing) isolate failures per grant and return a
BatchReport instead of raising.
"""

import contextvars
from concurrent.futures import ThreadPoolExecutor
from datetime import date
from typing import Callable, List, Optional, Sequence, Tuple
from uuid import uuid4

from .config import VestingSettings, get_settings
from .engine import (
    ReconciliationGuard,
    ScheduleResolver,
    compute_events_from_milestones,
    compute_vesting_events,
    event_stats,
    infer_summary_from_events,
    project_events,
    summarize_schedule,
    upcoming_events,
    validate_schedule_inputs,
    vesting_progress,
)
from .errors import NotFoundError, VestingError
from .logging_config import LogContext, get_logger
from .persistence import VestingStore, processed_events_error
from .schemas import (
    BatchFailure,
    BatchReport,
    Grant,
    GrantSheetCFG,
    IncentivePlan,
    ProjectedEvent,
    ResolvedSchedule,
    ScheduleDefaults,
    VestingEvent,
    VestingEventStats,
    VestingProgress,
    VestingSummary,
    VestingWorkbookCFG,
)

logger = get_logger("service")


class VestingService:
    """Computes, persists and reports vesting events for grants.

    Args:
        store: Storage collaborator
        settings: VestingSettings (get_settings() if omitted)

    Example:
        service = VestingService(InMemoryVestingStore())
        preview = service.preview("gr_001")
        events = service.materialize("gr_001")
        assert [e.schedule_key() for e in preview] == [e.schedule_key() for e in events]
    """

    def __init__(self, store: VestingStore, settings: Optional[VestingSettings] = None):
        self.store = store
        self.settings = settings or get_settings()
        self.resolver = ScheduleResolver(
            store.get_schedule,
            ScheduleDefaults.from_settings(self.settings),
        )
        self.guard = ReconciliationGuard(store)

    # =========================================================================
    # Loading
    # =========================================================================

    def _load(self, grant_id: str) -> Tuple[Grant, Optional[IncentivePlan]]:
        grant = self.store.get_grant(grant_id)
        if grant is None:
            raise NotFoundError("grant", grant_id, grant_id=grant_id, stage="load")

        plan = None
        if grant.plan_id:
            plan = self.store.get_plan(grant.plan_id)
            if plan is None:
                logger.warning("plan_not_found", extra={"plan_id": grant.plan_id})
        return grant, plan

    def resolve(
        self,
        grant_id: str,
        explicit_schedule_id: Optional[str] = None,
        distribution_mode: Optional[str] = None,
    ) -> ResolvedSchedule:
        grant, plan = self._load(grant_id)
        return self.resolver.resolve(grant, plan, explicit_schedule_id, distribution_mode)

    # =========================================================================
    # Preview / materialize
    # =========================================================================

    def preview_for(
        self,
        grant: Grant,
        plan: Optional[IncentivePlan] = None,
        explicit_schedule_id: Optional[str] = None,
        distribution_mode: Optional[str] = None,
    ) -> List[VestingEvent]:
        """Events for a grant that need not be stored yet (e.g. a grant form)."""
        resolved = self.resolver.resolve(grant, plan, explicit_schedule_id, distribution_mode)
        return compute_vesting_events(
            resolved,
            grant.total_shares,
            grant.vesting_start_date,
            plan_schedule_kind=plan.vesting_schedule_kind if plan else None,
            grant_id=grant.id,
        )

    def preview(
        self,
        grant_id: str,
        explicit_schedule_id: Optional[str] = None,
        distribution_mode: Optional[str] = None,
    ) -> List[VestingEvent]:
        """Compute a stored grant's events without persisting anything."""
        with LogContext.bind(grant_id=grant_id):
            grant, plan = self._load(grant_id)
            return self.preview_for(grant, plan, explicit_schedule_id, distribution_mode)

    def materialize(
        self,
        grant_id: str,
        explicit_schedule_id: Optional[str] = None,
        distribution_mode: Optional[str] = None,
    ) -> List[VestingEvent]:
        """Compute a grant's events and replace the persisted set.

        Raises:
            NotFoundError: Unknown grant
            ValidationError: Invalid schedule parameters
            ConsistencyError: The grant already has processed events, or stale
                milestones could not be regenerated
            PersistenceError: The store rejected the replacement
        """
        with LogContext.bind(grant_id=grant_id), self.store.grant_lock(grant_id):
            grant, plan = self._load(grant_id)

            processed = [e for e in self.store.list_events(grant_id) if e.lifecycle_status != "pending"]
            if processed:
                raise processed_events_error(grant_id, len(processed), stage="materialize")

            resolved = self.resolver.resolve(grant, plan, explicit_schedule_id, distribution_mode)
            events = self._compute_persisted(grant, plan, resolved)
            # rechecked inside the replacement: an external status update may land after the read above
            self.store.replace_events(grant_id, events, require_pending=True)

            logger.info(
                "events_persisted",
                extra={
                    "event_count": len(events),
                    "source": resolved.source,
                    "distribution_mode": resolved.distribution_mode,
                },
            )
            return events

    def _compute_persisted(
        self,
        grant: Grant,
        plan: Optional[IncentivePlan],
        resolved: ResolvedSchedule,
    ) -> List[VestingEvent]:
        plan_kind = plan.vesting_schedule_kind if plan else None
        validate_schedule_inputs(resolved, grant.total_shares, grant_id=grant.id)

        if resolved.has_persisted_schedule:
            milestones = self.guard.ensure_milestones(resolved.schedule_id, resolved)
            if milestones:
                return compute_events_from_milestones(
                    milestones,
                    resolved,
                    grant.total_shares,
                    grant.vesting_start_date,
                    plan_schedule_kind=plan_kind,
                    grant_id=grant.id,
                )

        return compute_vesting_events(
            resolved,
            grant.total_shares,
            grant.vesting_start_date,
            plan_schedule_kind=plan_kind,
            grant_id=grant.id,
        )

    def regenerate_grant(self, grant_id: str) -> List[VestingEvent]:
        """Rebuild one grant's events from its current schedule."""
        return self.materialize(grant_id)

    # =========================================================================
    # Batch operations
    # =========================================================================

    def regenerate_all(
        self,
        grant_ids: Optional[Sequence[str]] = None,
        company_id: Optional[str] = None,
    ) -> BatchReport:
        """Regenerate many grants, continuing past individual failures."""
        if grant_ids is None:
            grant_ids = [g.id for g in self.store.list_grants(company_id)]
        return self._run_batch("regenerate_all", list(grant_ids), self.regenerate_grant)

    def generate_missing(self, company_id: Optional[str] = None) -> BatchReport:
        """Materialize events for every grant that has none; others are skipped."""
        missing: List[str] = []
        skipped: List[str] = []
        for grant in self.store.list_grants(company_id):
            if self.store.list_events(grant.id):
                skipped.append(grant.id)
            else:
                missing.append(grant.id)

        report = self._run_batch("generate_missing", missing, self.materialize)
        report.skipped = skipped
        return report

    def grants_without_events(self, company_id: Optional[str] = None) -> List[Grant]:
        return [g for g in self.store.list_grants(company_id) if not self.store.list_events(g.id)]

    def _run_batch(
        self,
        operation: str,
        grant_ids: List[str],
        action: Callable[[str], object],
    ) -> BatchReport:
        report = BatchReport()
        if not grant_ids:
            return report

        with LogContext.bind(correlation_id=uuid4().hex):
            with ThreadPoolExecutor(max_workers=self.settings.batch_max_workers) as pool:
                # each task runs in its own copy of the caller's log context
                futures = {
                    grant_id: pool.submit(contextvars.copy_context().run, action, grant_id)
                    for grant_id in grant_ids
                }

            for grant_id, future in futures.items():
                try:
                    future.result()
                except VestingError as exc:
                    report.failed.append(BatchFailure(
                        grant_id=grant_id,
                        stage=exc.stage,
                        error_code=exc.code,
                        reason=exc.message,
                    ))
                    logger.warning(
                        "batch_item_failed",
                        extra={"operation": operation, "failed_grant": grant_id, "error": exc.to_dict()},
                    )
                except Exception as exc:
                    report.failed.append(BatchFailure(
                        grant_id=grant_id,
                        error_code="UNEXPECTED_ERROR",
                        reason=f"{type(exc).__name__}: {exc}",
                    ))
                    logger.exception(
                        "batch_item_failed",
                        extra={"operation": operation, "failed_grant": grant_id},
                    )
                else:
                    report.succeeded.append(grant_id)

            logger.info(
                "batch_completed",
                extra={
                    "operation": operation,
                    "succeeded": len(report.succeeded),
                    "failed": len(report.failed),
                },
            )
        return report

    # =========================================================================
    # Reporting
    # =========================================================================

    def summary(self, grant_id: str) -> VestingSummary:
        """Schedule summary from persisted events, else from the resolved schedule."""
        grant, plan = self._load(grant_id)
        events = self.store.list_events(grant_id)
        if events:
            return infer_summary_from_events(events, grant.vesting_start_date)

        resolved = self.resolver.resolve(grant, plan)
        return summarize_schedule(
            resolved,
            grant.vesting_start_date,
            plan.vesting_schedule_kind if plan else None,
        )

    def display(self, grant_id: str, observation_date: date) -> List[ProjectedEvent]:
        """Persisted events with display statuses for ``observation_date``."""
        self._load(grant_id)
        return project_events(self.store.list_events(grant_id), observation_date)

    def progress(self, grant_id: str, observation_date: date) -> VestingProgress:
        grant, _ = self._load(grant_id)
        return vesting_progress(self.store.list_events(grant_id), grant.total_shares, observation_date)

    def stats(self, grant_id: str) -> VestingEventStats:
        self._load(grant_id)
        return event_stats(self.store.list_events(grant_id))

    def upcoming(
        self,
        observation_date: date,
        company_id: Optional[str] = None,
        window_days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[VestingEvent]:
        """Pending events across grants due within the window, earliest first."""
        window = self.settings.upcoming_window_days if window_days is None else window_days
        pending: List[VestingEvent] = []
        for grant in self.store.list_grants(company_id):
            pending.extend(self.store.list_events(grant.id))
        return upcoming_events(pending, observation_date, window, limit)

    def company_stats(self, company_id: Optional[str] = None) -> VestingEventStats:
        """Event stats over every grant of a company (all grants when None)."""
        events: List[VestingEvent] = []
        for grant in self.store.list_grants(company_id):
            events.extend(self.store.list_events(grant.id))
        return event_stats(events)

    # =========================================================================
    # Workbook export
    # =========================================================================

    def workbook_config(
        self,
        grant_ids: Sequence[str],
        observation_date: Optional[date] = None,
        title: str = "Vesting Schedules",
    ) -> VestingWorkbookCFG:
        """Config for ScheduleSheetRenderer, one sheet per grant.

        Grants with persisted events are shown as stored (lifecycle status
        included); the others are computed from their resolved schedule.
        """
        sheets: List[GrantSheetCFG] = []
        for grant_id in grant_ids:
            grant, plan = self._load(grant_id)
            events = self.store.list_events(grant_id)
            sheets.append(GrantSheetCFG(
                grant=grant,
                resolved_schedule=self.resolver.resolve(grant, plan),
                plan_schedule_kind=plan.vesting_schedule_kind if plan else None,
                events=events or None,
            ))
        return VestingWorkbookCFG(title=title, observation_date=observation_date, grant_sheets=sheets)
