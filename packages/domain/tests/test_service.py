"""Tests for VestingService.

Tests cover:
- Preview and materialize producing identical schedules
- Refusal to regenerate processed events
- Milestone repair on the persisted path
- Batch regeneration with per-grant failure isolation
- Grant and company level reporting
"""

import logging
import threading
import time

import pytest
from datetime import date
from decimal import Decimal

from vesting_domain.config import VestingSettings
from vesting_domain.errors import ConsistencyError, NotFoundError, PersistenceError
from vesting_domain.persistence import InMemoryVestingStore
from vesting_domain.schemas import Grant
from vesting_domain.service import VestingService

from vesting_builders import make_milestones


@pytest.fixture
def service(store, settings):
    return VestingService(store, settings)


def _keys(events):
    return [e.schedule_key() for e in events]


# =============================================================================
# Preview / materialize
# =============================================================================

class TestPreviewAndMaterialize:

    @pytest.mark.parametrize("grant_id", ["gr_001", "gr_002", "gr_003"])
    def test_preview_matches_materialize(self, service, grant_id):
        """The read-only and persisted paths give the same schedule."""
        preview = service.preview(grant_id)
        persisted = service.materialize(grant_id)

        assert _keys(preview) == _keys(persisted)
        assert _keys(service.store.list_events(grant_id)) == _keys(persisted)

    def test_preview_does_not_write(self, service, store):
        service.preview("gr_001")
        assert store.list_events("gr_001") == []
        assert store.list_milestones("standard_4y") == []

    def test_materialize_standard_grant(self, service, store):
        events = service.materialize("gr_001")

        assert [(e.event_date, e.shares, e.event_type) for e in events] == [
            (date(2025, 1, 1), 2500, "cliff"),
            (date(2026, 1, 1), 2500, "time_based"),
            (date(2027, 1, 1), 2500, "time_based"),
            (date(2028, 1, 1), 2500, "time_based"),
        ]
        assert {e.grant_id for e in events} == {"gr_001"}
        # the persisted schedule gets its milestones on first use
        assert [m.months_from_start for m in store.list_milestones("standard_4y")] == [12, 24, 36, 48]

    def test_materialize_from_plan_config(self, service):
        """gr_003 has no schedule: plan config 3y / 6m cliff / quarterly."""
        events = service.materialize("gr_003")

        assert len(events) == 11
        assert events[0].event_type == "cliff"
        assert events[0].event_date == date(2024, 9, 15)
        assert events[0].shares == 300
        assert [e.shares for e in events[1:]] == [90] * 10
        assert events[-1].event_date == date(2027, 3, 15)

    def test_materialize_twice_replaces(self, service, store):
        service.materialize("gr_001")
        service.materialize("gr_001")
        assert len(store.list_events("gr_001")) == 4

    def test_distribution_mode_override(self, service):
        events = service.materialize("gr_002", distribution_mode="even")
        assert len(events) == 11
        assert sum(e.shares for e in events) == 10_000

    def test_explicit_schedule_applies_when_grant_has_none(self, service):
        events = service.preview("gr_003", explicit_schedule_id="standard_4y")
        assert [e.shares for e in events] == [300, 300, 300, 300]

    def test_preview_for_unsaved_grant(self, service, plan):
        grant = Grant(id="draft", total_shares=4800, vesting_start_date=date(2024, 1, 1))
        events = service.preview_for(grant, plan)

        assert sum(e.shares for e in events) == 4800
        assert events[0].event_date == date(2024, 7, 1)

    def test_unknown_grant(self, service):
        with pytest.raises(NotFoundError) as exc_info:
            service.preview("gr_missing")
        assert exc_info.value.grant_id == "gr_missing"
        assert exc_info.value.stage == "load"

    def test_missing_plan_falls_back_to_defaults(self, service, store, caplog):
        caplog.set_level(logging.WARNING, logger="vesting_domain")
        store.save_grant(Grant(
            id="gr_orphan",
            plan_id="deleted_plan",
            total_shares=400,
            vesting_start_date=date(2024, 1, 1),
        ))

        resolved = service.resolve("gr_orphan")

        assert resolved.source == "defaults"
        assert any(r.getMessage() == "plan_not_found" for r in caplog.records)


# =============================================================================
# Consistency
# =============================================================================

class TestConsistency:

    def test_refuses_to_regenerate_processed_events(self, service, store):
        service.materialize("gr_001")
        store.update_event_status("gr_001", 1, "vested", actual_vest_date=date(2025, 1, 1))

        with pytest.raises(ConsistencyError) as exc_info:
            service.regenerate_grant("gr_001")

        assert exc_info.value.stage == "materialize"
        # nothing was replaced
        assert store.list_events("gr_001")[0].lifecycle_status == "vested"

    def test_stale_milestones_are_repaired_before_use(self, service, store):
        """Five stale milestones for a four-event schedule are regenerated."""
        store.replace_milestones("standard_4y", make_milestones([12, 24, 36, 48, 60]))

        events = service.materialize("gr_001")

        assert len(events) == 4
        assert sum(e.shares for e in events) == 10_000
        assert len(store.list_milestones("standard_4y")) == 4

    def test_concurrent_materialize_leaves_one_event_set(self, service, store):
        errors = []

        def run():
            try:
                service.materialize("gr_002")
            except Exception as exc:  # pragma: no cover - surfaced by the assert below
                errors.append(exc)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        events = store.list_events("gr_002")
        assert [e.sequence_number for e in events] == list(range(1, 11))
        assert sum(e.shares for e in events) == 10_000

    def test_status_update_between_check_and_replace_is_kept(self, standard_schedule):
        """An external vest that lands after the pending check is never overwritten."""

        class VestDuringReadStore(InMemoryVestingStore):
            vest_on_read = False

            def list_events(self, grant_id):
                events = super().list_events(grant_id)
                if self.vest_on_read:
                    self.vest_on_read = False
                    self.update_event_status(grant_id, 1, "vested", actual_vest_date=date(2025, 1, 1))
                return events

        store = VestDuringReadStore()
        store.save_schedule(standard_schedule)
        store.save_grant(Grant(
            id="gr_001",
            total_shares=10_000,
            vesting_start_date=date(2024, 1, 1),
            vesting_schedule_id="standard_4y",
        ))
        service = VestingService(store, VestingSettings(_env_file=None))
        service.materialize("gr_001")

        store.vest_on_read = True
        with pytest.raises(ConsistencyError) as exc_info:
            service.materialize("gr_001")

        assert exc_info.value.stage == "replace_events"
        statuses = [e.lifecycle_status for e in store.list_events("gr_001")]
        assert statuses == ["vested", "pending", "pending", "pending"]

    def test_shared_stale_schedule_repaired_once(self, standard_schedule):
        """Grants on one stale template, regenerated in parallel, repair it a single time."""

        class SlowMilestoneStore(InMemoryVestingStore):
            def __init__(self):
                super().__init__()
                self.milestone_writes = 0

            def replace_milestones(self, schedule_id, milestones):
                # widen the window between check and replace
                time.sleep(0.05)
                self.milestone_writes += 1
                super().replace_milestones(schedule_id, milestones)

        store = SlowMilestoneStore()
        store.save_schedule(standard_schedule)
        grant_ids = [f"gr_{n:03d}" for n in range(1, 7)]
        for grant_id in grant_ids:
            store.save_grant(Grant(
                id=grant_id,
                total_shares=1_000,
                vesting_start_date=date(2024, 1, 1),
                vesting_schedule_id="standard_4y",
            ))
        InMemoryVestingStore.replace_milestones(store, "standard_4y", make_milestones([12, 24, 36, 48, 60]))

        service = VestingService(store, VestingSettings(_env_file=None, batch_max_workers=4))
        report = service.regenerate_all()

        assert report.ok
        assert report.succeeded == grant_ids
        assert store.milestone_writes == 1
        assert [m.months_from_start for m in store.list_milestones("standard_4y")] == [12, 24, 36, 48]
        assert all(sum(e.shares for e in store.list_events(g)) == 1_000 for g in grant_ids)


# =============================================================================
# Batch operations
# =============================================================================

class TestBatch:

    def test_regenerate_all(self, service, store):
        report = service.regenerate_all()

        assert report.ok
        assert report.succeeded == ["gr_001", "gr_002", "gr_003"]
        assert all(store.list_events(g) for g in report.succeeded)

    def test_regenerate_company_only(self, service, store):
        report = service.regenerate_all(company_id="acme")
        assert report.succeeded == ["gr_001", "gr_002"]
        assert store.list_events("gr_003") == []

    def test_failures_are_isolated(self, service, store, monkeypatch):
        """One rejected write, one unknown grant, one bug: the rest still succeed."""
        original = store.replace_events

        def replace_events(grant_id, events, require_pending=False):
            if grant_id == "gr_002":
                raise PersistenceError("write rejected", stage="replace_events", grant_id=grant_id)
            if grant_id == "gr_003":
                raise RuntimeError("boom")
            original(grant_id, events, require_pending)

        monkeypatch.setattr(store, "replace_events", replace_events)

        report = service.regenerate_all(["gr_001", "gr_002", "gr_003", "gr_missing"])

        assert report.succeeded == ["gr_001"]
        failures = {f.grant_id: f for f in report.failed}
        assert failures["gr_002"].error_code == "PERSISTENCE_ERROR"
        assert failures["gr_002"].stage == "replace_events"
        assert failures["gr_003"].error_code == "UNEXPECTED_ERROR"
        assert "boom" in failures["gr_003"].reason
        assert failures["gr_missing"].error_code == "NOT_FOUND"
        assert not report.ok
        assert report.total == 4
        assert store.list_events("gr_001")

    def test_processed_grant_fails_others_continue(self, service, store):
        service.materialize("gr_001")
        store.update_event_status("gr_001", 1, "exercised")

        report = service.regenerate_all()

        assert [f.grant_id for f in report.failed] == ["gr_001"]
        assert report.failed[0].error_code == "CONSISTENCY_ERROR"
        assert report.succeeded == ["gr_002", "gr_003"]

    def test_batch_logs_completion(self, service, caplog):
        caplog.set_level(logging.INFO, logger="vesting_domain")
        service.regenerate_all(company_id="acme")

        completed = [r for r in caplog.records if r.getMessage() == "batch_completed"]
        assert len(completed) == 1
        assert completed[0].operation == "regenerate_all"
        assert completed[0].succeeded == 2

    def test_empty_batch(self, service):
        report = service.regenerate_all(grant_ids=[])
        assert report.total == 0
        assert report.ok

    def test_generate_missing_skips_grants_with_events(self, service, store):
        service.materialize("gr_001")

        report = service.generate_missing()

        assert report.skipped == ["gr_001"]
        assert report.succeeded == ["gr_002", "gr_003"]
        assert service.grants_without_events() == []

    def test_grants_without_events(self, service):
        service.materialize("gr_002")
        assert [g.id for g in service.grants_without_events()] == ["gr_001", "gr_003"]
        assert [g.id for g in service.grants_without_events("acme")] == ["gr_001"]


# =============================================================================
# Reporting
# =============================================================================

class TestReporting:

    def test_summary_before_and_after_materialize(self, service):
        before = service.summary("gr_001")
        assert before.source == "grant"
        assert (before.cliff_months, before.frequency, before.vesting_years) == (12, "annually", 4)

        service.materialize("gr_001")
        after = service.summary("gr_001")
        assert after.source == "events"
        assert (after.cliff_months, after.frequency, after.vesting_years) == (12, "annually", 4)
        assert after.cliff_date == before.cliff_date == date(2025, 1, 1)

    def test_summary_from_plan_config(self, service):
        summary = service.summary("gr_003")
        assert summary.source == "plan_config"
        assert (summary.cliff_months, summary.frequency, summary.vesting_years) == (6, "quarterly", 3)
        assert summary.cliff_date == date(2024, 9, 15)

    def test_display(self, service):
        service.materialize("gr_001")
        projected = service.display("gr_001", date(2025, 6, 1))
        assert [p.display_status for p in projected] == [
            "pending_due", "upcoming", "upcoming", "upcoming",
        ]

    def test_progress_and_stats(self, service, store):
        service.materialize("gr_001")
        store.update_event_status("gr_001", 1, "vested", actual_vest_date=date(2025, 1, 2))

        progress = service.progress("gr_001", date(2025, 6, 1))
        assert progress.vested_shares == 2500
        assert progress.progress_pct == Decimal("25.00")
        assert progress.next_event.sequence_number == 2

        stats = service.stats("gr_001")
        assert stats.events_by_status == {"vested": 1, "pending": 3}

    def test_upcoming_across_grants(self, service):
        service.regenerate_all()

        found = service.upcoming(date(2024, 12, 15))

        assert [(e.grant_id, e.sequence_number) for e in found] == [
            ("gr_003", 2),
            ("gr_001", 1),
            ("gr_002", 1),
        ]

    def test_upcoming_company_and_limit(self, service):
        service.regenerate_all()
        found = service.upcoming(date(2024, 12, 15), company_id="acme", limit=1)
        assert [(e.grant_id, e.sequence_number) for e in found] == [("gr_001", 1)]

    def test_upcoming_custom_window(self, service):
        service.regenerate_all()
        assert service.upcoming(date(2024, 12, 15), window_days=7) == [
            service.store.list_events("gr_003")[1]
        ]

    def test_company_stats(self, service):
        service.regenerate_all()

        stats = service.company_stats("acme")
        assert stats.total_events == 14
        assert stats.total_shares == 20_000
        assert stats.cliff_events == 2

        assert service.company_stats().total_shares == 21_200


# =============================================================================
# Workbook export
# =============================================================================

def test_workbook_config_uses_persisted_events(service, store):
    service.materialize("gr_001")
    store.update_event_status("gr_001", 1, "vested")

    config = service.workbook_config(["gr_001", "gr_003"], observation_date=date(2025, 6, 1))

    assert [s.sheet_label for s in config.grant_sheets] == ["GR-001", "GR-003"]
    first, second = config.grant_sheets
    assert first.events[0].lifecycle_status == "vested"
    assert first.resolved_schedule.source == "grant"
    assert second.events is None
    assert second.resolved_schedule.source == "plan_config"
    assert config.observation_date == date(2025, 6, 1)
