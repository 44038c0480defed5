"""Tests for the SQLAlchemy vesting store.

Tests cover:
- Round trips for schedules, plans, grants, milestones and events
- Atomic replacement (a failed write leaves the previous set in place)
- Error wrapping into PersistenceError
- The service running end to end over SQL
"""

import pytest
from datetime import date
from decimal import Decimal

from vesting_domain.config import VestingSettings
from vesting_domain.engine import compute_vesting_events
from vesting_domain.errors import ConsistencyError, NotFoundError, PersistenceError
from vesting_domain.persistence import SqlVestingStore
from vesting_domain.schemas import Grant
from vesting_domain.service import VestingService

from vesting_builders import make_milestones, make_resolved


@pytest.fixture
def sql_store(standard_schedule, quarterly_schedule, plan):
    store = SqlVestingStore("sqlite://")
    store.create_tables()
    store.save_schedule(standard_schedule)
    store.save_schedule(quarterly_schedule)
    store.save_plan(plan)
    store.save_grant(Grant(
        id="gr_001",
        plan_id=plan.id,
        grant_number="GR-001",
        company_id="acme",
        total_shares=10_000,
        vesting_start_date=date(2024, 1, 1),
        vesting_schedule_id="standard_4y",
    ))
    store.save_grant(Grant(
        id="gr_003",
        plan_id=plan.id,
        company_id="other_co",
        total_shares=1_200,
        vesting_start_date=date(2024, 3, 15),
    ))
    yield store
    store.drop_tables()
    store.engine.dispose()


def _events(grant_id="gr_001"):
    return compute_vesting_events(make_resolved(), 10_000, date(2024, 1, 1), grant_id=grant_id)


# =============================================================================
# Round trips
# =============================================================================

class TestRoundTrips:

    def test_schedule(self, sql_store, standard_schedule):
        assert sql_store.get_schedule("standard_4y") == standard_schedule
        assert sql_store.get_schedule("nope") is None

    def test_plan_with_inline_config(self, sql_store, plan):
        loaded = sql_store.get_plan(plan.id)
        assert loaded == plan
        assert loaded.vesting_config.total_duration_months == 36

    def test_grant_and_listing(self, sql_store):
        grant = sql_store.get_grant("gr_001")
        assert grant.total_shares == 10_000
        assert grant.vesting_start_date == date(2024, 1, 1)
        assert [g.id for g in sql_store.list_grants()] == ["gr_001", "gr_003"]
        assert [g.id for g in sql_store.list_grants("other_co")] == ["gr_003"]

    def test_save_grant_updates_in_place(self, sql_store):
        grant = sql_store.get_grant("gr_001")
        grant.total_shares = 20_000
        sql_store.save_grant(grant)
        assert sql_store.get_grant("gr_001").total_shares == 20_000
        assert len(sql_store.list_grants()) == 2

    def test_milestones(self, sql_store):
        milestones = make_milestones([12, 24, 36, 48])
        milestones[0].vesting_percentage = Decimal("25.0000")
        sql_store.replace_milestones("standard_4y", list(reversed(milestones)))

        loaded = sql_store.list_milestones("standard_4y")

        assert [m.sequence_order for m in loaded] == [0, 1, 2, 3]
        assert [m.months_from_start for m in loaded] == [12, 24, 36, 48]
        assert loaded[0].vesting_percentage == Decimal("25.0000")

    def test_corrupt_milestone_offsets_survive(self, sql_store):
        sql_store.replace_milestones("standard_4y", make_milestones([12, None, 0]))
        assert [m.months_from_start for m in sql_store.list_milestones("standard_4y")] == [12, None, 0]

    def test_events(self, sql_store):
        sql_store.replace_events("gr_001", _events())
        loaded = sql_store.list_events("gr_001")
        assert loaded == _events()


# =============================================================================
# Atomic replacement
# =============================================================================

class TestReplacement:

    def test_replace_events_swaps_whole_set(self, sql_store):
        sql_store.replace_events("gr_001", _events())
        shorter = compute_vesting_events(make_resolved(12, 12, "monthly"), 10_000, date(2024, 1, 1))

        sql_store.replace_events("gr_001", shorter)

        loaded = sql_store.list_events("gr_001")
        assert len(loaded) == 1
        assert loaded[0].grant_id == "gr_001"

    def test_duplicate_sequence_rolls_back(self, sql_store):
        """A write that breaks the unique constraint leaves the old set intact."""
        sql_store.replace_events("gr_001", _events())
        broken = _events()
        broken[1] = broken[1].model_copy(update={"sequence_number": 1})

        with pytest.raises(PersistenceError) as exc_info:
            sql_store.replace_events("gr_001", broken)

        assert exc_info.value.stage == "replace_events"
        assert exc_info.value.cause is not None
        assert exc_info.value.__cause__ is exc_info.value.cause
        assert exc_info.value.to_dict()["cause"].startswith("IntegrityError")
        assert sql_store.list_events("gr_001") == _events()

    def test_duplicate_milestone_order_rolls_back(self, sql_store):
        sql_store.replace_milestones("standard_4y", make_milestones([12, 24]))
        duplicate = make_milestones([12, 24])
        duplicate[1].sequence_order = 0

        with pytest.raises(PersistenceError):
            sql_store.replace_milestones("standard_4y", duplicate)

        assert [m.months_from_start for m in sql_store.list_milestones("standard_4y")] == [12, 24]

    def test_replace_events_for_unknown_grant(self, sql_store):
        with pytest.raises(NotFoundError) as exc_info:
            sql_store.replace_events("gr_missing", _events("gr_missing"))
        assert exc_info.value.stage == "replace_events"
        assert sql_store.list_events("gr_missing") == []

    def test_require_pending_refuses_processed_history(self, sql_store):
        """The pending check runs in the replacement transaction; the vested row survives."""
        sql_store.replace_events("gr_001", _events())
        sql_store.update_event_status("gr_001", 1, "vested", date(2025, 1, 1))

        with pytest.raises(ConsistencyError) as exc_info:
            sql_store.replace_events("gr_001", _events(), require_pending=True)

        assert exc_info.value.stage == "replace_events"
        stored = sql_store.list_events("gr_001")
        assert [e.lifecycle_status for e in stored] == ["vested", "pending", "pending", "pending"]
        assert stored[0].actual_vest_date == date(2025, 1, 1)

    def test_require_pending_allows_pending_set(self, sql_store):
        sql_store.replace_events("gr_001", _events())
        sql_store.replace_events("gr_001", _events(), require_pending=True)
        assert sql_store.list_events("gr_001") == _events()

    def test_replace_milestones_for_unknown_schedule(self, sql_store):
        with pytest.raises(NotFoundError) as exc_info:
            sql_store.replace_milestones("nope", make_milestones([12], schedule_id="nope"))
        assert exc_info.value.schedule_id == "nope"
        assert sql_store.list_milestones("nope") == []


# =============================================================================
# Lifecycle updates
# =============================================================================

class TestUpdateEventStatus:

    def test_update(self, sql_store):
        sql_store.replace_events("gr_001", _events())

        updated = sql_store.update_event_status("gr_001", 2, "vested", date(2026, 1, 2))

        assert updated.lifecycle_status == "vested"
        stored = sql_store.list_events("gr_001")[1]
        assert stored.lifecycle_status == "vested"
        assert stored.actual_vest_date == date(2026, 1, 2)

    def test_unknown_event(self, sql_store):
        with pytest.raises(NotFoundError) as exc_info:
            sql_store.update_event_status("gr_001", 99, "vested")
        assert exc_info.value.entity_id == "gr_001#99"

    def test_invalid_status_leaves_row_unchanged(self, sql_store):
        sql_store.replace_events("gr_001", _events())
        with pytest.raises(ValueError):
            sql_store.update_event_status("gr_001", 1, "teleported")
        assert sql_store.list_events("gr_001")[0].lifecycle_status == "pending"


# =============================================================================
# Service over SQL
# =============================================================================

class TestServiceOverSql:

    def test_materialize_and_regenerate(self, sql_store):
        service = VestingService(sql_store, VestingSettings(_env_file=None, batch_max_workers=1))

        events = service.materialize("gr_001")
        assert [e.shares for e in events] == [2500] * 4
        assert len(sql_store.list_milestones("standard_4y")) == 4

        report = service.regenerate_all()
        assert report.succeeded == ["gr_001", "gr_003"]
        assert len(sql_store.list_events("gr_003")) == 11

    def test_preview_matches_persisted(self, sql_store):
        service = VestingService(sql_store, VestingSettings(_env_file=None, batch_max_workers=1))
        preview = service.preview("gr_003")
        service.materialize("gr_003")
        assert [e.schedule_key() for e in preview] == [
            e.schedule_key() for e in sql_store.list_events("gr_003")
        ]
