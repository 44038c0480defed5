"""Tests for the Schedule Resolver.

Tests cover:
- Priority order grant → explicit → plan template → plan config → defaults
- Dangling references falling through to the next tier
- Distribution mode resolution
- Plan kind propagation and error cases
"""

import logging

import pytest
from datetime import date

from vesting_domain.engine import ScheduleResolver
from vesting_domain.errors import NotFoundError
from vesting_domain.schemas import (
    Grant,
    IncentivePlan,
    PlanVestingConfig,
    ScheduleDefaults,
    ScheduleDefinition,
)


SCHEDULES = {
    "grant_sched": ScheduleDefinition(
        id="grant_sched", name="G", total_duration_months=36, cliff_months=6, frequency="monthly"
    ),
    "explicit_sched": ScheduleDefinition(
        id="explicit_sched", name="E", total_duration_months=24, cliff_months=0, frequency="quarterly"
    ),
    "template_sched": ScheduleDefinition(
        id="template_sched",
        name="T",
        total_duration_months=60,
        cliff_months=12,
        frequency="annually",
        distribution_mode="even",
        schedule_kind="performance_based",
        is_template=True,
    ),
}


@pytest.fixture
def resolver():
    return ScheduleResolver(SCHEDULES.get)


def _grant(schedule_id=None, mode=None):
    return Grant(
        id="gr_1",
        plan_id="plan_1",
        total_shares=1000,
        vesting_start_date=date(2024, 1, 1),
        vesting_schedule_id=schedule_id,
        distribution_mode=mode,
    )


def _plan(template=None, config=None, kind="time_based"):
    return IncentivePlan(
        id="plan_1",
        vesting_schedule_kind=kind,
        template_schedule_id=template,
        vesting_config=config,
    )


# =============================================================================
# Priority
# =============================================================================

def test_grant_schedule_wins(resolver):
    resolved = resolver.resolve(
        _grant("grant_sched"),
        _plan(template="template_sched", config=PlanVestingConfig()),
        explicit_schedule_id="explicit_sched",
    )
    assert resolved.source == "grant"
    assert resolved.schedule_id == "grant_sched"
    assert (resolved.total_duration_months, resolved.cliff_months, resolved.frequency) == (36, 6, "monthly")


def test_explicit_schedule_second(resolver):
    resolved = resolver.resolve(_grant(), _plan(template="template_sched"), "explicit_sched")
    assert resolved.source == "explicit"
    assert resolved.schedule_id == "explicit_sched"


def test_plan_template_third(resolver):
    resolved = resolver.resolve(_grant(), _plan(template="template_sched", config=PlanVestingConfig()))
    assert resolved.source == "plan_template"
    assert resolved.total_duration_months == 60
    assert resolved.schedule_kind == "performance_based"


def test_plan_config_fourth(resolver):
    config = PlanVestingConfig(years=3, cliff_months=6, frequency="quarterly")
    resolved = resolver.resolve(_grant(), _plan(config=config, kind="hybrid"))
    assert resolved.source == "plan_config"
    assert resolved.schedule_id is None
    assert (resolved.total_duration_months, resolved.cliff_months, resolved.frequency) == (36, 6, "quarterly")
    assert resolved.schedule_kind == "hybrid"
    assert not resolved.has_persisted_schedule


def test_defaults_last(resolver):
    resolved = resolver.resolve(_grant(), _plan())
    assert resolved.source == "defaults"
    assert (resolved.total_duration_months, resolved.cliff_months, resolved.frequency) == (48, 12, "annually")
    assert resolved.distribution_mode == "percentage"


def test_custom_defaults():
    defaults = ScheduleDefaults(total_duration_months=36, cliff_months=0, frequency="monthly")
    resolved = ScheduleResolver(SCHEDULES.get, defaults).resolve(_grant(), None)
    assert (resolved.total_duration_months, resolved.cliff_months) == (36, 0)


def test_candidates_are_tagged_in_priority_order(resolver):
    candidates = resolver.candidates(
        _grant("grant_sched"),
        _plan(template="template_sched", config=PlanVestingConfig()),
        "explicit_sched",
    )
    assert [tag for tag, _ in candidates] == [
        "grant",
        "explicit",
        "plan_template",
        "plan_config",
        "defaults",
    ]


# =============================================================================
# Fall-through
# =============================================================================

def test_dangling_grant_reference_falls_through(resolver, caplog):
    caplog.set_level(logging.WARNING, logger="vesting_domain")
    resolved = resolver.resolve(_grant("deleted_sched"), _plan(template="template_sched"))

    assert resolved.source == "plan_template"
    assert any(r.getMessage() == "schedule_reference_unresolved" for r in caplog.records)


def test_all_references_dangling_reach_defaults(resolver):
    resolved = resolver.resolve(_grant("gone"), _plan(template="also_gone"), "missing_too")
    assert resolved.source == "defaults"


def test_plan_only_preview(resolver):
    """A plan without a grant still resolves (plan-level preview)."""
    resolved = resolver.resolve(None, _plan(template="template_sched"))
    assert resolved.source == "plan_template"


def test_neither_grant_nor_plan(resolver):
    with pytest.raises(NotFoundError) as exc_info:
        resolver.resolve(None, None)
    assert exc_info.value.code == "NOT_FOUND"
    assert exc_info.value.stage == "resolve"


# =============================================================================
# Distribution mode
# =============================================================================

def test_mode_from_schedule(resolver):
    resolved = resolver.resolve(_grant(), _plan(template="template_sched"))
    assert resolved.distribution_mode == "even"


def test_grant_mode_overrides_schedule(resolver):
    resolved = resolver.resolve(_grant(mode="percentage"), _plan(template="template_sched"))
    assert resolved.distribution_mode == "percentage"


def test_call_mode_overrides_grant(resolver):
    resolved = resolver.resolve(
        _grant("grant_sched", mode="percentage"), None, distribution_mode="even"
    )
    assert resolved.distribution_mode == "even"


def test_grant_mode_applies_to_plan_config(resolver):
    resolved = resolver.resolve(_grant(mode="even"), _plan(config=PlanVestingConfig()))
    assert resolved.distribution_mode == "even"
