"""Shared fixtures for vesting domain tests."""

from datetime import date

import pytest

from vesting_domain.config import VestingSettings
from vesting_domain.logging_config import LogContext, reset_logging
from vesting_domain.persistence import InMemoryVestingStore
from vesting_domain.schemas import (
    Grant,
    IncentivePlan,
    PlanVestingConfig,
    ScheduleDefinition,
)


@pytest.fixture(autouse=True)
def clean_logging():
    yield
    reset_logging()
    LogContext.clear()


@pytest.fixture
def settings():
    return VestingSettings(_env_file=None, batch_max_workers=2)


@pytest.fixture
def standard_schedule():
    return ScheduleDefinition(
        id="standard_4y",
        name="4 years, 1 year cliff, annual",
        total_duration_months=48,
        cliff_months=12,
        frequency="annually",
    )


@pytest.fixture
def quarterly_schedule():
    return ScheduleDefinition(
        id="quarterly_40m",
        name="40 months, 1 year cliff, quarterly",
        total_duration_months=40,
        cliff_months=12,
        frequency="quarterly",
    )


@pytest.fixture
def plan():
    return IncentivePlan(
        id="ltip_2024",
        name="LTIP 2024",
        company_id="acme",
        vesting_schedule_kind="time_based",
        vesting_config=PlanVestingConfig(years=3, cliff_months=6, frequency="quarterly"),
    )


@pytest.fixture
def store(standard_schedule, quarterly_schedule, plan):
    """In-memory store with two schedules, one plan and three grants."""
    store = InMemoryVestingStore()
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
        id="gr_002",
        plan_id=plan.id,
        grant_number="GR-002",
        company_id="acme",
        total_shares=10_000,
        vesting_start_date=date(2024, 1, 1),
        vesting_schedule_id="quarterly_40m",
    ))
    store.save_grant(Grant(
        id="gr_003",
        plan_id=plan.id,
        grant_number="GR-003",
        company_id="other_co",
        total_shares=1_200,
        vesting_start_date=date(2024, 3, 15),
    ))
    return store
