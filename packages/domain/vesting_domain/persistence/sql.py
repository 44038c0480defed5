"""SQLAlchemy-backed vesting store.

Tables:
    schedules        ScheduleDefinition
    milestones       Milestone            unique (schedule_id, sequence_order)
    plans            IncentivePlan        inline config flattened to config_* columns
    grants           Grant
    vesting_events   VestingEvent         unique (grant_id, sequence_number)

Every write runs in one transaction opened by session_scope(): commit on
success, rollback on any exception. SQLAlchemyError is re-raised as
PersistenceError with the original exception chained.

Writers that touch shared history lock the owning row first (SELECT ... FOR
UPDATE on backends that support it): replace_events and update_event_status
lock the grant row, replace_milestones locks the schedule row. Concurrent
transactions therefore queue instead of racing on the unique constraints or
overwriting a lifecycle update.
"""

from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Iterator, List, Optional, Sequence

from sqlalchemy import (
    BigInteger,
    Boolean,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import NotFoundError, PersistenceError
from ..logging_config import get_logger
from ..schemas import (
    Grant,
    IncentivePlan,
    Milestone,
    PlanVestingConfig,
    ScheduleDefinition,
    VestingEvent,
)
from .store import KeyedLockRegistry, VestingStore, processed_events_error

logger = get_logger("persistence.sql")


# =============================================================================
# ORM models
# =============================================================================

class Base(DeclarativeBase):
    """Declarative base for the vesting tables."""


class ScheduleRecord(Base):
    __tablename__ = "schedules"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    total_duration_months: Mapped[int] = mapped_column(Integer)
    cliff_months: Mapped[int] = mapped_column(Integer, default=0)
    frequency: Mapped[str] = mapped_column(String(16))
    distribution_mode: Mapped[str] = mapped_column(String(16))
    schedule_kind: Mapped[str] = mapped_column(String(32))
    is_template: Mapped[bool] = mapped_column(Boolean, default=False)


class MilestoneRecord(Base):
    __tablename__ = "milestones"
    __table_args__ = (
        UniqueConstraint("schedule_id", "sequence_order", name="uq_milestone_order"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[str] = mapped_column(ForeignKey("schedules.id"), index=True)
    sequence_order: Mapped[int] = mapped_column(Integer)
    months_from_start: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    vesting_percentage: Mapped[Optional[Decimal]] = mapped_column(Numeric(9, 4), nullable=True)
    milestone_type: Mapped[str] = mapped_column(String(16), default="time")


class PlanRecord(Base):
    __tablename__ = "plans"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    company_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    vesting_schedule_kind: Mapped[str] = mapped_column(String(32))
    template_schedule_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    config_years: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    config_cliff_months: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    config_frequency: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)


class GrantRecord(Base):
    __tablename__ = "grants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    plan_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    grant_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    company_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    employee_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    total_shares: Mapped[int] = mapped_column(BigInteger)
    vesting_start_date: Mapped[date] = mapped_column(Date)
    vesting_schedule_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    distribution_mode: Mapped[Optional[str]] = mapped_column(String(16), nullable=True)


class EventRecord(Base):
    __tablename__ = "vesting_events"
    __table_args__ = (
        UniqueConstraint("grant_id", "sequence_number", name="uq_event_sequence"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    grant_id: Mapped[str] = mapped_column(ForeignKey("grants.id"), index=True)
    sequence_number: Mapped[int] = mapped_column(Integer)
    event_date: Mapped[date] = mapped_column(Date)
    months_from_start: Mapped[int] = mapped_column(Integer)
    shares: Mapped[int] = mapped_column(BigInteger)
    cumulative_shares: Mapped[int] = mapped_column(BigInteger)
    event_type: Mapped[str] = mapped_column(String(16))
    lifecycle_status: Mapped[str] = mapped_column(String(16), default="pending")
    actual_vest_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)


# =============================================================================
# Record <-> schema conversion
# =============================================================================

def _schedule_from_record(row: ScheduleRecord) -> ScheduleDefinition:
    return ScheduleDefinition(
        id=row.id,
        name=row.name,
        total_duration_months=row.total_duration_months,
        cliff_months=row.cliff_months,
        frequency=row.frequency,
        distribution_mode=row.distribution_mode,
        schedule_kind=row.schedule_kind,
        is_template=row.is_template,
    )


def _milestone_from_record(row: MilestoneRecord) -> Milestone:
    return Milestone(
        schedule_id=row.schedule_id,
        sequence_order=row.sequence_order,
        months_from_start=row.months_from_start,
        vesting_percentage=row.vesting_percentage,
        milestone_type=row.milestone_type,
    )


def _plan_from_record(row: PlanRecord) -> IncentivePlan:
    config = None
    if row.config_years is not None:
        config = PlanVestingConfig(
            years=row.config_years,
            cliff_months=row.config_cliff_months if row.config_cliff_months is not None else 12,
            frequency=row.config_frequency or "annually",
        )
    return IncentivePlan(
        id=row.id,
        name=row.name,
        company_id=row.company_id,
        vesting_schedule_kind=row.vesting_schedule_kind,
        template_schedule_id=row.template_schedule_id,
        vesting_config=config,
    )


def _grant_from_record(row: GrantRecord) -> Grant:
    return Grant(
        id=row.id,
        plan_id=row.plan_id,
        grant_number=row.grant_number,
        company_id=row.company_id,
        employee_id=row.employee_id,
        total_shares=row.total_shares,
        vesting_start_date=row.vesting_start_date,
        vesting_schedule_id=row.vesting_schedule_id,
        distribution_mode=row.distribution_mode,
    )


def _event_from_record(row: EventRecord) -> VestingEvent:
    return VestingEvent(
        grant_id=row.grant_id,
        sequence_number=row.sequence_number,
        event_date=row.event_date,
        months_from_start=row.months_from_start,
        shares=row.shares,
        cumulative_shares=row.cumulative_shares,
        event_type=row.event_type,
        lifecycle_status=row.lifecycle_status,
        actual_vest_date=row.actual_vest_date,
    )


# =============================================================================
# Store
# =============================================================================

def _lock_row(session: Session, model, key: str):
    """SELECT ... FOR UPDATE on one row by primary key; None when it does not exist."""
    return session.scalars(select(model).where(model.id == key).with_for_update()).first()


def _is_in_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.rstrip("/").endswith("sqlite:") or ":memory:" in url)


class SqlVestingStore(VestingStore):
    """VestingStore over a SQLAlchemy engine.

    Args:
        database_url: SQLAlchemy URL (ignored when ``engine`` is given)
        engine: Pre-built engine to use
        echo: Log SQL statements

    Example:
        store = SqlVestingStore("sqlite://")
        store.create_tables()
        store.save_grant(grant)
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        *,
        engine: Optional[Engine] = None,
        echo: bool = False,
    ):
        if engine is None:
            if database_url is None:
                raise ValueError("Either database_url or engine is required")
            if _is_in_memory_sqlite(database_url):
                # One shared connection, otherwise every session sees an empty database
                engine = create_engine(
                    database_url,
                    echo=echo,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
            else:
                engine = create_engine(database_url, echo=echo, pool_pre_ping=True)

        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._grant_locks = KeyedLockRegistry()
        self._schedule_locks = KeyedLockRegistry()

    @classmethod
    def from_settings(cls, settings) -> "SqlVestingStore":
        """Build a store from VestingSettings (database_url, database_echo)."""
        return cls(settings.database_url, echo=settings.database_echo)

    def create_tables(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info("tables_created", extra={"tables": sorted(Base.metadata.tables)})

    def drop_tables(self) -> None:
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def session_scope(self, operation: str) -> Iterator[Session]:
        """Transactional scope: commit on success, rollback on any exception.

        Raises:
            PersistenceError: Wrapping any SQLAlchemyError (cause chained)
        """
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.warning(
                "transaction_rolled_back",
                extra={"operation": operation},
                exc_info=True,
            )
            raise PersistenceError(
                f"{operation} failed: {exc}",
                cause=exc,
                stage=operation,
            ) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # -- records ------------------------------------------------------------

    def get_grant(self, grant_id: str) -> Optional[Grant]:
        with self.session_scope("get_grant") as session:
            row = session.get(GrantRecord, grant_id)
            return _grant_from_record(row) if row is not None else None

    def get_plan(self, plan_id: str) -> Optional[IncentivePlan]:
        with self.session_scope("get_plan") as session:
            row = session.get(PlanRecord, plan_id)
            return _plan_from_record(row) if row is not None else None

    def get_schedule(self, schedule_id: str) -> Optional[ScheduleDefinition]:
        with self.session_scope("get_schedule") as session:
            row = session.get(ScheduleRecord, schedule_id)
            return _schedule_from_record(row) if row is not None else None

    def list_grants(self, company_id: Optional[str] = None) -> List[Grant]:
        stmt = select(GrantRecord).order_by(GrantRecord.id)
        if company_id is not None:
            stmt = stmt.where(GrantRecord.company_id == company_id)
        with self.session_scope("list_grants") as session:
            return [_grant_from_record(row) for row in session.scalars(stmt)]

    def save_grant(self, grant: Grant) -> None:
        with self.session_scope("save_grant") as session:
            session.merge(GrantRecord(**grant.model_dump()))

    def save_plan(self, plan: IncentivePlan) -> None:
        config = plan.vesting_config
        with self.session_scope("save_plan") as session:
            session.merge(PlanRecord(
                id=plan.id,
                name=plan.name,
                company_id=plan.company_id,
                vesting_schedule_kind=plan.vesting_schedule_kind,
                template_schedule_id=plan.template_schedule_id,
                config_years=config.years if config else None,
                config_cliff_months=config.cliff_months if config else None,
                config_frequency=config.frequency if config else None,
            ))

    def save_schedule(self, schedule: ScheduleDefinition) -> None:
        with self.session_scope("save_schedule") as session:
            session.merge(ScheduleRecord(**schedule.model_dump()))

    # -- milestones ---------------------------------------------------------

    def list_milestones(self, schedule_id: str) -> List[Milestone]:
        stmt = (
            select(MilestoneRecord)
            .where(MilestoneRecord.schedule_id == schedule_id)
            .order_by(MilestoneRecord.sequence_order)
        )
        with self.session_scope("list_milestones") as session:
            return [_milestone_from_record(row) for row in session.scalars(stmt)]

    def replace_milestones(self, schedule_id: str, milestones: Sequence[Milestone]) -> None:
        with self.session_scope("replace_milestones") as session:
            # A second writer blocks here until this transaction commits, then deletes our rows
            if _lock_row(session, ScheduleRecord, schedule_id) is None:
                raise NotFoundError(
                    "vesting schedule", schedule_id, schedule_id=schedule_id, stage="replace_milestones"
                )

            session.execute(delete(MilestoneRecord).where(MilestoneRecord.schedule_id == schedule_id))
            # Flush the delete before inserting rows with the same sequence_order
            session.flush()
            session.add_all(
                MilestoneRecord(
                    schedule_id=schedule_id,
                    sequence_order=m.sequence_order,
                    months_from_start=m.months_from_start,
                    vesting_percentage=m.vesting_percentage,
                    milestone_type=m.milestone_type,
                )
                for m in milestones
            )
        logger.debug("milestones_replaced", extra={"schedule_id": schedule_id, "count": len(milestones)})

    # -- events -------------------------------------------------------------

    def list_events(self, grant_id: str) -> List[VestingEvent]:
        stmt = (
            select(EventRecord)
            .where(EventRecord.grant_id == grant_id)
            .order_by(EventRecord.sequence_number)
        )
        with self.session_scope("list_events") as session:
            return [_event_from_record(row) for row in session.scalars(stmt)]

    def replace_events(
        self,
        grant_id: str,
        events: Sequence[VestingEvent],
        require_pending: bool = False,
    ) -> None:
        with self.session_scope("replace_events") as session:
            if _lock_row(session, GrantRecord, grant_id) is None:
                raise NotFoundError("grant", grant_id, grant_id=grant_id, stage="replace_events")

            if require_pending:
                processed = session.scalar(
                    select(func.count())
                    .select_from(EventRecord)
                    .where(EventRecord.grant_id == grant_id, EventRecord.lifecycle_status != "pending")
                )
                if processed:
                    raise processed_events_error(grant_id, processed, stage="replace_events")

            session.execute(delete(EventRecord).where(EventRecord.grant_id == grant_id))
            session.flush()
            session.add_all(
                EventRecord(
                    grant_id=grant_id,
                    sequence_number=e.sequence_number,
                    event_date=e.event_date,
                    months_from_start=e.months_from_start,
                    shares=e.shares,
                    cumulative_shares=e.cumulative_shares,
                    event_type=e.event_type,
                    lifecycle_status=e.lifecycle_status,
                    actual_vest_date=e.actual_vest_date,
                )
                for e in events
            )
        logger.debug("events_replaced", extra={"grant_id": grant_id, "count": len(events)})

    def update_event_status(
        self,
        grant_id: str,
        sequence_number: int,
        lifecycle_status: str,
        actual_vest_date: Optional[date] = None,
    ) -> VestingEvent:
        stmt = select(EventRecord).where(
            EventRecord.grant_id == grant_id,
            EventRecord.sequence_number == sequence_number,
        )
        with self.session_scope("update_event_status") as session:
            # Same row lock as replace_events: the update lands before or after a regeneration
            _lock_row(session, GrantRecord, grant_id)
            row = session.scalars(stmt).first()
            if row is None:
                raise NotFoundError(
                    "vesting event",
                    f"{grant_id}#{sequence_number}",
                    grant_id=grant_id,
                    stage="update_event_status",
                )
            updated = _event_from_record(row)
            # validate_assignment rejects unknown statuses before the row changes
            updated.lifecycle_status = lifecycle_status
            updated.actual_vest_date = actual_vest_date
            row.lifecycle_status = updated.lifecycle_status
            row.actual_vest_date = updated.actual_vest_date
            return updated

    def grant_lock(self, grant_id: str):
        return self._grant_locks.hold(grant_id)

    def schedule_lock(self, schedule_id: str):
        return self._schedule_locks.hold(schedule_id)
