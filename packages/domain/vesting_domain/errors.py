"""Typed exception hierarchy for the vesting engine.

Every error carries a machine-readable ``code`` and the structured context
needed to diagnose it (grant, schedule, pipeline stage). Callers catch by
type, never by message.

    VestingError (base)
    |
    +-- ValidationError      VALIDATION_ERROR   bad schedule parameters or inputs
    +-- NotFoundError        NOT_FOUND          grant / plan / schedule missing
    +-- ConsistencyError     CONSISTENCY_ERROR  stale data could not be repaired,
    |                                           or event invariants were broken
    +-- PersistenceError     PERSISTENCE_ERROR  the store rejected a read/write

None of these are retried by the engine. Batch operations convert them into
BatchFailure entries instead of aborting (see service.VestingService).
"""

from typing import Optional


class VestingError(Exception):
    """Base class for all vesting engine errors."""

    code: str = "VESTING_ERROR"

    def __init__(
        self,
        message: str,
        *,
        grant_id: Optional[str] = None,
        schedule_id: Optional[str] = None,
        stage: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.grant_id = grant_id
        self.schedule_id = schedule_id
        self.stage = stage

    def __str__(self) -> str:
        context = [
            f"{name}={value}"
            for name, value in (
                ("grant", self.grant_id),
                ("schedule", self.schedule_id),
                ("stage", self.stage),
            )
            if value is not None
        ]
        if not context:
            return self.message
        return f"{self.message} [{', '.join(context)}]"

    def to_dict(self) -> dict:
        """Structured representation for logs and API responses."""
        return {
            "code": self.code,
            "message": self.message,
            "grant_id": self.grant_id,
            "schedule_id": self.schedule_id,
            "stage": self.stage,
        }


class ValidationError(VestingError):
    """Invalid schedule parameters or grant inputs. Caller must fix the input."""

    code = "VALIDATION_ERROR"


class NotFoundError(VestingError):
    """A referenced grant, plan or schedule does not exist."""

    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Optional[str] = None, **kwargs):
        message = f"{entity} not found" if entity_id is None else f"{entity} '{entity_id}' not found"
        super().__init__(message, **kwargs)
        self.entity = entity
        self.entity_id = entity_id


class ConsistencyError(VestingError):
    """Persisted data is inconsistent and could not be repaired.

    Raised when a stale milestone set could not be regenerated, when a
    computed event list breaks an event-set invariant, or when events are
    regenerated for a grant that already has processed events.
    """

    code = "CONSISTENCY_ERROR"


class PersistenceError(VestingError):
    """The storage collaborator rejected an operation.

    The underlying exception is chained (``raise ... from exc``) and also kept
    on ``cause`` so it survives serialization into batch reports.
    """

    code = "PERSISTENCE_ERROR"

    def __init__(self, message: str, *, cause: Optional[BaseException] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.cause = cause

    def to_dict(self) -> dict:
        data = super().to_dict()
        if self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data


__all__ = [
    "VestingError",
    "ValidationError",
    "NotFoundError",
    "ConsistencyError",
    "PersistenceError",
]
