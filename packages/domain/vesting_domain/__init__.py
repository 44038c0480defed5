"""Vesting Domain Engine - Vesting schedule models and computation.

This package turns equity grants into dated vesting events:
- Schedule resolution from grant, plan template, plan config or defaults
- Integer share allocation (percentage-based or even distribution)
- Calendar-month event materialization with exact reconciliation
- Self-healing validation of persisted milestone templates
- Display status projection for an explicit observation date

The domain layer is designed to be:
- Framework-agnostic (no web dependencies)
- Testable (pure Python with Pydantic validation)
- Deterministic (no clock access inside the engine)
"""

from .schemas import *  # noqa: F403, F401

__version__ = "0.1.0"
