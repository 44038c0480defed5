"""Vesting status block.

Projects display statuses for an observation date and aggregates them.

Output DataFrames:
- vesting_status: One row per event with its display status
- vesting_status_totals: Events and shares per display status
"""

from datetime import date
from typing import List
import pandas as pd

from .base import Block, BlockContext
from ..engine import project_events
from ..schemas import VestingEvent

STATUS_ORDER = [
    "vested",
    "transferred",
    "exercised",
    "pending_due",
    "upcoming",
    "forfeited",
    "cancelled",
]


class VestingStatusBlock(Block):
    """Projects each event's display status as of an observation date.

    Inputs (from context):
        - vesting_events_list: List[VestingEvent] (persisted or freshly computed)
        - observation_date: Date to project for (never "today" implicitly)

    Outputs (to context):
        - vesting_status: DataFrame with columns:
            * sequence_number, event_date, event_type, shares
            * lifecycle_status: Persisted status (unchanged)
            * display_status: vested | transferred | exercised | pending_due
              | upcoming | forfeited | cancelled
            * days_until: event_date - observation_date in days (negative = past)

        - vesting_status_totals: DataFrame with columns:
            * display_status: One row per status that occurs
            * events: Number of events
            * shares: Sum of shares
            * shares_pct: Share of all event shares
    """

    def inputs(self) -> List[str]:
        return ["vesting_events_list", "observation_date"]

    def outputs(self) -> List[str]:
        return ["vesting_status", "vesting_status_totals"]

    def execute(self, context: BlockContext) -> None:
        events: List[VestingEvent] = context.get("vesting_events_list")
        observation_date: date = context.get("observation_date")

        status_df = self._compute_status(events, observation_date)
        context.set("vesting_status", status_df)
        context.set("vesting_status_totals", self._compute_totals(status_df))

    def _compute_status(self, events: List[VestingEvent], observation_date: date) -> pd.DataFrame:
        columns = [
            "sequence_number",
            "event_date",
            "event_type",
            "shares",
            "lifecycle_status",
            "display_status",
            "days_until",
        ]
        rows = [
            {
                "sequence_number": item.event.sequence_number,
                "event_date": item.event.event_date,
                "event_type": item.event.event_type,
                "shares": item.event.shares,
                "lifecycle_status": item.event.lifecycle_status,
                "display_status": item.display_status,
                "days_until": (item.event.event_date - observation_date).days,
            }
            for item in project_events(events, observation_date)
        ]
        return pd.DataFrame(rows, columns=columns)

    def _compute_totals(self, status_df: pd.DataFrame) -> pd.DataFrame:
        if status_df.empty:
            return pd.DataFrame(columns=["display_status", "events", "shares", "shares_pct"])

        totals = status_df.groupby("display_status").agg(
            events=("sequence_number", "count"),
            shares=("shares", "sum"),
        ).reset_index()

        all_shares = totals["shares"].sum()
        totals["shares_pct"] = totals["shares"] / all_shares * 100 if all_shares > 0 else 0.0

        # Lifecycle order rather than alphabetical
        totals["_order"] = totals["display_status"].map(STATUS_ORDER.index)
        return totals.sort_values("_order").drop(columns="_order").reset_index(drop=True)
