"""Schedule sheet renderer - one vesting sheet per grant."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from vesting_domain.blocks import (
    BlockContext,
    BlockExecutor,
    VestingScheduleBlock,
    VestingStatusBlock,
)
from vesting_domain.schemas import GrantSheetCFG, VestingWorkbookCFG


@dataclass
class SheetLayout:
    """Where things landed on a rendered grant sheet (1-based rows)."""

    sheet_title: str
    total_shares_cell: str
    header_row: int
    first_event_row: int
    last_event_row: int
    totals_row: int
    check_row: int
    columns: Dict[str, str]


class ScheduleSheetRenderer:
    """Render one sheet per grant: summary header, event table, totals.

    Input values (total shares) are blue, formulas black. Cumulative shares
    and % vested are live formulas over the shares column, so editing an
    event's shares in Excel keeps the sheet consistent; the check row shows
    total shares minus the SUM of all events and must read 0.
    """

    EVENT_COLUMNS: List[Tuple[str, str, int]] = [
        # (key, header, width)
        ("sequence_number", "#", 6),
        ("event_date", "Vesting Date", 14),
        ("months_from_start", "Months", 9),
        ("event_type", "Type", 13),
        ("shares", "Shares", 14),
        ("cumulative_shares", "Cumulative", 14),
        ("vested_pct", "% Vested", 10),
        ("lifecycle_status", "Status", 13),
        ("display_status", "As Of Status", 14),
    ]

    def __init__(self, config: VestingWorkbookCFG):
        self.config = config

        # Define styles
        self.blue_font = Font(color="0000FF")  # Blue for input values
        self.black_font = Font(color="000000")  # Black for calculated values
        self.bold_font = Font(bold=True)
        self.title_font = Font(bold=True, size=14)
        self.subtitle_font = Font(italic=True, color="595959")

        # Header styling
        self.header_font = Font(bold=True, color="FFFFFF")  # White text on dark blue
        self.header_fill = PatternFill(start_color="1F4E78", end_color="1F4E78", fill_type="solid")

        # Section header styling
        self.section_header_font = Font(italic=True, bold=True)
        self.section_header_fill = PatternFill(start_color="E7E6E6", end_color="E7E6E6", fill_type="solid")

        # Cliff row highlight
        self.cliff_fill = PatternFill(start_color="FFFACD", end_color="FFFACD", fill_type="solid")

        self.thin_border = Border(
            left=Side(style="thin"),
            right=Side(style="thin"),
            top=Side(style="thin"),
            bottom=Side(style="thin"),
        )
        self.top_border = Border(top=Side(style="medium"))

        self.center_align = Alignment(horizontal="center", vertical="center")

        # Filled by build_workbook(); keyed by sheet title
        self.layouts: Dict[str, SheetLayout] = {}

    def render(self, output_path: str) -> str:
        wb = self.build_workbook()
        wb.save(output_path)
        return output_path

    def build_workbook(self) -> Workbook:
        wb = Workbook()
        wb.remove(wb.active)
        self.layouts = {}

        for sheet_cfg in self.config.grant_sheets:
            layout = self._render_grant_sheet(wb, sheet_cfg)
            self.layouts[layout.sheet_title] = layout

        if not self.config.grant_sheets:
            sheet = wb.create_sheet(title="Vesting")
            sheet["A1"] = self.config.title
            sheet["A1"].font = self.title_font
            sheet["A3"] = "No grants to render"
            sheet["A3"].font = self.subtitle_font

        return wb

    # ------------------------------------------------------------------ #
    # Data
    # ------------------------------------------------------------------ #

    def _compute_frames(self, sheet_cfg: GrantSheetCFG) -> Tuple[pd.DataFrame, pd.DataFrame, Optional[pd.DataFrame]]:
        """Run the vesting blocks for one grant.

        Returns:
            (events_df, summary_df, status_df or None without observation date)
        """
        blocks = [VestingScheduleBlock(events=sheet_cfg.events)]
        context = BlockContext.from_values(
            grant=sheet_cfg.grant,
            resolved_schedule=sheet_cfg.resolved_schedule,
            plan_schedule_kind=sheet_cfg.plan_schedule_kind,
        )
        if self.config.observation_date is not None:
            blocks.append(VestingStatusBlock())
            context.set("observation_date", self.config.observation_date)

        BlockExecutor(blocks).execute(context)

        status_df = context.get("vesting_status") if context.has("vesting_status") else None
        return context.get("vesting_events"), context.get("vesting_schedule_summary"), status_df

    # ------------------------------------------------------------------ #
    # Sheet
    # ------------------------------------------------------------------ #

    def _render_grant_sheet(self, wb: Workbook, sheet_cfg: GrantSheetCFG) -> SheetLayout:
        events_df, summary_df, status_df = self._compute_frames(sheet_cfg)
        summary = summary_df.iloc[0]

        sheet = wb.create_sheet(title=sheet_cfg.sheet_title)

        sheet["A1"] = self.config.title
        sheet["A1"].font = self.title_font
        sheet["A2"] = f"Grant {sheet_cfg.grant.label}"
        sheet["A2"].font = self.subtitle_font

        total_cell, next_row = self._render_summary(sheet, summary, start_row=4)

        columns = [c for c in self.EVENT_COLUMNS if c[0] != "display_status" or status_df is not None]
        col_map = {key: get_column_letter(idx + 1) for idx, (key, _, _) in enumerate(columns)}

        header_row = next_row + 1
        for idx, (key, header, width) in enumerate(columns, start=1):
            cell = sheet.cell(row=header_row, column=idx, value=header)
            cell.font = self.header_font
            cell.fill = self.header_fill
            cell.alignment = self.center_align
            cell.border = self.thin_border
            sheet.column_dimensions[get_column_letter(idx)].width = width

        display_by_seq: Dict[int, str] = {}
        if status_df is not None and not status_df.empty:
            display_by_seq = dict(zip(status_df["sequence_number"], status_df["display_status"]))

        first_row = header_row + 1
        row = first_row
        for event in events_df.itertuples(index=False):
            self._render_event_row(sheet, row, event, col_map, total_cell, first_row, display_by_seq)
            row += 1
        last_row = row - 1

        totals_row, check_row = self._render_totals(sheet, col_map, first_row, last_row, total_cell)

        sheet.freeze_panes = f"A{first_row}"

        # Column A doubles as summary label column
        sheet.column_dimensions["A"].width = max(sheet.column_dimensions["A"].width or 0, 20)
        sheet.column_dimensions["B"].width = max(sheet.column_dimensions["B"].width or 0, 16)

        return SheetLayout(
            sheet_title=sheet.title,
            total_shares_cell=total_cell,
            header_row=header_row,
            first_event_row=first_row,
            last_event_row=last_row,
            totals_row=totals_row,
            check_row=check_row,
            columns=col_map,
        )

    def _render_summary(self, sheet: Worksheet, summary: pd.Series, start_row: int) -> Tuple[str, int]:
        """Write the key/value summary block.

        Returns:
            (absolute ref of the total shares cell, first free row)
        """
        header = sheet.cell(row=start_row, column=1, value="Schedule")
        header.font = self.section_header_font
        for col in (1, 2):
            sheet.cell(row=start_row, column=col).fill = self.section_header_fill

        items = [
            ("Total shares", summary["total_shares"], "#,##0"),
            ("Vesting start", summary["vesting_start_date"], "yyyy-mm-dd"),
            ("Duration (months)", summary["total_duration_months"], "0"),
            ("Cliff (months)", summary["cliff_months"], "0"),
            ("Frequency", summary["frequency"], None),
            ("Distribution", summary["distribution_mode"], None),
            ("Vesting kind", summary["vesting_kind"], None),
            ("Schedule source", summary["source"], None),
            ("Cliff date", summary["cliff_date"], "yyyy-mm-dd"),
            ("Final vest date", summary["final_vest_date"], "yyyy-mm-dd"),
        ]
        if self.config.observation_date is not None:
            items.append(("As of", self.config.observation_date, "yyyy-mm-dd"))

        row = start_row + 1
        total_cell = f"$B${row}"
        for label, value, number_format in items:
            sheet.cell(row=row, column=1, value=label)
            value_cell = sheet.cell(row=row, column=2, value=self._excel_value(value))
            if number_format:
                value_cell.number_format = number_format
            value_cell.font = self.blue_font if label == "Total shares" else self.black_font
            row += 1

        return total_cell, row

    def _render_event_row(
        self,
        sheet: Worksheet,
        row: int,
        event,
        col_map: Dict[str, str],
        total_cell: str,
        first_row: int,
        display_by_seq: Dict[int, str],
    ) -> None:
        shares_ref = f"{col_map['shares']}{row}"
        values = {
            "sequence_number": int(event.sequence_number),
            "event_date": self._excel_value(event.event_date),
            "months_from_start": int(event.months_from_start),
            "event_type": event.event_type,
            "shares": int(event.shares),
            # Running total of the shares column
            "cumulative_shares": (
                f"={shares_ref}" if row == first_row
                else f"={col_map['cumulative_shares']}{row - 1}+{shares_ref}"
            ),
            "vested_pct": f"=IF({total_cell}>0,{col_map['cumulative_shares']}{row}/{total_cell},0)",
            "lifecycle_status": event.lifecycle_status,
            "display_status": display_by_seq.get(int(event.sequence_number)),
        }
        formats = {
            "event_date": "yyyy-mm-dd",
            "shares": "#,##0",
            "cumulative_shares": "#,##0",
            "vested_pct": "0.0%",
        }

        for key, col in col_map.items():
            cell = sheet[f"{col}{row}"]
            cell.value = values[key]
            cell.border = self.thin_border
            cell.font = self.blue_font if key == "shares" else self.black_font
            if key in formats:
                cell.number_format = formats[key]
            if event.event_type == "cliff":
                cell.fill = self.cliff_fill

    def _render_totals(
        self,
        sheet: Worksheet,
        col_map: Dict[str, str],
        first_row: int,
        last_row: int,
        total_cell: str,
    ) -> Tuple[int, int]:
        totals_row = last_row + 1
        shares_col = col_map["shares"]
        sum_range = f"{shares_col}{first_row}:{shares_col}{last_row}"

        label = sheet.cell(row=totals_row, column=1, value="Total")
        label.font = self.bold_font
        total = sheet[f"{shares_col}{totals_row}"]
        total.value = f"=SUM({sum_range})" if last_row >= first_row else 0
        total.font = self.bold_font
        total.number_format = "#,##0"
        for col in col_map.values():
            sheet[f"{col}{totals_row}"].border = self.top_border

        check_row = totals_row + 1
        sheet.cell(row=check_row, column=1, value="Unallocated (must be 0)").font = self.subtitle_font
        check = sheet[f"{shares_col}{check_row}"]
        check.value = f"={total_cell}-{shares_col}{totals_row}"
        check.number_format = "#,##0"

        return totals_row, check_row

    @staticmethod
    def _excel_value(value):
        """Convert pandas scalars to values openpyxl can write."""
        if value is None:
            return None
        if isinstance(value, pd.Timestamp):
            return value.date()
        try:
            if pd.isna(value):
                return None
        except (TypeError, ValueError):
            pass
        if hasattr(value, "item"):
            return value.item()
        return value
