from __future__ import annotations
import pandas as pd
from io import BytesIO
from typing import Any, Dict, List, Optional
from .batch import BatchOutcome

REVIEW_COLUMNS = {
    "participation_id": "Participation ID",
    "student": "Student",
    "registration_id": "Regd No",
    "event": "Event",
    "status": "Status",
    "attendance": "Total %",
    "meets_criteria": "Meets criteria",
    "matched_as": "Matched roster id",
    "queued": "Queued decision",
    "source": "Decision source",
    "actionable": "Will change status",
}


def review_frame(rows: List[Dict[str, Any]]) -> pd.DataFrame:
    df = pd.DataFrame(rows, columns=list(REVIEW_COLUMNS))
    return df.rename(columns=REVIEW_COLUMNS)


def outcome_frame(outcome: Optional[BatchOutcome]) -> pd.DataFrame:
    if outcome is None:
        return pd.DataFrame(columns=["Participation ID", "Result", "Error"])
    rows = [{"Participation ID": pid, "Result": "success", "Error": ""} for pid in outcome.successes]
    rows += [{"Participation ID": pid, "Result": "failed", "Error": err} for pid, err in outcome.failures]
    return pd.DataFrame(rows, columns=["Participation ID", "Result", "Error"])


def export_review_to_excel_bytes(review_df: pd.DataFrame, outcome_df: Optional[pd.DataFrame] = None) -> bytes:
    """
    Excel-отчёт для проверяющего:
      - "Review": участия, % посещаемости, решение в очереди
      - "Last confirm": результат последнего пакета (если был)
    """
    bio = BytesIO()

    with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
        review_df.to_excel(writer, index=False, sheet_name="Review")
        if outcome_df is not None and not outcome_df.empty:
            outcome_df.to_excel(writer, index=False, sheet_name="Last confirm")

        wb = writer.book
        fmt_header = wb.add_format({"bold": True, "bg_color": "#F2F2F2", "border": 1, "valign": "vcenter"})
        fmt_ok = wb.add_format({"bg_color": "#E6F4EA"})
        fmt_bad = wb.add_format({"bg_color": "#FCE8E6"})

        def format_df_sheet(sheet_name: str, df: pd.DataFrame, default_width: int = 16, max_width: int = 48):
            ws = writer.sheets.get(sheet_name)
            if ws is None:
                return
            ws.freeze_panes(1, 0)
            ws.autofilter(0, 0, max(1, len(df)), max(0, len(df.columns) - 1))
            for col, name in enumerate(df.columns):
                ws.write(0, col, name, fmt_header)
                w = max(10, min(max_width, int(len(str(name)) * 1.2) + 6))
                ws.set_column(col, col, max(default_width, w))

        format_df_sheet("Review", review_df)

        cols = list(review_df.columns)
        if "Queued decision" in cols and len(review_df):
            j = cols.index("Queued decision")
            ws = writer.sheets["Review"]
            ws.conditional_format(1, j, len(review_df), j, {
                "type": "text", "criteria": "containing", "value": "approve", "format": fmt_ok,
            })
            ws.conditional_format(1, j, len(review_df), j, {
                "type": "text", "criteria": "containing", "value": "reject", "format": fmt_bad,
            })

        if outcome_df is not None and not outcome_df.empty:
            format_df_sheet("Last confirm", outcome_df, default_width=18, max_width=80)

    return bio.getvalue()
