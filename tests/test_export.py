from __future__ import annotations

from io import BytesIO

from openpyxl import load_workbook

from conftest import FakeStore
from reconcile.batch import BatchOutcome
from reconcile.export import export_review_to_excel_bytes, outcome_frame, review_frame
from reconcile.service import ReconciliationService


def test_review_frame_uses_display_columns(fake_store: FakeStore, roster_bytes: bytes) -> None:
    svc = ReconciliationService(fake_store)
    svc.refresh()
    svc.ingest("june.xlsx", roster_bytes)
    df = review_frame(svc.review_rows())
    assert list(df.columns)[:3] == ["Participation ID", "Student", "Regd No"]
    assert df["Queued decision"].tolist() == ["approve", "reject", ""]


def test_outcome_frame() -> None:
    assert outcome_frame(None).empty
    df = outcome_frame(BatchOutcome(successes=["p1"], failures=[("p2", "boom")]))
    assert df.to_dict("records") == [
        {"Participation ID": "p1", "Result": "success", "Error": ""},
        {"Participation ID": "p2", "Result": "failed", "Error": "boom"},
    ]


def test_excel_report_has_review_and_outcome_sheets(fake_store: FakeStore, roster_bytes: bytes) -> None:
    svc = ReconciliationService(fake_store)
    svc.refresh()
    svc.ingest("june.xlsx", roster_bytes)
    outcome = svc.confirm()

    data = export_review_to_excel_bytes(review_frame(svc.review_rows()), outcome_frame(outcome))

    wb = load_workbook(BytesIO(data))
    assert wb.sheetnames == ["Review", "Last confirm"]
    ws = wb["Review"]
    assert ws.cell(row=1, column=1).value == "Participation ID"
    assert ws.max_row == 4


def test_excel_report_without_outcome_has_one_sheet() -> None:
    data = export_review_to_excel_bytes(review_frame([]))
    wb = load_workbook(BytesIO(data))
    assert wb.sheetnames == ["Review"]
