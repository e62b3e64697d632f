from __future__ import annotations

from io import BytesIO

import pytest
from openpyxl import Workbook

from conftest import make_workbook_bytes, roster_rows
from reconcile.errors import ColumnNotFound, FileTooLarge, HeaderNotFound, UnrecognizedFormat
from reconcile.header_detect import locate_columns, locate_header
from reconcile.ingest import detect_format, read_matrix, read_roster

MB = 1024 * 1024


def test_locate_header_first_qualifying_row_wins() -> None:
    rows = [
        ["College attendance"],
        [None, "regd no", "total %"],
        ["Regd", "Total"],
    ]
    assert locate_header(rows) == 1


def test_locate_header_is_case_insensitive_across_cells() -> None:
    rows = [["x"], ["Sl", "Student Regd.No", None, "Grand total"]]
    assert locate_header(rows) == 1


def test_locate_header_only_scans_window() -> None:
    rows = [["filler"]] * 5 + [["Regd No", "Total %"]]
    with pytest.raises(HeaderNotFound) as exc:
        locate_header(rows, max_scan_rows=5)
    assert exc.value.scanned_rows == 5
    assert locate_header(rows, max_scan_rows=6) == 5


def test_locate_header_needs_both_keywords() -> None:
    with pytest.raises(HeaderNotFound):
        locate_header([["Regd No", "Name"], ["Total %"]])


def test_locate_columns() -> None:
    assert locate_columns(["S.No", "Regd No", "Name", "Total %"]) == (1, 3)
    with pytest.raises(ColumnNotFound) as exc:
        locate_columns(["S.No", "Name", "Total %"])
    assert exc.value.missing == "REGD"
    with pytest.raises(ColumnNotFound):
        locate_columns(["Regd No", "Name"])


def test_read_roster_xlsx_locates_header(roster_bytes: bytes) -> None:
    table = read_roster("june.xlsx", roster_bytes, max_bytes=50 * MB)
    assert table.header_index == 5
    assert (table.id_col, table.total_col) == (1, 3)
    assert table.sheet_name == "Attendance"
    assert table.data_row_count == 3
    assert table.rows[6][1] == "231FA04C33"


def test_read_roster_expands_merged_header_cells() -> None:
    wb = Workbook()
    ws = wb.active
    ws.append(["Regd No", None, "Total %"])
    ws.append(["A1", None, 80])
    ws.merge_cells("A1:B1")
    bio = BytesIO()
    wb.save(bio)
    sheet, rows = read_matrix("merged.xlsx", bio.getvalue(), max_bytes=MB)
    assert rows[0][:3] == ["Regd No", "Regd No", "Total %"]


def test_read_roster_csv_keeps_identifiers_as_text() -> None:
    data = "Report\nRegd No;Total %\n0231A;82\n0042;77\n".encode("utf-8")
    table = read_roster("roster.csv", data, max_bytes=MB)
    assert table.header_index == 1
    assert table.rows[3][0] == "0042"


def test_read_matrix_csv_pads_ragged_rows_and_blank_cells() -> None:
    data = "\ufeffAttendance June\nS.No,Regd No,Name,Total %\n1,231FA04C33,,82\n2,231FA04C40\n".encode("utf-8")
    sheet, rows = read_matrix("june.csv", data, max_bytes=MB)
    assert sheet == "CSV"
    assert rows[0] == ["Attendance June", None, None, None]
    assert rows[2] == ["1", "231FA04C33", None, "82"]
    assert rows[3] == ["2", "231FA04C40", None, None]


def test_read_matrix_csv_quoted_delimiter_stays_in_cell() -> None:
    data = 'Regd No,Name,Total %\n0007,"Rao, K",91\n'.encode("utf-8")
    _, rows = read_matrix("q.csv", data, max_bytes=MB)
    assert rows[1][:3] == ["0007", "Rao, K", "91"]


def test_empty_csv_has_no_header() -> None:
    with pytest.raises(HeaderNotFound):
        read_roster("empty.csv", b"", max_bytes=MB)


def test_file_too_large_is_rejected_before_parsing() -> None:
    with pytest.raises(FileTooLarge) as exc:
        read_matrix("big.xlsx", b"x" * 11, max_bytes=10)
    assert exc.value.limit == 10
    assert "smaller than" in str(exc.value)


@pytest.mark.parametrize("name", ["notes.txt", "roster.pdf", "image.png"])
def test_unknown_extension_is_unrecognized(name: str) -> None:
    with pytest.raises(UnrecognizedFormat):
        read_matrix(name, b"hello", max_bytes=MB)


def test_corrupt_workbook_is_unrecognized() -> None:
    with pytest.raises(UnrecognizedFormat):
        read_matrix("broken.xlsx", b"not a zip file", max_bytes=MB)


def test_detect_format_by_signature_without_extension() -> None:
    xlsx = make_workbook_bytes([["Regd No", "Total %"]])
    assert detect_format("upload", xlsx) == "xlsx"
    assert detect_format("upload", b"\xd0\xcf\x11\xe0rest") == "xls"
    with pytest.raises(UnrecognizedFormat):
        detect_format("upload", b"plain text")


def test_missing_header_raises() -> None:
    data = make_workbook_bytes([["Name", "Marks"], ["A", 1]])
    with pytest.raises(HeaderNotFound):
        read_roster("marks.xlsx", data, max_bytes=MB)


def test_roster_rows_helper_builds_header_row() -> None:
    rows = roster_rows([("X1", 10)], header_at=2)
    assert locate_header(rows) == 2
