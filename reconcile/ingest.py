from __future__ import annotations
import csv
import logging
from dataclasses import dataclass
from io import BytesIO
from typing import Any, List, Tuple
import pandas as pd
from openpyxl import load_workbook
from .errors import FileTooLarge, UnrecognizedFormat
from .header_detect import locate_columns, locate_header

logger = logging.getLogger(__name__)

XLSX_EXTS = (".xlsx", ".xlsm")
XLS_EXTS = (".xls",)
CSV_EXTS = (".csv",)

_ZIP_MAGIC = b"PK\x03\x04"
_OLE_MAGIC = b"\xd0\xcf\x11\xe0"


@dataclass(frozen=True)
class RosterTable:
    """Лист ведомости после поиска шапки."""

    source_name: str
    sheet_name: str
    rows: List[List[Any]]
    header_index: int
    id_col: int
    total_col: int

    @property
    def data_row_count(self) -> int:
        return max(0, len(self.rows) - self.header_index - 1)
# =========================

# Формат файла
# =========================
def detect_format(name: str, data: bytes) -> str:
    # "xlsx" / "xls" / "csv"; расширение важнее, без расширения смотрим сигнатуру
    low = (name or "").lower()
    if low.endswith(XLSX_EXTS):
        return "xlsx"
    if low.endswith(XLS_EXTS):
        return "xls"
    if low.endswith(CSV_EXTS):
        return "csv"
    if "." not in low.rsplit("/", 1)[-1]:
        if data.startswith(_ZIP_MAGIC):
            return "xlsx"
        if data.startswith(_OLE_MAGIC):
            return "xls"
    raise UnrecognizedFormat(name=name)


def check_upload(name: str, data: bytes, max_bytes: int) -> str:
    # Проверки ДО парсинга: размер и формат
    if len(data) > max_bytes:
        raise FileTooLarge(size=len(data), limit=max_bytes)
    return detect_format(name, data)
# =========================

# Excel: первый лист как матрица, merged cells разворачиваем
# =========================
def _sheet_to_matrix_with_merged(wb_bytes: bytes) -> Tuple[str, List[List[Any]]]:
    wb = load_workbook(BytesIO(wb_bytes), read_only=False, data_only=True)
    try:
        ws = wb.worksheets[0]
        merged_map = {}
        for r in ws.merged_cells.ranges:
            min_col, min_row, max_col, max_row = r.bounds
            top_val = ws.cell(min_row, min_col).value
            for rr in range(min_row, max_row + 1):
                for cc in range(min_col, max_col + 1):
                    merged_map[(rr, cc)] = top_val

        rows: List[List[Any]] = []
        for r, values in enumerate(ws.iter_rows(values_only=True), start=1):
            row_vals = list(values)
            for c in range(1, len(row_vals) + 1):
                v = row_vals[c - 1]
                if (r, c) in merged_map and (v is None or str(v).strip() == ""):
                    row_vals[c - 1] = merged_map[(r, c)]
            rows.append(row_vals)
        return ws.title, rows
    finally:
        wb.close()


def _frame_to_rows(df: pd.DataFrame) -> List[List[Any]]:
    # NaN -> None, чтобы пустые ячейки выглядели одинаково для всех форматов
    clean = df.astype(object).where(pd.notna(df), None)
    return [list(r) for r in clean.itertuples(index=False, name=None)]
# =========================

# CSV: устойчивое чтение из bytes
# =========================
def _guess_delimiter(sample_text: str) -> str:
    # выгрузки бывают с ',' / ';' / табами
    try:
        dialect = csv.Sniffer().sniff(sample_text, delimiters=";,\t|")
        if dialect.delimiter:
            return dialect.delimiter
    except csv.Error:
        pass

    candidates = [";", ",", "\t", "|"]
    lines = [ln for ln in sample_text.splitlines() if ln.strip()][:20]
    if not lines:
        return ","

    scores = {}
    for d in candidates:
        cnts = [ln.count(d) for ln in lines]
        scores[d] = sum(cnts) / max(1, len(cnts))

    best = max(scores.items(), key=lambda x: x[1])[0]
    return best if scores.get(best, 0) > 0 else ","


def _max_columns(text: str, delim: str) -> int:
    # строки разной длины (титул над шапкой уже таблицы) - задаём ширину заранее
    return max((ln.count(delim) + 1 for ln in text.splitlines() if ln.strip()), default=1)


def _read_csv_bytes(data: bytes) -> pd.DataFrame:
    # читаем CSV БЕЗ header: шапка может быть не в первой строке; всё как текст (ведущие нули номеров)
    last_err: Exception | None = None

    for enc in ["utf-8-sig", "utf-8", "cp1252"]:
        try:
            text = data.decode(enc)
        except UnicodeDecodeError as e:
            last_err = e
            continue
        if not text.strip():
            return pd.DataFrame()

        delim = _guess_delimiter(text[:65536])
        try:
            return pd.read_csv(
                BytesIO(data),
                header=None,
                names=list(range(_max_columns(text, delim))),
                sep=delim,
                engine="python",
                encoding=enc,
                dtype=str,
                keep_default_na=False,
                na_values=[""],
                skip_blank_lines=True,
            )
        except ValueError as e:
            last_err = e
            continue

    raise last_err or ValueError("Could not decode CSV")
# =========================

# Main: bytes -> матрица -> таблица с шапкой
# =========================
def read_matrix(name: str, data: bytes, *, max_bytes: int) -> Tuple[str, List[List[Any]]]:
    """
    Возвращает (имя листа, строки первого листа как списки значений ячеек).
    Ошибки:
      - FileTooLarge: файл больше лимита (проверяется до парсинга)
      - UnrecognizedFormat: неизвестное расширение или файл не читается
    """
    kind = check_upload(name, data, max_bytes)
    try:
        if kind == "xlsx":
            return _sheet_to_matrix_with_merged(data)
        if kind == "xls":
            xls = pd.ExcelFile(BytesIO(data))
            sheet = xls.sheet_names[0]
            df = pd.read_excel(xls, sheet_name=sheet, header=None)
            return str(sheet), _frame_to_rows(df)
        return "CSV", _frame_to_rows(_read_csv_bytes(data))
    except Exception as e:
        logger.warning("Could not read %s as %s: %s", name, kind, e)
        raise UnrecognizedFormat(name=name, reason=f"{type(e).__name__}: {e}") from e


def build_roster_table(
    name: str,
    sheet_name: str,
    rows: List[List[Any]],
    *,
    scan_rows: int = 100,
) -> RosterTable:
    # HeaderNotFound / ColumnNotFound пробрасываются вызывающему
    header_index = locate_header(rows, max_scan_rows=scan_rows)
    id_col, total_col = locate_columns(rows[header_index])
    logger.info(
        "Roster %s/%s: header at row %d (id col %d, total col %d), %d rows",
        name, sheet_name, header_index + 1, id_col, total_col, len(rows),
    )
    return RosterTable(
        source_name=name,
        sheet_name=sheet_name,
        rows=rows,
        header_index=header_index,
        id_col=id_col,
        total_col=total_col,
    )


def read_roster(name: str, data: bytes, *, max_bytes: int, scan_rows: int = 100) -> RosterTable:
    sheet, rows = read_matrix(name, data, max_bytes=max_bytes)
    return build_roster_table(name, sheet, rows, scan_rows=scan_rows)
