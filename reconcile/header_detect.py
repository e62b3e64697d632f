from __future__ import annotations
from typing import Any, List, Sequence, Tuple
from .errors import ColumnNotFound, HeaderNotFound
from .utils import cell_text

# Ключевые слова шапки ведомости посещаемости ("Regd No", "Total %")
ID_KW = "REGD"
TOTAL_KW = "TOTAL"


def _row_text(row: Sequence[Any]) -> str:
    # склеиваем ячейки строки через пробел, пустые ячейки дают ""
    return " ".join(cell_text(v) for v in row).upper()


def _is_header_row(row: Sequence[Any]) -> bool:
    if not row:
        return False
    txt = _row_text(row)
    return ID_KW in txt and TOTAL_KW in txt


def locate_header(rows: List[Sequence[Any]], max_scan_rows: int = 100) -> int:
    """
    Возвращает индекс (0-based) строки заголовка.
    Правило:
      - смотрим строки 0..min(max_scan_rows, len(rows))
      - строка подходит, если текст всех её ячеек (без учёта регистра) содержит и REGD, и TOTAL
      - побеждает первая подходящая
    """
    n = min(max_scan_rows, len(rows))
    for i in range(n):
        if _is_header_row(rows[i]):
            return i
    raise HeaderNotFound(scanned_rows=n)


def locate_columns(header: Sequence[Any]) -> Tuple[int, int]:
    # (колонка регистрационного номера, колонка итогового процента)
    id_col = -1
    total_col = -1
    for j, v in enumerate(header):
        txt = cell_text(v).upper()
        if id_col < 0 and ID_KW in txt:
            id_col = j
        if total_col < 0 and TOTAL_KW in txt:
            total_col = j

    if id_col < 0:
        raise ColumnNotFound(missing=ID_KW)
    if total_col < 0:
        raise ColumnNotFound(missing=TOTAL_KW)
    return id_col, total_col
