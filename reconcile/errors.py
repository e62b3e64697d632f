"""Ошибки сверки посещаемости и участия."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class ReconcileError(RuntimeError):
    """Базовая ошибка пакета."""


# =========================
# Загрузка файла посещаемости
# =========================
class IngestionError(ReconcileError):
    """Загрузка прервана целиком; индекс посещаемости остаётся "не загружен"."""

    hint = "Please check the file and try again."


@dataclass(eq=True)
class FileTooLarge(IngestionError):
    size: int
    limit: int

    def __str__(self) -> str:
        mb = self.limit // (1024 * 1024)
        return f"File too large. Please use files smaller than {mb}MB."


@dataclass(eq=True)
class UnrecognizedFormat(IngestionError):
    name: str
    reason: str = ""

    hint = "Please upload an Excel file (.xlsx or .xls) or a CSV export."

    def __str__(self) -> str:
        msg = f"Unrecognized spreadsheet format: {self.name}"
        if self.reason:
            msg += f" ({self.reason})"
        return msg


@dataclass(eq=True)
class HeaderNotFound(IngestionError):
    scanned_rows: int

    hint = "The sheet needs a header row with both 'Regd No' and 'Total %' columns."

    def __str__(self) -> str:
        return f"Could not find header row with REGD and TOTAL % in the first {self.scanned_rows} rows"


@dataclass(eq=True)
class ColumnNotFound(IngestionError):
    missing: str

    hint = "Rename the columns so one contains 'REGD' and another contains 'TOTAL'."

    def __str__(self) -> str:
        return f"Could not find {self.missing} column in the header row"


# =========================
# Удалённое хранилище участий
# =========================
@dataclass(eq=True)
class RemoteCallFailure(ReconcileError):
    operation: str
    message: str
    participation_id: Optional[str] = None
    status_code: Optional[int] = None

    def __str__(self) -> str:
        target = f" {self.participation_id}" if self.participation_id else ""
        code = f" [HTTP {self.status_code}]" if self.status_code is not None else ""
        return f"{self.operation}{target} failed{code}: {self.message}"


# =========================
# Поиск по номеру (не фатально)
# =========================
class SearchNotice(ReconcileError):
    """Предупреждение для проверяющего; состояние страницы не ломается."""


@dataclass(eq=True)
class NoSearchMatch(SearchNotice):
    query: str

    def __str__(self) -> str:
        return "No student found with that registration number"


@dataclass(eq=True)
class InvalidSearchQuery(SearchNotice):
    raw: str

    def __str__(self) -> str:
        return "Enter a valid registration number"


__all__ = [
    "ReconcileError",
    "IngestionError",
    "FileTooLarge",
    "UnrecognizedFormat",
    "HeaderNotFound",
    "ColumnNotFound",
    "RemoteCallFailure",
    "SearchNotice",
    "NoSearchMatch",
    "InvalidSearchQuery",
]
