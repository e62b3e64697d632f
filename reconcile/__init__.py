"""
Этот пакет содержит:
- загрузку ведомости посещаемости (XLSX/XLS/CSV) и поиск шапки REGD / TOTAL
- сборку индекса номер -> % посещаемости порциями
- сопоставление номеров участий с ведомостью (точно / по окончанию / по вхождению)
- очередь решений approve/reject с ручными правками
- пакетное применение решений к API участий
- экспорт отчёта для проверяющего
"""
from .attendance import AttendanceIndex, AttendanceIndexBuilder, build_attendance_index
from .batch import BatchOutcome, BatchReconciler, actionable_count
from .decisions import begin_edit, commit_edit, recompute
from .export import export_review_to_excel_bytes
from .ingest import read_roster
from .matching import MatchResolver
from .service import ReconciliationService
from .settings import Settings, load_settings
from .store import HttpParticipationStore, ParticipationStore
from .utils import normalize_identifier

__all__ = [
    "AttendanceIndex",
    "AttendanceIndexBuilder",
    "build_attendance_index",
    "BatchOutcome",
    "BatchReconciler",
    "actionable_count",
    "begin_edit",
    "commit_edit",
    "recompute",
    "export_review_to_excel_bytes",
    "read_roster",
    "MatchResolver",
    "ReconciliationService",
    "Settings",
    "load_settings",
    "HttpParticipationStore",
    "ParticipationStore",
    "normalize_identifier",
]
