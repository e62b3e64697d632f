from __future__ import annotations
import logging
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple
from .ingest import RosterTable
from .utils import is_blank, normalize_identifier, parse_percent

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1000


class AttendanceIndex(Mapping[str, float]):
    """
    Нормализованный номер -> итоговый % посещаемости.
    Порядок ключей = порядок первого появления в ведомости.
    После сборки не меняется (новая загрузка строит новый индекс).
    """

    def __init__(self, data: Dict[str, float], *, source_name: str = "", skipped: int = 0):
        self._data = dict(data)
        self._keys: Tuple[str, ...] = tuple(self._data)
        self.source_name = source_name
        self.skipped = skipped

    def __getitem__(self, key: str) -> float:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._keys)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AttendanceIndex):
            return list(self._data.items()) == list(other._data.items())
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._data.items()))

    def __repr__(self) -> str:
        return f"AttendanceIndex({len(self)} ids from {self.source_name!r})"


def _row_entry(row: Sequence[Any], id_col: int, total_col: int) -> Optional[Tuple[str, float]]:
    # None - строка пропускается (нет номера или процента)
    if not row:
        return None
    reg = row[id_col] if id_col < len(row) else None
    total = row[total_col] if total_col < len(row) else None
    if is_blank(reg) or is_blank(total):
        return None
    key = normalize_identifier(reg)
    if not key:
        return None
    return key, parse_percent(total, 0.0)


class AttendanceIndexBuilder:
    """
    Сборка индекса порциями (chunk_size строк за шаг).

    Пример:
        builder = AttendanceIndexBuilder(table)
        for fraction in builder.chunks():
            ...  # отдать управление / обновить прогресс
        index = builder.result()
    """

    def __init__(self, table: RosterTable, chunk_size: int = CHUNK_SIZE, generation: int = 0):
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self.table = table
        self.chunk_size = int(chunk_size)
        self.generation = generation
        self.skipped = 0
        self.processed = 0
        self._data: Dict[str, float] = {}
        self._done = False

    @property
    def total(self) -> int:
        return self.table.data_row_count

    @property
    def progress(self) -> float:
        if self.total == 0:
            return 1.0 if self._done else 0.0
        return self.processed / self.total

    def _process(self, rows: List[Sequence[Any]]) -> None:
        t = self.table
        for row in rows:
            entry = _row_entry(row, t.id_col, t.total_col)
            if entry is None:
                self.skipped += 1
                continue
            key, pct = entry
            # повтор номера: значение из более поздней строки, позиция ключа прежняя
            self._data[key] = pct

    def chunks(self) -> Iterator[float]:
        # после каждой порции отдаём долю обработанных строк
        start = self.table.header_index + 1
        end = len(self.table.rows)
        for i in range(start, end, self.chunk_size):
            stop = min(i + self.chunk_size, end)
            self._process(self.table.rows[i:stop])
            self.processed = stop - start
            yield self.progress
        self._done = True
        if start >= end:
            yield 1.0

    def result(self) -> AttendanceIndex:
        if not self._done:
            raise RuntimeError("Attendance index build has not finished")
        index = AttendanceIndex(self._data, source_name=self.table.source_name, skipped=self.skipped)
        logger.info(
            "Loaded attendance for %d students from %s (%d rows skipped)",
            len(index), self.table.source_name, self.skipped,
        )
        return index


def build_attendance_index(table: RosterTable, chunk_size: int = CHUNK_SIZE) -> AttendanceIndex:
    # синхронная сборка без прогресса
    builder = AttendanceIndexBuilder(table, chunk_size=chunk_size)
    for _ in builder.chunks():
        pass
    return builder.result()
