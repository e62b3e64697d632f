from __future__ import annotations

from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence

import pytest
from openpyxl import Workbook

from reconcile.errors import RemoteCallFailure
from reconcile.models import Event, Participation, Student
from reconcile.utils import parse_timestamp


def make_workbook_bytes(rows: Sequence[Sequence[Any]], title: str = "Attendance") -> bytes:
    """Собрать .xlsx в памяти из списка строк (первый лист)."""

    wb = Workbook()
    ws = wb.active
    ws.title = title
    for row in rows:
        ws.append(list(row))
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


def make_participation(
    pid: str,
    reg: str,
    status: str = "pending",
    *,
    name: str = "",
    start: Optional[str] = None,
) -> Participation:
    return Participation(
        id=pid,
        student=Student(id=f"s-{pid}", name=name or f"Student {pid}", external_registration_id=reg),
        event=Event(id="e1", title="Blood donation camp", start_date=parse_timestamp(start)),
        status=status,
    )


def roster_rows(entries: Sequence[tuple], header_at: int = 0) -> List[List[Any]]:
    rows: List[List[Any]] = [["Attendance report"] for _ in range(header_at)]
    rows.append(["S.No", "Regd No", "Name", "Total %"])
    for i, (reg, pct) in enumerate(entries, start=1):
        rows.append([i, reg, f"Student {i}", pct])
    return rows


class FakeStore:
    """Хранилище участий в памяти; fail_on - id, на которых approve/reject падает."""

    def __init__(self, participations: Sequence[Participation] = (), fail_on: Sequence[str] = ()):
        self.items: Dict[str, Participation] = {p.id: p for p in participations}
        self.fail_on = set(fail_on)
        self.calls: List[tuple] = []
        self.list_calls: List[tuple] = []
        self.fail_list = False

    def list_participations(self, event_id: Optional[str] = None, status: Optional[str] = None) -> List[Participation]:
        self.list_calls.append((event_id, status))
        if self.fail_list:
            raise RemoteCallFailure("list participations", "Server error", status_code=500)
        out = list(self.items.values())
        if event_id:
            out = [p for p in out if p.event.id == event_id]
        if status:
            out = [p for p in out if p.status == status]
        return out

    def list_events(self) -> List[Dict[str, Any]]:
        return []

    def _set_status(self, op: str, participation_id: str, status: str) -> None:
        self.calls.append((op, participation_id))
        if participation_id in self.fail_on:
            raise RemoteCallFailure(op, "Participation is not pending", participation_id, status_code=400)
        p = self.items[participation_id]
        self.items[participation_id] = Participation(
            id=p.id, student=p.student, event=p.event, status=status,
            registered_at=p.registered_at, attendance=p.attendance,
        )

    def approve(self, participation_id: str) -> None:
        self._set_status("approve", participation_id, "approved")

    def reject(self, participation_id: str) -> None:
        self._set_status("reject", participation_id, "rejected")

    def set_attendance(self, participation_id: str, attended: bool) -> None:
        self.calls.append(("attendance", participation_id))
        p = self.items[participation_id]
        self.items[participation_id] = Participation(
            id=p.id, student=p.student, event=p.event,
            status="attended" if attended else p.status,
            registered_at=p.registered_at, attendance=attended,
        )


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore(
        [
            make_participation("p1", "231FA04C33", start="2024-03-01"),
            make_participation("p2", "231FA04C40", start="2024-02-01"),
            make_participation("p3", "231FA04C99", status="approved", start="2024-01-01"),
        ]
    )


@pytest.fixture
def roster_bytes() -> bytes:
    # шапка на 6-й строке (индекс 5)
    return make_workbook_bytes(
        roster_rows(
            [("231FA04C33", "82"), ("231FA04C40", 60), ("231FA04C99", "91.5")],
            header_at=5,
        )
    )
