from __future__ import annotations
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional
from .utils import parse_timestamp, timestamp_sort_value

# статусы участия (хранилище может прислать и другие - сохраняем как есть)
PENDING = "pending"
APPROVED = "approved"
REJECTED = "rejected"
ATTENDED = "attended"
COMPLETED = "completed"
STATUSES = (PENDING, APPROVED, REJECTED, ATTENDED, COMPLETED)

APPROVE = "approve"
REJECT = "reject"
NO_CHANGE = "none"
VERDICTS = (APPROVE, REJECT)

AUTO = "auto"
MANUAL = "manual"


def _s(v: Any) -> str:
    return "" if v is None else str(v)


def _ref_id(obj: Dict[str, Any]) -> str:
    return _s(obj.get("_id", obj.get("id", "")))


@dataclass(frozen=True)
class Student:
    id: str = ""
    name: str = ""
    email: str = ""
    external_registration_id: str = ""

    @classmethod
    def from_api(cls, obj: Any) -> "Student":
        if not isinstance(obj, dict):
            # не populated - пришёл только id
            return cls(id=_s(obj))
        reg = obj.get("externalRegistrationId", obj.get("studentId", ""))
        return cls(
            id=_ref_id(obj),
            name=_s(obj.get("name", "")),
            email=_s(obj.get("email", "")),
            external_registration_id=_s(reg),
        )


@dataclass(frozen=True)
class Event:
    id: str = ""
    title: str = ""
    type: str = ""
    location: str = ""
    start_date: Optional[datetime] = None

    @classmethod
    def from_api(cls, obj: Any) -> "Event":
        if not isinstance(obj, dict):
            return cls(id=_s(obj))
        return cls(
            id=_ref_id(obj),
            title=_s(obj.get("title", "")),
            type=_s(obj.get("type", "")),
            location=_s(obj.get("location", "")),
            start_date=parse_timestamp(obj.get("startDate")),
        )


@dataclass(frozen=True)
class Participation:
    """Снимок записи участия из внешнего хранилища (только чтение)."""

    id: str
    student: Student
    event: Event
    status: str = PENDING
    registered_at: Optional[datetime] = None
    attendance: bool = False

    @property
    def registration_id(self) -> str:
        return self.student.external_registration_id

    @classmethod
    def from_api(cls, obj: Dict[str, Any]) -> "Participation":
        return cls(
            id=_ref_id(obj),
            student=Student.from_api(obj.get("student") or {}),
            event=Event.from_api(obj.get("event") or {}),
            status=_s(obj.get("status", PENDING)) or PENDING,
            registered_at=parse_timestamp(obj.get("registeredAt")),
            attendance=bool(obj.get("attendance", False)),
        )

    def sort_key(self) -> float:
        # новее - выше: дата начала мероприятия, иначе дата регистрации
        when = self.event.start_date or self.registered_at
        return -timestamp_sort_value(when)


@dataclass(frozen=True)
class Decision:
    """Решение в очереди (ещё не отправлено в хранилище)."""

    decision: str
    source: str = AUTO
    attendance: Optional[float] = None

    def __post_init__(self):
        if self.decision not in VERDICTS:
            raise ValueError(f"Unknown decision: {self.decision!r}")
        if self.source not in (AUTO, MANUAL):
            raise ValueError(f"Unknown decision source: {self.source!r}")

    @property
    def is_manual(self) -> bool:
        return self.source == MANUAL

    def with_attendance(self, attendance: Optional[float]) -> "Decision":
        return replace(self, attendance=attendance)

    def is_actionable(self, status: str) -> bool:
        # изменит ли применение решения сохранённый статус
        if self.decision == APPROVE:
            return status != APPROVED
        return status != REJECTED
