from __future__ import annotations
from typing import Dict, Mapping, Optional, Sequence
from .matching import MatchResolver
from .models import (
    APPROVE, APPROVED, AUTO, MANUAL, NO_CHANGE, PENDING, REJECT, REJECTED, VERDICTS,
    Decision, Participation,
)

ATTENDANCE_THRESHOLD = 75.0

Decisions = Dict[str, Decision]


def verdict_for(attendance: float, threshold: float = ATTENDANCE_THRESHOLD) -> str:
    return APPROVE if attendance >= threshold else REJECT


def recompute(
    index: Optional[Mapping[str, float]],
    participations: Sequence[Participation],
    decisions: Mapping[str, Decision],
    threshold: float = ATTENDANCE_THRESHOLD,
) -> Decisions:
    """
    Пересчёт очереди решений по ведомости. Возвращает НОВЫЙ словарь, вход не меняется.
    Правила для каждого участия:
      - номер не найден в ведомости: авто-решение удаляется, ручное остаётся
      - есть ручное решение: обновляется только attendance
      - статус pending: авто-решение по порогу
      - иначе: у существующего решения обновляется attendance
    В конце удаляются решения по участиям, которых нет в текущем списке.
    """
    resolver = MatchResolver(index)
    updated: Decisions = dict(decisions)

    for p in participations:
        pct = resolver.resolve(p.registration_id)
        existing = updated.get(p.id)

        if pct is None:
            if existing is not None and not existing.is_manual:
                del updated[p.id]
            continue

        if existing is not None and existing.is_manual:
            updated[p.id] = existing.with_attendance(pct)
        elif p.status == PENDING:
            updated[p.id] = Decision(verdict_for(pct, threshold), AUTO, pct)
        elif existing is not None:
            updated[p.id] = existing.with_attendance(pct)

    return prune(participations, updated)


def prune(participations: Sequence[Participation], decisions: Mapping[str, Decision]) -> Decisions:
    # участие выпало из выборки (сменили фильтр мероприятия/статуса)
    present = {p.id for p in participations}
    return {pid: d for pid, d in decisions.items() if pid in present}


def drop_auto(decisions: Mapping[str, Decision]) -> Decisions:
    # ведомость сброшена: авто-решения без основания, ручные остаются
    return {pid: d for pid, d in decisions.items() if d.is_manual}
# =========================

# Ручная правка решения
# =========================
def begin_edit(participation: Participation, decisions: Mapping[str, Decision]) -> str:
    existing = decisions.get(participation.id)
    if existing is not None:
        return existing.decision
    if participation.status == APPROVED:
        return APPROVE
    if participation.status == REJECTED:
        return REJECT
    return APPROVE


def commit_edit(decisions: Mapping[str, Decision], participation_id: str, draft: str) -> Decisions:
    """
    draft == "none" - решение снимается;
    approve/reject - ручное решение, кэш attendance сохраняется от прежнего решения.
    """
    updated: Decisions = dict(decisions)
    if draft == NO_CHANGE:
        updated.pop(participation_id, None)
        return updated
    if draft not in VERDICTS:
        raise ValueError(f"Unknown draft decision: {draft!r}")

    prior = decisions.get(participation_id)
    updated[participation_id] = Decision(
        decision=draft,
        source=MANUAL,
        attendance=prior.attendance if prior is not None else None,
    )
    return updated
