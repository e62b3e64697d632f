from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Sequence, Tuple
from .models import APPROVE, Decision, Participation
from .store import ParticipationStore

logger = logging.getLogger(__name__)


@dataclass
class BatchOutcome:
    """Итог пакетного применения решений: успехи и ошибки по id участия."""

    successes: List[str] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)
    refreshed: bool = True

    @property
    def success_count(self) -> int:
        return len(self.successes)

    @property
    def failure_count(self) -> int:
        return len(self.failures)

    @property
    def attempted(self) -> int:
        return self.success_count + self.failure_count

    def success_text(self) -> str:
        n = self.success_count
        return f"Processed {n} participation{'' if n == 1 else 's'}" if n else ""

    def failure_text(self) -> str:
        n = self.failure_count
        return f"{n} participation{'' if n == 1 else 's'} failed" if n else ""

    def summary(self) -> str:
        parts = [t for t in (self.success_text(), self.failure_text()) if t]
        return "; ".join(parts) or "No decisions to confirm"


def actionable(decisions: Mapping[str, Decision], participations: Sequence[Participation]) -> List[Tuple[Participation, Decision]]:
    # только решения, которые реально меняют статус (approve при approved - пропуск)
    out: List[Tuple[Participation, Decision]] = []
    for p in participations:
        d = decisions.get(p.id)
        if d is not None and d.is_actionable(p.status):
            out.append((p, d))
    return out


def actionable_count(decisions: Mapping[str, Decision], participations: Sequence[Participation]) -> int:
    return len(actionable(decisions, participations))


class BatchReconciler:
    """
    Применяет подтверждённые решения к хранилищу по одному, в порядке списка участий.
    Ошибка одного вызова не прерывает пакет: она логируется и попадает в failures.
    """

    def __init__(self, store: ParticipationStore):
        self.store = store

    def confirm(self, participations: Sequence[Participation], decisions: Mapping[str, Decision]) -> BatchOutcome:
        outcome = BatchOutcome()
        for p, d in actionable(decisions, participations):
            try:
                if d.decision == APPROVE:
                    self.store.approve(p.id)
                else:
                    self.store.reject(p.id)
            except Exception as e:
                logger.error("Failed to process decision for participation %s: %s", p.id, e)
                outcome.failures.append((p.id, str(e) or type(e).__name__))
                continue
            outcome.successes.append(p.id)

        logger.info(
            "Batch confirm finished: %d succeeded, %d failed",
            outcome.success_count, outcome.failure_count,
        )
        return outcome
