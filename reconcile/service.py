from __future__ import annotations
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple
from .attendance import AttendanceIndex, AttendanceIndexBuilder
from .batch import BatchOutcome, BatchReconciler, actionable_count
from .decisions import Decisions, begin_edit, commit_edit, drop_auto, prune, recompute
from .errors import IngestionError, InvalidSearchQuery, NoSearchMatch, RemoteCallFailure
from .ingest import build_roster_table, read_matrix
from .matching import Match, MatchResolver
from .models import Decision, Participation
from .settings import Settings
from .store import ParticipationStore
from .utils import normalize_identifier

logger = logging.getLogger(__name__)

ProgressFn = Callable[[float, str], None]
DoneFn = Callable[[bool, Any], None]

_UNSET: Any = object()


class ReconciliationService:
    """
    Владелец состояния страницы сверки: список участий, индекс посещаемости,
    очередь решений. Состояние не меняется на месте - каждое действие
    подменяет объекты целиком под блокировкой.
    """

    def __init__(self, store: ParticipationStore, settings: Optional[Settings] = None):
        self.store = store
        self.settings = settings or Settings()
        self._lock = threading.RLock()
        self._generation = 0
        self._index: Optional[AttendanceIndex] = None
        self._participations: Tuple[Participation, ...] = ()
        self._decisions: Decisions = {}
        self._search_query = ""
        self.event_id: Optional[str] = None
        self.status: Optional[str] = None
        self.last_outcome: Optional[BatchOutcome] = None

    # ---------- чтение состояния ----------
    @property
    def index(self) -> Optional[AttendanceIndex]:
        return self._index

    @property
    def loaded(self) -> bool:
        return self._index is not None

    @property
    def participations(self) -> List[Participation]:
        return list(self._participations)

    @property
    def decisions(self) -> Dict[str, Decision]:
        return dict(self._decisions)

    @property
    def search_query(self) -> str:
        return self._search_query

    def participation(self, participation_id: str) -> Participation:
        for p in self._participations:
            if p.id == participation_id:
                return p
        raise KeyError(participation_id)

    def attendance_for(self, participation: Participation) -> Optional[Match]:
        return MatchResolver(self._index).lookup(participation.registration_id)

    # ---------- участия ----------
    def refresh(self, event_id: Optional[str] = _UNSET, status: Optional[str] = _UNSET) -> List[Participation]:
        # RemoteCallFailure пробрасывается - прежний список остаётся
        with self._lock:
            if event_id is not _UNSET:
                self.event_id = event_id or None
            if status is not _UNSET:
                self.status = None if status in (None, "", "all") else status
            ev, st = self.event_id, self.status
        items = self.store.list_participations(event_id=ev, status=st)
        self._replace_participations(items, (ev, st))
        return self.participations

    def _replace_participations(self, items: List[Participation], filters: Tuple[Optional[str], Optional[str]]) -> None:
        ordered = tuple(sorted(items, key=lambda p: p.sort_key()))
        with self._lock:
            # пока шёл запрос, фильтры сменили - этот список уже устарел
            if (self.event_id, self.status) != filters:
                logger.debug("Discarding participation list fetched for stale filters %s", filters)
                return
            self._participations = ordered
            self._recompute_locked()

    def _recompute_locked(self) -> None:
        if self._index is None:
            self._decisions = prune(self._participations, self._decisions)
        else:
            self._decisions = recompute(
                self._index,
                self._participations,
                self._decisions,
                self.settings.attendance_threshold,
            )

    # ---------- ведомость посещаемости ----------
    def _begin_upload(self) -> int:
        with self._lock:
            self._generation += 1
            self._index = None
            self._decisions = drop_auto(self._decisions)
            return self._generation

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def ingest(
        self,
        name: str,
        data: bytes,
        progress: Optional[ProgressFn] = None,
        pause: float = 0.0,
    ) -> Optional[AttendanceIndex]:
        """
        Загрузка ведомости.
        Возвращает новый индекс или None, если загрузку обогнала более новая.
        Ошибки IngestionError пробрасываются; индекс остаётся "не загружен".
        """
        s = self.settings
        sheet, rows = read_matrix(name, data, max_bytes=s.max_upload_bytes)
        generation = self._begin_upload()

        try:
            table = build_roster_table(name, sheet, rows, scan_rows=s.header_scan_rows)
        except IngestionError:
            if not self._is_current(generation):
                return None
            raise

        builder = AttendanceIndexBuilder(table, chunk_size=s.chunk_size, generation=generation)
        for fraction in builder.chunks():
            if not self._is_current(generation):
                logger.debug("Discarding stale attendance build for %s (generation %d)", name, generation)
                return None
            if progress is not None:
                progress(fraction, f"Processed {builder.processed} of {builder.total} rows")
            # отдаём управление между порциями
            time.sleep(pause)

        index = builder.result()
        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding stale attendance build for %s (generation %d)", name, generation)
                return None
            self._index = index
            self._recompute_locked()
        return index

    def ingest_in_background(
        self,
        name: str,
        data: bytes,
        progress: Optional[ProgressFn] = None,
        on_done: Optional[DoneFn] = None,
    ) -> threading.Thread:
        # on_done(True, index) / on_done(False, None) если обогнали / on_done(False, exc)
        def _run() -> None:
            try:
                index = self.ingest(name, data, progress=progress)
            except Exception as e:
                logger.error("Attendance upload %s failed: %s", name, e)
                if on_done is not None:
                    on_done(False, e)
                return
            if on_done is not None:
                on_done(index is not None, index)

        worker = threading.Thread(target=_run, name="attendance-ingest", daemon=True)
        worker.start()
        return worker

    def clear_attendance(self) -> None:
        # отменяет и незавершённую загрузку
        self._begin_upload()
        logger.info("Attendance file cleared")

    # ---------- ручные решения ----------
    def begin_edit(self, participation_id: str) -> str:
        with self._lock:
            return begin_edit(self.participation(participation_id), self._decisions)

    def commit_edit(self, participation_id: str, draft: str) -> None:
        with self._lock:
            self._decisions = commit_edit(self._decisions, participation_id, draft)

    # ---------- применение ----------
    def actionable_count(self) -> int:
        with self._lock:
            return actionable_count(self._decisions, self._participations)

    def confirm(self) -> BatchOutcome:
        with self._lock:
            participations, decisions = self._participations, self._decisions

        if actionable_count(decisions, participations) == 0:
            return BatchOutcome()

        outcome = BatchReconciler(self.store).confirm(participations, decisions)
        try:
            self.refresh()
        except RemoteCallFailure as e:
            logger.error("Could not refresh participations after batch: %s", e)
            outcome.refreshed = False
        self.last_outcome = outcome
        return outcome

    def approve_now(self, participation_id: str) -> None:
        self.store.approve(participation_id)
        self.refresh()

    def reject_now(self, participation_id: str) -> None:
        self.store.reject(participation_id)
        self.refresh()

    def mark_attendance(self, participation_id: str, attended: bool) -> None:
        self.store.set_attendance(participation_id, attended)
        self.refresh()

    # ---------- поиск по номеру ----------
    def search(self, raw: str) -> List[Participation]:
        if not raw or not raw.strip():
            self.clear_search()
            return self.visible_participations()

        query = normalize_identifier(raw)
        if not query:
            raise InvalidSearchQuery(raw)

        with self._lock:
            self._search_query = query
        visible = self.visible_participations()
        if not visible:
            # фильтр всё равно применён
            raise NoSearchMatch(query)
        return visible

    def clear_search(self) -> None:
        with self._lock:
            self._search_query = ""

    def visible_participations(self) -> List[Participation]:
        with self._lock:
            q = self._search_query
            items = self._participations
        if not q:
            return list(items)
        return [p for p in items if q in normalize_identifier(p.registration_id)]

    # ---------- таблица для проверки/экспорта ----------
    def review_rows(self) -> List[Dict[str, Any]]:
        with self._lock:
            index, decisions = self._index, self._decisions
            items = self.visible_participations()
        resolver = MatchResolver(index)
        threshold = self.settings.attendance_threshold

        out: List[Dict[str, Any]] = []
        for p in items:
            m = resolver.lookup(p.registration_id)
            d = decisions.get(p.id)
            out.append({
                "participation_id": p.id,
                "student": p.student.name,
                "registration_id": p.registration_id,
                "event": p.event.title,
                "status": p.status,
                "attendance": m.percentage if m else None,
                "meets_criteria": (m.percentage >= threshold) if m else None,
                "matched_as": f"{m.key} ({m.tier})" if m else "",
                "queued": d.decision if d else "",
                "source": d.source if d else "",
                "actionable": bool(d and d.is_actionable(p.status)),
            })
        return out
