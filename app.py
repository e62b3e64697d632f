from __future__ import annotations
import hashlib
import logging
import streamlit as st
import pandas as pd
from reconcile.errors import IngestionError, RemoteCallFailure, SearchNotice
from reconcile.export import export_review_to_excel_bytes, outcome_frame, review_frame
from reconcile.models import APPROVE, NO_CHANGE, REJECT, STATUSES
from reconcile.service import ReconciliationService
from reconcile.settings import load_settings
from reconcile.store import HttpParticipationStore
from reconcile.utils import parse_timestamp, timestamp_sort_value

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)

st.set_page_config(page_title="Participations", layout="wide")
st.title("Participation review")
st.caption("Upload attendance sheets, review suggested decisions, then confirm approvals or rejections in bulk.")
# =========================

# Helpers
# =========================
DRAFT_LABELS = {APPROVE: "Approve", REJECT: "Reject", NO_CHANGE: "No change"}


def _file_key(name: str, data: bytes) -> str:
    # одинаковый файл повторно не разбираем на каждом rerun Streamlit
    return hashlib.md5(name.encode("utf-8") + b"::" + data).hexdigest()


def _service() -> ReconciliationService:
    if "service" not in st.session_state:
        settings = load_settings()
        store = HttpParticipationStore(
            settings.api_base_url,
            token=settings.api_token,
            timeout=settings.request_timeout,
        )
        st.session_state["service"] = ReconciliationService(store, settings)
    return st.session_state["service"]


def _load_events(svc: ReconciliationService) -> list[dict]:
    if "events" not in st.session_state:
        try:
            events = svc.store.list_events()
        except RemoteCallFailure as e:
            logger.error("Failed to load events: %s", e)
            st.error("Failed to load events")
            events = []
        events.sort(key=lambda e: -timestamp_sort_value(parse_timestamp(e.get("startDate"))))
        st.session_state["events"] = events
    return st.session_state["events"]


def _event_label(e: dict) -> str:
    dt = parse_timestamp(e.get("startDate"))
    when = dt.strftime("%d %b %Y") if dt else "no date"
    return f'{e.get("title", "Untitled")} ({when})'


svc = _service()
st.session_state.setdefault("upload_key", None)
st.session_state.setdefault("upload_error", None)
st.session_state.setdefault("upload_gen", 0)
st.session_state.setdefault("filters", None)
# =========================

# Filters
# =========================
events = _load_events(svc)
f1, f2 = st.columns(2)
with f1:
    event_ids = [str(e.get("_id", e.get("id", ""))) for e in events]
    labels = {eid: _event_label(e) for eid, e in zip(event_ids, events)}
    event_id = st.selectbox(
        "Event",
        [""] + event_ids,
        index=1 if event_ids else 0,
        format_func=lambda x: labels.get(x, "All events"),
    )
with f2:
    status = st.selectbox("Status", ["all"] + list(STATUSES), index=0, format_func=str.capitalize)

if st.session_state["filters"] != (event_id, status):
    try:
        svc.refresh(event_id=event_id or None, status=status)
        st.session_state["filters"] = (event_id, status)
    except RemoteCallFailure as e:
        logger.error("Failed to fetch participations: %s", e)
        st.error("Failed to fetch participations")
# =========================

# Attendance upload
# =========================
st.subheader("Upload attendance sheet")
st.write(
    "Upload an Excel sheet that contains registration numbers and total attendance %. "
    f"Pending participations at or above {svc.settings.attendance_threshold:g}% are queued for approval."
)

up = st.file_uploader(
    "Attendance file",
    type=["xlsx", "xlsm", "xls", "csv"],
    accept_multiple_files=False,
    key=f"attendance_upload_{st.session_state['upload_gen']}",
)
if up is not None:
    data = up.getvalue()
    key = _file_key(up.name, data)
    # тот же файл (в т.ч. неудачный) повторно не разбираем на каждом rerun
    if key != st.session_state["upload_key"]:
        st.session_state["upload_key"] = key
        st.session_state["upload_error"] = None
        bar = st.progress(0.0, text="Reading file...")
        try:
            index = svc.ingest(up.name, data, progress=lambda frac, msg: bar.progress(min(1.0, frac), text=msg))
        except IngestionError as e:
            bar.empty()
            st.session_state["upload_error"] = (str(e), e.hint)
        else:
            bar.empty()
            if index is not None:
                st.success(f"Loaded attendance for {len(index)} students")
                if index.skipped:
                    st.caption(f"{index.skipped} rows without a registration number or total were skipped.")
    if st.session_state["upload_error"]:
        msg, hint = st.session_state["upload_error"]
        st.error(msg)
        st.info(hint)

if svc.loaded:
    c1, c2 = st.columns([4, 1])
    with c1:
        st.info("Attendance file loaded. Auto decisions are ready for review.")
    with c2:
        if st.button("Clear attendance file", key="clear_attendance"):
            svc.clear_attendance()
            # новый key - пустой виджет загрузки, иначе файл загрузится снова
            st.session_state["upload_gen"] += 1
            st.session_state["upload_key"] = None
            st.session_state["upload_error"] = None
            st.rerun()
# =========================

# Search
# =========================
s1, s2, s3 = st.columns([4, 1, 1])
with s1:
    search_input = st.text_input("Search by registration number", value="")
with s2:
    if st.button("Search"):
        try:
            svc.search(search_input)
        except SearchNotice as e:
            st.warning(str(e))
with s3:
    if st.button("Clear search"):
        svc.clear_search()
        st.rerun()
# =========================

# Review table + confirm
# =========================
pending_actions = svc.actionable_count()
m1, m2, m3 = st.columns(3)
with m1:
    st.metric("Participations", len(svc.participations))
with m2:
    st.metric("Queued decisions", len(svc.decisions))
with m3:
    st.metric("Will change status", pending_actions)

if st.button(f"Confirm decisions ({pending_actions})", type="primary", disabled=pending_actions == 0):
    with st.spinner("Processing decisions..."):
        outcome = svc.confirm()
    if outcome.success_count:
        st.success(outcome.success_text())
    if outcome.failure_count:
        st.error(outcome.failure_text())
        st.dataframe(
            pd.DataFrame(outcome.failures, columns=["Participation ID", "Error"]),
            width="stretch",
            hide_index=True,
        )
    if not outcome.refreshed:
        st.warning("Decisions were sent, but the participation list could not be refreshed.")
st.caption("Approvals and rejections are only sent after clicking Confirm.")

rows = svc.review_rows()
if not rows:
    st.warning("No participations found.")
else:
    st.dataframe(review_frame(rows), width="stretch", hide_index=True)
# =========================

# Edit one participation
# =========================
visible = svc.visible_participations()
if visible:
    st.subheader("Edit decision")
    by_id = {p.id: p for p in visible}
    pid = st.selectbox(
        "Participation",
        list(by_id),
        format_func=lambda x: f"{by_id[x].student.name} - {by_id[x].registration_id} ({by_id[x].status})",
    )
    p = by_id[pid]
    match = svc.attendance_for(p)
    if match is not None:
        verdict = "Meets criteria" if match.percentage >= svc.settings.attendance_threshold else "Below criteria"
        st.write(f"Attendance: {match.percentage:g}% - {verdict} (matched {match.key}, {match.tier})")
    elif svc.loaded:
        st.warning("Attendance not found in upload")

    options = [APPROVE, REJECT, NO_CHANGE]
    draft = st.radio(
        "Queued decision",
        options,
        index=options.index(svc.begin_edit(pid)),
        format_func=DRAFT_LABELS.get,
        horizontal=True,
        key=f"draft__{pid}",
    )
    b1, b2, b3, b4 = st.columns(4)
    with b1:
        if st.button("Save decision"):
            svc.commit_edit(pid, draft)
            st.rerun()
    with b2:
        if p.status == "pending" and st.button("Approve now"):
            try:
                svc.approve_now(pid)
                st.success("Participation approved")
            except RemoteCallFailure as e:
                st.error(e.message or "Failed to approve participation")
    with b3:
        if p.status == "pending" and st.button("Reject now"):
            try:
                svc.reject_now(pid)
                st.success("Participation rejected")
            except RemoteCallFailure as e:
                st.error(e.message or "Failed to reject participation")
    with b4:
        if p.status == "approved" and st.button("Mark attendance"):
            try:
                svc.mark_attendance(pid, True)
                st.success("Attendance marked")
            except RemoteCallFailure:
                st.error("Failed to update attendance")
        elif p.attendance and st.button("Remove attendance"):
            try:
                svc.mark_attendance(pid, False)
                st.success("Attendance removed")
            except RemoteCallFailure:
                st.error("Failed to update attendance")
# =========================

# Export
# =========================
if rows:
    xbytes = export_review_to_excel_bytes(review_frame(rows), outcome_frame(svc.last_outcome))
    st.download_button(
        "Download review report",
        data=xbytes,
        file_name="participation_review.xlsx",
        mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    )
