from __future__ import annotations
import logging
import streamlit as st
import pandas as pd
from rased.analytics import SCOPES, format_trend, tracking_pages
from rased.errors import IngestError
from rased.export import export_to_excel_bytes, flatten_lost_students, flatten_rollup
from rased.session import Session

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

st.set_page_config(page_title="نظام رصد المواد", layout="wide")
st.title("نظام رصد المواد: متابعة رصد درجات الطلاب")

SCOPE_LABELS = {"first": "الفترة الأولى", "second": "الفترة الثانية", "both": "الفترتين معاً"}
BAND_COLORS = {
    "complete": "#059669",
    "near_complete": "#34d399",
    "mid": "#fbbf24",
    "low": "#f97316",
    "critical": "#e11d48",
    "empty": "#f1f5f9",
}

if "session" not in st.session_state:
    st.session_state["session"] = Session.load()
session: Session = st.session_state["session"]
# =========================

# Uploads
# =========================
c1, c2 = st.columns(2)
with c1:
    uploads = st.file_uploader(
        "ملفات رصد نور (Excel/CSV، يمكن اختيار عدة ملفات)",
        type=["xlsx", "csv"],
        accept_multiple_files=True,
    )
with c2:
    teacher_file = st.file_uploader(
        "ملف المعلمين (اختياري): المعلم، الصف، المادة، الفصل",
        type=["xlsx", "csv"],
        accept_multiple_files=False,
    )

if uploads and st.button("معالجة الملفات", type="primary"):
    with st.spinner("جاري تحليل البيانات..."):
        report = session.add_gradebooks(uploads)
    if report.merged:
        st.success(f"تمت معالجة {len(report.merged)} ملف")
    if report.failed:
        st.error("تم تخطي بعض الملفات (تمت معالجة الباقي):")
        st.dataframe(
            pd.DataFrame([{"الملف": r.source_name, "الخطأ": r.error} for r in report.failed]),
            width="stretch",
        )
    session.save()

if teacher_file is not None and st.button("تحميل ملف المعلمين"):
    try:
        session.load_teachers(teacher_file)
        session.save()
        st.success("تم تحميل ملف المعلمين")
    except IngestError as e:
        logger.warning("teacher file failed: %s", e)
        st.error(f"تعذر قراءة ملف المعلمين: {type(e).__name__}: {e}")

r1, r2 = st.columns(2)
with r1:
    if st.button("تحديث المرجع الآن", help="جعل بيانات الآن هي المرجع للمقارنات القادمة"):
        session.reset_snapshot()
        session.save()
with r2:
    if st.button("مسح جميع البيانات"):
        session.reset(clear_snapshot=True)
        session.save()
        st.rerun()

if not session.has_data:
    st.warning("ارفع ملفات الرصد.")
    st.stop()

scope = st.radio("الفترة", SCOPES, index=2, format_func=lambda s: SCOPE_LABELS[s], horizontal=True)
# =========================

# Dashboard
# =========================
stats = session.stats(scope)
st.subheader("إحصائية الرصد العامة")
m = st.columns(5)
m[0].metric("نسبة الإنجاز", f"{stats['percentage']}%")
m[1].metric("إجمالي الطلاب", stats["student_count"])
m[2].metric("إجمالي المعلمين", stats["teacher_count"])
m[3].metric("المواد", stats["subject_count"])
m[4].metric("الفصول", stats["class_count"])
st.caption(f"تم الرصد: {stats['recorded']} • لم يتم الرصد: {stats['not_recorded']}")
# =========================

# Heatmap
# =========================
st.subheader("خريطة الإنجاز")
had_snapshot = session.snapshot.snapshot is not None
hm = session.heatmap(scope)
if not had_snapshot and session.snapshot.snapshot is not None:
    session.save()
if session.snapshot.captured_at:
    st.caption(f"المرجع: {session.snapshot.captured_at}")

cell_text = {}
cell_band = {}
for cls in hm["classes"]:
    label = f"{cls[0]} - {cls[1]}"
    cell_text[label] = {}
    cell_band[label] = {}
    for sub in hm["subjects"]:
        c = hm["cells"][cls].get(sub)
        if c is None:
            cell_text[label][sub] = "-"
            cell_band[label][sub] = "empty"
            continue
        t = format_trend(c["trend"])
        cell_text[label][sub] = f"{c['current']}%" + (f" ({t})" if t else "")
        cell_band[label][sub] = c["band"]

heat_df = pd.DataFrame.from_dict(cell_text, orient="index", columns=hm["subjects"])
band_df = pd.DataFrame.from_dict(cell_band, orient="index", columns=hm["subjects"])
st.dataframe(
    heat_df.style.apply(lambda _: band_df.map(lambda b: f"background-color: {BAND_COLORS[b]}"), axis=None),
    width="stretch",
)
# =========================

# Teachers / lost students
# =========================
if session.teachers:
    st.subheader("تقرير المعلمين")
    teacher_rows = session.teacher_report(scope)
    st.dataframe(
        pd.DataFrame([
            {
                "المعلم": t["teacher"],
                "تم الرصد": t["recorded"],
                "لم يرصد": t["not_recorded"],
                "النسبة": t["percentage"],
                "المواد": " ، ".join(t["subjects"]),
            }
            for t in teacher_rows
        ]),
        width="stretch",
    )

st.subheader("الطلاب غير المرصودين في 3 مواد أو أكثر")
lost = session.lost_students(scope)
lost_df = flatten_lost_students(lost)
if lost_df.empty:
    st.success("لا يوجد طلاب متأخرين في 3 مواد أو أكثر")
else:
    st.dataframe(lost_df, width="stretch")
# =========================

# Tracking sheets
# =========================
with st.expander("جداول متابعة الطلاب", expanded=False):
    for page in tracking_pages(session.summary, scope, rules=session.rules):
        st.markdown(
            f"**{page['grade']} - {page['section']}** • {page['period']} • "
            f"صفحة {page['page']} من {page['total_pages']}"
        )
        marks = {True: "✓", False: "✗", None: ""}
        st.dataframe(
            pd.DataFrame([
                {"الطالب": r["name"], **{s: marks[r["status"][s]] for s in page["subjects"]}}
                for r in page["rows"]
            ]),
            width="stretch",
        )

xbytes = export_to_excel_bytes(flatten_rollup(session.summary, session.teachers, session.rules), lost_df)
st.download_button(
    "تحميل التقرير المجمع (Excel)",
    data=xbytes,
    file_name="التقرير_الشامل_لرصد_المواد.xlsx",
    mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
)
