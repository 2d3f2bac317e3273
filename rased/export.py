from __future__ import annotations
import pandas as pd
from io import BytesIO
from typing import Any, Dict, List, Optional
from .aggregate import Summary
from .ingest import TeacherIndex, teachers_for
from .rules import RULES, period_tokens

ROLLUP_COLUMNS = [
    "grade", "section", "period", "subject",
    "student_count", "recorded_count", "not_recorded_count", "percentage", "teachers",
]
LOST_COLUMNS = ["name", "grade", "section", "missing_count", "missing_subjects"]

SHEET_ROLLUP = "إحصائيات الرصد الكاملة"
SHEET_LOST = "طلاب لم يرصد لهم"

EXPORT_LABELS = {
    "grade": "الصف",
    "section": "الفصل",
    "period": "الفترة",
    "subject": "المادة",
    "student_count": "عدد الطلاب",
    "recorded_count": "تم الرصد",
    "not_recorded_count": "لم يرصد",
    "percentage": "النسبة المئوية",
    "teachers": "المعلم",
    "name": "اسم الطالب",
    "missing_count": "عدد المواد المتبقية",
    "missing_subjects": "المواد",
}


def flatten_rollup(
    summary: Summary,
    teachers: Optional[TeacherIndex] = None,
    rules: Dict[str, Any] = RULES,
) -> pd.DataFrame:
    # one row per grade/section/period/subject, both periods regardless of the view scope
    teachers = teachers or {}
    rows: List[Dict[str, Any]] = []
    for grade, sections in summary.items():
        for section, periods_data in sections.items():
            for p in period_tokens(rules):
                for subject, rec in (periods_data.get(p) or {}).items():
                    rows.append({
                        "grade": grade,
                        "section": section,
                        "period": p,
                        "subject": subject,
                        "student_count": rec["recorded_count"] + rec["not_recorded_count"],
                        "recorded_count": rec["recorded_count"],
                        "not_recorded_count": rec["not_recorded_count"],
                        "percentage": rec["percentage"],
                        "teachers": " ، ".join(teachers_for(teachers, grade, section, subject)),
                    })
    return pd.DataFrame(rows, columns=ROLLUP_COLUMNS)


def flatten_lost_students(lost: List[Dict[str, Any]]) -> pd.DataFrame:
    rows = [
        {
            "name": s["name"],
            "grade": s["grade"],
            "section": s["section"],
            "missing_count": s["missing_count"],
            "missing_subjects": " - ".join(s["missing_subjects"]),
        }
        for s in lost
    ]
    return pd.DataFrame(rows, columns=LOST_COLUMNS)


def export_to_excel_bytes(rollup_df: pd.DataFrame, lost_df: pd.DataFrame) -> bytes:
    bio = BytesIO()
    rollup_out = rollup_df.rename(columns=EXPORT_LABELS)
    lost_out = lost_df.rename(columns=EXPORT_LABELS)

    with pd.ExcelWriter(bio, engine="xlsxwriter") as writer:
        rollup_out.to_excel(writer, index=False, sheet_name=SHEET_ROLLUP)
        lost_out.to_excel(writer, index=False, sheet_name=SHEET_LOST)

        wb = writer.book
        fmt_header = wb.add_format({"bold": True, "bg_color": "#F2F2F2", "border": 1, "valign": "vcenter"})
        fmt_num = wb.add_format({"num_format": "0.00"})
        fmt_low = wb.add_format({"bg_color": "#FCE8E6"})
        fmt_full = wb.add_format({"bg_color": "#E6F4EA"})

        def format_df_sheet(sheet_name: str, df: pd.DataFrame, default_width: int = 16, max_width: int = 60):
            ws = writer.sheets.get(sheet_name)
            if ws is None:
                return
            ws.right_to_left()
            ws.freeze_panes(1, 0)
            ws.autofilter(0, 0, max(1, len(df)), max(0, len(df.columns) - 1))
            for col, name in enumerate(df.columns):
                ws.write(0, col, name, fmt_header)
                w = max(10, min(max_width, int(len(str(name)) * 1.2) + 6))
                ws.set_column(col, col, max(default_width, w))

        format_df_sheet(SHEET_ROLLUP, rollup_out)
        format_df_sheet(SHEET_LOST, lost_out, default_width=18)

        ws = writer.sheets[SHEET_ROLLUP]
        pct_col = ROLLUP_COLUMNS.index("percentage")
        ws.set_column(pct_col, pct_col, 16, fmt_num)
        ws.set_column(len(ROLLUP_COLUMNS) - 1, len(ROLLUP_COLUMNS) - 1, 40)
        if len(rollup_out):
            ws.conditional_format(1, pct_col, len(rollup_out), pct_col, {
                "type": "cell", "criteria": "<", "value": 50, "format": fmt_low,
            })
            ws.conditional_format(1, pct_col, len(rollup_out), pct_col, {
                "type": "cell", "criteria": "==", "value": 100, "format": fmt_full,
            })

        writer.sheets[SHEET_LOST].set_column(len(LOST_COLUMNS) - 1, len(LOST_COLUMNS) - 1, 60)

    return bio.getvalue()
