from __future__ import annotations
from typing import Any, Dict, List, Optional, Tuple
from .aggregate import Summary, compute_percentage
from .ingest import TeacherIndex, teachers_for
from .rules import RULES

SCOPES = ("first", "second", "both")


def scope_periods(scope: str, rules: Dict[str, Any] = RULES) -> List[str]:
    p = rules["periods"]
    if scope == "both":
        return [p["first"], p["second"]]
    if scope in p:
        return [p[scope]]
    if scope in p.values():
        return [scope]
    raise ValueError(f"unknown period scope: {scope!r}")


def _iter_scope(summary: Summary, periods: List[str]):
    # (grade, section, period, subject, record) in summary order
    for grade, sections in summary.items():
        for section, periods_data in sections.items():
            for p in periods:
                for subject, rec in (periods_data.get(p) or {}).items():
                    yield grade, section, p, subject, rec
# =========================

# Dashboard rollup
# =========================
def rollup_stats(
    summary: Summary,
    teachers: Optional[TeacherIndex] = None,
    scope: str = "both",
    rules: Dict[str, Any] = RULES,
) -> Dict[str, Any]:
    teachers = teachers or {}
    periods = scope_periods(scope, rules)

    recorded = 0
    not_recorded = 0
    students = set()
    subjects = set()
    teacher_names = set()

    for grade, section, _, subject, rec in _iter_scope(summary, periods):
        subjects.add(subject)
        recorded += rec["recorded_count"]
        not_recorded += rec["not_recorded_count"]
        # names are only unique inside a class
        students.update((grade, section, s) for s in rec["students"])
        teacher_names.update(teachers_for(teachers, grade, section, subject))

    total = recorded + not_recorded
    return {
        "recorded": recorded,
        "not_recorded": not_recorded,
        "total": total,
        "percentage": f"{recorded / total * 100:.1f}" if total > 0 else "0",
        "student_count": len(students),
        "subject_count": len(subjects),
        "teacher_count": len(teacher_names),
        "class_count": sum(len(sections) for sections in summary.values()),
    }
# =========================

# Heatmap + trend vs snapshot
# =========================
def heat_band(pct: Optional[float], rules: Dict[str, Any] = RULES) -> str:
    if pct is None:
        return "empty"
    for threshold, band in rules["heat_bands"]:
        if pct >= threshold:
            return band
    return "critical"


def trend(current: Optional[float], previous: Optional[float]) -> Optional[float]:
    # signed change since the snapshot, None when there is nothing to compare
    if current is None or previous is None or current == previous:
        return None
    return round(current - previous, 1)


def format_trend(delta: Optional[float]) -> str:
    return "" if delta is None else f"{delta:+g}"


def heatmap_matrix(
    summary: Summary,
    snapshot: Optional[Summary] = None,
    scope: str = "both",
    rules: Dict[str, Any] = RULES,
) -> Dict[str, Any]:
    """
    Completion matrix, one row per (grade, section), one column per subject:
      {
        "classes": [(grade, section), ...],
        "subjects": [sorted subject names],
        "cells": {(grade, section): {subject: {current, previous, trend, band}}},
      }
    With scope "both" a subject present in both periods shows the second.
    """
    periods = scope_periods(scope, rules)
    snapshot = snapshot or {}

    classes: List[Tuple[str, str]] = []
    subjects = set()
    cells: Dict[Tuple[str, str], Dict[str, Dict[str, Any]]] = {}

    for grade, sections in summary.items():
        for section, periods_data in sections.items():
            key = (grade, section)
            classes.append(key)
            row = cells.setdefault(key, {})
            for p in periods:
                for subject, rec in (periods_data.get(p) or {}).items():
                    subjects.add(subject)
                    old = snapshot.get(grade, {}).get(section, {}).get(p, {}).get(subject)
                    current = rec["percentage"]
                    previous = old["percentage"] if old else None
                    row[subject] = {
                        "current": current,
                        "previous": previous,
                        "trend": trend(current, previous),
                        "band": heat_band(current, rules),
                    }

    return {"classes": classes, "subjects": sorted(subjects), "cells": cells}
# =========================

# Lost students
# =========================
def lost_students(
    summary: Summary,
    scope: str = "both",
    threshold: Optional[int] = None,
    rules: Dict[str, Any] = RULES,
) -> List[Dict[str, Any]]:
    """
    Students explicitly marked "not recorded" in `threshold` or more
    (subject, period) combinations of their class. Students that never
    reached a subject are not counted. Most missing first, ties keep
    encounter order.
    """
    if threshold is None:
        threshold = int(rules["lost_threshold"])
    periods = scope_periods(scope, rules)
    out: List[Dict[str, Any]] = []

    for grade, sections in summary.items():
        for section, periods_data in sections.items():
            stats: Dict[str, List[str]] = {}
            for p in periods:
                for subject, rec in (periods_data.get(p) or {}).items():
                    for student, recorded in rec["student_status"].items():
                        if recorded is False:
                            stats.setdefault(student, []).append(f"{subject} ({p})")

            for name, missing in stats.items():
                if len(missing) >= threshold:
                    out.append({
                        "name": name,
                        "grade": grade,
                        "section": section,
                        "missing_count": len(missing),
                        "missing_subjects": missing,
                    })

    return sorted(out, key=lambda r: r["missing_count"], reverse=True)
# =========================

# Teachers report
# =========================
def teacher_completion(
    summary: Summary,
    teachers: Optional[TeacherIndex] = None,
    scope: str = "both",
    rules: Dict[str, Any] = RULES,
) -> List[Dict[str, Any]]:
    # least complete first: the report is used to chase late teachers
    teachers = teachers or {}
    unassigned = rules["unassigned_label"]
    acc: Dict[str, Dict[str, Any]] = {}

    for grade, section, p, subject, rec in _iter_scope(summary, scope_periods(scope, rules)):
        for t in teachers_for(teachers, grade, section, subject) or [unassigned]:
            a = acc.setdefault(t, {"teacher": t, "recorded": 0, "not_recorded": 0, "subjects": []})
            a["recorded"] += rec["recorded_count"]
            a["not_recorded"] += rec["not_recorded_count"]
            label = f"{subject} - {grade} / {section}"
            if label not in a["subjects"]:
                a["subjects"].append(label)

    rows = list(acc.values())
    for a in rows:
        a["percentage"] = compute_percentage(a["recorded"], a["not_recorded"])
    return sorted(rows, key=lambda a: (a["percentage"], a["teacher"]))
# =========================

# Printable tracking sheets
# =========================
def tracking_pages(
    summary: Summary,
    scope: str = "both",
    per_page: int = 35,
    rules: Dict[str, Any] = RULES,
) -> List[Dict[str, Any]]:
    pages: List[Dict[str, Any]] = []
    periods = scope_periods(scope, rules)

    for grade in sorted(summary):
        for section in sorted(summary[grade]):
            for p in periods:
                pdata = summary[grade][section].get(p) or {}
                subjects = sorted(pdata)
                if not subjects:
                    continue

                students = sorted({st for s in subjects for st in pdata[s]["students"]})
                total_pages = -(-len(students) // per_page)
                for page_idx in range(total_pages):
                    start = page_idx * per_page
                    chunk = students[start:start + per_page]
                    pages.append({
                        "grade": grade,
                        "section": section,
                        "period": p,
                        "subjects": subjects,
                        "page": page_idx + 1,
                        "total_pages": total_pages,
                        "start_idx": start,
                        "rows": [
                            {"name": st, "status": {s: pdata[s]["student_status"].get(st) for s in subjects}}
                            for st in chunk
                        ],
                    })
    return pages
