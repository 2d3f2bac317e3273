from __future__ import annotations
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple
from .errors import IngestError
from .header_detect import ColumnLayout, subject_columns
from .ingest import read_gradebook
from .rules import RULES, period_tokens
from .utils import norm_cell, to_number

logger = logging.getLogger(__name__)

SubjectRecord = Dict[str, Any]
Summary = Dict[str, Dict[str, Dict[str, Dict[str, SubjectRecord]]]]


def new_subject_record() -> SubjectRecord:
    return {
        "recorded_count": 0,
        "not_recorded_count": 0,
        "percentage": 0,
        "student_status": {},
        "students": [],
    }


def classify_cell(v: Any) -> Optional[bool]:
    """
    True  - a positive number: grade recorded
    False - exactly 0: explicitly not recorded
    None  - anything else (blank, text, negative): ignored
    """
    n = to_number(v)
    if n is None:
        return None
    if n > 0:
        return True
    if n == 0:
        return False
    return None


def compute_percentage(recorded: int, not_recorded: int) -> float:
    total = recorded + not_recorded
    if total <= 0:
        return 0
    return round(recorded / total * 100, 2)


def recalc_percentages(summary: Summary, grade: Optional[str] = None, section: Optional[str] = None) -> Summary:
    # always re-derived from the counters, never patched
    for g, sections in summary.items():
        if grade is not None and g != grade:
            continue
        for s, periods in sections.items():
            if section is not None and s != section:
                continue
            for subjects in periods.values():
                for rec in subjects.values():
                    rec["percentage"] = compute_percentage(rec["recorded_count"], rec["not_recorded_count"])
    return summary


def set_student_status(rec: SubjectRecord, student: str, recorded: bool) -> None:
    status = rec["student_status"]
    if student not in status:
        rec["students"].append(student)
        rec["recorded_count" if recorded else "not_recorded_count"] += 1
    elif status[student] != recorded:
        # re-upload changed the status: move the student between counters
        rec["recorded_count" if status[student] else "not_recorded_count"] -= 1
        rec["recorded_count" if recorded else "not_recorded_count"] += 1
    status[student] = recorded


def _cell(row: Sequence[Any], idx: int) -> Any:
    return row[idx] if 0 <= idx < len(row) else None


def student_rows(
    rows: Iterable[Sequence[Any]],
    layout: ColumnLayout,
    periods: Sequence[str],
) -> Iterator[Tuple[str, str, Sequence[Any]]]:
    """
    Yields (student, period, row) for every row that counts.
    The name cell is blank on continuation rows of exported sheets,
    so the last seen name is carried forward.
    """
    current = ""
    for row in rows:
        row = row or []
        name = norm_cell(_cell(row, layout.name))
        if name:
            current = name
        period = norm_cell(_cell(row, layout.period))
        if period not in periods or not current:
            continue
        yield current, period, row


def merge_sheet(
    summary: Summary,
    grade: str,
    section: str,
    header_row: Sequence[Any],
    data_rows: Iterable[Sequence[Any]],
    layout: ColumnLayout,
    rules: Dict[str, Any] = RULES,
) -> Summary:
    """Folds the data rows of one sheet into summary (in place)."""
    periods_data = summary.setdefault(grade, {}).setdefault(section, {})
    subjects = subject_columns(header_row, layout, rules)

    for student, period, row in student_rows(data_rows, layout, period_tokens(rules)):
        bucket = periods_data.setdefault(period, {})
        for idx, subject in subjects:
            rec = bucket.get(subject)
            if rec is None:
                rec = bucket[subject] = new_subject_record()
            recorded = classify_cell(_cell(row, idx))
            if recorded is None:
                continue
            set_student_status(rec, student, recorded)

    return recalc_percentages(summary, grade, section)


def merge_gradebook(summary: Summary, gradebook: Dict[str, Any], rules: Dict[str, Any] = RULES) -> Summary:
    return merge_sheet(
        summary,
        gradebook["grade"],
        gradebook["section"],
        gradebook["header"],
        gradebook["rows"],
        gradebook["layout"],
        rules,
    )


def merge_summaries(target: Summary, other: Summary) -> Summary:
    """
    Folds a previously stored summary into target with the same
    per-student rule as sheet merges, so stored state and new
    uploads combine in any order.
    """
    for grade, sections in (other or {}).items():
        for section, periods in sections.items():
            t_periods = target.setdefault(grade, {}).setdefault(section, {})
            for period, subjects in periods.items():
                t_bucket = t_periods.setdefault(period, {})
                for subject, rec in subjects.items():
                    t_rec = t_bucket.setdefault(subject, new_subject_record())
                    status = rec.get("student_status", {})
                    for student in rec.get("students", []):
                        if student in status:
                            set_student_status(t_rec, student, bool(status[student]))
            recalc_percentages(target, grade, section)
    return target
# =========================

# Batches: concurrent reads, sequential merges
# =========================
@dataclass
class FileResult:
    source_name: str
    ok: bool
    grade: str = ""
    section: str = ""
    error: str = ""


@dataclass
class BatchReport:
    results: List[FileResult] = field(default_factory=list)

    @property
    def merged(self) -> List[FileResult]:
        return [r for r in self.results if r.ok]

    @property
    def failed(self) -> List[FileResult]:
        return [r for r in self.results if not r.ok]


def _upload_label(upload) -> str:
    return str(getattr(upload, "name", upload))


def ingest_batch(
    summary: Summary,
    uploads: Sequence[Any],
    rules: Dict[str, Any] = RULES,
    max_workers: int = 4,
) -> BatchReport:
    """
    Reads every upload (in parallel), then merges the readable ones into
    summary one at a time in selection order. A bad file is reported and
    skipped; merges already applied stay applied.
    """
    report = BatchReport()
    if not uploads:
        return report

    with ThreadPoolExecutor(max_workers=max(1, max_workers)) as pool:
        futures = [pool.submit(read_gradebook, up, rules) for up in uploads]

        for up, fut in zip(uploads, futures):
            label = _upload_label(up)
            try:
                gb = fut.result()
            except IngestError as e:
                logger.warning("skipped %s: %s", label, e)
                report.results.append(FileResult(source_name=label, ok=False, error=f"{type(e).__name__}: {e}"))
                continue

            merge_gradebook(summary, gb, rules)
            logger.info("merged %s (grade=%s, section=%s)", label, gb["grade"], gb["section"])
            report.results.append(FileResult(source_name=label, ok=True, grade=gb["grade"], section=gb["section"]))

    return report
