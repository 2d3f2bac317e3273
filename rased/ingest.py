from __future__ import annotations
import csv
import logging
from io import BytesIO, StringIO
from pathlib import Path
from typing import Any, Dict, List, Sequence, Tuple
import pandas as pd
from openpyxl import load_workbook
from .errors import MalformedSheet, UnreadableFile
from .header_detect import locate_columns
from .rules import RULES
from .utils import norm_cell

logger = logging.getLogger(__name__)

TeacherIndex = Dict[str, Dict[str, Dict[str, List[str]]]]


def _upload_name_and_bytes(upload) -> Tuple[str, bytes]:
    # Streamlit UploadedFile (.name/.getvalue()) or a filesystem path
    if isinstance(upload, (str, Path)):
        p = Path(upload)
        try:
            return p.name, p.read_bytes()
        except OSError as e:
            raise UnreadableFile(f"cannot read file: {e}", p.name) from e
    name = getattr(upload, "name", "") or ""
    try:
        return name, upload.getvalue()
    except Exception as e:
        raise UnreadableFile(f"cannot read upload: {e}", name) from e


def _trim_row(row: Sequence[Any]) -> List[Any]:
    # a worksheet row is as long as the sheet is wide; drop the empty tail
    vals = list(row)
    while vals and norm_cell(vals[-1]) == "":
        vals.pop()
    return vals
# =========================

# Excel: first worksheet as a matrix
# =========================
def _xlsx_to_matrix(data: bytes) -> List[List[Any]]:
    wb = load_workbook(BytesIO(data), read_only=False, data_only=True)
    ws = wb.worksheets[0]
    # explicit bounds from A1: anchors are absolute positions even when the top rows are empty
    rows = ws.iter_rows(
        min_row=1,
        min_col=1,
        max_row=ws.max_row,
        max_col=ws.max_column,
        values_only=True,
    )
    return [_trim_row(r) for r in rows]
# =========================

# CSV: tolerant reading from bytes
# =========================
def _guess_delimiter(sample_text: str) -> str:
    # exports come with ',' or ';' (Arabic locales), sometimes tabs
    try:
        dialect = csv.Sniffer().sniff(sample_text, delimiters=";,\t|")
        if dialect.delimiter:
            return dialect.delimiter
    except csv.Error:
        pass

    candidates = [";", ",", "\t", "|"]
    lines = [ln for ln in sample_text.splitlines() if ln.strip()][:20]
    if not lines:
        return ","

    scores = {}
    for d in candidates:
        cnts = [ln.count(d) for ln in lines]
        scores[d] = sum(cnts) / max(1, len(cnts))

    best = max(scores.items(), key=lambda x: x[1])[0]
    return best if scores.get(best, 0) > 0 else ","


def _parse_csv_text(text: str) -> pd.DataFrame:
    delim = _guess_delimiter(text[:65536])
    # rows are ragged (anchor rows are short), so size the frame up front
    width = max((len(r) for r in csv.reader(StringIO(text), delimiter=delim)), default=1)
    return pd.read_csv(
        StringIO(text),
        header=None,
        names=list(range(max(1, width))),
        sep=delim,
        engine="python",
        dtype=str,
        skip_blank_lines=False,
    )


def _read_csv_bytes(data: bytes) -> pd.DataFrame:
    # header=None: the anchor rows above the header are data here too
    encodings = ["utf-8-sig", "utf-8", "cp1256"]
    last_err: Exception | None = None

    for enc in encodings:
        try:
            return _parse_csv_text(data.decode(enc))
        except (UnicodeDecodeError, pd.errors.ParserError, csv.Error) as e:
            last_err = e
            continue

    try:
        return _parse_csv_text(data.decode("utf-8", errors="replace"))
    except (pd.errors.ParserError, csv.Error) as e:
        raise last_err or e


def _frame_to_matrix(df: pd.DataFrame) -> List[List[Any]]:
    df = df.astype(object).where(pd.notna(df), None)
    return [_trim_row(r) for r in df.values.tolist()]
# =========================

# Main: upload -> matrix
# =========================
def read_sheet_matrix(data: bytes, name: str) -> List[List[Any]]:
    """
    First worksheet of an .xlsx (or a whole .csv) as a list of rows.
    Cells keep their native types (numbers stay numbers), trailing
    empty cells of each row are dropped.
    """
    low = (name or "").lower()
    try:
        if low.endswith(".csv"):
            return _frame_to_matrix(_read_csv_bytes(data))
        if low.endswith((".xlsx", ".xlsm")) or not low:
            return _xlsx_to_matrix(data)
    except Exception as e:
        raise UnreadableFile(f"{type(e).__name__}: {e}", name) from e
    raise UnreadableFile("unsupported file type (expected .xlsx or .csv)", name)


def _anchor(rows: List[List[Any]], row_1based: int, col_1based: int) -> str:
    r, c = row_1based - 1, col_1based - 1
    if r >= len(rows) or c >= len(rows[r]):
        return ""
    return norm_cell(rows[r][c])


def parse_gradebook(
    rows: List[List[Any]],
    source_name: str = "",
    rules: Dict[str, Any] = RULES,
) -> Dict[str, Any]:
    """
    Splits one gradebook matrix into the parts the aggregator needs:
      {
        "source_name": ...,
        "grade": <row 3, col 2>,
        "section": <row 9, col 2>,
        "header": <row 20>,
        "rows": <rows 21+>,
        "layout": ColumnLayout(period, name),
      }
    Missing anchors become the "unknown" label.
    """
    a = rules["anchors"]
    if len(rows) < a["min_rows"]:
        raise MalformedSheet(f"sheet has {len(rows)} rows, expected at least {a['min_rows']}", source_name)

    unknown = rules["unknown_label"]
    grade = _anchor(rows, a["grade_row"], a["anchor_col"]) or unknown
    section = _anchor(rows, a["section_row"], a["anchor_col"]) or unknown

    header = rows[a["header_row"] - 1]
    data_rows = rows[a["header_row"]:]
    try:
        layout = locate_columns(header, data_rows[0], rules)
    except MalformedSheet as e:
        e.source_name = source_name
        raise

    logger.debug("%s: grade=%r section=%r period_col=%d name_col=%d",
                 source_name, grade, section, layout.period, layout.name)
    return {
        "source_name": source_name,
        "grade": grade,
        "section": section,
        "header": header,
        "rows": data_rows,
        "layout": layout,
    }


def read_gradebook(upload, rules: Dict[str, Any] = RULES) -> Dict[str, Any]:
    name, data = _upload_name_and_bytes(upload)
    rows = read_sheet_matrix(data, name)
    return parse_gradebook(rows, source_name=name, rules=rules)
# =========================

# Teacher assignments
# =========================
def build_teacher_index(rows: List[Sequence[Any]]) -> TeacherIndex:
    """
    Rows of the assignment sheet: header first, then
    (teacher, grade, subject, section). Shorter rows are skipped.
    """
    index: TeacherIndex = {}
    for row in rows[1:]:
        vals = _trim_row(row or [])
        if len(vals) < 4:
            continue
        teacher, grade, subject, section = (norm_cell(v) for v in vals[:4])
        index.setdefault(grade, {}).setdefault(section, {}).setdefault(subject, []).append(teacher)
    return index


def load_teacher_assignments(upload) -> TeacherIndex:
    name, data = _upload_name_and_bytes(upload)
    index = build_teacher_index(read_sheet_matrix(data, name))
    logger.info("%s: teacher assignments for %d grades", name, len(index))
    return index


def teachers_for(index: TeacherIndex, grade: str, section: str, subject: str) -> List[str]:
    return list(index.get(grade, {}).get(section, {}).get(subject, []))
