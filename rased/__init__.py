"""
This package contains:
- reading of gradebook recording exports (XLSX/CSV)
- period / student-name column sniffing
- the cumulative summary per grade/section/period/subject
- analytics: rollup, heatmap with trend, lost students
- report export
"""
from .errors import IngestError, MalformedSheet, UnreadableFile
from .header_detect import ColumnLayout, locate_columns, subject_columns
from .ingest import read_sheet_matrix, read_gradebook, parse_gradebook, load_teacher_assignments, build_teacher_index
from .aggregate import classify_cell, merge_sheet, merge_gradebook, merge_summaries, ingest_batch, recalc_percentages
from .analytics import rollup_stats, heatmap_matrix, lost_students, teacher_completion, tracking_pages
from .snapshot import SnapshotKeeper
from .export import flatten_rollup, flatten_lost_students, export_to_excel_bytes
from .session import Session

__all__ = [
    "IngestError",
    "MalformedSheet",
    "UnreadableFile",
    "ColumnLayout",
    "locate_columns",
    "subject_columns",
    "read_sheet_matrix",
    "read_gradebook",
    "parse_gradebook",
    "load_teacher_assignments",
    "build_teacher_index",
    "classify_cell",
    "merge_sheet",
    "merge_gradebook",
    "merge_summaries",
    "ingest_batch",
    "recalc_percentages",
    "rollup_stats",
    "heatmap_matrix",
    "lost_students",
    "teacher_completion",
    "tracking_pages",
    "SnapshotKeeper",
    "flatten_rollup",
    "flatten_lost_students",
    "export_to_excel_bytes",
    "Session",
]
