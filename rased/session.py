from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from .aggregate import BatchReport, Summary, ingest_batch, merge_summaries
from .analytics import heatmap_matrix, lost_students, rollup_stats, teacher_completion
from .ingest import TeacherIndex, load_teacher_assignments
from .rules import RULES
from .snapshot import SnapshotKeeper
from .utils import load_json, save_json, state_dir

logger = logging.getLogger(__name__)

SUMMARY_FILE = "summary.json"
TEACHERS_FILE = "teachers.json"
SNAPSHOT_FILE = "snapshot.json"


class Session:
    """
    Owner of the shared state: the cumulative summary (written only by
    merges started here, one file at a time), the teacher index and the
    trend snapshot.
    """

    def __init__(
        self,
        summary: Optional[Summary] = None,
        teachers: Optional[TeacherIndex] = None,
        snapshot: Optional[SnapshotKeeper] = None,
        rules: Dict[str, Any] = RULES,
    ):
        self.summary: Summary = summary if summary is not None else {}
        self.teachers: TeacherIndex = teachers or {}
        self.snapshot = snapshot or SnapshotKeeper()
        self.rules = rules

    @property
    def has_data(self) -> bool:
        return bool(self.summary)

    def add_gradebooks(self, uploads: Sequence[Any], max_workers: int = 4) -> BatchReport:
        report = ingest_batch(self.summary, uploads, self.rules, max_workers=max_workers)
        logger.info("batch: %d merged, %d failed", len(report.merged), len(report.failed))
        return report

    def load_teachers(self, upload) -> TeacherIndex:
        # each load replaces the previous mapping
        self.teachers = load_teacher_assignments(upload)
        return self.teachers

    def reset(self, clear_snapshot: bool = False) -> None:
        self.summary = {}
        if clear_snapshot:
            self.snapshot.clear()

    def reset_snapshot(self) -> None:
        self.snapshot.reset(self.summary)
    # =========================

    # Views
    # =========================
    def stats(self, scope: str = "both") -> Dict[str, Any]:
        return rollup_stats(self.summary, self.teachers, scope, self.rules)

    def heatmap(self, scope: str = "both") -> Dict[str, Any]:
        baseline = self.snapshot.observe(self.summary)
        return heatmap_matrix(self.summary, baseline, scope, self.rules)

    def lost_students(self, scope: str = "both") -> List[Dict[str, Any]]:
        return lost_students(self.summary, scope, rules=self.rules)

    def teacher_report(self, scope: str = "both") -> List[Dict[str, Any]]:
        return teacher_completion(self.summary, self.teachers, scope, self.rules)
    # =========================

    # Persistence
    # =========================
    def save(self, directory: Optional[Path] = None) -> Path:
        d = Path(directory) if directory is not None else state_dir()
        save_json(d / SUMMARY_FILE, self.summary)
        save_json(d / TEACHERS_FILE, self.teachers)
        self.snapshot.save(d / SNAPSHOT_FILE)
        return d

    @classmethod
    def load(cls, directory: Optional[Path] = None, rules: Dict[str, Any] = RULES) -> "Session":
        d = Path(directory) if directory is not None else state_dir()
        stored = load_json(d / SUMMARY_FILE, {})
        # folded into a fresh summary so counters are re-derived from student statuses
        summary = merge_summaries({}, stored if isinstance(stored, dict) else {})
        teachers = load_json(d / TEACHERS_FILE, {})
        return cls(
            summary=summary,
            teachers=teachers if isinstance(teachers, dict) else {},
            snapshot=SnapshotKeeper.load(d / SNAPSHOT_FILE),
            rules=rules,
        )
