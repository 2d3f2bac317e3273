from __future__ import annotations
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple
from .errors import MalformedSheet
from .rules import RULES, period_tokens
from .utils import norm_cell, norm_text


class ColumnLayout(NamedTuple):
    period: int
    name: int

    @property
    def subjects_end(self) -> int:
        return min(self.period, self.name)


def _cell(row: Sequence[Any], idx: int) -> Any:
    if row is None or idx < 0 or idx >= len(row):
        return None
    return row[idx]


def _find_keyword_col(header_row: Sequence[Any], keywords: List[str]) -> Optional[int]:
    kws = [norm_text(k) for k in keywords if norm_text(k)]
    for i, v in enumerate(header_row or []):
        t = norm_text(v)
        if not t:
            continue
        if any(k in t for k in kws):
            return i
    return None


def locate_columns(
    header_row: Sequence[Any],
    first_data_row: Sequence[Any],
    rules: Dict[str, Any] = RULES,
) -> ColumnLayout:
    """
    Finds (period column, student-name column) of one sheet.

    Export layouts differ between schools/versions, so positions are sniffed:
      1) first data-row cell equal to a period token -> period column,
         the student name sits in the column right after it
      2) otherwise header keywords, period and name looked up independently
    Raises MalformedSheet when either column stays unknown.
    """
    tokens = set(period_tokens(rules))

    for i, v in enumerate(first_data_row or []):
        if norm_cell(v) in tokens:
            return ColumnLayout(period=i, name=i + 1)

    period_idx = _find_keyword_col(header_row, rules["period_keywords"])
    name_idx = _find_keyword_col(header_row, rules["name_keywords"])

    if period_idx is None or name_idx is None:
        missing = [n for n, x in (("period", period_idx), ("name", name_idx)) if x is None]
        raise MalformedSheet(f"column not found: {', '.join(missing)}")

    return ColumnLayout(period=period_idx, name=name_idx)


def subject_columns(
    header_row: Sequence[Any],
    layout: ColumnLayout,
    rules: Dict[str, Any] = RULES,
) -> List[Tuple[int, str]]:
    # every header column strictly before min(name, period), minus administrative ones
    excluded = {norm_text(x) for x in rules["excluded_headers"]}
    excluded.add(norm_text(_cell(header_row, layout.name)))
    excluded.add(norm_text(_cell(header_row, layout.period)))
    excluded.discard("")

    out: List[Tuple[int, str]] = []
    for i in range(min(layout.subjects_end, len(header_row or []))):
        subject = norm_cell(header_row[i])
        if not subject or norm_text(subject) in excluded:
            continue
        out.append((i, subject))
    return out
