from __future__ import annotations
import copy
from typing import Any, Dict, List
from .utils import load_json, rules_path

# Defaults match the Noor "period recording follow-up" export.
# data/rules.json may override any top-level key.
DEFAULT_RULES: Dict[str, Any] = {
    "periods": {"first": "أولى", "second": "ثانية"},
    "period_keywords": ["الفترة", "period"],
    "name_keywords": ["الاسم", "اسم الطالب", "الطالب", "name", "student"],
    # non-subject administrative columns present in the export
    "excluded_headers": ["م", "السلوك", "المواظبة", "#", "no", "behavior", "behaviour", "attendance"],
    "unknown_label": "غير معروف",
    "unassigned_label": "غير محدد",
    "anchors": {
        "grade_row": 3,
        "section_row": 9,
        "anchor_col": 2,
        "header_row": 20,
        "min_rows": 21,
    },
    "lost_threshold": 3,
    "heat_bands": [
        [100, "complete"],
        [80, "near_complete"],
        [50, "mid"],
        [25, "low"],
    ],
}


def load_rules(overrides: Dict[str, Any] | None = None) -> Dict[str, Any]:
    rules = copy.deepcopy(DEFAULT_RULES)
    from_file = load_json(rules_path(), {})
    if isinstance(from_file, dict):
        rules.update(from_file)
    if overrides:
        rules.update(overrides)
    return rules


def period_tokens(rules: Dict[str, Any]) -> List[str]:
    p = rules["periods"]
    return [p["first"], p["second"]]


RULES = load_rules()
