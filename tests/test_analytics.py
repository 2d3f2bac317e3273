import copy
import pytest
from rased.aggregate import merge_gradebook
from rased.analytics import (
    format_trend,
    heat_band,
    heatmap_matrix,
    lost_students,
    rollup_stats,
    scope_periods,
    teacher_completion,
    tracking_pages,
    trend,
)
from rased.ingest import parse_gradebook


def _record(recorded, not_recorded, statuses=None):
    statuses = statuses or {}
    return {
        "recorded_count": recorded,
        "not_recorded_count": not_recorded,
        "percentage": round(recorded / (recorded + not_recorded) * 100, 2) if recorded + not_recorded else 0,
        "student_status": statuses,
        "students": list(statuses),
    }


@pytest.fixture
def summary(make_sheet, periods):
    first, second = periods
    s = {}
    g7 = make_sheet("G7", "1", ["Math", "Art", "Science"], [
        ("Ali", first, [1, 0, 0]),
        (None, second, [0, 1, None]),
        ("Sara", first, [1, 1, 1]),
        (None, second, [1, 1, 1]),
    ])
    g8 = make_sheet("G8", "1", ["Math"], [("Ali", first, [0])])
    merge_gradebook(s, parse_gradebook(g7))
    merge_gradebook(s, parse_gradebook(g8))
    return s


def test_scope_periods(periods):
    first, second = periods
    assert scope_periods("both") == [first, second]
    assert scope_periods("first") == [first]
    assert scope_periods("second") == [second]
    assert scope_periods(second) == [second]
    with pytest.raises(ValueError):
        scope_periods("third")


@pytest.mark.parametrize("scope", ["first", "second", "both"])
def test_rollup_of_empty_summary(scope):
    stats = rollup_stats({}, {}, scope)
    assert stats["recorded"] == 0
    assert stats["not_recorded"] == 0
    assert stats["total"] == 0
    assert stats["percentage"] == "0"
    assert stats["student_count"] == 0
    assert stats["subject_count"] == 0
    assert stats["teacher_count"] == 0
    assert stats["class_count"] == 0


def test_rollup_counts(summary):
    teachers = {"G7": {"1": {"Math": ["Khalid"], "Art": ["Noura", "Khalid"]}}, "G8": {"1": {"Math": ["Salem"]}}}

    both = rollup_stats(summary, teachers, "both")
    # first: Math 2/0, Art 1/1, Science 1/1, G8 Math 0/1; second: Math 1/1, Art 2/0, Science 1/0
    assert both["recorded"] == 8
    assert both["not_recorded"] == 4
    assert both["percentage"] == "66.7"
    # Ali in G7 and Ali in G8 are different students
    assert both["student_count"] == 3
    assert both["subject_count"] == 3
    assert both["teacher_count"] == 3
    assert both["class_count"] == 2

    second = rollup_stats(summary, teachers, "second")
    assert (second["recorded"], second["not_recorded"]) == (4, 1)
    assert second["percentage"] == "80.0"
    assert second["teacher_count"] == 2


@pytest.mark.parametrize("pct, band", [
    (100, "complete"),
    (99.99, "near_complete"),
    (80, "near_complete"),
    (79.9, "mid"),
    (50, "mid"),
    (49.99, "low"),
    (25, "low"),
    (24.99, "critical"),
    (0, "critical"),
    (None, "empty"),
])
def test_heat_band_thresholds(pct, band):
    assert heat_band(pct) == band


def test_trend():
    assert trend(70, 40) == 30
    assert trend(40, 70) == -30
    assert trend(33.33, 30) == 3.3
    assert trend(50, 50) is None
    assert trend(50, None) is None
    assert format_trend(trend(70, 40)) == "+30"
    assert format_trend(trend(40, 70.5)) == "-30.5"
    assert format_trend(None) == ""


def test_heatmap_trend_against_snapshot(periods):
    first, _ = periods
    snapshot = {"Grade7": {"1": {first: {"Science": _record(2, 3)}}}}
    current = {"Grade7": {"1": {first: {"Science": _record(7, 3), "Art": _record(1, 0)}}}}
    assert snapshot["Grade7"]["1"][first]["Science"]["percentage"] == 40
    assert current["Grade7"]["1"][first]["Science"]["percentage"] == 70

    hm = heatmap_matrix(current, snapshot, "first")
    assert hm["classes"] == [("Grade7", "1")]
    assert hm["subjects"] == ["Art", "Science"]
    sci = hm["cells"][("Grade7", "1")]["Science"]
    assert sci["current"] == 70
    assert sci["previous"] == 40
    assert format_trend(sci["trend"]) == "+30"
    assert sci["band"] == "mid"
    art = hm["cells"][("Grade7", "1")]["Art"]
    assert art["previous"] is None
    assert art["trend"] is None
    assert art["band"] == "complete"


def test_heatmap_without_snapshot_lists_every_class(summary):
    hm = heatmap_matrix(summary, None, "both")
    assert hm["classes"] == [("G7", "1"), ("G8", "1")]
    assert hm["subjects"] == ["Art", "Math", "Science"]
    assert "Art" not in hm["cells"][("G8", "1")]
    assert all(c["trend"] is None for row in hm["cells"].values() for c in row.values())


def test_heatmap_does_not_mutate_summary(summary):
    before = copy.deepcopy(summary)
    heatmap_matrix(summary, before, "both")
    rollup_stats(summary, {}, "both")
    lost_students(summary, "both")
    assert summary == before


def _statuses_summary(first, second, misses):
    # one class, one student marked False in `misses` (subject, period) pairs
    data = {first: {}, second: {}}
    for subject, p in misses:
        data[p][subject] = _record(0, 1, {"Ali": False})
    data[first]["Other"] = _record(1, 0, {"Ali": True})
    return {"G": {"1": data}}


def test_lost_student_threshold(periods):
    first, second = periods
    two = _statuses_summary(first, second, [("Math", first), ("Art", second)])
    three = _statuses_summary(first, second, [("Math", first), ("Art", second), ("Math", second)])
    assert lost_students(two, "both") == []

    lost = lost_students(three, "both")
    assert len(lost) == 1
    assert lost[0]["name"] == "Ali"
    assert lost[0]["missing_count"] == 3
    assert lost[0]["missing_subjects"] == [f"Math ({first})", f"Art ({second})", f"Math ({second})"]

    # scope narrows the count below the threshold
    assert lost_students(three, "second") == []


def test_lost_students_sorted_with_stable_ties(periods):
    first, _ = periods
    status = {"A": False, "B": False, "C": False}
    many = {s: _record(0, 3, dict(status)) for s in ["S1", "S2", "S3"]}
    many["S4"] = _record(0, 1, {"C": False})
    summary = {"G": {"1": {first: many}}}
    lost = lost_students(summary, "first")
    assert [(s["name"], s["missing_count"]) for s in lost] == [("C", 4), ("A", 3), ("B", 3)]


def test_lost_students_ignores_students_never_reaching_a_subject(periods):
    first, _ = periods
    summary = {"G": {"1": {first: {
        "Math": _record(0, 1, {"Ali": False}),
        "Art": _record(0, 1, {"Ali": False}),
        "Science": _record(1, 0, {"Omar": True}),
    }}}}
    assert lost_students(summary, "first") == []
    assert lost_students(summary, "first", threshold=2)[0]["name"] == "Ali"


def test_teacher_completion(summary):
    teachers = {"G7": {"1": {"Math": ["Khalid"], "Art": ["Khalid"]}}}
    rows = {r["teacher"]: r for r in teacher_completion(summary, teachers, "first")}
    assert rows["Khalid"]["recorded"] == 3
    assert rows["Khalid"]["not_recorded"] == 1
    assert rows["Khalid"]["percentage"] == 75
    unassigned = rows["غير محدد"]
    # G7 Science 1/1 and G8 Math 0/1
    assert (unassigned["recorded"], unassigned["not_recorded"]) == (1, 2)
    ordered = teacher_completion(summary, teachers, "first")
    assert ordered[0]["teacher"] == "غير محدد"


def test_tracking_pages(periods):
    first, _ = periods
    statuses = {f"S{i:02d}": (i % 2 == 0) for i in range(40)}
    summary = {"G": {"1": {first: {"Math": _record(20, 20, statuses)}}}}
    pages = tracking_pages(summary, "both", per_page=35)
    assert [(p["page"], p["total_pages"], len(p["rows"])) for p in pages] == [(1, 2, 35), (2, 2, 5)]
    assert pages[1]["start_idx"] == 35
    assert pages[0]["rows"][0] == {"name": "S00", "status": {"Math": True}}
    assert pages[0]["rows"][1]["status"]["Math"] is False
