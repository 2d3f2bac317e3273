from io import BytesIO
import pytest
from openpyxl import Workbook
from rased.rules import RULES

FIRST = RULES["periods"]["first"]
SECOND = RULES["periods"]["second"]


class FakeUpload:
    # mimics streamlit's UploadedFile
    def __init__(self, name, data):
        self.name = name
        self._data = data

    def getvalue(self):
        return self._data


def build_sheet(grade, section, subjects, students, period_header="الفترة", name_header="الاسم"):
    """
    Gradebook matrix laid out like the export: grade at row 3, section at
    row 9 (column 2), header at row 20, one row per (name, period, values).
    """
    rows = [[] for _ in range(19)]
    rows[0] = ["متابعة رصد الفترات"]
    rows[2] = ["الصف", grade]
    rows[8] = ["الفصل", section]
    rows.append(list(subjects) + [period_header, name_header])
    for name, period, values in students:
        rows.append(list(values) + [period, name])
    return rows


def to_xlsx_bytes(rows):
    wb = Workbook()
    ws = wb.active
    for r in rows:
        ws.append(list(r) if r else [None])
    bio = BytesIO()
    wb.save(bio)
    return bio.getvalue()


@pytest.fixture
def periods():
    return FIRST, SECOND


@pytest.fixture
def make_sheet():
    return build_sheet


@pytest.fixture
def make_upload():
    def _make(name, rows=None, data=None):
        if data is None:
            data = to_xlsx_bytes(rows)
        return FakeUpload(name, data)
    return _make
