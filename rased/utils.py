import os
import re
import json
import math
from pathlib import Path
from typing import Any, Optional
import numpy as np

BASE_DIR = Path(__file__).resolve().parent.parent
DEFAULT_DATA_DIR = BASE_DIR / "data"

APPDATA = os.environ.get("APPDATA")
if os.environ.get("RASED_DATA_DIR"):
    USER_DATA_DIR = Path(os.environ["RASED_DATA_DIR"])
elif APPDATA:
    USER_DATA_DIR = Path(APPDATA) / "Rased" / "data"
else:
    USER_DATA_DIR = DEFAULT_DATA_DIR  # fallback

def load_json(path: Path, default: Any):
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError):
        return default

def save_json(path: Path, obj: Any):
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, ensure_ascii=False, indent=2)

_NBSP_RE = re.compile(r"\u00A0")
_NUMBER_RE = re.compile(r"^[-+]?(\d+(\.\d*)?|\.\d+)$")


def _is_missing(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, (float, np.floating)) and math.isnan(v):
        return True
    return False


def norm_cell(v: Any) -> str:
    """
    Canonical text of a spreadsheet cell:
    - None / NaN / "" -> ""
    - NBSP -> ordinary space
    - trimmed
    Whole floats (7.0, typical for CSV reads) are rendered as "7".
    """
    if _is_missing(v):
        return ""
    if isinstance(v, (float, np.floating)) and float(v).is_integer():
        v = int(v)
    s = str(v)
    s = _NBSP_RE.sub(" ", s)
    return s.strip()


def norm_text(v: Any) -> str:
    # header keyword matching: lower-case, whitespace collapsed
    s = norm_cell(v).lower()
    return re.sub(r"\s+", " ", s).strip()


def to_number(v: Any) -> Optional[float]:
    """Numeric value of a cell, or None. Booleans are not numbers here."""
    if _is_missing(v) or isinstance(v, (bool, np.bool_)):
        return None
    if isinstance(v, (int, float, np.integer, np.floating)):
        return float(v)
    s = norm_cell(v)
    if not _NUMBER_RE.match(s):
        return None
    return float(s)

def rules_path() -> Path:
    return DEFAULT_DATA_DIR / "rules.json"

def state_dir() -> Path:
    USER_DATA_DIR.mkdir(parents=True, exist_ok=True)
    return USER_DATA_DIR
